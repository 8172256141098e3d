from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from appointly.api.v1.common import (
    _BaseArgs,
    _parse_datetime,
    customer_package_to_dict,
    redemption_to_dict,
)
from appointly.core.database import get_db
from appointly.services.packages import PackageLedger


router = APIRouter(tags=["packages"])


class SellArgs(_BaseArgs):
    customer_id: str
    notes: Optional[str] = None


class RedeemArgs(_BaseArgs):
    appointment_id: Optional[str] = None
    service_id: Optional[str] = None
    redeemed_by: Optional[str] = None
    notes: Optional[str] = None


class ExpireDueArgs(_BaseArgs):
    now: Optional[str] = None


@router.post("/businesses/{business_id}/packages/{package_id}/sell", status_code=201)
async def sell_package(
    business_id: str,
    package_id: str,
    args: SellArgs,
    db: AsyncSession = Depends(get_db),
):
    customer_package = await PackageLedger(db).sell(business_id, package_id, args.customer_id, notes=args.notes)
    return customer_package_to_dict(customer_package)


@router.post("/businesses/{business_id}/customer-packages/expire-due")
async def expire_due_packages(
    business_id: str,
    args: Optional[ExpireDueArgs] = None,
    db: AsyncSession = Depends(get_db),
):
    now = _parse_datetime(args.now, "now") if args else None
    count = await PackageLedger(db).expire_due(business_id, now=now)
    return {"business_id": business_id, "expired": count}


@router.post("/businesses/{business_id}/customer-packages/{customer_package_id}/redeem", status_code=201)
async def redeem_package_credit(
    business_id: str,
    customer_package_id: str,
    args: RedeemArgs,
    db: AsyncSession = Depends(get_db),
):
    """Consume one credit; 422 when the package is used up, inactive or expired."""
    ledger = PackageLedger(db)
    redemption = await ledger.redeem(
        business_id,
        customer_package_id,
        appointment_id=args.appointment_id,
        service_id=args.service_id,
        redeemed_by=args.redeemed_by,
        notes=args.notes,
    )
    customer_package = await ledger.get_customer_package(business_id, customer_package_id)
    return {
        "redemption": redemption_to_dict(redemption),
        "customer_package": customer_package_to_dict(customer_package),
    }


@router.post("/businesses/{business_id}/customer-packages/{customer_package_id}/cancel")
async def cancel_customer_package(
    business_id: str,
    customer_package_id: str,
    db: AsyncSession = Depends(get_db),
):
    customer_package = await PackageLedger(db).cancel(business_id, customer_package_id)
    return customer_package_to_dict(customer_package)


@router.post("/businesses/{business_id}/customer-packages/{customer_package_id}/refund")
async def refund_customer_package(
    business_id: str,
    customer_package_id: str,
    db: AsyncSession = Depends(get_db),
):
    customer_package = await PackageLedger(db).refund(business_id, customer_package_id)
    return customer_package_to_dict(customer_package)


@router.get("/businesses/{business_id}/customer-packages/{customer_package_id}/redemptions")
async def list_redemptions(
    business_id: str,
    customer_package_id: str,
    db: AsyncSession = Depends(get_db),
):
    redemptions = await PackageLedger(db).redemptions(business_id, customer_package_id)
    return {
        "customer_package_id": customer_package_id,
        "total": len(redemptions),
        "redemptions": [redemption_to_dict(r) for r in redemptions],
    }


@router.get("/businesses/{business_id}/customers/{customer_id}/packages")
async def customer_active_packages(
    business_id: str,
    customer_id: str,
    service_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Packages the customer can pay with now, optionally for one service"""
    packages = await PackageLedger(db).active_for_customer(business_id, customer_id, service_id)
    return {
        "customer_id": customer_id,
        "total": len(packages),
        "packages": [customer_package_to_dict(cp) for cp in packages],
    }
