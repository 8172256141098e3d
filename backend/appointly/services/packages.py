"""Package ledger: selling prepaid credit packages and consuming their credits.

Every credit is consumed by a guarded ``UPDATE`` that only matches while the
package is active and has credits left, so two concurrent redemptions of the
last credit cannot both succeed. The redemption row is written in the same
transaction, which keeps ``total_uses - uses_remaining`` equal to the number
of redemption rows.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from appointly.core.database import unit_of_work
from appointly.core.errors import (
    ConflictError,
    InactiveError,
    InsufficientCreditsError,
    InvalidStateTransition,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from appointly.models import (
    CustomerPackage,
    CustomerPackageStatus,
    Package,
    PackageItem,
    PackageRedemption,
    PackageType,
)
from appointly.services.db_service import DBService, IdLike, as_uuid

logger = logging.getLogger(__name__)


def package_covers(package: Package, service_id: Optional[IdLike]) -> bool:
    """Whether a credit of ``package`` may pay for ``service_id``."""
    if service_id is None:
        return True
    service_uuid = as_uuid(service_id)
    if package.package_type == PackageType.BUNDLE:
        return any(item.service_id == service_uuid for item in package.items)
    return package.service_id is None or package.service_id == service_uuid


def _bundle_item(package: Package, service_id: Optional[IdLike]) -> Optional[PackageItem]:
    if package.package_type != PackageType.BUNDLE or service_id is None:
        return None
    service_uuid = as_uuid(service_id)
    for item in package.items:
        if item.service_id == service_uuid:
            return item
    return None


class PackageLedger:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.db = DBService(session)

    # ==================== LOOKUPS ====================

    async def get_package(
        self,
        business_id: IdLike,
        package_id: IdLike,
        *,
        for_update: bool = False,
    ) -> Optional[Package]:
        p_uuid = as_uuid(package_id)
        b_uuid = as_uuid(business_id)
        if p_uuid is None or b_uuid is None:
            return None

        query = (
            select(Package)
            .where(Package.id == p_uuid, Package.business_id == b_uuid)
            .options(selectinload(Package.items))
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_customer_package(
        self, business_id: IdLike, customer_package_id: IdLike
    ) -> Optional[CustomerPackage]:
        cp_uuid = as_uuid(customer_package_id)
        b_uuid = as_uuid(business_id)
        if cp_uuid is None or b_uuid is None:
            return None

        result = await self.session.execute(
            select(CustomerPackage)
            .where(CustomerPackage.id == cp_uuid, CustomerPackage.business_id == b_uuid)
            .options(selectinload(CustomerPackage.package).selectinload(Package.items))
        )
        return result.scalar_one_or_none()

    async def _require_customer_package(
        self, business_id: IdLike, customer_package_id: IdLike
    ) -> CustomerPackage:
        customer_package = await self.get_customer_package(business_id, customer_package_id)
        if customer_package is None:
            raise NotFoundError(f"Customer package '{customer_package_id}' not found")
        return customer_package

    # ==================== SELL ====================

    async def sell(
        self,
        business_id: IdLike,
        package_id: IdLike,
        customer_id: IdLike,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CustomerPackage:
        now = now or datetime.utcnow()
        async with unit_of_work(self.session):
            # Lock the definition so concurrent sales see each other's counts
            package = await self.get_package(business_id, package_id, for_update=True)
            if package is None:
                raise NotFoundError(f"Package '{package_id}' not found")
            if not package.is_active:
                raise InactiveError(f"Package '{package.name}' is not active")
            if package.valid_from and now < package.valid_from:
                raise InactiveError(f"Package '{package.name}' is not on sale yet")
            if package.valid_until and now > package.valid_until:
                raise InactiveError(f"Package '{package.name}' is no longer on sale")

            customer = await self.db.get_customer(business_id, customer_id)
            if customer is None:
                raise ValidationError(f"Unknown customer '{customer_id}'")

            owned = await self.session.scalar(
                select(func.count(CustomerPackage.id)).where(
                    CustomerPackage.package_id == package.id,
                    CustomerPackage.customer_id == customer.id,
                    CustomerPackage.status.in_(
                        [CustomerPackageStatus.ACTIVE, CustomerPackageStatus.FULLY_USED]
                    ),
                )
            )
            if owned >= package.max_per_customer:
                raise LimitExceededError(
                    f"Customer already owns {owned} of package '{package.name}'",
                    details={"max_per_customer": package.max_per_customer},
                )

            if package.max_purchases is not None:
                sold = await self.session.scalar(
                    select(func.count(CustomerPackage.id)).where(
                        CustomerPackage.package_id == package.id,
                        CustomerPackage.status.not_in(
                            [CustomerPackageStatus.REFUNDED, CustomerPackageStatus.CANCELED]
                        ),
                    )
                )
                if sold >= package.max_purchases:
                    raise LimitExceededError(
                        f"Package '{package.name}' is sold out",
                        details={"max_purchases": package.max_purchases},
                    )

            customer_package = CustomerPackage(
                business_id=package.business_id,
                customer_id=customer.id,
                package_id=package.id,
                purchase_price=package.sale_price,
                purchased_at=now,
                expires_at=now + timedelta(days=package.validity_days) if package.validity_days else None,
                total_uses=package.total_uses,
                uses_remaining=package.total_uses,
                status=CustomerPackageStatus.ACTIVE,
                notes=notes,
            )
            self.session.add(customer_package)
            await self.session.flush()

        logger.info(f"Sold package {package.id} to customer {customer.id} as {customer_package.id}")
        return customer_package

    # ==================== REDEEM ====================

    @staticmethod
    def _check_redeemable(customer_package: CustomerPackage, now: datetime) -> None:
        if customer_package.status != CustomerPackageStatus.ACTIVE:
            raise InactiveError(
                f"Package is {customer_package.status}",
                details={"status": customer_package.status},
            )
        if customer_package.expires_at is not None and customer_package.expires_at < now:
            raise InactiveError("Package has expired", details={"expires_at": customer_package.expires_at.isoformat()})
        if customer_package.uses_remaining <= 0:
            raise InsufficientCreditsError("No credits left on this package")

    async def redeem(
        self,
        business_id: IdLike,
        customer_package_id: IdLike,
        appointment_id: Optional[IdLike] = None,
        service_id: Optional[IdLike] = None,
        redeemed_by: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PackageRedemption:
        async with unit_of_work(self.session):
            redemption = await self.redeem_in_session(
                business_id,
                customer_package_id,
                appointment_id=appointment_id,
                service_id=service_id,
                redeemed_by=redeemed_by,
                notes=notes,
                now=now,
            )
        return redemption

    async def redeem_in_session(
        self,
        business_id: IdLike,
        customer_package_id: IdLike,
        *,
        customer_id: Optional[IdLike] = None,
        appointment_id: Optional[IdLike] = None,
        service_id: Optional[IdLike] = None,
        redeemed_by: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PackageRedemption:
        """Consume one credit inside the caller's transaction.

        The caller owns the commit; any exception raised here must roll the
        whole unit of work back.
        """
        now = now or datetime.utcnow()
        customer_package = await self._require_customer_package(business_id, customer_package_id)
        if customer_id is not None and customer_package.customer_id != as_uuid(customer_id):
            raise ValidationError("Package belongs to a different customer")
        self._check_redeemable(customer_package, now)
        if not package_covers(customer_package.package, service_id):
            raise ValidationError("Package does not cover this service")

        result = await self.session.execute(
            update(CustomerPackage)
            .where(
                CustomerPackage.id == customer_package.id,
                CustomerPackage.status == CustomerPackageStatus.ACTIVE,
                CustomerPackage.uses_remaining > 0,
            )
            .values(
                uses_remaining=CustomerPackage.uses_remaining - 1,
                status=case(
                    (CustomerPackage.uses_remaining == 1, CustomerPackageStatus.FULLY_USED),
                    else_=CustomerPackage.status,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Lost the race for the last credit (or a status change); report what happened
            await self.session.refresh(customer_package, ["status", "uses_remaining", "updated_at"])
            self._check_redeemable(customer_package, now)
            raise ConflictError("Package changed while redeeming, try again")

        item = _bundle_item(customer_package.package, service_id)
        if item is not None:
            used = await self.session.scalar(
                select(func.count(PackageRedemption.id)).where(
                    PackageRedemption.customer_package_id == customer_package.id,
                    PackageRedemption.service_id == item.service_id,
                )
            )
            if used >= item.quantity:
                raise InsufficientCreditsError("No credits left for this service in the bundle")

        redemption = PackageRedemption(
            customer_package_id=customer_package.id,
            appointment_id=as_uuid(appointment_id),
            service_id=as_uuid(service_id),
            redeemed_by=redeemed_by,
            notes=notes,
            redeemed_at=now,
        )
        self.session.add(redemption)
        await self.session.flush()
        await self.session.refresh(customer_package, ["status", "uses_remaining", "updated_at"])

        logger.info(
            f"Redeemed credit of package {customer_package.id}: "
            f"{customer_package.uses_remaining}/{customer_package.total_uses} left"
        )
        return redemption

    # ==================== ADMIN ====================

    async def _transition(
        self,
        business_id: IdLike,
        customer_package_id: IdLike,
        allowed_from: tuple[str, ...],
        target: str,
    ) -> CustomerPackage:
        async with unit_of_work(self.session):
            customer_package = await self._require_customer_package(business_id, customer_package_id)
            result = await self.session.execute(
                update(CustomerPackage)
                .where(
                    CustomerPackage.id == customer_package.id,
                    CustomerPackage.status.in_(allowed_from),
                )
                .values(status=target)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.session.refresh(customer_package, ["status", "uses_remaining", "updated_at"])
                raise InvalidStateTransition("customer_package", customer_package.status, target)
            await self.session.refresh(customer_package, ["status", "uses_remaining", "updated_at"])

        logger.info(f"Customer package {customer_package.id} is now {target}")
        return customer_package

    async def cancel(self, business_id: IdLike, customer_package_id: IdLike) -> CustomerPackage:
        return await self._transition(
            business_id,
            customer_package_id,
            (CustomerPackageStatus.ACTIVE,),
            CustomerPackageStatus.CANCELED,
        )

    async def refund(self, business_id: IdLike, customer_package_id: IdLike) -> CustomerPackage:
        return await self._transition(
            business_id,
            customer_package_id,
            (CustomerPackageStatus.ACTIVE, CustomerPackageStatus.FULLY_USED),
            CustomerPackageStatus.REFUNDED,
        )

    async def expire_due(self, business_id: IdLike, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        async with unit_of_work(self.session):
            result = await self.session.execute(
                update(CustomerPackage)
                .where(
                    CustomerPackage.business_id == as_uuid(business_id),
                    CustomerPackage.status == CustomerPackageStatus.ACTIVE,
                    CustomerPackage.expires_at.is_not(None),
                    CustomerPackage.expires_at < now,
                )
                .values(status=CustomerPackageStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
        count = result.rowcount
        if count:
            logger.info(f"Expired {count} customer package(s) for business {business_id}")
        return count

    # ==================== QUERIES ====================

    async def active_for_customer(
        self,
        business_id: IdLike,
        customer_id: IdLike,
        service_id: Optional[IdLike] = None,
        now: Optional[datetime] = None,
    ) -> List[CustomerPackage]:
        """Packages the customer can pay with right now, soonest expiry first."""
        now = now or datetime.utcnow()
        c_uuid = as_uuid(customer_id)
        b_uuid = as_uuid(business_id)
        if c_uuid is None or b_uuid is None:
            return []

        result = await self.session.execute(
            select(CustomerPackage)
            .where(
                CustomerPackage.business_id == b_uuid,
                CustomerPackage.customer_id == c_uuid,
                CustomerPackage.status == CustomerPackageStatus.ACTIVE,
                CustomerPackage.uses_remaining > 0,
                (CustomerPackage.expires_at.is_(None)) | (CustomerPackage.expires_at >= now),
            )
            .options(selectinload(CustomerPackage.package).selectinload(Package.items))
            .order_by(CustomerPackage.expires_at.is_(None), CustomerPackage.expires_at, CustomerPackage.purchased_at)
        )
        packages = list(result.scalars().all())
        return [cp for cp in packages if package_covers(cp.package, service_id)]

    async def redemptions(
        self, business_id: IdLike, customer_package_id: IdLike
    ) -> List[PackageRedemption]:
        customer_package = await self._require_customer_package(business_id, customer_package_id)
        result = await self.session.execute(
            select(PackageRedemption)
            .where(PackageRedemption.customer_package_id == customer_package.id)
            .order_by(PackageRedemption.redeemed_at)
        )
        return list(result.scalars().all())
