from __future__ import annotations

import argparse
import asyncio
import json
import sys
from decimal import Decimal
from pathlib import Path

# Ensure the backend project root (the directory containing the "appointly"
# package) is on sys.path so this script can be executed from the repo root or backend/.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from appointly.core.database import AsyncSessionLocal, Base, engine, unit_of_work
from appointly.core.logging_config import configure_logging
from appointly.models import PackageType
from appointly.services.db_service import DBService

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday")


def _schedule(start: str, end: str, days=WEEKDAYS) -> dict:
    return {day: {"start": start, "end": end} for day in days}


async def seed(slug: str, create_tables: bool) -> dict:
    """Create a demo salon with two employees, two services and a 5-visit package."""
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        db_service = DBService(session)
        existing = await db_service.get_business_by_slug(slug)
        if existing:
            print(f"Business '{slug}' already exists: {existing.id}")
            return {"business_id": str(existing.id)}

        async with unit_of_work(session):
            business = await db_service.create_business(
                {
                    "name": "Studio Mitte",
                    "slug": slug,
                    "industry": "salon",
                    "email": "hallo@studio-mitte.example",
                    "contact_phone": "+49 30 1234567",
                    "whatsapp_number": "+49 171 1234567",
                    "address": "Torstrasse 1",
                    "city": "Berlin",
                }
            )
            haircut = await db_service.create_service(
                business.id,
                {"name": "Haircut", "duration_minutes": 60, "price": Decimal("45.00")},
            )
            coloring = await db_service.create_service(
                business.id,
                {"name": "Coloring", "duration_minutes": 90, "price": Decimal("89.00")},
            )
            anna = await db_service.create_employee(
                business.id,
                {
                    "first_name": "Anna",
                    "last_name": "Schmidt",
                    "work_schedule": _schedule("09:00", "17:00"),
                },
            )
            ben = await db_service.create_employee(
                business.id,
                {
                    "first_name": "Ben",
                    "last_name": "Weber",
                    "work_schedule": _schedule("12:00", "20:00", WEEKDAYS + ("saturday",)),
                },
            )
            package = await db_service.create_package(
                business.id,
                {
                    "name": "5x Haircut",
                    "package_type": PackageType.MULTIUSE,
                    "service_id": haircut.id,
                    "total_uses": 5,
                    "original_price": Decimal("225.00"),
                    "sale_price": Decimal("199.00"),
                    "validity_days": 365,
                    "max_per_customer": 2,
                },
            )

    return {
        "business_id": str(business.id),
        "services": {"haircut": str(haircut.id), "coloring": str(coloring.id)},
        "employees": {"anna": str(anna.id), "ben": str(ben.id)},
        "package_id": str(package.id),
    }


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed a demo business for local development.")
    parser.add_argument("--slug", default="studio-mitte", help="Slug of the demo business")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create all tables first (for a fresh SQLite file without migrations)",
    )
    return parser.parse_args()


def main() -> None:
    configure_logging()
    args = parse_args()
    result = asyncio.run(seed(args.slug, args.create_tables))
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
