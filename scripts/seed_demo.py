#!/usr/bin/env python3
"""
Create a bookable demo restaurant for local development.

Running it twice is harmless: an existing demo tenant is left untouched.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select

from bookflow.api.auth import get_password_hash
from bookflow.database import Base, SessionLocal, engine
from bookflow.models.tenant import (
    DepositPolicy,
    Holiday,
    RestaurantSettings,
    RestaurantTable,
    StaffContact,
    Tenant,
)
from bookflow.models.user import User, UserRole

DEMO_SLUG = "harbor-oyster-bar"

EVENINGS = {"open": "17:00", "close": "22:30"}
WEEKEND = {"open": "12:00", "close": "23:00"}
HOURS = {
    "monday": {"closed": True},
    "tuesday": EVENINGS,
    "wednesday": EVENINGS,
    "thursday": EVENINGS,
    "friday": WEEKEND,
    "saturday": WEEKEND,
    "sunday": {"open": "12:00", "close": "20:00"},
}

TABLES = [("Bar 1", 2), ("Bar 2", 2), ("Window", 4), ("Booth", 4), ("Corner", 6), ("Terrace", 10)]

ACCOUNTS = [
    # email, password, role, belongs to the demo tenant
    ("ops@bookflow.dev", "ops-demo-pass", UserRole.SUPER_ADMIN, False),
    ("manager@harbor.example", "manager-demo-pass", UserRole.RESTAURANT_ADMIN, True),
    ("host@harbor.example", "host-demo-pass", UserRole.HOST, True),
]


def next_new_year() -> date:
    today = date.today()
    candidate = date(today.year, 1, 1)
    return candidate if candidate >= today else date(today.year + 1, 1, 1)


async def seed_demo_data() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        if await db.scalar(select(Tenant.id).where(Tenant.slug == DEMO_SLUG)):
            print(f"Tenant {DEMO_SLUG!r} already present, nothing to do")
            return

        tenant = Tenant(slug=DEMO_SLUG, name="Harbor Oyster Bar", timezone="America/Chicago")
        db.add(tenant)
        await db.flush()

        db.add(RestaurantSettings(
            tenant_id=tenant.id,
            hours_json=HOURS,
            approval_mode="auto",
            max_party_size=10,
            reservation_slot_minutes=30,
            default_duration_minutes=90,
            buffer_minutes=15,
            pacing_cap=20,
            policies_json={"cancellation": "Free cancellation up to 4 hours before."},
            address="8 Pier Road",
            city="Chicago",
            state="IL",
        ))
        db.add(DepositPolicy(
            tenant_id=tenant.id,
            enabled=True,
            default_amount=Decimal("20.00"),
            large_party_threshold=6,
            large_party_amount=Decimal("60.00"),
            description="Deposits are taken off the final bill.",
            show_policy_label=True,
        ))
        db.add_all(RestaurantTable(tenant_id=tenant.id, name=name, capacity=seats) for name, seats in TABLES)
        db.add(Holiday(tenant_id=tenant.id, holiday_date=next_new_year() - timedelta(days=1), name="New Year's Eve"))
        db.add(StaffContact(tenant_id=tenant.id, name="Front desk", phone="+13125550100", role="host"))

        for email, password, role, scoped in ACCOUNTS:
            db.add(User(
                email=email,
                hashed_password=get_password_hash(password),
                role=role,
                tenant_id=tenant.id if scoped else None,
            ))

        await db.commit()

    print(f"Seeded {tenant.name} ({tenant.id}) with {len(TABLES)} tables")
    for email, password, role, _ in ACCOUNTS:
        print(f"  {role.value:<17} {email} / {password}")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
