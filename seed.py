"""
Seed script -- creates the schema and loads sample data for reviewers.

Run once against an empty database:
    python seed.py

Creates:
  - all tables (``Base.metadata.create_all``)
  - 8 sample users (customers, jockeys, a workshop account, an admin)
  - the reference price matrix (VW, Mercedes-Benz, BMW, Audi)
"""

import asyncio
from decimal import Decimal

D = Decimal

USERS = [
    {"name": "Lena Fischer", "email": "lena@example.com", "role": "CUSTOMER"},
    {"name": "Jonas Weber", "email": "jonas@example.com", "role": "CUSTOMER"},
    {"name": "Mia Schneider", "email": "mia@example.com", "role": "CUSTOMER"},
    {"name": "Paul Becker", "email": "paul.jockey@example.com", "role": "JOCKEY"},
    {"name": "Emma Wagner", "email": "emma.jockey@example.com", "role": "JOCKEY"},
    {"name": "Felix Hoffmann", "email": "felix.jockey@example.com", "role": "JOCKEY"},
    {"name": "Werkstatt Witten", "email": "werkstatt@example.com", "role": "WORKSHOP"},
    {"name": "Ops Admin", "email": "admin@example.com", "role": "ADMIN"},
]

# Inspection tiers 30k / 60k / 90k / 120k, then oil, brakes front / rear, TÜV, climate
PRICE_MATRIX = [
    {
        "brand": "VW", "model": "Golf 7", "year_from": 2012, "year_to": 2019,
        "inspection_30k": D("189.00"), "inspection_60k": D("219.00"),
        "inspection_90k": D("289.00"), "inspection_120k": D("349.00"),
        "oil_service": D("159.00"), "brake_service_front": D("349.00"),
        "brake_service_rear": D("299.00"), "tuv": D("120.00"),
        "climate_service": D("140.00"),
    },
    {
        "brand": "VW", "model": "Golf 8", "year_from": 2020, "year_to": 2027,
        "inspection_30k": D("209.00"), "inspection_60k": D("239.00"),
        "inspection_90k": D("309.00"), "inspection_120k": D("369.00"),
        "oil_service": D("169.00"), "brake_service_front": D("369.00"),
        "brake_service_rear": D("319.00"), "tuv": D("120.00"),
        "climate_service": D("150.00"),
    },
    {
        "brand": "VW", "model": "Passat", "year_from": 2015, "year_to": 2023,
        "inspection_30k": D("219.00"), "inspection_60k": D("259.00"),
        "inspection_90k": D("329.00"), "inspection_120k": D("389.00"),
        "oil_service": D("179.00"), "brake_service_front": D("389.00"),
        "brake_service_rear": D("339.00"), "tuv": D("120.00"),
        "climate_service": D("150.00"),
    },
    {
        "brand": "Mercedes-Benz", "model": "S-Klasse", "year_from": 2013, "year_to": 2020,
        "inspection_30k": D("349.00"), "inspection_60k": D("399.00"),
        "inspection_90k": D("499.00"), "inspection_120k": D("599.00"),
        "oil_service": D("249.00"), "brake_service_front": D("649.00"),
        "brake_service_rear": D("549.00"), "tuv": D("150.00"),
        "climate_service": D("180.00"),
    },
    {
        "brand": "Mercedes-Benz", "model": "C-Klasse", "year_from": 2014, "year_to": 2021,
        "inspection_30k": D("259.00"), "inspection_60k": D("299.00"),
        "inspection_90k": D("369.00"), "inspection_120k": D("439.00"),
        "oil_service": D("209.00"), "brake_service_front": D("459.00"),
        "brake_service_rear": D("399.00"), "tuv": D("140.00"),
        "climate_service": D("170.00"),
    },
    {
        "brand": "BMW", "model": "3er", "year_from": 2015, "year_to": 2022,
        "inspection_30k": D("269.00"), "inspection_60k": D("309.00"),
        "inspection_90k": D("379.00"), "inspection_120k": D("449.00"),
        "oil_service": D("219.00"), "brake_service_front": D("479.00"),
        "brake_service_rear": D("429.00"), "tuv": D("130.00"),
        "climate_service": D("160.00"),
    },
    {
        # Older models: no climate service offered
        "brand": "Audi", "model": "A4", "year_from": 2008, "year_to": 2015,
        "inspection_30k": D("239.00"), "inspection_60k": D("279.00"),
        "inspection_90k": D("349.00"), "inspection_120k": D("419.00"),
        "oil_service": D("189.00"), "brake_service_front": D("419.00"),
        "brake_service_rear": D("369.00"), "tuv": D("130.00"),
        "climate_service": None,
    },
]


async def seed():
    from sqlalchemy import func, select

    from autoconcierge.domain.entities import PriceMatrixEntry
    from autoconcierge.domain.enums import ActorRole
    from autoconcierge.infrastructure.database import Base, async_session_factory, engine
    from autoconcierge.infrastructure.models import UserModel
    from autoconcierge.infrastructure.repositories import (
        PriceMatrixRepository,
        UserRepository,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(select(func.count()).select_from(UserModel))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        users = UserRepository(session)
        for u in USERS:
            await users.create(name=u["name"], email=u["email"], role=ActorRole(u["role"]))
        print(f"  Created {len(USERS)} users")

        # ── Price matrix ──────────────────────────────────────────────
        matrix = PriceMatrixRepository(session)
        for row in PRICE_MATRIX:
            await matrix.add_entry(PriceMatrixEntry(**row))
        print(f"  Created {len(PRICE_MATRIX)} price matrix entries")

        await session.commit()
        print("\nSeed complete!")


async def main():
    from autoconcierge.infrastructure.database import engine

    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
