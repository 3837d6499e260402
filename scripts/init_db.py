"""Script to initialize the database and seed a working clinic."""

import asyncio
import os

from sqlalchemy import insert, select

from cabinet.core.security import get_password_hash
from cabinet.database import engine
from cabinet.models import metadata, patients, therapists, users

THERAPISTS = [
    {"name": "Claire Martin", "specialty": "Orthophonie", "color": "#4f46e5"},
    {"name": "Julien Bernard", "specialty": "Psychomotricité", "color": "#059669"},
    {"name": "Sophie Laurent", "specialty": "Ergothérapie", "color": "#d97706"},
]

PATIENTS = [
    {"first_name": "Lucas", "last_name": "Petit", "phone": "06 12 34 56 78"},
    {"first_name": "Emma", "last_name": "Durand", "phone": "06 23 45 67 89"},
    {"first_name": "Hugo", "last_name": "Moreau", "phone": "06 34 56 78 90"},
]


async def init_db(seed: bool = True) -> None:
    """Create all tables and, on an empty database, a few records to start with."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        print("✓ Tables created")

        if not seed:
            return

        existing = (await conn.execute(select(therapists.c.id).limit(1))).first()
        if existing is not None:
            print("✓ Database already seeded")
            return

        await conn.execute(insert(therapists), THERAPISTS)
        await conn.execute(insert(patients), PATIENTS)
        await conn.execute(
            insert(users).values(
                username="admin",
                email="admin@cabinet.local",
                password_hash=get_password_hash(os.environ.get("ADMIN_PASSWORD", "admin")),
                role="admin",
                is_superuser=True,
            )
        )
        print("✓ Seed data inserted (login: admin)")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_db())
