"""
Database seeding script for local development.

Creates driver profiles and prints a bearer token for each one.
Run this script after the database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dutylink.app.db.session import AsyncSessionLocal, create_tables
from dutylink.app.models.driver_profile import DriverProfile
from dutylink.app.core.jwt import create_access_token
from sqlalchemy import select

DRIVERS = [
    ("Ana Souza", "ana@dutylink.dev"),
    ("Bruno Lima", "bruno@dutylink.dev"),
]


async def seed_drivers():
    """
    Seed driver profiles.

    Existing profiles (matched by email) are left untouched.
    """
    await create_tables()

    async with AsyncSessionLocal() as db:
        print("🌱 Starting driver seeding...")

        for display_name, email in DRIVERS:
            result = await db.execute(
                select(DriverProfile).where(DriverProfile.email == email)
            )
            profile = result.scalar_one_or_none()

            if profile:
                print(f"ℹ️  {email} already exists, skipping")
            else:
                profile = DriverProfile(display_name=display_name, email=email)
                db.add(profile)
                await db.flush()
                print(f"✅ Created driver {display_name} (id: {profile.id})")

            token = create_access_token(data={"sub": email, "user_id": profile.id})
            print(f"   token: {token}")

        await db.commit()

        print("\n🎉 Driver seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed_drivers())
