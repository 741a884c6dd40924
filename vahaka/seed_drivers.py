"""
Seeding script for sample drivers.

Creates a few approved drivers around Bangalore, positioned and available,
plus one pending driver awaiting moderation. Run against a configured store
(see STORE_BACKEND / DATABASE_URL / REDIS_URL) before trying the dispatch flow.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from vahaka.app.core.config import settings
from vahaka.app.services.driver_repository import DriverRepository
from vahaka.app.services.location_updater import LocationUpdater
from vahaka.app.store.factory import build_store

SAMPLE_DRIVERS = [
    {
        "id": "seed-driver-1",
        "name": "Ravi Kumar",
        "phone": "+919800000101",
        "email": "ravi@vahaka.test",
        "experience": 6,
        "about": "Airport runs and city rides",
        "vehicle": {"make": "Toyota", "model": "Etios", "year": 2019, "color": "Silver", "plateNumber": "KA05MN4521"},
        "license": {"number": "KA0520130004521", "expiryDate": "2031-03-14"},
        "location": (12.9716, 77.5946),
    },
    {
        "id": "seed-driver-2",
        "name": "Meena Iyer",
        "phone": "+919800000102",
        "email": "meena@vahaka.test",
        "experience": 3,
        "vehicle": {"make": "Hyundai", "model": "Aura", "year": 2022, "color": "Blue", "plateNumber": "KA03JK7788"},
        "license": {"number": "KA0320190007788", "expiryDate": "2034-08-01"},
        "location": (12.9352, 77.6245),
    },
    {
        "id": "seed-driver-3",
        "name": "Imran Shaikh",
        "phone": "+919800000103",
        "email": "imran@vahaka.test",
        "experience": 9,
        "vehicle": {"make": "Maruti", "model": "Ertiga", "year": 2020, "color": "White", "plateNumber": "KA01HG1290"},
        "license": {"number": "KA0120100001290", "expiryDate": "2029-11-20"},
        "location": (12.9784, 77.6408),
    },
]

PENDING_DRIVER = {
    "name": "Test Driver",
    "phone": "+919800000199",
    "email": "pending@vahaka.test",
    "experience": 5,
    "about": "Test driver profile",
    "vehicle": {"make": "Toyota", "model": "Camry", "year": 2020, "color": "Silver", "plateNumber": "TEST123"},
    "license": {"number": "DL123456", "expiryDate": "2030-01-01"},
}


async def seed_drivers():
    """
    Seed sample drivers.

    Creates:
    - 3 approved, available drivers with locations
    - 1 pending driver
    """
    store = build_store(settings)
    await store.initialize()
    drivers = DriverRepository(store)
    updater = LocationUpdater(store, drivers)

    try:
        print("🌱 Starting driver seeding...")

        if await drivers.get(SAMPLE_DRIVERS[0]["id"]):
            print("ℹ️  Sample drivers already exist, skipping seeding")
            return

        for sample in SAMPLE_DRIVERS:
            profile = {key: value for key, value in sample.items() if key not in ("id", "location")}
            driver_id = await drivers.create(profile, driver_id=sample["id"])
            await drivers.update(driver_id, {"status": "approved"})
            latitude, longitude = sample["location"]
            await updater.set_location(driver_id, {"latitude": latitude, "longitude": longitude})
            await updater.set_availability(driver_id, True)
            print(f"✅ Created approved driver {sample['name']} ({driver_id})")

        pending_id = await drivers.create(PENDING_DRIVER)
        print(f"✅ Created pending driver ({pending_id})")

        print("\n🎉 Driver seeding completed successfully!")
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(seed_drivers())
