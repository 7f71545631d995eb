"""
Script to seed the event type catalog
Safe to run repeatedly; existing names are left alone
"""

import sys
import asyncio
import uuid
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from eventhub.database import database, connect_db, disconnect_db

# Top-level type -> child types
EVENT_TYPES = {
    "University Activities": [],
    "Competency Development": [
        "Ethics and Morality",
        "Thinking and Learning Skills",
        "Interpersonal Relations and Communication",
        "Health Development",
    ],
    "Social Service": [],
}


async def ensure_type(name: str, parent_id: str = None) -> str:
    existing = await database.fetch_one(
        "SELECT id FROM event_types WHERE name = :name",
        {"name": name}
    )
    if existing:
        return str(existing["id"])

    type_id = str(uuid.uuid4())
    await database.execute(
        "INSERT INTO event_types (id, name, parent_id) VALUES (:id, :name, :parent_id)",
        {"id": type_id, "name": name, "parent_id": parent_id}
    )
    print(f"  + {name}")
    return type_id


async def seed_event_types():
    await connect_db()

    try:
        for parent, children in EVENT_TYPES.items():
            parent_id = await ensure_type(parent)
            for child in children:
                await ensure_type(child, parent_id)
        print("✅ Event types seeded")
    finally:
        await disconnect_db()


if __name__ == "__main__":
    asyncio.run(seed_event_types())
