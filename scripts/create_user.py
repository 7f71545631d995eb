"""
Script to register a directory user and print a local access token
Usage: python scripts/create_user.py <auth_subject> <username> [admin|user]
"""

import sys
import asyncio
import uuid
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from eventhub.database import database, connect_db, disconnect_db
from eventhub.auth import create_access_token


async def create_user(auth_subject: str, username: str, role: str = "user"):
    """
    Create a user for an identity-provider subject

    Args:
        auth_subject: Subject claim of the user's tokens
        username: Display name (max 20 characters)
        role: 'admin' or 'user'
    """
    await connect_db()

    try:
        existing = await database.fetch_one(
            "SELECT id FROM users WHERE auth_subject = :subject",
            {"subject": auth_subject}
        )

        if existing:
            print(f"❌ User with subject {auth_subject} already exists!")
            return

        await database.execute(
            """
            INSERT INTO users (id, auth_subject, username, role)
            VALUES (:id, :auth_subject, :username, :role)
            """,
            {
                "id": str(uuid.uuid4()),
                "auth_subject": auth_subject,
                "username": username[:20],
                "role": role,
            }
        )

        print(f"✅ Created {role} {username}")
        print(f"Token: {create_access_token(auth_subject, [role])}")
    finally:
        await disconnect_db()


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    role = sys.argv[3] if len(sys.argv) > 3 else "user"
    if role not in ("admin", "user"):
        print("Role must be 'admin' or 'user'")
        sys.exit(1)

    asyncio.run(create_user(sys.argv[1], sys.argv[2], role))
