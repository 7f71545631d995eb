"""
Script to create all tables from the models
For local development; use Alembic migrations elsewhere
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from eventhub.database import Base, engine
import eventhub.models  # noqa: F401


def main():
    Base.metadata.create_all(bind=engine)
    print("✅ Tables created")


if __name__ == "__main__":
    main()
