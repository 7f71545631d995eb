"""
Database Connection
Async `databases` pool for the API, sync engine for migrations and scripts
"""

import logging

from databases import Database
from sqlalchemy import create_engine, MetaData
from sqlalchemy.orm import declarative_base
from eventhub.config import settings

logger = logging.getLogger(__name__)


def pool_options(url: str) -> dict:
    """Connection pool sizing for the async database"""
    if "pooler.supabase.com" in url:
        # pgbouncer transaction mode cannot use prepared statements
        return {"min_size": 1, "max_size": 5, "statement_cache_size": 0}
    if url.startswith("postgresql"):
        return {"min_size": 1, "max_size": 10}
    return {}


def sync_url(url: str) -> str:
    """Same database through psycopg2, for Alembic and the scripts"""
    return url.replace("postgresql://", "postgresql+psycopg2://", 1)


database = Database(settings.DATABASE_URL, **pool_options(settings.DATABASE_URL))

engine = create_engine(sync_url(settings.DATABASE_URL))

metadata = MetaData()
Base = declarative_base(metadata=metadata)


async def connect_db():
    await database.connect()
    logger.info("Database connected")


async def disconnect_db():
    await database.disconnect()
    logger.info("Database disconnected")
