"""
Database connection

A single AsyncMongoClient is shared by the whole process. It is created on
first use so importing the app (e.g. in tests) never touches the network.
Collection names are the lowercased model names from schemas.py.
"""

import logging
from functools import lru_cache

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from config import settings

logger = logging.getLogger(__name__)


@lru_cache
def get_client() -> AsyncMongoClient:
    return AsyncMongoClient(settings.database_url)


def get_db() -> AsyncDatabase:
    return get_client()[settings.database_name]


async def ensure_indexes() -> None:
    db = get_db()
    await db["user"].create_index([("email", ASCENDING)], unique=True)
    # at most one cart per email
    await db["cart"].create_index([("email", ASCENDING)], unique=True)
    logger.info("Indexes ensured on %s", db.name)


async def close_client() -> None:
    if get_client.cache_info().currsize:
        await get_client().close()
        get_client.cache_clear()
