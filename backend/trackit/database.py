"""
backend/trackit/database.py

Purpose:
    MongoDB connection bootstrap and index management for tracked bets,
    notification subscriptions and the event log.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - trackit.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from trackit.config import settings

logger = logging.getLogger("trackit.database")

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=10,
        minPoolSize=1,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()
    logger.info("Connected to MongoDB database '%s'", settings.MONGO_DB)


async def close_db() -> None:
    global client
    if client:
        client.close()
        client = None


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def _ensure_indexes() -> None:
    try:
        await db.bets.create_index([("created_at", DESCENDING)])
        await db.bets.create_index([("status", ASCENDING)])
        await db.bets.create_index([("booking_code", ASCENDING), ("platform", ASCENDING)])
        await db.subscriptions.create_index([("bet_id", ASCENDING)])
        await db.event_logs.create_index([("created_at", DESCENDING)])
        await db.event_logs.create_index([("event_type", ASCENDING)])
    except OperationFailure as e:
        logger.warning("Index creation failed: %s", e)
