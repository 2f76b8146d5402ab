"""
MongoDB access

This module is responsible for:
- Connecting to MongoDB
- Creating indexes (including the unique ones the error normalizer maps)
- Converting documents into API-friendly dicts
"""

from __future__ import annotations

from typing import Any, Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from skills_bridge.config import Settings

# Module-level connection state
_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def init_mongo(settings: Settings) -> None:
    """
    Initialize the MongoDB connection

    Args:
        settings: Application settings with connection parameters
    """
    global _client, _db
    if _client is not None:
        return
    _client = AsyncIOMotorClient(settings.mongo_uri, serverSelectionTimeoutMS=5000)
    _db = _client[settings.mongo_db]


async def get_db() -> AsyncIOMotorDatabase:
    """
    Get the database instance

    Returns:
        AsyncIOMotorDatabase object

    Raises:
        RuntimeError: If MongoDB is not initialized
    """
    if _db is None:
        raise RuntimeError("MongoDB is not initialized")
    return _db


async def close_mongo() -> None:
    """Close the MongoDB connection"""
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


async def ping() -> bool:
    """Return True when the server answers a ping"""
    if _client is None:
        return False
    try:
        await _client.admin.command("ping")
        return True
    except Exception:  # noqa: BLE001
        return False


def database_name() -> str:
    return _db.name if _db is not None else "Not connected"


async def ensure_indexes() -> None:
    """
    Create indexes

    Unique indexes on email, phone and company registration number back the
    duplicate-key messages of the error normalizer.
    """
    db = await get_db()
    users = db["users"]
    await users.create_index("email", unique=True)
    await users.create_index("phone", unique=True, sparse=True)
    await users.create_index("companyInfo.registrationNumber", unique=True, sparse=True)
    await users.create_index("role")
    await users.create_index([("isActive", 1), ("isBlocked", 1)])
    await users.create_index([("createdAt", -1)])
    await db["applications"].create_index("status")


def serialize_doc(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """
    Replace the ObjectId ``_id`` with a string ``id``

    Args:
        doc: MongoDB document

    Returns:
        Document with ``id`` instead of ``_id``
    """
    if doc is None:
        return None
    if "_id" in doc:
        object_id = doc["_id"]
        doc = {k: v for k, v in doc.items() if k != "_id"}
        doc["id"] = str(object_id)
    return doc
