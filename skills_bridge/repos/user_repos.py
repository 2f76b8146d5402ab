"""
Repository for user accounts

The data access layer for the ``users`` collection. Lookups exclude the
password hash unless a caller explicitly asks for it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from skills_bridge.db.mongo import serialize_doc

WITHOUT_PASSWORD = {"password": 0}


class UsersRepository:
    """Repository for user accounts"""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._coll = db["users"]

    async def find_by_id(self, user_id: str) -> Optional[dict[str, Any]]:
        """
        Find a user by id, password excluded

        Raises:
            bson.errors.InvalidId: If ``user_id`` is not a valid ObjectId
        """
        doc = await self._coll.find_one({"_id": ObjectId(user_id)}, WITHOUT_PASSWORD)
        return serialize_doc(doc)

    async def find_by_id_with_password(self, user_id: str) -> Optional[dict[str, Any]]:
        doc = await self._coll.find_one({"_id": ObjectId(user_id)})
        return serialize_doc(doc)

    async def find_by_email(self, email: str, with_password: bool = False) -> Optional[dict[str, Any]]:
        """Find a user by (lower-cased) email"""
        projection = None if with_password else WITHOUT_PASSWORD
        doc = await self._coll.find_one({"email": email.lower()}, projection)
        return serialize_doc(doc)

    async def find_by_verification_token(self, token: str) -> Optional[dict[str, Any]]:
        doc = await self._coll.find_one({"emailVerificationToken": token}, WITHOUT_PASSWORD)
        return serialize_doc(doc)

    async def find_by_reset_token(self, hashed_token: str, now: datetime) -> Optional[dict[str, Any]]:
        """Find a user whose reset token matches and has not expired"""
        doc = await self._coll.find_one(
            {"resetPasswordToken": hashed_token, "resetPasswordExpire": {"$gt": now}},
            WITHOUT_PASSWORD,
        )
        return serialize_doc(doc)

    async def insert_one(self, user: dict[str, Any]) -> str:
        """
        Create a user

        Raises:
            pymongo.errors.DuplicateKeyError: On a unique index collision
        """
        result = await self._coll.insert_one(user)
        return str(result.inserted_id)

    async def update_fields(
        self,
        user_id: str,
        fields: dict[str, Any],
        unset: Optional[list[str]] = None,
    ) -> None:
        """Set ``fields`` and remove ``unset`` on one user"""
        update: dict[str, Any] = {"$set": {**fields, "updatedAt": datetime.utcnow()}}
        if unset:
            update["$unset"] = {name: "" for name in unset}
        await self._coll.update_one({"_id": ObjectId(user_id)}, update)

    async def count(self, query: dict[str, Any]) -> int:
        return await self._coll.count_documents(query)


class ApplicationsRepository:
    """Read-only access to job applications (counts for public stats)"""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._coll = db["applications"]

    async def count(self, query: Optional[dict[str, Any]] = None) -> int:
        return await self._coll.count_documents(query or {})
