"""
Repository for the `users` collection.

Default reads exclude the password hash and reset-token fields; callers that
need to check a password opt in with ``with_secrets=True``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import ReturnDocument

from schemas.models.base import to_object_id
from schemas.models.user import USER_PUBLIC_PROJECTION, UserDoc


class UserRepository:
    def __init__(self, collection) -> None:
        self._col = collection

    @staticmethod
    def _projection(with_secrets: bool) -> Optional[dict]:
        return None if with_secrets else dict(USER_PUBLIC_PROJECTION)

    async def find_by_id(self, user_id: Any, *, with_secrets: bool = False) -> Optional[UserDoc]:
        doc = await self._col.find_one(
            {"_id": to_object_id(user_id)}, self._projection(with_secrets)
        )
        return UserDoc.from_mongo(doc)

    async def find_by_login(self, login: str, *, with_secrets: bool = False) -> Optional[UserDoc]:
        """Find a user by email or username (both stored lower-cased)."""
        value = login.strip().lower()
        doc = await self._col.find_one(
            {"$or": [{"email": value}, {"username": value}]},
            self._projection(with_secrets),
        )
        return UserDoc.from_mongo(doc)

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        doc = await self._col.find_one(
            {"email": email.strip().lower()}, self._projection(False)
        )
        return UserDoc.from_mongo(doc)

    async def find_conflict(
        self, email: str, username: str, cnic: Optional[str]
    ) -> Optional[dict]:
        """Return the raw document clashing on email, username or cnic, if any."""
        clauses: list[dict] = [{"email": email}, {"username": username}]
        if cnic:
            clauses.append({"cnic": cnic})
        return await self._col.find_one(
            {"$or": clauses}, {"email": 1, "username": 1, "cnic": 1}
        )

    async def find_by_reset_token(self, token_hash: str, now: datetime) -> Optional[UserDoc]:
        doc = await self._col.find_one(
            {
                "password_reset_token_hash": token_hash,
                "password_reset_expires": {"$gt": now},
            },
            self._projection(True),
        )
        return UserDoc.from_mongo(doc)

    async def find_by_institute(self, institute_id: Any) -> list[UserDoc]:
        cursor = self._col.find(
            {"institute_id": to_object_id(institute_id), "account_status": {"$ne": "Deleted"}},
            self._projection(False),
        )
        return [UserDoc.from_mongo(doc) async for doc in cursor]

    async def insert(self, user: UserDoc) -> UserDoc:
        result = await self._col.insert_one(user.to_mongo())
        return user.model_copy(update={"id": result.inserted_id})

    async def update(
        self, user_id: Any, update: dict, *, with_secrets: bool = False
    ) -> Optional[UserDoc]:
        """Apply a raw update document and return the updated user."""
        doc = await self._col.find_one_and_update(
            {"_id": to_object_id(user_id)},
            update,
            projection=self._projection(with_secrets),
            return_document=ReturnDocument.AFTER,
        )
        return UserDoc.from_mongo(doc)

    async def set_fields(self, user_id: Any, fields: dict) -> Optional[UserDoc]:
        return await self.update(user_id, {"$set": fields})
