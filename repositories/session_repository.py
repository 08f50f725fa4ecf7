"""
Repository for the `sessions` collection.

The session document is the serialization point for refresh: version bumps
use ``$inc`` so concurrent refreshes each get a distinct version, and the
rotated refresh token is only written while the session still carries the
version the caller bumped to.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pymongo import DESCENDING, ReturnDocument

from schemas.models.base import to_object_id
from schemas.models.session import RevokeReason, SessionDoc, SessionState


class SessionRepository:
    def __init__(self, collection) -> None:
        self._col = collection

    async def insert(self, session: SessionDoc) -> SessionDoc:
        result = await self._col.insert_one(session.to_mongo())
        return session.model_copy(update={"id": result.inserted_id})

    async def find_by_id(self, session_id: Any) -> Optional[SessionDoc]:
        doc = await self._col.find_one({"_id": to_object_id(session_id)})
        return SessionDoc.from_mongo(doc)

    async def find_by_id_and_refresh_token(
        self, session_id: Any, refresh_token: str
    ) -> Optional[SessionDoc]:
        doc = await self._col.find_one(
            {"_id": to_object_id(session_id), "refresh_token": refresh_token}
        )
        return SessionDoc.from_mongo(doc)

    async def mark_issued(self, session_id: Any, refresh_token: str) -> Optional[SessionDoc]:
        """Provisional → Issued: swap the placeholder for the signed refresh token."""
        doc = await self._col.find_one_and_update(
            {"_id": to_object_id(session_id), "state": SessionState.PROVISIONAL.value},
            {"$set": {"refresh_token": refresh_token, "state": SessionState.ISSUED.value}},
            return_document=ReturnDocument.AFTER,
        )
        return SessionDoc.from_mongo(doc)

    async def touch(self, session_id: Any, now: datetime) -> None:
        await self._col.update_one(
            {"_id": to_object_id(session_id)}, {"$set": {"last_activity": now}}
        )

    async def bump_version(self, session_id: Any, now: datetime) -> Optional[SessionDoc]:
        doc = await self._col.find_one_and_update(
            {"_id": to_object_id(session_id)},
            {"$inc": {"access_token_version": 1}, "$set": {"last_activity": now}},
            return_document=ReturnDocument.AFTER,
        )
        return SessionDoc.from_mongo(doc)

    async def rotate_refresh_token(
        self, session_id: Any, expected_version: int, refresh_token: str
    ) -> bool:
        result = await self._col.update_one(
            {"_id": to_object_id(session_id), "access_token_version": expected_version},
            {"$set": {"refresh_token": refresh_token}},
        )
        return result.modified_count == 1

    async def revoke(
        self, session_id: Any, reason: RevokeReason, now: datetime
    ) -> Optional[SessionDoc]:
        """Revoke once; later calls leave revoked_at/revoked_reason untouched."""
        oid = to_object_id(session_id)
        await self._col.update_one(
            {"_id": oid, "is_revoked": False},
            {
                "$set": {
                    "is_revoked": True,
                    "is_active": False,
                    "revoked_at": now,
                    "revoked_reason": reason.value,
                }
            },
        )
        return await self.find_by_id(oid)

    async def revoke_all_for_user(
        self,
        user_id: Any,
        reason: RevokeReason,
        now: datetime,
        *,
        except_session_id: Any = None,
    ) -> int:
        query: dict = {"user_id": to_object_id(user_id), "is_active": True}
        if except_session_id is not None:
            query["_id"] = {"$ne": to_object_id(except_session_id)}
        result = await self._col.update_many(
            query,
            {
                "$set": {
                    "is_revoked": True,
                    "is_active": False,
                    "revoked_at": now,
                    "revoked_reason": reason.value,
                }
            },
        )
        return result.modified_count

    async def set_expiry(self, session_id: Any, expires_at: datetime) -> Optional[SessionDoc]:
        doc = await self._col.find_one_and_update(
            {"_id": to_object_id(session_id)},
            {"$set": {"expires_at": expires_at}},
            return_document=ReturnDocument.AFTER,
        )
        return SessionDoc.from_mongo(doc)

    async def find_active_for_user(self, user_id: Any, now: datetime) -> list[SessionDoc]:
        cursor = self._col.find(
            {
                "user_id": to_object_id(user_id),
                "is_active": True,
                "is_revoked": False,
                "expires_at": {"$gt": now},
            }
        ).sort("last_activity", DESCENDING)
        return [SessionDoc.from_mongo(doc) async for doc in cursor]

    async def delete_stale(self, now: datetime, revoked_before: datetime) -> int:
        result = await self._col.delete_many(
            {
                "$or": [
                    {"expires_at": {"$lt": now}},
                    {"is_revoked": True, "revoked_at": {"$lt": revoked_before}},
                ]
            }
        )
        return result.deleted_count
