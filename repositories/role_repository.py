"""
Repository for the unified `role-permissions` collection.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from schemas.models.base import to_object_id
from schemas.models.role import PERMISSION_TYPE, ROLE_TYPE, RolePermissionDoc


class RoleRepository:
    def __init__(self, collection) -> None:
        self._col = collection

    async def insert(self, doc: RolePermissionDoc) -> RolePermissionDoc:
        result = await self._col.insert_one(doc.to_mongo())
        return doc.model_copy(update={"id": result.inserted_id})

    async def find_role_by_name(self, name: str) -> Optional[RolePermissionDoc]:
        doc = await self._col.find_one({"name": name, "type": ROLE_TYPE, "is_active": True})
        return RolePermissionDoc.from_mongo(doc)

    async def find_roles(self, role_ids: Iterable[Any]) -> list[RolePermissionDoc]:
        ids = [to_object_id(r) for r in role_ids]
        if not ids:
            return []
        cursor = self._col.find({"_id": {"$in": ids}, "type": ROLE_TYPE, "is_active": True})
        return [RolePermissionDoc.from_mongo(doc) async for doc in cursor]

    async def find_permissions(self, permission_ids: Iterable[Any]) -> list[RolePermissionDoc]:
        ids = [to_object_id(p) for p in permission_ids]
        if not ids:
            return []
        cursor = self._col.find(
            {"_id": {"$in": ids}, "type": PERMISSION_TYPE, "is_active": True}
        )
        return [RolePermissionDoc.from_mongo(doc) async for doc in cursor]
