"""
Repository for the `audit-logs` collection (append-only).
"""

from __future__ import annotations

from pymongo import DESCENDING

from schemas.models.audit import AuditLogDoc


class AuditRepository:
    def __init__(self, collection) -> None:
        self._col = collection

    async def insert(self, entry: AuditLogDoc) -> AuditLogDoc:
        result = await self._col.insert_one(entry.to_mongo())
        return entry.model_copy(update={"id": result.inserted_id})

    async def find_requiring_review(self, limit: int = 50) -> list[AuditLogDoc]:
        cursor = (
            self._col.find({"security.requires_review": True})
            .sort("timestamp", DESCENDING)
            .limit(limit)
        )
        return [AuditLogDoc.from_mongo(doc) async for doc in cursor]
