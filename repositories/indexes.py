"""
Collection names and index definitions, applied once at start-up.

Unique indexes back the uniqueness rules the services check first
(email/username/cnic, refresh token, role name per type), so a race between
check and insert still surfaces as DuplicateKeyError.
"""

from __future__ import annotations

from pymongo import ASCENDING, DESCENDING

from shared.logging import get_logger

log = get_logger(__name__)

USERS_COLLECTION = "users"
SESSIONS_COLLECTION = "sessions"
ROLE_PERMISSIONS_COLLECTION = "role-permissions"
AUDIT_LOGS_COLLECTION = "audit-logs"


async def ensure_indexes(db) -> None:
    users = db[USERS_COLLECTION]
    await users.create_index([("email", ASCENDING)], unique=True)
    await users.create_index([("username", ASCENDING)], unique=True)
    await users.create_index(
        [("cnic", ASCENDING)],
        unique=True,
        partialFilterExpression={"cnic": {"$type": "string"}},
    )
    await users.create_index([("password_reset_token_hash", ASCENDING)], sparse=True)
    await users.create_index([("institute_id", ASCENDING)])

    sessions = db[SESSIONS_COLLECTION]
    await sessions.create_index([("refresh_token", ASCENDING)], unique=True)
    await sessions.create_index([("user_id", ASCENDING), ("is_active", ASCENDING)])
    await sessions.create_index([("last_activity", DESCENDING)])
    # TTL: MongoDB removes the document once expires_at passes
    await sessions.create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)

    roles = db[ROLE_PERMISSIONS_COLLECTION]
    await roles.create_index([("name", ASCENDING), ("type", ASCENDING)], unique=True)

    audit = db[AUDIT_LOGS_COLLECTION]
    await audit.create_index([("user_id", ASCENDING), ("timestamp", DESCENDING)])
    await audit.create_index(
        [("security.requires_review", ASCENDING), ("timestamp", DESCENDING)]
    )

    log.info("indexes_ensured")
