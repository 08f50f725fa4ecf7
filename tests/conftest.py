"""
Shared test fixtures.

MongoDB is replaced by mongomock behind a small async adapter exposing the
subset of pymongo's async collection API the repositories use. Every adapter
call yields to the event loop once before touching the data, so coroutines
run with asyncio.gather interleave the way they would against a real server.

mongomock keeps naive datetimes; the adapter strips tzinfo (as UTC) on the
way in and restores it on the way out.
"""

import asyncio
from datetime import datetime, timezone

import mongomock
import pytest
from fastapi import FastAPI

from app import install_services
from config import (
    AppSettings,
    DatabaseSettings,
    JWTSettings,
    LoggingSettings,
    SecuritySettings,
    SentrySettings,
)
from schemas.models.user import AccountStatus

STRONG_PASSWORD = "Sunny#Meadow94"
OTHER_PASSWORD = "Rivers&Stone58"


def _to_naive(value):
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, dict):
        return {k: _to_naive(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_to_naive(v) for v in value)
    return value


def _to_aware(value):
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value
    if isinstance(value, dict):
        return {k: _to_aware(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_aware(v) for v in value]
    return value


class AsyncCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, *args, **kwargs):
        self._cursor = self._cursor.sort(*args, **kwargs)
        return self

    def limit(self, n):
        self._cursor = self._cursor.limit(n)
        return self

    def __aiter__(self):
        return self

    async def __anext__(self):
        await asyncio.sleep(0)
        try:
            return _to_aware(next(self._cursor))
        except StopIteration:
            raise StopAsyncIteration

    async def to_list(self, length=None):
        return [doc async for doc in self][:length]


class AsyncCollection:
    def __init__(self, collection):
        self.sync = collection

    async def insert_one(self, document):
        await asyncio.sleep(0)
        return self.sync.insert_one(_to_naive(document))

    async def find_one(self, filter=None, projection=None, **kwargs):
        await asyncio.sleep(0)
        return _to_aware(self.sync.find_one(_to_naive(filter), projection, **kwargs))

    def find(self, filter=None, projection=None, **kwargs):
        return AsyncCursor(self.sync.find(_to_naive(filter), projection, **kwargs))

    async def find_one_and_update(self, filter, update, **kwargs):
        await asyncio.sleep(0)
        return _to_aware(
            self.sync.find_one_and_update(_to_naive(filter), _to_naive(update), **kwargs)
        )

    async def update_one(self, filter, update, **kwargs):
        await asyncio.sleep(0)
        return self.sync.update_one(_to_naive(filter), _to_naive(update), **kwargs)

    async def update_many(self, filter, update, **kwargs):
        await asyncio.sleep(0)
        return self.sync.update_many(_to_naive(filter), _to_naive(update), **kwargs)

    async def delete_many(self, filter, **kwargs):
        await asyncio.sleep(0)
        return self.sync.delete_many(_to_naive(filter), **kwargs)

    async def count_documents(self, filter, **kwargs):
        await asyncio.sleep(0)
        return self.sync.count_documents(_to_naive(filter), **kwargs)

    async def create_index(self, keys, **kwargs):
        return self.sync.create_index(keys, **kwargs)


class AsyncDatabase:
    def __init__(self, database):
        self.sync = database
        self._collections = {}

    def __getitem__(self, name):
        if name not in self._collections:
            self._collections[name] = AsyncCollection(self.sync[name])
        return self._collections[name]


@pytest.fixture
def mock_db():
    return AsyncDatabase(mongomock.MongoClient().db)


@pytest.fixture
def settings():
    return AppSettings(
        env="testing",
        db=DatabaseSettings(mongodb_uri="mongodb://localhost:27017/", db_name="test"),
        jwt=JWTSettings(
            jwt_secret="test-access-secret",
            jwt_refresh_secret="test-refresh-secret",
        ),
        # Cheapest argon2 parameters the library accepts
        security=SecuritySettings(
            password_hash_time_cost=1,
            password_hash_memory_cost=1024,
            session_cleanup_interval_seconds=0,
        ),
        logging=LoggingSettings(),
        sentry=SentrySettings(),
    )


@pytest.fixture
def services(mock_db, settings):
    """app.state as wired by install_services, without HTTP."""
    app = FastAPI()
    install_services(app, mock_db, settings)
    return app.state


def registration(**overrides):
    fields = {
        "email": "alice@example.com",
        "username": "alice",
        "password": STRONG_PASSWORD,
        "full_name": {"first_name": "Alice", "last_name": "Khan"},
        "cnic": "11111-1111111-1",
        "role": "Student",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def make_user(services):
    """Register a user and optionally move them to Active."""

    async def _make(status=AccountStatus.ACTIVE, **overrides):
        user = await services.credential_service.register(registration(**overrides))
        if status == AccountStatus.ACTIVE:
            user = await services.credential_service.transition_status(user.id, "approve")
        return user

    return _make
