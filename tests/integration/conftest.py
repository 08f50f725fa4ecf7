"""
Integration fixtures: the real routers and services over mongomock.

Seeding and status changes go straight through the synchronous mongomock
collections (mock_db.sync) so tests stay independent of the client's loop.
"""

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app import include_routers, install_services
from tests.conftest import STRONG_PASSWORD, registration


@pytest.fixture
def client(mock_db, settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        install_services(app, mock_db, settings)
        yield

    app = FastAPI(lifespan=lifespan)
    include_routers(app, settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def create_account(client, mock_db):
    """Register through the API, then activate and adjust the stored user."""

    def _create(role="Student", status="Active", **overrides):
        resp = client.post("/api/auth/register", json=registration(**overrides))
        assert resp.status_code == 200, resp.json()
        user = resp.json()["data"]["user"]
        fields = {"role": role}
        if status == "Active":
            fields.update(account_status="Active", is_active=True, is_approved=True)
        mock_db.sync["users"].update_one({"username": user["username"]}, {"$set": fields})
        return user

    return _create


@pytest.fixture
def login(client):
    def _login(login="alice", password=STRONG_PASSWORD):
        resp = client.post("/api/auth/login", json={"login": login, "password": password})
        assert resp.status_code == 200, resp.json()
        return resp.json()["data"]

    return _login


def bearer(data):
    return {"Authorization": f"Bearer {data['tokens']['accessToken']}"}
