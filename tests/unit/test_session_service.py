"""Unit tests for services.session_service.SessionStore."""

from datetime import timedelta

import pytest
from bson import ObjectId

from errors import NotFoundError
from schemas.models.session import RevokeReason, SessionState
from shared.datetime_utils import utcnow

IPHONE_UA = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile Safari/604.1"


@pytest.fixture
def store(services):
    return services.session_store


class TestCreate:
    async def test_provisional_with_device_info(self, store):
        user_id = ObjectId()
        session = await store.create(user_id, user_agent=IPHONE_UA, ip_address="1.2.3.4")

        assert session.id is not None
        assert session.state == SessionState.PROVISIONAL
        assert session.refresh_token.startswith("pending-")
        assert session.access_token_version == 0
        assert session.device_info.device_type == "Mobile"
        assert session.device_info.os == "iOS"
        assert session.ip_address == "1.2.3.4"
        assert session.is_valid

    async def test_default_expiry_is_seven_days(self, store):
        session = await store.create(ObjectId())
        remaining = session.expires_at - utcnow()
        assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)

    async def test_unknown_user_agent(self, store):
        session = await store.create(ObjectId())
        assert session.device_info.browser == "Unknown"
        assert session.ip_address == "unknown"

    async def test_placeholders_are_unique(self, store):
        a = await store.create(ObjectId())
        b = await store.create(ObjectId())
        assert a.refresh_token != b.refresh_token


class TestMarkIssued:
    async def test_provisional_to_issued(self, store):
        session = await store.create(ObjectId())
        issued = await store.mark_issued(session.id, "signed-refresh")
        assert issued.state == SessionState.ISSUED
        assert issued.refresh_token == "signed-refresh"

    async def test_issue_only_once(self, store):
        session = await store.create(ObjectId())
        await store.mark_issued(session.id, "first")
        with pytest.raises(NotFoundError):
            await store.mark_issued(session.id, "second")


class TestRevoke:
    async def test_revoke_is_idempotent(self, store):
        session = await store.create(ObjectId())
        first = await store.revoke(session.id, RevokeReason.USER_LOGOUT)
        second = await store.revoke(session.id, RevokeReason.SECURITY_BREACH)

        assert first.is_revoked and not first.is_active
        assert second.is_revoked
        assert second.revoked_at == first.revoked_at
        assert second.revoked_reason == RevokeReason.USER_LOGOUT
        assert not second.is_valid

    async def test_revoke_all_except_current(self, store):
        user_id = ObjectId()
        keep = await store.create(user_id)
        await store.create(user_id)
        await store.create(user_id)
        other_user = await store.create(ObjectId())

        count = await store.revoke_all_for_user(
            user_id, RevokeReason.PASSWORD_CHANGE, except_session_id=keep.id
        )

        assert count == 2
        assert (await store.get(keep.id)).is_valid
        assert (await store.get(other_user.id)).is_valid
        active = await store.get_active_sessions(user_id)
        assert [s.id for s in active] == [keep.id]


class TestActivityAndExpiry:
    async def test_extend(self, store):
        session = await store.create(ObjectId(), expires_at=utcnow() + timedelta(minutes=5))
        extended = await store.extend(session.id, days=3)
        assert extended.expires_at - utcnow() > timedelta(days=2)

    async def test_extend_missing_session(self, store):
        with pytest.raises(NotFoundError):
            await store.extend(ObjectId())

    async def test_expired_session_not_active(self, store):
        user_id = ObjectId()
        await store.create(user_id, expires_at=utcnow() - timedelta(seconds=1))
        assert await store.get_active_sessions(user_id) == []

    async def test_update_activity_swallows_errors(self, store, mock_db):
        async def boom(*args, **kwargs):
            raise RuntimeError("db down")

        mock_db["sessions"].update_one = boom
        await store.update_activity(ObjectId())  # does not raise


class TestCleanup:
    async def test_removes_expired_and_old_revoked(self, store, mock_db):
        now = utcnow()
        live = await store.create(ObjectId())
        expired = await store.create(ObjectId(), expires_at=now - timedelta(minutes=1))
        old_revoked = await store.create(ObjectId())
        fresh_revoked = await store.create(ObjectId())
        await store.revoke(old_revoked.id)
        await store.revoke(fresh_revoked.id)
        await mock_db["sessions"].update_one(
            {"_id": old_revoked.id}, {"$set": {"revoked_at": now - timedelta(hours=25)}}
        )

        deleted = await store.cleanup_expired()

        assert deleted == 2
        assert await store.get(live.id) is not None
        assert await store.get(fresh_revoked.id) is not None
        assert await store.get(expired.id) is None
        assert await store.get(old_revoked.id) is None
