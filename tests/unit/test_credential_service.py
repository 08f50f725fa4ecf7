"""Unit tests for services.credential_service.CredentialService."""

from datetime import timedelta

import pytest
from bson import ObjectId

from errors import (
    AccountInactiveError,
    AccountLockedError,
    AuthenticationError,
    DuplicateCredentialError,
    NotFoundError,
    ValidationError,
    WeakPasswordError,
)
from schemas.models.session import RevokeReason
from schemas.models.user import AccountStatus
from shared.datetime_utils import utcnow
from tests.conftest import OTHER_PASSWORD, STRONG_PASSWORD, registration


@pytest.fixture
def credentials(services):
    return services.credential_service


class TestRegister:
    async def test_new_user_is_pending(self, credentials):
        user = await credentials.register(
            registration(email="A@X.com", username="Alice", cnic="11111-1111111-1")
        )
        assert user.account_status == AccountStatus.PENDING
        assert not user.is_active
        assert not user.is_approved
        assert user.email == "a@x.com"
        assert user.username == "alice"
        assert user.password_hash is None  # not part of the public projection

    async def test_password_is_hashed(self, credentials, mock_db):
        user = await credentials.register(registration())
        raw = await mock_db["users"].find_one({"_id": user.id})
        assert raw["password_hash"].startswith("$argon2")

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"username": "bob", "cnic": "22222-2222222-2"}, "email"),
            ({"email": "bob@x.com", "cnic": "22222-2222222-2"}, "username"),
            ({"email": "bob@x.com", "username": "bob"}, "cnic"),
        ],
        ids=["email", "username", "cnic"],
    )
    async def test_duplicate_reports_field(self, credentials, overrides, field):
        await credentials.register(registration())
        with pytest.raises(DuplicateCredentialError) as exc_info:
            await credentials.register(registration(**overrides))
        assert exc_info.value.field == field
        assert exc_info.value.error_code == "USER_EXISTS"

    async def test_weak_password_rejected(self, credentials):
        with pytest.raises(WeakPasswordError):
            await credentials.register(registration(password="Passw0rd!123"))

    async def test_registration_is_audited(self, credentials, mock_db):
        user = await credentials.register(registration())
        actions = [e["action"] async for e in mock_db["audit-logs"].find({"user_id": user.id})]
        assert actions == ["USER_CREATED"]


class TestAuthenticate:
    async def test_login_by_email_or_username(self, credentials, make_user):
        await make_user()
        by_email = await credentials.authenticate("ALICE@example.com", STRONG_PASSWORD)
        by_username = await credentials.authenticate("alice", STRONG_PASSWORD)
        assert by_email.id == by_username.id
        assert by_username.last_login_at is not None

    async def test_unknown_user(self, credentials):
        with pytest.raises(AuthenticationError) as exc_info:
            await credentials.authenticate("ghost", STRONG_PASSWORD)
        assert exc_info.value.error_code == "INVALID_CREDENTIALS"

    async def test_pending_user_inactive(self, credentials, make_user):
        await make_user(status=AccountStatus.PENDING)
        with pytest.raises(AccountInactiveError):
            await credentials.authenticate("alice", STRONG_PASSWORD)

    async def test_lockout_after_five_failures(self, credentials, make_user):
        user = await make_user()
        for attempt in range(1, 6):
            with pytest.raises(AuthenticationError):
                await credentials.authenticate("alice", "Wrong#Pass77")
            current = await credentials.get_user(user.id)
            assert current.login_attempts == attempt

        locked = await credentials.get_user(user.id)
        assert locked.is_locked
        expected = utcnow() + timedelta(minutes=30)
        assert abs((locked.lock_until - expected).total_seconds()) < 5

        # Sixth attempt with the correct password is still refused.
        with pytest.raises(AccountLockedError):
            await credentials.authenticate("alice", STRONG_PASSWORD)

    async def test_success_resets_counter(self, credentials, make_user):
        user = await make_user()
        for _ in range(4):
            with pytest.raises(AuthenticationError):
                await credentials.authenticate("alice", "Wrong#Pass77")
        await credentials.authenticate("alice", STRONG_PASSWORD)
        refreshed = await credentials.get_user(user.id)
        assert refreshed.login_attempts == 0
        assert not refreshed.is_locked

    async def test_expired_lock_restarts_count(self, credentials, make_user, mock_db):
        user = await make_user()
        await mock_db["users"].update_one(
            {"_id": user.id},
            {"$set": {"login_attempts": 5, "lock_until": utcnow() - timedelta(minutes=1)}},
        )
        with pytest.raises(AuthenticationError):
            await credentials.authenticate("alice", "Wrong#Pass77")
        refreshed = await credentials.get_user(user.id)
        assert refreshed.login_attempts == 1
        assert refreshed.lock_until is None

    async def test_lock_is_audited_high_risk(self, services, credentials, make_user):
        user = await make_user()
        for _ in range(5):
            with pytest.raises(AuthenticationError):
                await credentials.authenticate("alice", "Wrong#Pass77")
        flagged = await services.audit_service.pending_review()
        assert any(e.action == "ACCOUNT_LOCKED" and e.user_id == user.id for e in flagged)


class TestPasswordChange:
    async def test_change_password(self, services, credentials, make_user):
        user = await make_user()
        keep = await services.session_store.create(user.id)
        other = await services.session_store.create(user.id)

        await credentials.change_password(
            user.id, STRONG_PASSWORD, OTHER_PASSWORD, current_session_id=keep.id
        )

        assert await credentials.authenticate("alice", OTHER_PASSWORD)
        assert (await services.session_store.get(keep.id)).is_valid
        revoked = await services.session_store.get(other.id)
        assert revoked.revoked_reason == RevokeReason.PASSWORD_CHANGE

        changed = await credentials.get_user(user.id)
        assert changed.password_changed_at <= utcnow() - timedelta(milliseconds=900)

    async def test_wrong_current_password(self, credentials, make_user):
        user = await make_user()
        with pytest.raises(ValidationError) as exc_info:
            await credentials.change_password(user.id, "Wrong#Pass77", OTHER_PASSWORD)
        assert exc_info.value.error_code == "INVALID_CURRENT_PASSWORD"

    async def test_same_password(self, credentials, make_user):
        user = await make_user()
        with pytest.raises(ValidationError) as exc_info:
            await credentials.change_password(user.id, STRONG_PASSWORD, STRONG_PASSWORD)
        assert exc_info.value.error_code == "SAME_PASSWORD"


class TestPasswordReset:
    async def test_unknown_email_returns_none(self, credentials):
        assert await credentials.request_password_reset("nobody@x.com") is None

    async def test_reset_flow(self, services, credentials, make_user, mock_db):
        user = await make_user()
        session = await services.session_store.create(user.id)
        token = await credentials.request_password_reset("alice@example.com")

        raw = await mock_db["users"].find_one({"_id": user.id})
        assert raw["password_reset_token_hash"] != token

        await credentials.reset_password(token, OTHER_PASSWORD)

        assert await credentials.authenticate("alice", OTHER_PASSWORD)
        raw = await mock_db["users"].find_one({"_id": user.id})
        assert "password_reset_token_hash" not in raw
        assert raw["password_changed_at"] is not None
        revoked = await services.session_store.get(session.id)
        assert revoked.revoked_reason == RevokeReason.PASSWORD_RESET

    async def test_token_single_use(self, credentials, make_user):
        await make_user()
        token = await credentials.request_password_reset("alice@example.com")
        await credentials.reset_password(token, OTHER_PASSWORD)
        with pytest.raises(ValidationError) as exc_info:
            await credentials.reset_password(token, "Another#Pass58")
        assert exc_info.value.error_code == "INVALID_TOKEN"

    async def test_expired_token(self, credentials, make_user, mock_db):
        user = await make_user()
        token = await credentials.request_password_reset("alice@example.com")
        await mock_db["users"].update_one(
            {"_id": user.id},
            {"$set": {"password_reset_expires": utcnow() - timedelta(seconds=1)}},
        )
        with pytest.raises(ValidationError):
            await credentials.reset_password(token, OTHER_PASSWORD)


class TestProfile:
    async def test_protected_fields_stripped(self, credentials, make_user):
        user = await make_user()
        updated = await credentials.update_profile(
            user.id,
            {
                "address": "12 Mall Road",
                "role": "SystemAdmin",
                "email": "evil@x.com",
                "is_active": False,
                "password": "x",
                "unknown_field": 1,
            },
        )
        assert updated.address == "12 Mall Road"
        assert updated.role == "Student"
        assert updated.email == "alice@example.com"
        assert updated.is_active

    async def test_institute_and_cnic_not_self_editable(self, credentials, make_user, mock_db):
        user = await make_user()
        updated = await credentials.update_profile(
            user.id,
            {"institute_id": ObjectId(), "cnic": "not-a-cnic", "gender": "Female"},
        )
        assert updated.gender == "Female"
        assert updated.institute_id is None
        assert updated.cnic == "11111-1111111-1"
        raw = await mock_db["users"].find_one({"_id": user.id})
        assert "institute_id" not in raw or raw["institute_id"] is None

    async def test_malformed_nested_value_rejected(self, credentials, make_user, mock_db):
        user = await make_user()
        with pytest.raises(ValidationError) as exc_info:
            await credentials.update_profile(user.id, {"phone_numbers": "0300-1234567"})
        assert exc_info.value.details[0]["field"] == "phone_numbers"
        raw = await mock_db["users"].find_one({"_id": user.id})
        assert raw.get("phone_numbers") is None

    async def test_camel_case_nested_keys_stored_snake_case(self, credentials, make_user):
        user = await make_user()
        updated = await credentials.update_profile(
            user.id, {"family_info": {"fatherName": "Tariq"}}
        )
        assert updated.family_info.father_name == "Tariq"


class TestStatusTransitions:
    async def test_approve_pending(self, credentials, make_user):
        user = await make_user(status=AccountStatus.PENDING)
        approved = await credentials.transition_status(user.id, "approve")
        assert approved.account_status == AccountStatus.ACTIVE
        assert approved.is_active and approved.is_approved

    async def test_pause_revokes_sessions(self, services, credentials, make_user):
        user = await make_user()
        session = await services.session_store.create(user.id)
        paused = await credentials.transition_status(user.id, "pause")
        assert paused.account_status == AccountStatus.PAUSED
        assert not paused.is_active
        revoked = await services.session_store.get(session.id)
        assert revoked.revoked_reason == RevokeReason.ACCOUNT_DEACTIVATED

    async def test_activate_paused(self, credentials, make_user):
        user = await make_user()
        await credentials.transition_status(user.id, "pause")
        active = await credentials.transition_status(user.id, "activate")
        assert active.account_status == AccountStatus.ACTIVE

    async def test_deleted_is_terminal(self, credentials, make_user):
        user = await make_user()
        await credentials.transition_status(user.id, "delete")
        for action in ("approve", "activate", "pause", "delete"):
            with pytest.raises(ValidationError) as exc_info:
                await credentials.transition_status(user.id, action)
            assert exc_info.value.error_code == "INVALID_STATUS_TRANSITION"

    async def test_cannot_approve_active(self, credentials, make_user):
        user = await make_user()
        with pytest.raises(ValidationError):
            await credentials.transition_status(user.id, "approve")

    async def test_unknown_user(self, credentials):
        from bson import ObjectId

        with pytest.raises(NotFoundError):
            await credentials.transition_status(ObjectId(), "approve")
