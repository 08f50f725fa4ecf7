"""Unit tests for request / response DTOs."""

import pytest
from bson import ObjectId
from pydantic import ValidationError

from schemas.dto.requests.auth import (
    LoginRequest,
    PasswordStrengthRequest,
    RefreshRequest,
    RegisterRequest,
    UpdateProfileRequest,
)
from schemas.dto.responses.auth import LoginResponse, SessionRef, TokensResponse
from schemas.dto.responses.common import camelize, success


def _register_body(**overrides):
    body = {
        "email": "alice@example.com",
        "username": "alice",
        "password": "Sunny#Meadow94",
        "fullName": {"firstName": "Alice", "lastName": "Khan"},
        "cnic": "11111-1111111-1",
    }
    body.update(overrides)
    return body


class TestRegisterRequest:
    def test_camel_case_body(self):
        institute = ObjectId()
        req = RegisterRequest.model_validate(
            _register_body(institute=str(institute), role="Teacher")
        )
        fields = req.to_fields()
        assert fields["full_name"] == {"first_name": "Alice", "last_name": "Khan"}
        assert fields["institute_id"] == institute
        assert fields["role"] == "Teacher"

    def test_snake_case_body(self):
        body = _register_body(full_name={"first_name": "A", "last_name": "B"})
        del body["fullName"]
        req = RegisterRequest.model_validate(body)
        assert req.full_name.first_name == "A"

    def test_default_role_student(self):
        assert RegisterRequest.model_validate(_register_body()).to_fields()["role"] == "Student"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"email": "not-an-email"},
            {"username": "a"},
            {"username": "has space"},
            {"cnic": "1234"},
            {"role": "Wizard"},
            {"institute": "nope"},
        ],
        ids=["email", "short-username", "username-chars", "cnic", "role", "institute"],
    )
    def test_rejects_bad_input(self, overrides):
        with pytest.raises(ValidationError):
            RegisterRequest.model_validate(_register_body(**overrides))


def test_login_requires_both_fields():
    with pytest.raises(ValidationError):
        LoginRequest.model_validate({"login": "alice", "password": ""})


def test_refresh_token_optional_and_camel():
    assert RefreshRequest.model_validate({}).refresh_token is None
    assert RefreshRequest.model_validate({"refreshToken": "t"}).refresh_token == "t"


def test_password_strength_rejects_empty():
    with pytest.raises(ValidationError):
        PasswordStrengthRequest.model_validate({"password": ""})


class TestUpdateProfileRequest:
    def test_only_set_fields(self):
        req = UpdateProfileRequest.model_validate({"address": "12 Mall Road"})
        assert req.to_fields() == {"address": "12 Mall Road"}

    def test_tenancy_and_identity_keys_dropped(self):
        req = UpdateProfileRequest.model_validate(
            {
                "phoneNumbers": {"primary": "0300"},
                "accountStatus": "Active",
                "instituteId": "507f1f77bcf86cd799439011",
                "cnic": "99999-9999999-9",
            }
        )
        assert req.to_fields() == {"phone_numbers": {"primary": "0300"}}


def test_login_response_camel_case():
    data = LoginResponse(
        user={"id": "1"},
        tokens=TokensResponse(access_token="a", refresh_token="r", expires_in=900),
        session=SessionRef(id="s"),
    ).to_public()
    assert data["tokens"] == {"accessToken": "a", "refreshToken": "r", "expiresIn": 900}
    assert data["session"] == {"id": "s"}


def test_success_envelope():
    resp = success({"x": 1}, message="done", status_code=201)
    assert resp.status_code == 201
    assert resp.body == b'{"success":true,"message":"done","data":{"x":1}}'


class TestCamelize:
    def test_nested_keys_and_lists(self):
        data = {
            "user": {"account_status": "Active", "full_name": {"first_name": "Alice"}},
            "sessions": [{"is_current": True, "device_info": {"os": "Linux"}}],
        }
        assert camelize(data) == {
            "user": {"accountStatus": "Active", "fullName": {"firstName": "Alice"}},
            "sessions": [{"isCurrent": True, "deviceInfo": {"os": "Linux"}}],
        }

    def test_leaves_camel_and_underscore_prefixed_keys(self):
        data = {"accessToken": "a", "_id": "1", "first_year_marks": "800"}
        assert camelize(data) == {"accessToken": "a", "_id": "1", "firstYearMarks": "800"}

    def test_values_untouched(self):
        assert camelize({"field": "phone_numbers"}) == {"field": "phone_numbers"}

    def test_success_body_is_camel_case(self):
        resp = success({"sessions_revoked": 2})
        assert resp.body == b'{"success":true,"message":"OK","data":{"sessionsRevoked":2}}'
