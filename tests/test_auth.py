import uuid

import pytest
from fastapi import HTTPException

from story_exchange.auth.security import get_current_user, get_optional_user, verify_admin
from story_exchange.auth.models import UserContext

from conftest import TEST_ADMIN_KEY, create_token


class MockCredentials:
    def __init__(self, token):
        self.credentials = token


def test_valid_jwt_accepted():
    user_id = uuid.uuid4()
    token = create_token(user_id, email="someone@example.com")

    user_context = get_current_user(MockCredentials(token))

    assert isinstance(user_context, UserContext)
    assert user_context.user_id == user_id
    assert user_context.email == "someone@example.com"
    assert user_context.role == "authenticated"


def test_expired_jwt_rejected():
    token = create_token(expired=True)

    with pytest.raises(HTTPException) as excinfo:
        get_current_user(MockCredentials(token))
    assert excinfo.value.status_code == 401
    assert "expired" in excinfo.value.detail


def test_wrong_audience_rejected():
    token = create_token(audience="anon")

    with pytest.raises(HTTPException) as excinfo:
        get_current_user(MockCredentials(token))
    assert excinfo.value.status_code == 401
    assert "audience" in excinfo.value.detail


def test_wrong_secret_rejected():
    token = create_token(secret="some-other-secret-that-is-long-enough-too")

    with pytest.raises(HTTPException) as excinfo:
        get_current_user(MockCredentials(token))
    assert excinfo.value.status_code == 401


def test_non_uuid_subject_rejected():
    token = create_token(sub="not-a-uuid")

    with pytest.raises(HTTPException) as excinfo:
        get_current_user(MockCredentials(token))
    assert excinfo.value.status_code == 401
    assert "sub" in excinfo.value.detail


def test_garbage_token_rejected():
    with pytest.raises(HTTPException) as excinfo:
        get_current_user(MockCredentials("not.a.jwt"))
    assert excinfo.value.status_code == 401


def test_optional_user_anonymous():
    assert get_optional_user(None) is None


def test_optional_user_still_rejects_invalid_token():
    with pytest.raises(HTTPException) as excinfo:
        get_optional_user(MockCredentials(create_token(expired=True)))
    assert excinfo.value.status_code == 401


def test_optional_user_with_valid_token():
    user_id = uuid.uuid4()
    user = get_optional_user(MockCredentials(create_token(user_id)))
    assert user is not None
    assert user.user_id == user_id


@pytest.mark.asyncio
async def test_admin_key_accepted_from_header_or_query():
    await verify_admin(x_admin_key=TEST_ADMIN_KEY, key=None)
    await verify_admin(x_admin_key=None, key=TEST_ADMIN_KEY)


@pytest.mark.asyncio
async def test_admin_key_rejected():
    with pytest.raises(HTTPException) as excinfo:
        await verify_admin(x_admin_key="wrong", key=None)
    assert excinfo.value.status_code == 403

    with pytest.raises(HTTPException) as excinfo:
        await verify_admin(x_admin_key=None, key=None)
    assert excinfo.value.status_code == 403
