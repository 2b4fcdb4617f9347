from __future__ import annotations

import asyncio
import time

import jwt
import pytest

from dm_service.application.exceptions import AuthorizationError
from dm_service.domain.value_objects.enums import SessionChangeKind
from dm_service.infrastructure.auth.jwt_identity import JwtIdentityProvider
from tests.conftest import settle

SECRET = "test-secret"


def make_token(secret: str = SECRET, **claims) -> str:
    payload = {"sub": "alice", "name": "Alice A.", "handle": "alice", **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def identity() -> JwtIdentityProvider:
    return JwtIdentityProvider(SECRET)


def test_verify_reads_profile_claims(identity):
    user = identity.verify(make_token(avatar_url="https://cdn/alice.png"))

    assert user.id == "alice"
    assert user.display_name == "Alice A."
    assert user.handle == "alice"
    assert user.avatar_url == "https://cdn/alice.png"


def test_verify_falls_back_to_username_claim(identity):
    token = jwt.encode({"sub": "u1", "username": "bobby"}, SECRET, algorithm="HS256")

    user = identity.verify(token)

    assert user.handle == "bobby"
    assert user.display_name == "bobby"


@pytest.mark.parametrize(
    "token",
    [
        make_token(secret="wrong-secret"),
        make_token(exp=int(time.time()) - 60),
        jwt.encode({"name": "no subject"}, SECRET, algorithm="HS256"),
        "garbage",
    ],
)
def test_verify_rejects_bad_tokens(identity, token):
    with pytest.raises(AuthorizationError):
        identity.verify(token)


@pytest.mark.asyncio
async def test_current_user_requires_sign_in(identity):
    with pytest.raises(AuthorizationError):
        await identity.current_user()

    identity.sign_in(make_token())

    assert (await identity.current_user()).id == "alice"


@pytest.mark.asyncio
async def test_expired_session_signs_out(identity):
    identity.sign_in(make_token(exp=int(time.time()) + 1))
    identity._token = make_token(exp=int(time.time()) - 1)

    with pytest.raises(AuthorizationError):
        await identity.current_user()
    with pytest.raises(AuthorizationError, match="not authenticated"):
        await identity.current_user()


@pytest.mark.asyncio
async def test_session_changes_stream(identity):
    changes = []

    async def watch():
        async for change in identity.session_changes():
            changes.append(change)

    task = asyncio.create_task(watch())
    await settle()

    identity.sign_in(make_token())
    identity.sign_out()
    identity.sign_out()
    identity.close()
    await asyncio.wait_for(task, timeout=1)

    assert [c.kind for c in changes] == [SessionChangeKind.SIGNED_IN, SessionChangeKind.SIGNED_OUT]
    assert changes[0].user.id == "alice"
    assert changes[1].user is None
