import uuid

import pytest
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from identity.auth.models import Account
from identity.auth.service import (
    authenticate_account,
    create_access_token,
    decode_access_token,
    get_account_by_email,
    register_account,
    reset_password,
)
from identity.auth.utils import verify_password
from identity.exceptions import (
    AccountAlreadyExists,
    AccountNotFound,
    InvalidCredentials,
    TokenExpired,
    TokenInvalid,
)

_JWT = {
    "secret": "unit-test-secret",
    "algorithm": "HS256",
    "issuer": "coincraze-identity",
    "audience": "coincraze-services",
}


def test_password_setter_hashes() -> None:
    account = Account(email="a@x.com", password="pw1")
    assert account.password_hash != "pw1"
    assert verify_password("pw1", account.password_hash)
    with pytest.raises(AttributeError):
        account.password


@pytest.mark.asyncio
async def test_register_account(db_session: AsyncSession) -> None:
    account = await register_account(
        db_session, email="svc@x.com", phone_number="+1", password="secret123"
    )
    assert account.id is not None
    assert account.email == "svc@x.com"
    assert account.phone_number == "+1"
    assert account.password_hash != "secret123"
    assert account.created_at is not None


@pytest.mark.asyncio
async def test_register_duplicate_raises(db_session: AsyncSession) -> None:
    await register_account(db_session, email="dup@x.com", phone_number=None, password="pass")
    with pytest.raises(AccountAlreadyExists):
        await register_account(
            db_session, email="dup@x.com", phone_number=None, password="other"
        )


@pytest.mark.asyncio
async def test_email_lookup_is_case_sensitive(db_session: AsyncSession) -> None:
    await register_account(db_session, email="Case@x.com", phone_number=None, password="pw")
    assert await get_account_by_email(db_session, "Case@x.com") is not None
    assert await get_account_by_email(db_session, "case@x.com") is None


@pytest.mark.asyncio
async def test_authenticate_account(db_session: AsyncSession) -> None:
    await register_account(db_session, email="auth@x.com", phone_number=None, password="mypass")
    account = await authenticate_account(db_session, "auth@x.com", "mypass")
    assert account.email == "auth@x.com"


@pytest.mark.asyncio
async def test_authenticate_wrong_password(db_session: AsyncSession) -> None:
    await register_account(db_session, email="wrong@x.com", phone_number=None, password="right")
    with pytest.raises(InvalidCredentials):
        await authenticate_account(db_session, "wrong@x.com", "wrong")


@pytest.mark.asyncio
async def test_authenticate_unknown_email(db_session: AsyncSession) -> None:
    with pytest.raises(AccountNotFound):
        await authenticate_account(db_session, "ghost@x.com", "whatever")


@pytest.mark.asyncio
async def test_reset_password_replaces_hash(db_session: AsyncSession) -> None:
    account = await register_account(
        db_session, email="reset@x.com", phone_number=None, password="pw1"
    )
    old_hash = account.password_hash

    await reset_password(db_session, email="reset@x.com", new_password="pw2")

    assert account.password_hash != old_hash
    with pytest.raises(InvalidCredentials):
        await authenticate_account(db_session, "reset@x.com", "pw1")
    assert await authenticate_account(db_session, "reset@x.com", "pw2")


@pytest.mark.asyncio
async def test_reset_password_unknown_email(db_session: AsyncSession) -> None:
    with pytest.raises(AccountNotFound):
        await reset_password(db_session, email="ghost@x.com", new_password="pw2")


# ── Tokens ────────────────────────────────────────────────────────────────────

def test_access_token_round_trip() -> None:
    account_id = uuid.uuid4()
    token = create_access_token(account_id, **_JWT)
    assert decode_access_token(token, **_JWT) == account_id


def test_access_token_lasts_24_hours() -> None:
    token = create_access_token(uuid.uuid4(), **_JWT)
    claims = jwt.get_unverified_claims(token)
    assert claims["exp"] - claims["iat"] == 86_400


def test_expired_token() -> None:
    token = create_access_token(uuid.uuid4(), expire_seconds=-10, **_JWT)
    with pytest.raises(TokenExpired):
        decode_access_token(token, **_JWT)


def test_token_signed_with_other_secret() -> None:
    token = create_access_token(uuid.uuid4(), **{**_JWT, "secret": "someone-else"})
    with pytest.raises(TokenInvalid):
        decode_access_token(token, **_JWT)


def test_tampered_token() -> None:
    token = create_access_token(uuid.uuid4(), **_JWT)
    header, payload, signature = token.split(".")
    forged = jwt.encode(
        {**jwt.get_unverified_claims(token), "sub": str(uuid.uuid4())},
        "not-the-secret",
        algorithm="HS256",
    ).split(".")[1]
    with pytest.raises(TokenInvalid):
        decode_access_token(f"{header}.{forged}.{signature}", **_JWT)


def test_wrong_audience() -> None:
    token = create_access_token(uuid.uuid4(), **{**_JWT, "audience": "elsewhere"})
    with pytest.raises(TokenInvalid):
        decode_access_token(token, **_JWT)


def test_garbage_token() -> None:
    with pytest.raises(TokenInvalid):
        decode_access_token("not-a-jwt", **_JWT)
