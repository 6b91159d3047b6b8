"""
Identity service: pure business logic for authentication.

Rules:
  - Zero FastAPI imports.
  - Zero direct DB driver calls, only SQLAlchemy async session.
  - All I/O functions are async def.
  - No side effects beyond the session passed in (no global state mutated).
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from identity.auth.constants import ACCESS_TOKEN_EXPIRE_SECONDS
from identity.auth.models import Account
from identity.auth.utils import hash_password_async, verify_password_async
from identity.exceptions import (
    AccountAlreadyExists,
    AccountNotFound,
    InvalidCredentials,
    TokenExpired,
    TokenInvalid,
)

logger = logging.getLogger(__name__)


# ── Credential store ──────────────────────────────────────────────────────────

async def get_account_by_email(session: AsyncSession, email: str) -> Account | None:
    result = await session.execute(select(Account).where(Account.email == email))
    return result.scalar_one_or_none()


async def get_account_by_id(
    session: AsyncSession, account_id: uuid.UUID
) -> Account | None:
    return await session.get(Account, account_id)


async def save_account(session: AsyncSession, account: Account) -> Account:
    """Insert or update the account; the digest was computed when the password was set."""
    session.add(account)
    await session.flush()
    return account


# ── Registration ──────────────────────────────────────────────────────────────

async def register_account(
    session: AsyncSession,
    *,
    email: str,
    phone_number: str | None,
    password: str,
) -> Account:
    """
    Create a new account.

    The uniqueness check runs first; the unique index on email still catches
    two signups racing past it.  Uses flush() so the caller can use
    account.id without committing.
    """
    if await get_account_by_email(session, email) is not None:
        raise AccountAlreadyExists()

    account = Account(
        email=email,
        phone_number=phone_number,
        password_hash=await hash_password_async(password),
    )
    try:
        return await save_account(session, account)
    except IntegrityError as exc:
        raise AccountAlreadyExists() from exc


# ── Authentication ────────────────────────────────────────────────────────────

async def authenticate_account(
    session: AsyncSession,
    email: str,
    password: str,
) -> Account:
    account = await get_account_by_email(session, email)
    if account is None:
        raise AccountNotFound()
    if not await verify_password_async(password, account.password_hash):
        raise InvalidCredentials()
    return account


# ── Password reset ────────────────────────────────────────────────────────────

async def reset_password(
    session: AsyncSession,
    *,
    email: str,
    new_password: str,
) -> Account:
    """
    Store a new password for the account.

    Raises AccountNotFound if the email has no account (the account may have
    been removed between the OTP request and the reset).
    """
    account = await get_account_by_email(session, email)
    if account is None:
        raise AccountNotFound()
    account.password_hash = await hash_password_async(new_password)
    await save_account(session, account)
    logger.info("Password reset for account %s", account.id)
    return account


# ── JWT access token ──────────────────────────────────────────────────────────

def create_access_token(
    account_id: uuid.UUID,
    secret: str,
    algorithm: str,
    issuer: str,
    audience: str,
    expire_seconds: int = ACCESS_TOKEN_EXPIRE_SECONDS,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(account_id),
        "iat": now,
        "exp": now + timedelta(seconds=expire_seconds),
        "iss": issuer,
        "aud": audience,
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    secret: str,
    algorithm: str,
    issuer: str,
    audience: str,
) -> uuid.UUID:
    """
    Check signature, expiry, issuer and audience; return the account id.

    Raises:
      TokenExpired: signature is valid but exp has passed
      TokenInvalid: anything else (bad signature, wrong claims, malformed)
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            issuer=issuer,
            audience=audience,
        )
    except ExpiredSignatureError:
        raise TokenExpired()
    except JWTError:
        raise TokenInvalid()

    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise TokenInvalid()
