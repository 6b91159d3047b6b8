"""
Identity service: Pydantic V2 request/response schemas for the auth domain.

Separation of concerns:
  - *Request  models:  input from the client (strict extra="forbid")
  - *Response models:  output to the client (no write-only fields exposed)

Field names are snake_case in Python and camelCase on the wire
(phoneNumber, newPassword, ...); requests accept either spelling.

Email addresses are checked for syntax but kept exactly as sent: the
address is a case-sensitive key.  Passwords are never trimmed.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated

from email_validator import EmailNotValidError, validate_email
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel

from identity.auth.constants import OTP_PATTERN


# ── Field types ───────────────────────────────────────────────────────────────

def _check_email_syntax(value: str) -> str:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError(f"value is not a valid email address: {exc}") from exc
    return value


Email = Annotated[
    str,
    StringConstraints(strip_whitespace=True, max_length=255),
    AfterValidator(_check_email_syntax),
]
PhoneNumber = Annotated[str, StringConstraints(strip_whitespace=True, max_length=20)]
Password = Annotated[str, StringConstraints(min_length=1, max_length=128)]
OTPCode = Annotated[str, StringConstraints(strip_whitespace=True, pattern=OTP_PATTERN)]


# ── Shared base ───────────────────────────────────────────────────────────────

class _Base(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class _Response(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ── Email + Password flow ─────────────────────────────────────────────────────

class SignupRequest(_Base):
    """Body for POST /auth/signup."""

    email: Email
    phone_number: PhoneNumber | None = None
    password: Password


class LoginRequest(_Base):
    """Body for POST /auth/login."""

    email: Email
    password: Password


# ── Password reset (OTP) flow ─────────────────────────────────────────────────

class ForgotPasswordRequest(_Base):
    """Body for POST /auth/forgot-password; emails a 4-digit reset code."""

    email: Email


class VerifyOTPRequest(_Base):
    """Body for POST /auth/verify-otp."""

    email: Email
    otp: OTPCode = Field(description="4-digit code sent to email")


class ResetPasswordRequest(_Base):
    """Body for POST /auth/reset-password."""

    email: Email
    new_password: Password


# ── Response models ───────────────────────────────────────────────────────────

class AccountResponse(_Response):
    """Public account view; the password digest is never part of it."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    phone_number: str | None
    created_at: datetime


class AuthResponse(_Response):
    """Returned on successful signup / login."""

    message: str
    token: str
    token_type: str = "bearer"
    expires_in: int  # token lifetime in seconds
    account: AccountResponse


class MessageResponse(_Response):
    """Generic single-message response for informational endpoints."""

    message: str
