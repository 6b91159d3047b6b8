"""
Identity service: auth-specific FastAPI dependencies.

Every collaborator the controller needs (settings, OTP ledger, notifier,
current account) is resolved here so tests can swap any of them through
app.dependency_overrides.
"""
from __future__ import annotations

import uuid
from functools import partial

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from identity.auth.otp import OTPLedger
from identity.auth.service import decode_access_token
from identity.config import Settings
from identity.email.send import Notifier, send_password_reset_otp
from identity.exceptions import TokenInvalid

http_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """The Settings instance the app was built with."""
    return request.app.state.settings


def get_otp_ledger(request: Request) -> OTPLedger:
    """The process-wide ledger created by create_app()."""
    return request.app.state.otp_ledger


def get_notifier(settings: Settings = Depends(get_settings)) -> Notifier:
    return partial(send_password_reset_otp, settings=settings)


def get_current_account_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    settings: Settings = Depends(get_settings),
) -> uuid.UUID:
    """Resolve the bearer token to an account id, or raise 401."""
    if not credentials or not credentials.credentials:
        raise TokenInvalid("Not authenticated.")
    return decode_access_token(
        credentials.credentials,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
    )
