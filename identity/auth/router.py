"""
Identity service: auth router.

Only HTTP concerns live here:
  - Route declarations, HTTP methods, status codes, response_model
  - Dependency injection (session, settings, ledger, notifier, current account)
  - Forwarding to the controller

Zero business logic. Zero DB queries.
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from identity.auth.controller import (
    forgot_password as forgot_password_controller,
    login as login_controller,
    me as me_controller,
    reset_password as reset_password_controller,
    signup as signup_controller,
    verify_otp as verify_otp_controller,
)
from identity.auth.dependencies import (
    get_current_account_id,
    get_notifier,
    get_otp_ledger,
    get_settings,
)
from identity.auth.otp import OTPLedger
from identity.auth.schemas import (
    AccountResponse,
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ResetPasswordRequest,
    SignupRequest,
    VerifyOTPRequest,
)
from identity.config import Settings
from identity.database import get_db
from identity.email.send import Notifier

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Email + Password ──────────────────────────────────────────────────────────

@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account (email + password)",
)
async def signup(
    body: SignupRequest,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    return await signup_controller(session, body, settings)


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login with email + password",
)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> AuthResponse:
    return await login_controller(session, body, settings)


@router.get(
    "/me",
    response_model=AccountResponse,
    summary="Return the account behind the bearer token",
)
async def me(
    account_id: uuid.UUID = Depends(get_current_account_id),
    session: AsyncSession = Depends(get_db),
) -> AccountResponse:
    return await me_controller(session, account_id)


# ── Password reset ─────────────────────────────────────────────────────────────

@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Email a 4-digit password reset code",
    description=(
        "Issues a reset code valid for 10 minutes and emails it. "
        "Requesting again replaces any earlier code."
    ),
)
async def forgot_password(
    body: ForgotPasswordRequest,
    session: AsyncSession = Depends(get_db),
    ledger: OTPLedger = Depends(get_otp_ledger),
    notifier: Notifier = Depends(get_notifier),
) -> MessageResponse:
    await forgot_password_controller(session, body, ledger, notifier)
    return MessageResponse(message="OTP sent to your email")


@router.post(
    "/verify-otp",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Verify the password reset code",
)
async def verify_otp(
    body: VerifyOTPRequest,
    ledger: OTPLedger = Depends(get_otp_ledger),
) -> MessageResponse:
    await verify_otp_controller(body, ledger)
    return MessageResponse(message="OTP verified")


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Set a new password after verifying the reset code",
)
async def reset_password(
    body: ResetPasswordRequest,
    session: AsyncSession = Depends(get_db),
    ledger: OTPLedger = Depends(get_otp_ledger),
    settings: Settings = Depends(get_settings),
) -> MessageResponse:
    await reset_password_controller(session, body, ledger, settings)
    return MessageResponse(message="Password reset successful")
