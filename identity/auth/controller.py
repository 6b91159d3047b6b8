"""
Identity service: auth controller (request orchestration layer).

Responsibilities:
  - Receive validated input from the router.
  - Call service functions (which own business logic) and the OTP ledger.
  - Compose and return the response model.

No framework validation logic here; that belongs in schemas.py.
No business logic here; that belongs in service.py and otp.py.

Password reset state machine (per email):

  forgot_password   NoFlow    -> OtpIssued
  verify_otp        OtpIssued -> OtpVerified   (EXPIRED -> NoFlow)
  reset_password    *         -> NoFlow
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from identity.auth.constants import OTPStatus
from identity.auth.models import Account
from identity.auth.otp import OTPLedger
from identity.auth.schemas import (
    AccountResponse,
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    SignupRequest,
    VerifyOTPRequest,
)
from identity.auth.service import (
    authenticate_account,
    create_access_token,
    get_account_by_email,
    get_account_by_id,
    register_account,
    reset_password as reset_account_password,
)
from identity.config import Settings
from identity.email.send import Notifier
from identity.exceptions import (
    AccountNotFound,
    EmailDeliveryFailed,
    OTPExpired,
    OTPMismatch,
    OTPNotFound,
    OTPNotVerified,
    ResetFlowNotFound,
    TokenInvalid,
)

logger = logging.getLogger(__name__)


# ── Helper ────────────────────────────────────────────────────────────────────

def _auth_response(account: Account, message: str, settings: Settings) -> AuthResponse:
    token = create_access_token(
        account_id=account.id,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        expire_seconds=settings.jwt_expire_seconds,
    )
    return AuthResponse(
        message=message,
        token=token,
        expires_in=settings.jwt_expire_seconds,
        account=AccountResponse.model_validate(account),
    )


# ── Signup / Login ────────────────────────────────────────────────────────────

async def signup(
    session: AsyncSession,
    body: SignupRequest,
    settings: Settings,
) -> AuthResponse:
    account = await register_account(
        session,
        email=body.email,
        phone_number=body.phone_number,
        password=body.password,
    )
    return _auth_response(account, "User created successfully", settings)


async def login(
    session: AsyncSession,
    body: LoginRequest,
    settings: Settings,
) -> AuthResponse:
    account = await authenticate_account(session, body.email, body.password)
    return _auth_response(account, "Login successful", settings)


async def me(session: AsyncSession, account_id: uuid.UUID) -> AccountResponse:
    account = await get_account_by_id(session, account_id)
    if account is None:
        # Valid signature, but the account is gone
        raise TokenInvalid()
    return AccountResponse.model_validate(account)


# ── Password reset ────────────────────────────────────────────────────────────

async def forgot_password(
    session: AsyncSession,
    body: ForgotPasswordRequest,
    ledger: OTPLedger,
    notifier: Notifier,
) -> None:
    """
    Issue a reset code and email it.

    The code is stored before the send starts, so a failed delivery still
    leaves a usable code and a retry simply overwrites it.
    """
    if await get_account_by_email(session, body.email) is None:
        raise AccountNotFound()

    code = await ledger.issue(body.email)
    if not await notifier(body.email, code):
        logger.warning("Reset code for %s was issued but not delivered", body.email)
        raise EmailDeliveryFailed()


async def verify_otp(body: VerifyOTPRequest, ledger: OTPLedger) -> None:
    """Check the code; the record is kept for reset_password on success."""
    result = await ledger.verify(body.email, body.otp)
    if result is OTPStatus.NOT_FOUND:
        raise OTPNotFound()
    if result is OTPStatus.EXPIRED:
        raise OTPExpired()
    if result is OTPStatus.MISMATCH:
        raise OTPMismatch()


async def reset_password(
    session: AsyncSession,
    body: ResetPasswordRequest,
    ledger: OTPLedger,
    settings: Settings,
) -> None:
    """
    Store the new password and close the reset flow.

    Requires a live reset record for the email.  Unless
    OTP_REQUIRE_VERIFICATION is off, the record must also have passed
    verify_otp within OTP_VERIFIED_WINDOW_SECONDS.
    """
    record = await ledger.peek(body.email)
    if record is None:
        raise ResetFlowNotFound()

    if settings.otp_require_verification and not record.is_verified(
        ledger.clock(), settings.otp_verified_window_seconds
    ):
        raise OTPNotVerified()

    await reset_account_password(
        session, email=body.email, new_password=body.new_password
    )
    await ledger.consume(body.email)
