"""
Identity service: domain-specific HTTP exceptions.

All exceptions use preset status codes, error codes and detail messages so
that callers never need to specify these at the call site.  The handler
registered in main.py renders them in the standard error envelope:

    {"error": {"code": ..., "message": ...}, "request_id": ...}
"""
from fastapi import HTTPException, status


class ServiceError(HTTPException):
    """Base class for every client-visible business failure."""

    code: str = "error"
    status_code_default: int = status.HTTP_400_BAD_REQUEST
    message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            status_code=self.status_code_default,
            detail=message or self.message,
        )


# ── Registration / conflict ───────────────────────────────────────────────────

class AccountAlreadyExists(ServiceError):
    code = "conflict"
    status_code_default = status.HTTP_409_CONFLICT
    message = "An account with this email already exists."


# ── Authentication ────────────────────────────────────────────────────────────

class AccountNotFound(ServiceError):
    code = "not_found"
    status_code_default = status.HTTP_404_NOT_FOUND
    message = "No account found for this email."


class InvalidCredentials(ServiceError):
    code = "unauthorized"
    status_code_default = status.HTTP_401_UNAUTHORIZED
    message = "Incorrect password."


class TokenExpired(ServiceError):
    code = "token_expired"
    status_code_default = status.HTTP_401_UNAUTHORIZED
    message = "Token has expired."


class TokenInvalid(ServiceError):
    code = "token_invalid"
    status_code_default = status.HTTP_401_UNAUTHORIZED
    message = "Token is invalid."


# ── Request shape ─────────────────────────────────────────────────────────────

class InvalidRequest(ServiceError):
    code = "invalid_request"
    status_code_default = status.HTTP_400_BAD_REQUEST
    message = "Request is missing required fields."


# ── OTP / password reset ──────────────────────────────────────────────────────

class OTPNotFound(ServiceError):
    code = "otp_not_found"
    status_code_default = status.HTTP_404_NOT_FOUND
    message = "OTP not found. Please request a new code."


class OTPExpired(ServiceError):
    code = "otp_expired"
    status_code_default = status.HTTP_410_GONE
    message = "OTP has expired. Please request a new code."


class OTPMismatch(ServiceError):
    code = "otp_mismatch"
    status_code_default = status.HTTP_401_UNAUTHORIZED
    message = "Invalid OTP code."


class ResetFlowNotFound(ServiceError):
    """Reset attempted without a live OTP record for the email."""

    code = "no_flow"
    status_code_default = status.HTTP_400_BAD_REQUEST
    message = "No password reset in progress. Please request a new code."


class OTPNotVerified(ServiceError):
    """A reset code was issued but never verified (or the verification lapsed)."""

    code = "otp_not_verified"
    status_code_default = status.HTTP_403_FORBIDDEN
    message = "Verify the code sent to your email before resetting the password."


class EmailDeliveryFailed(ServiceError):
    code = "delivery_failed"
    status_code_default = status.HTTP_502_BAD_GATEWAY
    message = "Failed to send OTP. Please try again shortly."
