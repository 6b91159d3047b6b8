import enum

# ── Lifetimes ─────────────────────────────────────────────────────────────────
ACCESS_TOKEN_EXPIRE_SECONDS: int = 86_400      # 24 hours
OTP_EXPIRE_SECONDS: int = 600                  # 10 minutes
OTP_VERIFIED_WINDOW_SECONDS: int = 300         # 5 minutes after verify-otp

# ── Reset code shape ──────────────────────────────────────────────────────────
# 4 decimal digits: 9000 possible codes, so one blind guess succeeds with
# probability 1/9000.  The short lifetime bounds the exposure.
OTP_MIN: int = 1_000
OTP_MAX: int = 9_999
OTP_PATTERN: str = r"^[0-9]{4}$"  # ASCII only; \d also matches other scripts


# ── OTP verification outcome ──────────────────────────────────────────────────
class OTPStatus(str, enum.Enum):
    VALID = "valid"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MISMATCH = "mismatch"
