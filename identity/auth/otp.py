"""
Identity service: OTP ledger for the password reset flow.

The ledger maps an email to its single pending reset code.  Its lifecycle:

  issue()    NoFlow    -> OtpIssued   (overwrites any earlier code, last writer wins)
  verify()   OtpIssued -> OtpVerified (record kept, verified_at stamped)
             expired   -> NoFlow      (record deleted on detection)
  consume()  *         -> NoFlow      (after a successful password reset)

Expiry is checked lazily on every read, so a stale record is never trusted.
sweep() exists only to bound memory for codes nobody comes back for.

Two backends share the interface:
  - InMemoryOTPLedger: a dict guarded by one asyncio.Lock over the whole key
    space.  Single-process only.
  - RedisOTPLedger: one JSON value per email, updated with WATCH/MULTI so a
    verify racing a new issue() never writes back the stale code.  Required
    once the service runs as more than one instance.

Rules:
  - Zero FastAPI imports.
  - Codes are never logged.
"""
from __future__ import annotations

import abc
import asyncio
import json
import logging
import random
import secrets
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis
from redis.exceptions import WatchError

from identity.auth.constants import OTP_EXPIRE_SECONDS, OTP_MAX, OTP_MIN, OTPStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_code() -> str:
    """Return a uniformly random 4-digit code in [1000, 9999]."""
    return f"{random.SystemRandom().randint(OTP_MIN, OTP_MAX)}"


@dataclass(frozen=True)
class OTPRecord:
    email: str
    code: str
    expires_at: datetime
    verified_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def is_verified(self, now: datetime, window_seconds: int) -> bool:
        """True if verify() accepted the code within the last window_seconds."""
        if self.verified_at is None or self.is_expired(now):
            return False
        return now <= self.verified_at + timedelta(seconds=window_seconds)


class OTPLedger(abc.ABC):
    def __init__(
        self,
        expire_seconds: int = OTP_EXPIRE_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        self.expire_seconds = expire_seconds
        self.clock = clock

    @abc.abstractmethod
    async def issue(self, email: str) -> str:
        """Store a fresh code for email (replacing any previous one) and return it."""

    @abc.abstractmethod
    async def peek(self, email: str) -> OTPRecord | None:
        """Return the live record for email without consuming it."""

    @abc.abstractmethod
    async def verify(self, email: str, candidate: str) -> OTPStatus:
        ...

    @abc.abstractmethod
    async def consume(self, email: str) -> None:
        ...

    @abc.abstractmethod
    async def sweep(self) -> int:
        """Drop expired records; return how many were removed."""

    async def close(self) -> None:
        pass

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Background loop; cancelled by the app lifespan on shutdown."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                removed = await self.sweep()
            except Exception:
                logger.exception("OTP sweep failed")
                continue
            if removed:
                logger.debug("OTP sweep removed %d expired record(s)", removed)

    def _new_record(self, email: str) -> OTPRecord:
        return OTPRecord(
            email=email,
            code=generate_code(),
            expires_at=self.clock() + timedelta(seconds=self.expire_seconds),
        )


# ── In-process backend ────────────────────────────────────────────────────────

class InMemoryOTPLedger(OTPLedger):
    def __init__(
        self,
        expire_seconds: int = OTP_EXPIRE_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(expire_seconds, clock)
        self._records: dict[str, OTPRecord] = {}
        self._lock = asyncio.Lock()

    async def issue(self, email: str) -> str:
        async with self._lock:
            record = self._new_record(email)
            self._records[email] = record
        logger.info("Password reset OTP issued for %s", email)
        return record.code

    async def peek(self, email: str) -> OTPRecord | None:
        async with self._lock:
            record = self._records.get(email)
            if record is None or record.is_expired(self.clock()):
                return None
            return record

    async def verify(self, email: str, candidate: str) -> OTPStatus:
        async with self._lock:
            record = self._records.get(email)
            if record is None:
                return OTPStatus.NOT_FOUND

            now = self.clock()
            if record.is_expired(now):
                del self._records[email]
                logger.info("Expired OTP discarded for %s", email)
                return OTPStatus.EXPIRED

            if not secrets.compare_digest(record.code.encode(), candidate.encode()):
                return OTPStatus.MISMATCH

            self._records[email] = replace(record, verified_at=now)
            return OTPStatus.VALID

    async def consume(self, email: str) -> None:
        async with self._lock:
            self._records.pop(email, None)

    async def sweep(self) -> int:
        async with self._lock:
            now = self.clock()
            expired = [e for e, r in self._records.items() if r.is_expired(now)]
            for email in expired:
                del self._records[email]
        return len(expired)


# ── Redis backend ─────────────────────────────────────────────────────────────

_OTP_REDIS_PREFIX = "pwd_reset_otp:"
# Keys outlive the code by this much so verify() can still answer EXPIRED
# (and delete the key) instead of NOT_FOUND right after the window closes.
_EXPIRED_GRACE_SECONDS = 60


def _encode(record: OTPRecord) -> str:
    return json.dumps(
        {
            "code": record.code,
            "expires_at": record.expires_at.isoformat(),
            "verified_at": record.verified_at.isoformat() if record.verified_at else None,
        }
    )


def _decode(email: str, raw: str) -> OTPRecord:
    data = json.loads(raw)
    verified_at = data.get("verified_at")
    return OTPRecord(
        email=email,
        code=data["code"],
        expires_at=datetime.fromisoformat(data["expires_at"]),
        verified_at=datetime.fromisoformat(verified_at) if verified_at else None,
    )


class RedisOTPLedger(OTPLedger):
    def __init__(
        self,
        redis: aioredis.Redis,
        expire_seconds: int = OTP_EXPIRE_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(expire_seconds, clock)
        self._redis = redis

    @staticmethod
    def _key(email: str) -> str:
        return f"{_OTP_REDIS_PREFIX}{email}"

    async def issue(self, email: str) -> str:
        # A single SET replaces the old value atomically.
        record = self._new_record(email)
        await self._redis.set(
            self._key(email),
            _encode(record),
            ex=self.expire_seconds + _EXPIRED_GRACE_SECONDS,
        )
        logger.info("Password reset OTP issued for %s", email)
        return record.code

    async def peek(self, email: str) -> OTPRecord | None:
        raw = await self._redis.get(self._key(email))
        if raw is None:
            return None
        record = _decode(email, raw)
        if record.is_expired(self.clock()):
            return None
        return record

    async def verify(self, email: str, candidate: str) -> OTPStatus:
        key = self._key(email)
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        return OTPStatus.NOT_FOUND

                    record = _decode(email, raw)
                    now = self.clock()
                    if record.is_expired(now):
                        pipe.multi()
                        pipe.delete(key)
                        await pipe.execute()
                        logger.info("Expired OTP discarded for %s", email)
                        return OTPStatus.EXPIRED

                    if not secrets.compare_digest(record.code.encode(), candidate.encode()):
                        return OTPStatus.MISMATCH

                    pipe.multi()
                    pipe.set(key, _encode(replace(record, verified_at=now)), keepttl=True)
                    await pipe.execute()
                    return OTPStatus.VALID
                except WatchError:
                    # Another issue()/consume() touched the key; re-read it.
                    continue

    async def consume(self, email: str) -> None:
        await self._redis.delete(self._key(email))

    async def sweep(self) -> int:
        # Redis TTLs expire keys on their own.
        return 0
