"""
Async Redis client: backs the OTP ledger when OTP_BACKEND=redis.

Uses a module-level singleton so a single connection pool is reused per
process.  The pool is created lazily on first call to get_redis_client().
"""
from __future__ import annotations

import redis.asyncio as aioredis

_client: aioredis.Redis | None = None


def get_redis_client(redis_url: str) -> aioredis.Redis:
    """Return (and lazily create) the module-level async Redis client."""
    global _client
    if _client is None:
        _client = aioredis.from_url(redis_url, decode_responses=True)
    return _client


async def close_redis_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
    _client = None
