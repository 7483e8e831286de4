"""
Redis client for the shared session-token mirror.
Lets every server process see a login's token rotation without waiting for its
own process-local entry to expire. Uses the asyncio client so lookups suspend
the request instead of blocking the event loop.
"""

from typing import Optional

import redis.asyncio as aioredis

# ─── Connection ────────────────────────────────────────────────────────────────


def create_redis(url: str) -> aioredis.Redis:
    return aioredis.from_url(url, decode_responses=True)


# ─── Key helpers ───────────────────────────────────────────────────────────────

def _session_key(identity_id: str) -> str:
    return f"session:{identity_id}"


# ─── Session token operations ──────────────────────────────────────────────────

async def save_session_token(r: aioredis.Redis, identity_id: str, token: str, ttl_seconds: Optional[int] = None):
    """Store the current token. A TTL bounds how long a lost invalidation can linger."""
    await r.set(_session_key(identity_id), token, ex=ttl_seconds or None)


async def get_session_token(r: aioredis.Redis, identity_id: str) -> Optional[str]:
    return await r.get(_session_key(identity_id))


async def clear_session_token(r: aioredis.Redis, identity_id: str):
    await r.delete(_session_key(identity_id))
