"""Redis client for activation records, question banks and quiz attempts.

Every key the service writes lives under the ``activation:`` namespace so the
gate can share a Redis instance with other services.
"""

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from activation_gate.core.config import get_settings

logger = structlog.get_logger(__name__)

KEY_NAMESPACE = "activation"

_redis: redis.Redis | None = None


def activation_key(*parts: str) -> str:
    """Build a namespaced key, e.g. ``activation_key("record", "u1")``."""
    if not parts or any(not part for part in parts):
        raise ValueError(f"Key parts must be non-empty: {parts!r}")
    return ":".join((KEY_NAMESPACE, *parts))


async def init_redis(url: str | None = None) -> redis.Redis:
    """Connect the shared client.

    Socket reads are bounded by ``record_fetch_timeout_seconds`` so a stalled
    Redis surfaces as a fetch failure instead of hanging the gate.
    """
    global _redis

    if _redis is not None:
        return _redis

    settings = get_settings()
    client = redis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.record_fetch_timeout_seconds,
        socket_connect_timeout=settings.record_fetch_timeout_seconds,
    )
    await client.ping()
    _redis = client
    return client


async def close_redis() -> None:
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis:
    """Return the shared client. Raises RuntimeError before init_redis()."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


async def ping_redis(client: redis.Redis | None = None) -> bool:
    """True if Redis answers PING; failures are logged, not raised."""
    try:
        client = client or get_redis()
        await client.ping()
    except (RuntimeError, RedisError) as exc:
        logger.error("redis_ping_failed", error=str(exc))
        return False
    return True
