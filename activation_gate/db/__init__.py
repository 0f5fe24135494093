"""Storage package: shared Redis client and key namespace."""

from activation_gate.db.redis import (
    KEY_NAMESPACE,
    activation_key,
    close_redis,
    get_redis,
    init_redis,
    ping_redis,
)

__all__ = [
    "KEY_NAMESPACE",
    "activation_key",
    "close_redis",
    "get_redis",
    "init_redis",
    "ping_redis",
]
