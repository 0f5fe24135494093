"""Rolling-window limit on quiz attempts per user."""

import math
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from activation_gate.core.exceptions import RecordFetchFailure
from activation_gate.db.redis import activation_key

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AttemptReservation:
    allowed: bool
    retry_after_minutes: int = 0
    member: str | None = None


class QuizAttemptLimiter:
    """Track quiz attempts in a Redis sorted set scored by timestamp.

    A slot is reserved before grading and released if the attempt is never
    persisted, so concurrent submissions cannot overrun the window.
    """

    def __init__(self, redis: Redis, max_attempts: int = 3, window_seconds: int = 3600):
        self.redis = redis
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds

    def _key(self, user_id: str) -> str:
        return activation_key("quiz_attempts", user_id)

    async def reserve(self, user_id: str, now: datetime | None = None) -> AttemptReservation:
        """Atomically claim one attempt slot in the current window.

        Args:
            user_id: User identifier
            now: Current time (for deterministic testing)

        Returns:
            A reservation; when not allowed, retry_after_minutes says when the
            oldest attempt leaves the window

        Raises:
            RecordFetchFailure: Redis is unreachable
        """
        now = now or datetime.now(UTC)
        key = self._key(user_id)
        ts = now.timestamp()
        window_start = ts - self.window_seconds
        member = f"{ts}:{uuid.uuid4().hex[:8]}"

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(key)
                        attempts = await pipe.zrangebyscore(
                            key, f"({window_start}", "+inf", start=0, num=self.max_attempts, withscores=True
                        )
                        if len(attempts) >= self.max_attempts:
                            await pipe.unwatch()
                            # The oldest attempt in the window frees the next slot
                            seconds_left = attempts[0][1] + self.window_seconds - ts
                            return AttemptReservation(False, max(1, math.ceil(seconds_left / 60)))

                        pipe.multi()
                        pipe.zremrangebyscore(key, "-inf", window_start)
                        pipe.zadd(key, {member: ts})
                        pipe.expire(key, self.window_seconds)
                        await pipe.execute()
                        return AttemptReservation(True, member=member)
                    except WatchError:
                        logger.debug("quiz_attempt_reserve_retry", user_id=user_id)
                        continue
        except RedisError as exc:
            raise RecordFetchFailure(user_id, reason=str(exc)) from exc

    async def release(self, user_id: str, member: str | None) -> None:
        """Give back a reserved slot whose attempt was never recorded."""
        if member is None:
            return
        try:
            await self.redis.zrem(self._key(user_id), member)
        except RedisError as exc:
            logger.warning("quiz_attempt_release_failed", user_id=user_id, error=str(exc))

    async def attempts_in_window(self, user_id: str, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        window_start = now.timestamp() - self.window_seconds
        return await self.redis.zcount(self._key(user_id), f"({window_start}", "+inf")
