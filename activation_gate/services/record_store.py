"""Activation record persistence.

The store is the backing data source for every ActivationRecord. Saves are
compare-and-set on ``version``: a save succeeds only if the stored record
still has the version the caller read, and bumps it by one.
"""

from datetime import UTC, datetime
from typing import Protocol

import structlog
from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from activation_gate.core.exceptions import RecordFetchFailure, StaleRecordRace
from activation_gate.db.redis import activation_key
from activation_gate.domain.records import ActivationRecord

logger = structlog.get_logger(__name__)


class RecordStore(Protocol):
    async def get_activation_record(self, user_id: str) -> ActivationRecord | None: ...

    async def save_activation_record(
        self, record: ActivationRecord, now: datetime | None = None
    ) -> ActivationRecord: ...


class RedisRecordStore:
    """Stores one JSON document per user under ``activation:record:{user_id}``."""

    def __init__(self, redis: Redis):
        self.redis = redis

    def _key(self, user_id: str) -> str:
        return activation_key("record", user_id)

    @staticmethod
    def _version_of(raw: str | None) -> int:
        if raw is None:
            return 0
        return ActivationRecord.model_validate_json(raw).version

    async def get_activation_record(self, user_id: str) -> ActivationRecord | None:
        """Load a user's record.

        Returns:
            The stored record, or None if the user has no record yet

        Raises:
            RecordFetchFailure: Redis is unreachable or the document is corrupt
        """
        try:
            raw = await self.redis.get(self._key(user_id))
        except RedisError as exc:
            raise RecordFetchFailure(user_id, reason=str(exc)) from exc

        if raw is None:
            return None

        try:
            return ActivationRecord.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("activation_record_corrupt", user_id=user_id, error=str(exc))
            raise RecordFetchFailure(user_id, reason="corrupt record") from exc

    async def save_activation_record(
        self,
        record: ActivationRecord,
        now: datetime | None = None,
    ) -> ActivationRecord:
        """Persist ``record`` if the stored version still equals ``record.version``.

        A record with version 0 may only be saved when no record exists yet.

        Args:
            record: Snapshot carrying the version it was read at
            now: Current time (for deterministic testing)

        Returns:
            The saved record with its version bumped and updated_at set

        Raises:
            StaleRecordRace: The stored record changed since it was read
            RecordFetchFailure: Redis is unreachable
        """
        now = now or datetime.now(UTC)
        key = self._key(record.user_id)
        saved = record.model_copy(update={"version": record.version + 1, "updated_at": now})

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                stored_version = self._version_of(await pipe.get(key))
                if stored_version != record.version:
                    await pipe.unwatch()
                    raise StaleRecordRace(record.user_id, record.version, stored_version)

                pipe.multi()
                pipe.set(key, saved.model_dump_json())
                await pipe.execute()
        except WatchError as exc:
            raise StaleRecordRace(record.user_id, record.version, None) from exc
        except RedisError as exc:
            raise RecordFetchFailure(record.user_id, reason=str(exc)) from exc

        logger.debug("activation_record_saved", user_id=record.user_id, version=saved.version)
        return saved
