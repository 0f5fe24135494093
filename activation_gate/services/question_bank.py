"""Quiz content source backed by Redis."""

from collections.abc import Sequence
from typing import Protocol

import structlog
from pydantic import TypeAdapter, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from activation_gate.core.exceptions import RecordFetchFailure
from activation_gate.db.redis import activation_key
from activation_gate.domain.quiz import Question, ordered_questions

logger = structlog.get_logger(__name__)

_questions_adapter = TypeAdapter(list[Question])


class QuestionSource(Protocol):
    async def get_question_bank(self, quiz_id: str) -> list[Question]: ...


class RedisQuestionSource:
    """Question banks stored as a JSON list under ``activation:quiz:{quiz_id}:questions``."""

    def __init__(self, redis: Redis):
        self.redis = redis

    def _key(self, quiz_id: str) -> str:
        return activation_key("quiz", quiz_id, "questions")

    async def get_question_bank(self, quiz_id: str) -> list[Question]:
        """Return the bank in presentation order; empty if none is published."""
        try:
            raw = await self.redis.get(self._key(quiz_id))
        except RedisError as exc:
            raise RecordFetchFailure(quiz_id, reason=str(exc)) from exc

        if raw is None:
            return []

        try:
            questions = _questions_adapter.validate_json(raw)
        except ValidationError as exc:
            logger.error("question_bank_corrupt", quiz_id=quiz_id, error=str(exc))
            return []

        return ordered_questions(questions)

    async def put_question_bank(self, quiz_id: str, questions: Sequence[Question]) -> None:
        """Publish a bank, replacing any previous one.

        Raises:
            ValueError: if two questions share an id
        """
        ids = [q.id for q in questions]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate question ids in bank '{quiz_id}': {duplicates}")

        payload = _questions_adapter.dump_json(ordered_questions(questions)).decode()
        await self.redis.set(self._key(quiz_id), payload)
        logger.info("question_bank_published", quiz_id=quiz_id, question_count=len(questions))
