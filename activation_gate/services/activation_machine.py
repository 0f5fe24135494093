"""Activation state machine: applies step-completion events to a record."""

from collections.abc import Mapping
from datetime import UTC, datetime

import structlog

from activation_gate.core.exceptions import (
    InvalidStepTransition,
    OutOfOrderCompletion,
    QuizAlreadyPassed,
    QuizNotPassed,
    QuizRateLimited,
    StaleRecordRace,
    UnknownStep,
)
from activation_gate.domain.quiz import QuizGrade, QuizGradingEngine
from activation_gate.domain.records import ActivationRecord, QuizAttemptResult, new_record
from activation_gate.domain.steps import GateState, Role, StepId, StepPolicy
from activation_gate.services.question_bank import QuestionSource
from activation_gate.services.quiz_limiter import QuizAttemptLimiter
from activation_gate.services.record_store import RecordStore

logger = structlog.get_logger(__name__)


class ActivationStateMachine:
    """Per-user view of the activation sequence.

    Holds a read-through cached snapshot of the user's ActivationRecord. The
    snapshot is dropped after every successful mutation so the next query
    re-reads the store. Every successful transition performs exactly one
    store write.
    """

    def __init__(
        self,
        user_id: str,
        role: Role | str,
        store: RecordStore,
        policy: StepPolicy,
        grader: QuizGradingEngine | None = None,
        questions: QuestionSource | None = None,
        limiter: QuizAttemptLimiter | None = None,
    ):
        self.user_id = user_id
        self.role = Role(role)
        self.store = store
        self.policy = policy
        self.grader = grader or QuizGradingEngine()
        self.questions = questions
        self.limiter = limiter
        self._record: ActivationRecord | None = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def refresh(self) -> ActivationRecord:
        """Re-read the backing record, discarding the cached snapshot.

        A user with no stored record gets an unsaved blank record; it is
        persisted by the first completion.
        """
        record = await self.store.get_activation_record(self.user_id)
        if record is None:
            record = new_record(self.user_id, self.role)
        else:
            record = self._normalize(record)
        self._record = record
        return record

    async def snapshot(self) -> ActivationRecord:
        if self._record is None:
            return await self.refresh()
        return self._record

    async def current_step(self) -> StepId | None:
        """First incomplete step; None once fully activated."""
        return self.policy.current_step(await self.snapshot())

    async def is_step_unlocked(self, step: StepId) -> bool:
        return self.policy.is_unlocked(await self.snapshot(), step)

    async def is_fully_activated(self) -> bool:
        return (await self.snapshot()).onboarding_completed

    async def state(self) -> GateState:
        return self.policy.state(await self.snapshot())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def complete_step(
        self,
        step: StepId,
        now: datetime | None = None,
    ) -> StepId | None:
        """Mark ``step`` complete and return the new current step.

        Args:
            step: Step to complete
            now: Current time (for deterministic testing)

        Raises:
            UnknownStep: step is not in the role's sequence
            OutOfOrderCompletion: the preceding step is incomplete
            QuizNotPassed: quiz step not yet passed; only submit_quiz can pass it
            StaleRecordRace: record changed underneath; state was refreshed
        """
        now = now or datetime.now(UTC)
        record = await self.snapshot()
        self._require_unlocked(record, step)

        if record.is_step_complete(step):
            return self.policy.current_step(record)

        if step == StepId.QUIZ:
            # The pass flag is written only together with a graded attempt
            raise QuizNotPassed()

        updated = record.with_step(step, True, now)
        if step == StepId.TRAINING:
            updated = updated.model_copy(update={"training_progress_percent": 100.0})

        saved = await self._commit(updated, now)
        logger.info(
            "activation_step_completed",
            user_id=self.user_id,
            role=record.role.value,
            step=step.value,
            onboarding_completed=saved.onboarding_completed,
        )
        return self.policy.current_step(saved)

    async def record_training_progress(self, percent: float, now: datetime | None = None) -> ActivationRecord:
        """Raise training progress; reaching 100 completes the training step.

        Progress never moves backwards and is pinned at 100 once training is
        complete. Lower values are accepted but leave the record untouched.
        """
        now = now or datetime.now(UTC)
        record = await self.snapshot()
        self._require_unlocked(record, StepId.TRAINING)

        if record.training_completed:
            return record

        percent = min(100.0, max(0.0, float(percent)))
        if percent <= record.training_progress_percent:
            return record

        updated = record.model_copy(update={"training_progress_percent": percent})
        if percent >= 100.0:
            updated = updated.with_step(StepId.TRAINING, True, now)

        saved = await self._commit(updated, now)
        logger.info(
            "training_progress_recorded",
            user_id=self.user_id,
            percent=percent,
            training_completed=saved.training_completed,
        )
        return saved

    async def submit_quiz(
        self,
        answers: Mapping[str, object],
        now: datetime | None = None,
    ) -> tuple[QuizAttemptResult, QuizGrade]:
        """Grade a submission and persist the attempt and pass flag in one write.

        Raises:
            OutOfOrderCompletion: training is incomplete
            QuizAlreadyPassed: the quiz was already passed
            QuizRateLimited: attempt window exhausted
            EmptyQuestionBank: no questions published for the role
        """
        now = now or datetime.now(UTC)
        record = await self.snapshot()
        self._require_unlocked(record, StepId.QUIZ)

        if record.quiz_passed:
            raise QuizAlreadyPassed()

        reservation = None
        if self.limiter is not None:
            reservation = await self.limiter.reserve(self.user_id, now)
            if not reservation.allowed:
                logger.warning(
                    "quiz_rate_limited",
                    user_id=self.user_id,
                    retry_after_minutes=reservation.retry_after_minutes,
                )
                raise QuizRateLimited(reservation.retry_after_minutes)

        try:
            attempt, grade = await self._grade_and_commit(record, answers, now)
        except Exception:
            if reservation is not None:
                await self.limiter.release(self.user_id, reservation.member)
            raise

        logger.info(
            "quiz_graded",
            user_id=self.user_id,
            score=grade.score,
            passed=grade.passed,
            attempt_number=attempt.attempt_number,
        )
        return attempt, grade

    async def _grade_and_commit(
        self,
        record: ActivationRecord,
        answers: Mapping[str, object],
        now: datetime,
    ) -> tuple[QuizAttemptResult, QuizGrade]:
        if self.questions is None:
            raise RuntimeError("ActivationStateMachine has no question source configured")
        quiz_id = record.role.value
        bank = await self.questions.get_question_bank(quiz_id)
        grade = self.grader.grade(bank, answers, quiz_id=quiz_id)

        attempt = QuizAttemptResult(
            score=grade.score,
            passed=grade.passed,
            attempted_at=now,
            correct_count=grade.correct_count,
            total_questions=grade.total_questions,
            attempt_number=record.total_quiz_attempts + 1,
        )
        updated = record.model_copy(
            update={
                "last_quiz_attempt": attempt,
                "total_quiz_attempts": attempt.attempt_number,
            }
        )
        if grade.passed:
            updated = updated.with_step(StepId.QUIZ, True, now)

        await self._commit(updated, now)
        return attempt, grade

    async def retry_quiz(self, now: datetime | None = None) -> ActivationRecord:
        """Explicitly reset the quiz pass flag so the quiz can be retaken.

        Raises:
            InvalidStepTransition: user is fully activated or a later step is complete
        """
        now = now or datetime.now(UTC)
        record = await self.snapshot()
        self._require_in_sequence(record, StepId.QUIZ)

        if record.onboarding_completed:
            raise InvalidStepTransition("Activation is complete; the quiz cannot be reset")

        steps = self.policy.order(record.role)
        later = steps[steps.index(StepId.QUIZ) + 1:]
        if any(record.is_step_complete(s) for s in later):
            raise InvalidStepTransition("A later step is already complete; the quiz cannot be reset")

        if not record.quiz_passed:
            return record

        saved = await self._commit(record.with_step(StepId.QUIZ, False), now)
        logger.info("quiz_reset_for_retry", user_id=self.user_id)
        return saved

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_in_sequence(self, record: ActivationRecord, step: StepId) -> None:
        if step not in self.policy.order(record.role):
            raise UnknownStep(step.value, record.role.value)

    def _require_unlocked(self, record: ActivationRecord, step: StepId) -> None:
        self._require_in_sequence(record, step)
        if not self.policy.is_unlocked(record, step):
            blocking = self.policy.blocking_step(record, step)
            logger.info(
                "activation_step_out_of_order",
                user_id=self.user_id,
                step=step.value,
                blocking_step=blocking.value if blocking else None,
            )
            raise OutOfOrderCompletion(step.value, blocking.value if blocking else None)

    def _normalize(self, record: ActivationRecord) -> ActivationRecord:
        """Recompute the derived flag on a loaded record, logging divergence."""
        normalized = self.policy.normalize(record)
        if normalized is not record:
            logger.warning(
                "activation_record_inconsistent",
                user_id=record.user_id,
                stored=record.onboarding_completed,
                derived=normalized.onboarding_completed,
            )
        return normalized

    async def _commit(self, record: ActivationRecord, now: datetime) -> ActivationRecord:
        completed = self.policy.is_fully_activated(record)
        update: dict = {"onboarding_completed": completed}
        if completed and record.activated_at is None:
            update["activated_at"] = now
        elif not completed:
            update["activated_at"] = None
        record = record.model_copy(update=update)

        if not self.policy.has_valid_ordering(record):
            # Completed steps must stay a prefix of the role sequence
            raise OutOfOrderCompletion(str(self.policy.current_step(record)))

        try:
            saved = await self.store.save_activation_record(record, now=now)
        except StaleRecordRace:
            logger.warning("activation_record_stale", user_id=self.user_id, version=record.version)
            await self.refresh()
            raise

        self._record = None
        return saved
