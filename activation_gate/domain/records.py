"""Activation record: persisted progress of one user through the gate."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from activation_gate.domain.steps import Role, StepId

# Completion flag backing each step
STEP_FLAG_FIELDS: dict[StepId, str] = {
    StepId.PROFILE: "profile_completed",
    StepId.TRAINING: "training_completed",
    StepId.QUIZ: "quiz_passed",
    StepId.BANK_DETAILS: "bank_details_added",
    StepId.PAYMENT_METHOD: "payment_method_added",
}


class QuizAttemptResult(BaseModel):
    """Graded outcome of one quiz submission, retained on the record."""

    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0, le=100)
    passed: bool
    attempted_at: datetime
    correct_count: int = Field(ge=0)
    total_questions: int = Field(gt=0)
    attempt_number: int = Field(ge=1)


class ActivationRecord(BaseModel):
    """Immutable snapshot of a user's activation progress.

    ``onboarding_completed`` is a cached, derived flag; the state machine
    recomputes it on every mutation. ``version`` is the optimistic
    concurrency token checked by the record store on save.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: Role = Role.DOER

    profile_completed: bool = False
    training_completed: bool = False
    training_progress_percent: float = Field(default=0.0, ge=0, le=100)
    quiz_passed: bool = False
    last_quiz_attempt: QuizAttemptResult | None = None
    total_quiz_attempts: int = Field(default=0, ge=0)
    bank_details_added: bool = False
    payment_method_added: bool = False

    onboarding_completed: bool = False
    activated_at: datetime | None = None
    step_completed_at: dict[StepId, datetime] = Field(default_factory=dict)

    version: int = Field(default=0, ge=0)
    updated_at: datetime | None = None

    def is_step_complete(self, step: StepId) -> bool:
        return bool(getattr(self, STEP_FLAG_FIELDS[step]))

    def with_step(self, step: StepId, complete: bool, at: datetime | None = None) -> "ActivationRecord":
        """Return a copy with one step flag set or cleared."""
        completed_at = dict(self.step_completed_at)
        if complete and at is not None:
            completed_at.setdefault(step, at)
        elif not complete:
            completed_at.pop(step, None)
        return self.model_copy(update={STEP_FLAG_FIELDS[step]: complete, "step_completed_at": completed_at})


def new_record(user_id: str, role: Role | str = Role.DOER) -> ActivationRecord:
    """Blank record for a user who has not started activation."""
    return ActivationRecord(user_id=user_id, role=Role(role))
