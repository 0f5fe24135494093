"""Activation Pydantic schemas: API contracts for the gate and its steps."""

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from activation_gate.domain.quiz import Question
from activation_gate.domain.records import ActivationRecord, QuizAttemptResult

_IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")


class StepStatus(BaseModel):
    step: str
    completed: bool
    unlocked: bool
    route: str


class ActivationStatusResponse(BaseModel):
    """Record snapshot plus where the user stands in the sequence."""

    user_id: str
    role: str
    phase: str
    current_step: str | None
    onboarding_completed: bool
    training_progress_percent: float
    total_quiz_attempts: int
    last_quiz_attempt: QuizAttemptResult | None
    activated_at: datetime | None
    steps: list[StepStatus]


class CompleteStepResponse(BaseModel):
    step: str
    current_step: str | None
    onboarding_completed: bool
    next_route: str


class TrainingProgressRequest(BaseModel):
    percent: float = Field(ge=0, le=100)


class TrainingProgressResponse(BaseModel):
    training_progress_percent: float
    training_completed: bool
    current_step: str | None


class PublicQuestion(BaseModel):
    """Question as shown to the user; the answer key is never sent."""

    id: str
    prompt: str
    options: list[str]
    order_index: int

    @classmethod
    def from_question(cls, question: Question) -> "PublicQuestion":
        return cls(
            id=question.id,
            prompt=question.prompt,
            options=list(question.options),
            order_index=question.order_index,
        )


class QuizQuestionsResponse(BaseModel):
    quiz_id: str
    passing_threshold_percent: float
    questions: list[PublicQuestion]


class QuizSubmissionRequest(BaseModel):
    # Values are not constrained here; the grader scores anything invalid as incorrect
    answers: dict[str, Any] = Field(default_factory=dict)


class QuestionResultResponse(BaseModel):
    question_id: str
    correct: bool
    selected_option_index: int | None
    correct_option_index: int
    explanation: str


class QuizSubmissionResponse(BaseModel):
    attempt: QuizAttemptResult
    threshold: float
    per_question: list[QuestionResultResponse]
    current_step: str | None
    next_route: str


class BankDetailsRequest(BaseModel):
    account_holder_name: str = Field(min_length=2, max_length=120)
    account_number: str = Field(min_length=9, max_length=18)
    ifsc_code: str
    bank_name: str | None = None
    upi_id: str | None = None

    @field_validator("account_holder_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

    @field_validator("account_number")
    @classmethod
    def digits_only(cls, v: str) -> str:
        v = v.replace(" ", "")
        if not v.isdigit():
            raise ValueError("Account number must contain digits only")
        return v

    @field_validator("ifsc_code")
    @classmethod
    def validate_ifsc(cls, v: str) -> str:
        v = v.strip().upper()
        if not _IFSC_PATTERN.match(v):
            raise ValueError("Invalid IFSC code")
        return v


class GateDecisionResponse(BaseModel):
    path: str
    category: str
    allowed: bool
    redirect_to: str | None
    reason: str
    degraded: bool


def record_summary(record: ActivationRecord) -> dict:
    """Fields shared by every status-style response."""
    return {
        "user_id": record.user_id,
        "role": record.role.value,
        "onboarding_completed": record.onboarding_completed,
        "training_progress_percent": record.training_progress_percent,
        "total_quiz_attempts": record.total_quiz_attempts,
        "last_quiz_attempt": record.last_quiz_attempt,
        "activated_at": record.activated_at,
    }
