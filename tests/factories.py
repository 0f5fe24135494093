"""Record and question builders shared across test modules."""

from datetime import UTC, datetime

from activation_gate.core.exceptions import RecordFetchFailure
from activation_gate.domain.quiz import Question
from activation_gate.domain.records import ActivationRecord
from activation_gate.domain.steps import Role, StepPolicy

FIXED_NOW = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)

DOER_COMPLETE = {
    "profile_completed": True,
    "training_completed": True,
    "quiz_passed": True,
    "bank_details_added": True,
}


def make_record(user_id: str = "user-001", role: Role = Role.DOER, **flags) -> ActivationRecord:
    """Build a record with the derived flag computed from the given step flags."""
    record = ActivationRecord(user_id=user_id, role=role, **flags)
    return StepPolicy().normalize(record)


def make_questions(count: int = 10, correct_index: int = 2) -> list[Question]:
    """A bank of ``count`` questions whose answer is always ``correct_index``."""
    return [
        Question(
            id=f"q{i:02d}",
            prompt=f"Question {i}?",
            options=("A", "B", "C", "D"),
            correct_option_index=correct_index,
            explanation=f"Because of rule {i}",
            order_index=i,
        )
        for i in range(count)
    ]


def answers_with_correct(questions: list[Question], correct: int) -> dict[str, int]:
    """Answer the first ``correct`` questions right and the rest wrong."""
    answers = {}
    for index, question in enumerate(questions):
        if index < correct:
            answers[question.id] = question.correct_option_index
        else:
            answers[question.id] = (question.correct_option_index + 1) % 4
    return answers


class UnreachableStore:
    """Record store whose backing service is down; counts read attempts."""

    def __init__(self):
        self.calls = 0

    async def get_activation_record(self, user_id):
        self.calls += 1
        raise RecordFetchFailure(user_id, reason="connection refused")

    async def save_activation_record(self, record, now=None):
        raise AssertionError("gate evaluation must not write")
