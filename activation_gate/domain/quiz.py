"""Quiz grading.

Pure domain functions. Grading never fails on bad answers: missing,
out-of-range or non-integer selections are scored as incorrect and stay
in the denominator. The only failure is an empty question bank, where the
score is undefined.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, field_validator

from activation_gate.core.exceptions import EmptyQuestionBank

OPTIONS_PER_QUESTION = 4
DEFAULT_PASSING_THRESHOLD = 80.0


class Question(BaseModel):
    """One question bank entry with its answer key."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    prompt: str
    options: tuple[str, ...] = Field(min_length=OPTIONS_PER_QUESTION, max_length=OPTIONS_PER_QUESTION)
    correct_option_index: int = Field(ge=0, lt=OPTIONS_PER_QUESTION)
    explanation: str = ""
    order_index: int = 0

    @field_validator("options")
    @classmethod
    def strip_options(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(option.strip() for option in v)


@dataclass(frozen=True)
class QuestionResult:
    question_id: str
    correct: bool
    selected_option_index: int | None
    correct_option_index: int
    explanation: str = ""


@dataclass(frozen=True)
class QuizGrade:
    """Outcome of grading one answer set."""

    score: float
    passed: bool
    correct_count: int
    total_questions: int
    threshold: float
    per_question: tuple[QuestionResult, ...]


def ordered_questions(questions: Sequence[Question]) -> list[Question]:
    """Presentation and grading order: order_index, then id for ties."""
    return sorted(questions, key=lambda q: (q.order_index, q.id))


def _selected_index(answers: Mapping[str, object], question_id: str) -> int | None:
    value = answers.get(question_id)
    # bool is an int subclass; True must not count as option 1
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class QuizGradingEngine:
    """Scores answer maps against a question bank."""

    def __init__(self, passing_threshold_percent: float = DEFAULT_PASSING_THRESHOLD):
        if not 0 <= passing_threshold_percent <= 100:
            raise ValueError("passing_threshold_percent must be between 0 and 100")
        self.passing_threshold_percent = float(passing_threshold_percent)

    def grade(
        self,
        questions: Sequence[Question],
        answers: Mapping[str, object],
        quiz_id: str | None = None,
    ) -> QuizGrade:
        """Grade ``answers`` (question id -> option index) against ``questions``.

        Raises:
            EmptyQuestionBank: if ``questions`` is empty
        """
        if not questions:
            raise EmptyQuestionBank(quiz_id)

        results = []
        correct_count = 0
        for question in ordered_questions(questions):
            selected = _selected_index(answers, question.id)
            correct = selected == question.correct_option_index
            if correct:
                correct_count += 1
            results.append(
                QuestionResult(
                    question_id=question.id,
                    correct=correct,
                    selected_option_index=selected,
                    correct_option_index=question.correct_option_index,
                    explanation=question.explanation,
                )
            )

        total = len(results)
        score = correct_count * 100 / total
        return QuizGrade(
            score=score,
            passed=score >= self.passing_threshold_percent,
            correct_count=correct_count,
            total_questions=total,
            threshold=self.passing_threshold_percent,
            per_question=tuple(results),
        )
