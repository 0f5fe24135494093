"""Tests for quiz grading."""
import pytest
from pydantic import ValidationError

from activation_gate.core.exceptions import EmptyQuestionBank
from activation_gate.domain.quiz import Question, QuizGradingEngine, ordered_questions
from tests.factories import answers_with_correct, make_questions

pytestmark = pytest.mark.unit


@pytest.fixture
def engine():
    return QuizGradingEngine(passing_threshold_percent=80)


def test_eight_of_ten_passes_at_threshold(engine, questions):
    grade = engine.grade(questions, answers_with_correct(questions, 8))
    assert grade.score == 80
    assert grade.passed is True
    assert grade.correct_count == 8
    assert grade.total_questions == 10


def test_seven_of_ten_fails(engine, questions):
    grade = engine.grade(questions, answers_with_correct(questions, 7))
    assert grade.score == 70
    assert grade.passed is False


def test_all_correct(engine, questions):
    grade = engine.grade(questions, answers_with_correct(questions, 10))
    assert grade.score == 100
    assert all(result.correct for result in grade.per_question)


def test_empty_bank_raises(engine):
    with pytest.raises(EmptyQuestionBank):
        engine.grade([], {})


def test_empty_bank_carries_quiz_id(engine):
    with pytest.raises(EmptyQuestionBank) as exc_info:
        engine.grade([], {}, quiz_id="doer")
    assert exc_info.value.quiz_id == "doer"


def test_missing_answers_count_as_incorrect(engine, questions):
    grade = engine.grade(questions, {})
    assert grade.score == 0
    assert grade.total_questions == 10
    assert all(result.selected_option_index is None for result in grade.per_question)


@pytest.mark.parametrize("bad_value", [7, -1, "2", 2.0, None, True, [2]])
def test_malformed_selection_is_incorrect(engine, bad_value):
    questions = make_questions(count=1, correct_index=1)
    grade = engine.grade(questions, {"q00": bad_value})
    assert grade.correct_count == 0
    assert grade.total_questions == 1


def test_unknown_question_ids_ignored(engine, questions):
    answers = answers_with_correct(questions, 10)
    answers["not-a-question"] = 0
    grade = engine.grade(questions, answers)
    assert grade.total_questions == 10
    assert grade.correct_count == 10


def test_grading_is_deterministic(engine, questions):
    answers = answers_with_correct(questions, 6)
    assert engine.grade(questions, answers) == engine.grade(questions, answers)


def test_per_question_follows_presentation_order(engine):
    questions = [
        Question(id="b", prompt="?", options=("1", "2", "3", "4"), correct_option_index=0, order_index=1),
        Question(id="a", prompt="?", options=("1", "2", "3", "4"), correct_option_index=0, order_index=1),
        Question(id="z", prompt="?", options=("1", "2", "3", "4"), correct_option_index=0, order_index=0),
    ]
    grade = engine.grade(questions, {})
    assert [r.question_id for r in grade.per_question] == ["z", "a", "b"]
    assert [q.id for q in ordered_questions(questions)] == ["z", "a", "b"]


def test_per_question_carries_explanation(engine):
    questions = make_questions(count=1)
    grade = engine.grade(questions, {"q00": 0})
    result = grade.per_question[0]
    assert result.correct is False
    assert result.correct_option_index == 2
    assert result.explanation == "Because of rule 0"


def test_threshold_zero_always_passes(questions):
    grade = QuizGradingEngine(passing_threshold_percent=0).grade(questions, {})
    assert grade.passed is True


@pytest.mark.parametrize("threshold", [-1, 100.5])
def test_threshold_out_of_range_rejected(threshold):
    with pytest.raises(ValueError):
        QuizGradingEngine(passing_threshold_percent=threshold)


def test_question_requires_four_options():
    with pytest.raises(ValidationError):
        Question(id="q", prompt="?", options=("a", "b", "c"), correct_option_index=0)


def test_question_rejects_out_of_range_answer_key():
    with pytest.raises(ValidationError):
        Question(id="q", prompt="?", options=("a", "b", "c", "d"), correct_option_index=4)


def test_question_strips_options():
    question = Question(id="q", prompt="?", options=(" a ", "b", "c", "d "), correct_option_index=0)
    assert question.options == ("a", "b", "c", "d")
