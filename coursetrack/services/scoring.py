"""Answer validation, auto-scoring and best-attempt selection.

All pure.  Answers are keyed by the question id rendered as a string
(the JSON shape clients send) and hold an option index for multiple
choice, a bool for true/false and text for short-answer and essay.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from coursetrack.models.curriculum import (
    Assessment,
    EssayQuestion,
    MultipleChoiceQuestion,
    Question,
    ShortAnswerQuestion,
    TrueFalseQuestion,
)
from coursetrack.models.progress import Answer, AssessmentAttempt
from coursetrack.services.errors import AnswerValidationError


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percentage_of(score: int, max_score: int) -> int:
    if max_score <= 0:
        return 0
    return round_half_up(score / max_score * 100)


@dataclass(frozen=True, slots=True)
class QuestionOutcome:
    question_id: str
    answered: bool
    correct: bool | None  # None for essays awaiting manual grading
    awarded: int


@dataclass(frozen=True, slots=True)
class ScoreResult:
    score: int
    max_score: int
    percentage: int
    passed: bool
    requires_manual_grading: bool
    outcomes: tuple[QuestionOutcome, ...]


def validate_answers(
    assessment: Assessment, answers: Mapping[str, object]
) -> dict[str, Answer]:
    """Check the whole answers map before anything is applied.

    Rejects unknown question ids and values of the wrong shape; every
    problem is listed in one AnswerValidationError.
    """
    by_id = {str(q.id): q for q in assessment.questions}
    problems: list[str] = []
    clean: dict[str, Answer] = {}

    for key, value in answers.items():
        question = by_id.get(str(key))
        if question is None:
            problems.append(f"unknown question id {key}")
            continue
        error = _answer_shape_error(question, value)
        if error:
            problems.append(f"question {key}: {error}")
            continue
        clean[str(key)] = value  # type: ignore[assignment]

    if problems:
        raise AnswerValidationError("; ".join(problems))
    return clean


def _answer_shape_error(question: Question, value: object) -> str | None:
    if isinstance(question, MultipleChoiceQuestion):
        # bool is an int subclass; a stray true/false is not an option index
        if isinstance(value, bool) or not isinstance(value, int):
            return "expected an option index"
        if not 0 <= value < len(question.options):
            return f"option index {value} out of range"
        return None
    if isinstance(question, TrueFalseQuestion):
        if not isinstance(value, bool):
            return "expected true or false"
        return None
    if not isinstance(value, str):
        return "expected text"
    return None


def is_correct(question: Question, answer: Answer) -> bool | None:
    """Type-specific equality; None means "not auto-gradable"."""
    if isinstance(question, MultipleChoiceQuestion):
        return answer == question.correct_index
    if isinstance(question, TrueFalseQuestion):
        return answer is question.correct
    if isinstance(question, ShortAnswerQuestion):
        return (
            isinstance(answer, str)
            and answer.strip().casefold() == question.correct_text.strip().casefold()
        )
    if isinstance(question, EssayQuestion):
        return None
    raise TypeError(f"unsupported question type {type(question).__name__}")


def score_answers(assessment: Assessment, answers: Mapping[str, Answer]) -> ScoreResult:
    score = 0
    max_score = 0
    manual = False
    outcomes: list[QuestionOutcome] = []

    for question in assessment.ordered_questions():
        key = str(question.id)
        answered = key in answers

        if isinstance(question, EssayQuestion):
            # Never auto-scored: excluded from both score and max_score
            manual = manual or answered
            outcomes.append(QuestionOutcome(key, answered, None, 0))
            continue

        max_score += question.points
        if not answered:
            outcomes.append(QuestionOutcome(key, False, False, 0))
            continue

        correct = bool(is_correct(question, answers[key]))
        if correct:
            delta = question.points
        elif assessment.negative_marking:
            delta = -question.negative_points
        else:
            delta = 0

        before = score
        score = max(0, score + delta)
        outcomes.append(QuestionOutcome(key, True, correct, score - before))

    percentage = percentage_of(score, max_score)
    return ScoreResult(
        score=score,
        max_score=max_score,
        percentage=percentage,
        passed=percentage >= assessment.passing_score,
        requires_manual_grading=manual,
        outcomes=tuple(outcomes),
    )


def best_attempt(attempts: Iterable[AssessmentAttempt]) -> AssessmentAttempt | None:
    """Highest-percentage completed attempt; ties go to the most recent."""
    completed = [a for a in attempts if a.is_completed]
    if not completed:
        return None
    return max(completed, key=lambda a: (a.percentage, a.started_at, a.attempt_number))
