from __future__ import annotations

from uuid import uuid4

import pytest

from coursetrack.models.curriculum import (
    Assessment,
    CurriculumModule,
    Lesson,
    MultipleChoiceQuestion,
    ProgressWeights,
)
from coursetrack.models.principal import Principal
from coursetrack.models.progress import AssessmentAttempt
from coursetrack.services.errors import (
    AssessmentUnavailableError,
    AttemptLimitExceededError,
    CertificateNotEligibleError,
    CourseTrackError,
    EnrollmentNotFoundError,
    LessonProgressValidationError,
)
from tests.conftest import NOW, build_course


def test_correct_index_must_point_at_an_option() -> None:
    with pytest.raises(ValueError, match="correct_index"):
        MultipleChoiceQuestion(
            id=uuid4(),
            assessment_id=uuid4(),
            prompt="?",
            options=("a", "b"),
            correct_index=2,
        )


def test_passing_score_is_a_percentage() -> None:
    with pytest.raises(ValueError, match="passing_score"):
        Assessment(id=uuid4(), course_id=uuid4(), level="course_final", title="F", passing_score=101)


def test_max_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError, match="max_attempts"):
        Assessment(id=uuid4(), course_id=uuid4(), level="course_final", title="F", max_attempts=0)


def test_lesson_positions_unique_within_module() -> None:
    module_id = uuid4()
    lessons = tuple(
        Lesson(id=uuid4(), module_id=module_id, title="L", kind="article", position=1)
        for _ in range(2)
    )
    with pytest.raises(ValueError, match="positions must be unique"):
        CurriculumModule(id=module_id, course_id=uuid4(), title="M", position=0, lessons=lessons)


def test_weights_shares_must_sum_to_one() -> None:
    with pytest.raises(ValueError):
        ProgressWeights(lesson_share=0.5, assessment_share=0.6)


def test_assessments_are_listed_in_course_order() -> None:
    sample = build_course()
    assert [a.level for a in sample.course.assessments()] == [
        "lesson_quiz",
        "module_assessment",
        "course_final",
    ]
    # Lesson quizzes gate their lesson instead of counting on their own
    assert [a.level for a in sample.course.required_assessments()] == [
        "module_assessment",
        "course_final",
    ]
    assert sample.course.lesson_for_quiz(sample.quiz_lesson.quiz.id) == sample.quiz_lesson  # type: ignore[union-attr]


def test_optional_final_is_not_a_required_item() -> None:
    sample = build_course(final_kwargs={"is_required": False})
    assert [a.level for a in sample.course.required_assessments()] == ["module_assessment"]


def test_attempt_deadline() -> None:
    attempt = AssessmentAttempt.new(
        assessment_id=uuid4(), user_id="u", enrollment_id=uuid4(), attempt_number=1, started_at=NOW
    )
    assert attempt.deadline(None) is None
    assert attempt.deadline(30) == NOW + 1800


def test_principal_ownership() -> None:
    learner = Principal(user_id="u-1", roles=frozenset({"user"}))
    admin = Principal(user_id="ops", roles=frozenset({"admin"}))
    assert learner.can_act_for("u-1") is True
    assert learner.can_act_for("u-2") is False
    assert admin.can_act_for("u-2") is True


# ---- error taxonomy ----


@pytest.mark.parametrize(
    ("error", "status", "code"),
    [
        (LessonProgressValidationError("x"), 422, "lesson_progress_validation"),
        (AttemptLimitExceededError("x"), 409, "attempt_limit_exceeded"),
        (AssessmentUnavailableError("x"), 403, "assessment_unavailable"),
        (EnrollmentNotFoundError("x"), 404, "enrollment_not_found"),
    ],
)
def test_error_families_map_to_statuses(
    error: CourseTrackError, status: int, code: str
) -> None:
    assert error.status_code == status
    assert error.to_dict() == {"code": code, "message": "x"}


def test_not_eligible_error_carries_reasons() -> None:
    err = CertificateNotEligibleError("no", ("modules incomplete",))
    assert err.to_dict()["reasons"] == ["modules incomplete"]
