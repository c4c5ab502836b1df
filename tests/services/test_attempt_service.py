from __future__ import annotations

import asyncio
from dataclasses import replace
from uuid import uuid4

import pytest

from coursetrack.models.curriculum import EssayQuestion
from coursetrack.repos.repositories import memory_repos
from coursetrack.services import attempt_service
from coursetrack.services.attempt_service import AttemptPolicy
from coursetrack.services.errors import (
    AnswerValidationError,
    AssessmentNotFoundError,
    AssessmentUnavailableError,
    AttemptAlreadyInProgressError,
    AttemptExpiredError,
    AttemptLimitExceededError,
    AttemptNotActiveError,
    AttemptNotCompletedError,
    AttemptValidationError,
    RetakeNotAllowedError,
)
from coursetrack.services.task_queue import MANUAL_GRADING, task_queue
from tests.conftest import NOW, answers_for, build_course, enroll, sample_value

repos = memory_repos
POLICY = AttemptPolicy()


def _start(assessment, enrollment, now: int = NOW, policy: AttemptPolicy = POLICY):
    return asyncio.run(
        attempt_service.start_attempt(
            repos, assessment.id, enrollment.user_id, enrollment.id, now, policy
        )
    ).attempt


def _submit(attempt, answers, now: int = NOW + 60, policy: AttemptPolicy = POLICY):
    return asyncio.run(
        attempt_service.submit_attempt(repos, attempt.id, answers, now, policy)
    )


def _in_progress_count(assessment, user_id: str) -> int:
    history = asyncio.run(repos.attempts.list_for(assessment.id, user_id))
    return sum(1 for a in history if a.is_active)


# ---- start ----


def test_start_creates_in_progress_attempt() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    assert attempt.status == "in_progress"
    assert attempt.started_at == NOW
    assert attempt.attempt_number == 1
    assert attempt.answers == {}


def test_second_start_while_in_progress_conflicts() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    _start(sample.module_assessment, enrollment)
    with pytest.raises(AttemptAlreadyInProgressError):
        _start(sample.module_assessment, enrollment, NOW + 5)


def test_concurrent_starts_leave_one_in_progress_attempt() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    assessment = sample.module_assessment

    async def race():
        return await asyncio.gather(
            *(
                attempt_service.start_attempt(
                    repos, assessment.id, enrollment.user_id, enrollment.id, NOW, POLICY
                )
                for _ in range(5)
            ),
            return_exceptions=True,
        )

    results = asyncio.run(race())
    started = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, AttemptAlreadyInProgressError)]
    assert len(started) == 1
    assert len(conflicts) == 4
    assert _in_progress_count(assessment, enrollment.user_id) == 1


def test_attempt_limit_after_one_completed_attempt() -> None:
    sample = build_course(module_assessment_kwargs={"max_attempts": 1})
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    _submit(attempt, answers_for(sample.module_assessment, correct=1))

    before = sample_value(
        "assessment_attempt_conflicts_total", {"code": "attempt_limit_exceeded"}
    )
    with pytest.raises(AttemptLimitExceededError):
        _start(sample.module_assessment, enrollment, NOW + 100)
    after = sample_value(
        "assessment_attempt_conflicts_total", {"code": "attempt_limit_exceeded"}
    )
    assert after - before == 1


def test_retake_not_allowed_wins_over_remaining_attempts() -> None:
    sample = build_course(
        module_assessment_kwargs={"allow_retake": False, "max_attempts": 5}
    )
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    _submit(attempt, answers_for(sample.module_assessment, correct=0))
    with pytest.raises(RetakeNotAllowedError):
        _start(sample.module_assessment, enrollment, NOW + 100)


def test_unavailable_outside_window() -> None:
    sample = build_course(
        module_assessment_kwargs={"available_from": NOW, "available_until": NOW + 1000}
    )
    enrollment = enroll(sample.course)
    with pytest.raises(AssessmentUnavailableError, match="not available yet"):
        _start(sample.module_assessment, enrollment, NOW - 1)
    with pytest.raises(AssessmentUnavailableError, match="deadline has passed"):
        _start(sample.module_assessment, enrollment, NOW + 1001)
    assert _start(sample.module_assessment, enrollment, NOW + 500).status == "in_progress"


def test_unknown_assessment_is_not_found() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    with pytest.raises(AssessmentNotFoundError):
        asyncio.run(
            attempt_service.start_attempt(
                repos, uuid4(), enrollment.user_id, enrollment.id, NOW, POLICY
            )
        )


def test_enrollment_from_another_course_is_rejected() -> None:
    sample = build_course()
    other = build_course()
    enrollment = enroll(other.course)
    memory_repos.curriculum.add_course(sample.course)
    with pytest.raises(AttemptValidationError):
        _start(sample.module_assessment, enrollment)


# ---- submit ----


def test_submit_scores_and_completes() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    answers = answers_for(sample.module_assessment, correct=3)

    done = _submit(attempt, answers, NOW + 90)
    assert done.status == "completed"
    assert done.score == 3
    assert done.max_score == 4
    assert done.percentage == 75
    assert done.passed is True
    assert done.completed_at == NOW + 90
    assert done.time_spent == 90


def test_submitted_answers_round_trip_through_history() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    answers = answers_for(sample.module_assessment, correct=2)
    _submit(attempt, answers)

    history = asyncio.run(
        attempt_service.list_attempts(
            repos, sample.module_assessment.id, enrollment.user_id
        )
    )
    assert history[0].answers == answers


def test_submit_twice_fails_loudly() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    _submit(attempt, answers_for(sample.module_assessment))
    with pytest.raises(AttemptNotActiveError):
        _submit(attempt, answers_for(sample.module_assessment, correct=0))
    stored = asyncio.run(repos.attempts.get(attempt.id))
    assert stored is not None
    assert stored.percentage == 100


def test_malformed_answers_leave_attempt_untouched() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    with pytest.raises(AnswerValidationError):
        _submit(attempt, {str(uuid4()): 0})
    stored = asyncio.run(repos.attempts.get(attempt.id))
    assert stored is not None
    assert stored.status == "in_progress"


def test_late_submission_is_rejected_and_abandons() -> None:
    sample = build_course(module_assessment_kwargs={"time_limit_minutes": 10})
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    with pytest.raises(AttemptExpiredError):
        _submit(attempt, answers_for(sample.module_assessment), NOW + 601)
    stored = asyncio.run(repos.attempts.get(attempt.id))
    assert stored is not None
    assert stored.status == "abandoned"
    assert stored.abandon_reason == "expired"
    assert stored.passed is False


def test_grace_period_accepts_slightly_late_submission() -> None:
    sample = build_course(module_assessment_kwargs={"time_limit_minutes": 10})
    enrollment = enroll(sample.course)
    policy = AttemptPolicy(grace_seconds=30)
    attempt = _start(sample.module_assessment, enrollment, policy=policy)
    done = _submit(attempt, answers_for(sample.module_assessment), NOW + 620, policy)
    assert done.status == "completed"


def test_overdue_attempt_is_expired_lazily_on_next_start() -> None:
    sample = build_course(module_assessment_kwargs={"time_limit_minutes": 10})
    enrollment = enroll(sample.course)
    first = _start(sample.module_assessment, enrollment)
    second = _start(sample.module_assessment, enrollment, NOW + 601)
    assert second.attempt_number == 2
    stored = asyncio.run(repos.attempts.get(first.id))
    assert stored is not None
    assert stored.abandon_reason == "expired"


def test_essay_answers_queue_manual_grading() -> None:
    sample = build_course()
    quiz = sample.module_assessment
    essay = EssayQuestion(id=uuid4(), assessment_id=quiz.id, prompt="Explain", position=99)
    with_essay = replace(quiz, questions=(*quiz.questions, essay))
    module = replace(sample.course.modules[0], assessment=with_essay)
    course = replace(sample.course, modules=(module,))
    enrollment = enroll(course)

    attempt = _start(with_essay, enrollment)
    answers = {**answers_for(quiz), str(essay.id): "Because..."}
    done = _submit(attempt, answers)
    assert done.requires_manual_grading is True
    assert asyncio.run(task_queue.queue_length(MANUAL_GRADING)) == 1


# ---- expire / reset ----


def test_expire_then_submit_is_not_active() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)

    expired = asyncio.run(attempt_service.expire_attempt(repos, attempt.id, NOW + 30))
    assert expired.status == "abandoned"
    with pytest.raises(AttemptNotActiveError):
        _submit(attempt, answers_for(sample.module_assessment))


def test_expired_attempt_consumes_a_slot_by_default() -> None:
    sample = build_course(module_assessment_kwargs={"max_attempts": 1})
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    asyncio.run(attempt_service.expire_attempt(repos, attempt.id, NOW + 30))
    with pytest.raises(AttemptLimitExceededError):
        _start(sample.module_assessment, enrollment, NOW + 60)


def test_expired_attempt_slot_is_configurable() -> None:
    sample = build_course(module_assessment_kwargs={"max_attempts": 1})
    enrollment = enroll(sample.course)
    lenient = AttemptPolicy(abandoned_consumes_slot=False)
    attempt = _start(sample.module_assessment, enrollment, policy=lenient)
    asyncio.run(attempt_service.expire_attempt(repos, attempt.id, NOW + 30))
    assert _start(sample.module_assessment, enrollment, NOW + 60, lenient).attempt_number == 2


def test_reset_never_consumes_a_slot() -> None:
    sample = build_course(module_assessment_kwargs={"max_attempts": 1})
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    reset = asyncio.run(attempt_service.reset_attempt(repos, attempt.id, NOW + 30))
    assert reset.abandon_reason == "reset"
    assert _start(sample.module_assessment, enrollment, NOW + 60).status == "in_progress"


def test_expire_completed_attempt_conflicts() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    _submit(attempt, answers_for(sample.module_assessment))
    with pytest.raises(AttemptNotActiveError):
        asyncio.run(attempt_service.expire_attempt(repos, attempt.id, NOW + 100))


# ---- history and results ----


def test_history_is_oldest_first() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    for offset in (0, 100, 200):
        attempt = _start(sample.module_assessment, enrollment, NOW + offset)
        _submit(attempt, answers_for(sample.module_assessment), NOW + offset + 10)

    history = asyncio.run(
        attempt_service.list_attempts(
            repos, sample.module_assessment.id, enrollment.user_id
        )
    )
    assert [a.attempt_number for a in history] == [1, 2, 3]


def test_results_require_completed_attempt() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    with pytest.raises(AttemptNotCompletedError):
        asyncio.run(attempt_service.get_attempt_results(repos, attempt.id))


def test_results_hide_correct_answers_unless_enabled() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    _submit(attempt, answers_for(sample.module_assessment, correct=2))

    results = asyncio.run(attempt_service.get_attempt_results(repos, attempt.id))
    assert results.answers_revealed is False
    assert all(q.correct_answer is None for q in results.questions)
    assert [q.correct for q in results.questions] == [True, True, False, False]


def test_results_reveal_correct_answers_when_enabled() -> None:
    sample = build_course(module_assessment_kwargs={"show_correct_answers": True})
    enrollment = enroll(sample.course)
    attempt = _start(sample.module_assessment, enrollment)
    _submit(attempt, answers_for(sample.module_assessment, correct=0))

    results = asyncio.run(attempt_service.get_attempt_results(repos, attempt.id))
    assert results.answers_revealed is True
    assert [q.correct_answer for q in results.questions] == [0, 1, 2, 0]
