"""Assessment attempt lifecycle.

    in_progress --submit--> completed
    in_progress --expire/reset/late submit--> abandoned

Both end states are terminal.  Every operation takes ``now`` from the
caller; nothing here reads the wall clock.

Concurrency: at most one in-progress attempt per (user, assessment) is
enforced by AttemptRepo.create_in_progress, and every terminal
transition is a compare-and-set on status == "in_progress".  The checks
in start_attempt() are advisory; the repository has the final word.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from uuid import UUID

from coursetrack.core.config import SETTINGS, Settings
from coursetrack.core.metrics import (
    ATTEMPT_CONFLICTS,
    ATTEMPTS_FINISHED,
    ATTEMPTS_STARTED,
)
from coursetrack.models.curriculum import (
    Assessment,
    Course,
    MultipleChoiceQuestion,
    Question,
    ShortAnswerQuestion,
    TrueFalseQuestion,
)
from coursetrack.models.progress import (
    AbandonReason,
    Answer,
    AssessmentAttempt,
)
from coursetrack.repos.repositories import Repositories
from coursetrack.services import progress_service
from coursetrack.services.cache import invalidate_progress
from coursetrack.services.errors import (
    AssessmentNotFoundError,
    AssessmentUnavailableError,
    AttemptAlreadyInProgressError,
    AttemptExpiredError,
    AttemptLimitExceededError,
    AttemptNotActiveError,
    AttemptNotCompletedError,
    AttemptNotFoundError,
    AttemptValidationError,
    EnrollmentNotFoundError,
    RetakeNotAllowedError,
    StateConflict,
)
from coursetrack.services.scoring import score_answers, validate_answers
from coursetrack.services.task_queue import MANUAL_GRADING, task_queue

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AttemptPolicy:
    """Deployment-level attempt rules (per-assessment rules live on Assessment).

    abandoned_consumes_slot: attempts abandoned by time-limit expiry count
        against max_attempts.  Administrative resets never do.
    grace_seconds: tolerance past the time limit before a submission is
        rejected as late.
    """

    abandoned_consumes_slot: bool = True
    grace_seconds: int = 0

    @staticmethod
    def from_settings(settings: Settings) -> AttemptPolicy:
        return AttemptPolicy(
            abandoned_consumes_slot=settings.abandoned_attempts_consume_slot,
            grace_seconds=settings.attempt_grace_seconds,
        )


def default_policy() -> AttemptPolicy:
    return AttemptPolicy.from_settings(SETTINGS)


@dataclass(frozen=True, slots=True)
class StartedAttempt:
    attempt: AssessmentAttempt
    assessment: Assessment


@dataclass(frozen=True, slots=True)
class QuestionResult:
    question_id: str
    type: str
    prompt: str
    points: int
    answer: Answer | None
    correct: bool | None
    awarded: int
    correct_answer: Answer | None = None  # only when the assessment reveals it


@dataclass(frozen=True, slots=True)
class AttemptResults:
    attempt: AssessmentAttempt
    questions: tuple[QuestionResult, ...]
    answers_revealed: bool


def _conflict(err: StateConflict) -> StateConflict:
    ATTEMPT_CONFLICTS.labels(code=err.code).inc()
    logger.warning("Attempt conflict code=%s: %s", err.code, err.message)
    return err


def consumed_attempts(
    history: Sequence[AssessmentAttempt], policy: AttemptPolicy
) -> int:
    """Attempts that count against max_attempts."""
    return sum(1 for a in history if a.consumes_slot(policy.abandoned_consumes_slot))


def is_overdue(
    attempt: AssessmentAttempt, assessment: Assessment, now: int, policy: AttemptPolicy
) -> bool:
    deadline = attempt.deadline(assessment.time_limit_minutes)
    return deadline is not None and now > deadline + policy.grace_seconds


async def _load_assessment(
    repos: Repositories, assessment_id: UUID
) -> tuple[Course, Assessment]:
    course = await repos.curriculum.get_course_for_assessment(assessment_id)
    assessment = course.find_assessment(assessment_id) if course is not None else None
    if course is None or assessment is None:
        raise AssessmentNotFoundError(f"assessment {assessment_id} not found")
    return course, assessment


async def _load_attempt(repos: Repositories, attempt_id: UUID) -> AssessmentAttempt:
    attempt = await repos.attempts.get(attempt_id)
    if attempt is None:
        raise AttemptNotFoundError(f"attempt {attempt_id} not found")
    return attempt


async def _abandon(
    repos: Repositories,
    attempt: AssessmentAttempt,
    now: int,
    reason: AbandonReason,
) -> AssessmentAttempt | None:
    """in_progress -> abandoned; None when another writer got there first."""
    abandoned = replace(
        attempt,
        status="abandoned",
        abandon_reason=reason,
        passed=False,
        time_spent=max(0, now - attempt.started_at),
    )
    if not await repos.attempts.transition(abandoned):
        return None
    ATTEMPTS_FINISHED.labels(outcome=reason).inc()
    logger.info(
        "Attempt abandoned attempt_id=%s reason=%s user_id=%s",
        attempt.id,
        reason,
        attempt.user_id,
    )
    await invalidate_progress(repos, attempt.enrollment_id)
    return abandoned


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


async def start_attempt(
    repos: Repositories,
    assessment_id: UUID,
    user_id: str,
    enrollment_id: UUID,
    now: int,
    policy: AttemptPolicy | None = None,
) -> StartedAttempt:
    policy = policy or default_policy()
    course, assessment = await _load_assessment(repos, assessment_id)

    enrollment = await repos.enrollments.get(enrollment_id)
    if enrollment is None:
        raise EnrollmentNotFoundError(f"enrollment {enrollment_id} not found")
    if enrollment.user_id != user_id:
        raise AttemptValidationError("enrollment does not belong to this user")
    if enrollment.course_id != course.id:
        raise AttemptValidationError(
            f"assessment {assessment_id} is not part of the enrolled course"
        )

    if assessment.available_from is not None and now < assessment.available_from:
        raise AssessmentUnavailableError("assessment is not available yet")
    if assessment.available_until is not None and now > assessment.available_until:
        raise AssessmentUnavailableError("assessment deadline has passed")

    history = await repos.attempts.list_for(assessment_id, user_id)

    refreshed: list[AssessmentAttempt] = []
    for a in history:
        if a.is_active and is_overdue(a, assessment, now, policy):
            # Expire lazily: nobody called expire() before the deadline
            a = await _abandon(repos, a, now, "expired") or await _load_attempt(
                repos, a.id
            )
        refreshed.append(a)
    history = refreshed

    active = next((a for a in history if a.is_active), None)
    if active is not None:
        raise _conflict(
            AttemptAlreadyInProgressError(f"attempt {active.id} is already in progress")
        )

    if not assessment.allow_retake and any(a.is_completed for a in history):
        raise _conflict(
            RetakeNotAllowedError("this assessment does not allow retakes")
        )

    if assessment.max_attempts is not None:
        used = consumed_attempts(history, policy)
        if used >= assessment.max_attempts:
            raise _conflict(
                AttemptLimitExceededError(
                    f"maximum attempts ({assessment.max_attempts}) reached"
                )
            )

    attempt = AssessmentAttempt.new(
        assessment_id=assessment_id,
        user_id=user_id,
        enrollment_id=enrollment_id,
        attempt_number=len(history) + 1,
        started_at=now,
    )
    try:
        await repos.attempts.create_in_progress(attempt)
    except AttemptAlreadyInProgressError as err:
        raise _conflict(err) from None

    ATTEMPTS_STARTED.labels(level=assessment.level).inc()
    logger.info(
        "Attempt started attempt_id=%s assessment_id=%s user_id=%s number=%d",
        attempt.id,
        assessment_id,
        user_id,
        attempt.attempt_number,
    )
    await invalidate_progress(repos, enrollment_id)
    return StartedAttempt(attempt=attempt, assessment=assessment)


async def submit_attempt(
    repos: Repositories,
    attempt_id: UUID,
    answers: Mapping[str, object],
    now: int,
    policy: AttemptPolicy | None = None,
) -> AssessmentAttempt:
    policy = policy or default_policy()
    attempt = await _load_attempt(repos, attempt_id)
    course, assessment = await _load_assessment(repos, attempt.assessment_id)

    # Reject malformed input before touching any state
    clean = validate_answers(assessment, answers)

    if not attempt.is_active:
        raise _conflict(
            AttemptNotActiveError(f"attempt {attempt_id} is {attempt.status}")
        )

    if is_overdue(attempt, assessment, now, policy):
        if await _abandon(repos, attempt, now, "expired") is None:
            raise _conflict(
                AttemptNotActiveError(f"attempt {attempt_id} is no longer in progress")
            )
        raise _conflict(
            AttemptExpiredError(f"attempt {attempt_id} passed its time limit")
        )

    result = score_answers(assessment, clean)
    completed = replace(
        attempt,
        status="completed",
        score=result.score,
        max_score=result.max_score,
        percentage=result.percentage,
        passed=result.passed,
        completed_at=now,
        time_spent=max(0, now - attempt.started_at),
        answers=clean,
        requires_manual_grading=result.requires_manual_grading,
    )
    if not await repos.attempts.transition(completed):
        raise _conflict(
            AttemptNotActiveError(f"attempt {attempt_id} is no longer in progress")
        )

    ATTEMPTS_FINISHED.labels(outcome="passed" if result.passed else "failed").inc()
    logger.info(
        "Attempt submitted attempt_id=%s score=%d/%d percentage=%d passed=%s",
        attempt_id,
        result.score,
        result.max_score,
        result.percentage,
        result.passed,
    )

    if result.passed and assessment.level == "lesson_quiz":
        lesson = course.lesson_for_quiz(assessment.id)
        if lesson is not None:
            await progress_service.record_quiz_pass(
                repos, attempt.enrollment_id, lesson, now
            )

    if result.requires_manual_grading:
        task = await task_queue.enqueue(
            MANUAL_GRADING,
            {
                "attempt_id": str(attempt_id),
                "assessment_id": str(assessment.id),
                "user_id": attempt.user_id,
                "enrollment_id": str(attempt.enrollment_id),
                "question_ids": [
                    str(q.id) for q in assessment.questions if q.type == "essay"
                ],
            },
        )
        logger.info("Manual grading queued attempt_id=%s task_id=%s", attempt_id, task.id)

    await progress_service.refresh_enrollment(repos, attempt.enrollment_id, now)
    return completed


async def expire_attempt(
    repos: Repositories, attempt_id: UUID, now: int
) -> AssessmentAttempt:
    return await _end_attempt(repos, attempt_id, now, "expired")


async def reset_attempt(
    repos: Repositories, attempt_id: UUID, now: int
) -> AssessmentAttempt:
    """Administrative reset: abandons the attempt without consuming a slot."""
    return await _end_attempt(repos, attempt_id, now, "reset")


async def _end_attempt(
    repos: Repositories, attempt_id: UUID, now: int, reason: AbandonReason
) -> AssessmentAttempt:
    attempt = await _load_attempt(repos, attempt_id)
    if not attempt.is_active:
        raise _conflict(
            AttemptNotActiveError(f"attempt {attempt_id} is {attempt.status}")
        )
    abandoned = await _abandon(repos, attempt, now, reason)
    if abandoned is None:
        raise _conflict(
            AttemptNotActiveError(f"attempt {attempt_id} is no longer in progress")
        )
    return abandoned


async def list_attempts(
    repos: Repositories,
    assessment_id: UUID,
    user_id: str,
    enrollment_id: UUID | None = None,
) -> list[AssessmentAttempt]:
    """History oldest-first (started_at, then attempt_number)."""
    await _load_assessment(repos, assessment_id)
    return await repos.attempts.list_for(assessment_id, user_id, enrollment_id)


def correct_answer_of(question: Question) -> Answer | None:
    if isinstance(question, MultipleChoiceQuestion):
        return question.correct_index
    if isinstance(question, TrueFalseQuestion):
        return question.correct
    if isinstance(question, ShortAnswerQuestion):
        return question.correct_text
    return None


async def get_attempt_results(repos: Repositories, attempt_id: UUID) -> AttemptResults:
    attempt = await _load_attempt(repos, attempt_id)
    if not attempt.is_completed:
        raise _conflict(
            AttemptNotCompletedError(f"attempt {attempt_id} is {attempt.status}")
        )
    _, assessment = await _load_assessment(repos, attempt.assessment_id)

    reveal = assessment.show_correct_answers
    outcomes = {o.question_id: o for o in score_answers(assessment, attempt.answers).outcomes}
    questions = []
    for q in assessment.ordered_questions():
        key = str(q.id)
        outcome = outcomes[key]
        questions.append(
            QuestionResult(
                question_id=key,
                type=q.type,
                prompt=q.prompt,
                points=q.points,
                answer=attempt.answers.get(key),
                correct=outcome.correct,
                awarded=outcome.awarded,
                correct_answer=correct_answer_of(q) if reveal else None,
            )
        )
    return AttemptResults(
        attempt=attempt, questions=tuple(questions), answers_revealed=reveal
    )
