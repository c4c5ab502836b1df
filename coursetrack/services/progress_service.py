"""Progress aggregation and lesson-progress mutation.

compute_progress() is the pure core: curriculum + an enrollment's raw
LessonProgress rows + its attempts -> ProgressSnapshot.  It reads no
clock and iterates the curriculum in position order, so two calls over
the same rows produce equal snapshots.

Weighting (ProgressWeights on the course, defaults shown):

  progress_percent = round_half_up(
      100 * (completed lessons + w * passed required assessments)
          / (lessons + w * required assessments))          w = 1.0
  overall_score    = round_half_up(
      0.3 * lesson completion % + 0.7 * mean best % over required
      module/final assessments, unattempted counting as 0)

With no required assessments the overall score is the lesson completion
percentage.  Lesson quizzes are not separate items; they gate the
completion of their lesson instead.  A gating quiz still has to be
passed for all_required_assessments_passed.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import replace
from uuid import UUID

from coursetrack.core.config import SETTINGS
from coursetrack.core.metrics import LESSONS_COMPLETED
from coursetrack.models.curriculum import Assessment, Course, Lesson
from coursetrack.models.progress import (
    AssessmentAttempt,
    Enrollment,
    LessonProgress,
)
from coursetrack.models.snapshot import (
    AssessmentStatus,
    LessonStatus,
    ModuleProgress,
    ProgressSnapshot,
)
from coursetrack.repos.repositories import Repositories
from coursetrack.services import completion
from coursetrack.services.cache import invalidate_progress
from coursetrack.services.errors import (
    CourseNotFoundError,
    EnrollmentNotFoundError,
    LessonNotFoundError,
    LessonProgressValidationError,
    QuizRequiredError,
)
from coursetrack.services.scoring import best_attempt, round_half_up

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure aggregation
# ---------------------------------------------------------------------------


def assessment_status(
    assessment: Assessment,
    attempts: Sequence[AssessmentAttempt],
    *,
    abandoned_consumes_slot: bool = True,
) -> AssessmentStatus:
    best = best_attempt(attempts)
    return AssessmentStatus(
        assessment_id=assessment.id,
        attempted=best is not None,
        passed=best is not None and best.passed,
        best_percentage=best.percentage if best is not None else None,
        attempts_used=sum(
            1 for a in attempts if a.consumes_slot(abandoned_consumes_slot)
        ),
        in_progress=any(a.is_active for a in attempts),
    )


def compute_progress(
    course: Course,
    enrollment: Enrollment,
    progress_rows: Iterable[LessonProgress],
    attempts: Iterable[AssessmentAttempt],
    *,
    abandoned_consumes_slot: bool = True,
) -> ProgressSnapshot:
    progress_map = {p.lesson_id: p for p in progress_rows}

    by_assessment: dict[UUID, list[AssessmentAttempt]] = defaultdict(list)
    for a in attempts:
        by_assessment[a.assessment_id].append(a)

    statuses = {
        a.id: assessment_status(
            a,
            by_assessment.get(a.id, []),
            abandoned_consumes_slot=abandoned_consumes_slot,
        )
        for a in course.assessments()
    }
    passed_ids = {aid for aid, s in statuses.items() if s.passed}

    modules: list[ModuleProgress] = []
    module_completion: dict[UUID, bool] = {}
    completed_lessons = 0
    total_lessons = 0

    for module in course.ordered_modules():
        lesson_statuses = []
        for lesson in module.ordered_lessons():
            quiz_passed = lesson.quiz is not None and lesson.quiz.id in passed_ids
            done = completion.is_lesson_complete(
                lesson, progress_map.get(lesson.id), quiz_passed=quiz_passed
            )
            lesson_statuses.append(LessonStatus(lesson_id=lesson.id, completed=done))

        module_done = completion.is_module_complete(
            module, progress_map, passed_assessment_ids=passed_ids
        )
        module_completion[module.id] = module_done
        done_here = sum(1 for s in lesson_statuses if s.completed)
        completed_lessons += done_here
        total_lessons += len(lesson_statuses)
        modules.append(
            ModuleProgress(
                module_id=module.id,
                completed=module_done,
                lessons=tuple(lesson_statuses),
                completed_lessons=done_here,
                total_lessons=len(lesson_statuses),
                assessment=(
                    statuses[module.assessment.id]
                    if module.assessment is not None
                    else None
                ),
            )
        )

    required = course.required_assessments()
    passed_required = sum(1 for a in required if statuses[a.id].passed)
    weights = course.weights

    denominator = total_lessons + weights.assessment_item_weight * len(required)
    if denominator > 0:
        numerator = completed_lessons + weights.assessment_item_weight * passed_required
        progress_percent = round_half_up(100 * numerator / denominator)
    else:
        progress_percent = 0

    lesson_pct = 100 * completed_lessons / total_lessons if total_lessons else 0.0
    if required:
        mean_best = sum(statuses[a.id].best_percentage or 0 for a in required) / len(
            required
        )
        overall_score = round_half_up(
            weights.lesson_share * lesson_pct + weights.assessment_share * mean_best
        )
    else:
        overall_score = round_half_up(lesson_pct)

    final_status = (
        statuses[course.final_assessment.id]
        if course.final_assessment is not None
        else None
    )
    # Gating lesson quizzes are not progress items but still have to be passed
    gating_quizzes = [
        lesson.quiz
        for lesson in course.lessons()
        if lesson.quiz is not None and completion.quiz_gates_completion(lesson)
    ]
    all_required_passed = passed_required == len(required) and all(
        statuses[q.id].passed for q in gating_quizzes
    )
    course_complete = completion.is_course_complete(
        course,
        module_completion,
        final_status,
        course.certificate_policy,
        assessments_passed=all_required_passed,
    )

    return ProgressSnapshot(
        enrollment_id=enrollment.id,
        course_id=course.id,
        progress_percent=progress_percent,
        overall_score=overall_score,
        completed_lessons=completed_lessons,
        total_lessons=total_lessons,
        completed_assessments=passed_required,
        total_assessments=len(required),
        modules=tuple(modules),
        final_assessment=final_status,
        all_modules_complete=all(module_completion.values()),
        all_required_assessments_passed=all_required_passed,
        course_complete=course_complete,
        final_assessment_required=completion.final_assessment_required(
            course, course.certificate_policy
        ),
    )


# ---------------------------------------------------------------------------
# Repository-backed operations
# ---------------------------------------------------------------------------


async def load_enrollment(
    repos: Repositories, enrollment_id: UUID
) -> tuple[Enrollment, Course]:
    enrollment = await repos.enrollments.get(enrollment_id)
    if enrollment is None:
        raise EnrollmentNotFoundError(f"enrollment {enrollment_id} not found")
    course = await repos.curriculum.get_course(enrollment.course_id)
    if course is None:
        raise CourseNotFoundError(f"course {enrollment.course_id} not found")
    return enrollment, course


async def get_progress(repos: Repositories, enrollment_id: UUID) -> ProgressSnapshot:
    enrollment, course = await load_enrollment(repos, enrollment_id)
    rows = await repos.lesson_progress.list_for_enrollment(enrollment_id)
    attempts = await repos.attempts.list_for_enrollment(enrollment_id)
    return compute_progress(
        course,
        enrollment,
        rows,
        attempts,
        abandoned_consumes_slot=SETTINGS.abandoned_attempts_consume_slot,
    )


async def refresh_enrollment(
    repos: Repositories, enrollment_id: UUID, now: int
) -> ProgressSnapshot:
    """Drop the cached snapshot and record course completion the first time it happens."""
    await invalidate_progress(repos, enrollment_id)
    snapshot = await get_progress(repos, enrollment_id)
    if snapshot.course_complete:
        if await repos.enrollments.mark_completed(enrollment_id, now):
            logger.info(
                "Enrollment completed enrollment_id=%s progress=%d%%",
                enrollment_id,
                snapshot.progress_percent,
            )
    return snapshot


async def _quiz_passed(
    repos: Repositories, enrollment: Enrollment, lesson: Lesson
) -> bool:
    if lesson.quiz is None:
        return False
    attempts = await repos.attempts.list_for(
        lesson.quiz.id, enrollment.user_id, enrollment.id
    )
    best = best_attempt(attempts)
    return best is not None and best.passed


def _validate_update(
    position: int | None,
    watch_duration: int | None,
    video_percent_watched: int | None,
    resources_viewed: Sequence[str] | None,
) -> None:
    problems = []
    if position is not None and position < 0:
        problems.append("position must be >= 0")
    if watch_duration is not None and watch_duration < 0:
        problems.append("watch_duration must be >= 0")
    if video_percent_watched is not None and not 0 <= video_percent_watched <= 100:
        problems.append("video_percent_watched must be within 0..100")
    if resources_viewed is not None and any(
        not isinstance(r, str) or not r for r in resources_viewed
    ):
        problems.append("resources_viewed must be non-empty strings")
    if problems:
        raise LessonProgressValidationError("; ".join(problems))


async def mark_lesson_progress(
    repos: Repositories,
    enrollment_id: UUID,
    lesson_id: UUID,
    now: int,
    *,
    position: int | None = None,
    watch_duration: int | None = None,
    video_percent_watched: int | None = None,
    resources_viewed: Sequence[str] | None = None,
    completed: bool | None = None,
    occurred_at: int | None = None,
    completion_threshold: int | None = None,
) -> LessonProgress:
    """Apply one client progress event to the (enrollment, lesson) row.

    - position: last write wins by ``occurred_at`` (defaults to ``now``)
    - watch_duration: the client's running total; never decreases
    - completion: sticky; explicit completion of a lesson whose required
      quiz has not been passed raises QuizRequiredError
    - a video lesson completes itself once the watched percentage
      reaches ``completion_threshold`` (VIDEO_COMPLETION_THRESHOLD)
    """
    _validate_update(position, watch_duration, video_percent_watched, resources_viewed)
    threshold = (
        completion_threshold
        if completion_threshold is not None
        else SETTINGS.video_completion_threshold
    )

    enrollment, course = await load_enrollment(repos, enrollment_id)
    lesson = course.find_lesson(lesson_id)
    if lesson is None:
        raise LessonNotFoundError(
            f"lesson {lesson_id} is not part of course {course.id}"
        )
    rules = lesson.completion_rules
    if rules.require_video_watched:
        # Never auto-complete below the lesson's own watch rule
        threshold = max(threshold, rules.min_video_watch_percentage)

    existing = await repos.lesson_progress.get(enrollment_id, lesson_id)
    updated = existing or LessonProgress.new(
        enrollment_id=enrollment_id, lesson_id=lesson_id
    )
    tick_at = occurred_at if occurred_at is not None else now

    if position is not None and (
        updated.position_updated_at is None or tick_at >= updated.position_updated_at
    ):
        updated = replace(updated, last_position=position, position_updated_at=tick_at)
    if watch_duration is not None and watch_duration > updated.watch_duration:
        updated = replace(updated, watch_duration=watch_duration)
    if (
        video_percent_watched is not None
        and video_percent_watched > updated.video_percent_watched
    ):
        updated = replace(updated, video_percent_watched=video_percent_watched)
    if lesson.duration_seconds:
        derived = completion.watched_percentage(lesson, updated)
        if derived > updated.video_percent_watched:
            updated = replace(updated, video_percent_watched=derived)
    if resources_viewed:
        merged = tuple(dict.fromkeys((*updated.resources_viewed, *resources_viewed)))
        updated = replace(updated, resources_viewed=merged)

    mark_done = False
    if completed and not updated.completed:
        if completion.quiz_gates_completion(lesson) and not await _quiz_passed(
            repos, enrollment, lesson
        ):
            raise QuizRequiredError(
                f"lesson {lesson_id} requires its quiz to be passed first"
            )
        mark_done = True
        if lesson.kind == "video" and lesson.completion_rules.require_video_watched:
            # "mark as done" stands in for having watched the video
            updated = replace(updated, video_percent_watched=100)
    elif (
        lesson.kind == "video"
        and not updated.completed
        and completion.watched_percentage(lesson, updated) >= threshold
    ):
        mark_done = True

    if mark_done:
        updated = replace(updated, completed=True, completed_at=now)
        LESSONS_COMPLETED.labels(kind=lesson.kind).inc()
        logger.info(
            "Lesson completed enrollment_id=%s lesson_id=%s kind=%s",
            enrollment_id,
            lesson_id,
            lesson.kind,
        )

    updated = replace(updated, updated_at=now)
    await repos.lesson_progress.upsert(updated)
    await refresh_enrollment(repos, enrollment_id, now)
    return updated


async def record_quiz_pass(
    repos: Repositories, enrollment_id: UUID, lesson: Lesson, now: int
) -> None:
    """A passed lesson quiz completes a quiz/assessment lesson."""
    if lesson.kind not in ("quiz", "assessment"):
        return
    existing = await repos.lesson_progress.get(enrollment_id, lesson.id)
    if existing is not None and existing.completed:
        return
    row = existing or LessonProgress.new(enrollment_id=enrollment_id, lesson_id=lesson.id)
    await repos.lesson_progress.upsert(
        replace(row, completed=True, completed_at=now, updated_at=now)
    )
    LESSONS_COMPLETED.labels(kind=lesson.kind).inc()
    logger.info(
        "Lesson completed by quiz pass enrollment_id=%s lesson_id=%s",
        enrollment_id,
        lesson.id,
    )
