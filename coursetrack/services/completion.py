"""Completion rules: when does a lesson, module or course count as done.

Pure functions over curriculum definitions and progress records.  No
I/O, no clock; callers pass in whatever attempt outcomes matter (as
sets of passed assessment ids or an AssessmentStatus).
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from uuid import UUID

from coursetrack.models.curriculum import (
    CertificatePolicy,
    Course,
    CurriculumModule,
    Lesson,
)
from coursetrack.models.progress import LessonProgress
from coursetrack.models.snapshot import AssessmentStatus


def watched_percentage(lesson: Lesson, progress: LessonProgress | None) -> int:
    """Best known watched percentage for a video lesson, capped at 100.

    Uses the larger of the stored percentage and the one derived from
    accumulated watch time when the video length is known.
    """
    if progress is None:
        return 0
    pct = progress.video_percent_watched
    if lesson.duration_seconds:
        derived = progress.watch_duration * 100 // lesson.duration_seconds
        pct = max(pct, derived)
    return max(0, min(100, pct))


def quiz_gates_completion(lesson: Lesson) -> bool:
    """True when a passed attempt at the lesson's quiz is a completion condition.

    Informational quizzes (quiz_required=False) never gate.
    """
    if lesson.quiz is None or not lesson.quiz_required:
        return False
    return (
        lesson.kind in ("quiz", "assessment")
        or lesson.completion_rules.require_quiz_passed
    )


def is_lesson_complete(
    lesson: Lesson,
    progress: LessonProgress | None,
    *,
    quiz_passed: bool = False,
) -> bool:
    if progress is None or not progress.completed:
        return False

    rules = lesson.completion_rules
    if (
        lesson.kind == "video"
        and rules.require_video_watched
        and watched_percentage(lesson, progress) < rules.min_video_watch_percentage
    ):
        return False
    if quiz_gates_completion(lesson) and not quiz_passed:
        return False
    if rules.require_resources_viewed and not progress.resources_viewed:
        return False
    return True


def is_module_complete(
    module: CurriculumModule,
    progress_map: Mapping[UUID, LessonProgress],
    *,
    passed_assessment_ids: Collection[UUID] = frozenset(),
) -> bool:
    for lesson in module.lessons:
        quiz_passed = lesson.quiz is not None and lesson.quiz.id in passed_assessment_ids
        if not is_lesson_complete(
            lesson, progress_map.get(lesson.id), quiz_passed=quiz_passed
        ):
            return False

    assessment = module.assessment
    if assessment is not None and assessment.is_required:
        return assessment.id in passed_assessment_ids
    return True


def final_assessment_required(course: Course, policy: CertificatePolicy) -> bool:
    if policy.final_assessment_required:
        return True
    return course.final_assessment is not None and course.final_assessment.is_required


def is_course_complete(
    course: Course,
    module_completion: Mapping[UUID, bool],
    final_status: AssessmentStatus | None,
    policy: CertificatePolicy,
    *,
    assessments_passed: bool = True,
) -> bool:
    """Course-level completion under ``policy``.

    A course with no modules is vacuously complete on the module axis.
    A policy that demands a final assessment on a course without one can
    never be satisfied.
    """
    if policy.require_all_modules_complete and not all(
        module_completion.get(m.id, False) for m in course.modules
    ):
        return False

    if policy.require_all_assessments_passed and not assessments_passed:
        return False

    if final_assessment_required(course, policy):
        if course.final_assessment is None:
            return False
        if final_status is None or not final_status.passed:
            return False

    return True
