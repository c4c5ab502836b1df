"""Read models produced by the progress aggregator and eligibility check.

Nothing here is persisted.  A ProgressSnapshot is always recomputable
from the enrollment's LessonProgress and AssessmentAttempt rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class AssessmentStatus:
    assessment_id: UUID
    attempted: bool = False
    passed: bool = False
    best_percentage: int | None = None
    attempts_used: int = 0
    in_progress: bool = False


@dataclass(frozen=True, slots=True)
class LessonStatus:
    lesson_id: UUID
    completed: bool


@dataclass(frozen=True, slots=True)
class ModuleProgress:
    module_id: UUID
    completed: bool
    lessons: tuple[LessonStatus, ...]
    completed_lessons: int
    total_lessons: int
    assessment: AssessmentStatus | None = None


@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    enrollment_id: UUID
    course_id: UUID
    progress_percent: int
    overall_score: int
    completed_lessons: int
    total_lessons: int
    completed_assessments: int
    total_assessments: int
    modules: tuple[ModuleProgress, ...]
    final_assessment: AssessmentStatus | None
    all_modules_complete: bool
    all_required_assessments_passed: bool
    course_complete: bool
    final_assessment_required: bool = False


@dataclass(frozen=True, slots=True)
class EligibilityVerdict:
    eligible: bool
    reasons: tuple[str, ...] = ()
    codes: tuple[str, ...] = ()
