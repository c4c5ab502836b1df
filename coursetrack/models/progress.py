from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union
from uuid import UUID, uuid4

EnrollmentStatus = Literal["active", "completed"]
AttemptStatus = Literal["in_progress", "completed", "abandoned"]
AbandonReason = Literal["expired", "reset"]

# multiple choice: option index, true/false: bool, short answer / essay: text
Answer = Union[int, bool, str]


@dataclass(frozen=True, slots=True)
class Enrollment:
    """Aggregation root: one user in one course.

    Owns every LessonProgress and AssessmentAttempt row for the pair.
    Created by the enrollment/payment flow; this service only reads it
    and flips it to completed.
    """

    id: UUID
    user_id: str
    course_id: UUID
    enrolled_at: int
    status: EnrollmentStatus = "active"
    completed_at: int | None = None

    @staticmethod
    def new(*, user_id: str, course_id: UUID, enrolled_at: int) -> Enrollment:
        return Enrollment(
            id=uuid4(), user_id=user_id, course_id=course_id, enrolled_at=enrolled_at
        )


@dataclass(frozen=True, slots=True)
class LessonProgress:
    """One row per (enrollment, lesson), created on first interaction."""

    enrollment_id: UUID
    lesson_id: UUID
    completed: bool = False
    completed_at: int | None = None
    last_position: int = 0  # seconds into the video
    watch_duration: int = 0  # accumulated seconds watched
    video_percent_watched: int = 0
    resources_viewed: tuple[str, ...] = ()
    position_updated_at: int | None = None
    updated_at: int | None = None

    @staticmethod
    def new(*, enrollment_id: UUID, lesson_id: UUID) -> LessonProgress:
        return LessonProgress(enrollment_id=enrollment_id, lesson_id=lesson_id)


@dataclass(frozen=True, slots=True)
class AssessmentAttempt:
    """One pass through an assessment.

    Terminal once status leaves in_progress; every later change goes
    through a repository compare-and-set on status == "in_progress".
    """

    id: UUID
    assessment_id: UUID
    user_id: str
    enrollment_id: UUID
    attempt_number: int
    started_at: int
    status: AttemptStatus = "in_progress"
    score: int = 0
    max_score: int = 0
    percentage: int = 0
    passed: bool = False
    completed_at: int | None = None
    time_spent: int | None = None  # seconds
    answers: dict[str, Answer] = field(default_factory=dict)
    requires_manual_grading: bool = False
    abandon_reason: AbandonReason | None = None

    @staticmethod
    def new(
        *,
        assessment_id: UUID,
        user_id: str,
        enrollment_id: UUID,
        attempt_number: int,
        started_at: int,
    ) -> AssessmentAttempt:
        return AssessmentAttempt(
            id=uuid4(),
            assessment_id=assessment_id,
            user_id=user_id,
            enrollment_id=enrollment_id,
            attempt_number=attempt_number,
            started_at=started_at,
        )

    @property
    def is_active(self) -> bool:
        return self.status == "in_progress"

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    def deadline(self, time_limit_minutes: int | None) -> int | None:
        if time_limit_minutes is None:
            return None
        return self.started_at + time_limit_minutes * 60

    def consumes_slot(self, abandoned_consumes_slot: bool = True) -> bool:
        """Whether this attempt counts against max_attempts.

        Administrative resets never do; expiry does unless switched off.
        """
        if self.status != "abandoned":
            return True
        return self.abandon_reason == "expired" and abandoned_consumes_slot


@dataclass(frozen=True, slots=True)
class CertificateRequest:
    id: UUID
    enrollment_id: UUID
    user_id: str
    requested_at: int
    status: Literal["pending"] = "pending"
    task_id: str | None = None

    @staticmethod
    def new(
        *, enrollment_id: UUID, user_id: str, requested_at: int, task_id: str | None
    ) -> CertificateRequest:
        return CertificateRequest(
            id=uuid4(),
            enrollment_id=enrollment_id,
            user_id=user_id,
            requested_at=requested_at,
            task_id=task_id,
        )
