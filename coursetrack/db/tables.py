"""SQLAlchemy table definitions.

Persistence shapes for the frozen dataclasses in coursetrack/models/.
Repos convert rows to domain objects; nothing outside coursetrack/repos
touches these classes.

Curriculum tables are written by the authoring system and only read
here.  Enrollment-owned tables cascade on enrollment delete.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from coursetrack.db.engine import Base

# --- Curriculum (read-only to this service) ---


class CourseRow(Base):
    __tablename__ = "courses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    # certificate policy
    final_assessment_required: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    minimum_course_passing_score: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    require_all_modules_complete: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    require_all_assessments_passed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    # progress weighting
    lesson_share: Mapped[float] = mapped_column(Float, nullable=False, default=0.3)
    assessment_share: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.7
    )
    assessment_item_weight: Mapped[float] = mapped_column(
        Float, nullable=False, default=1.0
    )


class CourseModuleRow(Base):
    __tablename__ = "course_modules"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)


class LessonRow(Base):
    __tablename__ = "lessons"
    __table_args__ = (UniqueConstraint("module_id", "position"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    module_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("course_modules.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    kind: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # video|article|quiz|assessment
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quiz_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    require_video_watched: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    min_video_watch_percentage: Mapped[int] = mapped_column(
        Integer, nullable=False, default=90
    )
    require_quiz_passed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    require_resources_viewed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )


class AssessmentRow(Base):
    __tablename__ = "assessments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    level: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # lesson_quiz|module_assessment|course_final
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    passing_score: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    max_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_limit_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_correct_answers: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    allow_retake: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    negative_marking: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    available_from: Mapped[int | None] = mapped_column(Integer, nullable=True)
    available_until: Mapped[int | None] = mapped_column(Integer, nullable=True)
    module_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("course_modules.id", ondelete="CASCADE"),
        nullable=True,
    )
    lesson_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("lessons.id", ondelete="CASCADE"), nullable=True
    )


class AssessmentQuestionRow(Base):
    __tablename__ = "assessment_questions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    assessment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("assessments.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[str] = mapped_column(
        String(32), nullable=False
    )  # multiple_choice|true_false|short_answer|essay
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    negative_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Type-specific answer key: {"options": [...], "correct_index": 2},
    # {"correct": true}, {"correct_text": "..."} or {"rubric_notes": "..."}
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)


# --- Enrollment-owned progress ---


class EnrollmentRow(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("user_id", "course_id"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(320), nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("courses.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="active"
    )  # active|completed
    enrolled_at: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)


class LessonProgressRow(Base):
    __tablename__ = "lesson_progress"

    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        primary_key=True,
    )
    lesson_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("lessons.id"), primary_key=True
    )
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    watch_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    video_percent_watched: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    resources_viewed: Mapped[list[str]] = mapped_column(
        ARRAY(String), nullable=False, default=list
    )
    position_updated_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[int | None] = mapped_column(Integer, nullable=True)


class AssessmentAttemptRow(Base):
    __tablename__ = "assessment_attempts"
    __table_args__ = (
        # At most one in-progress attempt per (user, assessment); concurrent
        # starts collide here and the loser gets an IntegrityError.
        Index(
            "uq_assessment_attempts_one_in_progress",
            "user_id",
            "assessment_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
        ),
        Index("ix_assessment_attempts_enrollment", "enrollment_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    assessment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("assessments.id"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(320), nullable=False)
    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        nullable=False,
    )
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="in_progress"
    )  # in_progress|completed|abandoned
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_spent: Mapped[int | None] = mapped_column(Integer, nullable=True)
    answers: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    requires_manual_grading: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    abandon_reason: Mapped[str | None] = mapped_column(
        String(32), nullable=True
    )  # expired|reset


class CertificateRequestRow(Base):
    __tablename__ = "certificate_requests"
    __table_args__ = (
        Index(
            "uq_certificate_requests_one_pending",
            "enrollment_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    enrollment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enrollments.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(320), nullable=False)
    requested_at: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    task_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
