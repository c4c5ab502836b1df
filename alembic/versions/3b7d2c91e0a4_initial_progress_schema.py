"""initial progress schema

Revision ID: 3b7d2c91e0a4
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b7d2c91e0a4"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "courses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("slug", sa.String(length=255), nullable=False, unique=True),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("final_assessment_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("minimum_course_passing_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("require_all_modules_complete", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("require_all_assessments_passed", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("lesson_share", sa.Float(), nullable=False, server_default="0.3"),
        sa.Column("assessment_share", sa.Float(), nullable=False, server_default="0.7"),
        sa.Column("assessment_item_weight", sa.Float(), nullable=False, server_default="1.0"),
    )
    op.create_table(
        "course_modules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
    )
    op.create_table(
        "lessons",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "module_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("course_modules.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("quiz_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("require_video_watched", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("min_video_watch_percentage", sa.Integer(), nullable=False, server_default="90"),
        sa.Column("require_quiz_passed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("require_resources_viewed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("module_id", "position"),
    )
    op.create_table(
        "assessments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("level", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("passing_score", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("max_attempts", sa.Integer(), nullable=True),
        sa.Column("time_limit_minutes", sa.Integer(), nullable=True),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("show_correct_answers", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("allow_retake", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("negative_marking", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("available_from", sa.Integer(), nullable=True),
        sa.Column("available_until", sa.Integer(), nullable=True),
        sa.Column(
            "module_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("course_modules.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "lesson_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("lessons.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.CheckConstraint("passing_score BETWEEN 0 AND 100", name="ck_assessments_passing_score"),
        sa.CheckConstraint("max_attempts IS NULL OR max_attempts >= 1", name="ck_assessments_max_attempts"),
    )
    op.create_table(
        "assessment_questions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "assessment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("assessments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("negative_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default="{}"),
    )
    op.create_table(
        "enrollments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.String(length=320), nullable=False),
        sa.Column(
            "course_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("courses.id"),
            nullable=False,
        ),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
        sa.Column("enrolled_at", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.UniqueConstraint("user_id", "course_id"),
    )
    op.create_table(
        "lesson_progress",
        sa.Column(
            "enrollment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "lesson_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("lessons.id"),
            primary_key=True,
        ),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("last_position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("watch_duration", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("video_percent_watched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "resources_viewed",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("position_updated_at", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.Integer(), nullable=True),
    )
    op.create_table(
        "assessment_attempts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "assessment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("assessments.id"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=320), nullable=False),
        sa.Column(
            "enrollment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="in_progress"),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("passed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("started_at", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=True),
        sa.Column("time_spent", sa.Integer(), nullable=True),
        sa.Column("answers", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column(
            "requires_manual_grading", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("abandon_reason", sa.String(length=32), nullable=True),
    )
    op.create_index(
        "uq_assessment_attempts_one_in_progress",
        "assessment_attempts",
        ["user_id", "assessment_id"],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
    )
    op.create_index(
        "ix_assessment_attempts_enrollment", "assessment_attempts", ["enrollment_id"]
    )
    op.create_table(
        "certificate_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "enrollment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=320), nullable=False),
        sa.Column("requested_at", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("task_id", sa.String(length=64), nullable=True),
    )
    op.create_index(
        "uq_certificate_requests_one_pending",
        "certificate_requests",
        ["enrollment_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("uq_certificate_requests_one_pending", table_name="certificate_requests")
    op.drop_table("certificate_requests")
    op.drop_index("ix_assessment_attempts_enrollment", table_name="assessment_attempts")
    op.drop_index("uq_assessment_attempts_one_in_progress", table_name="assessment_attempts")
    op.drop_table("assessment_attempts")
    op.drop_table("lesson_progress")
    op.drop_table("enrollments")
    op.drop_table("assessment_questions")
    op.drop_table("assessments")
    op.drop_table("lessons")
    op.drop_table("course_modules")
    op.drop_table("courses")
