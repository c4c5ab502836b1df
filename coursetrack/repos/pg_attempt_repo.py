"""PostgreSQL implementation of AttemptRepo.

The one-in-progress-attempt rule is a partial unique index
(uq_assessment_attempts_one_in_progress); terminal transitions are
compare-and-set updates guarded on status = 'in_progress'.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coursetrack.db.tables import AssessmentAttemptRow
from coursetrack.models.progress import AssessmentAttempt
from coursetrack.services.errors import AttemptAlreadyInProgressError

_IN_PROGRESS_INDEX = "uq_assessment_attempts_one_in_progress"


class PgAttemptRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, attempt_id: UUID) -> AssessmentAttempt | None:
        stmt = select(AssessmentAttemptRow).where(AssessmentAttemptRow.id == attempt_id)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_attempt(row)

    async def list_for(
        self, assessment_id: UUID, user_id: str, enrollment_id: UUID | None = None
    ) -> list[AssessmentAttempt]:
        stmt = select(AssessmentAttemptRow).where(
            AssessmentAttemptRow.assessment_id == assessment_id,
            AssessmentAttemptRow.user_id == user_id,
        )
        if enrollment_id is not None:
            stmt = stmt.where(AssessmentAttemptRow.enrollment_id == enrollment_id)
        stmt = stmt.order_by(
            AssessmentAttemptRow.started_at, AssessmentAttemptRow.attempt_number
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def list_for_enrollment(self, enrollment_id: UUID) -> list[AssessmentAttempt]:
        stmt = (
            select(AssessmentAttemptRow)
            .where(AssessmentAttemptRow.enrollment_id == enrollment_id)
            .order_by(AssessmentAttemptRow.started_at, AssessmentAttemptRow.attempt_number)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_attempt(r) for r in rows]

    async def create_in_progress(self, attempt: AssessmentAttempt) -> None:
        row = AssessmentAttemptRow(
            id=attempt.id,
            assessment_id=attempt.assessment_id,
            user_id=attempt.user_id,
            enrollment_id=attempt.enrollment_id,
            attempt_number=attempt.attempt_number,
            status=attempt.status,
            started_at=attempt.started_at,
            answers=dict(attempt.answers),
        )
        try:
            # SAVEPOINT so a collision leaves the request transaction usable
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError as exc:
            if _IN_PROGRESS_INDEX in str(exc.orig):
                raise AttemptAlreadyInProgressError(
                    "an attempt at this assessment is already in progress"
                ) from None
            raise

    async def transition(self, attempt: AssessmentAttempt) -> bool:
        stmt = (
            update(AssessmentAttemptRow)
            .where(AssessmentAttemptRow.id == attempt.id)
            .where(AssessmentAttemptRow.status == "in_progress")
            .values(
                status=attempt.status,
                score=attempt.score,
                max_score=attempt.max_score,
                percentage=attempt.percentage,
                passed=attempt.passed,
                completed_at=attempt.completed_at,
                time_spent=attempt.time_spent,
                answers=dict(attempt.answers),
                requires_manual_grading=attempt.requires_manual_grading,
                abandon_reason=attempt.abandon_reason,
            )
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1


def _row_to_attempt(row: AssessmentAttemptRow) -> AssessmentAttempt:
    return AssessmentAttempt(
        id=row.id,
        assessment_id=row.assessment_id,
        user_id=row.user_id,
        enrollment_id=row.enrollment_id,
        attempt_number=row.attempt_number,
        started_at=row.started_at,
        status=row.status,  # type: ignore[arg-type]
        score=row.score,
        max_score=row.max_score,
        percentage=row.percentage,
        passed=row.passed,
        completed_at=row.completed_at,
        time_spent=row.time_spent,
        answers=dict(row.answers or {}),
        requires_manual_grading=row.requires_manual_grading,
        abandon_reason=row.abandon_reason,  # type: ignore[arg-type]
    )
