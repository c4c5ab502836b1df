"""PostgreSQL implementation of LessonProgressRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from coursetrack.db.tables import LessonProgressRow
from coursetrack.models.progress import LessonProgress


class PgLessonProgressRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, enrollment_id: UUID, lesson_id: UUID) -> LessonProgress | None:
        stmt = select(LessonProgressRow).where(
            LessonProgressRow.enrollment_id == enrollment_id,
            LessonProgressRow.lesson_id == lesson_id,
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_progress(row)

    async def list_for_enrollment(self, enrollment_id: UUID) -> list[LessonProgress]:
        stmt = (
            select(LessonProgressRow)
            .where(LessonProgressRow.enrollment_id == enrollment_id)
            .order_by(LessonProgressRow.lesson_id)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_progress(r) for r in rows]

    async def upsert(self, progress: LessonProgress) -> None:
        values = {
            "enrollment_id": progress.enrollment_id,
            "lesson_id": progress.lesson_id,
            "completed": progress.completed,
            "completed_at": progress.completed_at,
            "last_position": progress.last_position,
            "watch_duration": progress.watch_duration,
            "video_percent_watched": progress.video_percent_watched,
            "resources_viewed": list(progress.resources_viewed),
            "position_updated_at": progress.position_updated_at,
            "updated_at": progress.updated_at,
        }
        stmt = insert(LessonProgressRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[LessonProgressRow.enrollment_id, LessonProgressRow.lesson_id],
            set_={k: v for k, v in values.items() if k not in ("enrollment_id", "lesson_id")},
        )
        await self._session.execute(stmt)


def _row_to_progress(row: LessonProgressRow) -> LessonProgress:
    return LessonProgress(
        enrollment_id=row.enrollment_id,
        lesson_id=row.lesson_id,
        completed=row.completed,
        completed_at=row.completed_at,
        last_position=row.last_position,
        watch_duration=row.watch_duration,
        video_percent_watched=row.video_percent_watched,
        resources_viewed=tuple(row.resources_viewed or ()),
        position_updated_at=row.position_updated_at,
        updated_at=row.updated_at,
    )
