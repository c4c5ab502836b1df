from __future__ import annotations

from typing import Protocol
from uuid import UUID

from coursetrack.models.progress import LessonProgress


class LessonProgressRepo(Protocol):
    async def get(self, enrollment_id: UUID, lesson_id: UUID) -> LessonProgress | None: ...
    async def list_for_enrollment(self, enrollment_id: UUID) -> list[LessonProgress]: ...
    async def upsert(self, progress: LessonProgress) -> None: ...


class InMemoryLessonProgressRepo:
    def __init__(self) -> None:
        self._rows: dict[tuple[UUID, UUID], LessonProgress] = {}

    def clear(self) -> None:
        self._rows.clear()

    async def get(self, enrollment_id: UUID, lesson_id: UUID) -> LessonProgress | None:
        return self._rows.get((enrollment_id, lesson_id))

    async def list_for_enrollment(self, enrollment_id: UUID) -> list[LessonProgress]:
        rows = [p for (eid, _), p in self._rows.items() if eid == enrollment_id]
        return sorted(rows, key=lambda p: str(p.lesson_id))

    async def upsert(self, progress: LessonProgress) -> None:
        self._rows[(progress.enrollment_id, progress.lesson_id)] = progress
