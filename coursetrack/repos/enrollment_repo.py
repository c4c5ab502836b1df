from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from coursetrack.models.progress import Enrollment


class EnrollmentRepo(Protocol):
    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def add(self, enrollment: Enrollment) -> None: ...
    async def mark_completed(self, enrollment_id: UUID, completed_at: int) -> bool: ...


class InMemoryEnrollmentRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Enrollment] = {}

    def clear(self) -> None:
        self._by_id.clear()

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        return self._by_id.get(enrollment_id)

    async def add(self, enrollment: Enrollment) -> None:
        for existing in self._by_id.values():
            if (
                existing.user_id == enrollment.user_id
                and existing.course_id == enrollment.course_id
            ):
                raise ValueError("user already enrolled in course")
        self._by_id[enrollment.id] = enrollment

    async def mark_completed(self, enrollment_id: UUID, completed_at: int) -> bool:
        """Flip active -> completed once; False if missing or already completed."""
        e = self._by_id.get(enrollment_id)
        if e is None or e.status == "completed":
            return False
        self._by_id[enrollment_id] = replace(
            e, status="completed", completed_at=completed_at
        )
        return True
