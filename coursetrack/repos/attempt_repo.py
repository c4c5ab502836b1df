from __future__ import annotations

from typing import Protocol
from uuid import UUID

from coursetrack.models.progress import AssessmentAttempt
from coursetrack.services.errors import AttemptAlreadyInProgressError


class AttemptRepo(Protocol):
    async def get(self, attempt_id: UUID) -> AssessmentAttempt | None: ...
    async def list_for(
        self, assessment_id: UUID, user_id: str, enrollment_id: UUID | None = None
    ) -> list[AssessmentAttempt]: ...
    async def list_for_enrollment(self, enrollment_id: UUID) -> list[AssessmentAttempt]: ...

    async def create_in_progress(self, attempt: AssessmentAttempt) -> None:
        """Insert a new in-progress attempt.

        Must raise AttemptAlreadyInProgressError if the same user already
        has an in-progress attempt at the same assessment.  This is the
        serializing guard for concurrent starts.
        """
        ...

    async def transition(self, attempt: AssessmentAttempt) -> bool:
        """Store ``attempt`` only if the stored row is still in progress.

        Returns False when another writer finished the attempt first.
        """
        ...


def _history_order(a: AssessmentAttempt) -> tuple[int, int]:
    return (a.started_at, a.attempt_number)


class InMemoryAttemptRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, AssessmentAttempt] = {}

    def clear(self) -> None:
        self._by_id.clear()

    async def get(self, attempt_id: UUID) -> AssessmentAttempt | None:
        return self._by_id.get(attempt_id)

    async def list_for(
        self, assessment_id: UUID, user_id: str, enrollment_id: UUID | None = None
    ) -> list[AssessmentAttempt]:
        rows = [
            a
            for a in self._by_id.values()
            if a.assessment_id == assessment_id
            and a.user_id == user_id
            and (enrollment_id is None or a.enrollment_id == enrollment_id)
        ]
        return sorted(rows, key=_history_order)

    async def list_for_enrollment(self, enrollment_id: UUID) -> list[AssessmentAttempt]:
        rows = [a for a in self._by_id.values() if a.enrollment_id == enrollment_id]
        return sorted(rows, key=_history_order)

    async def create_in_progress(self, attempt: AssessmentAttempt) -> None:
        # Check and insert with no await in between: on a single event loop
        # no other coroutine can interleave here.
        for existing in self._by_id.values():
            if (
                existing.is_active
                and existing.user_id == attempt.user_id
                and existing.assessment_id == attempt.assessment_id
            ):
                raise AttemptAlreadyInProgressError(
                    f"attempt {existing.id} is already in progress"
                )
        self._by_id[attempt.id] = attempt

    async def transition(self, attempt: AssessmentAttempt) -> bool:
        current = self._by_id.get(attempt.id)
        if current is None or not current.is_active:
            return False
        self._by_id[attempt.id] = attempt
        return True
