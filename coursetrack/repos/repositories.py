"""One handle on every repository a service call needs.

Services take a ``Repositories`` instead of five separate arguments.
In-memory bundles are process singletons; PostgreSQL bundles are built
per request around that request's session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from coursetrack.repos.attempt_repo import AttemptRepo, InMemoryAttemptRepo
from coursetrack.repos.certificate_request_repo import (
    CertificateRequestRepo,
    InMemoryCertificateRequestRepo,
)
from coursetrack.repos.curriculum_repo import CurriculumRepo, InMemoryCurriculumRepo
from coursetrack.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from coursetrack.repos.lesson_progress_repo import (
    InMemoryLessonProgressRepo,
    LessonProgressRepo,
)
from coursetrack.repos.pg_attempt_repo import PgAttemptRepo
from coursetrack.repos.pg_certificate_request_repo import PgCertificateRequestRepo
from coursetrack.repos.pg_curriculum_repo import PgCurriculumRepo
from coursetrack.repos.pg_enrollment_repo import PgEnrollmentRepo
from coursetrack.repos.pg_lesson_progress_repo import PgLessonProgressRepo


@dataclass(frozen=True, slots=True)
class Repositories:
    curriculum: CurriculumRepo
    enrollments: EnrollmentRepo
    lesson_progress: LessonProgressRepo
    attempts: AttemptRepo
    certificate_requests: CertificateRequestRepo
    # Enrollments whose cached snapshot is dropped again once this unit of work ends
    stale_progress: set[UUID] = field(default_factory=set)


def in_memory_repositories() -> Repositories:
    return Repositories(
        curriculum=InMemoryCurriculumRepo(),
        enrollments=InMemoryEnrollmentRepo(),
        lesson_progress=InMemoryLessonProgressRepo(),
        attempts=InMemoryAttemptRepo(),
        certificate_requests=InMemoryCertificateRequestRepo(),
    )


def pg_repositories(session: AsyncSession) -> Repositories:
    return Repositories(
        curriculum=PgCurriculumRepo(session),
        enrollments=PgEnrollmentRepo(session),
        lesson_progress=PgLessonProgressRepo(session),
        attempts=PgAttemptRepo(session),
        certificate_requests=PgCertificateRequestRepo(session),
    )


# ---------------------------------------------------------------------------
# Module-level singleton (used when DATABASE_URL is not configured)
# ---------------------------------------------------------------------------

memory_repos = in_memory_repositories()


def reset_memory_repos() -> None:
    """Empty every in-memory store (test isolation)."""
    for repo in (
        memory_repos.curriculum,
        memory_repos.enrollments,
        memory_repos.lesson_progress,
        memory_repos.attempts,
        memory_repos.certificate_requests,
    ):
        repo.clear()  # type: ignore[attr-defined]
    memory_repos.stale_progress.clear()
