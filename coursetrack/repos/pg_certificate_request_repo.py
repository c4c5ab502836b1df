"""PostgreSQL implementation of CertificateRequestRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursetrack.db.tables import CertificateRequestRow
from coursetrack.models.progress import CertificateRequest


class PgCertificateRequestRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_pending(self, enrollment_id: UUID) -> CertificateRequest | None:
        stmt = select(CertificateRequestRow).where(
            CertificateRequestRow.enrollment_id == enrollment_id,
            CertificateRequestRow.status == "pending",
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return CertificateRequest(
            id=row.id,
            enrollment_id=row.enrollment_id,
            user_id=row.user_id,
            requested_at=row.requested_at,
            status=row.status,  # type: ignore[arg-type]
            task_id=row.task_id,
        )

    async def add(self, request: CertificateRequest) -> None:
        self._session.add(
            CertificateRequestRow(
                id=request.id,
                enrollment_id=request.enrollment_id,
                user_id=request.user_id,
                requested_at=request.requested_at,
                status=request.status,
                task_id=request.task_id,
            )
        )
        await self._session.flush()
