from __future__ import annotations

from typing import Protocol
from uuid import UUID

from coursetrack.models.progress import CertificateRequest


class CertificateRequestRepo(Protocol):
    async def get_pending(self, enrollment_id: UUID) -> CertificateRequest | None: ...
    async def add(self, request: CertificateRequest) -> None: ...


class InMemoryCertificateRequestRepo:
    def __init__(self) -> None:
        self._by_enrollment: dict[UUID, CertificateRequest] = {}

    def clear(self) -> None:
        self._by_enrollment.clear()

    async def get_pending(self, enrollment_id: UUID) -> CertificateRequest | None:
        req = self._by_enrollment.get(enrollment_id)
        if req is None or req.status != "pending":
            return None
        return req

    async def add(self, request: CertificateRequest) -> None:
        if await self.get_pending(request.enrollment_id) is not None:
            raise ValueError("certificate request already pending")
        self._by_enrollment[request.enrollment_id] = request
