from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel, ConfigDict

from coursetrack.api.dependencies import (
    CurrentUser,
    Repos,
    load_owned_enrollment,
    now_epoch,
)
from coursetrack.services import certificate_service

router = APIRouter(prefix="/v1/enrollments", tags=["certificates"])


class EligibilityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    eligible: bool
    reasons: list[str]
    codes: list[str]


class CertificateRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    enrollment_id: UUID
    user_id: str
    requested_at: int
    status: str
    task_id: str | None


@router.get("/{enrollment_id}/certificate-eligibility", response_model=EligibilityOut)
async def get_certificate_eligibility(
    enrollment_id: UUID,
    principal: CurrentUser,
    repos: Repos,
) -> EligibilityOut:
    await load_owned_enrollment(repos, enrollment_id, principal)
    verdict = await certificate_service.get_eligibility(repos, enrollment_id)
    return EligibilityOut.model_validate(verdict)


@router.post(
    "/{enrollment_id}/certificate-requests",
    response_model=CertificateRequestOut,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_certificate(
    enrollment_id: UUID,
    principal: CurrentUser,
    repos: Repos,
) -> CertificateRequestOut:
    """Queue certificate issuance; 202 because issuance happens in the worker."""
    enrollment = await load_owned_enrollment(repos, enrollment_id, principal)
    request = await certificate_service.request_certificate(
        repos, enrollment_id, enrollment.user_id, now_epoch()
    )
    return CertificateRequestOut.model_validate(request)
