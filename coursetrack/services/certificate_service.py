"""Certificate eligibility and the request hand-off.

is_eligible() never stops at the first failure: the verdict lists every
unmet condition so a client can tell the learner exactly what is left.
Issuing the certificate itself belongs to an external service; this
module only enqueues a certificate_issuance task for eligible learners.
"""

from __future__ import annotations

import logging
from uuid import UUID

from coursetrack.core.metrics import CERTIFICATE_CHECKS
from coursetrack.models.curriculum import CertificatePolicy
from coursetrack.models.progress import CertificateRequest
from coursetrack.models.snapshot import EligibilityVerdict, ProgressSnapshot
from coursetrack.repos.repositories import Repositories
from coursetrack.services import progress_service
from coursetrack.services.errors import (
    CertificateAlreadyRequestedError,
    CertificateNotEligibleError,
)
from coursetrack.services.task_queue import CERTIFICATE_ISSUANCE, task_queue

logger = logging.getLogger(__name__)


def is_eligible(snapshot: ProgressSnapshot, policy: CertificatePolicy) -> EligibilityVerdict:
    codes: list[str] = []
    reasons: list[str] = []

    def unmet(code: str, reason: str) -> None:
        codes.append(code)
        reasons.append(reason)

    if policy.require_all_modules_complete and not snapshot.all_modules_complete:
        done = sum(1 for m in snapshot.modules if m.completed)
        unmet(
            "modules_incomplete",
            f"{done} of {len(snapshot.modules)} modules complete",
        )

    if (
        policy.require_all_assessments_passed
        and not snapshot.all_required_assessments_passed
    ):
        if snapshot.completed_assessments < snapshot.total_assessments:
            reason = (
                f"{snapshot.completed_assessments} of {snapshot.total_assessments} "
                "required assessments passed"
            )
        else:
            reason = "required lesson quizzes not passed"
        unmet("assessments_not_passed", reason)

    final = snapshot.final_assessment
    if policy.final_assessment_required or snapshot.final_assessment_required:
        if final is None:
            unmet(
                "final_assessment_missing",
                "a final assessment is required but the course has none",
            )
        elif not final.passed:
            unmet("final_assessment_not_passed", "final assessment not passed")

    minimum = policy.minimum_course_passing_score
    if minimum > 0:
        if final is not None:
            best = final.best_percentage or 0
            if best < minimum:
                unmet(
                    "final_assessment_score_below_minimum",
                    f"final assessment best score {best}% is below the required {minimum}%",
                )
        elif snapshot.overall_score < minimum:
            unmet(
                "course_score_below_minimum",
                f"course score {snapshot.overall_score}% is below the required {minimum}%",
            )

    return EligibilityVerdict(
        eligible=not codes, reasons=tuple(reasons), codes=tuple(codes)
    )


async def get_eligibility(repos: Repositories, enrollment_id: UUID) -> EligibilityVerdict:
    _, course = await progress_service.load_enrollment(repos, enrollment_id)
    snapshot = await progress_service.get_progress(repos, enrollment_id)
    verdict = is_eligible(snapshot, course.certificate_policy)
    CERTIFICATE_CHECKS.labels(
        result="eligible" if verdict.eligible else "ineligible"
    ).inc()
    return verdict


async def request_certificate(
    repos: Repositories, enrollment_id: UUID, user_id: str, now: int
) -> CertificateRequest:
    verdict = await get_eligibility(repos, enrollment_id)
    if not verdict.eligible:
        logger.warning(
            "Certificate request rejected enrollment_id=%s codes=%s",
            enrollment_id,
            ",".join(verdict.codes),
        )
        raise CertificateNotEligibleError(
            "enrollment is not eligible for a certificate", verdict.reasons
        )

    if await repos.certificate_requests.get_pending(enrollment_id) is not None:
        raise CertificateAlreadyRequestedError(
            "a certificate request is already pending for this enrollment"
        )

    task = await task_queue.enqueue(
        CERTIFICATE_ISSUANCE,
        {"enrollment_id": str(enrollment_id), "user_id": user_id, "requested_at": now},
    )
    request = CertificateRequest.new(
        enrollment_id=enrollment_id, user_id=user_id, requested_at=now, task_id=task.id
    )
    await repos.certificate_requests.add(request)
    logger.info(
        "Certificate requested enrollment_id=%s task_id=%s", enrollment_id, task.id
    )
    return request
