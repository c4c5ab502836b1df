from __future__ import annotations

import asyncio
from dataclasses import replace
from uuid import uuid4

import pytest

from coursetrack.models.curriculum import CertificatePolicy
from coursetrack.models.snapshot import AssessmentStatus, ModuleProgress, ProgressSnapshot
from coursetrack.repos.repositories import memory_repos
from coursetrack.services import attempt_service, certificate_service, progress_service
from coursetrack.services.attempt_service import AttemptPolicy
from coursetrack.services.errors import (
    CertificateAlreadyRequestedError,
    CertificateNotEligibleError,
)
from coursetrack.services.task_queue import CERTIFICATE_ISSUANCE, task_queue
from tests.conftest import NOW, answers_for, build_course, enroll, sample_value

repos = memory_repos


def _snapshot(
    *,
    modules_complete: bool = True,
    assessments_passed: bool = True,
    final: AssessmentStatus | None = None,
    overall_score: int = 100,
) -> ProgressSnapshot:
    module = ModuleProgress(
        module_id=uuid4(),
        completed=modules_complete,
        lessons=(),
        completed_lessons=0,
        total_lessons=0,
    )
    return ProgressSnapshot(
        enrollment_id=uuid4(),
        course_id=uuid4(),
        progress_percent=100,
        overall_score=overall_score,
        completed_lessons=0,
        total_lessons=0,
        completed_assessments=2 if assessments_passed else 1,
        total_assessments=2,
        modules=(module,),
        final_assessment=final,
        all_modules_complete=modules_complete,
        all_required_assessments_passed=assessments_passed,
        course_complete=modules_complete and assessments_passed,
    )


def _final(best: int | None, passed: bool) -> AssessmentStatus:
    return AssessmentStatus(
        assessment_id=uuid4(),
        attempted=best is not None,
        passed=passed,
        best_percentage=best,
        attempts_used=1 if best is not None else 0,
    )


# ---- pure evaluation ----


def test_everything_met_is_eligible() -> None:
    verdict = certificate_service.is_eligible(
        _snapshot(final=_final(90, True)), CertificatePolicy(final_assessment_required=True)
    )
    assert verdict.eligible is True
    assert verdict.reasons == ()


def test_final_score_below_minimum() -> None:
    policy = CertificatePolicy(
        final_assessment_required=True, minimum_course_passing_score=60
    )
    verdict = certificate_service.is_eligible(_snapshot(final=_final(55, True)), policy)
    assert verdict.eligible is False
    assert "final_assessment_score_below_minimum" in verdict.codes
    assert any("55%" in r for r in verdict.reasons)


def test_every_unmet_condition_is_listed() -> None:
    policy = CertificatePolicy(
        final_assessment_required=True, minimum_course_passing_score=60
    )
    verdict = certificate_service.is_eligible(
        _snapshot(modules_complete=False, assessments_passed=False, final=_final(None, False)),
        policy,
    )
    assert verdict.codes == (
        "modules_incomplete",
        "assessments_not_passed",
        "final_assessment_not_passed",
        "final_assessment_score_below_minimum",
    )
    assert len(verdict.reasons) == 4


def test_required_final_missing() -> None:
    verdict = certificate_service.is_eligible(
        _snapshot(final=None), CertificatePolicy(final_assessment_required=True)
    )
    assert verdict.codes == ("final_assessment_missing",)


def test_minimum_applies_to_course_score_without_final() -> None:
    verdict = certificate_service.is_eligible(
        _snapshot(overall_score=50), CertificatePolicy(minimum_course_passing_score=60)
    )
    assert verdict.codes == ("course_score_below_minimum",)


def test_disabled_switches_are_not_checked() -> None:
    policy = CertificatePolicy(
        require_all_modules_complete=False, require_all_assessments_passed=False
    )
    verdict = certificate_service.is_eligible(
        _snapshot(modules_complete=False, assessments_passed=False), policy
    )
    assert verdict.eligible is True


def test_final_marked_required_on_the_course_is_checked() -> None:
    snapshot = replace(
        _snapshot(final=_final(40, False)), final_assessment_required=True
    )
    verdict = certificate_service.is_eligible(snapshot, CertificatePolicy())
    assert verdict.codes == ("final_assessment_not_passed",)


# ---- repository-backed ----


def _pass(assessment, enrollment) -> None:
    started = asyncio.run(
        attempt_service.start_attempt(
            repos, assessment.id, enrollment.user_id, enrollment.id, NOW, AttemptPolicy()
        )
    )
    asyncio.run(
        attempt_service.submit_attempt(
            repos, started.attempt.id, answers_for(assessment), NOW + 60, AttemptPolicy()
        )
    )


def test_required_final_blocks_eligibility_when_assessment_switch_is_off() -> None:
    policy = CertificatePolicy(
        require_all_modules_complete=False, require_all_assessments_passed=False
    )
    sample = build_course(policy=policy, final_kwargs={"is_required": True})
    enrollment = enroll(sample.course)

    snapshot = asyncio.run(progress_service.get_progress(repos, enrollment.id))
    assert snapshot.final_assessment_required is True
    assert snapshot.course_complete is False
    verdict = asyncio.run(certificate_service.get_eligibility(repos, enrollment.id))
    assert verdict.codes == ("final_assessment_not_passed",)

    _pass(sample.final, enrollment)
    verdict = asyncio.run(certificate_service.get_eligibility(repos, enrollment.id))
    assert verdict.eligible is True
    assert asyncio.run(progress_service.get_progress(repos, enrollment.id)).course_complete


def test_unpassed_lesson_quiz_blocks_assessment_switch() -> None:
    policy = CertificatePolicy(require_all_modules_complete=False)
    sample = build_course(
        with_final=False,
        policy=policy,
        module_assessment_kwargs={"is_required": False},
    )
    enrollment = enroll(sample.course)

    snapshot = asyncio.run(progress_service.get_progress(repos, enrollment.id))
    assert snapshot.total_assessments == 0
    assert snapshot.all_required_assessments_passed is False
    verdict = asyncio.run(certificate_service.get_eligibility(repos, enrollment.id))
    assert verdict.codes == ("assessments_not_passed",)
    assert verdict.reasons == ("required lesson quizzes not passed",)

    _pass(sample.quiz_lesson.quiz, enrollment)
    verdict = asyncio.run(certificate_service.get_eligibility(repos, enrollment.id))
    assert verdict.eligible is True


def _complete_course(sample, enrollment) -> None:
    for lesson in (sample.video, sample.article):
        asyncio.run(
            progress_service.mark_lesson_progress(
                repos, enrollment.id, lesson.id, NOW, completed=True
            )
        )
    for assessment in (sample.quiz_lesson.quiz, sample.module_assessment, sample.final):
        started = asyncio.run(
            attempt_service.start_attempt(
                repos, assessment.id, enrollment.user_id, enrollment.id, NOW, AttemptPolicy()
            )
        )
        asyncio.run(
            attempt_service.submit_attempt(
                repos, started.attempt.id, answers_for(assessment), NOW + 60, AttemptPolicy()
            )
        )


def test_eligibility_check_records_metric() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    before = sample_value(
        "certificate_eligibility_checks_total", {"result": "ineligible"}
    )
    verdict = asyncio.run(certificate_service.get_eligibility(repos, enrollment.id))
    after = sample_value(
        "certificate_eligibility_checks_total", {"result": "ineligible"}
    )
    assert verdict.eligible is False
    assert after - before == 1


def test_request_rejected_with_reasons_when_ineligible() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    with pytest.raises(CertificateNotEligibleError) as exc:
        asyncio.run(
            certificate_service.request_certificate(
                repos, enrollment.id, enrollment.user_id, NOW
            )
        )
    assert exc.value.to_dict()["reasons"]
    assert asyncio.run(task_queue.queue_length(CERTIFICATE_ISSUANCE)) == 0


def test_request_enqueues_issuance_once() -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    _complete_course(sample, enrollment)

    request = asyncio.run(
        certificate_service.request_certificate(
            repos, enrollment.id, enrollment.user_id, NOW + 100
        )
    )
    assert request.status == "pending"
    assert request.task_id is not None
    assert asyncio.run(task_queue.queue_length(CERTIFICATE_ISSUANCE)) == 1

    with pytest.raises(CertificateAlreadyRequestedError):
        asyncio.run(
            certificate_service.request_certificate(
                repos, enrollment.id, enrollment.user_id, NOW + 200
            )
        )
    assert asyncio.run(task_queue.queue_length(CERTIFICATE_ISSUANCE)) == 1
