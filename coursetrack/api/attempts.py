"""Assessment attempt endpoints.

  POST /v1/assessments/{assessment_id}/attempts   start (201)
  GET  /v1/assessments/{assessment_id}/attempts   history, oldest first
  POST /v1/attempts/{attempt_id}/submit           score and complete
  POST /v1/attempts/{attempt_id}/expire           give up / time ran out
  POST /v1/attempts/{attempt_id}/reset            admin: abandon without using a slot
  GET  /v1/attempts/{attempt_id}/results          per-question review

Service errors (coursetrack.services.errors) propagate to the
application's exception handler; this module only adds ownership checks
and the wire shapes.
"""

from __future__ import annotations

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict

from coursetrack.api.dependencies import (
    CurrentUser,
    Repos,
    load_owned_attempt,
    load_owned_enrollment,
    now_epoch,
    require_role,
)
from coursetrack.models.curriculum import MultipleChoiceQuestion, Question
from coursetrack.models.principal import Principal
from coursetrack.services import attempt_service

router = APIRouter(tags=["attempts"])


class StartAttemptIn(BaseModel):
    enrollment_id: UUID


class SubmitAttemptIn(BaseModel):
    # question id -> option index | true/false | text; checked by the service
    answers: dict[str, Any]


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    assessment_id: UUID
    user_id: str
    enrollment_id: UUID
    attempt_number: int
    status: str
    score: int
    max_score: int
    percentage: int
    passed: bool
    started_at: int
    completed_at: int | None
    time_spent: int | None
    answers: dict[str, int | bool | str]
    requires_manual_grading: bool
    abandon_reason: str | None


class QuestionOut(BaseModel):
    """A question as the learner sees it: no answer key."""

    id: UUID
    type: str
    prompt: str
    points: int
    position: int
    options: list[str] | None = None

    @staticmethod
    def of(question: Question) -> QuestionOut:
        return QuestionOut(
            id=question.id,
            type=question.type,
            prompt=question.prompt,
            points=question.points,
            position=question.position,
            options=(
                list(question.options)
                if isinstance(question, MultipleChoiceQuestion)
                else None
            ),
        )


class StartAttemptOut(BaseModel):
    attempt: AttemptOut
    questions: list[QuestionOut]
    time_limit_minutes: int | None
    deadline: int | None


class QuestionResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_id: str
    type: str
    prompt: str
    points: int
    answer: int | bool | str | None
    correct: bool | None
    awarded: int
    correct_answer: int | bool | str | None


class AttemptResultsOut(BaseModel):
    attempt: AttemptOut
    questions: list[QuestionResultOut]
    answers_revealed: bool


@router.post(
    "/v1/assessments/{assessment_id}/attempts",
    response_model=StartAttemptOut,
    status_code=status.HTTP_201_CREATED,
)
async def start_attempt(
    assessment_id: UUID,
    body: StartAttemptIn,
    principal: CurrentUser,
    repos: Repos,
) -> StartAttemptOut:
    enrollment = await load_owned_enrollment(repos, body.enrollment_id, principal)
    started = await attempt_service.start_attempt(
        repos, assessment_id, enrollment.user_id, enrollment.id, now_epoch()
    )
    assessment = started.assessment
    return StartAttemptOut(
        attempt=AttemptOut.model_validate(started.attempt),
        questions=[QuestionOut.of(q) for q in assessment.ordered_questions()],
        time_limit_minutes=assessment.time_limit_minutes,
        deadline=started.attempt.deadline(assessment.time_limit_minutes),
    )


@router.get(
    "/v1/assessments/{assessment_id}/attempts",
    response_model=list[AttemptOut],
)
async def list_attempts(
    assessment_id: UUID,
    principal: CurrentUser,
    repos: Repos,
    enrollment_id: Annotated[UUID | None, Query()] = None,
) -> list[AttemptOut]:
    user_id = principal.user_id
    if enrollment_id is not None:
        enrollment = await load_owned_enrollment(repos, enrollment_id, principal)
        user_id = enrollment.user_id
    attempts = await attempt_service.list_attempts(
        repos, assessment_id, user_id, enrollment_id
    )
    return [AttemptOut.model_validate(a) for a in attempts]


@router.post("/v1/attempts/{attempt_id}/submit", response_model=AttemptOut)
async def submit_attempt(
    attempt_id: UUID,
    body: SubmitAttemptIn,
    principal: CurrentUser,
    repos: Repos,
) -> AttemptOut:
    await load_owned_attempt(repos, attempt_id, principal)
    attempt = await attempt_service.submit_attempt(
        repos, attempt_id, body.answers, now_epoch()
    )
    return AttemptOut.model_validate(attempt)


@router.post("/v1/attempts/{attempt_id}/expire", response_model=AttemptOut)
async def expire_attempt(
    attempt_id: UUID,
    principal: CurrentUser,
    repos: Repos,
) -> AttemptOut:
    await load_owned_attempt(repos, attempt_id, principal)
    attempt = await attempt_service.expire_attempt(repos, attempt_id, now_epoch())
    return AttemptOut.model_validate(attempt)


@router.post("/v1/attempts/{attempt_id}/reset", response_model=AttemptOut)
async def reset_attempt(
    attempt_id: UUID,
    principal: Annotated[Principal, Depends(require_role("admin"))],
    repos: Repos,
) -> AttemptOut:
    attempt = await attempt_service.reset_attempt(repos, attempt_id, now_epoch())
    return AttemptOut.model_validate(attempt)


@router.get("/v1/attempts/{attempt_id}/results", response_model=AttemptResultsOut)
async def get_attempt_results(
    attempt_id: UUID,
    principal: CurrentUser,
    repos: Repos,
) -> AttemptResultsOut:
    await load_owned_attempt(repos, attempt_id, principal)
    results = await attempt_service.get_attempt_results(repos, attempt_id)
    return AttemptResultsOut(
        attempt=AttemptOut.model_validate(results.attempt),
        questions=[QuestionResultOut.model_validate(q) for q in results.questions],
        answers_revealed=results.answers_revealed,
    )
