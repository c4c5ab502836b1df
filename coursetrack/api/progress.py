"""Lesson progress ingestion and the cached progress snapshot.

PUT /v1/enrollments/{enrollment_id}/lessons/{lesson_id}/progress
  -> apply the tick (position / watch time / resources / completion)
  -> services invalidate progress:{enrollment_id}
GET /v1/enrollments/{enrollment_id}/progress
  -> read-through cache: hit returns the stored JSON, miss recomputes
     from source rows and stores it for PROGRESS_CACHE_TTL seconds
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from coursetrack.api.dependencies import (
    CurrentUser,
    Repos,
    load_owned_enrollment,
    now_epoch,
)
from coursetrack.core.config import SETTINGS
from coursetrack.core.metrics import CACHE_OPERATIONS
from coursetrack.services import progress_service
from coursetrack.services.cache import cache_service, progress_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/enrollments", tags=["progress"])


class LessonProgressIn(BaseModel):
    position: int | None = Field(default=None, ge=0)
    watch_duration: int | None = Field(default=None, ge=0)
    video_percent_watched: int | None = Field(default=None, ge=0, le=100)
    resources_viewed: list[str] | None = None
    completed: bool | None = None
    occurred_at: int | None = None  # client timestamp of the tick


class LessonProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    enrollment_id: UUID
    lesson_id: UUID
    completed: bool
    completed_at: int | None
    last_position: int
    watch_duration: int
    video_percent_watched: int
    resources_viewed: list[str]
    position_updated_at: int | None
    updated_at: int | None


class AssessmentStatusOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    assessment_id: UUID
    attempted: bool
    passed: bool
    best_percentage: int | None
    attempts_used: int
    in_progress: bool


class LessonStatusOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    completed: bool


class ModuleProgressOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    module_id: UUID
    completed: bool
    lessons: list[LessonStatusOut]
    completed_lessons: int
    total_lessons: int
    assessment: AssessmentStatusOut | None


class ProgressSnapshotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    enrollment_id: UUID
    course_id: UUID
    progress_percent: int
    overall_score: int
    completed_lessons: int
    total_lessons: int
    completed_assessments: int
    total_assessments: int
    modules: list[ModuleProgressOut]
    final_assessment: AssessmentStatusOut | None
    all_modules_complete: bool
    all_required_assessments_passed: bool
    course_complete: bool
    final_assessment_required: bool = False


@router.put(
    "/{enrollment_id}/lessons/{lesson_id}/progress",
    response_model=LessonProgressOut,
)
async def mark_lesson_progress(
    enrollment_id: UUID,
    lesson_id: UUID,
    body: LessonProgressIn,
    principal: CurrentUser,
    repos: Repos,
) -> LessonProgressOut:
    await load_owned_enrollment(repos, enrollment_id, principal)
    progress = await progress_service.mark_lesson_progress(
        repos,
        enrollment_id,
        lesson_id,
        now_epoch(),
        position=body.position,
        watch_duration=body.watch_duration,
        video_percent_watched=body.video_percent_watched,
        resources_viewed=body.resources_viewed,
        completed=body.completed,
        occurred_at=body.occurred_at,
    )
    return LessonProgressOut.model_validate(progress)


@router.get("/{enrollment_id}/progress", response_model=ProgressSnapshotOut)
async def get_progress(
    enrollment_id: UUID,
    principal: CurrentUser,
    repos: Repos,
) -> ProgressSnapshotOut:
    await load_owned_enrollment(repos, enrollment_id, principal)
    key = progress_key(enrollment_id)

    cached = await cache_service.get(key)
    if cached is not None:
        CACHE_OPERATIONS.labels(operation="hit").inc()
        return ProgressSnapshotOut.model_validate_json(cached)

    CACHE_OPERATIONS.labels(operation="miss").inc()
    snapshot = await progress_service.get_progress(repos, enrollment_id)
    out = ProgressSnapshotOut.model_validate(snapshot)
    await cache_service.set(key, out.model_dump_json(), SETTINGS.progress_cache_ttl)
    logger.debug("Progress snapshot cached enrollment_id=%s", enrollment_id)
    return out
