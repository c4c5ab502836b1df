from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

# Ensure repo root is on sys.path so `import coursetrack` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from coursetrack.main import app  # noqa: E402
from coursetrack.models.curriculum import (  # noqa: E402
    Assessment,
    CertificatePolicy,
    Course,
    CurriculumModule,
    Lesson,
    LessonCompletionRules,
    MultipleChoiceQuestion,
)
from coursetrack.models.progress import Enrollment  # noqa: E402
from coursetrack.repos.repositories import memory_repos, reset_memory_repos  # noqa: E402
from coursetrack.services import token_service  # noqa: E402
from coursetrack.services.attempt_service import correct_answer_of  # noqa: E402
from coursetrack.services.cache import InMemoryCacheService, cache_service  # noqa: E402
from coursetrack.services.task_queue import InMemoryTaskQueue, task_queue  # noqa: E402

NOW = 1_700_000_000


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Empty the in-memory repositories between tests."""
    reset_memory_repos()


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if isinstance(cache_service, InMemoryCacheService):
        cache_service.clear()


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if isinstance(task_queue, InMemoryTaskQueue):
        task_queue.clear()


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    username: str = "learner-1",
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=username, roles=roles)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def sample_value(name: str, labels: dict | None = None) -> float:
    """Read a metric sample's current value from the global registry."""
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


# ---------------------------------------------------------------------------
# Curriculum builders
# ---------------------------------------------------------------------------


def mc_questions(
    assessment_id: UUID,
    count: int = 4,
    *,
    points: int = 1,
    negative_points: int = 0,
) -> tuple[MultipleChoiceQuestion, ...]:
    return tuple(
        MultipleChoiceQuestion(
            id=uuid4(),
            assessment_id=assessment_id,
            prompt=f"Question {i + 1}",
            options=("a", "b", "c"),
            correct_index=i % 3,
            points=points,
            negative_points=negative_points,
            position=i,
        )
        for i in range(count)
    )


def make_assessment(
    course_id: UUID,
    *,
    level: str = "module_assessment",
    count: int = 4,
    **kwargs,
) -> Assessment:
    assessment_id = uuid4()
    return Assessment(
        id=assessment_id,
        course_id=course_id,
        level=level,  # type: ignore[arg-type]
        title=f"{level} check",
        questions=mc_questions(assessment_id, count),
        **kwargs,
    )


def answers_for(assessment: Assessment, correct: int | None = None) -> dict[str, object]:
    """Answer the first ``correct`` questions right and the rest wrong (all right by default)."""
    answers: dict[str, object] = {}
    for i, q in enumerate(assessment.ordered_questions()):
        right = correct_answer_of(q)
        if correct is None or i < correct:
            answers[str(q.id)] = right
        else:
            answers[str(q.id)] = (right + 1) % 3  # type: ignore[operator]
    return answers


@dataclass
class SampleCourse:
    course: Course
    video: Lesson
    article: Lesson
    quiz_lesson: Lesson
    module_assessment: Assessment
    final: Assessment | None


def build_course(
    *,
    with_final: bool = True,
    policy: CertificatePolicy | None = None,
    module_assessment_kwargs: dict | None = None,
    final_kwargs: dict | None = None,
    quiz_kwargs: dict | None = None,
) -> SampleCourse:
    """One module (video, article, quiz lesson + module assessment) and an optional final."""
    course_id = uuid4()
    module_id = uuid4()

    video = Lesson(
        id=uuid4(),
        module_id=module_id,
        title="Intro video",
        kind="video",
        position=0,
        duration_seconds=600,
        completion_rules=LessonCompletionRules(require_video_watched=True),
    )
    article = Lesson(
        id=uuid4(), module_id=module_id, title="Reading", kind="article", position=1
    )
    quiz_lesson_id = uuid4()
    quiz = make_assessment(
        course_id,
        level="lesson_quiz",
        count=2,
        lesson_id=quiz_lesson_id,
        **(quiz_kwargs or {}),
    )
    quiz_lesson = Lesson(
        id=quiz_lesson_id,
        module_id=module_id,
        title="Checkpoint",
        kind="quiz",
        position=2,
        quiz=quiz,
        quiz_required=True,
    )
    module_assessment = make_assessment(
        course_id, module_id=module_id, **(module_assessment_kwargs or {})
    )
    module = CurriculumModule(
        id=module_id,
        course_id=course_id,
        title="Module 1",
        position=0,
        lessons=(video, article, quiz_lesson),
        assessment=module_assessment,
    )
    final = (
        make_assessment(course_id, level="course_final", **(final_kwargs or {}))
        if with_final
        else None
    )
    course = Course(
        id=course_id,
        slug=f"course-{course_id.hex[:8]}",
        title="Sample course",
        modules=(module,),
        final_assessment=final,
        certificate_policy=policy or CertificatePolicy(),
    )
    return SampleCourse(
        course=course,
        video=video,
        article=article,
        quiz_lesson=quiz_lesson,
        module_assessment=module_assessment,
        final=final,
    )


def enroll(course: Course, user_id: str = "learner-1") -> Enrollment:
    """Seed ``course`` into the in-memory curriculum and enroll ``user_id``."""
    if asyncio.run(memory_repos.curriculum.get_course(course.id)) is None:
        memory_repos.curriculum.add_course(course)
    enrollment = Enrollment.new(user_id=user_id, course_id=course.id, enrolled_at=NOW)
    asyncio.run(memory_repos.enrollments.add(enrollment))
    return enrollment


@pytest.fixture
def sample() -> SampleCourse:
    return build_course()
