"""Curriculum definitions: read-only to the progress engine.

Authored elsewhere (the CMS owns titles, descriptions, video URLs); this
module only carries the fields that progress, scoring and eligibility
need.  Everything is a frozen value object; a Course is assembled once
by a CurriculumRepo and passed around whole.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Literal, Union
from uuid import UUID, uuid4

LessonKind = Literal["video", "article", "quiz", "assessment"]
AssessmentLevel = Literal["lesson_quiz", "module_assessment", "course_final"]
QuestionType = Literal["multiple_choice", "true_false", "short_answer", "essay"]


# ---------------------------------------------------------------------------
# Questions: one dataclass per question type
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MultipleChoiceQuestion:
    id: UUID
    assessment_id: UUID
    prompt: str
    options: tuple[str, ...]
    correct_index: int
    points: int = 1
    negative_points: int = 0
    position: int = 0

    type: QuestionType = field(default="multiple_choice", init=False)

    def __post_init__(self) -> None:
        _check_points(self.points, self.negative_points)
        if not 0 <= self.correct_index < len(self.options):
            raise ValueError(
                f"correct_index {self.correct_index} out of range "
                f"for {len(self.options)} options"
            )


@dataclass(frozen=True, slots=True)
class TrueFalseQuestion:
    id: UUID
    assessment_id: UUID
    prompt: str
    correct: bool
    points: int = 1
    negative_points: int = 0
    position: int = 0

    type: QuestionType = field(default="true_false", init=False)

    def __post_init__(self) -> None:
        _check_points(self.points, self.negative_points)


@dataclass(frozen=True, slots=True)
class ShortAnswerQuestion:
    id: UUID
    assessment_id: UUID
    prompt: str
    correct_text: str
    points: int = 1
    negative_points: int = 0
    position: int = 0

    type: QuestionType = field(default="short_answer", init=False)

    def __post_init__(self) -> None:
        _check_points(self.points, self.negative_points)


@dataclass(frozen=True, slots=True)
class EssayQuestion:
    """Free-text answer; never auto-scored, always routed to manual grading."""

    id: UUID
    assessment_id: UUID
    prompt: str
    rubric_notes: str = ""
    points: int = 1
    negative_points: int = 0
    position: int = 0

    type: QuestionType = field(default="essay", init=False)

    def __post_init__(self) -> None:
        _check_points(self.points, self.negative_points)


Question = Union[
    MultipleChoiceQuestion, TrueFalseQuestion, ShortAnswerQuestion, EssayQuestion
]


def _check_points(points: int, negative_points: int) -> None:
    if points < 0:
        raise ValueError(f"points must be >= 0 (got {points})")
    if negative_points < 0:
        raise ValueError(f"negative_points must be >= 0 (got {negative_points})")


# ---------------------------------------------------------------------------
# Assessments
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Assessment:
    id: UUID
    course_id: UUID
    level: AssessmentLevel
    title: str
    questions: tuple[Question, ...] = ()
    passing_score: int = 60  # percentage, 0-100
    max_attempts: int | None = None  # None = unlimited
    time_limit_minutes: int | None = None
    is_required: bool = True
    show_correct_answers: bool = False
    allow_retake: bool = True
    negative_marking: bool = False
    available_from: int | None = None
    available_until: int | None = None
    module_id: UUID | None = None
    lesson_id: UUID | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.passing_score <= 100:
            raise ValueError(
                f"passing_score must be within 0..100 (got {self.passing_score})"
            )
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1 (got {self.max_attempts})")
        if self.time_limit_minutes is not None and self.time_limit_minutes < 1:
            raise ValueError(
                f"time_limit_minutes must be >= 1 (got {self.time_limit_minutes})"
            )
        ids = [q.id for q in self.questions]
        if len(ids) != len(set(ids)):
            raise ValueError("question ids must be unique within an assessment")

    def ordered_questions(self) -> list[Question]:
        return sorted(self.questions, key=lambda q: q.position)

    def question(self, question_id: UUID) -> Question | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    def is_available(self, now: int) -> bool:
        if self.available_from is not None and now < self.available_from:
            return False
        if self.available_until is not None and now > self.available_until:
            return False
        return True


# ---------------------------------------------------------------------------
# Lessons and modules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LessonCompletionRules:
    """Per-lesson completion policy, layered on top of the completion flag."""

    require_video_watched: bool = False
    min_video_watch_percentage: int = 90
    require_quiz_passed: bool = False
    require_resources_viewed: bool = False


@dataclass(frozen=True, slots=True)
class Lesson:
    id: UUID
    module_id: UUID
    title: str
    kind: LessonKind
    position: int
    duration_seconds: int | None = None  # video length, when known
    quiz: Assessment | None = None  # embedded lesson_quiz
    quiz_required: bool = False
    completion_rules: LessonCompletionRules = field(
        default_factory=LessonCompletionRules
    )


@dataclass(frozen=True, slots=True)
class CurriculumModule:
    id: UUID
    course_id: UUID
    title: str
    position: int
    lessons: tuple[Lesson, ...] = ()
    assessment: Assessment | None = None  # module_assessment

    def __post_init__(self) -> None:
        positions = [lesson.position for lesson in self.lessons]
        if len(positions) != len(set(positions)):
            raise ValueError(
                f"lesson positions must be unique within module {self.id}"
            )

    def ordered_lessons(self) -> list[Lesson]:
        return sorted(self.lessons, key=lambda lesson: lesson.position)


# ---------------------------------------------------------------------------
# Course-level policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CertificatePolicy:
    final_assessment_required: bool = False
    minimum_course_passing_score: int = 0
    require_all_modules_complete: bool = True
    require_all_assessments_passed: bool = True


@dataclass(frozen=True, slots=True)
class ProgressWeights:
    """How lessons and assessments combine into percentage and score.

    progress %    = (done lessons + w * passed required assessments)
                    / (lessons + w * required assessments)
    overall score = lesson_share * lesson completion %
                    + assessment_share * mean best % of required assessments
    """

    lesson_share: float = 0.3
    assessment_share: float = 0.7
    assessment_item_weight: float = 1.0

    def __post_init__(self) -> None:
        if abs(self.lesson_share + self.assessment_share - 1.0) > 1e-9:
            raise ValueError("lesson_share + assessment_share must equal 1")
        if self.assessment_item_weight < 0:
            raise ValueError("assessment_item_weight must be >= 0")


@dataclass(frozen=True, slots=True)
class Course:
    id: UUID
    slug: str
    title: str
    modules: tuple[CurriculumModule, ...] = ()
    final_assessment: Assessment | None = None
    certificate_policy: CertificatePolicy = field(default_factory=CertificatePolicy)
    weights: ProgressWeights = field(default_factory=ProgressWeights)

    @staticmethod
    def new(*, slug: str, title: str) -> Course:
        return Course(id=uuid4(), slug=slug, title=title)

    def ordered_modules(self) -> list[CurriculumModule]:
        return sorted(self.modules, key=lambda m: m.position)

    def lessons(self) -> Iterator[Lesson]:
        for module in self.ordered_modules():
            yield from module.ordered_lessons()

    def assessments(self) -> Iterator[Assessment]:
        """Every assessment reachable from the curriculum, in course order."""
        for module in self.ordered_modules():
            for lesson in module.ordered_lessons():
                if lesson.quiz is not None:
                    yield lesson.quiz
            if module.assessment is not None:
                yield module.assessment
        if self.final_assessment is not None:
            yield self.final_assessment

    def required_assessments(self) -> list[Assessment]:
        """Module and final assessments that count as progress items.

        Lesson quizzes are folded into their lesson's completion instead.
        """
        required = [
            m.assessment
            for m in self.ordered_modules()
            if m.assessment is not None and m.assessment.is_required
        ]
        final = self.final_assessment
        if final is not None and (
            final.is_required or self.certificate_policy.final_assessment_required
        ):
            required.append(final)
        return required

    def find_lesson(self, lesson_id: UUID) -> Lesson | None:
        for lesson in self.lessons():
            if lesson.id == lesson_id:
                return lesson
        return None

    def find_assessment(self, assessment_id: UUID) -> Assessment | None:
        for assessment in self.assessments():
            if assessment.id == assessment_id:
                return assessment
        return None

    def lesson_for_quiz(self, assessment_id: UUID) -> Lesson | None:
        for lesson in self.lessons():
            if lesson.quiz is not None and lesson.quiz.id == assessment_id:
                return lesson
        return None
