"""PostgreSQL implementation of CurriculumRepo."""

from __future__ import annotations

from collections import defaultdict
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coursetrack.db.tables import (
    AssessmentQuestionRow,
    AssessmentRow,
    CourseModuleRow,
    CourseRow,
    LessonRow,
)
from coursetrack.models.curriculum import (
    Assessment,
    CertificatePolicy,
    Course,
    CurriculumModule,
    EssayQuestion,
    Lesson,
    LessonCompletionRules,
    MultipleChoiceQuestion,
    ProgressWeights,
    Question,
    ShortAnswerQuestion,
    TrueFalseQuestion,
)


class PgCurriculumRepo:
    """Satisfies the CurriculumRepo Protocol; assembles a Course in five queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_course(self, course_id: UUID) -> Course | None:
        row = (
            await self._session.execute(select(CourseRow).where(CourseRow.id == course_id))
        ).scalar_one_or_none()
        if row is None:
            return None
        return await self._assemble(row)

    async def get_course_for_assessment(self, assessment_id: UUID) -> Course | None:
        stmt = select(AssessmentRow.course_id).where(AssessmentRow.id == assessment_id)
        course_id = (await self._session.execute(stmt)).scalar_one_or_none()
        if course_id is None:
            return None
        return await self.get_course(course_id)

    async def _assemble(self, course_row: CourseRow) -> Course:
        module_rows = (
            (
                await self._session.execute(
                    select(CourseModuleRow)
                    .where(CourseModuleRow.course_id == course_row.id)
                    .order_by(CourseModuleRow.position)
                )
            )
            .scalars()
            .all()
        )
        module_ids = [m.id for m in module_rows]

        lesson_rows = []
        if module_ids:
            lesson_rows = (
                (
                    await self._session.execute(
                        select(LessonRow)
                        .where(LessonRow.module_id.in_(module_ids))
                        .order_by(LessonRow.position)
                    )
                )
                .scalars()
                .all()
            )

        assessment_rows = (
            (
                await self._session.execute(
                    select(AssessmentRow).where(AssessmentRow.course_id == course_row.id)
                )
            )
            .scalars()
            .all()
        )
        questions_by_assessment: dict[UUID, list[Question]] = defaultdict(list)
        if assessment_rows:
            question_rows = (
                (
                    await self._session.execute(
                        select(AssessmentQuestionRow)
                        .where(
                            AssessmentQuestionRow.assessment_id.in_(
                                [a.id for a in assessment_rows]
                            )
                        )
                        .order_by(AssessmentQuestionRow.position)
                    )
                )
                .scalars()
                .all()
            )
            for q in question_rows:
                questions_by_assessment[q.assessment_id].append(_row_to_question(q))

        quiz_by_lesson: dict[UUID, Assessment] = {}
        assessment_by_module: dict[UUID, Assessment] = {}
        final: Assessment | None = None
        for a in assessment_rows:
            assessment = _row_to_assessment(a, questions_by_assessment[a.id])
            if a.level == "lesson_quiz" and a.lesson_id is not None:
                quiz_by_lesson[a.lesson_id] = assessment
            elif a.level == "module_assessment" and a.module_id is not None:
                assessment_by_module[a.module_id] = assessment
            elif a.level == "course_final":
                final = assessment

        lessons_by_module: dict[UUID, list[Lesson]] = defaultdict(list)
        for row in lesson_rows:
            lessons_by_module[row.module_id].append(
                _row_to_lesson(row, quiz_by_lesson.get(row.id))
            )

        modules = tuple(
            CurriculumModule(
                id=m.id,
                course_id=m.course_id,
                title=m.title,
                position=m.position,
                lessons=tuple(lessons_by_module[m.id]),
                assessment=assessment_by_module.get(m.id),
            )
            for m in module_rows
        )
        return _row_to_course(course_row, modules, final)


def _row_to_course(
    row: CourseRow, modules: tuple[CurriculumModule, ...], final: Assessment | None
) -> Course:
    return Course(
        id=row.id,
        slug=row.slug,
        title=row.title,
        modules=modules,
        final_assessment=final,
        certificate_policy=CertificatePolicy(
            final_assessment_required=row.final_assessment_required,
            minimum_course_passing_score=row.minimum_course_passing_score,
            require_all_modules_complete=row.require_all_modules_complete,
            require_all_assessments_passed=row.require_all_assessments_passed,
        ),
        weights=ProgressWeights(
            lesson_share=row.lesson_share,
            assessment_share=row.assessment_share,
            assessment_item_weight=row.assessment_item_weight,
        ),
    )


def _row_to_lesson(row: LessonRow, quiz: Assessment | None) -> Lesson:
    return Lesson(
        id=row.id,
        module_id=row.module_id,
        title=row.title,
        kind=row.kind,  # type: ignore[arg-type]
        position=row.position,
        duration_seconds=row.duration_seconds,
        quiz=quiz,
        quiz_required=row.quiz_required,
        completion_rules=LessonCompletionRules(
            require_video_watched=row.require_video_watched,
            min_video_watch_percentage=row.min_video_watch_percentage,
            require_quiz_passed=row.require_quiz_passed,
            require_resources_viewed=row.require_resources_viewed,
        ),
    )


def _row_to_assessment(row: AssessmentRow, questions: list[Question]) -> Assessment:
    return Assessment(
        id=row.id,
        course_id=row.course_id,
        level=row.level,  # type: ignore[arg-type]
        title=row.title,
        questions=tuple(questions),
        passing_score=row.passing_score,
        max_attempts=row.max_attempts,
        time_limit_minutes=row.time_limit_minutes,
        is_required=row.is_required,
        show_correct_answers=row.show_correct_answers,
        allow_retake=row.allow_retake,
        negative_marking=row.negative_marking,
        available_from=row.available_from,
        available_until=row.available_until,
        module_id=row.module_id,
        lesson_id=row.lesson_id,
    )


def _row_to_question(row: AssessmentQuestionRow) -> Question:
    common = {
        "id": row.id,
        "assessment_id": row.assessment_id,
        "prompt": row.prompt,
        "points": row.points,
        "negative_points": row.negative_points,
        "position": row.position,
    }
    payload = row.payload or {}
    if row.type == "multiple_choice":
        return MultipleChoiceQuestion(
            options=tuple(payload.get("options", ())),
            correct_index=int(payload["correct_index"]),
            **common,
        )
    if row.type == "true_false":
        return TrueFalseQuestion(correct=bool(payload["correct"]), **common)
    if row.type == "short_answer":
        return ShortAnswerQuestion(correct_text=str(payload["correct_text"]), **common)
    if row.type == "essay":
        return EssayQuestion(rubric_notes=str(payload.get("rubric_notes", "")), **common)
    raise ValueError(f"unknown question type {row.type!r} for question {row.id}")
