from __future__ import annotations

from typing import Protocol
from uuid import UUID

from coursetrack.models.curriculum import Course


class CurriculumRepo(Protocol):
    """Read side of the curriculum; courses are loaded whole."""

    async def get_course(self, course_id: UUID) -> Course | None: ...
    async def get_course_for_assessment(self, assessment_id: UUID) -> Course | None: ...


class InMemoryCurriculumRepo:
    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}
        self._course_by_assessment: dict[UUID, UUID] = {}

    def add_course(self, course: Course) -> None:
        """Seed a course (tests and local dev; authoring lives elsewhere)."""
        self._courses[course.id] = course
        for assessment in course.assessments():
            self._course_by_assessment[assessment.id] = course.id

    def clear(self) -> None:
        self._courses.clear()
        self._course_by_assessment.clear()

    async def get_course(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    async def get_course_for_assessment(self, assessment_id: UUID) -> Course | None:
        course_id = self._course_by_assessment.get(assessment_id)
        if course_id is None:
            return None
        return self._courses.get(course_id)
