"""
Pytest configuration for the LMS tests.

Everything runs against the in-memory store on the asyncio backend; no
MongoDB server is needed.
"""

from datetime import datetime, timedelta
from itertools import count

import pytest

from lms.database_setup import create_lms_indexes
from lms.models import (
    AssignmentCreate,
    CourseCreate,
    GradeCreate,
    InstructorCreate,
    LessonCreate,
    ModuleCreate,
    StudentCreate,
    SubmissionCreate,
)
from lms.services import (
    assignment_service,
    content_service,
    course_service,
    instructor_service,
    student_service,
    submission_service,
)
from lms.store.memory_store import MemoryEntityStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def store():
    store = MemoryEntityStore()
    await create_lms_indexes(store)
    return store


class Factory:
    """Builds valid entities through the service layer"""

    def __init__(self, store):
        self.store = store
        self._seq = count(1)

    async def instructor(self, first_name="Ada", last_name="Lovelace", **extra):
        n = next(self._seq)
        data = InstructorCreate(
            first_name=first_name, last_name=last_name, email=f"instructor{n}@example.com", **extra
        )
        return await instructor_service.create_instructor(self.store, data)

    async def student(self, first_name="Alan", last_name="Turing", **extra):
        n = next(self._seq)
        data = StudentCreate(first_name=first_name, last_name=last_name, email=f"student{n}@example.com", **extra)
        return await student_service.create_student(self.store, data)

    async def course(self, instructor=None, title="Algorithms", **extra):
        instructor = instructor or await self.instructor()
        data = CourseCreate(
            title=title, description=f"{title} course", instructor=str(instructor["_id"]), **extra
        )
        return await course_service.create_course(self.store, data)

    async def module(self, course, order=1, **extra):
        data = ModuleCreate(title=f"Module {order}", course=str(course["_id"]), order=order, **extra)
        return await content_service.create_module(self.store, data)

    async def lesson(self, module, order=1, **extra):
        data = LessonCreate(title=f"Lesson {order}", module=str(module["_id"]), order=order, **extra)
        return await content_service.create_lesson(self.store, data)

    async def assignment(self, course, title="Homework", total_points=100, **extra):
        extra.setdefault("due_date", datetime.utcnow() + timedelta(days=7))
        data = AssignmentCreate(
            title=title,
            description=f"{title} description",
            course=str(course["_id"]),
            total_points=total_points,
            **extra,
        )
        return await assignment_service.create_assignment(self.store, data)

    async def submission(self, student, assignment, **extra):
        data = SubmissionCreate(student=str(student["_id"]), assignment=str(assignment["_id"]), **extra)
        return await submission_service.create_submission(self.store, data)

    async def grade(self, submission, score, **extra):
        data = GradeCreate(
            submission=str(submission["_id"]),
            student=str(submission["student"]),
            assignment=str(submission["assignment"]),
            score=score,
            **extra,
        )
        return await submission_service.create_grade(self.store, data)


@pytest.fixture
def factory(store):
    return Factory(store)
