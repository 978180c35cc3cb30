"""Submissions and the grades awarded for them"""

from datetime import datetime, timezone
from typing import Optional

from lms.core.cascade import CascadeManager
from lms.core.integrity import ReferenceIntegrityManager
from lms.core.pagination import paginate
from lms.errors import DuplicateEntry, NotFound
from lms.models import (
    EntityKind,
    FeedbackCreate,
    GradeCreate,
    GradeUpdate,
    SubmissionCreate,
    SubmissionStatus,
    SubmissionUpdate,
)
from lms.services.common import get_entity, id_filter, insert_entity, patch_entity
from lms.store.base import EntityStore

LATEST_FIRST = [("submittedAt", -1)]
NEWEST_GRADES = [("createdAt", -1)]


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

# ==================== SUBMISSIONS ====================

async def create_submission(store: EntityStore, data: SubmissionCreate) -> dict:
    """A repeated (student, assignment, attemptNumber) fails with DuplicateEntry"""
    integrity = ReferenceIntegrityManager(store)
    document = await integrity.link_on_create(EntityKind.SUBMISSION, data.to_document())
    document.setdefault("submittedAt", datetime.utcnow())

    if "isLate" not in document:
        assignment = await store.find_by_id("assignments", document["assignment"])
        due_date = assignment.get("dueDate") if assignment else None
        document["isLate"] = bool(due_date and _naive_utc(document["submittedAt"]) > _naive_utc(due_date))

    return await insert_entity(store, EntityKind.SUBMISSION, document)


async def list_submissions(store: EntityStore, page: int = None, limit: int = None,
                           student: Optional[str] = None, assignment: Optional[str] = None,
                           course: Optional[str] = None, status: Optional[str] = None) -> dict:
    filter = id_filter(student=student, assignment=assignment, course=course)
    if status:
        filter["status"] = status
    return await paginate(store, "submissions", filter, page, limit, sort=LATEST_FIRST)


async def find_submissions_by_student(store: EntityStore, student_id: str,
                                      page: int = None, limit: int = None) -> dict:
    student = await get_entity(store, EntityKind.STUDENT, student_id)
    return await paginate(store, "submissions", {"student": student["_id"]}, page, limit, sort=LATEST_FIRST)


async def find_submissions_by_assignment(store: EntityStore, assignment_id: str,
                                         page: int = None, limit: int = None) -> dict:
    assignment = await get_entity(store, EntityKind.ASSIGNMENT, assignment_id)
    return await paginate(
        store, "submissions", {"assignment": assignment["_id"]}, page, limit, sort=LATEST_FIRST
    )


async def find_latest_submission(store: EntityStore, student_id: str, assignment_id: str) -> dict:
    """Latest attempt of a student for an assignment"""
    filter = id_filter(student=student_id, assignment=assignment_id)
    attempts = await store.find("submissions", filter, sort=[("attemptNumber", -1)], limit=1)
    if not attempts:
        raise NotFound(
            "Submission",
            detail=f'No submission found for student "{student_id}" and assignment "{assignment_id}"',
        )
    return attempts[0]


async def get_submission(store: EntityStore, submission_id: str) -> dict:
    return await get_entity(store, EntityKind.SUBMISSION, submission_id)


async def update_submission(store: EntityStore, submission_id: str, data: SubmissionUpdate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    patch = await integrity.link_on_update(EntityKind.SUBMISSION, submission_id, data.to_patch())
    return await patch_entity(store, EntityKind.SUBMISSION, submission_id, patch)


async def add_feedback(store: EntityStore, submission_id: str, feedback: FeedbackCreate) -> dict:
    """Attach instructor feedback and hand the submission back to the student"""
    patch = {
        "feedback": {**feedback.to_document(), "createdAt": datetime.utcnow()},
        "status": SubmissionStatus.RETURNED.value,
    }
    return await patch_entity(store, EntityKind.SUBMISSION, submission_id, patch)


async def delete_submission(store: EntityStore, submission_id: str) -> dict:
    integrity = ReferenceIntegrityManager(store)
    return await CascadeManager(store, integrity).delete(EntityKind.SUBMISSION, submission_id)

# ==================== GRADES ====================

async def create_grade(store: EntityStore, data: GradeCreate) -> dict:
    """One grade per submission; the submission must match the stated student and assignment"""
    integrity = ReferenceIntegrityManager(store)
    document = await integrity.link_on_create(EntityKind.GRADE, data.to_document())
    if await store.exists("grades", {"submission": document["submission"]}):
        raise DuplicateEntry(f'Submission "{data.submission}" has already been graded')
    document.setdefault("gradedAt", datetime.utcnow())
    return await insert_entity(store, EntityKind.GRADE, document)


async def list_grades(store: EntityStore, page: int = None, limit: int = None,
                      student: Optional[str] = None, assignment: Optional[str] = None,
                      course: Optional[str] = None) -> dict:
    filter = id_filter(student=student, assignment=assignment, course=course)
    return await paginate(store, "grades", filter, page, limit, sort=NEWEST_GRADES)


async def find_grades_by_student(store: EntityStore, student_id: str,
                                 page: int = None, limit: int = None) -> dict:
    student = await get_entity(store, EntityKind.STUDENT, student_id)
    return await paginate(store, "grades", {"student": student["_id"]}, page, limit, sort=NEWEST_GRADES)


async def find_grades_by_assignment(store: EntityStore, assignment_id: str,
                                    page: int = None, limit: int = None) -> dict:
    assignment = await get_entity(store, EntityKind.ASSIGNMENT, assignment_id)
    return await paginate(store, "grades", {"assignment": assignment["_id"]}, page, limit, sort=NEWEST_GRADES)


async def get_grade(store: EntityStore, grade_id: str) -> dict:
    return await get_entity(store, EntityKind.GRADE, grade_id)


async def update_grade(store: EntityStore, grade_id: str, data: GradeUpdate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    patch = await integrity.link_on_update(EntityKind.GRADE, grade_id, data.to_patch())
    return await patch_entity(store, EntityKind.GRADE, grade_id, patch)


async def delete_grade(store: EntityStore, grade_id: str) -> dict:
    integrity = ReferenceIntegrityManager(store)
    return await CascadeManager(store, integrity).delete(EntityKind.GRADE, grade_id)
