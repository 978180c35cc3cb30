from typing import Optional

from fastapi import APIRouter, Depends

from lms.dependencies import get_pagination, get_store
from lms.models import (
    AssignmentCreate,
    AssignmentStatus,
    AssignmentUpdate,
    FeedbackCreate,
    GradeCreate,
    GradeUpdate,
    PaginationParams,
    SubmissionCreate,
    SubmissionStatus,
    SubmissionUpdate,
)
from lms.services import assignment_service, student_service, submission_service
from lms.store.base import EntityStore, serialize_mongo

router = APIRouter(tags=["Assessment"])

# ==================== ASSIGNMENTS ====================

@router.post("/assignments", status_code=201)
async def create_assignment(payload: AssignmentCreate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await assignment_service.create_assignment(store, payload))


@router.get("/assignments")
async def list_assignments(
    course: Optional[str] = None,
    module: Optional[str] = None,
    status: Optional[AssignmentStatus] = None,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await assignment_service.list_assignments(
        store,
        pagination.page,
        pagination.limit,
        course=course,
        module=module,
        status=status.value if status else None,
    )
    return serialize_mongo(page)


@router.get("/assignments/course/{course_id}")
async def list_course_assignments(
    course_id: str,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await assignment_service.find_assignments_by_course(
        store, course_id, pagination.page, pagination.limit
    )
    return serialize_mongo(page)


@router.get("/assignments/{assignment_id}")
async def get_assignment(assignment_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await assignment_service.get_assignment(store, assignment_id))


@router.patch("/assignments/{assignment_id}")
async def update_assignment(assignment_id: str, payload: AssignmentUpdate,
                            store: EntityStore = Depends(get_store)):
    return serialize_mongo(await assignment_service.update_assignment(store, assignment_id, payload))


@router.delete("/assignments/{assignment_id}")
async def delete_assignment(assignment_id: str, store: EntityStore = Depends(get_store)):
    await assignment_service.delete_assignment(store, assignment_id)
    return {"success": True, "_id": assignment_id}

# ==================== SUBMISSIONS ====================

@router.post("/submissions", status_code=201)
async def create_submission(payload: SubmissionCreate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await submission_service.create_submission(store, payload))


@router.get("/submissions")
async def list_submissions(
    student: Optional[str] = None,
    assignment: Optional[str] = None,
    course: Optional[str] = None,
    status: Optional[SubmissionStatus] = None,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await submission_service.list_submissions(
        store,
        pagination.page,
        pagination.limit,
        student=student,
        assignment=assignment,
        course=course,
        status=status.value if status else None,
    )
    return serialize_mongo(page)


@router.get("/submissions/student/{student_id}")
async def list_student_submissions(
    student_id: str,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await submission_service.find_submissions_by_student(
        store, student_id, pagination.page, pagination.limit
    )
    return serialize_mongo(page)


@router.get("/submissions/assignment/{assignment_id}")
async def list_assignment_submissions(
    assignment_id: str,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await submission_service.find_submissions_by_assignment(
        store, assignment_id, pagination.page, pagination.limit
    )
    return serialize_mongo(page)


@router.get("/submissions/student/{student_id}/assignment/{assignment_id}")
async def get_latest_submission(student_id: str, assignment_id: str,
                                store: EntityStore = Depends(get_store)):
    return serialize_mongo(await submission_service.find_latest_submission(store, student_id, assignment_id))


@router.get("/submissions/statistics/student/{student_id}")
async def get_submission_statistics(student_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await student_service.get_submission_statistics(store, student_id))


@router.get("/submissions/{submission_id}")
async def get_submission(submission_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await submission_service.get_submission(store, submission_id))


@router.patch("/submissions/{submission_id}")
async def update_submission(submission_id: str, payload: SubmissionUpdate,
                            store: EntityStore = Depends(get_store)):
    return serialize_mongo(await submission_service.update_submission(store, submission_id, payload))


@router.patch("/submissions/{submission_id}/feedback")
async def add_feedback(submission_id: str, payload: FeedbackCreate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await submission_service.add_feedback(store, submission_id, payload))


@router.delete("/submissions/{submission_id}")
async def delete_submission(submission_id: str, store: EntityStore = Depends(get_store)):
    await submission_service.delete_submission(store, submission_id)
    return {"success": True, "_id": submission_id}

# ==================== GRADES ====================

@router.post("/grades", status_code=201)
async def create_grade(payload: GradeCreate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await submission_service.create_grade(store, payload))


@router.get("/grades")
async def list_grades(
    student: Optional[str] = None,
    assignment: Optional[str] = None,
    course: Optional[str] = None,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await submission_service.list_grades(
        store, pagination.page, pagination.limit, student=student, assignment=assignment, course=course
    )
    return serialize_mongo(page)


@router.get("/grades/student/{student_id}")
async def list_student_grades(
    student_id: str,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await submission_service.find_grades_by_student(store, student_id, pagination.page, pagination.limit)
    return serialize_mongo(page)


@router.get("/grades/assignment/{assignment_id}")
async def list_assignment_grades(
    assignment_id: str,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await submission_service.find_grades_by_assignment(
        store, assignment_id, pagination.page, pagination.limit
    )
    return serialize_mongo(page)


@router.get("/grades/{grade_id}")
async def get_grade(grade_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await submission_service.get_grade(store, grade_id))


@router.patch("/grades/{grade_id}")
async def update_grade(grade_id: str, payload: GradeUpdate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await submission_service.update_grade(store, grade_id, payload))


@router.delete("/grades/{grade_id}")
async def delete_grade(grade_id: str, store: EntityStore = Depends(get_store)):
    await submission_service.delete_grade(store, grade_id)
    return {"success": True, "_id": grade_id}
