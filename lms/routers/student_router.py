from typing import Optional

from fastapi import APIRouter, Depends

from lms.dependencies import get_pagination, get_store
from lms.models import PaginationParams, StudentCreate, StudentStatus, StudentUpdate
from lms.services import student_service
from lms.store.base import EntityStore, serialize_mongo

router = APIRouter(prefix="/students", tags=["Students"])

# ==================== STUDENT CRUD ====================

@router.post("", status_code=201)
async def create_student(payload: StudentCreate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await student_service.create_student(store, payload))


@router.get("")
async def list_students(
    status: Optional[StudentStatus] = None,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await student_service.list_students(
        store, pagination.page, pagination.limit, status=status.value if status else None
    )
    return serialize_mongo(page)


@router.get("/{student_id}")
async def get_student(student_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await student_service.get_student(store, student_id))


@router.patch("/{student_id}")
async def update_student(student_id: str, payload: StudentUpdate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await student_service.update_student(store, student_id, payload))


@router.delete("/{student_id}")
async def delete_student(student_id: str, store: EntityStore = Depends(get_store)):
    await student_service.delete_student(store, student_id)
    return {"success": True, "_id": student_id}

# ==================== ENROLLMENT ====================

@router.post("/{student_id}/enroll/{course_id}")
async def enroll(student_id: str, course_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await student_service.enroll_student(store, student_id, course_id))


@router.post("/{student_id}/unenroll/{course_id}")
async def unenroll(student_id: str, course_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await student_service.unenroll_student(store, student_id, course_id))

# ==================== REPORTS ====================

@router.get("/{student_id}/dashboard")
async def get_dashboard(student_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await student_service.get_enrollment_details(store, student_id))


@router.get("/{student_id}/performance")
async def get_performance(student_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await student_service.get_student_performance(store, student_id))


@router.get("/{student_id}/submissions")
async def get_submission_statistics(student_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await student_service.get_submission_statistics(store, student_id))
