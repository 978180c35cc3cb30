from typing import Optional

from fastapi import APIRouter, Depends

from lms.dependencies import get_pagination, get_store
from lms.models import InstructorCreate, InstructorStatus, InstructorUpdate, PaginationParams
from lms.services import instructor_service
from lms.store.base import EntityStore, serialize_mongo

router = APIRouter(prefix="/instructors", tags=["Instructors"])

# ==================== INSTRUCTOR CRUD ====================

@router.post("", status_code=201)
async def create_instructor(payload: InstructorCreate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await instructor_service.create_instructor(store, payload))


@router.get("")
async def list_instructors(
    status: Optional[InstructorStatus] = None,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await instructor_service.list_instructors(
        store, pagination.page, pagination.limit, status=status.value if status else None
    )
    return serialize_mongo(page)


@router.get("/{instructor_id}")
async def get_instructor(instructor_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await instructor_service.get_instructor(store, instructor_id))


@router.patch("/{instructor_id}")
async def update_instructor(instructor_id: str, payload: InstructorUpdate,
                            store: EntityStore = Depends(get_store)):
    return serialize_mongo(await instructor_service.update_instructor(store, instructor_id, payload))


@router.delete("/{instructor_id}")
async def delete_instructor(instructor_id: str, store: EntityStore = Depends(get_store)):
    await instructor_service.delete_instructor(store, instructor_id)
    return {"success": True, "_id": instructor_id}

# ==================== TEACHING ====================

@router.get("/{instructor_id}/courses")
async def get_instructor_courses(
    instructor_id: str,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await instructor_service.get_instructor_courses(
        store, instructor_id, pagination.page, pagination.limit
    )
    return serialize_mongo(page)


@router.post("/{instructor_id}/add-course/{course_id}")
async def add_course(instructor_id: str, course_id: str, store: EntityStore = Depends(get_store)):
    """Make this instructor the owner of the course"""
    return serialize_mongo(await instructor_service.add_course_to_instructor(store, instructor_id, course_id))
