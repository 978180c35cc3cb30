from typing import Optional

from fastapi import APIRouter, Depends, Query

from lms.dependencies import get_pagination, get_store
from lms.models import (
    CourseCreate,
    CourseStatus,
    CourseUpdate,
    LessonCreate,
    LessonUpdate,
    ModuleCreate,
    ModuleUpdate,
    PaginationParams,
)
from lms.services import content_service, course_service
from lms.store.base import EntityStore, serialize_mongo

router = APIRouter(tags=["Course Management"])

# ==================== COURSES ====================

@router.post("/courses", status_code=201)
async def create_course(payload: CourseCreate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await course_service.create_course(store, payload))


@router.get("/courses")
async def list_courses(
    status: Optional[CourseStatus] = None,
    instructor: Optional[str] = None,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    """List courses, newest first"""
    page = await course_service.list_courses(
        store,
        pagination.page,
        pagination.limit,
        status=status.value if status else None,
        instructor=instructor,
    )
    return serialize_mongo(page)


@router.get("/courses/search")
async def search_courses(
    q: str = Query(..., min_length=1),
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await course_service.search_courses(store, q, pagination.page, pagination.limit)
    return serialize_mongo(page)


@router.get("/courses/{course_id}")
async def get_course(course_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await course_service.get_course(store, course_id))


@router.get("/courses/{course_id}/details")
async def get_course_details(course_id: str, store: EntityStore = Depends(get_store)):
    """Course with instructor, ordered modules and lessons, and assignments"""
    return serialize_mongo(await course_service.get_course_details(store, course_id))


@router.get("/courses/{course_id}/statistics")
async def get_course_statistics(course_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await course_service.get_course_statistics(store, course_id))


@router.patch("/courses/{course_id}")
async def update_course(course_id: str, payload: CourseUpdate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await course_service.update_course(store, course_id, payload))


@router.delete("/courses/{course_id}")
async def delete_course(course_id: str, store: EntityStore = Depends(get_store)):
    """Deletes the course with its modules, lessons and assignments"""
    await course_service.delete_course(store, course_id)
    return {"success": True, "_id": course_id}

# ==================== MODULES ====================

@router.post("/modules", status_code=201)
async def create_module(payload: ModuleCreate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await content_service.create_module(store, payload))


@router.get("/modules")
async def list_modules(
    course: Optional[str] = None,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await content_service.list_modules(store, pagination.page, pagination.limit, course=course)
    return serialize_mongo(page)


@router.get("/modules/course/{course_id}")
async def list_course_modules(
    course_id: str,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await content_service.find_modules_by_course(store, course_id, pagination.page, pagination.limit)
    return serialize_mongo(page)


@router.get("/modules/{module_id}")
async def get_module(module_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await content_service.get_module(store, module_id))


@router.patch("/modules/{module_id}")
async def update_module(module_id: str, payload: ModuleUpdate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await content_service.update_module(store, module_id, payload))


@router.delete("/modules/{module_id}")
async def delete_module(module_id: str, store: EntityStore = Depends(get_store)):
    await content_service.delete_module(store, module_id)
    return {"success": True, "_id": module_id}

# ==================== LESSONS ====================

@router.post("/lessons", status_code=201)
async def create_lesson(payload: LessonCreate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await content_service.create_lesson(store, payload))


@router.get("/lessons")
async def list_lessons(
    module: Optional[str] = None,
    course: Optional[str] = None,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await content_service.list_lessons(
        store, pagination.page, pagination.limit, module=module, course=course
    )
    return serialize_mongo(page)


@router.get("/lessons/module/{module_id}")
async def list_module_lessons(
    module_id: str,
    pagination: PaginationParams = Depends(get_pagination),
    store: EntityStore = Depends(get_store),
):
    page = await content_service.find_lessons_by_module(store, module_id, pagination.page, pagination.limit)
    return serialize_mongo(page)


@router.get("/lessons/{lesson_id}")
async def get_lesson(lesson_id: str, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await content_service.get_lesson(store, lesson_id))


@router.patch("/lessons/{lesson_id}")
async def update_lesson(lesson_id: str, payload: LessonUpdate, store: EntityStore = Depends(get_store)):
    return serialize_mongo(await content_service.update_lesson(store, lesson_id, payload))


@router.delete("/lessons/{lesson_id}")
async def delete_lesson(lesson_id: str, store: EntityStore = Depends(get_store)):
    await content_service.delete_lesson(store, lesson_id)
    return {"success": True, "_id": lesson_id}
