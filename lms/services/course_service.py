import logging
import re
from typing import Optional

from lms.core.aggregation import AggregationEngine
from lms.core.cascade import CascadeManager
from lms.core.integrity import ReferenceIntegrityManager
from lms.core.pagination import paginate
from lms.models import CourseCreate, CourseUpdate, EntityKind
from lms.services.common import get_entity, id_filter, insert_entity, patch_entity
from lms.store.base import EntityStore

logger = logging.getLogger(__name__)

# ==================== COURSE CRUD ====================

async def create_course(store: EntityStore, data: CourseCreate) -> dict:
    """Insert the course, then add it to the instructor's back-reference"""
    integrity = ReferenceIntegrityManager(store)
    document = await integrity.link_on_create(EntityKind.COURSE, data.to_document())
    document["enrollmentCount"] = 0

    course = await insert_entity(store, EntityKind.COURSE, document)
    try:
        await integrity.attach_course_to_instructor(course["instructor"], course["_id"])
    except Exception:
        logger.warning(
            "Course %s created but not added to instructor %s; back-reference repair will restore it",
            course["_id"],
            course["instructor"],
            exc_info=True,
        )
    return course


async def list_courses(store: EntityStore, page: int = None, limit: int = None,
                       status: Optional[str] = None, instructor: Optional[str] = None) -> dict:
    filter = id_filter(instructor=instructor)
    if status:
        filter["status"] = status
    return await paginate(store, "courses", filter, page, limit, sort=[("createdAt", -1)])


async def get_course(store: EntityStore, course_id: str) -> dict:
    return await get_entity(store, EntityKind.COURSE, course_id)


async def update_course(store: EntityStore, course_id: str, data: CourseUpdate) -> dict:
    """Partial update; an instructor change moves the back-reference after the course is written"""
    integrity = ReferenceIntegrityManager(store)
    current = await integrity.require(EntityKind.COURSE, course_id)
    patch = await integrity.link_on_update(EntityKind.COURSE, course_id, data.to_patch())
    updated = await patch_entity(store, EntityKind.COURSE, course_id, patch)

    new_instructor = patch.get("instructor")
    if new_instructor is not None and new_instructor != current.get("instructor"):
        await integrity.reassign_course(updated["_id"], current.get("instructor"), new_instructor)
    return updated


async def delete_course(store: EntityStore, course_id: str) -> dict:
    integrity = ReferenceIntegrityManager(store)
    return await CascadeManager(store, integrity).on_delete_course(course_id)

# ==================== QUERIES ====================

async def search_courses(store: EntityStore, term: str, page: int = None, limit: int = None) -> dict:
    """Case-insensitive match over title, description and tags"""
    pattern = re.escape(term.strip())
    filter = {
        "$or": [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"tags": {"$regex": pattern, "$options": "i"}},
        ]
    }
    return await paginate(store, "courses", filter, page, limit, sort=[("createdAt", -1)])


async def get_course_statistics(store: EntityStore, course_id: str) -> dict:
    course = await get_entity(store, EntityKind.COURSE, course_id)
    cid = course["_id"]

    modules_count = await store.count("modules", {"course": cid})
    lessons_count = await store.count("lessons", {"course": cid})
    assignments_count = await store.count("assignments", {"course": cid})

    return {
        "course": {
            "_id": cid,
            "title": course.get("title"),
            "status": course.get("status"),
            "enrollmentCount": course.get("enrollmentCount", 0),
        },
        "modulesCount": modules_count,
        "lessonsCount": lessons_count,
        "assignmentsCount": assignments_count,
        "totalContentItems": modules_count + lessons_count + assignments_count,
    }


async def get_course_details(store: EntityStore, course_id: str) -> dict:
    engine = AggregationEngine(store, ReferenceIntegrityManager(store))
    return await engine.get_course_details(course_id)
