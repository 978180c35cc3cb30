from typing import Optional

from lms.core.cascade import CascadeManager
from lms.core.integrity import ReferenceIntegrityManager
from lms.core.pagination import paginate
from lms.models import EntityKind, InstructorCreate, InstructorUpdate
from lms.services.common import get_entity, insert_entity, patch_entity
from lms.store.base import EntityStore

# ==================== INSTRUCTOR CRUD ====================

async def create_instructor(store: EntityStore, data: InstructorCreate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    document = await integrity.link_on_create(EntityKind.INSTRUCTOR, data.to_document())
    document["courses"] = []
    return await insert_entity(store, EntityKind.INSTRUCTOR, document)


async def list_instructors(store: EntityStore, page: int = None, limit: int = None,
                           status: Optional[str] = None) -> dict:
    filter = {"status": status} if status else {}
    return await paginate(store, "instructors", filter, page, limit, sort=[("createdAt", -1)])


async def get_instructor(store: EntityStore, instructor_id: str) -> dict:
    return await get_entity(store, EntityKind.INSTRUCTOR, instructor_id)


async def update_instructor(store: EntityStore, instructor_id: str, data: InstructorUpdate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    patch = await integrity.link_on_update(EntityKind.INSTRUCTOR, instructor_id, data.to_patch())
    return await patch_entity(store, EntityKind.INSTRUCTOR, instructor_id, patch)


async def delete_instructor(store: EntityStore, instructor_id: str) -> dict:
    """Removed in isolation; courses keep pointing at the id"""
    integrity = ReferenceIntegrityManager(store)
    return await CascadeManager(store, integrity).delete(EntityKind.INSTRUCTOR, instructor_id)

# ==================== TEACHING ====================

async def get_instructor_courses(store: EntityStore, instructor_id: str,
                                 page: int = None, limit: int = None) -> dict:
    """Courses taught, read from Course.instructor rather than the back-reference"""
    instructor = await get_entity(store, EntityKind.INSTRUCTOR, instructor_id)
    return await paginate(
        store, "courses", {"instructor": instructor["_id"]}, page, limit, sort=[("createdAt", -1)]
    )


async def add_course_to_instructor(store: EntityStore, instructor_id: str, course_id: str) -> dict:
    return await ReferenceIntegrityManager(store).add_instructor_to_course(instructor_id, course_id)
