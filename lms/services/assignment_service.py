from typing import Optional

from lms.core.cascade import CascadeManager
from lms.core.integrity import ReferenceIntegrityManager
from lms.core.pagination import paginate
from lms.models import AssignmentCreate, AssignmentUpdate, EntityKind
from lms.services.common import get_entity, id_filter, insert_entity, patch_entity
from lms.store.base import EntityStore

BY_DUE_DATE = [("dueDate", 1)]


async def create_assignment(store: EntityStore, data: AssignmentCreate) -> dict:
    """Module must belong to the course, and the lesson to the module when both are given"""
    integrity = ReferenceIntegrityManager(store)
    document = await integrity.link_on_create(EntityKind.ASSIGNMENT, data.to_document())
    return await insert_entity(store, EntityKind.ASSIGNMENT, document)


async def list_assignments(store: EntityStore, page: int = None, limit: int = None,
                           course: Optional[str] = None, module: Optional[str] = None,
                           status: Optional[str] = None) -> dict:
    filter = id_filter(course=course, module=module)
    if status:
        filter["status"] = status
    return await paginate(store, "assignments", filter, page, limit, sort=BY_DUE_DATE)


async def find_assignments_by_course(store: EntityStore, course_id: str,
                                     page: int = None, limit: int = None) -> dict:
    course = await get_entity(store, EntityKind.COURSE, course_id)
    return await paginate(store, "assignments", {"course": course["_id"]}, page, limit, sort=BY_DUE_DATE)


async def get_assignment(store: EntityStore, assignment_id: str) -> dict:
    return await get_entity(store, EntityKind.ASSIGNMENT, assignment_id)


async def update_assignment(store: EntityStore, assignment_id: str, data: AssignmentUpdate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    patch = await integrity.link_on_update(EntityKind.ASSIGNMENT, assignment_id, data.to_patch())
    return await patch_entity(store, EntityKind.ASSIGNMENT, assignment_id, patch)


async def delete_assignment(store: EntityStore, assignment_id: str) -> dict:
    integrity = ReferenceIntegrityManager(store)
    return await CascadeManager(store, integrity).delete(EntityKind.ASSIGNMENT, assignment_id)
