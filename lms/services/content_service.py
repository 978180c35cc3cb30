"""Modules and lessons: the ordered content of a course"""

from typing import Optional

from lms.core.cascade import CascadeManager
from lms.core.integrity import ReferenceIntegrityManager
from lms.core.pagination import paginate
from lms.models import EntityKind, LessonCreate, LessonUpdate, ModuleCreate, ModuleUpdate
from lms.services.common import get_entity, id_filter, insert_entity, patch_entity
from lms.store.base import EntityStore

ORDERED = [("order", 1)]

# ==================== MODULES ====================

async def create_module(store: EntityStore, data: ModuleCreate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    document = await integrity.link_on_create(EntityKind.MODULE, data.to_document())
    return await insert_entity(store, EntityKind.MODULE, document)


async def list_modules(store: EntityStore, page: int = None, limit: int = None,
                       course: Optional[str] = None) -> dict:
    return await paginate(store, "modules", id_filter(course=course), page, limit, sort=ORDERED)


async def find_modules_by_course(store: EntityStore, course_id: str,
                                 page: int = None, limit: int = None) -> dict:
    course = await get_entity(store, EntityKind.COURSE, course_id)
    return await paginate(store, "modules", {"course": course["_id"]}, page, limit, sort=ORDERED)


async def get_module(store: EntityStore, module_id: str) -> dict:
    return await get_entity(store, EntityKind.MODULE, module_id)


async def update_module(store: EntityStore, module_id: str, data: ModuleUpdate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    current = await integrity.require(EntityKind.MODULE, module_id)
    patch = await integrity.link_on_update(EntityKind.MODULE, module_id, data.to_patch())
    module = await patch_entity(store, EntityKind.MODULE, module_id, patch)
    if module["course"] != current["course"]:
        await integrity.move_module_lessons(module["_id"], module["course"])
    return module


async def delete_module(store: EntityStore, module_id: str) -> dict:
    """Refused with HasDependents while lessons remain"""
    integrity = ReferenceIntegrityManager(store)
    return await CascadeManager(store, integrity).on_delete_module(module_id)

# ==================== LESSONS ====================

async def create_lesson(store: EntityStore, data: LessonCreate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    document = await integrity.link_on_create(EntityKind.LESSON, data.to_document())
    return await insert_entity(store, EntityKind.LESSON, document)


async def list_lessons(store: EntityStore, page: int = None, limit: int = None,
                       module: Optional[str] = None, course: Optional[str] = None) -> dict:
    filter = id_filter(module=module, course=course)
    return await paginate(store, "lessons", filter, page, limit, sort=ORDERED)


async def find_lessons_by_module(store: EntityStore, module_id: str,
                                 page: int = None, limit: int = None) -> dict:
    module = await get_entity(store, EntityKind.MODULE, module_id)
    return await paginate(store, "lessons", {"module": module["_id"]}, page, limit, sort=ORDERED)


async def get_lesson(store: EntityStore, lesson_id: str) -> dict:
    return await get_entity(store, EntityKind.LESSON, lesson_id)


async def update_lesson(store: EntityStore, lesson_id: str, data: LessonUpdate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    patch = await integrity.link_on_update(EntityKind.LESSON, lesson_id, data.to_patch())
    return await patch_entity(store, EntityKind.LESSON, lesson_id, patch)


async def delete_lesson(store: EntityStore, lesson_id: str) -> dict:
    integrity = ReferenceIntegrityManager(store)
    return await CascadeManager(store, integrity).delete(EntityKind.LESSON, lesson_id)
