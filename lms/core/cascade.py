"""
Cascade Manager

Deletion policy per entity kind. Course deletion removes its content
dependents first and the course last; module deletion is refused while the
module still has lessons; every other kind is removed in isolation.
"""

import logging
from typing import Any

from lms.core.integrity import ReferenceIntegrityManager
from lms.errors import HasDependents
from lms.models import COLLECTIONS, EntityKind
from lms.store.base import EntityStore

logger = logging.getLogger(__name__)


class CascadeManager:
    def __init__(self, store: EntityStore, integrity: ReferenceIntegrityManager):
        self.store = store
        self.integrity = integrity

    async def delete(self, kind: EntityKind, entity_id: Any) -> dict:
        """Delete one entity under its kind's policy; returns the removed document"""
        if kind == EntityKind.COURSE:
            return await self.on_delete_course(entity_id)
        if kind == EntityKind.MODULE:
            return await self.on_delete_module(entity_id)

        doc = await self.integrity.require(kind, entity_id)
        await self.store.delete_by_id(COLLECTIONS[kind], doc["_id"])
        logger.info("Deleted %s %s", kind.value, doc["_id"])
        return doc

    async def on_delete_course(self, course_id: Any) -> dict:
        course = await self.integrity.require(EntityKind.COURSE, course_id)
        cid = course["_id"]

        module_ids = [m["_id"] for m in await self.store.find("modules", {"course": cid})]
        lessons = await self.store.delete_many(
            "lessons", {"$or": [{"course": cid}, {"module": {"$in": module_ids}}]}
        )
        assignments = await self.store.delete_many("assignments", {"course": cid})
        modules = await self.store.delete_many("modules", {"course": cid})
        logger.info(
            "Course %s cascade: %d modules, %d lessons, %d assignments removed",
            cid, modules, lessons, assignments,
        )

        students = await self.store.update_many(
            "students", {"enrolledCourses": cid}, {"$pull": {"enrolledCourses": cid}}
        )
        if students:
            logger.info("Course %s removed from %d student enrollments", cid, students)

        if course.get("instructor") is not None:
            await self.integrity.detach_course_from_instructor(course["instructor"], cid)

        # a crash before this point leaves the course without content but still addressable
        await self.store.delete_by_id("courses", cid)
        logger.info("Deleted course %s", cid)
        return course

    async def on_delete_module(self, module_id: Any) -> dict:
        module = await self.integrity.require(EntityKind.MODULE, module_id)
        lessons = await self.store.count("lessons", {"module": module["_id"]})
        if lessons:
            raise HasDependents(
                f'Cannot delete module "{module_id}" because it has {lessons} associated lessons'
            )
        await self.store.delete_by_id("modules", module["_id"])
        logger.info("Deleted module %s", module["_id"])
        return module
