"""
Reference Integrity Manager

Resolves reference fields before writes, checks ordering uniqueness inside a
course or module, and maintains the denormalized back-references:
Instructor.courses, Student.enrolledCourses and Course.enrollmentCount.

Course.instructor and Student.enrolledCourses are authoritative; the reverse
index and the enrollment counter can always be rebuilt from them.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId

from lms.errors import (
    AlreadyAssigned,
    AlreadyEnrolled,
    DuplicateEntry,
    DuplicateOrder,
    HasDependents,
    InconsistentReference,
    NotEnrolled,
    NotFound,
    ReferenceNotFound,
)
from lms.models import COLLECTIONS, EntityKind
from lms.store.base import EntityStore, to_object_id

logger = logging.getLogger(__name__)

# Reference field -> collection it points into
REFERENCE_FIELDS = {
    "instructor": "instructors",
    "student": "students",
    "course": "courses",
    "module": "modules",
    "lesson": "lessons",
    "assignment": "assignments",
    "submission": "submissions",
    "gradedBy": "instructors",
}

# Fields filled from a parent when the caller leaves them out
DENORMALIZED_COURSE = {
    EntityKind.LESSON: "module",
    EntityKind.SUBMISSION: "assignment",
    EntityKind.GRADE: "assignment",
}

# Scope of the per-parent `order` uniqueness
ORDER_SCOPES = {
    EntityKind.MODULE: "course",
    EntityKind.LESSON: "module",
}


class ReferenceIntegrityManager:
    def __init__(self, store: EntityStore):
        self.store = store

    # ==================== LOOKUPS ====================

    async def require(self, kind: EntityKind, entity_id: Any) -> dict:
        """Fetch an addressed entity or raise NotFound"""
        oid = to_object_id(entity_id, kind.value)
        doc = await self.store.find_by_id(COLLECTIONS[kind], oid)
        if doc is None:
            raise NotFound(kind.value.capitalize(), entity_id)
        return doc

    async def resolve_reference(self, field: str, value: Any) -> dict:
        oid = to_object_id(value, field)
        doc = await self.store.find_by_id(REFERENCE_FIELDS[field], oid)
        if doc is None:
            raise ReferenceNotFound(field, value)
        return doc

    # ==================== WRITE VALIDATION ====================

    async def link_on_create(self, kind: EntityKind, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and normalize a document about to be inserted.

        Reference fields are converted to ObjectIds after an existence
        lookup, denormalized `course` fields are filled from the parent and
        the order/email pre-checks run. Returns the payload ready to store.
        """
        resolved = await self._resolve_references(payload)
        await self._check_consistency(kind, payload, resolved, supplied=set(payload))
        await self._check_unique_fields(kind, payload)
        return payload

    async def link_on_update(self, kind: EntityKind, entity_id: Any, patch: Dict[str, Any]) -> Dict[str, Any]:
        """Same as link_on_create for a partial patch, checked against the merged document"""
        current = await self.require(kind, entity_id)
        resolved = await self._resolve_references(patch)
        merged = {**current, **patch}

        # unchanged parents are still needed to check the patched fields against
        for field in ("module", "lesson", "assignment", "submission"):
            if field not in resolved and merged.get(field) is not None and self._needs_parent(kind, field, patch):
                resolved[field] = await self.resolve_reference(field, merged[field])

        await self._check_consistency(kind, merged, resolved, supplied=set(patch), exclude_id=current["_id"])
        if kind == EntityKind.MODULE and patch.get("course", current["course"]) != current["course"]:
            await self.check_module_move(current)
        if DENORMALIZED_COURSE.get(kind) in patch and "course" not in patch:
            patch["course"] = merged["course"]
        if kind in ORDER_SCOPES and ("order" in patch or ORDER_SCOPES[kind] in patch):
            await self.check_order(kind, merged[ORDER_SCOPES[kind]], merged["order"], exclude_id=current["_id"])
        await self._check_unique_fields(kind, patch, exclude_id=current["_id"])
        return patch

    @staticmethod
    def _needs_parent(kind: EntityKind, field: str, patch: Dict[str, Any]) -> bool:
        touched = set(patch)
        if kind == EntityKind.ASSIGNMENT:
            return field in ("module", "lesson") and bool({"course", "module", "lesson"} & touched)
        if kind == EntityKind.GRADE and field == "submission":
            return bool({"student", "assignment", "submission"} & touched)
        return DENORMALIZED_COURSE.get(kind) == field and "course" in touched

    async def _resolve_references(self, payload: Dict[str, Any]) -> Dict[str, dict]:
        resolved = {}
        for field in REFERENCE_FIELDS:
            if field not in payload or payload[field] is None:
                continue
            doc = await self.resolve_reference(field, payload[field])
            payload[field] = doc["_id"]
            resolved[field] = doc
        return resolved

    async def _check_consistency(
        self,
        kind: EntityKind,
        doc: Dict[str, Any],
        resolved: Dict[str, dict],
        supplied: set,
        exclude_id: Optional[ObjectId] = None,
    ) -> None:
        if kind in DENORMALIZED_COURSE:
            parent_field = DENORMALIZED_COURSE[kind]
            parent = resolved.get(parent_field)
            if parent is not None:
                expected = parent.get("course")
                if "course" in supplied and doc.get("course") is not None:
                    if doc["course"] != expected:
                        raise InconsistentReference(
                            f'{parent_field.capitalize()} "{parent["_id"]}" does not belong to course "{doc["course"]}"'
                        )
                else:
                    doc["course"] = expected

        if kind == EntityKind.ASSIGNMENT:
            module = resolved.get("module")
            lesson = resolved.get("lesson")
            if module is not None and module["course"] != doc.get("course"):
                raise InconsistentReference(
                    f'Module "{module["_id"]}" does not belong to course "{doc.get("course")}"'
                )
            if module is not None and lesson is not None and lesson["module"] != module["_id"]:
                raise InconsistentReference(
                    f'Lesson "{lesson["_id"]}" does not belong to module "{module["_id"]}"'
                )

        if kind == EntityKind.GRADE:
            submission = resolved.get("submission")
            if submission is not None:
                if submission["student"] != doc.get("student") or submission["assignment"] != doc.get("assignment"):
                    raise InconsistentReference(
                        f'Submission "{submission["_id"]}" does not belong to the given student and assignment'
                    )

        if kind in ORDER_SCOPES and exclude_id is None:
            await self.check_order(kind, doc.get(ORDER_SCOPES[kind]), doc.get("order"))

    async def check_order(self, kind: EntityKind, scope_id: ObjectId, order: int,
                          exclude_id: Optional[ObjectId] = None) -> None:
        """Fast-fail pre-check; the unique index remains the final arbiter"""
        scope_field = ORDER_SCOPES[kind]
        filter = {scope_field: scope_id, "order": order}
        if exclude_id is not None:
            filter["_id"] = {"$ne": exclude_id}
        if await self.store.exists(COLLECTIONS[kind], filter):
            raise DuplicateOrder(order, scope_field)

    async def _check_unique_fields(self, kind: EntityKind, payload: Dict[str, Any],
                                   exclude_id: Optional[ObjectId] = None) -> None:
        if kind not in (EntityKind.INSTRUCTOR, EntityKind.STUDENT) or not payload.get("email"):
            return
        filter = {"email": payload["email"]}
        if exclude_id is not None:
            filter["_id"] = {"$ne": exclude_id}
        if await self.store.exists(COLLECTIONS[kind], filter):
            raise DuplicateEntry(f'{kind.value.capitalize()} with email "{payload["email"]}" already exists')

    # ==================== INSTRUCTOR <-> COURSE ====================

    async def attach_course_to_instructor(self, instructor_id: ObjectId, course_id: ObjectId) -> bool:
        changed = await self.store.update_one(
            "instructors", {"_id": instructor_id}, {"$addToSet": {"courses": course_id}}
        )
        logger.info("Attached course %s to instructor %s (changed=%s)", course_id, instructor_id, changed)
        return changed

    async def detach_course_from_instructor(self, instructor_id: ObjectId, course_id: ObjectId) -> bool:
        changed = await self.store.update_one(
            "instructors", {"_id": instructor_id}, {"$pull": {"courses": course_id}}
        )
        logger.info("Detached course %s from instructor %s (changed=%s)", course_id, instructor_id, changed)
        return changed

    async def reassign_course(self, course_id: ObjectId, old_instructor: Optional[ObjectId],
                              new_instructor: ObjectId) -> None:
        """Move the back-reference after Course.instructor has been rewritten"""
        if old_instructor is not None and old_instructor != new_instructor:
            await self.detach_course_from_instructor(old_instructor, course_id)
        try:
            await self.attach_course_to_instructor(new_instructor, course_id)
        except Exception:
            logger.warning(
                "Course %s now points to instructor %s but the back-reference was not added; "
                "run the back-reference repair to restore it",
                course_id,
                new_instructor,
                exc_info=True,
            )

    async def add_instructor_to_course(self, instructor_id: Any, course_id: Any) -> dict:
        instructor = await self.require(EntityKind.INSTRUCTOR, instructor_id)
        course = await self.require(EntityKind.COURSE, course_id)
        if course.get("instructor") == instructor["_id"]:
            raise AlreadyAssigned(instructor_id, course_id)

        await self.store.update_by_id(
            "courses",
            course["_id"],
            {"$set": {"instructor": instructor["_id"], "updatedAt": datetime.utcnow()}},
        )
        await self.reassign_course(course["_id"], course.get("instructor"), instructor["_id"])
        return await self.store.find_by_id("instructors", instructor["_id"])

    # ==================== MODULE <-> COURSE ====================

    async def check_module_move(self, module: dict) -> None:
        """Assignments pin a module to its course; only lessons follow a move"""
        assignments = await self.store.count("assignments", {"module": module["_id"]})
        if assignments:
            raise HasDependents(
                f'Cannot move module "{module["_id"]}" to another course because it has '
                f"{assignments} associated assignments"
            )

    async def move_module_lessons(self, module_id: ObjectId, course_id: ObjectId) -> int:
        """Rewrite the denormalized course of every lesson of a moved module"""
        try:
            moved = await self.store.update_many(
                "lessons",
                {"module": module_id},
                {"$set": {"course": course_id, "updatedAt": datetime.utcnow()}},
            )
        except Exception:
            logger.warning(
                "Module %s moved to course %s but its lessons still name the old course",
                module_id,
                course_id,
                exc_info=True,
            )
            return 0
        logger.info("Moved %d lessons of module %s to course %s", moved, module_id, course_id)
        return moved

    # ==================== ENROLLMENT ====================

    async def enroll(self, student_id: Any, course_id: Any) -> dict:
        student = await self.require(EntityKind.STUDENT, student_id)
        course = await self.require(EntityKind.COURSE, course_id)
        sid, cid = student["_id"], course["_id"]

        if cid in student.get("enrolledCourses", []):
            raise AlreadyEnrolled(student_id, course_id)

        # conditional add: a concurrent enroll of the same pair loses here
        added = await self.store.update_one(
            "students",
            {"_id": sid, "enrolledCourses": {"$ne": cid}},
            {"$addToSet": {"enrolledCourses": cid}},
        )
        if not added:
            raise AlreadyEnrolled(student_id, course_id)
        logger.info("Student %s enrolled in course %s", sid, cid)

        try:
            await self.store.update_one("courses", {"_id": cid}, {"$inc": {"enrollmentCount": 1}})
        except Exception:
            logger.warning(
                "Student %s enrolled in course %s but enrollmentCount was not incremented", sid, cid,
                exc_info=True,
            )
        return await self.store.find_by_id("students", sid)

    async def unenroll(self, student_id: Any, course_id: Any) -> dict:
        student = await self.require(EntityKind.STUDENT, student_id)
        cid = to_object_id(course_id, "course")
        sid = student["_id"]

        if cid not in student.get("enrolledCourses", []):
            raise NotEnrolled(student_id, course_id)

        removed = await self.store.update_one(
            "students",
            {"_id": sid, "enrolledCourses": cid},
            {"$pull": {"enrolledCourses": cid}},
        )
        if not removed:
            raise NotEnrolled(student_id, course_id)
        logger.info("Student %s unenrolled from course %s", sid, cid)

        try:
            # floor at zero: the filter refuses to decrement an empty counter
            await self.store.update_one(
                "courses",
                {"_id": cid, "enrollmentCount": {"$gt": 0}},
                {"$inc": {"enrollmentCount": -1}},
            )
        except Exception:
            logger.warning(
                "Student %s unenrolled from course %s but enrollmentCount was not decremented", sid, cid,
                exc_info=True,
            )
        return await self.store.find_by_id("students", sid)

    # ==================== REPAIR ====================

    async def rebuild_instructor_courses(self, instructor_id: Any) -> bool:
        """Recompute Instructor.courses from Course.instructor; True when it changed"""
        instructor = await self.require(EntityKind.INSTRUCTOR, instructor_id)
        return await self._sync_instructor(instructor)

    async def _sync_instructor(self, instructor: dict) -> bool:
        courses = await self.store.find("courses", {"instructor": instructor["_id"]}, sort=[("createdAt", 1)])
        expected = [c["_id"] for c in courses]
        current = instructor.get("courses", [])
        if len(current) == len(expected) and set(current) == set(expected):
            return False
        await self.store.update_by_id("instructors", instructor["_id"], {"$set": {"courses": expected}})
        return True

    async def recount_enrollment(self, course_id: Any) -> bool:
        """Recompute Course.enrollmentCount from student enrollments; True when it changed"""
        cid = to_object_id(course_id, "course")
        enrolled = await self.store.count("students", {"enrolledCourses": cid})
        return await self.store.update_one(
            "courses",
            {"_id": cid, "enrollmentCount": {"$ne": enrolled}},
            {"$set": {"enrollmentCount": enrolled}},
        )

    async def rebuild_back_references(self) -> Dict[str, int]:
        """
        Idempotent repair of every back-reference from authoritative fields.
        Returns how many documents of each collection were rewritten.
        """
        report = {"instructors": 0, "students": 0, "courses": 0}
        course_ids = [c["_id"] for c in await self.store.find("courses")]
        known = set(course_ids)

        for instructor in await self.store.find("instructors"):
            if await self._sync_instructor(instructor):
                report["instructors"] += 1

        for student in await self.store.find("students"):
            current = student.get("enrolledCourses", [])
            cleaned = []
            for cid in current:
                if cid in known and cid not in cleaned:
                    cleaned.append(cid)
            if cleaned != current:
                await self.store.update_by_id("students", student["_id"], {"$set": {"enrolledCourses": cleaned}})
                report["students"] += 1

        for cid in course_ids:
            if await self.recount_enrollment(cid):
                report["courses"] += 1

        logger.info("Back-reference repair finished: %s", report)
        return report
