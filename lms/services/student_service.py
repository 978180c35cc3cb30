from typing import Optional

from lms.core.aggregation import AggregationEngine
from lms.core.cascade import CascadeManager
from lms.core.integrity import ReferenceIntegrityManager
from lms.core.pagination import paginate
from lms.models import EntityKind, StudentCreate, StudentUpdate
from lms.services.common import get_entity, insert_entity, patch_entity
from lms.store.base import EntityStore

# ==================== STUDENT CRUD ====================

async def create_student(store: EntityStore, data: StudentCreate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    document = await integrity.link_on_create(EntityKind.STUDENT, data.to_document())
    document["enrolledCourses"] = []
    return await insert_entity(store, EntityKind.STUDENT, document)


async def list_students(store: EntityStore, page: int = None, limit: int = None,
                        status: Optional[str] = None) -> dict:
    filter = {"status": status} if status else {}
    return await paginate(store, "students", filter, page, limit, sort=[("createdAt", -1)])


async def get_student(store: EntityStore, student_id: str) -> dict:
    return await get_entity(store, EntityKind.STUDENT, student_id)


async def update_student(store: EntityStore, student_id: str, data: StudentUpdate) -> dict:
    integrity = ReferenceIntegrityManager(store)
    patch = await integrity.link_on_update(EntityKind.STUDENT, student_id, data.to_patch())
    return await patch_entity(store, EntityKind.STUDENT, student_id, patch)


async def delete_student(store: EntityStore, student_id: str) -> dict:
    integrity = ReferenceIntegrityManager(store)
    return await CascadeManager(store, integrity).delete(EntityKind.STUDENT, student_id)

# ==================== ENROLLMENT ====================

async def enroll_student(store: EntityStore, student_id: str, course_id: str) -> dict:
    return await ReferenceIntegrityManager(store).enroll(student_id, course_id)


async def unenroll_student(store: EntityStore, student_id: str, course_id: str) -> dict:
    return await ReferenceIntegrityManager(store).unenroll(student_id, course_id)

# ==================== REPORTS ====================

def _engine(store: EntityStore) -> AggregationEngine:
    return AggregationEngine(store, ReferenceIntegrityManager(store))


async def get_enrollment_details(store: EntityStore, student_id: str) -> dict:
    return await _engine(store).get_enrollment_details(student_id)


async def get_student_performance(store: EntityStore, student_id: str) -> dict:
    return await _engine(store).get_student_performance(student_id)


async def get_submission_statistics(store: EntityStore, student_id: str) -> dict:
    return await _engine(store).get_submission_statistics(student_id)
