from datetime import datetime

from fastapi import APIRouter, Depends

from lms import __version__
from lms.core.integrity import ReferenceIntegrityManager
from lms.dependencies import get_store
from lms.store.base import EntityStore

router = APIRouter(tags=["Admin"])


@router.post("/admin/repair-references")
async def repair_references(store: EntityStore = Depends(get_store)):
    """
    Rebuild Instructor.courses, Student.enrolledCourses and
    Course.enrollmentCount from the authoritative fields
    """
    report = await ReferenceIntegrityManager(store).rebuild_back_references()
    return {"success": True, "updated": report}


@router.get("/health")
async def health(store: EntityStore = Depends(get_store)):
    return {
        "status": "UP",
        "store": type(store).__name__,
        "version": __version__,
        "timestamp": datetime.utcnow(),
    }
