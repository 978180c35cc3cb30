from fastapi import Query

from lms.config import DEFAULT_PAGE, DEFAULT_PAGE_LIMIT
from lms.database import db_manager
from lms.models import PaginationParams
from lms.store.base import EntityStore

# ==================== DEPENDENCY FUNCTIONS ====================

async def get_store() -> EntityStore:
    """Entity store dependency"""
    return db_manager.get_store()


async def get_pagination(
    page: int = Query(DEFAULT_PAGE, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1),
) -> PaginationParams:
    return PaginationParams(page=page, limit=limit)
