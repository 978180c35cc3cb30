import math
from typing import Any, Dict, Optional

from lms.config import DEFAULT_PAGE, DEFAULT_PAGE_LIMIT
from lms.models import PaginationMeta
from lms.store.base import EntityStore, SortSpec


def build_page(items: list, total: int, page: int, limit: int) -> Dict[str, Any]:
    """Wrap one page of results into the {items, meta} envelope"""
    meta = PaginationMeta(
        totalItems=total,
        itemCount=len(items),
        itemsPerPage=limit,
        totalPages=math.ceil(total / limit) if limit else 0,
        currentPage=page,
    )
    return {"items": items, "meta": meta.model_dump()}


async def paginate(
    store: EntityStore,
    collection: str,
    filter: Optional[Dict[str, Any]] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    sort: Optional[SortSpec] = None,
) -> Dict[str, Any]:
    page = page or DEFAULT_PAGE
    limit = limit or DEFAULT_PAGE_LIMIT
    skip = (page - 1) * limit

    items = await store.find(collection, filter or {}, sort=sort, skip=skip, limit=limit)
    total = await store.count(collection, filter or {})
    return build_page(items, total, page, limit)
