"""
Persistence helpers shared by the entity services: timestamps, store-level
uniqueness violations and not-found handling.
"""

from datetime import datetime
from typing import Any, Dict

from pymongo.errors import DuplicateKeyError

from lms.core.integrity import ORDER_SCOPES
from lms.errors import DuplicateEntry, DuplicateOrder, LMSError, NotFound
from lms.models import COLLECTIONS, EntityKind
from lms.store.base import EntityStore, to_object_id


def translate_duplicate(exc: DuplicateKeyError, kind: EntityKind, document: Dict[str, Any]) -> LMSError:
    """Map a unique index violation to the error the pre-check would have raised"""
    key_pattern = (exc.details or {}).get("keyPattern") or {}
    if kind in ORDER_SCOPES and ("order" in key_pattern or "order_1" in str(exc)):
        return DuplicateOrder(document.get("order"), ORDER_SCOPES[kind])

    fields = ", ".join(key_pattern) or "unique key"
    return DuplicateEntry(f"{kind.value.capitalize()} with the same {fields} already exists")


async def insert_entity(store: EntityStore, kind: EntityKind, document: Dict[str, Any]) -> dict:
    now = datetime.utcnow()
    document["createdAt"] = now
    document["updatedAt"] = now
    try:
        return await store.insert(COLLECTIONS[kind], document)
    except DuplicateKeyError as exc:
        raise translate_duplicate(exc, kind, document) from exc


async def patch_entity(store: EntityStore, kind: EntityKind, entity_id: Any, patch: Dict[str, Any]) -> dict:
    oid = to_object_id(entity_id, kind.value)
    patch["updatedAt"] = datetime.utcnow()
    try:
        updated = await store.update_by_id(COLLECTIONS[kind], oid, {"$set": patch})
    except DuplicateKeyError as exc:
        raise translate_duplicate(exc, kind, patch) from exc
    if updated is None:
        raise NotFound(kind.value.capitalize(), entity_id)
    return updated


async def get_entity(store: EntityStore, kind: EntityKind, entity_id: Any) -> dict:
    doc = await store.find_by_id(COLLECTIONS[kind], to_object_id(entity_id, kind.value))
    if doc is None:
        raise NotFound(kind.value.capitalize(), entity_id)
    return doc


def id_filter(**references: Any) -> Dict[str, Any]:
    """Equality filter over optional reference ids; None values are skipped"""
    return {
        field: to_object_id(value, field)
        for field, value in references.items()
        if value is not None
    }
