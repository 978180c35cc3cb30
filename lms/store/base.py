"""
Entity Store contract shared by the MongoDB and in-memory backends.

Filters, update documents and aggregation pipelines are MongoDB dialect in
both backends, so the same pipeline runs against a live database and the
in-memory fake used by tests.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId

from lms.errors import InvalidIdentifier

SortSpec = Sequence[Tuple[str, int]]


def to_object_id(value: Any, field: str = "entity") -> ObjectId:
    """Parse an id supplied by a caller; malformed ids never reach the store"""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise InvalidIdentifier(field, value)


def serialize_mongo(value: Any) -> Any:
    """Recursively convert ObjectIds to strings for API responses"""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize_mongo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_mongo(v) for v in value]
    return value


class EntityStore(ABC):
    """Document persistence with CRUD, indexing and aggregation"""

    @abstractmethod
    async def find_by_id(self, collection: str, entity_id: ObjectId) -> Optional[dict]:
        ...

    @abstractmethod
    async def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[dict]:
        ...

    @abstractmethod
    async def find(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[dict]:
        ...

    @abstractmethod
    async def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        ...

    @abstractmethod
    async def insert(self, collection: str, document: dict) -> dict:
        """Insert and return the stored document (with its generated _id)"""

    @abstractmethod
    async def update_by_id(self, collection: str, entity_id: ObjectId, update: Dict[str, Any]) -> Optional[dict]:
        """Apply an update document and return the document after the update"""

    @abstractmethod
    async def update_one(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> bool:
        """Conditional update; True when a document matched and changed"""

    @abstractmethod
    async def update_many(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def delete_by_id(self, collection: str, entity_id: ObjectId) -> bool:
        ...

    @abstractmethod
    async def delete_many(self, collection: str, filter: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def aggregate(self, collection: str, pipeline: List[dict]) -> List[dict]:
        ...

    @abstractmethod
    async def create_index(self, collection: str, keys: SortSpec, unique: bool = False) -> None:
        ...

    async def exists(self, collection: str, filter: Dict[str, Any]) -> bool:
        return await self.find_one(collection, filter) is not None

    async def close(self) -> None:
        return None
