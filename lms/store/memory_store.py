import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from lms.store.base import EntityStore, SortSpec
from lms.store.pipeline_eval import PipelineRunner
from lms.store.query import MISSING, apply_update, get_path, matches, sort_documents, values_equal

logger = logging.getLogger(__name__)


class MemoryEntityStore(EntityStore):
    """
    In-process EntityStore for tests and local runs.

    Documents are deep-copied on the way in and out, unique indexes raise the
    same DuplicateKeyError the MongoDB driver raises, and aggregation
    pipelines go through the in-memory interpreter.
    """

    def __init__(self):
        self.collections: Dict[str, List[dict]] = {}
        self.indexes: Dict[str, List[Tuple[Tuple[str, ...], bool]]] = {}
        self._runner = PipelineRunner(self._collection_snapshot)

    def _docs(self, collection: str) -> List[dict]:
        return self.collections.setdefault(collection, [])

    def _existing(self, collection: str) -> List[dict]:
        return self.collections.get(collection, [])

    def _collection_snapshot(self, collection: str) -> List[dict]:
        return copy.deepcopy(self._existing(collection))

    # ==================== UNIQUE INDEXES ====================

    def _check_unique(self, collection: str, candidate: dict) -> None:
        for keys, unique in self.indexes.get(collection, []):
            if not unique:
                continue
            values = [get_path(candidate, key) for key in keys]
            for other in self._existing(collection):
                if other["_id"] == candidate["_id"]:
                    continue
                if all(values_equal(v, get_path(other, k)) for v, k in zip(values, keys)):
                    key_desc = ", ".join(
                        f"{k}: {None if v is MISSING else v!r}" for k, v in zip(keys, values)
                    )
                    index_name = "_".join(f"{k}_1" for k in keys)
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {collection} index: {index_name} dup key: {{ {key_desc} }}",
                        code=11000,
                        details={"keyPattern": {k: 1 for k in keys}},
                    )

    async def create_index(self, collection: str, keys: SortSpec, unique: bool = False) -> None:
        if isinstance(keys, str):
            keys = [(keys, 1)]
        fields = tuple(k for k, _ in keys)
        existing = self.indexes.setdefault(collection, [])
        if (fields, unique) not in existing:
            existing.append((fields, unique))

    # ==================== READS ====================

    async def find_by_id(self, collection: str, entity_id: ObjectId) -> Optional[dict]:
        return await self.find_one(collection, {"_id": entity_id})

    async def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[dict]:
        for doc in self._existing(collection):
            if matches(doc, filter):
                return copy.deepcopy(doc)
        return None

    async def find(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[dict]:
        docs = [d for d in self._existing(collection) if matches(d, filter)]
        if sort:
            docs = sort_documents(docs, sort)
        docs = docs[skip:]
        if limit:
            docs = docs[:limit]
        return copy.deepcopy(docs)

    async def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        return sum(1 for d in self._existing(collection) if matches(d, filter))

    async def aggregate(self, collection: str, pipeline: List[dict]) -> List[dict]:
        return self._runner.run(self._collection_snapshot(collection), pipeline)

    # ==================== WRITES ====================

    async def insert(self, collection: str, document: dict) -> dict:
        stored = copy.deepcopy(document)
        stored.setdefault("_id", ObjectId())
        self._check_unique(collection, stored)
        self._docs(collection).append(stored)
        return copy.deepcopy(stored)

    def _apply(self, collection: str, doc: dict, update: Dict[str, Any]) -> bool:
        candidate = copy.deepcopy(doc)
        changed = apply_update(candidate, update)
        if changed:
            self._check_unique(collection, candidate)
            doc.clear()
            doc.update(candidate)
        return changed

    async def update_by_id(self, collection: str, entity_id: ObjectId, update: Dict[str, Any]) -> Optional[dict]:
        for doc in self._existing(collection):
            if doc["_id"] == entity_id:
                self._apply(collection, doc, update)
                return copy.deepcopy(doc)
        return None

    async def update_one(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> bool:
        for doc in self._existing(collection):
            if matches(doc, filter):
                return self._apply(collection, doc, update)
        return False

    async def update_many(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        targets = [d for d in self._existing(collection) if matches(d, filter)]
        return sum(1 for doc in targets if self._apply(collection, doc, update))

    async def delete_by_id(self, collection: str, entity_id: ObjectId) -> bool:
        docs = self._existing(collection)
        for i, doc in enumerate(docs):
            if doc["_id"] == entity_id:
                del docs[i]
                return True
        return False

    async def delete_many(self, collection: str, filter: Dict[str, Any]) -> int:
        docs = self._existing(collection)
        kept = [d for d in docs if not matches(d, filter)]
        removed = len(docs) - len(kept)
        docs[:] = kept
        return removed

    async def close(self) -> None:
        logger.info("In-memory store released (%d collections)", len(self.collections))
        self.collections.clear()
