from lms.store.base import EntityStore, serialize_mongo, to_object_id
from lms.store.memory_store import MemoryEntityStore
from lms.store.mongo_store import MongoEntityStore

__all__ = [
    "EntityStore",
    "MemoryEntityStore",
    "MongoEntityStore",
    "serialize_mongo",
    "to_object_id",
]
