import logging
from typing import Optional

from lms import config
from lms.store.base import EntityStore
from lms.store.memory_store import MemoryEntityStore
from lms.store.mongo_store import MongoEntityStore

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Owns the Entity Store for the lifetime of the application"""

    def __init__(self):
        self.store: Optional[EntityStore] = None

    def connect(self, backend: str = None) -> EntityStore:
        backend = backend or config.STORE_BACKEND
        if backend == "memory":
            self.store = MemoryEntityStore()
            logger.info("Using in-memory entity store")
        elif backend == "mongo":
            self.store = MongoEntityStore.connect(config.MONGO_URL, config.DB_NAME)
        else:
            raise RuntimeError(f"Unknown LMS_STORE_BACKEND: {backend!r} (expected 'mongo' or 'memory')")
        return self.store

    def use(self, store: EntityStore) -> None:
        """Install an already built store (tests, scripts)"""
        self.store = store

    async def disconnect(self) -> None:
        if self.store is not None:
            await self.store.close()
            self.store = None

    def get_store(self) -> EntityStore:
        if self.store is None:
            raise RuntimeError("Entity store not initialized. Call connect() first.")
        return self.store


# Global database manager
db_manager = DatabaseManager()
