import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from lms.store.base import EntityStore, SortSpec

logger = logging.getLogger(__name__)


class MongoEntityStore(EntityStore):
    """EntityStore over a motor database; pipelines run natively"""

    def __init__(self, db: AsyncIOMotorDatabase, client: Optional[AsyncIOMotorClient] = None):
        self.db = db
        self.client = client

    @classmethod
    def connect(cls, mongo_url: str, db_name: str) -> "MongoEntityStore":
        client = AsyncIOMotorClient(mongo_url)
        logger.info("MongoDB connected (database=%s)", db_name)
        return cls(client[db_name], client)

    async def close(self) -> None:
        if self.client:
            self.client.close()
            logger.info("MongoDB disconnected")

    async def find_by_id(self, collection: str, entity_id: ObjectId) -> Optional[dict]:
        return await self.db[collection].find_one({"_id": entity_id})

    async def find_one(self, collection: str, filter: Dict[str, Any]) -> Optional[dict]:
        return await self.db[collection].find_one(filter)

    async def find(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[dict]:
        cursor = self.db[collection].find(filter or {})
        if sort:
            cursor = cursor.sort(list(sort))
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=None)

    async def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        return await self.db[collection].count_documents(filter or {})

    async def insert(self, collection: str, document: dict) -> dict:
        result = await self.db[collection].insert_one(document)
        document["_id"] = result.inserted_id
        return document

    async def update_by_id(self, collection: str, entity_id: ObjectId, update: Dict[str, Any]) -> Optional[dict]:
        return await self.db[collection].find_one_and_update(
            {"_id": entity_id},
            update,
            return_document=ReturnDocument.AFTER,
        )

    async def update_one(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> bool:
        result = await self.db[collection].update_one(filter, update)
        return result.modified_count > 0

    async def update_many(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        result = await self.db[collection].update_many(filter, update)
        return result.modified_count

    async def delete_by_id(self, collection: str, entity_id: ObjectId) -> bool:
        result = await self.db[collection].delete_one({"_id": entity_id})
        return result.deleted_count > 0

    async def delete_many(self, collection: str, filter: Dict[str, Any]) -> int:
        result = await self.db[collection].delete_many(filter)
        return result.deleted_count

    async def aggregate(self, collection: str, pipeline: List[dict]) -> List[dict]:
        return await self.db[collection].aggregate(pipeline).to_list(length=None)

    async def create_index(self, collection: str, keys: SortSpec, unique: bool = False) -> None:
        await self.db[collection].create_index(list(keys), unique=unique)
