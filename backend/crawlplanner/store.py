"""Key-value persistence backends.

The planner only ever stores text values (JSON documents) under string keys.
``MemoryStore`` keeps them in process (tests, single-shot CLI runs) and
``MongoStore`` keeps one MongoDB document per key.
"""
import datetime
import logging
import re
from typing import Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from .settings import Settings

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Async key-value interface; subclasses implement the storage."""

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def keys(self, prefix: str = '') -> List[str]:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = '') -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class MongoStore(KeyValueStore):
    def __init__(self, uri: str, db_name: str, collection: str = 'kv_store') -> None:
        self.uri = uri
        self.db_name = db_name
        self.collection_name = collection
        self.client: Optional[AsyncIOMotorClient] = None
        self.collection = None

    async def connect(self) -> None:
        if self.client is not None:
            return
        self.client = AsyncIOMotorClient(self.uri)
        self.collection = self.client[self.db_name][self.collection_name]
        try:
            await self.collection.create_index('updated_at')
        except PyMongoError as e:
            logger.warning("MongoDB index creation failed; continuing startup: %s", e)
        logger.info('store.connected backend=mongo db=%s collection=%s', self.db_name, self.collection_name)

    async def close(self) -> None:
        if self.client:
            self.client.close()
            logger.info('store.closed backend=mongo')
        self.client = None
        self.collection = None

    def _require(self):
        if self.collection is None:
            raise RuntimeError('MongoStore used before connect()')
        return self.collection

    async def get(self, key: str) -> Optional[str]:
        doc = await self._require().find_one({'_id': key})
        if not doc:
            return None
        return doc.get('value')

    async def set(self, key: str, value: str) -> None:
        await self._require().update_one(
            {'_id': key},
            {'$set': {'value': value, 'updated_at': datetime.datetime.now(datetime.timezone.utc)}},
            upsert=True,
        )

    async def delete(self, key: str) -> None:
        await self._require().delete_one({'_id': key})

    async def keys(self, prefix: str = '') -> List[str]:
        query = {'_id': {'$regex': '^' + re.escape(prefix)}} if prefix else {}
        cursor = self._require().find(query, projection={'_id': 1}).sort('_id', 1)
        return [doc['_id'] async for doc in cursor]


def build_store(settings: Settings) -> KeyValueStore:
    backend = (settings.store_backend or 'memory').lower()
    if backend == 'mongo':
        return MongoStore(settings.mongo_uri, settings.mongo_db, settings.mongo_collection)
    if backend != 'memory':
        logger.warning('Unknown STORE_BACKEND=%s; falling back to memory', backend)
    return MemoryStore()


__all__ = ['KeyValueStore', 'MemoryStore', 'MongoStore', 'build_store']
