from __future__ import annotations

import re
from typing import Any, Sequence

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DeleteOne, ReplaceOne, ReturnDocument
from pymongo.errors import PyMongoError

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.configs.settings import Settings
from identity_lifecycle.domain.keys import INDEX_FIELDS, PK, SK
from identity_lifecycle.errors import NotFoundError, StoreTransactionError
from identity_lifecycle.repositories.kv_store import (
    BatchOperation,
    Delete,
    Item,
    Key,
    KeyValueStore,
    Put,
    Update,
    WriteOperation,
    chunked,
)

log = get_logger(__name__)

_NO_ID = {"_id": 0}


def _key_filter(key: Key) -> dict[str, str]:
    return {PK: key[PK], SK: key[SK]}


def _prefix_filter(field: str, prefix: str | None) -> dict[str, Any]:
    if not prefix:
        return {}
    return {field: {"$regex": f"^{re.escape(prefix)}"}}


class MongoKeyValueStore(KeyValueStore):
    """Single-collection item store: every entity is one document keyed by (PK, SK)."""

    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings):
        self._db = db
        self._settings = settings
        self._col = db[settings.items_collection]
        self.max_transact_items = settings.max_transact_items

    async def ensure_indexes(self) -> None:
        log.info("store.ensure_indexes start collection=%s", self._settings.items_collection)
        await self._col.create_index([(PK, ASCENDING), (SK, ASCENDING)], unique=True, name="pk_sk")
        for index_name, (pk_field, sk_field) in INDEX_FIELDS.items():
            await self._col.create_index(
                [(pk_field, ASCENDING), (sk_field, ASCENDING)],
                name=index_name.lower(),
                sparse=True,
            )
        log.info("store.ensure_indexes done")

    async def get(self, key: Key) -> Item | None:
        log.debug("store.get pk=%s sk=%s", key[PK], key[SK])
        return await self._col.find_one(_key_filter(key), projection=_NO_ID)

    async def query(self, partition: str, sort_prefix: str | None = None) -> list[Item]:
        q = {PK: partition, **_prefix_filter(SK, sort_prefix)}
        log.debug("store.query pk=%s sk_prefix=%s", partition, sort_prefix)
        cursor = self._col.find(q, projection=_NO_ID).sort(SK, ASCENDING)
        return await cursor.to_list(length=None)

    async def query_by_index(
        self, index_name: str, partition: str, sort_prefix: str | None = None
    ) -> list[Item]:
        if index_name not in INDEX_FIELDS:
            raise ValueError(f"Unknown index: {index_name}")
        pk_field, sk_field = INDEX_FIELDS[index_name]
        q = {pk_field: partition, **_prefix_filter(sk_field, sort_prefix)}
        log.debug("store.query_by_index index=%s pk=%s sk_prefix=%s", index_name, partition, sort_prefix)
        cursor = self._col.find(q, projection=_NO_ID).sort(sk_field, ASCENDING)
        return await cursor.to_list(length=None)

    async def update(self, key: Key, fields: Item) -> Item:
        log.info("store.update pk=%s sk=%s keys=%s", key[PK], key[SK], sorted(fields.keys()))
        doc = await self._col.find_one_and_update(
            _key_filter(key),
            {"$set": fields},
            projection=_NO_ID,
            return_document=ReturnDocument.AFTER,
        )
        if not doc:
            log.info("store.update not_found pk=%s sk=%s", key[PK], key[SK])
            raise NotFoundError(f"item {key[PK]}/{key[SK]} not found")
        return doc

    async def transact_write(self, operations: Sequence[WriteOperation]) -> None:
        if len(operations) > self.max_transact_items:
            raise StoreTransactionError(
                f"transaction of {len(operations)} items exceeds limit of {self.max_transact_items}"
            )
        if not operations:
            return
        log.info("store.transact_write start ops=%s", len(operations))
        try:
            async with await self._db.client.start_session() as session:
                async with session.start_transaction():
                    for op in operations:
                        await self._apply(op, session)
        except StoreTransactionError:
            raise
        except (PyMongoError, NotFoundError) as exc:
            log.error("store.transact_write failed ops=%s error=%s", len(operations), str(exc))
            raise StoreTransactionError(f"store transaction failed: {exc}") from exc
        log.info("store.transact_write done ops=%s", len(operations))

    async def _apply(self, op: WriteOperation, session: Any) -> None:
        if isinstance(op, Put):
            await self._col.replace_one(
                _key_filter(op.item), dict(op.item), upsert=True, session=session
            )
        elif isinstance(op, Delete):
            await self._col.delete_one(_key_filter(op.key), session=session)
        elif isinstance(op, Update):
            res = await self._col.update_one(
                _key_filter(op.key), {"$set": op.fields}, session=session
            )
            if res.matched_count == 0:
                raise NotFoundError(f"item {op.key[PK]}/{op.key[SK]} not found")
        else:
            raise TypeError(f"unsupported write operation: {type(op).__name__}")

    async def batch_write(
        self, operations: Sequence[BatchOperation], max_batch_size: int = 25
    ) -> None:
        chunks = chunked(list(operations), max_batch_size)
        log.info("store.batch_write start ops=%s chunks=%s", len(operations), len(chunks))
        for i, chunk in enumerate(chunks):
            requests = []
            for op in chunk:
                if isinstance(op, Put):
                    requests.append(ReplaceOne(_key_filter(op.item), dict(op.item), upsert=True))
                elif isinstance(op, Delete):
                    requests.append(DeleteOne(_key_filter(op.key)))
                else:
                    raise TypeError(f"unsupported batch operation: {type(op).__name__}")
            await self._col.bulk_write(requests, ordered=False)
            log.debug("store.batch_write chunk_done index=%s size=%s", i, len(chunk))
        log.info("store.batch_write done ops=%s", len(operations))
