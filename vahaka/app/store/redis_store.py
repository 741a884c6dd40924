"""
Redis document store.

Each document is a JSON string under "{prefix}:{collection}:{id}"; a set at
"{prefix}:{collection}" indexes the ids for queries. Conditional writes use
Redis optimistic locking: WATCH every target key, check expectations, then
MULTI/EXEC. If any watched key changed in between, EXEC fails with
WatchError, nothing is applied and the batch is re-read and retried.
"""

import json
import logging
from typing import Any, Dict, Optional, Sequence

from redis.exceptions import RedisError, WatchError

from vahaka.app.store.base import (
    ConditionalWrite,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    Page,
    apply_fields,
    matches,
)

logger = logging.getLogger(__name__)


class RedisDocumentStore(DocumentStore):
    """Document store over a `redis.asyncio` client."""

    def __init__(
        self,
        client,
        key_prefix: str = "vahaka",
        page_size: int = 100,
        update_max_retries: int = 5,
    ):
        super().__init__(page_size=page_size, update_max_retries=update_max_retries)
        self.client = client
        self.key_prefix = key_prefix

    def _key(self, collection: str, doc_id: str) -> str:
        return f"{self.key_prefix}:{collection}:{doc_id}"

    def _index_key(self, collection: str) -> str:
        return f"{self.key_prefix}:{collection}"

    async def close(self) -> None:
        await self.client.aclose()

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError):
            logger.warning("Redis ping failed", exc_info=True)
            return False

    async def read(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raw = await self.client.get(self._key(collection, doc_id))
        if raw is None:
            return None
        return json.loads(raw)

    async def insert(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        document = apply_fields(data, {"id": doc_id})

        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(self._key(collection, doc_id), json.dumps(document), nx=True)
            pipe.sadd(self._index_key(collection), doc_id)
            created, _ = await pipe.execute()

        if not created:
            raise DocumentExistsError(collection, doc_id)
        return document

    async def _try_commit(self, writes: Sequence[ConditionalWrite]) -> Optional[bool]:
        keys = [self._key(write.collection, write.doc_id) for write in writes]

        async with self.client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(*keys)

                staged = []
                for write, key in zip(writes, keys):
                    raw = await pipe.get(key)
                    if raw is None:
                        raise DocumentNotFoundError(write.collection, write.doc_id)
                    doc = json.loads(raw)
                    if not matches(doc, write.expected):
                        logger.debug("Expectation failed for %s: %s", key, write.expected)
                        return False
                    staged.append((key, apply_fields(doc, write.fields)))

                pipe.multi()
                for key, doc in staged:
                    pipe.set(key, json.dumps(doc))
                await pipe.execute()
                return True
            except WatchError:
                # Some watched key changed; the caller re-reads and re-checks
                logger.debug("Watched keys changed during commit: %s", keys)
                return None

    async def _fetch_page(
        self,
        collection: str,
        after: Optional[str],
        field_path: Optional[str] = None,
        value: Any = None,
    ) -> Page:
        # No secondary indexes: pages come back unfiltered
        cursor, ids = await self.client.sscan(
            self._index_key(collection),
            cursor=int(after or 0),
            count=self.page_size
        )

        docs = []
        if ids:
            raws = await self.client.mget([self._key(collection, doc_id) for doc_id in ids])
            docs = [json.loads(raw) for raw in raws if raw is not None]

        next_cursor = str(cursor) if int(cursor) != 0 else None
        return docs, next_cursor
