"""
SQL document store.

Backs the persistence adapter with the `documents` table. Every commit runs
in a single transaction; each member write re-reads its row, checks the
expected fields and issues `UPDATE ... WHERE version = :read_version`. A
zero rowcount means another writer got there first; the batch is rolled
back and retried, so only a mismatch on an expected field fails it.

Queries on string fields are filtered in SQL through a JSON path.

SQLite allows a single writer and, in tests, a single shared connection, so
when `serialize` is set the store runs one operation at a time.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Sequence, Tuple

from sqlalchemy import select, update, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.sql import func

from vahaka.app.db.session import Base, build_session_factory
from vahaka.app.models.document import Document
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


class SqlDocumentStore(DocumentStore):
    """Document store over SQLAlchemy async sessions."""

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: Optional[async_sessionmaker] = None,
        serialize: bool = False,
        page_size: int = 100,
        update_max_retries: int = 5,
    ):
        super().__init__(page_size=page_size, update_max_retries=update_max_retries)
        self.engine = engine
        self._session_factory = session_factory or build_session_factory(engine)
        self._lock = asyncio.Lock() if serialize else None

    @asynccontextmanager
    async def _session(self):
        if self._lock is None:
            async with self._session_factory() as session:
                yield session
            return

        async with self._lock:
            async with self._session_factory() as session:
                yield session

    async def initialize(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    async def ping(self) -> bool:
        try:
            async with self._session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.warning("Database ping failed", exc_info=True)
            return False

    async def read(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        async with self._session() as session:
            result = await session.execute(
                select(Document.data).where(
                    Document.collection == collection,
                    Document.doc_id == doc_id
                )
            )
            return result.scalar_one_or_none()

    async def insert(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        document = apply_fields(data, {"id": doc_id})

        async with self._session() as session:
            session.add(Document(collection=collection, doc_id=doc_id, data=document, version=1))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise DocumentExistsError(collection, doc_id)

        return document

    async def _try_commit(self, writes: Sequence[ConditionalWrite]) -> Optional[bool]:
        async with self._session() as session:
            try:
                for write in writes:
                    outcome = await self._apply(session, write)
                    if outcome is not True:
                        await session.rollback()
                        return outcome
                await session.commit()
                return True
            except BaseException:
                await session.rollback()
                raise

    async def _load(self, session: AsyncSession, write: ConditionalWrite) -> Tuple[Dict[str, Any], int]:
        result = await session.execute(
            select(Document.data, Document.version).where(
                Document.collection == write.collection,
                Document.doc_id == write.doc_id
            )
        )
        row = result.one_or_none()
        if row is None:
            raise DocumentNotFoundError(write.collection, write.doc_id)
        return row.data, row.version

    async def _apply(self, session: AsyncSession, write: ConditionalWrite) -> Optional[bool]:
        """Apply one version-guarded write inside the caller's transaction."""
        data, version = await self._load(session, write)
        if not matches(data, write.expected):
            logger.debug("Expectation failed for %s/%s: %s", write.collection, write.doc_id, write.expected)
            return False

        result = await session.execute(
            update(Document)
            .where(
                Document.collection == write.collection,
                Document.doc_id == write.doc_id,
                Document.version == version
            )
            .values(data=apply_fields(data, write.fields), version=version + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Rewritten since the read; the caller re-reads and re-checks
            return None
        return True

    async def _fetch_page(
        self,
        collection: str,
        after: Optional[str],
        field_path: Optional[str] = None,
        value: Any = None,
    ) -> Page:
        query = select(Document.doc_id, Document.data).where(Document.collection == collection)
        if field_path is not None and isinstance(value, str):
            query = query.where(_json_field(field_path).as_string() == value)
        if after is not None:
            query = query.where(Document.doc_id > after)
        query = query.order_by(Document.doc_id).limit(self.page_size)

        async with self._session() as session:
            result = await session.execute(query)
            rows = result.all()

        docs = [data for _, data in rows]
        cursor = rows[-1].doc_id if len(rows) == self.page_size else None
        return docs, cursor


def _json_field(field_path: str):
    parts = field_path.split(".")
    if len(parts) == 1:
        return Document.data[parts[0]]
    return Document.data[tuple(parts)]
