"""
Persistence adapter contract.

The dispatch core talks to its document store only through `DocumentStore`:
read by id, insert, field-scoped update, query by field, and the conditional
write (compare-and-swap on a subset of a record's fields). Multi-record state
transitions go through `commit`, which applies a batch of conditional writes
all-or-nothing.

Field paths are dotted ("currentTrip.status"). A missing field compares
equal to None.
"""

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from vahaka.app.core.exceptions import ConflictError

logger = logging.getLogger(__name__)

Page = Tuple[List[Dict[str, Any]], Optional[str]]


class StoreError(Exception):
    """Base class for adapter-level failures."""


class DocumentNotFoundError(StoreError):
    """Raised when a write targets a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} does not exist")


class DocumentExistsError(StoreError):
    """Raised when inserting a document whose id is already taken."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} already exists")


def get_path(doc: Optional[Dict[str, Any]], path: str) -> Any:
    """Resolve a dotted path, returning None for anything missing."""
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


def matches(doc: Dict[str, Any], expected: Dict[str, Any]) -> bool:
    """True if every expected path holds the expected value."""
    return all(get_path(doc, path) == value for path, value in expected.items())


def apply_fields(doc: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of `doc` with the dotted-path `fields` written into it."""
    updated = copy.deepcopy(doc)
    for path, value in fields.items():
        set_path(updated, path, copy.deepcopy(value))
    return updated


@dataclass(frozen=True)
class ConditionalWrite:
    """
    One member of a `commit` batch.

    `fields` is written only if every path in `expected` still matches the
    stored document. With an empty `expected` the write always lands, merged
    into whatever the document holds when it is applied.
    """
    collection: str
    doc_id: str
    fields: Dict[str, Any]
    expected: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.collection, self.doc_id)


class DocumentQuery:
    """
    Lazy, restartable result of `DocumentStore.query`.

    Nothing is fetched until the query is iterated. Pages are pulled on
    demand and every new `async for` starts again from the first page.
    Adapters may filter pages server-side; the field filter is re-checked
    here either way.
    """

    def __init__(
        self,
        fetch_page: Callable[[Optional[str]], Awaitable[Page]],
        field_path: Optional[str] = None,
        value: Any = None,
    ):
        self._fetch_page = fetch_page
        self._field_path = field_path
        self._value = value

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        cursor = None
        # cursor-based scans (Redis SSCAN) may repeat an id across pages
        seen = set()
        while True:
            docs, cursor = await self._fetch_page(cursor)
            for doc in docs:
                if doc.get("id") in seen:
                    continue
                seen.add(doc.get("id"))
                if self._field_path is None or get_path(doc, self._field_path) == self._value:
                    yield doc
            if cursor is None:
                return

    async def all(self) -> List[Dict[str, Any]]:
        return [doc async for doc in self]


class DocumentStore(ABC):
    """Abstract persistence adapter."""

    def __init__(self, page_size: int = 100, update_max_retries: int = 5):
        self.page_size = page_size
        self.update_max_retries = update_max_retries

    async def initialize(self) -> None:
        """Prepare backing storage (create tables, etc.)."""

    async def close(self) -> None:
        """Release connections."""

    async def ping(self) -> bool:
        return True

    @abstractmethod
    async def read(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Return a copy of the document, or None."""

    @abstractmethod
    async def insert(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Store a new document and return it.

        Raises:
            DocumentExistsError: If the id is already taken
        """

    async def commit(self, writes: Sequence[ConditionalWrite]) -> bool:
        """
        Apply a batch of conditional writes atomically.

        Only the `expected` fields decide the outcome. If another writer
        touched a target document between read and write (a location ping,
        say) the batch is re-read and retried, and fails only if an expected
        field no longer matches.

        Returns:
            True if every write was applied, False if any expectation failed
            (nothing is applied)

        Raises:
            DocumentNotFoundError: If a target document does not exist
            ConflictError: If every attempt lost its race to other writers
        """
        self._check_distinct(writes)

        for attempt in range(1, self.update_max_retries + 1):
            outcome = await self._try_commit(writes)
            if outcome is not None:
                return outcome
            logger.debug("Commit of %s lost a race (attempt %d)", _describe(writes), attempt)

        raise ConflictError(
            f"Could not commit {_describe(writes)} after {self.update_max_retries} attempts",
            details={"documents": [f"{write.collection}/{write.doc_id}" for write in writes]}
        )

    @abstractmethod
    async def _try_commit(self, writes: Sequence[ConditionalWrite]) -> Optional[bool]:
        """
        One read-check-write pass over the batch.

        Returns:
            True if applied, False if an expectation failed, None if a
            concurrent write to a target document landed after it was read
        """

    @abstractmethod
    async def _fetch_page(
        self,
        collection: str,
        after: Optional[str],
        field_path: Optional[str] = None,
        value: Any = None,
    ) -> Page:
        """
        Return up to `page_size` documents with ids after `after`, plus the next cursor.

        Adapters that can filter on `field_path == value` server-side should;
        the rest return unfiltered pages.
        """

    def query(self, collection: str, field_path: Optional[str] = None, value: Any = None) -> DocumentQuery:
        """Documents in `collection` whose `field_path` equals `value` (all documents if no path)."""
        async def fetch_page(after: Optional[str]) -> Page:
            return await self._fetch_page(collection, after, field_path, value)

        return DocumentQuery(fetch_page, field_path, value)

    async def conditional_write(
        self,
        collection: str,
        doc_id: str,
        expected: Dict[str, Any],
        fields: Dict[str, Any],
    ) -> bool:
        return await self.commit([ConditionalWrite(collection, doc_id, fields, expected)])

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """
        Field-scoped, last-writer-wins update.

        Only `fields` are written; concurrent writes to other fields of the
        same document are preserved because a write that loses its race is
        re-read and retried.

        Raises:
            DocumentNotFoundError: If the document does not exist
            ConflictError: If every attempt lost its race
        """
        await self.commit([ConditionalWrite(collection, doc_id, fields)])

    @staticmethod
    def _check_distinct(writes: Sequence[ConditionalWrite]) -> None:
        keys = [write.key for write in writes]
        if len(keys) != len(set(keys)):
            raise ValueError("A commit batch may touch each document only once")


def _describe(writes: Sequence[ConditionalWrite]) -> str:
    return ", ".join(f"{write.collection}/{write.doc_id}" for write in writes)
