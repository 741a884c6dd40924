"""
Typed view over a document query.
"""

from typing import Callable, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from vahaka.app.store.base import DocumentQuery

RecordT = TypeVar("RecordT", bound=BaseModel)


class RecordQuery(Generic[RecordT]):
    """
    Lazy, restartable sequence of parsed records.

    Nothing is read until iteration starts, and each `async for` re-reads
    the store from the beginning. With `limit`, iteration stops after that
    many matching records and no further pages are fetched.
    """

    def __init__(
        self,
        documents: DocumentQuery,
        model: Type[RecordT],
        predicate: Optional[Callable[[RecordT], bool]] = None,
        limit: Optional[int] = None,
    ):
        self._documents = documents
        self._model = model
        self._predicate = predicate
        self._limit = limit

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        if self._limit is not None and self._limit <= 0:
            return

        count = 0
        async for doc in self._documents:
            record = self._model.model_validate(doc)
            if self._predicate is None or self._predicate(record):
                yield record
                count += 1
                if self._limit is not None and count >= self._limit:
                    return

    async def all(self) -> List[RecordT]:
        return [record async for record in self]
