"""Store interfaces consumed by the operations layer.

``DocumentStore`` is the blocking form, ``AsyncDocumentStore`` the asyncio
form. Multi-record fetches return lazy iterators so records can be
materialized as they arrive.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable, Iterator, Sequence
from typing import Any, Callable

from typed_docstore.domain.entities import RawDocument
from typed_docstore.domain.value_objects import (
    FilterQuery,
    ProjectionQuery,
    SecondaryIndexQuery,
    SpatialQuery,
)
from typed_docstore.infrastructure.mapping.registry import TypeDescriptor

logger = logging.getLogger(__name__)

_EXHAUSTED = object()


class DocumentStore(ABC):
    """Blocking document store client."""

    @abstractmethod
    def fetch_by_id(self, doc_id: str, descriptor: TypeDescriptor) -> RawDocument | None:
        """Fetch one document, or None when nothing is stored under ``doc_id``."""
        ...

    @abstractmethod
    def fetch_by_ids(
        self, doc_ids: Sequence[str], descriptor: TypeDescriptor
    ) -> list[RawDocument]:
        """Fetch the documents that exist, in the order of ``doc_ids`` (duplicates once)."""
        ...

    @abstractmethod
    def fetch_by_query(
        self, query: SecondaryIndexQuery, descriptor: TypeDescriptor
    ) -> Iterator[RawDocument]: ...

    @abstractmethod
    def fetch_by_spatial_query(
        self, query: SpatialQuery, descriptor: TypeDescriptor
    ) -> Iterator[RawDocument]: ...

    @abstractmethod
    def fetch_by_projection(
        self, query: ProjectionQuery, descriptor: TypeDescriptor
    ) -> Iterator[RawDocument]:
        """Fetch matching documents carrying only the projected fields."""
        ...

    @abstractmethod
    def exists(self, doc_id: str) -> bool: ...

    @abstractmethod
    def upsert(self, document: RawDocument) -> None: ...

    @abstractmethod
    def delete(self, doc_id: str) -> bool:
        """Remove a document. Returns False when there was nothing to remove."""
        ...

    @abstractmethod
    def count(self, query: FilterQuery) -> int:
        """Number of documents matching the query filter; limit and skip are ignored."""
        ...

    @abstractmethod
    def delete_by_query(self, query: FilterQuery) -> int:
        """Remove every document matching the query filter and return how many went."""
        ...

    def close(self) -> None:
        pass


class AsyncDocumentStore(ABC):
    """Asyncio document store client.

    Point lookups and writes are coroutines; multi-record fetches return an
    async iterator that issues its query on first iteration.
    """

    @abstractmethod
    async def fetch_by_id(self, doc_id: str, descriptor: TypeDescriptor) -> RawDocument | None: ...

    @abstractmethod
    async def fetch_by_ids(
        self, doc_ids: Sequence[str], descriptor: TypeDescriptor
    ) -> list[RawDocument]: ...

    @abstractmethod
    def fetch_by_query(
        self, query: SecondaryIndexQuery, descriptor: TypeDescriptor
    ) -> AsyncIterator[RawDocument]: ...

    @abstractmethod
    def fetch_by_spatial_query(
        self, query: SpatialQuery, descriptor: TypeDescriptor
    ) -> AsyncIterator[RawDocument]: ...

    @abstractmethod
    def fetch_by_projection(
        self, query: ProjectionQuery, descriptor: TypeDescriptor
    ) -> AsyncIterator[RawDocument]: ...

    @abstractmethod
    async def exists(self, doc_id: str) -> bool: ...

    @abstractmethod
    async def upsert(self, document: RawDocument) -> None: ...

    @abstractmethod
    async def delete(self, doc_id: str) -> bool: ...

    @abstractmethod
    async def count(self, query: FilterQuery) -> int: ...

    @abstractmethod
    async def delete_by_query(self, query: FilterQuery) -> int: ...

    async def close(self) -> None:
        pass


class ThreadedAsyncDocumentStore(AsyncDocumentStore):
    """Runs a blocking store on worker threads.

    Every blocking call goes through :func:`asyncio.to_thread`. Blocking
    iterators are advanced one record per thread hop, and closed when the
    consumer stops early or is cancelled.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    async def fetch_by_id(self, doc_id: str, descriptor: TypeDescriptor) -> RawDocument | None:
        return await asyncio.to_thread(self._store.fetch_by_id, doc_id, descriptor)

    async def fetch_by_ids(
        self, doc_ids: Sequence[str], descriptor: TypeDescriptor
    ) -> list[RawDocument]:
        return await asyncio.to_thread(self._store.fetch_by_ids, doc_ids, descriptor)

    def fetch_by_query(
        self, query: SecondaryIndexQuery, descriptor: TypeDescriptor
    ) -> AsyncIterator[RawDocument]:
        return self._iterate(self._store.fetch_by_query, query, descriptor)

    def fetch_by_spatial_query(
        self, query: SpatialQuery, descriptor: TypeDescriptor
    ) -> AsyncIterator[RawDocument]:
        return self._iterate(self._store.fetch_by_spatial_query, query, descriptor)

    def fetch_by_projection(
        self, query: ProjectionQuery, descriptor: TypeDescriptor
    ) -> AsyncIterator[RawDocument]:
        return self._iterate(self._store.fetch_by_projection, query, descriptor)

    async def exists(self, doc_id: str) -> bool:
        return await asyncio.to_thread(self._store.exists, doc_id)

    async def upsert(self, document: RawDocument) -> None:
        await asyncio.to_thread(self._store.upsert, document)

    async def delete(self, doc_id: str) -> bool:
        return await asyncio.to_thread(self._store.delete, doc_id)

    async def count(self, query: FilterQuery) -> int:
        return await asyncio.to_thread(self._store.count, query)

    async def delete_by_query(self, query: FilterQuery) -> int:
        return await asyncio.to_thread(self._store.delete_by_query, query)

    async def close(self) -> None:
        await asyncio.to_thread(self._store.close)

    @staticmethod
    async def _iterate(
        fetch: Callable[..., Iterable[RawDocument]], *args: Any
    ) -> AsyncIterator[RawDocument]:
        # next() and close() share a lock: a cancelled consumer must not
        # close the iterator while a worker thread is still advancing it.
        lock = threading.Lock()
        records = await asyncio.to_thread(lambda: iter(fetch(*args)))
        try:
            while True:
                record = await asyncio.to_thread(_advance, records, lock)
                if record is _EXHAUSTED:
                    return
                yield record
        finally:
            await asyncio.to_thread(_close, records, lock)


def _advance(records: Iterator[RawDocument], lock: threading.Lock) -> Any:
    with lock:
        return next(records, _EXHAUSTED)


def _close(records: Iterator[RawDocument], lock: threading.Lock) -> None:
    with lock:
        close = getattr(records, "close", None)
        if close is not None:
            close()
            logger.debug("Closed store iterator %r", records)
