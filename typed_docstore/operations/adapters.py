"""Execution-mode adapters: blocking, future and stream presentations of one fetch."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from typed_docstore.domain.entities import RawDocument
from typed_docstore.domain.enums import ExecutionMode, QueryKind
from typed_docstore.domain.exceptions import IncorrectResultSizeError, NotFoundError
from typed_docstore.domain.value_objects import FilterQuery, QueryDescriptor
from typed_docstore.infrastructure.mapping.materializer import ResultMaterializer
from typed_docstore.infrastructure.mapping.registry import TypeDescriptor
from typed_docstore.infrastructure.store.base import AsyncDocumentStore, DocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FetchRequest(Generic[T]):
    """One logical call: a query plus the descriptor resolved for it."""

    query: QueryDescriptor
    descriptor: TypeDescriptor[T]

    @property
    def projection(self) -> bool:
        return self.query.kind is QueryKind.PROJECTION


def window_count(total: int, query: FilterQuery) -> int:
    """How many of ``total`` matches fall inside the query's skip/limit window."""
    remaining = max(total - query.skip, 0)
    return remaining if query.limit is None else min(remaining, query.limit)


def single(entities: list[T]) -> T | None:
    if len(entities) > 1:
        raise IncorrectResultSizeError(1, len(entities))
    return entities[0] if entities else None


def store_call(store: DocumentStore | AsyncDocumentStore, request: FetchRequest) -> Any:
    """Issue the store operation matching the request's query kind.

    Returns whatever the store returns: a record, a coroutine, or an
    (async) iterator of records depending on the store flavour.
    """
    method = getattr(store, request.query.kind.store_method())
    argument = request.query.doc_id if request.query.kind is QueryKind.BY_ID else request.query
    return method(argument, request.descriptor)


class ExecutionAdapter(ABC):
    """Shared materialization for the three execution modes."""

    mode: ClassVar[ExecutionMode]

    def __init__(self, materializer: ResultMaterializer | None = None) -> None:
        self._materializer = materializer or ResultMaterializer()

    def _materialize(self, raw: RawDocument, request: FetchRequest[T]) -> T:
        return self._materializer.materialize(raw, request.descriptor, projection=request.projection)

    def _materialize_found(self, raw: RawDocument | None, request: FetchRequest[T]) -> T:
        if raw is None:
            raise NotFoundError(request.query.doc_id, request.descriptor.entity_type)
        return self._materialize(raw, request)

    def _materialize_ids(
        self, records: Iterable[RawDocument], descriptor: TypeDescriptor[T]
    ) -> list[T]:
        return [self._materializer.materialize(raw, descriptor) for raw in records]

    @abstractmethod
    def fetch_one(self, request: FetchRequest[T]) -> Any:
        """Fetch the single document addressed by a ``ById`` request."""
        ...

    @abstractmethod
    def fetch_ids(self, doc_ids: Sequence[str], descriptor: TypeDescriptor[T]) -> Any: ...

    @abstractmethod
    def fetch_many(self, request: FetchRequest[T]) -> Any:
        """Fetch every document matched by a query request."""
        ...


class BlockingAdapter(ExecutionAdapter):
    """Runs on the caller's thread and returns plain values."""

    mode = ExecutionMode.BLOCKING

    def __init__(self, store: DocumentStore, materializer: ResultMaterializer | None = None) -> None:
        super().__init__(materializer)
        self._store = store

    def fetch_one(self, request: FetchRequest[T]) -> T:
        return self._materialize_found(store_call(self._store, request), request)

    def fetch_ids(self, doc_ids: Sequence[str], descriptor: TypeDescriptor[T]) -> list[T]:
        return self._materialize_ids(self._store.fetch_by_ids(doc_ids, descriptor), descriptor)

    def fetch_many(self, request: FetchRequest[T]) -> list[T]:
        records = store_call(self._store, request)
        try:
            return [self._materialize(raw, request) for raw in records]
        finally:
            close = getattr(records, "close", None)
            if close is not None:
                close()

    def exists(self, doc_id: str) -> bool:
        return self._store.exists(doc_id)

    def save(self, entity: T, descriptor: TypeDescriptor[T]) -> T:
        self._store.upsert(self._materializer.dematerialize(entity, descriptor))
        return entity

    def remove(self, doc_id: str) -> bool:
        return self._store.delete(doc_id)

    def count(self, query: FilterQuery) -> int:
        return window_count(self._store.count(query), query)

    def any_match(self, query: FilterQuery) -> bool:
        return self.count(query) > 0

    def remove_matching(self, query: FilterQuery) -> int:
        return self._store.delete_by_query(query)

    def fetch_single(self, request: FetchRequest[T]) -> T | None:
        return single(self.fetch_many(request))


class FutureAdapter(ExecutionAdapter):
    """Returns ``asyncio.Task`` handles.

    Tasks are created on the running loop at call time, so the store call is
    issued whether or not the caller ever awaits the handle. Cancelling the
    task cancels the in-flight store call.
    """

    mode = ExecutionMode.FUTURE

    def __init__(
        self, store: AsyncDocumentStore, materializer: ResultMaterializer | None = None
    ) -> None:
        super().__init__(materializer)
        self._store = store

    def fetch_one(self, request: FetchRequest[T]) -> asyncio.Task[T]:
        return _spawn(self._one, request)

    def fetch_ids(
        self, doc_ids: Sequence[str], descriptor: TypeDescriptor[T]
    ) -> asyncio.Task[list[T]]:
        return _spawn(self._ids, doc_ids, descriptor)

    def fetch_many(self, request: FetchRequest[T]) -> asyncio.Task[list[T]]:
        return _spawn(self._many, request)

    def exists(self, doc_id: str) -> asyncio.Task[bool]:
        return _spawn(self._store.exists, doc_id)

    def save(self, entity: T, descriptor: TypeDescriptor[T]) -> asyncio.Task[T]:
        return _spawn(self._save, entity, descriptor)

    def remove(self, doc_id: str) -> asyncio.Task[bool]:
        return _spawn(self._store.delete, doc_id)

    def count(self, query: FilterQuery) -> asyncio.Task[int]:
        return _spawn(self._count, query)

    def any_match(self, query: FilterQuery) -> asyncio.Task[bool]:
        return _spawn(self._any_match, query)

    def remove_matching(self, query: FilterQuery) -> asyncio.Task[int]:
        return _spawn(self._store.delete_by_query, query)

    def fetch_single(self, request: FetchRequest[T]) -> asyncio.Task[T | None]:
        return _spawn(self._single, request)

    async def _one(self, request: FetchRequest[T]) -> T:
        return self._materialize_found(await store_call(self._store, request), request)

    async def _ids(self, doc_ids: Sequence[str], descriptor: TypeDescriptor[T]) -> list[T]:
        return self._materialize_ids(await self._store.fetch_by_ids(doc_ids, descriptor), descriptor)

    async def _many(self, request: FetchRequest[T]) -> list[T]:
        records = store_call(self._store, request)
        try:
            return [self._materialize(raw, request) async for raw in records]
        finally:
            await _aclose(records)

    async def _save(self, entity: T, descriptor: TypeDescriptor[T]) -> T:
        await self._store.upsert(self._materializer.dematerialize(entity, descriptor))
        return entity

    async def _count(self, query: FilterQuery) -> int:
        return window_count(await self._store.count(query), query)

    async def _any_match(self, query: FilterQuery) -> bool:
        return await self._count(query) > 0

    async def _single(self, request: FetchRequest[T]) -> T | None:
        return single(await self._many(request))


class StreamAdapter(ExecutionAdapter):
    """Returns one-shot async iterators of entities.

    Each record is materialized as the store emits it. A failure ends the
    stream with that error; entities already delivered stay valid.
    """

    mode = ExecutionMode.STREAM

    def __init__(
        self, store: AsyncDocumentStore, materializer: ResultMaterializer | None = None
    ) -> None:
        super().__init__(materializer)
        self._store = store

    async def fetch_one(self, request: FetchRequest[T]) -> AsyncIterator[T]:
        yield self._materialize_found(await store_call(self._store, request), request)

    async def fetch_ids(
        self, doc_ids: Sequence[str], descriptor: TypeDescriptor[T]
    ) -> AsyncIterator[T]:
        for raw in await self._store.fetch_by_ids(doc_ids, descriptor):
            yield self._materializer.materialize(raw, descriptor)

    async def fetch_many(self, request: FetchRequest[T]) -> AsyncIterator[T]:
        records = store_call(self._store, request)
        try:
            async for raw in records:
                yield self._materialize(raw, request)
        finally:
            await _aclose(records)


def _spawn(factory: Callable[..., Awaitable[T]], *args: Any) -> asyncio.Task[T]:
    loop = asyncio.get_running_loop()
    return loop.create_task(factory(*args))


async def _aclose(records: Any) -> None:
    aclose = getattr(records, "aclose", None)
    if aclose is not None:
        await aclose()
