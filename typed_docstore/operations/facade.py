"""Document operations facade.

Callers pass the entity class; the facade resolves its descriptor,
validates the arguments and hands the request to the adapter of the
chosen execution mode::

    ops = DocumentOperations(store)
    user = ops.blocking.find_by_id(User, "u1")
    task = ops.future.find_by_id(User, "u1")          # inside a running loop
    async for user in ops.stream.find_by_query(User, SecondaryIndexQuery("city", key="Oslo")):
        ...
    users = ops.for_type(User).blocking.find_by_query(query)
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterator, Iterable
from typing import Any, Generic, TypeVar, Union

from typed_docstore.domain.enums import ExecutionMode
from typed_docstore.domain.exceptions import DocumentStoreError, InvalidQueryError
from typed_docstore.domain.value_objects import (
    ById,
    FilterQuery,
    ProjectionQuery,
    QueryDescriptor,
    SecondaryIndexQuery,
    SpatialQuery,
)
from typed_docstore.infrastructure.mapping.materializer import ResultMaterializer
from typed_docstore.infrastructure.mapping.registry import TypeDescriptor, TypeRegistry
from typed_docstore.infrastructure.store.base import (
    AsyncDocumentStore,
    DocumentStore,
    ThreadedAsyncDocumentStore,
)

from .adapters import (
    BlockingAdapter,
    ExecutionAdapter,
    FetchRequest,
    FutureAdapter,
    StreamAdapter,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _expect(query: Any, expected: type | tuple[type, ...], operation: str) -> None:
    if not isinstance(query, expected):
        types = expected if isinstance(expected, tuple) else (expected,)
        names = " or ".join(t.__name__ for t in types)
        raise InvalidQueryError(f"{operation} expects a {names}, got {type(query).__name__}")


def _narrow(query: FilterQuery, limit: int) -> FilterQuery:
    """Same query with its limit capped at ``limit``."""
    if query.limit is not None and query.limit <= limit:
        return query
    return dataclasses.replace(query, limit=limit)


def _id_list(doc_ids: Iterable[str]) -> list[str]:
    if isinstance(doc_ids, str):
        raise InvalidQueryError("find_by_ids expects a collection of ids, not a single string")
    return [ById(doc_id).doc_id for doc_id in doc_ids]


class _ModeOperations:
    """Validation and type resolution shared by the three mode views."""

    def __init__(self, adapter: ExecutionAdapter, registry: TypeRegistry) -> None:
        self._adapter = adapter
        self._registry = registry

    @property
    def mode(self) -> ExecutionMode:
        return self._adapter.mode

    def _resolve(self, entity_type: type[T]) -> TypeDescriptor[T]:
        return self._registry.resolve(entity_type)

    def _request(self, entity_type: type[T], query: QueryDescriptor) -> FetchRequest[T]:
        descriptor = self._resolve(entity_type)
        logger.debug(
            "%s %s for %s", self.mode.value, query.kind.value, descriptor.name
        )
        return FetchRequest(query=query, descriptor=descriptor)

    def _by_id(self, entity_type: type[T], doc_id: str) -> FetchRequest[T]:
        descriptor = self._resolve(entity_type)
        query = ById(doc_id)
        logger.debug("%s by_id %s for %s", self.mode.value, doc_id, descriptor.name)
        return FetchRequest(query=query, descriptor=descriptor)

    def _index(self, entity_type: type[T], query: SecondaryIndexQuery) -> FetchRequest[T]:
        _expect(query, SecondaryIndexQuery, "find_by_query")
        return self._request(entity_type, query)

    def _spatial(self, entity_type: type[T], query: SpatialQuery) -> FetchRequest[T]:
        _expect(query, SpatialQuery, "find_by_spatial_query")
        return self._request(entity_type, query)

    def _projection(self, entity_type: type[T], query: ProjectionQuery) -> FetchRequest[T]:
        _expect(query, ProjectionQuery, "find_by_query_projection")
        return self._request(entity_type, query)

    def _filter(
        self, entity_type: type[T], query: FilterQuery, operation: str
    ) -> FetchRequest[T]:
        _expect(query, (SecondaryIndexQuery, SpatialQuery), operation)
        return self._request(entity_type, query)

    def _removal(self, entity_type: type[T], query: FilterQuery) -> FetchRequest[T]:
        request = self._filter(entity_type, query, "remove_by_query")
        if query.limit is not None or query.skip:
            raise InvalidQueryError("remove_by_query removes every match; drop limit and skip")
        return request

    def _narrowed(
        self, entity_type: type[T], query: FilterQuery, limit: int, operation: str
    ) -> FetchRequest[T]:
        request = self._filter(entity_type, query, operation)
        return FetchRequest(query=_narrow(query, limit), descriptor=request.descriptor)


class BlockingOperations(_ModeOperations):
    """Blocks the calling thread; errors raise at call time."""

    _adapter: BlockingAdapter

    def find_by_id(self, entity_type: type[T], doc_id: str) -> T:
        return self._adapter.fetch_one(self._by_id(entity_type, doc_id))

    def find_by_ids(self, entity_type: type[T], doc_ids: Iterable[str]) -> list[T]:
        descriptor = self._resolve(entity_type)
        return self._adapter.fetch_ids(_id_list(doc_ids), descriptor)

    def find_by_query(self, entity_type: type[T], query: SecondaryIndexQuery) -> list[T]:
        return self._adapter.fetch_many(self._index(entity_type, query))

    def find_by_spatial_query(self, entity_type: type[T], query: SpatialQuery) -> list[T]:
        return self._adapter.fetch_many(self._spatial(entity_type, query))

    def find_by_query_projection(self, entity_type: type[T], query: ProjectionQuery) -> list[T]:
        return self._adapter.fetch_many(self._projection(entity_type, query))

    def exists(self, doc_id: str) -> bool:
        return self._adapter.exists(ById(doc_id).doc_id)

    def save(self, entity: T) -> T:
        return self._adapter.save(entity, self._resolve(type(entity)))

    def remove_by_id(self, doc_id: str) -> bool:
        return self._adapter.remove(ById(doc_id).doc_id)

    def first(self, entity_type: type[T], query: FilterQuery) -> T | None:
        """First entity the query yields, or None."""
        return self._adapter.fetch_single(self._narrowed(entity_type, query, 1, "first"))

    def one(self, entity_type: type[T], query: FilterQuery) -> T | None:
        """The only entity the query yields, or None.

        Raises:
            IncorrectResultSizeError: when more than one document matches.
        """
        return self._adapter.fetch_single(self._narrowed(entity_type, query, 2, "one"))

    def count(self, entity_type: type[T], query: FilterQuery) -> int:
        """Number of matches inside the query's skip/limit window."""
        return self._adapter.count(self._filter(entity_type, query, "count").query)

    def exists_by_query(self, entity_type: type[T], query: FilterQuery) -> bool:
        return self._adapter.any_match(self._filter(entity_type, query, "exists_by_query").query)

    def remove_by_query(self, entity_type: type[T], query: FilterQuery) -> int:
        """Remove every matching document; returns how many were removed."""
        return self._adapter.remove_matching(self._removal(entity_type, query).query)


class FutureOperations(_ModeOperations):
    """Returns ``asyncio.Task`` handles; must be called with a running event loop.

    Errors other than argument and type validation surface when the task
    is awaited.
    """

    _adapter: FutureAdapter

    def find_by_id(self, entity_type: type[T], doc_id: str) -> asyncio.Task[T]:
        return self._adapter.fetch_one(self._by_id(entity_type, doc_id))

    def find_by_ids(
        self, entity_type: type[T], doc_ids: Iterable[str]
    ) -> asyncio.Task[list[T]]:
        descriptor = self._resolve(entity_type)
        return self._adapter.fetch_ids(_id_list(doc_ids), descriptor)

    def find_by_query(
        self, entity_type: type[T], query: SecondaryIndexQuery
    ) -> asyncio.Task[list[T]]:
        return self._adapter.fetch_many(self._index(entity_type, query))

    def find_by_spatial_query(
        self, entity_type: type[T], query: SpatialQuery
    ) -> asyncio.Task[list[T]]:
        return self._adapter.fetch_many(self._spatial(entity_type, query))

    def find_by_query_projection(
        self, entity_type: type[T], query: ProjectionQuery
    ) -> asyncio.Task[list[T]]:
        return self._adapter.fetch_many(self._projection(entity_type, query))

    def exists(self, doc_id: str) -> asyncio.Task[bool]:
        return self._adapter.exists(ById(doc_id).doc_id)

    def save(self, entity: T) -> asyncio.Task[T]:
        return self._adapter.save(entity, self._resolve(type(entity)))

    def remove_by_id(self, doc_id: str) -> asyncio.Task[bool]:
        return self._adapter.remove(ById(doc_id).doc_id)

    def first(self, entity_type: type[T], query: FilterQuery) -> asyncio.Task[T | None]:
        return self._adapter.fetch_single(self._narrowed(entity_type, query, 1, "first"))

    def one(self, entity_type: type[T], query: FilterQuery) -> asyncio.Task[T | None]:
        return self._adapter.fetch_single(self._narrowed(entity_type, query, 2, "one"))

    def count(self, entity_type: type[T], query: FilterQuery) -> asyncio.Task[int]:
        return self._adapter.count(self._filter(entity_type, query, "count").query)

    def exists_by_query(self, entity_type: type[T], query: FilterQuery) -> asyncio.Task[bool]:
        return self._adapter.any_match(self._filter(entity_type, query, "exists_by_query").query)

    def remove_by_query(self, entity_type: type[T], query: FilterQuery) -> asyncio.Task[int]:
        return self._adapter.remove_matching(self._removal(entity_type, query).query)


class StreamOperations(_ModeOperations):
    """Returns one-shot async iterators; each call issues one store query."""

    _adapter: StreamAdapter

    def find_by_id(self, entity_type: type[T], doc_id: str) -> AsyncIterator[T]:
        return self._adapter.fetch_one(self._by_id(entity_type, doc_id))

    def find_by_ids(self, entity_type: type[T], doc_ids: Iterable[str]) -> AsyncIterator[T]:
        descriptor = self._resolve(entity_type)
        return self._adapter.fetch_ids(_id_list(doc_ids), descriptor)

    def find_by_query(self, entity_type: type[T], query: SecondaryIndexQuery) -> AsyncIterator[T]:
        return self._adapter.fetch_many(self._index(entity_type, query))

    def find_by_spatial_query(self, entity_type: type[T], query: SpatialQuery) -> AsyncIterator[T]:
        return self._adapter.fetch_many(self._spatial(entity_type, query))

    def find_by_query_projection(
        self, entity_type: type[T], query: ProjectionQuery
    ) -> AsyncIterator[T]:
        return self._adapter.fetch_many(self._projection(entity_type, query))


ModeOperations = Union[BlockingOperations, FutureOperations, StreamOperations]


class BoundOperations(Generic[T]):
    """A mode view with the entity type already supplied."""

    def __init__(self, view: ModeOperations, entity_type: type[T]) -> None:
        self._view = view
        self._entity_type = entity_type

    @property
    def mode(self) -> ExecutionMode:
        return self._view.mode

    def find_by_id(self, doc_id: str) -> Any:
        return self._view.find_by_id(self._entity_type, doc_id)

    def find_by_ids(self, doc_ids: Iterable[str]) -> Any:
        return self._view.find_by_ids(self._entity_type, doc_ids)

    def find_by_query(self, query: SecondaryIndexQuery) -> Any:
        return self._view.find_by_query(self._entity_type, query)

    def find_by_spatial_query(self, query: SpatialQuery) -> Any:
        return self._view.find_by_spatial_query(self._entity_type, query)

    def find_by_query_projection(self, query: ProjectionQuery) -> Any:
        return self._view.find_by_query_projection(self._entity_type, query)

    def first(self, query: FilterQuery) -> Any:
        return self._view.first(self._entity_type, query)

    def one(self, query: FilterQuery) -> Any:
        return self._view.one(self._entity_type, query)

    def count(self, query: FilterQuery) -> Any:
        return self._view.count(self._entity_type, query)

    def exists_by_query(self, query: FilterQuery) -> Any:
        return self._view.exists_by_query(self._entity_type, query)

    def remove_by_query(self, query: FilterQuery) -> Any:
        return self._view.remove_by_query(self._entity_type, query)


class TypedOperations(Generic[T]):
    """Operations for one entity type, validated when the builder is created."""

    def __init__(self, operations: DocumentOperations, entity_type: type[T]) -> None:
        self.descriptor: TypeDescriptor[T] = operations.registry.resolve(entity_type)
        self._operations = operations
        self._entity_type = entity_type

    @property
    def entity_type(self) -> type[T]:
        return self._entity_type

    @property
    def blocking(self) -> BoundOperations[T]:
        return BoundOperations(self._operations.blocking, self._entity_type)

    @property
    def future(self) -> BoundOperations[T]:
        return BoundOperations(self._operations.future, self._entity_type)

    @property
    def stream(self) -> BoundOperations[T]:
        return BoundOperations(self._operations.stream, self._entity_type)


class DocumentOperations:
    """Entry point: typed retrieval in blocking, future and stream modes.

    A blocking ``store`` alone is enough; the async modes then run it on
    worker threads. Passing a native ``async_store`` makes the async modes
    use it instead. With only ``async_store`` the blocking view is
    unavailable.
    """

    def __init__(
        self,
        store: DocumentStore | None = None,
        async_store: AsyncDocumentStore | None = None,
        registry: TypeRegistry | None = None,
        materializer: ResultMaterializer | None = None,
    ) -> None:
        if store is None and async_store is None:
            raise ValueError("DocumentOperations needs a store, an async_store, or both")
        if async_store is None:
            async_store = ThreadedAsyncDocumentStore(store)

        self._store = store
        self._async_store = async_store
        self._registry = registry or TypeRegistry()
        materializer = materializer or ResultMaterializer()

        self._blocking = (
            BlockingOperations(BlockingAdapter(store, materializer), self._registry)
            if store is not None
            else None
        )
        self._future = FutureOperations(FutureAdapter(async_store, materializer), self._registry)
        self._stream = StreamOperations(StreamAdapter(async_store, materializer), self._registry)

    @property
    def registry(self) -> TypeRegistry:
        return self._registry

    @property
    def blocking(self) -> BlockingOperations:
        if self._blocking is None:
            raise DocumentStoreError("Blocking operations need a blocking store")
        return self._blocking

    @property
    def future(self) -> FutureOperations:
        return self._future

    @property
    def stream(self) -> StreamOperations:
        return self._stream

    def view(self, mode: ExecutionMode | str) -> ModeOperations:
        """Mode view by enum or name ('blocking', 'future', 'stream' and aliases)."""
        resolved = ExecutionMode.from_string(mode) if isinstance(mode, str) else mode
        if resolved is ExecutionMode.BLOCKING:
            return self.blocking
        if resolved is ExecutionMode.FUTURE:
            return self.future
        if resolved is ExecutionMode.STREAM:
            return self.stream
        raise ValueError(f"Unknown execution mode: {mode}")

    def for_type(self, entity_type: type[T]) -> TypedOperations[T]:
        return TypedOperations(self, entity_type)

    def close(self) -> None:
        if self._store is not None:
            self._store.close()

    async def aclose(self) -> None:
        """Close the async store, and the blocking one when it is separate."""
        await self._async_store.close()
        if self._store is not None and not isinstance(self._async_store, ThreadedAsyncDocumentStore):
            self._store.close()
