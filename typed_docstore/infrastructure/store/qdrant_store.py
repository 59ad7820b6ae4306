"""Document store backed by a Qdrant collection.

Documents are Qdrant points: the payload holds the document content plus
the original identifier under ``_doc_id``; the point id is a UUID derived
from that identifier. Secondary-index, spatial and projection queries are
translated into payload filters and served by paged scrolling.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from collections.abc import AsyncIterator, Iterator, Sequence
from contextlib import contextmanager
from numbers import Real
from typing import Any

from qdrant_client import AsyncQdrantClient, QdrantClient, models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from typed_docstore.domain.entities import RawDocument
from typed_docstore.domain.exceptions import InvalidQueryError, StoreCommunicationError
from typed_docstore.domain.value_objects import (
    BoundingBox,
    FilterQuery,
    GeoRadius,
    ProjectionQuery,
    SecondaryIndexQuery,
    SpatialQuery,
)
from typed_docstore.infrastructure.mapping.registry import TypeDescriptor

from .base import AsyncDocumentStore, DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "documents"
DEFAULT_PAGE_SIZE = 100
DOC_ID_KEY = "_doc_id"

# Qdrant points need a vector; documents carry a constant unit placeholder.
PLACEHOLDER_VECTOR = [1.0]

_POINT_NAMESPACE = uuid.UUID("6f1c2a4e-3d0b-5b8e-9c47-2f5a1e7d9b30")


def point_id(doc_id: str) -> str:
    return str(uuid.uuid5(_POINT_NAMESPACE, doc_id))


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Re-raise Qdrant transport failures as StoreCommunicationError."""
    try:
        yield
    except (UnexpectedResponse, ResponseHandlingException) as exc:
        raise StoreCommunicationError(f"Qdrant {operation} failed: {exc}") from exc


# ----------------------------------------------------------------------
# Query translation
# ----------------------------------------------------------------------


def build_index_filter(query: SecondaryIndexQuery) -> models.Filter:
    if query.key is not None:
        return models.Filter(
            must=[
                models.FieldCondition(
                    key=query.index, match=models.MatchValue(value=_match_value(query.key))
                )
            ]
        )
    if query.keys:
        return models.Filter(
            must=[
                models.FieldCondition(
                    key=query.index,
                    match=models.MatchAny(any=[_match_value(k) for k in query.keys]),
                )
            ]
        )
    if query.is_range:
        return models.Filter(
            must=[
                models.FieldCondition(
                    key=query.index,
                    range=models.Range(
                        gte=_range_bound(query.start_key),
                        lte=_range_bound(query.end_key),
                    ),
                )
            ]
        )
    return models.Filter(
        must_not=[models.IsEmptyCondition(is_empty=models.PayloadField(key=query.index))]
    )


def build_spatial_filter(query: SpatialQuery) -> models.Filter:
    shape = query.within
    if isinstance(shape, BoundingBox):
        condition = models.FieldCondition(
            key=query.field,
            geo_bounding_box=models.GeoBoundingBox(
                top_left=models.GeoPoint(lon=shape.bottom_left.lon, lat=shape.top_right.lat),
                bottom_right=models.GeoPoint(lon=shape.top_right.lon, lat=shape.bottom_left.lat),
            ),
        )
    elif isinstance(shape, GeoRadius):
        condition = models.FieldCondition(
            key=query.field,
            geo_radius=models.GeoRadius(
                center=models.GeoPoint(lon=shape.center.lon, lat=shape.center.lat),
                radius=shape.radius_m,
            ),
        )
    else:
        raise InvalidQueryError(f"Unsupported spatial shape: {type(shape).__name__}")
    return models.Filter(must=[condition])


def build_filter(query: FilterQuery) -> models.Filter:
    if isinstance(query, SecondaryIndexQuery):
        return build_index_filter(query)
    if isinstance(query, SpatialQuery):
        return build_spatial_filter(query)
    raise InvalidQueryError(f"Cannot filter by {type(query).__name__}")


def projection_selector(query: ProjectionQuery) -> models.PayloadSelectorInclude:
    return models.PayloadSelectorInclude(include=[*query.fields, DOC_ID_KEY])


def entity_selector(descriptor: TypeDescriptor) -> models.PayloadSelectorInclude:
    """Only load the payload keys the target entity can use."""
    return models.PayloadSelectorInclude(include=[*descriptor.field_names, DOC_ID_KEY])


def _match_value(value: Any) -> str | int | bool:
    if isinstance(value, (str, bool, int)):
        return value
    raise InvalidQueryError(
        f"Qdrant can only match str, int or bool keys, got {type(value).__name__}"
    )


def _range_bound(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, Real) and not isinstance(value, bool):
        return float(value)
    raise InvalidQueryError(
        f"Qdrant key ranges need numeric bounds, got {type(value).__name__}"
    )


def to_raw_document(record: models.Record) -> RawDocument:
    payload = dict(record.payload or {})
    doc_id = payload.pop(DOC_ID_KEY, None)
    if doc_id is None:
        doc_id = str(record.id)
    return RawDocument(doc_id=doc_id, content=payload)


def to_point(document: RawDocument) -> models.PointStruct:
    payload = dict(document.content)
    payload[DOC_ID_KEY] = document.doc_id
    return models.PointStruct(
        id=point_id(document.doc_id), vector=PLACEHOLDER_VECTOR, payload=payload
    )


def order_by_request(doc_ids: Sequence[str], records: list[models.Record]) -> list[RawDocument]:
    by_id = {doc.doc_id: doc for doc in map(to_raw_document, records)}
    return [by_id[doc_id] for doc_id in dict.fromkeys(doc_ids) if doc_id in by_id]


def _vectors_config() -> models.VectorParams:
    return models.VectorParams(size=len(PLACEHOLDER_VECTOR), distance=models.Distance.DOT)


# ----------------------------------------------------------------------
# Stores
# ----------------------------------------------------------------------


class QdrantDocumentStore(DocumentStore):
    """Blocking store over :class:`qdrant_client.QdrantClient`.

    The collection is created on first use.
    """

    def __init__(
        self,
        client: QdrantClient,
        collection: str = DEFAULT_COLLECTION,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._client = client
        self._collection = collection
        self._page_size = page_size
        self._ready = False
        self._lock = threading.Lock()

    @property
    def collection(self) -> str:
        return self._collection

    def ensure_collection(self) -> None:
        """Create the collection if missing (double-checked locking)."""
        if self._ready:
            return
        with self._lock:
            if self._ready:
                return
            with translate_errors("collection setup"):
                if not self._client.collection_exists(self._collection):
                    self._client.create_collection(
                        collection_name=self._collection,
                        vectors_config=_vectors_config(),
                    )
                    logger.info("Created Qdrant collection: %s", self._collection)
            self._ready = True

    def fetch_by_id(self, doc_id: str, descriptor: TypeDescriptor) -> RawDocument | None:
        self.ensure_collection()
        with translate_errors("retrieve"):
            records = self._client.retrieve(
                collection_name=self._collection,
                ids=[point_id(doc_id)],
                with_payload=entity_selector(descriptor),
                with_vectors=False,
            )
        return to_raw_document(records[0]) if records else None

    def fetch_by_ids(
        self, doc_ids: Sequence[str], descriptor: TypeDescriptor
    ) -> list[RawDocument]:
        if not doc_ids:
            return []
        self.ensure_collection()
        with translate_errors("retrieve"):
            records = self._client.retrieve(
                collection_name=self._collection,
                ids=[point_id(d) for d in dict.fromkeys(doc_ids)],
                with_payload=entity_selector(descriptor),
                with_vectors=False,
            )
        return order_by_request(doc_ids, records)

    def fetch_by_query(
        self, query: SecondaryIndexQuery, descriptor: TypeDescriptor
    ) -> Iterator[RawDocument]:
        return self._scroll(
            build_index_filter(query), entity_selector(descriptor), query.limit, query.skip
        )

    def fetch_by_spatial_query(
        self, query: SpatialQuery, descriptor: TypeDescriptor
    ) -> Iterator[RawDocument]:
        return self._scroll(
            build_spatial_filter(query), entity_selector(descriptor), query.limit, query.skip
        )

    def fetch_by_projection(
        self, query: ProjectionQuery, descriptor: TypeDescriptor
    ) -> Iterator[RawDocument]:
        scroll_filter = build_index_filter(query.where) if query.where is not None else None
        return self._scroll(scroll_filter, projection_selector(query), query.limit, 0)

    def exists(self, doc_id: str) -> bool:
        self.ensure_collection()
        with translate_errors("retrieve"):
            records = self._client.retrieve(
                collection_name=self._collection,
                ids=[point_id(doc_id)],
                with_payload=False,
                with_vectors=False,
            )
        return bool(records)

    def upsert(self, document: RawDocument) -> None:
        self.ensure_collection()
        with translate_errors("upsert"):
            self._client.upsert(collection_name=self._collection, points=[to_point(document)])
        logger.debug("Upserted document %s", document.doc_id)

    def delete(self, doc_id: str) -> bool:
        if not self.exists(doc_id):
            return False
        with translate_errors("delete"):
            self._client.delete(
                collection_name=self._collection,
                points_selector=models.PointIdsList(points=[point_id(doc_id)]),
            )
        logger.debug("Deleted document %s", doc_id)
        return True

    def count(self, query: FilterQuery) -> int:
        count_filter = build_filter(query)
        self.ensure_collection()
        with translate_errors("count"):
            result = self._client.count(
                collection_name=self._collection, count_filter=count_filter, exact=True
            )
        return result.count

    def delete_by_query(self, query: FilterQuery) -> int:
        matched = self.count(query)
        if not matched:
            return 0
        with translate_errors("delete"):
            self._client.delete(
                collection_name=self._collection,
                points_selector=models.FilterSelector(filter=build_filter(query)),
            )
        logger.debug("Deleted %d documents matching %s", matched, query)
        return matched

    def close(self) -> None:
        self._client.close()

    def _scroll(
        self,
        scroll_filter: models.Filter | None,
        with_payload: models.PayloadSelectorInclude,
        limit: int | None,
        skip: int,
    ) -> Iterator[RawDocument]:
        self.ensure_collection()
        offset = None
        skipped = emitted = 0
        while True:
            with translate_errors("scroll"):
                points, offset = self._client.scroll(
                    collection_name=self._collection,
                    scroll_filter=scroll_filter,
                    limit=self._page_size,
                    offset=offset,
                    with_payload=with_payload,
                    with_vectors=False,
                )
            logger.debug("Scrolled %d points from %s", len(points), self._collection)
            for point in points:
                if skipped < skip:
                    skipped += 1
                    continue
                yield to_raw_document(point)
                emitted += 1
                if limit is not None and emitted >= limit:
                    return
            if offset is None:
                return


class AsyncQdrantDocumentStore(AsyncDocumentStore):
    """Asyncio store over :class:`qdrant_client.AsyncQdrantClient`."""

    def __init__(
        self,
        client: AsyncQdrantClient,
        collection: str = DEFAULT_COLLECTION,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._client = client
        self._collection = collection
        self._page_size = page_size
        self._ready = False
        self._lock = asyncio.Lock()

    @property
    def collection(self) -> str:
        return self._collection

    async def ensure_collection(self) -> None:
        if self._ready:
            return
        async with self._lock:
            if self._ready:
                return
            with translate_errors("collection setup"):
                if not await self._client.collection_exists(self._collection):
                    await self._client.create_collection(
                        collection_name=self._collection,
                        vectors_config=_vectors_config(),
                    )
                    logger.info("Created Qdrant collection: %s", self._collection)
            self._ready = True

    async def fetch_by_id(self, doc_id: str, descriptor: TypeDescriptor) -> RawDocument | None:
        await self.ensure_collection()
        with translate_errors("retrieve"):
            records = await self._client.retrieve(
                collection_name=self._collection,
                ids=[point_id(doc_id)],
                with_payload=entity_selector(descriptor),
                with_vectors=False,
            )
        return to_raw_document(records[0]) if records else None

    async def fetch_by_ids(
        self, doc_ids: Sequence[str], descriptor: TypeDescriptor
    ) -> list[RawDocument]:
        if not doc_ids:
            return []
        await self.ensure_collection()
        with translate_errors("retrieve"):
            records = await self._client.retrieve(
                collection_name=self._collection,
                ids=[point_id(d) for d in dict.fromkeys(doc_ids)],
                with_payload=entity_selector(descriptor),
                with_vectors=False,
            )
        return order_by_request(doc_ids, records)

    def fetch_by_query(
        self, query: SecondaryIndexQuery, descriptor: TypeDescriptor
    ) -> AsyncIterator[RawDocument]:
        return self._scroll(
            build_index_filter(query), entity_selector(descriptor), query.limit, query.skip
        )

    def fetch_by_spatial_query(
        self, query: SpatialQuery, descriptor: TypeDescriptor
    ) -> AsyncIterator[RawDocument]:
        return self._scroll(
            build_spatial_filter(query), entity_selector(descriptor), query.limit, query.skip
        )

    def fetch_by_projection(
        self, query: ProjectionQuery, descriptor: TypeDescriptor
    ) -> AsyncIterator[RawDocument]:
        scroll_filter = build_index_filter(query.where) if query.where is not None else None
        return self._scroll(scroll_filter, projection_selector(query), query.limit, 0)

    async def exists(self, doc_id: str) -> bool:
        await self.ensure_collection()
        with translate_errors("retrieve"):
            records = await self._client.retrieve(
                collection_name=self._collection,
                ids=[point_id(doc_id)],
                with_payload=False,
                with_vectors=False,
            )
        return bool(records)

    async def upsert(self, document: RawDocument) -> None:
        await self.ensure_collection()
        with translate_errors("upsert"):
            await self._client.upsert(
                collection_name=self._collection, points=[to_point(document)]
            )
        logger.debug("Upserted document %s", document.doc_id)

    async def delete(self, doc_id: str) -> bool:
        if not await self.exists(doc_id):
            return False
        with translate_errors("delete"):
            await self._client.delete(
                collection_name=self._collection,
                points_selector=models.PointIdsList(points=[point_id(doc_id)]),
            )
        logger.debug("Deleted document %s", doc_id)
        return True

    async def count(self, query: FilterQuery) -> int:
        count_filter = build_filter(query)
        await self.ensure_collection()
        with translate_errors("count"):
            result = await self._client.count(
                collection_name=self._collection, count_filter=count_filter, exact=True
            )
        return result.count

    async def delete_by_query(self, query: FilterQuery) -> int:
        matched = await self.count(query)
        if not matched:
            return 0
        with translate_errors("delete"):
            await self._client.delete(
                collection_name=self._collection,
                points_selector=models.FilterSelector(filter=build_filter(query)),
            )
        logger.debug("Deleted %d documents matching %s", matched, query)
        return matched

    async def close(self) -> None:
        await self._client.close()

    async def _scroll(
        self,
        scroll_filter: models.Filter | None,
        with_payload: models.PayloadSelectorInclude,
        limit: int | None,
        skip: int,
    ) -> AsyncIterator[RawDocument]:
        await self.ensure_collection()
        offset = None
        skipped = emitted = 0
        while True:
            with translate_errors("scroll"):
                points, offset = await self._client.scroll(
                    collection_name=self._collection,
                    scroll_filter=scroll_filter,
                    limit=self._page_size,
                    offset=offset,
                    with_payload=with_payload,
                    with_vectors=False,
                )
            logger.debug("Scrolled %d points from %s", len(points), self._collection)
            for point in points:
                if skipped < skip:
                    skipped += 1
                    continue
                yield to_raw_document(point)
                emitted += 1
                if limit is not None and emitted >= limit:
                    return
            if offset is None:
                return
