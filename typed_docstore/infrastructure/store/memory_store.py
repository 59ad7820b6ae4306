"""In-process document store.

Documents live in a dict guarded by a re-entrant lock. Filters follow the
Qdrant payload rules so both stores answer a query the same way: a list
value matches when any of its elements matches, and a missing, null or
empty-list field never matches.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping, Sequence
from numbers import Real
from typing import Any

from typed_docstore.domain.entities import RawDocument
from typed_docstore.domain.exceptions import InvalidQueryError
from typed_docstore.domain.value_objects import (
    FilterQuery,
    GeoPoint,
    ProjectionQuery,
    SecondaryIndexQuery,
    SpatialQuery,
)
from typed_docstore.infrastructure.mapping.registry import TypeDescriptor

from .base import DocumentStore

logger = logging.getLogger(__name__)

Predicate = Callable[[Mapping[str, Any]], bool]


def field_values(content: Mapping[str, Any], name: str) -> list[Any]:
    """The values a filter sees for one field: list items, or the scalar itself."""
    value = content.get(name)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if v is not None]
    return [value]


def index_matches(query: SecondaryIndexQuery, content: Mapping[str, Any]) -> bool:
    values = field_values(content, query.index)
    if query.key is not None:
        return any(_same(v, query.key) for v in values)
    if query.keys:
        return any(_same(v, k) for v in values for k in query.keys)
    if query.is_range:
        return any(_in_range(v, query.start_key, query.end_key) for v in values)
    return not is_empty(content.get(query.index))


def is_empty(value: Any) -> bool:
    """Null or an empty list counts as no value."""
    return value is None or (isinstance(value, (list, tuple)) and not value)


def spatial_matches(query: SpatialQuery, content: Mapping[str, Any]) -> bool:
    for value in field_values(content, query.field):
        point = GeoPoint.from_payload(value)
        if point is not None and query.within.contains(point):
            return True
    return False


def project(fields: Sequence[str], content: Mapping[str, Any]) -> dict[str, Any]:
    return {name: content[name] for name in fields if name in content}


def check_index_query(query: SecondaryIndexQuery) -> None:
    """Reject predicates a payload index cannot answer (same rules as Qdrant)."""
    for key in ([query.key] if query.key is not None else list(query.keys)):
        if not isinstance(key, (str, bool, int)):
            raise InvalidQueryError(
                f"Index keys must be str, int or bool, got {type(key).__name__}"
            )
    for bound in (query.start_key, query.end_key):
        if bound is not None and (not isinstance(bound, Real) or isinstance(bound, bool)):
            raise InvalidQueryError(
                f"Key ranges need numeric bounds, got {type(bound).__name__}"
            )


def filter_predicate(query: FilterQuery) -> Predicate:
    if isinstance(query, SecondaryIndexQuery):
        check_index_query(query)
        return lambda content: index_matches(query, content)
    if isinstance(query, SpatialQuery):
        return lambda content: spatial_matches(query, content)
    raise InvalidQueryError(f"Cannot filter by {type(query).__name__}")


def _same(value: Any, key: Any) -> bool:
    # Payload indexes keep bool, int and float apart; Python equality does not.
    if isinstance(value, bool) != isinstance(key, bool):
        return False
    if isinstance(value, float) != isinstance(key, float):
        return False
    return value == key


def _in_range(value: Any, low: Any, high: Any) -> bool:
    if not isinstance(value, Real) or isinstance(value, bool):
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe dict-backed store.

    Query results are taken from a snapshot made on first iteration, so
    writes during iteration do not disturb it.
    """

    def __init__(self, documents: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = {
            doc_id: dict(content) for doc_id, content in (documents or {}).items()
        }
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._documents)

    def fetch_by_id(self, doc_id: str, descriptor: TypeDescriptor) -> RawDocument | None:
        with self._lock:
            content = self._documents.get(doc_id)
        return RawDocument(doc_id, dict(content)) if content is not None else None

    def fetch_by_ids(
        self, doc_ids: Sequence[str], descriptor: TypeDescriptor
    ) -> list[RawDocument]:
        with self._lock:
            return [
                RawDocument(doc_id, dict(self._documents[doc_id]))
                for doc_id in dict.fromkeys(doc_ids)
                if doc_id in self._documents
            ]

    def fetch_by_query(
        self, query: SecondaryIndexQuery, descriptor: TypeDescriptor
    ) -> Iterator[RawDocument]:
        return self._scan(filter_predicate(query), query.limit, query.skip)

    def fetch_by_spatial_query(
        self, query: SpatialQuery, descriptor: TypeDescriptor
    ) -> Iterator[RawDocument]:
        return self._scan(filter_predicate(query), query.limit, query.skip)

    def fetch_by_projection(
        self, query: ProjectionQuery, descriptor: TypeDescriptor
    ) -> Iterator[RawDocument]:
        predicate = filter_predicate(query.where) if query.where is not None else _everything
        return self._scan(
            predicate, query.limit, 0, lambda content: project(query.fields, content)
        )

    def exists(self, doc_id: str) -> bool:
        with self._lock:
            return doc_id in self._documents

    def upsert(self, document: RawDocument) -> None:
        with self._lock:
            self._documents[document.doc_id] = dict(document.content)
        logger.debug("Upserted document %s", document.doc_id)

    def delete(self, doc_id: str) -> bool:
        with self._lock:
            removed = self._documents.pop(doc_id, None) is not None
        if removed:
            logger.debug("Deleted document %s", doc_id)
        return removed

    def count(self, query: FilterQuery) -> int:
        predicate = filter_predicate(query)
        with self._lock:
            return sum(1 for content in self._documents.values() if predicate(content))

    def delete_by_query(self, query: FilterQuery) -> int:
        predicate = filter_predicate(query)
        with self._lock:
            doomed = [doc_id for doc_id, content in self._documents.items() if predicate(content)]
            for doc_id in doomed:
                del self._documents[doc_id]
        logger.debug("Deleted %d documents matching %s", len(doomed), query)
        return len(doomed)

    def _scan(
        self,
        predicate: Predicate,
        limit: int | None,
        skip: int,
        transform: Callable[[dict[str, Any]], dict[str, Any]] | None = None,
    ) -> Iterator[RawDocument]:
        with self._lock:
            matched = [
                (doc_id, dict(content))
                for doc_id, content in self._documents.items()
                if predicate(content)
            ]
        end = None if limit is None else skip + limit
        for doc_id, content in matched[skip:end]:
            yield RawDocument(doc_id, transform(content) if transform else content)


def _everything(content: Mapping[str, Any]) -> bool:
    return True
