"""Typed document retrieval in blocking, future and stream execution modes."""

from typed_docstore.domain.entities import RawDocument, id_field
from typed_docstore.domain.enums import ExecutionMode
from typed_docstore.domain.exceptions import (
    DocumentStoreError,
    IncorrectResultSizeError,
    InvalidEntityTypeError,
    InvalidQueryError,
    MappingError,
    NotFoundError,
    StoreCommunicationError,
)
from typed_docstore.domain.value_objects import (
    BoundingBox,
    GeoPoint,
    GeoRadius,
    ProjectionQuery,
    SecondaryIndexQuery,
    SpatialQuery,
)
from typed_docstore.infrastructure.store.memory_store import InMemoryDocumentStore
from typed_docstore.operations.facade import DocumentOperations

__version__ = "0.1.0"

__all__ = [
    "BoundingBox",
    "DocumentOperations",
    "DocumentStoreError",
    "ExecutionMode",
    "GeoPoint",
    "GeoRadius",
    "InMemoryDocumentStore",
    "IncorrectResultSizeError",
    "InvalidEntityTypeError",
    "InvalidQueryError",
    "MappingError",
    "NotFoundError",
    "ProjectionQuery",
    "RawDocument",
    "SecondaryIndexQuery",
    "SpatialQuery",
    "StoreCommunicationError",
    "id_field",
]
