from .base import AsyncDocumentStore, DocumentStore, ThreadedAsyncDocumentStore
from .memory_store import InMemoryDocumentStore
from .qdrant_store import AsyncQdrantDocumentStore, QdrantDocumentStore

__all__ = [
    "AsyncDocumentStore",
    "AsyncQdrantDocumentStore",
    "DocumentStore",
    "InMemoryDocumentStore",
    "QdrantDocumentStore",
    "ThreadedAsyncDocumentStore",
]
