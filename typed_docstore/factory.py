"""Composition root: builds stores and operations from configuration."""

from __future__ import annotations

import logging
import sys

from qdrant_client import AsyncQdrantClient, QdrantClient

from typed_docstore.config import AppConfig, LoggingConfig, StoreConfig, load_config
from typed_docstore.infrastructure.mapping.materializer import ResultMaterializer
from typed_docstore.infrastructure.mapping.registry import TypeRegistry
from typed_docstore.infrastructure.store.base import (
    AsyncDocumentStore,
    DocumentStore,
    ThreadedAsyncDocumentStore,
)
from typed_docstore.infrastructure.store.memory_store import InMemoryDocumentStore
from typed_docstore.infrastructure.store.qdrant_store import (
    AsyncQdrantDocumentStore,
    QdrantDocumentStore,
)
from typed_docstore.operations.facade import DocumentOperations

logger = logging.getLogger(__name__)

BACKENDS = ("qdrant", "memory")


def configure_logging(config: LoggingConfig) -> None:
    """Route library logs to stderr. Applications with their own logging setup skip this."""
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {config.level}")
    logging.basicConfig(level=level, format=config.format, stream=sys.stderr)


def _backend(config: StoreConfig) -> str:
    backend = config.backend.strip().lower()
    if backend not in BACKENDS:
        raise ValueError(f"Unknown store backend: {config.backend} (expected one of {BACKENDS})")
    return backend


def _client_kwargs(config: StoreConfig) -> dict:
    if config.url:
        kwargs: dict = {"url": config.url, "api_key": config.api_key}
        if config.timeout is not None:
            kwargs["timeout"] = config.timeout
        return kwargs
    if config.path:
        return {"path": config.path}
    if config.location:
        return {"location": config.location}
    raise ValueError("store.url, store.path or store.location must be set")


def create_store(config: StoreConfig) -> DocumentStore:
    backend = _backend(config)
    if backend == "memory":
        logger.info("Using in-memory document store")
        return InMemoryDocumentStore()
    kwargs = _client_kwargs(config)
    logger.info(
        "Connecting document store (collection: %s, target: %s)",
        config.collection,
        kwargs.get("url") or kwargs.get("path") or kwargs.get("location"),
    )
    return QdrantDocumentStore(
        QdrantClient(**kwargs),
        collection=config.collection,
        page_size=config.page_size,
    )


def create_async_store(
    config: StoreConfig,
    store: DocumentStore | None = None,
) -> AsyncDocumentStore:
    """Native async store when ``native_async`` is set, else worker threads over ``store``.

    Local Qdrant modes (``:memory:``, ``path``) keep state per client, so
    the threaded form shares the blocking store's client.
    """
    if config.native_async:
        if _backend(config) != "qdrant":
            raise ValueError("store.native_async needs the qdrant backend")
        return AsyncQdrantDocumentStore(
            AsyncQdrantClient(**_client_kwargs(config)),
            collection=config.collection,
            page_size=config.page_size,
        )
    return ThreadedAsyncDocumentStore(store if store is not None else create_store(config))


def create_operations(config: AppConfig | None = None) -> DocumentOperations:
    """Create DocumentOperations from configuration (defaults to env-aware ``load_config()``)."""
    config = config or load_config()
    store = create_store(config.store)
    async_store = create_async_store(config.store, store=store)
    return DocumentOperations(
        store=store,
        async_store=async_store,
        registry=TypeRegistry(cache=config.mapping.cache_descriptors),
        materializer=ResultMaterializer(),
    )
