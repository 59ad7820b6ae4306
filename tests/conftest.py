"""Shared test fixtures for typed_docstore tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import pytest

from typed_docstore.domain.entities import RawDocument, id_field
from typed_docstore.domain.value_objects import GeoPoint
from typed_docstore.infrastructure.store.base import AsyncDocumentStore
from typed_docstore.infrastructure.store.memory_store import InMemoryDocumentStore


class Role(Enum):
    ADMIN = "admin"
    MEMBER = "member"


@dataclass
class User:
    id: str
    name: str
    age: int = 0
    city: str = ""
    role: Role = Role.MEMBER
    tags: list[str] = field(default_factory=list)
    joined: datetime | None = None


@dataclass
class Place:
    code: str = id_field()
    title: str = ""
    location: GeoPoint | None = None


@dataclass
class Profile:
    id: str
    nickname: str
    score: float
    active: bool


@dataclass
class NoIdentifier:
    name: str


class FakeDocumentStore(InMemoryDocumentStore):
    """In-memory store that counts calls and tracks closed iterators."""

    def __init__(self, documents: dict[str, dict[str, Any]] | None = None) -> None:
        super().__init__(documents)
        self.calls: list[str] = []
        self.closed_iterators = 0
        self.fail_with: Exception | None = None
        self.closed = False

    @property
    def documents(self) -> dict[str, dict[str, Any]]:
        return self._documents

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    def fetch_by_id(self, doc_id, descriptor):
        self._record("fetch_by_id")
        return super().fetch_by_id(doc_id, descriptor)

    def fetch_by_ids(self, doc_ids, descriptor):
        self._record("fetch_by_ids")
        return super().fetch_by_ids(doc_ids, descriptor)

    def fetch_by_query(self, query, descriptor):
        self._record("fetch_by_query")
        return super().fetch_by_query(query, descriptor)

    def fetch_by_spatial_query(self, query, descriptor):
        self._record("fetch_by_spatial_query")
        return super().fetch_by_spatial_query(query, descriptor)

    def fetch_by_projection(self, query, descriptor):
        self._record("fetch_by_projection")
        return super().fetch_by_projection(query, descriptor)

    def exists(self, doc_id: str) -> bool:
        self._record("exists")
        return super().exists(doc_id)

    def upsert(self, document: RawDocument) -> None:
        self._record("upsert")
        super().upsert(document)

    def delete(self, doc_id: str) -> bool:
        self._record("delete")
        return super().delete(doc_id)

    def count(self, query) -> int:
        self._record("count")
        return super().count(query)

    def delete_by_query(self, query) -> int:
        self._record("delete_by_query")
        return super().delete_by_query(query)

    def close(self) -> None:
        self.closed = True

    def _scan(self, *args, **kwargs) -> Iterator[RawDocument]:
        try:
            yield from super()._scan(*args, **kwargs)
        finally:
            self.closed_iterators += 1


class FakeAsyncDocumentStore(AsyncDocumentStore):
    """Native async counterpart of FakeDocumentStore sharing its documents."""

    def __init__(self, backing: FakeDocumentStore) -> None:
        self.backing = backing

    @property
    def calls(self) -> list[str]:
        return self.backing.calls

    async def fetch_by_id(self, doc_id, descriptor):
        return self.backing.fetch_by_id(doc_id, descriptor)

    async def fetch_by_ids(self, doc_ids, descriptor):
        return self.backing.fetch_by_ids(doc_ids, descriptor)

    def fetch_by_query(self, query, descriptor):
        return self._aiter(self.backing.fetch_by_query, query, descriptor)

    def fetch_by_spatial_query(self, query, descriptor):
        return self._aiter(self.backing.fetch_by_spatial_query, query, descriptor)

    def fetch_by_projection(self, query, descriptor):
        return self._aiter(self.backing.fetch_by_projection, query, descriptor)

    async def exists(self, doc_id):
        return self.backing.exists(doc_id)

    async def upsert(self, document):
        self.backing.upsert(document)

    async def delete(self, doc_id):
        return self.backing.delete(doc_id)

    async def count(self, query):
        return self.backing.count(query)

    async def delete_by_query(self, query):
        return self.backing.delete_by_query(query)

    @staticmethod
    async def _aiter(fetch, query, descriptor) -> AsyncIterator[RawDocument]:
        records = fetch(query, descriptor)
        try:
            for record in records:
                yield record
        finally:
            records.close()


@pytest.fixture
def user_documents() -> dict[str, dict[str, Any]]:
    return {
        "u1": {"name": "Ada", "age": 36, "city": "London", "role": "admin", "tags": ["math"]},
        "u2": {"name": "Linus", "age": 28, "city": "Helsinki"},
        "u3": {"name": "Grace", "age": 45, "city": "London", "joined": "2020-01-02T03:04:05"},
    }


@pytest.fixture
def place_documents() -> dict[str, dict[str, Any]]:
    return {
        "oslo": {"title": "Oslo", "location": {"lon": 10.75, "lat": 59.91}},
        "bergen": {"title": "Bergen", "location": {"lon": 5.32, "lat": 60.39}},
        "rome": {"title": "Rome", "location": {"lon": 12.49, "lat": 41.89}},
    }


@pytest.fixture
def store(user_documents) -> FakeDocumentStore:
    return FakeDocumentStore(user_documents)


@pytest.fixture
def place_store(place_documents) -> FakeDocumentStore:
    return FakeDocumentStore(place_documents)
