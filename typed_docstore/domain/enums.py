"""Execution mode and query kind enumerations."""

from __future__ import annotations

from enum import Enum


class ExecutionMode(Enum):
    BLOCKING = "blocking"
    FUTURE = "future"
    STREAM = "stream"

    @classmethod
    def from_string(cls, mode_str: str) -> ExecutionMode | None:
        return _MODE_MAPPING.get(mode_str.strip().lower())


class QueryKind(Enum):
    BY_ID = "by_id"
    SECONDARY_INDEX = "secondary_index"
    SPATIAL = "spatial"
    PROJECTION = "projection"

    def store_method(self) -> str:
        """Name of the store operation that serves this kind of query."""
        return _STORE_METHODS[self]


_MODE_MAPPING: dict[str, ExecutionMode] = {
    "blocking": ExecutionMode.BLOCKING,
    "sync": ExecutionMode.BLOCKING,
    "future": ExecutionMode.FUTURE,
    "async": ExecutionMode.FUTURE,
    "stream": ExecutionMode.STREAM,
    "reactive": ExecutionMode.STREAM,
}

_STORE_METHODS = {
    QueryKind.BY_ID: "fetch_by_id",
    QueryKind.SECONDARY_INDEX: "fetch_by_query",
    QueryKind.SPATIAL: "fetch_by_spatial_query",
    QueryKind.PROJECTION: "fetch_by_projection",
}
