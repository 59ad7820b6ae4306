"""Query descriptor and geo value objects."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, Union

from .enums import QueryKind
from .exceptions import InvalidQueryError

EARTH_RADIUS_M = 6_371_000.0


def _freeze(value: Any) -> Any:
    """Turn list and set payloads into immutable ones so a descriptor cannot change."""
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(_freeze(v) for v in value)
    if isinstance(value, Mapping):
        raise InvalidQueryError("Query keys cannot be mappings")
    return value


def _check_window(limit: int | None, skip: int) -> None:
    if limit is not None and limit < 1:
        raise InvalidQueryError(f"limit must be positive, got {limit}")
    if skip < 0:
        raise InvalidQueryError(f"skip cannot be negative, got {skip}")


@dataclass(frozen=True)
class GeoPoint:
    lon: float
    lat: float

    def __post_init__(self) -> None:
        if not -180.0 <= self.lon <= 180.0:
            raise InvalidQueryError(f"Longitude out of range: {self.lon}")
        if not -90.0 <= self.lat <= 90.0:
            raise InvalidQueryError(f"Latitude out of range: {self.lat}")

    @classmethod
    def from_payload(cls, payload: Any) -> GeoPoint | None:
        """Read a ``{"lon": .., "lat": ..}`` payload value; None when it is not one."""
        if not isinstance(payload, Mapping):
            return None
        lon, lat = payload.get("lon"), payload.get("lat")
        if not isinstance(lon, (int, float)) or not isinstance(lat, (int, float)):
            return None
        if not -180.0 <= lon <= 180.0 or not -90.0 <= lat <= 90.0:
            return None
        return cls(float(lon), float(lat))

    def distance_to(self, other: GeoPoint) -> float:
        """Great-circle (haversine) distance in meters."""
        lat1, lat2 = math.radians(self.lat), math.radians(other.lat)
        d_lat = lat2 - lat1
        d_lon = math.radians(other.lon - self.lon)
        h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
        return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


@dataclass(frozen=True)
class BoundingBox:
    bottom_left: GeoPoint
    top_right: GeoPoint

    def __post_init__(self) -> None:
        if self.bottom_left.lat > self.top_right.lat:
            raise InvalidQueryError("Bounding box bottom edge is above its top edge")
        if self.bottom_left.lon > self.top_right.lon:
            raise InvalidQueryError("Bounding box left edge is right of its right edge")

    def contains(self, point: GeoPoint) -> bool:
        return (
            self.bottom_left.lon <= point.lon <= self.top_right.lon
            and self.bottom_left.lat <= point.lat <= self.top_right.lat
        )


@dataclass(frozen=True)
class GeoRadius:
    center: GeoPoint
    radius_m: float

    def __post_init__(self) -> None:
        if self.radius_m <= 0:
            raise InvalidQueryError(f"Radius must be positive, got {self.radius_m}")

    def contains(self, point: GeoPoint) -> bool:
        return self.center.distance_to(point) <= self.radius_m


GeoShape = Union[BoundingBox, GeoRadius]


@dataclass(frozen=True)
class ById:
    doc_id: str

    kind: ClassVar[QueryKind] = QueryKind.BY_ID

    def __post_init__(self) -> None:
        if not isinstance(self.doc_id, str) or not self.doc_id:
            raise InvalidQueryError("Document id cannot be empty")


@dataclass(frozen=True)
class SecondaryIndexQuery:
    """Query against the index over one document field.

    Exactly one predicate style may be used: ``key`` (equality), ``keys``
    (membership) or ``start_key``/``end_key`` (inclusive range, either end
    open). With no predicate every document carrying the field matches.
    """

    index: str
    key: Any = None
    keys: tuple = ()
    start_key: Any = None
    end_key: Any = None
    limit: int | None = None
    skip: int = 0

    kind: ClassVar[QueryKind] = QueryKind.SECONDARY_INDEX

    def __post_init__(self) -> None:
        if not self.index or not self.index.strip():
            raise InvalidQueryError("Index name cannot be empty")
        object.__setattr__(self, "key", _freeze(self.key))
        object.__setattr__(self, "keys", _freeze(self.keys))
        object.__setattr__(self, "start_key", _freeze(self.start_key))
        object.__setattr__(self, "end_key", _freeze(self.end_key))
        styles = [
            self.key is not None,
            bool(self.keys),
            self.start_key is not None or self.end_key is not None,
        ]
        if sum(styles) > 1:
            raise InvalidQueryError("Use only one of key, keys or a key range")
        _check_window(self.limit, self.skip)

    @property
    def is_range(self) -> bool:
        return self.start_key is not None or self.end_key is not None


@dataclass(frozen=True)
class SpatialQuery:
    field: str
    within: GeoShape
    limit: int | None = None
    skip: int = 0

    kind: ClassVar[QueryKind] = QueryKind.SPATIAL

    def __post_init__(self) -> None:
        if not self.field or not self.field.strip():
            raise InvalidQueryError("Spatial field name cannot be empty")
        if not isinstance(self.within, (BoundingBox, GeoRadius)):
            raise InvalidQueryError(f"Unsupported spatial shape: {type(self.within).__name__}")
        _check_window(self.limit, self.skip)


@dataclass(frozen=True)
class ProjectionQuery:
    fields: tuple[str, ...]
    where: SecondaryIndexQuery | None = None
    limit: int | None = None

    kind: ClassVar[QueryKind] = QueryKind.PROJECTION

    def __post_init__(self) -> None:
        fields = _freeze(self.fields) if not isinstance(self.fields, str) else (self.fields,)
        if not fields:
            raise InvalidQueryError("Projection needs at least one field")
        if any(not isinstance(f, str) or not f.strip() for f in fields):
            raise InvalidQueryError("Projection field names must be non-empty strings")
        object.__setattr__(self, "fields", tuple(dict.fromkeys(fields)))
        if self.where is not None:
            if not isinstance(self.where, SecondaryIndexQuery):
                raise InvalidQueryError(
                    f"Projection filter must be a SecondaryIndexQuery, got {type(self.where).__name__}"
                )
            # The projection's own limit is the only window.
            if self.where.limit is not None or self.where.skip:
                raise InvalidQueryError("Projection filter cannot carry limit or skip")
        _check_window(self.limit, 0)


QueryDescriptor = Union[ById, SecondaryIndexQuery, SpatialQuery, ProjectionQuery]

# Queries that select documents by a filter; accepted by count and remove.
FilterQuery = Union[SecondaryIndexQuery, SpatialQuery]
