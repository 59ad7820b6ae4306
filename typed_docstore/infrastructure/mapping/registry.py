"""Type registry: resolves entity classes into type descriptors."""

from __future__ import annotations

import dataclasses
import logging
import threading
import types
import typing
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from typed_docstore.domain.entities import is_id_field
from typed_docstore.domain.exceptions import InvalidEntityTypeError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ID_FIELD = "id"


class _NoDefault:
    def __repr__(self) -> str:
        return "NO_DEFAULT"


# Marks a field without a declared default. dataclasses.MISSING cannot be used
# as a field default itself.
NO_DEFAULT: Any = _NoDefault()

_ZERO_VALUES: dict[Any, Callable[[], Any]] = {
    str: str,
    int: int,
    float: float,
    bool: bool,
    list: list,
    dict: dict,
    tuple: tuple,
    set: set,
    frozenset: frozenset,
}


def is_optional(hint: Any) -> bool:
    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        return type(None) in typing.get_args(hint)
    return hint is type(None)


def zero_value(hint: Any) -> Any:
    """The value a field of this type takes when a document does not supply it."""
    if is_optional(hint):
        return None
    factory = _ZERO_VALUES.get(typing.get_origin(hint) or hint)
    return factory() if factory is not None else None


@dataclass(frozen=True)
class FieldSpec:
    name: str
    hint: Any
    default: Any = NO_DEFAULT
    default_factory: Any = NO_DEFAULT

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT or self.default_factory is not NO_DEFAULT

    def fallback(self) -> Any:
        """Declared default if any, otherwise the zero value of the field type."""
        if self.default is not NO_DEFAULT:
            return self.default
        if self.default_factory is not NO_DEFAULT:
            return self.default_factory()
        return zero_value(self.hint)


@dataclass(frozen=True)
class TypeDescriptor(Generic[T]):
    entity_type: type[T]
    id_field: str
    fields: tuple[FieldSpec, ...]

    @property
    def name(self) -> str:
        return self.entity_type.__name__

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None

    def data_fields(self) -> tuple[FieldSpec, ...]:
        """All init fields except the identifier."""
        return tuple(f for f in self.fields if f.name != self.id_field)


class TypeRegistry:
    """Resolves entity dataclasses into :class:`TypeDescriptor` objects.

    Resolution is a pure function of the type. With ``cache=True`` each type
    is resolved once per registry and reused afterwards.
    """

    def __init__(self, cache: bool = False) -> None:
        self._cache_enabled = cache
        self._cache: dict[type, TypeDescriptor] = {}
        self._lock = threading.Lock()

    def resolve(self, entity_type: type[T]) -> TypeDescriptor[T]:
        if not self._cache_enabled:
            return self._build(entity_type)
        cached = self._cache.get(entity_type)
        if cached is not None:
            return cached
        with self._lock:
            cached = self._cache.get(entity_type)
            if cached is None:
                cached = self._build(entity_type)
                self._cache[entity_type] = cached
            return cached

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    @property
    def cached_types(self) -> list[type]:
        return list(self._cache)

    @staticmethod
    def _build(entity_type: type[T]) -> TypeDescriptor[T]:
        if not isinstance(entity_type, type) or not dataclasses.is_dataclass(entity_type):
            raise InvalidEntityTypeError(
                f"{entity_type!r} is not a dataclass type and cannot be used as an entity"
            )

        try:
            hints = typing.get_type_hints(entity_type)
        except (NameError, TypeError) as exc:
            raise InvalidEntityTypeError(
                f"Cannot resolve annotations of {entity_type.__name__}: {exc}"
            ) from exc

        init_fields = [f for f in dataclasses.fields(entity_type) if f.init]
        id_name = _find_id_field(entity_type, dataclasses.fields(entity_type))

        if id_name not in {f.name for f in init_fields}:
            raise InvalidEntityTypeError(
                f"Identifier field '{id_name}' of {entity_type.__name__} must be an init field"
            )
        if hints.get(id_name) is not str:
            raise InvalidEntityTypeError(
                f"Identifier field '{id_name}' of {entity_type.__name__} must be annotated 'str'"
            )

        specs = tuple(
            FieldSpec(
                name=f.name,
                hint=hints.get(f.name, Any),
                default=_declared(f.default),
                default_factory=_declared(f.default_factory),
            )
            for f in init_fields
        )
        logger.debug("Resolved %s (id field: %s, %d fields)", entity_type.__name__, id_name, len(specs))
        return TypeDescriptor(entity_type=entity_type, id_field=id_name, fields=specs)


def _find_id_field(entity_type: type, fields: tuple[dataclasses.Field, ...]) -> str:
    marked = [f.name for f in fields if is_id_field(f)]
    if len(marked) > 1:
        raise InvalidEntityTypeError(
            f"{entity_type.__name__} marks more than one identifier field: {', '.join(marked)}"
        )
    if marked:
        return marked[0]
    if any(f.name == DEFAULT_ID_FIELD for f in fields):
        return DEFAULT_ID_FIELD
    raise InvalidEntityTypeError(
        f"{entity_type.__name__} has no identifier field "
        f"(mark one with id_field() or name it '{DEFAULT_ID_FIELD}')"
    )


def _declared(value: Any) -> Any:
    return NO_DEFAULT if value is dataclasses.MISSING else value
