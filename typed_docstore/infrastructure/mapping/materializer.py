"""Materializer: converts raw store documents into typed entities and back."""

from __future__ import annotations

import dataclasses
import logging
import types
import typing
from collections.abc import Mapping
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, TypeVar

from typed_docstore.domain.entities import RawDocument
from typed_docstore.domain.exceptions import DocumentStoreError, MappingError

from .registry import FieldSpec, TypeDescriptor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Mismatch(Exception):
    """Internal: a value does not fit its annotation."""


class ResultMaterializer:
    """Builds entities from raw documents using a resolved type descriptor.

    Materialization is all-or-nothing per document: either every field is
    converted and the entity constructed, or :class:`MappingError` is raised.
    """

    def materialize(
        self,
        raw: RawDocument,
        descriptor: TypeDescriptor[T],
        projection: bool = False,
    ) -> T:
        doc_id = raw.doc_id
        if not isinstance(doc_id, str) or not doc_id:
            raise MappingError(
                f"Document identifier must be a non-empty string, got {doc_id!r}",
                doc_id=None,
                field=descriptor.id_field,
            )
        content = raw.content
        if not isinstance(content, Mapping):
            raise MappingError(
                f"Document '{doc_id}' content is {type(content).__name__}, expected a mapping",
                doc_id=doc_id,
            )

        stored_id = content.get(descriptor.id_field)
        if stored_id is not None:
            if not isinstance(stored_id, str):
                raise MappingError(
                    f"Document '{doc_id}' has a {type(stored_id).__name__} identifier field "
                    f"'{descriptor.id_field}', expected str",
                    doc_id=doc_id,
                    field=descriptor.id_field,
                )
            if stored_id != doc_id:
                logger.warning(
                    "Document '%s' stores identifier '%s' in field '%s'; using the store key",
                    doc_id,
                    stored_id,
                    descriptor.id_field,
                )

        kwargs: dict[str, Any] = {descriptor.id_field: doc_id}
        for spec in descriptor.data_fields():
            if spec.name in content:
                kwargs[spec.name] = self._convert_field(content[spec.name], spec, doc_id)
            elif projection:
                kwargs[spec.name] = spec.fallback()
            elif not spec.has_default:
                raise MappingError(
                    f"Document '{doc_id}' is missing required field '{spec.name}' "
                    f"of {descriptor.name}",
                    doc_id=doc_id,
                    field=spec.name,
                )

        try:
            return descriptor.entity_type(**kwargs)
        except (TypeError, ValueError, DocumentStoreError) as exc:
            raise MappingError(
                f"Cannot construct {descriptor.name} from document '{doc_id}': {exc}",
                doc_id=doc_id,
            ) from exc

    def dematerialize(self, entity: T, descriptor: TypeDescriptor[T]) -> RawDocument:
        """Convert an entity into the raw document the store persists."""
        doc_id = getattr(entity, descriptor.id_field)
        if not isinstance(doc_id, str) or not doc_id:
            raise MappingError(
                f"{descriptor.name} cannot be saved without an identifier "
                f"in field '{descriptor.id_field}'",
                field=descriptor.id_field,
            )
        content = {
            spec.name: to_storable(getattr(entity, spec.name))
            for spec in descriptor.data_fields()
        }
        return RawDocument(doc_id=doc_id, content=content)

    @staticmethod
    def _convert_field(value: Any, spec: FieldSpec, doc_id: str) -> Any:
        try:
            return convert_value(value, spec.hint)
        except _Mismatch as exc:
            raise MappingError(
                f"Document '{doc_id}' field '{spec.name}': {exc}",
                doc_id=doc_id,
                field=spec.name,
            ) from None


def convert_value(value: Any, hint: Any) -> Any:
    """Convert a JSON-like value to the annotated Python type.

    Raises:
        _Mismatch: when the value cannot represent the annotated type.
    """
    if hint is Any or hint is object:
        return value

    origin = typing.get_origin(hint)
    args = typing.get_args(hint)

    if origin is typing.Union or origin is types.UnionType:
        if value is None:
            if type(None) in args:
                return None
            raise _Mismatch("null is not allowed")
        for arg in args:
            if arg is type(None):
                continue
            try:
                return convert_value(value, arg)
            except _Mismatch:
                continue
        raise _Mismatch(f"{_describe(value)} matches none of {hint}")

    if value is None:
        raise _Mismatch(f"null is not allowed for {_type_name(hint)}")

    if origin is typing.Literal:
        if value in args:
            return value
        raise _Mismatch(f"{value!r} is not one of {args}")

    if origin in (list, tuple, set, frozenset):
        return _convert_sequence(value, origin, args)
    if origin is dict:
        return _convert_mapping(value, args)

    if not isinstance(hint, type):
        return value

    if dataclasses.is_dataclass(hint):
        return _convert_dataclass(value, hint)
    if issubclass(hint, Enum):
        if isinstance(value, hint):
            return value
        try:
            return hint(value)
        except ValueError:
            raise _Mismatch(f"{value!r} is not a valid {hint.__name__}") from None
    if hint is bool:
        if isinstance(value, bool):
            return value
        raise _Mismatch(f"expected bool, got {_describe(value)}")
    if hint is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        raise _Mismatch(f"expected int, got {_describe(value)}")
    if hint is float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        raise _Mismatch(f"expected float, got {_describe(value)}")
    if hint is datetime:
        return _convert_datetime(value)
    if hint is date:
        return _convert_date(value)
    if hint in (list, tuple, set, frozenset):
        return _convert_sequence(value, hint, ())
    if hint is dict:
        return _convert_mapping(value, ())
    if isinstance(value, hint):
        return value
    raise _Mismatch(f"expected {hint.__name__}, got {_describe(value)}")


def to_storable(value: Any) -> Any:
    """Reverse of :func:`convert_value`: reduce a Python value to JSON-like data."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_storable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {_storable_key(k): to_storable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_storable(v) for v in value]
    return value


def _convert_sequence(value: Any, container: type, args: tuple) -> Any:
    if not isinstance(value, (list, tuple)):
        raise _Mismatch(f"expected a list, got {_describe(value)}")
    if container is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
        if len(args) != len(value):
            raise _Mismatch(f"expected {len(args)} items, got {len(value)}")
        return tuple(convert_value(v, a) for v, a in zip(value, args))
    item_hint = args[0] if args else Any
    items = [convert_value(v, item_hint) for v in value]
    try:
        return container(items)
    except TypeError as exc:
        raise _Mismatch(f"cannot build a {container.__name__}: {exc}") from None


def _convert_mapping(value: Any, args: tuple) -> dict:
    if not isinstance(value, Mapping):
        raise _Mismatch(f"expected a mapping, got {_describe(value)}")
    key_hint, value_hint = args if len(args) == 2 else (Any, Any)
    return {_convert_key(k, key_hint): convert_value(v, value_hint) for k, v in value.items()}


def _storable_key(key: Any) -> str:
    if isinstance(key, Enum):
        return str(key.value)
    if isinstance(key, (date, datetime)):
        return key.isoformat()
    return str(key)


def _convert_key(key: Any, hint: Any) -> Any:
    """Mapping keys are stored as strings; parse them back into the key type."""
    if not isinstance(key, str) or hint is Any or hint is str:
        return convert_value(key, hint)
    if hint is bool:
        if key in ("True", "False"):
            return key == "True"
        raise _Mismatch(f"{key!r} is not a bool key")
    if hint in (int, float):
        try:
            return hint(key)
        except ValueError:
            raise _Mismatch(f"{key!r} is not a {hint.__name__} key") from None
    if isinstance(hint, type) and issubclass(hint, Enum):
        for member in hint:
            if key == member.value or key == str(member.value):
                return member
        raise _Mismatch(f"{key!r} is not a valid {hint.__name__} key")
    return convert_value(key, hint)


def _convert_dataclass(value: Any, cls: type) -> Any:
    if isinstance(value, cls):
        return value
    if not isinstance(value, Mapping):
        raise _Mismatch(f"expected a mapping for {cls.__name__}, got {_describe(value)}")
    try:
        hints = typing.get_type_hints(cls)
    except (NameError, TypeError) as exc:
        raise _Mismatch(f"cannot resolve annotations of {cls.__name__}: {exc}") from None
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        if f.name in value:
            kwargs[f.name] = convert_value(value[f.name], hints.get(f.name, Any))
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            raise _Mismatch(f"{cls.__name__} is missing '{f.name}'")
    try:
        return cls(**kwargs)
    except (TypeError, ValueError, DocumentStoreError) as exc:
        raise _Mismatch(f"cannot build {cls.__name__}: {exc}") from None


def _convert_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            raise _Mismatch(f"{value!r} is not an ISO-8601 datetime") from None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # epoch milliseconds
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise _Mismatch(f"{value!r} is out of range for an epoch timestamp") from None
    raise _Mismatch(f"expected a datetime, got {_describe(value)}")


def _convert_date(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise _Mismatch(f"{value!r} is not an ISO-8601 date") from None
    raise _Mismatch(f"expected a date, got {_describe(value)}")


def _describe(value: Any) -> str:
    return f"{type(value).__name__} {value!r}"


def _type_name(hint: Any) -> str:
    return getattr(hint, "__name__", str(hint))
