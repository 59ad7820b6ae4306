"""Raw store records and entity identifier marking."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

ID_METADATA_KEY = "typed_docstore.id"


def id_field(**kwargs: Any) -> Any:
    """Declare the identifier field of an entity dataclass.

    Accepts the same keyword arguments as :func:`dataclasses.field`::

        @dataclass
        class User:
            username: str = id_field()
            age: int = 0
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[ID_METADATA_KEY] = True
    return field(metadata=metadata, **kwargs)


def is_id_field(f: dataclasses.Field) -> bool:
    return bool(f.metadata.get(ID_METADATA_KEY, False))


@dataclass(frozen=True)
class RawDocument:
    """One document as handed over by the store: its identifier plus JSON-like content."""

    doc_id: str
    content: Mapping[str, Any] = field(default_factory=dict)
