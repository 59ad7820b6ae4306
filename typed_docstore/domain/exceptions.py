"""Domain exception hierarchy."""

from __future__ import annotations


class DocumentStoreError(Exception):
    pass


class InvalidQueryError(DocumentStoreError):
    pass


class InvalidEntityTypeError(DocumentStoreError):
    pass


class NotFoundError(DocumentStoreError):
    def __init__(self, doc_id: str, entity_type: type | None = None) -> None:
        type_name = entity_type.__name__ if entity_type is not None else "document"
        super().__init__(f"{type_name} '{doc_id}' not found")
        self.doc_id = doc_id
        self.entity_type = entity_type


class MappingError(DocumentStoreError):
    def __init__(
        self,
        message: str,
        doc_id: str | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.doc_id = doc_id
        self.field = field


class StoreCommunicationError(DocumentStoreError):
    pass


class IncorrectResultSizeError(DocumentStoreError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Expected at most {expected} result(s), found {actual} or more")
        self.expected = expected
        self.actual = actual
