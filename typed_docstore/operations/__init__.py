from .facade import (
    BlockingOperations,
    DocumentOperations,
    FutureOperations,
    StreamOperations,
    TypedOperations,
)

__all__ = [
    "BlockingOperations",
    "DocumentOperations",
    "FutureOperations",
    "StreamOperations",
    "TypedOperations",
]
