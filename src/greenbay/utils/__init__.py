"""Utility exports for concurrency helpers."""

from greenbay.utils.concurrency import (
    CancellationToken,
    OperationCancelledError,
    ReadWriteLock,
)

__all__ = [
    "CancellationToken",
    "OperationCancelledError",
    "ReadWriteLock",
]
