"""
Error types raised by the harness.

Infrastructure errors (the instance could not start, connectivity was lost)
abort a suite; operation errors fail a single scenario; teardown errors are
kept apart from both so a broken cleanup is not mistaken for a failed test.
"""
from typing import Optional, Type

from bson.errors import BSONError
from pymongo.errors import ConnectionFailure, PyMongoError


class HarnessError(Exception):
    """Base class for every error raised by docharness"""


class InfrastructureError(HarnessError):
    """The database instance or the connection to it is unusable"""


class StartupError(InfrastructureError):
    """The database instance could not be launched, bound or reached"""

    def __init__(self, message: str, handle=None):
        super().__init__(message)
        self.handle = handle


class StoreConnectionError(InfrastructureError):
    """Connectivity to a running instance was lost"""


class OperationError(HarnessError):
    """A single store operation was rejected"""


class WriteError(OperationError):
    """An insert or drop was rejected by the store"""


class QueryError(OperationError):
    """A filter was malformed or a cursor faulted"""


class TypeMismatch(QueryError):
    """A document field holds a value of an unexpected type"""

    def __init__(self, field: str, expected: str, actual: object):
        super().__init__(
            f"Field '{field}' expected {expected}, got {type(actual).__name__} ({actual!r})"
        )
        self.field = field
        self.expected = expected
        self.actual = actual


class FieldMissing(QueryError):
    """A document has no value for the requested field"""

    def __init__(self, field: str):
        super().__init__(f"Field '{field}' is not present in the document")
        self.field = field


class TeardownError(HarnessError):
    """Per-test cleanup failed"""


def translate_store_error(
    exc: Exception,
    operation: str,
    error_cls: Type[OperationError],
) -> HarnessError:
    """
    Map a driver exception onto the harness hierarchy.

    Connectivity failures become StoreConnectionError whatever the operation;
    everything else becomes error_cls.
    """
    if isinstance(exc, ConnectionFailure):
        return StoreConnectionError(f"Lost connection during {operation}: {exc}")
    if isinstance(exc, (PyMongoError, BSONError)):
        return error_cls(f"{operation} failed: {exc}")
    return error_cls(f"{operation} failed with unexpected error: {exc!r}")


def describe(exc: Optional[BaseException]) -> str:
    """Short one-line description used in diagnostics"""
    if exc is None:
        return "unknown error"
    return f"{type(exc).__name__}: {exc}"
