"""
Assertion helpers for document scenarios.

Failures list every differing field as `path: expected X, got Y` so a
broken document is diagnosed in one run.
"""
from collections.abc import Mapping
from typing import Any, Iterable, List, Optional

from docharness.models.document import DatabaseRecord, Document, serialize_value
from docharness.models.query import FilterLike
from docharness.services.store import StoreHandle

_MISSING = object()


def _plain(value: Any) -> Any:
    if isinstance(value, DatabaseRecord):
        return value.model_dump()
    if isinstance(value, Document):
        return value.to_dict()
    return value


def _diff(actual: Any, expected: Any, path: str, ignore: Iterable[str], out: List[str]):
    if isinstance(expected, Mapping) and isinstance(actual, Mapping):
        for key in sorted(set(expected) | set(actual)):
            child = f"{path}.{key}" if path else key
            if child in ignore:
                continue
            _diff(actual.get(key, _MISSING), expected.get(key, _MISSING), child, ignore, out)
        return

    if actual is _MISSING:
        out.append(f"{path}: expected {serialize_value(expected)!r}, field missing")
    elif expected is _MISSING:
        out.append(f"{path}: unexpected field with value {serialize_value(actual)!r}")
    elif type(actual) is not type(expected) and not (
        isinstance(actual, int) and isinstance(expected, int)
        and not isinstance(actual, bool) and not isinstance(expected, bool)
    ):
        out.append(
            f"{path}: expected {serialize_value(expected)!r} ({type(expected).__name__}), "
            f"got {serialize_value(actual)!r} ({type(actual).__name__})"
        )
    elif actual != expected:
        out.append(f"{path}: expected {serialize_value(expected)!r}, got {serialize_value(actual)!r}")


def document_differences(actual: Any, expected: Any, ignore: Iterable[str] = ("_id",)) -> List[str]:
    """Field-by-field differences between two documents, nested included"""
    out: List[str] = []
    _diff(_plain(actual), _plain(expected), "", tuple(ignore), out)
    return out


def assert_document_matches(actual: Optional[Any], expected: Any, ignore: Iterable[str] = ("_id",)):
    """Fail unless actual equals expected on every field except ignored paths"""
    assert actual is not None, f"expected a document equal to {serialize_value(_plain(expected))!r}, got no document"
    differences = document_differences(actual, expected, ignore)
    assert not differences, "document mismatch:\n  " + "\n  ".join(differences)


def assert_absent(value: Any):
    assert value is None, f"expected no document, got {serialize_value(_plain(value))!r}"


def assert_count(handle: StoreHandle, expected: int, filter: FilterLike = None):
    actual = handle.count_documents(filter)
    where = f" matching {filter!r}" if filter is not None else ""
    assert actual == expected, f"expected {expected} document(s){where} in {handle}, got {actual}"
