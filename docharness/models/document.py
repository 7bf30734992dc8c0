from collections.abc import Mapping
from datetime import datetime
from typing import Any, Dict, Iterator, List

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from docharness.errors import FieldMissing, TypeMismatch


def serialize_value(value: Any) -> Any:
    """
    Recursively convert a stored value to a JSON-friendly form.
    Handles ObjectId, datetime, bytes and nested structures.
    """
    if value is None:
        return None
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return value


def _freeze(value: Any) -> Any:
    if isinstance(value, Document):
        return value
    if isinstance(value, Mapping):
        return Document(value)
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(item) for item in value]
    return value


class Document(Mapping):
    """
    Immutable schema-less record.

    Field names are strings; nested mappings are converted to nested
    Documents and arrays to tuples. Equality compares the plain form, so a
    frozen array still equals a list with the same items. Values are read
    either through the mapping interface or the typed accessors, which fail
    with TypeMismatch instead of coercing.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Any = None, **kwargs: Any):
        data: Dict[str, Any] = {}
        if fields is not None:
            if not isinstance(fields, Mapping):
                raise TypeError(f"Document requires a mapping, got {type(fields).__name__}")
            data.update(fields)
        data.update(kwargs)

        for key in data:
            if not isinstance(key, str):
                raise TypeError(f"Document field names must be strings, got {key!r}")

        self._fields = {key: _freeze(value) for key, value in data.items()}

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"Document({self._fields!r})"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return self.to_dict() == _thaw(other)

    __hash__ = None

    @property
    def id(self) -> Any:
        """Store-assigned identifier, or None before insertion"""
        return self._fields.get("_id")

    def to_dict(self) -> Dict[str, Any]:
        """Deep copy as plain dicts and lists, ready for the driver"""
        return {key: _thaw(value) for key, value in self._fields.items()}

    def without(self, *fields: str) -> "Document":
        """Copy of this document minus the given top-level fields"""
        return Document({k: v for k, v in self._fields.items() if k not in fields})

    def _require(self, field: str) -> Any:
        if field not in self._fields:
            raise FieldMissing(field)
        return self._fields[field]

    def get_str(self, field: str) -> str:
        value = self._require(field)
        if not isinstance(value, str):
            raise TypeMismatch(field, "str", value)
        return value

    def get_int(self, field: str) -> int:
        value = self._require(field)
        # bool is an int subclass; a stored true is not a count
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeMismatch(field, "int", value)
        return value

    def get_document(self, field: str) -> "Document":
        value = self._require(field)
        if not isinstance(value, Document):
            raise TypeMismatch(field, "document", value)
        return value

    def get_path(self, path: str) -> Any:
        """Resolve a dotted path such as 'info.x'"""
        current: Any = self
        walked: List[str] = []
        for part in path.split("."):
            walked.append(part)
            if not isinstance(current, Document):
                raise TypeMismatch(".".join(walked[:-1]), "document", current)
            if part not in current:
                raise FieldMissing(".".join(walked))
            current = current[part]
        return current


class Coordinates(BaseModel):
    """Nested info block of a database record"""
    x: StrictInt = Field(..., description="X coordinate")
    y: StrictInt = Field(..., description="Y coordinate")


class DatabaseRecord(BaseModel):
    """Compatibility wire shape: { name, type, count, info: { x, y } }"""
    model_config = ConfigDict(extra="ignore")

    name: StrictStr = Field(..., description="Product name")
    type: StrictStr = Field(..., description="Product category")
    count: StrictInt = Field(..., description="Number of instances")
    info: Coordinates = Field(..., description="Nested coordinates")

    def to_document(self) -> Document:
        return Document(self.model_dump())

    @classmethod
    def from_document(cls, document: Mapping) -> "DatabaseRecord":
        """Validate a fetched document against the wire shape"""
        plain = document.to_dict() if isinstance(document, Document) else dict(document)
        try:
            return cls.model_validate(plain)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
            raise TypeMismatch(field, first.get("type", "valid value"), first.get("input")) from e
