from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from docharness.errors import QueryError
from docharness.models.document import Document


class WriteConcernLevel(str, Enum):
    """Write concern levels"""
    W0 = "w0"  # No acknowledgment
    W1 = "w1"  # Acknowledge from primary
    MAJORITY = "majority"  # Acknowledge from majority of voting members


class FieldFilter(BaseModel):
    """Equality predicate: field == value"""
    field: str = Field(..., min_length=1, description="Field name, dotted paths allowed")
    value: Any = Field(..., description="Value the field must equal")

    def to_query(self) -> Dict[str, Any]:
        return {self.field: self.value}


FilterLike = Union[FieldFilter, Mapping, None]


def eq(field: str, value: Any) -> FieldFilter:
    """Shorthand for FieldFilter(field=field, value=value)"""
    return FieldFilter(field=field, value=value)


def build_query(filter: FilterLike = None) -> Dict[str, Any]:
    """
    Normalize a filter into the driver's query document.

    None matches every document; a mapping is a conjunction of equalities.
    Anything else, and mappings with empty or non-string keys, raise
    QueryError before the store is contacted.
    """
    if filter is None:
        return {}
    if isinstance(filter, FieldFilter):
        return filter.to_query()
    if isinstance(filter, Document):
        return filter.to_dict()
    if isinstance(filter, Mapping):
        query = {}
        for key, value in filter.items():
            if not isinstance(key, str) or not key:
                raise QueryError(f"Malformed filter key {key!r}: keys must be non-empty strings")
            query[key] = value.to_dict() if isinstance(value, Document) else value
        return query
    raise QueryError(f"Malformed filter of type {type(filter).__name__}")


class InsertReceipt(BaseModel):
    """Outcome of a single insert"""
    inserted_id: str = Field(..., description="Identifier assigned to the document")
    acknowledged: bool = Field(default=True, description="Whether the server acknowledged the write")
    server_used: Optional[str] = Field(None, description="host:port of the server that took the write")
