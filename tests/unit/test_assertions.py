"""
Unit tests for document assertion helpers.
"""
from unittest.mock import MagicMock

import pytest
from bson import ObjectId

from docharness.assertions import (
    assert_absent,
    assert_count,
    assert_document_matches,
    document_differences,
)
from docharness.models.document import DatabaseRecord, Document
from docharness.services.store import StoreHandle

EXPECTED = {"name": "MongoDB", "type": "database", "count": 1, "info": {"x": 203, "y": 102}}


class TestDocumentDifferences:

    def test_identical_ignoring_id(self):
        actual = Document(EXPECTED, _id=ObjectId())

        assert document_differences(actual, EXPECTED) == []

    def test_record_as_expected(self):
        record = DatabaseRecord(**EXPECTED)

        assert document_differences(Document(EXPECTED), record) == []

    def test_nested_value_mismatch(self):
        actual = Document(EXPECTED, info={"x": 203, "y": 999})

        assert document_differences(actual, EXPECTED) == ["info.y: expected 102, got 999"]

    def test_type_mismatch_is_reported(self):
        actual = Document(EXPECTED, count="1")

        differences = document_differences(actual, EXPECTED)

        assert len(differences) == 1
        assert differences[0].startswith("count: expected 1 (int), got '1' (str)")

    def test_bool_is_not_one(self):
        actual = Document(EXPECTED, count=True)

        assert len(document_differences(actual, EXPECTED)) == 1

    def test_missing_and_extra_fields(self):
        actual = Document({k: v for k, v in EXPECTED.items() if k != "type"}, extra=1)

        assert document_differences(actual, EXPECTED) == [
            "extra: unexpected field with value 1",
            "type: expected 'database', field missing",
        ]


class TestAssertHelpers:

    def test_matches(self):
        assert_document_matches(Document(EXPECTED), EXPECTED)

    def test_mismatch_message_lists_fields(self):
        with pytest.raises(AssertionError) as excinfo:
            assert_document_matches(Document(EXPECTED, name="PostgreSQL"), EXPECTED)

        assert "name: expected 'MongoDB', got 'PostgreSQL'" in str(excinfo.value)

    def test_absent_document_fails_match(self):
        with pytest.raises(AssertionError) as excinfo:
            assert_document_matches(None, EXPECTED)

        assert "got no document" in str(excinfo.value)

    def test_assert_absent(self):
        assert_absent(None)
        with pytest.raises(AssertionError):
            assert_absent(Document(EXPECTED))

    def test_assert_count(self):
        collection = MagicMock()
        collection.count_documents.return_value = 2
        handle = StoreHandle(collection)

        assert_count(handle, 2)
        with pytest.raises(AssertionError) as excinfo:
            assert_count(handle, 1, {"name": "MongoDB"})

        assert "expected 1 document(s)" in str(excinfo.value)
        assert "got 2" in str(excinfo.value)
