"""
Unit tests for the per-test isolation state machine.
"""
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import AutoReconnect
from pymongo.results import InsertOneResult

from docharness.errors import StoreConnectionError, TeardownError
from docharness.services.isolation import FixtureState, IsolationController
from docharness.services.store import StoreHandle


class FakeSession:
    """Hands out StoreHandles over one mocked collection."""

    def __init__(self):
        self.collection_mock = MagicMock()
        self.collection_mock.name = "dados"
        self.collection_mock.database.name = "paymentDB"
        self.collection_mock.insert_one.return_value = InsertOneResult(ObjectId(), True)
        self.requested = []

    def collection(self, database=None, collection=None, on_write=None):
        self.requested.append((database, collection))
        return StoreHandle(self.collection_mock, on_write=on_write)


class TestIsolationController:
    """IDLE -> READY -> DIRTY -> IDLE."""

    @pytest.fixture(autouse=True)
    def setup(self):
        self.session = FakeSession()
        self.controller = IsolationController(self.session, "paymentDB", "dados")

    def test_starts_idle(self):
        assert self.controller.state == FixtureState.IDLE

    def test_setup_drops_and_is_ready(self):
        """Test: setup hands out a freshly dropped collection."""
        handle = self.controller.setup()

        assert self.controller.state == FixtureState.READY
        assert handle.collection_name == "dados"
        assert self.session.requested == [("paymentDB", "dados")]
        self.session.collection_mock.drop.assert_called_once_with()

    def test_write_marks_dirty(self):
        handle = self.controller.setup()

        handle.insert_one({"name": "MongoDB"})

        assert self.controller.state == FixtureState.DIRTY

    def test_reads_keep_ready(self):
        handle = self.controller.setup()
        self.session.collection_mock.count_documents.return_value = 0

        handle.count_documents()

        assert self.controller.state == FixtureState.READY

    def test_teardown_drops_and_returns_idle(self):
        handle = self.controller.setup()
        handle.insert_one({"name": "MongoDB"})

        self.controller.teardown()

        assert self.controller.state == FixtureState.IDLE
        assert self.session.collection_mock.drop.call_count == 2

    def test_teardown_without_setup_is_noop(self):
        self.controller.teardown()

        self.session.collection_mock.drop.assert_not_called()

    def test_setup_twice_is_refused(self):
        self.controller.setup()

        with pytest.raises(RuntimeError):
            self.controller.setup()

    def test_teardown_failure_is_distinct(self):
        """Test: a failed drop at teardown raises TeardownError and still resets state."""
        self.session.collection_mock.drop.side_effect = [None, AutoReconnect("down")]
        self.controller.setup()

        with pytest.raises(TeardownError) as excinfo:
            self.controller.teardown()

        assert isinstance(excinfo.value.__cause__, StoreConnectionError)
        assert self.controller.state == FixtureState.IDLE

    def test_setup_failure_propagates_as_is(self):
        """Test: a dead store at setup is an infrastructure error, not a teardown error."""
        self.session.collection_mock.drop.side_effect = AutoReconnect("down")

        with pytest.raises(StoreConnectionError):
            self.controller.setup()
        assert self.controller.state == FixtureState.IDLE


class TestScenarioContext:
    """scenario() runs teardown on every exit path."""

    @pytest.fixture(autouse=True)
    def setup(self):
        self.session = FakeSession()
        self.controller = IsolationController(self.session)

    def test_teardown_after_success(self):
        with self.controller.scenario() as handle:
            handle.insert_one({"n": 1})

        assert self.controller.state == FixtureState.IDLE
        assert self.session.collection_mock.drop.call_count == 2

    def test_teardown_after_failed_assertion(self):
        with pytest.raises(AssertionError):
            with self.controller.scenario() as handle:
                handle.insert_one({"n": 1})
                assert False, "scenario failed"

        assert self.controller.state == FixtureState.IDLE
        assert self.session.collection_mock.drop.call_count == 2

    def test_body_error_wins_over_teardown_error(self):
        """Test: when both fail, the scenario's own failure is reported."""
        self.session.collection_mock.drop.side_effect = [None, AutoReconnect("down")]

        with pytest.raises(AssertionError):
            with self.controller.scenario():
                assert False, "scenario failed"

    def test_teardown_error_after_success(self):
        self.session.collection_mock.drop.side_effect = [None, AutoReconnect("down")]

        with pytest.raises(TeardownError):
            with self.controller.scenario():
                pass
