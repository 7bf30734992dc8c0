import logging
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, Optional

from docharness.errors import HarnessError, TeardownError
from docharness.services.store import StoreHandle, StoreSession

logger = logging.getLogger(__name__)


class FixtureState(str, Enum):
    """Per-test isolation state"""
    IDLE = "idle"
    READY = "ready"  # clean collection handed to the test
    DIRTY = "dirty"  # the test has written to the store


class IsolationController:
    """
    Hands each test a clean collection and clears it afterwards.

    IDLE -> READY on setup, READY -> DIRTY on the first successful write,
    back to IDLE on teardown. Teardown drops the collection whatever the
    test's outcome, so no test observes another test's documents.
    """

    def __init__(self, session: StoreSession, database_name: Optional[str] = None,
                 collection_name: Optional[str] = None):
        self.session = session
        self.database_name = database_name
        self.collection_name = collection_name
        self.state = FixtureState.IDLE
        self._handle: Optional[StoreHandle] = None

    def _mark_dirty(self):
        if self.state == FixtureState.READY:
            self.state = FixtureState.DIRTY

    def setup(self) -> StoreHandle:
        if self.state != FixtureState.IDLE:
            raise RuntimeError(f"setup() called while {self.state.value}; teardown() first")

        handle = self.session.collection(
            self.database_name,
            self.collection_name,
            on_write=self._mark_dirty
        )
        # leftovers from an aborted earlier run
        handle.drop()

        self._handle = handle
        self.state = FixtureState.READY
        logger.debug(f"Isolation ready on {handle}")
        return handle

    def teardown(self):
        """
        Drop the test's collection.

        Raises:
            TeardownError: the drop failed; state is IDLE regardless
        """
        handle = self._handle
        self._handle = None
        was = self.state
        self.state = FixtureState.IDLE
        if handle is None:
            return

        try:
            handle.drop()
        except HarnessError as e:
            logger.error(f"Teardown of {handle} failed after a {was.value} test: {e}")
            raise TeardownError(f"Could not clear {handle} after the test: {e}") from e
        logger.debug(f"Isolation cleared {handle} ({was.value})")

    @contextmanager
    def scenario(self) -> Iterator[StoreHandle]:
        """
        Run a block against a clean collection.

        When both the block and the teardown fail, the block's error is the
        one raised and the teardown failure is logged.
        """
        handle = self.setup()
        try:
            yield handle
        except BaseException:
            try:
                self.teardown()
            except TeardownError as e:
                logger.error(f"Teardown also failed: {e}")
            raise
        self.teardown()
