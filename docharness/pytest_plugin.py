"""
pytest plugin providing an isolated MongoDB instance and per-test store.

Enable it with `pytest_plugins = ("docharness.pytest_plugin",)` in a
top-level conftest.py. Fixtures:

- docharness_settings: Settings read from DOCHARNESS_* variables
- docharness_manager: InstanceManager for the session
- docharness_instance: the running instance, stopped at session end
- docharness_session: StoreSession shared by every test
- store: StoreHandle on a clean collection, dropped after each test; under
  pytest-xdist the collection name carries the worker id
"""
import logging
import os
from typing import Generator

import pytest

from docharness.config import Settings, configure_logging
from docharness.errors import InfrastructureError, TeardownError, describe
from docharness.models.instance import InstanceHandle
from docharness.services.instance_manager import InstanceManager
from docharness.services.isolation import IsolationController
from docharness.services.store import StoreHandle, StoreSession

logger = logging.getLogger(__name__)


def worker_offset() -> int:
    """Index of the pytest-xdist worker, 0 when not distributed"""
    worker = os.environ.get("PYTEST_XDIST_WORKER", "gw0")
    digits = worker.lstrip("gw")
    return int(digits) if digits.isdigit() else 0


def worker_collection_name(settings: Settings) -> str:
    """Collection the store fixture isolates on; one per pytest-xdist worker"""
    worker = os.environ.get("PYTEST_XDIST_WORKER")
    if not worker:
        return settings.collection_name
    return f"{settings.collection_name}_{worker}"


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "docharness: test uses the docharness store fixtures"
    )


@pytest.fixture(scope="session")
def docharness_settings() -> Settings:
    settings = Settings()
    configure_logging(settings)
    return settings


@pytest.fixture(scope="session")
def docharness_manager(docharness_settings: Settings) -> Generator[InstanceManager, None, None]:
    manager = InstanceManager(docharness_settings)
    try:
        yield manager
    finally:
        manager.stop_all()


@pytest.fixture(scope="session")
def docharness_instance(
    docharness_settings: Settings,
    docharness_manager: InstanceManager
) -> Generator[InstanceHandle, None, None]:
    offset = worker_offset()
    handle = docharness_manager.start_instance(
        port=docharness_settings.mongodb_port + offset,
        instance_id=f"suite-{offset}"
    )
    try:
        yield handle
    finally:
        docharness_manager.stop_instance(handle)


@pytest.fixture(scope="session")
def docharness_session(
    docharness_manager: InstanceManager,
    docharness_instance: InstanceHandle
) -> Generator[StoreSession, None, None]:
    with docharness_manager.connect(docharness_instance) as session:
        yield session


@pytest.fixture
def store(
    docharness_settings: Settings,
    docharness_session: StoreSession
) -> Generator[StoreHandle, None, None]:
    """Clean collection handle; cleared after the test whatever its outcome"""
    controller = IsolationController(
        docharness_session,
        collection_name=worker_collection_name(docharness_settings)
    )
    handle = controller.setup()
    yield handle
    controller.teardown()


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    outcome = yield
    report = outcome.get_result()
    if call.excinfo is None:
        return

    error = call.excinfo.value
    if isinstance(error, InfrastructureError):
        reason = f"INFRASTRUCTURE FAILURE during {call.when} of {item.nodeid}: {describe(error)}"
        report.longrepr = (
            f"{reason}\n"
            "The database instance or its connection is unusable; "
            "this is not a defect in the code under test."
        )
        item.session.shouldstop = reason
    elif isinstance(error, TeardownError):
        report.longrepr = (
            f"ISOLATION TEARDOWN FAILURE after {item.nodeid}: {describe(error)}\n"
            "The test body's own result is reported separately."
        )
