"""
Pytest configuration for integration tests
"""
import logging
import time
from typing import Callable

import docker
import pytest

from docharness.config import Settings
from docharness.models.document import DatabaseRecord
from docharness.models.instance import InstanceBackend

logger = logging.getLogger(__name__)


def _docker_available() -> bool:
    try:
        client = docker.from_env()
        try:
            client.ping()
        finally:
            client.close()
    except docker.errors.DockerException:
        return False
    return True


@pytest.hookimpl(tryfirst=True)
def pytest_collection_modifyitems(config, items):
    """Mark integration tests; skip them when the docker backend is selected but Docker is down."""
    integration_items = [item for item in items if "integration" in item.nodeid]
    for item in integration_items:
        item.add_marker(pytest.mark.integration)

    if not integration_items or Settings().backend != InstanceBackend.DOCKER or _docker_available():
        return
    skip = pytest.mark.skip(reason="Docker daemon not available for the docker backend")
    for item in integration_items:
        item.add_marker(skip)


@pytest.fixture
def make_record() -> Callable[..., DatabaseRecord]:
    """Factory for documents in the { name, type, count, info: { x, y } } shape."""
    def factory(name: str = "MongoDB", type: str = "database", count: int = 1,
                x: int = 203, y: int = 102) -> DatabaseRecord:
        return DatabaseRecord(name=name, type=type, count=count, info={"x": x, "y": y})
    return factory


def wait_for_condition(condition_fn, timeout=30, interval=1, description="condition"):
    """Wait for a condition to be true."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            if condition_fn():
                return True
        except Exception as e:
            logger.debug(f"Waiting for {description}: {e}")
        time.sleep(interval)
    raise TimeoutError(f"Timeout waiting for {description} after {timeout}s")
