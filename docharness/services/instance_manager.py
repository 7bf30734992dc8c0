import logging
import socket
import time
import uuid
from datetime import datetime
from typing import Dict, Optional

from pymongo import MongoClient
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from docharness.config import Settings
from docharness.errors import StartupError, StoreConnectionError
from docharness.models.instance import InstanceBackend, InstanceHandle, InstanceState
from docharness.services.store import StoreSession

logger = logging.getLogger(__name__)


def port_in_use(host: str, port: int) -> bool:
    """True when something already listens on host:port"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.settimeout(0.5)
        return sock.connect_ex((host, port)) == 0


class InstanceManager:
    """Starts, tracks and stops the database instances of a test suite"""

    def __init__(self, settings: Settings, docker_manager=None, process_manager=None):
        """
        Initialize instance manager

        Backend managers are created on first use, so the docker SDK is only
        contacted when the docker backend is actually selected.
        """
        self.settings = settings
        self._docker_manager = docker_manager
        self._process_manager = process_manager
        self.instances: Dict[str, InstanceHandle] = {}

    @property
    def docker_manager(self):
        if self._docker_manager is None:
            from docharness.services.docker_manager import DockerManager
            self._docker_manager = DockerManager(self.settings)
        return self._docker_manager

    @property
    def process_manager(self):
        if self._process_manager is None:
            from docharness.services.process_manager import ProcessManager
            self._process_manager = ProcessManager(self.settings)
        return self._process_manager

    def _new_handle(self, port: Optional[int], instance_id: Optional[str]) -> InstanceHandle:
        backend = self.settings.backend
        instance_id = instance_id or f"mongo-{uuid.uuid4().hex[:8]}"
        host = self.settings.mongodb_host
        port = port or self.settings.mongodb_port

        if backend == InstanceBackend.EXTERNAL and self.settings.mongodb_uri:
            uri = self.settings.mongodb_uri
        else:
            uri = f"mongodb://{host}:{port}/?directConnection=true"

        return InstanceHandle(
            instance_id=instance_id,
            backend=backend,
            host=host,
            port=port,
            uri=uri
        )

    def start_instance(self, port: Optional[int] = None, instance_id: Optional[str] = None) -> InstanceHandle:
        """
        Start an isolated database instance

        Args:
            port: Port to bind; the configured test port when omitted
            instance_id: Identifier to use instead of a generated one

        Returns:
            InstanceHandle: handle of the running instance

        Raises:
            StartupError: the instance could not be launched, bound or reached.
                Whatever was launched has been cleaned up and the handle,
                available as the error's `handle`, is marked failed. A port
                outside 1024-65535 is rejected before any handle exists.
        """
        try:
            handle = self._new_handle(port, instance_id)
        except ValidationError as e:
            logger.error(f"Cannot start an instance on port {port}: {e}")
            raise StartupError(f"Cannot bind an instance on port {port}: port must be in 1024-65535") from e
        self.instances[handle.instance_id] = handle
        logger.info(f"Starting {handle.backend.value} instance '{handle.instance_id}' on {handle.address}")

        try:
            if handle.backend == InstanceBackend.DOCKER:
                self._ensure_port_free(handle)
                container = self.docker_manager.create_mongod_container(
                    handle.instance_id, handle.host, handle.port
                )
                handle.container_name = container.name
            elif handle.backend == InstanceBackend.PROCESS:
                self._ensure_port_free(handle)
                process = self.process_manager.start_mongod(
                    handle.instance_id, handle.host, handle.port
                )
                handle.pid = process.pid

            self.wait_until_ready(handle)

        except StartupError as e:
            self._fail(handle, e)
            raise StartupError(str(e), handle=handle) from e
        except Exception as e:
            self._fail(handle, e)
            raise StartupError(f"Unexpected failure starting '{handle.instance_id}': {e}", handle=handle) from e

        handle.state = InstanceState.RUNNING
        handle.started_at = datetime.utcnow()
        logger.info(f"Instance '{handle.instance_id}' is ready at {handle.uri}")
        return handle

    def _ensure_port_free(self, handle: InstanceHandle):
        if port_in_use(handle.host, handle.port):
            raise StartupError(f"Port {handle.address} is already in use")

    def _fail(self, handle: InstanceHandle, error: Exception):
        logger.error(f"Instance '{handle.instance_id}' failed to start: {error}")
        handle.error = str(error)
        self._release(handle)
        handle.state = InstanceState.FAILED

    def wait_until_ready(self, handle: InstanceHandle):
        """
        Poll the instance with ping until it answers

        Raises:
            StartupError: no answer within startup_timeout_seconds, or the
                launched process/container died while waiting
        """
        timeout = self.settings.startup_timeout_seconds
        interval = self.settings.startup_poll_interval_seconds
        start = time.time()
        last_error = None

        while time.time() - start < timeout:
            if not self._backend_alive(handle):
                raise StartupError(
                    f"Instance '{handle.instance_id}' exited before accepting connections\n"
                    f"{self._backend_logs(handle)}"
                )
            try:
                client = MongoClient(handle.uri, serverSelectionTimeoutMS=1000)
                try:
                    client.admin.command('ping')
                finally:
                    client.close()
                return
            except PyMongoError as e:
                last_error = e
                logger.debug(f"Waiting for '{handle.instance_id}': {e}")
            time.sleep(interval)

        raise StartupError(
            f"Instance '{handle.instance_id}' did not answer ping within {timeout}s: {last_error}"
        )

    def _backend_alive(self, handle: InstanceHandle) -> bool:
        if handle.backend == InstanceBackend.DOCKER:
            return self.docker_manager.is_running(handle.instance_id)
        if handle.backend == InstanceBackend.PROCESS:
            return self.process_manager.is_running(handle.instance_id)
        return True

    def _backend_logs(self, handle: InstanceHandle) -> str:
        if handle.backend == InstanceBackend.DOCKER:
            return self.docker_manager.get_container_logs(handle.instance_id)
        if handle.backend == InstanceBackend.PROCESS:
            return self.process_manager.log_tail(handle.instance_id)
        return ""

    def _release(self, handle: InstanceHandle):
        if handle.backend == InstanceBackend.DOCKER and self._docker_manager is not None:
            self._docker_manager.remove_container(handle.instance_id)
        elif handle.backend == InstanceBackend.PROCESS and self._process_manager is not None:
            self._process_manager.stop_mongod(handle.instance_id)

    def stop_instance(self, handle: InstanceHandle):
        """
        Release everything held for an instance

        A no-op on a stopped handle and safe on a failed one. The external
        backend's server is never touched.
        """
        if handle.state == InstanceState.STOPPED:
            logger.debug(f"Instance '{handle.instance_id}' already stopped")
            return

        logger.info(f"Stopping instance '{handle.instance_id}'")
        self._release(handle)
        handle.state = InstanceState.STOPPED
        self.instances.pop(handle.instance_id, None)

    def stop_all(self):
        for handle in list(self.instances.values()):
            self.stop_instance(handle)
        if self._process_manager is not None:
            self._process_manager.stop_all()

    def connect(self, handle: InstanceHandle) -> StoreSession:
        """
        Open the suite-wide session on a running instance

        Raises:
            StartupError: the handle is not running
            StoreConnectionError: the server does not answer
        """
        if not handle.is_running:
            raise StartupError(f"Instance '{handle.instance_id}' is {handle.state.value}, not running")
        session = StoreSession(handle.uri, self.settings)
        try:
            session.ping()
        except StoreConnectionError:
            session.close()
            raise
        return session
