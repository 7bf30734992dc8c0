import logging
from typing import Dict, Optional

import docker
from docker.models.containers import Container

from docharness.config import Settings
from docharness.errors import StartupError

logger = logging.getLogger(__name__)


class DockerManager:
    """Manages Docker containers for MongoDB test instances"""

    def __init__(self, settings: Settings, client: Optional[docker.DockerClient] = None):
        """
        Initialize Docker client

        Raises:
            StartupError: the Docker daemon is not reachable
        """
        self.settings = settings
        try:
            self.client = client or docker.from_env()
            self.client.ping()
            logger.info("Docker client initialized successfully")
        except docker.errors.DockerException as e:
            logger.error(f"Failed to initialize Docker client: {e}")
            raise StartupError(f"Docker daemon is not available: {e}") from e

        self.containers: Dict[str, Container] = {}

    def _get_container_name(self, instance_id: str) -> str:
        """Generate container name from instance ID"""
        return f"{self.settings.docker_container_prefix}-{instance_id}"

    def _remove_stale_container(self, container_name: str):
        """Remove a leftover container with the same name from a crashed run"""
        try:
            stale = self.client.containers.get(container_name)
        except docker.errors.NotFound:
            return
        logger.warning(f"Removing stale container {container_name}")
        stale.remove(force=True)

    def create_mongod_container(self, instance_id: str, host: str, port: int) -> Container:
        """
        Create and start a standalone MongoDB container

        Args:
            instance_id: Unique identifier for the instance
            host: Host address the port is published on (loopback)
            port: External port to expose

        Returns:
            Container: The created Docker container

        Raises:
            StartupError: the image is unavailable or the port cannot be bound
        """
        container_name = self._get_container_name(instance_id)

        if instance_id in self.containers:
            logger.warning(f"Container {container_name} already exists")
            return self.containers[instance_id]

        try:
            self._remove_stale_container(container_name)

            container = self.client.containers.run(
                image=f"mongo:{self.settings.mongodb_version}",
                name=container_name,
                command="mongod --bind_ip_all --port 27017",
                ports={'27017/tcp': (host, port)},
                labels={"docharness.instance": instance_id},
                mem_limit=self.settings.docker_memory_limit,
                detach=True,
                remove=False
            )

            self.containers[instance_id] = container
            logger.info(f"Created container {container_name} on {host}:{port}")

            return container

        except docker.errors.ImageNotFound as e:
            logger.error(f"Image mongo:{self.settings.mongodb_version} is not available: {e}")
            raise StartupError(f"MongoDB image unavailable: {e}") from e
        except docker.errors.DockerException as e:
            logger.error(f"Failed to create container {container_name}: {e}")
            raise StartupError(f"Could not start container {container_name}: {e}") from e

    def remove_container(self, instance_id: str) -> bool:
        """
        Stop and remove a MongoDB container

        Returns:
            bool: True if a container was removed, False if there was none
        """
        container_name = self._get_container_name(instance_id)

        try:
            container = self.containers.pop(instance_id, None)
            if container is None:
                try:
                    container = self.client.containers.get(container_name)
                except docker.errors.NotFound:
                    logger.debug(f"Container {container_name} not found, nothing to remove")
                    return False

            container.remove(force=True)
            logger.info(f"Removed container {container_name}")
            return True

        except docker.errors.DockerException as e:
            logger.error(f"Failed to remove container {container_name}: {e}")
            return False

    def is_running(self, instance_id: str) -> bool:
        container = self.containers.get(instance_id)
        if container is None:
            return False
        try:
            container.reload()
        except docker.errors.DockerException as e:
            logger.debug(f"Could not refresh container state for {instance_id}: {e}")
            return False
        return container.status == "running"

    def get_container_logs(self, instance_id: str, tail: int = 50) -> str:
        """Get logs from a container"""
        container_name = self._get_container_name(instance_id)
        try:
            container = self.containers.get(instance_id) or self.client.containers.get(container_name)
            # logs returns bytes, decode to string
            return container.logs(tail=tail).decode('utf-8', errors='replace')
        except docker.errors.DockerException as e:
            logger.error(f"Failed to get logs for {container_name}: {e}")
            return f"Error retrieving logs: {str(e)}"
