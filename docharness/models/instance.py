from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class InstanceBackend(str, Enum):
    """How the database instance is provided"""
    DOCKER = "docker"  # mongo image in a container
    PROCESS = "process"  # local mongod binary
    EXTERNAL = "external"  # already running, never started or stopped by us


class InstanceState(str, Enum):
    """Lifecycle state of an instance"""
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"
    STOPPED = "stopped"


class InstanceHandle(BaseModel):
    """A database instance started (or adopted) for a test suite"""
    instance_id: str = Field(..., description="Unique identifier for the instance")
    backend: InstanceBackend = Field(..., description="Backend providing the instance")
    host: str = Field(default="127.0.0.1", description="Loopback address the instance listens on")
    port: int = Field(..., description="Port number", ge=1024, le=65535)
    uri: str = Field(..., description="Connection string for the driver")
    state: InstanceState = Field(default=InstanceState.STARTING, description="Current lifecycle state")
    started_at: Optional[datetime] = Field(None, description="When the instance became reachable")
    container_name: Optional[str] = Field(None, description="Docker container name (docker backend)")
    pid: Optional[int] = Field(None, description="Process id (process backend)")
    error: Optional[str] = Field(None, description="Reason the instance failed to start")

    @property
    def is_running(self) -> bool:
        return self.state == InstanceState.RUNNING

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"
