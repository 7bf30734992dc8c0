import logging
from typing import Optional

from pydantic_settings import BaseSettings

from docharness.models.instance import InstanceBackend
from docharness.models.query import WriteConcernLevel


class Settings(BaseSettings):
    """Harness configuration, read from DOCHARNESS_* environment variables"""

    # Application
    app_name: str = "docharness"
    app_version: str = "1.0.0"
    debug: bool = False

    # Instance
    backend: InstanceBackend = InstanceBackend.DOCKER
    mongodb_version: str = "7.0"
    mongodb_host: str = "127.0.0.1"
    mongodb_port: int = 27117  # reserved for tests, away from a local 27017
    mongodb_uri: Optional[str] = None  # external backend only
    startup_timeout_seconds: float = 30.0
    startup_poll_interval_seconds: float = 0.5

    # Docker
    docker_container_prefix: str = "docharness"
    docker_memory_limit: str = "512m"

    # Local mongod
    mongod_binary: str = "mongod"
    mongod_dbpath: Optional[str] = None  # temporary directory when unset
    mongod_stop_timeout_seconds: float = 10.0

    # Client
    server_selection_timeout_ms: int = 5000
    connect_timeout_ms: int = 5000
    username: Optional[str] = None
    password: Optional[str] = None
    auth_source: str = "admin"

    # Data set
    database_name: str = "paymentDB"
    collection_name: str = "dados"

    # Durability
    write_concern: WriteConcernLevel = WriteConcernLevel.MAJORITY
    write_concern_journal: bool = True

    class Config:
        env_file = ".env"
        env_prefix = "DOCHARNESS_"
        case_sensitive = False


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
