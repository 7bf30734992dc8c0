"""Launches a local mongod binary as a throwaway test instance."""

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict

from docharness.config import Settings
from docharness.errors import StartupError

logger = logging.getLogger(__name__)


class ProcessManager:
    """Manages mongod processes started by the harness."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.processes: Dict[str, subprocess.Popen] = {}
        self.dbpaths: Dict[str, Path] = {}
        self._owned_dbpaths: Dict[str, bool] = {}

    def _resolve_binary(self) -> str:
        binary = shutil.which(self.settings.mongod_binary)
        if binary is None:
            raise StartupError(f"mongod binary '{self.settings.mongod_binary}' not found on PATH")
        return binary

    def _make_dbpath(self, instance_id: str) -> Path:
        if self.settings.mongod_dbpath:
            path = Path(self.settings.mongod_dbpath) / instance_id
            path.mkdir(parents=True, exist_ok=True)
            self._owned_dbpaths[instance_id] = False
        else:
            path = Path(tempfile.mkdtemp(prefix=f"docharness-{instance_id}-"))
            self._owned_dbpaths[instance_id] = True
        self.dbpaths[instance_id] = path
        return path

    def log_tail(self, instance_id: str, lines: int = 20) -> str:
        """Last lines of the mongod log, for startup diagnostics."""
        path = self.dbpaths.get(instance_id)
        if path is None or not (path / "mongod.log").exists():
            return ""
        with open(path / "mongod.log", "r", errors="replace") as f:
            return "".join(f.readlines()[-lines:])

    def start_mongod(self, instance_id: str, host: str, port: int) -> subprocess.Popen:
        """Launch mongod bound to host:port.

        Args:
            instance_id: Unique identifier for the instance
            host: Loopback address to bind
            port: Port to listen on

        Returns:
            The subprocess handle

        Raises:
            StartupError: binary missing, not executable, or exited immediately
        """
        if instance_id in self.processes:
            logger.warning(f"mongod for {instance_id} already started")
            return self.processes[instance_id]

        binary = self._resolve_binary()
        dbpath = self._make_dbpath(instance_id)
        cmd = [
            binary,
            "--port", str(port),
            "--bind_ip", host,
            "--dbpath", str(dbpath),
            "--logpath", str(dbpath / "mongod.log"),
        ]

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,  # own process group
            )
        except OSError as e:
            self._discard_dbpath(instance_id)
            raise StartupError(f"Could not launch {binary}: {e}") from e

        self.processes[instance_id] = process
        logger.info(f"Started mongod (pid {process.pid}) on {host}:{port}")

        if process.poll() is not None:
            tail = self.log_tail(instance_id)
            self.stop_mongod(instance_id)
            raise StartupError(f"mongod exited with code {process.returncode} on {host}:{port}\n{tail}")

        return process

    def is_running(self, instance_id: str) -> bool:
        process = self.processes.get(instance_id)
        return process is not None and process.poll() is None

    def stop_mongod(self, instance_id: str) -> bool:
        """Terminate mongod, killing it after the grace period.

        Returns:
            True if a process was stopped, False if none was tracked
        """
        process = self.processes.pop(instance_id, None)
        if process is None:
            self._discard_dbpath(instance_id)
            return False

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=self.settings.mongod_stop_timeout_seconds)
            except subprocess.TimeoutExpired:
                logger.warning(f"mongod (pid {process.pid}) ignored SIGTERM, killing it")
                process.kill()
                process.wait()
        logger.info(f"Stopped mongod (pid {process.pid})")

        self._discard_dbpath(instance_id)
        return True

    def _discard_dbpath(self, instance_id: str):
        path = self.dbpaths.pop(instance_id, None)
        owned = self._owned_dbpaths.pop(instance_id, False)
        if path is not None and owned:
            shutil.rmtree(path, ignore_errors=True)

    def stop_all(self):
        for instance_id in list(self.processes):
            self.stop_mongod(instance_id)
