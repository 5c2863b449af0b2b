"""
Process registry and boot marker.

The registry records the PID of the worker currently claiming each
project. Liveness is always an external query against the OS process
table; a recorded PID that no longer exists is stale. PID reuse after a
worker exits is an accepted race.
"""

import logging
import os
import signal
from dataclasses import dataclass

import psutil

from .store import KeyValueStore

logger = logging.getLogger(__name__)

UNKNOWN_BOOT = "unknown"
BOOT_MARKER_KEY = "boot"


@dataclass(frozen=True)
class ProcessHandle:
    """The worker PID recorded for a project."""

    project_id: str
    pid: int


def is_alive(pid: int) -> bool:
    """True if a non-zombie process with this PID exists."""
    if not pid or pid <= 0:
        return False
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists but belongs to someone else
        return True


def started_since(pid: int, boot_timestamp: str) -> bool:
    """True if the process was created at or after the given boot time."""
    if boot_timestamp == UNKNOWN_BOOT:
        return False
    try:
        return psutil.Process(pid).create_time() >= int(boot_timestamp)
    except (psutil.NoSuchProcess, psutil.AccessDenied, ValueError):
        return False


def terminate(pid: int, timeout: float = 10) -> bool:
    """Stop a worker: SIGTERM its process group, wait, then SIGKILL.

    Returns True once the process is gone. A process that has already
    exited counts as successfully stopped.
    """
    try:
        pgid = os.getpgid(pid)
    except ProcessLookupError:
        return True

    def _signal(sig):
        # Workers lead their own session; anything else only gets signalled itself
        if pgid == pid:
            os.killpg(pgid, sig)
        else:
            os.kill(pid, sig)

    try:
        _signal(signal.SIGTERM)
    except ProcessLookupError:
        return True

    try:
        proc = psutil.Process(pid)
        proc.wait(timeout=timeout)
        return True
    except psutil.NoSuchProcess:
        return True
    except psutil.TimeoutExpired:
        logger.warning(f"Worker {pid} did not stop gracefully, forcing kill")

    try:
        _signal(signal.SIGKILL)
        psutil.Process(pid).wait(timeout=5)
    except (ProcessLookupError, psutil.NoSuchProcess):
        return True
    except psutil.TimeoutExpired:
        logger.error(f"Worker {pid} survived SIGKILL")
        return False
    return True


def read_boot_timestamp() -> str:
    """System boot time in whole seconds, or UNKNOWN_BOOT."""
    try:
        return str(int(round(psutil.boot_time())))
    except Exception as e:
        logger.debug(f"Boot time unavailable: {e}")
        return UNKNOWN_BOOT


class ProcessRegistry:
    """Maps project identities to the PID of their live worker."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    def set_live(self, project_id: str, pid: int):
        self._store.put(project_id, f"{pid}\n")

    def get_pid(self, project_id: str) -> int | None:
        raw = self._store.get(project_id)
        if raw is None:
            return None
        try:
            return int(raw.strip())
        except ValueError:
            logger.warning(f"Registry inconsistency: unreadable PID record for {project_id}")
            return None

    def get_handle(self, project_id: str) -> ProcessHandle | None:
        pid = self.get_pid(project_id)
        return ProcessHandle(project_id, pid) if pid is not None else None

    def is_alive(self, pid: int) -> bool:
        return is_alive(pid)

    def live_pid(self, project_id: str) -> int | None:
        """The recorded PID if its process is alive, else None."""
        pid = self.get_pid(project_id)
        if pid is not None and self.is_alive(pid):
            return pid
        return None

    def clear(self, project_id: str):
        self._store.delete(project_id)

    def release(self, project_id: str, pid: int) -> bool:
        """Clear the handle only if it still names pid."""
        if self.get_pid(project_id) != pid:
            return False
        self.clear(project_id)
        return True


class BootMarker:
    """The single, machine-wide record of the last observed boot time."""

    def __init__(self, store: KeyValueStore, key: str = BOOT_MARKER_KEY):
        self._store = store
        self._key = key

    @property
    def stored(self) -> str | None:
        raw = self._store.get(self._key)
        return raw.strip() if raw is not None else None

    @stored.setter
    def stored(self, value: str):
        self._store.put(self._key, f"{value}\n")
