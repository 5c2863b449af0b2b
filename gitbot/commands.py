"""
Start, stop, status and restart for the project in a given directory.

The Supervisor wires the descriptor store, process registry, boot marker,
worker launcher and trigger installer together. Each command is a short,
run-to-completion operation against the filesystem-backed stores.
"""

import logging
import os
import re
import time
from dataclasses import dataclass
from enum import Enum

from .actions import GitAction
from .config import Config, config
from .descriptors import DescriptorStore, JobDescriptor
from .errors import AlreadyRunningError, ConfigurationError, WorkerSpawnError
from .identity import absolute_path, project_identity
from .models import initialize_db, last_tick
from .reconciler import Reconciler, ReconcileReport
from .registry import BootMarker, ProcessRegistry, terminate
from .store import FileStore, KeyValueStore
from .triggers import default_backends, install_periodic_trigger, reconcile_command
from .worker import WorkerLauncher

logger = logging.getLogger(__name__)

TRIGGER_KEY = "trigger"
INTERVAL_PATTERN = re.compile(r"^\s*[0-9]+\s*$")


class JobState(Enum):
    ABSENT = "absent"
    RUNNING = "running"
    DEAD = "dead"


@dataclass
class StartResult:
    descriptor: JobDescriptor
    pid: int
    setup_steps: list[str]
    trigger: str | None = None


@dataclass
class StopResult:
    project_id: str
    was_running: bool
    pid: int | None = None


@dataclass
class StatusReport:
    project_id: str
    path: str
    state: JobState
    descriptor: JobDescriptor | None = None
    pid: int | None = None
    last_tick: dict | None = None

    @property
    def running(self) -> bool:
        return self.state is JobState.RUNNING


def parse_interval(value) -> int:
    """Validate a user-supplied interval: a positive whole number of seconds."""
    if isinstance(value, bool) or value is None:
        raise ConfigurationError("Invalid interval. Please provide a positive number of seconds.")
    if isinstance(value, int):
        interval = value
    elif isinstance(value, str) and INTERVAL_PATTERN.match(value):
        interval = int(value)
    else:
        raise ConfigurationError("Invalid interval. Please provide a positive number of seconds.")
    if interval < 1:
        raise ConfigurationError("Invalid interval. Please provide a positive number of seconds.")
    return interval


class Supervisor:
    """Command surface over the job stores."""

    def __init__(
        self,
        descriptors: DescriptorStore,
        registry: ProcessRegistry,
        meta: KeyValueStore,
        launcher,
        reconciler: Reconciler,
        action_factory=GitAction,
        trigger_backends=None,
        cfg: Config = config,
    ):
        self.descriptors = descriptors
        self.registry = registry
        self.meta = meta
        self.launcher = launcher
        self.reconciler = reconciler
        self.action_factory = action_factory
        self.trigger_backends = trigger_backends if trigger_backends is not None else []
        self.config = cfg

    @classmethod
    def from_config(cls, cfg: Config = config) -> "Supervisor":
        """Build a supervisor over the on-disk stores in cfg.data_dir."""
        initialize_db(cfg.db_path)
        descriptors = DescriptorStore(FileStore(cfg.jobs_dir))
        registry = ProcessRegistry(FileStore(cfg.pids_dir))
        meta = FileStore(cfg.data_dir)
        launcher = WorkerLauncher(cfg)
        reconciler = Reconciler(
            descriptors,
            registry,
            BootMarker(meta),
            launcher,
            tick_retention_days=cfg.tick_retention_days,
        )
        return cls(
            descriptors,
            registry,
            meta,
            launcher,
            reconciler,
            trigger_backends=default_backends(cfg),
            cfg=cfg,
        )

    def reconcile(self, sweep: bool = False) -> ReconcileReport:
        return self.reconciler.reconcile(sweep=sweep)

    def _live_pid(self, project_id: str) -> int | None:
        """Live PID for the project; a stale handle is cleared on the way."""
        pid = self.registry.get_pid(project_id)
        if pid is None:
            return None
        if self.registry.is_alive(pid):
            return pid
        logger.warning(f"Registry inconsistency: removing stale PID {pid} for {project_id}")
        self.registry.clear(project_id)
        return None

    def _spawn(self, descriptor: JobDescriptor) -> int:
        try:
            process = self.launcher.spawn(descriptor)
        except OSError as e:
            raise WorkerSpawnError(f"Could not start worker: {e}") from e
        self.registry.set_live(descriptor.project_id, process.pid)

        if self.config.spawn_grace_seconds:
            time.sleep(self.config.spawn_grace_seconds)
        if process.poll() is not None:
            self.registry.clear(descriptor.project_id)
            raise WorkerSpawnError(
                f"Worker exited during startup (code {process.returncode}); "
                f"see {self.config.job_output(descriptor.project_id)}"
            )
        return process.pid

    def start(self, path, interval, push: bool = False, name: str = None) -> StartResult:
        interval = parse_interval(interval)
        path = absolute_path(path)
        project_id = project_identity(path)

        pid = self._live_pid(project_id)
        if pid is not None:
            raise AlreadyRunningError(project_id, pid)

        if not os.path.isdir(path):
            raise ConfigurationError(f"Project path {path} is not a directory")

        descriptor = JobDescriptor.for_path(path, interval, push=push, display_name=name)
        steps = self.action_factory(push=push).setup(path)
        self.descriptors.put(project_id, descriptor)
        try:
            pid = self._spawn(descriptor)
        except WorkerSpawnError:
            self.descriptors.delete(project_id)
            raise

        trigger = self.ensure_trigger()

        logger.info(
            f"Gitbot started: {descriptor.display_name} at {path}, "
            f"interval {interval}s, push {push}, PID {pid}"
        )
        return StartResult(descriptor=descriptor, pid=pid, setup_steps=steps, trigger=trigger)

    def ensure_trigger(self) -> str | None:
        """Install the periodic trigger once per machine; returns the backend name."""
        installed = self.meta.get(TRIGGER_KEY)
        if installed is not None:
            return installed.strip()
        backend = install_periodic_trigger(self.trigger_backends, reconcile_command())
        if backend:
            self.meta.put(TRIGGER_KEY, f"{backend}\n")
        return backend

    def stop(self, path) -> StopResult:
        path = absolute_path(path)
        project_id = project_identity(path)
        pid = self.registry.get_pid(project_id)

        if pid is None or not self.registry.is_alive(pid):
            # Nothing live; drop leftovers so the reconciler will not revive the job
            if pid is not None:
                self.registry.clear(project_id)
            self.descriptors.delete(project_id)
            return StopResult(project_id=project_id, was_running=False, pid=pid)

        if not terminate(pid, timeout=self.config.stop_timeout):
            logger.error(f"Worker {pid} for {path} may still be running")
        self.registry.clear(project_id)
        self.descriptors.delete(project_id)
        logger.info(f"Gitbot stopped (PID: {pid})")
        return StopResult(project_id=project_id, was_running=True, pid=pid)

    def status(self, path) -> StatusReport:
        path = absolute_path(path)
        project_id = project_identity(path)
        descriptor = self.descriptors.get(project_id)
        had_handle = self.registry.get_pid(project_id) is not None
        pid = self._live_pid(project_id)

        if pid is not None:
            state = JobState.RUNNING
        elif descriptor is not None or had_handle:
            state = JobState.DEAD
        else:
            state = JobState.ABSENT

        tick = None
        try:
            record = last_tick(project_id)
            tick = record.to_dict() if record else None
        except Exception as e:
            logger.debug(f"Tick history unavailable: {e}")

        return StatusReport(
            project_id=project_id,
            path=path,
            state=state,
            descriptor=descriptor,
            pid=pid,
            last_tick=tick,
        )

    def restart(self, path) -> StartResult:
        path = absolute_path(path)
        project_id = project_identity(path)
        descriptor = self.descriptors.get(project_id)
        if descriptor is None:
            raise ConfigurationError("No gitbot job is configured for this directory")
        if not os.path.isdir(descriptor.path):
            raise ConfigurationError(f"Repository path {descriptor.path} no longer exists")

        old_pid = self._live_pid(project_id)
        if old_pid is not None:
            logger.info(f"Stopping worker {old_pid} before restart")
            terminate(old_pid, timeout=self.config.stop_timeout)
            self.registry.clear(project_id)

        pid = self._spawn(descriptor)
        logger.info(f"Gitbot restarted: {descriptor.display_name}, PID {pid}")
        return StartResult(descriptor=descriptor, pid=pid, setup_steps=[])
