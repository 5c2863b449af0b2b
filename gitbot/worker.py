"""
Detached worker processes.

A worker is an independent OS process, started in its own session so it
outlives the command that launched it. It ticks forever: enter the
project directory, run the action, record the outcome, sleep. Nothing
that happens inside a tick ends the loop; only a signal does.
"""

import logging
import os
import signal
import subprocess
import sys
import time
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Callable

from .actions import GitAction
from .config import Config, config
from .descriptors import JobDescriptor
from .errors import ActionError, ProjectEnvironmentError
from .models import initialize_db, record_tick
from .registry import ProcessRegistry
from .store import FileStore

logger = logging.getLogger(__name__)


class Worker:
    """The tick loop for one project."""

    def __init__(
        self,
        descriptor: JobDescriptor,
        action,
        registry: ProcessRegistry = None,
        sleep: Callable[[float], None] = time.sleep,
        record: Callable = record_tick,
    ):
        self.descriptor = descriptor
        self.action = action
        self.registry = registry
        self._sleep = sleep
        self._record = record
        self.ticks = 0
        self.failures = 0

    def tick(self) -> bool:
        """Run one tick. Returns True on success; never raises."""
        d = self.descriptor
        started_at = datetime.now()
        self.ticks += 1

        try:
            try:
                os.chdir(d.path)
            except OSError as e:
                raise ProjectEnvironmentError(f"Cannot access repository path {d.path}: {e}") from e
            message = self.action.run(d.path)
            success = True
            logger.info(f"[{d.display_name}] {message}")
        except ProjectEnvironmentError as e:
            success, message = False, str(e)
            logger.error(f"[{d.display_name}] ProjectEnvironmentError: {e}")
        except ActionError as e:
            success, message = False, str(e)
            logger.error(f"[{d.display_name}] ActionError: {e}")
        except Exception as e:
            success, message = False, f"{type(e).__name__}: {e}"
            logger.exception(f"[{d.display_name}] Unexpected error in tick")

        if not success:
            self.failures += 1

        try:
            self._record(d.project_id, d.path, started_at, success, message)
        except Exception as e:
            logger.error(f"[{d.display_name}] Could not record tick: {e}")

        return success

    def run(self, max_ticks: int = None):
        """Tick until signalled. max_ticks bounds the loop for tests."""
        d = self.descriptor
        logger.info(f"Started monitoring {d.path} with interval {d.interval_seconds}s")
        while max_ticks is None or self.ticks < max_ticks:
            self.tick()
            self._sleep(d.interval_seconds)

    def handle_stop(self, signum, frame):
        """Release our registry entry and exit."""
        if self.registry is not None:
            try:
                self.registry.release(self.descriptor.project_id, os.getpid())
            except Exception as e:
                logger.warning(f"Could not release registry entry: {e}")
        logger.info(f"Gitbot stopped ({signal.Signals(signum).name})")
        sys.exit(0)

    def install_signal_handlers(self):
        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, self.handle_stop)


def configure_worker_logging(log_path, cfg: Config = config):
    """Send this process's log records to the project's log stream."""
    handler = RotatingFileHandler(
        log_path,
        maxBytes=cfg.log_max_bytes,
        backupCount=cfg.log_backup_count,
    )
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.INFO)


class WorkerLauncher:
    """Spawns worker processes detached from the caller's session."""

    def __init__(self, cfg: Config = config, python: str = sys.executable):
        self.config = cfg
        self.python = python

    def command(self, descriptor: JobDescriptor) -> list[str]:
        cmd = [
            self.python, "-m", "gitbot", "worker",
            # Values joined to their flags so a leading "-" is not read as an option
            f"--path={descriptor.path}",
            f"--interval={descriptor.interval_seconds}",
            f"--name={descriptor.display_name}",
        ]
        if descriptor.push:
            cmd.append("--push")
        return cmd

    def spawn(self, descriptor: JobDescriptor) -> subprocess.Popen:
        output_path = self.config.job_output(descriptor.project_id)
        env = os.environ.copy()
        env["GITBOT_HOME"] = str(self.config.data_dir)

        with open(output_path, "a") as output_file:
            process = subprocess.Popen(
                self.command(descriptor),
                stdin=subprocess.DEVNULL,
                stdout=output_file,
                stderr=output_file,
                cwd=descriptor.path,
                env=env,
                close_fds=True,
                start_new_session=True,  # Outlive the invoking session
            )
        logger.info(f"Spawned worker for {descriptor.display_name} with PID {process.pid}")
        return process


def serve(descriptor: JobDescriptor, cfg: Config = config):
    """Entry point of a spawned worker process. Does not return."""
    configure_worker_logging(cfg.job_log(descriptor.project_id), cfg)
    try:
        initialize_db(cfg.db_path)
    except Exception as e:
        logger.error(f"Tick history unavailable: {e}")

    worker = Worker(
        descriptor,
        GitAction(push=descriptor.push),
        registry=ProcessRegistry(FileStore(cfg.pids_dir)),
    )
    worker.install_signal_handlers()
    worker.run()
