"""
Boot and liveness reconciliation.

Runs at the start of every command and from the periodic trigger. When
the system boot time differs from the stored marker every registered job
is re-spawned, since a reboot kills all workers at once. When the boot
time cannot be read, or a sweep is requested, each job's recorded PID is
probed and only dead jobs are re-spawned.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from .descriptors import DescriptorStore, JobDescriptor
from .models import prune_ticks
from .registry import UNKNOWN_BOOT, BootMarker, ProcessRegistry, read_boot_timestamp, started_since

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """What a reconciliation pass did."""

    boot: str
    boot_changed: bool = False
    spawned: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class Reconciler:
    """Restores workers after a reboot or a crash."""

    def __init__(
        self,
        descriptors: DescriptorStore,
        registry: ProcessRegistry,
        boot_marker: BootMarker,
        launcher,
        boot_reader: Callable[[], str] = None,
        tick_retention_days: int = None,
    ):
        self.descriptors = descriptors
        self.registry = registry
        self.boot_marker = boot_marker
        self.launcher = launcher
        self._read_boot = boot_reader
        self.tick_retention_days = tick_retention_days

    def reconcile(self, sweep: bool = False) -> ReconcileReport:
        current = self._read_boot() if self._read_boot else read_boot_timestamp()
        report = ReconcileReport(boot=current)

        if current != UNKNOWN_BOOT and current != self.boot_marker.stored:
            logger.info(f"Boot change detected ({self.boot_marker.stored} -> {current}), restoring jobs")
            self.boot_marker.stored = current
            report.boot_changed = True
            for project_id, descriptor in self.descriptors.list_all():
                pid = self.registry.get_pid(project_id)
                # A worker started since this boot is already the restored one
                if pid is not None and self.registry.is_alive(pid) and started_since(pid, current):
                    logger.info(f"Worker for {descriptor.display_name} already running (PID {pid})")
                    continue
                self._respawn(project_id, descriptor, report)
        elif current == UNKNOWN_BOOT or sweep:
            for project_id, descriptor in self.descriptors.list_all():
                pid = self.registry.get_pid(project_id)
                if pid is not None and self.registry.is_alive(pid):
                    continue
                if pid is not None:
                    logger.warning(f"Registry inconsistency: stale PID {pid} for {descriptor.display_name}")
                self._respawn(project_id, descriptor, report)

        self._prune_history()
        return report

    def _respawn(self, project_id: str, descriptor: JobDescriptor, report: ReconcileReport):
        if not os.path.isdir(descriptor.path):
            logger.warning(f"Repository path {descriptor.path} no longer exists, skipping")
            report.skipped.append(project_id)
            return
        try:
            process = self.launcher.spawn(descriptor)
        except Exception as e:
            logger.error(f"WorkerSpawnError: could not restart {descriptor.display_name}: {e}")
            report.failed.append(project_id)
            return
        self.registry.set_live(project_id, process.pid)
        report.spawned.append(project_id)
        logger.info(f"Gitbot restarted for {descriptor.display_name}: PID {process.pid}")

    def _prune_history(self):
        if not self.tick_retention_days:
            return
        try:
            cutoff = datetime.now() - timedelta(days=self.tick_retention_days)
            deleted = prune_ticks(cutoff)
            if deleted:
                logger.debug(f"Cleaned up {deleted} old tick records")
        except Exception as e:
            logger.error(f"Error cleaning up tick history: {e}")
