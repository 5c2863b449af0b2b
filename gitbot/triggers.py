"""
Periodic trigger installation.

Registers an OS-level trigger that runs `gitbot reconcile` shortly after
boot and hourly thereafter, so workers come back without anyone typing a
command. Backends are tried in order and the first one that installs
successfully wins: a systemd user timer, then the user's crontab.
"""

import logging
import shlex
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from croniter import croniter

from .config import Config, config

logger = logging.getLogger(__name__)

UNIT_NAME = "gitbot-reconcile"
CRON_TAG = "# gitbot"


def reconcile_command() -> list[str]:
    return [sys.executable, "-m", "gitbot", "reconcile"]


def _run(args: list[str], input: str = None) -> subprocess.CompletedProcess:
    return subprocess.run(args, input=input, capture_output=True, text=True)


class TriggerBackend(ABC):
    """One way of getting the reconciler invoked periodically."""

    name = "base"

    def __init__(self, cfg: Config = config, runner: Callable = _run):
        self.config = cfg
        self._run = runner

    @abstractmethod
    def is_available(self) -> bool:
        """Whether this mechanism can be used on the current machine."""

    @abstractmethod
    def install(self, command: list[str]) -> bool:
        """Register command to run after boot and periodically. Returns success."""


class SystemdTimerBackend(TriggerBackend):
    """A systemd --user timer with OnBootSec and an hourly repeat."""

    name = "systemd"

    def __init__(self, cfg: Config = config, runner: Callable = _run, unit_dir: Path = None):
        super().__init__(cfg, runner)
        self.unit_dir = unit_dir or Path.home() / ".config" / "systemd" / "user"

    def is_available(self) -> bool:
        if not shutil.which("systemctl"):
            return False
        # Fails without a user manager (containers, no login session)
        return self._run(["systemctl", "--user", "show-environment"]).returncode == 0

    def units(self, command: list[str]) -> dict[str, str]:
        service = f"""\
[Unit]
Description=Restore gitbot workers

[Service]
Type=oneshot
Environment=GITBOT_HOME={self.config.data_dir}
ExecStart={shlex.join(command)}
"""
        timer = f"""\
[Unit]
Description=Run gitbot reconcile after boot and hourly

[Timer]
OnBootSec={self.config.trigger_boot_delay}min
OnUnitActiveSec=1h
Unit={UNIT_NAME}.service

[Install]
WantedBy=timers.target
"""
        return {f"{UNIT_NAME}.service": service, f"{UNIT_NAME}.timer": timer}

    def install(self, command: list[str]) -> bool:
        self.unit_dir.mkdir(parents=True, exist_ok=True)
        for filename, content in self.units(command).items():
            (self.unit_dir / filename).write_text(content)
        for args in (
            ["systemctl", "--user", "daemon-reload"],
            ["systemctl", "--user", "enable", "--now", f"{UNIT_NAME}.timer"],
        ):
            result = self._run(args)
            if result.returncode != 0:
                logger.warning(f"{' '.join(args)} failed: {result.stderr.strip()}")
                return False
        logger.info(f"Installed systemd user timer {UNIT_NAME}.timer")
        return True


class CrontabBackend(TriggerBackend):
    """@reboot and scheduled entries in the user's crontab."""

    name = "cron"

    def is_available(self) -> bool:
        return shutil.which("crontab") is not None

    def entries(self, command: list[str]) -> list[str]:
        schedule = self.config.trigger_schedule
        try:
            croniter(schedule)
        except (KeyError, ValueError) as e:
            raise ValueError(f"Invalid cron schedule '{schedule}': {e}") from e
        cmd = f"GITBOT_HOME={shlex.quote(str(self.config.data_dir))} {shlex.join(command)}"
        delay = self.config.trigger_boot_delay * 60
        return [
            f"@reboot sleep {delay} && {cmd} {CRON_TAG}",
            f"{schedule} {cmd} {CRON_TAG}",
        ]

    def install(self, command: list[str]) -> bool:
        current = self._run(["crontab", "-l"])
        # "no crontab for user" is reported as a failure; start from empty
        existing = current.stdout if current.returncode == 0 else ""
        lines = existing.splitlines()

        try:
            wanted = self.entries(command)
        except ValueError as e:
            logger.error(f"Cannot install cron trigger: {e}")
            return False

        missing = [entry for entry in wanted if entry not in lines]
        if not missing:
            logger.info("Cron trigger already installed")
            return True

        # Replace any stale gitbot entries with the current ones
        lines = [line for line in lines if not line.endswith(CRON_TAG)] + wanted
        result = self._run(["crontab", "-"], input="\n".join(lines) + "\n")
        if result.returncode != 0:
            logger.warning(f"crontab install failed: {result.stderr.strip()}")
            return False
        logger.info("Installed cron trigger")
        return True


def default_backends(cfg: Config = config) -> list[TriggerBackend]:
    return [SystemdTimerBackend(cfg), CrontabBackend(cfg)]


def install_periodic_trigger(backends: list[TriggerBackend], command: list[str]) -> str | None:
    """Install the first backend that succeeds. Returns its name or None."""
    for backend in backends:
        try:
            if not backend.is_available():
                logger.debug(f"Trigger backend {backend.name} unavailable")
                continue
            if backend.install(command):
                return backend.name
        except Exception as e:
            logger.warning(f"Trigger backend {backend.name} failed: {e}")
    logger.warning("No periodic trigger could be installed; workers will not restart after reboot")
    return None
