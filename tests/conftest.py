"""Shared test fixtures."""

from __future__ import annotations

import os
import subprocess
import sys
import tempfile

# Keep the module-level config away from the real ~/.gitbot
os.environ["GITBOT_HOME"] = tempfile.mkdtemp(prefix="gitbot-test-")

import pytest  # noqa: E402

from gitbot.commands import Supervisor  # noqa: E402
from gitbot.config import Config  # noqa: E402
from gitbot.descriptors import DescriptorStore  # noqa: E402
from gitbot.models import initialize_db  # noqa: E402
from gitbot.reconciler import Reconciler  # noqa: E402
from gitbot.registry import BootMarker, ProcessRegistry  # noqa: E402
from gitbot.store import MemoryStore  # noqa: E402

SLEEPER = [sys.executable, "-c", "import time; time.sleep(60)"]


class FakeAction:
    """Stands in for GitAction; records calls."""

    instances: list["FakeAction"] = []

    def __init__(self, push: bool = False):
        self.push = push
        self.setup_calls = []
        self.run_calls = []
        FakeAction.instances.append(self)

    def setup(self, path):
        self.setup_calls.append(path)
        return ["prepared"]

    def run(self, path):
        self.run_calls.append(path)
        return "No changes"


class SleeperLauncher:
    """Launches a real, idle child process per spawn so liveness checks are genuine."""

    def __init__(self, command=None):
        self.command = command or SLEEPER
        self.spawned = []

    def spawn(self, descriptor):
        process = subprocess.Popen(self.command, start_new_session=True)
        self.spawned.append((descriptor, process))
        return process

    def cleanup(self):
        for _, process in self.spawned:
            if process.poll() is None:
                process.kill()
                process.wait(timeout=5)


@pytest.fixture()
def cfg(tmp_path) -> Config:
    return Config(data_dir=tmp_path / "gitbot-home", spawn_grace_seconds=0, stop_timeout=3)


@pytest.fixture()
def db(cfg):
    database = initialize_db(cfg.db_path)
    yield database
    database.close()


@pytest.fixture()
def launcher():
    launcher = SleeperLauncher()
    yield launcher
    launcher.cleanup()


@pytest.fixture()
def dead_pid() -> int:
    """PID of a process that has already exited and been reaped."""
    process = subprocess.Popen([sys.executable, "-c", "pass"])
    process.wait(timeout=10)
    return process.pid


@pytest.fixture()
def stores():
    return {
        "descriptors": DescriptorStore(MemoryStore()),
        "registry": ProcessRegistry(MemoryStore()),
        "meta": MemoryStore(),
    }


@pytest.fixture()
def boot():
    """Mutable boot timestamp read by the reconciler under test."""
    return {"value": "1000"}


@pytest.fixture()
def reconciler(stores, launcher, boot) -> Reconciler:
    return Reconciler(
        stores["descriptors"],
        stores["registry"],
        BootMarker(stores["meta"]),
        launcher,
        boot_reader=lambda: boot["value"],
    )


@pytest.fixture()
def supervisor(stores, launcher, reconciler, cfg, db) -> Supervisor:
    FakeAction.instances.clear()
    return Supervisor(
        stores["descriptors"],
        stores["registry"],
        stores["meta"],
        launcher,
        reconciler,
        action_factory=FakeAction,
        trigger_backends=[],
        cfg=cfg,
    )
