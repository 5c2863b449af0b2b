from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

import gitbot
from gitbot.actions import git_available
from gitbot.commands import JobState, Supervisor
from gitbot.config import Config
from gitbot.identity import project_identity
from gitbot.models import last_tick
from gitbot.registry import is_alive, terminate

pytestmark = pytest.mark.skipif(not git_available(), reason="git is not installed")


def wait_for_tick(project_id: str, timeout: float = 20.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        tick = last_tick(project_id)
        if tick is not None:
            return tick
        time.sleep(0.2)
    return None


@pytest.fixture()
def real_supervisor(tmp_path, monkeypatch) -> Supervisor:
    # The spawned `python -m gitbot` must import this checkout
    source_root = str(Path(gitbot.__file__).resolve().parent.parent)
    monkeypatch.setenv("PYTHONPATH", os.pathsep.join(filter(None, [source_root, os.environ.get("PYTHONPATH")])))
    cfg = Config(data_dir=tmp_path / "gitbot-home", spawn_grace_seconds=1.0, stop_timeout=5)
    supervisor = Supervisor.from_config(cfg)
    supervisor.trigger_backends = []
    return supervisor


def test_start_tick_status_end_with_real_worker(real_supervisor, tmp_path) -> None:
    project = tmp_path / "-draft"
    project.mkdir()
    (project / "notes.txt").write_text("hello\n")

    result = real_supervisor.start(project, 1)
    try:
        assert result.descriptor.display_name == "-draft"
        assert is_alive(result.pid)

        tick = wait_for_tick(project_identity(project))
        assert tick is not None
        assert tick.success

        report = real_supervisor.status(project)
        assert report.state is JobState.RUNNING
        assert report.pid == result.pid

        stopped = real_supervisor.stop(project)
        assert stopped.was_running
        assert not is_alive(result.pid)
        assert real_supervisor.status(project).state is JobState.ABSENT
    finally:
        if is_alive(result.pid):
            terminate(result.pid, timeout=5)


def test_worker_log_records_ticks(real_supervisor, tmp_path) -> None:
    project = tmp_path / "proj"
    project.mkdir()

    result = real_supervisor.start(project, 1)
    try:
        project_id = project_identity(project)
        assert wait_for_tick(project_id) is not None
        log_text = real_supervisor.config.job_log(project_id).read_text()
        assert "Started monitoring" in log_text
    finally:
        real_supervisor.stop(project)
        if is_alive(result.pid):
            terminate(result.pid, timeout=5)
