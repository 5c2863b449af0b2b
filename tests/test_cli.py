from __future__ import annotations

import pytest

from gitbot import cli
from gitbot.descriptors import JobDescriptor
from gitbot.store import FileStore


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda cfg=None: None)


@pytest.fixture()
def project(tmp_path, monkeypatch):
    path = tmp_path / "proj"
    path.mkdir()
    monkeypatch.chdir(path)
    return path


def test_no_command_prints_usage_and_fails(cfg, capsys) -> None:
    assert cli.main([], cfg) == 1
    assert "usage: gitbot" in capsys.readouterr().err


def test_unknown_command_fails_with_status_one(cfg, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["launch"], cfg)

    assert excinfo.value.code == 1
    assert "invalid choice" in capsys.readouterr().err


def test_start_without_interval_fails_with_status_one(cfg) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["start"], cfg)

    assert excinfo.value.code == 1


@pytest.mark.parametrize("interval", ["0", "abc", "-1"])
def test_start_with_invalid_interval_fails(cfg, project, capsys, monkeypatch, interval) -> None:
    monkeypatch.setattr(cli, "git_available", lambda: True)

    assert cli.main(["start", "--", interval], cfg) == 1
    assert "Invalid interval" in capsys.readouterr().err
    assert FileStore(cfg.jobs_dir).list_all() == []


def test_end_when_not_running_exits_zero(cfg, project, capsys) -> None:
    assert cli.main(["end"], cfg) == 0
    assert "Gitbot is not running." in capsys.readouterr().out


def test_status_when_not_running(cfg, project, capsys) -> None:
    assert cli.main(["status"], cfg) == 0
    assert "Gitbot is not running." in capsys.readouterr().out


def test_restart_without_descriptor_fails(cfg, project, capsys, monkeypatch) -> None:
    monkeypatch.setattr(cli, "git_available", lambda: True)

    assert cli.main(["restart"], cfg) == 1
    assert "No gitbot job" in capsys.readouterr().err


def test_start_requires_git(cfg, project, capsys, monkeypatch) -> None:
    monkeypatch.setattr(cli, "git_available", lambda: False)

    assert cli.main(["start", "5"], cfg) == 1
    assert "git is not installed" in capsys.readouterr().err


def test_reconcile_records_boot_marker(cfg, project, monkeypatch) -> None:
    monkeypatch.setattr("gitbot.reconciler.read_boot_timestamp", lambda: "12345")

    assert cli.main(["reconcile"], cfg) == 0
    assert FileStore(cfg.data_dir).get("boot") == "12345\n"


def test_status_reports_dead_registration(cfg, project, capsys, dead_pid, monkeypatch) -> None:
    monkeypatch.setattr("gitbot.reconciler.read_boot_timestamp", lambda: "12345")
    FileStore(cfg.data_dir).put("boot", "12345\n")
    descriptor = JobDescriptor.for_path(project, 5)
    FileStore(cfg.jobs_dir).put(descriptor.project_id, descriptor.to_record())
    FileStore(cfg.pids_dir).put(descriptor.project_id, f"{dead_pid}\n")

    assert cli.main(["status"], cfg) == 0
    assert "worker process not found" in capsys.readouterr().out
    assert FileStore(cfg.pids_dir).get(descriptor.project_id) is None
