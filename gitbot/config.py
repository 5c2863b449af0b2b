"""
Configuration for gitbot.

Loads settings from environment variables with sensible defaults.
All persistent data is stored in ~/.gitbot/ unless GITBOT_HOME is set.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _default_data_dir() -> Path:
    return Path(os.environ.get("GITBOT_HOME", str(Path.home() / ".gitbot"))).expanduser()


@dataclass
class Config:
    """Gitbot configuration."""

    # Paths
    data_dir: Path = field(default_factory=_default_data_dir)
    jobs_dir: Path = None
    pids_dir: Path = None
    logs_dir: Path = None
    db_path: Path = None
    supervisor_log: Path = None

    # Logging
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))

    # Process management
    spawn_grace_seconds: float = float(os.environ.get("SPAWN_GRACE_SECONDS", "1.0"))
    stop_timeout: int = int(os.environ.get("STOP_TIMEOUT", "10"))

    # Tick history
    tick_retention_days: int = int(os.environ.get("TICK_RETENTION_DAYS", "7"))

    # Periodic trigger
    trigger_boot_delay: int = int(os.environ.get("TRIGGER_BOOT_DELAY", "2"))  # minutes
    trigger_schedule: str = os.environ.get("TRIGGER_SCHEDULE", "0 * * * *")

    # Identity used for commits in repositories without one
    git_commit_email: str = os.environ.get("GIT_COMMIT_EMAIL", "gitbot@local")
    git_commit_name: str = os.environ.get("GIT_COMMIT_NAME", "Gitbot")

    def __post_init__(self):
        """Initialize derived paths and create directories."""
        self.data_dir = Path(self.data_dir)
        self.jobs_dir = self.data_dir / "jobs"
        self.pids_dir = self.data_dir / "pids"
        self.logs_dir = self.data_dir / "logs"
        self.db_path = self.data_dir / "gitbot.db"
        self.supervisor_log = self.data_dir / "gitbot.log"

        # Create directories
        for directory in (self.data_dir, self.jobs_dir, self.pids_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def job_log(self, project_id: str) -> Path:
        """Path of the log stream for one project's worker."""
        return self.logs_dir / f"{project_id}.log"

    def job_output(self, project_id: str) -> Path:
        """Raw stdout and stderr of the worker process, kept apart from the rotated log."""
        return self.logs_dir / f"{project_id}.out"


config = Config()
