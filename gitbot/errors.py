"""
Error categories for gitbot.

Every failure path raises (or logs) one of these so the category is
visible in log lines and CLI messages.
"""


class GitbotError(Exception):
    """Base class for all gitbot failures reported to the caller."""


class ConfigurationError(GitbotError):
    """Invalid input or missing job configuration. No state is mutated."""


class AlreadyRunningError(ConfigurationError):
    """A live worker already exists for the project."""

    def __init__(self, project_id: str, pid: int):
        super().__init__(f"Gitbot is already running (PID: {pid})")
        self.project_id = project_id
        self.pid = pid


class ProjectEnvironmentError(GitbotError):
    """The project path vanished or cannot be entered."""


class ActionError(GitbotError):
    """The per-tick action failed to apply or publish its effect."""


class WorkerSpawnError(GitbotError):
    """A worker could not be started or died during its grace period."""
