"""
The per-tick action run by gitbot workers.

GitAction stages every change in the project, commits it with a message
listing the edited files and optionally pushes. One-time project setup
initialises the repository and writes a default .gitignore if the
project has none.
"""

import logging
import shutil
import subprocess
from pathlib import Path

from .config import config
from .errors import ActionError

logger = logging.getLogger(__name__)

INITIAL_COMMIT_MESSAGE = "Initial commit by Gitbot"

DEFAULT_GITIGNORE = """\
# Dependencies
node_modules/
bower_components/
vendor/

# Build outputs
dist/
build/
out/
target/
*.o
*.so
*.exe
*.dll
*.dylib

# Logs
*.log
logs/

# OS files
.DS_Store
Thumbs.db
desktop.ini

# IDE files
.vscode/
.idea/
*.swp
*.swo
*~

# Environment files
.env
.env.local
.env.*.local

# Python
__pycache__/
*.py[cod]
.Python
venv/
env/
ENV/

# Java
*.class
*.jar
*.war
*.ear

# Temporary files
tmp/
temp/
*.tmp
*.bak
*.cache
"""


def git_available() -> bool:
    return shutil.which("git") is not None


def _git(path, *args, check: bool = True) -> subprocess.CompletedProcess:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(path),
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise ActionError(f"git {args[0]} could not run: {e}") from e
    if check and result.returncode != 0:
        detail = (result.stderr or result.stdout).strip()
        raise ActionError(f"git {args[0]} failed ({result.returncode}): {detail}")
    return result


def write_gitignore(path) -> bool:
    """Write the default .gitignore unless one exists. Returns True if written."""
    target = Path(path) / ".gitignore"
    if target.exists():
        logger.info(f".gitignore already exists in {path}, skipping creation")
        return False
    target.write_text(DEFAULT_GITIGNORE)
    logger.info(f"Created .gitignore in {path}")
    return True


class GitAction:
    """Commit (and optionally push) whatever changed since the last tick."""

    def __init__(self, push: bool = False):
        self.push = push

    def setup(self, path) -> list[str]:
        """Prepare a project for its first tick. Returns human-readable steps taken."""
        path = Path(path)
        steps = []

        if (path / ".git").exists():
            steps.append("Git repository already initialized")
        else:
            _git(path, "init", "-b", "main")
            steps.append("Initialized git repository with main branch")
            logger.info(f"Initialized git repository in {path}")

        if not _git(path, "config", "user.email", check=False).stdout.strip():
            _git(path, "config", "user.email", config.git_commit_email)
            _git(path, "config", "user.name", config.git_commit_name)
            steps.append(f"Set default git user ({config.git_commit_email})")

        if write_gitignore(path):
            steps.append("Created .gitignore with common patterns")

        _git(path, "add", "-A")
        if _git(path, "diff", "--cached", "--quiet", check=False).returncode == 0:
            steps.append("No files to commit initially")
        else:
            _git(path, "commit", "-m", INITIAL_COMMIT_MESSAGE)
            steps.append("Created initial commit")
            logger.info(f"Created initial commit in {path}")

        return steps

    def run(self, path) -> str:
        """One tick. Returns a summary; raises ActionError on failure."""
        _git(path, "add", "-A")
        changed = [
            name for name in _git(path, "diff", "--cached", "--name-only").stdout.splitlines() if name
        ]
        if not changed:
            # A commit from an earlier tick may still be waiting on a failed push
            if self.push and self._has_unpushed(path):
                self._push(path)
                return "Pushed pending commits"
            return "No changes"

        files = ", ".join(changed)
        _git(path, "commit", "-m", f"Edited: {files}")
        summary = f"Auto-committed changes: {files}"

        if self.push:
            self._push(path)
            summary += " (pushed)"
        return summary

    def _has_unpushed(self, path) -> bool:
        upstream = _git(path, "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}", check=False)
        if upstream.returncode == 0:
            ahead = _git(path, "rev-list", "--count", "@{u}..HEAD", check=False)
            return ahead.returncode == 0 and ahead.stdout.strip() not in ("", "0")
        # No upstream yet: anything committed is unpushed once there is somewhere to push it
        if "origin" not in _git(path, "remote").stdout.split():
            return False
        return _git(path, "rev-parse", "--verify", "-q", "HEAD", check=False).returncode == 0

    def _push(self, path):
        upstream = _git(path, "rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}", check=False)
        if upstream.returncode == 0:
            _git(path, "push")
            return
        if "origin" not in _git(path, "remote").stdout.split():
            raise ActionError("Push requested but no 'origin' remote is configured")
        branch = _git(path, "rev-parse", "--abbrev-ref", "HEAD").stdout.strip()
        _git(path, "push", "-u", "origin", branch)
