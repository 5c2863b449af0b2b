"""
Command-line interface for gitbot.

    gitbot start <seconds> [--push] [--name NAME]
    gitbot end
    gitbot status
    gitbot restart

Every command first runs the reconciler so jobs lost to a reboot come
back as soon as gitbot is used. `gitbot reconcile` is what the periodic
trigger runs; `gitbot worker` is the entry point of spawned workers.
"""

import argparse
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from . import __version__
from .actions import git_available
from .commands import JobState, Supervisor
from .config import Config, config
from .descriptors import JobDescriptor
from .errors import GitbotError
from .worker import serve

logger = logging.getLogger(__name__)

EXAMPLES = """\
Examples:
  gitbot start 30          Monitor and commit every 30 seconds
  gitbot start 60 --push   Commit and push every minute
  gitbot end               Stop gitbot
"""


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def configure_logging(cfg: Config = config):
    """Rotating file log for commands, warnings echoed to the console."""
    log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    file_handler = RotatingFileHandler(
        cfg.supervisor_log,
        maxBytes=cfg.log_max_bytes,
        backupCount=cfg.log_backup_count,
    )
    file_handler.setFormatter(log_formatter)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    logging.basicConfig(
        level=logging.INFO,
        handlers=[file_handler, console_handler],
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="gitbot",
        description="Gitbot - Automatic Git Commit Bot",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", metavar="<command>")

    start = sub.add_parser("start", help="Start monitoring and auto-committing")
    start.add_argument("interval", help="Seconds between commits")
    start.add_argument("--push", action="store_true", help="Also push after each commit")
    start.add_argument("--name", help="Repository name (default: directory name)")

    sub.add_parser("end", aliases=["stop"], help="Stop monitoring")
    sub.add_parser("status", help="Show current status")
    sub.add_parser("restart", help="Restart the worker from its saved settings")
    sub.add_parser("reconcile", help="Restore workers after a reboot or crash")

    worker = sub.add_parser("worker")
    worker.add_argument("--path", required=True)
    worker.add_argument("--interval", type=int, required=True)
    worker.add_argument("--name", required=True)
    worker.add_argument("--push", action="store_true")
    return parser


def _print_job(descriptor: JobDescriptor, pid: int):
    print(f"  Repository: {descriptor.display_name}")
    print(f"  Path: {descriptor.path}")
    print(f"  Interval: {descriptor.interval_seconds}s")
    print(f"  Push: {'yes' if descriptor.push else 'no'}")
    print(f"  PID: {pid}")


def cmd_start(supervisor: Supervisor, args) -> int:
    result = supervisor.start(os.getcwd(), args.interval, push=args.push, name=args.name)
    for step in result.setup_steps:
        print(step)
    print("Gitbot started successfully!")
    print()
    _print_job(result.descriptor, result.pid)
    print()
    if result.trigger is None:
        print("Warning: no boot trigger installed; run 'gitbot reconcile' after a reboot.")
    print("Gitbot is now monitoring changes in the background.")
    print("Use 'gitbot end' to stop monitoring.")
    return 0


def cmd_end(supervisor: Supervisor, args) -> int:
    result = supervisor.stop(os.getcwd())
    if result.was_running:
        print("Gitbot stopped successfully.")
    else:
        print("Gitbot is not running.")
    return 0


def cmd_status(supervisor: Supervisor, args) -> int:
    report = supervisor.status(os.getcwd())
    if report.state is JobState.RUNNING:
        print("Gitbot is running:")
        print()
        if report.descriptor is not None:
            _print_job(report.descriptor, report.pid)
        else:
            print(f"  PID: {report.pid}")
        if report.last_tick:
            outcome = "ok" if report.last_tick["success"] else "failed"
            print(f"  Last tick: {report.last_tick['finished_at']} ({outcome}: {report.last_tick['message']})")
    elif report.state is JobState.DEAD:
        print("Gitbot is not running (worker process not found; cleaned up).")
        print("Use 'gitbot restart' to resume or 'gitbot end' to remove it.")
    else:
        print("Gitbot is not running.")
    return 0


def cmd_restart(supervisor: Supervisor, args) -> int:
    result = supervisor.restart(os.getcwd())
    print(f"Gitbot restarted for '{result.descriptor.display_name}' (PID: {result.pid})")
    return 0


def cmd_reconcile(supervisor: Supervisor, args) -> int:
    # main() already ran the pass with the liveness sweep
    return 0


COMMANDS = {
    "start": cmd_start,
    "end": cmd_end,
    "stop": cmd_end,
    "status": cmd_status,
    "restart": cmd_restart,
    "reconcile": cmd_reconcile,
}


def main(argv=None, cfg: Config = config) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help(sys.stderr)
        return 1

    if args.command == "worker":
        descriptor = JobDescriptor.for_path(args.path, args.interval, push=args.push, display_name=args.name)
        serve(descriptor, cfg)
        return 0

    configure_logging(cfg)

    if args.command in ("start", "restart") and not git_available():
        print("Error: git is not installed. Please install git first.", file=sys.stderr)
        return 1

    supervisor = Supervisor.from_config(cfg)
    try:
        report = supervisor.reconcile(sweep=args.command == "reconcile")
        if report.spawned:
            logger.info(f"Reconciler restored {len(report.spawned)} job(s)")
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}")

    try:
        return COMMANDS[args.command](supervisor, args)
    except GitbotError as e:
        logger.info(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
