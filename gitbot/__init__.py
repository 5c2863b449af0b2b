"""
Gitbot - automatic git commits for a project directory.

Supervises one detached worker per project that commits (and optionally
pushes) changes at a fixed interval, and restores workers after crashes
and reboots.
"""

__version__ = "0.1.0"
