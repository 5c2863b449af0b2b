"""Project identity derived from a filesystem path."""

import hashlib
import os

IDENTITY_LENGTH = 32


def absolute_path(path) -> str:
    """Expand, absolutize and normalise a path the same way every time."""
    return os.path.abspath(os.path.expanduser(os.fspath(path)))


def project_identity(path) -> str:
    """Return the stable identity token for a project path.

    The token is the leading half of the SHA-256 digest of the absolute
    path, so it is the same across processes and reboots and is safe to
    use as a file name.
    """
    digest = hashlib.sha256(absolute_path(path).encode("utf-8")).hexdigest()
    return digest[:IDENTITY_LENGTH]
