"""
Job descriptors: the persisted parameters of a configured project.

Each descriptor is stored as a single pipe-delimited line
``path|interval|name|push`` keyed by project identity.
"""

import logging
import os

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .identity import absolute_path, project_identity
from .store import KeyValueStore

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "|"


class JobDescriptor(BaseModel):
    """Parameters of one project's recurring job."""

    model_config = ConfigDict(frozen=True)

    project_id: str = Field(..., description="Identity derived from the path")
    path: str = Field(..., description="Absolute project path")
    interval_seconds: int = Field(..., gt=0, description="Seconds between ticks")
    display_name: str = Field(..., min_length=1, description="Name shown in status and logs")
    push: bool = Field(False, description="Push to the remote after each commit")

    @field_validator("display_name")
    @classmethod
    def _no_separators(cls, value: str) -> str:
        if FIELD_SEPARATOR in value or "\n" in value:
            raise ValueError("display name may not contain '|' or newlines")
        return value

    @classmethod
    def for_path(cls, path, interval_seconds: int, push: bool = False, display_name: str = None):
        """Build a descriptor for a project path, deriving identity and name."""
        resolved = absolute_path(path)
        name = display_name or os.path.basename(resolved) or resolved
        try:
            return cls(
                project_id=project_identity(resolved),
                path=resolved,
                interval_seconds=interval_seconds,
                display_name=name,
                push=push,
            )
        except ValidationError as e:
            raise ConfigurationError(_describe(e)) from e

    def to_record(self) -> str:
        push = "true" if self.push else "false"
        return FIELD_SEPARATOR.join(
            [self.path, str(self.interval_seconds), self.display_name, push]
        ) + "\n"

    @classmethod
    def from_record(cls, project_id: str, record: str) -> "JobDescriptor":
        """Parse a stored record. Raises ConfigurationError if it is malformed."""
        # The path is the only field that may contain the separator
        parts = record.rstrip("\n").rsplit(FIELD_SEPARATOR, 3)
        if len(parts) != 4:
            raise ConfigurationError(f"Malformed descriptor record for {project_id}")
        path, interval, name, push = parts
        try:
            return cls(
                project_id=project_id,
                path=path,
                interval_seconds=int(interval),
                display_name=name,
                push=push.strip().lower() == "true",
            )
        except (ValueError, ValidationError) as e:
            raise ConfigurationError(f"Invalid descriptor record for {project_id}: {e}") from e


def _describe(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        field = ".".join(str(part) for part in item["loc"])
        messages.append(f"{field}: {item['msg']}")
    return "; ".join(messages)


class DescriptorStore:
    """Reads and writes JobDescriptors through a KeyValueStore."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    def put(self, project_id: str, descriptor: JobDescriptor):
        self._store.put(project_id, descriptor.to_record())

    def get(self, project_id: str) -> JobDescriptor | None:
        record = self._store.get(project_id)
        if record is None:
            return None
        try:
            return JobDescriptor.from_record(project_id, record)
        except ConfigurationError as e:
            logger.warning(f"Registry inconsistency: {e}")
            return None

    def delete(self, project_id: str):
        self._store.delete(project_id)

    def list_all(self) -> list[tuple[str, JobDescriptor]]:
        """Every parseable descriptor; unreadable records are logged and skipped."""
        descriptors = []
        for project_id, record in self._store.list_all():
            try:
                descriptors.append((project_id, JobDescriptor.from_record(project_id, record)))
            except ConfigurationError as e:
                logger.warning(f"Registry inconsistency: {e}")
        return descriptors
