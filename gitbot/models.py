"""
Tick history for gitbot workers.

Uses Peewee ORM with SQLite. Every worker records one row per tick so
`status` can report the last outcome; the reconciler prunes old rows.
"""

import os
from datetime import datetime

from peewee import (
    AutoField,
    BooleanField,
    CharField,
    DatabaseProxy,
    DateTimeField,
    FloatField,
    Model,
    SqliteDatabase,
    TextField,
)

database = DatabaseProxy()


def initialize_db(db_path):
    """Initialize database connection and create tables."""
    os.makedirs(os.path.dirname(str(db_path)), exist_ok=True)
    db = SqliteDatabase(
        str(db_path),
        pragmas={
            "journal_mode": "wal",
            "cache_size": -16 * 1000,
            "busy_timeout": 5000,
        },
    )
    database.initialize(db)
    database.create_tables([TickRecord], safe=True)
    return db


class BaseModel(Model):
    """Base model with common configuration."""

    class Meta:
        database = database


class TickRecord(BaseModel):
    """Outcome of one worker tick."""

    id = AutoField()
    project_id = CharField(index=True)
    path = TextField()
    started_at = DateTimeField(default=datetime.now, index=True)
    finished_at = DateTimeField(null=True)
    success = BooleanField(default=False)
    message = TextField(null=True)
    duration_seconds = FloatField(null=True)

    class Meta:
        table_name = "ticks"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "path": self.path,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "success": self.success,
            "message": self.message,
            "duration_seconds": self.duration_seconds,
        }


def record_tick(project_id: str, path: str, started_at: datetime, success: bool, message: str) -> TickRecord:
    finished_at = datetime.now()
    return TickRecord.create(
        project_id=project_id,
        path=path,
        started_at=started_at,
        finished_at=finished_at,
        success=success,
        message=(message or "")[:2000],
        duration_seconds=(finished_at - started_at).total_seconds(),
    )


def last_tick(project_id: str) -> TickRecord | None:
    return (
        TickRecord.select()
        .where(TickRecord.project_id == project_id)
        .order_by(TickRecord.started_at.desc(), TickRecord.id.desc())
        .first()
    )


def prune_ticks(older_than: datetime) -> int:
    """Delete tick rows started before the cutoff. Returns the row count."""
    return TickRecord.delete().where(TickRecord.started_at < older_than).execute()
