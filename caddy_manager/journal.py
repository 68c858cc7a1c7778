"""Record and query the history of Caddyfile mutations."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from . import models
from .db import session_scope
from .errors import JournalError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OperationRecord:
    action: str
    target: str
    caddyfile_path: Path
    state: str
    started_at: datetime
    backup_path: Path | None = None
    before_hash: str | None = None
    after_hash: str | None = None
    diagnostics: str | None = None
    error_kind: str | None = None
    error_message: str | None = None


def record_operation(record: OperationRecord, db_path: Path | None = None) -> bool:
    """Persist ``record``; a journal failure never affects the mutation itself."""
    try:
        with session_scope(db_path=db_path) as session:
            session.add(
                models.Operation(
                    action=record.action,
                    target=record.target,
                    caddyfile_path=str(record.caddyfile_path),
                    state=record.state,
                    backup_path=str(record.backup_path) if record.backup_path else None,
                    before_hash=record.before_hash,
                    after_hash=record.after_hash,
                    diagnostics=record.diagnostics,
                    error_kind=record.error_kind,
                    error_message=record.error_message,
                    started_at=record.started_at,
                    finished_at=datetime.now(timezone.utc),
                )
            )
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Unable to record %s of '%s' in the journal: %s", record.action, record.target, exc)
        return False
    return True


def recent_operations(limit: int = 20, db_path: Path | None = None) -> list[dict]:
    try:
        with session_scope(db_path=db_path) as session:
            rows = session.scalars(
                select(models.Operation).order_by(models.Operation.id.desc()).limit(limit)
            ).all()
    except (SQLAlchemyError, OSError) as exc:
        raise JournalError(f"Unable to read the operation history: {exc}") from exc
    return [
        {
            "id": row.id,
            "action": row.action,
            "target": row.target,
            "state": row.state,
            "backup": row.backup_path,
            "error_kind": row.error_kind,
            "error": row.error_message,
            "started_at": row.started_at.isoformat(timespec="seconds") if row.started_at else None,
        }
        for row in rows
    ]
