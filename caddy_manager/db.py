"""Database bootstrap helpers."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from . import models
from .config import DB_PATH

SCHEMA_VERSION = "1"

_engine = None
_engine_path: Path | None = None
_SessionLocal: sessionmaker[Session] | None = None


def get_engine(db_path: Path | str | None = None):
    """Return a cached engine for ``db_path``, rebuilding it when the path changes."""
    global _engine, _engine_path, _SessionLocal
    path = Path(db_path or DB_PATH)
    if _engine is None or (db_path is not None and path != _engine_path):
        if _engine is not None:
            _engine.dispose()
        path.parent.mkdir(parents=True, exist_ok=True)
        _engine = create_engine(f"sqlite:///{path}", future=True)
        _SessionLocal = sessionmaker(bind=_engine, expire_on_commit=False, future=True)
        _engine_path = path
        _bootstrap_schema(_engine)
    return _engine


@contextmanager
def session_scope(db_path: Path | str | None = None) -> Iterator[Session]:
    """Provide a transactional scope."""
    get_engine(db_path=db_path)
    assert _SessionLocal is not None  # safety
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _bootstrap_schema(engine) -> None:
    """Create tables and record the schema version."""
    models.Base.metadata.create_all(engine)
    _ensure_schema_version(engine)


def _ensure_schema_version(engine) -> None:
    with engine.begin() as conn:
        result = conn.execute(text("SELECT value FROM meta WHERE key = 'schema_version'"))
        if result.fetchone() is None:
            conn.execute(
                text(
                    "INSERT INTO meta (key, value, updated_at) "
                    "VALUES (:key, :value, :updated_at)"
                ),
                {
                    "key": "schema_version",
                    "value": SCHEMA_VERSION,
                    "updated_at": datetime.now(timezone.utc),
                },
            )
