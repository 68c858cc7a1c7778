"""Version discovery and tracking utilities."""
from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path

from packaging.version import InvalidVersion, Version
from sqlalchemy.exc import SQLAlchemyError

from . import __version__
from . import models
from .db import session_scope
from .errors import JournalError

DEFAULT_REPO = "caddy-manager/caddy-manager"

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class VersionInfo:
    current: str
    latest: str | None
    update_available: bool
    source: str


def _normalize(version: str) -> Version | None:
    value = version.lstrip("v")
    try:
        return Version(value)
    except InvalidVersion:
        return None


def fetch_latest_version(repo: str | None = None, timeout: int = 5) -> str | None:
    """Query GitHub releases for the latest version tag."""
    repository = repo or os.environ.get("CADDY_MANAGER_REPO", DEFAULT_REPO)
    url = f"https://api.github.com/repos/{repository}/releases/latest"
    try:
        with urllib.request.urlopen(url, timeout=timeout) as resp:
            payload = json.loads(resp.read().decode("utf-8"))
    except (urllib.error.URLError, OSError, ValueError) as exc:
        logger.debug("Version lookup failed: %s", exc)
        return None
    tag = payload.get("tag_name") or payload.get("name")
    if not tag:
        return None
    normalized = _normalize(tag)
    return normalized.public if normalized else None


def collect_version_info(repo: str | None = None) -> VersionInfo:
    current = __version__
    latest = fetch_latest_version(repo)
    current_v = _normalize(current)
    latest_v = _normalize(latest) if latest else None
    update_available = bool(latest_v and current_v and latest_v > current_v)
    return VersionInfo(
        current=current,
        latest=latest,
        update_available=update_available,
        source=repo or os.environ.get("CADDY_MANAGER_REPO", DEFAULT_REPO),
    )


def store_current_version(version: str | None = None, db_path: Path | str | None = None) -> None:
    value = version or __version__
    try:
        with session_scope(db_path=db_path) as session:
            meta = session.get(models.Meta, "app_version")
            if meta:
                meta.value = value
            else:
                session.add(models.Meta(key="app_version", value=value))
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Unable to record app version: %s", exc)


def stored_version(db_path: Path | str | None = None) -> str | None:
    """Version recorded by the previous run, if any."""
    try:
        with session_scope(db_path=db_path) as session:
            meta = session.get(models.Meta, "app_version")
            return meta.value if meta else None
    except (SQLAlchemyError, OSError) as exc:
        raise JournalError(f"Unable to read the recorded version: {exc}") from exc
