"""Timestamped backups and all-or-nothing writes for the Caddyfile."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
import logging
import os
import shutil
import tempfile

from .config import ensure_cache_dir
from .errors import BackupFailure
from .helper_runner import copy_file, install_file

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


@dataclass(frozen=True, slots=True)
class BackupHandle:
    path: Path
    source: Path
    created_at: datetime

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


def backup_path_for(source: Path, when: datetime) -> Path:
    """Return an unused ``<source>.<timestamp>.bak`` path."""
    stamp = when.strftime(TIMESTAMP_FORMAT)
    candidate = source.with_name(f"{source.name}.{stamp}.bak")
    counter = 1
    while candidate.exists():
        candidate = source.with_name(f"{source.name}.{stamp}-{counter}.bak")
        counter += 1
    return candidate


def snapshot(source: Path, *, use_helper: bool = True) -> BackupHandle:
    """Copy ``source`` to a sibling backup file before it is modified.

    Raises:
        BackupFailure: When the copy cannot be written, directly or via the helper.
    """
    created_at = datetime.now()
    target = backup_path_for(source, created_at)
    try:
        shutil.copy2(source, target)
    except PermissionError as exc:
        if not use_helper:
            raise BackupFailure(f"Unable to write backup {target}: {exc.strerror}") from exc
        success, command, error = copy_file(source, target)
        if not success:
            hint = f" Run: {command}" if command else ""
            raise BackupFailure(f"Unable to write backup {target}: {error}.{hint}") from exc
    except OSError as exc:
        raise BackupFailure(f"Unable to write backup {target}: {exc}") from exc
    logger.info("Backup created at %s", target)
    return BackupHandle(path=target, source=source, created_at=created_at)


def commit(target: Path, content: str | bytes, *, use_helper: bool = True) -> None:
    """Replace ``target`` so readers see either the old or the new content.

    Falls back to the privileged helper when the directory is not writable.
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    try:
        atomic_write_bytes(target, data)
    except PermissionError:
        if not use_helper:
            raise
        staged_dir = ensure_cache_dir() / "staged"
        staged_dir.mkdir(parents=True, exist_ok=True)
        staged = staged_dir / target.name
        staged.write_bytes(data)
        mode = target.stat().st_mode & 0o7777 if target.exists() else 0o644
        success, command, error = install_file(staged, target, mode=mode)
        if not success:
            detail = error or "Helper install failed"
            hint = f"Run: {command}" if command else "Run the helper install manually"
            raise PermissionError(f"Unable to write {target}: {detail}. {hint}")
    logger.debug("Committed %d bytes to %s", len(data), target)


def rollback(handle: BackupHandle, *, use_helper: bool = True) -> None:
    """Restore the file the backup was taken from."""
    commit(handle.source, handle.read_bytes(), use_helper=use_helper)
    logger.warning("Restored %s from %s", handle.source, handle.path)


def list_backups(source: Path) -> list[BackupHandle]:
    """Backups of ``source`` on disk, newest first."""
    found: list[tuple[datetime, int, BackupHandle]] = []
    for candidate in source.parent.glob(f"{source.name}.*.bak"):
        stamp, _, counter = candidate.name[len(source.name) + 1 : -len(".bak")].partition("-")
        try:
            created_at = datetime.strptime(stamp, TIMESTAMP_FORMAT)
            sequence = int(counter or 0)
        except ValueError:
            continue
        found.append((created_at, sequence, BackupHandle(path=candidate, source=source, created_at=created_at)))
    found.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [handle for _, _, handle in found]


def atomic_write_bytes(path: Path, data: bytes) -> None:
    existing = path.stat() if path.exists() else None
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        if existing is not None:
            os.chmod(tmp_path, existing.st_mode & 0o7777)
            if hasattr(os, "geteuid") and os.geteuid() == 0:
                os.chown(tmp_path, existing.st_uid, existing.st_gid)
        os.replace(tmp_path, path)
        _fsync_directory(path.parent)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def _fsync_directory(directory: Path) -> None:
    try:
        dir_fd = os.open(str(directory), os.O_DIRECTORY)
    except (OSError, AttributeError):  # pragma: no cover - O_DIRECTORY is POSIX only
        return
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)
