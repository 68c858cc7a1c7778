"""Exclusive lock spanning a read-modify-write cycle on the Caddyfile."""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
import logging
import time

try:  # pragma: no cover - fcntl isn't available on Windows
    import fcntl
except ImportError:  # pragma: no cover
    fcntl = None

from .errors import LockTimeout, PreconditionError

logger = logging.getLogger(__name__)


@contextmanager
def caddyfile_lock(lock_path: Path, timeout: float = 10.0, poll: float = 0.05) -> Iterator[None]:
    """Hold an advisory ``flock`` on ``lock_path`` for the duration of the block."""
    if fcntl is None:  # pragma: no cover
        logger.warning("File locking is unavailable on this platform; concurrent edits are not guarded")
        yield
        return
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = lock_path.open("a+")
    except PermissionError as exc:
        raise PreconditionError(
            f"Unable to open lock file {lock_path}: {exc.strerror}. "
            "Run with elevated permissions or set CADDY_MANAGER_LOCK_FILE."
        ) from exc
    with handle:
        start = time.monotonic()
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() - start >= timeout:
                    raise LockTimeout(
                        f"Another caddy-manager process holds {lock_path}; gave up after {timeout:g}s."
                    ) from None
                time.sleep(poll)
        logger.debug("Acquired lock %s", lock_path)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
