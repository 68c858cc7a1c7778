"""Backup, write, validate and reload a Caddyfile mutation as one unit."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from hashlib import sha256
from pathlib import Path
from typing import Callable
import logging

from .backup import BackupHandle, commit, rollback, snapshot
from .caddy_integration import CaddyError, ValidationReport
from .config import ManagerSettings
from .errors import ManagerError, PreconditionError, ReloadFailure, ValidationFailure
from .journal import OperationRecord, record_operation
from .locking import caddyfile_lock
from .store import Block, BlockStore

logger = logging.getLogger(__name__)

Validator = Callable[[Path], ValidationReport]
Reloader = Callable[[Path], None]
Mutation = Callable[[BlockStore], Block]


class ApplyState(str, Enum):
    IDLE = "idle"
    STAGED = "staged"
    VALIDATED = "validated"
    APPLIED = "applied"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


TRANSITIONS: dict[ApplyState, frozenset[ApplyState]] = {
    ApplyState.IDLE: frozenset({ApplyState.STAGED}),
    ApplyState.STAGED: frozenset({ApplyState.VALIDATED, ApplyState.FAILED}),
    ApplyState.VALIDATED: frozenset({ApplyState.APPLIED}),
    ApplyState.FAILED: frozenset({ApplyState.ROLLED_BACK}),
    ApplyState.APPLIED: frozenset(),
    ApplyState.ROLLED_BACK: frozenset(),
}


class ApplyStateMachine:
    def __init__(self) -> None:
        self.state = ApplyState.IDLE
        self.history: list[ApplyState] = [ApplyState.IDLE]

    def advance(self, new_state: ApplyState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {new_state.value}")
        logger.debug("apply state %s -> %s", self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)


@dataclass(slots=True)
class ConfigFile:
    path: Path
    text: str
    mtime: float


@dataclass(slots=True)
class ApplyResult:
    action: str
    target: str
    state: ApplyState
    block: Block
    backup: BackupHandle
    diagnostics: str = ""


def load_config_file(path: Path) -> ConfigFile:
    """Read the Caddyfile, failing fast when it is missing or unreadable."""
    if not path.is_file():
        raise PreconditionError(
            f"Caddyfile not found at {path}. Please verify your Caddy installation."
        )
    try:
        text = path.read_text(encoding="utf-8")
    except PermissionError as exc:
        raise PreconditionError(f"Permission denied reading {path}. Run with elevated permissions.") from exc
    return ConfigFile(path=path, text=text, mtime=path.stat().st_mtime)


def _digest(text: str) -> str:
    return sha256(text.encode("utf-8")).hexdigest()


class ApplyCoordinator:
    """Drive a mutation through backup, atomic write, validation and reload.

    A validation failure restores the backup. A reload failure leaves the
    validated file in place and is reported as :class:`ReloadFailure`.
    """

    def __init__(self, settings: ManagerSettings, *, validator: Validator, reloader: Reloader) -> None:
        self.settings = settings
        self.validator = validator
        self.reloader = reloader

    def run(self, action: str, target: str, mutate: Mutation) -> ApplyResult:
        path = self.settings.caddyfile
        machine = ApplyStateMachine()
        record = OperationRecord(
            action=action,
            target=target,
            caddyfile_path=path,
            state=machine.state.value,
            started_at=datetime.now(timezone.utc),
        )
        try:
            with caddyfile_lock(self.settings.lock_path, timeout=self.settings.lock_timeout):
                return self._run_locked(action, target, mutate, machine, record)
        except ManagerError as exc:
            record.error_kind = exc.kind
            record.error_message = exc.message
            raise
        finally:
            record.state = machine.state.value
            if self.settings.journal:
                record_operation(record, db_path=self.settings.db_path)

    def _run_locked(
        self,
        action: str,
        target: str,
        mutate: Mutation,
        machine: ApplyStateMachine,
        record: OperationRecord,
    ) -> ApplyResult:
        path = self.settings.caddyfile
        config = load_config_file(path)
        record.before_hash = _digest(config.text)

        store = BlockStore.from_text(config.text)
        block = mutate(store)
        new_text = store.serialize()
        record.after_hash = _digest(new_text)

        backup = snapshot(path, use_helper=self.settings.use_helper)
        record.backup_path = backup.path
        commit(path, new_text, use_helper=self.settings.use_helper)
        machine.advance(ApplyState.STAGED)
        logger.info("%s '%s': new Caddyfile staged", action, target)

        try:
            report = self.validator(path)
        except Exception as exc:
            logger.error("Validator for %s raised: %s", path, exc)
            report = ValidationReport(ok=False, output=f"validator error: {exc}")
        record.diagnostics = report.output or None
        if not report.ok:
            machine.advance(ApplyState.FAILED)
            rollback(backup, use_helper=self.settings.use_helper)
            machine.advance(ApplyState.ROLLED_BACK)
            raise ValidationFailure(report.output, backup.path)
        machine.advance(ApplyState.VALIDATED)

        try:
            self.reloader(path)
        except (CaddyError, OSError) as exc:
            raise ReloadFailure(str(exc), backup.path) from exc
        machine.advance(ApplyState.APPLIED)
        logger.info("%s '%s' applied", action, target)
        return ApplyResult(
            action=action,
            target=target,
            state=machine.state,
            block=block,
            backup=backup,
            diagnostics=report.output,
        )
