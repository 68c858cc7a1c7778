"""Structured errors raised by the block manager.

Every error carries a machine-readable ``kind`` and a human message. The core
never prints; the CLI and the interactive menu decide how to render them.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any


class ManagerError(RuntimeError):
    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class PreconditionError(ManagerError):
    """The Caddyfile is missing or a mandatory setting is unset."""

    kind = "precondition"


class LockTimeout(PreconditionError):
    kind = "lock_timeout"


class CaddyfileParseError(ManagerError):
    kind = "parse_error"


class AlreadyExists(ManagerError):
    kind = "already_exists"

    def __init__(self, name: str, existing: str) -> None:
        super().__init__(f"Block '{name}' already exists in the Caddyfile.")
        self.name = name
        self.existing = existing

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["existing"] = self.existing
        return payload


class BlockNotFound(ManagerError):
    kind = "not_found"

    def __init__(self, name: str) -> None:
        super().__init__(f"Configuration for '{name}' does not exist.")
        self.name = name


class BackupFailure(ManagerError):
    kind = "backup_failed"


class ValidationFailure(ManagerError):
    """Validation rejected the new file; the previous content was restored."""

    kind = "validation_failed"

    def __init__(self, diagnostics: str, backup_path: Path | None) -> None:
        super().__init__("Configuration errors detected; the previous Caddyfile was restored.")
        self.diagnostics = diagnostics
        self.backup_path = backup_path

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["diagnostics"] = self.diagnostics
        payload["backup"] = str(self.backup_path) if self.backup_path else None
        return payload


class ReloadFailure(ManagerError):
    """The new Caddyfile is valid and on disk but Caddy was not reloaded."""

    kind = "reload_failed"

    def __init__(self, detail: str, backup_path: Path | None = None) -> None:
        super().__init__(
            f"The Caddyfile was updated and validated, but Caddy was not reloaded: {detail}"
        )
        self.detail = detail
        self.backup_path = backup_path

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["detail"] = self.detail
        payload["backup"] = str(self.backup_path) if self.backup_path else None
        return payload


class JournalError(ManagerError):
    """The history database could not be read."""

    kind = "journal_error"
