"""Operations offered to the CLI and the interactive menu."""
from __future__ import annotations

from pathlib import Path
from typing import Callable
import logging

from . import backup as backups
from .caddy_integration import (
    EMAIL_PATTERN,
    ValidationReport,
    read_configured_email,
    reload_caddy,
    set_configured_email,
    validate_config,
)
from .config import ManagerSettings
from .coordinator import (
    ApplyCoordinator,
    ApplyResult,
    ConfigFile,
    Reloader,
    Validator,
    load_config_file,
)
from .errors import BlockNotFound, PreconditionError
from .journal import recent_operations
from .store import REDIRECT, REVERSE_PROXY, Block, BlockStore, BlockSummary, validate_name

logger = logging.getLogger(__name__)


class CaddyfileManager:
    """Entry point for every Caddyfile operation.

    Mutations are delegated to :class:`ApplyCoordinator`; reads go straight to
    the file. The validator and reloader default to the caddy binary and the
    configured reload command.
    """

    def __init__(
        self,
        settings: ManagerSettings | None = None,
        *,
        validator: Validator | None = None,
        reloader: Reloader | None = None,
    ) -> None:
        self.settings = settings or ManagerSettings()
        self.validator = validator or self._default_validator
        self.reloader = reloader or self._default_reloader
        self.coordinator = ApplyCoordinator(self.settings, validator=self.validator, reloader=self.reloader)

    @property
    def caddyfile(self) -> Path:
        return self.settings.caddyfile

    def load(self) -> ConfigFile:
        return load_config_file(self.caddyfile)

    def store(self) -> BlockStore:
        return BlockStore.from_text(self.load().text)

    # Reads

    def list_blocks(self) -> list[BlockSummary]:
        return self.store().list()

    def show(self, name: str) -> Block:
        block = self.store().get(name)
        if block is None:
            raise BlockNotFound(name)
        return block

    def exists(self, name: str) -> bool:
        return name in self.store()

    # Mutations

    def add_domain(self, domain: str, redirect: str | None = None) -> ApplyResult:
        name = validate_name(domain)
        return self._add(name, redirect)

    def add_subdomain(self, domain: str, subdomain: str, redirect: str | None = None) -> ApplyResult:
        name = validate_name(f"{subdomain.strip()}.{domain.strip()}")
        return self._add(name, redirect)

    def edit(self, name: str, kind: str, target: str | None = None) -> ApplyResult:
        if kind == REVERSE_PROXY.name:
            target = target or self.settings.default_proxy
        elif not target:
            raise PreconditionError(f"A target is required for '{kind}' blocks.")
        return self.coordinator.run("edit", name, lambda store: store.replace_kind(name, kind, target))

    def replace_body(self, name: str, body: str) -> ApplyResult:
        return self.coordinator.run("edit", name, lambda store: store.replace(name, body))

    def remove(self, name: str) -> ApplyResult:
        return self.coordinator.run("remove", name, lambda store: store.remove(name))

    def _add(self, name: str, redirect: str | None) -> ApplyResult:
        if redirect:
            kind, target = REDIRECT.name, redirect
        else:
            kind, target = REVERSE_PROXY.name, self.settings.default_proxy
        return self.coordinator.run("add", name, lambda store: store.add(name, kind, target))

    # Backups, validation, reload

    def backup(self) -> backups.BackupHandle:
        self.load()
        return backups.snapshot(self.caddyfile, use_helper=self.settings.use_helper)

    def list_backups(self) -> list[backups.BackupHandle]:
        return backups.list_backups(self.caddyfile)

    def validate(self) -> ValidationReport:
        self.load()
        return self.validator(self.caddyfile)

    def reload(self) -> None:
        self.load()
        self.reloader(self.caddyfile)

    def history(self, limit: int = 20) -> list[dict]:
        return recent_operations(limit, db_path=self.settings.db_path)

    # Global options

    def ensure_email(self, prompt: Callable[[], str], *, on_invalid: Callable[[str], None] | None = None) -> str:
        """Make sure Caddy has an ACME email, asking for one when it is unset."""
        current = read_configured_email(settings=self.settings)
        if current:
            logger.info("Email already configured in Caddy.")
            return current
        email = prompt().strip()
        while not EMAIL_PATTERN.match(email):
            if on_invalid:
                on_invalid(email)
            email = prompt().strip()
        set_configured_email(email, settings=self.settings)
        logger.info("Email configured: %s", email)
        return email

    def _default_validator(self, path: Path) -> ValidationReport:
        return validate_config(path, settings=self.settings)

    def _default_reloader(self, path: Path) -> None:
        reload_caddy(path, settings=self.settings)
