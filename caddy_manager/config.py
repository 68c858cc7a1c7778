"""Application configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import os

try:  # pragma: no cover - pwd isn't available on Windows
    import pwd
except ImportError:  # pragma: no cover
    pwd = None


def _determine_home() -> Path:
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user and pwd:
        try:
            return Path(pwd.getpwnam(sudo_user).pw_dir)
        except KeyError:  # pragma: no cover - only when user missing from passwd
            pass
    return Path.home()


APP_DIR = Path(os.environ.get("CADDY_MANAGER_HOME", _determine_home() / ".caddy-manager"))
DB_PATH = Path(os.environ.get("CADDY_MANAGER_DB", APP_DIR / "history.db"))
CACHE_DIR = Path(os.environ.get("CADDY_MANAGER_CACHE", APP_DIR / "cache"))
CADDYFILE = Path(os.environ.get("CADDY_MANAGER_CADDYFILE", "/etc/caddy/Caddyfile"))
DEFAULT_PROXY = os.environ.get("CADDY_MANAGER_DEFAULT_PROXY", "127.0.0.1:8080")
CADDY_BIN = os.environ.get("CADDY_MANAGER_CADDY_BIN")
RELOAD_MODE = os.environ.get("CADDY_MANAGER_RELOAD_MODE", "command")
RELOAD_COMMAND = os.environ.get("CADDY_MANAGER_RELOAD_COMMAND", "systemctl reload caddy")
EMAIL_SET_COMMAND = os.environ.get("CADDY_MANAGER_EMAIL_SET_COMMAND", "caddy environ set email")
COMMAND_TIMEOUT = float(os.environ.get("CADDY_MANAGER_COMMAND_TIMEOUT", "30"))
LOCK_FILE = (
    Path(os.environ["CADDY_MANAGER_LOCK_FILE"]).expanduser()
    if os.environ.get("CADDY_MANAGER_LOCK_FILE")
    else None
)
LOCK_TIMEOUT = float(os.environ.get("CADDY_MANAGER_LOCK_TIMEOUT", "10"))
USE_HELPER = os.environ.get("CADDY_MANAGER_USE_HELPER", "1").lower() not in {"0", "false", "no"}


@dataclass(slots=True)
class ManagerSettings:
    caddyfile: Path = CADDYFILE
    default_proxy: str = DEFAULT_PROXY
    db_path: Path = DB_PATH
    caddy_bin: str | None = CADDY_BIN
    reload_mode: str = RELOAD_MODE
    reload_command: str = RELOAD_COMMAND
    email_set_command: str = EMAIL_SET_COMMAND
    command_timeout: float = COMMAND_TIMEOUT
    lock_file: Path | None = LOCK_FILE
    lock_timeout: float = LOCK_TIMEOUT
    use_helper: bool = USE_HELPER
    journal: bool = field(default=True)

    @property
    def lock_path(self) -> Path:
        """Lock file guarding read-modify-write cycles on the Caddyfile."""
        return self.lock_file or self.caddyfile.with_name(f"{self.caddyfile.name}.lock")


def ensure_app_dir(path: Path | None = None) -> Path:
    """Ensure the data directory exists and return it."""
    target = path or APP_DIR
    target.mkdir(parents=True, exist_ok=True)
    return target


def ensure_cache_dir() -> Path:
    ensure_app_dir()
    cache = CACHE_DIR
    cache.mkdir(parents=True, exist_ok=True)
    return cache
