from pathlib import Path

import pytest

from caddy_manager.config import ManagerSettings


INITIAL_CADDYFILE = (
    "{\n"
    "    email admin@example.com\n"
    "}\n"
    "\n"
    "example.com {\n"
    "    reverse_proxy 127.0.0.1:8080\n"
    "}\n"
)


@pytest.fixture
def caddyfile(tmp_path: Path) -> Path:
    path = tmp_path / "Caddyfile"
    path.write_text(INITIAL_CADDYFILE)
    return path


@pytest.fixture
def settings(tmp_path: Path, caddyfile: Path) -> ManagerSettings:
    return ManagerSettings(
        caddyfile=caddyfile,
        default_proxy="127.0.0.1:8080",
        db_path=tmp_path / "history.db",
        caddy_bin="/usr/bin/caddy",
        reload_mode="command",
        reload_command="systemctl reload caddy",
        email_set_command="caddy environ set email",
        command_timeout=5,
        lock_file=None,
        lock_timeout=1,
        use_helper=False,
    )
