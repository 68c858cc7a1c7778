"""Integration helpers for invoking the caddy binary and reload command."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from shutil import which
import logging
import re
import shlex
import subprocess

from .config import ManagerSettings
from .helper_runner import reload_caddy_service

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
EMAIL_KEY = "email="


class CaddyError(RuntimeError):
    pass


@dataclass(slots=True)
class ValidationReport:
    ok: bool
    output: str


def _caddy_bin(settings: ManagerSettings) -> str:
    candidate = settings.caddy_bin or which("caddy")
    if not candidate:
        raise CaddyError("Unable to locate caddy binary. Set CADDY_MANAGER_CADDY_BIN.")
    return candidate


def _run(cmd: list[str], timeout: float) -> subprocess.CompletedProcess[str]:
    logger.debug("Running %s", shlex.join(cmd))
    try:
        return subprocess.run(cmd, check=False, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise CaddyError(f"'{shlex.join(cmd)}' timed out after {timeout:g}s") from exc
    except OSError as exc:
        raise CaddyError(f"Unable to execute '{cmd[0]}': {exc}") from exc


def validate_config(config_path: Path, *, settings: ManagerSettings | None = None) -> ValidationReport:
    """Run ``caddy validate`` against ``config_path``.

    Any failure to get a positive answer, including a missing binary or a
    timeout, is reported as an invalid configuration.
    """
    settings = settings or ManagerSettings()
    try:
        cmd = [_caddy_bin(settings), "validate", "--config", str(config_path), "--adapter", "caddyfile"]
        proc = _run(cmd, settings.command_timeout)
    except CaddyError as exc:
        return ValidationReport(ok=False, output=str(exc))
    output = "\n".join(part.strip() for part in (proc.stdout, proc.stderr) if part and part.strip())
    if proc.returncode != 0:
        return ValidationReport(ok=False, output=output or "caddy validate failed")
    return ValidationReport(ok=True, output=output)


def reload_caddy(config_path: Path, *, settings: ManagerSettings | None = None) -> None:
    """Tell the running service to pick up ``config_path``.

    Raises:
        CaddyError: When the reload command fails or times out.
    """
    settings = settings or ManagerSettings()
    mode = settings.reload_mode
    if mode == "caddy":
        cmd = [_caddy_bin(settings), "reload", "--config", str(config_path), "--adapter", "caddyfile"]
    elif mode == "command":
        cmd = shlex.split(settings.reload_command)
    elif mode == "helper":
        success, command, error = reload_caddy_service(settings.reload_command, timeout=settings.command_timeout)
        if not success:
            raise CaddyError(error or f"helper reload failed ({command})")
        return
    else:
        raise CaddyError(f"Unknown reload mode '{mode}' (expected caddy, command or helper)")
    proc = _run(cmd, settings.command_timeout)
    if proc.returncode != 0:
        raise CaddyError(proc.stderr.strip() or proc.stdout.strip() or "caddy reload failed")


def read_configured_email(*, settings: ManagerSettings | None = None) -> str | None:
    """Return the ``email`` value reported by ``caddy environ``, if any."""
    settings = settings or ManagerSettings()
    proc = _run([_caddy_bin(settings), "environ"], settings.command_timeout)
    if proc.returncode != 0:
        raise CaddyError(proc.stderr.strip() or "caddy environ failed")
    for line in proc.stdout.splitlines():
        stripped = line.strip()
        if stripped.startswith(EMAIL_KEY):
            value = stripped[len(EMAIL_KEY) :].strip()
            return value or None
    return None


def set_configured_email(email: str, *, settings: ManagerSettings | None = None) -> None:
    settings = settings or ManagerSettings()
    if not EMAIL_PATTERN.match(email):
        raise ValueError(f"Invalid email address '{email}'")
    cmd = shlex.split(settings.email_set_command) + [email]
    proc = _run(cmd, settings.command_timeout)
    if proc.returncode != 0:
        raise CaddyError(proc.stderr.strip() or "setting the email failed")
