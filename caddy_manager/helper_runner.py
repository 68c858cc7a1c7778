"""Invoke the privileged helper script when elevated access is required."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os
import shlex
import shutil
import subprocess

HELPER_BIN = os.environ.get("CADDY_MANAGER_HELPER_BIN", "caddy-manager-helper")
SUDO_BIN = os.environ.get("CADDY_MANAGER_SUDO_BIN", "sudo")


@dataclass(slots=True)
class HelperCommand:
    args: list[str]

    @property
    def printable(self) -> str:
        return " ".join(shlex.quote(part) for part in self.args)


class HelperInvocationError(RuntimeError):
    def __init__(self, command: HelperCommand, stderr: str) -> None:
        super().__init__(stderr or "helper command failed")
        self.command = command
        self.stderr = stderr


def _resolve_helper_bin() -> str:
    """Return an absolute path for the helper executable."""
    helper_path = Path(HELPER_BIN)
    if helper_path.is_absolute():
        if helper_path.exists():
            return str(helper_path)
        raise FileNotFoundError(f"Helper executable '{HELPER_BIN}' does not exist")
    located = shutil.which(HELPER_BIN)
    if located:
        return located
    raise FileNotFoundError(f"Unable to locate helper executable '{HELPER_BIN}' in PATH")


def _build_base_command(non_interactive: bool = True) -> list[str]:
    if not shutil.which(SUDO_BIN):
        raise FileNotFoundError(f"Unable to locate sudo executable '{SUDO_BIN}'")
    helper_bin = _resolve_helper_bin()
    command = [SUDO_BIN]
    if non_interactive:
        command.append("-n")
    command.append(helper_bin)
    return command


def _run_helper(args: list[str], *, timeout: float | None = None) -> HelperCommand:
    command = HelperCommand(args)
    try:
        subprocess.run(args, capture_output=True, text=True, check=True, timeout=timeout)
    except subprocess.CalledProcessError as exc:  # pragma: no cover - relies on sudo
        raise HelperInvocationError(command, (exc.stderr or "").strip() or (exc.stdout or "").strip()) from exc
    except subprocess.TimeoutExpired as exc:  # pragma: no cover - relies on sudo
        raise HelperInvocationError(command, f"timed out after {timeout:g}s") from exc
    return command


def _invoke(extra: list[str], *, timeout: float | None = None) -> tuple[bool, str | None, str | None]:
    args: list[str] = []
    try:
        args = _build_base_command() + extra
        command = _run_helper(args, timeout=timeout)
    except (HelperInvocationError, FileNotFoundError) as exc:
        printable = exc.command.printable if isinstance(exc, HelperInvocationError) else " ".join(args) or None
        message = exc.stderr if isinstance(exc, HelperInvocationError) else str(exc)
        return False, printable, message
    return True, command.printable, None


def copy_file(source: Path, dest: Path) -> tuple[bool, str | None, str | None]:
    """Copy a root-owned file (used for backups next to the Caddyfile)."""
    return _invoke(["copy", "--source", str(source), "--dest", str(dest)])


def install_file(source: Path, dest: Path, mode: int = 0o644) -> tuple[bool, str | None, str | None]:
    """Atomically replace ``dest`` with ``source`` as root."""
    return _invoke(["install", "--source", str(source), "--dest", str(dest), "--mode", oct(mode)])


def reload_caddy_service(
    command_override: str | None = None, *, timeout: float | None = None
) -> tuple[bool, str | None, str | None]:
    extra = ["reload"]
    if command_override:
        extra.extend(["--command", command_override])
    return _invoke(extra, timeout=timeout)
