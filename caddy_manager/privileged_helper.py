"""Privileged helper commands for caddy-manager.

This module is intended to be executed via sudo. It exposes a very small surface
area so operators can grant password-less sudo access to `caddy-manager-helper`
without giving the manager full root access.
"""
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
from pathlib import Path

import click

from .backup import atomic_write_bytes


@click.group()
def main() -> None:
    """Run restricted privileged operations for caddy-manager."""


@main.command()
@click.option("--source", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True)
@click.option("--dest", type=click.Path(dir_okay=False, path_type=Path), required=True)
def copy(source: Path, dest: Path) -> None:
    """Copy the Caddyfile to a backup path, refusing to overwrite."""
    if dest.exists():
        raise click.ClickException(f"{dest} already exists")
    shutil.copy2(source, dest)
    click.echo(f"Copied {source} -> {dest}")


@main.command()
@click.option("--source", type=click.Path(exists=True, dir_okay=False, path_type=Path), required=True)
@click.option("--dest", type=click.Path(dir_okay=False, path_type=Path), required=True)
@click.option("--mode", type=str, default="0o644")
def install(source: Path, dest: Path, mode: str) -> None:
    """Atomically install a staged Caddyfile with controlled permissions."""
    atomic_write_bytes(dest, source.read_bytes())
    os.chmod(dest, int(mode, 8))
    click.echo(f"Installed {source} -> {dest}")


@main.command()
@click.option("--command", default="systemctl reload caddy", help="Reload command to execute.")
def reload(command: str) -> None:
    """Reload the running Caddy daemon."""
    subprocess.run(shlex.split(command), check=True)
    click.echo("Reloaded Caddy")


if __name__ == "__main__":
    main()
