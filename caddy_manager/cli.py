"""CLI entry point for caddy-manager."""
from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import Any, Callable, NoReturn
import json

import click

from . import __version__
from .caddy_integration import CaddyError
from .config import CADDYFILE, DB_PATH, ManagerSettings
from .coordinator import ApplyResult
from .errors import ManagerError
from .logs import setup_logging
from .manager import CaddyfileManager
from .store import REDIRECT, REVERSE_PROXY
from .versioning import collect_version_info, store_current_version, stored_version

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass(slots=True)
class CliState:
    manager: CaddyfileManager
    skip_email_check: bool = False
    email_checked: bool = False


def _echo_json(payload: dict) -> None:
    click.echo(json.dumps(payload))


def _fail(payload: dict[str, Any]) -> NoReturn:
    _echo_json({"status": "error", **payload})
    raise SystemExit(1)


def _handle_errors(func: Callable[..., None]) -> Callable[..., None]:
    """Render structured failures as JSON and exit with status 1."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            func(*args, **kwargs)
        except ManagerError as exc:
            _fail(exc.to_dict())
        except CaddyError as exc:
            _fail({"kind": "caddy_error", "message": str(exc)})
        except PermissionError as exc:
            _fail({"kind": "permission_denied", "message": str(exc)})

    return wrapper


def _preflight(state: CliState) -> None:
    """Check the Caddyfile exists and, once per session, that an email is set."""
    state.manager.load()
    if state.skip_email_check or state.email_checked:
        return
    state.manager.ensure_email(
        lambda: click.prompt("Please enter your email address", err=True),
        on_invalid=lambda _value: click.echo("Invalid email format. Please try again.", err=True),
    )
    state.email_checked = True


def _result_payload(result: ApplyResult) -> dict[str, Any]:
    summary = result.block.summary()
    return {
        "status": "ok",
        "action": result.action,
        "name": summary.name,
        "kind": summary.kind,
        "target": summary.target,
        "state": result.state.value,
        "backup": str(result.backup.path),
    }


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option(
    "--caddyfile",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="CADDY_MANAGER_CADDYFILE",
    default=CADDYFILE,
    show_default=True,
)
@click.option("--db", "db_path", type=click.Path(dir_okay=False, path_type=Path), envvar="CADDY_MANAGER_DB")
@click.option("--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False), envvar="CADDY_MANAGER_LOG_LEVEL", default="WARNING")
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), envvar="CADDY_MANAGER_LOG_FILE")
@click.option("--skip-email-check", is_flag=True, envvar="CADDY_MANAGER_SKIP_EMAIL_CHECK", help="Do not verify the ACME email setting.")
@click.pass_context
def main(
    ctx: click.Context,
    caddyfile: Path,
    db_path: Path | None,
    log_level: str,
    log_file: Path | None,
    skip_email_check: bool,
) -> None:
    """Manage the site blocks of a Caddyfile safely.

    Without a command the interactive menu is launched.
    """
    setup_logging(log_level, log_file)
    settings = ManagerSettings(caddyfile=caddyfile, db_path=db_path or DB_PATH)
    ctx.obj = CliState(manager=CaddyfileManager(settings), skip_email_check=skip_email_check)
    if ctx.invoked_subcommand is None:
        ctx.invoke(menu)


@main.command()
@click.argument("domain")
@click.argument("redirect", required=False)
@click.pass_obj
@_handle_errors
def add(state: CliState, domain: str, redirect: str | None) -> None:
    """Add DOMAIN as a reverse proxy, or as a redirect to REDIRECT."""
    _preflight(state)
    _echo_json(_result_payload(state.manager.add_domain(domain, redirect or None)))


@main.command("add-subdomain")
@click.argument("domain")
@click.argument("subdomain")
@click.argument("redirect", required=False)
@click.pass_obj
@_handle_errors
def add_subdomain(state: CliState, domain: str, subdomain: str, redirect: str | None) -> None:
    """Add SUBDOMAIN.DOMAIN as a reverse proxy, or as a redirect to REDIRECT."""
    _preflight(state)
    _echo_json(_result_payload(state.manager.add_subdomain(domain, subdomain, redirect or None)))


@main.command()
@click.argument("name")
@click.option("--proxy", "proxy", help="Reverse proxy upstream address.")
@click.option("--redirect", "redirect", help="Redirect URL.")
@click.option("--body-file", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Replace the block body with this file's content.")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_obj
@_handle_errors
def edit(state: CliState, name: str, proxy: str | None, redirect: str | None, body_file: Path | None, yes: bool) -> None:
    """Replace the configuration of NAME, keeping its position in the file."""
    if sum(value is not None for value in (proxy, redirect, body_file)) > 1:
        raise click.UsageError("Use only one of --proxy, --redirect and --body-file.")
    _preflight(state)
    manager = state.manager
    current = manager.show(name)

    if body_file is not None:
        result = manager.replace_body(name, body_file.read_text(encoding="utf-8"))
    elif proxy is not None:
        result = manager.edit(name, REVERSE_PROXY.name, proxy)
    elif redirect is not None:
        result = manager.edit(name, REDIRECT.name, redirect)
    else:
        click.echo(f"Current configuration for '{name}':", err=True)
        click.echo(current.text, err=True)
        if not yes and not click.confirm("Do you want to modify this block?", err=True):
            _echo_json({"status": "cancelled", "name": name})
            return
        click.echo("Choose configuration type:", err=True)
        click.echo(f"1) Reverse Proxy (default: {manager.settings.default_proxy})", err=True)
        click.echo("2) Redirection", err=True)
        option = click.prompt("Option", type=click.Choice(["1", "2"]), err=True)
        if option == "1":
            address = click.prompt(
                "Enter reverse proxy address",
                default=manager.settings.default_proxy,
                err=True,
            )
            result = manager.edit(name, REVERSE_PROXY.name, address)
        else:
            url = click.prompt("Enter redirection URL", err=True)
            result = manager.edit(name, REDIRECT.name, url)
    _echo_json(_result_payload(result))


@main.command()
@click.argument("name", required=False)
@click.pass_obj
@_handle_errors
def remove(state: CliState, name: str | None) -> None:
    """Remove the block for NAME (prompted when omitted)."""
    _preflight(state)
    if not name:
        name = click.prompt(
            "Enter the domain or subdomain to remove (e.g., example.com or blog.example.com)",
            err=True,
        )
    _echo_json(_result_payload(state.manager.remove(name)))


@main.command()
@click.argument("name")
@click.pass_obj
@_handle_errors
def show(state: CliState, name: str) -> None:
    """Print the current block for NAME."""
    store = state.manager.store()
    span = store.find(name)
    block = store.get(name)
    if span is None or block is None:
        _fail({"kind": "not_found", "message": f"Configuration for '{name}' does not exist."})
    summary = block.summary()
    _echo_json(
        {
            "status": "ok",
            "name": summary.name,
            "kind": summary.kind,
            "target": summary.target,
            "start_line": span.start_line,
            "end_line": span.end_line,
            "text": block.text,
        }
    )


@main.command("list")
@click.pass_obj
@_handle_errors
def list_cmd(state: CliState) -> None:
    """List the configured blocks in file order."""
    blocks = state.manager.list_blocks()
    _echo_json(
        {
            "status": "ok",
            "caddyfile": str(state.manager.caddyfile),
            "blocks": [{"name": b.name, "kind": b.kind, "target": b.target} for b in blocks],
        }
    )


@main.command()
@click.option("--list", "list_only", is_flag=True, help="List existing backups instead of creating one.")
@click.pass_obj
@_handle_errors
def backup(state: CliState, list_only: bool) -> None:
    """Create a timestamped backup of the Caddyfile."""
    if list_only:
        handles = state.manager.list_backups()
        _echo_json(
            {
                "status": "ok",
                "backups": [
                    {"path": str(handle.path), "created_at": handle.created_at.isoformat(timespec="seconds")}
                    for handle in handles
                ],
            }
        )
        return
    handle = state.manager.backup()
    _echo_json({"status": "ok", "backup": str(handle.path)})


@main.command()
@click.pass_obj
@_handle_errors
def validate(state: CliState) -> None:
    """Validate the Caddyfile without reloading."""
    report = state.manager.validate()
    if not report.ok:
        _fail({"kind": "invalid", "message": "Configuration errors detected.", "diagnostics": report.output})
    _echo_json({"status": "ok", "caddyfile": str(state.manager.caddyfile), "diagnostics": report.output})


@main.command()
@click.pass_obj
@_handle_errors
def reload(state: CliState) -> None:
    """Reload the Caddy configuration."""
    state.manager.reload()
    _echo_json({"status": "ok", "reloaded": str(state.manager.caddyfile)})


@main.command()
@click.option("--limit", type=click.IntRange(min=1), default=20, show_default=True)
@click.pass_obj
@_handle_errors
def history(state: CliState, limit: int) -> None:
    """Show recent add/edit/remove attempts and how far they got."""
    _echo_json({"status": "ok", "operations": state.manager.history(limit)})


@main.command("version")
@click.pass_obj
@_handle_errors
def version_cmd(state: CliState) -> None:
    """Report current and latest known versions."""
    info = collect_version_info()
    db_path = state.manager.settings.db_path
    previous = stored_version(db_path=db_path)
    store_current_version(db_path=db_path)
    _echo_json(
        {
            "status": "ok",
            "current_version": info.current,
            "previous_version": previous,
            "latest_version": info.latest,
            "update_available": info.update_available,
            "source": info.source,
        }
    )


@main.command()
@click.pass_obj
@_handle_errors
def menu(state: CliState) -> None:
    """Launch the interactive menu."""
    from .menu import run_menu

    state.manager.load()
    run_menu(state.manager, check_email=not state.skip_email_check)


def run() -> None:
    """Console-script entry point; usage errors exit with status 1."""
    try:
        main.main(standalone_mode=False)
    except click.UsageError as exc:
        exc.show()
        raise SystemExit(1) from None
    except click.ClickException as exc:
        exc.show()
        raise SystemExit(exc.exit_code) from None
    except click.Abort:
        click.echo("Aborted!", err=True)
        raise SystemExit(1) from None
