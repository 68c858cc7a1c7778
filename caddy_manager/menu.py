"""Simple interactive terminal menu built with colorama and rich."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from colorama import Fore, Style, init as colorama_init
from rich.console import Console, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .caddy_integration import CaddyError
from .coordinator import ApplyResult
from .errors import AlreadyExists, ManagerError, ValidationFailure
from .manager import CaddyfileManager
from .store import REDIRECT, REVERSE_PROXY


@dataclass(slots=True)
class MenuOption:
    key: str
    description: str
    handler: Callable[[], None]


class TerminalMenuApp:
    """Scrolling menu that prints the block table, results and prompts."""

    def __init__(self, manager: CaddyfileManager, *, check_email: bool = True) -> None:
        colorama_init(autoreset=True)
        self.console = Console()
        self.manager = manager
        self.check_email = check_email
        self.last_output: RenderableType | None = None
        self.running = True

    def run(self) -> None:
        """Enter the interactive loop."""
        try:
            if self.check_email:
                self._ensure_email()
            options = self._build_menu()
            while self.running:
                self._render_cycle(options)
                choice = input(f"{Fore.CYAN}Choose an option{Style.RESET_ALL}: ").strip()
                if not choice:
                    continue
                option = next((opt for opt in options if opt.key == choice), None)
                if option is None:
                    self._set_message("Invalid option. Please choose a valid option.", style="red")
                    continue
                try:
                    option.handler()
                except KeyboardInterrupt:
                    self._set_message("Action cancelled.", style="yellow")
                except (ManagerError, CaddyError, PermissionError) as exc:
                    self._report_error(exc)
        except (KeyboardInterrupt, EOFError):
            self.console.print("\nExiting...")

    # Rendering helpers

    def _render_cycle(self, options: list[MenuOption]) -> None:
        self.console.rule("caddy-manager")
        if self.last_output is not None:
            self.console.print(self.last_output)
            self.console.print()
            self.last_output = None
        self.console.print("What would you like to do?")
        for option in options:
            self.console.print(f"  [cyan]{option.key}[/cyan]) {option.description}")

    def _build_menu(self) -> list[MenuOption]:
        return [
            MenuOption("1", "Add a domain", self._add_domain),
            MenuOption("2", "Add a subdomain", self._add_subdomain),
            MenuOption("3", "List configuration", self._list_blocks),
            MenuOption("4", "Remove a configuration", self._remove_block),
            MenuOption("5", "Backup configuration", self._backup),
            MenuOption("6", "Validate configuration", self._validate),
            MenuOption("7", "Reload Caddy", self._reload),
            MenuOption("8", "Edit a configuration", self._edit_block),
            MenuOption("9", "Exit", self._quit),
        ]

    def _blocks_table(self) -> Table:
        table = Table(title=f"Blocks in {self.manager.caddyfile}", show_lines=False)
        table.add_column("#", justify="right", style="grey50")
        table.add_column("Name", style="bold")
        table.add_column("Kind")
        table.add_column("Target")
        for index, summary in enumerate(self.manager.list_blocks(), start=1):
            table.add_row(str(index), summary.name, summary.kind, summary.target or "-")
        return table

    # Actions

    def _ensure_email(self) -> None:
        def prompt() -> str:
            self.console.print("No email configured for Caddy. This is needed for HTTPS certificates.")
            return input("Please enter your email address: ")

        email = self.manager.ensure_email(
            prompt,
            on_invalid=lambda _value: self.console.print("[red]Invalid email format. Please try again.[/red]"),
        )
        self._set_message(f"Using ACME email {email}.", style="green")

    def _add_domain(self) -> None:
        domain = input("Enter the domain name (e.g., example.com): ").strip()
        redirect = input("Enter the redirect URL (leave empty for local proxy): ").strip()
        self._report_result(self.manager.add_domain(domain, redirect or None))

    def _add_subdomain(self) -> None:
        domain = input("Enter the main domain (e.g., example.com): ").strip()
        subdomain = input("Enter the subdomain (e.g., blog): ").strip()
        redirect = input("Enter the redirect URL (leave empty for local proxy): ").strip()
        self._report_result(self.manager.add_subdomain(domain, subdomain, redirect or None))

    def _list_blocks(self) -> None:
        table = self._blocks_table()
        if not table.row_count:
            self._set_message("No configuration blocks found.", style="yellow")
            return
        self._set_renderable(table)

    def _remove_block(self) -> None:
        target = input("Enter the domain or subdomain to remove (e.g., example.com or blog.example.com): ").strip()
        self._report_result(self.manager.remove(target))

    def _backup(self) -> None:
        handle = self.manager.backup()
        self._set_message(f"Backup created at: {handle.path}", style="green")

    def _validate(self) -> None:
        report = self.manager.validate()
        if report.ok:
            self._set_message("Configuration is valid.", style="green")
            return
        self._set_renderable(Panel(report.output or "no output", title="Configuration errors detected", border_style="red"))

    def _reload(self) -> None:
        self.manager.reload()
        self._set_message("Caddy reloaded successfully.", style="green")

    def _edit_block(self) -> None:
        target = input("Enter the domain or subdomain to edit (e.g., example.com or blog.example.com): ").strip()
        block = self.manager.show(target)
        self.console.print(Panel(block.text.rstrip("\n"), title=f"Current configuration for '{target}'", border_style="cyan"))
        confirm = input("Do you want to modify this block? (y/n): ").strip()
        if confirm not in {"y", "Y"}:
            self._set_message("Edit cancelled.", style="yellow")
            return
        default_proxy = self.manager.settings.default_proxy
        self.console.print("Choose configuration type:")
        self.console.print(f"1) Reverse Proxy (default: {default_proxy})")
        self.console.print("2) Redirection")
        option = input("Option (1/2): ").strip()
        if option == "1":
            proxy = input(f"Enter reverse proxy address (default: {default_proxy}): ").strip()
            result = self.manager.edit(target, REVERSE_PROXY.name, proxy or default_proxy)
        elif option == "2":
            url = input("Enter redirection URL: ").strip()
            result = self.manager.edit(target, REDIRECT.name, url)
        else:
            self._set_message("Invalid option, aborting edit.", style="red")
            return
        self._report_result(result)

    def _quit(self) -> None:
        self.running = False
        self.console.print("Exiting...")

    # Output helpers

    def _report_result(self, result: ApplyResult) -> None:
        summary = result.block.summary()
        self._set_message(
            f"{result.action.capitalize()} of '{summary.name}' applied "
            f"(backup: {result.backup.path}).",
            style="green",
        )

    def _report_error(self, exc: Exception) -> None:
        if isinstance(exc, AlreadyExists):
            self._set_renderable(
                Panel(exc.existing.rstrip("\n"), title=f"'{exc.name}' already exists", border_style="yellow")
            )
        elif isinstance(exc, ValidationFailure):
            body = f"{exc.diagnostics}\n\nThe previous Caddyfile was restored from {exc.backup_path}."
            self._set_renderable(Panel(body, title="Configuration errors detected", border_style="red"))
        else:
            self._set_message(str(exc), style="red")

    def _set_message(self, message: str, *, style: str | None = None) -> None:
        text = Text(message, style=style)
        self.last_output = text

    def _set_renderable(self, renderable: RenderableType) -> None:
        self.last_output = renderable


def run_menu(manager: CaddyfileManager, *, check_email: bool = True) -> None:
    TerminalMenuApp(manager, check_email=check_email).run()
