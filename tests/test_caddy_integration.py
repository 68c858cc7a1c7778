import subprocess
from dataclasses import replace

import pytest

from caddy_manager import caddy_integration
from caddy_manager.caddy_integration import (
    CaddyError,
    read_configured_email,
    reload_caddy,
    set_configured_email,
    validate_config,
)


class FakeRun:
    def __init__(self, returncode=0, stdout="", stderr="", exc=None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.exc = exc
        self.calls: list[list[str]] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        assert kwargs["timeout"] > 0
        if self.exc is not None:
            raise self.exc
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


def test_validate_config_success(monkeypatch, settings, caddyfile):
    fake = FakeRun(stdout="Valid configuration\n")
    monkeypatch.setattr(caddy_integration.subprocess, "run", fake)
    report = validate_config(caddyfile, settings=settings)
    assert report.ok is True
    assert report.output == "Valid configuration"
    assert fake.calls == [
        ["/usr/bin/caddy", "validate", "--config", str(caddyfile), "--adapter", "caddyfile"]
    ]


def test_validate_config_reports_diagnostics(monkeypatch, settings, caddyfile):
    fake = FakeRun(returncode=1, stderr="Error: adapting config: Caddyfile:6 - unrecognized directive: redirx\n")
    monkeypatch.setattr(caddy_integration.subprocess, "run", fake)
    report = validate_config(caddyfile, settings=settings)
    assert report.ok is False
    assert "unrecognized directive" in report.output


def test_validate_config_timeout_is_invalid(monkeypatch, settings, caddyfile):
    fake = FakeRun(exc=subprocess.TimeoutExpired(["caddy"], 5))
    monkeypatch.setattr(caddy_integration.subprocess, "run", fake)
    report = validate_config(caddyfile, settings=settings)
    assert report.ok is False
    assert "timed out" in report.output


def test_validate_config_exec_error_is_invalid(monkeypatch, settings, caddyfile):
    fake = FakeRun(exc=PermissionError(13, "Permission denied"))
    monkeypatch.setattr(caddy_integration.subprocess, "run", fake)
    report = validate_config(caddyfile, settings=settings)
    assert report.ok is False
    assert "Permission denied" in report.output


def test_reload_exec_error_raises_caddy_error(monkeypatch, settings, caddyfile):
    monkeypatch.setattr(caddy_integration.subprocess, "run", FakeRun(exc=OSError(8, "Exec format error")))
    with pytest.raises(CaddyError, match="Exec format error"):
        reload_caddy(caddyfile, settings=settings)


def test_validate_config_without_binary_is_invalid(monkeypatch, settings, caddyfile):
    monkeypatch.setattr(caddy_integration, "which", lambda _name: None)
    report = validate_config(caddyfile, settings=replace(settings, caddy_bin=None))
    assert report.ok is False
    assert "caddy binary" in report.output


def test_reload_command_mode(monkeypatch, settings, caddyfile):
    fake = FakeRun()
    monkeypatch.setattr(caddy_integration.subprocess, "run", fake)
    reload_caddy(caddyfile, settings=settings)
    assert fake.calls == [["systemctl", "reload", "caddy"]]


def test_reload_caddy_mode(monkeypatch, settings, caddyfile):
    fake = FakeRun()
    monkeypatch.setattr(caddy_integration.subprocess, "run", fake)
    reload_caddy(caddyfile, settings=replace(settings, reload_mode="caddy"))
    assert fake.calls == [
        ["/usr/bin/caddy", "reload", "--config", str(caddyfile), "--adapter", "caddyfile"]
    ]


def test_reload_failure_raises(monkeypatch, settings, caddyfile):
    monkeypatch.setattr(caddy_integration.subprocess, "run", FakeRun(returncode=1, stderr="Job failed"))
    with pytest.raises(CaddyError, match="Job failed"):
        reload_caddy(caddyfile, settings=settings)


def test_reload_helper_mode(monkeypatch, settings, caddyfile):
    calls = []

    def fake_reload(command, *, timeout=None):
        calls.append((command, timeout))
        return False, "sudo -n caddy-manager-helper reload", "a password is required"

    monkeypatch.setattr(caddy_integration, "reload_caddy_service", fake_reload)
    with pytest.raises(CaddyError, match="a password is required"):
        reload_caddy(caddyfile, settings=replace(settings, reload_mode="helper"))
    assert calls == [("systemctl reload caddy", 5)]


def test_reload_unknown_mode(settings, caddyfile):
    with pytest.raises(CaddyError):
        reload_caddy(caddyfile, settings=replace(settings, reload_mode="signal"))


def test_read_configured_email(monkeypatch, settings):
    fake = FakeRun(stdout="caddy.HomeDir=/root\nemail=admin@example.com\nHOME=/root\n")
    monkeypatch.setattr(caddy_integration.subprocess, "run", fake)
    assert read_configured_email(settings=settings) == "admin@example.com"
    assert fake.calls == [["/usr/bin/caddy", "environ"]]


@pytest.mark.parametrize("stdout", ["HOME=/root\n", "email=\n"])
def test_read_configured_email_unset(monkeypatch, settings, stdout):
    monkeypatch.setattr(caddy_integration.subprocess, "run", FakeRun(stdout=stdout))
    assert read_configured_email(settings=settings) is None


def test_set_configured_email(monkeypatch, settings):
    fake = FakeRun()
    monkeypatch.setattr(caddy_integration.subprocess, "run", fake)
    set_configured_email("ops@example.com", settings=settings)
    assert fake.calls == [["caddy", "environ", "set", "email", "ops@example.com"]]


def test_set_configured_email_rejects_invalid(settings):
    with pytest.raises(ValueError):
        set_configured_email("not-an-email", settings=settings)
