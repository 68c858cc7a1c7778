from pathlib import Path

from caddy_manager import helper_runner


class DummyCommand(helper_runner.HelperCommand):
    def __init__(self, args=None):
        super().__init__(args or ["sudo", "-n", "caddy-manager-helper", "noop"])


def _fake_base(monkeypatch):
    monkeypatch.setattr(helper_runner, "_build_base_command", lambda **_kwargs: ["sudo", "-n", "helper"])


def test_copy_file_builds_command(monkeypatch, tmp_path):
    calls: list[list[str]] = []
    _fake_base(monkeypatch)

    def fake_run(args, *, timeout=None):
        calls.append(args)
        return DummyCommand(args)

    monkeypatch.setattr(helper_runner, "_run_helper", fake_run)
    source = tmp_path / "Caddyfile"
    dest = tmp_path / "Caddyfile.20240101000000.bak"
    success, cmd, error = helper_runner.copy_file(source, dest)
    assert success is True
    assert error is None
    assert calls == [["sudo", "-n", "helper", "copy", "--source", str(source), "--dest", str(dest)]]
    assert cmd.startswith("sudo -n helper copy")


def test_install_file_handles_failure(monkeypatch, tmp_path):
    _fake_base(monkeypatch)

    def fail(args, *, timeout=None):
        raise helper_runner.HelperInvocationError(DummyCommand(args), "denied")

    monkeypatch.setattr(helper_runner, "_run_helper", fail)
    success, cmd, error = helper_runner.install_file(tmp_path / "staged", Path("/etc/caddy/Caddyfile"), mode=0o640)
    assert not success
    assert cmd is not None and "--mode 0o640" in cmd
    assert error == "denied"


def test_reload_caddy_service_passes_override(monkeypatch):
    calls: list[tuple[list[str], float | None]] = []
    _fake_base(monkeypatch)

    def fake_run(args, *, timeout=None):
        calls.append((args, timeout))
        return DummyCommand(args)

    monkeypatch.setattr(helper_runner, "_run_helper", fake_run)
    success, _cmd, error = helper_runner.reload_caddy_service("rc-service caddy reload", timeout=12)
    assert success and error is None
    assert calls == [(["sudo", "-n", "helper", "reload", "--command", "rc-service caddy reload"], 12)]


def test_missing_sudo_is_reported(monkeypatch):
    monkeypatch.setattr(helper_runner.shutil, "which", lambda _name: None)
    success, cmd, error = helper_runner.copy_file(Path("/a"), Path("/b"))
    assert success is False
    assert cmd is None
    assert "sudo" in error


def test_resolve_helper_bin_absolute_missing(monkeypatch, tmp_path):
    monkeypatch.setattr(helper_runner, "HELPER_BIN", str(tmp_path / "missing-helper"))
    try:
        helper_runner._resolve_helper_bin()
    except FileNotFoundError as exc:
        assert "does not exist" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("expected FileNotFoundError")
