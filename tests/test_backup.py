from datetime import datetime
import os

import pytest

from caddy_manager import backup
from caddy_manager.errors import BackupFailure


def test_backup_path_for_uses_timestamp(tmp_path):
    source = tmp_path / "Caddyfile"
    path = backup.backup_path_for(source, datetime(2024, 5, 1, 12, 30, 45))
    assert path == tmp_path / "Caddyfile.20240501123045.bak"


def test_backup_path_for_avoids_collisions(tmp_path):
    source = tmp_path / "Caddyfile"
    when = datetime(2024, 5, 1, 12, 30, 45)
    (tmp_path / "Caddyfile.20240501123045.bak").write_text("one")
    (tmp_path / "Caddyfile.20240501123045-1.bak").write_text("two")
    assert backup.backup_path_for(source, when).name == "Caddyfile.20240501123045-2.bak"


def test_snapshot_copies_content(caddyfile):
    handle = backup.snapshot(caddyfile, use_helper=False)
    assert handle.path.parent == caddyfile.parent
    assert handle.path.name.startswith("Caddyfile.")
    assert handle.read_bytes() == caddyfile.read_bytes()


def test_two_snapshots_in_same_second_are_distinct(caddyfile):
    first = backup.snapshot(caddyfile, use_helper=False)
    second = backup.snapshot(caddyfile, use_helper=False)
    assert first.path != second.path
    assert first.path.exists() and second.path.exists()


def test_snapshot_failure_raises_backup_failure(monkeypatch, caddyfile):
    def fail(*_args, **_kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(backup.shutil, "copy2", fail)
    with pytest.raises(BackupFailure):
        backup.snapshot(caddyfile, use_helper=False)


def test_snapshot_permission_error_uses_helper(monkeypatch, caddyfile):
    calls = []

    def deny(*_args, **_kwargs):
        raise PermissionError(13, "Permission denied")

    def fake_copy(source, dest):
        calls.append((source, dest))
        dest.write_bytes(source.read_bytes())
        return True, "sudo -n caddy-manager-helper copy", None

    monkeypatch.setattr(backup.shutil, "copy2", deny)
    monkeypatch.setattr(backup, "copy_file", fake_copy)
    handle = backup.snapshot(caddyfile, use_helper=True)
    assert calls == [(caddyfile, handle.path)]
    assert handle.read_bytes() == caddyfile.read_bytes()


def test_snapshot_helper_failure_includes_command(monkeypatch, caddyfile):
    def deny(*_args, **_kwargs):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(backup.shutil, "copy2", deny)
    monkeypatch.setattr(
        backup,
        "copy_file",
        lambda source, dest: (False, "sudo -n caddy-manager-helper copy", "a password is required"),
    )
    with pytest.raises(BackupFailure) as excinfo:
        backup.snapshot(caddyfile, use_helper=True)
    assert "sudo -n caddy-manager-helper copy" in excinfo.value.message


def test_commit_replaces_content_and_keeps_mode(caddyfile):
    os.chmod(caddyfile, 0o640)
    backup.commit(caddyfile, "new.example.com {\n}\n", use_helper=False)
    assert caddyfile.read_text() == "new.example.com {\n}\n"
    assert caddyfile.stat().st_mode & 0o777 == 0o640
    leftovers = [p.name for p in caddyfile.parent.iterdir() if p.name.startswith(".Caddyfile.")]
    assert leftovers == []


def test_commit_permission_error_installs_through_helper(monkeypatch, tmp_path, caddyfile):
    installed = {}

    def deny(_path, _data):
        raise PermissionError(13, "Permission denied")

    def fake_install(source, dest, mode=0o644):
        installed["mode"] = mode
        dest.write_bytes(source.read_bytes())
        return True, "sudo -n caddy-manager-helper install", None

    monkeypatch.setattr(backup, "atomic_write_bytes", deny)
    monkeypatch.setattr(backup, "install_file", fake_install)
    monkeypatch.setattr(backup, "ensure_cache_dir", lambda: tmp_path / "cache")
    os.chmod(caddyfile, 0o644)
    backup.commit(caddyfile, b"a.com {\n}\n", use_helper=True)
    assert caddyfile.read_bytes() == b"a.com {\n}\n"
    assert installed["mode"] == 0o644


def test_commit_without_helper_propagates_permission_error(monkeypatch, caddyfile):
    def deny(_path, _data):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(backup, "atomic_write_bytes", deny)
    with pytest.raises(PermissionError):
        backup.commit(caddyfile, "x", use_helper=False)


def test_rollback_restores_original_bytes(caddyfile):
    original = caddyfile.read_bytes()
    handle = backup.snapshot(caddyfile, use_helper=False)
    backup.commit(caddyfile, "broken {\n", use_helper=False)
    backup.rollback(handle, use_helper=False)
    assert caddyfile.read_bytes() == original


def test_list_backups_newest_first(tmp_path, caddyfile):
    (tmp_path / "Caddyfile.20240101000000.bak").write_text("old")
    (tmp_path / "Caddyfile.20240301000000.bak").write_text("new")
    (tmp_path / "Caddyfile.20240301000000-1.bak").write_text("newer")
    (tmp_path / "Caddyfile.notes.bak").write_text("ignored")
    names = [handle.path.name for handle in backup.list_backups(caddyfile)]
    assert names == [
        "Caddyfile.20240301000000-1.bak",
        "Caddyfile.20240301000000.bak",
        "Caddyfile.20240101000000.bak",
    ]
