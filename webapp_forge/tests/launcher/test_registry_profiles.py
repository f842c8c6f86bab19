import io
import json
from pathlib import Path

import pytest
from PIL import Image

from webapp_forge import config
from webapp_forge.errors import AmbiguousMatch, ForeignEntryGuard, NotFound
from webapp_forge.launcher import desktop_db, helper
from webapp_forge.launcher import registry as registry_mod
from webapp_forge.launcher.browser import BrowserChoice, BrowserFamily
from webapp_forge.launcher.registry import LauncherRegistry


def _registry(monkeypatch, tmp_path: Path) -> LauncherRegistry:
    env = {
        "HOME": str(tmp_path / "home"),
        "XDG_CONFIG_HOME": str(tmp_path / "config"),
        "XDG_DATA_HOME": str(tmp_path / "data"),
        "WEBAPP_PATHS_BIN_DIR": str(tmp_path / "bin"),
    }
    monkeypatch.setattr(
        helper, "resolve_browser", lambda **kwargs: BrowserChoice("chromium", BrowserFamily.CHROMIUM, "fallback")
    )
    monkeypatch.setattr(desktop_db, "_run_quiet", lambda cmd: None)
    return LauncherRegistry(env=env, invocation_id="test")


def _icon(tmp_path: Path) -> str:
    path = tmp_path / "source-icon.png"
    if not path.exists():
        out = io.BytesIO()
        Image.new("RGBA", (32, 32), (10, 200, 10, 255)).save(out, format="PNG")
        path.write_bytes(out.getvalue())
    return str(path)


def test_orphan_reported_until_descriptor_exists(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    ghost = registry.config.profile_dir / "ghost"
    ghost.mkdir(parents=True)
    (ghost / "Cookies").write_bytes(b"x" * 10)

    orphans = registry.orphaned_profiles()
    assert [p.id for p in orphans] == ["ghost"]
    assert orphans[0].size_bytes == 10

    registry.create("Ghost", "ghost.example.org", _icon(tmp_path))
    assert registry.orphaned_profiles() == []
    [profile] = registry.profiles()
    assert profile.app_name == "Ghost"


def test_clean_profiles_asks_before_removing(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    registry.create("Kept", "kept.example.org", _icon(tmp_path))
    orphan = registry.config.profile_dir / "stale"
    orphan.mkdir(parents=True)

    assert registry.clean_profiles(lambda items: False) == []
    assert orphan.is_dir()

    seen = []

    def approve(items):
        seen.extend(p.id for p in items)
        return True

    removed = registry.clean_profiles(approve)
    assert seen == ["stale"]
    assert [p.id for p in removed] == ["stale"]
    assert not orphan.exists()
    assert (registry.config.profile_dir / "kept").is_dir()


def test_find_exact_then_substring(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    icon = _icon(tmp_path)
    registry.create("Mail", "mail.example.org", icon)
    registry.create("Mail Work", "work.example.org", icon)
    registry.create("Calendar", "cal.example.org", icon)

    assert registry.find("MAIL").id == "mail"
    assert registry.find("calen").id == "calendar"
    assert registry.find("mail_work").name == "Mail Work"

    with pytest.raises(AmbiguousMatch) as excinfo:
        registry.find("ai")
    assert excinfo.value.matches == ["mail", "mail_work"]

    with pytest.raises(NotFound) as excinfo:
        registry.find("zzz")
    assert excinfo.value.known_ids == ["calendar", "mail", "mail_work"]


def test_export_writes_record_and_app_config(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    plan = registry.create("Mail", "mail.example.org", _icon(tmp_path))
    app_ini = config.app_config_path("mail", registry.env)
    app_ini.parent.mkdir(parents=True, exist_ok=True)
    app_ini.write_text("[browser]\ncommand=brave\n", encoding="utf-8")

    result = registry.export("mail")

    record = json.loads(result.record_path.read_text(encoding="utf-8"))
    assert record["app_id"] == "mail"
    assert record["name"] == "Mail"
    assert record["url"] == "https://mail.example.org"
    assert record["icon"] == str(plan.icon_path)
    assert record["version"] == "1.0"
    assert result.record_path.parent == registry.config.export_dir
    assert result.config_path.read_text(encoding="utf-8") == "[browser]\ncommand=brave\n"


def test_backup_copies_owned_descriptors_configs_and_manifest(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    registry.create("Mail", "mail.example.org", _icon(tmp_path))
    foreign = registry.config.desktop_dir / "vlc.desktop"
    foreign.write_text("[Desktop Entry]\nName=VLC\nExec=vlc %U\n", encoding="utf-8")
    app_ini = config.app_config_path("mail", registry.env)
    app_ini.parent.mkdir(parents=True, exist_ok=True)
    app_ini.write_text("[app]\nicon_size=128\n", encoding="utf-8")

    summary = registry.backup()

    assert summary.path.parent == registry.config.backup_dir
    assert summary.path.name.startswith("webapps_")
    assert summary.descriptor_count == 1
    assert summary.config_count == 1
    assert (summary.path / "mail.desktop").is_file()
    assert not (summary.path / "vlc.desktop").exists()
    assert (summary.path / "configs" / "mail.ini").is_file()
    assert "Total webapps: 1" in (summary.path / "manifest.txt").read_text(encoding="utf-8")


class DummyPopen:
    calls = []

    def __init__(self, argv, **kwargs):
        DummyPopen.calls.append({"argv": argv, "kwargs": kwargs})
        self.pid = 4242


def test_test_launch_spawns_exec_detached(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    plan = registry.create("Mail", "mail.example.org", _icon(tmp_path))
    DummyPopen.calls = []
    monkeypatch.setattr(registry_mod.subprocess, "Popen", DummyPopen)
    monkeypatch.setattr(registry_mod, "profile_in_use", lambda profile: True)

    check = registry.test_launch("mail")

    assert check.pid == 4242
    assert check.already_running
    call = DummyPopen.calls[0]
    assert call["argv"][0] == str(registry.config.helper_path)
    assert call["argv"][-1] == "https://mail.example.org"
    assert call["kwargs"]["start_new_session"] is True
    assert check.profile_dir == plan.profile_dir


def test_test_launch_refuses_foreign(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    path = registry.config.desktop_dir / "vlc.desktop"
    path.parent.mkdir(parents=True)
    path.write_text("[Desktop Entry]\nName=VLC\nExec=vlc %U\n", encoding="utf-8")
    with pytest.raises(ForeignEntryGuard):
        registry.test_launch("vlc", spawn=False)


def test_profile_in_use_matches_user_data_dir(monkeypatch):
    class Proc:
        def __init__(self, pid, cmdline):
            self.info = {"pid": pid, "cmdline": cmdline}

    procs = [
        Proc(1, ["bash"]),
        Proc(2, ["chromium", "--app=https://a.test", "--user-data-dir=/data/webapps/mail/"]),
    ]
    monkeypatch.setattr(registry_mod.psutil, "process_iter", lambda attrs: iter(procs))

    assert registry_mod.profile_in_use("/data/webapps/mail", exclude_pid=99) is False
    procs[1].info["cmdline"][-1] = "--user-data-dir=/data/webapps/mail"
    assert registry_mod.profile_in_use("/data/webapps/mail", exclude_pid=99) is True
