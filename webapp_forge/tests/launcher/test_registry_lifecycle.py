import io
import stat
from pathlib import Path

import pytest
from PIL import Image

from webapp_forge.contracts.launcher import Provenance
from webapp_forge import config
from webapp_forge.errors import (
    AlreadyExists,
    ForeignEntryGuard,
    IconAcquisitionFailure,
    InvalidIdentifier,
    MissingRequiredInput,
    NotFound,
)
from webapp_forge.launcher import desktop_db, helper
from webapp_forge.launcher.browser import BrowserChoice, BrowserFamily
from webapp_forge.launcher import registry as registry_mod
from webapp_forge.launcher.registry import LauncherRegistry, normalize_url


def _registry(monkeypatch, tmp_path: Path) -> LauncherRegistry:
    env = {
        "HOME": str(tmp_path / "home"),
        "XDG_CONFIG_HOME": str(tmp_path / "config"),
        "XDG_DATA_HOME": str(tmp_path / "data"),
        "WEBAPP_PATHS_BIN_DIR": str(tmp_path / "bin"),
    }
    # Keep the desktop out of the test: no xdg queries, no cache refresh.
    monkeypatch.setattr(
        helper, "resolve_browser", lambda **kwargs: BrowserChoice("chromium", BrowserFamily.CHROMIUM, "fallback")
    )
    monkeypatch.setattr(desktop_db, "_run_quiet", lambda cmd: None)
    return LauncherRegistry(env=env, invocation_id="test")


def _icon(tmp_path: Path) -> str:
    path = tmp_path / "source-icon.png"
    out = io.BytesIO()
    Image.new("RGBA", (48, 48), (0, 120, 200, 255)).save(out, format="PNG")
    path.write_bytes(out.getvalue())
    return str(path)


def _write_entry(registry: LauncherRegistry, app_id: str, name: str, exec_line: str, icon: str = "") -> Path:
    path = registry.config.desktop_dir / f"{app_id}.desktop"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        f"[Desktop Entry]\nType=Application\nName={name}\nExec={exec_line}\nIcon={icon}\n", encoding="utf-8"
    )
    return path


def test_create_writes_descriptor_icon_profile_and_helper(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)

    plan = registry.create("My Web App", "example.org", _icon(tmp_path))

    assert plan.id == "my_web_app"
    assert plan.url == "https://example.org"
    text = plan.desktop_path.read_text(encoding="utf-8")
    assert f"Exec={registry.config.helper_path} " in text
    assert '"https://example.org"' in text
    assert "StartupWMClass=webapp-my_web_app" in text
    assert stat.S_IMODE(plan.desktop_path.stat().st_mode) == 0o644
    assert plan.icon_path.stat().st_size > 0
    assert plan.profile_dir.is_dir()
    assert registry.config.helper_path.is_file()
    assert registry.config.helper_policy_path.is_file()


def test_create_then_info_round_trip(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    registry.create("Docs", "https://docs.example.org/", _icon(tmp_path))

    details = registry.info("docs")

    assert details.descriptor.name == "Docs"
    assert details.descriptor.url == "https://docs.example.org"
    assert details.provenance is Provenance.OWNED
    assert details.icon_present and details.profile_present


def test_create_with_unusable_name_fails(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    with pytest.raises(InvalidIdentifier):
        registry.create("日本語!!!", "https://x.test", _icon(tmp_path))
    assert not registry.config.desktop_dir.exists() or not any(registry.config.desktop_dir.iterdir())


def test_create_requires_all_inputs(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    with pytest.raises(MissingRequiredInput) as excinfo:
        registry.create("App", None, None)
    assert excinfo.value.fields == ["url", "icon"]


def test_create_rejects_existing_id(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    icon = _icon(tmp_path)
    registry.create("Mail", "mail.example.org", icon)
    with pytest.raises(AlreadyExists):
        registry.create("MAIL", "other.example.org", icon)


def test_dry_run_writes_nothing(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    plan = registry.create("Mail", "mail.example.org", _icon(tmp_path), dry_run=True)
    assert plan.exec_command.endswith('"https://mail.example.org"')
    assert not plan.desktop_path.exists()
    assert not plan.profile_dir.exists()
    assert not registry.config.helper_path.exists()


def test_update_without_fields_is_content_identical(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    plan = registry.create("Chat App", "chat.example.org/", _icon(tmp_path))
    before = plan.desktop_path.read_bytes()

    registry.update("chat_app")

    assert plan.desktop_path.read_bytes() == before


def test_update_with_icon_at_its_own_path_keeps_descriptor(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    plan = registry.create("Gmail", "mail.google.com", _icon(tmp_path))
    before = plan.desktop_path.read_bytes()
    icon_bytes = plan.icon_path.read_bytes()

    updated = registry.update("gmail", icon_source=str(plan.icon_path))

    assert updated.reuse_icon
    assert plan.desktop_path.read_bytes() == before
    assert plan.icon_path.read_bytes() == icon_bytes


def test_update_with_identical_icon_copy_skips_acquisition(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    plan = registry.create("Gmail", "mail.google.com", _icon(tmp_path))
    copy = tmp_path / "copy.png"
    copy.write_bytes(plan.icon_path.read_bytes())
    acquired = []
    monkeypatch.setattr(registry_mod, "acquire_icon", lambda *args: acquired.append(args))

    updated = registry.update("gmail", icon_source=str(copy))

    assert updated.reuse_icon
    assert acquired == []


def test_update_with_different_icon_replaces_it(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    plan = registry.create("Gmail", "mail.google.com", _icon(tmp_path))
    before = plan.icon_path.read_bytes()
    other = tmp_path / "other.png"
    out = io.BytesIO()
    Image.new("RGBA", (48, 48), (250, 10, 10, 255)).save(out, format="PNG")
    other.write_bytes(out.getvalue())

    updated = registry.update("gmail", icon_source=str(other))

    assert not updated.reuse_icon
    assert plan.icon_path.read_bytes() != before


def test_failed_icon_leaves_no_profile_behind(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    empty = tmp_path / "empty.png"
    empty.write_bytes(b"")

    with pytest.raises(IconAcquisitionFailure):
        registry.create("Gmail", "mail.google.com", str(empty))

    assert not (registry.config.profile_dir / "gmail").exists()
    assert registry.orphaned_profiles() == []


def test_per_app_paths_do_not_move_the_launcher(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    app_ini = config.app_config_path("gmail", registry.env)
    app_ini.parent.mkdir(parents=True, exist_ok=True)
    app_ini.write_text(f"[paths]\ndesktop_dir={tmp_path / 'elsewhere'}\n", encoding="utf-8")

    plan = registry.create("Gmail", "mail.google.com", _icon(tmp_path))

    assert plan.desktop_path == registry.config.desktop_dir / "gmail.desktop"
    assert not (tmp_path / "elsewhere").exists()
    assert [s.id for s in registry.list()] == ["gmail"]
    assert registry.info("gmail").descriptor.url == "https://mail.google.com"
    assert registry.orphaned_profiles() == []


def test_update_changes_only_supplied_fields(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    registry.create("Gmail", "mail.google.com", _icon(tmp_path))

    registry.update("gmail", url="https://inbox.google.com/")

    details = registry.info("gmail")
    assert details.descriptor.url == "https://inbox.google.com"
    assert details.descriptor.name == "Gmail"
    assert details.descriptor.window_class == "webapp-gmail"


def test_update_keeps_id_when_name_changes(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    registry.create("Gmail", "mail.google.com", _icon(tmp_path))
    plan = registry.update("gmail", name="Google Mail")
    assert plan.id == "gmail"
    assert "Name=Google Mail" in plan.desktop_path.read_text(encoding="utf-8")


def test_update_unknown_id_lists_known_ids(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    registry.create("Gmail", "mail.google.com", _icon(tmp_path))
    with pytest.raises(NotFound) as excinfo:
        registry.update("nope")
    assert excinfo.value.known_ids == ["gmail"]
    assert "gmail" in str(excinfo.value)


def test_only_owned_entries_are_bulk_candidates(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    registry.create("Gmail", "mail.google.com", _icon(tmp_path))
    _write_entry(registry, "vlc", "VLC media player", "/usr/bin/vlc --started-from-file %U", icon="vlc")

    kinds = {item.id: item.provenance for item in registry.list()}
    assert kinds == {"gmail": Provenance.OWNED, "vlc": Provenance.FOREIGN}
    assert [item.id for item in registry.bulk_delete_candidates()] == ["gmail"]


def test_foreign_entries_need_force_and_confirmation(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    path = _write_entry(registry, "vlc", "VLC media player", "/usr/bin/vlc %U", icon="vlc")

    with pytest.raises(ForeignEntryGuard):
        registry.delete("vlc")
    with pytest.raises(ForeignEntryGuard):
        registry.delete("vlc", confirmed=True)
    with pytest.raises(ForeignEntryGuard):
        registry.update("vlc", url="https://x.test", confirmed=True)
    assert path.exists()

    registry.delete("vlc", confirmed=True, force=True)
    assert not path.exists()


def test_legacy_entries_need_confirmation(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    path = _write_entry(registry, "old", "Old App", "webapp-launch https://old.example.org")

    with pytest.raises(ForeignEntryGuard):
        registry.delete("old")
    result = registry.delete("old", confirmed=True)
    assert result.provenance is Provenance.LEGACY
    assert not path.exists()


def test_delete_keeps_profile_and_helper_unless_purged(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    icon = _icon(tmp_path)
    first = registry.create("Gmail", "mail.google.com", icon)
    second = registry.create("Calendar", "calendar.google.com", icon)

    result = registry.delete("gmail")
    assert result.desktop_removed and result.icon_removed
    assert not result.profile_removed
    assert not first.desktop_path.exists()
    assert not first.icon_path.exists()
    assert first.profile_dir.is_dir()
    assert registry.config.helper_path.is_file()

    registry.delete("calendar", purge=True)
    assert not second.profile_dir.exists()
    assert registry.config.helper_path.is_file()


def test_missing_icon_status_treats_empty_file_as_missing(monkeypatch, tmp_path):
    registry = _registry(monkeypatch, tmp_path)
    plan = registry.create("Gmail", "mail.google.com", _icon(tmp_path))
    plan.icon_path.write_bytes(b"")

    [summary] = registry.list_owned()
    assert summary.status == "Missing icon"
    assert not registry.info("gmail").icon_present


def test_normalize_url():
    assert normalize_url("example.org") == "https://example.org"
    assert normalize_url("http://example.org/") == "http://example.org"
    assert normalize_url("https://example.org/path//") == "https://example.org/path/"
    with pytest.raises(MissingRequiredInput):
        normalize_url("  ")
