import pytest

from webapp_forge.errors import NoUrlProvided
from webapp_forge.launcher import command


def test_app_mode_argv():
    argv = command.build_browser_argv(
        "chromium", True, "https://example.org", profile="/p/mail", wmclass="webapp-mail", extra=["--incognito"]
    )
    assert argv == [
        "chromium",
        "--app=https://example.org",
        "--class=webapp-mail",
        "--user-data-dir=/p/mail",
        "--incognito",
    ]


def test_plain_mode_ignores_profile_and_class():
    argv = command.build_browser_argv("firefox", False, "https://example.org", profile="/p", wmclass="c")
    assert argv == ["firefox", "https://example.org"]


def test_empty_url_raises():
    with pytest.raises(NoUrlProvided):
        command.build_browser_argv("chromium", True, "")


def _which(monkeypatch, *present):
    monkeypatch.setattr(command.shutil, "which", lambda cmd: f"/usr/bin/{cmd}" if cmd in present else None)


def test_wrap_prefers_uwsm_detached_with_setsid(monkeypatch):
    _which(monkeypatch, "uwsm", "setsid")
    assert command.wrap_for_session(["firefox", "u"]) == ["setsid", "uwsm", "app", "--", "firefox", "u"]


def test_wrap_uwsm_without_setsid(monkeypatch):
    _which(monkeypatch, "uwsm")
    assert command.wrap_for_session(["firefox", "u"]) == ["uwsm", "app", "--", "firefox", "u"]


def test_wrap_setsid_only_then_direct(monkeypatch):
    _which(monkeypatch, "setsid")
    assert command.wrap_for_session(["firefox", "u"]) == ["setsid", "firefox", "u"]
    _which(monkeypatch)
    assert command.wrap_for_session(["firefox", "u"]) == ["firefox", "u"]
