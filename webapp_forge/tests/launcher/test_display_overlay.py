from webapp_forge.launcher import display


def test_display_zero_without_wayland_signals_is_x11():
    assert display.detect_display_server("auto", {"DISPLAY": ":0"}) == "x11"


def test_forced_mode_wins():
    assert display.detect_display_server("force-x11", {"WAYLAND_DISPLAY": "wayland-1"}) == "x11"
    assert display.detect_display_server("force-wayland", {"DISPLAY": ":0"}) == "wayland"


def test_wayland_signals():
    assert display.detect_display_server("auto", {"WAYLAND_DISPLAY": "wayland-1", "DISPLAY": ":0"}) == "wayland"
    assert display.detect_display_server("auto", {"XDG_SESSION_TYPE": "wayland", "DISPLAY": ":0"}) == "wayland"


def test_no_display_handles_defaults_to_wayland():
    assert display.detect_display_server("auto", {}) == "wayland"


def test_firefox_overlay_under_wayland():
    overlay = display.build_env_overlay("firefox", "wayland", env={}, uid=1000)
    assert overlay == {
        "MOZ_ENABLE_WAYLAND": "1",
        "MOZ_DBUS_REMOTE": "1",
        "XDG_RUNTIME_DIR": "/run/user/1000",
    }


def test_chromium_overlay_never_overrides_existing_values():
    env = {"GDK_BACKEND": "x11", "XDG_RUNTIME_DIR": "/tmp/rt"}
    overlay = display.build_env_overlay("chromium", "wayland", env=env, uid=1000)
    assert overlay == {"WAYLAND_DISPLAY": "wayland-0"}

    merged = display.apply_overlay(env, overlay)
    assert merged["GDK_BACKEND"] == "x11"
    assert merged["XDG_RUNTIME_DIR"] == "/tmp/rt"


def test_qt_overlay_and_x11_runtime_dir_only():
    assert display.build_env_overlay("qutebrowser", "wayland", env={}, uid=5) == {
        "QT_QPA_PLATFORM": "wayland;xcb",
        "XDG_RUNTIME_DIR": "/run/user/5",
    }
    assert display.build_env_overlay("firefox", "x11", env={}, uid=5) == {"XDG_RUNTIME_DIR": "/run/user/5"}


def test_detect_compositor_from_env():
    assert display.detect_compositor({"SWAYSOCK": "/run/sway.sock"}, check_processes=False) == "sway"
    assert display.detect_compositor({"HYPRLAND_INSTANCE_SIGNATURE": "x"}, check_processes=False) == "hyprland"
    assert (
        display.detect_compositor({"XDG_SESSION_TYPE": "wayland", "XDG_CURRENT_DESKTOP": "KDE"}, check_processes=False)
        == "kde"
    )
    assert display.detect_compositor({}, check_processes=False) is None


def test_detect_compositor_from_processes(monkeypatch):
    monkeypatch.setattr(display, "_running_process_names", lambda: ["bash", "Hyprland"])
    assert display.detect_compositor({}) == "hyprland"
