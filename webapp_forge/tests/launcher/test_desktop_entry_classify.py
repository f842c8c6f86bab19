from pathlib import Path

from webapp_forge.contracts.launcher import Provenance
from webapp_forge.launcher import desktop_entry

ICONS = Path("/home/u/.local/share/icons/hicolor/256x256/apps")
LEGACY_ICONS = Path("/home/u/.local/share/applications/icons")
PROFILES = Path("/home/u/.local/share/webapps")


def _classify(exec_line, icon=None):
    return desktop_entry.classify(
        desktop_entry.parse_exec(exec_line),
        icon,
        managed_icon_dirs=(ICONS, LEGACY_ICONS),
        profile_base=PROFILES,
    )


def test_parse_exec_helper_signature():
    spec = desktop_entry.parse_exec(
        '/home/u/.local/bin/webapp-run --profile "/home/u/.local/share/webapps/mail" '
        '--wmclass "webapp-mail" "https://mail.example.org/a%%20b" --incognito'
    )
    assert spec.program == "/home/u/.local/bin/webapp-run"
    assert spec.profile == "/home/u/.local/share/webapps/mail"
    assert spec.wmclass == "webapp-mail"
    assert spec.url == "https://mail.example.org/a%20b"
    assert spec.extra == ["--incognito"]


def test_parse_exec_app_mode_line():
    spec = desktop_entry.parse_exec("chromium --app=https://x.test --user-data-dir=/tmp/p --class=foo %U")
    assert spec.app_url == "https://x.test"
    assert spec.target_url == "https://x.test"
    assert spec.profile == "/tmp/p"
    assert spec.wmclass == "foo"


def test_owned_entry():
    assert _classify('/x/bin/webapp-run --profile "/p" --wmclass "c" "https://a.test"') is Provenance.OWNED


def test_legacy_entries():
    assert _classify("webapp-launch https://a.test") is Provenance.LEGACY
    assert _classify("/usr/bin/omarchy-launch-webapp https://a.test") is Provenance.LEGACY
    assert _classify("chromium --app=https://a.test") is Provenance.LEGACY


def test_candidate_by_icon_or_profile():
    assert _classify("some-launcher https://a.test", icon=str(ICONS / "a.png")) is Provenance.CANDIDATE
    assert _classify("some-launcher https://a.test", icon=str(LEGACY_ICONS / "a.png")) is Provenance.CANDIDATE
    assert _classify(f"brave --user-data-dir {PROFILES}/a https://a.test") is Provenance.CANDIDATE


def test_media_player_is_foreign():
    assert _classify("vlc --started-from-file %U", icon="vlc") is Provenance.FOREIGN


def test_helper_name_in_text_but_not_a_token_is_not_owned():
    assert _classify("sh -c 'echo webapp-run'") is Provenance.FOREIGN


def test_render_exec_escapes_quotes_and_percent():
    line = desktop_entry.render_exec(
        "/x/bin/webapp-run", 'https://a.test/q?x="1"&p=50%', "/p/my app", "webapp-a", ["--flag"]
    )
    assert line == (
        '/x/bin/webapp-run --profile "/p/my app" --wmclass "webapp-a" '
        '"https://a.test/q?x=\\"1\\"&p=50%%" --flag'
    )
    spec = desktop_entry.parse_exec(line)
    assert spec.url == 'https://a.test/q?x="1"&p=50%'
    assert spec.profile == "/p/my app"


def test_render_exec_escapes_dollar_and_backtick():
    url = "https://a.test/$HOME`id`"
    line = desktop_entry.render_exec("/x/bin/webapp-run", url, "/p", "webapp-a")
    assert line.endswith('"https://a.test/\\$HOME\\`id\\`"')
    assert desktop_entry.parse_exec(line).url == url


def test_render_and_read_descriptor(tmp_path):
    text = desktop_entry.render_desktop_entry(
        "My App", '/x/webapp-run --profile "/p" --wmclass "webapp-my" "https://a.test"', "/i/my.png", "webapp-my"
    )
    path = tmp_path / "my_app.desktop"
    path.write_text(text, encoding="utf-8")

    lines = text.splitlines()
    assert lines[0] == "[Desktop Entry]"
    assert "Categories=Network;WebBrowser;Utility;" in lines
    assert "Comment=My App" in lines

    descriptor = desktop_entry.descriptor_from_file(path)
    assert descriptor.id == "my_app"
    assert descriptor.name == "My App"
    assert descriptor.url == "https://a.test"
    assert descriptor.icon_path == "/i/my.png"
    assert descriptor.window_class == "webapp-my"


def test_read_desktop_file_ignores_other_groups(tmp_path):
    path = tmp_path / "x.desktop"
    path.write_text(
        "[Desktop Entry]\nName=First\nName=Second\n[Desktop Action new]\nName=Action\n", encoding="utf-8"
    )
    assert desktop_entry.read_desktop_file(path) == {"Name": "First"}
