import json

from campuselectronics.models import Theme
from campuselectronics.session import Session, ThemeState, ThemeStore


def test_mock_login_accepts_any_credentials():
    session = Session()
    assert session.seller_identity() == ("anonymous", "Student")

    user = session.mock_login("asha@campus.edu", "Asha")
    assert session.user is user
    assert user.email == "asha@campus.edu"
    assert session.seller_identity() == (user.user_id, "Asha")

    other = session.mock_login("", "")
    assert other.name == "Student User"
    assert other.user_id != user.user_id

    session.logout()
    assert session.user is None


def test_theme_store_round_trip_and_missing_file(tmp_path):
    store = ThemeStore(tmp_path / "state" / "theme.json")
    assert store.read() is None

    store.write(Theme.DARK)
    assert store.read() is Theme.DARK
    assert json.loads(store.path.read_text(encoding="utf-8")) == {"theme": "dark"}


def test_theme_store_ignores_invalid_content(tmp_path):
    path = tmp_path / "theme.json"
    path.write_text("{kaputt", encoding="utf-8")
    assert ThemeStore(path).read() is None

    path.write_text(json.dumps({"theme": "sepia"}), encoding="utf-8")
    assert ThemeStore(path).read() is None

    path.write_text(json.dumps(["dark"]), encoding="utf-8")
    assert ThemeStore(path).read() is None


def test_theme_store_keeps_other_keys(tmp_path):
    path = tmp_path / "theme.json"
    path.write_text(json.dumps({"other": 1}), encoding="utf-8")
    ThemeStore(path).write(Theme.LIGHT)
    assert json.loads(path.read_text(encoding="utf-8")) == {"other": 1, "theme": "light"}


def test_toggle_twice_persists_light_and_fresh_session_applies_it(tmp_path):
    path = tmp_path / "theme.json"
    applied = []

    state = ThemeState.load(ThemeStore(path), apply=applied.append)
    assert state.theme is Theme.LIGHT
    assert state.toggle() is Theme.DARK
    assert ThemeStore(path).read() is Theme.DARK
    assert state.toggle() is Theme.LIGHT
    assert ThemeStore(path).read() is Theme.LIGHT
    assert applied == [Theme.LIGHT, Theme.DARK, Theme.LIGHT]

    rendered = []
    fresh = ThemeState.load(ThemeStore(path), apply=lambda theme: rendered.append(("apply", theme)))
    rendered.append(("render", fresh.theme))
    assert rendered == [("apply", Theme.LIGHT), ("render", Theme.LIGHT)]


def test_theme_state_loads_persisted_dark(tmp_path):
    store = ThemeStore(tmp_path / "theme.json")
    store.write(Theme.DARK)
    assert ThemeState.load(store).theme is Theme.DARK
