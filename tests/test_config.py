import stat
from datetime import time, timedelta

import pytest
import yaml

from workfocus import config
from workfocus.core import AuthError, ConfigError
from workfocus.infrastructure.secret_store import FileSecretStore, env_name


def test_defaults_without_config_file(tmp_path):
    settings = config.load_settings(tmp_path / "missing.yaml")

    assert settings.work_hours.start == time(8, 30)
    assert settings.work_hours.end == time(17, 0)
    assert settings.focus.duration == timedelta(minutes=45)
    assert settings.focus.granularity == timedelta(minutes=15)
    assert settings.state.task_expiry_hours == 24
    assert settings.tracker.blocked_states == ["Blocked", "On Hold"]


def test_unquoted_yaml_times_are_read_as_clock_times(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("work_hours:\n  start: 09:00\n  end: 17:30\n  timezone: Europe/Berlin\n", encoding="utf-8")

    settings = config.load_settings(path)

    assert settings.work_hours.start == time(9, 0)
    assert settings.work_hours.end == time(17, 30)
    assert str(settings.work_hours.tz) == "Europe/Berlin"


@pytest.mark.parametrize(
    "data",
    [
        {"work_hours": {"start": "25:00"}},
        {"work_hours": {"start": "17:00", "end": "09:00"}},
        {"work_hours": {"timezone": "Mars/Olympus"}},
        {"work_hours": {"workdays": ["Funday"]}},
        {"focus_blocks": {"duration_minutes": 0}},
        {"focus_blocks": {"interval_minutes": 7}},
        {"focus_blocks": {"min_fraction": 1.5}},
        {"state": {"task_expiry_hours": "soon"}},
        {"tracker": "not-a-mapping"},
    ],
)
def test_invalid_values_are_config_errors(data):
    with pytest.raises(ConfigError):
        config.Settings.from_dict(data)


def test_set_and_get_dotted_keys(tmp_path):
    path = tmp_path / "config.yaml"

    config.set_value("tracker.organization", "acme", path)
    config.set_value("work_hours.end", "18:00", path)
    config.set_value("focus_blocks.duration_minutes", "30", path)

    assert config.get_value("tracker.organization", path) == "acme"
    assert config.get_value("work_hours.end", path) == "18:00"
    assert config.get_value("focus_blocks.duration_minutes", path) == 30
    assert config.get_value("tracker.missing", path) is None
    assert config.load_settings(path).work_hours.end == time(18, 0)


def test_invalid_set_leaves_file_untouched(tmp_path):
    path = tmp_path / "config.yaml"
    config.set_value("focus_blocks.duration_minutes", "60", path)
    before = path.read_text(encoding="utf-8")

    with pytest.raises(ConfigError):
        config.set_value("work_hours.timezone", "Nowhere/Special", path)

    assert path.read_text(encoding="utf-8") == before


def test_empty_value_clears_key(tmp_path):
    path = tmp_path / "config.yaml"
    config.set_value("tracker.project", "Web", path)

    config.set_value("tracker.project", "", path)

    assert config.get_value("tracker.project", path) is None


def test_home_and_config_path_follow_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("WORKFOCUS_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("WORKFOCUS_CONFIG", raising=False)

    assert config.config_path() == tmp_path / "home" / "config.yaml"
    assert config.Settings().state.state_path == tmp_path / "home" / "state.json"

    monkeypatch.setenv("WORKFOCUS_CONFIG", str(tmp_path / "other.yaml"))
    assert config.config_path() == tmp_path / "other.yaml"


def test_tracker_require_names_missing_settings():
    with pytest.raises(ConfigError) as info:
        config.Settings().tracker.require()

    assert "tracker.organization" in info.value.message


def test_unreadable_config_is_config_error(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        config.load_settings(path)


def test_secret_store_prefers_environment(tmp_path, monkeypatch):
    store = FileSecretStore(tmp_path / "credentials.yaml")
    store.set("tracker.pat", "from-file")
    monkeypatch.setenv(env_name("tracker.pat"), "from-env")

    assert env_name("tracker.pat") == "WORKFOCUS_TRACKER_PAT"
    assert store.get("tracker.pat") == "from-env"

    monkeypatch.delenv("WORKFOCUS_TRACKER_PAT")
    assert store.get("tracker.pat") == "from-file"


def test_secret_file_is_private(tmp_path):
    path = tmp_path / "credentials.yaml"
    store = FileSecretStore(path)

    store.set("calendar.token", "graph-token")

    assert stat.S_IMODE(path.stat().st_mode) == 0o600
    assert yaml.safe_load(path.read_text(encoding="utf-8")) == {"calendar.token": "graph-token"}


def test_missing_secret_is_auth_error(tmp_path, monkeypatch):
    monkeypatch.delenv("WORKFOCUS_TIMER_TOKEN", raising=False)
    store = FileSecretStore(tmp_path / "credentials.yaml")

    with pytest.raises(AuthError) as info:
        store.get("timer.token")

    assert info.value.source == "timer"
    assert store.find("timer.token") is None


def test_secret_store_rejects_unknown_keys_and_clears(tmp_path):
    path = tmp_path / "credentials.yaml"
    store = FileSecretStore(path)

    with pytest.raises(ConfigError):
        store.set("github.token", "x")

    store.set("tracker.pat", "abc")
    store.set("tracker.pat", "")
    assert not path.exists()
