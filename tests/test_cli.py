import json
from types import SimpleNamespace

import pytest

from workfocus.core import RemoteError
from workfocus.core.errors import REMOTE_NETWORK
from workfocus.interface import cli, cli_commands, cli_interactive


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("WORKFOCUS_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("WORKFOCUS_CONFIG", raising=False)
    return tmp_path / "home"


@pytest.fixture
def wired(lifecycle, monkeypatch, home):
    services = SimpleNamespace(coordinator=lifecycle.coordinator, queries=lifecycle.queries)
    monkeypatch.setattr(cli_commands, "_services", lambda need_tracker=True: services)
    return lifecycle


def _output(capsys):
    return json.loads(capsys.readouterr().out)


def test_start_prints_structured_result(wired, capsys):
    code = cli.main(["start", "12345", "-m", "pairing"])

    body = _output(capsys)
    assert code == 0
    assert body["command"] == "start"
    assert body["status"] == "OK"
    assert body["payload"]["session"]["item_id"] == 12345
    assert "Fix login redirect" in body["message"]


def test_partial_success_exits_zero(wired, capsys):
    wired.calendar.fail_create = RemoteError("graph down", "calendar", REMOTE_NETWORK)

    code = cli.main(["start", "12345", "--schedule-focus"])

    body = _output(capsys)
    assert code == 0
    assert body["status"] == "PARTIAL"
    assert body["payload"]["warnings"]


def test_dry_run_changes_nothing(wired, capsys):
    code = cli.main(["start", "12345", "--dry-run"])

    body = _output(capsys)
    assert code == 0
    assert body["status"] == "DRY_RUN"
    assert wired.timer.actions() == []
    assert wired.store.load().session is None


def test_remote_failure_maps_to_exit_code(wired, capsys):
    code = cli.main(["start", "99999"])

    body = _output(capsys)
    assert code == 4
    assert body["status"] == "ERROR"
    assert body["payload"]["source"] == "tracker"


def test_current_without_session(wired, capsys):
    code = cli.main(["current"])

    body = _output(capsys)
    assert code == 0
    assert body["message"] == "No active task"
    assert body["payload"]["session"] is None


def test_switch_then_stop(wired, capsys):
    cli.main(["start", "12345"])
    capsys.readouterr()

    assert cli.main(["switch", "67890"]) == 0
    switched = _output(capsys)
    assert cli.main(["stop"]) == 0
    stopped = _output(capsys)

    assert switched["command"] == "switch"
    assert "#12345 -> #67890" in switched["message"]
    assert stopped["message"].startswith("Stopped #67890")


def test_checkin_without_action_needs_a_terminal(wired, capsys, monkeypatch):
    monkeypatch.setattr(cli_interactive, "is_interactive", lambda: False)

    code = cli.main(["checkin"])

    body = _output(capsys)
    assert code == 5
    assert body["command"] == "checkin"


def test_checkin_prompts_when_interactive(wired, capsys, monkeypatch):
    cli.main(["start", "12345", "--schedule-focus"])
    capsys.readouterr()
    monkeypatch.setattr(cli_interactive, "is_interactive", lambda: True)
    monkeypatch.setattr("builtins.input", lambda prompt="": "b")

    code = cli.main(["checkin"])

    body = _output(capsys)
    assert code == 0
    assert body["command"] == "checkin.blocked"


def test_missing_tracker_config_exits_with_config_code(home, capsys):
    code = cli.main(["stop"])

    body = _output(capsys)
    assert code == 2
    assert body["payload"]["error"] == "ConfigError"


def test_bad_item_id_is_usage_error(capsys):
    with pytest.raises(SystemExit) as info:
        cli.main(["start", "abc"])

    assert info.value.code == 5


def test_config_set_then_get(home, capsys):
    assert cli.main(["config", "set", "tracker.organization", "acme"]) == 0
    capsys.readouterr()

    assert cli.main(["config", "get", "tracker.organization"]) == 0

    body = _output(capsys)
    assert body["command"] == "config.get"
    assert body["payload"]["value"] == "acme"
    assert (home / "config.yaml").exists()


def test_auth_set_masks_value(home, capsys):
    code = cli.main(["auth", "set", "tracker.pat", "s3cret"])

    body = _output(capsys)
    assert code == 0
    assert body["payload"]["value"] == "***"
    assert "s3cret" not in json.dumps(body)
    assert (home / "credentials.yaml").exists()


def test_auth_set_unknown_key(home, capsys):
    assert cli.main(["auth", "set", "github.token", "x"]) == 5


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "workfocus" in capsys.readouterr().out


def test_log_time_and_worklogs(wired, capsys):
    wired.timer.worklogs = [{"id": 1, "duration": 5400}]

    assert cli.main(["log-time", "67890", "1.5", "-m", "notes"]) == 0
    logged = _output(capsys)
    assert cli.main(["worklogs", "--days", "2"]) == 0
    listed = _output(capsys)

    assert logged["message"] == "Logged 1h 30m to #67890"
    assert listed["command"] == "worklogs"
    assert listed["payload"]["total"] == "1h 30m"


def test_state_command_reports_invalid_state(wired, capsys):
    assert cli.main(["state", "12345", "Blocked"]) == 0
    moved = _output(capsys)
    code = cli.main(["state", "12345", "Shipped"])
    rejected = _output(capsys)

    assert moved["message"] == "#12345 -> Blocked"
    assert code == 5
    assert "Active" in rejected["payload"]["valid_states"]


def test_calendar_list_and_delete(wired, capsys):
    cli.main(["start", "12345", "--schedule-focus"])
    capsys.readouterr()

    assert cli.main(["calendar", "list", "--item", "12345"]) == 0
    listed = _output(capsys)
    assert cli.main(["calendar", "delete", "evt-1"]) == 0
    deleted = _output(capsys)

    assert listed["command"] == "calendar.list"
    assert [e["event_id"] for e in listed["payload"]["events"]] == ["evt-1"]
    assert deleted["command"] == "calendar.delete"
    assert wired.calendar.deleted == ["evt-1"]
    assert wired.store.load().calendar_mappings == []
