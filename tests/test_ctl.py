import pytest

from hudmetrics.ctl import UsageError, build_control_message, str_to_bool
from hudmetrics.mangoapp_proto import ControlAction


@pytest.mark.parametrize(
    "value, expected",
    [("true", True), ("TRUE", True), ("1", True), ("false", False), ("False", False), ("0", False)],
)
def test_str_to_bool(value, expected):
    assert str_to_bool(value) is expected


@pytest.mark.parametrize("value", ["yes", "2", ""])
def test_str_to_bool_rejects(value):
    with pytest.raises(ValueError):
        str_to_bool(value)


def test_set_no_display():
    msg = build_control_message(["set", "no_display", "true"])
    assert msg.no_display is ControlAction.ON
    assert msg.log_session is ControlAction.IGNORE
    assert msg.reload_config is ControlAction.IGNORE


def test_set_false():
    assert build_control_message(["set", "log_session", "0"]).log_session is ControlAction.OFF


def test_toggle_reload():
    msg = build_control_message(["toggle", "reload_config"])
    assert msg.reload_config is ControlAction.TOGGLE
    assert msg.no_display is ControlAction.IGNORE


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["set"],
        ["set", "no_display"],
        ["toggle", "no_display", "1"],
        ["toggle", "bogus"],
        ["bogus", "no_display"],
        ["set", "bogus", "1"],
    ],
)
def test_usage_errors(argv):
    with pytest.raises(UsageError):
        build_control_message(argv)


def test_set_bad_value():
    with pytest.raises(ValueError):
        build_control_message(["set", "no_display", "maybe"])