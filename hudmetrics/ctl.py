"""Building control requests from command-line arguments."""

from __future__ import annotations

from typing import Sequence

from .mangoapp_proto import ControlAction, ControlMessage

USAGE = """\
Usage: mangohudctl [set|toggle] attribute [value]
       mangohudctl reload-cfg
Attributes:
   no_display      hides or shows hud
   log_session     handles logging status
   reload_config   reloads the config
Accepted values:
   true
   false
   1
   0
"""

_ATTRIBUTES = ("no_display", "log_session", "reload_config")


class UsageError(Exception):
    """The arguments do not form a valid request."""

    def __init__(self, message: str = USAGE) -> None:
        super().__init__(message)


def str_to_bool(value: str) -> bool:
    """Accept true/false (any case) or 1/0."""
    if value.lower() == "true" or value == "1":
        return True
    if value.lower() == "false" or value == "0":
        return False
    raise ValueError(
        f"The value '{value}' is not an accepted boolean. Use 0/1 or true/false"
    )


def build_control_message(argv: Sequence[str]) -> ControlMessage:
    """Turn arguments (without the program name) into a control message."""
    if len(argv) <= 1:
        raise UsageError()
    command = argv[0]
    if command == "set":
        if len(argv) != 3:
            raise UsageError()
        action = ControlAction.ON if str_to_bool(argv[2]) else ControlAction.OFF
    elif command == "toggle":
        if len(argv) != 2:
            raise UsageError()
        action = ControlAction.TOGGLE
    else:
        raise UsageError()

    attribute = argv[1]
    if attribute not in _ATTRIBUTES:
        raise UsageError()
    return ControlMessage(**{attribute: action})