"""Wireless gamepad battery readings from the power-supply class in sysfs."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Iterable

# Markers found in power-supply entry names, with the label shown for them.
_KINDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("gip", "xpadneo"), "XBOX PAD"),
    (("sony_controller",), "DS4 PAD"),
    # DualShock 4 was added to hid-playstation in Linux 6.2.
    (("ps-controller",), "DS4/5 PAD"),
    (("nintendo_switch_controller",), "SWITCH PAD"),
    (("hid-e4",), "8BITDO PAD"),
)

_CHARGING = ("Charging", "Full")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass
class Gamepad:
    """Name and battery state of one gamepad."""

    name: str = ""
    battery: str = ""
    battery_percent: str = ""
    report_percent: bool = False
    is_charging: bool = False


def _first_line(path: str) -> str | None:
    try:
        with open(path, encoding="utf-8", errors="replace") as handle:
            line = handle.readline()
    except OSError:
        return None
    if not line:
        return None
    return line.rstrip("\n")


def scan_gamepads(power_supply_dir: str = "/sys/class/power_supply") -> list[str]:
    """Paths of the power-supply entries that belong to known gamepads.

    An entry is listed once for every marker its name contains.
    """
    try:
        names = sorted(os.listdir(power_supply_dir))
    except OSError:
        return []
    paths: list[str] = []
    for name in names:
        for markers, _label in _KINDS:
            for marker in markers:
                if marker in name:
                    paths.append(os.path.join(power_supply_dir, name))
    return paths


def battery_level(percent: int) -> str:
    """Map a charge percentage to Low, Normal, High or Full; "" out of range."""
    if 0 <= percent <= 25:
        return "Low"
    if 26 <= percent <= 49:
        return "Normal"
    if 50 <= percent <= 74:
        return "High"
    if 75 <= percent <= 100:
        return "Full"
    return ""


def _parse_percent(line: str) -> int:
    match = _LEADING_INT.match(line)
    if match is None:
        raise ValueError(f"invalid battery capacity: {line!r}")
    return int(match.group(1))


def _kind_matches(path: str, markers: Iterable[str]) -> bool:
    return any(marker in path for marker in markers)


def gamepad_info(paths: Iterable[str]) -> list[Gamepad]:
    """Read the battery state of each gamepad path, sorted by name.

    Gamepads of a kind are numbered (``XBOX PAD-1``, ``XBOX PAD-2``...) when
    there is more than one of that kind.
    """
    paths = list(paths)
    counts = [
        sum(1 for path in paths for marker in markers if marker in os.path.basename(path))
        for markers, _label in _KINDS
    ]
    counters = [0] * len(_KINDS)

    pads: list[Gamepad] = []
    for path in paths:
        pad = Gamepad()
        for index, (markers, label) in enumerate(_KINDS):
            if not _kind_matches(path, markers):
                continue
            if counts[index] == 1:
                pad.name = label
            else:
                pad.name = f"{label}-{counters[index] + 1}"
            counters[index] += 1

        status = _first_line(os.path.join(path, "status"))
        if status in _CHARGING:
            pad.is_charging = True

        capacity = os.path.join(path, "capacity")
        if os.path.exists(capacity):
            line = _first_line(capacity)
            if line is not None:
                pad.battery_percent = line
                pad.report_percent = True
                pad.battery = battery_level(_parse_percent(line))
        else:
            level = _first_line(os.path.join(path, "capacity_level"))
            if level is not None:
                pad.battery = level
        pads.append(pad)

    pads.sort(key=lambda pad: pad.name)
    return pads