"""Laptop battery charge, power draw and time remaining from sysfs."""

from __future__ import annotations

import logging
import math
import os

logger = logging.getLogger(__name__)

MAX_BATTERIES = 2
CURRENT_HISTORY = 25
_NOT_DRAINING = ("Charging", "Unknown", "Full")


def _div(a: float, b: float) -> float:
    """Float division that yields inf or nan instead of raising."""
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a)
    return a / b


def _first_line(path: str) -> str | None:
    try:
        with open(path, encoding="ascii", errors="replace") as handle:
            line = handle.readline()
    except OSError:
        return None
    if not line:
        return None
    return line.rstrip("\n")


def _read_value(path: str) -> float | None:
    line = _first_line(path)
    return None if line is None else float(line.strip())


class BatteryStats:
    """Combined readings of up to two batteries."""

    def __init__(self, power_supply_dir: str = "/sys/class/power_supply") -> None:
        self.power_supply_dir = power_supply_dir
        self.batt_path: list[str] = []
        self.current_watt = 0.0
        self.current_percent = 0.0
        self.remaining_time = 0.0
        self.current_status = ""
        self.state = [""] * MAX_BATTERIES
        self.batt_count = 0
        self.batt_check = False
        self.current_now_vec: list[float] = []

    def num_battery(self) -> int:
        """Find the batteries and return how many there are."""
        try:
            names = sorted(os.listdir(self.power_supply_dir))
        except OSError:
            names = []
        self.batt_path = [
            os.path.join(self.power_supply_dir, name) for name in names if "BAT" in name
        ][:MAX_BATTERIES]
        self.batt_count = len(self.batt_path)
        self.batt_check = True
        return self.batt_count

    def update(self) -> None:
        """Refresh power, charge and remaining time."""
        if not self.batt_check:
            self.num_battery()
            if self.batt_count == 0:
                logger.error("No battery found")
        if self.batt_count > 0:
            self.current_watt = self.get_power()
            self.current_percent = self.get_percent()
            self.remaining_time = self.get_time_remaining()

    def _batteries(self) -> list[str]:
        return self.batt_path[: self.batt_count]

    def get_percent(self) -> float:
        """Charge level in percent over all batteries."""
        charge_n = 0.0
        charge_f = 0.0
        for path in self._batteries():
            if os.path.exists(os.path.join(path, "charge_now")):
                now_name, full_name = "charge_now", "charge_full"
            elif os.path.exists(os.path.join(path, "energy_now")):
                now_name, full_name = "energy_now", "energy_full"
            else:
                # Only a percentage is available: average the batteries.
                capacity = _read_value(os.path.join(path, "capacity"))
                if capacity is not None:
                    charge_n += capacity / 100
                    charge_f = float(self.batt_count)
                continue
            now = _read_value(os.path.join(path, now_name))
            if now is not None:
                charge_n += now / 1_000_000
            full = _read_value(os.path.join(path, full_name))
            if full is not None:
                charge_f += full / 1_000_000
        return _div(charge_n, charge_f) * 100

    def get_power(self) -> float:
        """Power drawn in watts; 0 while any battery is not discharging."""
        current = 0.0
        voltage = 0.0
        for index, path in enumerate(self._batteries()):
            status = _first_line(os.path.join(path, "status"))
            if status is not None:
                self.current_status = status
                self.state[index] = status
            if self.state[index] in _NOT_DRAINING:
                return 0.0

            if os.path.exists(os.path.join(path, "current_now")):
                amps = _read_value(os.path.join(path, "current_now"))
                if amps is not None:
                    current += amps / 1_000_000
                volts = _read_value(os.path.join(path, "voltage_now"))
                if volts is not None:
                    voltage += volts / 1_000_000
            else:
                watts = _read_value(os.path.join(path, "power_now"))
                if watts is not None:
                    current += watts / 1_000_000
                    voltage = 1.0
        return current * voltage

    def get_time_remaining(self) -> float:
        """Hours left, from the charge and the recent average current."""
        charge = 0.0
        for path in self._batteries():
            current_now = os.path.join(path, "current_now")
            power_now = os.path.join(path, "power_now")
            voltage_now = os.path.join(path, "voltage_now")
            if os.path.exists(current_now):
                amps = _read_value(current_now)
                if amps is not None:
                    self.current_now_vec.append(amps)
            elif os.path.exists(power_now):
                volts = _read_value(voltage_now) or 0.0
                watts = _read_value(power_now) or 0.0
                self.current_now_vec.append(_div(watts, volts))

            charge_now = os.path.join(path, "charge_now")
            energy_now = os.path.join(path, "energy_now")
            if os.path.exists(charge_now):
                value = _read_value(charge_now)
                if value is not None:
                    charge += value
            elif os.path.exists(energy_now):
                energy = _read_value(energy_now) or 0.0
                volts = _read_value(voltage_now) or 0.0
                charge += _div(energy, volts)

            if len(self.current_now_vec) > CURRENT_HISTORY:
                del self.current_now_vec[0]

        average = _div(sum(self.current_now_vec), len(self.current_now_vec))
        return _div(charge, average)