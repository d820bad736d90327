"""CPU load, frequency, temperature and power readings from procfs and sysfs."""

from __future__ import annotations

import logging
import os
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import IO, Callable, Sequence

from .file_utils import LsFlags, file_exists, ls, read_line

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"\s*([+-]?\d+)")
_UINT_RE = re.compile(r"\s*\+?(\d+)")
_CPU_ID_RE = re.compile(r"cpu\s*([+-]?\d{1,4})")

_TIME_NAMES = (
    "user",
    "nice",
    "system",
    "system_all",
    "idle_all",
    "idle",
    "io_wait",
    "irq",
    "soft_irq",
    "steal",
    "guest",
    "total",
)

_TEMP_LABELS = {
    "coretemp": ("Package id 0",),
    "zenpower": ("Tdie", "Tctl"),
    "k10temp": ("Tdie", "Tctl"),
    "atk0110": ("CPU Temperature",),
    "it8603": ("temp1",),
}


@dataclass
class CPUData:
    """Accumulated times, the change since the last sample, and derived values."""

    total_time: int = 0
    user_time: int = 0
    system_time: int = 0
    system_all_time: int = 0
    idle_all_time: int = 0
    idle_time: int = 0
    nice_time: int = 0
    io_wait_time: int = 0
    irq_time: int = 0
    soft_irq_time: int = 0
    steal_time: int = 0
    guest_time: int = 0

    total_period: int = 0
    user_period: int = 0
    system_period: int = 0
    system_all_period: int = 0
    idle_all_period: int = 0
    idle_period: int = 0
    nice_period: int = 0
    io_wait_period: int = 0
    irq_period: int = 0
    soft_irq_period: int = 0
    steal_period: int = 0
    guest_period: int = 0

    cpu_id: int = 0
    percent: float = 0.0
    mhz: int = 0
    temp: int = 0
    cpu_mhz: int = 0
    power: float = 0.0


def calculate_cpu_data(cpu_data: CPUData, times: Sequence[int]) -> None:
    """Update ``cpu_data`` from the ten time counters of a /proc/stat cpu line.

    ``times`` is (user, nice, system, idle, iowait, irq, softirq, steal,
    guest, guest_nice). Counters that went backwards give a period of 0.
    """
    user, nice, system, idle, io_wait, irq, soft_irq, steal, guest, guest_nice = times
    # Guest time is already accounted in user time.
    user = max(user - guest, 0)
    nice = max(nice - guest_nice, 0)
    idle_all = idle + io_wait
    system_all = system + irq + soft_irq
    virt_all = guest + guest_nice
    total = user + nice + system_all + idle_all + steal + virt_all

    current = {
        "user": user,
        "nice": nice,
        "system": system,
        "system_all": system_all,
        "idle_all": idle_all,
        "idle": idle,
        "io_wait": io_wait,
        "irq": irq,
        "soft_irq": soft_irq,
        "steal": steal,
        "guest": virt_all,
        "total": total,
    }
    for name in _TIME_NAMES:
        value = current[name]
        previous = getattr(cpu_data, f"{name}_time")
        setattr(cpu_data, f"{name}_period", value - previous if value > previous else 0)
        setattr(cpu_data, f"{name}_time", value)

    if cpu_data.total_period == 0:
        return
    busy = (
        cpu_data.nice_period
        + cpu_data.user_period
        + cpu_data.system_all_period
        + cpu_data.steal_period
        + cpu_data.guest_period
    )
    cpu_data.percent = min(max(busy * 100.0 / cpu_data.total_period, 0.0), 100.0)


def _read_int(handle: IO[str] | None, pattern: re.Pattern[str] = _INT_RE) -> int | None:
    """Re-read an open sysfs file from the start and parse its leading integer."""
    if handle is None:
        return None
    try:
        handle.seek(0)
        text = handle.read()
    except (OSError, ValueError):
        return None
    match = pattern.match(text)
    return int(match.group(1)) if match else None


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b > 0) else -quotient


def _open_or_none(path: str) -> IO[str] | None:
    try:
        return open(path, encoding="ascii", errors="replace")
    except OSError:
        return None


def find_input(path: str, prefix: str, name: str) -> str | None:
    """Path of the ``*_input`` file whose ``*_label`` reads ``name``, if any."""
    for file in ls(path, prefix, LsFlags.FILES):
        if not file.endswith("_label"):
            continue
        if read_line(os.path.join(path, file)) != name:
            continue
        uscore = file.find("_")
        if uscore != -1:
            return os.path.join(path, file[:uscore] + "_input")
    return None


def find_fallback_input(path: str, prefix: str) -> str | None:
    """The first ``*_input`` file with ``prefix`` in name order, if any."""
    for file in sorted(ls(path, prefix, LsFlags.FILES)):
        if file.endswith("_input"):
            input_path = os.path.join(path, file)
            logger.debug("fallback cpu %s input: %s", prefix, input_path)
            return input_path
    return None


class PowerSource(IntEnum):
    """Where CPU package power is read from."""

    K10TEMP = 0
    ZENPOWER = 1
    RAPL = 2
    AMDGPU = 3


class _PowerData(ABC):
    source: PowerSource

    @abstractmethod
    def read(self, apu_cpu_power: float = 0.0) -> float | None:
        """Current power in watts, or None if it cannot be read."""

    def _handles(self) -> tuple[IO[str] | None, ...]:
        return ()

    def close(self) -> None:
        for handle in self._handles():
            if handle is not None:
                handle.close()


class K10TempPower(_PowerData):
    """Power from the k10temp voltage and current inputs."""

    source = PowerSource.K10TEMP

    def __init__(
        self,
        core_voltage: IO[str] | None,
        core_current: IO[str] | None,
        soc_voltage: IO[str] | None,
        soc_current: IO[str] | None,
    ) -> None:
        self.core_voltage = core_voltage
        self.core_current = core_current
        self.soc_voltage = soc_voltage
        self.soc_current = soc_current

    @classmethod
    def from_hwmon(cls, path: str) -> "K10TempPower | None":
        inputs = [
            find_input(path, "in", "Vcore"),
            find_input(path, "curr", "Icore"),
            find_input(path, "in", "Vsoc"),
            find_input(path, "curr", "Isoc"),
        ]
        if any(inp is None for inp in inputs):
            return None
        for inp in inputs:
            logger.debug("hwmon: using input: %s", inp)
        return cls(*(_open_or_none(inp) for inp in inputs))

    def _handles(self) -> tuple[IO[str] | None, ...]:
        return (self.core_voltage, self.core_current, self.soc_voltage, self.soc_current)

    def read(self, apu_cpu_power: float = 0.0) -> float | None:
        if any(handle is None for handle in self._handles()):
            return None
        values = [_read_int(handle) for handle in self._handles()]
        if any(value is None for value in values):
            return None
        core_v, core_c, soc_v, soc_c = values
        return float(_trunc_div(core_v * core_c + soc_v * soc_c, 1_000_000))


class ZenPower(_PowerData):
    """Power from the zenpower core and SoC power inputs."""

    source = PowerSource.ZENPOWER

    def __init__(self, core_power: IO[str] | None, soc_power: IO[str] | None) -> None:
        self.core_power = core_power
        self.soc_power = soc_power

    @classmethod
    def from_hwmon(cls, path: str) -> "ZenPower | None":
        core = find_input(path, "power", "SVI2_P_Core")
        if core is None:
            return None
        soc = find_input(path, "power", "SVI2_P_SoC")
        if soc is None:
            return None
        logger.debug("hwmon: using input: %s", core)
        logger.debug("hwmon: using input: %s", soc)
        return cls(_open_or_none(core), _open_or_none(soc))

    def _handles(self) -> tuple[IO[str] | None, ...]:
        return (self.core_power, self.soc_power)

    def read(self, apu_cpu_power: float = 0.0) -> float | None:
        if self.core_power is None or self.soc_power is None:
            return None
        core = _read_int(self.core_power)
        if core is None:
            return None
        soc = _read_int(self.soc_power)
        if soc is None:
            return None
        return float(_trunc_div(core + soc, 1_000_000))


class RaplPower(_PowerData):
    """Power from the change of an energy counter in microjoules over time."""

    source = PowerSource.RAPL

    def __init__(
        self,
        energy_counter: IO[str] | None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.energy_counter = energy_counter
        self._clock = clock
        self.last_counter_value = 0
        self.last_counter_time = clock()

    @classmethod
    def from_powercap(cls, path: str) -> "RaplPower | None":
        counter = os.path.join(path, "energy_uj")
        if not file_exists(counter):
            return None
        return cls(_open_or_none(counter))

    def _handles(self) -> tuple[IO[str] | None, ...]:
        return (self.energy_counter,)

    def read(self, apu_cpu_power: float = 0.0) -> float | None:
        if self.energy_counter is None:
            return None
        value = _read_int(self.energy_counter, _UINT_RE)
        if value is None:
            return None
        now = self._clock()
        elapsed_us = int((now - self.last_counter_time) * 1_000_000)
        power = 0.0
        if 0 < self.last_counter_value < value and elapsed_us > 0:
            power = float((value - self.last_counter_value) // elapsed_us)
        self.last_counter_value = value
        self.last_counter_time = now
        return power


class AmdgpuPower(_PowerData):
    """Power reported by the GPU driver for APUs."""

    source = PowerSource.AMDGPU

    def read(self, apu_cpu_power: float = 0.0) -> float | None:
        return float(apu_cpu_power)


def _parse_uints(tokens: Sequence[str], count: int) -> list[int] | None:
    values: list[int] = []
    for token in tokens[:count]:
        match = re.fullmatch(r"\+?(\d+)", token)
        if match is None:
            return None
        values.append(int(match.group(1)))
    return values if len(values) == count else None


def _read_lines(path: str) -> list[str] | None:
    try:
        with open(path, encoding="ascii", errors="replace") as handle:
            return handle.read().splitlines()
    except OSError:
        return None


class CPUStats:
    """Per-core and total CPU statistics."""

    def __init__(
        self,
        proc_stat: str = "/proc/stat",
        hwmon_dir: str = "/sys/class/hwmon",
        powercap_dir: str = "/sys/class/powercap",
        cpufreq_dir: str = "/sys/devices/system/cpu",
    ) -> None:
        self._proc_stat = proc_stat
        self._hwmon_dir = hwmon_dir
        self._powercap_dir = powercap_dir
        self._cpufreq_dir = cpufreq_dir
        self.cpu_type = "CPU"
        self.boottime = 0
        self.cpu_data: list[CPUData] = []
        self.cpu_data_total = CPUData()
        self.cpu_period = 0.0
        self.updated = False
        self._inited = False
        self._temp_file: IO[str] | None = None
        self.power_data: _PowerData | None = None

    def __enter__(self) -> "CPUStats":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def init(self) -> bool:
        """Discover the CPUs listed in /proc/stat and take a first sample."""
        if self._inited:
            return True
        self.cpu_data = []
        lines = _read_lines(self._proc_stat)
        if lines is None:
            logger.error("Failed to open %s", self._proc_stat)
            return False

        first = True
        for line in lines:
            if line.startswith("cpu"):
                if first:
                    first = False
                    continue
                match = _CPU_ID_RE.match(line)
                cpu_id = int(match.group(1)) if match else 0
                self.cpu_data.append(CPUData(total_time=1, total_period=1, cpu_id=cpu_id))
            elif line.startswith("btime "):
                fields = line.split()
                if len(fields) > 1 and re.fullmatch(r"[+-]?\d+", fields[1]):
                    self.boottime = int(fields[1])
                break
        else:
            logger.debug("Failed to read all of %s", self._proc_stat)
            return False

        self._inited = True
        return self.update_cpu_data()

    def reinit(self) -> bool:
        self._inited = False
        return self.init()

    def update_cpu_data(self) -> bool:
        """Take a new sample of the total and per-core counters."""
        if not self._inited:
            return False
        lines = _read_lines(self._proc_stat)
        if lines is None:
            logger.error("Failed to open %s", self._proc_stat)
            return False

        ret = False
        cpu_count = 0
        for line in lines:
            if not line.startswith("cpu"):
                break
            tokens = line[3:].split()
            if not ret:
                values = _parse_uints(tokens, 10)
                if values is not None:
                    ret = True
                    calculate_cpu_data(self.cpu_data_total, values)
                    continue
            if not tokens or re.fullmatch(r"[+-]?\d{1,4}", tokens[0]) is None:
                break
            values = _parse_uints(tokens[1:], 10)
            if values is None:
                break
            cpu_id = int(tokens[0])
            if not ret:
                logger.debug("Failed to parse 'cpu' line:%s", line)
                return False
            if cpu_id < 0:
                logger.debug("Cpu id '%d' is out of bounds", cpu_id)
                return False
            if cpu_count + 1 > len(self.cpu_data) or self.cpu_data[cpu_count].cpu_id != cpu_id:
                logger.debug("Cpu id '%d' is out of bounds or wrong index, reiniting", cpu_id)
                return self.reinit()
            calculate_cpu_data(self.cpu_data[cpu_count], values)
            cpu_count += 1

        del self.cpu_data[cpu_count:]
        if self.cpu_data:
            self.cpu_period = self.cpu_data[0].total_period / len(self.cpu_data)
        else:
            self.cpu_period = 0.0
        self.updated = True
        return ret

    def update_core_mhz(self) -> bool:
        """Read each core's current frequency; the total holds the highest."""
        for cpu in self.cpu_data:
            path = os.path.join(
                self._cpufreq_dir, f"cpu{cpu.cpu_id}", "cpufreq", "scaling_cur_freq"
            )
            handle = _open_or_none(path)
            if handle is None:
                continue
            with handle:
                value = _read_int(handle)
            cpu.mhz = _trunc_div(value if value is not None else 0, 1000)

        self.cpu_data_total.cpu_mhz = max(
            (cpu.mhz for cpu in self.cpu_data if cpu.mhz > 0), default=0
        )
        return True

    def read_cpu_temp_file(self) -> int | None:
        """CPU temperature in degrees Celsius, or None if unavailable."""
        value = _read_int(self._temp_file)
        return None if value is None else _trunc_div(value, 1000)

    def update_cpu_temp(self, apu_cpu_temp: int = 0) -> bool:
        if self.cpu_type == "APU":
            self.cpu_data_total.temp = apu_cpu_temp
            return True
        temp = self.read_cpu_temp_file()
        self.cpu_data_total.temp = temp if temp is not None else 0
        return temp is not None

    def update_cpu_power(self, apu_cpu_power: float = 0.0) -> bool:
        if self.power_data is None:
            return False
        power = self.power_data.read(apu_cpu_power)
        if power is None:
            return False
        self.cpu_data_total.power = power
        return True

    def get_cpu_file(self) -> bool:
        """Find and open the hwmon input that reports the CPU temperature."""
        if self._temp_file is not None:
            return True

        path = ""
        input_path: str | None = None
        for directory in ls(self._hwmon_dir):
            path = os.path.join(self._hwmon_dir, directory)
            name = read_line(os.path.join(path, "name"))
            logger.debug("hwmon: sensor name: %s", name)
            labels = _TEMP_LABELS.get(name)
            if labels is not None:
                for label in labels:
                    input_path = find_input(path, "temp", label)
                    if input_path is not None:
                        break
                break
            path = ""

        if path and not (input_path and file_exists(input_path)):
            input_path = find_fallback_input(path, "temp")
        if not path or input_path is None:
            logger.error("Could not find cpu temp sensor location")
            return False
        logger.debug("hwmon: using input: %s", input_path)
        self._temp_file = _open_or_none(input_path)
        return True

    def init_cpu_power_data(self) -> bool:
        """Choose where CPU power is read from."""
        if self.power_data is not None:
            return True

        power_data: _PowerData | None = None
        intel = False
        for directory in ls(self._hwmon_dir):
            path = os.path.join(self._hwmon_dir, directory)
            name = read_line(os.path.join(path, "name"))
            logger.debug("hwmon: sensor name: %s", name)
            if name == "k10temp":
                power_data = K10TempPower.from_hwmon(path)
                break
            if name == "zenpower":
                power_data = ZenPower.from_hwmon(path)
                break
            if name == "coretemp":
                intel = True

        if power_data is None and intel:
            for directory in ls(self._powercap_dir):
                path = os.path.join(self._powercap_dir, directory)
                name = read_line(os.path.join(path, "name"))
                logger.debug("powercap: name: %s", name)
                if name == "package-0":
                    power_data = RaplPower.from_powercap(path)
                    break
        if power_data is None and not intel:
            power_data = AmdgpuPower()

        if power_data is None:
            logger.error("Failed to initialize CPU power data")
            return False
        self.power_data = power_data
        return True

    def close(self) -> None:
        """Close the open sensor files."""
        if self._temp_file is not None:
            self._temp_file.close()
            self._temp_file = None
        if self.power_data is not None:
            self.power_data.close()
            self.power_data = None