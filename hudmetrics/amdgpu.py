"""Reading and averaging the amdgpu ``gpu_metrics`` table from sysfs."""

from __future__ import annotations

import dataclasses
import logging
import struct
import threading
from dataclasses import dataclass
from itertools import islice
from typing import Callable, Iterator, Sequence

logger = logging.getLogger(__name__)

METRICS_UPDATE_PERIOD_MS = 500
METRICS_POLLING_PERIOD_MS = 5
METRICS_SAMPLE_COUNT = METRICS_UPDATE_PERIOD_MS // METRICS_POLLING_PERIOD_MS
NUM_HBM_INSTANCES = 4
MAX_CORES = 8
INVALID_METRIC = 0xFFFF

_HEADER_LAYOUT = (
    ("structure_size", "H"),
    ("format_revision", "B"),
    ("content_revision", "B"),
)

_V1_3_LAYOUT = _HEADER_LAYOUT + (
    ("temperature_edge", "H"),
    ("temperature_hotspot", "H"),
    ("temperature_mem", "H"),
    ("temperature_vrgfx", "H"),
    ("temperature_vrsoc", "H"),
    ("temperature_vrmem", "H"),
    ("average_gfx_activity", "H"),
    ("average_umc_activity", "H"),
    ("average_mm_activity", "H"),
    ("average_socket_power", "H"),
    ("energy_accumulator", "Q"),
    ("system_clock_counter", "Q"),
    ("average_gfxclk_frequency", "H"),
    ("average_socclk_frequency", "H"),
    ("average_uclk_frequency", "H"),
    ("average_vclk0_frequency", "H"),
    ("average_dclk0_frequency", "H"),
    ("average_vclk1_frequency", "H"),
    ("average_dclk1_frequency", "H"),
    ("current_gfxclk", "H"),
    ("current_socclk", "H"),
    ("current_uclk", "H"),
    ("current_vclk0", "H"),
    ("current_dclk0", "H"),
    ("current_vclk1", "H"),
    ("current_dclk1", "H"),
    ("throttle_status", "I"),
    ("current_fan_speed", "H"),
    ("pcie_link_width", "H"),
    ("pcie_link_speed", "H"),
    ("padding", "H"),
    ("gfx_activity_acc", "I"),
    ("mem_activity_acc", "I"),
    ("temperature_hbm", f"{NUM_HBM_INSTANCES}H"),
    ("firmware_timestamp", "Q"),
    ("voltage_soc", "H"),
    ("voltage_gfx", "H"),
    ("voltage_mem", "H"),
    ("padding1", "H"),
    ("indep_throttle_status", "Q"),
)

_V2_3_LAYOUT = _HEADER_LAYOUT + (
    ("temperature_gfx", "H"),
    ("temperature_soc", "H"),
    ("temperature_core", "8H"),
    ("temperature_l3", "2H"),
    ("average_gfx_activity", "H"),
    ("average_mm_activity", "H"),
    ("system_clock_counter", "Q"),
    ("average_socket_power", "H"),
    ("average_cpu_power", "H"),
    ("average_soc_power", "H"),
    ("average_gfx_power", "H"),
    ("average_core_power", "8H"),
    ("average_gfxclk_frequency", "H"),
    ("average_socclk_frequency", "H"),
    ("average_uclk_frequency", "H"),
    ("average_fclk_frequency", "H"),
    ("average_vclk_frequency", "H"),
    ("average_dclk_frequency", "H"),
    ("current_gfxclk", "H"),
    ("current_socclk", "H"),
    ("current_uclk", "H"),
    ("current_fclk", "H"),
    ("current_vclk", "H"),
    ("current_dclk", "H"),
    ("current_coreclk", "8H"),
    ("current_l3clk", "2H"),
    ("throttle_status", "I"),
    ("fan_pwm", "H"),
    ("padding", "3H"),
    ("indep_throttle_status", "Q"),
    ("average_temperature_gfx", "H"),
    ("average_temperature_soc", "H"),
    ("average_temperature_core", "8H"),
    ("average_temperature_l3", "2H"),
)


def _layout_struct(layout: Sequence[tuple[str, str]]) -> struct.Struct:
    return struct.Struct("=" + "".join(fmt for _, fmt in layout))


_HEADER_STRUCT = _layout_struct(_HEADER_LAYOUT)
_V1_3_STRUCT = _layout_struct(_V1_3_LAYOUT)
_V2_3_STRUCT = _layout_struct(_V2_3_LAYOUT)

# The reader refuses files that fill this buffer completely.
BUFFER_SIZE = (max(_V1_3_STRUCT.size, _V2_3_STRUCT.size) // 8 + 1) * 8


def _unpack(layout: Sequence[tuple[str, str]], packer: struct.Struct, data: bytes) -> dict:
    values: Iterator[int] = iter(packer.unpack_from(data))
    fields: dict = {}
    for name, fmt in layout:
        if len(fmt) > 1:
            fields[name] = tuple(islice(values, int(fmt[:-1])))
        else:
            fields[name] = next(values)
    return fields


def _valid(value: int) -> bool:
    return value != INVALID_METRIC


@dataclass(frozen=True)
class MetricsHeader:
    """The common header of every gpu_metrics table."""

    structure_size: int
    format_revision: int
    content_revision: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "MetricsHeader":
        if len(data) < _HEADER_STRUCT.size:
            raise ValueError("metrics data shorter than its header")
        return cls(*_HEADER_STRUCT.unpack_from(data))


@dataclass
class AmdgpuMetrics:
    """Values taken from one metrics table, or averaged over several."""

    gpu_load_percent: int = 0
    average_gfx_power_w: float = 0.0
    average_cpu_power_w: float = 0.0
    current_gfxclk_mhz: int = 0
    current_uclk_mhz: int = 0
    soc_temp_c: int = 0
    gpu_temp_c: int = 0
    apu_cpu_temp_c: int = 0
    is_power_throttled: bool = False
    is_current_throttled: bool = False
    is_temp_throttled: bool = False
    is_other_throttled: bool = False


def verify_metrics(path: str) -> str | None:
    """Check a metrics file's version.

    Returns "GPU" for a supported desktop table, "APU" for a supported APU
    table and None when the file is unreadable or of an unsupported version.
    """
    try:
        with open(path, "rb") as handle:
            data = handle.read(_HEADER_STRUCT.size)
    except OSError:
        return None
    if len(data) < _HEADER_STRUCT.size:
        logger.debug("Failed to read the metrics header of '%s'", path)
        return None

    header = MetricsHeader.from_bytes(data)
    # Revision x.0 tables are not naturally aligned and are not supported.
    if 0 < header.content_revision <= 3:
        if header.format_revision == 1:
            return "GPU"
        if header.format_revision == 2:
            return "APU"
    logger.warning(
        "Unsupported gpu_metrics version: %d.%d",
        header.format_revision,
        header.content_revision,
    )
    return None


def _parse_desktop(fields: dict, metrics: AmdgpuMetrics) -> int:
    metrics.gpu_load_percent = fields["average_gfx_activity"]
    metrics.average_gfx_power_w = float(fields["average_socket_power"])
    metrics.current_gfxclk_mhz = fields["current_gfxclk"]
    metrics.current_uclk_mhz = fields["current_uclk"]
    metrics.gpu_temp_c = fields["temperature_edge"]
    return fields["indep_throttle_status"]


def _pick_clock(current: int, average: int) -> int:
    if _valid(current):
        return current
    if _valid(average):
        return average
    return 0


def _pick_temp(current: int, average: int, has_average: bool) -> int:
    if _valid(current):
        return current // 100
    if has_average and _valid(average):
        return average // 100
    return 0


def _parse_apu(
    fields: dict,
    content_revision: int,
    cores: int,
    read_cpu_temp: Callable[[], int | None] | None,
    metrics: AmdgpuMetrics,
) -> int:
    metrics.gpu_load_percent = fields["average_gfx_activity"]
    metrics.average_gfx_power_w = fields["average_gfx_power"] / 1000.0

    cpu_power = fields["average_cpu_power"]
    core_power = fields["average_core_power"]
    socket_power = fields["average_socket_power"]
    gfx_power = fields["average_gfx_power"]
    if _valid(cpu_power):
        metrics.average_cpu_power_w = cpu_power / 1000.0
    elif _valid(core_power[0]):
        metrics.average_cpu_power_w = float(sum(core_power[:cores]))
    elif _valid(socket_power) and _valid(gfx_power):
        metrics.average_cpu_power_w = socket_power / 1000.0 - gfx_power / 1000.0
    else:
        metrics.average_cpu_power_w = 0.0

    metrics.current_gfxclk_mhz = _pick_clock(
        fields["current_gfxclk"], fields["average_gfxclk_frequency"]
    )
    metrics.current_uclk_mhz = _pick_clock(
        fields["current_uclk"], fields["average_uclk_frequency"]
    )

    has_average = content_revision >= 3
    metrics.soc_temp_c = _pick_temp(
        fields["temperature_soc"], fields["average_temperature_soc"], has_average
    )
    metrics.gpu_temp_c = _pick_temp(
        fields["temperature_gfx"], fields["average_temperature_gfx"], has_average
    )

    core_temps = fields["temperature_core"]
    avg_core_temps = fields["average_temperature_core"]
    if _valid(core_temps[0]):
        metrics.apu_cpu_temp_c = max(core_temps[:cores], default=0) // 100
    elif has_average and _valid(avg_core_temps[0]):
        metrics.apu_cpu_temp_c = max(avg_core_temps[:cores], default=0) // 100
    else:
        temp = read_cpu_temp() if read_cpu_temp is not None else None
        metrics.apu_cpu_temp_c = temp if temp is not None else 0

    return fields["indep_throttle_status"]


def parse_instant_metrics(
    data: bytes,
    cpu_count: int = 0,
    read_cpu_temp: Callable[[], int | None] | None = None,
) -> AmdgpuMetrics:
    """Decode one metrics table.

    ``cpu_count`` is the number of logical CPUs; half of it is taken as the
    number of cores the APU reports. ``read_cpu_temp`` is the last fallback
    for the APU's CPU temperature.
    """
    if len(data) >= BUFFER_SIZE:
        raise ValueError("amdgpu metrics data is larger than the buffer")
    buf = bytes(data).ljust(BUFFER_SIZE, b"\0")
    header = MetricsHeader.from_bytes(buf)
    cores = min(max(cpu_count // 2, 0), MAX_CORES)
    metrics = AmdgpuMetrics()

    throttle = 0
    if header.format_revision == 1:
        throttle = _parse_desktop(_unpack(_V1_3_LAYOUT, _V1_3_STRUCT, buf), metrics)
    elif header.format_revision == 2:
        throttle = _parse_apu(
            _unpack(_V2_3_LAYOUT, _V2_3_STRUCT, buf),
            header.content_revision,
            cores,
            read_cpu_temp,
            metrics,
        )

    metrics.is_power_throttled = (throttle & 0xFF) != 0
    metrics.is_current_throttled = ((throttle >> 16) & 0xFF) != 0
    metrics.is_temp_throttled = ((throttle >> 32) & 0xFFFF) != 0
    metrics.is_other_throttled = ((throttle >> 56) & 0xFF) != 0
    return metrics


def read_instant_metrics(
    path: str,
    cpu_count: int = 0,
    read_cpu_temp: Callable[[], int | None] | None = None,
) -> AmdgpuMetrics | None:
    """Read and decode a metrics file; None if it cannot be used."""
    try:
        with open(path, "rb") as handle:
            data = handle.read(BUFFER_SIZE)
    except OSError:
        return None
    if len(data) >= BUFFER_SIZE:
        logger.debug("amdgpu metrics file '%s' is larger than the buffer", path)
        return None
    return parse_instant_metrics(data, cpu_count, read_cpu_temp)


_AVERAGED_INT = (
    "gpu_load_percent",
    "current_gfxclk_mhz",
    "current_uclk_mhz",
    "soc_temp_c",
    "gpu_temp_c",
    "apu_cpu_temp_c",
)
_AVERAGED_FLOAT = ("average_gfx_power_w", "average_cpu_power_w")
_MAXED = (
    "is_power_throttled",
    "is_current_throttled",
    "is_temp_throttled",
    "is_other_throttled",
)


def average_samples(samples: Sequence[AmdgpuMetrics]) -> AmdgpuMetrics:
    """Average loads, powers, clocks and temperatures; throttling is any-of."""
    if not samples:
        raise ValueError("no samples to average")
    count = len(samples)
    result = AmdgpuMetrics()
    for name in _AVERAGED_INT:
        setattr(result, name, sum(getattr(s, name) for s in samples) // count)
    for name in _AVERAGED_FLOAT:
        setattr(result, name, sum(getattr(s, name) for s in samples) / count)
    for name in _MAXED:
        setattr(result, name, any(getattr(s, name) for s in samples))
    return result


class AmdgpuPoller:
    """Samples a metrics file in the background and keeps the latest average."""

    def __init__(
        self,
        path: str,
        cpu_count: int = 0,
        read_cpu_temp: Callable[[], int | None] | None = None,
    ) -> None:
        self.path = path
        self.cpu_count = cpu_count
        self.read_cpu_temp = read_cpu_temp
        self.sample_count = METRICS_SAMPLE_COUNT
        self.poll_period = METRICS_POLLING_PERIOD_MS / 1000.0
        # Some GPUs report the load in hundredths of a percent.
        self.gpu_load_needs_dividing = False
        self._buffer: list[AmdgpuMetrics] = []
        self._latest = AmdgpuMetrics()
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def _read(self) -> AmdgpuMetrics | None:
        sample = read_instant_metrics(self.path, self.cpu_count, self.read_cpu_temp)
        if sample is not None and (
            self.gpu_load_needs_dividing or sample.gpu_load_percent > 100
        ):
            self.gpu_load_needs_dividing = True
            sample.gpu_load_percent //= 100
        return sample

    def sample_and_average(self) -> AmdgpuMetrics:
        """Take a full round of samples and publish their average."""
        if len(self._buffer) != self.sample_count:
            self._buffer = [AmdgpuMetrics() for _ in range(self.sample_count)]
        for index in range(self.sample_count):
            sample = self._read()
            if sample is not None:
                self._buffer[index] = sample
            if self._stop.wait(self.poll_period):
                break
        average = average_samples(self._buffer)
        with self._lock:
            self._latest = average
        return dataclasses.replace(average)

    def _run(self) -> None:
        while not self._stop.is_set():
            self.sample_and_average()

    def start(self) -> None:
        """Poll once right away, then keep sampling in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        first = self._read()
        if first is not None:
            with self._lock:
                self._latest = first
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background thread and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def latest(self) -> AmdgpuMetrics:
        """A copy of the most recently published metrics."""
        with self._lock:
            return dataclasses.replace(self._latest)