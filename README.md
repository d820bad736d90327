# hudmetrics

`hudmetrics` collects the figures that a performance overlay displays. It reads
them from the Linux `/proc` and `/sys` interfaces. It also encodes and decodes
the binary messages that pass between the overlay app and its controllers. It
uses only the standard library.

## Modules

### `hudmetrics.cpu`

`CPUStats` holds per-core and total CPU statistics.

- `init()` reads `/proc/stat` to find the CPUs and takes a first sample.
- `update_cpu_data()` takes a new sample. Each core's `CPUData` and
  `cpu_data_total` then hold the tick periods and a load `percent` clamped to
  0–100.
- `update_core_mhz()` reads each core's `scaling_cur_freq`. The highest value
  goes into `cpu_data_total.cpu_mhz`.
- `get_cpu_file()` searches hwmon for a temperature sensor. It knows
  `coretemp`, `k10temp`, `zenpower`, `atk0110` and `it8603`, and otherwise
  falls back to the first `temp*_input`. `update_cpu_temp()` then stores the
  reading in degrees Celsius.
- `init_cpu_power_data()` picks a power source:
  - `K10TempPower` or `ZenPower` for AMD hwmon sensors.
  - `RaplPower` for the powercap `package-0` energy counter, on Intel.
  - `AmdgpuPower` in all other cases. It reports whatever value is passed to
    `update_cpu_power(apu_cpu_power)`.
- `close()` closes the open sensor files. `CPUStats` is also a context
  manager.

`calculate_cpu_data(cpu_data, times)` updates a `CPUData` from the ten counters
of a `/proc/stat` line. `find_input` and `find_fallback_input` locate hwmon
input files by their label or by their name.

### `hudmetrics.amdgpu`

This module decodes the `gpu_metrics` table: revision 1.x for desktop GPUs and
2.x for APUs.

- `verify_metrics(path)` returns `"GPU"`, `"APU"` or `None` when the version is
  unsupported or the file cannot be read.
- `parse_instant_metrics(data, cpu_count, read_cpu_temp)` decodes one table
  into `AmdgpuMetrics`. Load, power, clocks, temperatures and throttle flags
  fall back to alternative fields when the preferred field is invalid
  (`0xFFFF`).
- `read_instant_metrics(path, ...)` does the same for a file. It returns
  `None` if the file cannot be read or is too large.
- `average_samples(samples)` averages the numeric fields. A throttle flag is
  set in the result if any sample has it set.
- `AmdgpuPoller(path, ...)` samples in a background thread.
  - `start()` and `stop()` control the thread.
  - `latest()` returns a copy of the last average.
  - `sample_and_average()` runs one round of sampling directly.
  - When a GPU reports its load in hundredths of a percent, the poller
    divides the load by 100.

`MetricsHeader.from_bytes` parses the common header.

### `hudmetrics.battery`

`BatteryStats(power_supply_dir)` finds up to two `BAT*` entries.

- `update()` refreshes `current_watt`, `current_percent` and
  `remaining_time`.
- `get_power()`, `get_percent()` and `get_time_remaining()` compute each
  figure on its own.
- Power is 0 while any battery reports `Charging`, `Unknown` or `Full`.
- The time remaining uses an average of the last 25 current readings.

### `hudmetrics.gamepad`

- `scan_gamepads(power_supply_dir)` lists the power-supply entries of Xbox
  (`gip`, `xpadneo`), DualShock 4, DualSense, Switch and 8BitDo controllers.
- `gamepad_info(paths)` returns `Gamepad` records sorted by name. Names are
  numbered (`XBOX PAD-1`, `XBOX PAD-2`, ...) when there is more than one
  controller of a kind. Each record gives the charging state and the battery
  level or percentage.
- `battery_level(percent)` maps a percentage to `Low`, `Normal`, `High` or
  `Full`.

### `hudmetrics.mangoapp_proto`

- `FrameMessage.from_bytes` decodes a frame-timing message. Fields that an
  older sender did not include are left as `None`. It raises `ValueError` for
  a short message or an unsupported version.
- `ControlMessage` holds `no_display`, `log_session`, `log_session_name` and
  `reload_config`. Each action is a `ControlAction`: `IGNORE`, `ON`, `OFF` or
  `TOGGLE`. `to_bytes()` and `from_bytes()` convert it to and from its packed
  form.

### `hudmetrics.ctl`

- `build_control_message(argv)` turns `["set", attribute, value]` or
  `["toggle", attribute]` into a `ControlMessage`. The attribute is
  `no_display`, `log_session` or `reload_config`.
- It raises `UsageError` when the arguments are malformed.
- `str_to_bool(value)` accepts `true`/`false` in any case, or `1`/`0`, and
  raises `ValueError` for anything else.

### `hudmetrics.file_utils`

Filesystem helpers:

- `read_line` and `ls` (filtered with `LsFlags`).
- `file_exists`, `dir_exists` and `read_symlink`.
- `get_basename` and `get_exe_path`.
- `get_wine_exe_name` gives the program name when running under wine.
- `get_home_dir`, `get_data_dir` and `get_config_dir` follow XDG.
- `lib_loaded`.

## Example

```python
from hudmetrics.cpu import CPUStats
from hudmetrics.battery import BatteryStats

with CPUStats() as cpu:
    if cpu.init():
        cpu.update_cpu_data()
        print(cpu.cpu_data_total.percent)

battery = BatteryStats()
battery.update()
print(battery.current_percent, battery.current_watt, battery.remaining_time)
```

```python
from hudmetrics.ctl import build_control_message

payload = build_control_message(["toggle", "no_display"]).to_bytes()
```

Each reader takes the paths it uses as constructor arguments: the
`/proc/stat` file and the hwmon, powercap, cpufreq and power-supply
directories. Point them at a copy of those trees to test them.

## What it does not do

`hudmetrics` is a library only. It installs no command-line program and draws
no overlay. It does not read or parse overlay configuration files, and it
keeps no list of processes to skip. It does not open or serve a control
socket, and it does not send messages over a message queue. `ctl` and
`mangoapp_proto` only build and read the bytes of those messages.