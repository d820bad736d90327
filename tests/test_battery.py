import pytest

from hudmetrics.battery import CURRENT_HISTORY, BatteryStats


def make_supply(root, name, **files):
    directory = root / name
    directory.mkdir(parents=True)
    for file_name, content in files.items():
        (directory / file_name).write_text(content + "\n")
    return directory


def test_num_battery_counts_only_batteries(tmp_path):
    make_supply(tmp_path, "AC")
    make_supply(tmp_path, "BAT0")
    make_supply(tmp_path, "BAT1")
    stats = BatteryStats(str(tmp_path))
    assert stats.num_battery() == 2
    assert stats.batt_count == 2
    assert stats.batt_check is True
    assert [p.rsplit("/", 1)[-1] for p in stats.batt_path] == ["BAT0", "BAT1"]


def test_num_battery_missing_dir(tmp_path):
    stats = BatteryStats(str(tmp_path / "absent"))
    assert stats.num_battery() == 0


def test_update_without_battery_keeps_defaults(tmp_path):
    make_supply(tmp_path, "AC")
    stats = BatteryStats(str(tmp_path))
    stats.update()
    assert stats.batt_check is True
    assert stats.batt_count == 0
    assert stats.current_watt == 0
    assert stats.current_percent == 0


def test_percent_from_capacity(tmp_path):
    make_supply(tmp_path, "BAT0", capacity="42", status="Discharging")
    stats = BatteryStats(str(tmp_path))
    stats.num_battery()
    assert stats.get_percent() == pytest.approx(42.0)


def test_percent_full_charge(tmp_path):
    make_supply(tmp_path, "BAT0", charge_now="4000000", charge_full="4000000")
    stats = BatteryStats(str(tmp_path))
    stats.num_battery()
    assert stats.get_percent() == pytest.approx(100.0)


def test_percent_charge_and_energy_agree(tmp_path):
    charge_root = tmp_path / "a"
    energy_root = tmp_path / "b"
    make_supply(charge_root, "BAT0", charge_now="1500000", charge_full="6000000")
    make_supply(energy_root, "BAT0", energy_now="1500000", energy_full="6000000")
    charge = BatteryStats(str(charge_root))
    energy = BatteryStats(str(energy_root))
    charge.num_battery()
    energy.num_battery()
    assert 0 < charge.get_percent() < 100
    assert charge.get_percent() == pytest.approx(energy.get_percent())


def test_percent_without_readings_is_nan(tmp_path):
    make_supply(tmp_path, "BAT0")
    stats = BatteryStats(str(tmp_path))
    stats.num_battery()
    percent = stats.get_percent()
    assert percent == pytest.approx(float("nan"), nan_ok=True)


@pytest.mark.parametrize("status", ["Charging", "Unknown", "Full"])
def test_power_zero_when_not_discharging(tmp_path, status):
    make_supply(tmp_path, "BAT0", status=status, power_now="9000000")
    stats = BatteryStats(str(tmp_path))
    stats.num_battery()
    assert stats.get_power() == 0
    assert stats.state[0] == status
    assert stats.current_status == status


def test_power_from_power_now(tmp_path):
    make_supply(tmp_path, "BAT0", status="Discharging", power_now="5000000")
    stats = BatteryStats(str(tmp_path))
    stats.num_battery()
    assert stats.get_power() == pytest.approx(5.0)


def test_power_from_current_and_voltage(tmp_path):
    make_supply(
        tmp_path,
        "BAT0",
        status="Discharging",
        current_now="2000000",
        voltage_now="3000000",
    )
    stats = BatteryStats(str(tmp_path))
    stats.num_battery()
    assert stats.get_power() == pytest.approx(6.0)


def test_time_remaining(tmp_path):
    make_supply(tmp_path, "BAT0", charge_now="3000000", current_now="1500000")
    stats = BatteryStats(str(tmp_path))
    stats.num_battery()
    assert stats.get_time_remaining() == pytest.approx(2.0)


def test_time_remaining_equal_charge_and_current_is_one_hour(tmp_path):
    make_supply(tmp_path, "BAT0", charge_now="2500000", current_now="2500000")
    stats = BatteryStats(str(tmp_path))
    stats.num_battery()
    assert stats.get_time_remaining() == pytest.approx(1.0)


def test_current_history_is_capped(tmp_path):
    make_supply(tmp_path, "BAT0", charge_now="3000000", current_now="1500000")
    stats = BatteryStats(str(tmp_path))
    stats.num_battery()
    for _ in range(CURRENT_HISTORY + 5):
        stats.get_time_remaining()
    assert len(stats.current_now_vec) == CURRENT_HISTORY