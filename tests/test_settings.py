import pytest

from powersocket.config.settings import (
    DEFAULT_SETTINGS_PATH,
    Settings,
    load_settings,
    parse_settings,
)
from powersocket.core.errors import ConfigurationError
from powersocket.core.state import SensorType


def test_packaged_settings_file_loads():
    s = load_settings(DEFAULT_SETTINGS_PATH)

    assert s.sensor.type is SensorType.SIMULATION
    assert s.sensor.address == 0x40
    assert s.tariff.peak_rate == 5.0
    assert s.tariff.peak_start == 8
    assert s.stats.timezone == "Europe/Moscow"
    assert s.stats.max_records == 43200


def test_missing_file_gives_defaults(tmp_path):
    assert load_settings(tmp_path / "nope.yaml") == Settings()


def test_env_variable_overrides_path(tmp_path, monkeypatch):
    p = tmp_path / "custom.yaml"
    p.write_text("sensor:\n  type: i2c\n  address: '0x41'\n", encoding="utf-8")
    monkeypatch.setenv("POWERSOCKET_SETTINGS", str(p))

    s = load_settings()
    assert s.sensor.type is SensorType.I2C
    assert s.sensor.address == 0x41


@pytest.mark.parametrize("raw, expected", [(4, SensorType.SIMULATION), ("1", SensorType.I2C), ("pzem", SensorType.PZEM)])
def test_sensor_type_codes_and_names(raw, expected):
    assert parse_settings({"sensor": {"type": raw}}).sensor.type is expected


def test_tariff_keys_mapped():
    s = parse_settings({"tariff": {"peak": 6.0, "offpeak": 1.5, "peak_start": 7, "peak_end": 22}})
    assert (s.tariff.peak_rate, s.tariff.offpeak_rate) == (6.0, 1.5)
    assert (s.tariff.peak_start, s.tariff.peak_end) == (7, 22)


@pytest.mark.parametrize(
    "data",
    [
        {"sensor": {"calibration": 0}},
        {"sensor": {"type": "bluetooth"}},
        {"sensor": {"warning_threshold": 5000, "critical_threshold": 3000}},
        {"sensor": {"temperature_warning_threshold": "nan"}},
        {"tariff": {"peak_start": 23, "peak_end": 8}},
        {"tariff": {"peak": "drogo"}},
        {"stats": {"max_records": 0}},
        {"stats": {"energy_interval_s": 0}},
    ],
)
def test_invalid_settings_raise_configuration_error(data):
    with pytest.raises(ConfigurationError):
        parse_settings(data)


def test_non_mapping_file_rejected(tmp_path):
    p = tmp_path / "bad.yaml"
    p.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_settings(p)


def test_temperature_warning_threshold():
    assert parse_settings({}).sensor.temperature_warning_threshold == 70.0
    s = parse_settings({"sensor": {"temperature_warning_threshold": 65}})
    assert s.sensor.temperature_warning_threshold == 65.0
    assert load_settings(DEFAULT_SETTINGS_PATH).sensor.temperature_warning_threshold == 70.0
