import pytest

from powersocket.core.energy_service import EnergyService

DAY = 86400.0


def test_add_power_reading_converts_to_kwh(service):
    r = service.add_power_reading(1000.0, 3600.0)

    assert r is not None
    assert r.energy == pytest.approx(1.0)
    assert service.latest() == r
    assert service.today()["energy_total"] == pytest.approx(1.0)


def test_add_power_reading_one_minute(service):
    r = service.add_power_reading(120.0, 60.0)
    assert r.energy == pytest.approx(120.0 * 60.0 / 3_600_000.0)


@pytest.mark.parametrize("power, duration", [(0.0, 60.0), (-5.0, 60.0), (100.0, 0.0), (100.0, -1.0)])
def test_add_power_reading_ignores_non_positive(service, power, duration):
    assert service.add_power_reading(power, duration) is None
    assert len(service.ledger) == 0
    assert service.today()["energy_total"] == 0.0


def test_stats_by_period(service, clock):
    service.add_energy_reading(1.0)
    clock.advance(DAY)
    service.add_energy_reading(2.0)

    assert service.stats("today")["energy_total"] == pytest.approx(2.0)
    assert service.stats("yesterday")["energy_total"] == pytest.approx(1.0)
    assert service.stats("week")["days_count"] == 2.0
    assert service.stats("month")["energy_total"] == pytest.approx(3.0)

    with pytest.raises(KeyError):
        service.stats("decade")


def test_json_report_shape(service, clock):
    service.add_energy_reading(0.5)
    report = service.json_report()

    assert set(report) == {"today", "week", "month", "timestamp"}
    assert report["timestamp"] == int(clock.time())
    assert report["today"]["energy_total"] == pytest.approx(0.5)
    assert report["week"]["energy_daily_avg"] == pytest.approx(0.5)


def test_clear_history_and_daily_stats_are_independent(service):
    service.add_energy_reading(1.0)

    service.clear_history()
    assert len(service.history(24)) == 0
    assert service.today()["energy_total"] == pytest.approx(1.0)

    service.add_energy_reading(2.0)
    service.clear_daily_stats()
    assert service.today()["energy_total"] == 0.0
    assert [r.energy for r in service.history(24)] == [2.0]


def test_co2_and_savings(service, tariff):
    assert service.co2_emissions(10.0) == pytest.approx(3.3)
    assert service.savings(10.0) == pytest.approx(35.0)

    tariff.set_tariffs(6.0, 2.0)
    assert service.savings(10.0) == pytest.approx(40.0)


def test_custom_co2_factor(tariff, tz, clock):
    svc = EnergyService(tariff, tz=tz, clock=clock, co2_kg_per_kwh=0.5)
    assert svc.co2_emissions(2.0) == pytest.approx(1.0)


def test_max_records_passed_to_ledger(tariff, tz, clock):
    svc = EnergyService(tariff, tz=tz, clock=clock, max_records=3)
    for _ in range(5):
        svc.add_energy_reading(0.1)

    assert len(svc.ledger) == 3
    assert svc.ledger.max_records == 3


def test_export_csv_through_service(service, tmp_path):
    service.add_energy_reading(1.0)
    out = tmp_path / "out.csv"

    assert service.export_csv(out) is True
    assert service.write_csv(out) == 1
    assert out.read_text(encoding="utf-8").splitlines()[0].startswith("Date,")


def test_tariff_change_affects_only_new_records(service, tariff):
    first = service.add_energy_reading(1.0)
    tariff.set_tariffs(10.0, 1.0)
    second = service.add_energy_reading(1.0)

    assert first.cost == pytest.approx(5.0)
    assert second.cost == pytest.approx(10.0)
    assert service.today()["cost_total"] == pytest.approx(15.0)
