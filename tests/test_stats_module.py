import threading

import pytest

from powersocket.core.state import EnergyRecord
from powersocket.modules.stats import DailyAggregator

from conftest import START_TS

DAY = 86400.0
HOUR = 3600.0


# =============================================================================
# Core helpers
# =============================================================================

def make_aggregator(tariff, tz, clock):
    return DailyAggregator(tariff, tz=tz, clock=clock, lock=threading.RLock())


def rec(ts: float, energy: float, cost: float = 0.0) -> EnergyRecord:
    return EnergyRecord(timestamp=int(ts), energy=energy, cost=cost)


def assert_split_invariant(day: dict):
    assert day["energy_total"] == pytest.approx(day["energy_peak"] + day["energy_offpeak"])


# =============================================================================
# ingest / today
# =============================================================================

def test_two_records_same_day_sum(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)
    agg.ingest(rec(START_TS, 0.5, 2.5))
    agg.ingest(rec(START_TS + 60, 0.3, 1.5))

    today = agg.today()
    assert today["energy_total"] == pytest.approx(0.8)
    assert today["cost_total"] == pytest.approx(4.0)
    assert today["energy_peak"] == pytest.approx(0.8)
    assert today["energy_offpeak"] == 0.0
    assert_split_invariant(today)


def test_peak_and_offpeak_split_by_local_hour(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)
    agg.ingest(rec(START_TS, 1.0))              # 12:00 -> szczyt
    agg.ingest(rec(START_TS + 11 * HOUR, 2.0))  # 23:00 -> poza szczytem

    today = agg.today()
    assert today["energy_peak"] == pytest.approx(1.0)
    assert today["energy_offpeak"] == pytest.approx(2.0)
    assert_split_invariant(today)


def test_usage_hours_and_avg_power(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)
    bucket = agg.ingest(rec(START_TS, 0.5))

    # floor(500 / 60) = 8
    assert bucket.usage_hours == 8
    today = agg.today()
    assert today["usage_hours"] == 8.0
    assert today["avg_power"] == pytest.approx(500.0 / 8)


def test_avg_power_guarded_when_usage_hours_is_zero(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)
    agg.ingest(rec(START_TS, 0.01))

    today = agg.today()
    assert today["usage_hours"] == 0.0
    assert today["avg_power"] == 0.0


def test_ingest_returns_copy(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)
    b = agg.ingest(rec(START_TS, 1.0))
    b.energy_total = 999.0

    assert agg.today()["energy_total"] == pytest.approx(1.0)


def test_empty_queries_return_zeros(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)

    for day in (agg.today(), agg.yesterday()):
        assert all(v == 0.0 for v in day.values())

    week = agg.week()
    assert week["days_count"] == 0.0
    assert week["energy_daily_avg"] == 0.0
    assert week["cost_daily_avg"] == 0.0
    assert agg.month()["energy_total"] == 0.0


# =============================================================================
# yesterday / week / month
# =============================================================================

def test_yesterday_is_previous_calendar_day(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)
    agg.ingest(rec(START_TS, 1.5))
    clock.advance(DAY)

    assert agg.yesterday()["energy_total"] == pytest.approx(1.5)
    assert agg.today()["energy_total"] == 0.0


def test_week_with_three_of_seven_days(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)
    # 15, 18 i 21 marca; "dziś" = 21 marca
    agg.ingest(rec(START_TS, 1.0, 5.0))
    agg.ingest(rec(START_TS + 3 * DAY, 2.0, 10.0))
    agg.ingest(rec(START_TS + 6 * DAY, 3.0, 15.0))
    clock.advance(6 * DAY)

    week = agg.week()
    assert week["days_count"] == 3.0
    assert week["energy_total"] == pytest.approx(6.0)
    assert week["energy_daily_avg"] == pytest.approx(2.0)
    assert week["cost_daily_avg"] == pytest.approx(10.0)


def test_week_drops_eighth_day(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)
    agg.ingest(rec(START_TS, 1.0))
    agg.ingest(rec(START_TS + DAY, 2.0))
    clock.advance(7 * DAY)

    week = agg.week()
    assert week["days_count"] == 1.0
    assert week["energy_total"] == pytest.approx(2.0)


def test_month_only_current_calendar_month(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)
    agg.ingest(rec(START_TS, 1.0))               # 15 marca
    agg.ingest(rec(START_TS + 17 * DAY, 4.0))    # 1 kwietnia
    clock.advance(17 * DAY)

    month = agg.month()
    assert month["days_count"] == 1.0
    assert month["energy_total"] == pytest.approx(4.0)


def test_buckets_sorted_by_date_and_clear(tariff, tz, clock):
    agg = make_aggregator(tariff, tz, clock)
    agg.ingest(rec(START_TS + 2 * DAY, 1.0))
    agg.ingest(rec(START_TS, 1.0))

    assert [b.date for b in agg.buckets()] == ["2024-03-15", "2024-03-17"]
    assert agg.bucket("2024-03-15") is not None
    assert agg.bucket("2024-03-16") is None

    agg.clear()
    assert agg.buckets() == []
