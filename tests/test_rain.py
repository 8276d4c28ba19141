"""Tests for the rain windows."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from aprswx.store import MemoryStore
from aprswx.weather import AggregationError, RainAggregator, RainState

T0 = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def rain(store):
    aggregator = RainAggregator(store, timezone_name="Europe/Helsinki")
    aggregator.load()
    return aggregator


def test_no_data_is_none_not_zero(rain):
    assert rain.totals() == {
        "rain_rate": None,
        "rain_1h": None,
        "rain_24h": None,
        "rain_today": None,
    }


def test_zero_rain_is_a_reading(rain):
    rain.record_rain(0.0, T0)
    assert rain.rain_1h == 0.0
    assert rain.rain_24h == 0.0
    assert rain.rain_today == 0.0


def test_amounts_are_rounded_to_tenths(rain):
    rain.record_rain(0.26, T0)
    rain.record_rain(0.1, T0 + timedelta(minutes=1))
    rain.record_rain(0.2, T0 + timedelta(minutes=2))
    assert rain.rain_1h == 0.6
    assert rain.rain_rate == 0.2


def test_negative_amount_is_rejected(rain):
    with pytest.raises(ValueError):
        rain.record_rain(-0.1, T0)


def test_rolling_hour_evicts_old_events_only(rain):
    rain.record_rain(1.0, T0)
    rain.record_rain(0.5, T0 + timedelta(minutes=30))

    assert rain.purge(T0 + timedelta(minutes=59)) is False
    assert rain.rain_1h == 1.5

    assert rain.purge(T0 + timedelta(minutes=61)) is True
    assert rain.rain_1h == 0.5
    assert rain.rain_24h == 1.5
    assert rain.rain_today == 1.5


def test_event_exactly_one_hour_old_is_evicted(rain):
    rain.record_rain(1.0, T0)
    rain.purge(T0 + timedelta(hours=1))
    assert rain.rain_1h is None


def test_local_midnight_resets_today_exactly_once(rain):
    # Helsinki is UTC+2 in January: local midnight is 22:00 UTC
    evening = datetime(2025, 1, 15, 21, 30, tzinfo=timezone.utc)
    rain.record_rain(2.0, evening)

    rain.purge(evening + timedelta(minutes=29))
    assert rain.rain_today == 2.0

    rain.purge(evening + timedelta(minutes=30))
    assert rain.rain_today is None
    assert rain.daily_resets == 1

    rain.purge(evening + timedelta(minutes=31))
    rain.record_rain(0.5, evening + timedelta(minutes=35))
    rain.purge(evening + timedelta(minutes=36))
    assert rain.daily_resets == 1
    assert rain.rain_today == 0.5
    # The 24h window follows UTC hours, not the local day
    assert rain.rain_24h == 2.5


def test_current_hour_bucket_is_cleared_a_day_later(rain):
    rain.record_rain(1.0, T0 + timedelta(minutes=15))

    rain.purge(T0 + timedelta(hours=23, minutes=59))
    assert rain.rain_24h == 1.0

    rain.purge(T0 + timedelta(hours=24))
    assert rain.rain_24h is None


def test_state_is_persisted_under_three_keys(rain, store):
    rain.record_rain(1.0, T0)
    assert set(store.data) == {"rain1h", "rain24h", "rainToday"}

    buckets = json.loads(store.data["rain24h"])
    assert buckets["version"] == 1
    assert buckets["buckets"][10] == 1.0

    daily = json.loads(store.data["rainToday"])
    assert daily["total"] == 1.0
    assert daily["date"] == "2025-01-15"


def test_restart_restores_windows(rain, store):
    rain.record_rain(3.0, T0)

    restarted = RainAggregator(store, timezone_name="Europe/Helsinki")
    restarted.load()
    assert restarted.rain_1h == 3.0
    assert restarted.rain_24h == 3.0
    assert restarted.rain_today == 3.0
    assert restarted.state.rolling_log[0].timestamp == T0


def test_restart_after_long_downtime_clears_stale_data(rain, store):
    rain.record_rain(3.0, T0)

    restarted = RainAggregator(store, timezone_name="Europe/Helsinki")
    restarted.load()
    restarted.purge(T0 + timedelta(hours=30))
    assert restarted.rain_1h is None
    assert restarted.rain_24h is None
    assert restarted.rain_today is None


def test_corrupt_blob_starts_that_window_empty():
    store = MemoryStore({
        "rain1h": "not json",
        "rain24h": json.dumps({"version": 1, "buckets": [1.0]}),
        "rainToday": json.dumps({"version": 1, "total": 4.2, "date": "2025-01-15"}),
    })
    rain = RainAggregator(store, timezone_name="Europe/Helsinki")
    rain.load()
    assert rain.rain_1h is None
    assert rain.rain_24h is None
    assert rain.rain_today == 4.2


def test_unknown_version_is_rejected():
    with pytest.raises(AggregationError):
        RainState.load_daily(json.dumps({"version": 99, "total": 1.0}))


def test_negative_stored_amount_is_rejected():
    blob = json.dumps({"version": 1, "events": [{"t": 1736935200000, "r": -1.0}]})
    with pytest.raises(AggregationError):
        RainState.load_rolling_log(blob)


def test_without_store_keeps_state_in_memory():
    rain = RainAggregator()
    rain.load()
    rain.record_rain(1.2, T0)
    assert rain.rain_today == 1.2


@pytest.mark.parametrize("key,blob", [
    ("rain1h", '{"version": 1, "events": [{"t": 1e20, "r": 1}]}'),
    ("rain1h", '{"version": 1, "events": [{"t": NaN, "r": 1}]}'),
    ("rain1h", '{"version": 1, "events": [{"t": 1736935200000, "r": Infinity}]}'),
    ("rain24h", '{"version": 1, "buckets": [null, null, null, null, null, null, null, null, '
                'null, null, null, null, null, null, null, null, null, null, null, null, '
                'null, null, null, null], "hours": [Infinity, null, null, null, null, null, '
                'null, null, null, null, null, null, null, null, null, null, null, null, '
                'null, null, null, null, null, null]}'),
    ("rainToday", '{"version": 1, "total": NaN, "date": "2025-01-15"}'),
])
def test_out_of_range_stored_values_start_the_window_empty(key, blob):
    rain = RainAggregator(MemoryStore({key: blob}), timezone_name="Europe/Helsinki")
    rain.load()
    assert rain.totals() == {
        "rain_rate": None,
        "rain_1h": None,
        "rain_24h": None,
        "rain_today": None,
    }


@pytest.mark.parametrize("amount", [float("nan"), float("inf")])
def test_non_finite_amount_is_rejected(rain, store, amount):
    rain.record_rain(1.0, T0)
    with pytest.raises(ValueError):
        rain.record_rain(amount, T0 + timedelta(minutes=1))
    assert rain.rain_1h == 1.0
    assert rain.rain_24h == 1.0
    assert rain.rain_today == 1.0
    assert "NaN" not in store.get("rain24h")
    assert "Infinity" not in store.get("rain24h")
