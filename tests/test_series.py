##########################################################################################
#
# Script name: test_series.py
#
# Description: Synthetic series generation, range parameters, and chart points.
#
##########################################################################################

import math
from datetime import datetime, timezone

import pytest

from market_tracker.models import CoinSnapshot, PriceRange
from market_tracker.series import (
    XorShift64Star,
    chart_points,
    generate,
    range_params,
    seed_for,
    series_for_snapshot,
    taper,
)


def _snapshot(**overrides) -> CoinSnapshot:
    values = {
        'id': 1,
        'name': 'Bitcoin',
        'symbol': 'BTC',
        'price': 100.0,
        'percent_change_1h': 0.5,
        'percent_change_24h': 25.0,
        'percent_change_7d': 10.0,
    }
    values.update(overrides)
    return CoinSnapshot(**values)


@pytest.mark.parametrize(
    'start, end, count, seed',
    [
        (100.0, 125.0, 96, 42),
        (0.000123, 0.0001, 60, 0),
        (64000.0, 64000.0, 2, 7),
        (1.0, 3.7, 180, 2**64 - 1),
    ],
)
def test_generate_endpoints_are_exact(start: float, end: float, count: int, seed: int) -> None:
    series = generate(start, end, count, seed, 0.02)
    assert len(series) == count
    assert series[0] == start
    assert series[-1] == end


def test_generate_is_deterministic() -> None:
    first = generate(100.0, 120.0, 168, 123456789, 0.01)
    second = generate(100.0, 120.0, 168, 123456789, 0.01)
    assert first == second


def test_generate_seed_changes_shape() -> None:
    assert generate(100.0, 120.0, 50, 1, 0.05) != generate(100.0, 120.0, 50, 2, 0.05)


def test_generate_without_wiggle_follows_log_linear_baseline() -> None:
    series = generate(100.0, 400.0, 3, 9, 0.0)
    assert series[1] == pytest.approx(200.0)


def test_generate_wiggle_stays_within_envelope() -> None:
    scale = 0.02
    series = generate(50.0, 60.0, 121, 77, scale)
    for idx, value in enumerate(series):
        t = idx / 120
        base = 50.0 * (60.0 / 50.0) ** t
        # |wiggle| <= 0.55 + 0.30 + 0.15 + 0.20 * 0.25
        assert abs(value / base - 1.0) <= scale * taper(t) * 1.05 + 1e-12


def test_generate_invalid_input_degrades() -> None:
    assert generate(0.0, 10.0, 10, 1, 0.01) == []
    assert generate(-5.0, 10.0, 10, 1, 0.01) == []
    assert generate(math.nan, 10.0, 10, 1, 0.01) == []
    assert generate(10.0, math.inf, 10, 1, 0.01) == []
    assert generate(10.0, -1.0, 10, 1, 0.01) == [10.0, -1.0]
    assert generate(10.0, 12.0, 1, 1, 0.01) == [10.0, 12.0]


def test_taper_vanishes_at_ends() -> None:
    assert taper(0.0) == 0.0
    assert taper(1.0) == 0.0
    assert taper(0.5) == 1.0


def test_xorshift_zero_seed_is_not_degenerate() -> None:
    zero = XorShift64Star(0)
    draws = [zero.next_unit() for _ in range(5)]
    assert len(set(draws)) == 5
    assert all(0.0 <= draw < 1.0 for draw in draws)
    substitute = XorShift64Star(0x9E3779B97F4A7C15)
    assert [substitute.next_unit() for _ in range(5)] == draws


def test_seed_for_is_stable_and_distinct() -> None:
    assert seed_for(1, 'd1') == seed_for(1, 'd1')
    assert seed_for(1, 'd1') != seed_for(1, 'w1')
    assert seed_for(1, 'd1') != seed_for(2, 'd1')
    assert 0 <= seed_for(1027, 'y1') < 2**64


def test_range_params_native_statistics() -> None:
    snapshot = _snapshot()
    hour = range_params(snapshot, PriceRange.HOUR)
    day = range_params(snapshot, PriceRange.DAY)
    week = range_params(snapshot, PriceRange.WEEK)
    assert (hour.percent_change, hour.points, hour.granularity, hour.wiggle_scale) == (0.5, 60, 60, 0.0025)
    assert (day.percent_change, day.points, day.granularity, day.wiggle_scale) == (25.0, 96, 900, 0.005)
    assert (week.percent_change, week.points, week.granularity, week.wiggle_scale) == (10.0, 168, 3600, 0.01)
    assert day.seed == seed_for(1, 'd1')


def test_range_params_compounds_weekly_change() -> None:
    month = range_params(_snapshot(), PriceRange.MONTH)
    year = range_params(_snapshot(), PriceRange.YEAR)
    assert month.percent_change == pytest.approx((1.10 ** (30 / 7) - 1) * 100)
    assert month.points == 120
    assert month.seed == seed_for(1, 'm1')
    assert year.percent_change == pytest.approx((1.10 ** (365 / 7) - 1) * 100)
    assert year.points == 180
    assert year.wiggle_scale == 0.02


def test_range_params_falls_back_to_daily_compounding() -> None:
    snapshot = _snapshot(percent_change_7d=None, percent_change_24h=1.0)
    month = range_params(snapshot, PriceRange.MONTH)
    assert month.percent_change == pytest.approx((1.01 ** 30 - 1) * 100)
    assert month.seed == seed_for(1, 'm1d')
    assert range_params(snapshot, PriceRange.YEAR).seed == seed_for(1, 'y1d')


def test_range_params_missing_statistic() -> None:
    snapshot = _snapshot(percent_change_7d=None, percent_change_24h=None, percent_change_1h=None)
    for price_range in PriceRange:
        assert range_params(snapshot, price_range) is None


def test_series_for_snapshot_reconstructs_start() -> None:
    series = series_for_snapshot(_snapshot(), PriceRange.DAY)
    assert len(series) == 96
    assert series[0] == pytest.approx(80.0)
    assert series[-1] == 100.0
    assert series == series_for_snapshot(_snapshot(), PriceRange.DAY)


def test_series_for_snapshot_without_usable_data() -> None:
    assert series_for_snapshot(_snapshot(price=0.0), PriceRange.DAY) is None
    assert series_for_snapshot(_snapshot(percent_change_24h=None), PriceRange.DAY) is None
    assert series_for_snapshot(_snapshot(percent_change_24h=-100.0), PriceRange.DAY) is None


def test_chart_points_end_at_given_time() -> None:
    end_time = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
    points = chart_points([1.0, 2.0, 3.0], 60, end_time=end_time)
    assert [stamp.minute for stamp, _ in points] == [58, 59, 0]
    assert points[-1] == (end_time, 3.0)
