##########################################################################################
#
# Script name: series.py
#
# Description: Deterministic synthetic price series built from percent-change stats.
#
##########################################################################################

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from .config import EXTRAPOLATED_RANGE_DAYS, RANGE_SPECS
from .models import CoinSnapshot, PriceRange
from .utils import utc_now


# ****************************************************************************************
# Global data and configuration
# ****************************************************************************************

log = logging.getLogger(__name__)

MASK_64 = 0xFFFFFFFFFFFFFFFF
ZERO_SEED_SUBSTITUTE = 0x9E3779B97F4A7C15
XORSHIFT_MULTIPLIER = 2685821657736338717
UNIT_MANTISSA_MASK = 0xFFFFFFFFFFFF
UNIT_DIVISOR = float(0x1000000000000)

HARMONICS = ((2.0, 0.55), (5.0, 0.30), (11.0, 0.15))
NOISE_WEIGHT = 0.20


@dataclass(frozen=True)
class RangeParams:
    percent_change: float
    points: int
    seed: int
    granularity: int
    wiggle_scale: float


# ****************************************************************************************
# Classes
# ****************************************************************************************


class XorShift64Star:
    '''
    Seeded xorshift64* generator. State lives on the instance, so each series
    gets its own generator and repeated calls reproduce the same draws.
    '''

    def __init__(self, seed: int):
        seed &= MASK_64
        self.state = seed if seed != 0 else ZERO_SEED_SUBSTITUTE

    def next_unit(self) -> float:
        state = self.state
        state ^= state >> 12
        state ^= (state << 25) & MASK_64
        state ^= state >> 27
        self.state = state
        scrambled = (state * XORSHIFT_MULTIPLIER) & MASK_64
        return (scrambled & UNIT_MANTISSA_MASK) / UNIT_DIVISOR


# ****************************************************************************************
# Functions
# ****************************************************************************************


def taper(t: float) -> float:
    return 4.0 * t * (1.0 - t)


def generate(start: float, end: float, count: int, seed: int, wiggle_scale: float) -> list[float]:
    '''
    Build ``count`` points from ``start`` to ``end`` along a log-linear
    baseline with a tapered three-harmonic wiggle. Endpoints are exact.

    Returns an empty list when ``start`` is not a positive finite number or
    ``end`` is not finite, and ``[start, end]`` when ``count < 2`` or the ratio
    between the endpoints is not positive.
    '''
    if not math.isfinite(start) or start <= 0 or not math.isfinite(end):
        return []
    ratio = end / start
    if count < 2 or not math.isfinite(ratio) or ratio <= 0:
        return [start, end]

    rng = XorShift64Star(seed)
    phases = [rng.next_unit() * 2.0 * math.pi for _ in HARMONICS]

    series: list[float] = []
    for idx in range(count):
        t = idx / (count - 1)
        base = start * math.pow(ratio, t)
        wiggle = 0.0
        for (frequency, weight), phase in zip(HARMONICS, phases):
            wiggle += weight * math.sin(2.0 * math.pi * frequency * t + phase)
        noise = (rng.next_unit() - 0.5) * 0.5
        wiggle += NOISE_WEIGHT * noise
        series.append(base * (1.0 + wiggle_scale * taper(t) * wiggle))

    series[0] = start
    series[-1] = end
    return series


def seed_for(coin_id: int | str, tag: str) -> int:
    digest = hashlib.sha256(f'{coin_id}|{tag}'.encode('utf-8')).digest()
    return int.from_bytes(digest[:8], 'big')


def _compound(percent: float, periods: float) -> float:
    growth = 1.0 + percent / 100.0
    if growth < 0:
        return math.nan
    return (math.pow(growth, periods) - 1.0) * 100.0


def range_params(snapshot: CoinSnapshot, price_range: PriceRange) -> RangeParams | None:
    spec = RANGE_SPECS[price_range]
    tag = spec.tag
    if price_range == PriceRange.HOUR:
        percent = snapshot.percent_change_1h
    elif price_range == PriceRange.DAY:
        percent = snapshot.percent_change_24h
    elif price_range == PriceRange.WEEK:
        percent = snapshot.percent_change_7d
    elif price_range in EXTRAPOLATED_RANGE_DAYS:
        days = EXTRAPOLATED_RANGE_DAYS[price_range]
        if snapshot.percent_change_7d is not None:
            percent = _compound(snapshot.percent_change_7d, days / 7.0)
        elif snapshot.percent_change_24h is not None:
            percent = _compound(snapshot.percent_change_24h, days)
            tag = f'{tag}d'
        else:
            percent = None
    else:
        raise ValueError(f'Unhandled price range: {price_range}')

    if percent is None or not math.isfinite(percent):
        return None
    return RangeParams(
        percent_change=percent,
        points=spec.points,
        seed=seed_for(snapshot.id, tag),
        granularity=spec.granularity,
        wiggle_scale=spec.wiggle_scale,
    )


def series_for_snapshot(snapshot: CoinSnapshot, price_range: PriceRange) -> list[float] | None:
    current = snapshot.price
    if current is None or not math.isfinite(current) or current <= 0:
        log.debug('Snapshot %s has no usable price.', snapshot.id)
        return None
    params = range_params(snapshot, price_range)
    if params is None:
        log.debug('Snapshot %s has no statistic for range %s.', snapshot.id, price_range.value)
        return None
    growth = 1.0 + params.percent_change / 100.0
    if growth <= 0:
        return None
    start = current / growth
    series = generate(start, current, params.points, params.seed, params.wiggle_scale)
    return series or None


def chart_points(
    series: list[float],
    granularity: int,
    end_time: datetime | None = None,
) -> list[tuple[datetime, float]]:
    if end_time is None:
        end_time = utc_now()
    last = len(series) - 1
    return [
        (end_time - timedelta(seconds=granularity * (last - idx)), value)
        for idx, value in enumerate(series)
    ]
