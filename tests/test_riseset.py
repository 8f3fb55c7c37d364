# tests/test_riseset.py
from __future__ import annotations

import copy
import math
import pickle
import pytest

from astroclock.core import civil
from astroclock.core.astro_cache import CachePool
from astroclock.core.constants import Body
from astroclock.core.riseset import (
    ALWAYS_ABOVE,
    ALWAYS_BELOW,
    NoCrossing,
    classify,
    extrapolate_to_y_equals_x,
    is_always_above,
    is_always_below,
    linear_fit,
    rise_set_time_refined,
    same_outcome,
    transit_time_refined,
)

BOSTON = (math.radians(42.37), math.radians(-71.05))
TROMSO = (math.radians(70.0), math.radians(19.0))

# ─────────────────────────────────────────────────────────────────────────────
# Sentinels
# ─────────────────────────────────────────────────────────────────────────────

def test_sentinels_are_nan_and_distinct() -> None:
    for s in (ALWAYS_ABOVE, ALWAYS_BELOW):
        assert isinstance(s, NoCrossing)
        assert math.isnan(s)
    assert classify(ALWAYS_ABOVE) == "always_above"
    assert classify(ALWAYS_BELOW) == "always_below"
    assert classify(math.nan) == "invalid"
    assert classify(12.5) == "value"
    assert is_always_above(ALWAYS_ABOVE) and not is_always_above(math.nan)
    assert is_always_below(ALWAYS_BELOW) and not is_always_below(ALWAYS_ABOVE)


def test_sentinels_survive_pickle_and_copy() -> None:
    assert pickle.loads(pickle.dumps(ALWAYS_ABOVE)) is ALWAYS_ABOVE
    assert copy.deepcopy(ALWAYS_BELOW) is ALWAYS_BELOW


@pytest.mark.parametrize(
    "a,b,same",
    [
        (1.0, 1.0, True),
        (1.0, 2.0, False),
        (math.nan, math.nan, True),
        (ALWAYS_ABOVE, ALWAYS_ABOVE, True),
        (ALWAYS_ABOVE, ALWAYS_BELOW, False),
        (ALWAYS_BELOW, math.nan, False),
        (ALWAYS_ABOVE, 3.0, False),
    ],
)
def test_same_outcome(a: float, b: float, same: bool) -> None:
    assert same_outcome(a, b) is same

# ─────────────────────────────────────────────────────────────────────────────
# Fixed-point fitting
# ─────────────────────────────────────────────────────────────────────────────

def test_linear_fit_finds_fixed_point() -> None:
    # f(x) = x/2 + 10 has its fixed point at 20
    assert linear_fit(0.0, 10.0, 4.0, 12.0) == pytest.approx(20.0)


def test_linear_fit_parallel_falls_back_to_newest() -> None:
    # f(x) = x + 5 never meets y == x
    assert linear_fit(0.0, 5.0, 10.0, 15.0) == 15.0


def test_extrapolate_single_and_linear() -> None:
    assert extrapolate_to_y_equals_x([3.0], [7.0]) == 7.0
    xs = [0.0, 2.0, 4.0]
    ys = [x / 2 + 1000 for x in xs]
    assert extrapolate_to_y_equals_x(xs, ys) == pytest.approx(2000.0)


def test_extrapolate_parabola() -> None:
    # fixed points at 200 and 300; the one nearest the newest sample wins
    def f(x: float) -> float:
        return 0.001 * (x - 250.0) ** 2 + x - 2.5

    xs = [180.0, 190.0, 195.0]
    ys = [f(x) for x in xs]
    root = extrapolate_to_y_equals_x(xs, ys)
    assert f(root) == pytest.approx(root, abs=1e-6)


def test_extrapolate_requires_samples() -> None:
    with pytest.raises(ValueError):
        extrapolate_to_y_equals_x([], [])

# ─────────────────────────────────────────────────────────────────────────────
# Refined solvers
# ─────────────────────────────────────────────────────────────────────────────

def test_sun_transit_at_greenwich_near_noon(pool: CachePool) -> None:
    t = civil.utc_instant(2022, 11, 3, 11)
    tr, rst = transit_time_refined(t, math.radians(51.48), 0.0, True, Body.SUN, math.nan, pool)
    assert tr == rst
    # equation of time in early November is about +16.4 min
    assert tr == pytest.approx(civil.utc_instant(2022, 11, 3, 11, 43, 36), abs=60)


def test_boston_sunrise(pool: CachePool) -> None:
    t = civil.utc_instant(1986, 3, 10, 11)
    rise, _ = rise_set_time_refined(t, *BOSTON, True, Body.SUN, math.nan, pool)
    assert rise == pytest.approx(civil.utc_instant(1986, 3, 10, 11, 5, 8), abs=3)


def test_moon_rise_converges(pool: CachePool) -> None:
    t = civil.utc_instant(2023, 9, 1, 12)
    rise, rst = rise_set_time_refined(t, *BOSTON, True, Body.MOON, math.nan, pool)
    assert math.isfinite(rise)
    assert rise == rst
    assert abs(rise - t) < 20 * 3600


def test_midnight_sun_reports_always_above(pool: CachePool) -> None:
    t = civil.utc_instant(2021, 6, 21, 12)
    result, probe = rise_set_time_refined(t, *TROMSO, True, Body.SUN, math.nan, pool)
    assert result is ALWAYS_ABOVE
    assert math.isfinite(probe)


def test_polar_night_reports_always_below(pool: CachePool) -> None:
    t = civil.utc_instant(2021, 12, 21, 12)
    result, _ = rise_set_time_refined(t, *TROMSO, False, Body.SUN, math.nan, pool)
    assert result is ALWAYS_BELOW


def test_override_altitude_moves_the_event(pool: CachePool) -> None:
    t = civil.utc_instant(2019, 4, 1, 23)
    civil_set, _ = rise_set_time_refined(t, *BOSTON, False, Body.SUN, math.radians(-6.0), pool)
    plain_set, _ = rise_set_time_refined(t, *BOSTON, False, Body.SUN, math.nan, pool)
    assert 15 * 60 < civil_set - plain_set < 45 * 60
