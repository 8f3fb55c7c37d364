# tests/test_series.py
from __future__ import annotations

import math
import pytest

from astroclock.core import civil
from astroclock.core.constants import Body, PLANET_BODIES, TWO_PI
from astroclock.core.series import (
    Precision,
    heliocentric,
    mean_obliquity,
    moon_ascending_node,
    moon_position,
    nutation,
    planet_position,
    ra_and_decl,
    sun_position,
    true_obliquity,
)
from astroclock.core.timescales import julian_centuries


def _T(*ymdhms) -> float:
    return julian_centuries(None, civil.utc_instant(*ymdhms))[0]


def _angle_diff(a: float, b: float) -> float:
    d = math.fmod(a - b, TWO_PI)
    if d > math.pi:
        d -= TWO_PI
    elif d < -math.pi:
        d += TWO_PI
    return abs(d)


def test_sun_longitude_zero_at_march_equinox() -> None:
    # 2024 March equinox: 03:06 UTC on March 20
    pos = sun_position(_T(2024, 3, 20, 3, 6))
    assert math.degrees(_angle_diff(pos.longitude, 0.0)) < 0.01
    assert abs(pos.decl) < math.radians(0.01)
    assert 0.99 < pos.distance < 1.0


def test_sun_declination_at_june_solstice() -> None:
    pos = sun_position(_T(2023, 6, 21, 14, 58))
    assert math.degrees(pos.decl) == pytest.approx(23.44, abs=0.01)


def test_obliquity_and_nutation_ranges() -> None:
    T = _T(2010, 1, 1)
    eps = mean_obliquity(T)
    assert math.degrees(eps) == pytest.approx(23.438, abs=0.005)
    dpsi, deps = nutation(T)
    assert abs(dpsi) < math.radians(20 / 3600)
    assert abs(deps) < math.radians(10 / 3600)
    assert true_obliquity(T) == pytest.approx(eps + deps)


def test_moon_precisions_agree_roughly() -> None:
    T = _T(2021, 5, 26, 11, 14)   # full moon
    full = moon_position(T, Precision.FULL)
    mid = moon_position(T, Precision.MID)
    low = moon_position(T, Precision.LOW)
    assert math.degrees(_angle_diff(full.longitude, mid.longitude)) < 0.01
    assert math.degrees(_angle_diff(full.longitude, low.longitude)) < 0.5
    assert 0.0023 < full.distance < 0.0028
    sun = sun_position(T)
    assert math.degrees(_angle_diff(full.longitude, sun.longitude + math.pi)) < 1.0


def test_moon_node_wraps() -> None:
    node = moon_ascending_node(_T(2000, 1, 1, 12))
    assert 0.0 <= node < TWO_PI
    assert math.degrees(node) == pytest.approx(125.04, abs=0.05)


@pytest.mark.parametrize("body", PLANET_BODIES)
def test_planets_have_finite_positions(body: Body) -> None:
    pos = planet_position(body, _T(2015, 8, 1))
    assert 0.0 <= pos.longitude < TWO_PI
    assert abs(pos.latitude) < math.radians(10.0)
    assert pos.distance > 0.25
    lon, lat, r = heliocentric(body, _T(2015, 8, 1))
    assert 0.0 <= lon < TWO_PI
    assert 0.3 < r < 31.0


def test_pluto_and_sun_heliocentric_are_nan() -> None:
    T = _T(2015, 8, 1)
    assert math.isnan(planet_position(Body.PLUTO, T).ra)
    assert all(math.isnan(v) for v in heliocentric(Body.SUN, T))
    lon, lat, r = heliocentric(Body.EARTH, T)
    assert r == pytest.approx(1.015, abs=0.01)


def test_ra_and_decl_on_ecliptic_axes() -> None:
    eps = math.radians(23.44)
    ra, decl = ra_and_decl(0.0, math.pi / 2, eps)
    assert ra == pytest.approx(math.pi / 2)
    assert decl == pytest.approx(eps)
    ra, decl = ra_and_decl(0.0, 0.0, eps)
    assert ra == pytest.approx(0.0) and decl == pytest.approx(0.0)
