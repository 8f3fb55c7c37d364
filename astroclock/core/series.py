# astroclock/core/series.py
# -----------------------------------------------------------------------------
# Series Provider: raw ephemeris positions from ERFA's analytic series.
#
# Public API (locked):
#   sun_position(T, precision)          -> SeriesPosition
#   moon_position(T, precision)         -> SeriesPosition
#   planet_position(body, T, precision) -> SeriesPosition   (any body 0..9)
#   heliocentric(body, T)               -> (lon, lat, radius_au)
#   nutation(T)                         -> (dpsi, deps)
#   mean_obliquity(T) / true_obliquity(T)
#   moon_ascending_node(T)
#   ra_and_decl(lat, lon, obliquity)    -> (ra, decl)
#
# Guarantees:
#   • T is Julian centuries (TDT) since J2000.0; every result is a plain float.
#   • Ecliptic coordinates are referred to the ecliptic and equinox of date
#     (erfa.ecm06); "apparent" adds nutation in longitude (erfa.nut06a).
#   • Earth: erfa.epv00. Planets: erfa.plan94 with one light-time pass.
#     Moon: erfa.moon98 (MID/FULL) or the Almanac low-precision series (LOW).
#   • Pluto has no series here: every coordinate is NaN.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import IntEnum
from typing import Tuple, Dict, Any
import math

import erfa  # pyERFA

from astroclock.core.constants import (
    ARCSEC,
    Body,
    JD2000,
    JULIAN_DAYS_PER_CENTURY,
    fmod_2pi,
)

__all__ = [
    "Precision",
    "SeriesPosition",
    "sun_position",
    "moon_position",
    "planet_position",
    "heliocentric",
    "nutation",
    "mean_obliquity",
    "true_obliquity",
    "moon_ascending_node",
    "ra_and_decl",
]

# Light time for 1 au, days
_LIGHT_DAYS_PER_AU = 0.0057755183
_SUN_ABERRATION = 20.4898 * ARCSEC

# erfa.plan94 planet numbers
_PLAN94: Dict[int, int] = {
    Body.MERCURY: 1,
    Body.VENUS: 2,
    Body.MARS: 4,
    Body.JUPITER: 5,
    Body.SATURN: 6,
    Body.URANUS: 7,
    Body.NEPTUNE: 8,
}


class Precision(IntEnum):
    """Moon series precision; other bodies are always computed at FULL."""
    LOW = 0
    MID = 1
    FULL = 2


# ───────────────────────────── Dataclass ─────────────────────────────

@dataclass(frozen=True)
class SeriesPosition:
    longitude: float   # ecliptic longitude of date [rad]
    latitude: float    # ecliptic latitude [rad]
    distance: float    # geocentric distance [au]
    ra: float          # right ascension of date [rad], not wrapped
    decl: float        # declination of date [rad]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_NAN_POSITION = SeriesPosition(math.nan, math.nan, math.nan, math.nan, math.nan)

# ───────────────────────────── ERFA helpers ─────────────────────────────

def _tt(T: float) -> Tuple[float, float]:
    # Two-part TT Julian date keeps full resolution in the day fraction.
    return JD2000, float(T) * JULIAN_DAYS_PER_CENTURY


def _p(pv):
    """Position part of an ERFA pv-vector."""
    return pv["p"]


def _ecliptic_of_date(vec, d1: float, d2: float) -> Tuple[float, float, float]:
    rm = erfa.ecm06(d1, d2)
    v = erfa.rxp(rm, vec)
    lon, lat = erfa.c2s(v)
    return float(fmod_2pi(float(lon))), float(lat), float(erfa.pm(v))


def ra_and_decl(latitude: float, longitude: float, obliquity: float) -> Tuple[float, float]:
    """Ecliptic (β, λ) → equatorial (α, δ). RA is returned as atan2 gives it."""
    sin_e = math.sin(obliquity)
    cos_e = math.cos(obliquity)
    sin_l = math.sin(longitude)
    decl = math.asin(math.sin(latitude) * cos_e + math.cos(latitude) * sin_e * sin_l)
    ra = math.atan2(sin_l * cos_e - math.tan(latitude) * sin_e, math.cos(longitude))
    return ra, decl

# ───────────────────────────── nutation / obliquity ─────────────────────────────

def nutation(T: float) -> Tuple[float, float]:
    d1, d2 = _tt(T)
    dpsi, deps = erfa.nut06a(d1, d2)
    return float(dpsi), float(deps)


def mean_obliquity(T: float) -> float:
    d1, d2 = _tt(T)
    return float(erfa.obl06(d1, d2))


def true_obliquity(T: float) -> float:
    return mean_obliquity(T) + nutation(T)[1]


def moon_ascending_node(T: float) -> float:
    """Mean longitude of the Moon's ascending node (IERS 2003)."""
    return float(fmod_2pi(float(erfa.faom03(float(T)))))

# ───────────────────────────── bodies ─────────────────────────────

def _earth_heliocentric(d1: float, d2: float):
    pvh, _pvb = erfa.epv00(d1, d2)
    return _p(pvh)


def sun_position(T: float, precision: Precision = Precision.FULL) -> SeriesPosition:
    d1, d2 = _tt(T)
    geo = -_earth_heliocentric(d1, d2)
    lon, lat, r = _ecliptic_of_date(geo, d1, d2)
    lon -= _SUN_ABERRATION / r
    eps = mean_obliquity(T)
    if precision == Precision.FULL:
        dpsi, deps = nutation(T)
        lon += dpsi
        eps += deps
    lon = fmod_2pi(lon)
    ra, decl = ra_and_decl(lat, lon, eps)
    return SeriesPosition(lon, lat, r, ra, decl)


def _moon_low(T: float) -> Tuple[float, float, float]:
    """Astronomical Almanac low-precision lunar series (mean equinox of date)."""
    def s(a: float, b: float) -> float:
        return math.sin(math.radians(a + b * T))

    def c(a: float, b: float) -> float:
        return math.cos(math.radians(a + b * T))

    lon = (218.32 + 481267.881 * T
           + 6.29 * s(135.0, 477198.87) - 1.27 * s(259.3, -413335.36)
           + 0.66 * s(235.7, 890534.22) + 0.21 * s(269.9, 954397.74)
           - 0.19 * s(357.5, 35999.05) - 0.11 * s(186.5, 966404.03))
    lat = (5.13 * s(93.3, 483202.02) + 0.28 * s(228.2, 960400.89)
           - 0.28 * s(318.3, 6003.15) - 0.17 * s(217.6, -407332.21))
    hp = (0.9508 + 0.0518 * c(135.0, 477198.87) + 0.0095 * c(259.3, -413335.36)
          + 0.0078 * c(235.7, 890534.22) + 0.0028 * c(269.9, 954397.74))
    earth_radii = 1.0 / math.sin(math.radians(hp))
    dist_au = earth_radii * 6378.14 / 149597870.7
    return fmod_2pi(math.radians(lon)), math.radians(lat), dist_au


def moon_position(T: float, precision: Precision = Precision.FULL) -> SeriesPosition:
    eps = mean_obliquity(T)
    if precision == Precision.LOW:
        lon, lat, dist = _moon_low(T)
    else:
        d1, d2 = _tt(T)
        lon, lat, dist = _ecliptic_of_date(_p(erfa.moon98(d1, d2)), d1, d2)
        if precision == Precision.FULL:
            dpsi, deps = nutation(T)
            lon = fmod_2pi(lon + dpsi)
            eps += deps
    ra, decl = ra_and_decl(lat, lon, eps)
    return SeriesPosition(lon, lat, dist, ra, decl)


def planet_position(body: int, T: float, precision: Precision = Precision.FULL) -> SeriesPosition:
    """Apparent geocentric position of any body; the Moon honours `precision`."""
    if body == Body.SUN:
        return sun_position(T, Precision.FULL)
    if body == Body.MOON:
        return moon_position(T, precision)
    np_ = _PLAN94.get(int(body))
    if np_ is None:
        return _NAN_POSITION
    d1, d2 = _tt(T)
    earth = _earth_heliocentric(d1, d2)
    geo = _p(erfa.plan94(d1, d2, np_)) - earth
    tau = float(erfa.pm(geo)) * _LIGHT_DAYS_PER_AU
    geo = _p(erfa.plan94(d1, d2 - tau, np_)) - earth
    lon, lat, dist = _ecliptic_of_date(geo, d1, d2)
    dpsi, deps = nutation(T)
    lon = fmod_2pi(lon + dpsi)
    ra, decl = ra_and_decl(lat, lon, mean_obliquity(T) + deps)
    return SeriesPosition(lon, lat, dist, ra, decl)


def heliocentric(body: int, T: float) -> Tuple[float, float, float]:
    """Heliocentric ecliptic (lon, lat, radius au) of Mercury..Neptune, Earth included."""
    d1, d2 = _tt(T)
    if body == Body.EARTH:
        return _ecliptic_of_date(_earth_heliocentric(d1, d2), d1, d2)
    np_ = _PLAN94.get(int(body))
    if np_ is None:
        return math.nan, math.nan, math.nan
    return _ecliptic_of_date(_p(erfa.plan94(d1, d2, np_)), d1, d2)
