# astroclock/core/constants.py
# -*- coding: utf-8 -*-
"""
Astroclock core constants and small helpers

Purpose
-------
Single source of truth for:
- body numbering & names (Sun, Moon, planets, the "midnight sun" pseudo-body)
- physical tables (radius, mass, orbital period)
- time constants (epochs, lunar cycle, tropical year, sidereal ratio)
- zodiac constellation centers/edges
- altitude kinds used for twilight / golden-hour queries
- tiny angle helpers

Design
------
- Pure-Python, no external dependencies.
- Safe to import from any core module.
- Angles are radians unless a name says `_DEG`.
"""

from __future__ import annotations
from enum import Enum, IntEnum
from typing import Dict, Tuple
import math

__all__ = [
    "Body", "PLANET_BODIES", "LAST_LEGAL_BODY", "body_name",
    "PLANET_RADIUS_KM", "PLANET_MASS_KG", "PLANET_ORBITAL_PERIOD_YEARS",
    "AU_KM", "JD_UNIX_EPOCH", "JD2000", "J2000_UNIX_SECONDS", "SECONDS_PER_DAY",
    "JULIAN_DAYS_PER_CENTURY", "SECONDS_PER_CENTURY", "UT_PER_GST",
    "LUNAR_CYCLE_SECONDS", "TROPICAL_YEAR_SECONDS",
    "LIMITING_AZIMUTH_LATITUDE", "REFRACTION_AT_HORIZON", "MOON_EQUATOR_INCLINATION",
    "HORIZONTAL_PARALLAX_1AU", "ARCSEC", "TWO_PI",
    "ZODIAC_CENTERS_DEG", "ZODIAC_EDGES_DEG", "ZODIAC_NAMES",
    "AltitudeKind", "TimeBase",
    "fmod_2pi", "wrap_pi",
]

TWO_PI: float = 2.0 * math.pi
ARCSEC: float = math.pi / (180.0 * 3600.0)

# ── bodies ────────────────────────────────────────────────────────────────────
class Body(IntEnum):
    SUN = 0
    MOON = 1
    MERCURY = 2
    VENUS = 3
    EARTH = 4
    MARS = 5
    JUPITER = 6
    SATURN = 7
    URANUS = 8
    NEPTUNE = 9
    PLUTO = 10
    MIDNIGHT_SUN = 11  # Sun, but leaves fan out across the night instead of the day


LAST_LEGAL_BODY: int = Body.PLUTO

PLANET_BODIES: Tuple[Body, ...] = (
    Body.MERCURY, Body.VENUS, Body.MARS, Body.JUPITER,
    Body.SATURN, Body.URANUS, Body.NEPTUNE,
)

_BODY_NAMES: Dict[int, str] = {
    Body.SUN: "Sun",
    Body.MOON: "Moon",
    Body.MERCURY: "Mercury",
    Body.VENUS: "Venus",
    Body.EARTH: "Earth",
    Body.MARS: "Mars",
    Body.JUPITER: "Jupiter",
    Body.SATURN: "Saturn",
    Body.URANUS: "Uranus",
    Body.NEPTUNE: "Neptune",
    Body.PLUTO: "Pluto",
}


def body_name(n: int) -> str:
    return _BODY_NAMES.get(int(n), "Unknown planet number")


# ── physical tables ──────────────────────────────────────────────────────────
PLANET_RADIUS_KM: Tuple[float, ...] = (
    695500.0,   # Sun
    1737.10,    # Moon
    2439.7,     # Mercury
    6051.8,     # Venus
    6371.0,     # Earth
    3389.5,     # Mars
    69911.0,    # Jupiter
    58232.0,    # Saturn
    25362.0,    # Uranus
    24622.0,    # Neptune
    1195.0,     # Pluto
)

PLANET_MASS_KG: Tuple[float, ...] = (
    1.98891e30,
    7.3477e22,
    .330104e24,
    4.86732e24,
    5.97219e24,
    .641693e24,
    1898.13e24,
    568.319e24,
    86.8103e24,
    102.410e24,
    .01309e24,
)

PLANET_ORBITAL_PERIOD_YEARS: Tuple[float, ...] = (
    0.0,
    27.321582 / 365.256366,
    .2408467,
    .61519726,
    1.0000174,
    1.8808476,
    11.862615,
    29.447498,
    84.016846,
    164.79132,
    247.92065,
)

# ── time constants ───────────────────────────────────────────────────────────
SECONDS_PER_DAY: float = 86400.0
JD_UNIX_EPOCH: float = 2440587.5
JD2000: float = 2451545.0
J2000_UNIX_SECONDS: float = (JD2000 - JD_UNIX_EPOCH) * SECONDS_PER_DAY  # 2000-01-01T12:00:00
JULIAN_DAYS_PER_CENTURY: float = 36525.0
SECONDS_PER_CENTURY: float = JULIAN_DAYS_PER_CENTURY * SECONDS_PER_DAY
UT_PER_GST: float = 1.0 / 1.00273790935
LUNAR_CYCLE_SECONDS: float = 29.530588853 * SECONDS_PER_DAY
TROPICAL_YEAR_SECONDS: float = 365.24219 * SECONDS_PER_DAY

AU_KM: float = 149597870.7

# ── geometry ─────────────────────────────────────────────────────────────────
LIMITING_AZIMUTH_LATITUDE: float = math.radians(89.9999)
REFRACTION_AT_HORIZON: float = math.radians(34.0 / 60.0)
MOON_EQUATOR_INCLINATION: float = math.radians(1.54242)
HORIZONTAL_PARALLAX_1AU: float = 8.794 * ARCSEC

# ── zodiac ───────────────────────────────────────────────────────────────────
# Ecliptic longitudes of constellation centers, and of their western edges.
ZODIAC_CENTERS_DEG: Tuple[float, ...] = (
    11, 42, 72, 104, 128, 156, 196, 230, 254, 283, 314, 340,
)
ZODIAC_EDGES_DEG: Tuple[float, ...] = (
    -8, 29, 54, 90, 118, 138, 174, 218, 242, 266, 300, 327, 352,
)
ZODIAC_NAMES: Tuple[str, ...] = (
    "Pisces", "Aries", "Taurus", "Gemini", "Cancer", "Leo",
    "Virgo", "Libra", "Scorpius", "Sagittarius", "Capricornus", "Aquarius",
)


# ── altitude kinds ───────────────────────────────────────────────────────────
class AltitudeKind(Enum):
    """(override altitude in degrees or NaN for true rise/set, rise-not-set)."""
    RISE_MORNING = (math.nan, True)
    SET_EVENING = (math.nan, False)
    GOLDEN_MORNING = (15.0, True)
    GOLDEN_EVENING = (15.0, False)
    CIVIL_MORNING = (-6.0, True)
    CIVIL_EVENING = (-6.0, False)
    NAUTICAL_MORNING = (-12.0, True)
    NAUTICAL_EVENING = (-12.0, False)
    ASTRO_MORNING = (-18.0, True)
    ASTRO_EVENING = (-18.0, False)

    @property
    def altitude(self) -> float:
        deg = self.value[0]
        return math.nan if math.isnan(deg) else math.radians(deg)

    @property
    def is_rise(self) -> bool:
        return self.value[1]

    @property
    def is_true_rise_set(self) -> bool:
        return math.isnan(self.value[0])


class TimeBase(Enum):
    LT = "lt"     # local (zone) time
    UT = "ut"
    LST = "lst"   # local sidereal time


# ── helpers ──────────────────────────────────────────────────────────────────
def fmod_2pi(x: float) -> float:
    """fmod into [0, 2π)."""
    v = math.fmod(x, TWO_PI)
    if v < 0:
        v += TWO_PI
    return v


def wrap_pi(x: float) -> float:
    """Wrap into (-π, π]."""
    v = math.fmod(x, TWO_PI)
    if v > math.pi:
        v -= TWO_PI
    elif v <= -math.pi:
        v += TWO_PI
    return v
