# astroclock/core/ephemeris.py
"""
Cached body positions and horizon geometry.

Everything here reads and fills the current cache scope of a
:class:`~astroclock.core.astro_cache.CachePool` through
:func:`~astroclock.core.timescales.cache_for`, so a value computed once for an
instant is shared by every query at that instant. Raw positions come from
:mod:`astroclock.core.series`.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

from astroclock.core import series
from astroclock.core.astro_cache import CachePool, SlotKind
from astroclock.core.constants import (
    AU_KM,
    Body,
    HORIZONTAL_PARALLAX_1AU,
    LIMITING_AZIMUTH_LATITUDE,
    PLANET_RADIUS_KM,
    REFRACTION_AT_HORIZON,
    TWO_PI,
)
from astroclock.core.series import Precision, SeriesPosition
from astroclock.core.timescales import (
    cache_for,
    gst_p03,
    gst_to_lst,
    gst_to_ut_closest,
    julian_centuries,
    noon_ut,
)

__all__ = [
    "nutation_obliquity",
    "apparent_position",
    "heliocentric_position",
    "moon_node_longitude",
    "planet_size",
    "planet_parallax",
    "altitude_at_rise_set",
    "topocentric_parallax",
    "position_angle",
    "great_circle_course",
    "north_angle",
    "angular_separation",
    "planet_alt_az",
    "planet_altitude_at",
    "eot_seconds",
]

_POSITION_KINDS = {
    Body.SUN: (SlotKind.SUN_LONGITUDE, SlotKind.SUN_LATITUDE, SlotKind.SUN_DISTANCE,
               SlotKind.SUN_RA, SlotKind.SUN_DECL),
    Body.MOON: (SlotKind.MOON_LONGITUDE, SlotKind.MOON_LATITUDE, SlotKind.MOON_DISTANCE,
                SlotKind.MOON_RA, SlotKind.MOON_DECL),
}
_PLANET_KINDS = (SlotKind.PLANET_LONGITUDE, SlotKind.PLANET_LATITUDE, SlotKind.PLANET_DISTANCE,
                 SlotKind.PLANET_RA, SlotKind.PLANET_DECL)

_B_OVER_A = 0.99664719

# ───────────────────────── series, cached ─────────────────────────

def nutation_obliquity(pool: Optional[CachePool], t: float) -> Tuple[float, float]:
    """(nutation in longitude, true obliquity) at instant t."""
    cache = cache_for(pool, t)
    if cache is not None:
        dpsi = cache.get(SlotKind.NUTATION)
        eps = cache.get(SlotKind.OBLIQUITY)
        if dpsi is not None and eps is not None:
            return dpsi, eps
    T, _dt = julian_centuries(pool, t)
    dpsi, deps = series.nutation(T)
    eps = series.mean_obliquity(T) + deps
    if cache is not None:
        cache.set(SlotKind.NUTATION, dpsi)
        cache.set(SlotKind.OBLIQUITY, eps)
    return dpsi, eps


def apparent_position(pool: Optional[CachePool], body: int, t: float,
                      precision: Precision = Precision.FULL) -> SeriesPosition:
    """Apparent geocentric position; only the Moon honours `precision`."""
    body = Body(body)
    if body == Body.MOON:
        sub = int(precision)
    elif body == Body.SUN:
        sub = 0
    else:
        sub = int(body)
    kinds = _POSITION_KINDS.get(body, _PLANET_KINDS)
    cache = cache_for(pool, t)
    if cache is not None:
        vals = [cache.get(k, sub) for k in kinds]
        if all(v is not None for v in vals):
            return SeriesPosition(*vals)
    T, _dt = julian_centuries(pool, t)
    pos = series.planet_position(body, T, precision)
    if cache is not None:
        for k, v in zip(kinds, (pos.longitude, pos.latitude, pos.distance, pos.ra, pos.decl)):
            cache.set(k, v, sub)
    return pos


def heliocentric_position(pool: Optional[CachePool], body: int, t: float) -> Tuple[float, float, float]:
    cache = cache_for(pool, t)
    kinds = (SlotKind.HELIO_LONGITUDE, SlotKind.HELIO_LATITUDE, SlotKind.HELIO_RADIUS)
    if cache is not None:
        vals = [cache.get(k, body) for k in kinds]
        if all(v is not None for v in vals):
            return vals[0], vals[1], vals[2]
    T, _dt = julian_centuries(pool, t)
    out = series.heliocentric(body, T)
    if cache is not None:
        for k, v in zip(kinds, out):
            cache.set(k, v, body)
    return out


def moon_node_longitude(pool: Optional[CachePool], t: float) -> float:
    cache = cache_for(pool, t)
    if cache is not None:
        v = cache.get(SlotKind.MOON_NODE_LONGITUDE)
        if v is not None:
            return v
    T, _dt = julian_centuries(pool, t)
    node = series.moon_ascending_node(T)
    if cache is not None:
        cache.set(SlotKind.MOON_NODE_LONGITUDE, node)
    return node

# ───────────────────────── sizes & horizon ─────────────────────────

def planet_size(body: int, distance_au: float) -> float:
    """Apparent angular diameter [rad]."""
    r_au = PLANET_RADIUS_KM[int(body)] / AU_KM
    return 2.0 * math.atan(r_au / distance_au)


def planet_parallax(distance_au: float) -> float:
    return math.asin(math.sin(HORIZONTAL_PARALLAX_1AU) / distance_au)


def altitude_at_rise_set(pool: Optional[CachePool], t: float, body: int,
                         geocentric: bool, precision: Precision = Precision.FULL) -> float:
    """
    Altitude of the body's center when its upper limb touches the refracted horizon.
    Geocentric altitudes include the horizontal parallax.
    """
    dist = apparent_position(pool, body, t, precision).distance
    parallax = planet_parallax(dist) if geocentric else 0.0
    return parallax - REFRACTION_AT_HORIZON - planet_size(body, dist) / 2.0


def topocentric_parallax(ra: float, decl: float, hour_angle: float,
                         distance_au: float, latitude: float) -> Tuple[float, float]:
    """(H′, δ′) for an observer at sea level (Meeus ch. 40)."""
    u = math.atan(_B_OVER_A * math.tan(latitude))
    rho_sin = _B_OVER_A * math.sin(u)
    rho_cos = math.cos(u)
    sin_pi = math.sin(HORIZONTAL_PARALLAX_1AU) / distance_au
    a = math.cos(decl) * math.sin(hour_angle)
    b = math.cos(decl) * math.cos(hour_angle) - rho_cos * sin_pi
    c = math.sin(decl) - rho_sin * sin_pi
    q = math.sqrt(a * a + b * b + c * c)
    h = math.atan2(a, b)
    if h < 0:
        h += TWO_PI
    return h, math.asin(c / q)

# ───────────────────────── spherical helpers ─────────────────────────

def position_angle(sun_ra: float, sun_decl: float, obj_ra: float, obj_decl: float) -> float:
    """Position angle of the bright limb, measured from celestial north."""
    d = sun_ra - obj_ra
    return math.atan2(math.cos(sun_decl) * math.sin(d),
                      math.cos(obj_decl) * math.sin(sun_decl)
                      - math.sin(obj_decl) * math.cos(sun_decl) * math.cos(d))


def great_circle_course(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    return math.atan2(math.sin(lon1 - lon2) * math.cos(lat2),
                      math.cos(lat1) * math.sin(lat2)
                      - math.sin(lat1) * math.cos(lat2) * math.cos(lon1 - lon2))


def north_angle(altitude: float, azimuth: float, latitude: float) -> float:
    """Course from the object to the celestial pole on a sphere whose pole is the zenith."""
    return great_circle_course(altitude, azimuth, latitude, 0.0)


def angular_separation(ra1: float, decl1: float, ra2: float, decl2: float) -> float:
    d = ra2 - ra1
    sd1, cd1 = math.sin(decl1), math.cos(decl1)
    sd2, cd2 = math.sin(decl2), math.cos(decl2)
    x = cd1 * sd2 - sd1 * cd2 * math.cos(d)
    y = cd2 * math.sin(d)
    z = sd1 * sd2 + cd1 * cd2 * math.cos(d)
    return math.atan2(math.sqrt(x * x + y * y), z)

# ───────────────────────── altitude / azimuth ─────────────────────────

def _clamp_latitude(latitude: float) -> float:
    return max(-LIMITING_AZIMUTH_LATITUDE, min(LIMITING_AZIMUTH_LATITUDE, latitude))


def _alt_az(pool: Optional[CachePool], body: int, t: float, latitude: float,
            longitude: float, parallax: bool) -> Tuple[float, float]:
    latitude = _clamp_latitude(latitude)
    pos = apparent_position(pool, body, t, Precision.FULL)
    lst = gst_to_lst(gst_p03(pool, t), longitude)
    ha = lst - pos.ra
    decl = pos.decl
    if parallax:
        ha, decl = topocentric_parallax(pos.ra, pos.decl, ha, pos.distance, latitude)
    sin_alt = (math.sin(decl) * math.sin(latitude)
               + math.cos(decl) * math.cos(latitude) * math.cos(ha))
    az = math.atan2(-math.cos(decl) * math.cos(latitude) * math.sin(ha),
                    math.sin(decl) - math.sin(latitude) * sin_alt)
    if math.isnan(sin_alt):
        return math.nan, math.nan
    return math.asin(max(-1.0, min(1.0, sin_alt))), az


def planet_alt_az(pool: Optional[CachePool], body: int, t: float, latitude: float,
                  longitude: float, parallax: bool = True) -> Tuple[float, float]:
    """(altitude, azimuth); parallax-corrected values are cached as a pair."""
    cache = cache_for(pool, t) if parallax else None
    if cache is not None:
        alt = cache.get(SlotKind.ALTITUDE, body)
        az = cache.get(SlotKind.AZIMUTH, body)
        if alt is not None and az is not None:
            return alt, az
    alt, az = _alt_az(pool, body, t, latitude, longitude, parallax)
    if cache is not None:
        cache.set(SlotKind.ALTITUDE, alt, body)
        cache.set(SlotKind.AZIMUTH, az, body)
    return alt, az


def planet_altitude_at(body: int, t: float, latitude: float, longitude: float) -> float:
    """Geocentric altitude at an arbitrary instant, touching no cache."""
    return _alt_az(None, body, t, latitude, longitude, False)[0]

# ───────────────────────── equation of time ─────────────────────────

def eot_seconds(pool: CachePool, t: float) -> float:
    """Apparent minus mean solar time, in seconds."""
    cache = cache_for(pool, t)
    if cache is not None:
        v = cache.get(SlotKind.EOT)
        if v is not None:
            return v
    noon = noon_ut(t)
    mean_lon = -(t - noon) * math.pi / 43200.0
    sun_ra = apparent_position(pool, Body.SUN, t).ra
    gast = sun_ra - mean_lon
    ut = gst_to_ut_closest(pool, gast, t)
    val = t - ut
    if cache is not None:
        cache.set(SlotKind.EOT, val)
    return val
