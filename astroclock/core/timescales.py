# astroclock/core/timescales.py
# -----------------------------------------------------------------------------
# Time conversion layer: instant → Julian date → ephemeris time → sidereal time,
# plus precession between the equator of date and J2000.
#
# Public API (locked):
#   julian_date(t)                         -> JD (UTC)
#   delta_t(year) / delta_t_meeus / delta_t_espenak
#   julian_centuries(pool, t)              -> (T, ΔT)
#   prior_ut_midnight(pool, t) / noon_ut(t)
#   gst_p03x(T, ΔT, ut_rad) / gst_p03(pool, t)
#   gst_to_ut(pool, gst, midnight)         -> (ut, ut2)   radians since midnight
#   gst_to_ut_closest(pool, gst, closest)  -> instant
#   lst_to_gst(lst, lon) / gst_to_lst(gst, lon) / st_difference(pool, t)
#   general_precession(T) / general_obliquity(T)
#   precess_j2000_to_date / precess_date_to_j2000 / refine_date_to_j2000
#   build_timescales(t, tz_name)           -> TimeScales
#
# Guarantees:
#   • t is seconds since 1970-01-01T00:00:00 UTC; JD = 2440587.5 + t/86400.
#   • Exactly one ΔT model is active process-wide (set_delta_t_model).
#   • ΔT segment boundaries are reproduced as published, discontinuities kept.
#   • The of-date → J2000 refinement is a fixed three reverse / two forward
#     evaluation schedule, not a tolerance loop.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Tuple, Dict, Any, Optional
import logging
import math

from astroclock.core import civil
from astroclock.core.astro_cache import AstroCache, CachePool, SlotKind
from astroclock.core.constants import (
    ARCSEC,
    J2000_UNIX_SECONDS,
    JD_UNIX_EPOCH,
    SECONDS_PER_CENTURY,
    SECONDS_PER_DAY,
    TWO_PI,
    UT_PER_GST,
)

log = logging.getLogger(__name__)

__all__ = [
    "TimeScales",
    "build_timescales",
    "julian_date",
    "delta_t",
    "delta_t_meeus",
    "delta_t_espenak",
    "set_delta_t_model",
    "delta_t_model",
    "cache_for",
    "julian_centuries",
    "prior_ut_midnight",
    "noon_ut",
    "gst_p03x",
    "gst_p03",
    "gst_to_ut",
    "gst_to_ut_closest",
    "lst_to_gst",
    "gst_to_lst",
    "st_difference",
    "general_precession",
    "general_obliquity",
    "p03_precession_quantities",
    "precess_j2000_to_date",
    "precess_date_to_j2000",
    "refine_date_to_j2000",
]

_SECONDS_TO_RAD = math.pi / 43200.0
_YEAR_MEMO_WINDOW = 330 * SECONDS_PER_DAY
_JULIAN_YEAR_SECONDS = 365.25 * SECONDS_PER_DAY

# ───────────────────────────── Dataclass ─────────────────────────────

@dataclass(frozen=True)
class TimeScales:
    instant: float           # seconds since 1970 UTC
    jd_utc: float
    jd_tt: float
    delta_t: float           # TT − UT [s]
    delta_t_model: str
    julian_centuries: float  # TT centuries since J2000.0
    gmst: float              # [rad]
    prior_ut_midnight: float
    tz_offset_seconds: int
    timezone: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

# ───────────────────────────── Julian date ─────────────────────────────

def julian_date(t: float) -> float:
    return JD_UNIX_EPOCH + float(t) / SECONDS_PER_DAY

# ───────────────────────────── ΔT models ─────────────────────────────

# Meeus, Astronomical Algorithms, table 10.A: every 2 years from 1620 to 2004.
_MEEUS_TABLE: Tuple[float, ...] = (
    121, 112, 103, 95, 88, 82, 77, 72, 68, 63, 60, 56, 53, 51, 48, 46, 44, 42, 40, 38,
    35, 33, 31, 29, 26, 24, 22, 20, 18, 16, 14, 12, 11, 10, 9, 8, 7, 7, 7, 7,
    7, 7, 8, 8, 9, 9, 9, 9, 9, 10, 10, 10, 10, 10, 10, 10, 10, 11, 11, 11,
    11, 11, 12, 12, 12, 12, 13, 13, 13, 14, 14, 14, 14, 15, 15, 15, 15, 15, 16, 16,
    16, 16, 16, 16, 16, 16, 15, 15, 14, 13, 13.1, 12.5, 12.2, 12, 12, 12, 12, 12, 12, 11.9,
    11.6, 11, 10.2, 9.2, 8.2, 7.1, 6.2, 5.6, 5.4, 5.3, 5.4, 5.6, 5.9, 6.2, 6.5, 6.8, 7.1, 7.3, 7.5, 7.6,
    7.7, 7.3, 6.2, 5.2, 2.7, 1.4, -1.2, -2.8, -3.8, -4.8, -5.5, -5.3, -5.6, -5.7, -5.9, -6.0, -6.3, -6.5, -6.2, -4.7,
    -2.8, -0.1, 2.6, 5.3, 7.7, 10.4, 13.3, 16.0, 18.2, 20.2, 21.1, 22.4, 23.5, 23.8, 24.3, 24, 23.9, 23.9, 23.7, 24,
    24.3, 25.3, 26.2, 27.3, 28.2, 29.1, 30, 30.7, 31.4, 32.2, 33.1, 34, 35, 36.5, 38.3, 40.2, 42.2, 44.5, 46.5, 48.5,
    50.5, 52.2, 53.8, 54.9, 55.8, 56.9, 58.3, 60, 61.6, 63, 63.8, 64.3, 64.6,
)


def delta_t_meeus(year: float) -> float:
    """ΔT [s] from the Meeus table with his polynomial extrapolation."""
    y = float(year)
    t = (y - 2000.0) / 100.0
    if y < 948:
        return 2177 + 497 * t + 44.1 * t * t
    if y < 1620 or y >= 2100:
        return 102 + 102 * t + 25.3 * t * t
    if y > 2004:
        return 102 + 102 * t + 25.3 * t * t + 0.37 * (y - 2100)
    if y == 2004:
        return _MEEUS_TABLE[-1]
    x = (y - 1620.0) / 2.0
    i = int(x)
    frac = x - i
    return _MEEUS_TABLE[i] + (_MEEUS_TABLE[i + 1] - _MEEUS_TABLE[i]) * frac


def delta_t_espenak(year: float) -> float:
    """ΔT [s] from the Espenak & Meeus (NASA) piecewise polynomials."""
    y = float(year)
    if 2005 <= y <= 2050:
        t = y - 2000
        return 62.92 + 0.32217 * t + 0.005589 * t * t
    if y < -500 or y >= 2150:
        u = (y - 1820) / 100
        return -20 + 32 * u * u
    if y < 500:
        u = y / 100
        return (10583.6 - 1014.41 * u + 33.78311 * u**2 - 5.952053 * u**3
                - 0.1798452 * u**4 + 0.022174192 * u**5 + 0.0090316521 * u**6)
    if y < 1600:
        u = (y - 1000) / 100
        return (1574.2 - 556.01 * u + 71.23472 * u**2 + 0.319781 * u**3
                - 0.8503463 * u**4 - 0.005050998 * u**5 + 0.0083572073 * u**6)
    if y < 1700:
        t = y - 1600
        return 120 - 0.9808 * t - 0.01532 * t**2 + t**3 / 7129
    if y < 1800:
        t = y - 1700
        return 8.83 + 0.1603 * t - 0.0059285 * t**2 + 0.00013336 * t**3 - t**4 / 1174000
    if y < 1860:
        t = y - 1800
        return (13.72 - 0.332447 * t + 0.0068612 * t**2 + 0.0041116 * t**3
                - 0.00037436 * t**4 + 0.0000121272 * t**5 - 0.0000001699 * t**6
                + 0.000000000875 * t**7)
    if y < 1900:
        t = y - 1860
        return (7.62 + 0.5737 * t - 0.251754 * t**2 + 0.01680668 * t**3
                - 0.0004473624 * t**4 + t**5 / 233174)
    if y < 1920:
        t = y - 1900
        return -2.79 + 1.494119 * t - 0.0598939 * t**2 + 0.0061966 * t**3 - 0.000197 * t**4
    if y < 1941:
        t = y - 1920
        return 21.20 + 0.84493 * t - 0.076100 * t**2 + 0.0020936 * t**3
    if y < 1961:
        t = y - 1950
        return 29.07 + 0.407 * t - t**2 / 233 + t**3 / 2547
    if y < 1986:
        t = y - 1975
        return 45.45 + 1.067 * t - t**2 / 260 - t**3 / 718
    if y < 2005:
        t = y - 2000
        return (63.86 + 0.3345 * t - 0.060374 * t**2 + 0.0017275 * t**3
                + 0.000651814 * t**4 + 0.00002373599 * t**5)
    # 2050 < y < 2150
    u = (y - 1820) / 100
    return -20 + 32 * u * u - 0.5628 * (2150 - y)


_DELTA_T_MODELS = {
    "espenak": delta_t_espenak,
    "meeus": delta_t_meeus,
}
_active_model = "espenak"


def set_delta_t_model(name: str) -> None:
    global _active_model
    key = (name or "").strip().lower()
    if key not in _DELTA_T_MODELS:
        raise ValueError(f"Unknown delta-T model '{name}': expected one of {sorted(_DELTA_T_MODELS)}")
    _active_model = key


def delta_t_model() -> str:
    return _active_model


def delta_t(year: float) -> float:
    return _DELTA_T_MODELS[_active_model](year)

# ───────────────────────────── cache access ─────────────────────────────

def cache_for(pool: Optional[CachePool], t: float) -> Optional[AstroCache]:
    """The current scope if its instant covers `t`, else None (compute uncached)."""
    cache = pool.current if pool is not None else None
    if cache is None:
        return None
    if math.isnan(t) or math.isnan(cache.date) or abs(cache.date - t) > cache.slop:
        log.debug("cache %s at %r does not cover %r; computing uncached", cache.name, cache.date, t)
        return None
    return cache

# ───────────────────────────── centuries / midnights ─────────────────────────────

def _year_value(pool: Optional[CachePool], t: float) -> float:
    if pool is not None and pool.year_start_memo <= t < pool.year_start_memo + _YEAR_MEMO_WINDOW:
        first, year = pool.year_start_memo, pool.year_start_value
    else:
        c = civil.utc_components(t)
        year = c.year
        first = civil.utc_instant(year, 1, 1)
        if pool is not None:
            pool.year_start_memo, pool.year_start_value = first, year
    return year + (t - first) / _JULIAN_YEAR_SECONDS


def julian_centuries(pool: Optional[CachePool], t: float) -> Tuple[float, float]:
    """(TT centuries since J2000.0, ΔT seconds) for UT instant `t`."""
    cache = cache_for(pool, t)
    if cache is not None:
        T = cache.get(SlotKind.TDT_CENTURIES)
        dt = cache.get(SlotKind.TDT_DELTA_T)
        if T is not None and dt is not None:
            return T, dt
    dt = delta_t(_year_value(pool, t))
    T = (t + dt - J2000_UNIX_SECONDS) / SECONDS_PER_CENTURY
    if cache is not None:
        cache.set(SlotKind.TDT_CENTURIES, T)
        cache.set(SlotKind.TDT_DELTA_T, dt)
    return T, dt


def prior_ut_midnight(pool: Optional[CachePool], t: float) -> float:
    cache = cache_for(pool, t)
    if cache is not None:
        v = cache.get(SlotKind.PRIOR_UT_MIDNIGHT)
        if v is not None:
            return v
    if pool is not None and pool.midnight_memo <= t < pool.midnight_memo + SECONDS_PER_DAY:
        val = pool.midnight_memo
    else:
        c = civil.utc_components(t)
        val = civil.utc_instant(c.year, c.month, c.day)
        if pool is not None:
            pool.midnight_memo = val
    if cache is not None:
        cache.set(SlotKind.PRIOR_UT_MIDNIGHT, val)
    return val


def noon_ut(t: float) -> float:
    c = civil.utc_components(t)
    return civil.utc_instant(c.year, c.month, c.day, 12)

# ───────────────────────────── sidereal time ─────────────────────────────

def gst_p03x(T: float, dt: float, ut_rad: float) -> float:
    """IAU 2003 GMST [rad] from TT centuries, ΔT and UT radians since 0h."""
    tu = T - dt / SECONDS_PER_CENTURY
    T2 = T * T
    T3 = T2 * T
    T4 = T2 * T2
    T5 = T4 * T
    gmst = (24110.5493771
            + 8640184.79447825 * tu
            + 307.4771013 * (T - tu)
            + 0.092772110 * T2
            - 0.0000002926 * T3
            - 0.00000199708 * T4
            - 0.000000002454 * T5)
    v = math.fmod(gmst * _SECONDS_TO_RAD + ut_rad, TWO_PI)
    if v < 0:
        v += TWO_PI
    return v


def gst_p03(pool: Optional[CachePool], t: float) -> float:
    T, dt = julian_centuries(pool, t)
    midnight = prior_ut_midnight(pool, t)
    return gst_p03x(T, dt, (t - midnight) * _SECONDS_TO_RAD)


def gst_to_ut(pool: CachePool, gst: float, midnight: float) -> Tuple[float, float]:
    """UT radians after `midnight` at which GMST == gst; the second root is -1 when absent."""
    with pool.scoped(pool.midnight, midnight):
        T, dt = julian_centuries(pool, midnight)
        gst0 = gst_p03x(T, dt, 0.0)
    ut = gst - gst0
    if ut < 0:
        ut += TWO_PI
    elif ut > TWO_PI:
        ut -= TWO_PI
    ut *= UT_PER_GST
    ut2 = ut + UT_PER_GST * TWO_PI
    if ut2 > TWO_PI:
        ut2 = -1.0
    return ut, ut2


def gst_to_ut_closest(pool: CachePool, gst: float, closest: float) -> float:
    """Instant with GMST == gst nearest to `closest`, stepping whole days as needed."""
    midnight = prior_ut_midnight(pool, closest)
    ut, ut2 = gst_to_ut(pool, gst, midnight)
    ut_d = midnight + ut / _SECONDS_TO_RAD
    half_day = 12 * 3600.0 * UT_PER_GST
    if ut_d < closest - half_day:
        if ut2 > 0:
            ut_d = midnight + ut2 / _SECONDS_TO_RAD
        else:
            midnight += SECONDS_PER_DAY
            ut, ut2 = gst_to_ut(pool, gst, midnight)
            ut_d = midnight + ut / _SECONDS_TO_RAD
    elif ut_d > closest + half_day:
        midnight -= SECONDS_PER_DAY
        ut, ut2 = gst_to_ut(pool, gst, midnight)
        if ut2 > 0:
            ut = ut2
        ut_d = midnight + ut / _SECONDS_TO_RAD
    return ut_d


def lst_to_gst(lst: float, longitude: float) -> Tuple[float, int]:
    """(gst, day offset) where day offset is -1, 0 or 1 after a single wrap."""
    gst = lst - longitude
    day_offset = 0
    if gst < 0:
        gst += TWO_PI
        day_offset = -1
    elif gst > TWO_PI:
        gst -= TWO_PI
        day_offset = 1
    return gst, day_offset


def gst_to_lst(gst: float, longitude: float) -> float:
    lst = gst + longitude
    if lst < 0:
        lst += TWO_PI
    elif lst > TWO_PI:
        lst -= TWO_PI
    return lst


def st_difference(pool: CachePool, t: float) -> float:
    """GMST minus UT angle since midnight: where the vernal equinox sits on a 24h dial."""
    midnight = prior_ut_midnight(pool, t)
    return gst_p03(pool, t) - (t - midnight) * _SECONDS_TO_RAD

# ───────────────────────────── precession ─────────────────────────────

def general_precession(T: float) -> float:
    """P03 general precession in longitude since J2000 [rad]."""
    t2 = T * T
    return (5028.796195 * T + 1.1054348 * t2 + 0.00007964 * t2 * T
            - 0.000023857 * t2 * t2 - 0.0000000383 * t2 * t2 * T) * ARCSEC


def general_obliquity(T: float) -> float:
    """P03 mean obliquity of the ecliptic [rad]."""
    t2 = T * T
    return (84381.406 - 46.836769 * T - 0.0001831 * t2 + 0.00200340 * t2 * T
            - 0.000000576 * t2 * t2 - 0.0000000434 * t2 * t2 * T) * ARCSEC


def p03_precession_quantities(T: float) -> Tuple[float, float, float, float]:
    """(ζA, zA, θA, χA) [rad]."""
    t = T
    t2 = t * t
    t3 = t2 * t
    t4 = t2 * t2
    t5 = t4 * t
    chi = (10.556403 * t - 2.3814292 * t2 - 0.00121197 * t3
           + 0.000170663 * t4 - 0.0000000560 * t5)
    zeta = (2.650545 + 2306.083227 * t + 0.2988499 * t2 + 0.01801828 * t3
            - 0.000005971 * t4 - 0.0000003173 * t5)
    z = (-2.650545 + 2306.077181 * t + 1.0927348 * t2 + 0.01826837 * t3
         - 0.000028596 * t4 - 0.0000002904 * t5)
    theta = (2004.19103 * t - 0.4294934 * t2 - 0.04182264 * t3
             - 0.000007089 * t4 - 0.0000001274 * t5)
    return zeta * ARCSEC, z * ARCSEC, theta * ARCSEC, chi * ARCSEC


def _rotate(ra: float, decl: float, zeta: float, z: float, theta: float) -> Tuple[float, float]:
    cos_d = math.cos(decl)
    sin_d = math.sin(decl)
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    a = cos_d * math.sin(ra + zeta)
    b = cos_t * cos_d * math.cos(ra + zeta) - sin_t * sin_d
    c = sin_t * cos_d * math.cos(ra + zeta) + cos_t * sin_d
    new_ra = math.fmod(math.atan2(a, b) + z, TWO_PI)
    if new_ra < 0:
        new_ra += TWO_PI
    c = max(-1.0, min(1.0, c))
    return new_ra, math.asin(c)


def precess_j2000_to_date(T: float, ra: float, decl: float) -> Tuple[float, float]:
    zeta, z, theta, _chi = p03_precession_quantities(T)
    return _rotate(ra, decl, zeta, z, theta)


def precess_date_to_j2000(T: float, ra: float, decl: float) -> Tuple[float, float]:
    """Meeus reverse precession, epoch of date → J2000."""
    t = -T
    t2 = t * t
    t3 = t2 * t
    zeta = ((2306.2181 + 1.39656 * T - 0.000139 * T * T) * t
            + (0.30188 - 0.000344 * T) * t2 + 0.017998 * t3) * ARCSEC
    z = ((2306.2181 + 1.39656 * T - 0.000139 * T * T) * t
         + (1.09468 + 0.000066 * T) * t2 + 0.018203 * t3) * ARCSEC
    theta = ((2004.3109 - 0.85330 * T - 0.000217 * T * T) * t
             - (0.42665 + 0.000217 * T) * t2 - 0.041833 * t3) * ARCSEC
    return _rotate(ra, decl, zeta, z, theta)


def refine_date_to_j2000(T: float, ra: float, decl: float) -> Tuple[float, float]:
    """
    Of-date → J2000, corrected so the forward P03 rotation lands back on the input.
    Fixed schedule: three reverse and two forward evaluations.
    """
    r_ra, r_dec = precess_date_to_j2000(T, ra, decl)
    f_ra, f_dec = precess_j2000_to_date(T, r_ra, r_dec)
    tw_ra = ra + (ra - f_ra)
    tw_dec = decl + (decl - f_dec)
    r_ra, r_dec = precess_date_to_j2000(T, tw_ra, tw_dec)
    f_ra, f_dec = precess_j2000_to_date(T, r_ra, r_dec)
    tw_ra += ra - f_ra
    tw_dec += decl - f_dec
    return precess_date_to_j2000(T, tw_ra, tw_dec)

# ───────────────────────────── summary builder ─────────────────────────────

def build_timescales(t: float, tz_name: str = "UTC", pool: Optional[CachePool] = None) -> TimeScales:
    """Time-layer summary for one instant (the /api/timescales payload)."""
    zone = civil.get_zone(tz_name)
    T, dt = julian_centuries(pool, t)
    return TimeScales(
        instant=float(t),
        jd_utc=julian_date(t),
        jd_tt=julian_date(t) + dt / SECONDS_PER_DAY,
        delta_t=float(dt),
        delta_t_model=delta_t_model(),
        julian_centuries=float(T),
        gmst=gst_p03(pool, t),
        prior_ut_midnight=prior_ut_midnight(pool, t),
        tz_offset_seconds=civil.tz_offset_seconds(zone, t),
        timezone=tz_name,
    )
