# astroclock/core/astronomy.py
# -----------------------------------------------------------------------------
# Astronomy facade: every query a watch face asks about the sky "now".
#
# Public API (locked):
#   AstronomyManager(environment, location)
#     .setup(watch_time, from_action_button=False) / .cleanup(...)
#     .session(watch_time)                 -> context manager around setup/cleanup
#     positions      sun_ra/decl(_j2000), moon_ra/decl(_j2000), planet_ra/decl,
#                    planet_altitude/azimuth(_at), planet_is_up, ecliptic & helio
#     rise/set       next/prev_<body>rise/set, <body>rise/set_for_day,
#                    <body>transit_for_day, next/prev transits, *_or_midnight
#     moon           moon_age_angle, moon_phase, moon_phase_string, quarters
#     eclipse        eclipse_kind, eclipse_abstract/angular_separation, shadow size
#     dial           day_night_leaf_angle, 24-hour indicator angles, polar flags,
#                    meridian-time-for-season, ecliptic / equinox indicators
#   EclipseKind                            IntEnum (solar / lunar outcomes)
#
# Guarantees:
#   • Every query reads or fills the pool's current scope through one
#     read-or-compute helper, so asking twice returns the identical object.
#   • Results that are instants are seconds since 1970 UTC; angles are radians.
#   • No exceptions for astronomical edge cases: ALWAYS_ABOVE / ALWAYS_BELOW
#     mark circumpolar outcomes, plain NaN marks anything else unavailable.
#   • Queries are only legal between setup() and cleanup().
# -----------------------------------------------------------------------------

from __future__ import annotations

from contextlib import contextmanager
from enum import IntEnum
from typing import Callable, Iterator, Optional, Tuple
import logging
import math

from astroclock.core import civil
from astroclock.core.astro_cache import ASTRO_SLOP, CachePool, SlotKind
from astroclock.core.constants import (
    AltitudeKind,
    Body,
    LAST_LEGAL_BODY,
    LUNAR_CYCLE_SECONDS,
    MOON_EQUATOR_INCLINATION,
    PLANET_MASS_KG,
    PLANET_ORBITAL_PERIOD_YEARS,
    PLANET_RADIUS_KM,
    TimeBase,
    TROPICAL_YEAR_SECONDS,
    TWO_PI,
    ZODIAC_CENTERS_DEG,
    ZODIAC_EDGES_DEG,
    ZODIAC_NAMES,
    body_name,
)
from astroclock.core.environment import Location, TimeEnvironment, WatchTime, pool_for_this_thread
from astroclock.core.ephemeris import (
    altitude_at_rise_set,
    angular_separation,
    apparent_position,
    eot_seconds,
    heliocentric_position,
    moon_node_longitude,
    north_angle,
    nutation_obliquity,
    planet_alt_az,
    planet_altitude_at,
    planet_parallax,
    planet_size,
    position_angle,
    topocentric_parallax,
)
from astroclock.core.riseset import (
    ALWAYS_ABOVE,
    CalculationMethod,
    rise_set_time_refined,
    transit_time_refined,
)
from astroclock.core.series import Precision, ra_and_decl
from astroclock.core.timescales import (
    cache_for,
    general_obliquity,
    general_precession,
    gst_p03,
    gst_p03x,
    gst_to_lst,
    julian_centuries,
    prior_ut_midnight,
    refine_date_to_j2000,
    st_difference,
)

log = logging.getLogger(__name__)

__all__ = [
    "EclipseKind",
    "AstronomyManager",
    "FUDGE_SECONDS",
    "LOOKAHEAD_SECONDS",
]

FUDGE_SECONDS: float = 5.0
LOOKAHEAD_SECONDS: float = 13.2 * 3600.0
_QUARTERS: Tuple[float, ...] = (0.0, math.pi / 2, math.pi, 3 * math.pi / 2)
_MOON_REFINE_PASSES = 5
_SUN_LONGITUDE_PASSES = 3
_CALENDAR_REFERENCE_YEAR = 2001


class EclipseKind(IntEnum):
    NONE_SOLAR = 0
    NONE_LUNAR = 1
    SOLAR_NOT_UP = 2
    PARTIAL_SOLAR = 3
    ANNULAR_SOLAR = 4
    TOTAL_SOLAR = 5
    LUNAR_NOT_UP = 6
    PARTIAL_LUNAR = 7
    TOTAL_LUNAR = 8

    @property
    def is_more_solar_than_lunar(self) -> bool:
        return self in (EclipseKind.NONE_SOLAR, EclipseKind.SOLAR_NOT_UP, EclipseKind.PARTIAL_SOLAR,
                        EclipseKind.ANNULAR_SOLAR, EclipseKind.TOTAL_SOLAR)

# ───────────────────────── module helpers ─────────────────────────

def _fmod_pos(x: float, m: float) -> float:
    v = math.fmod(x, m)
    if v < 0:
        v += m
    return v


def _wrap_0_2pi(angle: float) -> float:
    if angle < 0:
        angle += TWO_PI
    elif angle > TWO_PI:
        angle -= TWO_PI
    return angle


def _legal_body(body: int) -> bool:
    return 0 <= body <= LAST_LEGAL_BODY and body != Body.EARTH


def _moon_age(pool: Optional[CachePool], t: float) -> Tuple[float, float]:
    """(age angle, phase) where age is the Moon-minus-Sun ecliptic longitude in [0, 2π)."""
    cache = cache_for(pool, t)
    if cache is not None:
        age = cache.get(SlotKind.MOON_AGE)
        phase = cache.get(SlotKind.MOON_PHASE)
        if age is not None and phase is not None:
            return age, phase
    moon_lon = apparent_position(pool, Body.MOON, t, Precision.FULL).longitude
    sun_lon = apparent_position(pool, Body.SUN, t).longitude
    age = moon_lon - sun_lon
    if age < 0:
        age += TWO_PI
    # Longitude difference stands in for elongation here; dial artwork is drawn against this curve.
    phase = (1.0 - math.cos(age)) / 2.0
    if cache is not None:
        cache.set(SlotKind.MOON_AGE, age)
        cache.set(SlotKind.MOON_PHASE, phase)
    return age, phase


def _refine_moon_age(pool: CachePool, t: float, target_age: float) -> float:
    """Instant near `t` at which the Moon's age angle equals `target_age`."""
    try_date = t
    for _ in range(_MOON_REFINE_PASSES):
        with pool.scoped(pool.refinement, try_date, 0.0):
            age, _phase = _moon_age(pool, try_date)
        delta = target_age - age
        if delta > math.pi:
            delta -= TWO_PI
        elif delta < -math.pi:
            delta += TWO_PI
        new_date = try_date + delta / TWO_PI * LUNAR_CYCLE_SECONDS
        if abs(new_date - try_date) < 0.1:
            return new_date
        try_date = new_date
    return try_date


def _local_sidereal_time(pool: Optional[CachePool], t: float, longitude: float) -> float:
    """Local sidereal time as an instant-like count of seconds; LST angle = value·π/43200 mod 2π."""
    cache = cache_for(pool, t)
    if cache is not None:
        v = cache.get(SlotKind.LST)
        if v is not None:
            return t - v
    T, dt = julian_centuries(pool, t)
    midnight = prior_ut_midnight(pool, t)
    gst = gst_p03x(T, dt, (t - midnight) * math.pi / 43200.0)
    ret = gst_to_lst(gst, longitude) * 43200.0 / math.pi + midnight
    if cache is not None:
        cache.set(SlotKind.LST, t - ret)
    return ret


def _time_of_closest_sun_longitude(pool: CachePool, target: float, try_date: float) -> float:
    sun_lon = apparent_position(pool, Body.SUN, try_date).longitude
    delta = target - sun_lon
    if delta >= math.pi:
        delta -= TWO_PI
    elif delta < -math.pi:
        delta += TWO_PI
    return try_date + delta * TROPICAL_YEAR_SECONDS / TWO_PI


def _is_summer(declination: float, latitude: float) -> bool:
    # the equator counts as northern
    return (declination >= 0 and latitude >= 0) or (declination < 0 and latitude < 0)

# ───────────────────────── facade ─────────────────────────

class AstronomyManager:
    """
    Stateful per-context facade. Bind an instant with :meth:`setup` (or the
    :meth:`session` context manager), ask any number of questions, then
    :meth:`cleanup`.
    """

    def __init__(self, environment: TimeEnvironment, location: Location):
        self.environment = environment
        self.location = location
        self._pool: Optional[CachePool] = None
        self._watch_time: Optional[WatchTime] = None
        self._t: float = 0.0
        self._lat: float = 0.0
        self._lon: float = 0.0
        self._location_valid: bool = False
        self._in_action_button: bool = False

    def __repr__(self) -> str:
        return (f"<AstronomyManager {self.environment.tz_name} "
                f"lat={self.location.latitude_deg:.4f} lon={self.location.longitude_deg:.4f} "
                f"bound={self._pool is not None}>")

    # ── lifecycle ────────────────────────────────────────────────
    def setup(self, watch_time: Optional[WatchTime] = None, from_action_button: bool = False,
              pool: Optional[CachePool] = None) -> None:
        pool = pool if pool is not None else pool_for_this_thread()
        if self._pool is not None:
            # Re-entrant setup inside an action button: already bound, just make sure
            # the final scope still covers our instant.
            assert not from_action_button, "nested action-button setup"
            assert self._in_action_button and self._pool.in_action_button
            assert self._pool is pool, "facade bound to another thread's pool"
            cur = self._pool.current
            if cur is not None and abs(cur.date - self._t) > ASTRO_SLOP:
                self._pool.push(self._pool.final, self._t)
            return
        assert watch_time is not None, "setup needs a watch time"
        self._pool = pool
        self._watch_time = watch_time
        self._t = float(watch_time.current_time)
        self._lat = self.location.latitude
        self._lon = self.location.longitude
        self._location_valid = self.location.valid
        pool.initialize(self._t, self._lat, self._lon, watch_time.running_backward,
                        watch_time.tz_offset_seconds(self.environment))
        if from_action_button:
            assert not self._in_action_button and not pool.in_action_button
            self._in_action_button = True
            pool.in_action_button = True

    def cleanup(self, from_action_button: bool = False) -> None:
        pool = self._pool
        assert pool is not None, "cleanup without setup"
        if from_action_button:
            assert self._in_action_button and pool.in_action_button
            self._in_action_button = False
            pool.in_action_button = False
            pool.release()
        else:
            if self._in_action_button:
                return
            if not pool.in_action_button:
                pool.release()
        self._pool = None
        self._watch_time = None
        self._t = 0.0
        self._lat = 0.0
        self._lon = 0.0
        self._location_valid = False

    @contextmanager
    def session(self, watch_time: WatchTime, pool: Optional[CachePool] = None) -> Iterator["AstronomyManager"]:
        self.setup(watch_time, pool=pool)
        try:
            yield self
        finally:
            self.cleanup()

    # ── plumbing ─────────────────────────────────────────────────
    @property
    def calculation_time(self) -> float:
        return self._t

    @property
    def running_backward(self) -> bool:
        return bool(self._watch_time and self._watch_time.running_backward)

    def _bound(self) -> CachePool:
        assert self._pool is not None, "query outside setup()/cleanup()"
        return self._pool

    def _cached(self, kind: SlotKind, sub: int, compute: Callable[[], object]):
        """Read-or-compute against the current scope; value and flag are set together."""
        pool = self._bound()
        cache = cache_for(pool, self._t)
        if cache is not None:
            v = cache.get(kind, sub)
            if v is not None:
                return v
        v = compute()
        if cache is not None:
            cache.set(kind, v, sub)
        return v

    def _position(self, body: int):
        return apparent_position(self._bound(), body, self._t)

    def _tz_offset(self) -> int:
        return self.environment.tz_offset_seconds(self._t)

    def watch_time_for(self, t: float) -> WatchTime:
        assert self._watch_time is not None
        return self._watch_time.frozen_at(t)

    # ───────────────────────── time & sidereal ─────────────────────────

    def local_sidereal_time(self) -> float:
        return _local_sidereal_time(self._bound(), self._t, self._lon)

    def eot_seconds(self) -> float:
        return eot_seconds(self._bound(), self._t)

    def eot(self) -> float:
        return self.eot_seconds() * math.pi / 43200.0

    def summer(self) -> bool:
        """True in the summer half of the year for the observer's hemisphere."""
        return _is_summer(self._position(Body.SUN).decl, self._lat)

    def planet_is_summer(self, body: int) -> bool:
        return _is_summer(self._position(body).decl, self._lat)

    def precession(self) -> float:
        def compute():
            T, _dt = julian_centuries(self._pool, self._t)
            return general_precession(T)
        return self._cached(SlotKind.PRECESSION, 0, compute)

    def calendar_error_vs_tropical_year(self) -> float:
        """How far the Sun's longitude today lags the same calendar date in the reference year."""
        pool = self._bound()

        def compute():
            today = self._position(Body.SUN).longitude
            c = civil.utc_components(self._t)
            day = 28 if (c.month == 2 and c.day == 29) else c.day
            ref = civil.utc_instant(_CALENDAR_REFERENCE_YEAR, c.month, day, c.hour, c.minute, c.seconds)
            with pool.scoped(pool.year2000, ref):
                ref_lon = apparent_position(pool, Body.SUN, ref).longitude
            return ref_lon - today
        return self._cached(SlotKind.CALENDAR_ERROR, 0, compute)

    def vernal_equinox_angle(self) -> float:
        return self._cached(SlotKind.VERNAL_EQUINOX, 0, lambda: st_difference(self._pool, self._t))

    def angle_24hour(self, t: float, base: TimeBase = TimeBase.LT) -> float:
        """Position of instant `t` on a 24-hour dial; NaNs (sentinels included) pass through."""
        if math.isnan(t):
            return t
        if base == TimeBase.LT:
            return self.environment.hour24(t) * math.pi / 12.0
        if base == TimeBase.UT:
            return civil.utc_components(t).hour24 * math.pi / 12.0
        pool = self._bound()
        with pool.scoped(pool.refinement, t, 0.0):
            lst = _local_sidereal_time(pool, t, self._lon)
        return _fmod_pos(lst * math.pi / 43200.0, TWO_PI)

    # ───────────────────────── rise / set / transit ─────────────────────────

    def _next_prev_rise_set(self, fudge: float, method: CalculationMethod, override_altitude: float,
                            body: int, rise_not_set: bool, is_next: bool,
                            lookahead: float = LOOKAHEAD_SECONDS,
                            t: Optional[float] = None) -> Tuple[float, float]:
        """
        Solve once from just past now; if the event is on the wrong side, solve again one
        lookahead window further on. Returns (result, rise_set_or_transit).
        """
        pool = self._bound()
        if t is None:
            t = self._t
        if not is_next:
            fudge = -fudge
            lookahead = -lookahead
        fudge_date = t + fudge
        ret, rst = method(fudge_date, self._lat, self._lon, rise_not_set, body, override_altitude, pool)
        if (rst >= fudge_date) if is_next else (rst < fudge_date):
            return ret, rst
        return method(fudge_date + lookahead, self._lat, self._lon, rise_not_set, body, override_altitude, pool)

    def _next_prev_planet_rise_set(self, body: int, rise_not_set: bool, next_not_prev: bool) -> float:
        if not self._location_valid:
            return math.nan
        if rise_not_set:
            kind = SlotKind.NEXT_RISE if next_not_prev else SlotKind.PREV_RISE
        else:
            kind = SlotKind.NEXT_SET if next_not_prev else SlotKind.PREV_SET

        def compute():
            ret, _rst = self._next_prev_rise_set(FUDGE_SECONDS, rise_set_time_refined, math.nan, body,
                                                 rise_not_set, self.running_backward ^ next_not_prev)
            return ret
        return self._cached(kind, body, compute)

    def next_sunrise(self) -> float:
        return self._next_prev_planet_rise_set(Body.SUN, True, True)

    def next_sunset(self) -> float:
        return self._next_prev_planet_rise_set(Body.SUN, False, True)

    def prev_sunrise(self) -> float:
        return self._next_prev_planet_rise_set(Body.SUN, True, False)

    def prev_sunset(self) -> float:
        return self._next_prev_planet_rise_set(Body.SUN, False, False)

    def next_moonrise(self) -> float:
        return self._next_prev_planet_rise_set(Body.MOON, True, True)

    def next_moonset(self) -> float:
        return self._next_prev_planet_rise_set(Body.MOON, False, True)

    def prev_moonrise(self) -> float:
        return self._next_prev_planet_rise_set(Body.MOON, True, False)

    def prev_moonset(self) -> float:
        return self._next_prev_planet_rise_set(Body.MOON, False, False)

    def next_planetrise(self, body: int) -> float:
        return self._next_prev_planet_rise_set(body, True, True)

    def next_planetset(self, body: int) -> float:
        return self._next_prev_planet_rise_set(body, False, True)

    def prev_planetrise(self, body: int) -> float:
        return self._next_prev_planet_rise_set(body, True, False)

    def prev_planetset(self, body: int) -> float:
        return self._next_prev_planet_rise_set(body, False, False)

    def next_or_midnight(self, op: float) -> float:
        """Clamp `op` to the local midnight that ends (or, running backward, starts) today."""
        midnight = self.environment.local_midnight(self._t)
        if self.running_backward:
            if op < midnight:
                return midnight
        else:
            next_midnight = self.environment.next_local_midnight(self._t)
            if op > next_midnight:
                return next_midnight
        return op

    def next_sunrise_or_midnight(self) -> float:
        return self.next_or_midnight(self.next_sunrise())

    def next_sunset_or_midnight(self) -> float:
        return self.next_or_midnight(self.next_sunset())

    def next_moonrise_or_midnight(self) -> float:
        return self.next_or_midnight(self.next_moonrise())

    def next_moonset_or_midnight(self) -> float:
        return self.next_or_midnight(self.next_moonset())

    def _event_for_day(self, method: CalculationMethod, override_altitude: float, body: int,
                       rise_not_set: bool, check_result: bool) -> float:
        same_day = self.environment.same_local_day
        ret, rst = self._next_prev_rise_set(-FUDGE_SECONDS, method, override_altitude, body, rise_not_set, True)
        if not same_day(ret if check_result else rst, self._t):
            ret, rst = self._next_prev_rise_set(-FUDGE_SECONDS, method, override_altitude, body, rise_not_set, False)
            if not math.isnan(ret) and not same_day(ret, self._t):
                ret = math.nan
        return ret

    def _rise_set_for_day(self, body: int, rise_not_set: bool) -> float:
        if not self._location_valid:
            return math.nan
        kind = SlotKind.RISE_FOR_DAY if rise_not_set else SlotKind.SET_FOR_DAY
        return self._cached(kind, body, lambda: self._event_for_day(
            rise_set_time_refined, math.nan, body, rise_not_set, False))

    def sunrise_for_day(self) -> float:
        return self._rise_set_for_day(Body.SUN, True)

    def sunset_for_day(self) -> float:
        return self._rise_set_for_day(Body.SUN, False)

    def moonrise_for_day(self) -> float:
        return self._rise_set_for_day(Body.MOON, True)

    def moonset_for_day(self) -> float:
        return self._rise_set_for_day(Body.MOON, False)

    def planetrise_for_day(self, body: int) -> float:
        return self._rise_set_for_day(body, True)

    def planetset_for_day(self, body: int) -> float:
        return self._rise_set_for_day(body, False)

    def sun_time_for_day_for_altitude_kind(self, kind: AltitudeKind) -> float:
        """Golden hour and twilight boundaries for today; the plain kinds are sunrise/sunset."""
        if not self._location_valid:
            return math.nan
        if kind.is_true_rise_set:
            return self.sunrise_for_day() if kind.is_rise else self.sunset_for_day()
        ordinal = list(AltitudeKind).index(kind)
        return self._cached(SlotKind.SUN_TIME_FOR_ALTITUDE_KIND, ordinal, lambda: self._event_for_day(
            rise_set_time_refined, kind.altitude, Body.SUN, kind.is_rise, False))

    def planettransit_for_day(self, body: int) -> float:
        if not self._location_valid:
            return math.nan
        return self._cached(SlotKind.TRANSIT_FOR_DAY, body, lambda: self._event_for_day(
            transit_time_refined, math.nan, body, True, True))

    def suntransit_for_day(self) -> float:
        return self.planettransit_for_day(Body.SUN)

    def moontransit_for_day(self) -> float:
        return self.planettransit_for_day(Body.MOON)

    def _next_prev_transit(self, body: int, next_not_prev: bool, want_high: bool = True) -> float:
        if not self._location_valid:
            return math.nan
        if next_not_prev:
            kind = SlotKind.NEXT_TRANSIT if want_high else SlotKind.NEXT_TRANSIT_LOW
        else:
            kind = SlotKind.PREV_TRANSIT if want_high else SlotKind.PREV_TRANSIT_LOW
        is_next = (not next_not_prev) if self.running_backward else next_not_prev

        def compute():
            ret, _rst = self._next_prev_rise_set(FUDGE_SECONDS, transit_time_refined, math.nan, body,
                                                 want_high, is_next)
            return ret
        return self._cached(kind, body, compute)

    def next_suntransit(self) -> float:
        return self._next_prev_transit(Body.SUN, True)

    def prev_suntransit(self) -> float:
        return self._next_prev_transit(Body.SUN, False)

    def next_suntransit_low(self) -> float:
        return self._next_prev_transit(Body.SUN, True, want_high=False)

    def prev_suntransit_low(self) -> float:
        return self._next_prev_transit(Body.SUN, False, want_high=False)

    def next_moontransit(self) -> float:
        return self._next_prev_transit(Body.MOON, True)

    def next_planettransit(self, body: int) -> float:
        return self._next_prev_transit(body, True)

    def prev_planettransit(self, body: int) -> float:
        return self._next_prev_transit(body, False)

    # validity shorthands used by dial hands
    def next_sunrise_valid(self) -> bool:
        return not math.isnan(self.next_sunrise())

    def next_sunset_valid(self) -> bool:
        return not math.isnan(self.next_sunset())

    def prev_sunrise_valid(self) -> bool:
        return not math.isnan(self.prev_sunrise())

    def prev_sunset_valid(self) -> bool:
        return not math.isnan(self.prev_sunset())

    def next_moonrise_valid(self) -> bool:
        return not math.isnan(self.next_moonrise())

    def next_moonset_valid(self) -> bool:
        return not math.isnan(self.next_moonset())

    def prev_moonrise_valid(self) -> bool:
        return not math.isnan(self.prev_moonrise())

    def prev_moonset_valid(self) -> bool:
        return not math.isnan(self.prev_moonset())

    def next_planetrise_valid(self, body: int) -> bool:
        return not math.isnan(self.next_planetrise(body))

    def next_planetset_valid(self, body: int) -> bool:
        return not math.isnan(self.next_planetset(body))

    def sunrise_for_day_valid(self) -> bool:
        return not math.isnan(self.sunrise_for_day())

    def sunset_for_day_valid(self) -> bool:
        return not math.isnan(self.sunset_for_day())

    def suntransit_for_day_valid(self) -> bool:
        return not math.isnan(self.suntransit_for_day())

    def moonrise_for_day_valid(self) -> bool:
        return not math.isnan(self.moonrise_for_day())

    def moonset_for_day_valid(self) -> bool:
        return not math.isnan(self.moonset_for_day())

    def moontransit_for_day_valid(self) -> bool:
        return not math.isnan(self.moontransit_for_day())

    def planetrise_for_day_valid(self, body: int) -> bool:
        return not math.isnan(self.planetrise_for_day(body))

    def planetset_for_day_valid(self, body: int) -> bool:
        return not math.isnan(self.planetset_for_day(body))

    def planettransit_for_day_valid(self, body: int) -> bool:
        return not math.isnan(self.planettransit_for_day(body))

    def sunrise_indicator_valid(self) -> bool:
        up = self.planet_is_up(Body.SUN)
        if self.running_backward:
            return self.next_sunrise_valid() if up else self.prev_sunrise_valid()
        return self.prev_sunrise_valid() if up else self.next_sunrise_valid()

    def sunset_indicator_valid(self) -> bool:
        up = self.planet_is_up(Body.SUN)
        if self.running_backward:
            return self.prev_sunset_valid() if up else self.next_sunset_valid()
        return self.next_sunset_valid() if up else self.prev_sunset_valid()

    # ───────────────────────── watch times with fallbacks ─────────────────────────

    def _watch_time_or(self, t: float, fallback: Callable[[], float]) -> WatchTime:
        if math.isnan(t):
            t = fallback()
        return self.watch_time_for(t)

    def watch_time_with_sunrise_for_day(self) -> WatchTime:
        return self._watch_time_or(self.sunrise_for_day(), self.meridian_time_for_season)

    def watch_time_with_sunset_for_day(self) -> WatchTime:
        return self._watch_time_or(self.sunset_for_day(), self.meridian_time_for_season)

    def watch_time_with_suntransit_for_day(self) -> WatchTime:
        return self._watch_time_or(self.suntransit_for_day(), self.meridian_time_for_season)

    def watch_time_with_next_sunrise(self) -> WatchTime:
        return self._watch_time_or(self.next_sunrise(), self.meridian_time_for_season)

    def watch_time_with_prev_sunrise(self) -> WatchTime:
        return self._watch_time_or(self.prev_sunrise(), self.meridian_time_for_season)

    def watch_time_with_next_sunset(self) -> WatchTime:
        return self._watch_time_or(self.next_sunset(), self.meridian_time_for_season)

    def watch_time_with_prev_sunset(self) -> WatchTime:
        return self._watch_time_or(self.prev_sunset(), self.meridian_time_for_season)

    def watch_time_with_moonrise_for_day(self) -> WatchTime:
        return self._watch_time_or(self.moonrise_for_day(), self.moon_meridian_time_for_season)

    def watch_time_with_moonset_for_day(self) -> WatchTime:
        return self._watch_time_or(self.moonset_for_day(), self.moon_meridian_time_for_season)

    def watch_time_with_moontransit_for_day(self) -> WatchTime:
        return self._watch_time_or(self.moontransit_for_day(), self.moon_meridian_time_for_season)

    def watch_time_with_next_moonrise(self) -> WatchTime:
        return self._watch_time_or(self.next_moonrise(), self.moon_meridian_time_for_season)

    def watch_time_with_prev_moonrise(self) -> WatchTime:
        return self._watch_time_or(self.prev_moonrise(), self.moon_meridian_time_for_season)

    def watch_time_with_next_moonset(self) -> WatchTime:
        return self._watch_time_or(self.next_moonset(), self.moon_meridian_time_for_season)

    def watch_time_with_prev_moonset(self) -> WatchTime:
        return self._watch_time_or(self.prev_moonset(), self.moon_meridian_time_for_season)

    def watch_time_with_next_planetrise(self, body: int) -> WatchTime:
        return self._watch_time_or(self.next_planetrise(body), lambda: self.next_planettransit(body))

    def watch_time_with_prev_planetrise(self, body: int) -> WatchTime:
        return self._watch_time_or(self.prev_planetrise(body), lambda: self.prev_planettransit(body))

    def watch_time_with_next_planetset(self, body: int) -> WatchTime:
        return self._watch_time_or(self.next_planetset(body), lambda: self.next_planettransit(body))

    def watch_time_with_prev_planetset(self, body: int) -> WatchTime:
        return self._watch_time_or(self.prev_planetset(body), lambda: self.prev_planettransit(body))

    def watch_time_with_planetrise_for_day(self, body: int) -> WatchTime:
        return self._watch_time_or(self.planetrise_for_day(body), lambda: self.planettransit_for_day(body))

    def watch_time_with_planetset_for_day(self, body: int) -> WatchTime:
        return self._watch_time_or(self.planetset_for_day(body), lambda: self.planettransit_for_day(body))

    def watch_time_with_planettransit_for_day(self, body: int) -> WatchTime:
        return self._watch_time_or(self.planettransit_for_day(body), self.meridian_time_for_season)

    def watch_time_with_closest_new_moon(self) -> WatchTime:
        return self.watch_time_for(self.closest_new_moon())

    def watch_time_with_closest_full_moon(self) -> WatchTime:
        return self.watch_time_for(self.closest_full_moon())

    def watch_time_with_closest_first_quarter(self) -> WatchTime:
        return self.watch_time_for(self.closest_first_quarter())

    def watch_time_with_closest_third_quarter(self) -> WatchTime:
        return self.watch_time_for(self.closest_third_quarter())

    # ───────────────────────── heliocentric ─────────────────────────

    def _helio(self, body: int, index: int) -> float:
        if body < Body.MERCURY or body > Body.PLUTO or not self._location_valid:
            return math.nan
        return heliocentric_position(self._bound(), body, self._t)[index]

    def planet_heliocentric_longitude(self, body: int) -> float:
        return self._helio(body, 0)

    def planet_heliocentric_latitude(self, body: int) -> float:
        return self._helio(body, 1)

    def planet_heliocentric_radius(self, body: int) -> float:
        return self._helio(body, 2)

    # ───────────────────────── moon age & phase ─────────────────────────

    def moon_age_angle(self) -> float:
        return _moon_age(self._bound(), self._t)[0]

    def moon_phase(self) -> float:
        return _moon_age(self._bound(), self._t)[1]

    def moon_delta_ecliptic_longitude_at(self, t: float) -> float:
        """Moon age angle at an arbitrary instant, uncached."""
        return _moon_age(None, t)[0]

    def moon_phase_string(self) -> str:
        age = math.degrees(self.moon_age_angle())
        if age >= 359 or age <= 1:
            return "New"
        if age < 89:
            return "Waxing Crescent"
        if age <= 91:
            return "1st Quarter"
        if age < 179:
            return "Waxing Gibbous"
        if age <= 181:
            return "Full"
        if age < 269:
            return "Waning Gibbous"
        if age <= 271:
            return "3rd Quarter"
        return "Waning Crescent"

    def _quarter_after(self, backward: bool) -> float:
        pool = self._bound()
        age, _phase = _moon_age(pool, self._t)
        fudge = -0.01 if backward else 0.01
        since_quarter = _fmod_pos(age + fudge, math.pi / 2)
        at_last_quarter = age + fudge - since_quarter
        target = at_last_quarter if backward else at_last_quarter + math.pi / 2
        if target > 15.0 / 8 * math.pi:
            target -= TWO_PI
        return _refine_moon_age(pool, self._t, target)

    def next_moon_phase(self) -> float:
        """Next of new / 1st quarter / full / 3rd quarter in the clock's direction."""
        return self._cached(SlotKind.NEXT_MOON_PHASE, 0, lambda: self._quarter_after(self.running_backward))

    def prev_moon_phase(self) -> float:
        return self._cached(SlotKind.PREV_MOON_PHASE, 0, lambda: self._quarter_after(not self.running_backward))

    def real_moon_age_angle(self) -> float:
        """Days since the last new moon (despite the name, not an angle)."""
        pool = self._bound()

        def compute():
            age, _phase = _moon_age(pool, self._t)
            if age > TWO_PI - 0.0001:
                age = 0.0
            guess = self._t - LUNAR_CYCLE_SECONDS * age / TWO_PI
            new_moon = _refine_moon_age(pool, guess, 0.0)
            return (self._t - new_moon) / 86400.0
        return self._cached(SlotKind.REAL_MOON_AGE, 0, compute)

    def closest_quarter_angle(self, quarter_angle: float) -> float:
        pool = self._bound()
        age, _phase = _moon_age(pool, self._t)
        since_quarter = _fmod_pos(age - quarter_angle, TWO_PI)
        if self.running_backward:
            closest_is_back = since_quarter < math.pi + 0.01
        else:
            closest_is_back = since_quarter < math.pi - 0.01
        if closest_is_back:
            guess = self._t - LUNAR_CYCLE_SECONDS * since_quarter / TWO_PI
        else:
            guess = self._t + LUNAR_CYCLE_SECONDS * (TWO_PI - since_quarter) / TWO_PI
        return _refine_moon_age(pool, guess, quarter_angle)

    def next_quarter_angle(self, quarter_angle: float, from_time: Optional[float] = None,
                           next_not_prev: bool = True) -> float:
        """
        Next quarter of the given angle after now in the clock's direction, or, with
        `from_time`, the next (or previous) one after that instant.
        """
        pool = self._bound()
        if from_time is None:
            age, _phase = _moon_age(pool, self._t)
            age += -0.01 if self.running_backward else 0.01
            go_back = self.running_backward
            origin = self._t
        else:
            with pool.scoped(pool.refinement, from_time, 0.0):
                age, _phase = _moon_age(pool, from_time)
            age += 0.01 if next_not_prev else -0.01
            go_back = self.running_backward == next_not_prev
            origin = from_time
        since_quarter = _fmod_pos(age - quarter_angle, TWO_PI)
        if go_back:
            guess = origin - LUNAR_CYCLE_SECONDS * since_quarter / TWO_PI
        else:
            guess = origin + LUNAR_CYCLE_SECONDS * (TWO_PI - since_quarter) / TWO_PI
        return _refine_moon_age(pool, guess, quarter_angle)

    def _closest_quarter(self, quarter: int) -> float:
        return self._cached(SlotKind.CLOSEST_MOON_QUARTER, quarter,
                            lambda: self.closest_quarter_angle(_QUARTERS[quarter]))

    def _next_quarter(self, quarter: int) -> float:
        return self._cached(SlotKind.NEXT_MOON_QUARTER, quarter,
                            lambda: self.next_quarter_angle(_QUARTERS[quarter]))

    def closest_new_moon(self) -> float:
        return self._closest_quarter(0)

    def closest_first_quarter(self) -> float:
        return self._closest_quarter(1)

    def closest_full_moon(self) -> float:
        return self._closest_quarter(2)

    def closest_third_quarter(self) -> float:
        return self._closest_quarter(3)

    def next_new_moon(self) -> float:
        return self._next_quarter(0)

    def next_first_quarter(self) -> float:
        return self._next_quarter(1)

    def next_full_moon(self) -> float:
        return self._next_quarter(2)

    def next_third_quarter(self) -> float:
        return self._next_quarter(3)

    # ───────────────────────── planet phases & position angles ─────────────────────────

    def planet_age(self, body: int) -> Tuple[float, float, float]:
        """(age, moon-equivalent age, phase angle) of a planet as seen from Earth."""
        pool = self._bound()
        cache = cache_for(pool, self._t)
        kinds = (SlotKind.PLANET_AGE, SlotKind.PLANET_MOON_AGE, SlotKind.PLANET_PHASE)
        if cache is not None:
            vals = [cache.get(k, body) for k in kinds]
            if all(v is not None for v in vals):
                return vals[0], vals[1], vals[2]
        r = heliocentric_position(pool, body, self._t)[2]
        delta = self.planet_geocentric_distance(body)
        R = heliocentric_position(pool, Body.EARTH, self._t)[2]
        if math.isnan(r) or math.isnan(delta):
            return math.nan, math.nan, math.nan
        cos_i = (r * r + delta * delta - R * R) / (2 * r * delta)
        phase = math.acos(max(-1.0, min(1.0, cos_i)))
        moon_age = math.pi - phase
        cos_i = (R * R + delta * delta - r * r) / (2 * delta * R)
        age = math.acos(max(-1.0, min(1.0, cos_i)))
        d_lon = heliocentric_position(pool, body, self._t)[0] - heliocentric_position(pool, Body.EARTH, self._t)[0]
        if d_lon < 0:
            d_lon += TWO_PI
        if d_lon > math.pi:
            age = TWO_PI - age
            moon_age = TWO_PI - moon_age
        if cache is not None:
            for k, v in zip(kinds, (age, moon_age, phase)):
                cache.set(k, v, body)
        return age, moon_age, phase

    def planet_moon_age_angle(self, body: int) -> float:
        return self.planet_age(body)[1]

    def planet_position_angle(self, body: int) -> float:
        """Rotation of the terminator from celestial north."""
        def compute():
            sun = self._position(Body.SUN)
            return position_angle(sun.ra, sun.decl, self.planet_ra(body, False), self.planet_decl(body, False))
        return self._cached(SlotKind.PLANET_POSITION_ANGLE, body, compute)

    def _relative_angle(self, pos_angle: float, moon_age: float, ra: float, decl: float) -> float:
        if moon_age > math.pi:
            # bright limb on the left
            pos_angle = pos_angle - math.pi if pos_angle > math.pi else pos_angle + math.pi
        alt, az = self._sky_alt_az(ra, decl)
        angle = -north_angle(alt, az, self._lat) - pos_angle - math.pi / 2
        return _wrap_0_2pi(angle)

    def _sky_alt_az(self, ra: float, decl: float) -> Tuple[float, float]:
        """Alt/az of a geocentric (ra, decl) for the observer, no parallax."""
        lst = gst_to_lst(gst_p03(self._pool, self._t), self._lon)
        ha = lst - ra
        lat = self._lat
        sin_alt = math.sin(decl) * math.sin(lat) + math.cos(decl) * math.cos(lat) * math.cos(ha)
        az = math.atan2(-math.cos(decl) * math.cos(lat) * math.sin(ha),
                        math.sin(decl) - math.sin(lat) * sin_alt)
        return math.asin(max(-1.0, min(1.0, sin_alt))), az

    def planet_relative_position_angle(self, body: int) -> float:
        """Rotation of the terminator as it appears in the observer's sky."""
        def compute():
            sun = self._position(Body.SUN)
            ra = self.planet_ra(body, False)
            decl = self.planet_decl(body, False)
            pa = position_angle(sun.ra, sun.decl, ra, decl)
            return self._relative_angle(pa, self.planet_age(body)[1], ra, decl)
        return self._cached(SlotKind.RELATIVE_POSITION_ANGLE, body, compute)

    def moon_position_angle(self) -> float:
        def compute():
            sun = self._position(Body.SUN)
            moon = self._position(Body.MOON)
            return position_angle(sun.ra, sun.decl, moon.ra, moon.decl)
        return self._cached(SlotKind.MOON_POSITION_ANGLE, 0, compute)

    def moon_relative_position_angle(self) -> float:
        def compute():
            sun = self._position(Body.SUN)
            moon = self._position(Body.MOON)
            pa = position_angle(sun.ra, sun.decl, moon.ra, moon.decl)
            return self._relative_angle(pa, self.moon_age_angle(), moon.ra, moon.decl)
        return self._cached(SlotKind.MOON_RELATIVE_POSITION_ANGLE, 0, compute)

    def moon_relative_angle(self) -> float:
        """Rotation of the Moon's disk (its north pole) as it appears in the sky."""
        def compute():
            pool = self._pool
            moon = self._position(Body.MOON)
            alt, az = self._sky_alt_az(moon.ra, moon.decl)
            north = north_angle(alt, az, self._lat)
            gst = gst_p03(pool, self._t)
            lam = moon.ra - gst
            beta = moon.decl
            T, _dt = julian_centuries(pool, self._t)
            eps = general_obliquity(T)
            node = moon_node_longitude(pool, self._t)
            sin_i = math.sin(MOON_EQUATOR_INCLINATION)
            cos_i = math.cos(MOON_EQUATOR_INCLINATION)
            W = lam - node
            b = math.asin(-math.sin(W) * math.cos(beta) * sin_i - math.sin(beta) * cos_i)
            X = sin_i * math.sin(node)
            Y = sin_i * math.cos(node) * math.cos(eps) - cos_i * math.sin(eps)
            omega = math.atan2(X, Y)
            sin_p = math.sqrt(X * X + Y * Y) * math.cos(moon.ra - omega) / math.cos(b)
            p = math.asin(max(-1.0, min(1.0, sin_p)))
            return _wrap_0_2pi(-north - p)
        return self._cached(SlotKind.MOON_RELATIVE_ANGLE, 0, compute)

    # ───────────────────────── equatorial coordinates ─────────────────────────

    def sun_ra(self) -> float:
        return self._position(Body.SUN).ra

    def sun_decl(self) -> float:
        return self._position(Body.SUN).decl

    def moon_ra(self) -> float:
        return self._position(Body.MOON).ra

    def moon_decl(self) -> float:
        return self._position(Body.MOON).decl

    def _j2000(self, body: int) -> Tuple[float, float]:
        if body == Body.SUN:
            kinds = (SlotKind.SUN_RA_J2000, SlotKind.SUN_DECL_J2000)
        else:
            kinds = (SlotKind.MOON_RA_J2000, SlotKind.MOON_DECL_J2000)
        pool = self._bound()
        cache = cache_for(pool, self._t)
        if cache is not None:
            ra = cache.get(kinds[0])
            decl = cache.get(kinds[1])
            if ra is not None and decl is not None:
                return ra, decl
        pos = self._position(body)
        T, _dt = julian_centuries(pool, self._t)
        ra, decl = refine_date_to_j2000(T, pos.ra, pos.decl)
        if cache is not None:
            cache.set(kinds[0], ra)
            cache.set(kinds[1], decl)
        return ra, decl

    def sun_ra_j2000(self) -> float:
        return self._j2000(Body.SUN)[0]

    def sun_decl_j2000(self) -> float:
        return self._j2000(Body.SUN)[1]

    def moon_ra_j2000(self) -> float:
        return self._j2000(Body.MOON)[0]

    def moon_decl_j2000(self) -> float:
        return self._j2000(Body.MOON)[1]

    def _ra_decl_at(self, pool: CachePool, body: int, t: float, parallax: bool) -> Tuple[float, float]:
        pos = apparent_position(pool, body, t)
        if not parallax:
            return pos.ra, pos.decl
        cache = cache_for(pool, t)
        if cache is not None:
            ra = cache.get(SlotKind.TOPO_RA, body)
            decl = cache.get(SlotKind.TOPO_DECL, body)
            if ra is not None and decl is not None:
                return ra, decl
        lst = gst_to_lst(gst_p03(pool, t), self._lon)
        h, decl = topocentric_parallax(pos.ra, pos.decl, lst - pos.ra, pos.distance, self._lat)
        ra = lst - h
        if ra < 0:
            ra += TWO_PI
        if cache is not None:
            cache.set(SlotKind.TOPO_RA, ra, body)
            cache.set(SlotKind.TOPO_DECL, decl, body)
        return ra, decl

    def planet_ra(self, body: int, correct_for_parallax: bool = True) -> float:
        if not _legal_body(body):
            return math.nan
        if correct_for_parallax and not self._location_valid:
            return math.nan
        return self._ra_decl_at(self._bound(), body, self._t, correct_for_parallax)[0]

    def planet_decl(self, body: int, correct_for_parallax: bool = True) -> float:
        if not _legal_body(body):
            return math.nan
        if correct_for_parallax and not self._location_valid:
            return math.nan
        return self._ra_decl_at(self._bound(), body, self._t, correct_for_parallax)[1]

    def planet_ra_at(self, body: int, t: float, correct_for_parallax: bool = True) -> float:
        if not _legal_body(body):
            return math.nan
        pool = self._bound()
        with pool.scoped(pool.refinement, t, 0.0):
            return self._ra_decl_at(pool, body, t, correct_for_parallax)[0]

    def planet_ecliptic_longitude(self, body: int) -> float:
        return self._position(body).longitude if _legal_body(body) else math.nan

    def planet_ecliptic_latitude(self, body: int) -> float:
        return self._position(body).latitude if _legal_body(body) else math.nan

    def planet_geocentric_distance(self, body: int) -> float:
        """In au."""
        return self._position(body).distance if _legal_body(body) else math.nan

    # ───────────────────────── horizon ─────────────────────────

    def planet_altitude(self, body: int) -> float:
        if not _legal_body(body):
            return math.nan
        return planet_alt_az(self._bound(), body, self._t, self._lat, self._lon, True)[0]

    def planet_azimuth(self, body: int) -> float:
        if not _legal_body(body):
            return math.nan
        return planet_alt_az(self._bound(), body, self._t, self._lat, self._lon, True)[1]

    def planet_altitude_at(self, body: int, t: float) -> float:
        if not _legal_body(body):
            return math.nan
        self._bound()
        return planet_alt_az(None, body, t, self._lat, self._lon, True)[0]

    def planet_azimuth_at(self, body: int, t: float) -> float:
        if not _legal_body(body):
            return math.nan
        self._bound()
        return planet_alt_az(None, body, t, self._lat, self._lon, True)[1]

    def planet_geocentric_altitude_at(self, body: int, t: float) -> float:
        """Altitude without parallax at any instant, for sampling many instants cheaply."""
        if not _legal_body(body):
            return math.nan
        return planet_altitude_at(body, t, self._lat, self._lon)

    def sun_altitude(self) -> float:
        return self.planet_altitude(Body.SUN)

    def sun_azimuth(self) -> float:
        return self.planet_azimuth(Body.SUN)

    def moon_altitude(self) -> float:
        return self.planet_altitude(Body.MOON)

    def moon_azimuth(self) -> float:
        return self.planet_azimuth(Body.MOON)

    def planet_is_up(self, body: int) -> bool:
        """Above the altitude at which the body's upper limb crosses the refracted horizon."""
        if not _legal_body(body) or not self._location_valid:
            return False
        pool = self._bound()

        def compute():
            alt = planet_alt_az(pool, body, self._t, self._lat, self._lon, True)[0]
            return alt > altitude_at_rise_set(pool, self._t, body, False)
        return self._cached(SlotKind.IS_UP, body, compute)

    # ───────────────────────── physical data ─────────────────────────

    @staticmethod
    def planet_mass(body: int) -> float:
        """In kg."""
        return PLANET_MASS_KG[int(body)]

    @staticmethod
    def planet_orbital_period(body: int) -> float:
        """In years."""
        return PLANET_ORBITAL_PERIOD_YEARS[int(body)]

    @staticmethod
    def planet_radius(body: int) -> float:
        """In km."""
        return PLANET_RADIUS_KM[int(body)]

    def planet_apparent_diameter(self, body: int) -> float:
        if not _legal_body(body):
            return math.nan
        return planet_size(body, self.planet_geocentric_distance(body))

    @staticmethod
    def name_of_planet(body: int) -> str:
        return body_name(body)

    # ───────────────────────── zodiac ─────────────────────────

    @staticmethod
    def center_of_zodiac_constellation(n: int) -> float:
        return math.radians(ZODIAC_CENTERS_DEG[n])

    @staticmethod
    def width_of_zodiac_constellation(n: int) -> float:
        return math.radians(abs(ZODIAC_EDGES_DEG[n] - ZODIAC_EDGES_DEG[n + 1]))

    @staticmethod
    def zodiac_constellation_of(ecliptic_longitude: float) -> str:
        for i in range(1, 13):
            if math.radians(ZODIAC_EDGES_DEG[i]) > ecliptic_longitude:
                return ZODIAC_NAMES[i - 1]
        return ZODIAC_NAMES[0]

    # ───────────────────────── ecliptic on the dial ─────────────────────────

    def _highest_ecliptic(self) -> Tuple[float, float, float, float]:
        """(azimuth, longitude) of the ecliptic's highest point, ecliptic altitude, north-meridian longitude."""
        pool = self._bound()
        kinds = (SlotKind.HIGHEST_ECLIPTIC_AZIMUTH, SlotKind.HIGHEST_ECLIPTIC_LONGITUDE,
                 SlotKind.ECLIPTIC_ALTITUDE, SlotKind.NORTH_MERIDIAN_LONGITUDE)
        cache = cache_for(pool, self._t)
        if cache is not None:
            vals = [cache.get(k) for k in kinds]
            if all(v is not None for v in vals):
                return vals[0], vals[1], vals[2], vals[3]
        _dpsi, eps = nutation_obliquity(pool, self._t)
        lst = gst_to_lst(gst_p03(pool, self._t), self._lon)
        lat = self._lat
        sin_e, cos_e = math.sin(eps), math.cos(eps)
        el = math.atan2(-math.cos(lst), sin_e * math.tan(lat) + cos_e * math.sin(lst)) + math.pi / 2
        decl = math.asin(sin_e * math.sin(el))
        ra = math.atan2(cos_e * math.sin(el), math.cos(el))
        ha = lst - ra
        sin_alt = math.sin(decl) * math.sin(lat) + math.cos(decl) * math.cos(lat) * math.cos(ha)
        az = math.atan2(-math.cos(decl) * math.cos(lat) * math.sin(ha),
                        math.sin(decl) - math.sin(lat) * sin_alt)
        if sin_alt < 0:
            az += math.pi
            el += math.pi
        az = _fmod_pos(az, TWO_PI)
        el = _fmod_pos(el, TWO_PI)
        lon_m = math.atan(math.tan(lst) / cos_e)
        flip_ra = math.cos(lst) > 0
        if lat > 0:
            flip_az = math.cos(az) > 0 and lat < math.pi / 4
        else:
            flip_az = math.cos(az) > 0 or lat < -math.pi / 4
        if flip_ra != flip_az:
            lon_m -= math.pi
        if lon_m < 0:
            lon_m += TWO_PI
        ecl_alt = math.acos(max(-1.0, min(1.0, cos_e * math.sin(lat) - sin_e * math.cos(lat) * math.sin(lst))))
        out = (az, el, ecl_alt, lon_m)
        if cache is not None:
            for k, v in zip(kinds, out):
                cache.set(k, v)
        return out

    def azimuth_of_highest_ecliptic_altitude(self) -> float:
        return self._highest_ecliptic()[0]

    def longitude_of_highest_ecliptic_altitude(self) -> float:
        return self._highest_ecliptic()[1]

    def ecliptic_altitude(self) -> float:
        return self._highest_ecliptic()[2]

    def longitude_at_north_meridian(self) -> float:
        return self._highest_ecliptic()[3]

    def refine_time_of_closest_sun_ecliptic_longitude(self, quarter: int) -> float:
        """Instant nearest now when the Sun's longitude is quarter·π/2 (equinoxes and solstices)."""
        pool = self._bound()

        def compute():
            target = quarter * math.pi / 2
            try_date = _time_of_closest_sun_longitude(pool, target, self._t)
            for _ in range(_SUN_LONGITUDE_PASSES):
                with pool.scoped(pool.refinement, try_date, 0.0):
                    try_date = _time_of_closest_sun_longitude(pool, target, try_date)
            return try_date
        return self._cached(SlotKind.CLOSEST_SUN_LONGITUDE, quarter, compute)

    def closest_sun_ecliptic_longitude_quarter_366_indicator_angle(self, quarter: int) -> float:
        """Where that equinox or solstice falls on a 366-day local-calendar year dial."""
        def compute():
            target = self.refine_time_of_closest_sun_ecliptic_longitude(quarter)
            return self.environment.local_year_fraction(target) * TWO_PI
        return self._cached(SlotKind.CLOSEST_SUN_LONGITUDE_INDICATOR, quarter, compute)

    def meridian_time_for_season(self) -> float:
        """Solar noon (winter half) or solar midnight (summer half) of today, for polar fallbacks."""
        def compute():
            midnight = self.environment.local_midnight(self._t)
            offset = self._tz_offset() - self._lon * 43200.0 / math.pi - self.eot_seconds()
            if self.summer():
                if offset < 0:
                    offset += 24 * 3600.0
            else:
                offset += 12 * 3600.0
            return midnight + offset
        return self._cached(SlotKind.MERIDIAN_TIME, 0, compute)

    def _body_meridian_time(self, body: int) -> float:
        def compute():
            c = civil.utc_components(self._t)
            midnight = civil.local_instant(self.environment.zone, c.year, c.month, c.day)
            return midnight + (12 * 3600.0 if self.planet_is_summer(body) else 0.0)
        return self._cached(SlotKind.PLANET_MERIDIAN_TIME, body, compute)

    def moon_meridian_time_for_season(self) -> float:
        return self._body_meridian_time(Body.MOON)

    def planet_meridian_time_for_season(self, body: int) -> float:
        return self._body_meridian_time(body)

    # ───────────────────────── lunar node ─────────────────────────

    def moon_ascending_node_longitude(self) -> float:
        return moon_node_longitude(self._bound(), self._t)

    def _node_equatorial(self) -> Tuple[float, float]:
        pool = self._bound()
        cache = cache_for(pool, self._t)
        if cache is not None:
            ra = cache.get(SlotKind.MOON_NODE_RA)
            decl = cache.get(SlotKind.MOON_NODE_DECL)
            if ra is not None and decl is not None:
                return ra, decl
        _dpsi, eps = nutation_obliquity(pool, self._t)
        ra, decl = ra_and_decl(0.0, self.moon_ascending_node_longitude(), eps)
        if ra < 0:
            ra += TWO_PI
        if cache is not None:
            cache.set(SlotKind.MOON_NODE_RA, ra)
            cache.set(SlotKind.MOON_NODE_DECL, decl)
        return ra, decl

    def _node_j2000(self) -> Tuple[float, float]:
        pool = self._bound()
        cache = cache_for(pool, self._t)
        if cache is not None:
            ra = cache.get(SlotKind.MOON_NODE_RA_J2000)
            decl = cache.get(SlotKind.MOON_NODE_DECL_J2000)
            if ra is not None and decl is not None:
                return ra, decl
        ra, decl = self._node_equatorial()
        T, _dt = julian_centuries(pool, self._t)
        ra, decl = refine_date_to_j2000(T, ra, decl)
        if cache is not None:
            cache.set(SlotKind.MOON_NODE_RA_J2000, ra)
            cache.set(SlotKind.MOON_NODE_DECL_J2000, decl)
        return ra, decl

    def moon_ascending_node_ra(self) -> float:
        return self._node_equatorial()[0]

    def moon_ascending_node_decl(self) -> float:
        return self._node_equatorial()[1]

    def moon_ascending_node_ra_j2000(self) -> float:
        return self._node_j2000()[0]

    def moon_ascending_node_decl_j2000(self) -> float:
        return self._node_j2000()[1]

    # ───────────────────────── eclipses ─────────────────────────

    def _calculate_eclipse(self) -> Tuple[float, float, float, EclipseKind]:
        """(abstract separation, angular separation, shadow angular size, kind)."""
        pool = self._bound()
        kinds = (SlotKind.ECLIPSE_ABSTRACT_SEPARATION, SlotKind.ECLIPSE_ANGULAR_SEPARATION,
                 SlotKind.ECLIPSE_SHADOW_SIZE, SlotKind.ECLIPSE_KIND)
        cache = cache_for(pool, self._t)
        if cache is not None:
            vals = [cache.get(k) for k in kinds]
            if all(v is not None for v in vals):
                return vals[0], vals[1], vals[2], EclipseKind(vals[3])
        t, lat = self._t, self._lat
        lst = gst_to_lst(gst_p03(pool, t), self._lon)
        sun = apparent_position(pool, Body.SUN, t)
        moon = apparent_position(pool, Body.MOON, t)
        sun_size = planet_size(Body.SUN, sun.distance)
        moon_size = planet_size(Body.MOON, moon.distance)
        ra_delta = _fmod_pos(abs(moon.ra - sun.ra), TWO_PI)
        if ra_delta < math.pi / 2:
            # might be solar
            sun_h, sun_decl = topocentric_parallax(sun.ra, sun.decl, lst - sun.ra, sun.distance, lat)
            moon_h, moon_decl = topocentric_parallax(moon.ra, moon.decl, lst - moon.ra, moon.distance, lat)
            separation = angular_separation(lst - sun_h, sun_decl, lst - moon_h, moon_decl)
            at_partial = sun_size / 2 + moon_size / 2
            at_total = moon_size / 2 - sun_size / 2        # negative: no total possible
            at_annular = sun_size / 2 - moon_size / 2      # negative: no annular possible
            altitude = planet_alt_az(pool, Body.SUN, t, lat, self._lon, True)[0]
            if altitude < altitude_at_rise_set(pool, t, Body.SUN, False):
                kind = EclipseKind.SOLAR_NOT_UP
            elif separation > at_partial:
                kind = EclipseKind.NONE_SOLAR
            elif separation < at_annular:
                kind = EclipseKind.ANNULAR_SOLAR
            elif separation > at_total:
                kind = EclipseKind.PARTIAL_SOLAR
            else:
                kind = EclipseKind.TOTAL_SOLAR
            solar = True
            shadow_size = 0.0
        else:
            # might be lunar
            umbral_radius = (1.01 * planet_parallax(moon.distance) - sun_size / 2
                             + planet_parallax(sun.distance))
            shadow_size = 2 * umbral_radius
            shadow_ra = sun.ra + math.pi
            if shadow_ra > TWO_PI:
                shadow_ra -= TWO_PI
            separation = angular_separation(shadow_ra, -sun.decl, moon.ra, moon.decl)
            at_partial = moon_size / 2 + shadow_size / 2
            at_total = shadow_size / 2 - moon_size / 2
            altitude = planet_alt_az(pool, Body.MOON, t, lat, self._lon, True)[0]
            if altitude < altitude_at_rise_set(pool, t, Body.MOON, False):
                kind = EclipseKind.LUNAR_NOT_UP
            elif separation > at_partial:
                kind = EclipseKind.NONE_LUNAR
            elif separation > at_total:
                kind = EclipseKind.PARTIAL_LUNAR
            else:
                kind = EclipseKind.TOTAL_LUNAR
            solar = False
        # Scale so total starts at 1 and partial at 2.
        abstract = 1 + (separation - at_total) / (at_partial - at_total)
        if abstract < 0:
            abstract = 0.0
        elif abstract > 3:
            abstract = 3.0
            # pegged needle overrides "not up"
            kind = EclipseKind.NONE_SOLAR if solar else EclipseKind.NONE_LUNAR
        if cache is not None:
            for k, v in zip(kinds, (abstract, separation, shadow_size, int(kind))):
                cache.set(k, v)
        return abstract, separation, shadow_size, kind

    def eclipse_abstract_separation(self) -> float:
        """Separation scaled so a total eclipse starts at 1 and a partial at 2, clamped to [0, 3]."""
        return self._calculate_eclipse()[0]

    def eclipse_angular_separation(self) -> float:
        return self._calculate_eclipse()[1]

    def eclipse_shadow_angular_size(self) -> float:
        return self._calculate_eclipse()[2]

    def eclipse_kind(self) -> EclipseKind:
        return self._calculate_eclipse()[3]

    # ───────────────────────── day / night leaves ─────────────────────────

    def _leaf_masters(self, body: int, override_altitude: float, base: TimeBase) -> Tuple[float, float, float, float]:
        """Dial angles of (rise, set, rise-side transit, set-side transit) around now."""
        pool = self._bound()
        if base == TimeBase.LST:
            kinds = (SlotKind.LEAF_RISE_LST, SlotKind.LEAF_SET_LST,
                     SlotKind.LEAF_RISE_TRANSIT_LST, SlotKind.LEAF_SET_TRANSIT_LST)
        else:
            kinds = (SlotKind.LEAF_RISE, SlotKind.LEAF_SET,
                     SlotKind.LEAF_RISE_TRANSIT, SlotKind.LEAF_SET_TRANSIT)
        use_cache = math.isnan(override_altitude)
        cache = cache_for(pool, self._t) if use_cache else None
        if cache is not None:
            vals = [cache.get(k, body) for k in kinds]
            if all(v is not None for v in vals):
                return vals[0], vals[1], vals[2], vals[3]
        if not math.isnan(override_altitude):
            alt = planet_alt_az(pool, Body.SUN, self._t, self._lat, self._lon, True)[0]
            is_up = alt > override_altitude
        else:
            is_up = self.planet_is_up(body)
        rise, r_transit = self._next_prev_rise_set(-FUDGE_SECONDS, rise_set_time_refined, override_altitude,
                                                   body, True, not is_up)
        set_, s_transit = self._next_prev_rise_set(-FUDGE_SECONDS, rise_set_time_refined, override_altitude,
                                                   body, False, is_up)
        rise_a = self.angle_24hour(rise, base)
        set_a = self.angle_24hour(set_, base)
        r_transit_a = self.angle_24hour(r_transit, base)
        s_transit_a = self.angle_24hour(s_transit, base)
        # An always-above failure probed the low transit; the dial wants the high one.
        if rise_a is ALWAYS_ABOVE:
            r_transit_a = _fmod_pos(r_transit_a + math.pi, TWO_PI)
        if set_a is ALWAYS_ABOVE:
            s_transit_a = _fmod_pos(s_transit_a + math.pi, TWO_PI)
        out = (rise_a, set_a, r_transit_a, s_transit_a)
        if cache is not None:
            for k, v in zip(kinds, out):
                cache.set(k, v, body)
        return out

    def _day_night_leaf(self, body: int, leaf: int, num_leaves: int, override_altitude: float,
                        base: TimeBase) -> Tuple[float, bool, bool]:
        """
        Returns (angle, is_rise_set, above_horizon).

        num_leaves == 0 selects a special indicator by leaf number:
          0 rise, 1 set (the transit when there is none), 2 polar summer flag,
          3 polar winter flag, 4 high transit.
        num_leaves < 0 is the dawn/dusk variant and uses |num_leaves|.
        body == MIDNIGHT_SUN fans the leaves across the night instead of the day.
        """
        assert base in (TimeBase.LT, TimeBase.LST)
        night = body == Body.MIDNIGHT_SUN
        if night:
            body = Body.SUN
        rise_a, set_a, r_transit_a, s_transit_a = self._leaf_masters(body, override_altitude, base)

        special = False
        if num_leaves == 0:
            if leaf == 0:
                if math.isnan(rise_a):
                    return r_transit_a, False, rise_a is ALWAYS_ABOVE
                return rise_a, True, False
            if leaf == 1:
                if math.isnan(set_a):
                    return s_transit_a, False, set_a is ALWAYS_ABOVE
                return set_a, True, False
            special = True
        elif num_leaves < 0:
            num_leaves = -num_leaves

        leaf_width = TWO_PI / num_leaves if num_leaves else math.inf
        polar_summer = polar_winter = False
        if math.isnan(rise_a):
            if math.isnan(set_a):
                # Neither exists: center on the average transit.
                if s_transit_a > r_transit_a + math.pi:
                    s_transit_a -= TWO_PI
                elif s_transit_a < r_transit_a - math.pi:
                    s_transit_a += TWO_PI
                avg = (r_transit_a + s_transit_a) / 2
                if rise_a is ALWAYS_ABOVE:
                    rise_a = avg - math.pi
                    set_a = avg + math.pi
                    polar_summer = True
                else:
                    rise_a = avg - leaf_width / 2 - 0.00001
                    set_a = avg + leaf_width / 2 + 0.00001
                    polar_winter = True
            elif rise_a is ALWAYS_ABOVE:
                rise_a = set_a - TWO_PI
                polar_summer = True
            else:
                rise_a = set_a - leaf_width
                polar_winter = True
        elif math.isnan(set_a):
            if set_a is ALWAYS_ABOVE:
                set_a = rise_a + TWO_PI
                polar_summer = True
            else:
                set_a = rise_a + leaf_width
                polar_winter = True

        if special:
            if leaf == 2:
                return float(polar_summer), False, False
            if leaf == 3:
                return float(polar_winter), False, False
            if leaf == 4:
                transit_t, _ = transit_time_refined(self._t, self._lat, self._lon, True, body,
                                                    math.nan, self._pool)
                return self.angle_24hour(transit_t, base), False, False
            raise ValueError(f"unknown special leaf {leaf}")

        rise_a = _fmod_pos(rise_a, TWO_PI)
        set_a = _fmod_pos(set_a, TWO_PI)
        if set_a <= rise_a + 0.0001:
            set_a += TWO_PI
        if night:
            set_a += leaf_width / 2
            rise_a -= leaf_width / 2
        else:
            set_a -= leaf_width / 2
            rise_a += leaf_width / 2
        if set_a < rise_a:
            rise_a = set_a = (rise_a + set_a) / 2
        if num_leaves == 1:
            center = set_a if night else rise_a
        elif night:
            center = set_a + (TWO_PI - set_a + rise_a) / (num_leaves - 1) * leaf
        else:
            center = rise_a + (set_a - rise_a) / (num_leaves - 1) * leaf
        if center > TWO_PI:
            center -= TWO_PI
        return center, False, False

    def day_night_leaf_angle(self, body: int, leaf: int, num_leaves: int,
                             override_altitude: float = math.nan,
                             base: TimeBase = TimeBase.LT) -> float:
        return self._day_night_leaf(body, leaf, num_leaves, override_altitude, base)[0]

    def sunrise_24hour_indicator_angle(self) -> float:
        return self.day_night_leaf_angle(Body.SUN, 0, 0)

    def sunset_24hour_indicator_angle(self) -> float:
        return self.day_night_leaf_angle(Body.SUN, 1, 0)

    def moonrise_24hour_indicator_angle(self) -> float:
        return self.day_night_leaf_angle(Body.MOON, 0, 0)

    def moonset_24hour_indicator_angle(self) -> float:
        return self.day_night_leaf_angle(Body.MOON, 1, 0)

    def planetrise_24hour_indicator_angle(self, body: int) -> Tuple[float, bool, bool]:
        """(angle, is_rise_set, above_horizon); the angle is the transit when there is no rise."""
        return self._day_night_leaf(body, 0, 0, math.nan, TimeBase.LT)

    def planetset_24hour_indicator_angle(self, body: int) -> Tuple[float, bool, bool]:
        return self._day_night_leaf(body, 1, 0, math.nan, TimeBase.LT)

    def planettransit_24hour_indicator_angle(self, body: int) -> float:
        return self.day_night_leaf_angle(body, 4, 0)

    def planetrise_24hour_indicator_angle_lst(self, body: int) -> float:
        return self.day_night_leaf_angle(body, 0, 0, base=TimeBase.LST)

    def planetset_24hour_indicator_angle_lst(self, body: int) -> float:
        return self.day_night_leaf_angle(body, 1, 0, base=TimeBase.LST)

    def polar_summer(self) -> bool:
        return bool(self.day_night_leaf_angle(Body.SUN, 2, 0))

    def polar_winter(self) -> bool:
        return bool(self.day_night_leaf_angle(Body.SUN, 3, 0))

    def polar_planet_summer(self, body: int) -> bool:
        return bool(self.day_night_leaf_angle(body, 2, 0))

    def polar_planet_winter(self, body: int) -> bool:
        return bool(self.day_night_leaf_angle(body, 3, 0))

    def sun_special_24hour_indicator_angle(self, kind: AltitudeKind) -> Tuple[float, bool]:
        """
        Dial angle of a golden-hour or twilight boundary, and whether it exists.

        Morning kinds search back from the coming sunset (evening kinds forward from the
        last sunrise) so the indicator stays on the same day as the daylight it brackets.
        """
        altitude, rise_not_set = kind.altitude, kind.is_rise
        if kind.is_true_rise_set:
            angle, valid, _above = self._day_night_leaf(Body.SUN, 0 if rise_not_set else 1, 0,
                                                        altitude, TimeBase.LT)
            return angle, valid
        pool = self._bound()
        back = self.running_backward
        if rise_not_set:
            _ret, anchor = self._next_prev_rise_set(FUDGE_SECONDS, rise_set_time_refined, math.nan,
                                                    Body.SUN, False, not back)
            with pool.scoped(pool.temp, anchor):
                ret, rst = self._next_prev_rise_set(FUDGE_SECONDS, rise_set_time_refined, altitude,
                                                    Body.SUN, True, back, t=anchor)
        else:
            _ret, anchor = self._next_prev_rise_set(FUDGE_SECONDS, rise_set_time_refined, math.nan,
                                                    Body.SUN, True, back)
            with pool.scoped(pool.temp, anchor):
                ret, rst = self._next_prev_rise_set(FUDGE_SECONDS, rise_set_time_refined, altitude,
                                                    Body.SUN, False, not back, t=anchor)
        return self.angle_24hour(rst, TimeBase.LT), not math.isnan(ret)
