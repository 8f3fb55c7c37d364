# astroclock/core/riseset.py
# -----------------------------------------------------------------------------
# Rise / set / transit solver.
#
# Public API (locked):
#   ALWAYS_ABOVE / ALWAYS_BELOW            -> "no crossing" sentinels
#   classify(x)                            -> "value" | "always_above" | "always_below" | "invalid"
#   rise_set_time(pool, rise, ra, decl, lat, lon, alt, t)  -> instant | sentinel
#   transit_time(pool, t, high, lon, ra)   -> instant
#   linear_fit(x1, y1, x2, y2) / extrapolate_to_y_equals_x(xs, ys)
#   transit_time_refined(...)              -> (result, rise_set_or_transit)
#   rise_set_time_refined(...)             -> (result, rise_set_or_transit)
#
# Guarantees:
#   • The sentinels are NaN (math.isnan holds) and are returned as the same
#     objects every time, so identity tests distinguish them.
#   • Every trial evaluation runs in the pool's refinement scope with zero
#     slop; the caller's current scope is restored before returning.
#   • The Moon starts at LOW precision and is promoted to FULL before a
#     result is accepted.
#   • rise_set_or_transit is never NaN: on failure it carries the instant a
#     caller should step past (usually the transit that was probed).
# -----------------------------------------------------------------------------

from __future__ import annotations

from typing import Callable, List, Sequence, Tuple
import logging
import math

from astroclock.core.astro_cache import CachePool
from astroclock.core.constants import Body, TWO_PI
from astroclock.core.ephemeris import altitude_at_rise_set, apparent_position
from astroclock.core.series import Precision
from astroclock.core.timescales import gst_p03, gst_to_ut_closest, lst_to_gst

log = logging.getLogger(__name__)

__all__ = [
    "NoCrossing",
    "ALWAYS_ABOVE",
    "ALWAYS_BELOW",
    "is_always_above",
    "is_always_below",
    "classify",
    "same_outcome",
    "CalculationMethod",
    "rise_set_time",
    "transit_time",
    "linear_fit",
    "extrapolate_to_y_equals_x",
    "transit_time_refined",
    "rise_set_time_refined",
]

_TRANSIT_ITERATIONS = 7
_RISE_SET_ITERATIONS = 20
_POLAR_TRIES = 10
_POLAR_LATITUDE = math.radians(89.0)
_CONVERGED = 0.1          # seconds
_STILL_WANDERING = 60.0   # seconds
_POLAR_STEP = 13 * 3600.0
_DAY = 24 * 3600.0

# ───────────────────────────── sentinels ─────────────────────────────

class NoCrossing(float):
    """A NaN that records why there is no horizon crossing."""

    def __new__(cls, kind: str):
        obj = super().__new__(cls, math.nan)
        obj.kind = kind
        return obj

    def __repr__(self) -> str:
        return f"NoCrossing({self.kind!r})"

    def __reduce__(self):
        return (_no_crossing, (self.kind,))


ALWAYS_ABOVE = NoCrossing("always_above")
ALWAYS_BELOW = NoCrossing("always_below")
_SENTINELS = {"always_above": ALWAYS_ABOVE, "always_below": ALWAYS_BELOW}


def _no_crossing(kind: str) -> NoCrossing:
    return _SENTINELS[kind]


def is_always_above(x: float) -> bool:
    return x is ALWAYS_ABOVE


def is_always_below(x: float) -> bool:
    return x is ALWAYS_BELOW


def classify(x: float) -> str:
    if x is ALWAYS_ABOVE:
        return "always_above"
    if x is ALWAYS_BELOW:
        return "always_below"
    if x is None or math.isnan(x):
        return "invalid"
    return "value"


def same_outcome(a: float, b: float) -> bool:
    """Equal as numbers, or the same kind of NaN."""
    ka, kb = classify(a), classify(b)
    if ka == "value" and kb == "value":
        return a == b
    return ka == kb


# (t, latitude, longitude, rise_not_set | want_high, body, override_altitude, pool)
#   -> (result, rise_set_or_transit)
CalculationMethod = Callable[[float, float, float, bool, int, float, CachePool], Tuple[float, float]]

# ───────────────────────────── single-shot solvers ─────────────────────────────

def rise_set_time(pool: CachePool, rise_not_set: bool, ra: float, decl: float,
                  latitude: float, longitude: float, altitude: float, t: float) -> float:
    """Rise or set nearest `t` for a body fixed at (ra, decl); Meeus pp. 102-103 without Δm."""
    cos_h = ((math.sin(altitude) - math.sin(latitude) * math.sin(decl))
             / (math.cos(latitude) * math.cos(decl)))
    if cos_h < -1.0:
        return ALWAYS_ABOVE
    if cos_h > 1.0:
        return ALWAYS_BELOW
    h = math.acos(cos_h)
    lst = ra + (TWO_PI - h if rise_not_set else h)
    if lst > TWO_PI:
        lst -= TWO_PI
    gst, _ = lst_to_gst(lst, longitude)
    return gst_to_ut_closest(pool, gst, t)


def transit_time(pool: CachePool, t: float, want_high: bool, longitude: float, ra: float) -> float:
    """Meridian crossing nearest `t` for a body fixed at `ra`."""
    gst = gst_p03(pool, t)
    if not want_high:
        ra += math.pi
    h = math.fmod(gst + longitude - ra, TWO_PI)
    if h > math.pi:
        h -= TWO_PI
    elif h < -math.pi:
        h += TWO_PI
    return t - h * 43200.0 / math.pi

# ───────────────────────────── fixed-point fitting ─────────────────────────────

def linear_fit(x1: float, y1: float, x2: float, y2: float) -> float:
    """Where the line through (x1,y1),(x2,y2) meets y == x; falls back to y2."""
    offset = x1
    y1 -= offset
    x2 -= offset
    y2 -= offset
    denom = x2 - y2 + y1
    if denom == 0:
        return y2 + offset
    root = y1 * x2 / denom
    if abs(root - y2) > 12 * 3600.0:
        return y2 + offset
    return offset + root


def extrapolate_to_y_equals_x(xs: Sequence[float], ys: Sequence[float]) -> float:
    """
    Next guess for x with f(x) == x given samples ys[i] = f(xs[i]), newest last.

    One sample returns it; two intersect a line with y == x; three or more fit a
    parabola through the last three and take the root nearest the newest y,
    reverting to the line when there is no usable root.
    """
    n = len(xs)
    if n == 0:
        raise ValueError("extrapolate_to_y_equals_x needs at least one sample")
    if n == 1:
        return ys[0]
    if n > 2:
        offset = xs[-3]
        X1, Y1 = 0.0, ys[-3] - offset
        X2, Y2 = xs[-2] - offset, ys[-2] - offset
        X3, Y3 = xs[-1] - offset, ys[-1] - offset
        if X1 != X2 and X1 != X3 and X2 != X3:
            k1 = Y1 / ((X1 - X2) * (X1 - X3))
            k2 = Y2 / ((X2 - X1) * (X2 - X3))
            k3 = Y3 / ((X3 - X1) * (X3 - X2))
            c2 = k1 + k2 + k3
            c1 = k1 * (X2 + X3) + k2 * (X1 + X3) + k3 * (X1 + X2)
            c0 = k1 * X2 * X3 + k2 * X1 * X3 + k3 * X1 * X2
            if c2 != 0:
                p = (-c1 - 1.0) / c2
                q = c0 / c2
                d = p * p / 4.0 - q
                if d >= 0:
                    s = math.sqrt(d)
                    r1 = -p / 2.0 + s
                    r2 = -p / 2.0 - s
                    best = r1 if abs(r1 - Y3) < abs(r2 - Y3) else r2
                    if abs(best - Y3) < _DAY:
                        return best + offset
                    log.debug("parabolic root %.1fs from newest sample; reverting to linear", best - Y3)
    return linear_fit(xs[-2], ys[-2], xs[-1], ys[-1])

# ───────────────────────────── refined solvers ─────────────────────────────

def _position(pool: CachePool, body: int, t: float, precision: Precision):
    pos = apparent_position(pool, body, t, precision)
    return pos.ra, pos.decl


def transit_time_refined(t: float, latitude: float, longitude: float, want_high: bool,
                         body: int, override_altitude: float, pool: CachePool) -> Tuple[float, float]:
    """High (or low) transit nearest `t`, iterated to a fixed point. Never NaN."""
    try_date = t
    precision = Precision.LOW if body == Body.MOON else Precision.FULL
    xs: List[float] = []
    ys: List[float] = []
    i = 0
    while i < _TRANSIT_ITERATIONS:
        if body == Body.MOON and i == _TRANSIT_ITERATIONS - 1 and precision != Precision.FULL:
            precision = Precision.FULL
            i -= 1
            xs, ys = [], []
        with pool.scoped(pool.refinement, try_date, 0.0):
            ra, _decl = _position(pool, body, try_date, precision)
            new_date = transit_time(pool, try_date, want_high, longitude, ra)
        if abs(new_date - try_date) < _CONVERGED:
            if body == Body.MOON and precision != Precision.FULL:
                precision = Precision.FULL
            else:
                return new_date, new_date
        xs.append(try_date)
        ys.append(new_date)
        try_date = extrapolate_to_y_equals_x(xs, ys)
        i += 1
    return try_date, try_date


def _event_at(pool: CachePool, rise_not_set: bool, body: int, t: float, latitude: float,
              longitude: float, override_altitude: float, precision: Precision) -> float:
    with pool.scoped(pool.refinement, t, 0.0):
        ra, decl = _position(pool, body, t, precision)
        if math.isnan(override_altitude):
            altitude = altitude_at_rise_set(pool, t, body, True, precision)
        else:
            altitude = override_altitude
        return rise_set_time(pool, rise_not_set, ra, decl, latitude, longitude, altitude, t)


def rise_set_time_refined(t: float, latitude: float, longitude: float, rise_not_set: bool,
                          body: int, override_altitude: float, pool: CachePool) -> Tuple[float, float]:
    """
    Rise (or set) nearest `t`, iterated to a fixed point.

    Returns (result, rise_set_or_transit). When the body does not cross the
    requested altitude near `t`, `result` is ALWAYS_ABOVE or ALWAYS_BELOW and
    the second element is the probed transit time.
    """
    try_date = t
    last_valid_result = math.nan
    last_valid_try = math.nan
    converged_to_invalid = False
    polar = abs(latitude) > _POLAR_LATITUDE
    if body == Body.MOON and not polar:
        precision = Precision.LOW
    else:
        precision = Precision.FULL
    xs: List[float] = []
    ys: List[float] = []
    last_delta = 0.0
    first_nan = math.nan
    first_transit = try_date

    def event(at: float) -> float:
        return _event_at(pool, rise_not_set, body, at, latitude, longitude, override_altitude, precision)

    i = 0
    while i < _RISE_SET_ITERATIONS:
        if body == Body.MOON and i == _RISE_SET_ITERATIONS - 1 and precision != Precision.FULL:
            precision = Precision.FULL
            i -= 1
            xs, ys = [], []
        new_date = event(try_date)
        if math.isnan(new_date):
            if not converged_to_invalid:
                # No crossing here; the transit nearest the horizon may still have one.
                converged_to_invalid = True
                want_high = is_always_below(new_date)
                with pool.scoped(pool.refinement, try_date, 0.0):
                    transit_t, _ = transit_time_refined(try_date, latitude, longitude, want_high,
                                                        body, math.nan, pool)
                first_transit = transit_t
                first_nan = new_date
                new_date = event(transit_t)
                if math.isnan(new_date):
                    if not polar:
                        return new_date, transit_t
                    # Near the pole the declination drift dominates: look 13h either side.
                    prior_polar = transit_t - _POLAR_STEP
                    prior_event = event(prior_polar)
                    low = high = low_event = high_event = math.nan
                    if math.isnan(prior_event):
                        if not same_outcome(prior_event, new_date):
                            low, low_event = prior_polar, prior_event
                            high, high_event = transit_t, new_date
                        next_polar = try_date + _POLAR_STEP
                        next_event = event(next_polar)
                        if math.isnan(next_event):
                            if not same_outcome(next_event, new_date):
                                low, low_event = transit_t, new_date
                                high, high_event = next_polar, next_event
                            elif math.isnan(low):
                                return new_date, transit_t
                        else:
                            if next_event > try_date + _DAY:
                                return new_date, transit_t
                            try_date = next_polar
                            new_date = next_event
                    else:
                        if prior_event < try_date - _DAY:
                            return new_date, transit_t
                        try_date = prior_polar
                        new_date = prior_event
                    if not math.isnan(low):
                        for _ in range(_POLAR_TRIES):
                            split = (low + high) / 2.0
                            split_event = event(split)
                            if not math.isnan(split_event):
                                transit_t = split
                                new_date = split_event
                                break
                            if same_outcome(split_event, low_event):
                                low, low_event = split, split_event
                            else:
                                high, high_event = split, split_event
                        if math.isnan(new_date):
                            return new_date, transit_t
                last_valid_try = transit_t
                last_valid_result = new_date
                xs.append(transit_t)
                ys.append(new_date)
                try_date = extrapolate_to_y_equals_x(xs, ys)
            else:
                # lastValidTry gave a crossing; close half the gap, no fit sample here.
                try_date = (try_date + last_valid_try) / 2.0
        else:
            last_valid_try = try_date
            last_valid_result = new_date
            xs.append(try_date)
            ys.append(new_date)
            try_date = extrapolate_to_y_equals_x(xs, ys)
        last_delta = last_valid_result - last_valid_try
        if abs(last_delta) < _CONVERGED:
            if body == Body.MOON and precision != Precision.FULL:
                precision = Precision.FULL
                i += 1
                continue
            return last_valid_result, last_valid_result
        i += 1

    if math.isnan(last_valid_result):
        return last_valid_result, try_date
    if abs(last_delta) > _STILL_WANDERING:
        log.debug("rise/set for body %d did not settle (%.1fs); reporting the first probe", body, last_delta)
        return first_nan, first_transit
    return last_valid_result, last_valid_result
