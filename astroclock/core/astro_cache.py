# astroclock/core/astro_cache.py
"""
Calculation cache: per-instant memoization of astronomical quantities.

A :class:`CachePool` owns five :class:`AstroCache` scopes (final, temp,
refinement, midnight, year2000). Exactly one scope is current at a time;
scopes nest via :meth:`CachePool.push` / :meth:`CachePool.pop` (or the
:meth:`CachePool.scoped` context manager) so that trial evaluations at a
different instant never disturb the values cached for the outer instant.

Each scope is a fixed-size table indexed by ``(SlotKind, sub)`` where
``sub`` is a body number, a moon-series precision or a quarter. A slot is
valid iff its flag equals the scope's ``current_flag``; values and flags are
written together by :meth:`AstroCache.set` only.

Slot kinds are ordered: every kind before ``SlotKind.NEXT_RISE`` depends
only on the instant, every kind from it onward also depends on the
observer's latitude, longitude or UTC offset.

A pool is owned by one execution context (e.g. one worker thread); it is
not shared between threads.
"""

from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from enum import IntEnum
from typing import Any, Iterator, List, Optional

log = logging.getLogger(__name__)

__all__ = [
    "ASTRO_SLOP",
    "SLOT_SPAN",
    "SlotKind",
    "is_location_dependent",
    "AstroCache",
    "CachePool",
]

ASTRO_SLOP: float = 2.0           # seconds
SLOT_SPAN: int = 12               # subs per kind: bodies 0..11, precisions, quarters
_MAX_FLAG: int = 0xFFFFFFFF


class SlotKind(IntEnum):
    # ── instant only ──────────────────────────────────────────────
    TDT_CENTURIES = 0
    TDT_DELTA_T = 1
    PRIOR_UT_MIDNIGHT = 2
    NUTATION = 3
    OBLIQUITY = 4
    SUN_LONGITUDE = 5
    SUN_LATITUDE = 6
    SUN_DISTANCE = 7
    SUN_RA = 8
    SUN_DECL = 9
    SUN_RA_J2000 = 10
    SUN_DECL_J2000 = 11
    MOON_LONGITUDE = 12       # sub = precision
    MOON_LATITUDE = 13
    MOON_DISTANCE = 14
    MOON_RA = 15
    MOON_DECL = 16
    MOON_RA_J2000 = 17
    MOON_DECL_J2000 = 18
    PLANET_LONGITUDE = 19     # sub = body
    PLANET_LATITUDE = 20
    PLANET_DISTANCE = 21
    PLANET_RA = 22
    PLANET_DECL = 23
    HELIO_LONGITUDE = 24
    HELIO_LATITUDE = 25
    HELIO_RADIUS = 26
    EOT = 27
    MOON_AGE = 28
    MOON_PHASE = 29
    NEXT_MOON_PHASE = 30
    PREV_MOON_PHASE = 31
    CLOSEST_MOON_QUARTER = 32  # sub = quarter 0..3
    NEXT_MOON_QUARTER = 33
    CLOSEST_SUN_LONGITUDE = 34
    MOON_POSITION_ANGLE = 35
    PLANET_POSITION_ANGLE = 36
    PLANET_AGE = 37
    PLANET_MOON_AGE = 38
    PLANET_PHASE = 39
    VERNAL_EQUINOX = 40
    MOON_NODE_LONGITUDE = 41
    MOON_NODE_RA = 42
    MOON_NODE_DECL = 43
    MOON_NODE_RA_J2000 = 44
    MOON_NODE_DECL_J2000 = 45
    PRECESSION = 46
    CALENDAR_ERROR = 47
    REAL_MOON_AGE = 48
    # ── instant + observer ────────────────────────────────────────
    NEXT_RISE = 49            # sub = body
    PREV_RISE = 50
    NEXT_SET = 51
    PREV_SET = 52
    NEXT_TRANSIT = 53
    PREV_TRANSIT = 54
    NEXT_TRANSIT_LOW = 55
    PREV_TRANSIT_LOW = 56
    RISE_FOR_DAY = 57
    SET_FOR_DAY = 58
    TRANSIT_FOR_DAY = 59
    SUN_TIME_FOR_ALTITUDE_KIND = 60   # sub = altitude kind ordinal
    ALTITUDE = 61
    AZIMUTH = 62
    IS_UP = 63
    TOPO_RA = 64
    TOPO_DECL = 65
    RELATIVE_POSITION_ANGLE = 66
    MOON_RELATIVE_ANGLE = 67
    HIGHEST_ECLIPTIC_AZIMUTH = 68
    HIGHEST_ECLIPTIC_LONGITUDE = 69
    ECLIPTIC_ALTITUDE = 70
    NORTH_MERIDIAN_LONGITUDE = 71
    MERIDIAN_TIME = 72        # Sun, from the equation of time
    LST = 73
    ECLIPSE_ABSTRACT_SEPARATION = 74
    ECLIPSE_ANGULAR_SEPARATION = 75
    ECLIPSE_SHADOW_SIZE = 76
    ECLIPSE_KIND = 77
    LEAF_RISE = 78            # sub = body; LT dial
    LEAF_SET = 79
    LEAF_RISE_TRANSIT = 80
    LEAF_SET_TRANSIT = 81
    LEAF_RISE_LST = 82        # sub = body; LST dial
    LEAF_SET_LST = 83
    LEAF_RISE_TRANSIT_LST = 84
    LEAF_SET_TRANSIT_LST = 85
    CLOSEST_SUN_LONGITUDE_INDICATOR = 86   # uses the local calendar
    PLANET_MERIDIAN_TIME = 87      # sub = body
    MOON_RELATIVE_POSITION_ANGLE = 88


FIRST_LOCATION_DEPENDENT: SlotKind = SlotKind.NEXT_RISE
NUM_SLOTS: int = len(SlotKind) * SLOT_SPAN
_FIRST_LOCATION_DEPENDENT_INDEX: int = int(FIRST_LOCATION_DEPENDENT) * SLOT_SPAN


def is_location_dependent(kind: SlotKind) -> bool:
    return kind >= FIRST_LOCATION_DEPENDENT


def _index(kind: SlotKind, sub: int) -> int:
    sub = int(sub)
    if not 0 <= sub < SLOT_SPAN:
        raise IndexError(f"slot sub-index {sub} out of range for {kind.name}")
    return int(kind) * SLOT_SPAN + sub

# ───────────────────────────── scope ─────────────────────────────

class AstroCache:
    """One scope of the slot table."""

    def __init__(self, name: str):
        self.name = name
        self.current_flag: int = 0
        self.global_flag: int = 0
        self.date: float = math.nan
        self.slop: float = ASTRO_SLOP
        self._values: List[Any] = [0.0] * NUM_SLOTS
        self._flags: List[int] = [0] * NUM_SLOTS

    def __repr__(self) -> str:
        return f"<AstroCache {self.name} flag={self.current_flag} date={self.date!r}>"

    def reinitialize(self) -> None:
        self.current_flag = 1
        self._flags = [0] * NUM_SLOTS

    def invalidate(self, date: float) -> None:
        if self.current_flag == _MAX_FLAG:
            self.reinitialize()
        else:
            self.current_flag += 1
        self.date = date

    def is_valid(self, kind: SlotKind, sub: int = 0) -> bool:
        return self._flags[_index(kind, sub)] == self.current_flag

    def get(self, kind: SlotKind, sub: int = 0) -> Optional[Any]:
        """Cached value, or None when the slot is stale."""
        i = _index(kind, sub)
        if self._flags[i] == self.current_flag:
            return self._values[i]
        return None

    def set(self, kind: SlotKind, value: Any, sub: int = 0) -> Any:
        i = _index(kind, sub)
        self._values[i] = value
        self._flags[i] = self.current_flag
        return value

    def restamp_location_independent(self, old_flag: int) -> int:
        """Move location-independent slots valid at `old_flag` to the current flag."""
        n = 0
        flags = self._flags
        for i in range(_FIRST_LOCATION_DEPENDENT_INDEX):
            if flags[i] == old_flag:
                flags[i] = self.current_flag
                n += 1
        return n

# ───────────────────────────── pool ─────────────────────────────

class CachePool:
    """Scopes plus pool-wide observer parameters and the global epoch."""

    def __init__(self, name: str = "main"):
        self.name = name
        self.final = AstroCache("final")
        self.temp = AstroCache("temp")
        self.refinement = AstroCache("refinement")
        self.midnight = AstroCache("midnight")
        self.year2000 = AstroCache("year2000")
        self.current: Optional[AstroCache] = None
        self.global_flag: int = 1
        self.latitude: float = math.nan
        self.longitude: float = math.nan
        self.tz_offset_seconds: Optional[int] = None
        self.running_backward: bool = False
        self.in_action_button: bool = False
        # single-entry memos owned by this context
        self.year_start_memo: float = math.nan
        self.year_start_value: int = 0
        self.midnight_memo: float = math.nan

    def __repr__(self) -> str:
        cur = self.current.name if self.current else None
        return f"<CachePool {self.name} global={self.global_flag} current={cur}>"

    @property
    def persistent_scopes(self):
        return (self.final, self.midnight, self.year2000)

    # ── push / pop ────────────────────────────────────────────────
    def push(self, cache: Optional[AstroCache], t: float, slop: float = ASTRO_SLOP) -> Optional[AstroCache]:
        """Make `cache` current for instant `t`; returns the scope to pop back to."""
        previous = self.current
        self.current = cache
        if cache is None:
            return previous
        cache.slop = slop
        if cache.current_flag == 0:
            cache.current_flag = 1
        if cache.global_flag != self.global_flag:
            cache.global_flag = self.global_flag
            stale = True
        elif math.isnan(t):
            stale = not math.isnan(cache.date)
        elif math.isnan(cache.date):
            stale = True
        else:
            stale = abs(t - cache.date) > slop
        if stale:
            cache.invalidate(t)
        return previous

    def pop(self, previous: Optional[AstroCache]) -> None:
        self.current = previous

    @contextmanager
    def scoped(self, cache: Optional[AstroCache], t: float, slop: float = ASTRO_SLOP) -> Iterator[Optional[AstroCache]]:
        previous = self.push(cache, t, slop)
        try:
            yield cache
        finally:
            self.pop(previous)

    # ── epochs ───────────────────────────────────────────────────
    def setup_global_flag(self, latitude: float, longitude: float,
                          running_backward: bool, tz_offset_seconds: int) -> None:
        if running_backward != self.running_backward:
            self.running_backward = running_backward
            self.global_flag += 1
            log.debug("pool %s: direction changed, global epoch %d", self.name, self.global_flag)
        elif (tz_offset_seconds != self.tz_offset_seconds
              or latitude != self.latitude
              or longitude != self.longitude):
            self.latitude = latitude
            self.longitude = longitude
            self.tz_offset_seconds = tz_offset_seconds
            old_global = self.global_flag
            self.global_flag += 1
            for cache in self.persistent_scopes:
                self._forgive(cache, old_global)
            log.debug("pool %s: observer changed, global epoch %d", self.name, self.global_flag)

    def _forgive(self, cache: AstroCache, old_global: int) -> None:
        # Only scopes in step with the old epoch hold trustworthy values.
        if cache.global_flag != old_global:
            return
        old_flag = cache.current_flag
        cache.global_flag = self.global_flag
        cache.invalidate(cache.date)
        if cache.current_flag == old_flag + 1:
            cache.restamp_location_independent(old_flag)

    def clear_all(self) -> None:
        self.global_flag += 1

    # ── lifecycle ─────────────────────────────────────────────────
    def initialize(self, t: float, latitude: float, longitude: float,
                   running_backward: bool, tz_offset_seconds: int) -> None:
        self.setup_global_flag(latitude, longitude, running_backward, tz_offset_seconds)
        if not self.in_action_button:
            assert self.current is None, "cache pool already claimed"
        self.push(self.final, t)

    def release(self) -> None:
        assert self.current is not None, "cache pool not claimed"
        self.pop(None)
