# astroclock/core/civil.py
# -----------------------------------------------------------------------------
# Calendar / timezone collaborator.
#
# Public API (locked):
#   utc_components(t)                      -> CivilTime
#   utc_instant(year, month, day, ...)     -> seconds since 1970 (UTC)
#   tz_offset_seconds(zone, t)             -> int
#   local_components(zone, t)              -> CivilTime
#   local_instant(zone, year, month, ...)  -> seconds since 1970
#   local_midnight(zone, t) / next_local_midnight(zone, t)
#   same_local_day(zone, a, b)             -> bool
#   local_year_fraction(zone, t)           -> fraction of a 366-day year
#
# Guarantees:
#   • Calendar arithmetic is ERFA's proleptic Gregorian (erfa.jd2cal / cal2jd),
#     so years far outside datetime's 1..9999 range still convert.
#   • UTC offsets come from zoneinfo; instants outside datetime's range use
#     the offset at the nearest representable instant.
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime, timezone, timedelta
from functools import lru_cache
from typing import Dict, Any
from zoneinfo import ZoneInfo
import math

import erfa  # pyERFA

from astroclock.core.constants import JD_UNIX_EPOCH, SECONDS_PER_DAY

__all__ = [
    "CivilTime",
    "get_zone",
    "utc_components",
    "utc_instant",
    "tz_offset_seconds",
    "local_components",
    "local_instant",
    "local_midnight",
    "next_local_midnight",
    "same_local_day",
    "local_year_fraction",
]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# datetime can represent [0001-01-02, 9999-12-30] safely in any zone
_MIN_T = -62135510400.0
_MAX_T = 253402128000.0

# ───────────────────────────── Dataclass ─────────────────────────────

@dataclass(frozen=True)
class CivilTime:
    year: int
    month: int
    day: int
    hour: int
    minute: int
    seconds: float

    @property
    def hour24(self) -> float:
        return self.hour + self.minute / 60.0 + self.seconds / 3600.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

# ───────────────────────────── zones ─────────────────────────────

@lru_cache(maxsize=64)
def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name once; ZoneInfo objects are shared handles."""
    return ZoneInfo(name)


def tz_offset_seconds(zone: ZoneInfo, t: float) -> int:
    tc = min(max(float(t), _MIN_T), _MAX_T)
    dt = _EPOCH + timedelta(seconds=tc)
    off = dt.astimezone(zone).utcoffset()
    return int(off.total_seconds()) if off is not None else 0

# ───────────────────────────── components ─────────────────────────────

def _components_from_jd(jd: float) -> CivilTime:
    iy, im, iday, fd = erfa.jd2cal(jd, 0.0)
    secs = float(fd) * SECONDS_PER_DAY
    hour = int(secs // 3600.0)
    secs -= hour * 3600.0
    minute = int(secs // 60.0)
    secs -= minute * 60.0
    return CivilTime(int(iy), int(im), int(iday), hour, minute, secs)


def utc_components(t: float) -> CivilTime:
    return _components_from_jd(JD_UNIX_EPOCH + float(t) / SECONDS_PER_DAY)


def utc_instant(year: int, month: int, day: int,
                hour: int = 0, minute: int = 0, seconds: float = 0.0) -> float:
    djm0, djm = erfa.cal2jd(int(year), int(month), int(day))
    jd = float(djm0) + float(djm)
    return ((jd - JD_UNIX_EPOCH) * SECONDS_PER_DAY
            + hour * 3600.0 + minute * 60.0 + float(seconds))


def local_components(zone: ZoneInfo, t: float) -> CivilTime:
    return utc_components(float(t) + tz_offset_seconds(zone, t))


def local_instant(zone: ZoneInfo, year: int, month: int, day: int,
                  hour: int = 0, minute: int = 0, seconds: float = 0.0) -> float:
    """Interpret wall-clock components in `zone`; two passes settle DST edges."""
    wall = utc_instant(year, month, day, hour, minute, seconds)
    guess = wall - tz_offset_seconds(zone, wall)
    return wall - tz_offset_seconds(zone, guess)

# ───────────────────────────── days ─────────────────────────────

def local_midnight(zone: ZoneInfo, t: float) -> float:
    c = local_components(zone, t)
    return local_instant(zone, c.year, c.month, c.day)


def next_local_midnight(zone: ZoneInfo, t: float) -> float:
    # 26 h clears any DST-lengthened day
    return local_midnight(zone, local_midnight(zone, t) + 26 * 3600.0)


def same_local_day(zone: ZoneInfo, a: float, b: float) -> bool:
    if math.isnan(a) or math.isnan(b):
        return False
    ca = local_components(zone, a)
    cb = local_components(zone, b)
    return (ca.year, ca.month, ca.day) == (cb.year, cb.month, cb.day)


def local_year_fraction(zone: ZoneInfo, t: float) -> float:
    c = local_components(zone, t)
    start = local_instant(zone, c.year, 1, 1)
    return (float(t) - start) / (366.0 * SECONDS_PER_DAY)
