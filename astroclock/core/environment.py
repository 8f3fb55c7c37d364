# astroclock/core/environment.py
# -----------------------------------------------------------------------------
# Collaborators the astronomy facade reads its context from.
#
# Public API (locked):
#   Location(latitude, longitude)          radians; Location.from_degrees(...)
#   TimeEnvironment(tz_name)               IANA zone handle + offsets
#   WatchTime(current_time, running_backward)
#   pool_for_this_thread()                 -> CachePool owned by the caller's thread
#
# Guarantees:
#   • Every thread gets its own CachePool; pools are never shared.
#   • WatchTime.frozen_at(t) returns a copy (used for "at time" queries).
# -----------------------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass, asdict, replace
from typing import Any, Dict
import math
import threading

from zoneinfo import ZoneInfo

from astroclock.core import civil
from astroclock.core.astro_cache import CachePool

__all__ = [
    "Location",
    "TimeEnvironment",
    "WatchTime",
    "pool_for_this_thread",
]

# ───────────────────────────── location ─────────────────────────────

@dataclass(frozen=True)
class Location:
    latitude: float            # radians, north positive
    longitude: float           # radians, east positive
    valid: bool = True

    @classmethod
    def from_degrees(cls, latitude_deg: float, longitude_deg: float) -> "Location":
        return cls(math.radians(float(latitude_deg)), math.radians(float(longitude_deg)))

    @classmethod
    def unknown(cls) -> "Location":
        return cls(0.0, 0.0, valid=False)

    @property
    def latitude_deg(self) -> float:
        return math.degrees(self.latitude)

    @property
    def longitude_deg(self) -> float:
        return math.degrees(self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["latitude_deg"] = self.latitude_deg
        d["longitude_deg"] = self.longitude_deg
        return d

# ───────────────────────────── time environment ─────────────────────────────

class TimeEnvironment:
    """An IANA time zone resolved once and shared by every query that needs local days."""

    def __init__(self, tz_name: str = "UTC"):
        self.tz_name = tz_name
        self.zone: ZoneInfo = civil.get_zone(tz_name)

    def __repr__(self) -> str:
        return f"<TimeEnvironment {self.tz_name}>"

    def tz_offset_seconds(self, t: float) -> int:
        return civil.tz_offset_seconds(self.zone, t)

    def local_midnight(self, t: float) -> float:
        return civil.local_midnight(self.zone, t)

    def next_local_midnight(self, t: float) -> float:
        return civil.next_local_midnight(self.zone, t)

    def same_local_day(self, a: float, b: float) -> bool:
        return civil.same_local_day(self.zone, a, b)

    def local_year_fraction(self, t: float) -> float:
        return civil.local_year_fraction(self.zone, t)

    def hour24(self, t: float) -> float:
        return civil.local_components(self.zone, t).hour24

# ───────────────────────────── watch time ─────────────────────────────

@dataclass(frozen=True)
class WatchTime:
    current_time: float               # seconds since 1970-01-01T00:00:00 UTC
    running_backward: bool = False

    def frozen_at(self, t: float) -> "WatchTime":
        return replace(self, current_time=float(t))

    def tz_offset_seconds(self, env: TimeEnvironment) -> int:
        return env.tz_offset_seconds(self.current_time)

    def hour24(self, env: TimeEnvironment) -> float:
        return env.hour24(self.current_time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

# ───────────────────────────── per-thread pools ─────────────────────────────

_local = threading.local()


def pool_for_this_thread() -> CachePool:
    pool = getattr(_local, "pool", None)
    if pool is None:
        pool = CachePool(threading.current_thread().name)
        _local.pool = pool
    return pool
