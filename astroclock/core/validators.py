# astroclock/core/validators.py
from __future__ import annotations

import re
from datetime import datetime, date
from typing import Any, Dict, List, Optional, Tuple, TypedDict, Union
from zoneinfo import ZoneInfo

from astroclock.core import civil
from astroclock.core.constants import AltitudeKind, Body, TimeBase

# ───────────────────────── errors ─────────────────────────

class ValidationError(ValueError):
    """Structured validator error compatible with routes.py (has .errors())."""
    def __init__(self, details: Union[str, Dict[str, Any], List[Dict[str, Any]]]):
        if isinstance(details, str):
            self._details = [{"loc": [], "msg": details, "type": "value_error"}]
            super().__init__(details)
        elif isinstance(details, dict):
            self._details = [details]
            super().__init__(details.get("msg", "validation_error"))
        elif isinstance(details, list):
            self._details = details
            super().__init__(self._details[0]["msg"] if self._details else "validation_error")
        else:
            self._details = [{"loc": [], "msg": "validation_error", "type": "value_error"}]
            super().__init__("validation_error")

    def errors(self) -> List[Dict[str, Any]]:
        return list(self._details)


# ───────────────────────── helpers ─────────────────────────

def _err(loc: List[str] | str, msg: str, typ: str = "value_error") -> Dict[str, Any]:
    return {"loc": [loc] if isinstance(loc, str) else loc, "msg": msg, "type": typ}

def _as_float(v: Any) -> Optional[float]:
    try:
        if v is None or isinstance(v, bool):
            return None
        x = float(v)
        if x != x:  # NaN
            return None
        return x
    except (TypeError, ValueError):
        return None

def _truthy(val: Any) -> Optional[bool]:
    if isinstance(val, bool):
        return val
    if val is None:
        return None
    s = str(val).strip().lower()
    if s in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "f", "no", "n", "off"}:
        return False
    return None

def _validate_iana_tz(tz: str, loc: Optional[List[str]] = None) -> str:
    try:
        _ = ZoneInfo(tz)
    except Exception:
        raise ValidationError([{
            "loc": loc or ["tz"],
            "msg": "must be a valid IANA zone like 'America/New_York'",
            "type": "value_error",
        }])
    return tz


# ───────────────────────── atomic parsers ─────────────────────────

_TIME_RE = re.compile(r"^\s*(?P<h>\d{1,2}):(?P<m>\d{2})(?::(?P<s>\d{2})(?:\.(?P<f>\d+))?)?\s*$")

def parse_time_hms(s: str) -> Tuple[int, int, float]:
    """
    Accept 'HH:MM', 'HH:MM:SS', or 'HH:MM:SS.frac'. Returns (hour, minute, seconds).
    24:00 is only accepted exactly and means the end of the day.
    """
    m = _TIME_RE.match(s or "")
    if not m:
        raise ValidationError(_err("time", "time must be 'HH:MM' or 'HH:MM:SS[.frac]'", "value_error.time"))
    hh = int(m.group("h")); mm = int(m.group("m"))
    ss = int(m.group("s") or 0); frac = m.group("f") or ""
    if not (0 <= hh <= 24 and 0 <= mm <= 59 and 0 <= ss <= 59):
        raise ValidationError(_err("time", "time fields out of range", "value_error.time"))
    if hh == 24 and (mm or ss or frac):
        raise ValidationError(_err("time", "24:00:00 is only allowed exactly", "value_error.time"))
    return hh, mm, ss + (float("0." + frac) if frac else 0.0)

def parse_date(s: str) -> date:
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(_err("date", "date must be 'YYYY-MM-DD'", "value_error.date"))

def parse_latlon(lat: Any, lon: Any, lat_key="latitude", lon_key="longitude") -> Tuple[float, float]:
    lat_f = _as_float(lat); lon_f = _as_float(lon)
    if lat_f is None or lon_f is None:
        raise ValidationError(_err([lat_key, lon_key], "latitude/longitude must be finite numbers", "type_error.float"))
    if not (-90.0 <= lat_f <= 90.0):
        raise ValidationError(_err(lat_key, "latitude must be between -90 and 90"))
    if not (-180.0 <= lon_f <= 180.0):
        raise ValidationError(_err(lon_key, "longitude must be between -180 and 180"))
    return float(lat_f), float(lon_f)

_BODY_ALIASES = {"midnight_sun": Body.MIDNIGHT_SUN, "midnightsun": Body.MIDNIGHT_SUN, "night": Body.MIDNIGHT_SUN}

def parse_body(val: Any, loc: str = "body", allow_midnight_sun: bool = False) -> Body:
    """Body by name ('mars') or number (5). Earth is never observable."""
    body: Optional[Body] = None
    if isinstance(val, int) and not isinstance(val, bool):
        try:
            body = Body(val)
        except ValueError:
            body = None
    elif isinstance(val, str):
        s = val.strip().lower()
        if s.isdigit():
            return parse_body(int(s), loc, allow_midnight_sun)
        body = _BODY_ALIASES.get(s) or Body.__members__.get(s.upper())
    if body is None or body == Body.EARTH or (body == Body.MIDNIGHT_SUN and not allow_midnight_sun):
        raise ValidationError(_err(loc, "unknown body; use sun, moon, mercury..pluto", "value_error.body"))
    return body

def parse_altitude_kind(val: Any) -> AltitudeKind:
    s = str(val or "").strip().upper().replace("-", "_")
    kind = AltitudeKind.__members__.get(s)
    if kind is None:
        names = ", ".join(k.lower() for k in AltitudeKind.__members__)
        raise ValidationError(_err("kind", f"kind must be one of: {names}", "value_error.kind"))
    return kind

def parse_time_base(val: Any | None) -> TimeBase:
    s = str(val or "lt").strip().lower()
    try:
        return TimeBase(s)
    except ValueError:
        raise ValidationError(_err("base", "base must be 'lt', 'ut' or 'lst'", "value_error.base"))


# ───────────────────────── observation payload ─────────────────────────

class ObservationPayload(TypedDict, total=False):
    instant: float          # seconds since 1970 UTC
    tz: str
    latitude: Optional[float]
    longitude: Optional[float]
    running_backward: bool

def parse_observation_payload(body: Dict[str, Any], require_location: bool = True) -> ObservationPayload:
    """
    Normalize the context shared by every watch-face endpoint.

    The instant is either `instant` (Unix seconds) or a local civil
    `date` + `time` interpreted in `tz` (default UTC). Coordinates are degrees.
    """
    if not isinstance(body, dict):
        raise ValidationError("payload must be an object")

    tz = body.get("tz") or body.get("place_tz") or body.get("timezone") or "UTC"
    if not isinstance(tz, str) or not tz.strip():
        raise ValidationError(_err("tz", "must be a string (IANA)", "value_error"))
    tz = _validate_iana_tz(tz.strip())

    errs: List[Dict[str, Any]] = []
    instant = _as_float(body.get("instant"))
    if instant is None:
        date_s = body.get("date")
        time_s = body.get("time") or "00:00"
        if not isinstance(date_s, str) or not date_s.strip():
            errs.append(_err("date", "required string (or provide 'instant')", "value_error"))
        if not isinstance(time_s, str):
            errs.append(_err("time", "must be a string", "value_error"))
        if errs:
            raise ValidationError(errs)
        d = parse_date(date_s.strip())
        hh, mm, ss = parse_time_hms(time_s)
        instant = civil.local_instant(civil.get_zone(tz), d.year, d.month, d.day, hh, mm, ss)

    lat_raw = body.get("latitude") if "latitude" in body else body.get("lat")
    lon_raw = body.get("longitude") if "longitude" in body else body.get("lon")
    if lat_raw is None and lon_raw is None and not require_location:
        lat, lon = None, None
    else:
        lat, lon = parse_latlon(lat_raw, lon_raw)

    back = _truthy(body.get("running_backward"))
    return {
        "instant": float(instant),
        "tz": tz,
        "latitude": lat,
        "longitude": lon,
        "running_backward": bool(back),
    }


__all__ = [
    "ValidationError",
    "ObservationPayload",
    "parse_observation_payload",
    "parse_time_hms",
    "parse_date",
    "parse_latlon",
    "parse_body",
    "parse_altitude_kind",
    "parse_time_base",
]
