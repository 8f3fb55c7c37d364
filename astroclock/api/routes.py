# astroclock/api/routes.py
"""
astroclock: API routes
- Ops: /api/health, /api/config, /api/bodies
- Timescales
- Sky positions, rise/set/transit, moon, eclipse
- Dial indicators (day/night leaves, 24-hour and seasonal indicators)

Notes:
- Every engine endpoint takes the same observation context: `instant` (Unix
  seconds) or local `date` + `time` in `tz`, plus `latitude`/`longitude` in degrees.
- Instants come back as Unix seconds with an ISO-8601 UTC companion; angles in degrees.
- Circumpolar outcomes are reported as the strings "always_above" / "always_below";
  anything else unavailable is null.
"""

from __future__ import annotations

import logging
import math
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flask import Blueprint, jsonify, request

from astroclock.version import VERSION
from astroclock.utils.cache import LRUCache, payload_key
from astroclock.utils.config import load_config
from astroclock.utils.ratelimit import rate_limit
from astroclock.core.astronomy import AstronomyManager
from astroclock.core.constants import AltitudeKind, Body, PLANET_BODIES, TimeBase, body_name
from astroclock.core.environment import Location, TimeEnvironment, WatchTime
from astroclock.core.riseset import classify
from astroclock.core.timescales import build_timescales, delta_t_model
from astroclock.core.validators import (
    ValidationError,
    parse_altitude_kind,
    parse_body,
    parse_observation_payload,
    parse_time_base,
)

log = logging.getLogger(__name__)
api = Blueprint("api", __name__)

DEBUG_VERBOSE = os.getenv("ASTROCLOCK_DEBUG_VERBOSE", "0").lower() in ("1", "true", "yes", "on")

_CFG = load_config()
_RESPONSES = LRUCache(int(_CFG.response_cache_size))

# ── per-endpoint rate-limit caps (calls per minute; env beats config) ───────────
_RL = lambda name, d: int(os.getenv(f"ASTROCLOCK_RL_{name.upper()}_PER_MIN",
                                    str(_CFG.rate_limits_per_minute.get(name, d))))
RL_TIMESCALES = _RL("timescales", 120)
RL_SKY        = _RL("sky",         60)
RL_RISESET    = _RL("riseset",     60)
RL_MOON       = _RL("moon",        60)
RL_ECLIPSE    = _RL("eclipse",     60)
RL_DIAL       = _RL("dial",        60)

_ALL_BODIES = (Body.SUN, Body.MOON) + PLANET_BODIES


# ───────────────────────── helpers ─────────────────────────
def _json_error(code: str, details: Any = None, http: int = 400):
    out: Dict[str, Any] = {"ok": False, "error": code}
    if details is not None:
        out["details"] = details
    return jsonify(out), http


def _body_json() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def _num(x: Any) -> Any:
    """JSON-safe number: sentinels become their name, other NaNs null."""
    kind = classify(x)
    if kind == "value":
        return float(x)
    return None if kind == "invalid" else kind


def _deg(x: Any) -> Any:
    v = _num(x)
    return math.degrees(v) if isinstance(v, float) else v


def _when(t: Any) -> Dict[str, Any]:
    v = _num(t)
    iso = datetime.fromtimestamp(v, timezone.utc).isoformat() if isinstance(v, float) else None
    return {"t": v, "iso": iso}


def _manager(obs: Dict[str, Any]) -> tuple[AstronomyManager, WatchTime]:
    if obs["latitude"] is None:
        location = Location.unknown()
    else:
        location = Location.from_degrees(obs["latitude"], obs["longitude"])
    mgr = AstronomyManager(TimeEnvironment(obs["tz"]), location)
    return mgr, WatchTime(obs["instant"], obs["running_backward"])


def _context(obs: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "instant": _when(obs["instant"]),
        "tz": obs["tz"],
        "latitude": obs["latitude"],
        "longitude": obs["longitude"],
        "running_backward": obs["running_backward"],
    }


def _serve(route: str, body: Dict[str, Any], compute, require_location: bool = True):
    """Parse, memoize and run one engine endpoint inside a bound calculation session."""
    try:
        obs = parse_observation_payload(body, require_location=require_location)
        key = payload_key(route, {**body, **obs})
        cached = _RESPONSES.get(key)
        if cached is not None:
            return jsonify(cached), 200
        mgr, wt = _manager(obs)
        with mgr.session(wt):
            result = compute(mgr, body)
        out = {"ok": True, "context": _context(obs), **result}
        _RESPONSES.set(key, out)
        return jsonify(out), 200
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except Exception as e:
        log.exception("%s failed", route)
        return _json_error(f"{route}_error", str(e) if DEBUG_VERBOSE else None, 500)


# ───────────────────────── health / ops ─────────────────────────
@api.get("/api/health")
def health():
    return jsonify({"ok": True, "status": "up", "version": VERSION}), 200


@api.get("/api/config")
@rate_limit(10)
def config_info():
    cfg = load_config()
    return jsonify({
        "ok": True,
        "service": cfg.service,
        "delta_t_model": delta_t_model(),
        "default_timezone": cfg.default_timezone,
        "response_cache": {"size": len(_RESPONSES), "capacity": _RESPONSES.capacity,
                           "hits": _RESPONSES.hits, "misses": _RESPONSES.misses},
        "rate_limits_per_minute": {
            "timescales": RL_TIMESCALES, "sky": RL_SKY, "riseset": RL_RISESET,
            "moon": RL_MOON, "eclipse": RL_ECLIPSE, "dial": RL_DIAL,
        },
        "version": VERSION,
    }), 200


@api.get("/api/bodies")
def bodies():
    out = []
    for b in _ALL_BODIES:
        out.append({
            "id": int(b),
            "name": body_name(b),
            "radius_km": AstronomyManager.planet_radius(b),
            "mass_kg": AstronomyManager.planet_mass(b),
            "orbital_period_years": AstronomyManager.planet_orbital_period(b),
        })
    return jsonify({"ok": True, "bodies": out}), 200


# ───────────────────────── timescales ─────────────────────────
@api.post("/api/timescales")
@rate_limit(RL_TIMESCALES)
def timescales_endpoint():
    try:
        body = _body_json()
        obs = parse_observation_payload(body, require_location=False)
        ts = build_timescales(obs["instant"], obs["tz"])
        return jsonify({"ok": True, "timescales": ts.to_dict()}), 200
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    except Exception as e:
        log.exception("timescales failed")
        return _json_error("timescales_error", str(e) if DEBUG_VERBOSE else None, 500)


# ───────────────────────── sky ─────────────────────────
def _bodies_from(body: Dict[str, Any]) -> List[Body]:
    names = body.get("bodies")
    if names is None:
        return list(_ALL_BODIES)
    if not isinstance(names, list):
        raise ValidationError([{"loc": ["bodies"], "msg": "must be an array", "type": "type_error.list"}])
    return [parse_body(n, "bodies") for n in names]


def _sky(mgr: AstronomyManager, body: Dict[str, Any]) -> Dict[str, Any]:
    out = []
    for b in _bodies_from(body):
        elong = mgr.planet_ecliptic_longitude(b)
        row = {
            "body": body_name(b),
            "ra": _deg(mgr.planet_ra(b)),
            "decl": _deg(mgr.planet_decl(b)),
            "ra_geocentric": _deg(mgr.planet_ra(b, False)),
            "decl_geocentric": _deg(mgr.planet_decl(b, False)),
            "altitude": _deg(mgr.planet_altitude(b)),
            "azimuth": _deg(mgr.planet_azimuth(b)),
            "is_up": mgr.planet_is_up(b),
            "ecliptic_longitude": _deg(elong),
            "ecliptic_latitude": _deg(mgr.planet_ecliptic_latitude(b)),
            "distance_au": _num(mgr.planet_geocentric_distance(b)),
            "apparent_diameter": _deg(mgr.planet_apparent_diameter(b)),
            "constellation": None if math.isnan(elong) else mgr.zodiac_constellation_of(elong),
        }
        if b >= Body.MERCURY:
            age, moon_age, phase = mgr.planet_age(b)
            row["heliocentric"] = {
                "longitude": _deg(mgr.planet_heliocentric_longitude(b)),
                "latitude": _deg(mgr.planet_heliocentric_latitude(b)),
                "radius_au": _num(mgr.planet_heliocentric_radius(b)),
            }
            row["phase_angle"] = _deg(phase)
            row["moon_age_equivalent"] = _deg(moon_age)
            row["relative_position_angle"] = _deg(mgr.planet_relative_position_angle(b))
        out.append(row)
    return {
        "bodies": out,
        "sun_j2000": {"ra": _deg(mgr.sun_ra_j2000()), "decl": _deg(mgr.sun_decl_j2000())},
        "moon_j2000": {"ra": _deg(mgr.moon_ra_j2000()), "decl": _deg(mgr.moon_decl_j2000())},
        "moon_node": {
            "longitude": _deg(mgr.moon_ascending_node_longitude()),
            "ra": _deg(mgr.moon_ascending_node_ra()),
            "decl": _deg(mgr.moon_ascending_node_decl()),
            "ra_j2000": _deg(mgr.moon_ascending_node_ra_j2000()),
            "decl_j2000": _deg(mgr.moon_ascending_node_decl_j2000()),
        },
        "sidereal": {
            "lst": _deg(mgr.angle_24hour(mgr.calculation_time, TimeBase.LST)),
            "equation_of_time_seconds": _num(mgr.eot_seconds()),
            "vernal_equinox_angle": _deg(mgr.vernal_equinox_angle()),
            "precession": _deg(mgr.precession()),
        },
    }


@api.post("/api/sky")
@rate_limit(RL_SKY)
def sky_endpoint():
    try:
        body = _body_json()
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    return _serve("sky", body, _sky)


# ───────────────────────── rise / set / transit ─────────────────────────
def _riseset(mgr: AstronomyManager, body: Dict[str, Any]) -> Dict[str, Any]:
    b = parse_body(body.get("body", "sun"))
    rise_angle, rise_is_event, rise_above = mgr.planetrise_24hour_indicator_angle(b)
    set_angle, set_is_event, set_above = mgr.planetset_24hour_indicator_angle(b)
    out: Dict[str, Any] = {
        "body": body_name(b),
        "next_rise": _when(mgr.next_planetrise(b)),
        "prev_rise": _when(mgr.prev_planetrise(b)),
        "next_set": _when(mgr.next_planetset(b)),
        "prev_set": _when(mgr.prev_planetset(b)),
        "next_transit": _when(mgr.next_planettransit(b)),
        "prev_transit": _when(mgr.prev_planettransit(b)),
        "for_day": {
            "rise": _when(mgr.planetrise_for_day(b)),
            "set": _when(mgr.planetset_for_day(b)),
            "transit": _when(mgr.planettransit_for_day(b)),
        },
        "indicator": {
            "rise": {"angle": _deg(rise_angle), "is_rise_set": rise_is_event, "above_horizon": rise_above},
            "set": {"angle": _deg(set_angle), "is_rise_set": set_is_event, "above_horizon": set_above},
            "transit": _deg(mgr.planettransit_24hour_indicator_angle(b)),
        },
        "polar_summer": mgr.polar_planet_summer(b),
        "polar_winter": mgr.polar_planet_winter(b),
        "meridian_time_for_season": _when(mgr.planet_meridian_time_for_season(b) if b != Body.SUN
                                          else mgr.meridian_time_for_season()),
    }
    if b == Body.SUN:
        out["next_transit_low"] = _when(mgr.next_suntransit_low())
        out["prev_transit_low"] = _when(mgr.prev_suntransit_low())
        out["altitude_kinds"] = {
            kind.name.lower(): _when(mgr.sun_time_for_day_for_altitude_kind(kind))
            for kind in AltitudeKind
        }
        out["sunrise_indicator_valid"] = mgr.sunrise_indicator_valid()
        out["sunset_indicator_valid"] = mgr.sunset_indicator_valid()
    elif b == Body.MOON:
        out["next_rise_or_midnight"] = _when(mgr.next_moonrise_or_midnight())
        out["next_set_or_midnight"] = _when(mgr.next_moonset_or_midnight())
    return out


@api.post("/api/riseset")
@rate_limit(RL_RISESET)
def riseset_endpoint():
    try:
        body = _body_json()
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    return _serve("riseset", body, _riseset)


# ───────────────────────── moon ─────────────────────────
def _moon(mgr: AstronomyManager, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "age_angle": _deg(mgr.moon_age_angle()),
        "age_days": _num(mgr.real_moon_age_angle()),
        "phase": _num(mgr.moon_phase()),
        "phase_name": mgr.moon_phase_string(),
        "next_phase": _when(mgr.next_moon_phase()),
        "prev_phase": _when(mgr.prev_moon_phase()),
        "closest": {
            "new": _when(mgr.closest_new_moon()),
            "first_quarter": _when(mgr.closest_first_quarter()),
            "full": _when(mgr.closest_full_moon()),
            "third_quarter": _when(mgr.closest_third_quarter()),
        },
        "next": {
            "new": _when(mgr.next_new_moon()),
            "first_quarter": _when(mgr.next_first_quarter()),
            "full": _when(mgr.next_full_moon()),
            "third_quarter": _when(mgr.next_third_quarter()),
        },
        "position_angle": _deg(mgr.moon_position_angle()),
        "relative_position_angle": _deg(mgr.moon_relative_position_angle()),
        "relative_angle": _deg(mgr.moon_relative_angle()),
    }


@api.post("/api/moon")
@rate_limit(RL_MOON)
def moon_endpoint():
    try:
        body = _body_json()
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    return _serve("moon", body, _moon)


# ───────────────────────── eclipse ─────────────────────────
def _eclipse(mgr: AstronomyManager, body: Dict[str, Any]) -> Dict[str, Any]:
    kind = mgr.eclipse_kind()
    return {
        "kind": kind.name.lower(),
        "solar": kind.is_more_solar_than_lunar,
        "abstract_separation": _num(mgr.eclipse_abstract_separation()),
        "angular_separation": _deg(mgr.eclipse_angular_separation()),
        "shadow_angular_size": _deg(mgr.eclipse_shadow_angular_size()),
    }


@api.post("/api/eclipse")
@rate_limit(RL_ECLIPSE)
def eclipse_endpoint():
    try:
        body = _body_json()
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    return _serve("eclipse", body, _eclipse)


# ───────────────────────── dial indicators ─────────────────────────
def _dial(mgr: AstronomyManager, body: Dict[str, Any]) -> Dict[str, Any]:
    b = parse_body(body.get("body", "sun"), allow_midnight_sun=True)
    base = parse_time_base(body.get("base"))
    if base == TimeBase.UT:
        raise ValidationError([{"loc": ["base"], "msg": "leaves are drawn in 'lt' or 'lst'", "type": "value_error.base"}])
    n = body.get("num_leaves", 12)
    if not isinstance(n, int) or isinstance(n, bool) or n == 0:
        raise ValidationError([{"loc": ["num_leaves"], "msg": "must be a non-zero integer", "type": "type_error.integer"}])
    override = math.nan
    if body.get("kind") is not None:
        override = parse_altitude_kind(body["kind"]).altitude
    leaves = [_deg(mgr.day_night_leaf_angle(b, i, n, override, base)) for i in range(abs(n))]

    specials = {}
    for kind in AltitudeKind:
        angle, valid = mgr.sun_special_24hour_indicator_angle(kind)
        specials[kind.name.lower()] = {"angle": _deg(angle), "valid": valid}

    return {
        "body": body_name(b),
        "base": base.value,
        "leaves": leaves,
        "sun": {
            "sunrise": _deg(mgr.sunrise_24hour_indicator_angle()),
            "sunset": _deg(mgr.sunset_24hour_indicator_angle()),
            "polar_summer": mgr.polar_summer(),
            "polar_winter": mgr.polar_winter(),
            "special": specials,
        },
        "moon": {
            "moonrise": _deg(mgr.moonrise_24hour_indicator_angle()),
            "moonset": _deg(mgr.moonset_24hour_indicator_angle()),
        },
        "season": {
            "summer": mgr.summer(),
            "equinox_solstice_indicators": [
                _deg(mgr.closest_sun_ecliptic_longitude_quarter_366_indicator_angle(q)) for q in range(4)
            ],
            "calendar_error": _deg(mgr.calendar_error_vs_tropical_year()),
        },
        "ecliptic": {
            "highest_azimuth": _deg(mgr.azimuth_of_highest_ecliptic_altitude()),
            "highest_longitude": _deg(mgr.longitude_of_highest_ecliptic_altitude()),
            "altitude": _deg(mgr.ecliptic_altitude()),
            "north_meridian_longitude": _deg(mgr.longitude_at_north_meridian()),
        },
    }


@api.post("/api/dial")
@rate_limit(RL_DIAL)
def dial_endpoint():
    try:
        body = _body_json()
    except ValidationError as e:
        return _json_error("validation_error", e.errors(), 400)
    return _serve("dial", body, _dial)
