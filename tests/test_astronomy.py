# tests/test_astronomy.py
from __future__ import annotations

import math
import pytest

from astroclock.core import civil
from astroclock.core.astro_cache import SlotKind
from astroclock.core.astronomy import AstronomyManager, EclipseKind
from astroclock.core.constants import LUNAR_CYCLE_SECONDS, TWO_PI, AltitudeKind, Body, TimeBase
from astroclock.core.environment import Location, TimeEnvironment, WatchTime, pool_for_this_thread
from astroclock.core.riseset import ALWAYS_ABOVE, ALWAYS_BELOW, same_outcome

BOSTON = (42.37, -71.05, "America/New_York")
TROMSO = (70.0, 19.0, "Europe/Oslo")
DALLAS = (32.78, -96.80, "America/Chicago")
LOS_ANGELES = (34.05, -118.24, "America/Los_Angeles")

HOUR = 3600.0
DAY = 24 * HOUR


@pytest.fixture
def boston(bound_manager):
    # 1986-03-10 00:00 EST
    return bound_manager(*BOSTON, civil.utc_instant(1986, 3, 10, 5))

# ─────────────────────────────────────────────────────────────────────────────
# Lifecycle
# ─────────────────────────────────────────────────────────────────────────────

def test_queries_outside_session_are_rejected() -> None:
    mgr = AstronomyManager(TimeEnvironment("UTC"), Location.from_degrees(0, 0))
    with pytest.raises(AssertionError):
        mgr.sun_ra()
    with pytest.raises(AssertionError):
        mgr.cleanup()


def test_session_releases_the_thread_pool() -> None:
    mgr = AstronomyManager(TimeEnvironment("UTC"), Location.from_degrees(51.48, 0.0))
    with mgr.session(WatchTime(civil.utc_instant(2020, 1, 1, 12))) as m:
        assert m.calculation_time == civil.utc_instant(2020, 1, 1, 12)
        assert pool_for_this_thread().current is not None
    assert pool_for_this_thread().current is None


def test_second_setup_on_claimed_pool_fails() -> None:
    env, loc = TimeEnvironment("UTC"), Location.from_degrees(0, 0)
    a, b = AstronomyManager(env, loc), AstronomyManager(env, loc)
    t = civil.utc_instant(2020, 1, 1)
    with a.session(WatchTime(t)):
        with pytest.raises(AssertionError):
            b.setup(WatchTime(t))

# ─────────────────────────────────────────────────────────────────────────────
# Sun
# ─────────────────────────────────────────────────────────────────────────────

def test_boston_sunrise_for_day(boston: AstronomyManager) -> None:
    rise = boston.sunrise_for_day()
    assert rise == pytest.approx(civil.utc_instant(1986, 3, 10, 11, 5, 8), abs=3)
    assert boston.sunrise_for_day_valid()


def test_day_events_are_ordered(boston: AstronomyManager) -> None:
    rise = boston.sunrise_for_day()
    transit = boston.suntransit_for_day()
    set_ = boston.sunset_for_day()
    assert rise < transit < set_
    assert 11 * HOUR < set_ - rise < 12.5 * HOUR


def test_next_and_prev_bracket_now(boston: AstronomyManager) -> None:
    t = boston.calculation_time
    assert t <= boston.next_sunrise() < t + DAY
    assert t - DAY < boston.prev_sunset() < t
    assert boston.prev_sunrise() < boston.prev_sunset()


def test_repeated_queries_return_the_cached_value(boston: AstronomyManager) -> None:
    first = boston.next_moonrise()
    assert boston.next_moonrise() == first
    assert boston.moon_age_angle() == boston.moon_age_angle()


def test_running_backward_swaps_next_and_prev(bound_manager) -> None:
    t = civil.utc_instant(2015, 10, 1, 18)
    fwd = bound_manager(*BOSTON, t)
    prev_rise = fwd.prev_sunrise()
    back = bound_manager(*BOSTON, t, running_backward=True)
    assert back.next_sunrise() == pytest.approx(prev_rise, abs=1.0)


def test_next_or_midnight_clamps(boston: AstronomyManager) -> None:
    midnight = boston.environment.next_local_midnight(boston.calculation_time)
    assert boston.next_or_midnight(midnight + 5 * HOUR) == midnight
    assert boston.next_or_midnight(midnight - HOUR) == midnight - HOUR


def test_twilight_kinds_order(boston: AstronomyManager) -> None:
    astro = boston.sun_time_for_day_for_altitude_kind(AltitudeKind.ASTRO_MORNING)
    civil_ = boston.sun_time_for_day_for_altitude_kind(AltitudeKind.CIVIL_MORNING)
    rise = boston.sun_time_for_day_for_altitude_kind(AltitudeKind.RISE_MORNING)
    assert astro < civil_ < rise
    assert rise == boston.sunrise_for_day()


def test_low_transit_is_half_a_day_from_high(boston: AstronomyManager) -> None:
    high = boston.next_suntransit()
    low = boston.next_suntransit_low()
    assert abs(abs(high - low) - 12 * HOUR) < 5 * 60


def test_equation_of_time_in_march(boston: AstronomyManager) -> None:
    # about -10.5 minutes on March 10
    assert boston.eot_seconds() == pytest.approx(-10.5 * 60, abs=60)

# ─────────────────────────────────────────────────────────────────────────────
# Polar day & night
# ─────────────────────────────────────────────────────────────────────────────

def test_midnight_sun_sentinels(bound_manager) -> None:
    mgr = bound_manager(*TROMSO, civil.utc_instant(2021, 6, 21, 10))
    assert mgr.next_sunrise() is ALWAYS_ABOVE
    assert mgr.next_sunset() is ALWAYS_ABOVE
    # same answer on every call
    assert mgr.next_sunset() is ALWAYS_ABOVE
    assert not mgr.next_sunrise_valid()
    assert mgr.polar_summer()
    assert not mgr.polar_winter()
    assert mgr.sun_altitude() > 0


def test_polar_night_sentinels(bound_manager) -> None:
    mgr = bound_manager(*TROMSO, civil.utc_instant(2021, 12, 21, 10))
    assert mgr.next_sunrise() is ALWAYS_BELOW
    assert math.isnan(mgr.sunrise_for_day())
    assert mgr.polar_winter()


def test_indicator_falls_back_to_transit_in_polar_summer(bound_manager) -> None:
    mgr = bound_manager(*TROMSO, civil.utc_instant(2021, 6, 21, 10))
    angle, is_rise_set, above = mgr.planetrise_24hour_indicator_angle(Body.SUN)
    assert 0.0 <= angle < TWO_PI
    assert not is_rise_set
    assert above


@pytest.mark.parametrize("day", [20, 25, 31])
def test_circumpolar_edge_is_stable(bound_manager, day: int) -> None:
    mgr = bound_manager(70.0, -122.03, "America/Los_Angeles", civil.utc_instant(2008, 8, day, 8))
    first = mgr.next_sunrise()
    assert same_outcome(first, mgr.next_sunrise())
    again = bound_manager(70.0, -122.03, "America/Los_Angeles", civil.utc_instant(2008, 8, day, 8))
    assert same_outcome(first, again.next_sunrise())

# ─────────────────────────────────────────────────────────────────────────────
# Watch-time helpers
# ─────────────────────────────────────────────────────────────────────────────

def test_watch_time_helpers_freeze_at_the_event(boston: AstronomyManager) -> None:
    wt = boston.watch_time_with_sunrise_for_day()
    assert isinstance(wt, WatchTime)
    assert wt.current_time == boston.sunrise_for_day()
    assert wt.running_backward is False
    assert boston.watch_time_with_next_sunset().current_time == boston.next_sunset()
    assert boston.watch_time_with_closest_full_moon().current_time == boston.closest_full_moon()
    assert boston.watch_time_with_next_planetrise(Body.MARS).current_time == boston.next_planetrise(Body.MARS)


def test_watch_time_falls_back_to_seasonal_meridian(bound_manager) -> None:
    mgr = bound_manager(*TROMSO, civil.utc_instant(2021, 6, 21, 10))
    assert not mgr.sunrise_for_day_valid()
    assert mgr.suntransit_for_day_valid()
    wt = mgr.watch_time_with_sunrise_for_day()
    assert math.isfinite(wt.current_time)
    assert wt.current_time == mgr.meridian_time_for_season()
    assert mgr.environment.same_local_day(wt.current_time, mgr.calculation_time)


def test_sidereal_and_eot_angles(boston: AstronomyManager) -> None:
    # instant-like: prior UT midnight plus sidereal seconds
    assert abs(boston.local_sidereal_time() - boston.calculation_time) < DAY
    assert boston.eot() == pytest.approx(boston.eot_seconds() * math.pi / 43200.0)


def test_uncached_moon_age_matches_bound_value(boston: AstronomyManager) -> None:
    at = boston.moon_delta_ecliptic_longitude_at(boston.calculation_time)
    assert abs(math.remainder(at - boston.moon_age_angle(), TWO_PI)) < 1e-9


def test_sun_and_planet_meridian_times_do_not_share_a_slot(bound_manager) -> None:
    t = civil.utc_instant(2021, 5, 21, 15)
    sun_first = bound_manager(*BOSTON, t)
    meridian = sun_first.meridian_time_for_season()
    body_meridian = sun_first.planet_meridian_time_for_season(Body.SUN)
    assert meridian != body_meridian

    pool_for_this_thread().clear_all()
    body_first = bound_manager(*BOSTON, t)
    assert body_first.planet_meridian_time_for_season(Body.SUN) == body_meridian
    assert body_first.meridian_time_for_season() == meridian
    # solar midnight in late May, EDT
    assert meridian == pytest.approx(civil.utc_instant(2021, 5, 21, 4, 47), abs=10 * 60)

# ─────────────────────────────────────────────────────────────────────────────
# Moon
# ─────────────────────────────────────────────────────────────────────────────

FULL_MOON = civil.utc_instant(2021, 5, 26, 11, 14)
NEW_MOON = civil.utc_instant(2021, 6, 10, 10, 53)


def test_full_moon_phase(bound_manager) -> None:
    mgr = bound_manager(*BOSTON, FULL_MOON)
    assert mgr.moon_phase_string() == "Full"
    assert mgr.moon_phase() == pytest.approx(1.0, abs=1e-3)
    assert mgr.closest_full_moon() == pytest.approx(FULL_MOON, abs=HOUR)


def test_new_moon_phase(bound_manager) -> None:
    mgr = bound_manager(*BOSTON, NEW_MOON)
    assert mgr.moon_phase_string() == "New"


def test_real_moon_age_counts_days(bound_manager) -> None:
    mgr = bound_manager(*BOSTON, NEW_MOON + DAY)
    assert mgr.real_moon_age_angle() == pytest.approx(1.0, abs=0.05)


def test_quarters_follow_each_other(bound_manager) -> None:
    mgr = bound_manager(*BOSTON, FULL_MOON + 2 * DAY)
    t = mgr.calculation_time
    third = mgr.next_third_quarter()
    new = mgr.next_new_moon()
    assert t < third < new
    assert new == pytest.approx(NEW_MOON, abs=HOUR)
    assert abs(mgr.next_new_moon() - mgr.closest_new_moon()) <= LUNAR_CYCLE_SECONDS
    assert mgr.next_moon_phase() == pytest.approx(third, abs=60)
    assert mgr.prev_moon_phase() < t


def test_moon_position_angles_are_finite(bound_manager) -> None:
    mgr = bound_manager(*BOSTON, FULL_MOON - 5 * DAY)
    assert math.isfinite(mgr.moon_position_angle())
    assert math.isfinite(mgr.moon_relative_position_angle())
    assert math.isfinite(mgr.moon_relative_angle())


def test_moon_phase_keeps_legacy_longitude_formula(bound_manager) -> None:
    # Longitude difference stands in for elongation; dial artwork depends on this curve.
    mgr = bound_manager(*BOSTON, FULL_MOON - 5 * DAY)
    age = mgr.moon_age_angle()
    assert 0.3 < age % (math.pi / 2) < 1.3
    assert mgr.moon_phase() == (1.0 - math.cos(age)) / 2.0


def test_moon_cycle_runs_backward(bound_manager) -> None:
    mgr = bound_manager(*BOSTON, FULL_MOON - 2 * DAY, running_backward=True)
    t = mgr.calculation_time
    new = mgr.next_new_moon()
    assert new <= t
    assert new == pytest.approx(civil.utc_instant(2021, 5, 11, 19), abs=HOUR)
    assert abs(new - mgr.closest_new_moon()) <= LUNAR_CYCLE_SECONDS


def test_moon_relative_position_angle_has_its_own_slot(bound_manager) -> None:
    mgr = bound_manager(*BOSTON, FULL_MOON - 5 * DAY)
    final = pool_for_this_thread().final
    mgr.planet_relative_position_angle(Body.MOON)
    assert final.get(SlotKind.MOON_RELATIVE_POSITION_ANGLE, 0) is None
    value = mgr.moon_relative_position_angle()
    assert final.get(SlotKind.MOON_RELATIVE_POSITION_ANGLE, 0) == value

# ─────────────────────────────────────────────────────────────────────────────
# Planets & coordinates
# ─────────────────────────────────────────────────────────────────────────────

def test_invalid_location_yields_nan(bound_manager) -> None:
    mgr = AstronomyManager(TimeEnvironment("UTC"), Location.unknown())
    with mgr.session(WatchTime(civil.utc_instant(2020, 3, 1))):
        assert math.isnan(mgr.next_sunrise())
        assert math.isnan(mgr.sunset_for_day())
        assert not mgr.planet_is_up(Body.MARS)
        # location-free quantities still work
        assert 0.0 <= mgr.moon_age_angle() < TWO_PI


def test_planet_queries(boston: AstronomyManager) -> None:
    for body in (Body.VENUS, Body.JUPITER):
        assert math.isfinite(boston.planet_ra(body))
        assert -math.pi / 2 <= boston.planet_altitude(body) <= math.pi / 2
        age, _moon_age, phase = boston.planet_age(body)
        assert 0.0 <= age <= TWO_PI and 0.0 <= phase <= math.pi
        rise = boston.next_planetrise(body)
        assert math.isnan(rise) or rise >= boston.calculation_time
    assert boston.name_of_planet(Body.SATURN) == "Saturn"
    assert boston.planet_radius(Body.EARTH) == pytest.approx(6371.0)


def test_pluto_positions_are_nan(boston: AstronomyManager) -> None:
    assert math.isnan(boston.planet_ecliptic_longitude(Body.PLUTO))
    assert all(math.isnan(v) for v in boston.planet_age(Body.PLUTO))


def test_sun_coordinates_precess_to_j2000(boston: AstronomyManager) -> None:
    d_ra = abs(math.remainder(boston.sun_ra() - boston.sun_ra_j2000(), TWO_PI))
    assert 0.0 < d_ra < math.radians(0.5)
    assert boston.sun_decl() == pytest.approx(boston.sun_decl_j2000(), abs=math.radians(0.1))


def test_zodiac_lookup() -> None:
    assert AstronomyManager.zodiac_constellation_of(math.radians(10)) == "Pisces"
    assert AstronomyManager.zodiac_constellation_of(math.radians(100)) == "Gemini"
    assert AstronomyManager.zodiac_constellation_of(math.radians(355)) == "Pisces"
    assert AstronomyManager.width_of_zodiac_constellation(0) == pytest.approx(math.radians(37))

# ─────────────────────────────────────────────────────────────────────────────
# Eclipses
# ─────────────────────────────────────────────────────────────────────────────

def test_total_solar_eclipse_dallas(bound_manager) -> None:
    mgr = bound_manager(*DALLAS, civil.utc_instant(2024, 4, 8, 18, 42))
    assert mgr.eclipse_kind() in (EclipseKind.TOTAL_SOLAR, EclipseKind.PARTIAL_SOLAR)
    assert mgr.eclipse_kind().is_more_solar_than_lunar
    assert mgr.eclipse_abstract_separation() < 2.0


def test_total_lunar_eclipse_los_angeles(bound_manager) -> None:
    mgr = bound_manager(*LOS_ANGELES, civil.utc_instant(2022, 11, 8, 10, 59))
    assert mgr.eclipse_kind() in (EclipseKind.TOTAL_LUNAR, EclipseKind.PARTIAL_LUNAR)
    assert mgr.eclipse_shadow_angular_size() > 0


def test_no_eclipse_on_a_quiet_day(bound_manager) -> None:
    mgr = bound_manager(*BOSTON, civil.utc_instant(2024, 3, 1, 17))
    assert mgr.eclipse_kind() in (EclipseKind.NONE_SOLAR, EclipseKind.NONE_LUNAR,
                                  EclipseKind.SOLAR_NOT_UP, EclipseKind.LUNAR_NOT_UP)
    assert 2.0 <= mgr.eclipse_abstract_separation() <= 3.0

# ─────────────────────────────────────────────────────────────────────────────
# Dial
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("body", [Body.SUN, Body.MIDNIGHT_SUN])
def test_leaves_stay_on_the_dial(boston: AstronomyManager, body: Body) -> None:
    n = 12
    angles = [boston.day_night_leaf_angle(body, leaf, n) for leaf in range(n)]
    assert all(0.0 <= a <= TWO_PI for a in angles)


def test_lst_leaves(boston: AstronomyManager) -> None:
    a = boston.day_night_leaf_angle(Body.SUN, 0, 6, base=TimeBase.LST)
    assert 0.0 <= a <= TWO_PI


def test_unknown_special_leaf(boston: AstronomyManager) -> None:
    with pytest.raises(ValueError):
        boston.day_night_leaf_angle(Body.SUN, 7, 0)


def test_sunrise_indicator_matches_local_hour(boston: AstronomyManager) -> None:
    angle = boston.sunrise_24hour_indicator_angle()
    hours = angle * 12 / math.pi
    # ~06:05 EST
    assert hours == pytest.approx(6.08, abs=0.2)


def test_civil_twilight_indicator(boston: AstronomyManager) -> None:
    angle, valid = boston.sun_special_24hour_indicator_angle(AltitudeKind.CIVIL_EVENING)
    assert valid
    assert 18.0 < angle * 12 / math.pi < 19.5
