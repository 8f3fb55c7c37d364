# tests/test_timescales.py
from __future__ import annotations

import math
import pytest

from astroclock.core import civil
from astroclock.core.astro_cache import CachePool
from astroclock.core.constants import J2000_UNIX_SECONDS, TWO_PI
from astroclock.core.timescales import (
    build_timescales,
    cache_for,
    delta_t,
    delta_t_model,
    gst_p03,
    gst_to_lst,
    gst_to_ut_closest,
    julian_centuries,
    julian_date,
    lst_to_gst,
    precess_j2000_to_date,
    prior_ut_midnight,
    refine_date_to_j2000,
    set_delta_t_model,
    st_difference,
)

TZS = [
    "UTC",
    "America/New_York",     # DST region
    "Europe/Berlin",
    "Australia/Eucla",      # +08:45 quarter-hour
    "Asia/Kolkata",         # +05:30 no DST
    "Pacific/Kiritimati",   # +14:00 extreme positive
]


def _angle_diff(a: float, b: float) -> float:
    d = math.fmod(a - b, TWO_PI)
    if d > math.pi:
        d -= TWO_PI
    elif d < -math.pi:
        d += TWO_PI
    return abs(d)


@pytest.fixture
def restore_delta_t():
    prev = delta_t_model()
    yield
    set_delta_t_model(prev)

# ─────────────────────────────────────────────────────────────────────────────
# Unit tests
# ─────────────────────────────────────────────────────────────────────────────

def test_julian_date_at_j2000() -> None:
    assert julian_date(J2000_UNIX_SECONDS) == pytest.approx(2451545.0, abs=1e-9)
    assert julian_date(0.0) == pytest.approx(2440587.5, abs=1e-9)


def test_julian_centuries_zero_at_j2000_tt() -> None:
    T, dt = julian_centuries(None, J2000_UNIX_SECONDS)
    assert 60.0 < dt < 70.0
    # UT instant is J2000 UT, so TT centuries are exactly ΔT ahead
    assert T * 36525 * 86400 == pytest.approx(dt, abs=1e-3)


def test_delta_t_models_agree_near_2000(restore_delta_t) -> None:
    set_delta_t_model("espenak")
    esp = delta_t(2000.0)
    set_delta_t_model("meeus")
    mee = delta_t(2000.0)
    assert esp == pytest.approx(63.86, abs=0.01)
    assert abs(esp - mee) < 1.0


def test_delta_t_unknown_model_rejected(restore_delta_t) -> None:
    with pytest.raises(ValueError):
        set_delta_t_model("ptolemy")
    assert delta_t_model() in ("espenak", "meeus")


@pytest.mark.parametrize("year", [-1000.0, 0.0, 1000.0, 1650.0, 1900.0, 1990.0, 2050.0, 2100.0, 3000.0])
def test_delta_t_segments_finite_and_positive(year: float, restore_delta_t) -> None:
    for model in ("espenak", "meeus"):
        set_delta_t_model(model)
        v = delta_t(year)
        assert math.isfinite(v)
        if year <= 1800 or year >= 2050:
            assert v > 0


def test_years_before_one_use_astronomical_numbering() -> None:
    # 44 BCE is astronomical year -43
    t = civil.utc_instant(-43, 3, 15)
    assert civil.utc_components(t).year == -43
    _T, dt = julian_centuries(None, t)
    assert dt == pytest.approx(delta_t(-43 + 73.0 / 365.25), abs=5.0)


def test_gmst_at_j2000() -> None:
    # GMST at 2000-01-01 12:00 UT is 280.46061837°
    gst = gst_p03(None, J2000_UNIX_SECONDS)
    assert _angle_diff(gst, math.radians(280.46061837)) < math.radians(0.001)


def test_prior_midnight_and_memo(pool: CachePool) -> None:
    t = civil.utc_instant(2024, 4, 8, 18, 42)
    m = prior_ut_midnight(pool, t)
    assert m == civil.utc_instant(2024, 4, 8)
    # memoized value is reused inside the same UT day
    assert prior_ut_midnight(pool, t + 3600) == m
    assert prior_ut_midnight(pool, t + 86400) == m + 86400


def test_lst_gst_wrap_reports_day_offset() -> None:
    gst, off = lst_to_gst(0.1, 0.5)
    assert off == -1 and gst == pytest.approx(TWO_PI - 0.4)
    gst, off = lst_to_gst(6.2, -0.2)
    assert off == 1 and gst == pytest.approx(6.4 - TWO_PI)
    assert gst_to_lst(lst_to_gst(1.0, 0.3)[0], 0.3) == pytest.approx(1.0)


def test_vernal_equinox_angle_is_gmst_at_midnight(pool: CachePool) -> None:
    t = civil.utc_instant(2021, 9, 22, 6)
    d = st_difference(pool, t)
    gst_midnight = gst_p03(pool, prior_ut_midnight(pool, t))
    # sidereal and solar clocks drift ~1 min per 6 h
    assert _angle_diff(d, gst_midnight) < math.radians(0.5)


def test_refine_to_j2000_round_trips_through_forward_precession() -> None:
    T = 0.24
    ra, decl = 1.2, 0.4
    r_ra, r_decl = refine_date_to_j2000(T, ra, decl)
    f_ra, f_decl = precess_j2000_to_date(T, r_ra, r_decl)
    assert _angle_diff(f_ra, ra) < 1e-9
    assert abs(f_decl - decl) < 1e-9
    # 24 years of precession is roughly 0.33°
    assert 0.1 < math.degrees(_angle_diff(r_ra, ra)) < 1.0


def test_cache_for_requires_covering_scope(pool: CachePool) -> None:
    t = 1.0e9
    assert cache_for(None, t) is None
    assert cache_for(pool, t) is None
    with pool.scoped(pool.final, t):
        assert cache_for(pool, t + 1.0) is pool.final
        assert cache_for(pool, t + 10.0) is None
        assert cache_for(pool, math.nan) is None


def test_build_timescales_fields() -> None:
    t = civil.utc_instant(2020, 7, 4, 16)
    ts = build_timescales(t, "America/New_York").to_dict()
    assert ts["instant"] == t
    assert ts["tz_offset_seconds"] == -4 * 3600
    assert ts["timezone"] == "America/New_York"
    assert (ts["jd_tt"] - ts["jd_utc"]) * 86400 == pytest.approx(ts["delta_t"], abs=1e-4)
    assert 0 <= ts["gmst"] < TWO_PI


def test_repeatability_same_inputs() -> None:
    t = civil.utc_instant(1999, 12, 31, 23, 59, 59.5)
    a = build_timescales(t, "Asia/Kolkata")
    b = build_timescales(t, "Asia/Kolkata")
    assert a == b


# ─────────────────────────────────────────────────────────────────────────────
# Property / fuzz test (Hypothesis)
# ─────────────────────────────────────────────────────────────────────────────
from hypothesis import given, strategies as st

_T_1950 = civil.utc_instant(1950, 1, 1)
_T_2100 = civil.utc_instant(2100, 1, 1)


@given(t=st.floats(min_value=_T_1950, max_value=_T_2100, allow_nan=False, allow_infinity=False))
def test_gst_to_ut_closest_inverts_gmst(t: float) -> None:
    pool = CachePool("fuzz")
    gst = gst_p03(pool, t)
    back = gst_to_ut_closest(pool, gst, t)
    assert abs(back - t) < 0.05


@given(
    t=st.floats(min_value=_T_1950, max_value=_T_2100, allow_nan=False, allow_infinity=False),
    tz=st.sampled_from(TZS),
)
def test_local_midnight_brackets_instant(t: float, tz: str) -> None:
    zone = civil.get_zone(tz)
    m = civil.local_midnight(zone, t)
    nm = civil.next_local_midnight(zone, t)
    assert m <= t < nm
    assert 23 * 3600 <= nm - m <= 25 * 3600
    assert civil.same_local_day(zone, m, t)
