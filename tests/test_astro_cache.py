# tests/test_astro_cache.py
from __future__ import annotations

import math
import pytest

from astroclock.core.astro_cache import (
    ASTRO_SLOP,
    SLOT_SPAN,
    AstroCache,
    CachePool,
    SlotKind,
    is_location_dependent,
)

T0 = 1_000_000_000.0
BOSTON = (0.7395, -1.2401)
OSLO = (1.0454, 0.1876)


def _claim(pool: CachePool, t: float, latlon=BOSTON, backward: bool = False, tz: int = -18000) -> None:
    pool.initialize(t, latlon[0], latlon[1], backward, tz)


# ─────────────────────────────────────────────────────────────────────────────
# Slots
# ─────────────────────────────────────────────────────────────────────────────

def test_set_returns_value_and_get_reads_it() -> None:
    c = AstroCache("x")
    c.invalidate(T0)
    assert c.set(SlotKind.SUN_RA, 1.25) == 1.25
    assert c.get(SlotKind.SUN_RA) == 1.25
    assert c.is_valid(SlotKind.SUN_RA)
    assert c.get(SlotKind.SUN_DECL) is None


def test_invalidate_makes_every_slot_stale() -> None:
    c = AstroCache("x")
    c.invalidate(T0)
    c.set(SlotKind.PLANET_RA, 0.5, sub=4)
    c.invalidate(T0 + 60)
    assert c.get(SlotKind.PLANET_RA, 4) is None
    assert c.date == T0 + 60


def test_sub_index_out_of_range() -> None:
    c = AstroCache("x")
    with pytest.raises(IndexError):
        c.get(SlotKind.NEXT_RISE, SLOT_SPAN)
    with pytest.raises(IndexError):
        c.set(SlotKind.NEXT_RISE, 1.0, -1)


def test_flag_wraparound_reinitializes() -> None:
    c = AstroCache("x")
    c.current_flag = 0xFFFFFFFF
    c.set(SlotKind.EOT, 3.0)
    c.invalidate(T0)
    assert c.current_flag == 1
    assert c.get(SlotKind.EOT) is None


@pytest.mark.parametrize(
    "kind,dependent",
    [
        (SlotKind.TDT_CENTURIES, False),
        (SlotKind.REAL_MOON_AGE, False),
        (SlotKind.NEXT_RISE, True),
        (SlotKind.ALTITUDE, True),
        (SlotKind.CLOSEST_SUN_LONGITUDE_INDICATOR, True),
    ],
)
def test_location_dependence_by_kind(kind: SlotKind, dependent: bool) -> None:
    assert is_location_dependent(kind) is dependent


# ─────────────────────────────────────────────────────────────────────────────
# Scopes
# ─────────────────────────────────────────────────────────────────────────────

def test_push_returns_previous_and_pop_restores(pool: CachePool) -> None:
    assert pool.push(pool.final, T0) is None
    assert pool.push(pool.temp, T0 + 100) is pool.final
    assert pool.current is pool.temp
    pool.pop(pool.final)
    assert pool.current is pool.final


def test_scoped_restores_on_exception(pool: CachePool) -> None:
    pool.push(pool.final, T0)
    with pytest.raises(RuntimeError):
        with pool.scoped(pool.temp, T0 + 500):
            assert pool.current is pool.temp
            raise RuntimeError("boom")
    assert pool.current is pool.final


def test_values_survive_within_slop(pool: CachePool) -> None:
    with pool.scoped(pool.final, T0):
        pool.final.set(SlotKind.SUN_LONGITUDE, 2.0)
    with pool.scoped(pool.final, T0 + ASTRO_SLOP / 2):
        assert pool.final.get(SlotKind.SUN_LONGITUDE) == 2.0


def test_values_stale_outside_slop(pool: CachePool) -> None:
    with pool.scoped(pool.final, T0):
        pool.final.set(SlotKind.SUN_LONGITUDE, 2.0)
    with pool.scoped(pool.final, T0 + ASTRO_SLOP * 2):
        assert pool.final.get(SlotKind.SUN_LONGITUDE) is None


def test_nan_instant_only_matches_nan(pool: CachePool) -> None:
    with pool.scoped(pool.temp, math.nan):
        pool.temp.set(SlotKind.EOT, 1.0)
    with pool.scoped(pool.temp, math.nan):
        assert pool.temp.get(SlotKind.EOT) == 1.0
    with pool.scoped(pool.temp, T0):
        assert pool.temp.get(SlotKind.EOT) is None


def test_clear_all_invalidates_on_next_push(pool: CachePool) -> None:
    with pool.scoped(pool.final, T0):
        pool.final.set(SlotKind.NUTATION, 0.1)
    pool.clear_all()
    with pool.scoped(pool.final, T0):
        assert pool.final.get(SlotKind.NUTATION) is None


# ─────────────────────────────────────────────────────────────────────────────
# Observer & direction changes
# ─────────────────────────────────────────────────────────────────────────────

def test_observer_change_keeps_instant_only_slots(pool: CachePool) -> None:
    _claim(pool, T0, BOSTON)
    pool.final.set(SlotKind.SUN_RA, 0.3)
    pool.final.set(SlotKind.NEXT_RISE, T0 + 3600, sub=0)
    pool.release()

    _claim(pool, T0, OSLO, tz=3600)
    assert pool.final.get(SlotKind.SUN_RA) == 0.3
    assert pool.final.get(SlotKind.NEXT_RISE, 0) is None
    assert (pool.latitude, pool.longitude) == OSLO
    pool.release()


def test_same_observer_keeps_everything(pool: CachePool) -> None:
    _claim(pool, T0)
    pool.final.set(SlotKind.ALTITUDE, 0.2, sub=1)
    pool.release()
    g = pool.global_flag
    _claim(pool, T0 + 1.0)
    assert pool.global_flag == g
    assert pool.final.get(SlotKind.ALTITUDE, 1) == 0.2
    pool.release()


def test_direction_change_drops_everything(pool: CachePool) -> None:
    _claim(pool, T0)
    pool.final.set(SlotKind.SUN_RA, 0.3)
    pool.final.set(SlotKind.NEXT_SET, T0 + 7200)
    pool.release()

    _claim(pool, T0, backward=True)
    assert pool.running_backward is True
    assert pool.final.get(SlotKind.SUN_RA) is None
    assert pool.final.get(SlotKind.NEXT_SET) is None
    pool.release()


def test_initialize_rejects_double_claim(pool: CachePool) -> None:
    _claim(pool, T0)
    with pytest.raises(AssertionError):
        _claim(pool, T0)
    pool.release()
    with pytest.raises(AssertionError):
        pool.release()


def test_action_button_may_reclaim(pool: CachePool) -> None:
    _claim(pool, T0)
    pool.in_action_button = True
    _claim(pool, T0 + 10)
    assert pool.current is pool.final
    pool.release()
    assert pool.current is None
