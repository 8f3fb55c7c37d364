# tests/conftest.py
from __future__ import annotations

"""
Pytest configuration for the astroclock suite.

- Registers Hypothesis profiles for local dev and CI.
- Freezes the process TZ to UTC (we always pass IANA zones explicitly).
- Sanity-checks ERFA availability and basic tzdata presence.
- Provides observer fixtures and a bound AstronomyManager factory.
"""

import os
import pytest
from hypothesis import settings, HealthCheck


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,           # solver calls are slow on small runners
        max_examples=40,
        suppress_health_check=[HealthCheck.too_slow],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=100,
        suppress_health_check=[HealthCheck.too_slow],
    ),
)

_profile = (
    "ci"
    if (os.getenv("CI") or os.getenv("GITHUB_ACTIONS"))
    else os.getenv("HYPOTHESIS_PROFILE", "dev")
)
settings.load_profile(_profile)

# endpoint tests fire many requests from one client
os.environ.setdefault("ASTROCLOCK_RL_DISABLE", "1")


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "slow: mark test as slow")
    config.addinivalue_line("filterwarnings", "ignore::DeprecationWarning")


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Global fixtures
# ──────────────────────────────────────────────────────────────────────────────

@pytest.fixture(scope="session", autouse=True)
def freeze_tz_env():
    prev = os.environ.get("TZ")
    os.environ["TZ"] = "UTC"
    try:
        yield
    finally:
        if prev is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = prev


@pytest.fixture(scope="session", autouse=True)
def ensure_erfa():
    """Fail early if pyERFA is missing a routine the series layer calls."""
    import erfa
    for name in ("jd2cal", "cal2jd", "nut06a", "obl06", "ecm06", "epv00", "plan94", "moon98", "faom03"):
        assert hasattr(erfa, name), f"ERFA.{name} not available"
    return erfa


@pytest.fixture(scope="session")
def ensure_tzdata():
    from zoneinfo import ZoneInfo
    for name in ("UTC", "America/New_York", "America/Chicago", "America/Los_Angeles", "Europe/Berlin"):
        ZoneInfo(name)


@pytest.fixture(autouse=True)
def _fresh_thread_pool():
    """Each test starts with an unclaimed pool for the current thread."""
    from astroclock.core.environment import pool_for_this_thread
    pool = pool_for_this_thread()
    pool.current = None
    pool.in_action_button = False
    pool.clear_all()
    yield pool
    pool.current = None
    pool.in_action_button = False


@pytest.fixture
def pool():
    from astroclock.core.astro_cache import CachePool
    return CachePool("test")


# ──────────────────────────────────────────────────────────────────────────────
# Managers & clients
# ──────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def bound_manager(ensure_tzdata):
    """
    Factory: bound_manager(lat_deg, lon_deg, tz, instant, running_backward=False)
    returns a manager already set up. Making another releases the previous one;
    the last is cleaned up after the test.
    """
    from astroclock.core.astronomy import AstronomyManager
    from astroclock.core.environment import Location, TimeEnvironment, WatchTime

    made = []

    def _make(lat: float, lon: float, tz: str, instant: float, running_backward: bool = False):
        while made:
            made.pop().cleanup()
        mgr = AstronomyManager(TimeEnvironment(tz), Location.from_degrees(lat, lon))
        mgr.setup(WatchTime(instant, running_backward))
        made.append(mgr)
        return mgr

    yield _make
    for mgr in made:
        mgr.cleanup()


@pytest.fixture
def client():
    from astroclock.main import app
    app.testing = True
    return app.test_client()
