# tests/test_utils.py
from __future__ import annotations

import pytest

from astroclock.core.timescales import delta_t_model, set_delta_t_model
from astroclock.utils.cache import LRUCache, payload_key
from astroclock.utils.config import apply_config, load_config
from astroclock.utils.ratelimit import RateLimiter


def test_lru_evicts_oldest():
    c = LRUCache(2)
    c.set("a", 1)
    c.set("b", 2)
    assert c.get("a") == 1          # refresh a
    c.set("c", 3)
    assert c.get("b") is None
    assert len(c) == 2
    assert (c.hits, c.misses) == (1, 1)


def test_lru_disabled_with_zero_capacity():
    c = LRUCache(0)
    c.set("a", 1)
    assert c.get("a") is None


def test_payload_key_ignores_dict_order():
    assert payload_key("sky", {"a": 1, "b": 2}) == payload_key("sky", {"b": 2, "a": 1})
    assert payload_key("sky", {"a": 1}) != payload_key("moon", {"a": 1})


def test_load_config_from_yaml(tmp_path, monkeypatch):
    monkeypatch.delenv("ASTROCLOCK_DELTA_T_MODEL", raising=False)
    p = tmp_path / "cfg.yaml"
    p.write_text("delta_t_model: meeus\nrate_limits_per_minute:\n  sky: 5\n", encoding="utf-8")
    cfg = load_config(str(p))
    assert cfg.delta_t_model == "meeus"
    assert cfg.rate_limits_per_minute.sky == 5
    assert cfg.default_timezone == "UTC"


def test_missing_config_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("ASTROCLOCK_TZ", "Europe/Berlin")
    cfg = load_config(str(tmp_path / "absent.yaml"))
    assert cfg.service == "astroclock"
    assert cfg.default_timezone == "Europe/Berlin"
    with pytest.raises(AttributeError):
        cfg.nope


def test_env_overrides_delta_t_model(tmp_path, monkeypatch):
    monkeypatch.setenv("ASTROCLOCK_DELTA_T_MODEL", "meeus")
    prev = delta_t_model()
    try:
        apply_config(load_config(str(tmp_path / "absent.yaml")))
        assert delta_t_model() == "meeus"
    finally:
        set_delta_t_model(prev)


def test_bucket_refills_over_time():
    now = [0.0]
    rl = RateLimiter(clock=lambda: now[0])
    assert rl.take("k", 60)[0]
    for _ in range(59):
        rl.take("k", 60)
    ok, remaining, retry = rl.take("k", 60)
    assert not ok and remaining == 0 and retry >= 1
    now[0] += 2.0
    assert rl.take("k", 60)[0]


def test_reset_refills_every_bucket():
    rl = RateLimiter(clock=lambda: 0.0)
    rl.take("k", 1)
    assert not rl.take("k", 1)[0]
    rl.reset()
    assert rl.take("k", 1)[0]
