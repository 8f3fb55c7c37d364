# astroclock/utils/config.py
import logging
import os
import yaml

from astroclock.core.timescales import set_delta_t_model

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/defaults.yaml"

_DEFAULTS = {
    "service": "astroclock",
    "delta_t_model": "espenak",
    "default_timezone": "UTC",
    "response_cache_size": 512,
    "rate_limits_per_minute": {},
}

class AttrDict(dict):
    """Dict that also supports attribute access: cfg.delta_t_model and cfg['delta_t_model'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e
    def __setattr__(self, key, value):
        self[key] = value

def _to_attr(obj):
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj

def load_config(path: str = None):
    """
    Load YAML config from `path` (default: $ASTROCLOCK_CONFIG or config/defaults.yaml)
    on top of built-in defaults. A missing file yields the defaults.
    Optional env overrides:
      - ASTROCLOCK_DELTA_T_MODEL   (overrides config['delta_t_model'])
      - ASTROCLOCK_TZ              (overrides config['default_timezone'])
    Returns an AttrDict for convenient access.
    """
    path = path or os.environ.get("ASTROCLOCK_CONFIG", DEFAULT_CONFIG_PATH)
    data = dict(_DEFAULTS)
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data.update(yaml.safe_load(f) or {})
    else:
        log.info("config file %s not found; using defaults", path)

    model = os.getenv("ASTROCLOCK_DELTA_T_MODEL")
    if model:
        data["delta_t_model"] = model
    tz = os.getenv("ASTROCLOCK_TZ")
    if tz:
        data["default_timezone"] = tz

    return _to_attr(data)

def apply_config(cfg) -> None:
    """Push process-wide settings into the engine."""
    set_delta_t_model(cfg.delta_t_model)
    log.info("delta-T model: %s", cfg.delta_t_model)
