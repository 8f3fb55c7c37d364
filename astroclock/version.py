# astroclock/version.py
from __future__ import annotations
import os

# Single place to bump the service version (overridable via env for CI/preview)
VERSION = os.getenv("ASTROCLOCK_VERSION", "0.1.0")
