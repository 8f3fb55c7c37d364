# astroclock/utils/cache.py
from __future__ import annotations
from collections import OrderedDict
import json, threading
from typing import Any, Optional

class LRUCache:
    """Bounded response memo shared by request threads; engine results are pure in their inputs."""

    def __init__(self, capacity: int = 1024):
        self.capacity = capacity
        self.store: "OrderedDict[str, Any]" = OrderedDict()
        self.lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self.store)

    def get(self, key: str) -> Optional[Any]:
        with self.lock:
            if key in self.store:
                self.store.move_to_end(key)
                self.hits += 1
                return self.store[key]
            self.misses += 1
            return None

    def set(self, key: str, value: Any):
        if self.capacity <= 0:
            return
        with self.lock:
            self.store[key] = value
            self.store.move_to_end(key)
            if len(self.store) > self.capacity:
                self.store.popitem(last=False)

    def clear(self) -> None:
        with self.lock:
            self.store.clear()

def payload_key(route: str, payload: Any) -> str:
    return route + "|" + json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
