# cricket_api/cache.py
from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Tuple

from cricket_api.config import API_CACHE_TTL_SECONDS

# In-memory TTL cache for API list responses (single-process deploys)
# key -> (expires_at_epoch, value)
_cache: Dict[str, Tuple[float, Any]] = {}

# Swappable for tests
_clock: Callable[[], float] = time.time


def make_key(namespace: str, *parts: Any) -> str:
    """
    Namespaced cache key; empty parts are dropped.
      make_key("players", "team", "1000000000000000003") -> "players:team:1000000000000000003"
      make_key("teams") -> "teams"
    """
    namespace = namespace.strip()
    if not namespace:
        raise ValueError("Cache namespace must be non-empty")
    rest = [str(p).strip() for p in parts if p is not None and str(p).strip()]
    return ":".join([namespace] + rest)


def get(key: str) -> Optional[Any]:
    item = _cache.get(key)
    if not item:
        return None

    expires_at, value = item
    if _clock() > expires_at:
        _cache.pop(key, None)
        return None

    return value


def set(key: str, value: Any, ttl_seconds: int = API_CACHE_TTL_SECONDS) -> None:
    if ttl_seconds <= 0:
        return
    _cache[key] = (_clock() + ttl_seconds, value)


def clear(namespace: Optional[str] = None) -> int:
    """Drop everything, or only keys under `namespace`. Returns the number removed."""
    if namespace is None:
        n = len(_cache)
        _cache.clear()
        return n
    prefix = f"{namespace}:"
    doomed = [k for k in _cache if k == namespace or k.startswith(prefix)]
    for k in doomed:
        _cache.pop(k, None)
    return len(doomed)


def debug_snapshot() -> Dict[str, float]:
    """Current keys with remaining TTL in seconds."""
    now = _clock()
    return {k: max(0.0, exp - now) for k, (exp, _) in _cache.items()}
