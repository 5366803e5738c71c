"""In-memory TTL cache for upstream weather payloads.

One entry per city (case-insensitive). Alerts are not cached here: they are
recomputed per request because each client sends its own custom thresholds.
Expired entries are dropped on read and by the periodic sweep job.
"""

import logging
import threading
import time

from app.config import settings

logger = logging.getLogger(__name__)

_entries: dict[str, tuple[float, dict]] = {}  # key -> (expires_at, payload)
_lock = threading.Lock()


def cache_key(kind: str, city: str) -> str:
    return f"{kind}_{city.strip().lower()}"


def get(key: str) -> dict | None:
    with _lock:
        entry = _entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at <= time.monotonic():
            del _entries[key]
            return None
        return payload


def put(key: str, payload: dict, ttl_seconds: int | None = None):
    ttl = settings.weather_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
    with _lock:
        _entries[key] = (time.monotonic() + ttl, payload)


def purge_expired() -> int:
    """Drop every expired entry. Returns how many were removed."""
    now = time.monotonic()
    with _lock:
        expired = [k for k, (expires_at, _) in _entries.items() if expires_at <= now]
        for k in expired:
            del _entries[k]
    if expired:
        logger.info("Purged %d expired cache entries", len(expired))
    return len(expired)


def clear():
    with _lock:
        _entries.clear()


def stats() -> dict:
    with _lock:
        return {"entries": len(_entries), "ttl_seconds": settings.weather_cache_ttl_seconds}
