"""
Utility Functions
=================

Common utilities used across the Vybe Recs system: a small file cache,
batching, logging setup and numeric helpers.
"""

import hashlib
import json
import logging
import math
import re
import time
from collections import OrderedDict
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from .config import LOG_LEVEL

logger = logging.getLogger(__name__)


class Cache:
    """Simple file-based cache with TTL support."""

    def __init__(self, cache_dir: str = ".cache", ttl_hours: float = 24):
        """
        Initialize cache.

        Args:
            cache_dir: Directory for cache files
            ttl_hours: Time-to-live in hours
        """
        self.cache_dir = Path(cache_dir)
        self.ttl_seconds = ttl_hours * 3600
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def make_key(self, data: Any) -> str:
        """Generate cache key from data."""
        data_str = json.dumps(data, sort_keys=True, default=str)
        return hashlib.md5(data_str.encode()).hexdigest()

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        cache_file = self.cache_dir / f"{key}.json"

        if not cache_file.exists():
            return None

        try:
            with open(cache_file, 'r', encoding='utf-8') as f:
                cached = json.load(f)

            # Check TTL
            if time.time() - cached.get('timestamp', 0) > self.ttl_seconds:
                cache_file.unlink()
                return None

            return cached.get('data')
        except (json.JSONDecodeError, IOError):
            return None

    def set(self, key: str, data: Any) -> None:
        """Set value in cache."""
        cache_file = self.cache_dir / f"{key}.json"

        try:
            with open(cache_file, 'w', encoding='utf-8') as f:
                json.dump({
                    'timestamp': time.time(),
                    'data': data
                }, f)
        except IOError as e:
            logger.warning("Could not write cache entry %s: %s", key, e)

    def clear(self) -> int:
        """Clear all cache files. Returns number of files deleted."""
        count = 0
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                cache_file.unlink()
                count += 1
            except IOError:
                pass
        return count


def batch_process(items: list, batch_size: int, processor: Callable) -> list:
    """
    Process items in batches.

    Args:
        items: Items to process
        batch_size: Size of each batch
        processor: Function to call on each batch

    Returns:
        Flattened list of results
    """
    results = []

    for i in range(0, len(items), batch_size):
        batch = items[i:i + batch_size]
        batch_result = processor(batch)
        if isinstance(batch_result, list):
            results.extend(batch_result)
        else:
            results.append(batch_result)

    return results


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return min(max(value, low), high)


def finite_or(value: Any, default: float) -> float:
    """Coerce value to a finite float, falling back to default."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def normalize_track_id(value: str) -> str:
    """
    Normalize a Spotify track URL, URI or bare ID to the bare ID.

    Args:
        value: Spotify track URL, URI, or ID

    Returns:
        Clean track ID
    """
    if "spotify.com/track/" in value:
        return value.split("/track/")[-1].split("?")[0]
    if "spotify:track:" in value:
        return value.split("spotify:track:")[-1]
    return value.strip()


_TRACK_ID = re.compile(r"[0-9A-Za-z]{22}")


def validate_track_id(track_id: str) -> bool:
    """True for a bare 22-character base62 Spotify track ID."""
    return bool(track_id) and _TRACK_ID.fullmatch(track_id) is not None


def lru_get(cache: "OrderedDict[Any, Any]", key: Any) -> Optional[Any]:
    """Read from a bounded in-memory cache, marking the entry recently used."""
    if key not in cache:
        return None
    cache.move_to_end(key)
    return cache[key]


def lru_set(cache: "OrderedDict[Any, Any]", key: Any, value: Any, max_size: int) -> None:
    """Write to a bounded in-memory cache, evicting the least recently used entries."""
    cache[key] = value
    cache.move_to_end(key)
    while len(cache) > max_size:
        cache.popitem(last=False)


def configure_logging(level: Optional[str] = None) -> None:
    """Install a single stream handler on the package logger."""
    package_logger = logging.getLogger("vybe_recs")
    package_logger.setLevel((level or LOG_LEVEL).upper())

    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))
        package_logger.addHandler(handler)


@contextmanager
def log_duration(operation: str, log: logging.Logger = logger, **details: Any) -> Iterator[None]:
    """Log how long the wrapped block took, at DEBUG."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        log.debug("%s took %.1fms %s", operation, elapsed_ms, details or "")
