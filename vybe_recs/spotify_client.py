"""
Spotify Catalog Client
======================

Catalog/search provider backed by the Spotify Web API:
- Authentication (client credentials)
- Track search
- Audio features and track details in batches
- Rate limiting and caching

Any other catalog can stand in by implementing ``CatalogClient``.
"""

import hashlib
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple

import spotipy
from spotipy.oauth2 import SpotifyClientCredentials

from .config import (
    CACHE_DIR,
    CACHE_TTL_HOURS,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
)
from .features import AudioFeatureVector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackInfo:
    """Display details for a track."""
    name: str
    artists: Tuple[str, ...] = ()
    album: Optional[str] = None


class CatalogClient(Protocol):
    """What the recommendation pipeline needs from a catalog."""

    def search_tracks(self, query: str, limit: int = 50) -> List[str]:
        ...

    def get_features(self, track_ids: List[str]) -> Dict[str, AudioFeatureVector]:
        ...

    def get_track_info(self, track_ids: List[str]) -> Dict[str, TrackInfo]:
        ...


class SpotifyClient:
    """
    Wrapper around Spotipy with caching and batch operations.

    Attributes:
        sp: Spotipy client instance
        cache_enabled: Whether to use local caching
    """

    def __init__(self, use_cache: bool = True, sp: Optional[spotipy.Spotify] = None):
        """
        Initialize Spotify client with credentials.

        Args:
            use_cache: Enable local caching for API responses
            sp: Pre-built Spotipy client (credentials from the environment if None)
        """
        self.cache_enabled = use_cache
        self.cache_dir = Path(CACHE_DIR)

        if use_cache:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

        if sp is None:
            # Get credentials from environment at runtime (not import time)
            client_id = os.environ.get("SPOTIFY_CLIENT_ID") or os.environ.get("SPOTIPY_CLIENT_ID") or SPOTIFY_CLIENT_ID
            client_secret = os.environ.get("SPOTIFY_CLIENT_SECRET") or os.environ.get("SPOTIPY_CLIENT_SECRET") or SPOTIFY_CLIENT_SECRET

            auth_manager = SpotifyClientCredentials(
                client_id=client_id,
                client_secret=client_secret
            )
            sp = spotipy.Spotify(auth_manager=auth_manager)
        self.sp = sp

        # Request throttling
        self._last_request_time = 0.0
        self._min_request_interval = 0.05  # 50ms between requests

    def _throttle(self):
        """Ensure minimum time between requests."""
        elapsed = time.time() - self._last_request_time
        if elapsed < self._min_request_interval:
            time.sleep(self._min_request_interval - elapsed)
        self._last_request_time = time.time()

    def _get_cache_key(self, prefix: str, data: Any) -> str:
        """Generate cache key from data."""
        data_str = json.dumps(data, sort_keys=True)
        hash_val = hashlib.md5(data_str.encode()).hexdigest()[:12]
        return f"{prefix}_{hash_val}"

    def _load_cache(self, key: str) -> Optional[Any]:
        """Load data from cache if valid."""
        if not self.cache_enabled:
            return None

        cache_file = self.cache_dir / f"{key}.json"
        if not cache_file.exists():
            return None

        try:
            with open(cache_file, 'r', encoding='utf-8') as f:
                cached = json.load(f)

            # Check TTL
            if time.time() - cached.get('timestamp', 0) > CACHE_TTL_HOURS * 3600:
                return None

            return cached.get('data')
        except (json.JSONDecodeError, IOError):
            return None

    def _save_cache(self, key: str, data: Any):
        """Save data to cache."""
        if not self.cache_enabled:
            return

        cache_file = self.cache_dir / f"{key}.json"
        try:
            with open(cache_file, 'w', encoding='utf-8') as f:
                json.dump({'timestamp': time.time(), 'data': data}, f)
        except IOError as e:
            logger.debug("Cache write failed for %s: %s", key, e)

    # =========================================================================
    # SEARCH OPERATIONS
    # =========================================================================

    def search_tracks(self, query: str, limit: int = 50) -> List[str]:
        """
        Search the catalog for tracks.

        Args:
            query: Search query
            limit: Maximum tracks to return

        Returns:
            Track IDs in relevance order
        """
        cache_key = self._get_cache_key("search", f"{query}_{limit}")
        cached = self._load_cache(cache_key)
        if cached:
            return cached

        self._throttle()
        try:
            result = self.sp.search(
                q=query,
                type='track',
                limit=min(limit, 50)
            )
        except Exception as e:
            logger.warning("Error searching tracks for %r: %s", query, e)
            return []

        items = result.get('tracks', {}).get('items', [])
        track_ids = [t['id'] for t in items if t and t.get('id')]
        self._save_cache(cache_key, track_ids)
        return track_ids

    # =========================================================================
    # TRACK OPERATIONS
    # =========================================================================

    def get_features(self, track_ids: List[str]) -> Dict[str, AudioFeatureVector]:
        """
        Fetch audio features for tracks in batches.

        Args:
            track_ids: List of Spotify track IDs

        Returns:
            Mapping of track ID to features; unavailable tracks are omitted
        """
        if not track_ids:
            return {}

        cache_key = self._get_cache_key("audio_features", sorted(track_ids))
        raw = self._load_cache(cache_key)

        if raw is None:
            raw = []
            complete = True
            # Spotify API limit: 100 tracks per request
            for i in range(0, len(track_ids), 100):
                batch = track_ids[i:i+100]
                self._throttle()
                try:
                    result = self.sp.audio_features(batch)
                    raw.extend(f for f in (result or []) if f)
                except Exception as e:
                    logger.warning("Error fetching audio features: %s", e)
                    complete = False
            # A failed batch must not be served from cache until it expires
            if complete:
                self._save_cache(cache_key, raw)

        return {
            f['id']: AudioFeatureVector.from_dict(f)
            for f in raw
            if f.get('id')
        }

    def get_track_info(self, track_ids: List[str]) -> Dict[str, TrackInfo]:
        """
        Fetch track names and artists in batches.

        Args:
            track_ids: List of Spotify track IDs

        Returns:
            Mapping of track ID to TrackInfo
        """
        if not track_ids:
            return {}

        cache_key = self._get_cache_key("tracks", sorted(track_ids))
        tracks = self._load_cache(cache_key)

        if tracks is None:
            tracks = []
            complete = True
            # Spotify API limit: 50 tracks per request
            for i in range(0, len(track_ids), 50):
                batch = track_ids[i:i+50]
                self._throttle()
                try:
                    result = self.sp.tracks(batch)
                    tracks.extend([t for t in result['tracks'] if t])
                except Exception as e:
                    logger.warning("Error fetching tracks batch: %s", e)
                    complete = False
            if complete:
                self._save_cache(cache_key, tracks)

        return {
            t['id']: TrackInfo(
                name=t.get('name', ''),
                artists=tuple(a.get('name', '') for a in t.get('artists', [])),
                album=t.get('album', {}).get('name'),
            )
            for t in tracks
            if t.get('id')
        }
