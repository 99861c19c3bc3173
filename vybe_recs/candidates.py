"""
Candidate Generation & Diversification Module
=============================================

Builds the candidate pool for a request and diversifies the ranked result:

1. Search the catalog with a few queries derived from the context
   (issued concurrently, deduplicated, excluded tracks removed)
2. Fetch audio features and track details in batches
3. After ranking, select a bounded list with artist variety and a
   feature-space dissimilarity floor

Diversity is a soft preference; the size of the list is not.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .config import (
    DEFAULT_CANDIDATE_CONFIG,
    DEFAULT_DIVERSITY_CONFIG,
    CandidateConfig,
    DiversityConfig,
)
from .context import ContextWeights
from .errors import InvalidLimitError
from .explainer import describe_energy, describe_mood
from .features import AudioFeatureVector, Candidate
from .scoring import ScoredCandidate
from .similarity import similarity
from .spotify_client import CatalogClient
from .utils import batch_process, log_duration

logger = logging.getLogger(__name__)


def build_search_queries(
    context_text: str,
    weights: ContextWeights,
    max_queries: int = DEFAULT_CANDIDATE_CONFIG.max_queries
) -> List[str]:
    """
    Derive catalog search queries from the context.

    Args:
        context_text: Raw situational text
        weights: Interpreted context weights
        max_queries: Maximum number of queries

    Returns:
        Distinct, non-empty queries in priority order
    """
    mood = describe_mood(weights.valence, weights.energy)
    energy = describe_energy(weights.energy)

    queries = []
    for query in (context_text.strip(), f"{mood} {energy} energy", f"{mood} music"):
        if query and query not in queries:
            queries.append(query)
    return queries[:max_queries]


class CandidateSource:
    """
    Gathers candidate tracks from a catalog.

    Strategy:
        1. Fan out the context queries concurrently
        2. Keep the first hits of each query, skipping excluded tracks
        3. Deduplicate across queries, preserving first-seen order
        4. Fetch features and details in batches; drop tracks without features
    """

    def __init__(
        self,
        catalog: CatalogClient,
        config: CandidateConfig = DEFAULT_CANDIDATE_CONFIG
    ):
        """
        Initialize candidate source.

        Args:
            catalog: Catalog/search provider
            config: Candidate generation configuration
        """
        self.catalog = catalog
        self.config = config

    def generate_candidates(
        self,
        queries: Sequence[str],
        exclude_track_ids: Optional[Iterable[str]] = None
    ) -> List[Candidate]:
        """
        Generate candidates for a list of search queries.

        Args:
            queries: Search queries
            exclude_track_ids: Track IDs to leave out (e.g. the references)

        Returns:
            Deduplicated candidates with features
        """
        exclude_ids: Set[str] = set(exclude_track_ids or ())

        with log_duration("search_candidates", logger, query_count=len(queries)):
            track_ids = self._search(queries, exclude_ids)

        logger.info("Found %d unique candidate tracks", len(track_ids))
        if not track_ids:
            return []

        with log_duration("fetch_candidate_features", logger, track_count=len(track_ids)):
            features = self._fetch_features(track_ids)
            details = self.catalog.get_track_info([tid for tid in track_ids if tid in features])

        candidates = []
        for track_id in track_ids:
            if track_id not in features:
                continue
            info = details.get(track_id)
            candidates.append(Candidate(
                track_id=track_id,
                features=features[track_id],
                artists=tuple(info.artists) if info else (),
                name=info.name if info else None,
            ))

        logger.debug("%d candidates have audio features", len(candidates))
        return candidates

    def _search_one(self, query: str) -> List[str]:
        try:
            return self.catalog.search_tracks(query, self.config.search_limit)
        except Exception as e:
            logger.warning("Search query %r failed: %s", query, e)
            return []

    def _search(self, queries: Sequence[str], exclude_ids: Set[str]) -> List[str]:
        if not queries:
            return []

        workers = max(1, min(self.config.max_workers, len(queries)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(self._search_one, queries))

        seen: Set[str] = set()
        track_ids: List[str] = []
        for found in results:
            kept = [tid for tid in found if tid and tid not in exclude_ids]
            for track_id in kept[:self.config.per_query_keep]:
                if track_id not in seen:
                    seen.add(track_id)
                    track_ids.append(track_id)
        return track_ids

    def _fetch_features(self, track_ids: List[str]) -> Dict[str, AudioFeatureVector]:
        features: Dict[str, AudioFeatureVector] = {}

        def fetch(batch: List[str]) -> List[Dict[str, AudioFeatureVector]]:
            return [self.catalog.get_features(batch)]

        for found in batch_process(track_ids, self.config.feature_batch_size, fetch):
            features.update(found)
        return features


class DiversityFilter:
    """
    Ensures diversity in final recommendations.

    Prevents:
    - The same primary artist repeating before enough distinct artists are in
    - Near-duplicate sounds (feature similarity above a threshold)

    A second pass tops the list up from the ranked order if filtering was
    too aggressive.
    """

    def __init__(self, config: DiversityConfig = DEFAULT_DIVERSITY_CONFIG):
        self.config = config

    def diversify(
        self,
        ranked: Sequence[ScoredCandidate],
        limit: int
    ) -> List[ScoredCandidate]:
        """
        Select at most ``limit`` candidates from a ranked sequence.

        Args:
            ranked: ScoredCandidates sorted by score
            limit: Number of tracks to select

        Returns:
            min(limit, distinct candidates) selections, in selection order

        Raises:
            InvalidLimitError: if limit is negative
        """
        if limit < 0:
            raise InvalidLimitError(f"limit must be non-negative, got {limit}")

        selected: List[ScoredCandidate] = []
        selected_ids: Set[str] = set()
        used_artists: Set[str] = set()
        min_artists = limit * self.config.min_artist_ratio

        for scored in ranked:
            if len(selected) >= limit:
                break
            if scored.track_id in selected_ids:
                continue

            # Check artist variety
            artist = scored.candidate.primary_artist
            if artist and artist in used_artists and len(used_artists) < min_artists:
                continue

            # Check feature-space diversity
            too_similar = any(
                similarity(scored.candidate, existing.candidate) > self.config.max_similarity
                for existing in selected
            )
            if too_similar:
                continue

            selected.append(scored)
            selected_ids.add(scored.track_id)
            if artist:
                used_artists.add(artist)

        # Fill remaining slots if we filtered too aggressively
        if len(selected) < limit:
            for scored in ranked:
                if len(selected) >= limit:
                    break
                if scored.track_id not in selected_ids:
                    selected.append(scored)
                    selected_ids.add(scored.track_id)

        logger.debug("Diversified %d ranked candidates into %d", len(ranked), len(selected))
        return selected
