"""
Candidate Ranker
================

Ranks candidate tracks by a weighted combination of:
1. Similarity to the context-weighted reference profile
2. Personal affinity from the listener's own feedback history

Mathematical Formulation:
-------------------------

    blended = 0.7 × S_similarity + 0.3 × S_affinity

where:
    S_similarity = weighted_cos(candidate, weighted_profile)
    S_affinity   = time-decayed similarity to liked tracks (0.5 if none)

The split favors contextual fit so a new context is not drowned out by
accumulated taste. Ties keep their input order.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Union

from .config import DEFAULT_RANKING_CONFIG, RankingConfig
from .context import WeightedProfile
from .feedback import FeedbackEvent
from .features import Candidate, ReferenceProfile
from .personalization import PersonalPreferenceModel
from .similarity import confidence, similarity_matrix
from .utils import log_duration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate with the scores from one ranking pass."""
    candidate: Candidate
    similarity: float
    personal_affinity: float
    blended_score: float
    confidence: float = 0.0

    @property
    def track_id(self) -> str:
        return self.candidate.track_id

    def to_dict(self) -> Dict:
        return {
            "track_id": self.candidate.track_id,
            "similarity": round(self.similarity, 4),
            "personal_affinity": round(self.personal_affinity, 4),
            "blended_score": round(self.blended_score, 4),
            "confidence": round(self.confidence, 4),
        }


class CandidateRanker:
    """
    Blends contextual similarity with personal affinity.

    Combines content-based fit against the weighted profile with the
    listener's individual history; no collaborative signal is involved.
    """

    def __init__(
        self,
        preference_model: Optional[PersonalPreferenceModel] = None,
        config: RankingConfig = DEFAULT_RANKING_CONFIG
    ):
        """
        Initialize ranker.

        Args:
            preference_model: Personal affinity model (default configuration if None)
            config: Similarity/affinity blend
        """
        self.preference_model = preference_model or PersonalPreferenceModel()
        self.config = config

    def rank(
        self,
        candidates: Sequence[Candidate],
        target: Union[WeightedProfile, ReferenceProfile],
        history: Sequence[FeedbackEvent],
        now: Optional[datetime] = None
    ) -> List[ScoredCandidate]:
        """
        Score and sort candidates.

        Args:
            candidates: Deduplicated candidates from the catalog
            target: Profile to match; a WeightedProfile also supplies weights
            history: Listener feedback history
            now: Reference time for feedback decay

        Returns:
            ScoredCandidates sorted by blended score, descending
        """
        if not candidates:
            return []

        weights = target.weights if isinstance(target, WeightedProfile) else None

        with log_duration("rank_candidates", logger, candidate_count=len(candidates)):
            similarities = similarity_matrix([target], candidates, weights)[0]
            affinities = self.preference_model.score_many(candidates, history, now)

            results = []
            for candidate, sim, affinity in zip(candidates, similarities, affinities):
                blended = (
                    self.config.similarity_weight * float(sim) +
                    self.config.affinity_weight * float(affinity)
                )
                results.append(ScoredCandidate(
                    candidate=candidate,
                    similarity=float(sim),
                    personal_affinity=float(affinity),
                    blended_score=blended,
                    confidence=confidence(target, candidate),
                ))

        # Stable: equal scores keep input order
        results.sort(key=lambda s: s.blended_score, reverse=True)
        return results
