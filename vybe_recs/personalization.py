"""
Personal Preference Model
=========================

Scores how well a candidate fits one listener's own history. No other
listener's behavior is ever consulted.

Mathematical Formulation:
-------------------------

For the positive events e (signed_score > 0) in the listener's history:

    w_e      = signed_score_e × exp(-days_since(t_e) / 30)
    affinity = Σ w_e × sim(features_e, candidate) / Σ w_e

With no history, or no positive weight, the affinity is the neutral 0.5.
Downvotes and skips do not lower the score.
"""

import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import numpy as np

from .config import DEFAULT_PERSONALIZATION_CONFIG, PersonalizationConfig
from .feedback import FeedbackEvent
from .features import FeatureSource
from .similarity import similarity_matrix

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class PersonalPreferenceModel:
    """
    Time-decayed affinity of a candidate to a listener's liked tracks.

    Stateless apart from its configuration; history is passed per call.
    """

    def __init__(self, config: PersonalizationConfig = DEFAULT_PERSONALIZATION_CONFIG):
        self.config = config

    def time_decay(self, timestamp: datetime, now: Optional[datetime] = None) -> float:
        """
        exp(-days_since / decay_days); future timestamps count as fresh.

        Args:
            timestamp: When the feedback was given
            now: Reference time (defaults to the current UTC time)
        """
        now = _utc(now) if now is not None else datetime.now(timezone.utc)
        days = (now - _utc(timestamp)).total_seconds() / SECONDS_PER_DAY
        return math.exp(-max(days, 0.0) / self.config.decay_days)

    def score(
        self,
        candidate: FeatureSource,
        history: Sequence[FeedbackEvent],
        now: Optional[datetime] = None
    ) -> float:
        """Affinity of one candidate, in [0, 1]."""
        return float(self.score_many([candidate], history, now)[0])

    def score_many(
        self,
        candidates: Sequence[FeatureSource],
        history: Sequence[FeedbackEvent],
        now: Optional[datetime] = None
    ) -> np.ndarray:
        """
        Affinity of many candidates against the same history.

        Args:
            candidates: Candidate features (vectors, candidates or profiles)
            history: Listener feedback, any order
            now: Reference time for decay

        Returns:
            Array of affinities, one per candidate
        """
        neutral = np.full(len(candidates), self.config.neutral_score)
        if not history or not candidates:
            return neutral

        positives: List[FeedbackEvent] = [e for e in history if e.signed_score > 0]
        if not positives:
            return neutral

        weights = np.array([
            e.signed_score * self.time_decay(e.timestamp, now) for e in positives
        ])
        total = float(weights.sum())
        if total <= 0.0:
            logger.debug("Feedback fully decayed, affinity stays neutral")
            return neutral

        # (candidates, positives), no context weights
        sims = similarity_matrix(candidates, [e.features for e in positives])
        return np.clip(sims @ weights / total, 0.0, 1.0)
