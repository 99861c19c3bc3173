"""
Main Recommendation Engine
==========================

Orchestrates the complete recommendation pipeline:
1. Interpret the listening context (neutral weights if that fails)
2. Personalize the weights from what this listener taught us
3. Fetch reference track features and build the reference profile
4. Generate candidate tracks from the catalog
5. Score and rank candidates
6. Apply diversity filtering
7. Generate explanations
8. Return formatted output

``generate_recommendations`` is the pure core (steps 3 and 5-6 without any
I/O); ``RecommendationEngine`` is the host that wires in the catalog, the
interpreter and the feedback store.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from .candidates import CandidateSource, DiversityFilter, build_search_queries
from .config import (
    DEFAULT_CANDIDATE_CONFIG,
    DEFAULT_PERSONALIZATION_CONFIG,
    NUM_RECOMMENDATIONS,
    CandidateConfig,
    PersonalizationConfig,
)
from .context import (
    ContextInterpreter,
    ContextWeights,
    WeightedProfile,
    apply_context_weights,
    interpret_or_neutral,
)
from .errors import InsufficientInputError, InvalidLimitError
from .explainer import ExplanationGenerator, recommendation_reasoning
from .features import (
    AudioFeatureVector,
    Candidate,
    ReferenceProfile,
    build_reference_profile,
    validate_reference_count,
)
from .feedback import FeedbackEvent, FeedbackStore
from .learning import FeedbackLearner
from .scoring import CandidateRanker, ScoredCandidate
from .spotify_client import CatalogClient
from .utils import log_duration, normalize_track_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecommendationRun:
    """Result of the core pipeline, with the intermediate profiles for audit."""
    recommendations: List[ScoredCandidate]
    reference_profile: ReferenceProfile
    weighted_profile: WeightedProfile
    context_weights: ContextWeights


def generate_recommendations(
    reference_features: Sequence[AudioFeatureVector],
    context_weights: ContextWeights,
    history: Sequence[FeedbackEvent],
    candidates: Sequence[Candidate],
    limit: int,
    now: Optional[datetime] = None,
    ranker: Optional[CandidateRanker] = None,
    diversifier: Optional[DiversityFilter] = None
) -> RecommendationRun:
    """
    Rank and diversify candidates for one request.

    Args:
        reference_features: Features of the 1-5 reference tracks
        context_weights: Situational weights (already personalized)
        history: The listener's own feedback events
        candidates: Candidate tracks, reference tracks already excluded
        limit: Maximum number of recommendations
        now: Reference time for feedback decay
        ranker: Candidate ranker (default configuration if None)
        diversifier: Diversity filter (default configuration if None)

    Returns:
        RecommendationRun

    Raises:
        InvalidLimitError: if limit is negative
        InsufficientInputError: if there are no reference features
        TooManyReferencesError: if there are more than five
    """
    if limit < 0:
        raise InvalidLimitError(f"limit must be non-negative, got {limit}")
    validate_reference_count(len(reference_features))

    ranker = ranker or CandidateRanker()
    diversifier = diversifier or DiversityFilter()

    reference = build_reference_profile(reference_features)
    weighted = apply_context_weights(reference, context_weights)

    ranked = ranker.rank(candidates, weighted, history, now)

    # Diversify only the head of the ranking
    pool = ranked[:limit * diversifier.config.pool_multiplier]
    selected = diversifier.diversify(pool, limit)

    return RecommendationRun(
        recommendations=selected,
        reference_profile=reference,
        weighted_profile=weighted,
        context_weights=context_weights,
    )


@dataclass
class RecommendationResult:
    """Single track recommendation with explanation."""
    track_id: str
    track_name: str
    artist_names: List[str]
    score: float
    explanation: str
    reasoning: str

    # Optional detailed breakdown
    breakdown: Optional[Dict] = None

    # Mood, energy, characteristics and genres behind the explanation
    details: Optional[Dict] = None


@dataclass
class RecommendationOutput:
    """Complete recommendation output."""
    listener_id: str
    context_text: str
    context_weights: ContextWeights
    reference_track_ids: List[str]
    recommendations: List[RecommendationResult]
    reasoning: str = ""
    used_neutral_context: bool = False
    processing_ms: float = 0.0
    run: Optional[RecommendationRun] = field(default=None, repr=False)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "listener_id": self.listener_id,
            "context": self.context_text,
            "context_weights": self.context_weights.to_dict(),
            "used_neutral_context": self.used_neutral_context,
            "reference_track_ids": self.reference_track_ids,
            "reasoning": self.reasoning,
            "processing_ms": round(self.processing_ms, 1),
            "recommendations": [
                {
                    "track_id": r.track_id,
                    "track_name": r.track_name,
                    "artist_names": r.artist_names,
                    "score": round(r.score, 4),
                    "explanation": r.explanation,
                    "reasoning": r.reasoning,
                    "breakdown": r.breakdown,
                    "details": r.details,
                }
                for r in self.recommendations
            ]
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


class RecommendationEngine:
    """
    Main recommendation engine orchestrating the complete pipeline.

    Usage:
        engine = RecommendationEngine(SpotifyClient(), ExampleContextInterpreter())
        result = engine.recommend("listener-1", "late night drive", [track_id])
        print(result.to_json())
    """

    def __init__(
        self,
        catalog: CatalogClient,
        interpreter: Optional[ContextInterpreter] = None,
        feedback_store: Optional[FeedbackStore] = None,
        learner: Optional[FeedbackLearner] = None,
        ranker: Optional[CandidateRanker] = None,
        diversifier: Optional[DiversityFilter] = None,
        candidate_config: CandidateConfig = DEFAULT_CANDIDATE_CONFIG,
        personalization_config: PersonalizationConfig = DEFAULT_PERSONALIZATION_CONFIG
    ):
        """
        Initialize recommendation engine.

        Args:
            catalog: Catalog/search provider
            interpreter: Context interpreter (neutral weights if None)
            feedback_store: Source of listener history (empty history if None)
            learner: Per-listener context learner
            ranker: Candidate ranker
            diversifier: Diversity filter
            candidate_config: Candidate generation configuration
            personalization_config: History loading configuration
        """
        self.catalog = catalog
        self.interpreter = interpreter
        self.feedback_store = feedback_store
        self.learner = learner or FeedbackLearner()
        self.ranker = ranker or CandidateRanker()
        self.diversifier = diversifier or DiversityFilter()
        self.candidate_source = CandidateSource(catalog, candidate_config)
        self.candidate_config = candidate_config
        self.personalization_config = personalization_config
        self.explainer = ExplanationGenerator()

    def recommend(
        self,
        listener_id: str,
        context_text: str,
        reference_track_ids: Sequence[str],
        limit: int = NUM_RECOMMENDATIONS,
        exclude_track_ids: Iterable[str] = (),
        now: Optional[datetime] = None
    ) -> RecommendationOutput:
        """
        Generate recommendations for a listener.

        Args:
            listener_id: Whose history to personalize with
            context_text: Free-text listening situation
            reference_track_ids: 1-5 track URLs, URIs or IDs
            limit: Number of tracks to recommend
            exclude_track_ids: Tracks that must not be recommended
            now: Reference time for feedback decay

        Returns:
            RecommendationOutput with ranked recommendations
        """
        start = time.perf_counter()

        if limit < 0:
            raise InvalidLimitError(f"limit must be non-negative, got {limit}")
        reference_ids = list(dict.fromkeys(
            normalize_track_id(tid) for tid in reference_track_ids if tid
        ))
        validate_reference_count(len(reference_ids))

        history = self._load_history(listener_id)

        # Step 1-2: context weights
        weights, used_neutral = interpret_or_neutral(self.interpreter, context_text, history)
        weights = self.learner.personalize(listener_id, weights, context_text)
        logger.debug("Context weights for %r: %s", context_text[:50], weights.to_dict())

        # Step 3: reference features
        with log_duration("fetch_reference_features", logger, track_count=len(reference_ids)):
            found = self.catalog.get_features(reference_ids)
        reference_features = [found[tid] for tid in reference_ids if tid in found]
        if not reference_features:
            raise InsufficientInputError("None of the reference tracks have audio features")
        if len(reference_features) < len(reference_ids):
            logger.warning(
                "%d of %d reference tracks have no audio features",
                len(reference_ids) - len(reference_features), len(reference_ids),
            )

        # Step 4: candidates
        queries = build_search_queries(context_text, weights, self.candidate_config.max_queries)
        excluded = set(reference_ids) | {normalize_track_id(tid) for tid in exclude_track_ids}
        candidates = self.candidate_source.generate_candidates(queries, excluded)

        # Step 5-6: rank and diversify
        run = generate_recommendations(
            reference_features,
            weights,
            history,
            candidates,
            limit,
            now=now,
            ranker=self.ranker,
            diversifier=self.diversifier,
        )

        # Step 7: explanations
        recommendations = [self._to_result(scored) for scored in run.recommendations]

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Recommended %d of %d candidates for %s in %.0fms (neutral context: %s)",
            len(recommendations), len(candidates), listener_id, elapsed_ms, used_neutral,
        )

        return RecommendationOutput(
            listener_id=listener_id,
            context_text=context_text,
            context_weights=weights,
            reference_track_ids=reference_ids,
            recommendations=recommendations,
            reasoning=recommendation_reasoning(weights, len(history)),
            used_neutral_context=used_neutral,
            processing_ms=elapsed_ms,
            run=run,
        )

    def learn(
        self,
        listener_id: str,
        context_text: str,
        original_weights: ContextWeights,
        events: Sequence[FeedbackEvent]
    ) -> ContextWeights:
        """
        Learn from the feedback a listener gave a recommendation set.

        Args:
            listener_id: Whose feedback it is; only their later requests change
            context_text: Context the recommendations were made for
            original_weights: Weights that were used
            events: Feedback on those recommendations

        Returns:
            Adjusted weights, remembered for this listener's similar future contexts
        """
        return self.learner.learn_from_events(listener_id, context_text, original_weights, events)

    def _load_history(self, listener_id: str) -> List[FeedbackEvent]:
        if self.feedback_store is None:
            return []
        return list(self.feedback_store.get_feedback(
            listener_id, self.personalization_config.history_limit
        ))

    def _to_result(self, scored: ScoredCandidate) -> RecommendationResult:
        explanation = self.explainer.generate_explanation(scored)
        candidate = scored.candidate
        return RecommendationResult(
            track_id=candidate.track_id,
            track_name=candidate.name or candidate.track_id,
            artist_names=list(candidate.artists),
            score=scored.blended_score,
            explanation=explanation.summary,
            reasoning=explanation.reasoning,
            breakdown=self._format_breakdown(scored),
            details=explanation.to_dict(),
        )

    def _format_breakdown(self, scored: ScoredCandidate) -> Dict:
        """Format score breakdown for output."""
        return {
            "similarity": round(scored.similarity, 3),
            "personal_affinity": round(scored.personal_affinity, 3),
            "confidence": round(scored.confidence, 3),
        }
