"""
Feedback Learner
================

Adjusts context weights for future requests from a listener's own
engagement. Nothing is shared between listeners.

Two mechanisms:

1. Interpolation toward the weights remembered for a similar past context

       adjusted = base + (past - base) × learning_rate

   applied to valence, energy and danceability; acousticness and
   tempo_modifier pass through unchanged.

2. Engagement nudges after a listening session

       valence += (upvote_rate - 0.5) × factor
       energy  += (1 - skip_rate) × factor        factor = ±0.1

Remembered contexts are matched by TF-IDF cosine similarity of their text.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from .config import DEFAULT_LEARNING_CONFIG, LearningConfig
from .context import ContextWeights
from .feedback import DOWNVOTE, SKIP, UPVOTE, FeedbackEvent
from .utils import lru_get, lru_set

logger = logging.getLogger(__name__)

# Only these fields follow a remembered context
ADJUSTABLE_FIELDS = ("valence", "energy", "danceability")


@dataclass(frozen=True)
class EngagementSummary:
    """Aggregate engagement over a set of feedback events."""
    event_count: int
    upvote_rate: float
    skip_rate: float
    downvote_rate: float
    average_listen_seconds: float

    @property
    def is_positive(self) -> bool:
        return self.upvote_rate >= self.downvote_rate + self.skip_rate


def summarize_engagement(events: Sequence[FeedbackEvent]) -> EngagementSummary:
    """Rates and mean listen time; all zero for no events."""
    if not events:
        return EngagementSummary(0, 0.0, 0.0, 0.0, 0.0)

    n = len(events)
    return EngagementSummary(
        event_count=n,
        upvote_rate=sum(1 for e in events if e.signed_score == UPVOTE) / n,
        skip_rate=sum(1 for e in events if e.signed_score == SKIP) / n,
        downvote_rate=sum(1 for e in events if e.signed_score == DOWNVOTE) / n,
        average_listen_seconds=sum(e.listen_seconds for e in events) / n,
    )


def _normalize_text(text: str) -> str:
    return " ".join(text.lower().split())


class ContextMemory:
    """One listener's learned weights per context text, with fuzzy lookup."""

    def __init__(
        self,
        threshold: float = DEFAULT_LEARNING_CONFIG.memory_threshold,
        max_entries: int = DEFAULT_LEARNING_CONFIG.max_contexts
    ):
        self.threshold = threshold
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, ContextWeights]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def remember(self, context_text: str, weights: ContextWeights) -> None:
        key = _normalize_text(context_text)
        if not key:
            return
        with self._lock:
            lru_set(self._entries, key, weights, self.max_entries)

    def find_similar(self, context_text: str) -> Optional[ContextWeights]:
        """
        Weights of the most similar remembered context.

        An exact (case and whitespace insensitive) match wins; otherwise the
        best TF-IDF match at or above the threshold, or None.
        """
        match = self.closest(context_text)
        return match[1] if match else None

    def closest(self, context_text: str) -> Optional[Tuple[str, ContextWeights, float]]:
        key = _normalize_text(context_text)
        if not key:
            return None

        with self._lock:
            exact = lru_get(self._entries, key)
            entries = dict(self._entries)

        if exact is not None:
            return key, exact, 1.0
        if not entries:
            return None

        texts: List[str] = list(entries)
        vectorizer = TfidfVectorizer(stop_words="english")
        try:
            matrix = vectorizer.fit_transform(texts + [key])
        except ValueError:
            # Only stop words, nothing to compare
            return None

        scores = cosine_similarity(matrix[-1], matrix[:-1])[0]
        best = int(scores.argmax())
        if scores[best] < self.threshold:
            return None

        logger.debug("Context %r resembles remembered %r (%.2f)", key, texts[best], scores[best])
        return texts[best], entries[texts[best]], float(scores[best])


class FeedbackLearner:
    """
    Learns context weight adjustments for each listener separately.

    Every listener gets their own ContextMemory, so one listener's feedback
    never moves another listener's weights.

    Usage:
        learner = FeedbackLearner()
        learner.learn_from_events("listener-1", "late night study", weights, events)
        weights = learner.personalize("listener-1", base_weights, "late night study")
    """

    def __init__(self, config: LearningConfig = DEFAULT_LEARNING_CONFIG):
        self.config = config
        self._memories: "OrderedDict[str, ContextMemory]" = OrderedDict()
        self._lock = threading.Lock()

    def memory_for(self, listener_id: str, create: bool = True) -> Optional[ContextMemory]:
        """The listener's context memory; None when absent and create is False."""
        with self._lock:
            memory = lru_get(self._memories, listener_id)
            if memory is None and create:
                memory = ContextMemory(self.config.memory_threshold, self.config.max_contexts)
                lru_set(self._memories, listener_id, memory, self.config.max_listeners)
            return memory

    def adjust(
        self,
        base_weights: ContextWeights,
        past_similar_context: Optional[ContextWeights],
        learning_rate: Optional[float] = None
    ) -> ContextWeights:
        """
        Move base weights toward a similar past context.

        Args:
            base_weights: Weights interpreted for this request
            past_similar_context: Weights learned for a similar context, if any
            learning_rate: Interpolation rate in [0, 1] (config default if None)

        Returns:
            Adjusted weights; base_weights unchanged when there is no match
        """
        rate = self.config.learning_rate if learning_rate is None else learning_rate
        if not 0.0 <= rate <= 1.0:
            raise ValueError(f"learning_rate must be within [0, 1], got {rate}")

        if past_similar_context is None:
            return base_weights

        changes = {}
        for name in ADJUSTABLE_FIELDS:
            base = getattr(base_weights, name)
            past = getattr(past_similar_context, name)
            changes[name] = base + (past - base) * rate

        # acousticness and tempo_modifier pass through
        return replace(base_weights, **changes)

    def personalize(
        self,
        listener_id: str,
        base_weights: ContextWeights,
        context_text: str
    ) -> ContextWeights:
        """Adjust base weights using what this listener taught us about similar contexts."""
        memory = self.memory_for(listener_id, create=False)
        past = memory.find_similar(context_text) if memory is not None else None
        if past is None:
            return base_weights

        adjusted = self.adjust(base_weights, past)
        logger.debug("Personalized context weights for %s: %s", listener_id, adjusted.to_dict())
        return adjusted

    def learn_from_engagement(
        self,
        original_weights: ContextWeights,
        positive: bool,
        summary: EngagementSummary,
        listener_id: Optional[str] = None,
        context_text: Optional[str] = None
    ) -> ContextWeights:
        """
        Nudge weights after observing how a recommendation set was received.

        Args:
            original_weights: Weights used for the recommendations
            positive: Overall verdict on the session
            summary: Engagement observed for the session
            listener_id: Whose session it was
            context_text: With listener_id, the result is remembered for this context

        Returns:
            Improved weights (clamped)
        """
        factor = self.config.engagement_factor if positive else -self.config.engagement_factor

        improved = replace(
            original_weights,
            valence=original_weights.valence + (summary.upvote_rate - 0.5) * factor,
            energy=original_weights.energy + (1 - summary.skip_rate) * factor,
        )

        if listener_id is not None and context_text:
            self.memory_for(listener_id).remember(context_text, improved)
        return improved

    def learn_from_events(
        self,
        listener_id: str,
        context_text: str,
        original_weights: ContextWeights,
        events: Sequence[FeedbackEvent]
    ) -> ContextWeights:
        """Summarize a session's events and learn from them; no events is a no-op."""
        if not events:
            return original_weights

        summary = summarize_engagement(events)
        logger.info(
            "Learning from %d events for %s, %r (upvotes %.0f%%, skips %.0f%%)",
            summary.event_count, listener_id, context_text[:50],
            summary.upvote_rate * 100, summary.skip_rate * 100,
        )
        return self.learn_from_engagement(
            original_weights, summary.is_positive, summary, listener_id, context_text
        )
