"""
Context Weighting Module
========================

Situational context arrives as free text and is turned, by an external
interpreter, into five weights:

    valence, energy, danceability, acousticness   in [0, 1]
    tempo_modifier                                in [0.5, 2.0]

This module ingests those weights, applies them to a reference profile, and
provides small interpreter adapters:

    - ExampleContextInterpreter: nearest curated example by TF-IDF similarity
    - CachedContextInterpreter: caches another interpreter keyed on raw text
    - parse_interpreter_response: pulls weights out of a free-text model reply

Perturbation:
-------------

    value' = clamp(value * (1 + (weight - 0.5) * 0.5), 0, 1)
    tempo' = tempo * tempo_modifier

A neutral weight (0.5) leaves the feature at its reference value; the
multiplier stays within [0.75, 1.25].
"""

import json
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from .config import (
    CONTEXT_MEMORY_SIZE,
    CONTEXT_PERTURBATION_GAIN,
    NEUTRAL_TEMPO_MODIFIER,
    NEUTRAL_WEIGHT,
    PRIMARY_FEATURES,
    TEMPO_MODIFIER_RANGE,
)
from .errors import ContextInterpretationUnavailable
from .features import AudioFeatureVector, ReferenceProfile
from .utils import Cache, clamp, finite_or, log_duration, lru_get, lru_set

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContextWeights:
    """Per-request situational weights produced by a context interpreter."""
    valence: float = NEUTRAL_WEIGHT
    energy: float = NEUTRAL_WEIGHT
    danceability: float = NEUTRAL_WEIGHT
    acousticness: float = NEUTRAL_WEIGHT
    tempo_modifier: float = NEUTRAL_TEMPO_MODIFIER

    def __post_init__(self):
        for name in PRIMARY_FEATURES:
            value = finite_or(getattr(self, name), NEUTRAL_WEIGHT)
            object.__setattr__(self, name, clamp(value, 0.0, 1.0))

        low, high = TEMPO_MODIFIER_RANGE
        modifier = finite_or(self.tempo_modifier, NEUTRAL_TEMPO_MODIFIER)
        object.__setattr__(self, "tempo_modifier", clamp(modifier, low, high))

    @classmethod
    def neutral(cls) -> "ContextWeights":
        return cls()

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ContextWeights":
        """
        Ingest weights from an untrusted mapping.

        Every field is clamped; missing or malformed fields are neutral.
        Accepts both ``tempoModifier`` and ``tempo_modifier``.
        """
        if not isinstance(data, Mapping):
            return cls()

        tempo = data.get("tempo_modifier", data.get("tempoModifier"))
        return cls(
            valence=finite_or(data.get("valence"), NEUTRAL_WEIGHT),
            energy=finite_or(data.get("energy"), NEUTRAL_WEIGHT),
            danceability=finite_or(data.get("danceability"), NEUTRAL_WEIGHT),
            acousticness=finite_or(data.get("acousticness"), NEUTRAL_WEIGHT),
            tempo_modifier=finite_or(tempo, NEUTRAL_TEMPO_MODIFIER),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "valence": self.valence,
            "energy": self.energy,
            "danceability": self.danceability,
            "acousticness": self.acousticness,
            "tempoModifier": self.tempo_modifier,
        }

    def is_neutral(self) -> bool:
        return self == ContextWeights.neutral()


@dataclass(frozen=True)
class WeightedProfile:
    """A reference profile nudged by context, carrying the weights used."""
    features: AudioFeatureVector
    weights: ContextWeights
    reference: ReferenceProfile


def _perturb(value: float, weight: float) -> float:
    factor = 1 + (weight - NEUTRAL_WEIGHT) * CONTEXT_PERTURBATION_GAIN
    return clamp(value * factor, 0.0, 1.0)


def apply_context_weights(
    profile: ReferenceProfile,
    weights: ContextWeights
) -> WeightedProfile:
    """
    Apply context weights to a reference profile.

    Args:
        profile: Reference profile built from the listener's tracks
        weights: Situational weights

    Returns:
        WeightedProfile
    """
    with log_duration("apply_context_weights", logger):
        base = profile.features
        changes = {
            name: _perturb(getattr(base, name), getattr(weights, name))
            for name in PRIMARY_FEATURES
        }
        changes["tempo"] = base.tempo * weights.tempo_modifier

        return WeightedProfile(
            features=replace(base, **changes),
            weights=weights,
            reference=profile,
        )


# =============================================================================
# INTERPRETERS
# =============================================================================

class ContextInterpreter(Protocol):
    """Turns a free-text listening situation into ContextWeights."""

    def interpret(
        self,
        text: str,
        prior_preferences: Optional[Any] = None
    ) -> ContextWeights:
        ...


@dataclass(frozen=True)
class ContextExample:
    """A curated context with the weights it should produce."""
    text: str
    weights: ContextWeights
    description: str = ""


CONTEXT_EXAMPLES: List[ContextExample] = [
    ContextExample(
        "driving with friends, want upbeat music but not too intense",
        ContextWeights(0.7, 0.7, 0.6, 0.3, 1.1),
        "Social driving needs upbeat but controlled energy, danceable enough for sing-alongs",
    ),
    ContextExample(
        "studying late at night, need focus music",
        ContextWeights(0.4, 0.3, 0.2, 0.8, 0.9),
        "Study needs low distraction, acoustic and steady",
    ),
    ContextExample(
        "workout at the gym, feeling motivated",
        ContextWeights(0.8, 0.9, 0.8, 0.1, 1.3),
        "Workout needs motivation, high energy and rhythm",
    ),
    ContextExample(
        "rainy sunday morning, feeling contemplative",
        ContextWeights(0.3, 0.2, 0.2, 0.7, 0.8),
        "Contemplative mood: calm, acoustic, slower",
    ),
    ContextExample(
        "getting ready for a date, feeling excited but nervous",
        ContextWeights(0.6, 0.6, 0.5, 0.4, 1.0),
        "Mixed emotions call for moderate valence and energy",
    ),
    ContextExample(
        "cooking dinner with my partner, want something romantic but not cheesy",
        ContextWeights(0.7, 0.4, 0.3, 0.6, 0.9),
        "Romantic: positive but subtle, intimate and acoustic",
    ),
]


class ExampleContextInterpreter:
    """
    Interprets context by matching it against curated examples.

    The text is vectorized with TF-IDF and the weights of the closest
    example are returned. Nothing close enough means the interpreter is
    unavailable for this text.
    """

    def __init__(
        self,
        examples: Optional[List[ContextExample]] = None,
        min_similarity: float = 0.1
    ):
        self.examples = list(examples or CONTEXT_EXAMPLES)
        self.min_similarity = min_similarity
        self.vectorizer = TfidfVectorizer(stop_words="english")
        self._example_matrix = self.vectorizer.fit_transform(
            [ex.text for ex in self.examples]
        )

    def closest_example(self, text: str) -> Tuple[Optional[ContextExample], float]:
        """Return the best matching example and its similarity."""
        if not text or not text.strip():
            return None, 0.0

        query = self.vectorizer.transform([text])
        scores = cosine_similarity(query, self._example_matrix)[0]
        best = int(scores.argmax())
        return self.examples[best], float(scores[best])

    def interpret(
        self,
        text: str,
        prior_preferences: Optional[Any] = None
    ) -> ContextWeights:
        example, score = self.closest_example(text)
        if example is None or score < self.min_similarity:
            raise ContextInterpretationUnavailable(
                f"No curated context resembles {text[:50]!r}"
            )

        logger.debug("Context %r matched example %r (%.2f)", text[:50], example.text, score)
        return example.weights


class CachedContextInterpreter:
    """
    Caches another interpreter's weights keyed on the raw context text.

    Recent contexts stay in a bounded in-memory LRU; the optional file cache
    holds everything else until it expires.
    """

    def __init__(
        self,
        interpreter: ContextInterpreter,
        cache: Optional[Cache] = None,
        memory_size: int = CONTEXT_MEMORY_SIZE
    ):
        self.interpreter = interpreter
        self.cache = cache
        self.memory_size = memory_size
        self._memory: "OrderedDict[str, Dict[str, float]]" = OrderedDict()

    def _lookup(self, key: str) -> Optional[Dict[str, float]]:
        hit = lru_get(self._memory, key)
        if hit is not None:
            return hit
        if self.cache is not None:
            return self.cache.get(key)
        return None

    def _store(self, key: str, weights: ContextWeights) -> None:
        lru_set(self._memory, key, weights.to_dict(), self.memory_size)
        if self.cache is not None:
            self.cache.set(key, weights.to_dict())

    def _key(self, text: str) -> str:
        if self.cache is not None:
            return self.cache.make_key({"context": text})
        return text

    def interpret(
        self,
        text: str,
        prior_preferences: Optional[Any] = None
    ) -> ContextWeights:
        key = self._key(text)
        cached = self._lookup(key)
        if cached is not None:
            logger.debug("Context cache hit for %r", text[:50])
            return ContextWeights.from_dict(cached)

        weights = self.interpreter.interpret(text, prior_preferences)
        self._store(key, weights)
        return weights


_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_interpreter_response(response_text: str) -> ContextWeights:
    """
    Extract weights from a free-text interpreter reply.

    Replies may wrap the JSON in prose; the outermost object is used. Any
    parsing problem yields neutral weights.
    """
    match = _JSON_OBJECT.search(response_text or "")
    if not match:
        logger.warning("No JSON found in interpreter response")
        return ContextWeights.neutral()

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning("Interpreter response is not valid JSON: %s", e)
        return ContextWeights.neutral()

    if not isinstance(parsed, dict) or not isinstance(parsed.get("weights"), dict):
        logger.warning("Interpreter response has no weights object")
        return ContextWeights.neutral()

    return ContextWeights.from_dict(parsed["weights"])


def interpret_or_neutral(
    interpreter: Optional[ContextInterpreter],
    text: str,
    prior_preferences: Optional[Any] = None
) -> Tuple[ContextWeights, bool]:
    """
    Run the interpreter, falling back to neutral weights on any failure.

    Returns:
        Tuple of (weights, whether the fallback was used)
    """
    if interpreter is None:
        return ContextWeights.neutral(), True

    try:
        weights = interpreter.interpret(text, prior_preferences)
    except Exception as e:
        logger.warning("Context interpretation failed, using neutral weights: %s", e)
        return ContextWeights.neutral(), True

    if not isinstance(weights, ContextWeights):
        weights = ContextWeights.from_dict(weights)
    return weights, False
