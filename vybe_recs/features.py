"""
Feature Engineering Module
==========================

Turns raw audio descriptors into value objects the rest of the system can
compare, and aggregates reference tracks into a single profile.

Feature Categories:
    1. Bounded perceptual features (already in [0, 1], clamped on ingestion)
    2. Unbounded features (tempo, loudness, key), normalized at comparison
    3. Categorical features (mode, key, time signature), aggregated by mode
"""

import logging
from collections import Counter
from dataclasses import dataclass, fields
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .config import (
    BOUNDED_FEATURES,
    CATEGORICAL_FEATURES,
    CONTINUOUS_FEATURES,
    KEY_DIVISOR,
    LOUDNESS_FLOOR_DB,
    MAX_REFERENCE_TRACKS,
    SIMILARITY_FEATURES,
    TEMPO_DIVISOR,
    VALID_TIME_SIGNATURES,
)
from .errors import InsufficientInputError, TooManyReferencesError
from .utils import clamp, finite_or, log_duration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioFeatureVector:
    """The 12-dimensional audio descriptor of one track."""
    valence: float = 0.0
    energy: float = 0.0
    danceability: float = 0.0
    acousticness: float = 0.0
    instrumentalness: float = 0.0
    liveness: float = 0.0
    speechiness: float = 0.0

    # Unbounded, stored raw
    tempo: float = 0.0      # BPM
    loudness: float = 0.0   # dB

    # Categorical
    mode: int = 0
    key: int = 0
    time_signature: int = 4

    def __post_init__(self):
        for name in BOUNDED_FEATURES:
            value = finite_or(getattr(self, name), 0.0)
            object.__setattr__(self, name, clamp(value, 0.0, 1.0))

        object.__setattr__(self, "tempo", max(finite_or(self.tempo, 0.0), 0.0))
        object.__setattr__(self, "loudness", finite_or(self.loudness, 0.0))

        mode = finite_or(self.mode, 0.0)
        object.__setattr__(self, "mode", 1 if mode >= 0.5 else 0)

        key = int(round(finite_or(self.key, 0.0)))
        object.__setattr__(self, "key", int(clamp(key, 0, 11)))

        time_signature = int(round(finite_or(self.time_signature, 4.0)))
        if time_signature not in VALID_TIME_SIGNATURES:
            time_signature = 4
        object.__setattr__(self, "time_signature", time_signature)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "AudioFeatureVector":
        """
        Build a vector from a raw descriptor bundle.

        Accepts Spotify audio-features payloads as well as camelCase records.
        Missing or malformed fields fall back to defaults rather than failing.

        Args:
            data: Raw audio features (may be None)

        Returns:
            AudioFeatureVector with every field in its domain
        """
        if not data:
            return cls()

        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = data.get(f.name)
            if raw is None and f.name == "time_signature":
                raw = data.get("timeSignature")
            if raw is not None:
                values[f.name] = raw

        return cls(**values)

    def to_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class NormalizedFeatures:
    """Unit-interval view of an AudioFeatureVector, ordered by SIMILARITY_FEATURES."""
    values: np.ndarray

    def __getitem__(self, name: str) -> float:
        return float(self.values[SIMILARITY_FEATURES.index(name)])

    def as_dict(self) -> Dict[str, float]:
        return {name: float(v) for name, v in zip(SIMILARITY_FEATURES, self.values)}


def normalize(features: AudioFeatureVector) -> NormalizedFeatures:
    """
    Map a feature vector into the space used for distance/similarity math.

    Bounded fields pass through; tempo is divided by 200, loudness maps via
    (loudness + 60) / 60 and key is divided by 11.
    """
    raw = features.to_dict()
    normalized = []
    for name in SIMILARITY_FEATURES:
        value = finite_or(raw.get(name, 0.0), 0.0)
        if name == "tempo":
            value = value / TEMPO_DIVISOR
        elif name == "loudness":
            value = (value - LOUDNESS_FLOOR_DB) / -LOUDNESS_FLOOR_DB
        elif name == "key":
            value = value / KEY_DIVISOR
        normalized.append(value)

    return NormalizedFeatures(np.array(normalized, dtype=float))


@dataclass(frozen=True)
class Candidate:
    """A track offered by the catalog, with its features."""
    track_id: str
    features: AudioFeatureVector
    artists: Tuple[str, ...] = ()
    name: Optional[str] = None

    @property
    def primary_artist(self) -> Optional[str]:
        return self.artists[0] if self.artists else None


@dataclass(frozen=True)
class ReferenceProfile:
    """Centroid of the listener's reference tracks."""
    features: AudioFeatureVector
    track_count: int = 1


FeatureSource = Union[AudioFeatureVector, ReferenceProfile, Candidate, Any]


def as_features(target: FeatureSource) -> AudioFeatureVector:
    """Return the AudioFeatureVector carried by a profile, candidate or vector."""
    if isinstance(target, AudioFeatureVector):
        return target
    return target.features


def _statistical_mode(values: Sequence[int], default: int) -> int:
    """Most common value; ties go to the value seen first."""
    if not values:
        return default

    counts = Counter(values)
    best_value = values[0]
    best_count = 0
    for value in values:
        if counts[value] > best_count:
            best_value = value
            best_count = counts[value]
    return best_value


def validate_reference_count(count: int) -> None:
    """Enforce the 1-5 reference track request invariant."""
    if count < 1:
        raise InsufficientInputError("At least one reference track is required")
    if count > MAX_REFERENCE_TRACKS:
        raise TooManyReferencesError(
            f"At most {MAX_REFERENCE_TRACKS} reference tracks are allowed, got {count}"
        )


def build_reference_profile(vectors: Iterable[AudioFeatureVector]) -> ReferenceProfile:
    """
    Aggregate reference tracks into one centroid profile.

    Continuous features are averaged; mode, key and time signature take the
    statistical mode of the inputs.

    Args:
        vectors: Feature vectors of the reference tracks

    Returns:
        ReferenceProfile

    Raises:
        InsufficientInputError: if no vectors are given
    """
    vectors = list(vectors)
    if not vectors:
        raise InsufficientInputError("At least one audio feature set is required")

    with log_duration("build_reference_profile", logger, track_count=len(vectors)):
        matrix = np.array(
            [[getattr(v, name) for name in CONTINUOUS_FEATURES] for v in vectors],
            dtype=float,
        )
        means = np.mean(matrix, axis=0)
        values: Dict[str, Any] = {
            name: float(mean) for name, mean in zip(CONTINUOUS_FEATURES, means)
        }

        defaults = {"mode": 1, "key": 0, "time_signature": 4}
        for name in CATEGORICAL_FEATURES:
            values[name] = _statistical_mode(
                [getattr(v, name) for v in vectors],
                defaults[name],
            )

    return ReferenceProfile(
        features=AudioFeatureVector(**values),
        track_count=len(vectors),
    )


def feature_matrix(vectors: Sequence[FeatureSource]) -> np.ndarray:
    """Stack normalized features row-wise."""
    if not vectors:
        return np.zeros((0, len(SIMILARITY_FEATURES)))
    return np.vstack([normalize(as_features(v)).values for v in vectors])
