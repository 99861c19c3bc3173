"""
Similarity Scorer
=================

Bounded similarity between audio profiles, computed over normalized features.

Mathematical Formulation:
-------------------------

    A_i = w_i × a_i,  B_i = w_i × b_i   (a, b normalized, w per-feature weight)

    sim(a, b) = clamp( Σ A_i B_i / (‖A‖ ‖B‖), 0, 1 )

Per-feature weights:
    valence / energy / danceability / acousticness -> context weight,
        or 0.8 / 0.8 / 0.7 / 0.6 without context; an explicit 0 from the
        context drops that feature from the comparison
    instrumentalness 0.4, liveness 0.3, speechiness 0.3, tempo 0.5,
    loudness 0.2, mode 0.3, key 0.2

A zero-norm side makes the similarity undefined; it is scored as 0.

Confidence uses the Euclidean distance over the four primary features:

    confidence = max(0, 1 - ‖a_primary - b_primary‖)
"""

from typing import Optional, Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from .config import (
    DEFAULT_PRIMARY_WEIGHTS,
    PRIMARY_FEATURES,
    SECONDARY_WEIGHTS,
    SIMILARITY_FEATURES,
)
from .context import ContextWeights
from .errors import DegenerateVectorError
from .features import FeatureSource, as_features, feature_matrix, normalize

_PRIMARY_INDEX = [SIMILARITY_FEATURES.index(name) for name in PRIMARY_FEATURES]


def feature_weights(weights: Optional[ContextWeights] = None) -> np.ndarray:
    """Per-feature weight vector, ordered like the normalized features."""
    vector = []
    for name in SIMILARITY_FEATURES:
        if name in DEFAULT_PRIMARY_WEIGHTS:
            if weights is not None:
                vector.append(getattr(weights, name))
            else:
                vector.append(DEFAULT_PRIMARY_WEIGHTS[name])
        else:
            vector.append(SECONDARY_WEIGHTS[name])
    return np.array(vector, dtype=float)


def weighted_cosine(a: np.ndarray, b: np.ndarray, w: np.ndarray) -> float:
    """
    Weighted cosine between two normalized vectors.

    Raises:
        DegenerateVectorError: if either weighted vector has zero norm
    """
    wa = a * w
    wb = b * w
    norm_a = float(np.sqrt(np.dot(wa, wa)))
    norm_b = float(np.sqrt(np.dot(wb, wb)))
    if norm_a == 0.0 or norm_b == 0.0:
        raise DegenerateVectorError("Weighted feature vector has zero norm")

    return float(np.dot(wa, wb)) / (norm_a * norm_b)


def similarity(
    target: FeatureSource,
    candidate: FeatureSource,
    weights: Optional[ContextWeights] = None
) -> float:
    """
    Weighted cosine similarity between a target profile and a candidate.

    Args:
        target: Weighted profile, reference profile or feature vector
        candidate: Candidate features
        weights: Context weights used as primary feature weights

    Returns:
        Similarity in [0, 1]
    """
    a = normalize(as_features(target)).values
    b = normalize(as_features(candidate)).values

    try:
        value = weighted_cosine(a, b, feature_weights(weights))
    except DegenerateVectorError:
        return 0.0

    if not np.isfinite(value):
        return 0.0
    return float(np.clip(value, 0.0, 1.0))


def similarity_matrix(
    sources: Sequence[FeatureSource],
    others: Sequence[FeatureSource],
    weights: Optional[ContextWeights] = None
) -> np.ndarray:
    """
    Pairwise weighted cosine similarity, shape (len(sources), len(others)).

    Zero-norm rows score 0 against everything.
    """
    if not sources or not others:
        return np.zeros((len(sources), len(others)))

    w = feature_weights(weights)
    left = feature_matrix(sources) * w
    right = feature_matrix(others) * w

    sims = cosine_similarity(left, right)
    return np.clip(np.nan_to_num(sims, nan=0.0), 0.0, 1.0)


def euclidean_distance(a: FeatureSource, b: FeatureSource) -> float:
    """Distance over valence, energy, danceability and acousticness."""
    va = normalize(as_features(a)).values[_PRIMARY_INDEX]
    vb = normalize(as_features(b)).values[_PRIMARY_INDEX]
    return float(np.linalg.norm(va - vb))


def confidence(a: FeatureSource, b: FeatureSource) -> float:
    """max(0, 1 - distance) over the primary features."""
    return max(0.0, 1.0 - euclidean_distance(a, b))
