"""
Vybe Recs - Context-Aware Personal Recommendation System
========================================================

Recommends tracks from 1-5 reference tracks, a free-text listening
situation and the listener's own feedback history. No cross-user signal is
ever used.

Modules:
    - config: Configuration and constants
    - errors: Exception hierarchy
    - features: Audio feature vectors, normalization and reference profiles
    - context: Context weights, their application and interpreter adapters
    - similarity: Weighted cosine similarity and confidence
    - feedback: Feedback events and stores
    - personalization: Individual preference model
    - scoring: Candidate ranking
    - candidates: Candidate generation and diversification
    - learning: Per-listener context weight learning
    - recommender: Main recommendation orchestrator
    - explainer: Explanation generation
    - spotify_client: Spotify catalog adapter
    - cli: Command-line interface
"""

from .context import ContextWeights, WeightedProfile, apply_context_weights
from .features import (
    AudioFeatureVector,
    Candidate,
    ReferenceProfile,
    build_reference_profile,
    normalize,
)
from .feedback import FeedbackEvent
from .recommender import RecommendationEngine, RecommendationRun, generate_recommendations
from .scoring import ScoredCandidate

__version__ = "1.0.0"
__author__ = "Vybe Team"

__all__ = [
    "AudioFeatureVector",
    "Candidate",
    "ContextWeights",
    "FeedbackEvent",
    "RecommendationEngine",
    "RecommendationRun",
    "ReferenceProfile",
    "ScoredCandidate",
    "WeightedProfile",
    "apply_context_weights",
    "build_reference_profile",
    "generate_recommendations",
    "normalize",
]
