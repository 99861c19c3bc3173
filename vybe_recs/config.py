"""
Configuration and constants for the Vybe Recs recommendation system.
"""
import os
from dataclasses import dataclass
from typing import Dict, List

# =============================================================================
# SPOTIFY API CONFIGURATION
# =============================================================================
SPOTIFY_CLIENT_ID = os.environ.get("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.environ.get("SPOTIFY_CLIENT_SECRET", "")

# =============================================================================
# LOGGING
# =============================================================================
LOG_LEVEL = os.environ.get("VYBE_LOG_LEVEL", "INFO")

# =============================================================================
# AUDIO FEATURE CONFIGURATION
# =============================================================================
# Features that live in [0, 1]
BOUNDED_FEATURES = [
    "valence",
    "energy",
    "danceability",
    "acousticness",
    "instrumentalness",
    "liveness",
    "speechiness",
]

# Averaged when building a reference profile
CONTINUOUS_FEATURES = BOUNDED_FEATURES + ["tempo", "loudness"]

# Statistical mode when building a reference profile
CATEGORICAL_FEATURES = ["mode", "key", "time_signature"]

# The four perceptual features a context can push around
PRIMARY_FEATURES = ["valence", "energy", "danceability", "acousticness"]

# Order of the normalized vector used for similarity math
SIMILARITY_FEATURES = [
    "valence",
    "energy",
    "danceability",
    "acousticness",
    "instrumentalness",
    "liveness",
    "speechiness",
    "tempo",
    "loudness",
    "mode",
    "key",
]

TEMPO_DIVISOR = 200.0     # BPM
LOUDNESS_FLOOR_DB = -60.0
KEY_DIVISOR = 11.0

VALID_TIME_SIGNATURES = (3, 4, 5, 6, 7)

# =============================================================================
# SIMILARITY WEIGHTS
# =============================================================================
# Used for the primary features when no context weights are supplied
DEFAULT_PRIMARY_WEIGHTS: Dict[str, float] = {
    "valence": 0.8,
    "energy": 0.8,
    "danceability": 0.7,
    "acousticness": 0.6,
}

# Fixed weights for the secondary features
SECONDARY_WEIGHTS: Dict[str, float] = {
    "instrumentalness": 0.4,
    "liveness": 0.3,
    "speechiness": 0.3,
    "tempo": 0.5,
    "loudness": 0.2,
    "mode": 0.3,
    "key": 0.2,
}

# =============================================================================
# CONTEXT WEIGHTS
# =============================================================================
NEUTRAL_WEIGHT = 0.5
NEUTRAL_TEMPO_MODIFIER = 1.0
TEMPO_MODIFIER_RANGE = (0.5, 2.0)

# Scales how far a context weight can move a feature away from the reference
CONTEXT_PERTURBATION_GAIN = 0.5

# Interpreted contexts kept in memory by CachedContextInterpreter
CONTEXT_MEMORY_SIZE = 256

# =============================================================================
# RANKING CONFIGURATION
# =============================================================================
@dataclass
class RankingConfig:
    """Blend between reference/context fit and personal history."""
    similarity_weight: float = 0.7
    affinity_weight: float = 0.3

    def to_dict(self) -> Dict[str, float]:
        return {
            "similarity_weight": self.similarity_weight,
            "affinity_weight": self.affinity_weight,
        }

DEFAULT_RANKING_CONFIG = RankingConfig()

# =============================================================================
# DIVERSITY CONFIGURATION
# =============================================================================
@dataclass
class DiversityConfig:
    """Configuration for post-ranking diversification."""
    # Candidates more similar than this to a selected track are skipped
    max_similarity: float = 0.85

    # Fraction of the limit that must be distinct artists before repeats are allowed
    min_artist_ratio: float = 0.5

    # Ranked pool handed to the diversifier, as a multiple of the limit
    pool_multiplier: int = 2

DEFAULT_DIVERSITY_CONFIG = DiversityConfig()

# =============================================================================
# PERSONALIZATION CONFIGURATION
# =============================================================================
@dataclass
class PersonalizationConfig:
    """Configuration for the individual preference model."""
    # exp(-days / decay_days)
    decay_days: float = 30.0

    # Score for listeners with no usable history
    neutral_score: float = 0.5

    # Most recent feedback events loaded per request
    history_limit: int = 500

DEFAULT_PERSONALIZATION_CONFIG = PersonalizationConfig()

# =============================================================================
# LEARNING CONFIGURATION
# =============================================================================
@dataclass
class LearningConfig:
    """Configuration for context weight learning."""
    learning_rate: float = 0.3

    # Step applied by engagement-driven adjustment
    engagement_factor: float = 0.1

    # Minimum TF-IDF cosine for two contexts to count as similar
    memory_threshold: float = 0.5

    # Remembered contexts per listener, least recently used dropped first
    max_contexts: int = 200

    # Listeners whose context memory is kept in process
    max_listeners: int = 1000

DEFAULT_LEARNING_CONFIG = LearningConfig()

# =============================================================================
# CANDIDATE GENERATION CONFIGURATION
# =============================================================================
@dataclass
class CandidateConfig:
    """Configuration for candidate track generation."""
    # Number of search queries issued per request
    max_queries: int = 3

    # Tracks requested per search query
    search_limit: int = 50

    # Tracks kept per search query
    per_query_keep: int = 30

    # Spotify API limit for audio features per request
    feature_batch_size: int = 100

    # Concurrent search requests
    max_workers: int = 4

DEFAULT_CANDIDATE_CONFIG = CandidateConfig()

# =============================================================================
# CACHING CONFIGURATION
# =============================================================================
CACHE_DIR = os.environ.get(
    "VYBE_CACHE_DIR",
    os.path.join(os.path.dirname(__file__), ".cache"),
)
CACHE_TTL_HOURS = 24  # Cache time-to-live

# =============================================================================
# OUTPUT CONFIGURATION
# =============================================================================
NUM_RECOMMENDATIONS = 20
MAX_REFERENCE_TRACKS = 5
OUTPUT_FORMATS: List[str] = ["json", "csv", "simple"]
