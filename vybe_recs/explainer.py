"""
Explanation Generator Module
============================

Generates human-readable explanations for each recommendation.
Explanations include:
- Similarity and personal-fit percentages
- Mood, energy and danceability descriptions
- Notable sound characteristics
- A rough genre guess from audio features

The same describers name the mood and energy of a context for catalog search.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .context import ContextWeights
from .features import AudioFeatureVector
from .scoring import ScoredCandidate


def describe_mood(valence: float, energy: float) -> str:
    """Mood label from valence and energy."""
    if valence > 0.7 and energy > 0.6:
        return "happy and energetic"
    if valence > 0.6:
        return "happy"
    if valence < 0.3 and energy < 0.4:
        return "sad and mellow"
    if valence < 0.4:
        return "sad"
    if energy > 0.7:
        return "energetic"
    if energy < 0.3:
        return "calm"
    return "neutral"


def describe_energy(energy: float) -> str:
    if energy > 0.7:
        return "high"
    if energy < 0.3:
        return "low"
    return "medium"


def describe_danceability(danceability: float) -> str:
    if danceability > 0.7:
        return "very danceable"
    if danceability < 0.3:
        return "not danceable"
    return "moderate"


def describe_characteristics(features: AudioFeatureVector) -> List[str]:
    """Notable qualities worth calling out."""
    characteristics = []
    if features.acousticness > 0.7:
        characteristics.append("acoustic")
    if features.instrumentalness > 0.5:
        characteristics.append("instrumental")
    if features.liveness > 0.8:
        characteristics.append("live recording")
    if features.speechiness > 0.33:
        characteristics.append("speech-heavy")
    return characteristics


def classify_genre(features: AudioFeatureVector) -> List[Tuple[str, float]]:
    """
    Rough genre guesses from audio features alone.

    Returns:
        (genre, confidence) pairs, most confident first
    """
    f = features
    rules = [
        ("electronic", 0.8, f.energy > 0.7 and f.danceability > 0.7 and f.acousticness < 0.3),
        ("rock", 0.7, f.energy > 0.6 and f.acousticness < 0.5 and f.instrumentalness < 0.5),
        ("acoustic", 0.8, f.acousticness > 0.7 and f.energy < 0.6),
        ("classical", 0.9, f.instrumentalness > 0.8 and f.acousticness > 0.3),
        ("hip-hop", 0.7, f.speechiness > 0.33 and f.energy > 0.5),
        ("pop", 0.6, f.valence > 0.5 and f.energy > 0.4 and f.danceability > 0.5),
        ("ambient", 0.7, f.energy < 0.4 and f.valence < 0.6 and f.acousticness > 0.4),
    ]
    matches = [(genre, conf) for genre, conf, hit in rules if hit]
    return sorted(matches, key=lambda m: m[1], reverse=True)


@dataclass
class DetailedExplanation:
    """Comprehensive explanation for a recommendation."""
    track_id: str
    summary: str

    reasoning: str = ""
    mood: str = ""
    energy: str = ""
    danceability: str = ""
    characteristics: List[str] = field(default_factory=list)
    genres: List[str] = field(default_factory=list)

    confidence_score: float = 0.0
    primary_signal: str = ""

    def to_dict(self) -> Dict:
        return {
            "summary": self.summary,
            "reasoning": self.reasoning,
            "mood": self.mood,
            "energy": self.energy,
            "danceability": self.danceability,
            "characteristics": self.characteristics,
            "genres": self.genres,
            "confidence": round(self.confidence_score, 2),
            "primary_signal": self.primary_signal,
        }


def track_reasoning(similarity: float, personal_affinity: float) -> str:
    return f"Similarity: {similarity * 100:.1f}%, Personal fit: {personal_affinity * 100:.1f}%"


def recommendation_reasoning(weights: ContextWeights, interaction_count: int) -> str:
    """One line describing how a whole recommendation set was produced."""
    mood = describe_mood(weights.valence, weights.energy)
    return (
        f'Analyzed context "{mood}" with {interaction_count} personal '
        f"interactions to create individual recommendations."
    )


class ExplanationGenerator:
    """
    Generates human-readable explanations for recommendations.

    Focuses on:
    - Clarity: Easy to understand for non-technical users
    - Relevance: Says whether context or personal taste carried the pick
    """

    def generate_explanation(self, scored: ScoredCandidate) -> DetailedExplanation:
        """
        Generate comprehensive explanation for a recommendation.

        Args:
            scored: Ranked candidate

        Returns:
            DetailedExplanation instance
        """
        features = scored.candidate.features

        explanation = DetailedExplanation(
            track_id=scored.track_id,
            summary="",
            reasoning=track_reasoning(scored.similarity, scored.personal_affinity),
            mood=describe_mood(features.valence, features.energy),
            energy=describe_energy(features.energy),
            danceability=describe_danceability(features.danceability),
            characteristics=describe_characteristics(features),
            genres=[genre for genre, _ in classify_genre(features)],
            confidence_score=scored.confidence,
        )

        # Affinity sits at exactly neutral without usable history
        if scored.personal_affinity > scored.similarity:
            explanation.primary_signal = "personal"
        else:
            explanation.primary_signal = "context"

        explanation.summary = self._generate_summary(explanation)
        return explanation

    def _generate_summary(self, explanation: DetailedExplanation) -> str:
        """Generate concise summary sentence."""
        if explanation.primary_signal == "personal":
            lead = "Close to tracks you've liked before"
        else:
            lead = "Fits the vibe you described"

        details = [f"{explanation.mood} mood", f"{explanation.energy} energy"]
        details.extend(explanation.characteristics[:2])
        return f"{lead}: {', '.join(details)}."
