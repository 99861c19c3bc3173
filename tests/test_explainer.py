import pytest

from vybe_recs.context import ContextWeights
from vybe_recs.explainer import (
    ExplanationGenerator,
    classify_genre,
    describe_characteristics,
    describe_danceability,
    describe_energy,
    describe_mood,
    recommendation_reasoning,
    track_reasoning,
)
from vybe_recs.scoring import ScoredCandidate

from conftest import candidate, make_vector


@pytest.mark.parametrize("valence,energy,mood", [
    (0.8, 0.8, "happy and energetic"),
    (0.65, 0.2, "happy"),
    (0.2, 0.3, "sad and mellow"),
    (0.35, 0.9, "sad"),
    (0.5, 0.8, "energetic"),
    (0.5, 0.2, "calm"),
    (0.5, 0.5, "neutral"),
])
def test_describe_mood(valence, energy, mood):
    assert describe_mood(valence, energy) == mood


def test_levels():
    assert describe_energy(0.9) == "high"
    assert describe_energy(0.1) == "low"
    assert describe_energy(0.7) == "medium"
    assert describe_danceability(0.8) == "very danceable"
    assert describe_danceability(0.2) == "not danceable"


def test_characteristics():
    features = make_vector(acousticness=0.9, instrumentalness=0.6, liveness=0.85, speechiness=0.4)
    assert describe_characteristics(features) == ["acoustic", "instrumental", "live recording", "speech-heavy"]
    assert describe_characteristics(make_vector()) == []


def test_classify_genre_orders_by_confidence():
    genres = classify_genre(make_vector(valence=0.8, energy=0.85, danceability=0.8, acousticness=0.1))
    assert genres[0] == ("electronic", 0.8)
    assert [g for g, _ in genres] == ["electronic", "rock", "pop"]


def test_track_reasoning():
    assert track_reasoning(0.9, 0.5) == "Similarity: 90.0%, Personal fit: 50.0%"


def test_recommendation_reasoning():
    text = recommendation_reasoning(ContextWeights(valence=0.2, energy=0.2), 4)
    assert text == 'Analyzed context "sad and mellow" with 4 personal interactions to create individual recommendations.'


class TestExplanationGenerator:
    def _scored(self, similarity, affinity, **features):
        return ScoredCandidate(
            candidate=candidate("t1", make_vector(**features), ("Artist",)),
            similarity=similarity,
            personal_affinity=affinity,
            blended_score=0.7 * similarity + 0.3 * affinity,
            confidence=0.8,
        )

    def test_context_driven(self):
        explanation = ExplanationGenerator().generate_explanation(
            self._scored(0.9, 0.5, valence=0.2, energy=0.2, acousticness=0.9)
        )
        assert explanation.primary_signal == "context"
        assert explanation.summary == "Fits the vibe you described: sad and mellow mood, low energy, acoustic."
        assert explanation.confidence_score == 0.8
        assert explanation.to_dict()["reasoning"] == "Similarity: 90.0%, Personal fit: 50.0%"

    def test_history_driven(self):
        explanation = ExplanationGenerator().generate_explanation(self._scored(0.4, 0.95))
        assert explanation.primary_signal == "personal"
        assert explanation.summary.startswith("Close to tracks you've liked before")
