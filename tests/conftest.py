from datetime import datetime, timedelta, timezone

import pytest

from vybe_recs.features import AudioFeatureVector, Candidate
from vybe_recs.feedback import UPVOTE, FeedbackEvent
from vybe_recs.spotify_client import TrackInfo

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_vector(**overrides) -> AudioFeatureVector:
    """A mid-range track; override any field."""
    values = dict(
        valence=0.5,
        energy=0.6,
        danceability=0.55,
        acousticness=0.3,
        instrumentalness=0.1,
        liveness=0.15,
        speechiness=0.05,
        tempo=118.0,
        loudness=-7.0,
        mode=1,
        key=5,
        time_signature=4,
    )
    values.update(overrides)
    return AudioFeatureVector(**values)


def axis_vector(name: str) -> AudioFeatureVector:
    """Only ``name`` is non-zero after normalization."""
    values = dict(tempo=0.0, loudness=-60.0, mode=0, key=0)
    values[name] = 1.0
    return AudioFeatureVector(**values)


def make_event(features, signed_score=UPVOTE, days_ago=0.0, track_id="liked", context_text=None):
    return FeedbackEvent(
        track_id=track_id,
        features=features,
        signed_score=signed_score,
        listen_seconds=30.0,
        timestamp=NOW - timedelta(days=days_ago),
        context_text=context_text,
    )


class FakeCatalog:
    """In-memory catalog; every query returns ``default_results`` unless mapped."""

    def __init__(self, features, track_info=None, search_results=None, default_results=None,
                 failing_queries=()):
        self.features = dict(features)
        self.track_info = dict(track_info or {})
        self.search_results = dict(search_results or {})
        self.default_results = list(default_results if default_results is not None else self.features)
        self.failing_queries = set(failing_queries)
        self.queries = []

    def search_tracks(self, query, limit=50):
        self.queries.append(query)
        if query in self.failing_queries:
            raise RuntimeError(f"search failed for {query}")
        return list(self.search_results.get(query, self.default_results))[:limit]

    def get_features(self, track_ids):
        return {tid: self.features[tid] for tid in track_ids if tid in self.features}

    def get_track_info(self, track_ids):
        return {tid: self.track_info[tid] for tid in track_ids if tid in self.track_info}


class CountingInterpreter:
    def __init__(self, weights=None, error=None):
        self.weights = weights
        self.error = error
        self.calls = 0

    def interpret(self, text, prior_preferences=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.weights


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def reference_vector():
    return make_vector()


@pytest.fixture
def catalog():
    """A reference track plus six candidates across four artists."""
    features = {
        "ref1": make_vector(),
        "c1": make_vector(valence=0.55, energy=0.62),
        "c2": make_vector(valence=0.9, energy=0.2, acousticness=0.9, tempo=80.0),
        "c3": make_vector(valence=0.1, energy=0.95, danceability=0.9, tempo=170.0, loudness=-3.0),
        "c4": make_vector(instrumentalness=0.95, speechiness=0.6, mode=0, key=0),
        "c5": make_vector(valence=0.3, liveness=0.95, danceability=0.1),
        "c6": make_vector(valence=0.48, energy=0.58),
    }
    info = {
        "ref1": TrackInfo("Reference", ("Artist R",)),
        "c1": TrackInfo("One", ("Artist A",)),
        "c2": TrackInfo("Two", ("Artist B",)),
        "c3": TrackInfo("Three", ("Artist C",)),
        "c4": TrackInfo("Four", ("Artist A", "Artist D")),
        "c5": TrackInfo("Five", ("Artist D",)),
        "c6": TrackInfo("Six", ("Artist A",)),
    }
    return FakeCatalog(features, info)


def candidate(track_id, features=None, artists=()):
    return Candidate(track_id=track_id, features=features or make_vector(), artists=tuple(artists))
