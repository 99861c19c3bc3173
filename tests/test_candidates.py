import pytest

from vybe_recs.candidates import CandidateSource, DiversityFilter, build_search_queries
from vybe_recs.config import CandidateConfig
from vybe_recs.context import ContextWeights
from vybe_recs.errors import InvalidLimitError
from vybe_recs.scoring import ScoredCandidate

from conftest import FakeCatalog, axis_vector, candidate, make_vector

AXES = ["valence", "energy", "danceability", "acousticness", "instrumentalness", "liveness"]


def scored(track_id, artist, features, score):
    return ScoredCandidate(
        candidate=candidate(track_id, features, (artist,) if artist else ()),
        similarity=score,
        personal_affinity=0.5,
        blended_score=score,
    )


@pytest.fixture
def ranked():
    """Artist A at ranks 1, 2 and 5; all sounds mutually dissimilar."""
    rows = [("A1", "A"), ("A2", "A"), ("B3", "B"), ("C4", "C"), ("A5", "A")]
    return [
        scored(track_id, artist, axis_vector(AXES[i]), 1.0 - i * 0.1)
        for i, (track_id, artist) in enumerate(rows)
    ]


class TestDiversityFilter:
    def test_artist_variety(self, ranked):
        selected = DiversityFilter().diversify(ranked, 3)
        assert [s.track_id for s in selected] == ["A1", "B3", "C4"]

    def test_at_most_two_from_one_artist(self, ranked):
        selected = DiversityFilter().diversify(ranked, 3)
        artists = [s.candidate.primary_artist for s in selected]
        assert len(selected) == 3
        assert artists.count("A") <= 2

    @pytest.mark.parametrize("limit", [1, 2, 3, 4, 5, 8])
    def test_length(self, ranked, limit):
        assert len(DiversityFilter().diversify(ranked, limit)) == min(limit, len(ranked))

    def test_fill_pass_tops_up_near_duplicates(self):
        same = make_vector()
        ranked = [scored(f"t{i}", f"Artist {i}", same, 1.0 - i * 0.1) for i in range(4)]
        selected = DiversityFilter().diversify(ranked, 3)
        assert [s.track_id for s in selected] == ["t0", "t1", "t2"]

    def test_repeat_artist_allowed_once_enough_artists(self, ranked):
        selected = DiversityFilter().diversify(ranked, 4)
        assert [s.track_id for s in selected] == ["A1", "B3", "C4", "A5"]

    def test_fill_pass_appends_skipped_in_rank_order(self, ranked):
        selected = DiversityFilter().diversify(ranked, 5)
        assert [s.track_id for s in selected] == ["A1", "B3", "C4", "A5", "A2"]

    def test_duplicate_ids_are_dropped(self):
        entry = scored("dup", "A", make_vector(), 0.9)
        assert len(DiversityFilter().diversify([entry, entry, entry], 3)) == 1

    def test_missing_artist_is_not_a_repeat(self):
        ranked = [scored(f"t{i}", None, axis_vector(AXES[i]), 1.0) for i in range(3)]
        assert len(DiversityFilter().diversify(ranked, 3)) == 3

    def test_zero_limit(self, ranked):
        assert DiversityFilter().diversify(ranked, 0) == []

    def test_negative_limit(self, ranked):
        with pytest.raises(InvalidLimitError):
            DiversityFilter().diversify(ranked, -1)

    def test_empty_input(self):
        assert DiversityFilter().diversify([], 5) == []


class TestSearchQueries:
    def test_context_then_mood(self):
        queries = build_search_queries("late night drive", ContextWeights(valence=0.8, energy=0.8))
        assert queries == [
            "late night drive",
            "happy and energetic high energy",
            "happy and energetic music",
        ]

    def test_blank_context(self):
        queries = build_search_queries("  ", ContextWeights.neutral())
        assert queries == ["neutral medium energy", "neutral music"]

    def test_max_queries(self):
        assert build_search_queries("rain", ContextWeights.neutral(), max_queries=1) == ["rain"]


class TestCandidateSource:
    def test_generates_candidates_with_details(self, catalog):
        candidates = CandidateSource(catalog).generate_candidates(["chill"], exclude_track_ids={"ref1"})
        ids = [c.track_id for c in candidates]
        assert ids == ["c1", "c2", "c3", "c4", "c5", "c6"]
        by_id = {c.track_id: c for c in candidates}
        assert by_id["c4"].artists == ("Artist A", "Artist D")
        assert by_id["c4"].primary_artist == "Artist A"
        assert by_id["c2"].name == "Two"

    def test_deduplicates_across_queries(self):
        features = {tid: make_vector() for tid in ["x", "y", "z"]}
        catalog = FakeCatalog(features, search_results={"q1": ["x", "y"], "q2": ["y", "z", "x"]})
        candidates = CandidateSource(catalog).generate_candidates(["q1", "q2"])
        assert [c.track_id for c in candidates] == ["x", "y", "z"]

    def test_tracks_without_features_are_dropped(self):
        catalog = FakeCatalog({"x": make_vector()}, default_results=["x", "ghost"])
        candidates = CandidateSource(catalog).generate_candidates(["q"])
        assert [c.track_id for c in candidates] == ["x"]
        assert candidates[0].artists == ()

    def test_failed_query_is_skipped(self, caplog):
        catalog = FakeCatalog(
            {"x": make_vector(), "y": make_vector()},
            search_results={"good": ["x"], "bad": ["y"]},
            failing_queries={"bad"},
        )
        with caplog.at_level("WARNING", logger="vybe_recs.candidates"):
            candidates = CandidateSource(catalog).generate_candidates(["bad", "good"])
        assert [c.track_id for c in candidates] == ["x"]
        assert "bad" in caplog.text

    def test_per_query_keep(self):
        features = {f"t{i}": make_vector() for i in range(10)}
        catalog = FakeCatalog(features)
        source = CandidateSource(catalog, CandidateConfig(per_query_keep=4))
        assert len(source.generate_candidates(["q"])) == 4

    def test_feature_batches(self):
        features = {f"t{i}": make_vector() for i in range(7)}
        catalog = FakeCatalog(features)
        batches = []
        fetch = catalog.get_features

        def recording_fetch(ids):
            batches.append(list(ids))
            return fetch(ids)

        catalog.get_features = recording_fetch
        source = CandidateSource(catalog, CandidateConfig(feature_batch_size=3))
        assert len(source.generate_candidates(["q"])) == 7
        assert [len(b) for b in batches] == [3, 3, 1]

    def test_no_queries(self, catalog):
        assert CandidateSource(catalog).generate_candidates([]) == []
