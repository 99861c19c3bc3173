import csv
import io
import json

import pytest

from vybe_recs.cli import clear_caches, create_parser, format_output, invalid_references, main
from vybe_recs.context import ContextWeights
from vybe_recs.recommender import RecommendationOutput, RecommendationResult
from vybe_recs.utils import Cache

TRACK_ID = "4uLU6hMCjMI75M1A2tKUQC"


@pytest.fixture
def output():
    return RecommendationOutput(
        listener_id="u1",
        context_text="rainy sunday",
        context_weights=ContextWeights(valence=0.3, energy=0.2),
        reference_track_ids=["ref1"],
        recommendations=[
            RecommendationResult(
                track_id="t1",
                track_name='Say "Hello", Again',
                artist_names=["Artist A", "Artist B"],
                score=0.81234,
                explanation="Fits the vibe you described: calm mood, low energy.",
                reasoning="Similarity: 90.0%, Personal fit: 50.0%",
            ),
        ],
        used_neutral_context=True,
    )


def test_json_format(output):
    data = json.loads(format_output(output, "json"))
    assert data["context"] == "rainy sunday"
    assert data["recommendations"][0]["score"] == 0.8123


def test_csv_format(output):
    rows = list(csv.reader(io.StringIO(format_output(output, "csv"))))
    assert rows[0] == ["track_id", "track_name", "artists", "score", "explanation"]
    assert rows[1][:4] == ["t1", 'Say "Hello", Again', "Artist A;Artist B", "0.8123"]


def test_simple_format(output):
    text = format_output(output, "simple")
    assert "Recommendations for: rainy sunday" in text
    assert "neutral weights used" in text
    assert " 1. Say \"Hello\", Again" in text
    assert "Personal fit: 50.0%" in text


def test_parser():
    args = create_parser().parse_args(["ref1", "ref2", "-c", "gym", "-n", "5", "--format", "csv"])
    assert args.references == ["ref1", "ref2"]
    assert args.context == "gym"
    assert args.num == 5
    assert args.format == "csv"
    assert args.listener == "anonymous"


def test_context_is_required():
    with pytest.raises(SystemExit):
        create_parser().parse_args(["ref1"])


def test_missing_credentials(monkeypatch, capsys):
    monkeypatch.delenv("SPOTIFY_CLIENT_ID", raising=False)
    monkeypatch.delenv("SPOTIFY_CLIENT_SECRET", raising=False)
    assert main([TRACK_ID, "-c", "gym"]) == 1
    assert "credentials" in capsys.readouterr().err


def test_invalid_references():
    refs = [f"https://open.spotify.com/track/{TRACK_ID}?si=x", f"spotify:track:{TRACK_ID}", "not-a-track"]
    assert invalid_references(refs) == ["not-a-track"]


def test_invalid_reference_is_rejected_before_any_request(monkeypatch, capsys):
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "id")
    monkeypatch.setenv("SPOTIFY_CLIENT_SECRET", "secret")
    assert main(["ref1", "-c", "gym"]) == 1
    assert "not a Spotify track" in capsys.readouterr().err


def test_clear_caches(tmp_path):
    Cache(str(tmp_path)).set("audio_features_abc", [])
    Cache(str(tmp_path / "context")).set("k", {"valence": 0.3})
    assert clear_caches(str(tmp_path)) == 2
    assert list(tmp_path.glob("**/*.json")) == []
