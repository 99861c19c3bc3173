import math

import pytest

from vybe_recs.errors import InsufficientInputError, TooManyReferencesError
from vybe_recs.features import (
    AudioFeatureVector,
    build_reference_profile,
    normalize,
    validate_reference_count,
)

from conftest import make_vector


class TestAudioFeatureVector:
    def test_from_dict_clamps_bounded_fields(self):
        vector = AudioFeatureVector.from_dict({
            "valence": 1.7,
            "energy": -0.2,
            "danceability": float("nan"),
            "tempo": 120,
        })
        assert vector.valence == 1.0
        assert vector.energy == 0.0
        assert vector.danceability == 0.0
        assert vector.tempo == 120.0

    def test_missing_fields_default(self):
        vector = AudioFeatureVector.from_dict({"valence": None})
        assert vector.valence == 0.0
        assert vector.mode == 0
        assert vector.time_signature == 4

    def test_none_payload(self):
        assert AudioFeatureVector.from_dict(None) == AudioFeatureVector()

    def test_time_signature_keys(self):
        assert AudioFeatureVector.from_dict({"timeSignature": 3}).time_signature == 3
        assert AudioFeatureVector.from_dict({"time_signature": 9}).time_signature == 4

    def test_categorical_fields_are_coerced(self):
        vector = AudioFeatureVector(mode=0.9, key=14)
        assert vector.mode == 1
        assert vector.key == 11

    def test_negative_tempo_floored(self):
        assert AudioFeatureVector(tempo=-10).tempo == 0.0

    def test_spotify_payload_extra_keys_ignored(self):
        vector = AudioFeatureVector.from_dict({
            "id": "abc", "type": "audio_features", "valence": 0.4, "loudness": -8.5,
        })
        assert vector.valence == 0.4
        assert vector.loudness == -8.5


def test_normalize_maps_unbounded_fields():
    normalized = normalize(make_vector(tempo=120.0, loudness=-30.0, key=11, valence=0.25))
    assert normalized["tempo"] == pytest.approx(0.6)
    assert normalized["loudness"] == pytest.approx(0.5)
    assert normalized["key"] == pytest.approx(1.0)
    assert normalized["valence"] == 0.25
    assert len(normalized.as_dict()) == len(normalized.values)


def test_normalize_silence_floor_is_zero():
    assert normalize(make_vector(loudness=-60.0))["loudness"] == 0.0


class TestReferenceProfile:
    def test_identical_vectors_give_that_vector(self):
        v = make_vector()
        profile = build_reference_profile([v, v])
        assert profile.features == v
        assert profile.track_count == 2

    def test_continuous_fields_are_averaged(self):
        profile = build_reference_profile([
            make_vector(valence=0.2, tempo=100.0),
            make_vector(valence=0.6, tempo=140.0),
        ])
        assert profile.features.valence == pytest.approx(0.4)
        assert profile.features.tempo == pytest.approx(120.0)

    def test_categorical_fields_take_the_mode(self):
        profile = build_reference_profile([
            make_vector(key=5, mode=0),
            make_vector(key=7, mode=1),
            make_vector(key=5, mode=0),
        ])
        assert profile.features.key == 5
        assert profile.features.mode == 0

    def test_mode_ties_go_to_first_seen(self):
        profile = build_reference_profile([make_vector(key=2), make_vector(key=9)])
        assert profile.features.key == 2

    def test_empty_input_raises(self):
        with pytest.raises(InsufficientInputError):
            build_reference_profile([])

    def test_insufficient_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            build_reference_profile(iter(()))

    def test_profile_is_finite(self):
        profile = build_reference_profile([make_vector(), make_vector(loudness=-20.0)])
        assert all(math.isfinite(v) for v in profile.features.to_dict().values())


@pytest.mark.parametrize("count", [1, 3, 5])
def test_reference_count_within_bounds(count):
    validate_reference_count(count)


def test_reference_count_bounds():
    with pytest.raises(InsufficientInputError):
        validate_reference_count(0)
    with pytest.raises(TooManyReferencesError):
        validate_reference_count(6)
