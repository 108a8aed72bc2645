"""Tests for enrollment, the universal model and identification."""
import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from conftest import SAMPLE_RATE, PassThroughProcessor, synth_voice, write_wav
from voxprint.audio.decoders import LibrosaAudioDecoder
from voxprint.core.exceptions import (
    DimensionMismatchError,
    DuplicateKeyError,
    EmptyStoreError,
    InvalidArgumentError,
    UnknownKeyError,
)
from voxprint.core.matching_engine import MatchingEngine, compute_likelihood
from voxprint.models.distance import ManhattanDistanceCalculator
from voxprint.models.voice_print import VoicePrint


def ones(value: float, size: int = 20) -> np.ndarray:
    return np.full(size, value)


# ═══════════════════════════════════════════════════════════════════════════
# Likelihood
# ═══════════════════════════════════════════════════════════════════════════

class TestLikelihood:
    def test_exact_match(self):
        assert compute_likelihood(0.0, 2.0) == 100

    def test_equidistant(self):
        assert compute_likelihood(1.0, 1.0) == 50

    def test_percentage_truncated(self):
        # 100 * 1 / 8 = 12.5 -> 12
        assert compute_likelihood(1.0, 7.0) == 88

    def test_two_thirds_truncated(self):
        # 100 * 2 / 3 = 66.67 -> 66
        assert compute_likelihood(2.0, 1.0) == 34

    def test_all_distances_zero(self):
        assert compute_likelihood(0.0, 0.0) == 100

    def test_far_from_print(self):
        assert compute_likelihood(5.0, 0.0) == 0


# ═══════════════════════════════════════════════════════════════════════════
# Construction
# ═══════════════════════════════════════════════════════════════════════════

class TestConstruction:
    @pytest.mark.parametrize("rate", [None, 0, 7999])
    def test_sample_rate_floor(self, rate):
        with pytest.raises(InvalidArgumentError):
            MatchingEngine(rate, audio_processor=PassThroughProcessor())

    def test_empty_engine(self, vector_engine):
        assert len(vector_engine) == 0
        assert vector_engine.get_universal_model() is None
        assert not vector_engine.is_universal_model_frozen

    def test_seeded_model_is_weighted_average(self):
        prints = {"alice": VoicePrint(ones(1.0), weight=3), "bob": VoicePrint(ones(5.0), weight=1)}
        engine = MatchingEngine(SAMPLE_RATE, prints, audio_processor=PassThroughProcessor())
        model = engine.get_universal_model()
        np.testing.assert_allclose(model.features, ones(2.0))
        assert model.weight == 4
        assert sorted(engine.keys()) == ["alice", "bob"]

    def test_seed_prints_are_copied(self):
        alice = VoicePrint(ones(1.0))
        engine = MatchingEngine(SAMPLE_RATE, {"alice": alice}, audio_processor=PassThroughProcessor())
        alice.merge(ones(3.0))
        assert engine.get_voice_print("alice") == VoicePrint(ones(1.0))

    def test_distance_from_config(self):
        engine = MatchingEngine(SAMPLE_RATE, config={"distance": "manhattan"},
                                audio_processor=PassThroughProcessor())
        assert isinstance(engine.calculator, ManhattanDistanceCalculator)

    def test_decoder_with_custom_processor_rejected(self):
        with pytest.raises(InvalidArgumentError, match="decoder"):
            MatchingEngine(SAMPLE_RATE, audio_processor=PassThroughProcessor(),
                           decoder=LibrosaAudioDecoder())


# ═══════════════════════════════════════════════════════════════════════════
# Enrollment
# ═══════════════════════════════════════════════════════════════════════════

class TestEnrollment:
    def test_alice_and_bob(self, vector_engine):
        vector_engine.create_voice_print("alice", ones(1.0))
        vector_engine.create_voice_print("bob", ones(2.0))

        np.testing.assert_allclose(vector_engine.get_universal_model().features, ones(1.5))

        matches = vector_engine.identify(ones(1.0))
        assert [m.key for m in matches] == ["alice", "bob"]
        assert matches[0].distance == 0.0
        assert matches[0].likelihood == 100
        assert matches[1].distance == pytest.approx(np.sqrt(20))
        assert matches[1].likelihood == 34

    def test_returned_print_is_a_copy(self, vector_engine):
        returned = vector_engine.create_voice_print("alice", ones(1.0))
        returned.merge(ones(9.0))
        assert vector_engine.get_voice_print("alice").weight == 1

    def test_none_key(self, vector_engine):
        with pytest.raises(InvalidArgumentError):
            vector_engine.create_voice_print(None, ones(1.0))

    def test_duplicate_key_leaves_state_unchanged(self, vector_engine):
        vector_engine.create_voice_print("alice", ones(1.0))
        with pytest.raises(DuplicateKeyError, match="alice"):
            vector_engine.create_voice_print("alice", ones(5.0))
        assert len(vector_engine) == 1
        assert vector_engine.get_universal_model() == VoicePrint(ones(1.0))

    def test_merge_updates_print_and_model(self, vector_engine):
        vector_engine.create_voice_print("alice", ones(1.0))
        vector_engine.create_voice_print("bob", ones(4.0))
        merged = vector_engine.merge_voice_sample("alice", ones(3.0))

        np.testing.assert_allclose(merged.features, ones(2.0))
        assert merged.weight == 2
        model = vector_engine.get_universal_model()
        np.testing.assert_allclose(model.features, ones(8.0 / 3.0))
        assert model.weight == 3

    def test_merge_unknown_key(self, vector_engine):
        vector_engine.create_voice_print("alice", ones(1.0))
        with pytest.raises(UnknownKeyError, match="carol"):
            vector_engine.merge_voice_sample("carol", ones(1.0))
        assert vector_engine.get_universal_model().weight == 1

    def test_dimension_mismatch_rejected_before_any_change(self, vector_engine):
        vector_engine.create_voice_print("alice", ones(1.0))
        with pytest.raises(DimensionMismatchError):
            vector_engine.create_voice_print("bob", ones(1.0, size=10))
        with pytest.raises(DimensionMismatchError):
            vector_engine.merge_voice_sample("alice", ones(1.0, size=10))
        assert vector_engine.keys() == ["alice"]
        assert vector_engine.get_voice_print("alice").weight == 1
        assert vector_engine.get_universal_model().weight == 1


# ═══════════════════════════════════════════════════════════════════════════
# Universal model
# ═══════════════════════════════════════════════════════════════════════════

class TestUniversalModel:
    def test_set_model_freezes_it(self, vector_engine):
        vector_engine.create_voice_print("alice", ones(1.0))
        vector_engine.set_universal_model(VoicePrint(ones(10.0)))
        assert vector_engine.is_universal_model_frozen

        vector_engine.create_voice_print("bob", ones(2.0))
        vector_engine.merge_voice_sample("alice", ones(3.0))
        assert vector_engine.get_universal_model() == VoicePrint(ones(10.0))

    def test_set_model_copies_argument(self, vector_engine):
        model = VoicePrint(ones(10.0))
        vector_engine.set_universal_model(model)
        model.merge(ones(0.0))
        assert vector_engine.get_universal_model() == VoicePrint(ones(10.0))

    def test_get_model_returns_copy(self, vector_engine):
        vector_engine.create_voice_print("alice", ones(1.0))
        vector_engine.get_universal_model().merge(ones(100.0))
        assert vector_engine.get_universal_model() == VoicePrint(ones(1.0))

    def test_set_none(self, vector_engine):
        with pytest.raises(InvalidArgumentError):
            vector_engine.set_universal_model(None)

    def test_frozen_model_drives_likelihood(self, vector_engine):
        vector_engine.create_voice_print("alice", [0.0])
        vector_engine.set_universal_model(VoicePrint([4.0]))
        # query at 1: d = 1, d_um = 3 -> 100 - 25
        assert vector_engine.identify([1.0])[0].likelihood == 75


# ═══════════════════════════════════════════════════════════════════════════
# Identification
# ═══════════════════════════════════════════════════════════════════════════

class TestIdentify:
    def test_empty_store(self, vector_engine):
        with pytest.raises(EmptyStoreError):
            vector_engine.identify(ones(1.0))

    def test_sorted_by_distance(self, vector_engine):
        rng = np.random.default_rng(4)
        for i in range(8):
            vector_engine.create_voice_print(f"user{i}", rng.standard_normal(20))
        matches = vector_engine.identify(rng.standard_normal(20))
        distances = [m.distance for m in matches]
        assert distances == sorted(distances)
        assert all(0 <= m.likelihood <= 100 for m in matches)
        assert len(matches) == 8

    def test_identify_does_not_change_state(self, vector_engine):
        vector_engine.create_voice_print("alice", ones(1.0))
        vector_engine.identify(ones(7.0))
        assert vector_engine.get_universal_model().weight == 1
        assert vector_engine.get_voice_print("alice") == VoicePrint(ones(1.0))

    def test_file_helpers(self, pass_through):
        engine = MatchingEngine(SAMPLE_RATE, audio_processor=pass_through)
        pass_through.files.update({"a.wav": ones(1.0), "b.wav": ones(2.0), "query.wav": ones(1.1)})
        engine.create_voice_print_from_file("alice", "a.wav")
        engine.create_voice_print_from_file("bob", "b.wav")
        engine.merge_voice_sample_from_file("alice", "a.wav")
        assert engine.identify_file("query.wav")[0].key == "alice"

        with pytest.raises(DuplicateKeyError):
            engine.create_voice_print_from_file("alice", "missing.wav")
        with pytest.raises(UnknownKeyError):
            engine.merge_voice_sample_from_file("carol", "missing.wav")

    def test_statistics(self, vector_engine):
        vector_engine.create_voice_print("alice", ones(1.0))
        vector_engine.merge_voice_sample("alice", ones(1.0))
        stats = vector_engine.get_statistics()
        assert stats["total_users"] == 1
        assert stats["total_samples"] == 2
        assert stats["feature_size"] == 20
        assert stats["universal_model_weight"] == 2


# ═══════════════════════════════════════════════════════════════════════════
# Concurrency
# ═══════════════════════════════════════════════════════════════════════════

class TestConcurrency:
    def test_distinct_keys_average_into_model(self, vector_engine):
        rng = np.random.default_rng(5)
        vectors = rng.standard_normal((64, 20))
        barrier = threading.Barrier(8)

        def enroll(i):
            if i < 8:
                barrier.wait()
            vector_engine.create_voice_print(f"user{i}", vectors[i])

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(enroll, range(64)))

        assert len(vector_engine) == 64
        model = vector_engine.get_universal_model()
        assert model.weight == 64
        np.testing.assert_allclose(model.features, vectors.mean(axis=0), atol=1e-9)

    def test_same_key_enrolled_once(self, vector_engine):
        barrier = threading.Barrier(8)

        def enroll(i):
            barrier.wait()
            try:
                vector_engine.create_voice_print("alice", ones(float(i)))
                return "ok"
            except DuplicateKeyError:
                return "duplicate"

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(enroll, range(8)))

        assert outcomes.count("ok") == 1
        assert outcomes.count("duplicate") == 7
        assert len(vector_engine) == 1
        assert vector_engine.get_universal_model().weight == 1

    def test_identify_during_merges(self, vector_engine):
        vector_engine.create_voice_print("alice", ones(1.0))
        vector_engine.create_voice_print("bob", ones(3.0))

        def merge(_):
            vector_engine.merge_voice_sample("alice", ones(1.0))

        def identify(_):
            return vector_engine.identify(ones(1.0))[0].key

        with ThreadPoolExecutor(max_workers=8) as pool:
            merges = [pool.submit(merge, i) for i in range(50)]
            results = [pool.submit(identify, i) for i in range(50)]
            for future in merges:
                future.result()
            keys = [future.result() for future in results]

        assert set(keys) == {"alice"}
        assert vector_engine.get_voice_print("alice").weight == 51
        assert vector_engine.get_universal_model().weight == 52


# ═══════════════════════════════════════════════════════════════════════════
# End to end with real audio processing
# ═══════════════════════════════════════════════════════════════════════════

class TestRealVoices:
    def test_identifies_enrolled_speaker(self):
        engine = MatchingEngine(SAMPLE_RATE)
        engine.create_voice_print("speaker_a", synth_voice("speaker_a", seed=31))
        engine.merge_voice_sample("speaker_a", synth_voice("speaker_a", seed=32))
        engine.create_voice_print("speaker_b", synth_voice("speaker_b", seed=33))

        matches = engine.identify(synth_voice("speaker_a", seed=34))
        assert matches[0].key == "speaker_a"
        assert matches[0].likelihood > matches[1].likelihood

        matches = engine.identify(synth_voice("speaker_b", seed=35))
        assert matches[0].key == "speaker_b"

    def test_identifies_from_files(self, tmp_path):
        engine = MatchingEngine(SAMPLE_RATE)
        engine.create_voice_print_from_file(
            "speaker_a", write_wav(tmp_path / "a.wav", synth_voice("speaker_a", seed=41)))
        engine.create_voice_print_from_file(
            "speaker_b", write_wav(tmp_path / "b.wav", synth_voice("speaker_b", seed=42)))

        query = write_wav(tmp_path / "query.wav", synth_voice("speaker_b", seed=43))
        assert engine.identify_file(query)[0].key == "speaker_b"
