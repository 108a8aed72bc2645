"""Shared fixtures: synthetic voices, WAV files and a pass-through extractor."""
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf
from scipy.signal import lfilter


SAMPLE_RATE = 16000


def resonator(pole_radius: float, pole_angle: float) -> np.ndarray:
    """Denominator of a two-pole resonator filter."""
    return np.array([1.0, -2.0 * pole_radius * np.cos(pole_angle), pole_radius ** 2])


# Two "speakers" with distinct vocal tract resonances
SPEAKER_FILTERS = {
    "speaker_a": resonator(0.9, 0.15 * np.pi),
    "speaker_b": resonator(0.9, 0.35 * np.pi),
}


def synth_voice(speaker: str, seed: int, seconds: float = 1.0,
                sr: int = SAMPLE_RATE, pauses: bool = True) -> np.ndarray:
    """White noise through the speaker's resonator, with optional silent pauses."""
    rng = np.random.default_rng(seed)
    voiced = lfilter([1.0], SPEAKER_FILTERS[speaker], rng.standard_normal(int(seconds * sr)))
    voiced = 0.5 * voiced / np.max(np.abs(voiced))
    if not pauses:
        return voiced

    pause = np.zeros(int(0.2 * sr))
    half = voiced.size // 2
    return np.concatenate([pause, voiced[:half], pause, voiced[half:], pause])


def write_wav(path: Path, audio: np.ndarray, sr: int = SAMPLE_RATE) -> Path:
    """Write a mono 16-bit PCM WAV file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(path), audio, sr, subtype="PCM_16")
    return path


class PassThroughProcessor:
    """Audio processor stand-in: the sample itself is the feature vector."""

    def __init__(self, feature_size: int = 20):
        self.feature_size = feature_size
        self.files = {}

    def extract_features(self, sample):
        return np.asarray(sample, dtype=np.float64).ravel().copy()

    def load_audio(self, file_path):
        return self.files[str(file_path)]


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def speaker_a_voice() -> np.ndarray:
    return synth_voice("speaker_a", seed=1)


@pytest.fixture
def speaker_b_voice() -> np.ndarray:
    return synth_voice("speaker_b", seed=2)


@pytest.fixture
def pass_through() -> PassThroughProcessor:
    return PassThroughProcessor()


@pytest.fixture
def vector_engine(pass_through):
    """Engine whose samples are feature vectors already."""
    from voxprint.core.matching_engine import MatchingEngine
    return MatchingEngine(SAMPLE_RATE, audio_processor=pass_through)


@pytest.fixture
def voice_dataset(tmp_path) -> Path:
    """data/<speaker>/*.wav with two recordings per speaker."""
    root = tmp_path / "voices"
    for offset, speaker in enumerate(SPEAKER_FILTERS):
        for take in range(2):
            write_wav(root / speaker / f"take_{take}.wav",
                      synth_voice(speaker, seed=100 + 10 * offset + take))
    return root
