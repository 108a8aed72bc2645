"""
Audio processor turning voice samples into LPC feature vectors
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np

from voxprint.audio.decoders import AudioDecoder, LibrosaAudioDecoder
from voxprint.audio.lpc import LpcFeatureExtractor
from voxprint.audio.normalizer import Normalizer
from voxprint.audio.voice_activity import VoiceActivityDetector
from voxprint.core.exceptions import InvalidArgumentError
from voxprint.utils.config import DEFAULT_CONFIG


class AudioProcessor:
    """
    Feature extraction pipeline for mono voice samples.

    Steps:
    - Voice activity detection (silence removal)
    - Peak amplitude normalization
    - LPC analysis, averaged into one fixed-length vector

    Every call works on its own copy of the sample, so one processor can be
    shared between threads.
    """

    def __init__(self, sample_rate: float = 16000.0,
                 config: Optional[Dict[str, Any]] = None,
                 decoder: Optional[AudioDecoder] = None):
        """
        Initialize the audio processor

        Args:
            sample_rate: Sampling rate of every sample fed to the processor
            config: Pipeline configuration (see ``voxprint.utils.config``)
            decoder: Audio file decoder, librosa-based by default
        """
        self.logger = logging.getLogger(__name__)
        config = config or DEFAULT_CONFIG

        self.sample_rate = float(sample_rate)
        self.decoder = decoder or LibrosaAudioDecoder()
        self.voice_detector = VoiceActivityDetector(
            frame_ms=config.get("vad_frame_ms", 10.0),
            energy_floor=config.get("vad_energy_floor", 1e-4),
            noise_percentile=config.get("vad_noise_percentile", 10.0),
            threshold_ratio=config.get("vad_threshold_ratio", 0.1),
            min_periodicity=config.get("vad_min_periodicity", 0.0),
            min_silence_ms=config.get("vad_min_silence_ms", 40.0),
            min_voice_ms=config.get("vad_min_voice_ms", 30.0),
        )
        self.normalizer = Normalizer(ceiling=config.get("normalizer_ceiling", 1.0))
        self.lpc_extractor = LpcFeatureExtractor(
            self.sample_rate,
            order=config.get("lpc_order", 20),
            frame_ms=config.get("lpc_frame_ms", 24.0),
        )

        self.logger.debug(
            f"AudioProcessor initialized: sr={self.sample_rate}, order={self.feature_size}"
        )

    @property
    def feature_size(self) -> int:
        return self.lpc_extractor.order

    def load_audio(self, file_path: Union[str, Path]) -> np.ndarray:
        """
        Decode an audio file at the processor's sample rate

        Args:
            file_path: Path to audio file

        Returns:
            Mono signal in [-1, 1]
        """
        return self.decoder.decode(file_path, self.sample_rate)

    def prepare_sample(self, audio: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
        """
        Copy a raw sample into a private float64 array

        Raises:
            InvalidArgumentError: On multi-channel input
        """
        if audio is None:
            raise InvalidArgumentError("The voice sample is None")
        samples = np.array(audio, dtype=np.float64)
        if samples.ndim != 1:
            raise InvalidArgumentError(
                f"Voice samples must be mono (1-D), got shape {samples.shape}"
            )
        return samples

    def extract_features(self, audio: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
        """
        Extract the feature vector of a voice sample

        Args:
            audio: Mono signal in [-1, 1] at the processor's sample rate

        Returns:
            LPC feature vector of length ``feature_size``

        Raises:
            FeatureExtractionError: If the voiced part is shorter than one LPC frame
        """
        samples = self.prepare_sample(audio)
        # samples is a private copy, normalizing it in place is safe
        voiced = self.voice_detector.remove_silence(samples, self.sample_rate)
        voiced = self.normalizer.normalize(voiced)
        features = self.lpc_extractor.extract_features(voiced)

        self.logger.debug(
            f"Extracted {features.size} features from {samples.size} samples "
            f"({voiced.size} voiced)"
        )
        return features

    def extract_features_from_file(self, file_path: Union[str, Path]) -> np.ndarray:
        """Decode an audio file and extract its feature vector"""
        self.logger.debug(f"Extracting features from: {file_path}")
        return self.extract_features(self.load_audio(file_path))

    def get_audio_info(self, file_path: Union[str, Path]) -> Dict[str, Any]:
        """
        Basic information about an audio file

        Args:
            file_path: Path to file

        Returns:
            Duration, sample count, energy and peak amplitude
        """
        audio = self.load_audio(file_path)
        voiced = self.voice_detector.remove_silence(audio, self.sample_rate)

        return {
            "duration": audio.size / self.sample_rate,
            "voiced_duration": voiced.size / self.sample_rate,
            "sample_rate": self.sample_rate,
            "samples": int(audio.size),
            "energy": float(np.mean(audio ** 2)) if audio.size else 0.0,
            "max_amplitude": float(np.max(np.abs(audio))) if audio.size else 0.0,
            "file_size": Path(file_path).stat().st_size,
        }
