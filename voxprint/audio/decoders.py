"""
Audio file decoders

A decoder turns an audio file into a mono float signal in [-1, 1] at an
expected sample rate. Files recorded at another rate are rejected, never
resampled: a resampled print is not comparable with the enrolled ones.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

import librosa
import numpy as np

from voxprint.core.exceptions import SampleRateMismatchError, UnsupportedAudioFormatError


PathLike = Union[str, Path]

# Rates closer than this are considered equal
SAMPLE_RATE_TOLERANCE = 1e-3


class AudioDecoder(ABC):
    """Decodes an audio file into a normalized mono signal"""

    @abstractmethod
    def decode(self, file_path: PathLike, expected_sample_rate: float) -> np.ndarray:
        """
        Args:
            file_path: Audio file
            expected_sample_rate: Rate the file has to be recorded at

        Returns:
            Mono float64 signal in [-1, 1]

        Raises:
            FileNotFoundError: If the file does not exist
            UnsupportedAudioFormatError: If the container or codec is unknown
            SampleRateMismatchError: If the native rate differs from the expected one
        """


class LibrosaAudioDecoder(AudioDecoder):
    """Decoder backed by librosa (libsndfile, with audioread as fallback)"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def get_sample_rate(self, file_path: PathLike) -> float:
        file_path = self._check_exists(file_path)
        try:
            return float(librosa.get_samplerate(str(file_path)))
        except Exception as e:
            raise UnsupportedAudioFormatError(f"Unsupported audio file {file_path}: {e}") from e

    def decode(self, file_path: PathLike, expected_sample_rate: float) -> np.ndarray:
        native_rate = self.get_sample_rate(file_path)
        if abs(native_rate - float(expected_sample_rate)) > SAMPLE_RATE_TOLERANCE:
            raise SampleRateMismatchError(expected_sample_rate, native_rate, source=str(file_path))

        try:
            audio, _ = librosa.load(str(file_path), sr=None, mono=True)
        except Exception as e:
            raise UnsupportedAudioFormatError(f"Cannot decode {file_path}: {e}") from e

        self.logger.debug(f"Decoded {file_path}: {len(audio)} samples at {native_rate:.0f} Hz")
        return np.clip(audio.astype(np.float64), -1.0, 1.0)

    @staticmethod
    def _check_exists(file_path: PathLike) -> Path:
        file_path = Path(file_path)
        if not file_path.is_file():
            raise FileNotFoundError(f"Audio file not found: {file_path}")
        return file_path
