"""
Peak amplitude normalization
"""

import logging

import librosa
import numpy as np

from voxprint.core.exceptions import InvalidArgumentError


class Normalizer:
    """Rescales a sample so its peak absolute amplitude reaches the ceiling"""

    def __init__(self, ceiling: float = 1.0):
        if not 0.0 < ceiling <= 1.0:
            raise InvalidArgumentError(f"Normalizer ceiling must be in (0, 1], got {ceiling}")
        self.logger = logging.getLogger(__name__)
        self.ceiling = float(ceiling)

    def normalize(self, audio: np.ndarray) -> np.ndarray:
        """
        Normalize amplitude in place

        Args:
            audio: Audio signal. Writable float arrays are modified in place,
                anything else is converted to a new float64 array first.

        Returns:
            The normalized signal. An all-zero signal is returned unchanged.
        """
        if not (isinstance(audio, np.ndarray) and audio.dtype.kind == 'f' and audio.flags.writeable):
            audio = np.array(audio, dtype=np.float64)

        if audio.size == 0:
            return audio

        if not np.any(audio):
            self.logger.debug("Silent signal, normalization skipped")
            return audio

        audio[...] = librosa.util.normalize(audio, norm=np.inf) * self.ceiling
        # rounding can overshoot the ceiling by one ulp
        np.clip(audio, -self.ceiling, self.ceiling, out=audio)
        return audio
