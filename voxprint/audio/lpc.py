"""
Linear predictive coding (LPC) features

Every frame is modelled as a linear combination of its own past samples,
``x[n] ~ a1*x[n-1] + ... + aP*x[n-P]``. The predictor coefficients come from
the frame autocorrelation through the Levinson-Durbin recursion and are
averaged per index over all frames, so any sample long enough to hold one
frame yields exactly ``order`` values.
"""

import logging
from typing import Tuple

import numpy as np

from voxprint.core.exceptions import FeatureExtractionError, InvalidArgumentError


# Frames whose energy does not exceed this are treated as digital silence
MIN_FRAME_ENERGY = 1e-12
# Stop the recursion once the residual error falls to this share of r[0]
MIN_RELATIVE_ERROR = 1e-12


def autocorrelation(frame: np.ndarray, max_lag: int) -> np.ndarray:
    """Autocorrelation r[0..max_lag] of a frame (not normalized)"""
    frame = np.asarray(frame, dtype=np.float64)
    n = frame.size
    full = np.correlate(frame, frame, mode="full")
    r = np.zeros(max_lag + 1)
    available = min(max_lag + 1, n)
    r[:available] = full[n - 1:n - 1 + available]
    return r


def levinson_durbin(r: np.ndarray, order: int) -> Tuple[np.ndarray, float]:
    """
    Solve the Toeplitz normal equations for the LPC predictor

    Args:
        r: Autocorrelation sequence, at least ``order + 1`` values
        order: Number of predictor coefficients

    Returns:
        (coefficients a[1..order], final prediction error). If the error
        collapses before reaching ``order`` the remaining coefficients stay 0.
    """
    r = np.asarray(r, dtype=np.float64)
    if order < 1:
        raise InvalidArgumentError(f"LPC order must be at least 1, got {order}")
    if r.size < order + 1:
        raise InvalidArgumentError(f"Need {order + 1} autocorrelation values, got {r.size}")

    coefficients = np.zeros(order)
    error = float(r[0])
    if error <= MIN_FRAME_ENERGY:
        return coefficients, 0.0

    min_error = MIN_RELATIVE_ERROR * error
    for i in range(order):
        # reflection coefficient for step i + 1
        k = (r[i + 1] - np.dot(coefficients[:i], r[i:0:-1])) / error
        previous = coefficients[:i].copy()
        coefficients[i] = k
        coefficients[:i] = previous - k * previous[::-1]
        error *= 1.0 - k * k
        if error <= min_error:
            break

    return coefficients, error


class LpcFeatureExtractor:
    """
    Extracts a fixed-length LPC feature vector from a voiced, normalized sample
    """

    def __init__(self, sample_rate: float, order: int = 20, frame_ms: float = 24.0):
        """
        Args:
            sample_rate: Sampling rate in Hz
            order: Number of LPC coefficients (feature vector length)
            frame_ms: Target frame duration; the frame length is the largest
                power of two not exceeding it (256 samples at 16 kHz)
        """
        self.logger = logging.getLogger(__name__)
        self.sample_rate = float(sample_rate)
        self.order = int(order)
        self.frame_size = self._power_of_two_floor(int(self.sample_rate * frame_ms / 1000))
        self.hop_size = self.frame_size // 2

        if self.order < 1 or self.order >= self.frame_size:
            raise InvalidArgumentError(
                f"LPC order must be in [1, {self.frame_size - 1}] for {self.frame_size}-sample frames, "
                f"got {order}"
            )

        self.window = np.hamming(self.frame_size)
        self.logger.debug(
            f"LpcFeatureExtractor initialized: sr={self.sample_rate}, order={self.order}, "
            f"frame={self.frame_size}, hop={self.hop_size}"
        )

    @staticmethod
    def _power_of_two_floor(n: int) -> int:
        if n < 2:
            raise InvalidArgumentError(f"Frame must hold at least 2 samples, got {n}")
        return 1 << (n.bit_length() - 1)

    def frames(self, audio: np.ndarray) -> np.ndarray:
        """Half-overlapping Hamming-windowed frames, shape (n_frames, frame_size)"""
        n_frames = 1 + (len(audio) - self.frame_size) // self.hop_size
        index = np.arange(self.frame_size)[np.newaxis, :] + self.hop_size * np.arange(n_frames)[:, np.newaxis]
        return audio[index] * self.window

    def extract_features(self, audio: np.ndarray) -> np.ndarray:
        """
        Compute the averaged LPC coefficients of a sample

        Args:
            audio: Voiced, normalized mono signal

        Returns:
            Feature vector of length ``order``. Frames without energy are left
            out of the average; if no frame carries energy the zero vector is
            returned.

        Raises:
            FeatureExtractionError: If the sample is shorter than one frame
        """
        audio = np.asarray(audio, dtype=np.float64).ravel()
        if audio.size < self.frame_size:
            raise FeatureExtractionError(
                f"Sample too short for LPC analysis: {audio.size} samples, "
                f"need at least {self.frame_size}"
            )

        features = np.zeros(self.order)
        counted = 0
        frames = self.frames(audio)
        for frame in frames:
            r = autocorrelation(frame, self.order)
            if r[0] <= MIN_FRAME_ENERGY:
                continue
            coefficients, _ = levinson_durbin(r, self.order)
            features += coefficients
            counted += 1

        if counted == 0:
            self.logger.warning("Every LPC frame is silent, returning a zero feature vector")
            return features

        self.logger.debug(f"LPC averaged over {counted}/{len(frames)} frames")
        return features / counted
