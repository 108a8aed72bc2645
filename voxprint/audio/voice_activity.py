"""
Autocorrelation-based voice activity detection

The signal is cut into short frames. For every frame the autocorrelation,
normalized by the frame length, is taken at lag 0 (short-term energy) and at
a few small lags (periodicity). Frames whose energy stays under a threshold
derived from the signal's own energy distribution, or that show no positive
correlation between neighbouring samples, are treated as silence and cut out.
"""

import logging
from typing import Iterator, Tuple

import numpy as np

from voxprint.core.exceptions import InvalidArgumentError


class VoiceActivityDetector:
    """
    Removes silent segments from a mono sample.

    An all-silent sample is returned untouched rather than emptied: silence is
    an ordinary input, deciding what to do with it is up to the caller.
    """

    def __init__(self,
                 frame_ms: float = 10.0,
                 energy_floor: float = 1e-4,
                 noise_percentile: float = 10.0,
                 threshold_ratio: float = 0.1,
                 min_periodicity: float = 0.0,
                 min_silence_ms: float = 40.0,
                 min_voice_ms: float = 30.0,
                 max_lag: int = 3):
        """
        Args:
            frame_ms: Frame duration in milliseconds
            energy_floor: Absolute minimum mean frame energy for speech
            noise_percentile: Percentile of frame energies taken as the noise floor
            threshold_ratio: Share of the range between noise floor and peak energy
                a frame has to rise above
            min_periodicity: Minimum normalized autocorrelation over lags 1..max_lag
            min_silence_ms: Silent gaps shorter than this between voiced frames are kept
            min_voice_ms: Voiced runs shorter than this are dropped
            max_lag: Largest lag used for the periodicity measure
        """
        if frame_ms <= 0:
            raise InvalidArgumentError(f"Frame duration must be positive, got {frame_ms}")
        if not 0.0 <= noise_percentile <= 100.0:
            raise InvalidArgumentError(f"Noise percentile must be in [0, 100], got {noise_percentile}")
        if max_lag < 1:
            raise InvalidArgumentError(f"Maximum lag must be at least 1, got {max_lag}")

        self.logger = logging.getLogger(__name__)
        self.frame_ms = float(frame_ms)
        self.energy_floor = float(energy_floor)
        self.noise_percentile = float(noise_percentile)
        self.threshold_ratio = float(threshold_ratio)
        self.min_periodicity = float(min_periodicity)
        self.min_silence_ms = float(min_silence_ms)
        self.min_voice_ms = float(min_voice_ms)
        self.max_lag = int(max_lag)

    def frame_size(self, sample_rate: float) -> int:
        if sample_rate <= 0:
            raise InvalidArgumentError(f"Sample rate must be positive, got {sample_rate}")
        return max(self.max_lag + 1, int(sample_rate * self.frame_ms / 1000))

    def frame_statistics(self, audio: np.ndarray, sample_rate: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Short-term autocorrelation features of every full frame

        Args:
            audio: Mono signal
            sample_rate: Sampling rate in Hz

        Returns:
            (energy, periodicity): energy is r(0)/N per frame, periodicity is
            max over k in 1..max_lag of r(k)/r(0) (0 for silent frames)
        """
        frame_size = self.frame_size(sample_rate)
        n_frames = len(audio) // frame_size
        frames = np.asarray(audio[:n_frames * frame_size], dtype=np.float64).reshape(n_frames, frame_size)

        r0 = np.sum(frames * frames, axis=1)
        lagged = np.stack([
            np.sum(frames[:, k:] * frames[:, :-k], axis=1)
            for k in range(1, self.max_lag + 1)
        ], axis=1)

        periodicity = np.zeros(n_frames)
        nonzero = r0 > 0
        periodicity[nonzero] = np.max(lagged[nonzero] / r0[nonzero, np.newaxis], axis=1)

        return r0 / frame_size, periodicity

    def adaptive_threshold(self, energy: np.ndarray) -> float:
        """
        Energy threshold separating speech from background

        The noise floor is a low percentile of the frame energies; speech has
        to rise a fixed share of the dynamic range above it. A signal whose
        peak is less than twice its noise floor has no distinct pauses, so
        only the absolute floor applies.
        """
        if energy.size == 0:
            return self.energy_floor
        noise_floor = float(np.percentile(energy, self.noise_percentile))
        peak = float(np.max(energy))
        if peak - noise_floor <= noise_floor:
            return self.energy_floor
        return max(self.energy_floor, noise_floor + self.threshold_ratio * (peak - noise_floor))

    def detect(self, audio: np.ndarray, sample_rate: float) -> np.ndarray:
        """
        Classify full frames as voiced (True) or silent (False)

        Returns:
            Boolean mask with one entry per full frame
        """
        energy, periodicity = self.frame_statistics(audio, sample_rate)
        if energy.size == 0:
            return np.zeros(0, dtype=bool)

        threshold = self.adaptive_threshold(energy)
        voiced = (energy > threshold) & (periodicity > self.min_periodicity)

        min_silence = int(round(self.min_silence_ms / self.frame_ms))
        min_voice = int(round(self.min_voice_ms / self.frame_ms))
        self._fill_short_gaps(voiced, min_silence)
        self._drop_short_runs(voiced, min_voice)

        self.logger.debug(
            f"VAD: {int(voiced.sum())}/{voiced.size} voiced frames, threshold={threshold:.3e}"
        )
        return voiced

    def remove_silence(self, audio: np.ndarray, sample_rate: float) -> np.ndarray:
        """
        Cut silent frames out of the sample

        Args:
            audio: Mono signal, amplitudes in [-1, 1]
            sample_rate: Sampling rate in Hz

        Returns:
            Voiced frames concatenated in order (plus the trailing partial
            frame when the last full frame is voiced). If no frame is voiced,
            or the sample is shorter than one frame, the input is returned as is.
        """
        audio = np.asarray(audio, dtype=np.float64)
        frame_size = self.frame_size(sample_rate)
        if audio.size < frame_size:
            return audio

        voiced = self.detect(audio, sample_rate)
        if not voiced.any():
            self.logger.warning("No voice activity detected, keeping the whole sample")
            return audio

        n_frames = voiced.size
        frames = audio[:n_frames * frame_size].reshape(n_frames, frame_size)
        kept = frames[voiced].ravel()
        if voiced[-1] and audio.size > n_frames * frame_size:
            kept = np.concatenate([kept, audio[n_frames * frame_size:]])

        self.logger.debug(f"VAD kept {kept.size}/{audio.size} samples")
        return kept

    @staticmethod
    def _runs(mask: np.ndarray) -> Iterator[Tuple[int, int, bool]]:
        """Yield (start, end, value) for every run of equal values"""
        if mask.size == 0:
            return
        change = np.flatnonzero(mask[1:] != mask[:-1]) + 1
        starts = np.concatenate(([0], change))
        ends = np.concatenate((change, [mask.size]))
        for start, end in zip(starts, ends):
            yield int(start), int(end), bool(mask[start])

    def _fill_short_gaps(self, voiced: np.ndarray, min_frames: int):
        for start, end, value in list(self._runs(voiced)):
            if not value and start > 0 and end < voiced.size and end - start < min_frames:
                voiced[start:end] = True

    def _drop_short_runs(self, voiced: np.ndarray, min_frames: int):
        for start, end, value in list(self._runs(voiced)):
            if value and end - start < min_frames:
                voiced[start:end] = False
