"""
Matching engine: enrollment and identification of speakers by voice print
"""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Union

import numpy as np

from voxprint.audio.audio_processor import AudioProcessor
from voxprint.audio.decoders import AudioDecoder
from voxprint.core.exceptions import (
    DimensionMismatchError,
    DuplicateKeyError,
    EmptyStoreError,
    InvalidArgumentError,
    UnknownKeyError,
)
from voxprint.models.distance import DistanceCalculator, get_distance_calculator
from voxprint.models.voice_print import MatchResult, VoicePrint
from voxprint.utils.config import DEFAULT_CONFIG


Sample = Union[np.ndarray, Sequence[float]]


def compute_likelihood(distance: float, distance_to_universal_model: float) -> int:
    """
    Heuristic closeness of a query to an enrolled print, relative to the
    universal model: ``100 - int(100 * d / (d + d_um))``, the percentage
    truncated toward zero.

    When both distances are 0 the query, the print and the model coincide
    and the likelihood is 100.
    """
    total = distance + distance_to_universal_model
    ratio = distance / total if total > 0 else 0.0
    return 100 - int(ratio * 100.0)


class MatchingEngine:
    """
    Holds the voice prints of enrolled speakers and identifies unknown samples.

    The universal model is the running average of every enrolled sample
    unless a model is set explicitly, which freezes it for good. Likelihoods
    reported by ``identify`` measure how much closer the query is to an
    enrolled print than to this model.

    Thread safety: one lock guards the frozen flag, the model and store
    inserts, so concurrent enrollments never interleave their model updates.
    Feature extraction and ``identify`` run without it; they only read
    atomically published voice print states.
    """

    MIN_SAMPLE_RATE = 8000.0

    def __init__(self, sample_rate: float,
                 voice_prints: Optional[Mapping[Hashable, VoicePrint]] = None,
                 *,
                 config: Optional[Dict[str, Any]] = None,
                 audio_processor: Optional[AudioProcessor] = None,
                 calculator: Optional[DistanceCalculator] = None,
                 decoder: Optional[AudioDecoder] = None):
        """
        Engine initialization

        Args:
            sample_rate: Sampling rate of every sample, at least 8000 Hz
            voice_prints: Previously persisted prints by user key; the
                universal model is rebuilt as their weighted average
            config: Pipeline configuration (see ``voxprint.utils.config``)
            audio_processor: Feature extraction pipeline, built from config by default
            calculator: Distance metric, taken from config by default
            decoder: Audio file decoder for the default audio processor; pass
                it to a custom ``audio_processor`` instead

        Raises:
            InvalidArgumentError: If the sample rate is below 8000 Hz, or both
                ``audio_processor`` and ``decoder`` are given
        """
        if sample_rate is None or float(sample_rate) < self.MIN_SAMPLE_RATE:
            raise InvalidArgumentError(
                f"Sample rate should be at least {self.MIN_SAMPLE_RATE:.0f} Hz, got {sample_rate}"
            )
        if audio_processor is not None and decoder is not None:
            raise InvalidArgumentError(
                "A decoder is only used by the default audio processor; "
                "pass it to the custom audio processor instead"
            )

        self.logger = logging.getLogger(__name__)
        self.sample_rate = float(sample_rate)
        self.config = dict(DEFAULT_CONFIG)
        self.config.update(config or {})
        self.config["sample_rate"] = self.sample_rate

        self.audio_processor = audio_processor or AudioProcessor(
            self.sample_rate, config=self.config, decoder=decoder
        )
        self.calculator = calculator or get_distance_calculator(self.config.get("distance", "euclidean"))

        self._store: Dict[Hashable, VoicePrint] = {}
        self._lock = threading.RLock()
        self._universal_model: Optional[VoicePrint] = None
        self._frozen = False

        if voice_prints:
            self._seed(voice_prints)

        self.logger.info(
            f"MatchingEngine ready: sr={self.sample_rate:.0f} Hz, "
            f"{len(self._store)} voice prints, distance={type(self.calculator).__name__}"
        )

    def _seed(self, voice_prints: Mapping[Hashable, VoicePrint]):
        universal_model = None
        store = {}
        for key, voice_print in voice_prints.items():
            self._check_key(key)
            copy = VoicePrint.from_print(voice_print)
            if universal_model is None:
                universal_model = copy.copy()
            else:
                universal_model.merge(copy)
            store[key] = copy

        self._universal_model = universal_model
        self._store.update(store)

    @staticmethod
    def _check_key(key: Hashable):
        if key is None:
            raise InvalidArgumentError("The user key is None")

    @staticmethod
    def _check_dimension(expected: Optional[VoicePrint], features: np.ndarray):
        if expected is not None and len(expected) != features.size:
            raise DimensionMismatchError(len(expected), features.size)

    # Universal model

    def get_universal_model(self) -> Optional[VoicePrint]:
        """Copy of the universal model, or None before the first enrollment"""
        universal_model = self._universal_model
        return universal_model.copy() if universal_model is not None else None

    def set_universal_model(self, universal_model: VoicePrint):
        """
        Replace the universal model and freeze it

        Enrollments no longer update a model set this way.

        Raises:
            InvalidArgumentError: If the model is None
        """
        if universal_model is None:
            raise InvalidArgumentError("The universal model may not be None")
        copy = VoicePrint.from_print(universal_model)
        with self._lock:
            self._universal_model = copy
            self._frozen = True
        self.logger.info(f"Universal model set and frozen (weight={copy.weight})")

    @property
    def is_universal_model_frozen(self) -> bool:
        return self._frozen

    # Enrollment

    def extract_features(self, sample: Sample) -> np.ndarray:
        return self.audio_processor.extract_features(sample)

    def create_voice_print(self, key: Hashable, sample: Sample) -> VoicePrint:
        """
        Enroll a new speaker

        Args:
            key: Unique user key
            sample: Mono voice sample at the engine's sample rate

        Returns:
            Copy of the new voice print

        Raises:
            InvalidArgumentError: If key is None
            DuplicateKeyError: If a print is already enrolled under key
        """
        self._check_key(key)
        if key in self._store:
            raise DuplicateKeyError(key)

        features = self.extract_features(sample)
        voice_print = VoicePrint(features)

        with self._lock:
            # re-check under the lock: another thread may have enrolled the key meanwhile
            if key in self._store:
                raise DuplicateKeyError(key)
            self._check_dimension(self._universal_model, features)

            if not self._frozen:
                if self._universal_model is None:
                    self._universal_model = voice_print.copy()
                else:
                    self._universal_model.merge(features)
            self._store[key] = voice_print

        self.logger.info(f"Voice print created for {key!r}")
        return voice_print.copy()

    def merge_voice_sample(self, key: Hashable, sample: Sample) -> VoicePrint:
        """
        Fold another sample into an enrolled speaker's print

        Args:
            key: Enrolled user key
            sample: Mono voice sample at the engine's sample rate

        Returns:
            Copy of the updated voice print

        Raises:
            InvalidArgumentError: If key is None
            UnknownKeyError: If nothing is enrolled under key
        """
        self._check_key(key)
        voice_print = self._store.get(key)
        if voice_print is None:
            raise UnknownKeyError(key)

        features = self.extract_features(sample)

        with self._lock:
            self._check_dimension(voice_print, features)
            self._check_dimension(self._universal_model, features)

            if not self._frozen:
                self._universal_model.merge(features)
            voice_print.merge(features)
            result = voice_print.copy()

        self.logger.info(f"Voice sample merged into {key!r} (weight={result.weight})")
        return result

    # Identification

    def identify(self, sample: Sample) -> List[MatchResult]:
        """
        Rank every enrolled speaker against an unknown sample

        Args:
            sample: Mono voice sample at the engine's sample rate

        Returns:
            Match results sorted by ascending distance. Results with equal
            distances are not ordered by any secondary key.

        Raises:
            EmptyStoreError: If no voice print is enrolled
        """
        start_time = time.time()

        if not self._store:
            raise EmptyStoreError("There is no voice print enrolled in the system yet")

        query = VoicePrint(self.extract_features(sample))

        # dict.copy is atomic; the model is set before the first store insert
        entries = self._store.copy()
        universal_model = self._universal_model
        if not entries or universal_model is None:
            raise EmptyStoreError("There is no voice print enrolled in the system yet")

        distance_to_universal_model = query.get_distance(self.calculator, universal_model)

        matches = []
        for key, voice_print in entries.items():
            distance = voice_print.get_distance(self.calculator, query)
            likelihood = compute_likelihood(distance, distance_to_universal_model)
            matches.append(MatchResult(key, likelihood, distance))

        matches.sort(key=lambda match: match.distance)

        processing_time = (time.time() - start_time) * 1000
        best = matches[0]
        self.logger.info(
            f"Identified: {best.key!r} (likelihood: {best.likelihood}%, distance: {best.distance:.4f}) "
            f"among {len(matches)} voice prints in {processing_time:.0f}ms"
        )
        return matches

    # File convenience

    def create_voice_print_from_file(self, key: Hashable, file_path: Union[str, Path]) -> VoicePrint:
        self._check_key(key)
        if key in self._store:
            raise DuplicateKeyError(key)
        return self.create_voice_print(key, self.audio_processor.load_audio(file_path))

    def merge_voice_sample_from_file(self, key: Hashable, file_path: Union[str, Path]) -> VoicePrint:
        self._check_key(key)
        if key not in self._store:
            raise UnknownKeyError(key)
        return self.merge_voice_sample(key, self.audio_processor.load_audio(file_path))

    def identify_file(self, file_path: Union[str, Path]) -> List[MatchResult]:
        if not self._store:
            raise EmptyStoreError("There is no voice print enrolled in the system yet")
        return self.identify(self.audio_processor.load_audio(file_path))

    # Store access

    def get_voice_print(self, key: Hashable) -> VoicePrint:
        """Copy of the print enrolled under key"""
        voice_print = self._store.get(key)
        if voice_print is None:
            raise UnknownKeyError(key)
        return voice_print.copy()

    def voice_prints(self) -> Dict[Hashable, VoicePrint]:
        """Copies of every enrolled print by key"""
        return {key: voice_print.copy() for key, voice_print in self._store.copy().items()}

    def keys(self) -> List[Hashable]:
        return list(self._store.copy())

    def get_statistics(self) -> Dict[str, Any]:
        """Engine statistics"""
        store = self._store.copy()
        universal_model = self._universal_model
        return {
            "total_users": len(store),
            "total_samples": sum(voice_print.weight for voice_print in store.values()),
            "sample_rate": self.sample_rate,
            "feature_size": self.audio_processor.feature_size,
            "universal_model_weight": universal_model.weight if universal_model is not None else 0,
            "universal_model_frozen": self._frozen,
            "distance": type(self.calculator).__name__,
        }

    def __len__(self):
        return len(self._store)

    def __contains__(self, key):
        return key in self._store
