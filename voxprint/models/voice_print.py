"""
Voice print data model
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Sequence, Union

import numpy as np

from voxprint.core.exceptions import DimensionMismatchError, InvalidArgumentError
from voxprint.models.distance import DistanceCalculator


def _frozen_copy(features) -> np.ndarray:
    array = np.array(features, dtype=np.float64).ravel()
    array.setflags(write=False)
    return array


class VoicePrint:
    """
    Fixed-length numeric signature of a speaker plus the number of samples
    averaged into it.

    The feature vector and its weight are published together as one
    read-only snapshot: readers never observe a half-applied merge, and
    writers are serialized by a per-print lock. The vector length never
    changes after construction.
    """

    def __init__(self, features: Union[np.ndarray, Sequence[float]], weight: int = 1):
        """
        Args:
            features: Feature vector, copied so the caller keeps ownership
            weight: Number of samples the vector already averages (>= 1)
        """
        if int(weight) < 1:
            raise InvalidArgumentError(f"Voice print weight must be at least 1, got {weight}")
        self._lock = threading.Lock()
        self._state = (_frozen_copy(features), int(weight))

    @classmethod
    def from_print(cls, other: "VoicePrint") -> "VoicePrint":
        """Deep copy of another voice print"""
        features, weight = other._state
        return cls(features, weight)

    def copy(self) -> "VoicePrint":
        return VoicePrint.from_print(self)

    @property
    def features(self) -> np.ndarray:
        """Copy of the feature vector"""
        return self._state[0].copy()

    @property
    def weight(self) -> int:
        return self._state[1]

    def snapshot(self):
        """Consistent (features copy, weight) pair"""
        features, weight = self._state
        return features.copy(), weight

    def merge(self, other: Union["VoicePrint", np.ndarray, Sequence[float]]) -> "VoicePrint":
        """
        Fold new data into the running average

        A raw feature vector counts as one sample:
        ``new[i] = (old[i] * n + incoming[i]) / (n + 1)``.
        Another voice print is combined by weight:
        ``new[i] = (a[i] * n_a + b[i] * n_b) / (n_a + n_b)``,
        so pairwise merges agree with one-shot averaging of all samples.

        Args:
            other: Feature vector or voice print of the same length

        Returns:
            self

        Raises:
            DimensionMismatchError: If lengths differ (the print is left unchanged)
        """
        if isinstance(other, VoicePrint):
            incoming, incoming_weight = other._state
        else:
            incoming, incoming_weight = np.asarray(other, dtype=np.float64).ravel(), 1

        with self._lock:
            features, weight = self._state
            if incoming.shape != features.shape:
                raise DimensionMismatchError(features.size, incoming.size)
            total = weight + incoming_weight
            merged = (features * weight + incoming * incoming_weight) / total
            merged.setflags(write=False)
            self._state = (merged, total)

        return self

    def get_distance(self, calculator: DistanceCalculator, other: "VoicePrint") -> float:
        """Distance to another voice print, as measured by ``calculator``"""
        return calculator.get_distance(self._state[0], other._state[0])

    def to_dict(self) -> Dict[str, Any]:
        """Persisted form: feature vector and merge weight"""
        features, weight = self._state
        return {"features": features.tolist(), "weight": weight}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VoicePrint":
        try:
            return cls(data["features"], data.get("weight", 1))
        except (KeyError, TypeError) as e:
            raise InvalidArgumentError(f"Malformed voice print data: {e}") from e

    def __len__(self):
        return self._state[0].size

    def __eq__(self, other):
        if not isinstance(other, VoicePrint):
            return NotImplemented
        (a, n_a), (b, n_b) = self._state, other._state
        return n_a == n_b and np.array_equal(a, b)

    __hash__ = None

    def __repr__(self):
        features, weight = self._state
        preview = np.array2string(features[:4], precision=4, separator=', ')
        return f"VoicePrint(len={features.size}, weight={weight}, features={preview}...)"


@dataclass(frozen=True)
class MatchResult:
    """
    One ranked identification candidate

    Attributes:
        key: User key of the enrolled voice print
        likelihood: Heuristic closeness in [0, 100] relative to the universal model
        distance: Distance between the query and the enrolled print
    """

    key: Hashable
    likelihood: int
    distance: float
