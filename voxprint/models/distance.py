"""
Distance metrics between feature vectors
"""

from abc import ABC, abstractmethod
from typing import Dict, Sequence, Type, Union

import numpy as np

from voxprint.core.exceptions import DimensionMismatchError, InvalidArgumentError


VectorLike = Union[np.ndarray, Sequence[float]]


class DistanceCalculator(ABC):
    """
    Strategy computing a non-negative scalar distance between two
    equal-length feature vectors. Implementations must be symmetric and
    return 0 for identical vectors.
    """

    name = "abstract"

    def get_distance(self, features1: VectorLike, features2: VectorLike) -> float:
        """
        Compute the distance between two feature vectors

        Raises:
            DimensionMismatchError: If the vectors differ in length
        """
        a = np.asarray(features1, dtype=np.float64).ravel()
        b = np.asarray(features2, dtype=np.float64).ravel()
        if a.shape != b.shape:
            raise DimensionMismatchError(a.size, b.size)
        return float(self._distance(a, b))

    @abstractmethod
    def _distance(self, a: np.ndarray, b: np.ndarray) -> float:
        ...

    def __repr__(self):
        return f"{type(self).__name__}()"


class EuclideanDistanceCalculator(DistanceCalculator):
    """Square root of the summed squared componentwise differences"""

    name = "euclidean"

    def _distance(self, a, b):
        diff = a - b
        return np.sqrt(np.dot(diff, diff))


class ChebyshevDistanceCalculator(DistanceCalculator):
    """Largest absolute componentwise difference"""

    name = "chebyshev"

    def _distance(self, a, b):
        if a.size == 0:
            return 0.0
        return np.max(np.abs(a - b))


class ManhattanDistanceCalculator(DistanceCalculator):
    """Sum of absolute componentwise differences"""

    name = "manhattan"

    def _distance(self, a, b):
        return np.sum(np.abs(a - b))


DISTANCE_CALCULATORS: Dict[str, Type[DistanceCalculator]] = {
    cls.name: cls
    for cls in (EuclideanDistanceCalculator, ChebyshevDistanceCalculator, ManhattanDistanceCalculator)
}


def get_distance_calculator(name: str = "euclidean") -> DistanceCalculator:
    """Instantiate a distance calculator by its configuration name"""
    try:
        return DISTANCE_CALCULATORS[name.lower()]()
    except (KeyError, AttributeError):
        raise InvalidArgumentError(
            f"Unknown distance '{name}', expected one of: {', '.join(sorted(DISTANCE_CALCULATORS))}"
        ) from None
