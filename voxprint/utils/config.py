"""
Configuration for the voice print pipeline

Components take a plain dict and read it with ``config.get(key, default)``;
``load_config`` builds that dict from the defaults below, an optional JSON
file and explicit overrides.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from voxprint.core.exceptions import InvalidArgumentError
from voxprint.utils.file_utils import load_json


logger = logging.getLogger(__name__)


DEFAULT_CONFIG: Dict[str, Any] = {
    # Audio
    "sample_rate": 16000.0,
    "normalizer_ceiling": 1.0,

    # Voice activity detection
    "vad_frame_ms": 10.0,
    "vad_energy_floor": 1e-4,       # absolute minimum frame energy for speech
    "vad_noise_percentile": 10.0,   # frame energy percentile taken as noise floor
    "vad_threshold_ratio": 0.1,     # share of the dynamic range above the noise floor
    "vad_min_periodicity": 0.0,
    "vad_min_silence_ms": 40.0,
    "vad_min_voice_ms": 30.0,

    # LPC features
    "lpc_order": 20,
    "lpc_frame_ms": 24.0,

    # Matching
    "distance": "euclidean",
}


def load_config(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build the effective configuration

    Args:
        path: Optional JSON file with configuration values
        overrides: Values taking precedence over both defaults and file

    Returns:
        A new configuration dict

    Raises:
        InvalidArgumentError: On keys the pipeline does not know
        FileNotFoundError: If ``path`` is given but does not exist
    """
    config = dict(DEFAULT_CONFIG)

    if path is not None:
        file_values = load_json(path)
        if file_values is None:
            raise FileNotFoundError(f"Configuration file not found: {path}")
        _check_keys(file_values, source=str(path))
        config.update(file_values)
        logger.debug(f"Configuration loaded from {path}")

    if overrides:
        _check_keys(overrides, source="overrides")
        config.update({k: v for k, v in overrides.items() if v is not None})

    return config


def _check_keys(values: Dict[str, Any], source: str):
    unknown = sorted(set(values) - set(DEFAULT_CONFIG))
    if unknown:
        raise InvalidArgumentError(f"Unknown configuration keys in {source}: {', '.join(unknown)}")
