"""
Risk Feature Extraction for Near-Earth Objects.

Maps the four observables of a close approach (size, relative velocity,
miss distance, PHA designation) to a fixed 6D vector in [0, 1]:

    0. log_size              min(1, log10(size + 1) / 5)
    1. norm_velocity         min(1, velocity / 30)
    2. inverse_distance      min(1, max(0, 1 / (miss_distance * 20)))
    3. pha_flag              1 if PHA else 0
    4. kinetic_energy_proxy  min(1, max(0, size * velocity / 50000))
    5. close_approach_flag   1 if miss_distance < 0.05 AU else 0

Units: size in meters, velocity in km/s, miss distance in AU.

Author: Space AI Team
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Union

import numpy as np

from astro_risk.errors import InvalidInput
from astro_risk.utils.logging_config import get_logger

logger = get_logger("features")

FEATURE_DIM = 6

# 30 km/s is a practical ceiling for NEO encounter velocities
VELOCITY_SCALE_KM_S = 30.0
# 0.05 AU (~19.5 lunar distances) is the close-approach threshold
CLOSE_APPROACH_AU = 0.05
KINETIC_ENERGY_SCALE = 50000.0
LOG_SIZE_SCALE = 5.0

FEATURE_NAMES = [
    'Log Size (normalized)',
    'Velocity (normalized)',
    'Inverse Distance',
    'PHA Flag',
    'Kinetic Energy Proxy',
    'Close Approach Flag',
]


@dataclass
class ObjectParams:
    """Physical observables of one close approach."""
    size: float                 # Estimated diameter (m)
    velocity: float             # Relative velocity (km/s)
    miss_distance: float        # Miss distance (AU)
    is_pha: bool = False

    def check(self) -> None:
        """Raise InvalidInput unless size, velocity and miss distance are finite and positive."""
        for name in ("size", "velocity", "miss_distance"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float, np.floating, np.integer)):
                raise InvalidInput(f"{name} must be a number", {name: value})
            try:
                value = float(value)
            except (OverflowError, TypeError, ValueError) as e:
                raise InvalidInput(f"{name} is not representable as a float", {name: value}) from e
            if not math.isfinite(value) or value <= 0:
                raise InvalidInput(f"{name} must be finite and > 0", {name: value})

    @classmethod
    def from_neo_record(cls, record: Mapping[str, Any]) -> "ObjectParams":
        """
        Build params from a NASA NeoWs-style object record.

        Uses the maximum estimated diameter in meters and the first
        close-approach entry. Numeric fields may arrive as strings.
        """
        try:
            size = float(record["estimated_diameter"]["meters"]["estimated_diameter_max"])
            approach = record["close_approach_data"][0]
            velocity = float(approach["relative_velocity"]["kilometers_per_second"])
            miss_distance = float(approach["miss_distance"]["astronomical"])
            is_pha = bool(record.get("is_potentially_hazardous_asteroid", False))
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise InvalidInput(
                "Malformed NEO record",
                {"id": record.get("id") if isinstance(record, Mapping) else None, "error": str(e)},
            ) from e
        return cls(size=size, velocity=velocity, miss_distance=miss_distance, is_pha=is_pha)


@dataclass
class FeatureVector:
    """Normalized model input plus the raw values it was derived from."""
    features: List[float]
    metadata: Dict[str, Union[float, bool]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.features)

    def to_array(self) -> np.ndarray:
        return np.asarray(self.features, dtype=np.float32)


def _feature_row(size: float, velocity: float, miss_distance: float, is_pha: bool) -> List[float]:
    return [
        min(1.0, math.log10(size + 1) / LOG_SIZE_SCALE),
        min(1.0, velocity / VELOCITY_SCALE_KM_S),
        min(1.0, max(0.0, 1.0 / (miss_distance * 20))),
        1.0 if is_pha else 0.0,
        min(1.0, max(0.0, (size * velocity) / KINETIC_ENERGY_SCALE)),
        1.0 if miss_distance < CLOSE_APPROACH_AU else 0.0,
    ]


def extract_features(params: ObjectParams) -> FeatureVector:
    """
    Extract the normalized 6D feature vector for one object.

    Args:
        params: Object observables

    Returns:
        FeatureVector with provenance metadata

    Raises:
        InvalidInput: if any observable is non-finite or <= 0
    """
    params.check()
    features = _feature_row(
        float(params.size), float(params.velocity), float(params.miss_distance), bool(params.is_pha)
    )
    return FeatureVector(
        features=features,
        metadata={
            'original_size': float(params.size),
            'original_velocity': float(params.velocity),
            'original_distance': float(params.miss_distance),
            'original_pha': bool(params.is_pha),
        },
    )


def extract_feature_matrix(params_list: Sequence[ObjectParams]) -> np.ndarray:
    """
    Vectorized extraction for a batch of objects.

    Args:
        params_list: Objects to encode

    Returns:
        Feature matrix (N, 6), float32

    Raises:
        InvalidInput: if any object fails validation
    """
    if len(params_list) == 0:
        return np.zeros((0, FEATURE_DIM), dtype=np.float32)

    for params in params_list:
        params.check()

    size = np.array([p.size for p in params_list], dtype=np.float64)
    velocity = np.array([p.velocity for p in params_list], dtype=np.float64)
    distance = np.array([p.miss_distance for p in params_list], dtype=np.float64)
    pha = np.array([bool(p.is_pha) for p in params_list], dtype=np.float64)

    matrix = np.stack([
        np.minimum(1.0, np.log10(size + 1) / LOG_SIZE_SCALE),
        np.minimum(1.0, velocity / VELOCITY_SCALE_KM_S),
        np.clip(1.0 / (distance * 20), 0.0, 1.0),
        pha,
        np.clip(size * velocity / KINETIC_ENERGY_SCALE, 0.0, 1.0),
        (distance < CLOSE_APPROACH_AU).astype(np.float64),
    ], axis=1)

    return matrix.astype(np.float32)


def validate_features(vector: Union[FeatureVector, Sequence[float], np.ndarray]) -> bool:
    """
    Check that a vector can be fed to the scoring network.

    Rejects vectors whose length is not 6 or that contain NaN or values
    outside [0, 1].
    """
    values = vector.features if isinstance(vector, FeatureVector) else vector
    try:
        values = np.asarray(values, dtype=np.float64).reshape(-1)
    except (TypeError, ValueError):
        logger.warning("Feature vector is not numeric")
        return False

    if values.size != FEATURE_DIM:
        logger.warning(f"Feature vector must have exactly {FEATURE_DIM} elements, got {values.size}")
        return False

    for i, value in enumerate(values):
        if np.isnan(value) or value < 0 or value > 1:
            logger.warning(f"Feature {i} is out of range [0,1]: {value}")
            return False

    return True


def feature_names() -> List[str]:
    """Human-readable feature names, in vector order."""
    return list(FEATURE_NAMES)


def calculate_feature_stats(feature_matrix: np.ndarray) -> Dict[str, List[float]]:
    """
    Per-feature statistics for dataset analysis.

    Args:
        feature_matrix: Feature vectors (N, 6)

    Returns:
        Dictionary with means, stds, mins, maxs (population std)
    """
    matrix = np.asarray(feature_matrix, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] == 0:
        zeros = [0.0] * FEATURE_DIM
        return {'means': zeros, 'stds': list(zeros), 'mins': list(zeros), 'maxs': list(zeros)}

    return {
        'means': matrix.mean(axis=0).tolist(),
        'stds': matrix.std(axis=0).tolist(),
        'mins': matrix.min(axis=0).tolist(),
        'maxs': matrix.max(axis=0).tolist(),
    }
