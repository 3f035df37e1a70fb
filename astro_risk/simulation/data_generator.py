"""
Synthetic training data generation for the risk scoring network.

There is no historical ground truth for NEO impact risk, so labels come from
a deterministic rule-based oracle. Object parameters are drawn from
parametric distributions loosely matched to NEO population statistics,
either unbiased or stratified by risk band.

Author: Space AI Team
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from astro_risk.errors import InvalidInput
from astro_risk.ml.features.risk_features import (
    FEATURE_DIM,
    FeatureVector,
    ObjectParams,
    calculate_feature_stats,
    extract_features,
)
from astro_risk.utils.logging_config import get_logger

logger = get_logger("data_generator")


class RiskBand(Enum):
    """Risk band a synthetic object was drawn for."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class GenerationMode(Enum):
    UNBIASED = "unbiased"
    BALANCED = "balanced"


# Balanced mode target mix
BAND_PROPORTIONS = {
    RiskBand.LOW: 0.60,
    RiskBand.MEDIUM: 0.25,
    RiskBand.HIGH: 0.15,
}

# (size_m, velocity_km_s, miss_distance_au, pha_probability) per band
_BAND_RANGES = {
    RiskBand.LOW: ((10.0, 100.0), (5.0, 15.0), (0.1, 1.0), 0.1),
    RiskBand.MEDIUM: ((50.0, 250.0), (10.0, 25.0), (0.02, 0.22), 0.3),
    RiskBand.HIGH: ((200.0, 2000.0), (15.0, 35.0), (0.001, 0.051), 0.6),
}


# -----------------------------------------------------------------------
# Oracle
# -----------------------------------------------------------------------

@dataclass
class OracleWeights:
    """Weights of the rule-based risk formula."""
    size: float = 0.20
    distance: float = 0.35
    velocity: float = 0.15
    pha: float = 0.15
    energy: float = 0.10
    proximity: float = 0.05


RISK_NOISE = 0.05           # +/- 5% risk
CONFIDENCE_NOISE = 0.025    # +/- 2.5% confidence
CONFIDENCE_FLOOR = 0.5
CONFIDENCE_CEILING = 0.99


def _risk_factors(params: ObjectParams) -> Dict[str, float]:
    size, velocity, distance = params.size, params.velocity, params.miss_distance
    return {
        'size': min(1.0, math.log10(size + 1) / 5),
        'distance': 1.0 - distance / 0.05 if distance < 0.05 else 0.0,
        'velocity': min(1.0, velocity / 30),
        'pha': 0.3 if params.is_pha else 0.0,
        'energy': min(0.2, (size * velocity * velocity) / 1_000_000),
        'proximity': 0.2 if distance < 0.01 else 0.0,
    }


def oracle_score(
    params: ObjectParams,
    noise: bool = True,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    weights: Optional[OracleWeights] = None,
) -> Tuple[float, float]:
    """
    Rule-based (risk, confidence) for one object.

    Args:
        params: Object observables
        noise: Add uniform label noise (+/-5% risk, +/-2.5% confidence)
        seed: Seed for the noise draw; a fixed seed reproduces the output
        rng: Generator to draw noise from (takes precedence over seed)
        weights: Override the factor weights

    Returns:
        (risk in [0, 1], confidence in [0.5, 0.99])
    """
    params.check()
    weights = weights or OracleWeights()
    factors = _risk_factors(params)

    risk = min(1.0, sum(getattr(weights, name) * value for name, value in factors.items()))

    # Closer, larger and better-studied objects are measured more precisely
    confidence = 0.7
    if params.miss_distance < 0.1:
        confidence += 0.25
    elif params.miss_distance < 0.5:
        confidence += 0.15
    if params.size > 100:
        confidence += 0.1
    if params.is_pha:
        confidence += 0.05

    if noise:
        if rng is None:
            rng = np.random.default_rng(seed)
        risk += rng.uniform(-RISK_NOISE, RISK_NOISE)
        confidence += rng.uniform(-CONFIDENCE_NOISE, CONFIDENCE_NOISE)

    risk = max(0.0, min(1.0, risk))
    confidence = max(CONFIDENCE_FLOOR, min(CONFIDENCE_CEILING, confidence))
    return float(risk), float(confidence)


# -----------------------------------------------------------------------
# Dataset containers
# -----------------------------------------------------------------------

@dataclass
class TrainingSample:
    """One supervised example."""
    features: FeatureVector
    risk: float
    confidence: float
    params: Optional[ObjectParams] = None
    band: Optional[RiskBand] = None

    @property
    def labels(self) -> Tuple[float, float]:
        return (self.risk, self.confidence)


@dataclass
class TrainingDataset:
    """Labeled samples plus generation metadata."""
    samples: List[TrainingSample] = field(default_factory=list)
    mode: str = GenerationMode.UNBIASED.value
    seed: Optional[int] = None

    def __len__(self) -> int:
        return len(self.samples)

    def features(self) -> np.ndarray:
        """Feature matrix (N, 6)."""
        if not self.samples:
            return np.zeros((0, FEATURE_DIM), dtype=np.float32)
        return np.array([s.features.features for s in self.samples], dtype=np.float32)

    def labels(self) -> np.ndarray:
        """Label matrix (N, 2) = [risk, confidence]."""
        if not self.samples:
            return np.zeros((0, 2), dtype=np.float32)
        return np.array([s.labels for s in self.samples], dtype=np.float32)

    def band_counts(self) -> Dict[str, int]:
        counts = {band.value: 0 for band in RiskBand}
        for sample in self.samples:
            if sample.band is not None:
                counts[sample.band.value] += 1
        return counts

    def statistics(self) -> Dict:
        """Feature and label statistics."""
        labels = self.labels()
        stats = {
            'total_samples': len(self),
            'mode': self.mode,
            'feature_stats': calculate_feature_stats(self.features()),
            'band_counts': self.band_counts(),
        }
        if len(labels):
            stats['label_stats'] = {
                'risk_mean': float(labels[:, 0].mean()),
                'risk_min': float(labels[:, 0].min()),
                'risk_max': float(labels[:, 0].max()),
                'confidence_mean': float(labels[:, 1].mean()),
                'confidence_min': float(labels[:, 1].min()),
                'confidence_max': float(labels[:, 1].max()),
            }
        return stats

    def split(
        self,
        test_fraction: float = 0.15,
        seed: Optional[int] = None,
    ) -> Tuple["TrainingDataset", "TrainingDataset"]:
        """
        Shuffled train/test split.

        Returns:
            (train, test); the test set holds floor(N * test_fraction) samples
        """
        if not 0 <= test_fraction < 1:
            raise ValueError(f"test_fraction must be in [0, 1), got {test_fraction}")

        rng = np.random.default_rng(seed)
        order = rng.permutation(len(self.samples))
        test_size = int(len(self.samples) * test_fraction)
        train_idx, test_idx = order[test_size:], order[:test_size]

        train = TrainingDataset([self.samples[i] for i in train_idx], mode=self.mode, seed=self.seed)
        test = TrainingDataset([self.samples[i] for i in test_idx], mode=self.mode, seed=self.seed)
        return train, test

    def to_dataframe(self) -> pd.DataFrame:
        """Flatten to a DataFrame (raw params, features, labels, band)."""
        rows = []
        for sample in self.samples:
            row = {}
            if sample.params is not None:
                row.update({
                    'size_m': sample.params.size,
                    'velocity_km_s': sample.params.velocity,
                    'miss_distance_au': sample.params.miss_distance,
                    'is_pha': sample.params.is_pha,
                })
            for i, value in enumerate(sample.features.features):
                row[f'f{i}'] = value
            row['risk'] = sample.risk
            row['confidence'] = sample.confidence
            row['band'] = sample.band.value if sample.band is not None else None
            rows.append(row)
        return pd.DataFrame(rows)


# -----------------------------------------------------------------------
# Generator
# -----------------------------------------------------------------------

class SyntheticDataGenerator:
    """
    Generate labeled NEO samples for bootstrap training.

    Example:
        >>> generator = SyntheticDataGenerator(seed=42)
        >>> dataset = generator.generate_dataset(10000, mode="balanced")
        >>> train, test = dataset.split(0.15)
    """

    def __init__(self, seed: Optional[int] = None, weights: Optional[OracleWeights] = None):
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self.weights = weights or OracleWeights()

    def sample_unbiased(self) -> ObjectParams:
        """Draw one object from the population-level distributions."""
        # Log-uniform size, 10 m to 10 km
        size = 10 ** self.rng.uniform(1.0, 4.0)

        # 15-25 km/s base with +/-5 km/s noise
        velocity = self.rng.uniform(15.0, 25.0) + self.rng.uniform(-5.0, 5.0)
        velocity = max(5.0, min(40.0, velocity))

        # Exponential transform favoring small distances
        miss_distance = 0.001 + math.exp(self.rng.uniform(0.0, 3.0)) / 1000

        is_pha = bool(self.rng.random() < 0.2)

        return ObjectParams(size=size, velocity=velocity, miss_distance=miss_distance, is_pha=is_pha)

    def sample_for_risk_band(self, band: RiskBand | str) -> ObjectParams:
        """Draw one object from the ranges of a risk band."""
        band = RiskBand(band) if not isinstance(band, RiskBand) else band
        (size_lo, size_hi), (vel_lo, vel_hi), (dist_lo, dist_hi), pha_prob = _BAND_RANGES[band]

        return ObjectParams(
            size=self.rng.uniform(size_lo, size_hi),
            velocity=self.rng.uniform(vel_lo, vel_hi),
            miss_distance=self.rng.uniform(dist_lo, dist_hi),
            is_pha=bool(self.rng.random() < pha_prob),
        )

    def oracle_score(self, params: ObjectParams, noise: bool = True) -> Tuple[float, float]:
        """Oracle labels with noise drawn from this generator's RNG."""
        return oracle_score(params, noise=noise, rng=self.rng, weights=self.weights)

    def make_sample(self, params: ObjectParams, band: Optional[RiskBand] = None) -> TrainingSample:
        risk, confidence = self.oracle_score(params)
        return TrainingSample(
            features=extract_features(params),
            risk=risk,
            confidence=confidence,
            params=params,
            band=band,
        )

    @staticmethod
    def band_sizes(n: int) -> Dict[RiskBand, int]:
        """Per-band sample counts for balanced mode (high takes the remainder)."""
        low = int(n * BAND_PROPORTIONS[RiskBand.LOW])
        medium = int(n * BAND_PROPORTIONS[RiskBand.MEDIUM])
        return {RiskBand.LOW: low, RiskBand.MEDIUM: medium, RiskBand.HIGH: n - low - medium}

    def generate_dataset(self, n: int, mode: GenerationMode | str = GenerationMode.UNBIASED) -> TrainingDataset:
        """
        Build and shuffle a labeled dataset.

        Args:
            n: Number of samples
            mode: "unbiased" or "balanced" (60% low / 25% medium / 15% high)

        Returns:
            TrainingDataset in uniformly random order
        """
        if n < 0:
            raise InvalidInput("Sample count must be non-negative", {"n": n})
        mode = GenerationMode(mode) if not isinstance(mode, GenerationMode) else mode

        samples: List[TrainingSample] = []
        if mode is GenerationMode.BALANCED:
            sizes = self.band_sizes(n)
            logger.info(
                f"Generating balanced dataset: {sizes[RiskBand.LOW]} low, "
                f"{sizes[RiskBand.MEDIUM]} medium, {sizes[RiskBand.HIGH]} high risk samples"
            )
            for band, count in sizes.items():
                for _ in range(count):
                    samples.append(self.make_sample(self.sample_for_risk_band(band), band))
        else:
            logger.info(f"Generating {n} synthetic asteroid samples...")
            for i in range(n):
                samples.append(self.make_sample(self.sample_unbiased()))
                if (i + 1) % 1000 == 0:
                    logger.debug(f"Generated {i + 1}/{n} samples...")

        # Destroy generation-order correlation before any split
        order = self.rng.permutation(len(samples))
        samples = [samples[i] for i in order]

        dataset = TrainingDataset(samples=samples, mode=mode.value, seed=self.seed)

        if samples:
            label_stats = dataset.statistics()['label_stats']
            logger.info(
                f"Risk range: {label_stats['risk_min']:.3f} - {label_stats['risk_max']:.3f} "
                f"(mean: {label_stats['risk_mean']:.3f})"
            )
            logger.info(
                f"Confidence range: {label_stats['confidence_min']:.3f} - "
                f"{label_stats['confidence_max']:.3f} (mean: {label_stats['confidence_mean']:.3f})"
            )

        return dataset
