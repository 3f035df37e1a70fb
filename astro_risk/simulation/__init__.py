"""Synthetic NEO population and oracle labels."""

from astro_risk.simulation.data_generator import (
    GenerationMode,
    OracleWeights,
    RiskBand,
    SyntheticDataGenerator,
    TrainingDataset,
    TrainingSample,
    oracle_score,
)

__all__ = [
    "GenerationMode",
    "OracleWeights",
    "RiskBand",
    "SyntheticDataGenerator",
    "TrainingDataset",
    "TrainingSample",
    "oracle_score",
]
