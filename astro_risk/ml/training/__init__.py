"""Training and evaluation of the risk scoring network."""

from astro_risk.ml.training.trainer import (
    EvaluationResult,
    RiskModelTrainer,
    Trainer,
    TrainerConfig,
    generate_performance_report,
    rate_correlation,
)

__all__ = [
    "EvaluationResult",
    "RiskModelTrainer",
    "Trainer",
    "TrainerConfig",
    "generate_performance_report",
    "rate_correlation",
]
