"""
Tests for the training loop and evaluation.

Covers: TrainerConfig, dataset validation, RiskModelTrainer.train/evaluate,
        early stopping, metadata format, performance report.
"""

from datetime import datetime

import numpy as np
import pytest
import torch

from astro_risk.errors import TrainingError
from astro_risk.ml.training.trainer import (
    CONFIDENCE_QUALITY_THRESHOLDS,
    RISK_QUALITY_THRESHOLDS,
    RiskModelTrainer,
    TrainerConfig,
    as_arrays,
    generate_performance_report,
    rate_correlation,
)
from astro_risk.simulation.data_generator import SyntheticDataGenerator, TrainingDataset


@pytest.fixture(scope="module")
def dataset():
    return SyntheticDataGenerator(seed=42).generate_dataset(300, "balanced")


@pytest.fixture
def quick_config():
    return TrainerConfig(epochs=5, batch_size=32, seed=0, log_interval=1)


@pytest.fixture
def trainer():
    return RiskModelTrainer()


# ──────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────
class TestTrainerConfig:
    def test_defaults(self):
        config = TrainerConfig()
        assert config.epochs == 150
        assert config.batch_size == 32
        assert config.learning_rate == pytest.approx(1e-3)
        assert config.validation_split == pytest.approx(0.2)
        assert config.early_stopping is True
        assert config.patience == 20

    def test_from_dict_ignores_unknown_keys(self):
        config = TrainerConfig.from_dict({"epochs": 3, "batch_size": 8, "optimizer": "sgd"})
        assert config.epochs == 3
        assert config.batch_size == 8


# ──────────────────────────────────────────────
# Dataset validation
# ──────────────────────────────────────────────
class TestDatasetValidation:
    def test_empty_dataset(self, trainer):
        with pytest.raises(TrainingError):
            trainer.train(TrainingDataset())

    def test_wrong_feature_width(self, trainer):
        with pytest.raises(TrainingError):
            trainer.train((np.zeros((10, 5)), np.zeros((10, 2))))

    def test_wrong_label_width(self, trainer):
        with pytest.raises(TrainingError):
            trainer.train((np.zeros((10, 6)), np.zeros((10, 3))))

    def test_count_mismatch(self):
        with pytest.raises(TrainingError):
            as_arrays((np.zeros((10, 6)), np.zeros((9, 2))))

    def test_non_finite(self):
        features = np.zeros((4, 6))
        features[1, 2] = np.nan
        with pytest.raises(TrainingError):
            as_arrays((features, np.zeros((4, 2))))

    def test_bad_validation_split(self, trainer, dataset):
        with pytest.raises(TrainingError):
            trainer.train(dataset, TrainerConfig(epochs=1, validation_split=1.0))

    def test_arrays_from_dataset(self, dataset):
        features, labels = as_arrays(dataset)
        assert features.shape == (300, 6)
        assert labels.shape == (300, 2)
        assert features.dtype == np.float32


# ──────────────────────────────────────────────
# Training
# ──────────────────────────────────────────────
class TestTraining:
    def test_returns_artifact(self, trainer, dataset, quick_config):
        artifact = trainer.train(dataset, quick_config)
        assert artifact.model.param_count() == 266
        assert not artifact.model.training
        assert len(artifact.metadata["training"]["history"]["loss"]) == 5

    def test_loss_decreases(self, trainer, dataset):
        artifact = trainer.train(dataset, TrainerConfig(epochs=20, seed=1, early_stopping=False))
        history = artifact.metadata["training"]["history"]["loss"]
        assert history[-1] < history[0]

    def test_metadata_format(self, trainer, dataset, quick_config):
        metadata = trainer.train(dataset, quick_config).metadata
        assert metadata["version"] == "1.0.0"
        datetime.fromisoformat(metadata["trainedAt"])
        perf = metadata["performance"]
        assert set(perf) == {"loss", "mae", "correlations"}
        assert set(perf["correlations"]) == {"risk", "confidence"}
        assert metadata["modelArchitecture"] == {
            "inputFeatures": 6,
            "hiddenLayers": [16, 8],
            "outputs": 2,
            "totalParameters": 266,
        }
        assert metadata["datasetInfo"] == {
            "totalSamples": 300,
            "trainingSamples": 240,
            "validationSamples": 60,
            "balanced": True,
        }
        assert metadata["trainingConfig"]["epochs"] == 5

    def test_tuple_dataset_without_validation(self, trainer):
        rng = np.random.default_rng(0)
        features = rng.random((64, 6)).astype(np.float32)
        labels = rng.random((64, 2)).astype(np.float32)
        artifact = trainer.train((features, labels), TrainerConfig(epochs=2, validation_split=0.0))
        assert artifact.metadata["datasetInfo"]["validationSamples"] == 0
        assert artifact.metadata["validation"]["loss"] is None

    def test_early_stopping_on_plateau(self, trainer, dataset):
        # Zero learning rate: validation loss never improves after epoch 1
        config = TrainerConfig(epochs=50, learning_rate=0.0, patience=3, seed=0)
        training = trainer.train(dataset, config).metadata["training"]
        assert training["stoppedEarly"] is True
        assert training["epochsRun"] == 4
        assert training["bestEpoch"] == 1

    def test_no_early_stopping_runs_all_epochs(self, trainer, dataset):
        config = TrainerConfig(epochs=6, learning_rate=0.0, patience=1, early_stopping=False)
        training = trainer.train(dataset, config).metadata["training"]
        assert training["stoppedEarly"] is False
        assert training["epochsRun"] == 6

    def test_seeded_training_is_reproducible(self, trainer, dataset):
        a = trainer.train(dataset, TrainerConfig(epochs=3, seed=11)).model
        b = trainer.train(dataset, TrainerConfig(epochs=3, seed=11)).model
        for (name, pa), (_, pb) in zip(a.state_dict().items(), b.state_dict().items()):
            torch.testing.assert_close(pa, pb, msg=name)


# ──────────────────────────────────────────────
# Evaluation
# ──────────────────────────────────────────────
class TestEvaluation:
    def test_rate_correlation(self):
        assert rate_correlation(0.95, RISK_QUALITY_THRESHOLDS) == "Excellent"
        assert rate_correlation(0.85, RISK_QUALITY_THRESHOLDS) == "Good"
        assert rate_correlation(0.9, RISK_QUALITY_THRESHOLDS) == "Good"
        assert rate_correlation(0.5, RISK_QUALITY_THRESHOLDS) == "Needs Improvement"
        assert rate_correlation(0.75, CONFIDENCE_QUALITY_THRESHOLDS) == "Good"

    def test_evaluate(self, trainer, dataset, quick_config):
        train, test = dataset.split(0.2, seed=0)
        artifact = trainer.train(train, quick_config)
        result = trainer.evaluate(artifact.model, test)
        assert result.predictions.shape == (60, 2)
        assert result.loss >= 0 and result.mae >= 0
        assert set(result.quality.values()) <= {"Excellent", "Good", "Needs Improvement"}
        assert result.to_dict()["num_samples"] == 60

    def test_evaluate_rejects_empty(self, trainer):
        model = trainer.build_model()
        with pytest.raises(TrainingError):
            trainer.evaluate(model, TrainingDataset())

    def test_report(self, trainer, dataset, quick_config):
        artifact = trainer.train(dataset, quick_config)
        result = trainer.evaluate(artifact.model, dataset)
        report = generate_performance_report(artifact, result)
        assert report.startswith("# Asteroid Risk Prediction Model - Performance Report")
        assert "Total Parameters: 266" in report
        assert "Risk Prediction Quality" in report
