"""
Unit tests for utility modules.
"""

import pytest
import numpy as np
import yaml

from astro_risk.errors import AstroRiskError, ModelLoadError
from astro_risk.utils.config_loader import Config, GeneratorConfig, RuntimeConfig, TrainingConfig
from astro_risk.utils.logging_config import LogConfig, get_logger
from astro_risk.utils.metrics import (
    PerformanceMetrics,
    mae,
    pearson_correlation,
    per_output_metrics,
    rmse,
    timer,
)


class TestConfigLoader:
    """Test configuration loading and validation."""

    def test_generator_config_defaults(self):
        """Test default generator configuration."""
        config = GeneratorConfig()
        assert config.num_samples == 10000
        assert config.mode == "balanced"
        assert config.seed is None
        assert config.test_fraction == pytest.approx(0.15)

    def test_generator_config_validation(self):
        """Test configuration validation."""
        with pytest.raises(ValueError):
            GeneratorConfig(num_samples=0)
        with pytest.raises(ValueError):
            GeneratorConfig(mode="stratified")

    def test_training_config_defaults(self):
        config = TrainingConfig()
        assert config.epochs == 150
        assert config.batch_size == 32
        assert config.patience == 20

    def test_runtime_config_defaults(self):
        """Test default runtime configuration."""
        config = RuntimeConfig()
        assert config.cache_ttl_seconds == 86400
        assert config.bootstrap_samples == 5000
        assert config.bootstrap_epochs == 50
        assert config.model_version == "1.0.0"

    def test_validate_assignment(self):
        config = RuntimeConfig()
        with pytest.raises(ValueError):
            config.cache_ttl_seconds = -1

    def test_missing_files_give_defaults(self, tmp_path):
        config = Config(tmp_path / "absent")
        config.load_all()
        assert config.runtime == RuntimeConfig()
        assert set(config.as_dict()) == {"generator", "training", "runtime"}

    def test_create_and_load_defaults(self, tmp_path):
        config = Config(tmp_path)
        config.create_default_configs()
        for name in ("generator.yaml", "training.yaml", "runtime.yaml"):
            assert (tmp_path / name).exists()

        config.load_all()
        assert config.training == TrainingConfig()

    def test_load_overrides(self, tmp_path):
        (tmp_path / "runtime.yaml").write_text(yaml.safe_dump({"cache_ttl_seconds": 60, "device": "cpu"}))
        runtime = Config(tmp_path).load_config("runtime.yaml", RuntimeConfig)
        assert runtime.cache_ttl_seconds == 60
        assert runtime.artifact_dir == "models/asteroid-risk-model"

    def test_empty_file_gives_defaults(self, tmp_path):
        (tmp_path / "generator.yaml").write_text("")
        assert Config(tmp_path).load_config("generator.yaml", GeneratorConfig) == GeneratorConfig()

    def test_save_round_trip(self, tmp_path):
        config = Config(tmp_path)
        config.save_config(GeneratorConfig(num_samples=42, seed=7), "generator.yaml")
        loaded = config.load_config("generator.yaml", GeneratorConfig)
        assert loaded.num_samples == 42
        assert loaded.seed == 7


class TestMetrics:
    """Test performance metrics."""

    def test_performance_metrics_recording(self):
        """Test metric recording."""
        metrics = PerformanceMetrics()
        metrics.record("latency", 0.1)
        metrics.record("latency", 0.2)
        metrics.record("latency", 0.15)

        stats = metrics.get_stats("latency")
        assert stats["count"] == 3
        assert stats["mean"] == pytest.approx(0.15, abs=0.01)

    def test_unknown_metric(self):
        assert PerformanceMetrics().get_stats("missing") == {}

    def test_timer_records_milliseconds(self):
        metrics = PerformanceMetrics()
        with timer("block", metrics):
            pass
        stats = metrics.summary()["block"]
        assert stats["count"] == 1
        assert stats["min"] >= 0.0
        metrics.reset()
        assert metrics.summary() == {}

    def test_percentiles(self):
        metrics = PerformanceMetrics()
        for value in range(1, 101):
            metrics.record("latency", value)
        stats = metrics.get_stats("latency")
        assert stats["p50"] == pytest.approx(50.5)
        assert stats["p95"] == pytest.approx(95.05)
        assert stats["max"] == 100.0

    def test_rmse(self):
        """Test RMSE calculation."""
        predictions = np.array([1.0, 2.0, 3.0])
        targets = np.array([1.1, 2.1, 2.9])

        error = rmse(predictions, targets)
        assert error == pytest.approx(0.1, abs=0.01)

    def test_mae(self):
        """Test MAE calculation."""
        predictions = np.array([1.0, 2.0, 3.0])
        targets = np.array([1.1, 2.1, 2.9])

        error = mae(predictions, targets)
        assert error == pytest.approx(0.1, abs=0.01)


class TestPearsonCorrelation:
    def test_perfect_positive(self):
        assert pearson_correlation([1, 2, 3, 4], [2, 4, 6, 8]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson_correlation([1, 2, 3, 4], [8, 6, 4, 2]) == pytest.approx(-1.0)

    def test_matches_numpy(self):
        rng = np.random.default_rng(0)
        x, y = rng.random(50), rng.random(50)
        assert pearson_correlation(x, y) == pytest.approx(np.corrcoef(x, y)[0, 1])

    def test_constant_series(self):
        assert pearson_correlation([1, 1, 1], [1, 2, 3]) == 0.0

    def test_empty_or_mismatched(self):
        assert pearson_correlation([], []) == 0.0
        assert pearson_correlation([1, 2], [1, 2, 3]) == 0.0

    def test_per_output_metrics(self):
        targets = np.array([[0.1, 0.6], [0.5, 0.8], [0.9, 0.9]])
        predictions = targets + np.array([[0.1, 0.0], [0.1, 0.0], [0.1, 0.0]])
        result = per_output_metrics(predictions, targets)
        assert set(result) == {"risk", "confidence"}
        assert result["risk"]["mae"] == pytest.approx(0.1)
        assert result["risk"]["rmse"] == pytest.approx(0.1)
        assert result["risk"]["correlation"] == pytest.approx(1.0)
        assert result["confidence"]["mae"] == 0.0


class TestErrors:
    def test_details_in_message(self):
        error = AstroRiskError("load failed", {"path": "models/x"})
        assert str(error) == "load failed (path=models/x)"

    def test_model_load_error_source(self):
        error = ModelLoadError("missing weights", source="models/x", attempt=2)
        assert error.source == "models/x"
        assert error.details == {"attempt": 2, "source": "models/x"}


class TestLogging:
    def test_components(self):
        assert "inference" in LogConfig.COMPONENTS

    def test_get_logger_binds_component(self):
        messages = []
        logger = get_logger("trainer")
        handler_id = logger.add(lambda message: messages.append(message.record["extra"]), level="INFO")
        try:
            logger.info("hello")
        finally:
            logger.remove(handler_id)
        assert messages == [{"component": "trainer"}]

    def test_setup_writes_component_files(self, tmp_path):
        original = LogConfig.LOG_DIR
        try:
            LogConfig.setup(log_level="DEBUG", log_dir=tmp_path)
            get_logger("inference").info("runtime ready")
        finally:
            # Re-running setup closes (and flushes) the temporary sinks
            LogConfig.setup(log_dir=original)

        assert "runtime ready" in (tmp_path / "inference.jsonl").read_text()
        assert "runtime ready" in (tmp_path / "application.log").read_text()
        assert not (tmp_path / "trainer.jsonl").read_text()
