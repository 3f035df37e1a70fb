"""
Tests for synthetic data generation and the rule-based oracle.
"""

import numpy as np
import pytest

from astro_risk.errors import InvalidInput
from astro_risk.ml.features.risk_features import ObjectParams, extract_features
from astro_risk.simulation.data_generator import (
    GenerationMode,
    OracleWeights,
    RiskBand,
    SyntheticDataGenerator,
    TrainingDataset,
    oracle_score,
)


HAZARDOUS = ObjectParams(size=500.0, velocity=25.0, miss_distance=0.02, is_pha=True)
BENIGN = ObjectParams(size=15.0, velocity=6.0, miss_distance=0.8, is_pha=False)


@pytest.fixture
def generator():
    return SyntheticDataGenerator(seed=42)


# ──────────────────────────────────────────────
# Oracle
# ──────────────────────────────────────────────
class TestOracle:
    def test_hazardous_scenario_high_risk(self):
        risk, confidence = oracle_score(HAZARDOUS, noise=False)
        assert risk > 0.5
        assert confidence == pytest.approx(0.99)

    def test_benign_scenario_low_risk(self):
        risk, confidence = oracle_score(BENIGN, noise=False)
        assert risk < 0.1
        assert confidence == pytest.approx(0.7)

    def test_noiseless_is_deterministic(self):
        assert oracle_score(HAZARDOUS, noise=False) == oracle_score(HAZARDOUS, noise=False)

    def test_fixed_seed_reproduces_noise(self):
        assert oracle_score(HAZARDOUS, seed=7) == oracle_score(HAZARDOUS, seed=7)

    def test_noise_bounded(self):
        base_risk, base_conf = oracle_score(BENIGN, noise=False)
        rng = np.random.default_rng(0)
        for _ in range(200):
            risk, conf = oracle_score(BENIGN, rng=rng)
            assert abs(risk - base_risk) <= 0.05 + 1e-9
            assert abs(conf - base_conf) <= 0.025 + 1e-9

    def test_outputs_in_range(self, generator):
        for _ in range(300):
            risk, conf = generator.oracle_score(generator.sample_unbiased())
            assert 0.0 <= risk <= 1.0
            assert 0.5 <= conf <= 0.99

    def test_confidence_tiers(self):
        _, mid = oracle_score(ObjectParams(50.0, 10.0, 0.3), noise=False)
        assert mid == pytest.approx(0.85)
        _, near_big = oracle_score(ObjectParams(150.0, 10.0, 0.05), noise=False)
        assert near_big == pytest.approx(0.99)

    def test_proximity_bonus(self):
        near, _ = oracle_score(ObjectParams(100.0, 10.0, 0.0099), noise=False)
        just_out, _ = oracle_score(ObjectParams(100.0, 10.0, 0.0101), noise=False)
        # 0.05 * 0.2 bonus plus a tiny distance-factor difference
        assert near - just_out == pytest.approx(0.01 + 0.35 * 0.0002 / 0.05, abs=1e-6)

    def test_custom_weights(self):
        weights = OracleWeights(size=0, distance=1.0, velocity=0, pha=0, energy=0, proximity=0)
        risk, _ = oracle_score(ObjectParams(100.0, 10.0, 0.025), noise=False, weights=weights)
        assert risk == pytest.approx(0.5)

    def test_invalid_params_raise(self):
        with pytest.raises(InvalidInput):
            oracle_score(ObjectParams(size=-1.0, velocity=10.0, miss_distance=0.1))


# ──────────────────────────────────────────────
# Sampling
# ──────────────────────────────────────────────
class TestSampling:
    def test_unbiased_ranges(self, generator):
        for _ in range(500):
            p = generator.sample_unbiased()
            assert 10.0 <= p.size <= 10000.0
            assert 5.0 <= p.velocity <= 40.0
            assert 0.002 <= p.miss_distance <= 0.001 + np.exp(3.0) / 1000 + 1e-12

    @pytest.mark.parametrize("band,size,velocity,distance", [
        (RiskBand.LOW, (10, 100), (5, 15), (0.1, 1.0)),
        (RiskBand.MEDIUM, (50, 250), (10, 25), (0.02, 0.22)),
        (RiskBand.HIGH, (200, 2000), (15, 35), (0.001, 0.051)),
    ])
    def test_band_ranges(self, generator, band, size, velocity, distance):
        for _ in range(200):
            p = generator.sample_for_risk_band(band)
            assert size[0] <= p.size <= size[1]
            assert velocity[0] <= p.velocity <= velocity[1]
            assert distance[0] <= p.miss_distance <= distance[1]

    def test_band_by_name(self, generator):
        p = generator.sample_for_risk_band("high")
        assert p.size >= 200

    def test_pha_rate_by_band(self, generator):
        n = 4000
        low = np.mean([generator.sample_for_risk_band(RiskBand.LOW).is_pha for _ in range(n)])
        high = np.mean([generator.sample_for_risk_band(RiskBand.HIGH).is_pha for _ in range(n)])
        assert low == pytest.approx(0.1, abs=0.03)
        assert high == pytest.approx(0.6, abs=0.03)

    def test_high_band_scores_above_low_band(self, generator):
        low = np.mean([generator.oracle_score(generator.sample_for_risk_band("low"))[0] for _ in range(300)])
        high = np.mean([generator.oracle_score(generator.sample_for_risk_band("high"))[0] for _ in range(300)])
        assert high > low + 0.2


# ──────────────────────────────────────────────
# Dataset generation
# ──────────────────────────────────────────────
class TestGenerateDataset:
    def test_balanced_proportions(self, generator):
        dataset = generator.generate_dataset(1000, GenerationMode.BALANCED)
        assert len(dataset) == 1000
        assert dataset.band_counts() == {"low": 600, "medium": 250, "high": 150}

    def test_balanced_remainder_goes_to_high(self):
        sizes = SyntheticDataGenerator.band_sizes(7)
        assert sizes == {RiskBand.LOW: 4, RiskBand.MEDIUM: 1, RiskBand.HIGH: 2}

    def test_balanced_is_shuffled(self, generator):
        dataset = generator.generate_dataset(300, "balanced")
        bands = [s.band.value for s in dataset.samples]
        assert bands != sorted(bands, key=["low", "medium", "high"].index)

    def test_unbiased(self, generator):
        dataset = generator.generate_dataset(200, "unbiased")
        assert len(dataset) == 200
        assert dataset.mode == "unbiased"
        assert all(s.band is None for s in dataset.samples)

    def test_shapes(self, generator):
        dataset = generator.generate_dataset(50)
        assert dataset.features().shape == (50, 6)
        assert dataset.labels().shape == (50, 2)
        assert dataset.features().dtype == np.float32

    def test_labels_match_features(self, generator):
        dataset = generator.generate_dataset(20)
        for sample in dataset.samples:
            assert sample.features.features == extract_features(sample.params).features

    def test_seed_reproducibility(self):
        a = SyntheticDataGenerator(seed=123).generate_dataset(100, "balanced")
        b = SyntheticDataGenerator(seed=123).generate_dataset(100, "balanced")
        np.testing.assert_array_equal(a.features(), b.features())
        np.testing.assert_array_equal(a.labels(), b.labels())

    def test_different_seeds_differ(self):
        a = SyntheticDataGenerator(seed=1).generate_dataset(50)
        b = SyntheticDataGenerator(seed=2).generate_dataset(50)
        assert not np.array_equal(a.features(), b.features())

    def test_empty(self, generator):
        dataset = generator.generate_dataset(0)
        assert len(dataset) == 0
        assert dataset.features().shape == (0, 6)

    def test_negative_count_raises(self, generator):
        with pytest.raises(InvalidInput):
            generator.generate_dataset(-1)

    def test_unknown_mode_raises(self, generator):
        with pytest.raises(ValueError):
            generator.generate_dataset(10, "stratified")


# ──────────────────────────────────────────────
# TrainingDataset
# ──────────────────────────────────────────────
class TestTrainingDataset:
    def test_split_sizes(self, generator):
        dataset = generator.generate_dataset(100)
        train, test = dataset.split(0.15, seed=0)
        assert len(train) == 85
        assert len(test) == 15
        train_ids = {id(s) for s in train.samples}
        assert not any(id(s) in train_ids for s in test.samples)

    def test_split_rejects_bad_fraction(self, generator):
        dataset = generator.generate_dataset(10)
        with pytest.raises(ValueError):
            dataset.split(1.0)

    def test_statistics(self, generator):
        stats = generator.generate_dataset(200, "balanced").statistics()
        assert stats["total_samples"] == 200
        assert stats["mode"] == "balanced"
        assert len(stats["feature_stats"]["means"]) == 6
        labels = stats["label_stats"]
        assert 0.0 <= labels["risk_min"] <= labels["risk_mean"] <= labels["risk_max"] <= 1.0
        assert labels["confidence_min"] >= 0.5

    def test_empty_statistics(self):
        stats = TrainingDataset().statistics()
        assert stats["total_samples"] == 0
        assert "label_stats" not in stats

    def test_to_dataframe(self, generator):
        df = generator.generate_dataset(30, "balanced").to_dataframe()
        assert len(df) == 30
        for column in ["size_m", "velocity_km_s", "miss_distance_au", "is_pha",
                       "f0", "f5", "risk", "confidence", "band"]:
            assert column in df.columns
        assert set(df["band"]) <= {"low", "medium", "high"}
