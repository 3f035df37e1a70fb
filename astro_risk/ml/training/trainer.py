"""
Training Loop for the NEO Risk Scoring Network.

This module provides:
- Train/validation splits (trailing fraction held out, as the data is pre-shuffled)
- Per-epoch shuffled mini-batches
- Early stopping with best-weight restoration
- Metric tracking and logging
- Held-out evaluation with Pearson correlation quality gates

Author: Space AI Team
"""

import copy
import time
import torch
import torch.nn as nn
from torch.utils.data import DataLoader, TensorDataset
from typing import Dict, List, Optional, Tuple, Union
from dataclasses import dataclass, asdict, field
from tqdm import tqdm
import numpy as np

from astro_risk.errors import TrainingError
from astro_risk.ml.artifacts import ModelArtifact, build_metadata
from astro_risk.ml.features.risk_features import FEATURE_DIM
from astro_risk.ml.models.risk_network import OUTPUT_DIM, RiskNetwork, RiskNetworkConfig
from astro_risk.simulation.data_generator import TrainingDataset
from astro_risk.utils.logging_config import get_logger
from astro_risk.utils.metrics import pearson_correlation, per_output_metrics

logger = get_logger("trainer")

DatasetLike = Union[TrainingDataset, Tuple[np.ndarray, np.ndarray]]

# (excellent, good) correlation thresholds per output
RISK_QUALITY_THRESHOLDS = (0.9, 0.8)
CONFIDENCE_QUALITY_THRESHOLDS = (0.8, 0.7)


@dataclass
class TrainerConfig:
    """Configuration for training."""
    epochs: int = 150
    batch_size: int = 32
    learning_rate: float = 1e-3
    validation_split: float = 0.2
    early_stopping: bool = True
    patience: int = 20  # Stop if no improvement for N epochs
    min_delta: float = 0.0  # Minimum change to count as improvement
    device: str = "cpu"
    seed: Optional[int] = None
    log_interval: int = 10  # Log every N epochs
    show_progress: bool = False  # tqdm bar per epoch
    model_version: str = "1.0.0"

    @classmethod
    def from_dict(cls, values: Dict) -> "TrainerConfig":
        known = {k: v for k, v in values.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class EvaluationResult:
    """Held-out evaluation of a trained network."""
    loss: float
    mae: float
    predictions: np.ndarray  # (N, 2)
    correlations: Dict[str, float]
    quality: Dict[str, str] = field(default_factory=dict)
    per_output: Dict[str, Dict[str, float]] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'loss': self.loss,
            'mae': self.mae,
            'correlations': dict(self.correlations),
            'quality': dict(self.quality),
            'per_output': {k: dict(v) for k, v in self.per_output.items()},
            'num_samples': int(self.predictions.shape[0]),
        }


def rate_correlation(value: float, thresholds: Tuple[float, float]) -> str:
    """Map a correlation to 'Excellent', 'Good' or 'Needs Improvement'."""
    excellent, good = thresholds
    if value > excellent:
        return "Excellent"
    if value > good:
        return "Good"
    return "Needs Improvement"


def as_arrays(dataset: DatasetLike) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert a dataset to (features, labels) float32 arrays and check shapes.

    Raises:
        TrainingError: on empty data or shapes other than (N, 6) / (N, 2)
    """
    if isinstance(dataset, TrainingDataset):
        features, labels = dataset.features(), dataset.labels()
    else:
        try:
            features, labels = dataset
            features = np.asarray(features, dtype=np.float32)
            labels = np.asarray(labels, dtype=np.float32)
        except (TypeError, ValueError) as e:
            raise TrainingError(f"Malformed dataset: {e}") from e

    if features.shape[0] == 0 or labels.shape[0] == 0:
        raise TrainingError("Dataset is empty")
    if features.ndim != 2 or features.shape[1] != FEATURE_DIM:
        raise TrainingError(
            f"Expected features of shape (N, {FEATURE_DIM})", {"shape": tuple(features.shape)}
        )
    if labels.ndim != 2 or labels.shape[1] != OUTPUT_DIM:
        raise TrainingError(
            f"Expected labels of shape (N, {OUTPUT_DIM})", {"shape": tuple(labels.shape)}
        )
    if features.shape[0] != labels.shape[0]:
        raise TrainingError(
            "Feature and label counts differ",
            {"features": features.shape[0], "labels": labels.shape[0]},
        )
    if not (np.isfinite(features).all() and np.isfinite(labels).all()):
        raise TrainingError("Dataset contains non-finite values")

    return features.astype(np.float32), labels.astype(np.float32)


class Trainer:
    """
    Epoch loop for one model, optimizer and loss.

    Handles:
    - Forward/backward passes
    - Optimization
    - Validation
    - Early stopping with best-weight restoration
    - Metric tracking
    """

    def __init__(
        self,
        model: nn.Module,
        optimizer: torch.optim.Optimizer,
        criterion: nn.Module,
        config: TrainerConfig,
    ):
        self.model = model
        self.optimizer = optimizer
        self.criterion = criterion
        self.config = config

        self.device = torch.device(config.device)
        self.model.to(self.device)

        # Training state
        self.current_epoch = 0
        self.best_epoch = 0
        self.best_val_loss = float('inf')
        self.best_state: Optional[Dict[str, torch.Tensor]] = None
        self.epochs_without_improvement = 0
        self.stopped_early = False

        self.history: Dict[str, List[float]] = {
            'loss': [],
            'mae': [],
            'val_loss': [],
            'val_mae': [],
        }

    def train_epoch(self, train_loader: DataLoader) -> Dict[str, float]:
        """
        Train for one epoch.

        Returns:
            Sample-weighted loss and MAE
        """
        self.model.train()
        total_loss = 0.0
        total_mae = 0.0
        seen = 0

        with tqdm(
            train_loader,
            desc=f"Epoch {self.current_epoch + 1}",
            disable=not self.config.show_progress,
            leave=False,
        ) as pbar:
            for inputs, targets in pbar:
                inputs, targets = inputs.to(self.device), targets.to(self.device)

                self.optimizer.zero_grad()
                outputs = self.model(inputs)
                loss = self.criterion(outputs, targets)
                loss.backward()
                self.optimizer.step()

                n = inputs.size(0)
                total_loss += loss.item() * n
                total_mae += torch.mean(torch.abs(outputs.detach() - targets)).item() * n
                seen += n
                pbar.set_postfix({'loss': f'{loss.item():.6f}'})

        return {'loss': total_loss / seen, 'mae': total_mae / seen}

    def validate(self, features: torch.Tensor, labels: torch.Tensor) -> Dict[str, float]:
        """Loss and MAE on a full tensor pair in eval mode."""
        self.model.eval()
        with torch.no_grad():
            outputs = self.model(features.to(self.device))
            targets = labels.to(self.device)
            loss = self.criterion(outputs, targets).item()
            mae = torch.mean(torch.abs(outputs - targets)).item()
        return {'loss': loss, 'mae': mae}

    def train(
        self,
        train_loader: DataLoader,
        val_data: Optional[Tuple[torch.Tensor, torch.Tensor]] = None,
    ) -> Dict[str, List[float]]:
        """
        Complete training loop.

        Args:
            train_loader: Shuffling training loader
            val_data: Optional (features, labels) validation tensors

        Returns:
            Training history
        """
        logger.info(f"Starting training for {self.config.epochs} epochs")
        use_early_stopping = self.config.early_stopping and val_data is not None

        for epoch in range(self.config.epochs):
            self.current_epoch = epoch

            train_metrics = self.train_epoch(train_loader)
            self.history['loss'].append(train_metrics['loss'])
            self.history['mae'].append(train_metrics['mae'])

            if val_data is None:
                if epoch % self.config.log_interval == 0 or epoch < 5:
                    logger.info(
                        f"Epoch {epoch + 1}/{self.config.epochs} - "
                        f"Loss: {train_metrics['loss']:.4f}, MAE: {train_metrics['mae']:.4f}"
                    )
                continue

            val_metrics = self.validate(*val_data)
            self.history['val_loss'].append(val_metrics['loss'])
            self.history['val_mae'].append(val_metrics['mae'])

            if epoch % self.config.log_interval == 0 or epoch < 5:
                logger.info(
                    f"Epoch {epoch + 1}/{self.config.epochs} - "
                    f"Loss: {train_metrics['loss']:.4f}, Val Loss: {val_metrics['loss']:.4f}, "
                    f"MAE: {train_metrics['mae']:.4f}, Val MAE: {val_metrics['mae']:.4f}"
                )

            # Check for improvement
            if val_metrics['loss'] < self.best_val_loss - self.config.min_delta:
                self.best_val_loss = val_metrics['loss']
                self.best_epoch = epoch
                self.best_state = copy.deepcopy(self.model.state_dict())
                self.epochs_without_improvement = 0
            else:
                self.epochs_without_improvement += 1

            if use_early_stopping and self.epochs_without_improvement >= self.config.patience:
                logger.info(
                    f"Early stopping triggered after {epoch + 1} epochs "
                    f"(best epoch {self.best_epoch + 1}, val loss {self.best_val_loss:.6f})"
                )
                self.stopped_early = True
                break

        if use_early_stopping and self.best_state is not None:
            self.model.load_state_dict(self.best_state)
            logger.info(f"Restored best weights from epoch {self.best_epoch + 1}")

        logger.info("Training complete!")
        return self.history

    @property
    def epochs_run(self) -> int:
        return len(self.history['loss'])


class RiskModelTrainer:
    """
    Builds, fits and evaluates the risk scoring network.

    Example:
        >>> trainer = RiskModelTrainer()
        >>> artifact = trainer.train(dataset, TrainerConfig(epochs=50))
        >>> result = trainer.evaluate(artifact.model, test_set)
        >>> print(result.correlations)
    """

    def __init__(self, network_config: Optional[RiskNetworkConfig] = None):
        self.network_config = network_config or RiskNetworkConfig()

    def build_model(self) -> RiskNetwork:
        return RiskNetwork(copy.deepcopy(self.network_config))

    def train(self, dataset: DatasetLike, config: Optional[TrainerConfig] = None) -> ModelArtifact:
        """
        Fit a fresh network on a labeled dataset.

        Args:
            dataset: TrainingDataset or (features (N, 6), labels (N, 2))
            config: Training hyper-parameters

        Returns:
            ModelArtifact with performance and dataset metadata

        Raises:
            TrainingError: on empty or mis-shaped data
        """
        config = config or TrainerConfig()
        features, labels = as_arrays(dataset)

        if not 0 <= config.validation_split < 1:
            raise TrainingError("validation_split must be in [0, 1)", {"value": config.validation_split})

        n_total = features.shape[0]
        n_val = int(n_total * config.validation_split)
        n_train = n_total - n_val
        if n_train == 0:
            raise TrainingError("No samples left for training after validation split", {"samples": n_total})

        logger.info(f"Training samples: {n_train}, validation samples: {n_val}")

        if config.seed is not None:
            torch.manual_seed(config.seed)

        start = time.perf_counter()

        train_x = torch.from_numpy(features[:n_train])
        train_y = torch.from_numpy(labels[:n_train])
        val_data = None
        if n_val > 0:
            val_data = (torch.from_numpy(features[n_train:]), torch.from_numpy(labels[n_train:]))

        loader_generator = torch.Generator()
        if config.seed is not None:
            loader_generator.manual_seed(config.seed)
        train_loader = DataLoader(
            TensorDataset(train_x, train_y),
            batch_size=config.batch_size,
            shuffle=True,
            generator=loader_generator,
        )

        model = self.build_model()
        optimizer = torch.optim.Adam(model.parameters(), lr=config.learning_rate)
        criterion = nn.MSELoss()

        trainer = Trainer(model, optimizer, criterion, config)
        history = trainer.train(train_loader, val_data)
        training_time = time.perf_counter() - start

        model.eval()
        final_train = trainer.validate(train_x, train_y)
        if val_data is not None:
            final_val = trainer.validate(*val_data)
            held_out_x, held_out_y = val_data
        else:
            final_val = {'loss': None, 'mae': None}
            held_out_x, held_out_y = train_x, train_y

        with torch.no_grad():
            held_out_pred = model(held_out_x.to(trainer.device)).cpu().numpy()
        held_out_y = held_out_y.numpy()
        risk_corr = pearson_correlation(held_out_pred[:, 0], held_out_y[:, 0])
        confidence_corr = pearson_correlation(held_out_pred[:, 1], held_out_y[:, 1])

        metadata = build_metadata(
            model,
            version=config.model_version,
            loss=final_train['loss'],
            mae=final_train['mae'],
            risk_correlation=risk_corr,
            confidence_correlation=confidence_corr,
            training_config=asdict(config),
            dataset_info={
                'totalSamples': n_total,
                'trainingSamples': n_train,
                'validationSamples': n_val,
                'balanced': isinstance(dataset, TrainingDataset) and dataset.mode == "balanced",
            },
            extra={
                'validation': {'loss': final_val['loss'], 'mae': final_val['mae']},
                'training': {
                    'epochsRun': trainer.epochs_run,
                    'bestEpoch': trainer.best_epoch + 1,
                    'stoppedEarly': trainer.stopped_early,
                    'trainingTimeSeconds': training_time,
                    'history': history,
                },
            },
        )

        logger.info(
            f"Training completed in {training_time:.1f}s - loss {final_train['loss']:.4f}, "
            f"MAE {final_train['mae']:.4f}, risk r={risk_corr:.3f}, confidence r={confidence_corr:.3f}"
        )
        return ModelArtifact(model=model, metadata=metadata)

    def evaluate(self, model: RiskNetwork, test_set: DatasetLike, device: str = "cpu") -> EvaluationResult:
        """
        Evaluate a network on held-out data.

        Returns:
            EvaluationResult with loss, MAE, predictions, correlations, quality
        """
        features, labels = as_arrays(test_set)

        model.to(device)
        model.eval()
        with torch.no_grad():
            outputs = model(torch.from_numpy(features).to(device))
            targets = torch.from_numpy(labels).to(device)
            loss = nn.functional.mse_loss(outputs, targets).item()
            mae = torch.mean(torch.abs(outputs - targets)).item()
        predictions = outputs.cpu().numpy()

        per_output = per_output_metrics(predictions, labels)
        correlations = {name: values['correlation'] for name, values in per_output.items()}
        quality = {
            'risk': rate_correlation(correlations['risk'], RISK_QUALITY_THRESHOLDS),
            'confidence': rate_correlation(correlations['confidence'], CONFIDENCE_QUALITY_THRESHOLDS),
        }

        logger.info(f"Test Loss: {loss:.4f}")
        logger.info(f"Test MAE: {mae:.4f}")
        logger.info(f"Risk Correlation: {correlations['risk']:.3f} ({quality['risk']})")
        logger.info(f"Confidence Correlation: {correlations['confidence']:.3f} ({quality['confidence']})")

        return EvaluationResult(
            loss=loss,
            mae=mae,
            predictions=predictions,
            correlations=correlations,
            quality=quality,
            per_output=per_output,
        )


def _fmt(value: Optional[float]) -> str:
    return "n/a" if value is None else f"{value:.4f}"


def generate_performance_report(artifact: ModelArtifact, evaluation: EvaluationResult) -> str:
    """Markdown summary of a training run and its held-out evaluation."""
    arch = artifact.model_architecture
    perf = artifact.metadata.get('performance', {})
    validation = artifact.metadata.get('validation', {})
    training = artifact.metadata.get('training', {})
    marks = {"Excellent": "[OK]", "Good": "[WARN]", "Needs Improvement": "[FAIL]"}

    hidden = " -> ".join(str(h) for h in arch['hiddenLayers'])
    return "\n".join([
        "# Asteroid Risk Prediction Model - Performance Report",
        "",
        "## Model Architecture",
        f"- Input Features: {arch['inputFeatures']}",
        f"- Hidden Layers: {len(arch['hiddenLayers'])} ({hidden} neurons)",
        f"- Output: {arch['outputs']} (risk, confidence)",
        f"- Total Parameters: {arch['totalParameters']:,}",
        "",
        "## Training Results",
        f"- Training Time: {training.get('trainingTimeSeconds', 0.0):.1f}s",
        f"- Epochs Run: {training.get('epochsRun', 0)}",
        f"- Final Training Loss: {_fmt(perf.get('loss'))}",
        f"- Final Validation Loss: {_fmt(validation.get('loss'))}",
        f"- Final Training MAE: {_fmt(perf.get('mae'))}",
        f"- Final Validation MAE: {_fmt(validation.get('mae'))}",
        "",
        "## Test Performance",
        f"- Test Loss: {evaluation.loss:.4f}",
        f"- Test MAE: {evaluation.mae:.4f}",
        f"- Risk Prediction Correlation: {evaluation.correlations['risk']:.3f}",
        f"- Confidence Prediction Correlation: {evaluation.correlations['confidence']:.3f}",
        *[
            f"- {name.capitalize()} MAE / RMSE: {values['mae']:.4f} / {values['rmse']:.4f}"
            for name, values in evaluation.per_output.items()
        ],
        "",
        "## Model Quality Assessment",
        f"{marks[evaluation.quality['risk']]} Risk Prediction Quality: {evaluation.quality['risk']}",
        f"{marks[evaluation.quality['confidence']]} Confidence Prediction Quality: "
        f"{evaluation.quality['confidence']}",
        "",
        f"Generated: {artifact.metadata.get('trainedAt', '')}",
        "",
    ])
