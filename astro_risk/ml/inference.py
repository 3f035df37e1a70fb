"""
Risk Inference Runtime for Near-Earth Objects.

``PredictorRuntime`` owns the lifecycle of one scoring network:

    UNLOADED --first request / TTL expiry--> LOADING
    LOADING  --artifact, local store, or fresh training--> READY
    LOADING  --every source failed--> DEGRADED (oracle answers, retry after cooldown)
    READY    --repeated requests within TTL--> READY

Loading is deduplicated: concurrent callers await one in-flight task, and a
caller that gives up waiting never cancels it. Scoring failures never
escape ``predict``/``predict_batch``; they come back as results tagged
``fallback`` computed by the rule-based oracle. Only ``InvalidInput``
propagates.

Author: Space AI Team
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import torch
from sqlalchemy.exc import SQLAlchemyError

from astro_risk.errors import AstroRiskError, InferenceError, InvalidInput, ModelLoadError
from astro_risk.ml.artifacts import LocalModelStore, ModelArtifact, load_artifact, save_artifact
from astro_risk.ml.features.risk_features import (
    ObjectParams,
    extract_feature_matrix,
    extract_features,
    validate_features,
)
from astro_risk.ml.models.risk_network import OUTPUT_DIM, RiskNetwork
from astro_risk.ml.training.trainer import RiskModelTrainer, TrainerConfig
from astro_risk.simulation.data_generator import SyntheticDataGenerator, oracle_score
from astro_risk.utils.config_loader import RuntimeConfig
from astro_risk.utils.logging_config import get_logger

logger = get_logger("inference")

MODEL_USED_ML = "ml"
MODEL_USED_FALLBACK = "fallback"


class RuntimeState(Enum):
    """Lifecycle state of the cached model."""
    UNLOADED = "UNLOADED"
    LOADING = "LOADING"
    READY = "READY"
    DEGRADED = "DEGRADED"


@dataclass
class RuntimeCapabilities:
    """What the hosting process allows the runtime to do."""
    can_persist: bool = True   # write artifacts and use the local model store
    can_train: bool = True     # train a model on demand when none can be loaded


@dataclass
class PredictionResult:
    """Output of scoring one object."""
    risk: float
    confidence: float
    model_used: str
    processing_time: float  # milliseconds

    def to_dict(self) -> Dict:
        return {
            "risk": self.risk,
            "confidence": self.confidence,
            "modelUsed": self.model_used,
            "processingTime": self.processing_time,
        }


@dataclass
class CacheEntry:
    """The runtime's current model."""
    model: RiskNetwork
    loaded_at: float
    ttl_seconds: float
    version: str
    source: str
    metadata: Dict = field(default_factory=dict)

    @property
    def expires_at(self) -> float:
        return self.loaded_at + self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class PredictionStats:
    """Running counters; purely observational."""
    total_predictions: int = 0
    ml_predictions: int = 0
    fallback_predictions: int = 0
    average_processing_time: float = 0.0
    error_rate: float = 0.0


def _clamp(value: float) -> float:
    return float(max(0.0, min(1.0, value)))


def _consume_load_error(task: asyncio.Task) -> None:
    # Failures are reported through the runtime state even when no caller is left waiting
    if not task.cancelled():
        task.exception()


def default_result() -> PredictionResult:
    """Conservative result for records that cannot be scored at all."""
    return PredictionResult(risk=0.0, confidence=0.5, model_used=MODEL_USED_FALLBACK, processing_time=0.0)


class PredictorRuntime:
    """
    Caching, self-healing inference runtime for the risk scoring network.

    Args:
        config: Runtime configuration (artifact location, TTL, cooldown, ...)
        capabilities: Whether this process may persist models and train them
        generator: Synthetic data source for on-demand training
        trainer: Trainer used for on-demand training
        store: Local model store (created from config when persisting is allowed)
        clock: Wall-clock source in seconds, injectable for tests

    Example:
        >>> runtime = PredictorRuntime(RuntimeConfig(artifact_dir="models/risk"))
        >>> await runtime.init()
        >>> result = await runtime.predict(ObjectParams(500, 25, 0.02, True))
        >>> await runtime.shutdown()
    """

    def __init__(
        self,
        config: Optional[RuntimeConfig] = None,
        capabilities: Optional[RuntimeCapabilities] = None,
        generator: Optional[SyntheticDataGenerator] = None,
        trainer: Optional[RiskModelTrainer] = None,
        store: Optional[LocalModelStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or RuntimeConfig()
        self.capabilities = capabilities or RuntimeCapabilities()
        self.generator = generator or SyntheticDataGenerator()
        self.trainer = trainer or RiskModelTrainer()
        self._store = store
        self._clock = clock
        self.device = torch.device(self.config.device)

        self._state = RuntimeState.UNLOADED
        self._cache: Optional[CacheEntry] = None
        self._loading_task: Optional[asyncio.Task] = None
        self._retry_at = 0.0
        self._last_error: Optional[str] = None
        self._errors = 0
        self._stats = PredictionStats()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> RuntimeState:
        return self._state

    @property
    def store(self) -> Optional[LocalModelStore]:
        if self._store is None and self.capabilities.can_persist:
            self._store = LocalModelStore(self.config.store_path)
        return self._store

    async def init(self) -> bool:
        """Preload the model. Returns True when a model is ready."""
        try:
            await self._ensure_model()
        except ModelLoadError as e:
            logger.warning(f"Failed to preload ML model: {e}")
            return False
        logger.info("ML model preloaded successfully")
        return True

    def invalidate(self) -> None:
        """Drop the cached model; the next request reloads."""
        if self._cache is not None:
            logger.info(f"Invalidating cached model (version {self._cache.version})")
        self._cache = None
        self._retry_at = 0.0
        if self._state is not RuntimeState.LOADING:
            self._state = RuntimeState.UNLOADED

    async def shutdown(self) -> None:
        """Wait for an in-flight load, then release the model and the store."""
        task = self._loading_task
        if task is not None:
            try:
                await task
            except ModelLoadError as e:
                logger.warning(f"In-flight model load failed during shutdown: {e}")
        self.invalidate()
        if self._store is not None:
            self._store.dispose()
            self._store = None
        logger.info("Predictor runtime shut down")

    async def _ensure_model(self) -> CacheEntry:
        """
        Return the current model, loading it if needed.

        Raises:
            ModelLoadError: when degraded (in cooldown) or loading fails
        """
        now = self._clock()
        entry = self._cache
        if entry is not None:
            if not entry.is_expired(now):
                return entry
            logger.info(f"Cached model expired (loaded at {entry.loaded_at:.0f}), reloading")
            self._state = RuntimeState.UNLOADED

        if self._state is RuntimeState.DEGRADED and now < self._retry_at:
            raise ModelLoadError(
                "Runtime degraded, waiting for retry cooldown",
                retry_in_seconds=round(self._retry_at - now, 1),
            )

        if self._loading_task is None:
            self._loading_task = asyncio.create_task(self._load())
            self._loading_task.add_done_callback(_consume_load_error)
        # Shielded: a caller giving up must not cancel a shared load/training run
        return await asyncio.shield(self._loading_task)

    async def _load(self) -> CacheEntry:
        self._state = RuntimeState.LOADING
        previous = self._cache
        self._cache = None
        try:
            artifact, source = await asyncio.to_thread(self._acquire_artifact)
        except Exception as e:
            now = self._clock()
            self._last_error = str(e)
            if previous is not None:
                # Keep serving the stale model and retry after the cooldown
                self._cache = dataclasses.replace(
                    previous, loaded_at=now, ttl_seconds=self.config.retry_cooldown_seconds
                )
                self._state = RuntimeState.READY
                logger.warning(f"Model reload failed, keeping previous model: {e}")
                return self._cache
            self._state = RuntimeState.DEGRADED
            self._retry_at = now + self.config.retry_cooldown_seconds
            logger.error(f"Failed to load ML model from all sources: {e}")
            if isinstance(e, ModelLoadError):
                raise
            raise ModelLoadError(f"Model load failed: {e}") from e
        finally:
            self._loading_task = None

        entry = CacheEntry(
            model=artifact.model,
            loaded_at=self._clock(),
            ttl_seconds=self.config.cache_ttl_seconds,
            version=artifact.metadata.get("version", self.config.model_version),
            source=source,
            metadata=artifact.metadata,
        )
        self._cache = entry
        self._state = RuntimeState.READY
        self._last_error = None
        logger.info(
            f"Model ready from {source} (version {entry.version}, "
            f"{entry.model.param_count()} parameters)"
        )
        return entry

    def _acquire_artifact(self) -> Tuple[ModelArtifact, str]:
        """
        Blocking load chain, run in a worker thread.

        Order: artifact directory, local store, fresh training.
        """
        failures: List[str] = []
        device = str(self.device)

        try:
            return load_artifact(self.config.artifact_dir, device=device), "artifact"
        except ModelLoadError as e:
            logger.warning(f"Failed to load from artifact directory: {e}")
            failures.append(str(e))

        if self.capabilities.can_persist:
            try:
                artifact = self.store.get(self.config.store_key, device=device)
            except (ModelLoadError, SQLAlchemyError, OSError) as e:
                logger.warning(f"Failed to load from local store: {e}")
                failures.append(str(e))
            else:
                if artifact is not None:
                    return artifact, "local_store"
                failures.append(f"no model under '{self.config.store_key}' in local store")

        if not self.capabilities.can_train:
            raise ModelLoadError("No model available and training is disabled", failures=failures)

        logger.info("No stored model found, training new model...")
        dataset = self.generator.generate_dataset(self.config.bootstrap_samples, self.config.bootstrap_mode)
        artifact = self.trainer.train(
            dataset,
            TrainerConfig(
                epochs=self.config.bootstrap_epochs,
                device=device,
                model_version=self.config.model_version,
            ),
        )
        artifact.model.eval()

        if self.capabilities.can_persist:
            self._persist(artifact)

        return artifact, "trained"

    def _persist(self, artifact: ModelArtifact) -> None:
        try:
            save_artifact(artifact, Path(self.config.artifact_dir))
        except OSError as e:
            logger.warning(f"Could not write model artifact: {e}")
        try:
            self.store.put(self.config.store_key, artifact)
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Could not write model to local store: {e}")

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def _infer(self, model: RiskNetwork, features: np.ndarray) -> np.ndarray:
        """Batched forward pass; returns (N, 2) predictions."""
        try:
            with torch.no_grad():
                inputs = torch.as_tensor(features, dtype=torch.float32, device=self.device)
                outputs = model(inputs).cpu().numpy()
        except Exception as e:
            raise InferenceError(f"Forward pass failed: {e!r}") from e

        if outputs.shape != (features.shape[0], OUTPUT_DIM) or not np.isfinite(outputs).all():
            raise InferenceError("Model produced malformed output", {"shape": tuple(outputs.shape)})
        return outputs

    async def _score(self, features: np.ndarray) -> np.ndarray:
        entry = await self._ensure_model()
        return await asyncio.to_thread(self._infer, entry.model, features)

    def _fallback(self, params: ObjectParams, start: float) -> PredictionResult:
        risk, confidence = oracle_score(params, noise=False)
        return PredictionResult(
            risk=_clamp(risk),
            confidence=_clamp(confidence),
            model_used=MODEL_USED_FALLBACK,
            processing_time=(time.perf_counter() - start) * 1000.0,
        )

    async def predict(self, params: ObjectParams, timeout: Optional[float] = None) -> PredictionResult:
        """
        Score one object.

        Args:
            params: Object observables
            timeout: Seconds to wait for the model before answering with the oracle

        Returns:
            PredictionResult tagged "ml", or "fallback" if the model path failed

        Raises:
            InvalidInput: if the observables cannot be encoded
        """
        start = time.perf_counter()
        try:
            vector = extract_features(params)
            if not validate_features(vector):
                raise InvalidInput("Invalid feature vector", {"features": vector.features})
        except InvalidInput:
            self._record_error()
            raise
        except (AttributeError, TypeError) as e:
            self._record_error()
            raise InvalidInput(f"Not an object record: {type(params).__name__}") from e

        features = vector.to_array().reshape(1, -1)
        try:
            if timeout is not None:
                outputs = await asyncio.wait_for(self._score(features), timeout)
            else:
                outputs = await self._score(features)
        except asyncio.TimeoutError:
            logger.warning(f"ML prediction timed out after {timeout}s, using fallback")
            result = self._fallback(params, start)
            self._record(result, error=True)
            return result
        except (AstroRiskError, RuntimeError, ValueError) as e:
            logger.warning(f"ML prediction failed, using fallback: {e}")
            result = self._fallback(params, start)
            self._record(result, error=not self._in_cooldown(e))
            return result

        result = PredictionResult(
            risk=_clamp(outputs[0, 0]),
            confidence=_clamp(outputs[0, 1]),
            model_used=MODEL_USED_ML,
            processing_time=(time.perf_counter() - start) * 1000.0,
        )
        self._record(result)
        return result

    async def predict_batch(
        self,
        params_list: Sequence[ObjectParams],
        timeout: Optional[float] = None,
    ) -> List[PredictionResult]:
        """
        Score many objects with one batched forward pass.

        Malformed records get a conservative default result instead of
        aborting the batch. If batched inference fails, every valid record
        is scored by the oracle.
        """
        if len(params_list) == 0:
            return []

        results: List[Optional[PredictionResult]] = [None] * len(params_list)
        valid_idx: List[int] = []
        for i, params in enumerate(params_list):
            try:
                params.check()
            except (InvalidInput, AttributeError, TypeError) as e:
                logger.warning(f"Skipping malformed record {i}: {e}")
                results[i] = default_result()
                self._record(results[i], error=True)
            else:
                valid_idx.append(i)

        if not valid_idx:
            return results

        valid_params = [params_list[i] for i in valid_idx]
        start = time.perf_counter()
        try:
            features = extract_feature_matrix(valid_params)
            if timeout is not None:
                outputs = await asyncio.wait_for(self._score(features), timeout)
            else:
                outputs = await self._score(features)
        except (asyncio.TimeoutError, AstroRiskError, RuntimeError, ValueError) as e:
            logger.warning(f"Batch ML prediction failed, using individual fallbacks: {e}")
            error = not self._in_cooldown(e)
            for i, params in zip(valid_idx, valid_params):
                item_start = time.perf_counter()
                try:
                    result = self._fallback(params, item_start)
                except (InvalidInput, ValueError) as fallback_error:
                    logger.error(f"Failed to score record {i}: {fallback_error}")
                    result = default_result()
                results[i] = result
                self._record(result, error=error)
            return results

        per_item_ms = (time.perf_counter() - start) * 1000.0 / len(valid_idx)
        for row, i in enumerate(valid_idx):
            results[i] = PredictionResult(
                risk=_clamp(outputs[row, 0]),
                confidence=_clamp(outputs[row, 1]),
                model_used=MODEL_USED_ML,
                processing_time=per_item_ms,
            )
            self._record(results[i])

        return results

    def _in_cooldown(self, error: Exception) -> bool:
        """Degraded-mode refusals are expected, not new errors."""
        return (
            isinstance(error, ModelLoadError)
            and self._state is RuntimeState.DEGRADED
            and "retry_in_seconds" in error.details
        )

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def _record(self, result: PredictionResult, error: bool = False) -> None:
        stats = self._stats
        stats.total_predictions += 1
        if result.model_used == MODEL_USED_ML:
            stats.ml_predictions += 1
        else:
            stats.fallback_predictions += 1
        scored = stats.ml_predictions + stats.fallback_predictions
        stats.average_processing_time += (result.processing_time - stats.average_processing_time) / scored
        if error:
            self._errors += 1
        stats.error_rate = self._errors / stats.total_predictions

    def _record_error(self) -> None:
        self._stats.total_predictions += 1
        self._errors += 1
        self._stats.error_rate = self._errors / self._stats.total_predictions

    def stats(self) -> PredictionStats:
        """Snapshot of the prediction counters."""
        return dataclasses.replace(self._stats)

    def reset_stats(self) -> None:
        self._stats = PredictionStats()
        self._errors = 0

    def model_info(self) -> Dict:
        """Loaded flag, metadata and cache status of the current model."""
        entry = self._cache
        return {
            "loaded": entry is not None,
            "state": self._state.value,
            "metadata": entry.metadata if entry is not None else None,
            "cache_status": {
                "cached": entry is not None,
                "loaded_at": entry.loaded_at if entry is not None else 0.0,
                "expires_at": entry.expires_at if entry is not None else None,
                "version": entry.version if entry is not None else self.config.model_version,
                "source": entry.source if entry is not None else None,
            },
            "last_error": self._last_error,
        }
