"""
Persistence for trained risk networks.

An artifact directory holds three files:

    model.json     architecture descriptor
    weights.pt     torch state_dict
    metadata.json  version, trainedAt, performance, modelArchitecture, ...

``LocalModelStore`` keeps the same content in a SQLite key-value table so a
process without a writable artifact directory can still reuse a trained
model across restarts.
"""

from __future__ import annotations

import io
import json
import pickle
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import torch
from sqlalchemy import Column, Float, LargeBinary, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from astro_risk.errors import ModelLoadError
from astro_risk.ml.features.risk_features import FEATURE_DIM
from astro_risk.ml.models.risk_network import OUTPUT_DIM, RiskNetwork, RiskNetworkConfig
from astro_risk.utils.logging_config import get_logger

logger = get_logger("artifacts")

MODEL_FILE = "model.json"
WEIGHTS_FILE = "weights.pt"
METADATA_FILE = "metadata.json"


@dataclass
class ModelArtifact:
    """A trained scoring network plus its training metadata."""
    model: RiskNetwork
    metadata: Dict = field(default_factory=dict)

    @property
    def architecture(self) -> Dict:
        return self.model.architecture()

    @property
    def version(self) -> str:
        return self.metadata.get("version", "unknown")

    @property
    def model_architecture(self) -> Dict:
        return self.metadata.get("modelArchitecture", describe_architecture(self.model))


def describe_architecture(model: RiskNetwork) -> Dict:
    """The ``modelArchitecture`` block of the metadata file."""
    return {
        "inputFeatures": model.config.input_dim,
        "hiddenLayers": list(model.config.hidden_dims),
        "outputs": model.config.output_dim,
        "totalParameters": model.param_count(),
    }


def build_metadata(
    model: RiskNetwork,
    version: str,
    loss: float,
    mae: float,
    risk_correlation: float,
    confidence_correlation: float,
    training_config: Optional[Dict] = None,
    dataset_info: Optional[Dict] = None,
    extra: Optional[Dict] = None,
) -> Dict:
    """Assemble artifact metadata in the persisted (camelCase) format."""
    metadata = {
        "version": version,
        "trainedAt": datetime.now(timezone.utc).isoformat(),
        "performance": {
            "loss": float(loss),
            "mae": float(mae),
            "correlations": {
                "risk": float(risk_correlation),
                "confidence": float(confidence_correlation),
            },
        },
        "modelArchitecture": describe_architecture(model),
    }
    if training_config is not None:
        metadata["trainingConfig"] = training_config
    if dataset_info is not None:
        metadata["datasetInfo"] = dataset_info
    if extra:
        metadata.update(extra)
    return metadata


def check_architecture(config: Dict, source: str) -> None:
    """Reject anything but the fixed 6 -> 16 -> 8 -> 2 network."""
    input_dim = config.get("input_dim")
    output_dim = config.get("output_dim")
    if input_dim != FEATURE_DIM:
        raise ModelLoadError(f"Expected {FEATURE_DIM} input features, got {input_dim}", source=source)
    if output_dim != OUTPUT_DIM:
        raise ModelLoadError(f"Expected {OUTPUT_DIM} outputs, got {output_dim}", source=source)

    expected = RiskNetworkConfig()
    hidden_dims = config.get("hidden_dims")
    if not isinstance(hidden_dims, (list, tuple)) or list(hidden_dims) != expected.hidden_dims:
        raise ModelLoadError(f"Expected hidden layers {expected.hidden_dims}, got {hidden_dims}", source=source)
    dropouts = config.get("dropouts")
    if not isinstance(dropouts, (list, tuple)) or list(dropouts) != expected.dropouts:
        raise ModelLoadError(f"Expected dropout rates {expected.dropouts}, got {dropouts}", source=source)


def _restore(config: Dict, state_dict: Dict, metadata: Dict, device: str, source: str) -> ModelArtifact:
    check_architecture(config, source)
    try:
        model = RiskNetwork.from_config(config)
        model.load_state_dict(state_dict)
    except (TypeError, ValueError, RuntimeError) as e:
        raise ModelLoadError(f"Corrupt model weights: {e}", source=source) from e
    model.to(device)
    model.eval()
    return ModelArtifact(model=model, metadata=metadata)


# -----------------------------------------------------------------------
# Artifact directory
# -----------------------------------------------------------------------

def save_artifact(artifact: ModelArtifact, path: str | Path) -> Path:
    """
    Write an artifact directory.

    Args:
        artifact: Trained model and metadata
        path: Target directory (created if missing)

    Returns:
        The artifact directory
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)

    with open(path / MODEL_FILE, "w") as f:
        json.dump(artifact.architecture, f, indent=2)

    torch.save(artifact.model.state_dict(), path / WEIGHTS_FILE)

    with open(path / METADATA_FILE, "w") as f:
        json.dump(artifact.metadata, f, indent=2, default=str)

    logger.info(f"Model artifact saved: {path}")
    return path


def load_artifact(path: str | Path, device: str = "cpu") -> ModelArtifact:
    """
    Load an artifact directory written by ``save_artifact``.

    Raises:
        ModelLoadError: if files are missing, unreadable, or the
            architecture is not 6 -> 2
    """
    path = Path(path)
    source = str(path)
    missing = [name for name in (MODEL_FILE, WEIGHTS_FILE) if not (path / name).exists()]
    if missing:
        raise ModelLoadError(f"Model artifact incomplete, missing {', '.join(missing)}", source=source)

    try:
        with open(path / MODEL_FILE) as f:
            architecture = json.load(f)
        metadata = {}
        if (path / METADATA_FILE).exists():
            with open(path / METADATA_FILE) as f:
                metadata = json.load(f)
        state_dict = torch.load(path / WEIGHTS_FILE, map_location=device, weights_only=True)
    except (OSError, json.JSONDecodeError, pickle.UnpicklingError, RuntimeError, EOFError, ValueError) as e:
        raise ModelLoadError(f"Unreadable model artifact: {e}", source=source) from e

    config = architecture.get("config", architecture) if isinstance(architecture, dict) else {}
    artifact = _restore(config, state_dict, metadata, device, source)
    logger.info(f"Model artifact loaded from {path} ({artifact.model.param_count()} parameters)")
    return artifact


# -----------------------------------------------------------------------
# Local key-value store
# -----------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


class StoredModel(Base):
    __tablename__ = "model_store"

    key = Column(String, primary_key=True)
    architecture_json = Column(Text, nullable=False)
    weights = Column(LargeBinary, nullable=False)
    metadata_json = Column(Text, nullable=False)
    updated_at = Column(Float, nullable=False)  # Unix timestamp


class LocalModelStore:
    """
    SQLite-backed key-value store for trained models.

    Args:
        db_path: SQLite file (parent directories are created)
        url: Full SQLAlchemy URL, overrides ``db_path``
    """

    def __init__(self, db_path: str | Path = "data/model_store.db", url: Optional[str] = None):
        if url is None:
            db_path = Path(db_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{db_path}"
        self.url = url
        self._engine = create_engine(url, echo=False)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(bind=self._engine)
        logger.info(f"Local model store initialized at {url}")

    def put(self, key: str, artifact: ModelArtifact) -> None:
        """Insert or replace the model stored under ``key``."""
        buffer = io.BytesIO()
        torch.save(artifact.model.state_dict(), buffer)

        with self._session_factory() as session:
            row = session.get(StoredModel, key)
            if row is None:
                row = StoredModel(key=key)
                session.add(row)
            row.architecture_json = json.dumps(artifact.architecture)
            row.weights = buffer.getvalue()
            row.metadata_json = json.dumps(artifact.metadata, default=str)
            row.updated_at = time.time()
            session.commit()
        logger.info(f"Model stored in local store under '{key}'")

    def get(self, key: str, device: str = "cpu") -> Optional[ModelArtifact]:
        """
        Load the model stored under ``key``.

        Returns:
            The artifact, or None if the key is absent

        Raises:
            ModelLoadError: if the stored entry cannot be decoded
        """
        source = f"{self.url}#{key}"
        try:
            with self._session_factory() as session:
                row = session.get(StoredModel, key)
                if row is None:
                    return None
                architecture = json.loads(row.architecture_json)
                metadata = json.loads(row.metadata_json)
                weights = bytes(row.weights)
        except (SQLAlchemyError, json.JSONDecodeError) as e:
            raise ModelLoadError(f"Local store read failed: {e}", source=source) from e

        try:
            state_dict = torch.load(io.BytesIO(weights), map_location=device, weights_only=True)
        except (pickle.UnpicklingError, RuntimeError, EOFError, ValueError) as e:
            raise ModelLoadError(f"Stored weights are corrupt: {e}", source=source) from e

        artifact = _restore(architecture.get("config", {}), state_dict, metadata, device, source)
        logger.info(f"Model loaded from local store key '{key}'")
        return artifact

    def get_metadata(self, key: str) -> Optional[Dict]:
        with self._session_factory() as session:
            row = session.get(StoredModel, key)
            return json.loads(row.metadata_json) if row is not None else None

    def delete(self, key: str) -> bool:
        with self._session_factory() as session:
            row = session.get(StoredModel, key)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def keys(self) -> List[str]:
        with self._session_factory() as session:
            return [row.key for row in session.query(StoredModel.key).order_by(StoredModel.key)]

    def dispose(self) -> None:
        self._engine.dispose()
