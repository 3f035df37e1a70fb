"""
Error definitions for the astro-risk scoring core.

Extraction and validation problems surface to the caller as ``InvalidInput``.
Load, training and inference failures are absorbed by the predictor runtime
and converted into fallback results.
"""

from typing import Any, Dict, Optional


class AstroRiskError(Exception):
    """Base exception class for all scoring errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class InvalidInput(AstroRiskError, ValueError):
    """Raised for malformed or non-finite observables and malformed feature vectors."""


class ModelLoadError(AstroRiskError):
    """Raised when a model artifact is missing, corrupt, or has the wrong shape."""

    def __init__(self, message: str, source: Optional[str] = None, **details):
        if source is not None:
            details["source"] = source
        super().__init__(message, details)
        self.source = source


class TrainingError(AstroRiskError):
    """Raised when a dataset cannot be used to train the scoring network."""


class InferenceError(AstroRiskError):
    """Raised when the network fails to produce a prediction."""
