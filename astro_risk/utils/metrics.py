"""
Metrics for training evaluation and inference latency.
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, List, Optional, Sequence

import numpy as np

OUTPUT_NAMES = ("risk", "confidence")


class PerformanceMetrics:
    """Named series of timings (ms) or other scalar measurements."""

    def __init__(self):
        self.metrics: Dict[str, List[float]] = defaultdict(list)

    def record(self, metric_name: str, value: float):
        self.metrics[metric_name].append(float(value))

    def get_stats(self, metric_name: str) -> Dict[str, float]:
        """
        Summary of one series: count, mean, std, min, max, p50, p95.

        Returns an empty dict for a series that was never recorded.
        """
        values = self.metrics.get(metric_name)
        if not values:
            return {}

        arr = np.asarray(values)
        p50, p95 = np.percentile(arr, [50, 95])
        return {
            "count": int(arr.size),
            "mean": float(arr.mean()),
            "std": float(arr.std()),
            "min": float(arr.min()),
            "max": float(arr.max()),
            "p50": float(p50),
            "p95": float(p95),
        }

    def summary(self) -> Dict[str, Dict[str, float]]:
        return {name: self.get_stats(name) for name in self.metrics}

    def reset(self):
        self.metrics.clear()


@contextmanager
def timer(metric_name: str, metrics: Optional[PerformanceMetrics] = None):
    """
    Time a block in milliseconds.

    Example:
        >>> metrics = PerformanceMetrics()
        >>> with timer("batch_inference", metrics):
        ...     results = await runtime.predict_batch(objects)
        >>> metrics.get_stats("batch_inference")["p95"]
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        if metrics is not None:
            metrics.record(metric_name, (time.perf_counter() - start) * 1000.0)


def rmse(predictions: np.ndarray, targets: np.ndarray) -> float:
    """Root Mean Squared Error."""
    return float(np.sqrt(np.mean((predictions - targets) ** 2)))


def mae(predictions: np.ndarray, targets: np.ndarray) -> float:
    """Mean Absolute Error."""
    return float(np.mean(np.abs(predictions - targets)))


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson correlation coefficient between two series.

    Returns 0.0 for empty or mismatched series and when either series is
    constant.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.size == 0 or x.size != y.size:
        return 0.0

    xc = x - x.mean()
    yc = y - y.mean()
    denominator = np.sqrt(np.sum(xc * xc) * np.sum(yc * yc))
    if not np.isfinite(denominator) or denominator < 1e-12:
        return 0.0
    return float(np.sum(xc * yc) / denominator)


def per_output_metrics(predictions: np.ndarray, targets: np.ndarray) -> Dict[str, Dict[str, float]]:
    """
    MAE, RMSE and Pearson r for each output column.

    Args:
        predictions: (N, 2) model outputs
        targets: (N, 2) labels

    Returns:
        {"risk": {...}, "confidence": {...}}
    """
    predictions = np.asarray(predictions, dtype=np.float64)
    targets = np.asarray(targets, dtype=np.float64)
    return {
        name: {
            "mae": mae(predictions[:, i], targets[:, i]),
            "rmse": rmse(predictions[:, i], targets[:, i]),
            "correlation": pearson_correlation(predictions[:, i], targets[:, i]),
        }
        for i, name in enumerate(OUTPUT_NAMES)
    }
