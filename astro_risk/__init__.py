"""
astro-risk - Near-Earth Object Risk Scoring

Feature engineering, synthetic training data, a small scoring network and a
caching inference runtime that degrades to a rule-based estimator.

Components:
- ml.features: 6D risk feature extraction
- simulation: synthetic NEO population and oracle labels
- ml.models / ml.training: scoring network and trainer
- ml.artifacts: artifact directory and local model store
- ml.inference: PredictorRuntime

Example:
    >>> from astro_risk.ml.inference import PredictorRuntime
    >>> runtime = PredictorRuntime()
    >>> result = await runtime.predict(ObjectParams(500, 25, 0.02, True))
"""

__version__ = "1.0.0"
__author__ = "Space AI Project"
