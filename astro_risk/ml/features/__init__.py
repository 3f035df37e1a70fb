"""ML feature extraction modules."""

from astro_risk.ml.features.risk_features import (
    FEATURE_DIM,
    FeatureVector,
    ObjectParams,
    calculate_feature_stats,
    extract_feature_matrix,
    extract_features,
    feature_names,
    validate_features,
)

__all__ = [
    'FEATURE_DIM',
    'FeatureVector',
    'ObjectParams',
    'calculate_feature_stats',
    'extract_feature_matrix',
    'extract_features',
    'feature_names',
    'validate_features',
]
