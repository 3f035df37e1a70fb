"""Scoring network definitions."""

from astro_risk.ml.models.risk_network import OUTPUT_DIM, RiskNetwork, RiskNetworkConfig

__all__ = ["OUTPUT_DIM", "RiskNetwork", "RiskNetworkConfig"]
