"""
NEO Risk Scoring Network.

Small feed-forward network mapping the 6D risk feature vector to two
sigmoid outputs: collision risk and confidence, both in [0, 1].

Architecture:
    Input: 6 normalized features
    Dense(16, ReLU, He init) -> Dropout(0.2)
    Dense(8, ReLU, He init)  -> Dropout(0.1)
    Dense(2, Sigmoid, Glorot init)

Author: Space AI Team
"""

import torch
import torch.nn as nn
from typing import Dict, List, Optional
from dataclasses import dataclass, asdict

from astro_risk.ml.features.risk_features import FEATURE_DIM

OUTPUT_DIM = 2  # [risk, confidence]


@dataclass
class RiskNetworkConfig:
    """Configuration for the risk scoring network."""
    input_dim: int = FEATURE_DIM
    hidden_dims: List[int] = None
    dropouts: List[float] = None
    output_dim: int = OUTPUT_DIM

    def __post_init__(self):
        if self.hidden_dims is None:
            self.hidden_dims = [16, 8]
        if self.dropouts is None:
            self.dropouts = [0.2, 0.1]
        if len(self.dropouts) != len(self.hidden_dims):
            raise ValueError("dropouts must match hidden_dims")

    def to_dict(self) -> Dict:
        return asdict(self)


class RiskNetwork(nn.Module):
    """
    Neural network for NEO risk and confidence scoring.

    Predicts:
    1. Collision risk (0-1)
    2. Confidence in the risk estimate (0-1)
    """

    def __init__(self, config: Optional[RiskNetworkConfig] = None):
        super().__init__()

        if config is None:
            config = RiskNetworkConfig()

        self.config = config

        layers = []
        in_dim = config.input_dim

        for hidden_dim, dropout in zip(config.hidden_dims, config.dropouts):
            layers.extend([
                nn.Linear(in_dim, hidden_dim),
                nn.ReLU(),
                nn.Dropout(dropout)
            ])
            in_dim = hidden_dim

        layers.append(nn.Linear(in_dim, config.output_dim))

        self.network = nn.Sequential(*layers)

        self._init_weights()

    def _init_weights(self):
        """He-normal for hidden ReLU layers, Glorot-normal for the sigmoid head."""
        for m in self.network:
            if isinstance(m, nn.Linear):
                if m is self.network[-1]:
                    nn.init.xavier_normal_(m.weight)
                else:
                    nn.init.kaiming_normal_(m.weight, nonlinearity='relu')
                nn.init.zeros_(m.bias)

    def forward(self, features: torch.Tensor) -> torch.Tensor:
        """
        Forward pass.

        Args:
            features: Feature batch (batch, 6)

        Returns:
            Predictions (batch, 2) = [risk, confidence]
        """
        return torch.sigmoid(self.network(features))

    def param_count(self) -> int:
        return sum(p.numel() for p in self.parameters())

    def architecture(self) -> Dict:
        """Layer-by-layer descriptor written alongside the weights."""
        layers = []
        for m in self.network:
            if isinstance(m, nn.Linear):
                layers.append({'type': 'dense', 'in': m.in_features, 'out': m.out_features})
            elif isinstance(m, nn.ReLU):
                layers.append({'type': 'relu'})
            elif isinstance(m, nn.Dropout):
                layers.append({'type': 'dropout', 'rate': m.p})
        layers.append({'type': 'sigmoid'})
        return {
            'name': 'RiskNetwork',
            'config': self.get_config(),
            'layers': layers,
            'total_parameters': self.param_count(),
        }

    def get_config(self) -> Dict:
        """Get model configuration."""
        return self.config.to_dict()

    @classmethod
    def from_config(cls, config_dict: Dict) -> 'RiskNetwork':
        """Create model from configuration dictionary."""
        config = RiskNetworkConfig(**config_dict)
        return cls(config)
