"""Per-side transforms applied to raw embedding rows."""

from __future__ import annotations

from typing import Sequence

import torch
import torch.nn as nn

from latent_rank.config.model_config import TwoTowerConfig

# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------


def _xavier_init(m: nn.Module) -> None:
    if isinstance(m, nn.Linear):
        nn.init.xavier_uniform_(m.weight)
        if getattr(m, "bias", None) is not None:
            nn.init.zeros_(m.bias)


# ---------------------------------------------------------------------------
class IdentityTower(nn.Module):
    """Shallow mode: the raw embedding is the task vector."""

    def __init__(self, dim: int):
        super().__init__()
        self.out_dim = dim

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return x


# ---------------------------------------------------------------------------
class MLPTower(nn.Module):
    """Deep mode: ``in_dim -> hidden (ReLU) -> ... -> out_dim (linear)``."""

    def __init__(self, in_dim: int, hidden_sizes: Sequence[int], out_dim: int):
        super().__init__()
        self.out_dim = out_dim

        layers: list[nn.Module] = []
        prev = in_dim
        for units in hidden_sizes:
            layers.extend([nn.Linear(prev, units), nn.ReLU()])
            prev = units
        layers.append(nn.Linear(prev, out_dim))
        self.net = nn.Sequential(*layers)

        self.reset_parameters()

    def reset_parameters(self) -> None:
        self.net.apply(_xavier_init)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        # x: (B, D) -> (B, D')
        return self.net(x)


def build_tower(config: TwoTowerConfig) -> nn.Module:
    """Select the transform once, at construction."""
    if config.mode == "deep":
        return MLPTower(config.embedding_dim, config.tower_hidden_sizes, config.tower_output_dim)
    return IdentityTower(config.embedding_dim)
