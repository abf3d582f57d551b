"""Adam-style optimizer state for the two-tower model.

Embedding tables get ``SparseAdam`` (lazy moments: only rows present in the
step's gradient are read or written). Tower weights, when present, get dense
``Adam`` and are updated on every step.
"""

from __future__ import annotations

import logging
from typing import Any

import torch

from latent_rank.models.two_tower import TwoTowerModel

log = logging.getLogger(__name__)


class TwoTowerOptimizer:
    def __init__(self, model: TwoTowerModel, lr: float, betas: tuple[float, float] = (0.9, 0.999)):
        self.lr = lr
        self.sparse = torch.optim.SparseAdam(model.embedding_parameters(), lr=lr, betas=betas)

        tower_params = model.tower_parameters()
        self.dense = torch.optim.Adam(tower_params, lr=lr, betas=betas) if tower_params else None
        log.debug(
            "Optimizer | SparseAdam on %d tables | Adam on %d tower tensors",
            len(model.embedding_parameters()),
            len(tower_params),
        )

        self.steps = 0  # global step counter, survives pauses

    @property
    def optimizers(self) -> list[torch.optim.Optimizer]:
        return [self.sparse] + ([self.dense] if self.dense is not None else [])

    def zero_grad(self) -> None:
        for opt in self.optimizers:
            opt.zero_grad(set_to_none=True)

    def step(self) -> None:
        for opt in self.optimizers:
            opt.step()
        self.steps += 1

    # ---------------------------------------------------------------------
    def state_dict(self) -> dict[str, Any]:
        return {
            "steps": self.steps,
            "sparse": self.sparse.state_dict(),
            "dense": self.dense.state_dict() if self.dense is not None else None,
        }
