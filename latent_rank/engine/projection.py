"""2-D PCA projection of (a random sample of) the item space."""

from __future__ import annotations

import logging
import numbers
from dataclasses import dataclass

import numpy as np
import torch

from latent_rank.models.two_tower import TwoTowerModel

log = logging.getLogger(__name__)


@dataclass
class Projection:
    coordinates: np.ndarray          # (n, 2)
    sample_indices: np.ndarray       # (n,) catalog row of each coordinate
    explained_variance: np.ndarray   # (2,) descending

    def __len__(self) -> int:
        return len(self.sample_indices)


def top_components(cov: torch.Tensor, k: int = 2) -> tuple[torch.Tensor, torch.Tensor]:
    """
    Leading ``k`` eigenpairs of a symmetric ``(D, D)`` matrix.

    Returns ``(vectors (D, k), values (k,))`` in descending eigenvalue order.
    Equal eigenvalues keep the solver's column order. Each vector is signed
    so its largest-magnitude entry is positive. Missing axes (``D < k``) are
    zero columns with zero variance.
    """
    evals, evecs = torch.linalg.eigh(cov)  # ascending
    order = torch.argsort(evals, descending=True, stable=True)[:k]
    vecs, vals = evecs[:, order], evals[order].clamp_min(0.0)

    pivot = vecs.abs().argmax(dim=0)
    signs = torch.sign(vecs[pivot, torch.arange(vecs.size(1), device=vecs.device)])
    signs[signs == 0] = 1.0
    vecs = vecs * signs

    if vecs.size(1) < k:
        pad = k - vecs.size(1)
        vecs = torch.cat([vecs, vecs.new_zeros(vecs.size(0), pad)], dim=1)
        vals = torch.cat([vals, vals.new_zeros(pad)])
    return vecs, vals


@torch.no_grad()
def pca_project(model: TwoTowerModel,
                sample_size: int = 1000,
                generator: torch.Generator | None = None) -> Projection:
    if isinstance(sample_size, bool) or not isinstance(sample_size, numbers.Integral) or sample_size < 1:
        raise ValueError(f"sample_size must be a positive integer, got {sample_size!r}")

    n = min(int(sample_size), model.num_items)
    idx = torch.randint(0, model.num_items, (n,), generator=generator)  # with replacement

    vecs = model.item_forward(idx).double()  # (n, D')

    centered = vecs - vecs.mean(dim=0)
    d = centered.size(1)
    if n > 1:
        cov = centered.T @ centered / (n - 1)  # (D', D')
    else:
        cov = centered.new_zeros(d, d)

    components, variance = top_components(cov, k=2)
    coords = centered @ components  # (n, 2)

    log.debug("PCA | n=%d | D'=%d | variance %s", n, d, variance.tolist())
    return Projection(
        coordinates=coords.cpu().numpy(),
        sample_indices=idx.cpu().numpy(),
        explained_variance=variance.cpu().numpy(),
    )
