"""User / item embedding tables with row-sparse gradients."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import torch
import torch.nn as nn

from latent_rank.errors import (
    DimensionMismatchError,
    IndexOutOfRangeError,
    InvalidBatchError,
    NumericalDivergenceError,
)

TABLES = ("user", "item")


# ---------------------------------------------------------------------------
# Index helpers
# ---------------------------------------------------------------------------


def as_index_tensor(values: Sequence[int] | np.ndarray | torch.Tensor, name: str = "indices") -> torch.Tensor:
    """Coerce an index sequence to a 1-D ``int64`` CPU tensor."""
    if isinstance(values, torch.Tensor):
        t = values.detach().cpu()
        if t.dtype.is_floating_point or t.is_complex() or t.dtype == torch.bool:
            raise InvalidBatchError(f"{name} must hold integers, got dtype {t.dtype}")
    else:
        arr = np.asarray(values)
        if arr.size == 0:
            arr = arr.astype(np.int64)
        if arr.dtype.kind not in "iu":
            raise InvalidBatchError(f"{name} must hold integers, got dtype {arr.dtype}")
        t = torch.as_tensor(arr.astype(np.int64, copy=False))
    if t.dim() != 1:
        raise InvalidBatchError(f"{name} must be 1-D, got shape {tuple(t.shape)}")
    return t.to(torch.long)


def check_bounds(idx: torch.Tensor, upper: int, name: str = "indices") -> None:
    if idx.numel() == 0:
        return
    bad = (idx < 0) | (idx >= upper)
    if bool(bad.any()):
        offenders = idx[bad].unique()[:5].tolist()
        raise IndexOutOfRangeError(f"{name} outside [0, {upper}): {offenders}")


# ---------------------------------------------------------------------------
class EmbeddingStore(nn.Module):
    """
    Two dense tables, ``(num_users, D)`` and ``(num_items, D)``.

    Both use ``sparse=True`` so backward only produces gradient rows for
    the indices a batch actually touched.
    """

    def __init__(self, num_users: int, num_items: int, dim: int, init_std: float = 0.05):
        super().__init__()
        self.dim = dim
        self.user_emb = nn.Embedding(num_users, dim, sparse=True)
        self.item_emb = nn.Embedding(num_items, dim, sparse=True)
        self.reset_parameters(init_std)

    def reset_parameters(self, init_std: float) -> None:
        nn.init.normal_(self.user_emb.weight, mean=0.0, std=init_std)
        nn.init.normal_(self.item_emb.weight, mean=0.0, std=init_std)

    # ---------------------------------------------------------------------
    def table(self, name: str) -> nn.Embedding:
        if name == "user":
            return self.user_emb
        if name == "item":
            return self.item_emb
        raise InvalidBatchError(f"Unknown table: {name!r} (expected one of {TABLES})")

    def gather(self, name: str, indices) -> torch.Tensor:
        """Order-preserving row lookup; duplicates return duplicate rows."""
        emb = self.table(name)
        idx = as_index_tensor(indices, f"{name} indices").to(emb.weight.device)
        check_bounds(idx, emb.num_embeddings, f"{name} indices")
        return emb(idx)

    def apply_gradient(self, name: str, indices, gradient_rows, optimizer) -> None:
        """
        Push explicit per-row gradients through ``optimizer``.

        Repeated indices are summed into a single row before the step, so
        every unique row receives exactly one update.
        """
        emb = self.table(name)
        idx = as_index_tensor(indices, f"{name} indices")
        check_bounds(idx, emb.num_embeddings, f"{name} indices")

        grad = torch.as_tensor(gradient_rows, dtype=emb.weight.dtype)
        if grad.dim() != 2 or grad.shape != (idx.numel(), self.dim):
            raise DimensionMismatchError(
                f"gradient_rows must have shape ({idx.numel()}, {self.dim}), got {tuple(grad.shape)}"
            )
        if not bool(torch.isfinite(grad).all()):
            raise NumericalDivergenceError(f"non-finite gradient for {name} rows")

        weight = emb.weight
        sparse = torch.sparse_coo_tensor(
            idx.unsqueeze(0).to(weight.device), grad.to(weight.device), size=weight.shape
        ).coalesce()

        optimizer.zero_grad()
        try:
            weight.grad = sparse
            optimizer.step()
        finally:
            optimizer.zero_grad()
