"""Full-catalog dot-product scoring and top-k selection."""

from __future__ import annotations

from typing import Iterable

import numpy as np
import torch

from latent_rank.models.two_tower import TwoTowerModel


@torch.no_grad()
def score_all_items(model: TwoTowerModel, user_vec: torch.Tensor) -> torch.Tensor:
    # (N, D') @ (D',) -> (N,)
    items = model.all_item_vectors()
    return items @ user_vec.to(items.dtype)


def recommend_top_k(scores: np.ndarray, k: int = 10, exclude: Iterable[int] = ()) -> list[tuple[int, float]]:
    """Highest-scoring item indices not in ``exclude``; ties keep catalog order."""
    scores = np.asarray(scores)
    keep = np.ones(len(scores), dtype=bool)
    excluded = np.fromiter((int(e) for e in exclude), dtype=np.int64)
    excluded = excluded[(excluded >= 0) & (excluded < len(scores))]
    keep[excluded] = False

    candidates = np.flatnonzero(keep)
    order = candidates[np.argsort(-scores[candidates], kind="stable")][: max(k, 0)]
    return [(int(i), float(scores[i])) for i in order]
