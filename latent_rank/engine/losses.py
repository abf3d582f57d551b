"""In-batch-negative softmax losses over a batch of positive pairs."""

from __future__ import annotations

import torch
import torch.nn.functional as F


def in_batch_softmax_loss(user_vecs: torch.Tensor, item_vecs: torch.Tensor) -> torch.Tensor:
    """
    Row ``i`` of ``user_vecs @ item_vecs.T`` is a B-way classification
    whose correct class is column ``i``; every other column is a negative.
    """
    logits = user_vecs @ item_vecs.T  # (B, B)
    targets = torch.arange(logits.size(0), device=logits.device)
    return F.cross_entropy(logits, targets)


def positive_first_softmax_loss(user_vecs: torch.Tensor, item_vecs: torch.Tensor) -> torch.Tensor:
    """
    Positive score duplicated as column 0 of a ``(B, B+1)`` logit matrix.

    The positive also still appears on the diagonal, so it is counted twice
    in the partition function. Not equivalent to ``in_batch_softmax_loss``.
    """
    pos = torch.sum(user_vecs * item_vecs, dim=1, keepdim=True)  # (B, 1)
    logits = torch.cat([pos, user_vecs @ item_vecs.T], dim=1)  # (B, B+1)
    targets = torch.zeros(logits.size(0), dtype=torch.long, device=logits.device)
    return F.cross_entropy(logits, targets)


LOSSES = {
    "diagonal": in_batch_softmax_loss,
    "positive_first": positive_first_softmax_loss,
}


def get_loss(name: str):
    try:
        return LOSSES[name]
    except KeyError:
        raise ValueError(f"Unknown loss variant: {name}") from None
