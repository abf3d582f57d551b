"""Contrastive training step and the multi-epoch loop built on it."""
from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Sequence

import mlflow
import numpy as np
import torch
from torch.utils.data import DataLoader
from torchmetrics.aggregation import MeanMetric
from tqdm import tqdm

from latent_rank.datasets.two_tower import InteractionPairDataset
from latent_rank.engine.losses import in_batch_softmax_loss
from latent_rank.engine.optim import TwoTowerOptimizer
from latent_rank.errors import DegenerateBatchError, InvalidBatchError, NumericalDivergenceError
from latent_rank.models.embedding_store import as_index_tensor, check_bounds
from latent_rank.models.two_tower import TwoTowerModel

if TYPE_CHECKING:
    from latent_rank.engine.session import TwoTowerSession

log = logging.getLogger(__name__)

LossFn = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]


def validate_batch(model: TwoTowerModel, user_indices, item_indices) -> tuple[torch.Tensor, torch.Tensor]:
    user = as_index_tensor(user_indices, "user indices")
    item = as_index_tensor(item_indices, "item indices")
    if user.numel() != item.numel():
        raise InvalidBatchError(
            f"user/item index sequences differ in length: {user.numel()} vs {item.numel()}"
        )
    if user.numel() < 2:
        raise DegenerateBatchError(f"batch size {user.numel()} < 2 leaves no in-batch negatives")
    check_bounds(user, model.num_users, "user indices")
    check_bounds(item, model.num_items, "item indices")
    return user, item


def _grads_finite(model: TwoTowerModel) -> bool:
    for p in model.parameters():
        g = p.grad
        if g is None:
            continue
        vals = g.coalesce().values() if g.is_sparse else g
        if not bool(torch.isfinite(vals).all()):
            return False
    return True


def train_step(
    model: TwoTowerModel,
    optim: TwoTowerOptimizer,
    user_indices,
    item_indices,
    criterion: LossFn = in_batch_softmax_loss,
) -> float:
    """
    One optimizer step on a batch of positive pairs; returns the loss.

    Everything that can reject the batch runs before ``optim.step()``, so a
    raised error leaves embeddings, towers and moments untouched.
    """
    user, item = validate_batch(model, user_indices, item_indices)

    model.train()
    optim.zero_grad()
    try:
        u, i = model(user, item)  # (B, D'), (B, D')
        loss = criterion(u, i)
        if not bool(torch.isfinite(loss)):
            raise NumericalDivergenceError(f"non-finite loss ({loss.item()}); update rejected")

        loss.backward()
        if not _grads_finite(model):
            raise NumericalDivergenceError("non-finite gradient; update rejected")

        optim.step()
        return loss.detach().item()
    finally:
        optim.zero_grad()


# ---------------------------------------------------------------------------


def _tracking() -> bool:
    return mlflow.active_run() is not None


def fit(session: "TwoTowerSession",
        user_indices: Sequence[int] | np.ndarray,
        item_indices: Sequence[int] | np.ndarray,
        *,
        epochs: int = 10,
        batch_size: int = 512,
        stop_event: threading.Event | None = None,
        generator: torch.Generator | None = None) -> list[float]:
    """
    Shuffled mini-batch training over all pairs; returns per-epoch mean loss.

    ``stop_event`` is polled between batches. When it is set the loop
    returns the losses of the epochs that completed; optimizer state is
    left as is, so calling ``fit`` again resumes accumulation.
    """
    users = as_index_tensor(user_indices, "user indices")
    items = as_index_tensor(item_indices, "item indices")
    if users.numel() != items.numel():
        raise InvalidBatchError("user/item index sequences differ in length")
    if users.numel() < 2 or batch_size < 2:
        raise DegenerateBatchError(
            f"need >= 2 pairs and batch_size >= 2 (got {users.numel()} pairs, batch_size={batch_size})"
        )

    dl = DataLoader(InteractionPairDataset(users.numpy(), items.numpy()),
                    batch_size=batch_size, shuffle=True, generator=generator)

    history: list[float] = []
    for ep in range(epochs):
        mean_loss = MeanMetric()
        pbar = tqdm(dl, desc=f"Epoch {ep+1}/{epochs}")
        for batch in pbar:
            if stop_event is not None and stop_event.is_set():
                pbar.close()
                log.info("Stop requested during epoch %d | optimizer steps %d",
                         ep+1, session.optimizer_steps)
                return history
            if batch["user"].numel() < 2:
                log.debug("Skipping trailing batch of size %d", batch["user"].numel())
                continue

            loss = session.train_step(batch["user"], batch["item"])
            mean_loss.update(loss)
            pbar.set_postfix(loss=f"{loss:.4f}")
            if _tracking():
                mlflow.log_metric("batch_loss", loss, step=session.optimizer_steps)

        avg = mean_loss.compute().item()
        history.append(avg)
        if _tracking():
            mlflow.log_metric("train_loss", avg, step=ep)
        log.info("Epoch %d | loss %.4f", ep+1, avg)

    return history
