"""Owning aggregate for one model instance: weights, optimizer state, lock.

All reads and writes funnel through a single lock so a reader never sees a
half-applied step. After ``dispose()`` every operation raises
``DisposedError``; ``dispose()`` itself may be called any number of times.
"""

from __future__ import annotations

import logging
import numbers
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

import numpy as np
import torch

from latent_rank.config.model_config import TwoTowerConfig
from latent_rank.engine.losses import get_loss
from latent_rank.engine.optim import TwoTowerOptimizer
from latent_rank.engine.projection import Projection, pca_project
from latent_rank.engine.scoring import recommend_top_k, score_all_items
from latent_rank.engine.train_loop import train_step
from latent_rank.errors import (
    DimensionMismatchError,
    DisposedError,
    NumericalDivergenceError,
    ResourceExhaustionError,
)
from latent_rank.models.two_tower import TwoTowerModel

log = logging.getLogger(__name__)


@contextmanager
def _translate_oom() -> Iterator[None]:
    try:
        yield
    except ResourceExhaustionError:
        raise
    except (MemoryError, torch.cuda.OutOfMemoryError) as e:
        raise ResourceExhaustionError(f"allocation failed: {e}") from e


def _as_user_index(user) -> int | None:
    """Integer scalars (Python, numpy or 0-d tensor) are user indices."""
    if isinstance(user, bool):
        return None
    if isinstance(user, numbers.Integral):
        return int(user)
    if isinstance(user, torch.Tensor) and user.dim() == 0:
        if user.dtype.is_floating_point or user.is_complex() or user.dtype == torch.bool:
            return None
        return int(user.item())
    if isinstance(user, np.ndarray) and user.ndim == 0 and user.dtype.kind in "iu":
        return int(user)
    return None


class TwoTowerSession:
    """
    Single logical owner of a ``TwoTowerModel`` and its optimizer.

    Instances are independent: nothing is shared at module level, so any
    number of sessions can live side by side.
    """

    def __init__(self, config: TwoTowerConfig, device: str | torch.device = "cpu"):
        self._config = config
        with _translate_oom():
            self._model: TwoTowerModel | None = TwoTowerModel(config).to(device)
            self._optim: TwoTowerOptimizer | None = TwoTowerOptimizer(self._model, config.learning_rate)
        self._criterion = get_loss(config.loss_variant)
        self._lock = threading.Lock()
        self._disposed = False
        log.debug("Session ready | users=%d | items=%d | D=%d | D'=%d | mode=%s",
                  config.num_users, config.num_items, config.embedding_dim,
                  config.output_dim, config.mode)

    # ---------------------------------------------------------------------
    @property
    def config(self) -> TwoTowerConfig:
        return self._config

    @property
    def num_users(self) -> int:
        return self._config.num_users

    @property
    def num_items(self) -> int:
        return self._config.num_items

    @property
    def embedding_dim(self) -> int:
        return self._config.embedding_dim

    @property
    def output_dim(self) -> int:
        return self._config.output_dim

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def optimizer_steps(self) -> int:
        with self._live():
            return self._optim.steps

    def optimizer_state_dict(self) -> dict:
        """Snapshot of the Adam moments and step counters."""
        with self._live():
            return self._optim.state_dict()

    @property
    def model(self) -> TwoTowerModel:
        with self._live() as model:
            return model

    @contextmanager
    def _live(self) -> Iterator[TwoTowerModel]:
        with self._lock:
            if self._disposed:
                raise DisposedError("model has been disposed")
            with _translate_oom():
                yield self._model

    # ---------------------------------------------------------------------
    # Mutating operations
    # ---------------------------------------------------------------------

    def train_step(self, user_indices, item_indices) -> float:
        with self._live() as model:
            return train_step(model, self._optim, user_indices, item_indices, self._criterion)

    def apply_gradient(self, table: str, indices, gradient_rows) -> None:
        with self._live() as model:
            model.store.apply_gradient(table, indices, gradient_rows, self._optim)

    # ---------------------------------------------------------------------
    # Read-only operations
    # ---------------------------------------------------------------------

    def _user_query(self, model: TwoTowerModel, user) -> torch.Tensor:
        index = _as_user_index(user)
        if index is not None:
            return model.user_forward([index])[0]

        vec = torch.as_tensor(user, dtype=torch.float32)
        if vec.dim() != 1 or vec.numel() != model.output_dim:
            raise DimensionMismatchError(
                f"user vector must have shape ({model.output_dim},), got {tuple(vec.shape)}"
            )
        if not bool(torch.isfinite(vec).all()):
            raise NumericalDivergenceError("user vector contains non-finite values")
        return vec.to(model.store.item_emb.weight.device)

    def score(self, user) -> np.ndarray:
        """Scores for every catalog item; ``user`` is an index or a D'-vector."""
        with self._live() as model, torch.no_grad():
            return score_all_items(model, self._user_query(model, user)).cpu().numpy()

    def user_vector(self, user_index: int) -> np.ndarray:
        with self._live() as model, torch.no_grad():
            return model.user_forward([user_index])[0].cpu().numpy()

    def item_vectors(self, indices=None) -> np.ndarray:
        with self._live() as model, torch.no_grad():
            if indices is None:
                return model.all_item_vectors().cpu().numpy()
            return model.item_forward(indices).cpu().numpy()

    def recommend(self, user, k: int = 10, exclude: Iterable[int] = ()) -> list[tuple[int, float]]:
        return recommend_top_k(self.score(user), k=k, exclude=exclude)

    def project(self, sample_size: int = 1000, generator: torch.Generator | None = None) -> Projection:
        with self._live() as model:
            return pca_project(model, sample_size, generator=generator)

    # ---------------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------------

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._model = None
            self._optim = None
            self._disposed = True
        log.debug("Session disposed")

    def __enter__(self) -> "TwoTowerSession":
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()
