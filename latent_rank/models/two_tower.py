"""Two-Tower retrieval model: embedding tables + optional MLP towers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import torch
import torch.nn as nn

from latent_rank.config.model_config import TwoTowerConfig
from latent_rank.models.embedding_store import EmbeddingStore
from latent_rank.models.towers import build_tower


@contextmanager
def _seeded(seed: int | None) -> Iterator[None]:
    # Seeded init must not disturb the caller's global RNG stream.
    with torch.random.fork_rng(devices=[], enabled=seed is not None):
        if seed is not None:
            torch.manual_seed(seed)
        yield


class TwoTowerModel(nn.Module):
    def __init__(self, config: TwoTowerConfig):
        super().__init__()
        self.config = config

        with _seeded(config.seed):
            self.store = EmbeddingStore(
                config.num_users, config.num_items, config.embedding_dim, config.init_std
            )
            self.user_tower = build_tower(config)
            self.item_tower = build_tower(config)

    # ---------------------------------------------------------------------
    @property
    def num_users(self) -> int:
        return self.config.num_users

    @property
    def num_items(self) -> int:
        return self.config.num_items

    @property
    def embedding_dim(self) -> int:
        return self.config.embedding_dim

    @property
    def output_dim(self) -> int:
        return self.config.output_dim

    # ---------------------------------------------------------------------
    def user_forward(self, user) -> torch.Tensor:
        return self.user_tower(self.store.gather("user", user))  # (B, D')

    def item_forward(self, item) -> torch.Tensor:
        return self.item_tower(self.store.gather("item", item))  # (B, D')

    def forward(self, user, item) -> tuple[torch.Tensor, torch.Tensor]:
        return self.user_forward(user), self.item_forward(item)

    def all_item_vectors(self) -> torch.Tensor:
        """Whole catalog in scoring space, ``(num_items, D')``."""
        return self.item_forward(torch.arange(self.num_items))

    # ---------------------------------------------------------------------
    def embedding_parameters(self) -> list[nn.Parameter]:
        return [self.store.user_emb.weight, self.store.item_emb.weight]

    def tower_parameters(self) -> list[nn.Parameter]:
        return list(self.user_tower.parameters()) + list(self.item_tower.parameters())
