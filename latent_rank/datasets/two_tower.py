"""PyTorch dataset of positive (user, item) pairs for Two-Tower."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import torch
from torch.utils.data import Dataset

from latent_rank.errors import InvalidBatchError


class InteractionPairDataset(Dataset):
    def __init__(self, users: np.ndarray | Sequence[int], items: np.ndarray | Sequence[int]):
        if len(users) != len(items):
            raise InvalidBatchError(f"users and items differ in length: {len(users)} vs {len(items)}")
        self.u = torch.as_tensor(np.asarray(users), dtype=torch.long)
        self.i = torch.as_tensor(np.asarray(items), dtype=torch.long)

    def __len__(self) -> int:
        return len(self.u)

    def __getitem__(self, idx: int) -> dict[str, torch.Tensor]:
        return {"user": self.u[idx], "item": self.i[idx]}
