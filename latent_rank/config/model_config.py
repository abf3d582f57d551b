"""Construction contract for the two-tower model."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Optional, Tuple

from latent_rank.errors import ConfigurationError

MODES = ("shallow", "deep")
LOSS_VARIANTS = ("diagonal", "positive_first")


def _positive_int(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


def _positive_float(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ConfigurationError(f"{name} must be a real number, got {value!r}")
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(f"{name} must be finite and > 0, got {value!r}")


@dataclass(frozen=True)
class TwoTowerConfig:
    """
    Everything needed to build a model instance.

    Sizes are fixed for the lifetime of a model; growing the catalog means
    building a new config and a new model.

    Notes:
    - ``tower_hidden_sizes`` / ``tower_output_dim`` are required in deep mode
      and must be left unset in shallow mode.
    - ``seed`` makes weight init reproducible without touching the global RNG stream.
    """
    num_users: int
    num_items: int
    embedding_dim: int = 32
    learning_rate: float = 1e-3
    mode: str = "shallow"
    tower_hidden_sizes: Optional[Tuple[int, ...]] = None
    tower_output_dim: Optional[int] = None

    init_std: float = 0.05
    loss_variant: str = "diagonal"
    seed: Optional[int] = None

    def __post_init__(self):
        _positive_int("num_users", self.num_users)
        _positive_int("num_items", self.num_items)
        _positive_int("embedding_dim", self.embedding_dim)
        _positive_float("learning_rate", self.learning_rate)
        _positive_float("init_std", self.init_std)

        if self.mode not in MODES:
            raise ConfigurationError(f"mode must be one of {MODES}, got {self.mode!r}")
        if self.loss_variant not in LOSS_VARIANTS:
            raise ConfigurationError(
                f"loss_variant must be one of {LOSS_VARIANTS}, got {self.loss_variant!r}"
            )
        if self.seed is not None and (
            isinstance(self.seed, bool) or not isinstance(self.seed, numbers.Integral)
        ):
            raise ConfigurationError(f"seed must be an integer or None, got {self.seed!r}")

        if self.mode == "deep":
            if self.tower_hidden_sizes is None or self.tower_output_dim is None:
                raise ConfigurationError(
                    "deep mode requires tower_hidden_sizes and tower_output_dim"
                )
            hidden = self.tower_hidden_sizes
            if isinstance(hidden, (str, bytes)) or not hasattr(hidden, "__iter__"):
                raise ConfigurationError(
                    f"tower_hidden_sizes must be a sequence of ints, got {hidden!r}"
                )
            hidden = tuple(hidden)
            if not hidden:
                raise ConfigurationError("tower_hidden_sizes must not be empty")
            for units in hidden:
                _positive_int("tower_hidden_sizes entry", units)
            _positive_int("tower_output_dim", self.tower_output_dim)
            # frozen: normalise lists to tuples behind the dataclass guard
            object.__setattr__(self, "tower_hidden_sizes", hidden)
        elif self.tower_hidden_sizes is not None or self.tower_output_dim is not None:
            raise ConfigurationError(
                "tower_hidden_sizes / tower_output_dim are only valid in deep mode"
            )

    @property
    def output_dim(self) -> int:
        """Width D' of the vectors that are scored and projected."""
        return self.tower_output_dim if self.mode == "deep" else self.embedding_dim
