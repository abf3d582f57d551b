"""Exception hierarchy raised by the two-tower core."""

from __future__ import annotations


class LatentRankError(Exception):
    """Base class for every error raised by ``latent_rank``."""


class ConfigurationError(LatentRankError, ValueError):
    """Invalid construction parameters; no model is created."""


class InvalidBatchError(LatentRankError, ValueError):
    """Index input that cannot form a batch (shape, dtype, length mismatch)."""


class DegenerateBatchError(InvalidBatchError):
    """Batch too small to provide in-batch negatives (B < 2)."""


class IndexOutOfRangeError(LatentRankError, IndexError):
    """A user or item index outside ``[0, N)``."""


class DimensionMismatchError(LatentRankError, ValueError):
    """A vector whose width does not match the scoring space."""


class NumericalDivergenceError(LatentRankError, ArithmeticError):
    """Non-finite loss or gradient; the update was not applied."""


class DisposedError(LatentRankError, RuntimeError):
    """Operation attempted on a disposed model."""


class ResourceExhaustionError(LatentRankError, MemoryError):
    """Allocation failure inside the core."""
