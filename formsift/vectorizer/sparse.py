"""
Sparse feature vectors.

A SparseVector stores only its nonzero coordinates plus a declared
dimension. Vectors produced by separate pipelines are joined with
concat_sparse, which offsets indices by the cumulative dimension of the
preceding vectors so that trained coefficient columns line up with the
pipeline order.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

import numpy as np


@dataclass(frozen=True)
class SparseVector:
    """Immutable sparse vector of dimension ``dim``."""

    dim: int
    entries: Mapping[int, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.dim < 0:
            raise ValueError(f"dimension must be non-negative, got {self.dim}")
        for index in self.entries:
            if not 0 <= index < self.dim:
                raise ValueError(f"index {index} out of range for dimension {self.dim}")
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    @classmethod
    def zeros(cls, dim: int) -> "SparseVector":
        """Vector of the given dimension with no nonzero entries."""
        return cls(dim=dim)

    @property
    def nnz(self) -> int:
        """Number of stored entries."""
        return len(self.entries)

    def dot(self, dense: Sequence[float] | np.ndarray) -> float:
        """Dot product against a dense vector of length >= dim."""
        total = 0.0
        for index, value in self.entries.items():
            total += value * dense[index]
        return float(total)

    def indices_values(self) -> tuple[np.ndarray, np.ndarray]:
        """Entries as parallel (indices, values) arrays, sorted by index."""
        if not self.entries:
            return np.zeros(0, dtype=np.int64), np.zeros(0, dtype=np.float64)
        items = sorted(self.entries.items())
        indices = np.fromiter((i for i, _ in items), dtype=np.int64, count=len(items))
        values = np.fromiter((v for _, v in items), dtype=np.float64, count=len(items))
        return indices, values

    def to_dense(self) -> np.ndarray:
        """Dense numpy representation."""
        dense = np.zeros(self.dim, dtype=np.float64)
        for index, value in self.entries.items():
            dense[index] = value
        return dense


def concat_sparse(vectors: Iterable[SparseVector]) -> SparseVector:
    """Concatenate vectors column-wise, preserving their order.

    Args:
        vectors: Ordered vectors, one per pipeline.

    Returns:
        SparseVector whose dimension is the sum of input dimensions.
    """
    offset = 0
    entries: dict[int, float] = {}
    for vector in vectors:
        for index, value in vector.entries.items():
            entries[offset + index] = value
        offset += vector.dim
    return SparseVector(dim=offset, entries=entries)


def stack_sparse(vectors: Sequence[SparseVector]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Flatten a batch of vectors to COO arrays (rows, cols, values).

    All vectors are expected to share the same dimension.
    """
    rows: list[np.ndarray] = []
    cols: list[np.ndarray] = []
    vals: list[np.ndarray] = []
    for row, vector in enumerate(vectors):
        indices, values = vector.indices_values()
        rows.append(np.full(len(indices), row, dtype=np.int64))
        cols.append(indices)
        vals.append(values)
    if not rows:
        empty_i = np.zeros(0, dtype=np.int64)
        return empty_i, empty_i.copy(), np.zeros(0, dtype=np.float64)
    return np.concatenate(rows), np.concatenate(cols), np.concatenate(vals)
