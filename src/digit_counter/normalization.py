"""
Z-score normalisation of feature vectors.

Statistics are fitted once on the reference set and the same statistics are
applied to every query vector so distances stay comparable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from .errors import DimensionalityError, FitError

ArrayLike = Union[np.ndarray, Sequence[Sequence[float]], Sequence[float]]


@dataclass(frozen=True)
class ZScoreStats:
    """Per-feature mean and standard deviation."""

    mean: np.ndarray
    std: np.ndarray

    @property
    def dimension(self) -> int:
        return int(self.mean.shape[0])


def _as_matrix(vectors: ArrayLike) -> np.ndarray:
    if isinstance(vectors, np.ndarray):
        matrix = vectors
    else:
        rows = list(vectors)
        if not rows:
            raise FitError("Cannot fit normalisation statistics on an empty dataset")
        try:
            lengths = {len(row) for row in rows}
        except TypeError as exc:
            raise FitError("Expected a collection of vectors") from exc
        if len(lengths) != 1:
            raise FitError(f"Inconsistent vector dimensionality: {sorted(lengths)}")
        matrix = np.asarray(rows)

    if matrix.ndim != 2:
        raise FitError(f"Expected a 2-D collection of vectors, got shape {matrix.shape}")
    if matrix.shape[0] == 0 or matrix.shape[1] == 0:
        raise FitError("Cannot fit normalisation statistics on an empty dataset")
    return matrix.astype(np.float64)


def zscore_fit(vectors: ArrayLike) -> ZScoreStats:
    """
    Compute per-feature mean and sample standard deviation.

    The divisor is ``n - 1`` (or 1 for a single vector). Constant features get
    a standard deviation of 1 so the transform only centres them.
    """
    X = _as_matrix(vectors)
    n = X.shape[0]
    mean = X.mean(axis=0)
    sq = ((X - mean) ** 2).sum(axis=0)
    std = np.sqrt(sq / max(1, n - 1))
    std[std == 0] = 1.0
    mean.flags.writeable = False
    std.flags.writeable = False
    return ZScoreStats(mean=mean, std=std)


def zscore_transform(vectors: ArrayLike, stats: ZScoreStats) -> np.ndarray:
    """
    Apply ``(x - mean) / std`` feature-wise.

    Accepts a single vector or a 2-D collection and returns a new array of the
    same shape. The input is never modified.
    """
    X = np.asarray(vectors, dtype=np.float64)
    if X.ndim not in (1, 2) or X.shape[-1] != stats.dimension:
        raise DimensionalityError(
            f"Vector dimensionality {X.shape[-1] if X.ndim else 0} does not match "
            f"fitted dimensionality {stats.dimension}"
        )
    return (X - stats.mean) / stats.std


class ZScoreNormalizer:
    """Stateful wrapper around :func:`zscore_fit` / :func:`zscore_transform`."""

    def __init__(self) -> None:
        self.stats: ZScoreStats | None = None

    def fit(self, vectors: ArrayLike) -> "ZScoreNormalizer":
        self.stats = zscore_fit(vectors)
        return self

    def transform(self, vectors: ArrayLike) -> np.ndarray:
        if self.stats is None:
            raise FitError("Normalizer not fitted yet. Call fit() first.")
        return zscore_transform(vectors, self.stats)

    def fit_transform(self, vectors: ArrayLike) -> np.ndarray:
        return self.fit(vectors).transform(vectors)

    @property
    def dimension(self) -> int | None:
        return None if self.stats is None else self.stats.dimension
