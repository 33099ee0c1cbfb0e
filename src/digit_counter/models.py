"""
Inverse-distance weighted k-nearest-neighbour classifier for digit vectors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .constants import DEFAULT_K, NUM_CLASSES, VOTE_EPSILON
from .errors import DimensionalityError


@dataclass
class Prediction:
    label: int
    votes: np.ndarray


def euclidean_distances(reference_vectors: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Distance from ``query`` to every row of ``reference_vectors``."""
    diff = reference_vectors - query
    return np.sqrt(np.einsum("ij,ij->i", diff, diff))


def _check_reference(reference_vectors, reference_labels):
    X = np.asarray(reference_vectors, dtype=np.float64)
    y = np.asarray(reference_labels)
    if X.ndim != 2 or X.shape[0] == 0:
        raise ValueError("Reference set must be a non-empty 2-D collection of vectors")
    if y.ndim != 1 or y.shape[0] != X.shape[0]:
        raise ValueError(
            f"Reference labels ({y.shape[0] if y.ndim else 0}) do not match "
            f"reference vectors ({X.shape[0]})"
        )
    if not np.issubdtype(y.dtype, np.integer):
        if not np.all(np.mod(y, 1) == 0):
            raise ValueError("Reference labels must be integers")
        y = y.astype(np.int64)
    if y.min() < 0 or y.max() >= NUM_CLASSES:
        raise ValueError(f"Reference labels must lie in 0..{NUM_CLASSES - 1}")
    return X, y


def _vote(X: np.ndarray, y: np.ndarray, query: np.ndarray, k: int) -> Prediction:
    q = np.asarray(query, dtype=np.float64).reshape(-1)
    if q.shape[0] != X.shape[1]:
        raise DimensionalityError(
            f"Query dimensionality {q.shape[0]} does not match reference dimensionality {X.shape[1]}"
        )

    distances = euclidean_distances(X, q)
    kk = min(k, distances.shape[0])
    nearest = np.argsort(distances, kind="stable")[:kk]

    votes = np.zeros(NUM_CLASSES, dtype=np.float64)
    # np.add.at accumulates in neighbour order, nearest first.
    np.add.at(votes, y[nearest], 1.0 / (VOTE_EPSILON + distances[nearest]))

    # argmax returns the lowest class among equal maxima.
    return Prediction(label=int(np.argmax(votes)), votes=votes)


def predict_knn(
    reference_vectors: np.ndarray | Sequence[Sequence[float]],
    reference_labels: np.ndarray | Sequence[int],
    query: np.ndarray | Sequence[float],
    k: int = DEFAULT_K,
) -> int:
    """
    Classify ``query`` by inverse-distance weighted voting among its ``k``
    nearest reference vectors (``k`` is clamped to the reference size).
    """
    if k < 1:
        raise ValueError(f"k must be >= 1, got {k}")
    X, y = _check_reference(reference_vectors, reference_labels)
    return _vote(X, y, query, k).label


class WeightedKNNClassifier:
    """KNN classifier with a fit/predict surface over a fixed reference set."""

    def __init__(self, n_neighbors: int = DEFAULT_K) -> None:
        if n_neighbors < 1:
            raise ValueError(f"n_neighbors must be >= 1, got {n_neighbors}")
        self.n_neighbors = int(n_neighbors)
        self._X: np.ndarray | None = None
        self._y: np.ndarray | None = None

    def fit(self, X, y) -> "WeightedKNNClassifier":
        """Store the (already normalised) reference vectors and labels."""
        self._X, self._y = _check_reference(X, y)
        return self

    @property
    def n_features(self) -> int:
        self._ensure_fitted()
        return int(self._X.shape[1])

    def _ensure_fitted(self) -> None:
        if self._X is None or self._y is None:
            raise ValueError("Classifier not fitted yet!")

    def predict_single(self, vector) -> Prediction:
        self._ensure_fitted()
        return _vote(self._X, self._y, vector, self.n_neighbors)

    def predict(self, X) -> np.ndarray:
        """Predict labels for a batch (or a single vector)."""
        X = np.asarray(X, dtype=np.float64)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        return np.array([self.predict_single(row).label for row in X], dtype=np.int64)
