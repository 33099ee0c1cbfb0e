"""
Reference dataset loading.

Supported sources:
- MNIST CSV (label in the first column followed by 784 pixel columns, 0..255)
- ``.npz`` archives holding ``X``/``y`` (or ``images``/``labels``) arrays

Pixel values are rescaled onto the 0..16 feature scale.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from .constants import FEATURE_MAX, NUM_CLASSES, PIXEL_MAX
from .errors import ReferenceDataError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceDataset:
    """Read-only reference vectors and their digit labels."""

    vectors: np.ndarray
    labels: np.ndarray

    def __post_init__(self) -> None:
        vectors = np.array(self.vectors, dtype=np.float64)
        labels = np.array(self.labels)
        if vectors.ndim != 2 or vectors.shape[0] == 0 or vectors.shape[1] == 0:
            raise ReferenceDataError(f"Reference vectors must be a non-empty 2-D array, got shape {vectors.shape}")
        if labels.ndim != 1 or labels.shape[0] != vectors.shape[0]:
            raise ReferenceDataError(
                f"Expected {vectors.shape[0]} labels, got array of shape {labels.shape}"
            )
        if not np.all(np.mod(labels, 1) == 0):
            raise ReferenceDataError("Reference labels must be integers")
        labels = labels.astype(np.int64)
        if labels.min() < 0 or labels.max() >= NUM_CLASSES:
            raise ReferenceDataError(f"Reference labels must lie in 0..{NUM_CLASSES - 1}")

        vectors.flags.writeable = False
        labels.flags.writeable = False
        object.__setattr__(self, "vectors", vectors)
        object.__setattr__(self, "labels", labels)

    def __len__(self) -> int:
        return int(self.vectors.shape[0])

    @property
    def dimension(self) -> int:
        return int(self.vectors.shape[1])

    def class_distribution(self) -> dict:
        counts = np.bincount(self.labels, minlength=NUM_CLASSES)
        return {label: int(count) for label, count in enumerate(counts)}

    def subset(self, max_samples: Optional[int], random_state: int = 42) -> "ReferenceDataset":
        """Random subset of at most ``max_samples`` items, original order kept."""
        if max_samples is not None and max_samples < 0:
            raise ReferenceDataError(f"max_samples must be >= 0, got {max_samples}")
        if not max_samples or max_samples >= len(self):
            return self
        rng = np.random.default_rng(random_state)
        idx = np.sort(rng.choice(len(self), size=max_samples, replace=False))
        return ReferenceDataset(self.vectors[idx], self.labels[idx])


def rescale_pixels(pixels: np.ndarray, pixel_max: float = PIXEL_MAX) -> np.ndarray:
    """Map raw intensities in 0..pixel_max onto the 0..16 feature scale."""
    return np.asarray(pixels, dtype=np.float64) / float(pixel_max) * FEATURE_MAX


def _read_mnist_frame(path: str) -> pd.DataFrame:
    frame = pd.read_csv(path, header=None)
    first = pd.to_numeric(frame.iloc[0], errors="coerce")
    if first.isna().any():
        # Header row present (e.g. "label,1x1,1x2,...")
        frame = frame.iloc[1:]
    return frame.apply(pd.to_numeric, errors="raise")


def load_mnist_csv(path: str, pixel_max: float = PIXEL_MAX) -> ReferenceDataset:
    """Load a MNIST-style CSV file into a reference dataset."""
    if not os.path.exists(path):
        raise ReferenceDataError(f"Reference CSV not found: {path}")
    try:
        frame = _read_mnist_frame(path)
    except (ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise ReferenceDataError(f"Could not parse reference CSV {path}: {exc}") from exc
    if frame.shape[0] == 0 or frame.shape[1] < 2:
        raise ReferenceDataError(f"Reference CSV {path} holds no samples")

    labels = frame.iloc[:, 0].values
    pixels = frame.iloc[:, 1:].values
    logger.info("Loaded %d reference samples with %d features from %s", pixels.shape[0], pixels.shape[1], path)
    return ReferenceDataset(rescale_pixels(pixels, pixel_max), labels)


def load_npz(path: str, pixel_max: float = PIXEL_MAX) -> ReferenceDataset:
    """Load reference vectors from an ``.npz`` archive."""
    if not os.path.exists(path):
        raise ReferenceDataError(f"Reference archive not found: {path}")
    with np.load(path) as data:
        for x_key, y_key in (("X", "y"), ("images", "labels")):
            if x_key in data and y_key in data:
                X, y = data[x_key], data[y_key]
                break
        else:
            raise ReferenceDataError(f"File {path} must contain 'X' and 'y' arrays")

    X = X.reshape(X.shape[0], -1)
    logger.info("Loaded %d reference samples with %d features from %s", X.shape[0], X.shape[1], path)
    return ReferenceDataset(rescale_pixels(X, pixel_max), y)


def load_reference(
    path: str,
    max_samples: Optional[int] = None,
    pixel_max: float = PIXEL_MAX,
    random_state: int = 42,
) -> ReferenceDataset:
    """Load a reference dataset, dispatching on the file extension."""
    ext = os.path.splitext(path)[1].lower()
    if ext == ".npz":
        dataset = load_npz(path, pixel_max=pixel_max)
    elif ext in (".csv", ".txt"):
        dataset = load_mnist_csv(path, pixel_max=pixel_max)
    else:
        raise ReferenceDataError(f"Unsupported reference dataset format: {path}")
    return dataset.subset(max_samples, random_state=random_state)

