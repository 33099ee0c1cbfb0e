"""
Domain constants and run configuration for the digit counter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

# Fixed label space: digits 0..9.
NUM_CLASSES: int = 10
CLASS_LABELS: List[int] = list(range(NUM_CLASSES))

# Reference vectors encode intensity on a 0..16 scale.
FEATURE_MAX: int = 16
PIXEL_MAX: int = 255

# Query images are reduced to TARGET_SIZE x TARGET_SIZE samples.
TARGET_SIZE: int = 28
FEATURE_DIM: int = TARGET_SIZE * TARGET_SIZE

BLUR_SIGMA: float = 0.5
OTSU_DEFAULT_THRESHOLD: int = 127

# Added to every neighbour distance so an exact match gets a finite weight.
VOTE_EPSILON: float = 1e-6
DEFAULT_K: int = 3

DEFAULT_REFERENCE_PATH: str = "MNIST_CSV/mnist_train.csv"
DEFAULT_REFERENCE_SAMPLES: int = 6000
DEFAULT_OUTPUT_CSV: str = "digit_counts.csv"
PREVIEW_LIMIT: int = 20

# Upper bound on the padded square canvas when Pillow's own limit is disabled.
MAX_CANVAS_PIXELS: int = 89_478_485

IMAGE_PATTERNS: Tuple[str, ...] = (
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.bmp",
    "*.gif",
    "*.tif",
    "*.tiff",
)


@dataclass(frozen=True)
class PipelineConfig:
    """Tunable settings for one counting run."""

    k: int = DEFAULT_K
    target_size: int = TARGET_SIZE
    feature_max: int = FEATURE_MAX
    blur_sigma: float = BLUR_SIGMA
    workers: int = 1
    show_progress: bool = False

    def __post_init__(self) -> None:
        if self.k < 1:
            raise ValueError(f"k must be >= 1, got {self.k}")
        if self.target_size < 1:
            raise ValueError(f"target_size must be >= 1, got {self.target_size}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
