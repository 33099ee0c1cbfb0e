"""
High-level pipeline wiring normalisation, vectorisation and classification
into a per-class count over a batch of digit images.
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from .constants import CLASS_LABELS, IMAGE_PATTERNS, PipelineConfig
from .dataset import ReferenceDataset
from .errors import DimensionalityError, ExtractionError
from .models import Prediction, WeightedKNNClassifier
from .normalization import ZScoreNormalizer
from .preprocess import DigitVectorizer, ImageSource, describe_source

logger = logging.getLogger(__name__)


@dataclass
class ImageResult:
    """Outcome of processing one image: a label, or the reason it was skipped."""

    source: str
    label: Optional[int] = None
    votes: Optional[np.ndarray] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def aggregate_counts(labels: Iterable[int]) -> Dict[int, int]:
    """Count labels per class; every class 0..9 is present in the result."""
    tally = Counter(labels)
    return {label: tally.get(label, 0) for label in CLASS_LABELS}


@dataclass
class BatchReport:
    results: List[ImageResult] = field(default_factory=list)
    counts: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_results(cls, results: Sequence[ImageResult]) -> "BatchReport":
        results = list(results)
        counts = aggregate_counts(r.label for r in results if r.ok)
        return cls(results=results, counts=counts)

    def counts_list(self) -> List[int]:
        return [self.counts.get(label, 0) for label in CLASS_LABELS]

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def succeeded(self) -> List[ImageResult]:
        return [r for r in self.results if r.ok]

    @property
    def failures(self) -> List[ImageResult]:
        return [r for r in self.results if not r.ok]

    @property
    def predictions(self) -> List[tuple]:
        return [(r.source, r.label) for r in self.results if r.ok]


def collect_images(folder: str | os.PathLike[str], patterns: Sequence[str] = IMAGE_PATTERNS) -> List[str]:
    """Recursively collect image files under ``folder``, sorted by path."""
    root = Path(folder)
    if not root.is_dir():
        raise NotADirectoryError(f"Folder not found: {root}")
    found = set()
    for pattern in patterns:
        for path in root.rglob(pattern):
            if path.is_file():
                found.add(str(path))
    return sorted(found)


class DigitCountPipeline:
    """Classify digit images against a reference set and count them per class."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()
        self.vectorizer = DigitVectorizer(
            target_size=self.config.target_size,
            feature_max=self.config.feature_max,
            blur_sigma=self.config.blur_sigma,
        )
        self.normalizer = ZScoreNormalizer()
        self.classifier = WeightedKNNClassifier(n_neighbors=self.config.k)
        self._prepared = False

    @property
    def prepared(self) -> bool:
        return self._prepared

    def prepare(self, dataset: ReferenceDataset) -> None:
        """Fit normalisation statistics once and normalise the reference set."""
        if dataset.dimension != self.vectorizer.dimension:
            raise DimensionalityError(
                f"Reference dimensionality {dataset.dimension} does not match "
                f"image feature dimensionality {self.vectorizer.dimension}"
            )
        reference = self.normalizer.fit_transform(dataset.vectors)
        reference.flags.writeable = False
        self.classifier.fit(reference, dataset.labels)
        self._prepared = True
        logger.info("Prepared %d reference vectors (k=%d)", len(dataset), self.config.k)

    def _ensure_prepared(self) -> None:
        if not self._prepared:
            raise RuntimeError("Pipeline not prepared. Call prepare() first.")

    def classify_vector(self, vector: np.ndarray) -> Prediction:
        """Normalise a raw feature vector and classify it."""
        self._ensure_prepared()
        return self.classifier.predict_single(self.normalizer.transform(vector))

    def process_image(self, source: ImageSource) -> ImageResult:
        """
        Vectorise and classify a single image.

        Extraction failures are logged and returned as a failed result; any
        other error propagates.
        """
        self._ensure_prepared()
        name = describe_source(source)
        try:
            vector = self.vectorizer.vectorise(source)
        except ExtractionError as exc:
            logger.warning("Skipped %s: %s", exc.source, exc.cause)
            return ImageResult(source=name, error=exc.cause)
        prediction = self.classify_vector(vector)
        return ImageResult(source=name, label=prediction.label, votes=prediction.votes)

    def run(self, sources: Iterable[ImageSource], workers: Optional[int] = None) -> BatchReport:
        """Process every source, then reduce the labels into a count table."""
        self._ensure_prepared()
        sources = list(sources)
        workers = workers or self.config.workers
        progress = dict(total=len(sources), desc="Classifying", disable=not self.config.show_progress)

        if workers > 1 and len(sources) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(tqdm(executor.map(self.process_image, sources), **progress))
        else:
            results = [self.process_image(source) for source in tqdm(sources, **progress)]

        report = BatchReport.from_results(results)
        logger.info("Counted %d of %d images", report.total, len(results))
        return report

    def count_folder(self, folder: str | os.PathLike[str], workers: Optional[int] = None) -> BatchReport:
        return self.run(collect_images(folder), workers=workers)
