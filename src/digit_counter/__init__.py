"""
Handwritten Digit Counter

Counts handwritten digit images per class (0-9) using z-score normalisation
and an inverse-distance weighted k-nearest-neighbour classifier over a
reference dataset.
"""

from .constants import PipelineConfig
from .errors import DimensionalityError, ExtractionError, FitError, ReferenceDataError
from .models import Prediction, WeightedKNNClassifier, predict_knn
from .normalization import ZScoreNormalizer, ZScoreStats, zscore_fit, zscore_transform
from .pipeline import BatchReport, DigitCountPipeline, ImageResult, aggregate_counts, collect_images
from .preprocess import DigitVectorizer, binarise, image_to_vector, otsu_threshold

__version__ = "1.0.0"

__all__ = [
    "BatchReport",
    "DigitCountPipeline",
    "DigitVectorizer",
    "DimensionalityError",
    "ExtractionError",
    "FitError",
    "ImageResult",
    "PipelineConfig",
    "Prediction",
    "ReferenceDataError",
    "WeightedKNNClassifier",
    "ZScoreNormalizer",
    "ZScoreStats",
    "aggregate_counts",
    "binarise",
    "collect_images",
    "image_to_vector",
    "otsu_threshold",
    "predict_knn",
    "zscore_fit",
    "zscore_transform",
]
