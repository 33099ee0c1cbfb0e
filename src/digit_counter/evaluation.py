"""
Hold-out evaluation of the weighted KNN classifier on the reference set.
"""

from __future__ import annotations

from typing import Any, Dict

import numpy as np
from sklearn.metrics import accuracy_score, classification_report, confusion_matrix
from sklearn.model_selection import train_test_split

from .constants import CLASS_LABELS, DEFAULT_K
from .dataset import ReferenceDataset
from .models import WeightedKNNClassifier
from .normalization import ZScoreNormalizer


def evaluate_holdout(
    dataset: ReferenceDataset,
    k: int = DEFAULT_K,
    test_size: float = 0.2,
    random_state: int = 42,
) -> Dict[str, Any]:
    """
    Split the reference set, fit statistics on the training part only and
    report accuracy of the classifier on the held-out part.
    """
    counts = np.bincount(dataset.labels)
    stratify = dataset.labels if counts[counts > 0].min() >= 2 else None
    X_train, X_test, y_train, y_test = train_test_split(
        dataset.vectors,
        dataset.labels,
        test_size=test_size,
        random_state=random_state,
        stratify=stratify,
    )

    normalizer = ZScoreNormalizer()
    X_train_scaled = normalizer.fit_transform(X_train)
    X_test_scaled = normalizer.transform(X_test)

    classifier = WeightedKNNClassifier(n_neighbors=k).fit(X_train_scaled, y_train)
    y_pred = classifier.predict(X_test_scaled)

    return {
        "accuracy": float(accuracy_score(y_test, y_pred)),
        "predictions": y_pred,
        "confusion_matrix": confusion_matrix(y_test, y_pred, labels=CLASS_LABELS),
        "classification_report": classification_report(
            y_test, y_pred, labels=CLASS_LABELS, zero_division=0
        ),
        "n_neighbors": k,
        "train_samples": int(len(y_train)),
        "test_samples": int(len(y_test)),
    }
