"""
Output helpers for count tables.
"""

from __future__ import annotations

import os
from typing import Dict, List

import pandas as pd

from .constants import CLASS_LABELS, PREVIEW_LIMIT
from .pipeline import BatchReport


def counts_frame(counts: Dict[int, int]) -> pd.DataFrame:
    """Single-row frame with one column per digit."""
    row = [int(counts.get(label, 0)) for label in CLASS_LABELS]
    return pd.DataFrame([row], columns=[str(label) for label in CLASS_LABELS])


def write_counts_csv(counts: Dict[int, int], path: str) -> str:
    """Write the header ``0,...,9`` and one row of counts; returns the absolute path."""
    out_path = os.path.abspath(path)
    counts_frame(counts).to_csv(out_path, index=False)
    return out_path


def preview_lines(report: BatchReport, limit: int = PREVIEW_LIMIT) -> List[str]:
    return [
        f"{os.path.basename(source)} -> {label}"
        for source, label in report.predictions[:limit]
    ]


def summary_lines(report: BatchReport) -> List[str]:
    lines = [
        "Final 10-element array [0..9]:",
        str(report.counts_list()),
        f"Total files counted: {report.total}",
    ]
    if report.failures:
        lines.append(f"Skipped files: {len(report.failures)}")
    return lines
