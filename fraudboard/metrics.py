"""
Binary classification metrics used to score submissions.

Precision and recall are defined as 0 when their denominator is 0, and F1 is
0 whenever either of them is 0.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np


class EmptyInputError(ValueError):
    """Raised when metrics are requested for zero labels"""
    pass


class LengthMismatchError(ValueError):
    """Raised when actual and predicted labels differ in length"""
    pass


@dataclass(frozen=True)
class ConfusionCounts:
    tp: int
    fp: int
    fn: int
    tn: int


@dataclass(frozen=True)
class MetricResult:
    f1: float
    accuracy: float
    precision: float
    recall: float
    counts: ConfusionCounts


def _as_binary_arrays(actual: Sequence[int], predicted: Sequence[int]):
    a = np.asarray(actual, dtype=np.int64)
    p = np.asarray(predicted, dtype=np.int64)
    if a.ndim != 1 or p.ndim != 1:
        raise ValueError("Label sequences must be one-dimensional")
    if a.shape[0] != p.shape[0]:
        raise LengthMismatchError(
            f"actual has {a.shape[0]} labels but predicted has {p.shape[0]}"
        )
    if a.shape[0] == 0:
        raise EmptyInputError("Cannot compute metrics for empty label sequences")
    if not (np.isin(a, (0, 1)).all() and np.isin(p, (0, 1)).all()):
        raise ValueError("Labels must be 0 or 1")
    return a, p


def confusion_counts(actual: Sequence[int], predicted: Sequence[int]) -> ConfusionCounts:
    a, p = _as_binary_arrays(actual, predicted)
    return ConfusionCounts(
        tp=int(np.sum((a == 1) & (p == 1))),
        fp=int(np.sum((a == 0) & (p == 1))),
        fn=int(np.sum((a == 1) & (p == 0))),
        tn=int(np.sum((a == 0) & (p == 0))),
    )


def _safe_ratio(numerator: int, denominator: int) -> float:
    return numerator / denominator if denominator else 0.0


def _f1_from_counts(counts: ConfusionCounts):
    precision = _safe_ratio(counts.tp, counts.tp + counts.fp)
    recall = _safe_ratio(counts.tp, counts.tp + counts.fn)
    if precision == 0 or recall == 0:
        return 0.0, precision, recall
    return 2 * (precision * recall) / (precision + recall), precision, recall


def f1_score(actual: Sequence[int], predicted: Sequence[int]) -> float:
    """
    F1 score of ``predicted`` against ``actual``.

    Args:
        actual: Ground-truth labels (0 or 1)
        predicted: Predicted labels (0 or 1), same length as ``actual``

    Returns:
        F1 in [0, 1]

    Raises:
        EmptyInputError: If the sequences are empty
        LengthMismatchError: If the sequences differ in length
    """
    f1, _, _ = _f1_from_counts(confusion_counts(actual, predicted))
    return f1


def accuracy(actual: Sequence[int], predicted: Sequence[int]) -> float:
    """Fraction of positions where ``predicted`` equals ``actual``."""
    a, p = _as_binary_arrays(actual, predicted)
    return int(np.sum(a == p)) / a.shape[0]


def evaluate(actual: Sequence[int], predicted: Sequence[int]) -> MetricResult:
    """Compute every metric in one pass over the labels."""
    counts = confusion_counts(actual, predicted)
    f1, precision, recall = _f1_from_counts(counts)
    total = counts.tp + counts.fp + counts.fn + counts.tn
    return MetricResult(
        f1=f1,
        accuracy=(counts.tp + counts.tn) / total,
        precision=precision,
        recall=recall,
        counts=counts,
    )
