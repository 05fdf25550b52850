from __future__ import annotations

import numpy as np

from errors import ShapeMismatchError


def confusion_matrix(y_true: np.ndarray, y_pred: np.ndarray, n_classes: int) -> np.ndarray:
    """Rows are ground truth, columns are predictions."""
    y_true = np.asarray(y_true, dtype=np.int64)
    y_pred = np.asarray(y_pred, dtype=np.int64)
    matrix = np.zeros((n_classes, n_classes), dtype=np.int64)
    np.add.at(matrix, (y_true, y_pred), 1)
    return matrix


def _safe_ratio(num: np.ndarray, den: np.ndarray) -> np.ndarray:
    num = np.asarray(num, dtype=np.float64)
    den = np.asarray(den, dtype=np.float64)
    return np.divide(num, den, out=np.full_like(num, np.nan), where=den > 0)


def evaluate_predictions(y_true: np.ndarray, y_pred: np.ndarray, n_classes: int) -> dict:
    """Accuracy and per-class scores; negative ground-truth labels are ignored."""
    y_true = np.asarray(y_true, dtype=np.int64)
    y_pred = np.asarray(y_pred, dtype=np.int64)
    if y_true.shape != y_pred.shape:
        raise ShapeMismatchError(y_true.size, y_pred.size, context="prediction count")

    labeled = (y_true >= 0) & (y_true < n_classes)
    y_true = y_true[labeled]
    y_pred = y_pred[labeled]

    matrix = confusion_matrix(y_true, y_pred, n_classes)
    tp = np.diag(matrix)
    support = matrix.sum(axis=1)
    predicted = matrix.sum(axis=0)

    precision = _safe_ratio(tp, predicted)
    recall = _safe_ratio(tp, support)
    f1 = _safe_ratio(2.0 * tp, support + predicted)
    iou = _safe_ratio(tp, support + predicted - tp)

    n_labeled = int(y_true.size)
    accuracy = float(tp.sum() / n_labeled) if n_labeled > 0 else float("nan")

    return {
        "n_samples": n_labeled,
        "accuracy": accuracy,
        "confusion_matrix": matrix,
        "per_class": [
            {
                "class": c,
                "support": int(support[c]),
                "precision": float(precision[c]),
                "recall": float(recall[c]),
                "f1": float(f1[c]),
                "iou": float(iou[c]),
            }
            for c in range(n_classes)
        ],
        "mean_iou": float(np.nanmean(iou)) if np.any(np.isfinite(iou)) else float("nan"),
    }
