from __future__ import annotations

from dataclasses import dataclass
import time

import numpy as np

from split_generators import SplitGenerator, proposals
from splitters import Splitter

CRITERIA = ("gini", "entropy")

# Gains at or below this are treated as no improvement (float round-off).
_MIN_GAIN = 1e-12


@dataclass
class SplitSearchMetrics:
    n_proposals: int = 0
    boundaries_scanned: int = 0
    time_spent_sec: float = 0.0


@dataclass
class SplitSearchResult:
    splitter: Splitter | None
    gain: float
    metrics: SplitSearchMetrics


@dataclass
class ThresholdScan:
    gain: float
    threshold: np.float32
    position: int


def class_histogram(labels: np.ndarray, n_classes: int) -> np.ndarray:
    return np.bincount(np.asarray(labels, dtype=np.int64), minlength=n_classes).astype(np.int64)


def impurity(counts: np.ndarray, criterion: str = "gini") -> np.ndarray:
    """Impurity of class-count rows (last axis = classes)."""
    counts = np.asarray(counts, dtype=np.float64)
    totals = counts.sum(axis=-1, keepdims=True)
    p = np.divide(counts, totals, out=np.zeros_like(counts), where=totals > 0)
    if criterion == "gini":
        return 1.0 - np.sum(p * p, axis=-1)
    if criterion == "entropy":
        logp = np.log2(p, out=np.zeros_like(p), where=p > 0)
        return -np.sum(p * logp, axis=-1)
    raise ValueError(f"Unsupported criterion: {criterion}")


def midpoint_threshold(lower: float, upper: float) -> np.float32:
    """Float32 midpoint with ``lower <= t < upper`` for float32 ``lower < upper``."""
    lower32 = np.float32(lower)
    t = np.float32((float(lower) + float(upper)) * 0.5)
    if not (lower32 <= t < np.float32(upper)):
        t = lower32
    return t


def scan_thresholds(
    values: np.ndarray,
    classes: np.ndarray,
    n_classes: int,
    criterion: str = "gini",
) -> ThresholdScan | None:
    """Best boundary of one projected candidate.

    ``values``/``classes`` must be sorted ascending by value. Boundaries between
    equal values are skipped; ties go to the leftmost boundary.
    """
    n = int(values.size)
    if n < 2:
        return None

    onehot = np.zeros((n, n_classes), dtype=np.int64)
    onehot[np.arange(n), classes] = 1
    left = np.cumsum(onehot, axis=0)[:-1]
    total = left[-1] + onehot[-1]
    right = total - left

    n_left = np.arange(1, n, dtype=np.float64)
    n_right = float(n) - n_left
    weighted = (n_left * impurity(left, criterion) + n_right * impurity(right, criterion)) / n
    gains = impurity(total, criterion) - weighted

    valid = values[:-1] < values[1:]
    if not np.any(valid):
        return None
    gains = np.where(valid, gains, -np.inf)

    position = int(np.argmax(gains))
    return ThresholdScan(
        gain=float(gains[position]),
        threshold=midpoint_threshold(values[position], values[position + 1]),
        position=position,
    )


class BestSplitSearch:
    """Exhaustive threshold search over one node's split proposals."""

    def __init__(
        self,
        node_rows: np.ndarray,
        features: np.ndarray,
        labels: np.ndarray,
        n_classes: int,
        generator: SplitGenerator,
        rng: np.random.Generator,
        criterion: str = "gini",
    ) -> None:
        if criterion not in CRITERIA:
            raise ValueError(f"criterion must be one of: {', '.join(CRITERIA)}")
        self.node_rows = np.asarray(node_rows, dtype=np.int64)
        self.features = features
        self.labels = labels
        self.n_classes = int(n_classes)
        self.generator = generator
        self.rng = rng
        self.criterion = criterion

    def _evaluate(self, splitter: Splitter) -> ThresholdScan | None:
        values, classes = splitter.map_points(self.features, self.labels, self.node_rows)
        order = np.argsort(values, kind="stable")
        return scan_thresholds(values[order], classes[order], self.n_classes, self.criterion)

    def search(self) -> SplitSearchResult:
        start = time.perf_counter()
        metrics = SplitSearchMetrics()

        self.generator.init(
            self.features, self.labels, self.node_rows, self.n_classes, self.rng
        )
        candidates = proposals(self.generator, self.rng)

        best_splitter = None
        best_gain = -float("inf")
        best_threshold = np.float32(0.0)
        for splitter in candidates:
            scan = self._evaluate(splitter)
            metrics.n_proposals += 1
            metrics.boundaries_scanned += max(int(self.node_rows.size) - 1, 0)
            if scan is None:
                continue
            if scan.gain > best_gain:
                best_splitter = splitter
                best_gain = scan.gain
                best_threshold = scan.threshold

        metrics.time_spent_sec = time.perf_counter() - start
        if best_splitter is None or best_gain <= _MIN_GAIN:
            return SplitSearchResult(None, best_gain, metrics)

        best_splitter.set_threshold(best_threshold)
        return SplitSearchResult(best_splitter, best_gain, metrics)
