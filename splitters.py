from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Union

import numpy as np

# Upper bound on float64 elements in one block of pairwise products
# (rows x F x F) when mapping samples through a quadratic splitter.
_QUADRATIC_BLOCK_ELEMENTS = 1 << 20


class SplitterKind(IntEnum):
    AXIS_ALIGNED = 0
    LINEAR = 1
    QUADRATIC = 2

    @classmethod
    def parse(cls, value: "SplitterKind | str | int") -> "SplitterKind":
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(
                    "split generator must be one of: axis_aligned, linear, quadratic"
                ) from None
        return cls(value)


def _as_rows(X: np.ndarray) -> np.ndarray:
    X = np.asarray(X, dtype=np.float32)
    if X.ndim == 1:
        X = X[np.newaxis, :]
    return X


class _SplitterBase:
    """Shared fitting/evaluation surface of every splitter kind.

    Subclasses only define ``map_samples``; values are float32 and each row's
    value does not depend on the other rows in the batch, so the projection
    seen while fitting is exactly the one seen at inference time.
    """

    kind: SplitterKind
    threshold: np.float32

    def map_samples(self, X: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def set_threshold(self, threshold: float) -> None:
        self.threshold = np.float32(threshold)

    def classify_sample(self, v: np.ndarray) -> bool:
        return bool(self.map_samples(v)[0] > self.threshold)

    def classify_batch(self, X: np.ndarray) -> np.ndarray:
        return self.map_samples(X) > self.threshold

    def map_points(
        self,
        features: np.ndarray,
        labels: np.ndarray,
        sample_indices: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Project the listed samples; returns ``(values, classes)`` in index order."""
        sample_indices = np.asarray(sample_indices, dtype=np.int64)
        values = self.map_samples(features[sample_indices])
        classes = np.asarray(labels[sample_indices], dtype=np.int64)
        return values, classes


@dataclass(eq=False)
class AxisAlignedSplitter(_SplitterBase):
    feature: int
    threshold: np.float32 = np.float32(-1.0)

    kind = SplitterKind.AXIS_ALIGNED

    def map_samples(self, X: np.ndarray) -> np.ndarray:
        return _as_rows(X)[:, self.feature]


@dataclass(eq=False)
class LinearSplitter(_SplitterBase):
    weights: np.ndarray
    threshold: np.float32 = np.float32(-1.0)

    kind = SplitterKind.LINEAR

    def __post_init__(self) -> None:
        self.weights = np.ascontiguousarray(self.weights, dtype=np.float32)

    def map_samples(self, X: np.ndarray) -> np.ndarray:
        X64 = _as_rows(X).astype(np.float64)
        w64 = self.weights.astype(np.float64)
        return np.sum(X64 * w64, axis=1).astype(np.float32)


@dataclass(eq=False)
class QuadraticSplitter(_SplitterBase):
    n_features: int
    weights: np.ndarray
    threshold: np.float32 = np.float32(-1.0)

    kind = SplitterKind.QUADRATIC

    def __post_init__(self) -> None:
        self.weights = np.ascontiguousarray(self.weights, dtype=np.float32)
        expected = self.n_features + self.n_features * self.n_features
        if self.weights.size != expected:
            raise ValueError(
                f"quadratic splitter needs {expected} weights, got {self.weights.size}"
            )

    def map_samples(self, X: np.ndarray) -> np.ndarray:
        X = _as_rows(X)
        n_rows = X.shape[0]
        F = self.n_features
        w64 = self.weights.astype(np.float64)
        w_linear = w64[:F]
        w_pairs = w64[F:].reshape(F, F)

        block_rows = max(1, _QUADRATIC_BLOCK_ELEMENTS // (F * F))

        out = np.empty(n_rows, dtype=np.float32)
        for start in range(0, n_rows, block_rows):
            block = X[start : start + block_rows].astype(np.float64)
            linear = np.sum(block * w_linear, axis=1)
            pairs = block[:, :, np.newaxis] * block[:, np.newaxis, :]
            pairs *= w_pairs
            quadratic = np.sum(pairs.reshape(block.shape[0], F * F), axis=1)
            out[start : start + block.shape[0]] = linear + quadratic
        return out


Splitter = Union[AxisAlignedSplitter, LinearSplitter, QuadraticSplitter]
