from __future__ import annotations

from typing import Union

import numpy as np

from splitters import (
    AxisAlignedSplitter,
    LinearSplitter,
    QuadraticSplitter,
    Splitter,
    SplitterKind,
)

DEFAULT_N_PROPOSALS = 5


class AxisAlignedRandomSplitGenerator:
    """Proposes axis-aligned splits over a random subset of sqrt(F) features."""

    kind = SplitterKind.AXIS_ALIGNED

    def __init__(self) -> None:
        self.features: list[int] = []
        self._cursor = 0

    def init(
        self,
        features: np.ndarray,
        labels: np.ndarray,
        sample_indices: np.ndarray,
        n_classes: int,
        rng: np.random.Generator,
    ) -> None:
        n_features = int(features.shape[1])
        n_used = min(n_features, max(1, int(round(np.sqrt(n_features)))))

        # Rejection sampling until enough distinct features are drawn.
        chosen: list[int] = []
        seen: set[int] = set()
        while len(chosen) < n_used:
            feature = int(rng.integers(0, n_features))
            if feature not in seen:
                seen.add(feature)
                chosen.append(feature)

        self.features = chosen
        self._cursor = 0

    def num_proposals(self) -> int:
        return len(self.features)

    def gen_proposal(self, rng: np.random.Generator) -> AxisAlignedSplitter:
        if self._cursor >= len(self.features):
            self._cursor = 0
        feature = self.features[self._cursor]
        self._cursor += 1
        return AxisAlignedSplitter(feature=feature)


class LinearSplitGenerator:
    """Proposes oblique splits with fresh standard-normal weights each call."""

    kind = SplitterKind.LINEAR

    def __init__(self, n_proposals: int = DEFAULT_N_PROPOSALS) -> None:
        if n_proposals <= 0:
            raise ValueError("n_proposals must be positive")
        self.n_proposals = int(n_proposals)
        self.n_features = 0

    def init(
        self,
        features: np.ndarray,
        labels: np.ndarray,
        sample_indices: np.ndarray,
        n_classes: int,
        rng: np.random.Generator,
    ) -> None:
        self.n_features = int(features.shape[1])

    def num_proposals(self) -> int:
        return self.n_proposals

    def gen_proposal(self, rng: np.random.Generator) -> LinearSplitter:
        weights = rng.standard_normal(self.n_features).astype(np.float32)
        return LinearSplitter(weights=weights)


class QuadraticSplitGenerator(LinearSplitGenerator):
    """Like the linear generator, plus weights for every pairwise product."""

    kind = SplitterKind.QUADRATIC

    def gen_proposal(self, rng: np.random.Generator) -> QuadraticSplitter:
        F = self.n_features
        weights = rng.standard_normal(F + F * F).astype(np.float32)
        return QuadraticSplitter(n_features=F, weights=weights)


SplitGenerator = Union[
    AxisAlignedRandomSplitGenerator,
    LinearSplitGenerator,
    QuadraticSplitGenerator,
]


def make_split_generator(
    kind: SplitterKind | str | int,
    n_proposals: int = DEFAULT_N_PROPOSALS,
) -> SplitGenerator:
    kind = SplitterKind.parse(kind)
    if kind == SplitterKind.AXIS_ALIGNED:
        return AxisAlignedRandomSplitGenerator()
    if kind == SplitterKind.LINEAR:
        return LinearSplitGenerator(n_proposals=n_proposals)
    return QuadraticSplitGenerator(n_proposals=n_proposals)


def proposals(generator: SplitGenerator, rng: np.random.Generator) -> list[Splitter]:
    """Draw every proposal the generator offers for the current node."""
    return [generator.gen_proposal(rng) for _ in range(generator.num_proposals())]
