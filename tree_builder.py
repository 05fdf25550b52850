from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np

from data_structures import DecisionTree, TreeNode
from errors import ConfigurationError
from split_generators import DEFAULT_N_PROPOSALS, make_split_generator
from split_search import CRITERIA, BestSplitSearch, SplitSearchResult, class_histogram
from splitters import SplitterKind

logger = logging.getLogger(__name__)


@dataclass
class TreeBuildMetrics:
    nodes_visited: int = 0
    nodes_split: int = 0
    leaves: int = 0
    degenerate_splits: int = 0
    max_leaf_depth: int = 0
    proposals_evaluated: int = 0
    split_search_time_sec: float = 0.0


@dataclass
class TreeBuilderParams:
    n_classes: int
    max_depth: int = 42
    min_samples_per_node: int = 5
    criterion: str = "gini"  # one of: gini, entropy
    split_generator: SplitterKind | str = SplitterKind.AXIS_ALIGNED
    n_proposals: int = DEFAULT_N_PROPOSALS

    def __post_init__(self) -> None:
        if self.n_classes < 2:
            raise ConfigurationError("n_classes must be >= 2")
        if self.max_depth < 1:
            raise ConfigurationError("max_depth must be >= 1")
        if self.criterion not in CRITERIA:
            raise ConfigurationError("criterion must be one of: gini, entropy")
        try:
            self.split_generator = SplitterKind.parse(self.split_generator)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e


class TreeBuilder:
    def __init__(
        self,
        features: np.ndarray,
        labels: np.ndarray,
        params: TreeBuilderParams,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.features = np.ascontiguousarray(np.asarray(features, dtype=np.float32))
        self.labels = np.asarray(labels, dtype=np.int64)
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng(0)

        self.n_samples, self.n_features = self.features.shape
        self.metrics = TreeBuildMetrics()

    def _is_splittable(self, node: TreeNode, rows: np.ndarray, histogram: np.ndarray) -> bool:
        if node.depth >= self.params.max_depth:
            return False
        if rows.size < self.params.min_samples_per_node:
            return False
        if rows.size < 2:
            return False
        if np.count_nonzero(histogram) <= 1:
            return False
        return True

    def _find_best_split(self, rows: np.ndarray) -> SplitSearchResult:
        generator = make_split_generator(
            self.params.split_generator,
            n_proposals=self.params.n_proposals,
        )
        search = BestSplitSearch(
            node_rows=rows,
            features=self.features,
            labels=self.labels,
            n_classes=self.params.n_classes,
            generator=generator,
            rng=self.rng,
            criterion=self.params.criterion,
        )
        result = search.search()

        self.metrics.proposals_evaluated += result.metrics.n_proposals
        self.metrics.split_search_time_sec += result.metrics.time_spent_sec
        return result

    def _finish_leaf(self, node: TreeNode, histogram: np.ndarray) -> None:
        node.make_leaf(histogram)
        self.metrics.leaves += 1
        self.metrics.max_leaf_depth = max(self.metrics.max_leaf_depth, node.depth)

    def build_tree(self, rows: np.ndarray | None = None) -> DecisionTree:
        """Grow one tree over ``rows`` (repeats allowed, e.g. a bootstrap)."""
        if rows is None:
            rows = np.arange(self.n_samples, dtype=np.int64)
        else:
            rows = np.asarray(rows, dtype=np.int64)

        root = TreeNode(depth=0)
        stack = [(root, rows)]

        while stack:
            node, node_rows = stack.pop()
            self.metrics.nodes_visited += 1

            histogram = class_histogram(self.labels[node_rows], self.params.n_classes)
            if not self._is_splittable(node, node_rows, histogram):
                self._finish_leaf(node, histogram)
                continue

            split_result = self._find_best_split(node_rows)
            if split_result.splitter is None:
                self._finish_leaf(node, histogram)
                continue

            go_right = split_result.splitter.classify_batch(self.features[node_rows])
            left_rows = node_rows[~go_right]
            right_rows = node_rows[go_right]
            if left_rows.size == 0 or right_rows.size == 0:
                self.metrics.degenerate_splits += 1
                self._finish_leaf(node, histogram)
                continue

            node.splitter = split_result.splitter
            node.gain = split_result.gain
            node.left = TreeNode(depth=node.depth + 1)
            node.right = TreeNode(depth=node.depth + 1)
            self.metrics.nodes_split += 1

            stack.append((node.right, right_rows))
            stack.append((node.left, left_rows))

        logger.debug(
            "built tree: %d nodes, %d leaves, depth %d",
            self.metrics.nodes_visited,
            self.metrics.leaves,
            self.metrics.max_leaf_depth,
        )
        return DecisionTree(root=root, n_classes=self.params.n_classes)
