from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from splitters import Splitter


@dataclass(eq=False)
class TreeNode:
    depth: int
    histogram: np.ndarray | None = None
    splitter: Splitter | None = None
    gain: float = 0.0
    left: TreeNode | None = None
    right: TreeNode | None = None

    @property
    def is_leaf(self) -> bool:
        return self.splitter is None

    def make_leaf(self, histogram: np.ndarray) -> None:
        self.histogram = np.asarray(histogram, dtype=np.int64)
        self.splitter = None
        self.left = None
        self.right = None


class DecisionTree:
    def __init__(self, root: TreeNode, n_classes: int) -> None:
        self.root = root
        self.n_classes = int(n_classes)

    def iter_nodes(self) -> Iterator[TreeNode]:
        """Pre-order traversal (node, left subtree, right subtree)."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if not node.is_leaf:
                stack.append(node.right)
                stack.append(node.left)

    def leaves(self) -> list[TreeNode]:
        return [node for node in self.iter_nodes() if node.is_leaf]

    @property
    def depth(self) -> int:
        return max(node.depth for node in self.leaves())

    def find_leaf(self, v: np.ndarray) -> TreeNode:
        node = self.root
        while not node.is_leaf:
            assert node.splitter is not None
            node = node.right if node.splitter.classify_sample(v) else node.left
            assert node is not None
        return node

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        """Normalized leaf histogram reached by every row of ``X``."""
        X = np.asarray(X, dtype=np.float32)
        probs = np.zeros((X.shape[0], self.n_classes), dtype=np.float64)

        stack = [(self.root, np.arange(X.shape[0], dtype=np.int64))]
        while stack:
            node, rows = stack.pop()
            if rows.size == 0:
                continue
            if node.is_leaf:
                probs[rows] = node.histogram / float(node.histogram.sum())
                continue

            go_right = node.splitter.classify_batch(X[rows])
            stack.append((node.left, rows[~go_right]))
            stack.append((node.right, rows[go_right]))

        return probs
