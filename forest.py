from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import time
from typing import Callable

from joblib import Parallel, delayed
import numpy as np

from data_structures import DecisionTree
from errors import ConfigurationError, ShapeMismatchError
from forest_params import ForestParams
from split_generators import DEFAULT_N_PROPOSALS
from split_search import CRITERIA
from splitters import SplitterKind
from tree_builder import TreeBuilder, TreeBuilderParams

logger = logging.getLogger(__name__)


class Regularization(Enum):
    NONE = "none"
    LOCAL_SMOOTH = "local_smooth"


# Receives the raw (n_samples, n_classes) ensemble distribution and the mode,
# returns one label per sample.
Regularizer = Callable[[np.ndarray, Regularization], np.ndarray]


@dataclass(frozen=True)
class TrainingConfig:
    split_generator: SplitterKind | str = SplitterKind.AXIS_ALIGNED
    n_proposals: int = DEFAULT_N_PROPOSALS
    criterion: str = "gini"  # one of: gini, entropy
    random_state: int = 0
    n_jobs: int | None = None

    def __post_init__(self) -> None:
        try:
            kind = SplitterKind.parse(self.split_generator)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        object.__setattr__(self, "split_generator", kind)
        if self.n_proposals <= 0:
            raise ConfigurationError("n_proposals must be positive")
        if self.criterion not in CRITERIA:
            raise ConfigurationError("criterion must be one of: gini, entropy")
        if self.random_state < 0:
            raise ConfigurationError("random_state must be non-negative")


@dataclass
class ClassificationResult:
    labels: np.ndarray
    probabilities: np.ndarray | None = None
    features: np.ndarray | None = None
    regularization: Regularization = Regularization.NONE


def tree_seed(forest_seed: int, tree_index: int) -> np.random.SeedSequence:
    """Seed of one tree's random stream; depends only on its arguments."""
    return np.random.SeedSequence(entropy=int(forest_seed), spawn_key=(int(tree_index),))


def _check_training_data(features, labels) -> tuple[np.ndarray, np.ndarray]:
    features = np.asarray(features, dtype=np.float32)
    labels = np.asarray(labels)
    if features.ndim != 2:
        raise ConfigurationError("features must be a 2D array")
    if labels.ndim != 1 or labels.shape[0] != features.shape[0]:
        raise ConfigurationError(
            f"labels must be a 1D array with {features.shape[0]} entries, got shape {labels.shape}"
        )
    if features.shape[0] == 0:
        raise ConfigurationError("cannot train on an empty feature matrix")
    if not np.issubdtype(labels.dtype, np.integer):
        raise ConfigurationError("labels must be integer class ids")
    return np.ascontiguousarray(features), labels.astype(np.int64)


def _check_query_features(features, n_features: int) -> np.ndarray:
    features = np.asarray(features, dtype=np.float32)
    if features.ndim == 1:
        features = features[np.newaxis, :]
    if features.ndim != 2:
        raise ConfigurationError("features must be a 2D array")
    if features.shape[1] != n_features:
        raise ShapeMismatchError(n_features, features.shape[1], context="query feature count")
    return features


class RandomForest:
    """Bagged ensemble of randomized classification trees."""

    def __init__(
        self,
        params: ForestParams | None = None,
        config: TrainingConfig | None = None,
    ) -> None:
        self.params = params or ForestParams()
        self.config = config or TrainingConfig()
        self.trees: list[DecisionTree] = []
        self.metrics: dict = {}

    @property
    def is_fitted(self) -> bool:
        return len(self.trees) > 0

    def _bootstrap(self, rng: np.random.Generator) -> np.ndarray:
        if self.params.bootstrap_with_replacement:
            return rng.integers(
                0, self.params.n_samples, size=self.params.n_in_bag_samples, dtype=np.int64
            )
        chosen = rng.choice(
            self.params.n_samples, size=self.params.n_in_bag_samples, replace=False
        )
        return np.asarray(chosen, dtype=np.int64)

    def _build_one(
        self,
        tree_idx: int,
        features: np.ndarray,
        labels: np.ndarray,
        tree_params: TreeBuilderParams,
    ) -> tuple[DecisionTree, dict]:
        rng = np.random.default_rng(tree_seed(self.config.random_state, tree_idx))
        rows = self._bootstrap(rng)

        builder = TreeBuilder(features=features, labels=labels, params=tree_params, rng=rng)
        tree = builder.build_tree(rows)
        tree_metrics = {
            "tree_idx": tree_idx,
            "nodes_visited": builder.metrics.nodes_visited,
            "nodes_split": builder.metrics.nodes_split,
            "leaves": builder.metrics.leaves,
            "depth": builder.metrics.max_leaf_depth,
            "degenerate_splits": builder.metrics.degenerate_splits,
            "proposals_evaluated": builder.metrics.proposals_evaluated,
            "split_search_time_sec": builder.metrics.split_search_time_sec,
        }
        return tree, tree_metrics

    def fit(self, features: np.ndarray, labels: np.ndarray) -> "RandomForest":
        features, labels = _check_training_data(features, labels)

        n_classes = self.params.n_classes
        if n_classes == 0:
            n_classes = max(int(labels.max()) + 1, 2)
        if labels.min() < 0 or labels.max() >= n_classes:
            raise ConfigurationError(
                f"labels must lie in [0, {n_classes}), got [{labels.min()}, {labels.max()}]"
            )

        self.params = self.params.for_training(
            n_classes=n_classes,
            n_features=features.shape[1],
            n_samples=features.shape[0],
        )
        tree_params = TreeBuilderParams(
            n_classes=self.params.n_classes,
            max_depth=self.params.max_depth,
            min_samples_per_node=self.params.min_samples_per_node,
            criterion=self.config.criterion,
            split_generator=self.config.split_generator,
            n_proposals=self.config.n_proposals,
        )

        logger.info(
            "training %d trees on %d samples x %d features (%d classes, %d in-bag)",
            self.params.n_trees,
            self.params.n_samples,
            self.params.n_features,
            self.params.n_classes,
            self.params.n_in_bag_samples,
        )
        t0 = time.perf_counter()
        results = Parallel(n_jobs=self.config.n_jobs, prefer="threads")(
            delayed(self._build_one)(tree_idx, features, labels, tree_params)
            for tree_idx in range(self.params.n_trees)
        )

        self.trees = [tree for tree, _ in results]
        tree_metrics = [m for _, m in results]
        self.metrics = {
            "fit_time_sec": time.perf_counter() - t0,
            "total_nodes": sum(m["nodes_visited"] for m in tree_metrics),
            "total_leaves": sum(m["leaves"] for m in tree_metrics),
            "max_depth": max(m["depth"] for m in tree_metrics),
            "split_search_time_sec": sum(m["split_search_time_sec"] for m in tree_metrics),
            "tree_metrics": tree_metrics,
        }
        logger.info(
            "trained %d trees in %.3fs (%d nodes)",
            len(self.trees),
            self.metrics["fit_time_sec"],
            self.metrics["total_nodes"],
        )
        return self

    def predict_proba(self, features: np.ndarray) -> np.ndarray:
        if not self.is_fitted:
            raise RuntimeError("Model must be fitted before prediction")

        features = _check_query_features(features, self.params.n_features)
        probs = np.zeros((features.shape[0], self.params.n_classes), dtype=np.float64)
        for tree in self.trees:
            probs += tree.predict_proba(features)
        return probs / float(len(self.trees))

    def predict(self, features: np.ndarray) -> np.ndarray:
        # argmax picks the lowest class id on ties.
        return np.argmax(self.predict_proba(features), axis=1).astype(np.int64)


def train(
    features: np.ndarray,
    labels: np.ndarray,
    params: ForestParams | None = None,
    config: TrainingConfig | None = None,
) -> RandomForest:
    return RandomForest(params=params, config=config).fit(features, labels)


def classify(
    features: np.ndarray,
    model: RandomForest,
    regularization: Regularization = Regularization.NONE,
    regularizer: Regularizer | None = None,
    return_probabilities: bool = False,
    return_features: bool = False,
) -> ClassificationResult:
    """Label every row of ``features`` with the forest's ensemble vote.

    ``regularization`` is handed through to ``regularizer`` together with the
    raw ensemble distribution; with ``Regularization.NONE`` the label is the
    argmax of that distribution.
    """
    regularization = Regularization(regularization)
    if regularization is not Regularization.NONE and regularizer is None:
        raise ConfigurationError(
            f"regularization {regularization.value!r} requires a regularizer"
        )

    features = _check_query_features(features, model.params.n_features)
    probs = model.predict_proba(features)

    if regularization is Regularization.NONE:
        labels = np.argmax(probs, axis=1).astype(np.int64)
    else:
        labels = np.asarray(regularizer(probs, regularization), dtype=np.int64)
        if labels.shape != (features.shape[0],):
            raise ConfigurationError(
                f"regularizer returned shape {labels.shape}, expected ({features.shape[0]},)"
            )

    return ClassificationResult(
        labels=labels,
        probabilities=probs if return_probabilities else None,
        features=features if return_features else None,
        regularization=regularization,
    )
