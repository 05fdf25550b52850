import numpy as np
import pytest

from errors import ConfigurationError
from tree_builder import TreeBuilder, TreeBuilderParams


def _collect_tree_signature(node):
    if node.is_leaf:
        return [("L", node.depth, tuple(int(c) for c in node.histogram))]

    signature = [
        (
            "S",
            node.depth,
            int(node.splitter.kind),
            float(node.splitter.threshold),
        )
    ]
    signature.extend(_collect_tree_signature(node.left))
    signature.extend(_collect_tree_signature(node.right))
    return signature


def _route_counts(tree, X, rows):
    counts = {}
    for row in rows:
        leaf = tree.find_leaf(X[row])
        counts[id(leaf)] = counts.get(id(leaf), 0) + 1
    return counts


def test_four_point_line_splits_between_classes(line_data):
    X, y = line_data
    builder = TreeBuilder(
        features=X,
        labels=y,
        params=TreeBuilderParams(n_classes=2, max_depth=2, min_samples_per_node=1),
        rng=np.random.default_rng(0),
    )
    tree = builder.build_tree()

    root = tree.root
    assert not root.is_leaf
    assert root.splitter.feature == 0
    assert 1.0 < root.splitter.threshold < 2.0
    assert root.left.is_leaf and root.right.is_leaf
    assert root.left.histogram.tolist() == [2, 0]
    assert root.right.histogram.tolist() == [0, 2]

    assert tree.predict_proba(np.array([[0.5]])).tolist() == [[1.0, 0.0]]
    assert tree.predict_proba(np.array([[2.5]])).tolist() == [[0.0, 1.0]]


def test_leaf_histograms_count_samples_reaching_them(blob_data):
    X, y = blob_data
    rng = np.random.default_rng(12)
    rows = rng.integers(0, X.shape[0], size=X.shape[0])

    builder = TreeBuilder(
        features=X,
        labels=y,
        params=TreeBuilderParams(n_classes=3, max_depth=6, min_samples_per_node=4),
        rng=rng,
    )
    tree = builder.build_tree(rows)

    routed = _route_counts(tree, X, rows)
    leaves = tree.leaves()
    assert sum(int(leaf.histogram.sum()) for leaf in leaves) == rows.size
    for leaf in leaves:
        assert leaf.histogram.sum() > 0
        assert routed[id(leaf)] == int(leaf.histogram.sum())
    assert builder.metrics.leaves == len(leaves)


def test_max_depth_one_gives_stump(blob_data):
    X, y = blob_data
    builder = TreeBuilder(
        features=X,
        labels=y,
        params=TreeBuilderParams(n_classes=3, max_depth=1, min_samples_per_node=1),
        rng=np.random.default_rng(1),
    )
    tree = builder.build_tree()

    assert tree.depth <= 1
    if not tree.root.is_leaf:
        assert tree.root.left.is_leaf and tree.root.right.is_leaf


def test_single_class_makes_root_leaf():
    rng = np.random.default_rng(2)
    X = rng.normal(size=(30, 3)).astype(np.float32)
    y = np.full(30, 1, dtype=np.int32)

    tree = TreeBuilder(
        features=X,
        labels=y,
        params=TreeBuilderParams(n_classes=2, min_samples_per_node=1),
        rng=rng,
    ).build_tree()

    assert tree.root.is_leaf
    assert tree.root.histogram.tolist() == [0, 30]


def test_constant_features_force_leaf():
    X = np.ones((10, 2), dtype=np.float32)
    y = np.array([0, 1] * 5, dtype=np.int32)

    builder = TreeBuilder(
        features=X,
        labels=y,
        params=TreeBuilderParams(n_classes=2, min_samples_per_node=1),
        rng=np.random.default_rng(3),
    )
    tree = builder.build_tree()

    assert tree.root.is_leaf
    assert tree.root.histogram.tolist() == [5, 5]


def test_min_samples_per_node_stops_splitting(line_data):
    X, y = line_data
    tree = TreeBuilder(
        features=X,
        labels=y,
        params=TreeBuilderParams(n_classes=2, min_samples_per_node=5),
        rng=np.random.default_rng(0),
    ).build_tree()

    assert tree.root.is_leaf
    assert tree.root.histogram.tolist() == [2, 2]


@pytest.mark.parametrize("kind", ["axis_aligned", "linear", "quadratic"])
def test_same_seed_builds_same_tree(blob_data, kind):
    X, y = blob_data
    params = TreeBuilderParams(n_classes=3, max_depth=5, min_samples_per_node=2, split_generator=kind)

    first = TreeBuilder(X, y, params, rng=np.random.default_rng(21)).build_tree()
    second = TreeBuilder(X, y, params, rng=np.random.default_rng(21)).build_tree()

    assert _collect_tree_signature(first.root) == _collect_tree_signature(second.root)
    assert not first.root.is_leaf


def test_oblique_splits_separate_diagonal_classes():
    rng = np.random.default_rng(4)
    X = rng.uniform(-1.0, 1.0, size=(300, 2)).astype(np.float32)
    y = (X[:, 0] + X[:, 1] > 0).astype(np.int32)

    builder = TreeBuilder(
        features=X,
        labels=y,
        params=TreeBuilderParams(
            n_classes=2,
            max_depth=8,
            min_samples_per_node=2,
            split_generator="linear",
            n_proposals=10,
        ),
        rng=rng,
    )
    tree = builder.build_tree()

    accuracy = np.mean(np.argmax(tree.predict_proba(X), axis=1) == y)
    assert accuracy > 0.95
    assert builder.metrics.degenerate_splits == 0


def test_builder_params_validation():
    with pytest.raises(ConfigurationError):
        TreeBuilderParams(n_classes=1)
    with pytest.raises(ConfigurationError):
        TreeBuilderParams(n_classes=2, max_depth=0)
    with pytest.raises(ConfigurationError):
        TreeBuilderParams(n_classes=2, criterion="mse")
    with pytest.raises(ConfigurationError):
        TreeBuilderParams(n_classes=2, split_generator="spherical")
