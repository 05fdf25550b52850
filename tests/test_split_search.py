import numpy as np
import pytest

from split_generators import AxisAlignedRandomSplitGenerator, LinearSplitGenerator
from split_search import BestSplitSearch, impurity, midpoint_threshold, scan_thresholds


def test_scan_finds_class_boundary_midpoint():
    values = np.array([0.0, 1.0, 2.0, 3.0], dtype=np.float32)
    classes = np.array([0, 0, 1, 1])

    scan = scan_thresholds(values, classes, n_classes=2)

    assert scan.position == 1
    assert scan.threshold == np.float32(1.5)
    assert scan.gain == pytest.approx(0.5)


def test_scan_skips_boundaries_between_equal_values():
    values = np.array([1.0, 1.0, 1.0, 2.0], dtype=np.float32)
    classes = np.array([0, 1, 0, 1])

    scan = scan_thresholds(values, classes, n_classes=2)

    assert scan.position == 2
    assert 1.0 < scan.threshold < 2.0
    assert scan_thresholds(np.ones(4, dtype=np.float32), classes, n_classes=2) is None


def test_scan_prefers_first_boundary_on_ties():
    values = np.array([0.0, 1.0, 2.0, 3.0], dtype=np.float32)
    classes = np.array([0, 1, 0, 1])

    scan = scan_thresholds(values, classes, n_classes=2)
    gains = []
    for k in range(3):
        left = np.bincount(classes[: k + 1], minlength=2)
        right = np.bincount(classes[k + 1 :], minlength=2)
        weighted = ((k + 1) * impurity(left) + (3 - k) * impurity(right)) / 4
        gains.append(impurity(np.array([2, 2])) - weighted)

    assert scan.position == int(np.argmax(gains))


def test_entropy_criterion():
    assert impurity(np.array([2, 2]), "entropy") == pytest.approx(1.0)
    assert impurity(np.array([4, 0]), "entropy") == pytest.approx(0.0)
    assert impurity(np.array([2, 2]), "gini") == pytest.approx(0.5)
    with pytest.raises(ValueError):
        impurity(np.array([1, 1]), "variance")


def test_midpoint_threshold_between_adjacent_floats():
    lower = np.float32(1.0)
    upper = np.nextafter(lower, np.float32(2.0))

    t = midpoint_threshold(lower, upper)

    assert t.dtype == np.float32
    assert lower <= t < upper
    assert midpoint_threshold(np.float32(1.0), np.float32(2.0)) == np.float32(1.5)


def test_search_returns_no_split_for_pure_node():
    X = np.arange(8, dtype=np.float32).reshape(4, 2)
    y = np.ones(4, dtype=np.int32)

    result = BestSplitSearch(
        node_rows=np.arange(4),
        features=X,
        labels=y,
        n_classes=2,
        generator=AxisAlignedRandomSplitGenerator(),
        rng=np.random.default_rng(0),
    ).search()

    assert result.splitter is None


def test_search_threshold_is_midpoint_of_node_values(blob_data):
    X, y = blob_data
    rows = np.arange(0, X.shape[0], 2)

    result = BestSplitSearch(
        node_rows=rows,
        features=X,
        labels=y,
        n_classes=3,
        generator=AxisAlignedRandomSplitGenerator(),
        rng=np.random.default_rng(8),
        criterion="entropy",
    ).search()

    assert result.splitter is not None
    assert result.gain > 0.0
    assert result.metrics.n_proposals == 2

    values = np.unique(X[rows, result.splitter.feature])
    k = int(np.searchsorted(values, result.splitter.threshold, side="right")) - 1
    assert 0 <= k < values.size - 1
    assert result.splitter.threshold == midpoint_threshold(values[k], values[k + 1])

    go_right = result.splitter.classify_batch(X[rows])
    assert 0 < np.count_nonzero(go_right) < rows.size


def test_linear_search_keeps_best_of_all_proposals(blob_data):
    X, y = blob_data
    rows = np.arange(X.shape[0])

    result = BestSplitSearch(
        node_rows=rows,
        features=X,
        labels=y,
        n_classes=3,
        generator=LinearSplitGenerator(n_proposals=6),
        rng=np.random.default_rng(9),
    ).search()

    assert result.metrics.n_proposals == 6
    assert result.splitter is not None
    assert result.splitter.weights.shape == (4,)
    assert result.gain > 0.0


def test_search_rejects_unknown_criterion():
    with pytest.raises(ValueError):
        BestSplitSearch(
            node_rows=np.arange(2),
            features=np.zeros((2, 1), dtype=np.float32),
            labels=np.array([0, 1]),
            n_classes=2,
            generator=AxisAlignedRandomSplitGenerator(),
            rng=np.random.default_rng(0),
            criterion="mse",
        )
