import argparse
import logging
import tempfile
import time
import sys
from pathlib import Path

import numpy as np

# Allow running as: python experiments/quick_forest_eval.py
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from evaluation import evaluate_predictions
from forest import TrainingConfig, classify, train
from forest_params import ForestParams
from model_codec import load_model, save_model


def _train_test_split(X, y, test_size, random_state):
    rng = np.random.default_rng(random_state)
    train_parts = []
    test_parts = []
    for c in np.unique(y):
        idx = np.where(y == c)[0]
        rng.shuffle(idx)
        n_test = max(1, int(round(idx.size * test_size)))
        test_parts.append(idx[:n_test])
        train_parts.append(idx[n_test:])
    train_idx = np.concatenate(train_parts)
    test_idx = np.concatenate(test_parts)
    rng.shuffle(train_idx)
    rng.shuffle(test_idx)
    return X[train_idx], X[test_idx], y[train_idx], y[test_idx]


def synthetic_point_features(n_samples, n_classes, num_scales, random_state):
    """Eigen-style shape descriptors per scale for a few point classes.

    Each class gets its own linearity/planarity/scattering profile that drifts
    with scale, plus a height feature; noise keeps classes overlapping.
    """
    rng = np.random.default_rng(random_state)
    y = rng.integers(0, n_classes, size=n_samples)

    profiles = rng.dirichlet(np.ones(3), size=n_classes)
    drift = rng.normal(scale=0.05, size=(n_classes, 3))
    heights = rng.uniform(0.0, 10.0, size=n_classes)

    columns = []
    for scale in range(num_scales):
        base = profiles[y] + scale * drift[y]
        columns.append(base + rng.normal(scale=0.08, size=base.shape))
    columns.append((heights[y] + rng.normal(scale=1.5, size=n_samples))[:, None])

    X = np.hstack(columns).astype(np.float32)
    return X, y.astype(np.int32)


def main():
    parser = argparse.ArgumentParser(description="Quick random forest train/save/load/evaluate check")
    parser.add_argument("--n-samples", type=int, default=4000)
    parser.add_argument("--n-classes", type=int, default=4)
    parser.add_argument("--num-scales", type=int, default=5)
    parser.add_argument("--n-trees", type=int, default=25)
    parser.add_argument("--max-depth", type=int, default=16)
    parser.add_argument("--min-samples-per-node", type=int, default=5)
    parser.add_argument("--sample-reduction", type=float, default=0.0)
    parser.add_argument(
        "--split-generator",
        type=str,
        default="axis_aligned",
        help="One of: axis_aligned, linear, quadratic",
    )
    parser.add_argument("--criterion", type=str, default="gini", help="One of: gini, entropy")
    parser.add_argument("--n-jobs", type=int, default=-1)
    parser.add_argument("--random-state", type=int, default=42)
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Where to write the model (default: a temporary file)",
    )
    parser.add_argument("-v", "--verbose", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    X, y = synthetic_point_features(
        args.n_samples, args.n_classes, args.num_scales, args.random_state
    )
    X_train, X_test, y_train, y_test = _train_test_split(X, y, 0.2, args.random_state)
    print(f"Dataset n_train={X_train.shape[0]} n_test={X_test.shape[0]} d={X.shape[1]}")

    params = ForestParams(
        n_classes=args.n_classes,
        max_depth=args.max_depth,
        n_trees=args.n_trees,
        min_samples_per_node=args.min_samples_per_node,
        sample_reduction=args.sample_reduction,
        num_scales=args.num_scales,
    )
    config = TrainingConfig(
        split_generator=args.split_generator,
        criterion=args.criterion,
        random_state=args.random_state,
        n_jobs=args.n_jobs,
    )

    t0 = time.perf_counter()
    model = train(X_train, y_train, params, config)
    fit_time = time.perf_counter() - t0

    with tempfile.TemporaryDirectory() as tmp:
        model_path = Path(args.model) if args.model else Path(tmp) / "model.bin"
        save_model(model_path, model)
        size = model_path.stat().st_size
        loaded = load_model(model_path, expected_n_features=X_test.shape[1])

    result = classify(X_test, loaded, return_probabilities=True)
    reference = model.predict(X_test)
    report = evaluate_predictions(y_test, result.labels, args.n_classes)

    print(
        f"Forest time={fit_time:.3f}s"
        f" split_search_time={model.metrics['split_search_time_sec']:.3f}s"
        f" nodes={model.metrics['total_nodes']}"
        f" depth={model.metrics['max_depth']}"
        f" model_bytes={size}"
    )
    print(
        f"  accuracy={report['accuracy']:.4f}"
        f" mean_iou={report['mean_iou']:.4f}"
        f" reload_matches={bool(np.array_equal(reference, result.labels))}"
    )
    for row in report["per_class"]:
        print(
            f"  class={row['class']} support={row['support']}"
            f" precision={row['precision']:.3f} recall={row['recall']:.3f}"
            f" iou={row['iou']:.3f}"
        )


if __name__ == "__main__":
    main()
