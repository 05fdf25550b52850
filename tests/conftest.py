import sys
from pathlib import Path

import numpy as np
import pytest

# Modules live at the repository root: allow running plain `pytest` from anywhere.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def line_data():
    """Four samples on one feature: two of class 0 below two of class 1."""
    X = np.array([[0.0], [1.0], [2.0], [3.0]], dtype=np.float32)
    y = np.array([0, 0, 1, 1], dtype=np.int32)
    return X, y


@pytest.fixture
def blob_data():
    rng = np.random.default_rng(5)
    n = 240
    y = rng.integers(0, 3, size=n)
    centers = np.array([[0.0, 0.0, 0.0, 0.0], [3.0, 0.0, 1.0, 0.0], [0.0, 3.0, 0.0, 1.0]])
    X = centers[y] + rng.normal(scale=0.8, size=(n, 4))
    return X.astype(np.float32), y.astype(np.int32)
