"""Binary persistence of trained forests.

Layout (native byte order, standard widths, no padding)::

    params   u64 x7 (n_classes, n_features, n_samples, n_in_bag_samples,
             max_depth, n_trees, min_samples_per_node), f32 sample_reduction,
             f64 resolution, f64 radius, i32 num_scales
    n_trees  pre-order trees; per node a u8 tag:
             LEAF     -> n_classes x u32 class counts
             INTERNAL -> u8 splitter kind, payload, left subtree, right subtree

Splitter payloads: axis-aligned ``i32 feature, f32 threshold``; linear
``F x f32 weights, f32 threshold``; quadratic ``(F + F*F) x f32 weights,
f32 threshold``, where ``F`` is ``n_features`` from the params block.
"""

from __future__ import annotations

import io
import logging
import os
import struct
from typing import BinaryIO

import numpy as np

from data_structures import DecisionTree, TreeNode
from errors import ConfigurationError, CorruptModelError, ShapeMismatchError
from forest import RandomForest
from forest_params import ForestParams
from splitters import (
    AxisAlignedSplitter,
    LinearSplitter,
    QuadraticSplitter,
    Splitter,
    SplitterKind,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

NODE_LEAF = 0
NODE_INTERNAL = 1

_PARAMS = struct.Struct("=QQQQQQQfddi")
_U8 = struct.Struct("=B")
_AXIS_ALIGNED = struct.Struct("=if")
_F32 = struct.Struct("=f")

_U32_MAX = np.iinfo(np.uint32).max


def _weight_count(kind: SplitterKind, n_features: int) -> int:
    if kind == SplitterKind.LINEAR:
        return n_features
    return n_features + n_features * n_features


# -------------------------
# Encoding
# -------------------------

def _write_params(stream: BinaryIO, params: ForestParams) -> None:
    stream.write(
        _PARAMS.pack(
            int(params.n_classes),
            int(params.n_features),
            int(params.n_samples),
            int(params.n_in_bag_samples),
            int(params.max_depth),
            int(params.n_trees),
            int(params.min_samples_per_node),
            float(params.sample_reduction),
            float(params.resolution),
            float(params.radius),
            int(params.num_scales),
        )
    )


def _write_splitter(stream: BinaryIO, splitter: Splitter, n_features: int) -> None:
    stream.write(_U8.pack(int(splitter.kind)))
    if splitter.kind == SplitterKind.AXIS_ALIGNED:
        stream.write(_AXIS_ALIGNED.pack(int(splitter.feature), float(splitter.threshold)))
        return

    weights = np.asarray(splitter.weights, dtype=np.float32)
    expected = _weight_count(splitter.kind, n_features)
    if weights.size != expected:
        raise ConfigurationError(
            f"{splitter.kind.name.lower()} splitter has {weights.size} weights, "
            f"expected {expected}"
        )
    stream.write(weights.tobytes())
    stream.write(_F32.pack(float(splitter.threshold)))


def _write_tree(stream: BinaryIO, tree: DecisionTree, params: ForestParams) -> None:
    for node in tree.iter_nodes():
        if node.is_leaf:
            hist = np.asarray(node.histogram)
            if hist.shape != (params.n_classes,):
                raise ConfigurationError("leaf histogram length does not match n_classes")
            if hist.min() < 0 or hist.max() > _U32_MAX:
                raise ConfigurationError("leaf histogram counts do not fit in u32")
            stream.write(_U8.pack(NODE_LEAF))
            stream.write(hist.astype(np.uint32).tobytes())
        else:
            stream.write(_U8.pack(NODE_INTERNAL))
            _write_splitter(stream, node.splitter, params.n_features)


def write_forest(stream: BinaryIO, forest: RandomForest) -> None:
    params = forest.params
    if len(forest.trees) != params.n_trees:
        raise ConfigurationError(
            f"forest holds {len(forest.trees)} trees but params declare {params.n_trees}"
        )
    _write_params(stream, params)
    for tree in forest.trees:
        _write_tree(stream, tree, params)


def dumps(forest: RandomForest) -> bytes:
    buffer = io.BytesIO()
    write_forest(buffer, forest)
    return buffer.getvalue()


def save_model(path: str | os.PathLike, forest: RandomForest) -> None:
    with open(path, "wb") as f:
        write_forest(f, forest)
    logger.info("saved %d-tree model to %s", len(forest.trees), path)


# -------------------------
# Decoding
# -------------------------

_READ_CHUNK_BYTES = 1 << 20


def _remaining_bytes(stream: BinaryIO) -> int | None:
    try:
        if not stream.seekable():
            return None
        start = stream.tell()
        end = stream.seek(0, io.SEEK_END)
        stream.seek(start)
    except (AttributeError, OSError):
        return None
    return end - start


class _Reader:
    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream
        self.offset = 0
        self.size = _remaining_bytes(stream)

    def read(self, size: int) -> bytes:
        if self.size is not None and size > self.size - self.offset:
            raise CorruptModelError(
                f"truncated model: wanted {size} bytes at offset {self.offset}, "
                f"only {self.size - self.offset} remain"
            )

        # Sizes are decoded from the stream; read them in bounded chunks.
        chunks = []
        missing = size
        while missing > 0:
            chunk = self.stream.read(min(missing, _READ_CHUNK_BYTES))
            if not chunk:
                break
            chunks.append(chunk)
            missing -= len(chunk)
        if missing > 0:
            raise CorruptModelError(
                f"truncated model: wanted {size} bytes at offset {self.offset}, "
                f"got {size - missing}"
            )
        self.offset += size
        return b"".join(chunks)

    def unpack(self, fmt: struct.Struct) -> tuple:
        return fmt.unpack(self.read(fmt.size))

    def array(self, dtype, count: int) -> np.ndarray:
        dtype = np.dtype(dtype)
        return np.frombuffer(self.read(dtype.itemsize * count), dtype=dtype).copy()

    def at_end(self) -> bool:
        return self.stream.read(1) == b""


def _read_params(reader: _Reader) -> ForestParams:
    fields = reader.unpack(_PARAMS)
    try:
        params = ForestParams(
            n_classes=fields[0],
            n_features=fields[1],
            n_samples=fields[2],
            n_in_bag_samples=fields[3],
            max_depth=fields[4],
            n_trees=fields[5],
            min_samples_per_node=fields[6],
            sample_reduction=fields[7],
            resolution=fields[8],
            radius=fields[9],
            num_scales=fields[10],
        )
        params.validate()
    except ConfigurationError as e:
        raise CorruptModelError(f"invalid params block: {e}") from e
    return params


def _read_splitter(reader: _Reader, params: ForestParams) -> Splitter:
    (raw_kind,) = reader.unpack(_U8)
    try:
        kind = SplitterKind(raw_kind)
    except ValueError:
        raise CorruptModelError(
            f"unknown splitter tag {raw_kind} at offset {reader.offset - 1}"
        ) from None

    if kind == SplitterKind.AXIS_ALIGNED:
        feature, threshold = reader.unpack(_AXIS_ALIGNED)
        if not (0 <= feature < params.n_features):
            raise CorruptModelError(
                f"split feature {feature} out of range [0, {params.n_features})"
            )
        return AxisAlignedSplitter(feature=feature, threshold=np.float32(threshold))

    weights = reader.array(np.float32, _weight_count(kind, params.n_features))
    (threshold,) = reader.unpack(_F32)
    if kind == SplitterKind.LINEAR:
        return LinearSplitter(weights=weights, threshold=np.float32(threshold))
    return QuadraticSplitter(
        n_features=params.n_features,
        weights=weights,
        threshold=np.float32(threshold),
    )


def _read_tree(reader: _Reader, params: ForestParams) -> DecisionTree:
    root = TreeNode(depth=0)
    stack = [root]
    while stack:
        node = stack.pop()
        if node.depth > params.max_depth:
            raise CorruptModelError(
                f"node depth {node.depth} exceeds max_depth {params.max_depth}"
            )

        (tag,) = reader.unpack(_U8)
        if tag == NODE_LEAF:
            hist = reader.array(np.uint32, params.n_classes).astype(np.int64)
            if hist.sum() == 0:
                raise CorruptModelError(f"empty leaf histogram at offset {reader.offset}")
            node.make_leaf(hist)
        elif tag == NODE_INTERNAL:
            node.splitter = _read_splitter(reader, params)
            node.left = TreeNode(depth=node.depth + 1)
            node.right = TreeNode(depth=node.depth + 1)
            stack.append(node.right)
            stack.append(node.left)
        else:
            raise CorruptModelError(f"unknown node tag {tag} at offset {reader.offset - 1}")

    return DecisionTree(root=root, n_classes=params.n_classes)


def read_forest(stream: BinaryIO, expected_n_features: int | None = None) -> RandomForest:
    """Decode a whole forest; raises before returning anything on a bad stream."""
    reader = _Reader(stream)
    params = _read_params(reader)
    if expected_n_features is not None and params.n_features != expected_n_features:
        raise ShapeMismatchError(
            params.n_features, expected_n_features, context="model feature count"
        )

    trees = [_read_tree(reader, params) for _ in range(params.n_trees)]
    if not reader.at_end():
        raise CorruptModelError(f"unexpected trailing data after offset {reader.offset}")

    forest = RandomForest(params=params)
    forest.trees = trees
    return forest


def loads(data: bytes, expected_n_features: int | None = None) -> RandomForest:
    return read_forest(io.BytesIO(data), expected_n_features=expected_n_features)


def load_model(path: str | os.PathLike, expected_n_features: int | None = None) -> RandomForest:
    with open(path, "rb") as f:
        forest = read_forest(f, expected_n_features=expected_n_features)
    logger.info(
        "loaded %d-tree model from %s (%d classes, %d features)",
        forest.params.n_trees,
        path,
        forest.params.n_classes,
        forest.params.n_features,
    )
    return forest
