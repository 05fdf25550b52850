from __future__ import annotations

from dataclasses import dataclass, replace

from errors import ConfigurationError


@dataclass(frozen=True)
class ForestParams:
    # Data-derived: for_training always overwrites these four, including
    # n_in_bag_samples, which follows sample_reduction.
    n_classes: int = 0
    n_features: int = 0
    n_samples: int = 0
    n_in_bag_samples: int = 0
    max_depth: int = 42
    n_trees: int = 100
    min_samples_per_node: int = 5
    sample_reduction: float = 0.0

    # Geometry metadata persisted with the model; not used by the forest itself.
    resolution: float = -1.0
    radius: float = 0.6
    num_scales: int = 5

    def __post_init__(self) -> None:
        for name in (
            "n_classes",
            "n_features",
            "n_samples",
            "n_in_bag_samples",
            "max_depth",
            "n_trees",
            "min_samples_per_node",
        ):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative")
        if not (0.0 <= self.sample_reduction < 1.0):
            raise ConfigurationError("sample_reduction must be in [0, 1)")

    @property
    def bootstrap_with_replacement(self) -> bool:
        return self.sample_reduction == 0.0

    def in_bag_size(self, n_samples: int) -> int:
        if self.bootstrap_with_replacement:
            return int(n_samples)
        return max(1, int(round(n_samples * (1.0 - self.sample_reduction))))

    def for_training(self, n_classes: int, n_features: int, n_samples: int) -> "ForestParams":
        """Copy with the data-derived fields filled in, validated."""
        params = replace(
            self,
            n_classes=int(n_classes),
            n_features=int(n_features),
            n_samples=int(n_samples),
            n_in_bag_samples=self.in_bag_size(n_samples),
        )
        params.validate()
        return params

    def validate(self) -> None:
        if self.n_classes < 2:
            raise ConfigurationError(f"n_classes must be >= 2, got {self.n_classes}")
        if self.n_features < 1:
            raise ConfigurationError(f"n_features must be >= 1, got {self.n_features}")
        if self.max_depth < 1:
            raise ConfigurationError(f"max_depth must be >= 1, got {self.max_depth}")
        if self.n_trees < 1:
            raise ConfigurationError(f"n_trees must be >= 1, got {self.n_trees}")
        if self.n_in_bag_samples < 1:
            raise ConfigurationError(
                f"n_in_bag_samples must be >= 1, got {self.n_in_bag_samples}"
            )
