class ForestError(ValueError):
    """Base class for errors raised by the forest engine."""


class ConfigurationError(ForestError):
    """Invalid forest parameters, training configuration, or labels."""


class ShapeMismatchError(ForestError):
    """Data dimensions disagree with what the model (or caller) expects."""

    def __init__(self, expected: int, actual: int, context: str = "feature count") -> None:
        self.expected = int(expected)
        self.actual = int(actual)
        super().__init__(f"{context} mismatch: expected {self.expected}, got {self.actual}")


class CorruptModelError(ForestError):
    """Truncated or malformed serialized model."""
