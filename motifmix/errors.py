"""Exception types raised by the motifmix scoring models and trainers."""


class ConfigurationError(ValueError):
    """Raised when a model or trainer is constructed with inconsistent arguments."""
    pass


class UninitializedModelError(RuntimeError):
    """Raised when parameters are requested from a model that has not been initialized."""
    pass


class UnsupportedOperationError(NotImplementedError):
    """Raised for operations a model or trainer does not provide."""
    pass


class SequenceLengthError(ValueError):
    """Raised when a scored window is shorter than the fixed length of a model."""
    pass


class NumericalDegeneracyError(ArithmeticError):
    """Raised when an estimation step produces non-finite parameters."""
    pass
