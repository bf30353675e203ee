"""Defines abstract classes for ParameterizedScore, SequenceScore and DurationPrior, and the SparseGradient
scratch accumulator shared by the scoring models of motifmix.stats.

All sequence positions are half-open ranges [start, end) over one-dimensional integer arrays of symbol indices.

"""
import copy
import numpy as np
from abc import abstractmethod
from numpy.random import RandomState
from typing import Optional, Any, Sequence, Tuple, Iterator, Union

UNKNOWN = -1


def equal_object(x, other):
    if isinstance(other, type(x)):
        other_vars = vars(other)
        self_vars = vars(x)

        for k, v in self_vars.items():
            ov = other_vars.get(k)
            if isinstance(ov, float) and np.isnan(ov):
                if isinstance(v, float) and np.isnan(v):
                    continue
                else:
                    return False
            if isinstance(v, np.ndarray) or isinstance(ov, np.ndarray):
                if not isinstance(v, np.ndarray) or not isinstance(ov, np.ndarray):
                    return False
                if v.shape != ov.shape or not np.array_equal(v, ov):
                    return False
            elif isinstance(v, list):
                if not isinstance(ov, list) or len(v) != len(ov):
                    return False
                if not all(equal_object(a, b) if hasattr(a, '__dict__') else np.all(a == b) for a, b in zip(v, ov)):
                    return False
            elif hasattr(v, '__dict__') and not isinstance(v, type):
                if not equal_object(v, ov):
                    return False
            elif not np.all(ov == v):
                return False

        return True

    else:
        return False


class SparseGradient(object):
    """Accumulates (index, value) pairs of a gradient.

    A SparseGradient is scratch space owned by a single call. Repeated indices are summed when the gradient is
    densified.

    Attributes:
        indices (List[int]): Parameter indices.
        values (List[float]): Gradient values aligned with indices.

    """

    def __init__(self) -> None:
        self.indices = []
        self.values = []

    def __len__(self) -> int:
        return len(self.indices)

    def __str__(self) -> str:
        return 'SparseGradient(%s, %s)' % (repr(self.indices), repr(self.values))

    def add(self, index: int, value: float) -> None:
        self.indices.append(int(index))
        self.values.append(float(value))

    def add_many(self, indices: Union[Sequence[int], np.ndarray], values: Union[Sequence[float], np.ndarray]) -> None:
        self.indices.extend(int(u) for u in indices)
        self.values.extend(float(u) for u in values)

    def merge(self, other: 'SparseGradient', offset: int = 0, factor: float = 1.0) -> None:
        """Append the entries of other, shifted by offset and scaled by factor."""
        self.indices.extend(i + offset for i in other.indices)
        self.values.extend(v * factor for v in other.values)

    def clear(self) -> None:
        self.indices = []
        self.values = []

    def to_dense(self, size: int) -> np.ndarray:
        rv = np.zeros(size, dtype=float)
        if len(self.indices) > 0:
            np.add.at(rv, np.asarray(self.indices, dtype=int), np.asarray(self.values, dtype=float))
        return rv


class ParameterizedScore(object):
    """Defines the ParameterizedScore abstract class.

    A ParameterizedScore exposes a flat real-valued parameter vector together with its normalization constant and a
    log prior term. Concrete scores are SequenceScore (scores of sequence windows) and DurationPrior (distributions
    over start offsets).

    Attributes:
        ess (float): Equivalent sample size of the prior.
        name (Optional[str]): Name of the object.

    """

    ess = 0.0
    name = None

    def __repr__(self) -> str:
        return self.__str__()

    @abstractmethod
    def num_parameters(self) -> int:
        """Number of free parameters, or UNKNOWN if not yet resolved."""
        ...

    @abstractmethod
    def get_parameters(self) -> np.ndarray:
        ...

    @abstractmethod
    def set_parameters(self, params: np.ndarray, offset: int = 0) -> int:
        """Read num_parameters() values from params starting at offset.

        Returns:
            int, the offset just past the values consumed.

        """
        ...

    def log_normalization_constant(self, length: Optional[int] = None) -> float:
        return 0.0

    def log_prior_term(self) -> float:
        return 0.0

    def add_prior_gradient(self, grad: np.ndarray, offset: int = 0) -> None:
        pass

    def is_normalized(self) -> bool:
        return True

    def is_initialized(self) -> bool:
        return True

    def clone(self) -> 'ParameterizedScore':
        return copy.deepcopy(self)

    def initialize_randomly(self, rng: RandomState) -> None:
        pass

    def initialize_from_data(self, data: Sequence[Any], weights: Optional[np.ndarray], rng: RandomState) -> None:
        self.estimate(data, weights)

    @abstractmethod
    def estimate(self, data: Sequence[Any], weights: Optional[np.ndarray] = None) -> None:
        ...


class SequenceScore(ParameterizedScore):
    """Defines the SequenceScore abstract class for scores of sequence windows.

    Attributes:
        num_symbols (int): Alphabet size.
        length (int): Fixed window length, 0 for variable-length scores.

    """

    num_symbols = 0
    length = 0

    @abstractmethod
    def log_score(self, x: np.ndarray, start: int = 0, end: Optional[int] = None) -> float:
        """Log-score of the window [start, end) of x.

        Fixed-length scores use [start, start + length) when end is None.

        """
        ...

    @abstractmethod
    def log_score_and_gradient(self, x: np.ndarray, start: int, end: Optional[int], grad: SparseGradient) -> float:
        """Log-score of the window [start, end) of x. The gradient with respect to get_parameters() is added to
        grad."""
        ...


class DurationPrior(ParameterizedScore):
    """Defines the DurationPrior abstract class, a distribution over integer offsets in [min_offset, max_offset].

    The prior can be enumerated either through the reset()/next()/current_offset() state machine or through the
    positions() generator.

    Attributes:
        min_offset (int): Smallest admissible offset.
        max_offset (int): Largest admissible offset.

    """

    min_offset = 0
    max_offset = 0

    def domain_size(self) -> int:
        return self.max_offset - self.min_offset + 1

    def reset(self) -> None:
        self._current = self.min_offset

    def next(self) -> bool:
        """Advance to the next offset. Returns False once the domain is exhausted."""
        self._current = self.current_offset() + 1
        return self._current <= self.max_offset

    def current_offset(self) -> int:
        return getattr(self, '_current', self.min_offset)

    def positions(self) -> Iterator[Tuple[int, float]]:
        """Yields (offset, log-probability) pairs over the domain."""
        self.reset()
        while True:
            o = self.current_offset()
            yield o, self.log_probability(o)
            if not self.next():
                break

    @abstractmethod
    def log_probability(self, offset: int) -> float:
        ...

    @abstractmethod
    def log_probability_and_gradient(self, offset: int, grad: SparseGradient) -> float:
        ...

    @abstractmethod
    def resize(self, delta_left: int, delta_right: int) -> bool:
        """Move the domain bounds by delta_left and delta_right. Returns False if the domain would become empty."""
        ...

    def estimate(self, data: Sequence[int], weights: Optional[np.ndarray] = None) -> None:
        pass
