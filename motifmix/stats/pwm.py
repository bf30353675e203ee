"""Create, score and estimate position weight matrices (fixed-width, position-specific categorical motif models).

The PositionWeightMatrix holds a (width, num_symbols) array theta. If the matrix is normalized, the log-probability
of symbol a at motif position j is theta[j, a] - logsumexp(theta[j, :]). Otherwise theta holds raw log-potentials and
the log-normalization constant sum_j logsumexp(theta[j, :]) is reported separately.

The free parameterization pins theta[j, num_symbols-1] to 0, leaving num_symbols-1 parameters per position.

"""
import numpy as np
from numpy.random import RandomState
from typing import Optional, Sequence, Tuple, Union

import motifmix.utils.vector as vec
from motifmix.errors import ConfigurationError, UninitializedModelError, SequenceLengthError
from motifmix.stats.pdist import SequenceScore, SparseGradient
from motifmix.utils.special import uniform_dirichlet_log_constant


class PositionWeightMatrix(SequenceScore):
    """PositionWeightMatrix object for motifs of a fixed width.

    Attributes:
        num_symbols (int): Alphabet size.
        length (int): Width of the motif.
        theta (Optional[np.ndarray]): (length, num_symbols) log-potentials, None until initialized.
        log_p_mat (Optional[np.ndarray]): Position-wise log-probabilities (or log-potentials if not normalized).
        ess (float): Equivalent sample size of the Dirichlet prior of each position.
        free_params (bool): True if the last symbol of every position is pinned to 0.
        normalized (bool): True if every position is normalized.
        name (Optional[str]): Name of the object.

    """

    def __init__(self, num_symbols: int, width: Optional[int] = None, p_mat: Optional[np.ndarray] = None,
                 ess: float = 0.0, free_params: bool = True, normalized: bool = True,
                 name: Optional[str] = None) -> None:
        """PositionWeightMatrix object.

        Args:
            num_symbols (int): Alphabet size.
            width (Optional[int]): Motif width, taken from p_mat if None.
            p_mat (Optional[np.ndarray]): (width, num_symbols) probabilities (or potentials if not normalized).
            ess (float): Equivalent sample size, must be non-negative.
            free_params (bool): Pin the last symbol of every position to 0.
            normalized (bool): Normalize every position.
            name (Optional[str]): Name of the object.

        """
        if num_symbols < 1:
            raise ConfigurationError('PositionWeightMatrix requires at least one symbol, got %d.' % num_symbols)
        if ess < 0:
            raise ConfigurationError('PositionWeightMatrix ess must be non-negative, got %f.' % ess)
        if free_params and not normalized:
            raise ConfigurationError('The free parameterization requires a normalized PositionWeightMatrix.')

        if p_mat is not None:
            p_mat = np.asarray(p_mat, dtype=float)
            if p_mat.ndim != 2 or p_mat.shape[1] != num_symbols:
                raise ConfigurationError('p_mat must have shape (width, %d), got %s.' % (num_symbols, str(p_mat.shape)))
            if width is not None and width != p_mat.shape[0]:
                raise ConfigurationError('p_mat has width %d, expected %d.' % (p_mat.shape[0], width))
            width = p_mat.shape[0]

        if width is None or width < 1:
            raise ConfigurationError('PositionWeightMatrix requires a positive width.')

        self.num_symbols = num_symbols
        self.length = width
        self.ess = float(ess)
        self.free_params = free_params
        self.normalized = normalized
        self.name = name
        self.theta = None
        self.log_p_mat = None

        if p_mat is not None:
            with np.errstate(divide='ignore'):
                self._set_theta(np.log(p_mat))

    def __str__(self) -> str:
        s1 = repr(None if self.theta is None else np.exp(self.log_p_mat).tolist())
        return 'PositionWeightMatrix(%d, width=%d, p_mat=%s, ess=%s, free_params=%s, normalized=%s, name=%s)' % (
            self.num_symbols, self.length, s1, repr(self.ess), repr(self.free_params), repr(self.normalized),
            repr(self.name))

    def _set_theta(self, theta: np.ndarray) -> None:
        self.theta = theta
        if self.normalized:
            self.log_p_mat = theta - vec.row_log_sum(theta)[:, None]
        else:
            self.log_p_mat = theta.copy()

    def _stride(self) -> int:
        return self.num_symbols - 1 if self.free_params else self.num_symbols

    def is_normalized(self) -> bool:
        return self.normalized

    def is_initialized(self) -> bool:
        return self.theta is not None

    def num_parameters(self) -> int:
        return self.length * self._stride()

    def get_parameters(self) -> np.ndarray:
        if self.theta is None:
            raise UninitializedModelError('PositionWeightMatrix parameters requested before initialization.')

        if self.free_params:
            return (self.theta[:, :-1] - self.theta[:, -1:]).flatten()
        else:
            return self.theta.flatten()

    def set_parameters(self, params: np.ndarray, offset: int = 0) -> int:
        n = self.num_parameters()
        stride = self._stride()
        theta = np.zeros((self.length, self.num_symbols), dtype=float)
        theta[:, :stride] = np.reshape(params[offset:offset + n], (self.length, stride))
        self._set_theta(theta)
        return offset + n

    def log_normalization_constant(self, length: Optional[int] = None) -> float:
        if self.normalized:
            return 0.0
        if self.theta is None:
            raise UninitializedModelError('PositionWeightMatrix normalization requested before initialization.')
        return float(vec.row_log_sum(self.theta).sum())

    def log_score(self, x: np.ndarray, start: int = 0, end: Optional[int] = None) -> float:
        x = vec.as_sequence(x)
        if start + self.length > len(x):
            raise SequenceLengthError('Window at %d of length %d exceeds sequence of length %d.'
                                      % (start, self.length, len(x)))
        return vec.pwm_log_score(x, start, self.log_p_mat)

    def log_score_and_gradient(self, x: np.ndarray, start: int, end: Optional[int], grad: SparseGradient) -> float:
        x = vec.as_sequence(x)
        rv = self.log_score(x, start, end)
        stride = self._stride()

        for j in range(self.length):
            s = x[start + j]
            if s < stride:
                grad.add(j * stride + s, 1.0)
            if self.normalized:
                grad.add_many(range(j * stride, (j + 1) * stride), -np.exp(self.log_p_mat[j, :stride]))

        return rv

    def log_prior_term(self) -> float:
        if self.ess == 0 or self.theta is None:
            return 0.0

        alpha = self.ess / self.num_symbols
        rv = alpha * self.theta.sum() - self.ess * vec.row_log_sum(self.theta).sum()
        return float(rv + self.length * uniform_dirichlet_log_constant(self.ess, self.num_symbols))

    def add_prior_gradient(self, grad: np.ndarray, offset: int = 0) -> None:
        if self.ess == 0 or self.theta is None:
            return

        stride = self._stride()
        p = np.exp(self.theta - vec.row_log_sum(self.theta)[:, None])
        g = self.ess / self.num_symbols - self.ess * p
        grad[offset:offset + self.num_parameters()] += g[:, :stride].flatten()

    def estimate(self, data: Sequence[Tuple[np.ndarray, int, int]], weights: Optional[np.ndarray] = None) -> None:
        """Plug-in MAP estimate from weighted windows.

        Args:
            data: Sequence of (x, start, end) windows. Only [start, start + width) is used.
            weights: Weight of each window, all ones if None.

        """
        counts = np.zeros((self.length, self.num_symbols), dtype=float)
        cols = np.arange(self.length)

        if weights is None:
            weights = np.ones(len(data))

        for (x, start, _), w in zip(data, weights):
            if w == 0:
                continue
            counts[cols, vec.as_sequence(x)[start:start + self.length]] += w

        counts += self.ess / self.num_symbols
        totals = counts.sum(axis=1, keepdims=True)
        empty = (totals[:, 0] == 0)
        counts[empty, :] = 1.0
        totals[empty, :] = float(self.num_symbols)

        with np.errstate(divide='ignore'):
            self._set_theta(np.log(counts / totals))

    def initialize_randomly(self, rng: RandomState) -> None:
        alpha = self.ess / self.num_symbols if self.ess > 0 else 1.0
        p_mat = rng.dirichlet(np.ones(self.num_symbols) * alpha, size=self.length)
        with np.errstate(divide='ignore'):
            self._set_theta(np.log(p_mat))

    def modify(self, offset_left: int, offset_right: int) -> bool:
        """Resize the matrix to width - offset_left + offset_right.

        A positive offset_left drops columns on the left and a negative one prepends uniform columns. A positive
        offset_right appends uniform columns and a negative one drops columns on the right.

        Returns:
            bool, False if the new width would not be positive.

        """
        new_width = self.length - offset_left + offset_right
        if new_width < 1 or max(offset_left, 0) + max(-offset_right, 0) >= self.length:
            return False

        old = self.theta
        self.length = new_width

        if old is not None:
            keep = old[max(offset_left, 0):old.shape[0] - max(-offset_right, 0), :]
            left = np.zeros((max(-offset_left, 0), self.num_symbols))
            right = np.zeros((max(offset_right, 0), self.num_symbols))
            self._set_theta(np.concatenate([left, keep, right], axis=0))

        return True

    def shift(self, k: int) -> None:
        """Circularly shift the motif columns by k positions."""
        if self.theta is not None:
            self._set_theta(np.roll(self.theta, k, axis=0))

    def consensus(self) -> np.ndarray:
        return np.argmax(self.log_p_mat, axis=1)
