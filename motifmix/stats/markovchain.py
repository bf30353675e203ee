"""Create, score and estimate homogeneous Markov models of order k, used as background models of sequence windows.

A homogeneous Markov model of order k over num_symbols symbols holds one conditional distribution per context of
length d for every level d = 0, ..., k. The levels below k score the first k positions of a window, so a window
[s, e) is scored as

    log P(x[s:e]) = sum_{p=s}^{e-1} log P_d(x[p] | x[p-d:p]),  d = min(p - s, k).

All rows are stacked in a single (R, num_symbols) array of log-potentials, with the rows of level d starting at
sum_{j<d} num_symbols**j. Every row is normalized.

"""
import numpy as np
from numpy.random import RandomState
from typing import Optional, Sequence, Tuple, List, Union

import motifmix.utils.vector as vec
from motifmix.errors import ConfigurationError
from motifmix.stats.pdist import SequenceScore, SparseGradient
from motifmix.utils.special import uniform_dirichlet_log_constant


class HomogeneousMarkovModel(SequenceScore):
    """HomogeneousMarkovModel object for variable-length windows.

    Attributes:
        num_symbols (int): Alphabet size.
        order (int): Markov order.
        theta (np.ndarray): (num_rows, num_symbols) log-potentials of all levels.
        log_p_mat (np.ndarray): Row-normalized theta.
        row_ess (np.ndarray): Equivalent sample size of each row, ess / num_symbols**d for rows of level d.
        ess (float): Equivalent sample size of every level.
        free_params (bool): True if the last symbol of every row is pinned to 0.
        name (Optional[str]): Name of the object.

    """

    def __init__(self, num_symbols: int, order: int = 0, p_mats: Optional[Sequence[np.ndarray]] = None,
                 ess: float = 0.0, free_params: bool = True, name: Optional[str] = None) -> None:
        """HomogeneousMarkovModel object.

        Args:
            num_symbols (int): Alphabet size.
            order (int): Markov order, non-negative.
            p_mats (Optional[Sequence[np.ndarray]]): Conditional probabilities of each level d, each of shape
                (num_symbols**d, num_symbols). Uniform if None.
            ess (float): Equivalent sample size.
            free_params (bool): Pin the last symbol of every row to 0.
            name (Optional[str]): Name of the object.

        """
        if num_symbols < 1:
            raise ConfigurationError('HomogeneousMarkovModel requires at least one symbol, got %d.' % num_symbols)
        if order < 0:
            raise ConfigurationError('HomogeneousMarkovModel order must be non-negative, got %d.' % order)
        if ess < 0:
            raise ConfigurationError('HomogeneousMarkovModel ess must be non-negative, got %f.' % ess)

        self.num_symbols = num_symbols
        self.order = order
        self.length = 0
        self.ess = float(ess)
        self.free_params = free_params
        self.name = name

        level_rows = [num_symbols ** d for d in range(order + 1)]
        self.num_rows = sum(level_rows)
        self.row_ess = np.concatenate([np.full(n, self.ess / n) for n in level_rows])

        if p_mats is None:
            theta = np.zeros((self.num_rows, num_symbols), dtype=float)
        else:
            if len(p_mats) != order + 1:
                raise ConfigurationError('Expected %d levels of probabilities, got %d.' % (order + 1, len(p_mats)))
            mats = []
            for d, p_mat in enumerate(p_mats):
                p_mat = np.asarray(p_mat, dtype=float)
                if p_mat.shape != (level_rows[d], num_symbols):
                    raise ConfigurationError('Level %d must have shape (%d, %d), got %s.'
                                             % (d, level_rows[d], num_symbols, str(p_mat.shape)))
                mats.append(p_mat)
            with np.errstate(divide='ignore'):
                theta = np.log(np.concatenate(mats, axis=0))

        self._set_theta(theta)

    def __str__(self) -> str:
        return 'HomogeneousMarkovModel(%d, order=%d, ess=%s, free_params=%s, name=%s)' % (
            self.num_symbols, self.order, repr(self.ess), repr(self.free_params), repr(self.name))

    def _set_theta(self, theta: np.ndarray) -> None:
        self.theta = theta
        self.log_p_mat = theta - vec.row_log_sum(theta)[:, None]

    def _stride(self) -> int:
        return self.num_symbols - 1 if self.free_params else self.num_symbols

    def level(self, d: int) -> np.ndarray:
        """Conditional probabilities of contexts of length d."""
        row0 = sum(self.num_symbols ** j for j in range(d))
        return np.exp(self.log_p_mat[row0:row0 + self.num_symbols ** d, :])

    def num_parameters(self) -> int:
        return self.num_rows * self._stride()

    def get_parameters(self) -> np.ndarray:
        if self.free_params:
            return (self.theta[:, :-1] - self.theta[:, -1:]).flatten()
        else:
            return self.theta.flatten()

    def set_parameters(self, params: np.ndarray, offset: int = 0) -> int:
        n = self.num_parameters()
        stride = self._stride()
        theta = np.zeros((self.num_rows, self.num_symbols), dtype=float)
        theta[:, :stride] = np.reshape(params[offset:offset + n], (self.num_rows, stride))
        self._set_theta(theta)
        return offset + n

    def log_score(self, x: np.ndarray, start: int = 0, end: Optional[int] = None) -> float:
        x = vec.as_sequence(x)
        if end is None:
            end = len(x)
        if end <= start:
            return 0.0
        return vec.markov_log_score(x, start, end, self.order, self.num_symbols, self.log_p_mat)

    def _counts(self, x: np.ndarray, start: int, end: int, weight: float, out: np.ndarray) -> None:
        if end > start:
            vec.markov_counts(x, start, end, self.order, self.num_symbols, float(weight), out)

    def log_score_and_gradient(self, x: np.ndarray, start: int, end: Optional[int], grad: SparseGradient) -> float:
        x = vec.as_sequence(x)
        if end is None:
            end = len(x)
        rv = self.log_score(x, start, end)

        if end > start:
            counts = np.zeros((self.num_rows, self.num_symbols), dtype=float)
            self._counts(x, start, end, 1.0, counts)
            rows = np.flatnonzero(counts.sum(axis=1))
            stride = self._stride()
            g = counts[rows] - counts[rows].sum(axis=1, keepdims=True) * np.exp(self.log_p_mat[rows])
            idx = rows[:, None] * stride + np.arange(stride)[None, :]
            grad.add_many(idx.flatten(), g[:, :stride].flatten())

        return rv

    def log_prior_term(self) -> float:
        if self.ess == 0:
            return 0.0

        alpha = self.row_ess / self.num_symbols
        rv = np.dot(alpha, self.theta.sum(axis=1)) - np.dot(self.row_ess, vec.row_log_sum(self.theta))
        rv += sum(uniform_dirichlet_log_constant(u, self.num_symbols) for u in self.row_ess)
        return float(rv)

    def add_prior_gradient(self, grad: np.ndarray, offset: int = 0) -> None:
        if self.ess == 0:
            return

        stride = self._stride()
        g = (self.row_ess / self.num_symbols)[:, None] - self.row_ess[:, None] * np.exp(self.log_p_mat)
        grad[offset:offset + self.num_parameters()] += g[:, :stride].flatten()

    def estimate(self, data: Sequence[Tuple[np.ndarray, int, int]], weights: Optional[np.ndarray] = None) -> None:
        """Plug-in MAP estimate from weighted (x, start, end) segments."""
        counts = np.zeros((self.num_rows, self.num_symbols), dtype=float)

        if weights is None:
            weights = np.ones(len(data))

        for (x, start, end), w in zip(data, weights):
            if w == 0:
                continue
            x = vec.as_sequence(x)
            self._counts(x, start, len(x) if end is None else end, w, counts)

        counts += (self.row_ess / self.num_symbols)[:, None]
        totals = counts.sum(axis=1, keepdims=True)
        empty = (totals[:, 0] == 0)
        counts[empty, :] = 1.0
        totals[empty, :] = float(self.num_symbols)

        with np.errstate(divide='ignore'):
            self._set_theta(np.log(counts / totals))

    def initialize_randomly(self, rng: RandomState) -> None:
        alpha = np.where(self.row_ess > 0, self.row_ess / self.num_symbols, 1.0)
        p_mat = np.asarray([rng.dirichlet(np.full(self.num_symbols, a)) for a in alpha])
        with np.errstate(divide='ignore'):
            self._set_theta(np.log(p_mat))
