"""Duration priors over the start offset of a motif occurrence.

UniformDuration assigns equal mass to every offset of [min_offset, max_offset]. SkewNormalLikeDuration discretizes a
skew-normal density over the same domain,

    log P(o) = -0.5*z(o)^2 + log Phi(skew*z(o)) - log Z,  z(o) = sqrt(precision)*(o - mean),

where Z sums the unnormalized mass over the domain. Its parameters are (mean, log(precision), skew), each of which
can be excluded from training.

"""
import math
import numpy as np
from numpy.random import RandomState
from scipy.special import log_ndtr
from typing import Optional, Sequence, Tuple

import motifmix.utils.vector as vec
from motifmix.errors import ConfigurationError
from motifmix.stats.pdist import DurationPrior, SparseGradient


class UniformDuration(DurationPrior):

    def __init__(self, min_offset: int, max_offset: int, name: Optional[str] = None) -> None:
        if min_offset < 0 or max_offset < min_offset:
            raise ConfigurationError('UniformDuration requires 0 <= min_offset <= max_offset, got [%d, %d].'
                                     % (min_offset, max_offset))
        self.min_offset = min_offset
        self.max_offset = max_offset
        self.name = name

    def __str__(self) -> str:
        return 'UniformDuration(%d, %d, name=%s)' % (self.min_offset, self.max_offset, repr(self.name))

    def num_parameters(self) -> int:
        return 0

    def get_parameters(self) -> np.ndarray:
        return np.zeros(0, dtype=float)

    def set_parameters(self, params: np.ndarray, offset: int = 0) -> int:
        return offset

    def log_probability(self, offset: int) -> float:
        if offset < self.min_offset or offset > self.max_offset:
            return -np.inf
        return -math.log(self.domain_size())

    def log_probability_and_gradient(self, offset: int, grad: SparseGradient) -> float:
        return self.log_probability(offset)

    def resize(self, delta_left: int, delta_right: int) -> bool:
        lo = self.min_offset + delta_left
        hi = self.max_offset + delta_right
        if lo < 0 or hi < lo:
            return False
        self.min_offset, self.max_offset = lo, hi
        return True


class SkewNormalLikeDuration(DurationPrior):
    """SkewNormalLikeDuration object.

    Attributes:
        min_offset (int): Smallest admissible offset.
        max_offset (int): Largest admissible offset.
        mean (float): Location of the density.
        precision (float): Inverse squared scale.
        skew (float): Skewness, 0 for a discretized normal.
        train (Tuple[bool, bool, bool]): Trained flags of (mean, precision, skew).
        mean_prior (Optional[Tuple[float, float]]): Gaussian prior (mean, precision) on the mean.
        precision_prior (Optional[Tuple[float, float]]): Gamma prior (shape, rate) on the precision.
        skew_prior_precision (float): Precision of a zero-mean Gaussian prior on the skew, 0 for none.
        log_p (np.ndarray): Log-probabilities of the offsets of the domain.

    """

    def __init__(self, min_offset: int, max_offset: int, mean: Optional[float] = None, precision: float = 1.0,
                 skew: float = 0.0, train_mean: bool = True, train_precision: bool = True, train_skew: bool = True,
                 mean_prior: Optional[Tuple[float, float]] = None,
                 precision_prior: Optional[Tuple[float, float]] = None,
                 skew_prior_precision: float = 0.0, name: Optional[str] = None) -> None:
        if min_offset < 0 or max_offset < min_offset:
            raise ConfigurationError('SkewNormalLikeDuration requires 0 <= min_offset <= max_offset, got [%d, %d].'
                                     % (min_offset, max_offset))
        if precision <= 0:
            raise ConfigurationError('SkewNormalLikeDuration precision must be positive, got %f.' % precision)
        if precision_prior is not None and (precision_prior[0] <= 0 or precision_prior[1] <= 0):
            raise ConfigurationError('Gamma prior on the precision needs positive shape and rate.')

        self.min_offset = min_offset
        self.max_offset = max_offset
        self.mean = 0.5 * (min_offset + max_offset) if mean is None else float(mean)
        self.precision = float(precision)
        self.skew = float(skew)
        self.train = (train_mean, train_precision, train_skew)
        self.mean_prior = mean_prior
        self.precision_prior = precision_prior
        self.skew_prior_precision = float(skew_prior_precision)
        self.name = name
        self._update()

    def __str__(self) -> str:
        return 'SkewNormalLikeDuration(%d, %d, mean=%s, precision=%s, skew=%s, name=%s)' % (
            self.min_offset, self.max_offset, repr(self.mean), repr(self.precision), repr(self.skew),
            repr(self.name))

    def _terms(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        o = np.arange(self.min_offset, self.max_offset + 1, dtype=float)
        sd = math.sqrt(self.precision)
        z = sd * (o - self.mean)
        lu = -0.5 * z * z + log_ndtr(self.skew * z)
        # phi(s*z)/Phi(s*z)
        r = np.exp(-0.5 * (self.skew * z) ** 2 - 0.5 * math.log(2 * math.pi) - log_ndtr(self.skew * z))
        return z, lu, r

    def _update(self) -> None:
        _, lu, _ = self._terms()
        self.log_p = lu - vec.log_sum(lu)

    def _raw_gradients(self) -> np.ndarray:
        """(domain_size, 3) derivatives of the unnormalized log-mass with respect to (mean, log precision, skew)."""
        z, _, r = self._terms()
        sd = math.sqrt(self.precision)
        dz = -z + self.skew * r
        return np.stack([-dz * sd, 0.5 * z * dz, z * r], axis=1)

    def num_parameters(self) -> int:
        return int(sum(self.train))

    def get_parameters(self) -> np.ndarray:
        rv = np.asarray([self.mean, math.log(self.precision), self.skew])
        return rv[np.asarray(self.train, dtype=bool)]

    def set_parameters(self, params: np.ndarray, offset: int = 0) -> int:
        if self.train[0]:
            self.mean = float(params[offset])
            offset += 1
        if self.train[1]:
            self.precision = math.exp(params[offset])
            offset += 1
        if self.train[2]:
            self.skew = float(params[offset])
            offset += 1
        self._update()
        return offset

    def log_probability(self, offset: int) -> float:
        if offset < self.min_offset or offset > self.max_offset:
            return -np.inf
        return float(self.log_p[offset - self.min_offset])

    def log_probability_and_gradient(self, offset: int, grad: SparseGradient) -> float:
        rv = self.log_probability(offset)
        if rv == -np.inf:
            return rv

        g = self._raw_gradients()
        g = g[offset - self.min_offset] - np.dot(np.exp(self.log_p), g)
        grad.add_many(range(self.num_parameters()), g[np.asarray(self.train, dtype=bool)])
        return rv

    def log_prior_term(self) -> float:
        rv = 0.0
        if self.mean_prior is not None:
            m0, t0 = self.mean_prior
            rv += 0.5 * math.log(t0 / (2 * math.pi)) - 0.5 * t0 * (self.mean - m0) ** 2
        if self.precision_prior is not None:
            a, b = self.precision_prior
            # density of log(precision), Jacobian included
            rv += a * math.log(b) - math.lgamma(a) + a * math.log(self.precision) - b * self.precision
        if self.skew_prior_precision > 0:
            t = self.skew_prior_precision
            rv += 0.5 * math.log(t / (2 * math.pi)) - 0.5 * t * self.skew ** 2
        return rv

    def add_prior_gradient(self, grad: np.ndarray, offset: int = 0) -> None:
        g = np.zeros(3)
        if self.mean_prior is not None:
            g[0] = -self.mean_prior[1] * (self.mean - self.mean_prior[0])
        if self.precision_prior is not None:
            g[1] = self.precision_prior[0] - self.precision_prior[1] * self.precision
        if self.skew_prior_precision > 0:
            g[2] = -self.skew_prior_precision * self.skew
        g = g[np.asarray(self.train, dtype=bool)]
        grad[offset:offset + len(g)] += g

    def resize(self, delta_left: int, delta_right: int) -> bool:
        lo = self.min_offset + delta_left
        hi = self.max_offset + delta_right
        if lo < 0 or hi < lo:
            return False
        self.min_offset, self.max_offset = lo, hi
        self._update()
        return True

    def estimate(self, data: Sequence[int], weights: Optional[np.ndarray] = None) -> None:
        """Moment estimate of mean and precision from weighted offsets, shrunk towards the priors.

        The skew has no closed-form estimate and is left unchanged.

        """
        o = np.asarray(data, dtype=float)
        w = np.ones(len(o)) if weights is None else np.asarray(weights, dtype=float)
        n = w.sum()

        if n <= 0:
            return

        if self.train[0]:
            m = np.dot(w, o) / n
            if self.mean_prior is not None:
                m0, t0 = self.mean_prior
                m = (n * m + t0 * m0) / (n + t0)
            self.mean = float(m)

        if self.train[1]:
            ss = float(np.dot(w, (o - self.mean) ** 2))
            if self.precision_prior is not None:
                a, b = self.precision_prior
                prec = (0.5 * n + a - 1.0) / (0.5 * ss + b)
            else:
                prec = n / max(ss, n / 12.0)
            if prec > 0 and np.isfinite(prec):
                self.precision = float(prec)

        self._update()
