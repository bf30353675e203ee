"""Defines the Dirichlet log-normalizing constant and related helpers used by the prior terms."""
from typing import Union, Sequence
from scipy.special import gammaln
import numpy as np


def dirichlet_log_constant(alpha: Union[Sequence[float], np.ndarray]) -> float:
    """Log of the Dirichlet normalizing constant, lgamma(sum(alpha)) - sum(lgamma(alpha)).

    Args:
        alpha (Union[Sequence[float], np.ndarray]): Positive concentration parameters.

    Returns:
        float, 0.0 if any entry of alpha is not positive.

    """
    alpha = np.asarray(alpha, dtype=float)

    if len(alpha) == 0 or np.any(alpha <= 0):
        return 0.0

    return float(gammaln(alpha.sum()) - np.sum(gammaln(alpha)))


def uniform_dirichlet_log_constant(ess: float, num_symbols: int) -> float:
    """Dirichlet log-normalizing constant for num_symbols equal concentrations summing to ess."""
    if ess <= 0 or num_symbols <= 0:
        return 0.0

    return float(gammaln(ess) - num_symbols * gammaln(ess / num_symbols))
