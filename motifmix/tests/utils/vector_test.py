import os
os.environ['NUMBA_DISABLE_JIT'] = '1'

import motifmix.utils.vector as vec
from motifmix.stats.pdist import SparseGradient
from motifmix.utils.special import dirichlet_log_constant, uniform_dirichlet_log_constant
from scipy.special import gammaln
import numpy as np
import unittest


class LogSumTestCase(unittest.TestCase):

    def test_all_neg_inf(self):
        rv = vec.log_sum(np.asarray([-np.inf, -np.inf, -np.inf]))
        assert rv == -np.inf

    def test_large_differences(self):
        rv = vec.log_sum(np.asarray([1000.0, 0.0, -1000.0]))
        assert np.isfinite(rv)
        assert abs(rv - 1000.0) < 1.0e-12

        rv = vec.log_sum(np.asarray([-800.0, -2000.0]))
        assert abs(rv + 800.0) < 1.0e-12

    def test_row_log_sum(self):
        x = np.asarray([[0.0, 0.0], [-np.inf, -np.inf], [np.log(0.25), np.log(0.75)]])
        rv = vec.row_log_sum(x)
        assert abs(rv[0] - np.log(2.0)) < 1.0e-12
        assert rv[1] == -np.inf
        assert abs(rv[2]) < 1.0e-12

    def test_posterior(self):
        p, ls = vec.posterior(np.asarray([np.log(0.2), np.log(0.6)]), log_sum=True)
        assert abs(p.sum() - 1.0) < 1.0e-12
        assert abs(p[0] - 0.25) < 1.0e-12
        assert abs(ls - np.log(0.8)) < 1.0e-12

        p, ls = vec.posterior(np.asarray([-np.inf, -np.inf]), log_sum=True)
        assert np.all(p == 0.5)
        assert ls == -np.inf


class KernelTestCase(unittest.TestCase):

    def test_markov_log_score(self):
        log_p = np.log(np.asarray([[0.3, 0.7], [0.9, 0.1], [0.2, 0.8]]))
        x = vec.as_sequence([0, 1, 1, 0])
        rv = vec.markov_log_score(x, 0, 4, 1, 2, log_p)
        assert abs(rv - np.log(0.3 * 0.1 * 0.8 * 0.2)) < 1.0e-12

        rv = vec.markov_log_score(x, 1, 3, 1, 2, log_p)
        assert abs(rv - np.log(0.7 * 0.8)) < 1.0e-12

    def test_markov_counts(self):
        out = np.zeros((3, 2))
        x = vec.as_sequence([0, 1, 1, 0])
        vec.markov_counts(x, 0, 4, 1, 2, 2.0, out)
        assert np.all(out == np.asarray([[2.0, 0.0], [0.0, 2.0], [2.0, 2.0]]))

    def test_pwm_log_score(self):
        log_p = np.log(np.asarray([[0.5, 0.5], [0.1, 0.9]]))
        rv = vec.pwm_log_score(vec.as_sequence([1, 0, 1]), 1, log_p)
        assert abs(rv - np.log(0.5 * 0.9)) < 1.0e-12


class SparseGradientTestCase(unittest.TestCase):

    def test_duplicates_are_summed(self):
        g = SparseGradient()
        g.add(1, 0.5)
        g.add(1, 0.25)
        g.add_many([0, 2], [1.0, -1.0])
        assert len(g) == 4
        assert np.all(g.to_dense(3) == np.asarray([1.0, 0.75, -1.0]))

    def test_merge(self):
        g = SparseGradient()
        h = SparseGradient()
        h.add_many([0, 1], [1.0, 2.0])
        g.merge(h, offset=2, factor=0.5)
        assert np.all(g.to_dense(4) == np.asarray([0.0, 0.0, 0.5, 1.0]))

        g.clear()
        assert len(g) == 0


def test_dirichlet_log_constant():
    alpha = np.asarray([0.5, 1.5, 2.0])
    assert abs(dirichlet_log_constant(alpha) - (gammaln(4.0) - gammaln(alpha).sum())) < 1.0e-12
    assert dirichlet_log_constant([1.0, 0.0]) == 0.0
    assert abs(uniform_dirichlet_log_constant(4.0, 4) - dirichlet_log_constant([1.0] * 4)) < 1.0e-12
