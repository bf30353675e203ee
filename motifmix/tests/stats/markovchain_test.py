import os
os.environ['NUMBA_DISABLE_JIT'] = '1'

from motifmix.stats import *
from motifmix.errors import *
import numpy as np
import pytest
import unittest


def numerical_gradient(f, params, h=1.0e-6):
    rv = np.zeros(len(params))
    for i in range(len(params)):
        p1 = params.copy()
        p2 = params.copy()
        p1[i] += h
        p2[i] -= h
        rv[i] = (f(p1) - f(p2)) / (2 * h)
    return rv


class HomogeneousMarkovModelTestCase(unittest.TestCase):

    def setUp(self) -> None:
        self.p0 = np.asarray([[0.3, 0.7]])
        self.p1 = np.asarray([[0.9, 0.1], [0.2, 0.8]])
        self.x = np.asarray([0, 1, 1, 0, 1])
        self.models = [
            HomogeneousMarkovModel(2, order=1, p_mats=[self.p0, self.p1]),
            HomogeneousMarkovModel(2, order=1, p_mats=[self.p0, self.p1], free_params=False),
            HomogeneousMarkovModel(2, order=1, p_mats=[self.p0, self.p1], ess=2.0, name='bg'),
            HomogeneousMarkovModel(4)
        ]

    def test_log_score(self):
        m = self.models[0]
        assert abs(m.log_score(self.x, 0, 4) - np.log(0.3 * 0.1 * 0.8 * 0.2)) < 1.0e-12
        assert abs(m.log_score(self.x, 1, 3) - np.log(0.7 * 0.8)) < 1.0e-12
        assert abs(m.log_score(self.x, 3) - np.log(0.3 * 0.1)) < 1.0e-12
        assert m.log_score(self.x, 2, 2) == 0.0

        assert abs(self.models[3].log_score(np.asarray([0, 1, 2, 3, 3])) - 5 * np.log(0.25)) < 1.0e-12

    def test_levels(self):
        m = self.models[0]
        assert m.order == 1
        assert m.length == 0
        assert np.allclose(m.level(0), self.p0)
        assert np.allclose(m.level(1), self.p1)
        assert m.is_normalized()
        assert m.log_normalization_constant(10) == 0.0

    def test_parameter_round_trip(self):
        for m in self.models:
            c = HomogeneousMarkovModel(m.num_symbols, order=m.order, free_params=m.free_params)
            c.set_parameters(m.get_parameters())
            assert abs(c.log_score(self.x) - m.log_score(self.x)) < 1.0e-12

    def test_gradient(self):
        for m in self.models[:3]:
            for (s, e) in [(0, 5), (1, 4), (2, 3)]:
                def f(p):
                    c = m.clone()
                    c.set_parameters(p)
                    return c.log_score(self.x, s, e)

                g = SparseGradient()
                ll = m.log_score_and_gradient(self.x, s, e, g)
                assert abs(ll - m.log_score(self.x, s, e)) < 1.0e-12
                analytic = g.to_dense(m.num_parameters())
                assert np.max(np.abs(analytic - numerical_gradient(f, m.get_parameters()))) < 1.0e-6

    def test_prior_gradient(self):
        m = self.models[2]

        def f(p):
            c = m.clone()
            c.set_parameters(p)
            return c.log_prior_term()

        g = np.zeros(m.num_parameters())
        m.add_prior_gradient(g)
        assert np.max(np.abs(g - numerical_gradient(f, m.get_parameters()))) < 1.0e-6

    def test_estimate(self):
        m = HomogeneousMarkovModel(2, order=1)
        m.estimate([(self.x, 0, 5), (self.x, 1, 3)], np.asarray([1.0, 2.0]))

        # level 0 sees x[0] once and x[1] twice
        assert np.allclose(m.level(0), [[1.0 / 3.0, 2.0 / 3.0]])
        # context 0 is followed by 1 twice, context 1 by 1 (weights 1 + 2) and by 0 once
        assert np.allclose(m.level(1), [[0.0, 1.0], [0.25, 0.75]])

        m = HomogeneousMarkovModel(2, order=1, ess=2.0)
        m.estimate([], np.zeros(0))
        assert np.allclose(m.level(1), 0.5)

    def test_exceptions(self):
        with pytest.raises(ConfigurationError) as e:
            HomogeneousMarkovModel(2, order=1, p_mats=[self.p0])
        assert str(e.value) == 'Expected 2 levels of probabilities, got 1.'

        with pytest.raises(ConfigurationError) as e:
            HomogeneousMarkovModel(2, order=1, p_mats=[self.p0, self.p0])
        assert str(e.value) == 'Level 1 must have shape (2, 2), got (1, 2).'
