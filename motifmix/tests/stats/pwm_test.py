import os
os.environ['NUMBA_DISABLE_JIT'] = '1'

from motifmix.stats import *
from motifmix.errors import *
from motifmix.stats.pdist import equal_object
from scipy.special import gammaln
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


def score_gradient_test(model, x, start):
    params = model.get_parameters()

    def f(p):
        m = model.clone()
        m.set_parameters(p)
        return m.log_score(x, start)

    g = SparseGradient()
    ll = model.log_score_and_gradient(x, start, None, g)
    analytic = g.to_dense(model.num_parameters())

    return abs(ll - model.log_score(x, start)) < 1.0e-12 and np.max(np.abs(analytic - numerical_gradient(f, params))) < 1.0e-6


class PositionWeightMatrixTestCase(unittest.TestCase):

    def setUp(self) -> None:
        self.p_mat = np.asarray([[0.2, 0.3, 0.5], [0.6, 0.3, 0.1]])
        self.x = np.asarray([2, 0, 1, 1])
        self.pwms = [
            PositionWeightMatrix(3, p_mat=self.p_mat),
            PositionWeightMatrix(3, p_mat=self.p_mat, free_params=False),
            PositionWeightMatrix(3, p_mat=self.p_mat, ess=3.0, name='pwm'),
            PositionWeightMatrix(3, p_mat=[[1.0, 2.0, 0.5], [0.1, 0.2, 3.0]], free_params=False, normalized=False)
        ]

    def test_log_score(self):
        rv = self.pwms[0].log_score(self.x, 1)
        assert abs(rv - np.log(0.2 * 0.3)) < 1.0e-12

        rv = self.pwms[3].log_score(self.x, 1)
        assert abs(rv - np.log(1.0 * 0.2)) < 1.0e-12

    def test_normalization_constant(self):
        assert self.pwms[0].log_normalization_constant() == 0.0
        assert abs(self.pwms[3].log_normalization_constant() - np.log(3.5 * 3.3)) < 1.0e-12

    def test_num_parameters(self):
        assert self.pwms[0].num_parameters() == 4
        assert self.pwms[1].num_parameters() == 6
        assert self.pwms[3].num_parameters() == 6

    def test_parameter_round_trip(self):
        for pwm in self.pwms:
            m = pwm.clone()
            m.set_parameters(pwm.get_parameters())
            assert abs(m.log_score(self.x, 2) - pwm.log_score(self.x, 2)) < 1.0e-12

    def test_gradient(self):
        for pwm in self.pwms:
            assert score_gradient_test(pwm, self.x, 1)
            assert score_gradient_test(pwm, self.x, 2)

    def test_prior(self):
        pwm = self.pwms[2]
        assert abs(pwm.log_prior_term() - (np.log(self.p_mat).sum() + 2 * gammaln(3.0))) < 1.0e-10
        assert self.pwms[0].log_prior_term() == 0.0

        def f(p):
            m = pwm.clone()
            m.set_parameters(p)
            return m.log_prior_term()

        g = np.zeros(pwm.num_parameters())
        pwm.add_prior_gradient(g)
        assert np.max(np.abs(g - numerical_gradient(f, pwm.get_parameters()))) < 1.0e-6

    def test_estimate(self):
        x = np.asarray([0, 0, 1, 2, 3, 0])

        pwm = PositionWeightMatrix(4, width=3)
        pwm.estimate([(x, 2, 5)], np.asarray([1.0]))
        assert np.all(pwm.consensus() == np.asarray([1, 2, 3]))
        assert abs(pwm.log_score(x, 2)) < 1.0e-12

        pwm = PositionWeightMatrix(4, width=3, ess=4.0)
        pwm.estimate([(x, 2, 5)], np.asarray([1.0]))
        assert abs(np.exp(pwm.log_p_mat[0, 1]) - 0.4) < 1.0e-12
        assert abs(np.exp(pwm.log_p_mat[0, 0]) - 0.2) < 1.0e-12

    def test_modify(self):
        pwm = self.pwms[0].clone()

        assert pwm.modify(1, 0)
        assert pwm.length == 1
        assert np.allclose(np.exp(pwm.log_p_mat[0]), self.p_mat[1])

        assert pwm.modify(-1, 0)
        assert pwm.length == 2
        assert np.allclose(np.exp(pwm.log_p_mat[0]), 1.0 / 3.0)
        assert np.allclose(np.exp(pwm.log_p_mat[1]), self.p_mat[1])

        assert pwm.modify(0, 1)
        assert pwm.length == 3
        assert pwm.num_parameters() == 6

        assert not pwm.modify(3, 0)
        assert pwm.length == 3

    def test_clone(self):
        for pwm in self.pwms:
            assert equal_object(pwm.clone(), pwm)

        pwm = self.pwms[0].clone()
        pwm.shift(1)
        assert not equal_object(pwm, self.pwms[0])

    def test_shift(self):
        pwm = self.pwms[1].clone()
        pwm.shift(1)
        assert np.allclose(np.exp(pwm.log_p_mat), self.p_mat[::-1])

    def test_exceptions(self):
        with pytest.raises(ConfigurationError) as e:
            PositionWeightMatrix(3, width=2, free_params=True, normalized=False)
        assert str(e.value) == 'The free parameterization requires a normalized PositionWeightMatrix.'

        with pytest.raises(UninitializedModelError) as e:
            PositionWeightMatrix(3, width=2).get_parameters()
        assert str(e.value) == 'PositionWeightMatrix parameters requested before initialization.'

        with pytest.raises(SequenceLengthError):
            self.pwms[0].log_score(self.x, 3)

        assert not PositionWeightMatrix(3, width=2).is_initialized()
