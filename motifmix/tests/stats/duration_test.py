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


class UniformDurationTestCase(unittest.TestCase):

    def test_positions(self):
        d = UniformDuration(2, 5)
        rv = list(d.positions())
        assert [u[0] for u in rv] == [2, 3, 4, 5]
        assert np.allclose([u[1] for u in rv], -np.log(4.0))
        assert d.domain_size() == 4
        assert d.log_probability(6) == -np.inf

        # the generator is restartable
        assert len(list(d.positions())) == 4

    def test_state_machine(self):
        d = UniformDuration(0, 2)
        d.reset()
        visited = [d.current_offset()]
        while d.next():
            visited.append(d.current_offset())
        assert visited == [0, 1, 2]

    def test_resize(self):
        d = UniformDuration(0, 4)
        assert d.resize(0, -2)
        assert (d.min_offset, d.max_offset) == (0, 2)
        assert not d.resize(0, -3)
        assert (d.min_offset, d.max_offset) == (0, 2)
        assert d.num_parameters() == 0

    def test_exceptions(self):
        with pytest.raises(ConfigurationError) as e:
            UniformDuration(3, 2)
        assert str(e.value) == 'UniformDuration requires 0 <= min_offset <= max_offset, got [3, 2].'


class SkewNormalLikeDurationTestCase(unittest.TestCase):

    def setUp(self) -> None:
        self.durations = [
            SkewNormalLikeDuration(0, 8, mean=3.0, precision=0.5, skew=1.5),
            SkewNormalLikeDuration(0, 8, mean=3.0, precision=0.5, skew=0.0, train_skew=False),
            SkewNormalLikeDuration(1, 6, mean=2.5, precision=0.2, skew=-0.7, mean_prior=(3.0, 0.5),
                                   precision_prior=(2.0, 1.0), skew_prior_precision=0.3)
        ]

    def test_normalized(self):
        for d in self.durations:
            lp = np.asarray([u[1] for u in d.positions()])
            assert abs(np.exp(lp).sum() - 1.0) < 1.0e-12

    def test_symmetric_without_skew(self):
        d = self.durations[1]
        assert abs(d.log_probability(1) - d.log_probability(5)) < 1.0e-12
        assert d.num_parameters() == 2

    def test_gradient(self):
        for d in self.durations:
            for o in range(d.min_offset, d.max_offset + 1):
                def f(p):
                    c = d.clone()
                    c.set_parameters(p)
                    return c.log_probability(o)

                g = SparseGradient()
                lp = d.log_probability_and_gradient(o, g)
                assert abs(lp - d.log_probability(o)) < 1.0e-12
                analytic = g.to_dense(d.num_parameters())
                assert np.max(np.abs(analytic - numerical_gradient(f, d.get_parameters()))) < 1.0e-6

    def test_prior_gradient(self):
        d = self.durations[2]

        def f(p):
            c = d.clone()
            c.set_parameters(p)
            return c.log_prior_term()

        g = np.zeros(d.num_parameters())
        d.add_prior_gradient(g)
        assert np.max(np.abs(g - numerical_gradient(f, d.get_parameters()))) < 1.0e-6

    def test_estimate(self):
        d = SkewNormalLikeDuration(0, 10, skew=0.0, train_skew=False)
        d.estimate(np.asarray([2, 4, 6]), np.asarray([1.0, 2.0, 1.0]))
        assert abs(d.mean - 4.0) < 1.0e-12
        assert abs(d.precision - 0.5) < 1.0e-12

    def test_resize(self):
        d = self.durations[0].clone()
        assert d.resize(0, -2)
        assert d.domain_size() == 7
        lp = np.asarray([u[1] for u in d.positions()])
        assert abs(np.exp(lp).sum() - 1.0) < 1.0e-12
