"""Stopping predicates consulted once per iteration of an iterative training procedure."""
import numpy as np
from abc import abstractmethod
from typing import Optional, Sequence


class StoppingPredicate(object):

    @abstractmethod
    def should_continue(self, iteration: int, prev_objective: float, curr_objective: float,
                        gradient: Optional[np.ndarray] = None, direction: Optional[np.ndarray] = None,
                        step_size: float = np.nan, elapsed_time: float = 0.0) -> bool:
        """Returns True if another iteration should be run.

        Args:
            iteration (int): Number of completed iterations.
            prev_objective (float): Objective before the last iteration, -inf before the first.
            curr_objective (float): Objective after the last iteration.
            gradient (Optional[np.ndarray]): Gradient at the current point, None for EM.
            direction (Optional[np.ndarray]): Last search direction, None for EM.
            step_size (float): Last step size, nan for EM.
            elapsed_time (float): Seconds since training started.

        """
        ...


class MaxIterationsCondition(StoppingPredicate):

    def __init__(self, max_its: int) -> None:
        if max_its < 0:
            raise ValueError('max_its must be non-negative, got %d.' % max_its)
        self.max_its = max_its

    def __str__(self) -> str:
        return 'MaxIterationsCondition(%d)' % self.max_its

    def should_continue(self, iteration, prev_objective, curr_objective, gradient=None, direction=None,
                        step_size=np.nan, elapsed_time=0.0) -> bool:
        return iteration < self.max_its


class SmallDifferenceOfFunctionEvaluationsCondition(StoppingPredicate):
    """Continue while the objective improves by at least delta."""

    def __init__(self, delta: float) -> None:
        if delta < 0:
            raise ValueError('delta must be non-negative, got %f.' % delta)
        self.delta = delta

    def __str__(self) -> str:
        return 'SmallDifferenceOfFunctionEvaluationsCondition(%s)' % repr(self.delta)

    def should_continue(self, iteration, prev_objective, curr_objective, gradient=None, direction=None,
                        step_size=np.nan, elapsed_time=0.0) -> bool:
        if prev_objective == -np.inf:
            return True
        return abs(curr_objective - prev_objective) >= self.delta


class TimeCondition(StoppingPredicate):

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds

    def __str__(self) -> str:
        return 'TimeCondition(%s)' % repr(self.seconds)

    def should_continue(self, iteration, prev_objective, curr_objective, gradient=None, direction=None,
                        step_size=np.nan, elapsed_time=0.0) -> bool:
        return elapsed_time < self.seconds


class CombinedCondition(StoppingPredicate):
    """Continue while all (or, if require_all is False, any) of the conditions say so."""

    def __init__(self, conditions: Sequence[StoppingPredicate], require_all: bool = True) -> None:
        if len(conditions) == 0:
            raise ValueError('CombinedCondition requires at least one condition.')
        self.conditions = list(conditions)
        self.require_all = require_all

    def __str__(self) -> str:
        return 'CombinedCondition([%s], require_all=%s)' % (','.join(map(str, self.conditions)),
                                                           repr(self.require_all))

    def should_continue(self, iteration, prev_objective, curr_objective, gradient=None, direction=None,
                        step_size=np.nan, elapsed_time=0.0) -> bool:
        rv = [c.should_continue(iteration, prev_objective, curr_objective, gradient, direction, step_size,
                                elapsed_time) for c in self.conditions]
        return all(rv) if self.require_all else any(rv)
