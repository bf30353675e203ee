"""Multi-start EM training of MotifOccurrenceModel with phase-shift correction.

Every start runs INIT -> (E_STEP -> M_STEP)* until the stopping predicate ends the run, followed by rounds of
phase-shift search. A phase-shift round tries every circular shift of every motif within half its width on a
disposable copy, keeps the best one and re-runs EM, until the best shift is 0. The best start is returned.

The training objective is sum_n w_n * log f(x_n) + log prior.

"""
import sys
import time
import numpy as np
from enum import Enum
from numpy.random import RandomState
from typing import Optional, Sequence, Tuple, List, Any

import motifmix.utils.vector as vec
from motifmix.errors import ConfigurationError, UnsupportedOperationError, NumericalDegeneracyError, \
    SequenceLengthError
from motifmix.stats.motif import MotifOccurrenceModel, Occurrence
from motifmix.utils.termination import StoppingPredicate, CombinedCondition, MaxIterationsCondition, \
    SmallDifferenceOfFunctionEvaluationsCondition


class Algorithm(Enum):
    EM = 0
    GIBBS_SAMPLING = 1


class EStepStatistics(object):
    """Expected sufficient statistics of one E-step.

    Attributes:
        offset_weights (List[np.ndarray]): (N, D_i) weighted joint responsibilities of motif i at each offset.
        no_motif (np.ndarray): (N,) weighted responsibilities of the no-motif slot, zeros for ALWAYS.
        slot_mass (np.ndarray): Aggregated weighted responsibility of every hidden slot.

    """

    def __init__(self, offset_weights: List[np.ndarray], no_motif: np.ndarray, slot_mass: np.ndarray) -> None:
        self.offset_weights = offset_weights
        self.no_motif = no_motif
        self.slot_mass = slot_mass


class EMTrainer(object):
    """EMTrainer object.

    Attributes:
        stopping (StoppingPredicate): Consulted once per EM iteration.
        starts (Optional[int]): Number of independent starts, the starts of the model if None.
        init (str): 'prior', 'dirichlet' or 'uniform' initialization of a start.
        correct_phase_shift (bool): Run phase-shift search after EM converged.
        train_background (bool): Reestimate the background in the M-step.
        max_phase_shift_rounds (int): Upper bound on the rounds of phase-shift search per start.
        rng (RandomState): Random number generator for initialization.
        out: File-like object progress is written to.
        print_iter (int): Progress is written every print_iter iterations.

    """

    def __init__(self, stopping: Optional[StoppingPredicate] = None, starts: Optional[int] = None,
                 algorithm: Algorithm = Algorithm.EM, init: str = 'dirichlet', correct_phase_shift: bool = True,
                 train_background: bool = True, max_phase_shift_rounds: int = 50,
                 rng: Optional[RandomState] = None, out=sys.stdout, print_iter: int = 1) -> None:

        if algorithm == Algorithm.GIBBS_SAMPLING:
            raise UnsupportedOperationError('Gibbs sampling is not implemented.')
        if algorithm != Algorithm.EM:
            raise ConfigurationError('Unknown algorithm %s.' % str(algorithm))
        if init not in ('prior', 'dirichlet', 'uniform'):
            raise ConfigurationError("init must be 'prior', 'dirichlet' or 'uniform', got %s." % repr(init))
        if starts is not None and starts < 1:
            raise ConfigurationError('EMTrainer requires a positive number of starts, got %d.' % starts)

        if stopping is None:
            stopping = CombinedCondition([MaxIterationsCondition(100),
                                          SmallDifferenceOfFunctionEvaluationsCondition(1.0e-6)])

        self.stopping = stopping
        self.starts = starts
        self.algorithm = algorithm
        self.init = init
        self.correct_phase_shift = correct_phase_shift
        self.train_background = train_background
        self.max_phase_shift_rounds = max_phase_shift_rounds
        self.rng = RandomState() if rng is None else rng
        self.out = out
        self.print_iter = print_iter

    def _prepare(self, model: MotifOccurrenceModel, data: Sequence[Any],
                 weights: Optional[Sequence[float]]) -> Tuple[List[np.ndarray], np.ndarray]:
        if data is None or len(data) == 0:
            raise Exception('EM training called with empty data.')

        data = [vec.as_sequence(x) for x in data]
        for n, x in enumerate(data):
            if len(x) != model.length:
                raise SequenceLengthError('Sequence %d has length %d, expected %d.' % (n, len(x), model.length))

        if weights is None:
            weights = np.ones(len(data))
        else:
            weights = np.asarray(weights, dtype=float)
            if len(weights) != len(data):
                raise ConfigurationError('Expected %d weights, got %d.' % (len(data), len(weights)))

        return data, weights

    def objective(self, model: MotifOccurrenceModel, data: Sequence[np.ndarray], weights: np.ndarray) -> float:
        ll = sum(w * model.log_score(x, 0) for x, w in zip(data, weights) if w != 0)
        return float(ll + model.log_prior_term())

    def e_step(self, model: MotifOccurrenceModel, data: Sequence[np.ndarray],
               weights: np.ndarray) -> Tuple[float, EStepStatistics]:
        """Responsibilities of every slot and offset for every sequence.

        Returns:
            Tuple of the training objective of the current model and the EStepStatistics.

        """
        n = len(data)
        offset_weights = [np.zeros((n, model.duration(i).domain_size())) for i in range(model.num_motifs)]
        no_motif = np.zeros(n)
        slot_mass = np.zeros(model.core.hidden_dim)
        ll = 0.0

        for k, (x, w) in enumerate(zip(data, weights)):
            if w == 0:
                continue
            ls, slot_resp, offset_resp = model.offset_posteriors(x, 0)
            ll += w * ls
            slot_mass += w * slot_resp
            for i in range(model.num_motifs):
                offset_weights[i][k, :] = w * offset_resp[i]
            if model.occurrence == Occurrence.SOMETIMES:
                no_motif[k] = w * slot_resp[-1]

        return float(ll + model.log_prior_term()), EStepStatistics(offset_weights, no_motif, slot_mass)

    def m_step(self, model: MotifOccurrenceModel, data: Sequence[np.ndarray], weights: np.ndarray,
               stats: EStepStatistics) -> None:
        """Reestimate motifs, durations, background and hidden block from the E-step statistics."""
        length = model.length
        bg_data = []
        bg_weights = []

        for i in range(model.num_motifs):
            motif = model.motif(i)
            dur = model.duration(i)
            w = motif.length
            offsets = np.arange(dur.min_offset, dur.max_offset + 1)
            ow = stats.offset_weights[i]
            rows, cols = np.nonzero(ow > 0)

            motif.estimate([(data[r], offsets[c], offsets[c] + w) for r, c in zip(rows, cols)], ow[rows, cols])
            dur.estimate(offsets, ow.sum(axis=0))

            if self.train_background:
                for r, c in zip(rows, cols):
                    o = offsets[c]
                    bg_data.append((data[r], 0, o))
                    bg_data.append((data[r], o + w, length))
                    bg_weights.extend([ow[r, c], ow[r, c]])

        if self.train_background:
            for r in np.flatnonzero(stats.no_motif > 0):
                bg_data.append((data[r], 0, length))
                bg_weights.append(stats.no_motif[r])
            if len(bg_data) > 0:
                model.background.estimate(bg_data, np.asarray(bg_weights))

        model.components_changed()

        mass = stats.slot_mass + model.hyperparameters
        if mass.sum() <= 0 or not np.all(np.isfinite(mass)):
            raise NumericalDegeneracyError('Hidden slot mass %s cannot be normalized.' % repr(mass.tolist()))
        model.set_hidden_probabilities(mass / mass.sum())

    def initialize(self, model: MotifOccurrenceModel, data: Sequence[np.ndarray], weights: np.ndarray) -> None:
        """Initialize one start.

        Every mode builds initial responsibilities and runs one M-step. 'prior' takes them from the hidden potentials
        times the duration priors and does not depend on the random state. 'dirichlet' draws them for every
        sequence from a flat Dirichlet. 'uniform' places the motif uniformly over all offsets, it requires ALWAYS
        occurrence.

        """
        n = len(data)
        sizes = [model.duration(i).domain_size() for i in range(model.num_motifs)]
        no_motif = np.zeros(n)

        if self.init == 'prior':
            pot = model.core.pot
            offset_weights = []
            for i in range(model.num_motifs):
                p_dur = np.exp([lp for _, lp in model.duration(i).positions()])
                offset_weights.append(weights[:, None] * (pot[i] * p_dur)[None, :])
            if model.occurrence == Occurrence.SOMETIMES:
                no_motif = weights * pot[-1]
        elif self.init == 'uniform':
            offset_weights = [np.tile(weights[:, None] / (len(sizes) * d), (1, d)) for d in sizes]
        else:
            has_no_motif = 1 if model.occurrence == Occurrence.SOMETIMES else 0
            draws = self.rng.dirichlet(np.ones(sum(sizes) + has_no_motif), size=n) * weights[:, None]
            bounds = np.cumsum([0] + sizes)
            offset_weights = [draws[:, bounds[i]:bounds[i + 1]] for i in range(len(sizes))]
            if has_no_motif:
                no_motif = draws[:, -1]

        slot_mass = np.asarray([u.sum() for u in offset_weights])
        if model.occurrence == Occurrence.SOMETIMES:
            slot_mass = np.append(slot_mass, no_motif.sum())

        self.m_step(model, data, weights, EStepStatistics(offset_weights, no_motif, slot_mass))

    def run_em(self, model: MotifOccurrenceModel, data: Sequence[np.ndarray], weights: np.ndarray,
               stopping: Optional[StoppingPredicate] = None, label: str = '') -> float:
        """Run EM in place until the stopping predicate ends the run.

        Returns:
            float, the training objective of the final model.

        """
        stopping = self.stopping if stopping is None else stopping
        t0 = time.time()

        prev = -np.inf
        curr, stats = self.e_step(model, data, weights)
        if np.isnan(curr):
            raise NumericalDegeneracyError('Initial objective is nan.')

        its_cnt = 0
        while stopping.should_continue(its_cnt, prev, curr, None, None, np.nan, time.time() - t0):
            self.m_step(model, data, weights, stats)
            prev = curr
            curr, stats = self.e_step(model, data, weights)
            its_cnt += 1

            if not np.isfinite(curr):
                raise NumericalDegeneracyError('Iteration %d: objective is %s.' % (its_cnt, repr(curr)))

            if self.out is not None and self.print_iter > 0 and its_cnt % self.print_iter == 0:
                self.out.write('%sIteration %d: ln[P(Data|Model)]+ln[P(Model)]=%e, delta=%e\n'
                               % (label, its_cnt, curr, curr - prev))

        return curr

    def phase_shift_search(self, model: MotifOccurrenceModel, data: Sequence[np.ndarray],
                           weights: Optional[np.ndarray] = None) -> Tuple[int, Optional[int], Optional[MotifOccurrenceModel], float]:
        """Try every circular shift of every motif within half its width.

        Every candidate, including the unshifted model, is a clone that is shifted and then advanced by one EM
        iteration. A shift replaces the unshifted candidate only if its objective is strictly larger.

        Returns:
            Tuple of the best shift, the motif it applies to, the advanced candidate and its objective. The shift
            is 0 and the motif None if no shift improves the objective.

        """
        data, weights = self._prepare(model, data, weights)
        one_step = MaxIterationsCondition(1)
        saved_out, self.out = self.out, None

        try:
            base = model.clone()
            best_obj = self.run_em(base, data, weights, stopping=one_step)
            best = (0, None, base, best_obj)

            for i in range(model.num_motifs):
                if not hasattr(model.motif(i), 'shift'):
                    continue
                half = model.motif_length(i) // 2
                for s in range(-half, half + 1):
                    if s == 0:
                        continue
                    cand = model.clone()
                    cand.motif(i).shift(s)
                    cand.components_changed()
                    try:
                        obj = self.run_em(cand, data, weights, stopping=one_step)
                    except NumericalDegeneracyError:
                        continue
                    if obj > best[3]:
                        best = (s, i, cand, obj)
        finally:
            self.out = saved_out

        if best[0] != 0 and self.out is not None:
            self.out.write('Phase shift of motif %d by %d: ln[P(Data|Model)]+ln[P(Model)]=%e\n'
                           % (best[1], best[0], best[3]))

        return best

    def train_background_model(self, model: MotifOccurrenceModel, data: Sequence[Any],
                               weights: Optional[Sequence[float]] = None) -> None:
        data, weights = self._prepare(model, data, weights)
        model.background.estimate([(x, 0, model.length) for x in data], weights)
        model.components_changed()

    def train(self, model: MotifOccurrenceModel, data: Sequence[Any],
              weights: Optional[Sequence[float]] = None) -> Tuple[float, MotifOccurrenceModel]:
        """Train copies of model from independent starts and return the best one.

        Args:
            model (MotifOccurrenceModel): Template model, not modified.
            data (Sequence[Any]): Sequences of length model.length.
            weights (Optional[Sequence[float]]): Sequence weights, all ones if None.

        Returns:
            Tuple of the objective of the best start and the trained model.

        """
        if self.init == 'uniform' and model.occurrence != Occurrence.ALWAYS:
            raise ConfigurationError("init='uniform' requires ALWAYS occurrence.")

        data, weights = self._prepare(model, data, weights)
        starts = model.starts if self.starts is None else self.starts

        rv_obj = -np.inf
        rv_model = None
        last_err = None

        for kk in range(starts):
            mm = model.clone()
            label = 'Start %d. ' % (kk + 1)

            try:
                self.initialize(mm, data, weights)
                obj = self.run_em(mm, data, weights, label=label)

                if self.correct_phase_shift:
                    for _ in range(self.max_phase_shift_rounds):
                        shift, _, cand, _ = self.phase_shift_search(mm, data, weights)
                        if shift == 0:
                            break
                        mm = cand
                        obj = self.run_em(mm, data, weights, label=label)

            except NumericalDegeneracyError as e:
                last_err = e
                if self.out is not None:
                    self.out.write('Start %d discarded: %s\n' % (kk + 1, str(e)))
                continue

            if self.out is not None:
                self.out.write('Start %d. ln[P(Data|Model)]+ln[P(Model)]=%e\n' % (kk + 1, obj))

            if obj > rv_obj or rv_model is None:
                rv_obj = obj
                rv_model = mm

        if rv_model is None:
            raise last_err

        return rv_obj, rv_model
