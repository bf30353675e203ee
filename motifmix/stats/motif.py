"""Hidden-motif models with zero-or-one (ZOOPS) or exactly one (OOPS) motif occurrence per sequence window.

Defines the MotifOccurrenceModel class. A window x of length L is scored as

    log f(x) = log( sum_i pot[i] * sum_o exp(s_i(x, o)) + [pot[M] * bg(x) if SOMETIMES] ),

where i runs over the M motif slots and o over the admissible offsets of the duration prior of slot i. The per-offset
score substitutes the motif for the background in the window [o, o + w),

    s_i(x, o) = log dur_i(o) + log bg(x[0:o]) + log motif_i(x[o:o+w]) + log bg(x[o+w:L]).

For a background of Markov order k this equals

    log bg(x) + log dur_i(o) + log motif_i(x[o:o+w]) - log bg(x[hs:he]) + log bg(x[hs:o]) + log bg(x[o+w:he]),

with hs = max(0, o - k) and he = min(L, o + w + k), since every background term beyond hs + k (or he) already sees
its full context. The flank form never subtracts, so a symbol of background probability 0 inside the motif window
leaves s_i finite and an impossible window scores -inf.

The model owns a MixtureCore over the components [motif_0, duration_0, ..., motif_{M-1}, duration_{M-1},
background] with M (ALWAYS) or M + 1 (SOMETIMES) hidden slots. Its parameter vector is the parameter vector of the
core.

"""
import copy
import numpy as np
from enum import Enum
from numpy.random import RandomState
from typing import Optional, Sequence, Tuple, List, Union

import motifmix.utils.vector as vec
from motifmix.errors import ConfigurationError, SequenceLengthError, UninitializedModelError, \
    UnsupportedOperationError
from motifmix.stats.duration import UniformDuration
from motifmix.stats.mixture import MixtureCore
from motifmix.stats.pdist import ParameterizedScore, SequenceScore, DurationPrior, SparseGradient


class Occurrence(Enum):
    ALWAYS = 0
    SOMETIMES = 1


class KindOfProfile(Enum):
    UNNORMALIZED_JOINT = 0
    UNNORMALIZED_CONDITIONAL = 1
    NORMALIZED_CONDITIONAL = 2


class MotifSlotNormalizer(object):
    """Slot normalizer for the component layout [motif_0, duration_0, ..., background]."""

    def __init__(self, num_motifs: int) -> None:
        self.num_motifs = num_motifs

    def slot_log_normalization(self, components: Sequence[ParameterizedScore], slot: int, length: int) -> float:
        bg = components[-1]
        if slot >= self.num_motifs:
            return bg.log_normalization_constant(length)

        motif = components[2 * slot]
        dur = components[2 * slot + 1]
        return motif.log_normalization_constant() + dur.log_normalization_constant() \
            + bg.log_normalization_constant(length - motif.length)


class MotifOccurrenceModel(SequenceScore):
    """MotifOccurrenceModel object.

    Attributes:
        length (int): Length L of the scored windows.
        num_symbols (int): Alphabet size.
        occurrence (Occurrence): ALWAYS or SOMETIMES.
        core (MixtureCore): Components, hidden block and parameter layout.
        name (Optional[str]): Name of the object.

    """

    def __init__(self, length: int, background: SequenceScore, motifs: Sequence[SequenceScore],
                 durations: Optional[Sequence[DurationPrior]] = None,
                 occurrence: Occurrence = Occurrence.SOMETIMES, starts: int = 1, free_params: bool = True,
                 weights: Optional[Union[Sequence[float], np.ndarray]] = None, name: Optional[str] = None) -> None:
        """MotifOccurrenceModel object.

        Args:
            length (int): Length of the scored windows.
            background (SequenceScore): Normalized variable-length background model exposing its Markov order.
            motifs (Sequence[SequenceScore]): Fixed-width motif models, one per slot.
            durations (Optional[Sequence[DurationPrior]]): Offset priors, uniform over [0, L - w] if None.
            occurrence (Occurrence): ALWAYS for exactly one occurrence, SOMETIMES adds a no-motif slot.
            starts (int): Number of independent training starts.
            free_params (bool): Free parameterization of the hidden block.
            weights (Optional[Union[Sequence[float], np.ndarray]]): Initial hidden probabilities, from the
                hyperparameters if None.
            name (Optional[str]): Name of the object.

        """
        if motifs is None or len(motifs) == 0:
            raise ConfigurationError('MotifOccurrenceModel requires at least one motif.')
        if length < 1:
            raise ConfigurationError('MotifOccurrenceModel requires a positive length, got %d.' % length)
        if not hasattr(background, 'order'):
            raise ConfigurationError('The background model must expose its Markov order.')
        if not background.is_normalized():
            raise ConfigurationError('The background model must be normalized.')

        for i, m in enumerate(motifs):
            if m.num_symbols != background.num_symbols:
                raise ConfigurationError('Motif %d has %d symbols, the background has %d.'
                                         % (i, m.num_symbols, background.num_symbols))
            if m.length < 1 or m.length > length:
                raise ConfigurationError('Motif %d of width %d does not fit into length %d.' % (i, m.length, length))

        if durations is None:
            durations = [UniformDuration(0, length - m.length) for m in motifs]
        elif len(durations) != len(motifs):
            raise ConfigurationError('Expected %d duration priors, got %d.' % (len(motifs), len(durations)))

        for i, (m, d) in enumerate(zip(motifs, durations)):
            if d.min_offset < 0 or d.max_offset > length - m.length:
                raise ConfigurationError('Duration prior %d has domain [%d, %d], admissible is [0, %d].'
                                         % (i, d.min_offset, d.max_offset, length - m.length))

        components = []
        for m, d in zip(motifs, durations):
            components.extend([m, d])
        components.append(background)

        hyper = [m.ess for m in motifs]
        if occurrence == Occurrence.SOMETIMES:
            hyper.append(background.ess)

        self.length = length
        self.num_symbols = background.num_symbols
        self.occurrence = occurrence
        self.name = name
        self.core = MixtureCore(components, starts=starts, free_params=free_params, hyperparameters=hyper,
                                hidden_dim=len(hyper), slot_normalizer=MotifSlotNormalizer(len(motifs)),
                                length=length)

        if weights is None:
            self.core.initialize_hidden_from_hyperparameters()
        else:
            if len(weights) != self.core.hidden_dim:
                raise ConfigurationError('Expected %d weights, got %d.' % (self.core.hidden_dim, len(weights)))
            self.core.set_hidden_probabilities(weights)

        self._offset_scores = [np.zeros(d.domain_size()) for d in durations]

    def __str__(self) -> str:
        s1 = ','.join([str(self.motif(i)) for i in range(self.num_motifs)])
        s2 = ','.join([str(self.duration(i)) for i in range(self.num_motifs)])
        return 'MotifOccurrenceModel(%d, %s, [%s], durations=[%s], occurrence=%s, weights=%s, name=%s)' % (
            self.length, str(self.background), s1, s2, str(self.occurrence), repr(self.core.pot.tolist()),
            repr(self.name))

    @property
    def num_motifs(self) -> int:
        return len(self._offset_scores)

    @property
    def background(self) -> SequenceScore:
        return self.core.components[-1]

    @property
    def ess(self) -> float:
        return self.core.ess

    @property
    def starts(self) -> int:
        return self.core.starts

    @property
    def free_params(self) -> bool:
        return self.core.free_params

    @property
    def hyperparameters(self) -> np.ndarray:
        return self.core.hyperparameters

    @property
    def log_pot(self) -> np.ndarray:
        return self.core.log_pot

    def _check_index(self, i: int) -> None:
        if i < 0 or i >= self.num_motifs:
            raise IndexError('Motif index %d out of range [0, %d).' % (i, self.num_motifs))

    def motif(self, i: int) -> SequenceScore:
        self._check_index(i)
        return self.core.components[2 * i]

    def duration(self, i: int) -> DurationPrior:
        self._check_index(i)
        return self.core.components[2 * i + 1]

    def motif_length(self, i: int) -> int:
        return self.motif(i).length

    def num_parameters(self) -> int:
        return self.core.num_parameters()

    def get_parameters(self) -> np.ndarray:
        return self.core.get_parameters()

    def set_parameters(self, params: np.ndarray, offset: int = 0) -> int:
        return self.core.set_parameters(params, offset)

    def set_hidden_probabilities(self, p: Union[Sequence[float], np.ndarray]) -> None:
        self.core.set_hidden_probabilities(p)

    def components_changed(self) -> None:
        """Must be called after a component was modified in place."""
        self.core.update_parameter_layout()
        self.core.invalidate_normalization()

    def is_normalized(self) -> bool:
        return self.core.is_normalized()

    def is_initialized(self) -> bool:
        return self.core.is_initialized()

    def log_normalization_constant(self, length: Optional[int] = None) -> float:
        return self.core.log_normalization_constant()

    def log_prior_term(self) -> float:
        return self.core.log_prior_term()

    def add_prior_gradient(self, grad: np.ndarray, offset: int = 0) -> None:
        self.core.add_prior_gradient(grad, offset)

    def _check_window(self, x: np.ndarray, start: int) -> None:
        if start < 0 or start + self.length > len(x):
            raise SequenceLengthError('Window at %d of length %d exceeds sequence of length %d.'
                                      % (start, self.length, len(x)))
        if self.core.hidden is None:
            raise UninitializedModelError('MotifOccurrenceModel hidden parameters have not been initialized.')

    def _offset_score(self, i: int, x: np.ndarray, start: int, o: int, log_dur: float) -> float:
        motif = self.core.components[2 * i]
        bg = self.core.components[-1]
        w = motif.length

        return log_dur + bg.log_score(x, start, start + o) \
            + motif.log_score(x, start + o, start + o + w) \
            + bg.log_score(x, start + o + w, start + self.length)

    def fill_component_score_of(self, i: int, x: np.ndarray, start: int = 0) -> int:
        """Fill the per-offset buffer of motif slot i with s_i(x, o) for every admissible offset.

        The buffer is overwritten by the next call.

        Returns:
            int, number of offsets filled.

        """
        self._check_index(i)
        x = vec.as_sequence(x)
        buf = self._offset_scores[i]

        n = 0
        for o, log_dur in self.duration(i).positions():
            buf[n] = self._offset_score(i, x, start, o, log_dur)
            n += 1

        return n

    def _slot_scores(self, x: np.ndarray, start: int) -> Tuple[np.ndarray, List[np.ndarray]]:
        offsets = []
        slots = np.empty(self.core.hidden_dim)

        for i in range(self.num_motifs):
            n = self.fill_component_score_of(i, x, start)
            s = self._offset_scores[i][:n].copy()
            offsets.append(s)
            slots[i] = self.core.log_pot[i] + vec.log_sum(s)

        if self.occurrence == Occurrence.SOMETIMES:
            slots[-1] = self.core.log_pot[-1] + self.background.log_score(x, start, start + self.length)

        return slots, offsets

    def log_score(self, x: np.ndarray, start: int = 0, end: Optional[int] = None) -> float:
        x = vec.as_sequence(x)
        self._check_window(x, start)
        slots, _ = self._slot_scores(x, start)
        return vec.log_sum(slots)

    def offset_posteriors(self, x: np.ndarray, start: int = 0) -> Tuple[float, np.ndarray, List[np.ndarray]]:
        """Posterior of the hidden slot and the motif offset.

        Returns:
            Tuple of the log-score, the (hidden_dim,) slot responsibilities, and for every motif slot i an array
            whose entry k is the joint responsibility of slot i at offset duration(i).min_offset + k. The slot
            responsibilities sum to 1.

        """
        x = vec.as_sequence(x)
        self._check_window(x, start)
        slots, offsets = self._slot_scores(x, start)
        slot_resp, rv = vec.posterior(slots, log_sum=True)
        offset_resp = [slot_resp[i] * vec.posterior(offsets[i]) for i in range(self.num_motifs)]

        return rv, slot_resp, offset_resp

    def index_of_maximal_component(self, x: np.ndarray, start: int = 0) -> int:
        x = vec.as_sequence(x)
        self._check_window(x, start)
        slots, _ = self._slot_scores(x, start)
        return int(np.argmax(slots))

    def profile_of_scores(self, i: int, x: np.ndarray, start: int = 0,
                          kind: KindOfProfile = KindOfProfile.UNNORMALIZED_JOINT) -> np.ndarray:
        """Scores of motif slot i at every admissible offset.

        UNNORMALIZED_JOINT is log P(x, slot i, offset o), UNNORMALIZED_CONDITIONAL is log P(x, offset o | slot i)
        and NORMALIZED_CONDITIONAL is log P(offset o | x, slot i).

        """
        x = vec.as_sequence(x)
        self._check_window(x, start)
        n = self.fill_component_score_of(i, x, start)
        s = self._offset_scores[i][:n].copy()

        if kind == KindOfProfile.NORMALIZED_CONDITIONAL:
            return s - vec.log_sum(s)
        if kind == KindOfProfile.UNNORMALIZED_JOINT:
            s += self.core.log_pot[i]

        return s

    def log_score_and_gradient(self, x: np.ndarray, start: int, end: Optional[int], grad: SparseGradient) -> float:
        x = vec.as_sequence(x)
        self._check_window(x, start)

        ref = self.core.param_ref
        bg = self.background
        m_cnt = self.num_motifs
        end = start + self.length

        slots = np.empty(self.core.hidden_dim)
        offsets = []
        local = []

        for i in range(m_cnt):
            motif = self.core.components[2 * i]
            dur = self.core.components[2 * i + 1]
            w = motif.length
            s = np.empty(dur.domain_size())
            g_i = []

            for k, o in enumerate(range(dur.min_offset, dur.max_offset + 1)):
                gm, gd, gb = SparseGradient(), SparseGradient(), SparseGradient()

                s[k] = dur.log_probability_and_gradient(o, gd) \
                    + bg.log_score_and_gradient(x, start, start + o, gb) \
                    + motif.log_score_and_gradient(x, start + o, start + o + w, gm) \
                    + bg.log_score_and_gradient(x, start + o + w, end, gb)
                g_i.append((gm, gd, gb))

            offsets.append(s)
            local.append(g_i)
            slots[i] = self.core.log_pot[i] + vec.log_sum(s)

        g_none = SparseGradient()
        if self.occurrence == Occurrence.SOMETIMES:
            slots[-1] = self.core.log_pot[-1] + bg.log_score_and_gradient(x, start, end, g_none)

        slot_resp, rv = vec.posterior(slots, log_sum=True)

        bg_grad = SparseGradient()
        if self.occurrence == Occurrence.SOMETIMES:
            bg_grad.merge(g_none, 0, slot_resp[-1])

        for i in range(m_cnt):
            resp = slot_resp[i] * vec.posterior(offsets[i])
            for r, (gm, gd, gb) in zip(resp, local[i]):
                if r == 0:
                    continue
                grad.merge(gm, int(ref[2 * i]), r)
                grad.merge(gd, int(ref[2 * i + 1]), r)
                bg_grad.merge(gb, 0, r)

        # background contributions of all slots and offsets are summed into one dense buffer
        dense = bg_grad.to_dense(bg.num_parameters())
        idx = np.flatnonzero(dense)
        grad.add_many(idx + int(ref[2 * m_cnt]), dense[idx])

        h0 = int(ref[-1])
        normalized = self.core.is_normalized()
        for j in range(self.core.num_hidden_parameters()):
            grad.add(h0 + j, slot_resp[j] - self.core.pot[j] if normalized else slot_resp[j])

        return rv

    def modify_motif(self, i: int, offset_left: int, offset_right: int) -> bool:
        """Resize motif i to width - offset_left + offset_right.

        The duration domain is resized accordingly and the hidden parameter of the slot is corrected by the change
        of the slot normalization constant.

        Returns:
            bool, False if the motif cannot be resized.

        """
        motif = self.motif(i)
        dur = self.duration(i)
        new_width = motif.length - offset_left + offset_right

        if new_width < 1 or new_width > self.length:
            return False
        if dur.max_offset + offset_left - offset_right < dur.min_offset:
            return False
        if not hasattr(motif, 'modify'):
            return False

        old_norm = self.core.slot_log_normalization(i)

        if not motif.modify(offset_left, offset_right):
            return False
        dur.resize(0, offset_left - offset_right)

        new_norm = self.core.slot_log_normalization(i)
        hidden = self.core.hidden.copy()
        hidden[i] += old_norm - new_norm
        self.core.set_hidden(hidden)

        self._offset_scores[i] = np.zeros(dur.domain_size())
        self.components_changed()

        return True

    def initialize_motif(self, i: int, data: Sequence[Tuple[np.ndarray, int, int]],
                         weights: Optional[np.ndarray] = None) -> None:
        self.motif(i).estimate(data, weights)
        self.components_changed()

    def initialize_motif_randomly(self, i: int, rng: RandomState) -> None:
        self.motif(i).initialize_randomly(rng)
        self.components_changed()

    def initialize_randomly(self, rng: RandomState) -> None:
        for i in range(self.num_motifs):
            self.motif(i).initialize_randomly(rng)
        self.components_changed()
        self.core.initialize_hidden_randomly(rng)

    def initialize_from_data(self, data: Sequence[np.ndarray], weights: Optional[np.ndarray],
                             rng: RandomState) -> None:
        """Estimate the background from whole windows and draw the motifs and hidden block randomly."""
        data = [vec.as_sequence(x) for x in data]
        self.background.estimate([(x, 0, self.length) for x in data], weights)
        self.initialize_randomly(rng)

    def estimate(self, data: Sequence[np.ndarray], weights: Optional[np.ndarray] = None) -> None:
        raise UnsupportedOperationError('MotifOccurrenceModel is estimated by motifmix.utils.estimation.EMTrainer.')

    def clone(self) -> 'MotifOccurrenceModel':
        return copy.deepcopy(self)
