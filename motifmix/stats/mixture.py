"""Score, differentiate and initialize mixtures of sequence scores under a categorical hidden variable.

Defines the MixtureCore class. The mixture log-score of a window x is

    log f(x) = log( sum_{k=1}^{K} exp(log_pot[k] + log f_k(x)) ),

where log f_k is the log-score of component k. The K hidden parameters h are mapped to log-potentials either by

    log_pot = h - logsumexp(h)    (normalized model, every component normalized), or
    log_pot = h                   (unnormalized model, raw potentials),

in which case the log-normalization constant logsumexp_k(log_pot[k] + log Z_k) is tracked explicitly and cached.

The parameter vector of a MixtureCore is the concatenation of the parameter vectors of its components followed by
the hidden block. In the free parameterization the last hidden value is pinned to 0 and omitted from the vector.

A MixtureCore may carry more components than hidden slots. Such a core only manages parameters, hidden state,
normalization and priors, and the owning model scores its slots (see motifmix.stats.motif).

"""
import numpy as np
from enum import Enum
from numpy.random import RandomState
from typing import Optional, Sequence, Tuple, List, Union

import motifmix.utils.vector as vec
from motifmix.errors import ConfigurationError, UninitializedModelError, UnsupportedOperationError, \
    SequenceLengthError
from motifmix.stats.pdist import ParameterizedScore, SequenceScore, SparseGradient, UNKNOWN
from motifmix.utils.special import dirichlet_log_constant


class LogNormalization(Enum):
    NOT_COMPUTED = 0
    COMPUTED = 1
    IDENTICALLY_ZERO = 2


class ComponentSlotNormalizer(object):
    """Hidden slot i is normalized by the normalization constant of component i."""

    def slot_log_normalization(self, components: Sequence[ParameterizedScore], slot: int, length: int) -> float:
        return components[slot].log_normalization_constant(length)


class MixtureCore(SequenceScore):
    """MixtureCore object defined by owned components and a hidden parameter vector.

    Attributes:
        components (List[ParameterizedScore]): Deep copies of the components passed in.
        num_components (int): Number of components.
        hidden_dim (int): Number of hidden slots K.
        hidden (Optional[np.ndarray]): Hidden parameters, None until initialized.
        log_pot (Optional[np.ndarray]): Log-potentials of the hidden slots.
        pot (Optional[np.ndarray]): Exponentiated log_pot.
        hyperparameters (np.ndarray): Dirichlet hyperparameters of the hidden slots.
        ess (float): Sum of the hyperparameters.
        starts (int): Number of independent training starts.
        free_params (bool): True if the last hidden value is pinned to 0.
        param_ref (Optional[np.ndarray]): Offset of every component's parameters in the parameter vector, the last
            entry is the offset of the hidden block. None if a component has an UNKNOWN parameter count.
        slot_normalizer: Object computing the log-normalization constant of a hidden slot.
        name (Optional[str]): Name of the object.

    """

    def __init__(self, components: Sequence[ParameterizedScore], starts: int = 1, free_params: bool = True,
                 weights: Optional[Union[Sequence[float], np.ndarray]] = None,
                 hyperparameters: Optional[Union[Sequence[float], np.ndarray]] = None,
                 hidden_dim: Optional[int] = None, slot_normalizer=None, length: Optional[int] = None,
                 name: Optional[str] = None) -> None:
        """MixtureCore object.

        Args:
            components (Sequence[ParameterizedScore]): Components, copied on construction.
            starts (int): Number of independent training starts, must be positive.
            free_params (bool): Use the free parameterization of the hidden block.
            weights (Optional[Union[Sequence[float], np.ndarray]]): Initial hidden probabilities.
            hyperparameters (Optional[Union[Sequence[float], np.ndarray]]): Dirichlet hyperparameters of the hidden
                slots, the ess of each component if None.
            hidden_dim (Optional[int]): Number of hidden slots, number of components if None.
            slot_normalizer: Normalizer of the hidden slots, ComponentSlotNormalizer if None.
            length (Optional[int]): Window length, taken from the components if None.
            name (Optional[str]): Name of the object.

        """
        if components is None or len(components) == 0:
            raise ConfigurationError('MixtureCore requires at least one component.')
        if starts < 1:
            raise ConfigurationError('MixtureCore requires a positive number of starts, got %d.' % starts)

        self.components = [c.clone() for c in components]
        self.num_components = len(self.components)
        self.hidden_dim = self.num_components if hidden_dim is None else hidden_dim
        self.starts = starts
        self.free_params = free_params
        self.slot_normalizer = ComponentSlotNormalizer() if slot_normalizer is None else slot_normalizer
        self.name = name

        if self.hidden_dim < 1:
            raise ConfigurationError('MixtureCore requires at least one hidden slot, got %d.' % self.hidden_dim)

        if self.is_standard():
            self._check_components()
            self.length = self.components[0].length if length is None else length
            self.num_symbols = self.components[0].num_symbols
        else:
            self.length = 0 if length is None else length

        if hyperparameters is None:
            if self.is_standard():
                hyperparameters = [c.ess for c in self.components]
            else:
                hyperparameters = np.zeros(self.hidden_dim)

        self.hyperparameters = np.asarray(hyperparameters, dtype=float)

        if len(self.hyperparameters) != self.hidden_dim:
            raise ConfigurationError('Expected %d hyperparameters, got %d.' % (self.hidden_dim, len(self.hyperparameters)))
        if np.any(self.hyperparameters < 0):
            raise ConfigurationError('Hyperparameter %d is negative.' % int(np.flatnonzero(self.hyperparameters < 0)[0]))

        self.ess = float(self.hyperparameters.sum())
        self.hidden = None
        self.log_pot = None
        self.pot = None
        self._norm_state = LogNormalization.NOT_COMPUTED
        self._log_norm = 0.0
        self.update_parameter_layout()

        if weights is not None:
            if len(weights) != self.hidden_dim:
                raise ConfigurationError('Expected %d weights, got %d.' % (self.hidden_dim, len(weights)))
            self.set_hidden_probabilities(weights)

    def __str__(self) -> str:
        s1 = ','.join([str(u) for u in self.components])
        s2 = repr(None if self.pot is None else self.pot.tolist())
        return 'MixtureCore([%s], starts=%d, free_params=%s, weights=%s, hidden_dim=%d, name=%s)' % (
            s1, self.starts, repr(self.free_params), s2, self.hidden_dim, repr(self.name))

    def _check_components(self) -> None:
        length = self.components[0].length
        num_symbols = self.components[0].num_symbols
        for i, c in enumerate(self.components):
            if not isinstance(c, SequenceScore):
                raise ConfigurationError('Component %d is not a sequence score.' % i)
            if c.length != length:
                raise ConfigurationError('Component %d has length %d, expected %d.' % (i, c.length, length))
            if c.num_symbols != num_symbols:
                raise ConfigurationError('Component %d has %d symbols, expected %d.' % (i, c.num_symbols, num_symbols))

    def is_standard(self) -> bool:
        """True if every hidden slot is scored by exactly one component."""
        return self.hidden_dim == self.num_components

    def _require_standard(self) -> None:
        if not self.is_standard():
            raise UnsupportedOperationError('MixtureCore with %d components and %d hidden slots is scored by its owner.'
                                            % (self.num_components, self.hidden_dim))

    def _require_hidden(self) -> None:
        if self.hidden is None:
            raise UninitializedModelError('MixtureCore hidden parameters have not been initialized.')

    def update_parameter_layout(self) -> None:
        """Recompute param_ref after the parameter count of a component changed."""
        counts = [c.num_parameters() for c in self.components]
        if any(u == UNKNOWN for u in counts):
            self.param_ref = None
        else:
            self.param_ref = np.concatenate([[0], np.cumsum(counts)]).astype(int)

    def num_hidden_parameters(self) -> int:
        return self.hidden_dim - 1 if self.free_params else self.hidden_dim

    def num_parameters(self) -> int:
        if self.param_ref is None:
            return UNKNOWN
        return int(self.param_ref[-1]) + self.num_hidden_parameters()

    def get_indices(self, index: int) -> Tuple[int, int]:
        """Map a global parameter index to (component id, local index). The hidden block has id num_components."""
        if self.param_ref is None:
            raise UninitializedModelError('MixtureCore parameter layout is unknown.')
        if index < 0 or index >= self.num_parameters():
            raise IndexError('Parameter index %d out of range [0, %d).' % (index, self.num_parameters()))
        comp = int(np.searchsorted(self.param_ref, index, side='right')) - 1
        return comp, index - int(self.param_ref[comp])

    def is_normalized(self) -> bool:
        return all(c.is_normalized() for c in self.components)

    def is_initialized(self) -> bool:
        return self.hidden is not None and all(c.is_initialized() for c in self.components)

    def set_hidden(self, hidden: Union[Sequence[float], np.ndarray]) -> None:
        hidden = np.array(hidden, dtype=float)
        if self.free_params and np.isfinite(hidden[-1]):
            hidden -= hidden[-1]

        self.hidden = hidden
        if self.is_normalized():
            self.log_pot = hidden - vec.log_sum(hidden)
        else:
            self.log_pot = hidden.copy()
        self.pot = np.exp(self.log_pot)
        self.invalidate_normalization()

    def set_hidden_probabilities(self, p: Union[Sequence[float], np.ndarray]) -> None:
        """Set the hidden block to log(p). Zero entries are floored at the smallest positive double."""
        p = np.maximum(np.asarray(p, dtype=float), np.finfo(float).tiny)
        self.set_hidden(np.log(p))

    def invalidate_normalization(self) -> None:
        if self.is_normalized():
            self._norm_state = LogNormalization.IDENTICALLY_ZERO
        else:
            self._norm_state = LogNormalization.NOT_COMPUTED

    def slot_log_normalization(self, slot: int) -> float:
        return self.slot_normalizer.slot_log_normalization(self.components, slot, self.length)

    def log_normalization_constant(self, length: Optional[int] = None) -> float:
        self._require_hidden()

        if self._norm_state == LogNormalization.IDENTICALLY_ZERO:
            return 0.0

        if self._norm_state == LogNormalization.NOT_COMPUTED:
            terms = np.asarray([self.log_pot[i] + self.slot_log_normalization(i) for i in range(self.hidden_dim)])
            self._log_norm = float(vec.log_sum(terms))
            self._norm_state = LogNormalization.COMPUTED

        return self._log_norm

    def _window_end(self, x: np.ndarray, start: int, end: Optional[int]) -> int:
        if self.length > 0:
            if start + self.length > len(x):
                raise SequenceLengthError('Window at %d of length %d exceeds sequence of length %d.'
                                          % (start, self.length, len(x)))
            return start + self.length
        return len(x) if end is None else end

    def component_log_scores(self, x: np.ndarray, start: int = 0, end: Optional[int] = None) -> np.ndarray:
        """Returns log_pot[k] + log f_k(x) for every component k."""
        self._require_standard()
        self._require_hidden()
        x = vec.as_sequence(x)
        end = self._window_end(x, start, end)
        return self.log_pot + np.asarray([c.log_score(x, start, end) for c in self.components])

    def log_score(self, x: np.ndarray, start: int = 0, end: Optional[int] = None) -> float:
        return vec.log_sum(self.component_log_scores(x, start, end))

    def log_score_and_gradient(self, x: np.ndarray, start: int, end: Optional[int], grad: SparseGradient) -> float:
        self._require_standard()
        self._require_hidden()
        x = vec.as_sequence(x)
        end = self._window_end(x, start, end)

        local = [SparseGradient() for _ in range(self.num_components)]
        scores = self.log_pot + np.asarray([c.log_score_and_gradient(x, start, end, g)
                                            for c, g in zip(self.components, local)])
        resp, rv = vec.posterior(scores, log_sum=True)

        for i in range(self.num_components):
            grad.merge(local[i], int(self.param_ref[i]), resp[i])

        h0 = int(self.param_ref[-1])
        normalized = self.is_normalized()
        for j in range(self.num_hidden_parameters()):
            grad.add(h0 + j, resp[j] - self.pot[j] if normalized else resp[j])

        return rv

    def component_posteriors(self, x: np.ndarray, start: int = 0, end: Optional[int] = None) -> np.ndarray:
        """Responsibilities of the components for the window, summing to 1."""
        return vec.posterior(self.component_log_scores(x, start, end))

    def index_of_maximal_component(self, x: np.ndarray, start: int = 0, end: Optional[int] = None) -> int:
        return int(np.argmax(self.component_log_scores(x, start, end)))

    def get_parameters(self) -> np.ndarray:
        self._require_hidden()
        if self.param_ref is None:
            raise UninitializedModelError('MixtureCore parameter layout is unknown.')

        rv = [c.get_parameters() for c in self.components]
        rv.append(self.hidden[:self.num_hidden_parameters()])
        return np.concatenate(rv)

    def set_parameters(self, params: np.ndarray, offset: int = 0) -> int:
        for c in self.components:
            offset = c.set_parameters(params, offset)

        nh = self.num_hidden_parameters()
        hidden = np.zeros(self.hidden_dim)
        hidden[:nh] = params[offset:offset + nh]
        self.set_hidden(hidden)

        return offset + nh

    def log_prior_term(self) -> float:
        self._require_hidden()

        h = self.hyperparameters
        pos = h > 0
        if self.is_normalized():
            rv = float(np.dot(h[pos], self.log_pot[pos]))
        else:
            rv = float(np.dot(h[pos], self.hidden[pos]))

        rv += sum(c.log_prior_term() for c in self.components)
        rv += dirichlet_log_constant(h)

        return rv

    def add_prior_gradient(self, grad: np.ndarray, offset: int = 0) -> None:
        self._require_hidden()

        for i, c in enumerate(self.components):
            c.add_prior_gradient(grad, offset + int(self.param_ref[i]))

        g = self.hyperparameters.copy()
        if self.is_normalized():
            g -= self.ess * self.pot

        h0 = offset + int(self.param_ref[-1])
        nh = self.num_hidden_parameters()
        grad[h0:h0 + nh] += g[:nh]

    def initialize_hidden_uniformly(self) -> None:
        self.set_hidden(np.zeros(self.hidden_dim))

    def initialize_hidden_from_hyperparameters(self) -> None:
        if self.ess > 0:
            self.set_hidden_probabilities(self.hyperparameters / self.ess)
        else:
            self.initialize_hidden_uniformly()

    def initialize_hidden_randomly(self, rng: RandomState) -> None:
        alpha = np.where(self.hyperparameters > 0, self.hyperparameters, 1.0)
        self.set_hidden_probabilities(rng.dirichlet(alpha))

    def initialize_randomly(self, rng: RandomState) -> None:
        for c in self.components:
            c.initialize_randomly(rng)
        self.update_parameter_layout()
        self.initialize_hidden_randomly(rng)

    def initialize_from_data(self, data: Sequence[np.ndarray], weights: Optional[np.ndarray],
                             rng: RandomState, rounds: int = 3) -> None:
        """Plug-in initialization from whole sequences.

        The first round splits the weight of every sequence between the components by a Dirichlet draw. Every
        further round splits it by the responsibilities of the current model.

        """
        self._require_standard()

        data = [vec.as_sequence(x) for x in data]
        weights = np.ones(len(data)) if weights is None else np.asarray(weights, dtype=float)
        windows = [(x, 0, self._window_end(x, 0, None)) for x in data]
        alpha = np.where(self.hyperparameters > 0, self.hyperparameters, 1.0)

        for r in range(rounds):
            if r == 0:
                resp = rng.dirichlet(alpha, size=len(data))
            else:
                resp = np.asarray([self.component_posteriors(x, 0) for x in data])

            resp *= weights[:, None]

            for k, c in enumerate(self.components):
                c.initialize_from_data(windows, resp[:, k], rng)

            self.update_parameter_layout()
            mass = resp.sum(axis=0) + self.hyperparameters
            self.set_hidden_probabilities(mass / mass.sum())

    def estimate(self, data: Sequence[np.ndarray], weights: Optional[np.ndarray] = None) -> None:
        """One EM step on whole sequences: components from responsibility-weighted windows, hidden in closed
        form."""
        self._require_standard()
        self._require_hidden()

        data = [vec.as_sequence(x) for x in data]
        weights = np.ones(len(data)) if weights is None else np.asarray(weights, dtype=float)
        windows = [(x, 0, self._window_end(x, 0, None)) for x in data]
        resp = np.asarray([self.component_posteriors(x, 0) for x in data]) * weights[:, None]

        for k, c in enumerate(self.components):
            c.estimate(windows, resp[:, k])

        mass = resp.sum(axis=0) + self.hyperparameters
        self.set_hidden_probabilities(mass / mass.sum())
