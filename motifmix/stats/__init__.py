"""Load the scoring models, duration priors and mixture models of motifmix.stats."""
__all__ = [
    "UNKNOWN",
    "SparseGradient",
    "ParameterizedScore",
    "SequenceScore",
    "DurationPrior",
    "PositionWeightMatrix",
    "HomogeneousMarkovModel",
    "UniformDuration",
    "SkewNormalLikeDuration",
    "LogNormalization",
    "ComponentSlotNormalizer",
    "MixtureCore",
    "Occurrence",
    "KindOfProfile",
    "MotifSlotNormalizer",
    "MotifOccurrenceModel"
]

from motifmix.stats.pdist import UNKNOWN, SparseGradient, ParameterizedScore, SequenceScore, DurationPrior
from motifmix.stats.pwm import PositionWeightMatrix
from motifmix.stats.markovchain import HomogeneousMarkovModel
from motifmix.stats.duration import UniformDuration, SkewNormalLikeDuration
from motifmix.stats.mixture import LogNormalization, ComponentSlotNormalizer, MixtureCore
from motifmix.stats.motif import Occurrence, KindOfProfile, MotifSlotNormalizer, MotifOccurrenceModel
