"""
NumPy predicates shared by the numeric helpers of motifmix.utils.vector.

"""

from numpy import (
    isnan, # Check for NaN values
    isinf  # Check for infinite values
)
