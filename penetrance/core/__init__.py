"""
Parameterisation of the penetrance curve and the one-locus genetic model.
"""
from .parameters import (
    ParameterVector,
    WeibullParams,
    calculate_weibull_parameters,
    validate_weibull_parameters,
    fold_asymptote,
)
from .genetics import genotype_frequencies, transmission_matrix, carrier_weight

__all__ = [
    "ParameterVector",
    "WeibullParams",
    "calculate_weibull_parameters",
    "validate_weibull_parameters",
    "fold_asymptote",
    "genotype_frequencies",
    "transmission_matrix",
    "carrier_weight",
]
