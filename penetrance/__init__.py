"""
penetrance: Bayesian estimation of age- and sex-specific cancer penetrance
from family pedigrees.
"""
from .baseline import BaselineRiskDatabase, BaselineRiskTable
from .config import ModelConfig, SamplerConfig, NonCarrierModel, SexStratification, InitMethod
from .core import ParameterVector, calculate_weibull_parameters, validate_weibull_parameters
from .data import combine_families, prep_ages, transform_pedigree
from .estimation import estimate_penetrance, PenetranceResult, PenetranceInputError, UnsupportedModelError
from .likelihood import LikelihoodBuilder
from .mcmc import AdaptiveSampler, ChainResult
from .modifiers import GermlineTestModifier, MarkerTable, MarkerTestModifier, TwinCollapse
from .oracle import PedigreeLikelihoodOracle, VariableEliminationOracle
from .priors import PriorDistributions, make_priors
from .results import save_summary_df, save_mcmc_samples

__version__ = "0.1.0"

__all__ = [
    "BaselineRiskDatabase",
    "BaselineRiskTable",
    "ModelConfig",
    "SamplerConfig",
    "NonCarrierModel",
    "SexStratification",
    "InitMethod",
    "ParameterVector",
    "calculate_weibull_parameters",
    "validate_weibull_parameters",
    "combine_families",
    "prep_ages",
    "transform_pedigree",
    "estimate_penetrance",
    "PenetranceResult",
    "PenetranceInputError",
    "UnsupportedModelError",
    "LikelihoodBuilder",
    "AdaptiveSampler",
    "ChainResult",
    "GermlineTestModifier",
    "MarkerTable",
    "MarkerTestModifier",
    "TwinCollapse",
    "PedigreeLikelihoodOracle",
    "VariableEliminationOracle",
    "PriorDistributions",
    "make_priors",
    "save_summary_df",
    "save_mcmc_samples",
]
