"""
Top-level penetrance estimation: input validation, data preparation, parallel
chains, and post-processing.
"""
import logging
import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd
from joblib import Parallel, delayed, cpu_count

from .baseline import BaselineRiskDatabase, BaselineRiskTable
from .config import (
    CANCER_TYPES, CANCER_SHORT_CODES, GENE_TYPES, DEFAULT_MAX_AGE, DEFAULT_ALLELE_FREQUENCY,
    DEFAULT_PROPOSAL_VARIANCES, HIGH_REJECTION_RATE, ModelConfig, SamplerConfig,
)
from .data import combine_families, prep_ages, transform_pedigree, validate_pedigree_rows
from .likelihood import LikelihoodBuilder
from .mcmc import run_chain
from .oracle import VariableEliminationOracle
from .priors import make_priors
from .results import (
    apply_burn_in, apply_thinning, combine_chains, generate_summary, penetrance_curves, rejection_rates,
)

logger = logging.getLogger(__name__)


class PenetranceInputError(ValueError):
    """Invalid arguments to `estimate_penetrance`."""
    pass


class UnsupportedModelError(PenetranceInputError):
    """Cancer type or gene outside the supported lists."""
    pass


@dataclass
class PenetranceResult:
    """
    Attributes:
        samples (pd.DataFrame): Pooled draws after burn-in and thinning, with a 'chain' column.
        chains (list[ChainResult]): Raw per-chain output, before burn-in and thinning.
        rejection_rates (pd.Series): Rejection rate per chain.
        summary (pd.DataFrame): Summary statistics per parameter.
        curves (pd.DataFrame): Pointwise penetrance curve summaries per sex and age.
        data (pd.DataFrame): Transformed pedigree rows (before twin collapsing).
        twin_mapping (pd.DataFrame): Attribution of collapsed twins.
        priors (PriorDistributions): Priors used by every chain.
        seeds (list[int]): Seed of each chain.
    """
    samples: pd.DataFrame
    chains: list
    rejection_rates: pd.Series
    summary: pd.DataFrame
    curves: pd.DataFrame
    data: pd.DataFrame
    twin_mapping: pd.DataFrame
    priors: object
    seeds: list


def chain_seeds(n_chains: int, seed=None) -> list:
    """Distinct integer seeds, one per chain, spawned from one SeedSequence."""
    children = np.random.SeedSequence(seed).spawn(n_chains)
    seeds = [int(child.generate_state(1)[0]) for child in children]
    while len(set(seeds)) < n_chains:
        children = np.random.SeedSequence(seeds).spawn(n_chains)
        seeds = [int(child.generate_state(1)[0]) for child in children]
    return seeds


def _validate_inputs(data, cancer_type, gene, n_chains, n_iter_per_chain, burn_in, thinning, oracle_workers):
    if data is None or (isinstance(data, pd.DataFrame) and data.empty) or (isinstance(data, (list, tuple)) and not data):
        raise PenetranceInputError("Pedigree data must be provided.")
    if cancer_type not in CANCER_TYPES and cancer_type not in CANCER_SHORT_CODES:
        raise UnsupportedModelError(f"Cancer type {cancer_type!r} is not supported. Choose from {list(CANCER_TYPES)}.")
    if gene not in GENE_TYPES:
        raise UnsupportedModelError(f"Gene {gene!r} is not supported. Choose from {list(GENE_TYPES)}.")
    for name, value in (("n_chains", n_chains), ("n_iter_per_chain", n_iter_per_chain),
                        ("thinning", thinning), ("oracle_workers", oracle_workers)):
        if not isinstance(value, (int, np.integer)) or value < 1:
            raise PenetranceInputError(f"{name} must be a positive integer.")
    if not 0 <= burn_in < 1:
        raise PenetranceInputError("burn_in must be a fraction in [0, 1).")
    cores = cpu_count()
    if n_chains > cores:
        raise PenetranceInputError(f"n_chains ({n_chains}) exceeds the number of available CPU cores ({cores}).")
    if n_chains * oracle_workers > cores:
        raise PenetranceInputError(
            f"n_chains * oracle_workers ({n_chains * oracle_workers}) exceeds the available CPU cores ({cores})."
        )


def estimate_penetrance(data, cancer_type: str, gene: str, baseline, *,
                        n_chains: int = 1,
                        n_iter_per_chain: int = 10000,
                        max_age: int = DEFAULT_MAX_AGE,
                        allele_frequency: float = DEFAULT_ALLELE_FREQUENCY,
                        homozygote: bool = False,
                        non_carrier_model: str = "baseline",
                        sex: str = "both",
                        burn_in: float = 0.0,
                        thinning: int = 1,
                        prior_params: dict = None,
                        distribution_data: pd.DataFrame = None,
                        sample_size: int = None,
                        ratio: float = None,
                        risk_proportion: dict = None,
                        proposal_variances=DEFAULT_PROPOSAL_VARIANCES,
                        median_max: bool = True,
                        remove_proband: bool = False,
                        age_imputation: bool = False,
                        adaptive: bool = True,
                        init_method: str = "empirical",
                        germline_tests=None,
                        marker_model=None,
                        oracle=None,
                        oracle_workers: int = 1,
                        seed=None,
                        n_jobs: int = None,
                        progress: bool = False,
                        prob_ci: float = 0.95) -> PenetranceResult:
    """
    Estimates sex-specific carrier penetrance curves from family pedigrees.

    Args:
        data (list[pd.DataFrame] | pd.DataFrame): Families in PanelPRO-style format.
        cancer_type (str): Cancer name, e.g. 'Colorectal', or short code.
        gene (str): Gene symbol, e.g. 'MLH1'.
        baseline (BaselineRiskTable | BaselineRiskDatabase): Population risk; a database is
            looked up with the SEER / All_Races / Net defaults.
        n_chains (int): Independent chains, each in its own worker process.
        n_iter_per_chain (int): Iterations per chain.
        max_age (int): Largest age modelled.
        allele_frequency (float): Variant allele frequency.
        homozygote (bool): Model the homozygous carrier state.
        non_carrier_model (str): 'baseline' or 'model_derived'.
        sex (str): 'both', 'male' or 'female'.
        burn_in (float): Fraction of each chain discarded; also delays covariance adaptation.
        thinning (int): Keep every thinning-th draw.
        prior_params, distribution_data, sample_size, ratio, risk_proportion: See `make_priors`.
        proposal_variances: Initial proposal variances, in parameter order.
        median_max (bool): Bound medians by the baseline midpoint age.
        remove_proband (bool): Blank the probands' information before fitting.
        age_imputation (bool): Impute unknown diagnosis ages of affected individuals.
        adaptive (bool): Adapt the proposal covariance after burn-in.
        init_method (str): 'empirical' or 'prior'.
        germline_tests (GermlineTestModifier, optional): Imperfect germline test model.
        marker_model (MarkerTestModifier, optional): Tumor marker model.
        oracle (callable, optional): Pedigree likelihood oracle; VariableEliminationOracle by default.
        oracle_workers (int): Threads per chain available to the oracle.
        seed: Seed for the SeedSequence that spawns the chain seeds.
        n_jobs (int, optional): Worker processes; defaults to n_chains.
        progress (bool): Show a progress bar per chain.
        prob_ci (float): Credible interval mass of the penetrance curves.

    Returns:
        PenetranceResult

    Raises:
        PenetranceInputError: On invalid arguments, before any sampling.
        UnsupportedModelError: For an unsupported cancer type or gene.
    """
    _validate_inputs(data, cancer_type, gene, n_chains, n_iter_per_chain, burn_in, thinning, oracle_workers)

    model_config = ModelConfig(
        cancer_type=cancer_type, gene=gene, max_age=max_age, allele_frequency=allele_frequency,
        homozygote=homozygote, non_carrier_model=non_carrier_model, sex=sex,
        median_max=median_max, age_imputation=age_imputation,
    )
    sampler_config = SamplerConfig(
        n_iter=n_iter_per_chain, burn_in=burn_in, proposal_variances=proposal_variances,
        adaptive=adaptive, init_method=init_method, progress=progress, oracle_workers=oracle_workers,
    )

    if isinstance(baseline, BaselineRiskDatabase):
        baseline = baseline.lookup(cancer_type)
    elif not isinstance(baseline, BaselineRiskTable):
        raise TypeError("baseline must be a BaselineRiskTable or BaselineRiskDatabase.")

    families = combine_families(data)
    prepared = prep_ages(families, remove_proband=remove_proband, keep_unknown_affected_ages=age_imputation)
    rows = transform_pedigree(prepared, cancer_type, gene,
                              markers=marker_model.markers if marker_model is not None else ())
    validate_pedigree_rows(rows)

    priors = make_priors(distribution_data=distribution_data, sample_size=sample_size, ratio=ratio,
                         prior_params=prior_params, risk_proportion=risk_proportion, baseline=baseline)
    builder = LikelihoodBuilder(rows, baseline, model_config, germline=germline_tests, marker=marker_model)
    oracle = oracle if oracle is not None else VariableEliminationOracle()
    seeds = chain_seeds(n_chains, seed)

    logger.info("Running %d chains of %d iterations for %s / %s on %d individuals.",
                n_chains, n_iter_per_chain, cancer_type, gene, len(builder.oracle_rows))
    chains = Parallel(n_jobs=n_jobs or n_chains)(
        delayed(run_chain)(builder, priors, oracle, sampler_config, seeds[i], i + 1)
        for i in range(n_chains)
    )

    rates = rejection_rates(chains)
    if (rates > HIGH_REJECTION_RATE).all():
        message = "Low acceptance rate. Please consider running the chain longer."
        logger.warning(message)
        warnings.warn(message, RuntimeWarning)

    kept = apply_burn_in(chains, burn_in) if burn_in > 0 else chains
    if thinning > 1:
        kept = apply_thinning(kept, thinning)
    combined = combine_chains(kept)

    return PenetranceResult(
        samples=combined,
        chains=chains,
        rejection_rates=rates,
        summary=generate_summary(combined),
        curves=penetrance_curves(combined, max_age, prob=prob_ci),
        data=rows,
        twin_mapping=builder.twins.mapping,
        priors=priors,
        seeds=seeds,
    )
