"""
Adaptive Metropolis-Hastings sampling of the eight penetrance parameters.

One `AdaptiveSampler` runs one chain. Proposals are multivariate normal
around the current state; asymptotes are reflected back into (0, 1); vectors
violating the ordering constraints are rejected without a likelihood call.
After the burn-in fraction, the proposal covariance is re-estimated from the
chain history (Haario et al. adaptive Metropolis).
"""
import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from tqdm import tqdm

from .config import ModelConfig, SamplerConfig, InitMethod, MALE, FEMALE, PARAMETER_NAMES
from .core.parameters import ParameterVector, fold_asymptote
from .imputation import AgeImputer
from .likelihood import LikelihoodBuilder
from .priors import PriorDistributions

logger = logging.getLogger(__name__)

N_PARAMS = len(PARAMETER_NAMES)


@dataclass
class ChainResult:
    """
    Output of one chain. Per-iteration arrays have one entry per iteration;
    proposal log-likelihoods, log-priors and acceptance ratios are NaN for
    proposals rejected before the likelihood was evaluated.
    """
    chain_id: int
    seed: int
    samples: np.ndarray
    proposals: np.ndarray
    loglikelihood_current: np.ndarray
    loglikelihood_proposal: np.ndarray
    logprior_current: np.ndarray
    logprior_proposal: np.ndarray
    acceptance_ratio: np.ndarray
    covariance: np.ndarray
    num_rejections: int
    n_iter: int

    @property
    def rejection_rate(self) -> float:
        return self.num_rejections / self.n_iter

    def to_frame(self) -> pd.DataFrame:
        """Samples as a DataFrame with one column per parameter."""
        return pd.DataFrame(self.samples, columns=list(PARAMETER_NAMES))


def median_upper_bounds(builder: LikelihoodBuilder, config: ModelConfig) -> dict:
    """Largest admissible median age per sex."""
    if config.median_max:
        return {sex: float(builder.baseline.midpoint_age(sex)) for sex in (MALE, FEMALE)}
    return {MALE: float(config.max_age), FEMALE: float(config.max_age)}


class AdaptiveSampler:
    """
    A single adaptive Metropolis-Hastings chain.

    Attributes:
        builder (LikelihoodBuilder): Likelihood of a parameter vector.
        priors (PriorDistributions): Prior of a parameter vector.
        oracle: Pedigree likelihood oracle.
        sampler_config (SamplerConfig): Iterations, proposal and adaptation settings.
        seed (int): Seed of this chain's random generator.
        chain_id (int): Label reported in logs and results.
    """
    def __init__(self, builder: LikelihoodBuilder, priors: PriorDistributions, oracle,
                 sampler_config: SamplerConfig, seed: int = None, chain_id: int = 1):
        if not isinstance(builder, LikelihoodBuilder):
            raise TypeError("builder must be a LikelihoodBuilder.")
        if not isinstance(priors, PriorDistributions):
            raise TypeError("priors must be a PriorDistributions instance.")
        if not callable(oracle):
            raise TypeError("oracle must be callable.")
        self.builder = builder
        self.model_config = builder.config
        self.priors = priors
        self.oracle = oracle
        self.sampler_config = sampler_config
        self.seed = seed
        self.chain_id = chain_id
        self.rng = np.random.default_rng(seed)
        self.upper_bounds = median_upper_bounds(builder, self.model_config)
        self.imputer = None
        if self.model_config.age_imputation:
            self.imputer = AgeImputer(builder.rows, builder.baseline, self.model_config.max_age)

    def _log_likelihood(self, params: ParameterVector, ages) -> float:
        return self.builder.log_likelihood(params, self.oracle, ages=ages,
                                           n_workers=self.sampler_config.oracle_workers)

    def _empirical_initial(self) -> ParameterVector:
        rows = self.builder.rows
        lo, hi = self.priors.threshold_range
        values = {}
        for sex in (MALE, FEMALE):
            ages = rows.loc[(rows["aff"] == 1) & (rows["sex"] == sex) & (rows["age"] > 0), "age"].dropna()
            lifetime = self.builder.baseline.lifetime_risk(sex)
            if ages.empty:
                return None
            first_quartile = float(ages.quantile(0.25))
            values[sex] = {
                "asymptote": self.rng.uniform(lifetime, 1),
                "threshold": float(np.clip(min(ages.min(), first_quartile) - 1, lo, hi)),
                "median": float(ages.median()),
                "first_quartile": first_quartile,
            }
        return ParameterVector.from_sexes(values[MALE], values[FEMALE])

    def _acceptable(self, params: ParameterVector) -> bool:
        return params.is_valid(self.upper_bounds) and np.isfinite(
            self.priors.log_prior(params, self.model_config.max_age))

    def initial_parameters(self) -> ParameterVector:
        """
        Empirical starting point from affected ages, or a valid prior draw.

        Raises:
            RuntimeError: If no valid prior draw is found within max_init_attempts.
        """
        if self.sampler_config.init_method is InitMethod.EMPIRICAL:
            params = self._empirical_initial()
            if params is not None and self._acceptable(params):
                return params
            logger.info("Chain %s: empirical initial values invalid; drawing from the prior.", self.chain_id)

        for _ in range(self.sampler_config.max_init_attempts):
            params = self.priors.draw(self.rng, self.model_config.max_age)
            if self._acceptable(params):
                return params
        raise RuntimeError(
            f"Chain {self.chain_id}: no valid initial parameters after "
            f"{self.sampler_config.max_init_attempts} prior draws."
        )

    def run(self) -> ChainResult:
        """
        Runs the chain for `sampler_config.n_iter` iterations.

        Returns:
            ChainResult
        """
        cfg = self.sampler_config
        n_iter, max_age = cfg.n_iter, self.model_config.max_age
        logger.info("Chain %s: starting %d iterations (seed %s).", self.chain_id, n_iter, self.seed)

        current = self.initial_parameters()
        current_arr = current.to_array()
        ages = self.builder.ages
        if self.imputer is not None and len(self.imputer):
            ages = self.imputer.initial_ages(ages, self.priors.threshold_range[0], self.rng)
        ll_current = self._log_likelihood(current, ages)
        lp_current = self.priors.log_prior(current, max_age)

        covariance = np.diag(cfg.proposal_variances)
        adapt_start = max(cfg.burn_in * n_iter, 3)
        identity = np.eye(N_PARAMS)

        samples = np.empty((n_iter, N_PARAMS))
        proposals = np.empty((n_iter, N_PARAMS))
        ll_cur_hist = np.empty(n_iter)
        lp_cur_hist = np.empty(n_iter)
        ll_prop_hist = np.full(n_iter, np.nan)
        lp_prop_hist = np.full(n_iter, np.nan)
        ratio_hist = np.full(n_iter, np.nan)
        num_rejections = 0

        iterations = tqdm(range(n_iter), desc=f"Chain {self.chain_id}", disable=not cfg.progress)
        for i in iterations:
            if self.imputer is not None and len(self.imputer):
                ages = self.imputer.impute(ages, current, self.rng)
                ll_current = self._log_likelihood(current, ages)

            proposal_arr = self.rng.multivariate_normal(current_arr, covariance)
            proposal_arr[:2] = fold_asymptote(proposal_arr[:2])
            proposals[i] = proposal_arr
            proposal = ParameterVector.from_array(proposal_arr)

            accepted = False
            if proposal.is_valid(self.upper_bounds):
                lp_proposal = self.priors.log_prior(proposal, max_age)
                if np.isfinite(lp_proposal):
                    ll_proposal = self._log_likelihood(proposal, ages)
                    ratio = (ll_proposal + lp_proposal) - (ll_current + lp_current)
                    ll_prop_hist[i], lp_prop_hist[i], ratio_hist[i] = ll_proposal, lp_proposal, ratio
                    if np.log(self.rng.uniform()) < ratio:
                        current, current_arr = proposal, proposal_arr
                        ll_current, lp_current = ll_proposal, lp_proposal
                        accepted = True
            if not accepted:
                num_rejections += 1

            samples[i] = current_arr
            ll_cur_hist[i] = ll_current
            lp_cur_hist[i] = lp_current

            if cfg.adaptive and i > adapt_start and i % cfg.adapt_interval == 0:
                empirical = np.cov(samples[:i + 1], rowvar=False)
                covariance = cfg.scale * empirical + cfg.epsilon * cfg.scale * identity
                covariance = (covariance + covariance.T) / 2

        result = ChainResult(
            chain_id=self.chain_id,
            seed=self.seed,
            samples=samples,
            proposals=proposals,
            loglikelihood_current=ll_cur_hist,
            loglikelihood_proposal=ll_prop_hist,
            logprior_current=lp_cur_hist,
            logprior_proposal=lp_prop_hist,
            acceptance_ratio=ratio_hist,
            covariance=covariance,
            num_rejections=num_rejections,
            n_iter=n_iter,
        )
        logger.info("Chain %s: finished with rejection rate %.3f.", self.chain_id, result.rejection_rate)
        return result


def run_chain(builder: LikelihoodBuilder, priors: PriorDistributions, oracle,
              sampler_config: SamplerConfig, seed: int, chain_id: int) -> ChainResult:
    """Builds and runs one sampler; used as the unit of work for parallel chains."""
    return AdaptiveSampler(builder, priors, oracle, sampler_config, seed=seed, chain_id=chain_id).run()
