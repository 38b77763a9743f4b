"""
Genotype-conditional likelihood of each individual's phenotype.

`LikelihoodBuilder` precomputes everything that does not depend on the
sampled parameters (ages, masks, modifier factors, twin plan, genetic model)
and then rebuilds the full individual x genotype matrix from scratch for
every parameter vector.
"""
import logging

import numpy as np
import pandas as pd

from .baseline import BaselineRiskTable
from .config import (
    ModelConfig, NonCarrierModel, SexStratification,
    MALE, FEMALE, EXCLUDED_SEX_LIKELIHOOD, LOGLIK_PENALTY,
)
from .core.genetics import genotype_frequencies, transmission_matrix, carrier_weight
from .core.parameters import ParameterVector
from .modifiers import GermlineTestModifier, MarkerTestModifier, TwinCollapse

logger = logging.getLogger(__name__)

_GENOTYPE_MASKS = {
    "1/1": (1.0, 0.0, 0.0),
    "1/2": (0.0, 1.0, 0.0),
    "2/2": (0.0, 0.0, 1.0),
}


def penalize_loglikelihood(value: float) -> float:
    """Floors -inf / NaN pedigree log-likelihoods to LOGLIK_PENALTY."""
    if value is None or not np.isfinite(value):
        return LOGLIK_PENALTY
    return float(value)


class LikelihoodBuilder:
    """
    Builds the individual x genotype likelihood matrix for a parameter vector.

    Attributes:
        rows (pd.DataFrame): Transformed pedigree rows (before twin collapsing).
        baseline (BaselineRiskTable): Population risk for the modelled cancer.
        config (ModelConfig): Resolved model settings.
        twins (TwinCollapse): Twin plan; `twins.rows` are the rows passed to the oracle.
        geno_freq (np.ndarray): Founder genotype frequencies.
        trans (np.ndarray): Transmission matrix, rows mother * n_geno + father.
    """
    def __init__(self, rows: pd.DataFrame, baseline: BaselineRiskTable, config: ModelConfig,
                 germline: GermlineTestModifier = None, marker: MarkerTestModifier = None):
        if not isinstance(baseline, BaselineRiskTable):
            raise TypeError("baseline must be a BaselineRiskTable.")
        if not isinstance(config, ModelConfig):
            raise TypeError("config must be a ModelConfig.")
        self.rows = rows.reset_index(drop=True)
        self.config = config
        self.baseline = baseline.truncated(config.max_age)
        self.n_geno = config.n_genotypes

        self.sex = self.rows["sex"].to_numpy()
        self.affected = (self.rows["aff"] == 1).to_numpy()
        self.ages = self.rows["age"].to_numpy(dtype=float)

        model_genes = [config.gene]
        imperfect_genes = germline.genes_for(model_genes) if germline is not None else []
        self.genotype_mask = self._genotype_mask(apply_tests=not imperfect_genes)

        factors = np.ones((len(self.rows), self.n_geno))
        if germline is not None:
            factors *= germline.factors(self.rows, model_genes, self.n_geno)
        if marker is not None:
            factors *= marker.factors(self.rows, config.cancer_code, self.n_geno)
        self.modifier_factors = factors

        if config.sex is SexStratification.MALE:
            self.excluded = self.sex != MALE
        elif config.sex is SexStratification.FEMALE:
            self.excluded = self.sex != FEMALE
        else:
            self.excluded = np.zeros(len(self.rows), dtype=bool)

        self.twins = TwinCollapse(self.rows)
        self.geno_freq = genotype_frequencies(config.allele_frequency, config.homozygote)
        self.trans = transmission_matrix(config.homozygote)
        self.carrier_weight = carrier_weight(config.allele_frequency, config.homozygote)

        if config.non_carrier_model is NonCarrierModel.BASELINE:
            self._non_carrier = self._baseline_non_carrier
        else:
            self._non_carrier = self._derived_non_carrier

    @property
    def oracle_rows(self) -> pd.DataFrame:
        return self.twins.rows

    def _genotype_mask(self, apply_tests: bool) -> np.ndarray:
        mask = np.ones((len(self.rows), self.n_geno))
        if not apply_tests:
            return mask
        for i, geno in enumerate(self.rows["geno"]):
            if geno in _GENOTYPE_MASKS:
                if geno == "2/2" and self.n_geno == 2:
                    raise ValueError(
                        f"Individual {self.rows.at[i, 'indiv']} has genotype 2/2 but homozygotes are not modelled."
                    )
                mask[i] = _GENOTYPE_MASKS[geno][:self.n_geno]
        return mask

    def _baseline_non_carrier(self, ages, sexes, affected, carrier_risk):
        ages_int = np.floor(ages).astype(int)
        incidence = self.baseline.incidence_at(ages_int, sexes)
        cumulative = self.baseline.cumulative_at(ages_int, sexes)
        return np.where(affected, incidence, 1.0 - cumulative)

    def _derived_non_carrier(self, ages, sexes, affected, carrier_risk):
        ages_int = np.floor(ages).astype(int)
        w = self.carrier_weight
        incidence = self.baseline.incidence_at(ages_int, sexes)
        cumulative = self.baseline.cumulative_at(ages_int, sexes)
        baseline = np.where(affected, incidence, cumulative)
        derived = np.maximum((baseline - w * carrier_risk) / (1 - w), 0.0)
        return np.where(affected, derived, 1.0 - derived)

    def build(self, params: ParameterVector, ages: np.ndarray = None) -> np.ndarray:
        """
        Builds the collapsed likelihood matrix for `params`.

        Args:
            params (ParameterVector): Must satisfy the ordering invariant.
            ages (np.ndarray, optional): Replacement ages (e.g. imputed), aligned with `rows`.

        Returns:
            np.ndarray: Shape (n_individuals_after_twin_collapse, n_geno).
        """
        ages = self.ages if ages is None else np.asarray(ages, dtype=float)
        n = len(self.rows)
        lik = np.ones((n, self.n_geno))

        informative = np.isfinite(ages) & (ages > 0)
        ages_eval = np.clip(np.where(informative, ages, 1.0), 1.0, self.config.max_age)

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            for sex in (MALE, FEMALE):
                idx = informative & (self.sex == sex)
                if not idx.any():
                    continue
                curve = params.weibull(sex)
                a = ages_eval[idx]
                aff = self.affected[idx]
                density = curve.density(a)
                penetrance = curve.penetrance(a)
                carrier = np.where(aff, density, 1.0 - penetrance)
                carrier_risk = np.where(aff, density, penetrance)
                non_carrier = self._non_carrier(a, self.sex[idx], aff, carrier_risk)
                lik[idx, 0] = non_carrier
                lik[idx, 1:] = carrier[:, None]

        lik[~np.isfinite(lik)] = 0.0
        lik *= self.genotype_mask
        lik *= self.modifier_factors
        lik[self.excluded] = EXCLUDED_SEX_LIKELIHOOD
        return self.twins.apply(lik)

    def log_likelihood(self, params: ParameterVector, oracle, ages: np.ndarray = None,
                       n_workers: int = 1) -> float:
        """Pedigree log-likelihood of `params`, floored to the penalty when degenerate."""
        lik = self.build(params, ages=ages)
        value = oracle(self.oracle_rows, self.geno_freq, self.trans, lik, n_workers=n_workers)
        if not np.isfinite(value):
            logger.debug("Degenerate pedigree log-likelihood %s; applying penalty.", value)
        return penalize_loglikelihood(value)
