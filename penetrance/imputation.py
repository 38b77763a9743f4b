"""
Imputation of unknown diagnosis ages for affected individuals.

Unknown ages are redrawn every iteration by inverse-CDF sampling: carriers
with a positive genotype test from the current carrier curve of their sex,
everyone else from the normalised baseline cumulative risk. Draws are
truncated at the individual's censoring age (or max_age).
"""
import logging

import numpy as np
import pandas as pd

from .baseline import BaselineRiskTable
from .config import MALE, FEMALE
from .core.parameters import ParameterVector

logger = logging.getLogger(__name__)


class AgeImputer:
    """
    Attributes:
        indices (np.ndarray): Row positions with an affected status but unknown age.
        upper (np.ndarray): Largest admissible age for each of those rows.
    """
    def __init__(self, rows: pd.DataFrame, baseline: BaselineRiskTable, max_age: int):
        rows = rows.reset_index(drop=True)
        ages = rows["age"].to_numpy(dtype=float)
        affected = (rows["aff"] == 1).to_numpy()
        self.indices = np.flatnonzero(affected & ~np.isfinite(ages))
        self.max_age = max_age
        self.baseline = baseline.truncated(max_age)
        self.sex = rows["sex"].to_numpy()[self.indices]
        self.carrier = (rows["geno"].to_numpy()[self.indices] == "1/2")
        cur = rows["cur_age"].to_numpy(dtype=float)[self.indices]
        self.upper = np.where(np.isfinite(cur) & (cur >= 1), np.minimum(cur, max_age), max_age)
        logger.info("Imputing diagnosis ages for %d affected individuals.", len(self.indices))

    def __len__(self):
        return len(self.indices)

    def initial_ages(self, ages: np.ndarray, threshold_min: float, rng: np.random.Generator) -> np.ndarray:
        """Fills unknown ages uniformly between the threshold prior minimum and the upper bound."""
        ages = np.array(ages, dtype=float)
        low = np.minimum(max(threshold_min, 1.0), self.upper)
        ages[self.indices] = rng.uniform(low, self.upper)
        return ages

    def _baseline_draw(self, sex: int, upper: float, rng: np.random.Generator) -> float:
        cdf = self.baseline.normalized_cdf(sex)
        top = cdf[int(upper) - 1]
        u = rng.uniform(0, top) if top > 0 else 0.0
        return float(np.searchsorted(cdf, u, side="left") + 1)

    def impute(self, ages: np.ndarray, params: ParameterVector, rng: np.random.Generator) -> np.ndarray:
        """Returns a copy of `ages` with every unknown diagnosis age redrawn."""
        ages = np.array(ages, dtype=float)
        curves = {MALE: params.weibull(MALE), FEMALE: params.weibull(FEMALE)}
        for k, pos in enumerate(self.indices):
            sex, upper = self.sex[k], self.upper[k]
            if self.carrier[k]:
                curve = curves[sex]
                top = float(curve.cdf(upper))
                if top > 0:
                    ages[pos] = float(np.clip(curve.quantile(rng.uniform(0, top)), 1, upper))
                    continue
            ages[pos] = min(self._baseline_draw(sex, upper, rng), upper)
        return ages
