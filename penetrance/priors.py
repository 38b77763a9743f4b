"""
Prior distributions of the penetrance parameters and their elicitation from
published summary ages.

The asymptote has a Beta prior, the threshold a Uniform prior, and the median
and first quartile Beta priors on the rescaled quantities
(M - delta) / (max_age - delta) and (Q - delta) / (M - delta).
"""
import copy
import logging

import numpy as np
import pandas as pd
from scipy.stats import beta as beta_dist

from .baseline import BaselineRiskTable
from .config import MALE, FEMALE
from .core.parameters import ParameterVector

logger = logging.getLogger(__name__)

DEFAULT_PRIOR_PARAMS = {
    "asymptote": {"g1": 1.0, "g2": 1.0},
    "threshold": {"min": 15.0, "max": 25.0},
    "median": {"m1": 2.0, "m2": 2.0},
    "first_quartile": {"q1": 6.0, "q2": 3.0},
}

DEFAULT_RISK_PROPORTION = {"median": 0.5, "first_quartile": 0.9, "max_age": 0.1}

DISTRIBUTION_ROWS = ("min", "first_quartile", "median", "max")


class PriorDistributions:
    """
    Priors shared by both sexes.

    Attributes:
        params (dict): Hyperparameters in the layout of DEFAULT_PRIOR_PARAMS.
    """
    def __init__(self, params: dict = None):
        params = copy.deepcopy(DEFAULT_PRIOR_PARAMS if params is None else params)
        required = {
            "asymptote": ("g1", "g2"), "threshold": ("min", "max"),
            "median": ("m1", "m2"), "first_quartile": ("q1", "q2"),
        }
        for name, keys in required.items():
            if name not in params or any(k not in params[name] for k in keys):
                raise ValueError(f"prior_params['{name}'] must define {keys}.")
        for name, keys in required.items():
            if name == "threshold":
                continue
            if any(not params[name][k] > 0 for k in keys):
                raise ValueError(f"Beta shape parameters of the {name} prior must be positive.")
        if not 0 <= params["threshold"]["min"] < params["threshold"]["max"]:
            raise ValueError("Threshold prior requires 0 <= min < max.")
        self.params = params

    def __repr__(self):
        return f"PriorDistributions({self.params})"

    @property
    def threshold_range(self) -> tuple[float, float]:
        return self.params["threshold"]["min"], self.params["threshold"]["max"]

    def _log_prior_sex(self, asymptote, threshold, median, first_quartile, max_age) -> float:
        lo, hi = self.threshold_range
        if not lo <= threshold <= hi:
            return -np.inf
        scaled_median = (median - threshold) / (max_age - threshold)
        scaled_quartile = (first_quartile - threshold) / (median - threshold)
        p = self.params
        return float(
            beta_dist.logpdf(asymptote, p["asymptote"]["g1"], p["asymptote"]["g2"])
            - np.log(hi - lo)
            + beta_dist.logpdf(scaled_median, p["median"]["m1"], p["median"]["m2"])
            + beta_dist.logpdf(scaled_quartile, p["first_quartile"]["q1"], p["first_quartile"]["q2"])
        )

    def log_prior(self, params: ParameterVector, max_age: int) -> float:
        """Sum of both sexes' log prior densities; -inf outside the support."""
        total = 0.0
        with np.errstate(divide="ignore", invalid="ignore"):
            for sex in (MALE, FEMALE):
                p = params.for_sex(sex)
                total += self._log_prior_sex(p["asymptote"], p["threshold"], p["median"],
                                             p["first_quartile"], max_age)
        return total if np.isfinite(total) else -np.inf

    def draw(self, rng: np.random.Generator, max_age: int) -> ParameterVector:
        """One draw from the joint prior (no validity check)."""
        p = self.params
        values = {}
        for sex in (MALE, FEMALE):
            threshold = rng.uniform(*self.threshold_range)
            median = threshold + rng.beta(p["median"]["m1"], p["median"]["m2"]) * (max_age - threshold)
            first_quartile = threshold + rng.beta(p["first_quartile"]["q1"], p["first_quartile"]["q2"]) * (median - threshold)
            values[sex] = {
                "asymptote": rng.beta(p["asymptote"]["g1"], p["asymptote"]["g2"]),
                "threshold": threshold,
                "median": median,
                "first_quartile": first_quartile,
            }
        return ParameterVector.from_sexes(values[MALE], values[FEMALE])


def _check_numeric(values, what: str):
    values = pd.to_numeric(pd.Series(values), errors="coerce")
    if values.isna().any():
        raise ValueError(f"Missing or non-numeric {what} entries in the elicitation data.")
    return values.to_numpy(dtype=float)


def make_priors(distribution_data: pd.DataFrame = None, sample_size: int = None,
                ratio: float = None, prior_params: dict = None,
                risk_proportion: dict = None, baseline: BaselineRiskTable = None) -> PriorDistributions:
    """
    Builds the prior distributions, optionally eliciting them from summary ages.

    Args:
        distribution_data (pd.DataFrame, optional): Index 'min', 'first_quartile', 'median',
            'max' with columns 'age' and 'at_risk' (the number of individuals at risk at
            that age). An all-missing frame is treated as absent.
        sample_size (int, optional): Total sample size, used with `risk_proportion` when
            'at_risk' is missing.
        ratio (float, optional): Odds or relative risk of carriers; together with `baseline`
            it overrides the asymptote prior.
        prior_params (dict, optional): Hyperparameters used when no elicitation data is given.
        risk_proportion (dict, optional): Proportions at risk at the median, first quartile
            and maximum age. Defaults to DEFAULT_RISK_PROPORTION.
        baseline (BaselineRiskTable, optional): Source of the lifetime baseline risk for `ratio`.

    Returns:
        PriorDistributions

    Raises:
        ValueError: On missing or non-numeric elicitation entries, or `ratio` without `baseline`.
    """
    params = copy.deepcopy(prior_params if prior_params is not None else DEFAULT_PRIOR_PARAMS)

    has_data = distribution_data is not None and not distribution_data.isna().all().all()
    if has_data:
        missing_rows = [r for r in DISTRIBUTION_ROWS if r not in distribution_data.index]
        if missing_rows:
            raise ValueError(f"Elicitation data is missing rows: {missing_rows}")
        ages = dict(zip(DISTRIBUTION_ROWS, _check_numeric(distribution_data.loc[list(DISTRIBUTION_ROWS), "age"], "age")))
        min_age, max_age = ages["min"], ages["max"]
        median_age, quartile_age = ages["median"], ages["first_quartile"]
        if not min_age < quartile_age < median_age < max_age:
            raise ValueError("Elicitation ages must satisfy min < first_quartile < median < max.")

        at_risk = distribution_data.get("at_risk")
        if (at_risk is None or at_risk.isna().all()) and sample_size is not None:
            proportion = dict(DEFAULT_RISK_PROPORTION, **(risk_proportion or {}))
            risk_median = proportion["median"] * sample_size
            risk_quartile = proportion["first_quartile"] * sample_size
            risk_max = proportion["max_age"] * sample_size
        else:
            if at_risk is None:
                raise ValueError("Elicitation data needs 'at_risk' counts or a total sample_size.")
            counts = dict(zip(DISTRIBUTION_ROWS, _check_numeric(at_risk.loc[list(DISTRIBUTION_ROWS)], "at_risk")))
            risk_median, risk_quartile, risk_max = counts["median"], counts["first_quartile"], counts["max"]

        m1 = (median_age - min_age) / (max_age - min_age) * risk_median
        q1 = (quartile_age - min_age) / (median_age - min_age) * risk_quartile
        g1 = (max_age - min_age) / (max_age - min_age) * risk_max
        params = {
            "asymptote": {"g1": g1, "g2": g1},
            "threshold": {"min": 0.0, "max": min_age},
            "median": {"m1": m1, "m2": risk_median - m1},
            "first_quartile": {"q1": q1, "q2": risk_quartile - q1},
        }
        logger.info("Elicited priors from summary ages: %s", params)

    if ratio is not None:
        if baseline is None:
            raise ValueError("A baseline table is required to turn an OR/RR ratio into an asymptote prior.")
        lifetime = np.mean([baseline.lifetime_risk(MALE), baseline.lifetime_risk(FEMALE)])
        params["asymptote"] = {"g1": lifetime * ratio, "g2": lifetime * ratio}

    return PriorDistributions(params)
