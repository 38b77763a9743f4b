"""
Quantile parameterisation of the carrier penetrance curve.

A carrier's cumulative risk at age t is gamma * F(t - delta), where F is a
Weibull CDF whose median and first quartile sit at the ages M and Q. The
sampler works on (asymptote, threshold, median, first quartile) per sex;
the Weibull shape and scale are derived from them on demand.
"""
from dataclasses import dataclass, astuple, fields

import numpy as np
from scipy.stats import weibull_min

from ..config import MALE, FEMALE, PARAMETER_NAMES

_LOG_QUARTILE_RATIO = np.log(np.log(1 - 0.25) / np.log(1 - 0.5))


def calculate_weibull_parameters(median: float, first_quartile: float, threshold: float,
                                 asymptote: float = None) -> tuple[float, float]:
    """
    Derives the Weibull shape (alpha) and scale (beta) from quantile ages.

    The curve is shifted by `threshold`, and `median` / `first_quartile` are the
    ages at which the penetrance reaches half and a quarter of `asymptote`.
    The asymptote does not enter the shape and scale; it is accepted so that
    callers can pass a sex's four parameters together.

    Args:
        median (float): Age M at which penetrance equals 0.5 * asymptote.
        first_quartile (float): Age Q at which penetrance equals 0.25 * asymptote.
        threshold (float): Onset age delta before which the carrier risk is zero.
        asymptote (float, optional): Lifetime carrier risk gamma. Accepted but ignored;
            alpha and beta depend on the quantile ages only.

    Returns:
        tuple[float, float]: (alpha, beta); arrays when array arguments are given.
    """
    median = np.asarray(median, dtype=float)
    first_quartile = np.asarray(first_quartile, dtype=float)
    threshold = np.asarray(threshold, dtype=float)
    alpha = _LOG_QUARTILE_RATIO / np.log((first_quartile - threshold) / (median - threshold))
    beta = (median - threshold) / np.log(2) ** (1 / alpha)
    if np.ndim(alpha) == 0:
        return float(alpha), float(beta)
    return alpha, beta


def validate_weibull_parameters(first_quartile: float, median: float, threshold: float,
                                asymptote: float) -> bool:
    """Returns True when the four values define a Weibull curve."""
    values = (first_quartile, median, threshold, asymptote)
    if not all(np.isfinite(v) for v in values):
        return False
    return bool(
        median > 0
        and first_quartile > 0
        and threshold >= 0
        and 0 < asymptote < 1
        and first_quartile > threshold
        and median > threshold
        and first_quartile != median
    )


def fold_asymptote(x):
    """Reflects values into [0, 1]: x < 0 -> -x, x > 1 -> 2 - x."""
    x = np.asarray(x, dtype=float)
    folded = np.where(x < 0, -x, x)
    folded = np.where(folded > 1, 2 - folded, folded)
    return folded if folded.ndim else float(folded)


@dataclass(frozen=True)
class WeibullParams:
    """Derived Weibull curve for one sex."""
    alpha: float
    beta: float
    threshold: float
    asymptote: float

    def cdf(self, ages) -> np.ndarray:
        """Unscaled Weibull CDF at `ages - threshold` (0 before the threshold)."""
        return weibull_min.cdf(np.asarray(ages, dtype=float) - self.threshold, self.alpha, scale=self.beta)

    def pdf(self, ages) -> np.ndarray:
        return weibull_min.pdf(np.asarray(ages, dtype=float) - self.threshold, self.alpha, scale=self.beta)

    def penetrance(self, ages) -> np.ndarray:
        """Cumulative carrier risk gamma * F(age - threshold)."""
        return self.asymptote * self.cdf(ages)

    def density(self, ages) -> np.ndarray:
        return self.asymptote * self.pdf(ages)

    def survival(self, ages) -> np.ndarray:
        return 1.0 - self.penetrance(ages)

    def quantile(self, probabilities) -> np.ndarray:
        """Ages at which the unscaled CDF reaches `probabilities`."""
        return weibull_min.ppf(probabilities, self.alpha, scale=self.beta) + self.threshold


@dataclass(frozen=True)
class ParameterVector:
    """
    The eight sampled scalars, in the order used for proposals and storage.

    Attributes:
        asymptote_male, asymptote_female (float): Lifetime carrier risk.
        threshold_male, threshold_female (float): Age of earliest onset.
        median_male, median_female (float): Age reaching half the lifetime risk.
        first_quartile_male, first_quartile_female (float): Age reaching a quarter of it.
    """
    asymptote_male: float
    asymptote_female: float
    threshold_male: float
    threshold_female: float
    median_male: float
    median_female: float
    first_quartile_male: float
    first_quartile_female: float

    @classmethod
    def from_array(cls, values) -> 'ParameterVector':
        values = np.asarray(values, dtype=float).ravel()
        if values.size != len(PARAMETER_NAMES):
            raise ValueError(f"Expected {len(PARAMETER_NAMES)} parameter values, got {values.size}.")
        return cls(*(float(v) for v in values))

    @classmethod
    def from_sexes(cls, male: dict, female: dict) -> 'ParameterVector':
        """Builds a vector from two dicts with keys asymptote, threshold, median, first_quartile."""
        return cls(
            male["asymptote"], female["asymptote"],
            male["threshold"], female["threshold"],
            male["median"], female["median"],
            male["first_quartile"], female["first_quartile"],
        )

    def to_array(self) -> np.ndarray:
        return np.array(astuple(self), dtype=float)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def for_sex(self, sex: int) -> dict:
        """Returns asymptote, threshold, median and first_quartile for sex code MALE or FEMALE."""
        if sex == MALE:
            suffix = "male"
        elif sex == FEMALE:
            suffix = "female"
        else:
            raise ValueError(f"Unknown sex code {sex!r}; expected {MALE} (male) or {FEMALE} (female).")
        return {
            name: getattr(self, f"{name}_{suffix}")
            for name in ("asymptote", "threshold", "median", "first_quartile")
        }

    def is_valid(self, upper_bounds: dict = None) -> bool:
        """
        Checks 0 <= threshold < first_quartile < median <= upper bound and 0 < asymptote < 1
        for both sexes.

        Args:
            upper_bounds (dict, optional): Maps sex code to the largest admissible median.
        """
        for sex in (MALE, FEMALE):
            p = self.for_sex(sex)
            if not validate_weibull_parameters(p["first_quartile"], p["median"], p["threshold"], p["asymptote"]):
                return False
            if not p["first_quartile"] < p["median"]:
                return False
            if upper_bounds is not None and p["median"] > upper_bounds[sex]:
                return False
        return True

    def weibull(self, sex: int) -> WeibullParams:
        p = self.for_sex(sex)
        if not validate_weibull_parameters(p["first_quartile"], p["median"], p["threshold"], p["asymptote"]):
            raise ValueError(f"Parameters for sex {sex} do not define a Weibull curve: {p}")
        alpha, beta = calculate_weibull_parameters(p["median"], p["first_quartile"], p["threshold"], p["asymptote"])
        return WeibullParams(alpha=alpha, beta=beta, threshold=p["threshold"], asymptote=p["asymptote"])
