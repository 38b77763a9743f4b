"""
Population baseline cancer risk, by age and sex.

`BaselineRiskDatabase` holds a long-format table of age-specific risks for
several cancers, reference populations and races; `lookup` returns an
immutable `BaselineRiskTable` for one combination. Tables are never modified
in place; they are passed explicitly to whatever needs them.
"""
import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .config import MALE, FEMALE, resolve_cancer_code

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("cancer", "gene", "race", "sex", "age", "type", "penetrance")
_SEX_LABELS = {"male": MALE, "m": MALE, "1": MALE, "female": FEMALE, "f": FEMALE, "2": FEMALE}


def _sex_code(value) -> int:
    key = str(value).strip().lower()
    if key not in _SEX_LABELS:
        raise ValueError(f"Unrecognised sex label {value!r} in baseline table.")
    return _SEX_LABELS[key]


def _readonly(values) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class BaselineRiskTable:
    """
    Age-specific baseline risk for one cancer.

    Attributes:
        cancer (str): Short cancer code, e.g. 'BC'.
        incidence (np.ndarray): Shape (2, max_age). Row 0 male, row 1 female; column
                                k is the probability of onset at age k + 1.
    """
    cancer: str
    incidence: np.ndarray

    def __post_init__(self):
        incidence = np.asarray(self.incidence, dtype=float)
        if incidence.ndim != 2 or incidence.shape[0] != 2:
            raise ValueError("incidence must have shape (2, max_age): one row per sex.")
        if np.any(~np.isfinite(incidence)) or np.any(incidence < 0):
            raise ValueError("Baseline incidence must be finite and non-negative.")
        if np.any(incidence.sum(axis=1) >= 1):
            raise ValueError("Baseline lifetime risk must be below 1 for both sexes.")
        object.__setattr__(self, "incidence", _readonly(incidence))
        object.__setattr__(self, "cumulative", _readonly(np.cumsum(incidence, axis=1)))

    @classmethod
    def from_arrays(cls, cancer: str, male, female) -> 'BaselineRiskTable':
        male = np.asarray(male, dtype=float)
        female = np.asarray(female, dtype=float)
        if male.shape != female.shape:
            raise ValueError("Male and female baseline arrays must have the same length.")
        return cls(cancer=cancer, incidence=np.vstack([male, female]))

    @property
    def max_age(self) -> int:
        return self.incidence.shape[1]

    def truncated(self, max_age: int) -> 'BaselineRiskTable':
        """Returns a table restricted to ages 1..max_age."""
        if max_age > self.max_age:
            raise ValueError(f"Baseline table covers ages up to {self.max_age}, but max_age is {max_age}.")
        if max_age == self.max_age:
            return self
        return BaselineRiskTable(cancer=self.cancer, incidence=self.incidence[:, :max_age])

    def _index(self, ages, sexes):
        ages = np.clip(np.asarray(ages, dtype=int), 1, self.max_age) - 1
        rows = np.where(np.asarray(sexes) == MALE, 0, 1)
        return rows, ages

    def incidence_at(self, ages, sexes) -> np.ndarray:
        """Probability of onset at each (integer) age for the given sex codes."""
        rows, cols = self._index(ages, sexes)
        return self.incidence[rows, cols]

    def cumulative_at(self, ages, sexes) -> np.ndarray:
        """Cumulative baseline risk up to and including each age."""
        rows, cols = self._index(ages, sexes)
        return self.cumulative[rows, cols]

    def lifetime_risk(self, sex: int) -> float:
        return float(self.cumulative[0 if sex == MALE else 1, -1])

    def midpoint_age(self, sex: int) -> int:
        """First age whose cumulative risk reaches half of the lifetime risk."""
        cum = self.cumulative[0 if sex == MALE else 1]
        return int(np.argmax(cum >= cum[-1] / 2) + 1)

    def normalized_cdf(self, sex: int) -> np.ndarray:
        """Cumulative risk rescaled to end at 1, used for inverse-CDF age draws."""
        cum = self.cumulative[0 if sex == MALE else 1]
        return cum / cum[-1]


class BaselineRiskDatabase:
    """
    Long-format collection of baseline risks.

    Attributes:
        data (pd.DataFrame): Rows with columns cancer, gene, race, sex, age, type, penetrance.
                             `gene` names the reference population (e.g. 'SEER') and `type`
                             the risk kind (e.g. 'Net', 'Crude').
    """
    def __init__(self, data: pd.DataFrame):
        if not isinstance(data, pd.DataFrame):
            raise TypeError("Baseline data must be a pandas DataFrame.")
        missing = [c for c in REQUIRED_COLUMNS if c not in data.columns]
        if missing:
            raise ValueError(f"Baseline data is missing required columns: {missing}")
        self.data = data.loc[:, list(REQUIRED_COLUMNS)].copy()
        self.data["sex"] = self.data["sex"].map(_sex_code)

    @classmethod
    def from_csv(cls, file_path: str) -> 'BaselineRiskDatabase':
        return cls(pd.read_csv(file_path))

    def __repr__(self):
        cancers = sorted(self.data["cancer"].unique())
        return f"BaselineRiskDatabase({len(self.data)} rows, cancers={cancers})"

    def lookup(self, cancer: str, gene: str = "SEER", race: str = "All_Races",
               kind: str = "Net") -> BaselineRiskTable:
        """
        Extracts the per-age, per-sex risk for one cancer.

        Args:
            cancer (str): Cancer name or short code.
            gene (str): Reference population marker.
            race (str): Race label.
            kind (str): Risk kind.

        Returns:
            BaselineRiskTable

        Raises:
            ValueError: If any dimension value is absent, or ages are not 1..n for both sexes.
        """
        code = resolve_cancer_code(cancer)
        subset = self.data
        for column, value in (("cancer", (cancer, code)), ("gene", (gene,)), ("race", (race,)), ("type", (kind,))):
            matched = subset[subset[column].isin(value)]
            if matched.empty:
                available = sorted(subset[column].astype(str).unique())
                raise ValueError(f"No baseline rows for {column}={value[0]!r}. Available: {available}")
            subset = matched

        arrays = {}
        for sex in (MALE, FEMALE):
            rows = subset[subset["sex"] == sex].sort_values("age")
            ages = rows["age"].to_numpy()
            if rows.empty or not np.array_equal(ages, np.arange(1, len(ages) + 1)):
                raise ValueError(f"Baseline ages for {code}, sex {sex} must run 1..max_age without gaps.")
            arrays[sex] = rows["penetrance"].to_numpy(dtype=float)
        logger.debug("Loaded baseline for %s (%s, %s, %s) with %d ages.", code, gene, race, kind, len(arrays[MALE]))
        return BaselineRiskTable.from_arrays(code, arrays[MALE], arrays[FEMALE])
