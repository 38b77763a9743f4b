# tests/test_estimation.py

import os
import sys

import numpy as np
import pandas as pd
import pytest
from joblib import cpu_count

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from synthetic import nuclear_family, simulate_families, synthetic_baseline, synthetic_database
from penetrance.estimation import (
    estimate_penetrance, chain_seeds, PenetranceInputError, UnsupportedModelError, PenetranceResult,
)


@pytest.fixture(scope="module")
def families():
    return simulate_families(8, np.random.default_rng(21))


class TestInputValidation:

    def test_unsupported_cancer_and_gene(self, families):
        with pytest.raises(UnsupportedModelError):
            estimate_penetrance(families, "Lung", "MLH1", synthetic_baseline())
        with pytest.raises(UnsupportedModelError):
            estimate_penetrance(families, "Colorectal", "XYZ1", synthetic_baseline())

    def test_missing_data(self):
        with pytest.raises(PenetranceInputError, match="must be provided"):
            estimate_penetrance([], "Colorectal", "MLH1", synthetic_baseline())
        with pytest.raises(PenetranceInputError):
            estimate_penetrance(None, "Colorectal", "MLH1", synthetic_baseline())

    def test_counts_and_fractions(self, families):
        with pytest.raises(PenetranceInputError, match="n_chains"):
            estimate_penetrance(families, "Colorectal", "MLH1", synthetic_baseline(), n_chains=0)
        with pytest.raises(PenetranceInputError, match="n_iter_per_chain"):
            estimate_penetrance(families, "Colorectal", "MLH1", synthetic_baseline(), n_iter_per_chain=-5)
        with pytest.raises(PenetranceInputError, match="burn_in"):
            estimate_penetrance(families, "Colorectal", "MLH1", synthetic_baseline(), burn_in=1.5)

    def test_too_many_chains(self, families):
        with pytest.raises(PenetranceInputError, match="CPU cores"):
            estimate_penetrance(families, "Colorectal", "MLH1", synthetic_baseline(), n_chains=cpu_count() + 1)
        with pytest.raises(PenetranceInputError, match="oracle_workers"):
            estimate_penetrance(families, "Colorectal", "MLH1", synthetic_baseline(),
                                oracle_workers=cpu_count() + 1)

    def test_bad_baseline_type(self, families):
        with pytest.raises(TypeError, match="baseline"):
            estimate_penetrance(families, "Colorectal", "MLH1", {"COL": [0.1]}, n_iter_per_chain=5)


def test_chain_seeds_distinct_and_reproducible():
    seeds = chain_seeds(8, seed=123)
    assert len(set(seeds)) == 8
    assert seeds == chain_seeds(8, seed=123)


def test_small_run(families):
    result = estimate_penetrance(
        families, "Colorectal", "MLH1", synthetic_database(),
        n_chains=1, n_iter_per_chain=40, burn_in=0.25, thinning=2, median_max=False, seed=3, n_jobs=1,
    )
    assert isinstance(result, PenetranceResult)
    assert len(result.samples) == 15
    assert set(result.samples["chain"]) == {1}
    assert len(result.chains[0].samples) == 40
    assert list(result.curves.columns) == ["sex", "age", "mean", "median", "lower", "upper"]
    assert "median_female" in result.summary.index
    assert 0 <= result.rejection_rates.iloc[0] <= 1
    assert result.twin_mapping.empty


def test_twins_and_sex_stratification():
    family = nuclear_family()
    twin = family.iloc[[3]].copy()
    twin["ID"] = 5
    twin["isProband"] = 0
    family = pd.concat([family, twin], ignore_index=True)
    family.loc[[3, 4], "Twins"] = 1
    result = estimate_penetrance(
        [family, nuclear_family(2)], "Colorectal", "MLH1", synthetic_baseline(),
        n_chains=1, n_iter_per_chain=10, sex="female", median_max=False, init_method="prior", seed=1, n_jobs=1,
    )
    assert len(result.twin_mapping) == 2
    assert result.twin_mapping["kept"].sum() == 1


def test_high_rejection_warning(families):
    with pytest.warns(RuntimeWarning, match="Low acceptance rate"):
        estimate_penetrance(
            families, "Colorectal", "MLH1", synthetic_baseline(),
            n_chains=1, n_iter_per_chain=20, median_max=False, seed=9, n_jobs=1,
            proposal_variances=(5.0, 5.0, 1e4, 1e4, 1e5, 1e5, 1e5, 1e5),
        )


class FailingOracle:
    def __call__(self, rows, geno_freq, trans, lik, n_workers=1):
        raise RuntimeError("pedigree evaluation failed")


@pytest.mark.parametrize("n_jobs", [1, 2])
def test_failed_chain_aborts_run(families, n_jobs):
    if cpu_count() < 2:
        pytest.skip("needs two CPU cores for two chains")
    result = None
    with pytest.raises(RuntimeError, match="pedigree evaluation failed"):
        result = estimate_penetrance(
            families, "Colorectal", "MLH1", synthetic_baseline(),
            n_chains=2, n_iter_per_chain=10, median_max=False, seed=4, n_jobs=n_jobs,
            oracle=FailingOracle(),
        )
    assert result is None


@pytest.mark.slow
def test_recovers_generating_curve():
    if cpu_count() < 4:
        pytest.skip("needs four CPU cores for four chains")
    shape, scale, shift, asymptote = 2.5, 50.0, 20.0, 0.9
    true_median = shift + scale * np.log(2) ** (1 / shape)
    true_quartile = shift + scale * (-np.log(0.75)) ** (1 / shape)

    families = simulate_families(120, np.random.default_rng(2024), shape=shape, scale=scale,
                                 shift=shift, asymptote=asymptote)
    result = estimate_penetrance(
        families, "Colorectal", "MLH1", synthetic_baseline(),
        n_chains=4, n_iter_per_chain=1000, burn_in=0.1, median_max=False, seed=7,
        proposal_variances=(0.002, 0.002, 1.0, 1.0, 2.0, 2.0, 2.0, 2.0),
    )
    posterior = result.samples.median()
    for sex in ("male", "female"):
        assert posterior[f"median_{sex}"] == pytest.approx(true_median, rel=0.15)
        assert posterior[f"first_quartile_{sex}"] == pytest.approx(true_quartile, rel=0.15)
        assert posterior[f"asymptote_{sex}"] == pytest.approx(asymptote, rel=0.15)
