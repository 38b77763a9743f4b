"""
Post-processing of sampler output: burn-in, thinning, pooling, summaries,
penetrance curves, and CSV export.
"""
import dataclasses
import logging
import os

import numpy as np
import pandas as pd
from scipy.stats import weibull_min

from .config import PARAMETER_NAMES, MALE, FEMALE
from .core.parameters import calculate_weibull_parameters
from .mcmc import ChainResult

logger = logging.getLogger(__name__)

_PER_ITERATION_FIELDS = (
    "samples", "proposals", "loglikelihood_current", "loglikelihood_proposal",
    "logprior_current", "logprior_proposal", "acceptance_ratio",
)


def _slice_chain(result: ChainResult, index) -> ChainResult:
    return dataclasses.replace(result, **{name: getattr(result, name)[index] for name in _PER_ITERATION_FIELDS})


def apply_burn_in(results: list, fraction: float) -> list:
    """
    Drops the first round(n * fraction) draws of every chain.

    Raises:
        ValueError: If `fraction` is not in [0, 1) or no draws would remain.
    """
    if not 0 <= fraction < 1:
        raise ValueError("burn_in must be a fraction in [0, 1).")
    trimmed = []
    for result in results:
        n = len(result.samples)
        drop = int(round(n * fraction))
        if drop >= n:
            raise ValueError(f"Burn-in of {fraction} leaves no draws in chain {result.chain_id}.")
        trimmed.append(_slice_chain(result, slice(drop, None)))
    return trimmed


def apply_thinning(results: list, factor: int) -> list:
    """
    Keeps every `factor`-th draw of every chain, starting with the first.

    Raises:
        ValueError: If `factor` is not a positive integer or exceeds a chain's length.
    """
    if not isinstance(factor, (int, np.integer)) or factor < 1:
        raise ValueError("thinning must be a positive integer.")
    for result in results:
        if factor > len(result.samples):
            raise ValueError(f"Thinning factor {factor} exceeds the {len(result.samples)} draws of chain {result.chain_id}.")
    return [_slice_chain(result, slice(None, None, factor)) for result in results]


def combine_chains(results: list) -> pd.DataFrame:
    """Pools all chains into one DataFrame with a 'chain' column."""
    if not results:
        raise ValueError("No chain results to combine.")
    frames = []
    for result in results:
        df = result.to_frame()
        df.insert(0, "chain", result.chain_id)
        frames.append(df)
    return pd.concat(frames, ignore_index=True)


def rejection_rates(results: list) -> pd.Series:
    return pd.Series({result.chain_id: result.rejection_rate for result in results}, name="rejection_rate")


def generate_summary(combined: pd.DataFrame) -> pd.DataFrame:
    """
    Summary statistics per parameter.

    Returns:
        pd.DataFrame: Index 'parameter'; columns mean, std, min, 25%, 50%, 75%, max.
    """
    columns = [c for c in PARAMETER_NAMES if c in combined.columns]
    summary = combined[columns].describe().T.drop(columns="count")
    summary.index.name = "parameter"
    return summary


def penetrance_curves(combined: pd.DataFrame, max_age: int, prob: float = 0.95) -> pd.DataFrame:
    """
    Pointwise posterior summaries of the carrier penetrance gamma * F(age - delta).

    Args:
        combined (pd.DataFrame): Pooled draws (see `combine_chains`).
        max_age (int): Curves are evaluated at ages 1..max_age.
        prob (float): Mass of the central credible interval.

    Returns:
        pd.DataFrame: Columns sex ('male' / 'female'), age, mean, median, lower, upper.
    """
    if not 0 < prob < 1:
        raise ValueError("prob must lie strictly between 0 and 1.")
    ages = np.arange(1, max_age + 1, dtype=float)
    tail = (1 - prob) / 2
    frames = []
    for sex, label in ((MALE, "male"), (FEMALE, "female")):
        gamma = combined[f"asymptote_{label}"].to_numpy()
        delta = combined[f"threshold_{label}"].to_numpy()
        median = combined[f"median_{label}"].to_numpy()
        quartile = combined[f"first_quartile_{label}"].to_numpy()
        valid = (delta >= 0) & (quartile > delta) & (median > quartile) & (gamma > 0) & (gamma < 1)
        if not valid.any():
            raise ValueError(f"No valid {label} draws to build a penetrance curve.")
        alpha, beta = calculate_weibull_parameters(median[valid], quartile[valid], delta[valid])
        curves = gamma[valid, None] * weibull_min.cdf(ages[None, :] - delta[valid, None],
                                                     alpha[:, None], scale=beta[:, None])
        frames.append(pd.DataFrame({
            "sex": label,
            "age": ages.astype(int),
            "mean": curves.mean(axis=0),
            "median": np.median(curves, axis=0),
            "lower": np.quantile(curves, tail, axis=0),
            "upper": np.quantile(curves, 1 - tail, axis=0),
        }))
    return pd.concat(frames, ignore_index=True)


def save_summary_df(summary_df: pd.DataFrame, file_path: str) -> None:
    """
    Saves a summary DataFrame to CSV, creating the directory if needed.

    Raises:
        TypeError: If `summary_df` is not a pandas DataFrame.
    """
    if not isinstance(summary_df, pd.DataFrame):
        raise TypeError("Input summary_df must be a pandas DataFrame.")
    dir_name = os.path.dirname(file_path)
    if dir_name:
        os.makedirs(dir_name, exist_ok=True)
    summary_df.to_csv(file_path, index=summary_df.index.name is not None)
    logger.info("Summary saved to %s", file_path)


def save_mcmc_samples(results: list, base_file_path: str) -> list:
    """
    Writes each chain's draws and per-iteration diagnostics to
    "{base_file_path}_chain{chain_id}.csv".

    Returns:
        list[str]: The written file paths.
    """
    dir_name = os.path.dirname(base_file_path)
    if dir_name:
        os.makedirs(dir_name, exist_ok=True)
    paths = []
    for result in results:
        df = result.to_frame()
        for name in _PER_ITERATION_FIELDS[2:]:
            df[name] = getattr(result, name)
        path = f"{base_file_path}_chain{result.chain_id}.csv"
        df.to_csv(path, index=False)
        paths.append(path)
    logger.info("Saved samples of %d chains under %s", len(paths), base_file_path)
    return paths
