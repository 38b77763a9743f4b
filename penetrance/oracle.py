"""
Pedigree log-likelihood: marginalising unobserved genotypes over each family.

Any callable matching `PedigreeLikelihoodOracle` can be plugged into the
sampler. `VariableEliminationOracle` is the default: every individual is one
genotype variable, founders carry a prior factor and non-founders a
transmission factor, and variables are summed out one at a time.
"""
import logging
from typing import Protocol

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from .data import family_parent_map, order_individuals

logger = logging.getLogger(__name__)


class PedigreeLikelihoodOracle(Protocol):
    def __call__(self, rows: pd.DataFrame, geno_freq: np.ndarray, trans: np.ndarray,
                 lik: np.ndarray, n_workers: int = 1) -> float:
        """
        Returns the sum over families of log P(phenotypes).

        Args:
            rows (pd.DataFrame): Columns family, indiv, mother, father; aligned with `lik`.
            geno_freq (np.ndarray): Founder genotype frequencies, length n_geno.
            trans (np.ndarray): Shape (n_geno ** 2, n_geno), rows mother * n_geno + father.
            lik (np.ndarray): Shape (len(rows), n_geno).
            n_workers (int): Threads the oracle may use.
        """
        ...


def _elimination_order(scopes, n_vars: int) -> list:
    """Greedy minimum-neighbourhood elimination order over the factor graph."""
    neighbours = {v: set() for v in range(n_vars)}
    for scope in scopes:
        for v in scope:
            neighbours[v].update(u for u in scope if u != v)
    order = []
    while neighbours:
        v = min(neighbours, key=lambda u: (len(neighbours[u]), u))
        clique = neighbours.pop(v)
        for u in clique:
            neighbours[u].discard(v)
            neighbours[u].update(w for w in clique if w != u)
        order.append(v)
    return order


class _FamilyPlan:
    """Row positions, parent links and elimination order of one family."""
    def __init__(self, fam: pd.DataFrame):
        parents = family_parent_map(fam)
        ordered = order_individuals(parents)
        local = {indiv: k for k, indiv in enumerate(ordered)}
        position = dict(zip(fam["indiv"], fam.index))
        self.positions = np.array([position[indiv] for indiv in ordered])
        self.parents = []
        for indiv in ordered:
            mother, father = parents[indiv]
            self.parents.append(None if mother is None else (local[mother], local[father]))
        scopes = [(k,) if p is None else (p[0], p[1], k) for k, p in enumerate(self.parents)]
        self.order = _elimination_order(scopes, len(ordered))

    def log_likelihood(self, geno_freq, trans3, lik) -> float:
        factors = []
        for k, pos in enumerate(self.positions):
            if self.parents[k] is None:
                factors.append(((k,), geno_freq * lik[pos]))
            else:
                m, f = self.parents[k]
                factors.append(((m, f, k), trans3 * lik[pos]))

        log_total = 0.0
        for v in self.order:
            touching = [fac for fac in factors if v in fac[0]]
            factors = [fac for fac in factors if v not in fac[0]]
            variables = sorted(set().union(*(scope for scope, _ in touching)))
            label = {u: i for i, u in enumerate(variables)}
            keep = [u for u in variables if u != v]
            operands = []
            for scope, table in touching:
                operands += [table, [label[u] for u in scope]]
            product = np.einsum(*operands, [label[u] for u in keep])
            scale = product.max()
            if not scale > 0:
                return -np.inf
            log_total += np.log(scale)
            factors.append((tuple(keep), product / scale))
        return float(log_total)


class VariableEliminationOracle:
    """
    Exact pedigree likelihood by variable elimination, family by family.

    Family plans depend only on the pedigree structure and are cached for the
    most recently seen rows frame.
    """
    def __init__(self):
        self._rows = None
        self._plans = None

    def _plans_for(self, rows: pd.DataFrame) -> list:
        if self._rows is not rows:
            indexed = rows.reset_index(drop=True)
            self._plans = [_FamilyPlan(fam) for _, fam in indexed.groupby("family", sort=False)]
            logger.debug("Prepared elimination plans for %d families.", len(self._plans))
            self._rows = rows
        return self._plans

    def __call__(self, rows: pd.DataFrame, geno_freq: np.ndarray, trans: np.ndarray,
                 lik: np.ndarray, n_workers: int = 1) -> float:
        n_geno = len(geno_freq)
        if lik.shape != (len(rows), n_geno):
            raise ValueError(f"Likelihood matrix shape {lik.shape} does not match {len(rows)} rows x {n_geno} genotypes.")
        if trans.shape != (n_geno * n_geno, n_geno):
            raise ValueError("Transmission matrix shape does not match the number of genotypes.")
        trans3 = trans.reshape(n_geno, n_geno, n_geno)
        plans = self._plans_for(rows)

        if n_workers > 1 and len(plans) > 1:
            values = Parallel(n_jobs=n_workers, backend="threading")(
                delayed(plan.log_likelihood)(geno_freq, trans3, lik) for plan in plans
            )
        else:
            values = [plan.log_likelihood(geno_freq, trans3, lik) for plan in plans]
        return float(np.sum(values))
