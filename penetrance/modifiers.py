"""
Adjustments applied to the individual x genotype likelihood matrix.

Germline and marker test factors do not depend on the sampled parameters, so
they are computed once per run as a factor matrix and multiplied into every
freshly built likelihood matrix. Twin collapsing is planned once from the
pedigree rows; each iteration only multiplies and drops rows.
"""
import logging

import numpy as np
import pandas as pd

from .data import twin_labels

logger = logging.getLogger(__name__)


class GermlineTestModifier:
    """
    Imperfect germline test results.

    Attributes:
        characteristics (dict): Maps gene -> (sensitivity, specificity).
    """
    def __init__(self, characteristics: dict):
        if not isinstance(characteristics, dict) or not characteristics:
            raise TypeError("characteristics must be a non-empty dict of gene -> (sensitivity, specificity).")
        for gene, (sens, spec) in characteristics.items():
            if not (0 <= sens <= 1 and 0 <= spec <= 1):
                raise ValueError(f"Sensitivity and specificity for {gene} must lie in [0, 1].")
        self.characteristics = {gene: (float(s), float(p)) for gene, (s, p) in characteristics.items()}

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> 'GermlineTestModifier':
        """Builds the modifier from a frame with columns gene, sensitivity, specificity."""
        missing = {"gene", "sensitivity", "specificity"} - set(df.columns)
        if missing:
            raise ValueError(f"Germline test table is missing columns: {sorted(missing)}")
        return cls({row.gene: (row.sensitivity, row.specificity) for row in df.itertuples(index=False)})

    def genes_for(self, model_genes) -> list:
        return [g for g in model_genes if g in self.characteristics]

    def factors(self, rows: pd.DataFrame, model_genes, n_geno: int) -> np.ndarray:
        """
        Multiplicative factors, one row per individual.

        A positive result multiplies carrier columns by the sensitivity and the
        non-carrier column by 1 - specificity; a negative result uses
        1 - sensitivity and the specificity. Missing results contribute 1. Factors
        from different genes of the model are multiplied together.
        """
        out = np.ones((len(rows), n_geno))
        for gene in self.genes_for(model_genes):
            if gene not in rows.columns:
                continue
            sens, spec = self.characteristics[gene]
            result = rows[gene].to_numpy(dtype=float)
            positive = result == 1
            negative = result == 0
            out[positive, 0] *= 1 - spec
            out[positive, 1:] *= sens
            out[negative, 0] *= spec
            out[negative, 1:] *= 1 - sens
        return out


class MarkerTable:
    """
    P(tumor marker pattern | genotype class) for one cancer.

    Attributes:
        markers (tuple): Marker column names, e.g. ('ER', 'PR', 'CK14', 'CK5.6', 'HER2').
        table (pd.DataFrame): One row per full marker pattern (0/1 in each marker column)
                              with probability columns 'noncarrier' and 'carrier'.
    """
    def __init__(self, markers, table: pd.DataFrame):
        self.markers = tuple(markers)
        required = set(self.markers) | {"noncarrier", "carrier"}
        missing = required - set(table.columns)
        if missing:
            raise ValueError(f"Marker table is missing columns: {sorted(missing)}")
        probs = table[["noncarrier", "carrier"]].to_numpy(dtype=float)
        if np.any(probs < 0):
            raise ValueError("Marker probabilities must be non-negative.")
        self.table = table.reset_index(drop=True).copy()

    def pattern_probabilities(self, observed: dict) -> tuple[float, float]:
        """Sums the table over full patterns consistent with the observed markers."""
        mask = np.ones(len(self.table), dtype=bool)
        for marker, value in observed.items():
            mask &= self.table[marker].to_numpy() == value
        subset = self.table.loc[mask, ["noncarrier", "carrier"]].to_numpy(dtype=float)
        return float(subset[:, 0].sum()), float(subset[:, 1].sum())


class MarkerTestModifier:
    """
    Tumor marker results of affected individuals.

    Attributes:
        tables (dict): Maps cancer short code -> MarkerTable.
    """
    def __init__(self, tables: dict):
        if not isinstance(tables, dict):
            raise TypeError("tables must be a dict of cancer code -> MarkerTable.")
        self.tables = tables

    @property
    def markers(self) -> list:
        """Marker names used by any table, in first-seen order."""
        return list(dict.fromkeys(m for table in self.tables.values() for m in table.markers))

    def factors(self, rows: pd.DataFrame, cancer_code: str, n_geno: int) -> np.ndarray:
        out = np.ones((len(rows), n_geno))
        table = self.tables.get(cancer_code)
        if table is None:
            logger.debug("No marker table for %s; marker results are ignored.", cancer_code)
            return out
        present = [m for m in table.markers if m in rows.columns]
        absent = [m for m in table.markers if m not in rows.columns]
        if absent:
            logger.warning("Marker columns %s are missing from the pedigree rows; they are treated as untested.", absent)
        if not present:
            return out

        affected = (rows["aff"] == 1).to_numpy()
        markers = rows[present]
        for i in np.flatnonzero(affected):
            observed = {m: markers.iloc[i][m] for m in present if pd.notna(markers.iloc[i][m])}
            if not observed:
                continue
            p_nc, p_c = table.pattern_probabilities(observed)
            out[i, 0] = p_nc
            out[i, 1:] = p_c
        return out


class TwinCollapse:
    """
    Merges each set of identical twins (or higher multiples) into one individual.

    Attributes:
        groups (list[np.ndarray]): Row positions of each twin set, kept member first.
        keep_mask (np.ndarray): Boolean mask of rows that survive collapsing.
        rows (pd.DataFrame): Collapsed pedigree rows with offspring rewired to kept members.
        mapping (pd.DataFrame): label, family, indiv, kept, was_proband for every twin.
    """
    def __init__(self, rows: pd.DataFrame):
        self.groups = []
        keep_mask = np.ones(len(rows), dtype=bool)
        rewire = {}
        records = []
        collapsed = rows.reset_index(drop=True).copy()

        collapsed["twins"] = twin_labels(collapsed["twins"])
        is_twin = (collapsed["twins"] != 0).to_numpy()
        for (family, label), members in collapsed[is_twin].groupby(["family", "twins"], sort=False):
            positions = members.index.to_numpy()
            if len(positions) < 2:
                logger.warning("Twin label %s in family %s has a single member; ignored.", label, family)
                continue
            probands = positions[collapsed.loc[positions, "isProband"].to_numpy() == 1]
            kept = probands[0] if len(probands) else positions[0]
            ordered = np.concatenate([[kept], positions[positions != kept]])
            self.groups.append(ordered)
            kept_id = collapsed.at[kept, "indiv"]
            for pos in ordered:
                was_proband = bool(collapsed.at[pos, "isProband"] == 1)
                records.append({
                    "label": label, "family": family, "indiv": collapsed.at[pos, "indiv"],
                    "kept": pos == kept, "was_proband": was_proband,
                })
                if pos != kept:
                    keep_mask[pos] = False
                    rewire[(family, collapsed.at[pos, "indiv"])] = kept_id
            if len(probands):
                collapsed.at[kept, "isProband"] = 1

        for column in ("mother", "father"):
            collapsed[column] = [
                rewire.get((fam, parent), parent)
                for fam, parent in zip(collapsed["family"], collapsed[column])
            ]

        self.keep_mask = keep_mask
        self.rows = collapsed[keep_mask].reset_index(drop=True)
        self.mapping = pd.DataFrame(records, columns=["label", "family", "indiv", "kept", "was_proband"])
        if self.groups:
            logger.info("Collapsed %d twin sets, removing %d rows.", len(self.groups), int((~keep_mask).sum()))

    def apply(self, lik: np.ndarray) -> np.ndarray:
        """Replaces each kept member's row by the product over its set and drops the others."""
        if not self.groups:
            return lik
        lik = lik.copy()
        for group in self.groups:
            lik[group[0]] = np.prod(lik[group], axis=0)
        return lik[self.keep_mask]
