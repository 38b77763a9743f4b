"""
Preparation of pedigree data for likelihood evaluation.

Input families use PanelPRO-style columns (ID, Sex, MotherID, FatherID,
isProband, CurAge, isAff<X>, Age<X>, one column per gene, Twins); they are
cleaned by `prep_ages` and converted by `transform_pedigree` into one row per
individual with the columns the likelihood builder and pedigree oracle use.
"""
import logging

import numpy as np
import pandas as pd

from .config import CANCER_SHORT_CODES, GENE_TYPES, MALE, FEMALE, resolve_cancer_code

logger = logging.getLogger(__name__)

PEDIGREE_ID_COLUMN = "PedigreeID"
REQUIRED_INPUT_COLUMNS = ("ID", "Sex", "MotherID", "FatherID", "CurAge")
ROW_COLUMNS = ("family", "indiv", "mother", "father", "sex", "aff", "age", "cur_age", "geno", "isProband", "twins")
MARKER_COLUMNS = ("ER", "PR", "CK14", "CK5.6", "HER2", "MSI")


def combine_families(data) -> pd.DataFrame:
    """
    Stacks a list of per-family DataFrames into one frame keyed by PedigreeID.

    Args:
        data (list[pd.DataFrame] | pd.DataFrame): Families as a list (PedigreeID is
            added from the list position when missing) or one frame with a PedigreeID column.

    Returns:
        pd.DataFrame: A new frame; the inputs are not modified.

    Raises:
        TypeError: If `data` is neither a DataFrame nor a list of DataFrames.
        ValueError: If no data is given or a required column is missing.
    """
    if isinstance(data, pd.DataFrame):
        if PEDIGREE_ID_COLUMN not in data.columns:
            raise ValueError(f"A single pedigree frame must contain a '{PEDIGREE_ID_COLUMN}' column.")
        combined = data.copy()
    elif isinstance(data, (list, tuple)):
        if not all(isinstance(df, pd.DataFrame) for df in data):
            raise TypeError("Every family must be a pandas DataFrame.")
        frames = []
        for i, df in enumerate(data, start=1):
            df = df.copy()
            if PEDIGREE_ID_COLUMN not in df.columns:
                df[PEDIGREE_ID_COLUMN] = i
            frames.append(df)
        combined = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()
    else:
        raise TypeError("Pedigree data must be a DataFrame or a list of DataFrames.")

    if combined.empty:
        raise ValueError("Pedigree data is empty.")
    missing = [c for c in REQUIRED_INPUT_COLUMNS if c not in combined.columns]
    if missing:
        raise ValueError(f"Pedigree data is missing required columns: {missing}")
    if "isProband" not in combined.columns:
        combined["isProband"] = combined["Proband"] if "Proband" in combined.columns else 0
    return combined.reset_index(drop=True)


def prep_ages(data: pd.DataFrame, remove_proband: bool = False,
              keep_unknown_affected_ages: bool = False) -> pd.DataFrame:
    """
    Normalises ages and affection status across all cancer columns present.

    Missing diagnosis ages become "unaffected at age 1", unless
    `keep_unknown_affected_ages` is set, in which case affected individuals keep
    their status and a missing age so that it can be imputed later. `CurAge`
    becomes the maximum of itself and every diagnosis age.

    Args:
        data (pd.DataFrame): Combined families (see `combine_families`).
        remove_proband (bool): Blank probands' gene results, ages and affection first.
        keep_unknown_affected_ages (bool): Leave affected individuals with unknown age affected.

    Returns:
        pd.DataFrame: A cleaned copy.
    """
    df = data.copy()
    age_cols = [f"Age{c}" for c in CANCER_SHORT_CODES if f"Age{c}" in df.columns]

    if remove_proband:
        probands = df["isProband"] == 1
        for gene in GENE_TYPES:
            if gene in df.columns:
                df[gene] = df[gene].astype(float)
                df.loc[probands, gene] = np.nan
        for age_col in age_cols:
            df[age_col] = df[age_col].astype(float)
            df.loc[probands, age_col] = np.nan
            aff_col = "isAff" + age_col[3:]
            if aff_col in df.columns:
                df[aff_col] = df[aff_col].astype(float)
                df.loc[probands, aff_col] = np.nan
        logger.info("Removed phenotype and genotype information of %d probands.", int(probands.sum()))

    for age_col in age_cols:
        aff_col = "isAff" + age_col[3:]
        if aff_col not in df.columns:
            df[aff_col] = 0
        missing = df[age_col].isna()
        if keep_unknown_affected_ages:
            unknown_affected = missing & (df[aff_col] == 1)
            missing = missing & ~unknown_affected
        df.loc[missing, age_col] = 1
        df.loc[missing, aff_col] = 0
        df[aff_col] = df[aff_col].fillna(0).astype(int)

    if age_cols:
        max_cancer_age = df[age_cols].max(axis=1, skipna=True)
        df["CurAge"] = np.where(df["CurAge"].isna(), max_cancer_age,
                                np.fmax(df["CurAge"].to_numpy(dtype=float), max_cancer_age.to_numpy(dtype=float)))
    return df


def _parent_or_nan(values: pd.Series) -> pd.Series:
    founder = values.isna() | values.astype(str).isin(["0", "0.0", ""])
    return values.where(~founder, np.nan)


def twin_labels(values: pd.Series) -> np.ndarray:
    """
    Normalises twin labels so that 0 marks an individual without an identical twin.

    Missing, blank and zero labels (0, 0.0, "0") become 0; integral floats such
    as 1.0 become ints, so one twin set keeps one label after families with and
    without a Twins column are stacked. Other labels are kept as given.
    """
    numeric = pd.to_numeric(values, errors="coerce")
    labels = values.where(numeric.isna(), numeric).astype(object)
    blank = labels.isna() | labels.astype(str).str.strip().isin(["", "0", "0.0"])
    labels = labels.where(~blank, 0)
    return np.array([
        int(v) if isinstance(v, float) and v.is_integer() else v for v in labels
    ], dtype=object)


def transform_pedigree(data: pd.DataFrame, cancer_type: str, gene: str, markers=()) -> pd.DataFrame:
    """
    Converts prepared families into one row per individual for the target cancer and gene.

    Args:
        data (pd.DataFrame): Output of `prep_ages`.
        cancer_type (str): Cancer name or short code.
        gene (str): Gene whose column holds the genotype test result (1 positive, 0 negative).
        markers (iterable, optional): Further tumor marker columns to carry over, in
            addition to the standard ones (e.g. the markers of a `MarkerTestModifier`).

    Returns:
        pd.DataFrame: Columns family, indiv, mother, father (NaN for founders),
        sex (1 male, 2 female), aff, age, cur_age, geno ('1/2', '1/1' or ''),
        isProband, twins, followed by the gene column and any marker columns.

    Raises:
        ValueError: If the cancer columns are missing or Sex holds unknown codes.
    """
    code = resolve_cancer_code(cancer_type)
    aff_col, age_col = f"isAff{code}", f"Age{code}"
    if aff_col not in data.columns or age_col not in data.columns:
        raise ValueError(f"Pedigree data has no '{aff_col}' / '{age_col}' columns for {cancer_type}.")

    sex = data["Sex"]
    if not sex.isin([0, 1]).all():
        raise ValueError("Sex must be coded 0 (female) or 1 (male) for every individual.")

    aff = data[aff_col].fillna(0).astype(int)
    age = np.where(aff == 1, data[age_col], data["CurAge"])

    if gene in data.columns:
        result = data[gene]
        geno = np.where(result == 1, "1/2", np.where(result == 0, "1/1", ""))
    else:
        logger.warning("No '%s' column in pedigree data; all genotypes treated as unobserved.", gene)
        geno = np.full(len(data), "")

    rows = pd.DataFrame({
        "family": data[PEDIGREE_ID_COLUMN].to_numpy(),
        "indiv": data["ID"].to_numpy(),
        "mother": _parent_or_nan(data["MotherID"]).to_numpy(),
        "father": _parent_or_nan(data["FatherID"]).to_numpy(),
        "sex": np.where(sex == 1, MALE, FEMALE),
        "aff": aff.to_numpy(),
        "age": np.asarray(age, dtype=float),
        "cur_age": data["CurAge"].to_numpy(dtype=float),
        "geno": geno,
        "isProband": data["isProband"].fillna(0).astype(int).to_numpy(),
        "twins": twin_labels(data["Twins"]) if "Twins" in data.columns else 0,
    })
    if gene in data.columns:
        rows[gene] = data[gene].to_numpy()
    for marker in dict.fromkeys((*MARKER_COLUMNS, *markers)):
        if marker in data.columns and marker not in rows.columns:
            rows[marker] = data[marker].to_numpy()
    return rows


def order_individuals(parents: dict) -> list:
    """
    Orders one family so that parents precede their offspring.

    Args:
        parents (dict): Maps each individual to a (mother, father) tuple, with
                        None for founders.

    Returns:
        list: Individual ids, parents first.

    Raises:
        ValueError: If an individual is its own parent or the parentage has a cycle.
    """
    for indiv, (mother, father) in parents.items():
        if indiv == mother or indiv == father:
            raise ValueError(f"Individual {indiv} cannot be its own parent.")

    ordered = []
    placed = set()
    remaining = list(parents)
    while remaining:
        still_waiting = []
        for indiv in remaining:
            mother, father = parents[indiv]
            if (mother is None or mother in placed) and (father is None or father in placed):
                ordered.append(indiv)
                placed.add(indiv)
            else:
                still_waiting.append(indiv)
        if len(still_waiting) == len(remaining):
            example = {i: parents[i] for i in still_waiting[:5]}
            raise ValueError(
                f"Could not resolve parentage order for {len(still_waiting)} individuals. "
                f"Possible cycle. Example unprocessed (id: (mother, father)): {example}"
            )
        remaining = still_waiting
    return ordered


def family_parent_map(family_rows: pd.DataFrame) -> dict:
    """Maps indiv -> (mother, father) for one family, with None for founders."""
    def _clean(value):
        return None if pd.isna(value) else value
    return {
        indiv: (_clean(m), _clean(f))
        for indiv, m, f in zip(family_rows["indiv"], family_rows["mother"], family_rows["father"])
    }


def validate_pedigree_rows(rows: pd.DataFrame) -> None:
    """
    Checks structural and age consistency of transformed pedigree rows.

    Raises:
        ValueError: On duplicated ids within a family, a single known parent, parents
                    outside the family, parentage cycles, negative ages or a diagnosis
                    age above the censoring age.
    """
    missing = [c for c in ROW_COLUMNS if c not in rows.columns]
    if missing:
        raise ValueError(f"Pedigree rows are missing columns: {missing}")
    if rows.empty:
        raise ValueError("Pedigree rows are empty.")

    for family, fam in rows.groupby("family", sort=False):
        if not fam["indiv"].is_unique:
            raise ValueError(f"Family {family} has duplicated individual ids.")
        one_parent = fam["mother"].isna() != fam["father"].isna()
        if one_parent.any():
            bad = fam.loc[one_parent, "indiv"].tolist()
            raise ValueError(f"Family {family}: individuals {bad} have exactly one known parent.")
        members = set(fam["indiv"])
        parent_ids = set(fam["mother"].dropna()) | set(fam["father"].dropna())
        outside = parent_ids - members
        if outside:
            raise ValueError(f"Family {family}: parents {sorted(map(str, outside))} are not members of the family.")
        order_individuals(family_parent_map(fam))

    ages = rows["age"].dropna()
    if (ages < 0).any():
        raise ValueError("Ages must be non-negative.")
    affected = rows[(rows["aff"] == 1) & rows["age"].notna() & rows["cur_age"].notna()]
    if (affected["age"] > affected["cur_age"]).any():
        raise ValueError("Diagnosis age exceeds censoring age for some individuals.")
