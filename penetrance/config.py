"""
Model and sampler configuration for penetrance estimation.

String options accepted by the public entry point are converted once into the
enums and frozen dataclasses defined here; the likelihood builder and sampler
only ever see the resolved values.
"""
import enum
from dataclasses import dataclass

import numpy as np

DEFAULT_MAX_AGE = 94
DEFAULT_ALLELE_FREQUENCY = 1e-4
DEFAULT_PROPOSAL_VARIANCES = (0.1, 0.1, 2.0, 2.0, 5.0, 5.0, 5.0, 5.0)

# Floor applied to -inf / NaN pedigree log-likelihoods.
LOGLIK_PENALTY = -50000.0
# Likelihood given to every genotype of an individual excluded by sex stratification.
EXCLUDED_SEX_LIKELIHOOD = 1e-28

ADAPTIVE_SCALE = 2.38 ** 2 / 8
ADAPTIVE_EPSILON = 0.01
HIGH_REJECTION_RATE = 0.9

PARAMETER_NAMES = (
    "asymptote_male", "asymptote_female",
    "threshold_male", "threshold_female",
    "median_male", "median_female",
    "first_quartile_male", "first_quartile_female",
)

# Sex codes used in oracle rows.
MALE = 1
FEMALE = 2

CANCER_NAME_MAP = {
    "Brain": "BRA",
    "Breast": "BC",
    "Cervical": "CER",
    "Colorectal": "COL",
    "Endometrial": "ENDO",
    "Gastric": "GAS",
    "Kidney": "KID",
    "Leukemia": "LEUK",
    "Melanoma": "MELA",
    "Ovarian": "OC",
    "Osteosarcoma": "OST",
    "Pancreas": "PANC",
    "Prostate": "PROS",
    "Small Intestine": "SMA",
    "Soft Tissue Sarcoma": "STS",
    "Thyroid": "THY",
    "Urinary Bladder": "UB",
    "Hepatobiliary": "HEP",
    "Contralateral": "CBC",
}
CANCER_TYPES = tuple(CANCER_NAME_MAP) + ("Breast2",)
CANCER_SHORT_CODES = tuple(CANCER_NAME_MAP.values()) + ("BC2",)

GENE_TYPES = (
    "APC", "ATM", "BARD1", "BMPR1A", "BRCA1", "BRCA2", "BRIP1", "CDH1",
    "CDK4", "CDKN2A", "CHEK2", "EPCAM", "MLH1", "MSH2", "MSH6", "MUTYH",
    "NBN", "PALB2", "PMS2", "PTEN", "RAD51C", "RAD51D", "STK11", "TP53",
)


class NonCarrierModel(enum.Enum):
    """How the non-carrier penetrance is obtained from the baseline table."""
    BASELINE = "baseline"
    MODEL_DERIVED = "model_derived"


class SexStratification(enum.Enum):
    BOTH = "both"
    MALE = "male"
    FEMALE = "female"


class InitMethod(enum.Enum):
    EMPIRICAL = "empirical"
    PRIOR = "prior"


def _coerce_enum(enum_cls, value, name):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower().replace("-", "_")
        aliases = {"seernc": "baseline", "ppp": "model_derived", "derived": "model_derived"}
        normalized = aliases.get(normalized, normalized)
        for member in enum_cls:
            if member.value == normalized:
                return member
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValueError(f"{name} must be one of: {allowed}. Got {value!r}.")


def resolve_cancer_code(cancer_type: str) -> str:
    """Maps a cancer name (or short code) to its short code, e.g. 'Breast' -> 'BC'."""
    if cancer_type in CANCER_NAME_MAP:
        return CANCER_NAME_MAP[cancer_type]
    if cancer_type == "Breast2":
        return "BC2"
    if cancer_type in CANCER_SHORT_CODES:
        return cancer_type
    raise ValueError(f"Unsupported cancer type {cancer_type!r}.")


@dataclass(frozen=True)
class ModelConfig:
    """
    Genetic and likelihood settings shared by every chain.

    Attributes:
        cancer_type (str): Cancer name as in CANCER_TYPES.
        gene (str): Gene symbol as in GENE_TYPES.
        max_age (int): Ages above this are evaluated at max_age.
        allele_frequency (float): Population allele frequency of the variant.
        homozygote (bool): Whether the homozygous carrier state is modelled.
        non_carrier_model (NonCarrierModel): Source of non-carrier risk.
        sex (SexStratification): Which sexes contribute to the likelihood.
        median_max (bool): Bound the median by the baseline midpoint age instead of max_age.
        age_imputation (bool): Redraw unknown diagnosis ages every iteration.
    """
    cancer_type: str
    gene: str
    max_age: int = DEFAULT_MAX_AGE
    allele_frequency: float = DEFAULT_ALLELE_FREQUENCY
    homozygote: bool = False
    non_carrier_model: NonCarrierModel = NonCarrierModel.BASELINE
    sex: SexStratification = SexStratification.BOTH
    median_max: bool = True
    age_imputation: bool = False

    def __post_init__(self):
        object.__setattr__(self, "non_carrier_model",
                           _coerce_enum(NonCarrierModel, self.non_carrier_model, "non_carrier_model"))
        object.__setattr__(self, "sex", _coerce_enum(SexStratification, self.sex, "sex"))
        if not isinstance(self.max_age, (int, np.integer)) or self.max_age <= 1:
            raise ValueError("max_age must be an integer greater than 1.")
        if not 0 < self.allele_frequency < 1:
            raise ValueError("allele_frequency must lie strictly between 0 and 1.")

    @property
    def cancer_code(self) -> str:
        return resolve_cancer_code(self.cancer_type)

    @property
    def n_genotypes(self) -> int:
        return 3 if self.homozygote else 2


@dataclass(frozen=True)
class SamplerConfig:
    """Settings of one adaptive Metropolis-Hastings chain."""
    n_iter: int
    burn_in: float = 0.0
    proposal_variances: tuple = DEFAULT_PROPOSAL_VARIANCES
    adaptive: bool = True
    adapt_interval: int = 1
    scale: float = ADAPTIVE_SCALE
    epsilon: float = ADAPTIVE_EPSILON
    init_method: InitMethod = InitMethod.EMPIRICAL
    progress: bool = False
    oracle_workers: int = 1
    max_init_attempts: int = 10000

    def __post_init__(self):
        object.__setattr__(self, "init_method", _coerce_enum(InitMethod, self.init_method, "init_method"))
        if not isinstance(self.n_iter, (int, np.integer)) or self.n_iter <= 0:
            raise ValueError("n_iter must be a positive integer.")
        if not 0 <= self.burn_in < 1:
            raise ValueError("burn_in must be a fraction in [0, 1).")
        variances = tuple(float(v) for v in self.proposal_variances)
        if len(variances) != len(PARAMETER_NAMES) or any(v <= 0 for v in variances):
            raise ValueError("proposal_variances must hold 8 positive values.")
        object.__setattr__(self, "proposal_variances", variances)
        if self.adapt_interval < 1:
            raise ValueError("adapt_interval must be at least 1.")
        if self.scale <= 0 or self.epsilon < 0:
            raise ValueError("scale must be positive and epsilon non-negative.")
