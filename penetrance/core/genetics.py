"""
One bi-allelic locus: founder genotype frequencies under Hardy-Weinberg
equilibrium and the Mendelian transmission matrix.

Genotype states are indexed 0 = "1/1" (non-carrier), 1 = "1/2"
(heterozygous carrier), 2 = "2/2" (homozygous carrier, only when modelled).
"""
import numpy as np

GENOTYPE_LABELS = ("1/1", "1/2", "2/2")
_ALLELES = ((0, 0), (0, 1), (1, 1))


def genotype_frequencies(allele_frequency: float, homozygote: bool = False) -> np.ndarray:
    """
    Founder genotype probabilities under Hardy-Weinberg equilibrium.

    Args:
        allele_frequency (float): Frequency p of the variant allele.
        homozygote (bool): If False the homozygous class is treated as non-viable
                           and the remaining two classes are renormalised.

    Returns:
        np.ndarray: Probabilities of length 3 (homozygote) or 2.

    Raises:
        ValueError: If `allele_frequency` is not strictly between 0 and 1.
    """
    p = float(allele_frequency)
    if not 0 < p < 1:
        raise ValueError("allele_frequency must lie strictly between 0 and 1.")
    q = 1.0 - p
    freqs = np.array([q * q, 2 * p * q, p * p])
    if homozygote:
        return freqs
    return freqs[:2] / freqs[:2].sum()


def carrier_weight(allele_frequency: float, homozygote: bool = False) -> float:
    """Population proportion of carriers, 2p(1-p) (+ p^2 with homozygotes)."""
    p = float(allele_frequency)
    w = 2 * p * (1 - p)
    if homozygote:
        w += p * p
    return w


def transmission_matrix(homozygote: bool = False) -> np.ndarray:
    """
    Mendelian offspring genotype probabilities for every parental pair.

    Rows are indexed mother_genotype * n_geno + father_genotype and columns by
    offspring genotype. Without homozygotes the 2/2 offspring class is removed
    and each row renormalised, so two heterozygous parents give (1/3, 2/3).

    Returns:
        np.ndarray: Shape (n_geno ** 2, n_geno); every row sums to 1.
    """
    n_geno = 3 if homozygote else 2
    trans = np.zeros((n_geno * n_geno, 3))
    for gm in range(n_geno):
        for gf in range(n_geno):
            row = gm * n_geno + gf
            for allele_m in _ALLELES[gm]:
                for allele_f in _ALLELES[gf]:
                    trans[row, allele_m + allele_f] += 0.25
    trans = trans[:, :n_geno]
    return trans / trans.sum(axis=1, keepdims=True)
