"""
Pairwise Comparison Matrix Math

Numeric core of AHP, kept free of pydantic so it can be reused on raw
arrays:
- build_matrix: reciprocal matrix from pairwise judgements
- priority_vector: normalized column average approximation of the
  principal eigenvector
- consistency_ratio: Saaty's CR = CI / RI
"""

from typing import Iterable

import numpy as np

from finance_dss.models.ahp import PairwiseComparison


# Saaty's Random Index for matrices of size 1..10
RANDOM_INDEX = {
    1: 0.00, 2: 0.00, 3: 0.58, 4: 0.90, 5: 1.12,
    6: 1.24, 7: 1.32, 8: 1.41, 9: 1.45, 10: 1.49,
}


def random_index(n: int) -> float:
    """RI for an n x n matrix; linear extrapolation beyond 10."""
    if n in RANDOM_INDEX:
        return RANDOM_INDEX[n]
    return 1.49 + 0.01 * (n - 10)


def build_matrix(
    elements: list[str],
    comparisons: Iterable[PairwiseComparison],
) -> np.ndarray:
    """
    Build the reciprocal comparison matrix.

    Rows and columns follow `elements`. Diagonal is 1, and a judgement
    (a, b, v) sets m[a][b] = v and m[b][a] = 1/v.

    Args:
        elements: Element ids in matrix order
        comparisons: Validated judgements covering every pair once
    """
    index = {element: i for i, element in enumerate(elements)}
    matrix = np.eye(len(elements), dtype=float)

    for comp in comparisons:
        i = index[comp.element_a]
        j = index[comp.element_b]
        matrix[i, j] = comp.value
        matrix[j, i] = 1.0 / comp.value

    return matrix


def priority_vector(matrix: np.ndarray) -> np.ndarray:
    """
    Normalized column average.

    Each column is divided by its sum, then each row is averaged.
    The result sums to 1.
    """
    column_sums = matrix.sum(axis=0)
    normalized = np.divide(
        matrix,
        column_sums,
        out=np.zeros_like(matrix),
        where=column_sums > 0,
    )
    return normalized.mean(axis=1)


def consistency_ratio(matrix: np.ndarray, weights: np.ndarray) -> float:
    """
    Consistency ratio of a comparison matrix given its priority vector.

    lambda_max = mean((Aw)_i / w_i), skipping zero weights
    CI = (lambda_max - n) / (n - 1)
    CR = CI / RI, or 0 when RI is 0 (n <= 2 is always consistent)
    """
    n = matrix.shape[0]
    ri = random_index(n)
    if ri == 0:
        return 0.0

    aw = matrix @ weights
    positive = weights > 0
    lambda_max = float(np.sum(aw[positive] / weights[positive])) / n

    ci = (lambda_max - n) / (n - 1)
    return ci / ri
