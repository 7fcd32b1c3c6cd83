from __future__ import annotations

"""
Edit-distance string similarity.

``similarity_score`` is the leaf of every fuzzy lookup in the package: search,
suggestions and highlighting all compare a query and a candidate through it.
"""

from typing import Any, List

from .normalize import normalize_for_match


def levenshtein_distance(a: str, b: str) -> int:
    """
    Minimum number of single-character insertions, deletions and
    substitutions turning ``a`` into ``b``.

    Full (len(b)+1) x (len(a)+1) table; rows follow ``b``, columns follow ``a``.
    """
    if not a:
        return len(b)
    if not b:
        return len(a)

    matrix: List[List[int]] = [[0] * (len(a) + 1) for _ in range(len(b) + 1)]
    for i in range(len(a) + 1):
        matrix[0][i] = i
    for j in range(len(b) + 1):
        matrix[j][0] = j

    for j in range(1, len(b) + 1):
        for i in range(1, len(a) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            matrix[j][i] = min(
                matrix[j][i - 1] + 1,         # deletion
                matrix[j - 1][i] + 1,         # insertion
                matrix[j - 1][i - 1] + cost,  # substitution
            )

    return matrix[len(b)][len(a)]


def similarity_score(query: Any, candidate: Any) -> float:
    """
    Similarity in [0, 1] between a query and a candidate string.

    1.0 when the normalised candidate contains the normalised query, otherwise
    ``1 - distance / max_len`` floored at 0. Two empty strings score 0.
    """
    q = normalize_for_match(query)
    c = normalize_for_match(candidate)

    if q in c and (q or c):
        return 1.0

    max_len = max(len(q), len(c))
    if max_len == 0:
        return 0.0

    distance = levenshtein_distance(q, c)
    return max(0.0, 1.0 - distance / max_len)
