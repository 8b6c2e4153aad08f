"""
3-sigma outlier rejection over per-source confidence.

Each value is judged against the mean and population standard deviation
of the *other* values. With the full-sample statistics a single outlier
among n values can never exceed (n - 1) / sqrt(n) sigma, so for the
small panels an oracle sees (n < 10) the plain rule would never fire.

The decision for every value is made against the same input, so the
result does not depend on the order values are examined in.
"""

import math
from typing import List, Sequence


SIGMA_LIMIT = 3.0

# Confidences are reported to about two decimals, so a spread below
# this is noise. A panel of identical values would otherwise flag any
# difference at all.
SIGMA_FLOOR = 0.05

# With fewer values the leave-one-out statistics are meaningless.
MIN_SAMPLE = 3


def _mean(values: Sequence[float]) -> float:
    return math.fsum(values) / len(values)


def _pstdev(values: Sequence[float], mean: float) -> float:
    return math.sqrt(math.fsum((v - mean) ** 2 for v in values) / len(values))


def outlier_indices(values: Sequence[float], limit: float = SIGMA_LIMIT) -> List[int]:
    """Indices of values more than `limit` sigma from the rest."""
    if len(values) < MIN_SAMPLE:
        return []
    flagged = []
    for i, value in enumerate(values):
        rest = [v for j, v in enumerate(values) if j != i]
        mean = _mean(rest)
        sigma = max(_pstdev(rest, mean), SIGMA_FLOOR)
        if abs(value - mean) > limit * sigma:
            flagged.append(i)
    return flagged


def reject_outliers(items: Sequence, key, minimum: int, limit: float = SIGMA_LIMIT):
    """
    Drop items whose key(item) is an outlier.

    Returns (survivors, rejected). If dropping would leave fewer than
    `minimum` survivors nothing is dropped: filtering never starves a run.
    """
    flagged = set(outlier_indices([key(item) for item in items], limit))
    if not flagged:
        return list(items), []
    survivors = [item for i, item in enumerate(items) if i not in flagged]
    if len(survivors) < minimum:
        return list(items), []
    rejected = [item for i, item in enumerate(items) if i in flagged]
    return survivors, rejected
