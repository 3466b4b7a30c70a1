"""Significance scoring of candidate variants.

Each candidate is tested against a sequencing-error-only null with a
one-sided hypergeometric test. The observed position (``total_depth`` reads,
``alt_count`` of them alternate) is pooled with an error-only background of
the same depth holding ``round(error_rate * total_depth)`` alternate reads.
The p-value is the probability that the observed position draws at least
``alt_count`` of the pooled alternate reads:

    M = 2 * total_depth                          (pooled reads)
    n = alt_count + round(error_rate * depth)    (pooled alternate reads)
    N = total_depth                              (reads drawn for the position)
    p = P(X >= alt_count),  X ~ Hypergeom(M, n, N)

Small p means the allele fraction is unlikely to come from base-calling
noise alone. P-values of all candidates from all regions are then corrected
together with Benjamini-Hochberg. The correction needs the complete pooled
set and must only run once every region has been processed.

Example:
    >>> hypergeom_p_value(alt_count=2, total_depth=10, error_rate=0.01)
    0.236...
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np
from scipy import stats

from scmut.core.candidates import CandidateVariant

logger = logging.getLogger(__name__)

DEFAULT_ERROR_RATE = 0.01

# Returned when the test is undefined (no depth, no alternate reads)
NOT_SIGNIFICANT = 1.0


def hypergeom_p_value(
    alt_count: int,
    total_depth: int,
    error_rate: float = DEFAULT_ERROR_RATE,
) -> float:
    """One-sided hypergeometric p-value of alternate support against an error-only null.

    Args:
        alt_count: Reads supporting the alternate allele.
        total_depth: Reads over all alleles at the position.
        error_rate: Expected per-base error rate of the background.

    Returns:
        p-value in [0, 1]; NOT_SIGNIFICANT for degenerate inputs.
    """
    if total_depth <= 0 or alt_count <= 0:
        return NOT_SIGNIFICANT

    alt_count = min(alt_count, total_depth)
    background_errors = int(round(error_rate * total_depth))

    population = 2 * total_depth
    successes = alt_count + background_errors
    draws = total_depth

    p_value = float(stats.hypergeom.sf(alt_count - 1, population, successes, draws))
    if not math.isfinite(p_value):
        return NOT_SIGNIFICANT
    return min(max(p_value, 0.0), 1.0)


def benjamini_hochberg(p_values: Sequence[float]) -> np.ndarray:
    """Benjamini-Hochberg adjusted p-values, in input order.

    Args:
        p_values: Raw p-values for the whole candidate set.

    Returns:
        Adjusted p-values; an empty array for empty input.
    """
    if len(p_values) == 0:
        return np.array([], dtype=float)
    return stats.false_discovery_control(np.asarray(p_values, dtype=float), method="bh")


class SignificanceScorer:
    """Scores candidates and applies the global correction.

    Example:
        >>> scorer = SignificanceScorer(error_rate=0.01)
        >>> scored = scorer.score(pooled_candidates)
        >>> scored[0].adj_p_value
    """

    def __init__(self, error_rate: float = DEFAULT_ERROR_RATE) -> None:
        if not 0.0 <= error_rate < 1.0:
            raise ValueError(f"error_rate must be in [0, 1), got {error_rate}")
        self.error_rate = error_rate

    def score_candidate(self, candidate: CandidateVariant) -> float:
        """Compute and store one candidate's raw p-value."""
        candidate.hypergeom_p_value = hypergeom_p_value(
            candidate.alt_count, candidate.total_depth, self.error_rate
        )
        return candidate.hypergeom_p_value

    def score(self, candidates: list[CandidateVariant]) -> list[CandidateVariant]:
        """Raw p-values for every candidate, then one Benjamini-Hochberg pass.

        Args:
            candidates: The full pooled candidate set of the run.

        Returns:
            The same candidates with hypergeom_p_value and adj_p_value set.
        """
        p_values = [self.score_candidate(c) for c in candidates]

        for candidate, adjusted in zip(candidates, benjamini_hochberg(p_values)):
            candidate.adj_p_value = float(adjusted)

        logger.info(f"Scored {len(candidates)} candidates (error_rate={self.error_rate})")
        return candidates
