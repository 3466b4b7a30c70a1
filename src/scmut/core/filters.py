"""Coverage and allele-frequency filtering of candidate variants.

Runs after extraction and cross-validation, before significance scoring.
Known positions bypass every filter and keep their frequency unclamped.

Example:
    >>> criteria = FilterCriteria(min_cov=100, report_pct=(0.10, 0.90))
    >>> result = CandidateFilter(criteria).apply(candidates)
    >>> result.pass_count, result.fail_count
    (12, 340)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Iterable

import attrs

from scmut.core.candidates import CandidateVariant
from scmut.utils.regions import KnownPosition

logger = logging.getLogger(__name__)

DEFAULT_MIN_COV = 100
DEFAULT_REPORT_PCT = (0.10, 0.90)


class FilterReason(Enum):
    """Why a candidate was excluded (or kept)."""

    PASS = "PASS"
    KNOWN = "KNOWN"
    LOW_COVERAGE = "LOW_COVERAGE"
    FREQUENCY_OUT_OF_RANGE = "FREQUENCY_OUT_OF_RANGE"
    SHORT_READ_UNSUPPORTED = "SHORT_READ_UNSUPPORTED"
    HOMOPOLYMER = "HOMOPOLYMER"


# =============================================================================
# Filter Criteria
# =============================================================================


@attrs.define
class FilterCriteria:
    """Thresholds applied to candidates.

    Attributes:
        min_cov: Minimum total depth.
        report_pct: Closed allele-frequency interval (low, high).
        known_positions: Loci that bypass all filters.
        max_homopolymer_pct: If set, candidates with a higher homopolymer
            score are excluded.
    """

    min_cov: int = DEFAULT_MIN_COV
    report_pct: tuple[float, float] = DEFAULT_REPORT_PCT
    known_positions: list[KnownPosition] = attrs.Factory(list)
    max_homopolymer_pct: float | None = None


# =============================================================================
# Filter Result
# =============================================================================


@attrs.define
class FilterResult:
    """Result of a filtering operation.

    Attributes:
        passed: Candidates retained for scoring, in input order.
        failed: Excluded candidates, in input order.
        reasons: Filter status for every candidate, keyed by id().
        criteria: The criteria used.
    """

    passed: list[CandidateVariant]
    failed: list[CandidateVariant]
    reasons: dict[int, FilterReason]
    criteria: FilterCriteria

    @property
    def total_count(self) -> int:
        return len(self.passed) + len(self.failed)

    @property
    def pass_count(self) -> int:
        return len(self.passed)

    @property
    def fail_count(self) -> int:
        return len(self.failed)

    def reason(self, candidate: CandidateVariant) -> FilterReason:
        """Filter status of a candidate seen by this filter."""
        return self.reasons[id(candidate)]

    def statistics(self) -> dict[str, Any]:
        """Counts per filter status."""
        stats: dict[str, Any] = {"total": self.total_count, "passed": self.pass_count}
        for reason in self.reasons.values():
            stats[reason.value] = stats.get(reason.value, 0) + 1
        return stats


# =============================================================================
# Candidate Filter
# =============================================================================


class CandidateFilter:
    """Applies FilterCriteria to candidate variants."""

    def __init__(self, criteria: FilterCriteria | None = None) -> None:
        self.criteria = criteria or FilterCriteria()
        self._known = {(p.chromosome, p.position) for p in self.criteria.known_positions}

    def is_known(self, candidate: CandidateVariant) -> bool:
        return candidate.key in self._known

    def evaluate(self, candidate: CandidateVariant) -> FilterReason:
        """Filter status of a single candidate."""
        if self.is_known(candidate):
            return FilterReason.KNOWN

        low, high = self.criteria.report_pct
        if candidate.total_depth < self.criteria.min_cov:
            return FilterReason.LOW_COVERAGE
        if not low <= candidate.alt_frequency <= high:
            return FilterReason.FREQUENCY_OUT_OF_RANGE
        if candidate.short_read_rejected:
            return FilterReason.SHORT_READ_UNSUPPORTED

        max_hp = self.criteria.max_homopolymer_pct
        if (
            max_hp is not None
            and candidate.homopolymer_pct is not None
            and candidate.homopolymer_pct > max_hp
        ):
            return FilterReason.HOMOPOLYMER

        return FilterReason.PASS

    def apply(self, candidates: Iterable[CandidateVariant]) -> FilterResult:
        """Split candidates into passed and failed, marking known positions.

        Args:
            candidates: Candidates pooled from all regions.

        Returns:
            FilterResult preserving input order on both sides.
        """
        passed: list[CandidateVariant] = []
        failed: list[CandidateVariant] = []
        reasons: dict[int, FilterReason] = {}

        for candidate in candidates:
            reason = self.evaluate(candidate)
            candidate.is_known = reason is FilterReason.KNOWN
            reasons[id(candidate)] = reason
            if reason in (FilterReason.PASS, FilterReason.KNOWN):
                passed.append(candidate)
            else:
                failed.append(candidate)

        result = FilterResult(passed, failed, reasons, self.criteria)
        logger.info(
            f"Filtering: {result.pass_count}/{result.total_count} candidates retained "
            f"(min_cov={self.criteria.min_cov}, report_pct={self.criteria.report_pct})"
        )
        return result
