"""Cross-validation of long-read candidates against short-read alignments.

Short reads have a much lower error rate in homopolymers. A long-read
candidate at a position that short reads cover well, yet never show, is
almost certainly a long-read artifact and is marked for exclusion. Where
short reads are too thin to judge, the candidate is left alone and its
short-read frequency is set to -1.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING

from scmut.core.candidates import NOT_EVALUABLE, CandidateVariant, PositionKey

if TYPE_CHECKING:
    from scmut.io.bam import PileupProvider
    from scmut.io.gff import GeneRegion

logger = logging.getLogger(__name__)

DEFAULT_SHORT_READ_MIN_COV = 10


def annotate_without_short_reads(candidates: list[CandidateVariant]) -> list[CandidateVariant]:
    """Pass-through used when no short-read alignment is supplied."""
    for candidate in candidates:
        candidate.ref_frequency_in_short_reads = NOT_EVALUABLE
        candidate.short_read_rejected = False
    return candidates


class ShortReadCrossValidator:
    """Annotates candidates with short-read support.

    Attributes:
        provider: Pileup provider over the short-read BAM.
        min_coverage: Short-read depth needed to judge a position.

    Example:
        >>> validator = ShortReadCrossValidator(short_provider, min_coverage=10)
        >>> validator.annotate(candidates, gene_region)
        >>> [c for c in candidates if c.short_read_rejected]
    """

    def __init__(
        self,
        provider: PileupProvider,
        min_coverage: int = DEFAULT_SHORT_READ_MIN_COV,
    ) -> None:
        self.provider = provider
        self.min_coverage = min_coverage

    def _counts_for_region(
        self,
        candidates: list[CandidateVariant],
        region: GeneRegion | None,
    ) -> dict[PositionKey, Counter]:
        """Short-read allele counts at every candidate position."""
        positions = sorted({c.key for c in candidates})
        counts: dict[PositionKey, Counter] = {}

        if region is not None:
            for record in self.provider.pileup(region.chromosome, region.start, region.end):
                counts.setdefault((record.chromosome, record.position), Counter())[
                    record.allele
                ] += record.count
        else:
            for chromosome, position in positions:
                counts[(chromosome, position)] = self.provider.allele_counts(chromosome, position)

        return {key: counts.get(key, Counter()) for key in positions}

    def annotate(
        self,
        candidates: list[CandidateVariant],
        region: GeneRegion | None = None,
    ) -> list[CandidateVariant]:
        """Fill short-read frequency and rejection flag in place.

        Args:
            candidates: Candidates from one region (or any set of positions).
            region: When given, the short-read pileup is read once for the
                whole region instead of once per position.

        Returns:
            The same candidates.
        """
        if not candidates:
            return candidates

        counts = self._counts_for_region(candidates, region)
        n_rejected = 0

        for candidate in candidates:
            allele_counts = counts[candidate.key]
            depth = sum(allele_counts.values())

            if depth < self.min_coverage or depth == 0:
                candidate.ref_frequency_in_short_reads = NOT_EVALUABLE
                candidate.short_read_rejected = False
                continue

            candidate.ref_frequency_in_short_reads = (
                allele_counts.get(candidate.ref_allele, 0) / depth
            )
            candidate.short_read_rejected = allele_counts.get(candidate.alt_allele, 0) == 0
            n_rejected += candidate.short_read_rejected

        logger.debug(
            f"Short-read cross-validation: {n_rejected}/{len(candidates)} candidates "
            "lack short-read support"
        )
        return candidates
