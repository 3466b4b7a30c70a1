"""Candidate variant extraction from pileup counts.

Pileup rows are first grouped by (chromosome, position); each group is then
turned into one CandidateVariant per non-reference allele. Depth always
comes from the whole group, reference-matching rows included.

Insertions need a correction. A read carrying an insertion is counted both
as its aligned base and as the ``+`` marker at the same position, so the
marker's share of the total is halved. The frequency of a ``+`` allele is
therefore doubled whenever the doubled count still stays below the depth.

Example:
    >>> records = provider.pileup("chr1", 1000, 2000)
    >>> candidates = extract_candidates(records, gene_region, scorer)
    >>> candidates[0].alt_frequency
    0.2
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

import attrs

from scmut.io.bam import DELETION, INSERTION, PileupRecord

if TYPE_CHECKING:
    from scmut.core.homopolymer import HomopolymerScorer
    from scmut.io.gff import GeneRegion

logger = logging.getLogger(__name__)

# Short-read frequency when no short-read evidence could be evaluated
NOT_EVALUABLE = -1.0

PositionKey = tuple[str, int]


# =============================================================================
# Data Structures
# =============================================================================


@attrs.define(slots=True)
class CandidateVariant:
    """A non-reference allele observed at a position.

    Created by `extract_candidates`, then annotated in place by the
    cross-validation, filtering and significance stages.

    Attributes:
        chromosome: Chromosome name.
        position: 1-based position.
        ref_allele: Reference base.
        alt_allele: Observed alternate allele (base, ``+`` or ``-``).
        alt_count: Reads supporting the alternate allele.
        total_depth: Reads over all alleles at the position.
        alt_frequency: Alternate allele frequency after insertion correction.
        ref_frequency: Reference allele reads over total depth.
        gene_id: Gene whose region produced the candidate.
        indel_frequency: Insertion and deletion reads over total depth.
        ref_count: Reads supporting the reference allele.
        homopolymer_pct: Homopolymer context score of the position.
        ref_frequency_in_short_reads: Reference frequency in short reads,
            or -1 when not evaluable.
        short_read_rejected: Short reads cover the site but never show the allele.
        is_known: Position is in the caller's known-position list.
        hypergeom_p_value: Hypergeometric p-value against an error-only null.
        adj_p_value: Benjamini-Hochberg adjusted p-value.
    """

    chromosome: str
    position: int
    ref_allele: str
    alt_allele: str
    alt_count: int
    total_depth: int
    alt_frequency: float
    ref_frequency: float
    gene_id: str
    indel_frequency: float = 0.0
    ref_count: int = 0
    homopolymer_pct: float | None = None
    ref_frequency_in_short_reads: float = NOT_EVALUABLE
    short_read_rejected: bool = False
    is_known: bool = False
    hypergeom_p_value: float | None = None
    adj_p_value: float | None = None

    @property
    def key(self) -> PositionKey:
        """(chromosome, position) of the candidate."""
        return (self.chromosome, self.position)

    @property
    def is_insertion(self) -> bool:
        return self.alt_allele == INSERTION

    @property
    def is_deletion(self) -> bool:
        return self.alt_allele == DELETION

    def __str__(self) -> str:
        return f"{self.chromosome}:{self.position} {self.ref_allele}>{self.alt_allele}"


# =============================================================================
# Grouping and Extraction
# =============================================================================


def group_pileup(records: Iterable[PileupRecord]) -> dict[PositionKey, list[PileupRecord]]:
    """Group pileup rows by (chromosome, position), keeping input order."""
    groups: dict[PositionKey, list[PileupRecord]] = {}
    for record in records:
        groups.setdefault((record.chromosome, record.position), []).append(record)
    return groups


def allele_frequency(allele: str, count: int, total_depth: int) -> float:
    """Frequency of an allele, correcting the insertion double count.

    Args:
        allele: The allele being measured.
        count: Reads supporting it.
        total_depth: Reads over all alleles at the position.

    Returns:
        count / total_depth, or 2 * count / total_depth for an insertion
        whose doubled count stays below total_depth.
    """
    if total_depth <= 0:
        return 0.0
    if allele == INSERTION and count * 2 < total_depth:
        return count * 2 / total_depth
    return count / total_depth


def candidates_at_position(
    group: list[PileupRecord],
    gene_id: str,
) -> list[CandidateVariant]:
    """Build candidates for every non-reference allele in one position group."""
    total_depth = sum(record.count for record in group)
    if total_depth <= 0:
        return []

    ref_allele = group[0].reference_allele.upper()
    ref_count = sum(r.count for r in group if r.allele == ref_allele)
    indel_count = sum(r.count for r in group if r.allele in (INSERTION, DELETION))

    candidates = []
    for record in group:
        if record.allele == ref_allele or record.count <= 0:
            continue

        candidates.append(
            CandidateVariant(
                chromosome=record.chromosome,
                position=record.position,
                ref_allele=ref_allele,
                alt_allele=record.allele,
                alt_count=record.count,
                total_depth=total_depth,
                alt_frequency=allele_frequency(record.allele, record.count, total_depth),
                ref_frequency=ref_count / total_depth,
                gene_id=gene_id,
                indel_frequency=indel_count / total_depth,
                ref_count=ref_count,
            )
        )
    return candidates


def extract_candidates(
    records: Iterable[PileupRecord],
    gene_region: GeneRegion,
    scorer: HomopolymerScorer | None = None,
) -> list[CandidateVariant]:
    """Turn a region's pileup into candidate variants.

    Args:
        records: Pileup rows for the region.
        gene_region: Region being processed; its gene_id labels each candidate.
        scorer: Optional homopolymer scorer used to annotate each candidate.

    Returns:
        Candidates ordered by position, then by pileup allele order. An
        empty list when the region has no mismatches.
    """
    candidates: list[CandidateVariant] = []
    for group in group_pileup(records).values():
        candidates.extend(candidates_at_position(group, gene_region.gene_id))

    if scorer is not None:
        for candidate in candidates:
            candidate.homopolymer_pct = scorer.score(candidate.chromosome, candidate.position)

    logger.debug(f"{gene_region}: {len(candidates)} candidate variants")
    return candidates
