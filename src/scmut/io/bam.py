"""BAM pileup access for allele counting.

This module turns indexed alignments into per-position, per-allele read
counts (`PileupRecord`). Counting follows the usual pileup conventions for
long-read SNV discovery:

    - no base or mapping quality floor
    - unmapped, secondary, QC-failed and duplicate reads are skipped
    - N bases in reads are ignored
    - deletions are counted as the ``-`` allele at every deleted position
    - an insertion is counted as the ``+`` allele at the base preceding it,
      in addition to that base's own allele
    - alleles supported by fewer than ``min_nucleotide_depth`` reads are
      dropped

Example:
    >>> from scmut.io.bam import PileupProvider
    >>> from scmut.io.fasta import GenomeAccessor
    >>> genome = GenomeAccessor("genome.fa")
    >>> with PileupProvider("align2genome.bam", genome) as provider:
    ...     for record in provider.pileup("chr1", 1000, 2000):
    ...         print(record.position, record.allele, record.count)
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, NamedTuple

import pysam

from scmut.errors import InputUnavailableError

if TYPE_CHECKING:
    from scmut.io.fasta import GenomeAccessor

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

INSERTION = "+"
DELETION = "-"
BASES = ("A", "C", "G", "T")
ALLELES = BASES + (INSERTION, DELETION)

DEFAULT_MIN_NUCLEOTIDE_DEPTH = 5
DEFAULT_BARCODE_TAG = "CB"

# Effectively unlimited; long-read pileups routinely exceed pysam's 8000 default
MAX_PILEUP_DEPTH = 2**31 - 2


# =============================================================================
# Data Structures
# =============================================================================


class PileupRecord(NamedTuple):
    """Read support for one allele at one position.

    Attributes:
        chromosome: Chromosome name.
        position: 1-based position.
        allele: A, C, G, T, ``+`` (insertion) or ``-`` (deletion).
        count: Number of reads supporting the allele.
        reference_allele: Reference base at the position.
    """

    chromosome: str
    position: int
    allele: str
    count: int
    reference_allele: str


# =============================================================================
# Helpers
# =============================================================================


def check_bam_index(bam_path: Path) -> None:
    """Raise InputUnavailableError unless a .bai/.csi index sits beside the BAM."""
    index_paths = [
        Path(str(bam_path) + ".bai"),
        bam_path.with_suffix(".bai"),
        Path(str(bam_path) + ".csi"),
    ]
    if not any(p.exists() for p in index_paths):
        raise InputUnavailableError(
            "BAM index", bam_path, reason=f"not found (run: samtools index {bam_path})"
        )


def read_alleles(column: Any) -> Iterable[tuple[str, pysam.AlignedSegment]]:
    """Yield (allele, read) for every read in a pileup column.

    A read carrying an insertion after this position yields both its base
    and the insertion marker.
    """
    for pileup_read in column.pileups:
        if pileup_read.is_refskip:
            continue

        read = pileup_read.alignment
        if pileup_read.is_del:
            yield DELETION, read
        else:
            sequence = read.query_sequence
            if sequence is not None:
                base = sequence[pileup_read.query_position].upper()
                if base in BASES:
                    yield base, read

        if pileup_read.indel > 0:
            yield INSERTION, read


# =============================================================================
# Pileup Provider
# =============================================================================


class PileupProvider:
    """Per-position allele counts from an indexed BAM file.

    Attributes:
        path: Path to the BAM file.
        min_nucleotide_depth: Alleles with fewer reads are dropped.

    Example:
        >>> provider = PileupProvider("short_reads.bam", genome, min_nucleotide_depth=1)
        >>> counts = provider.allele_counts("chr1", 1234)
        >>> counts["A"], sum(counts.values())
    """

    def __init__(
        self,
        bam_path: Path | str,
        genome: GenomeAccessor,
        min_nucleotide_depth: int = DEFAULT_MIN_NUCLEOTIDE_DEPTH,
    ) -> None:
        """Open the alignment file.

        Args:
            bam_path: Path to a coordinate-sorted, indexed BAM.
            genome: Reference used to label each position's reference allele.
            min_nucleotide_depth: Minimum reads for an allele to be reported.

        Raises:
            InputUnavailableError: If the BAM or its index is missing or unreadable.
        """
        self.path = Path(bam_path)
        self.genome = genome
        self.min_nucleotide_depth = min_nucleotide_depth

        if not self.path.exists():
            raise InputUnavailableError("Alignment BAM", self.path)
        check_bam_index(self.path)

        try:
            self._bam: pysam.AlignmentFile | None = pysam.AlignmentFile(str(self.path), "rb")
        except (OSError, ValueError) as e:
            raise InputUnavailableError(
                "Alignment BAM", self.path, reason=f"unreadable ({e})"
            ) from e
        logger.debug(f"Opened BAM file: {self.path.name}")

    def __enter__(self) -> PileupProvider:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the BAM file."""
        if self._bam is not None:
            self._bam.close()
            self._bam = None

    @property
    def references(self) -> list[str]:
        """Reference sequence names in the BAM header."""
        if self._bam is None:
            raise RuntimeError("BAM file not open")
        return list(self._bam.references)

    def _columns(self, chromosome: str, start: int, end: int) -> Iterable[Any]:
        """Pileup columns over a 1-based inclusive interval."""
        if self._bam is None:
            raise RuntimeError("BAM file not open")
        if chromosome not in self._bam.references:
            logger.debug(f"{chromosome} not present in {self.path.name}")
            return iter(())

        return self._bam.pileup(
            chromosome,
            start - 1,
            end,
            truncate=True,
            stepper="all",
            min_base_quality=0,
            min_mapping_quality=0,
            ignore_overlaps=False,
            ignore_orphans=False,
            max_depth=MAX_PILEUP_DEPTH,
        )

    def pileup(self, chromosome: str, start: int, end: int) -> list[PileupRecord]:
        """Count alleles at every covered position of a 1-based inclusive interval.

        Args:
            chromosome: Chromosome name.
            start: First position (1-based).
            end: Last position (1-based, inclusive).

        Returns:
            PileupRecords ordered by position, then by allele in ALLELES order.
        """
        records: list[PileupRecord] = []

        for column in self._columns(chromosome, start, end):
            counts = Counter(allele for allele, _ in read_alleles(column))
            if not counts:
                continue

            position = column.reference_pos + 1
            reference_allele = self.genome.get_base(chromosome, position)

            for allele in ALLELES:
                count = counts.get(allele, 0)
                if count > 0 and count >= self.min_nucleotide_depth:
                    records.append(
                        PileupRecord(chromosome, position, allele, count, reference_allele)
                    )

        logger.debug(
            f"Pileup {chromosome}:{start}-{end} in {self.path.name}: {len(records)} records"
        )
        return records

    def allele_counts(self, chromosome: str, position: int) -> Counter:
        """Allele counts at a single 1-based position (no depth floor applied)."""
        counts: Counter = Counter()
        for column in self._columns(chromosome, position, position):
            counts.update(allele for allele, _ in read_alleles(column))
        return counts

    def allele_counts_by_barcode(
        self,
        chromosome: str,
        position: int,
        barcode_tag: str = DEFAULT_BARCODE_TAG,
        barcodes: set[str] | None = None,
    ) -> dict[str, Counter]:
        """Per-cell allele counts at a single 1-based position.

        Args:
            chromosome: Chromosome name.
            position: 1-based position.
            barcode_tag: Read tag holding the cell barcode.
            barcodes: If given, reads from other barcodes are ignored.

        Returns:
            {allele: Counter(barcode -> reads)}.
        """
        by_allele: dict[str, Counter] = defaultdict(Counter)
        for column in self._columns(chromosome, position, position):
            for allele, read in read_alleles(column):
                if not read.has_tag(barcode_tag):
                    continue
                barcode = str(read.get_tag(barcode_tag))
                if barcodes is not None and barcode not in barcodes:
                    continue
                by_allele[allele][barcode] += 1
        return dict(by_allele)
