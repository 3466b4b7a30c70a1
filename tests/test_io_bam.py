"""Unit tests for scmut.io.bam.

Tests cover:
- PileupRecord data structure
- Allele counting over real (synthetic) indexed BAM files
- Insertion and deletion alleles
- Minimum nucleotide depth floor
- Per-cell counting by barcode tag
- Missing BAM or index handling
"""

from pathlib import Path

import pytest

from conftest import BARCODES, CHR1_SEQUENCE
from scmut.errors import InputUnavailableError
from scmut.io.bam import DELETION, INSERTION, PileupProvider, PileupRecord, check_bam_index
from scmut.io.fasta import GenomeAccessor


@pytest.fixture
def genome(synthetic_fasta: Path):
    with GenomeAccessor(synthetic_fasta) as accessor:
        yield accessor


@pytest.fixture
def indel_bam(tmp_path: Path, bam_writer):
    """Reads over chr1:41-60 with deletions and insertions at chr1:50.

    - 5 reads matching the reference
    - 3 reads deleting chr1:50
    - 2 reads inserting GG after chr1:50
    - 1 read with N at chr1:49
    """
    ref = CHR1_SEQUENCE[40:60]
    reads = [{"sequence": ref, "start": 40, "cigar": "20M"} for _ in range(5)]
    reads += [
        {"sequence": ref[:9] + ref[10:], "start": 40, "cigar": "9M1D10M"} for _ in range(3)
    ]
    reads += [
        {"sequence": ref[:10] + "GG" + ref[10:18], "start": 40, "cigar": "10M2I8M"}
        for _ in range(2)
    ]
    reads.append({"sequence": ref[:8] + "N" + ref[9:], "start": 40, "cigar": "20M"})
    return bam_writer(tmp_path / "indels.bam", reads)


# =============================================================================
# Data Structure Tests
# =============================================================================


class TestPileupRecord:
    def test_creation(self) -> None:
        record = PileupRecord("chr1", 49, "T", 2, "A")
        assert record.chromosome == "chr1"
        assert record.position == 49
        assert record.allele == "T"
        assert record.count == 2
        assert record.reference_allele == "A"

    def test_immutable(self) -> None:
        record = PileupRecord("chr1", 49, "T", 2, "A")
        with pytest.raises(AttributeError):
            record.count = 3


# =============================================================================
# Pileup Tests
# =============================================================================


class TestPileupProvider:
    def test_pileup_counts(self, long_read_bam: Path, genome) -> None:
        with PileupProvider(long_read_bam, genome, min_nucleotide_depth=1) as provider:
            records = provider.pileup("chr1", 41, 60)

        at_variant = [r for r in records if r.position == 49]
        assert at_variant == [
            PileupRecord("chr1", 49, "A", 8, "A"),
            PileupRecord("chr1", 49, "T", 2, "A"),
        ]
        elsewhere = [r for r in records if r.position != 49]
        assert len(elsewhere) == 19
        assert all(r.count == 10 and r.allele == r.reference_allele for r in elsewhere)

    def test_pileup_truncated_to_interval(self, long_read_bam: Path, genome) -> None:
        with PileupProvider(long_read_bam, genome, min_nucleotide_depth=1) as provider:
            records = provider.pileup("chr1", 45, 50)
        assert sorted({r.position for r in records}) == [45, 46, 47, 48, 49, 50]

    def test_min_nucleotide_depth_floor(self, long_read_bam: Path, genome) -> None:
        with PileupProvider(long_read_bam, genome) as provider:
            records = provider.pileup("chr1", 49, 49)
        assert records == [PileupRecord("chr1", 49, "A", 8, "A")]

    def test_uncovered_interval(self, long_read_bam: Path, genome) -> None:
        with PileupProvider(long_read_bam, genome) as provider:
            assert provider.pileup("chr1", 121, 160) == []
            assert provider.pileup("chrUn", 1, 100) == []

    def test_deletion_and_insertion_alleles(self, indel_bam: Path, genome) -> None:
        with PileupProvider(indel_bam, genome, min_nucleotide_depth=1) as provider:
            counts = provider.allele_counts("chr1", 50)
        assert counts["C"] == 8
        assert counts[DELETION] == 3
        assert counts[INSERTION] == 2

    def test_n_bases_ignored(self, indel_bam: Path, genome) -> None:
        with PileupProvider(indel_bam, genome, min_nucleotide_depth=1) as provider:
            counts = provider.allele_counts("chr1", 49)
        assert counts == {"A": 10}

    def test_allele_counts_by_barcode(self, long_read_bam: Path, genome) -> None:
        with PileupProvider(long_read_bam, genome) as provider:
            by_allele = provider.allele_counts_by_barcode("chr1", 49)
        assert by_allele["A"] == {BARCODES[0]: 4, BARCODES[1]: 4}
        assert by_allele["T"] == {BARCODES[0]: 1, BARCODES[1]: 1}

    def test_allele_counts_by_barcode_whitelist(self, long_read_bam: Path, genome) -> None:
        with PileupProvider(long_read_bam, genome) as provider:
            by_allele = provider.allele_counts_by_barcode("chr1", 49, barcodes={BARCODES[0]})
        assert by_allele["T"] == {BARCODES[0]: 1}

    def test_references(self, long_read_bam: Path, genome) -> None:
        with PileupProvider(long_read_bam, genome) as provider:
            assert provider.references == ["chr1", "chr2"]

    def test_closed_provider(self, long_read_bam: Path, genome) -> None:
        provider = PileupProvider(long_read_bam, genome)
        provider.close()
        with pytest.raises(RuntimeError, match="not open"):
            provider.pileup("chr1", 41, 60)


# =============================================================================
# Input Errors
# =============================================================================


class TestMissingInputs:
    def test_missing_bam(self, tmp_path: Path, genome) -> None:
        with pytest.raises(InputUnavailableError, match="Alignment BAM"):
            PileupProvider(tmp_path / "missing.bam", genome)

    def test_missing_index(self, long_read_bam: Path, genome) -> None:
        Path(str(long_read_bam) + ".bai").unlink()
        with pytest.raises(InputUnavailableError, match="BAM index"):
            PileupProvider(long_read_bam, genome)

    def test_check_bam_index(self, long_read_bam: Path) -> None:
        check_bam_index(long_read_bam)
