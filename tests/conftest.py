"""Pytest configuration and shared fixtures for scmut tests.

Fixtures are organized by category:

- FASTA fixtures: small synthetic reference genomes
- Annotation fixtures: GFF3/GTF gene regions
- BAM fixtures: coordinate-sorted, indexed alignments written with pysam
- Candidate fixtures: in-memory CandidateVariant objects

The synthetic long-read BAM has ten reads over chr1:41-60. Two of them
carry T at chr1:49 (reference A), so that position has A=8, T=2.
"""

import json
from pathlib import Path
from typing import Callable

import pysam
import pytest

from scmut.core.candidates import CandidateVariant

# chr1 is ACGT repeated; the base at 1-based position p is "ACGT"[(p - 1) % 4]
CHR1_SEQUENCE = "ACGT" * 50
CHR2_SEQUENCE = "AAAAACCCCCGGGGGTTTTT" * 5

READ_START = 40  # 0-based, so reads cover 1-based positions 41-60
READ_LENGTH = 20
VARIANT_POSITION = 49
VARIANT_OFFSET = VARIANT_POSITION - READ_START - 1

BARCODES = ["AAACCTGA", "GGGTTTCA"]


def _ref_read_sequence() -> str:
    return CHR1_SEQUENCE[READ_START : READ_START + READ_LENGTH]


def _alt_read_sequence(alt: str = "T") -> str:
    seq = list(_ref_read_sequence())
    seq[VARIANT_OFFSET] = alt
    return "".join(seq)


# =============================================================================
# Helpers
# =============================================================================


def write_bam(
    path: Path,
    reads: list[dict],
    references: dict[str, int] | None = None,
) -> Path:
    """Write reads to a coordinate-sorted BAM and index it.

    Each read is a dict with keys: sequence, start (0-based), cigar and
    optionally chrom (default chr1), tags and flag.
    """
    if references is None:
        references = {"chr1": len(CHR1_SEQUENCE), "chr2": len(CHR2_SEQUENCE)}
    names = list(references)
    header = {
        "HD": {"VN": "1.6", "SO": "coordinate"},
        "SQ": [{"SN": name, "LN": length} for name, length in references.items()],
    }

    ordered = sorted(reads, key=lambda r: (names.index(r.get("chrom", "chr1")), r["start"]))
    with pysam.AlignmentFile(str(path), "wb", header=header) as bam:
        for i, entry in enumerate(ordered):
            read = pysam.AlignedSegment()
            read.query_name = f"read{i:04d}"
            read.flag = entry.get("flag", 0)
            read.reference_id = names.index(entry.get("chrom", "chr1"))
            read.reference_start = entry["start"]
            read.mapping_quality = 60
            read.cigarstring = entry["cigar"]
            read.query_sequence = entry["sequence"]
            read.query_qualities = pysam.qualitystring_to_array("I" * len(entry["sequence"]))
            for tag, value in entry.get("tags", {}).items():
                read.set_tag(tag, value)
            bam.write(read)

    pysam.index(str(path))
    return path


# =============================================================================
# FASTA Fixtures
# =============================================================================


@pytest.fixture
def synthetic_fasta(tmp_path: Path) -> Path:
    """Two-chromosome reference: chr1 (200 bp, ACGT repeat) and chr2 (100 bp, runs of 5)."""
    fasta_path = tmp_path / "genome.fa"
    with open(fasta_path, "w") as f:
        for seqid, seq in (("chr1", CHR1_SEQUENCE), ("chr2", CHR2_SEQUENCE)):
            f.write(f">{seqid}\n")
            for i in range(0, len(seq), 60):
                f.write(seq[i : i + 60] + "\n")
    return fasta_path


# =============================================================================
# Annotation Fixtures
# =============================================================================


@pytest.fixture
def synthetic_gff3(tmp_path: Path) -> Path:
    """Two genes on chr1: gene1 covers the reads, gene2 has no coverage."""
    gff_path = tmp_path / "genes.gff3"
    content = """\
##gff-version 3
chr1\ttest\tgene\t31\t80\t.\t+\t.\tID=gene1;Name=GeneOne
chr1\ttest\tmRNA\t31\t80\t.\t+\t.\tID=tx1;Parent=gene1
chr1\ttest\texon\t31\t80\t.\t+\t.\tID=exon1;Parent=tx1
chr1\ttest\tgene\t121\t160\t.\t-\t.\tID=gene2;Name=GeneTwo
chr1\ttest\tmRNA\t121\t160\t.\t-\t.\tID=tx2;Parent=gene2
"""
    gff_path.write_text(content)
    return gff_path


@pytest.fixture
def synthetic_gtf(tmp_path: Path) -> Path:
    """GTF without gene lines; gene extents come from transcripts and exons."""
    gtf_path = tmp_path / "genes.gtf"
    content = """\
chr1\ttest\ttranscript\t31\t80\t.\t+\t.\tgene_id "g1"; transcript_id "t1"; gene_name "GeneOne";
chr1\ttest\texon\t31\t50\t.\t+\t.\tgene_id "g1"; transcript_id "t1";
chr1\ttest\texon\t61\t90\t.\t+\t.\tgene_id "g1"; transcript_id "t1";
chr2\ttest\texon\t11\t40\t.\t-\t.\tgene_id "g2"; transcript_id "t2";
"""
    gtf_path.write_text(content)
    return gtf_path


# =============================================================================
# BAM Fixtures
# =============================================================================


@pytest.fixture
def bam_writer() -> Callable[..., Path]:
    """The write_bam helper, for tests that need custom alignments."""
    return write_bam


@pytest.fixture
def long_read_bam(tmp_path: Path) -> Path:
    """Ten reads over chr1:41-60; reads 0 and 5 carry T at chr1:49.

    Reads 0-4 belong to the first barcode, 5-9 to the second.
    """
    reads = []
    for i in range(10):
        sequence = _alt_read_sequence() if i in (0, 5) else _ref_read_sequence()
        reads.append(
            {
                "sequence": sequence,
                "start": READ_START,
                "cigar": f"{READ_LENGTH}M",
                "tags": {"CB": BARCODES[0] if i < 5 else BARCODES[1]},
            }
        )
    return write_bam(tmp_path / "align2genome.bam", reads)


@pytest.fixture
def short_read_bam_no_support(tmp_path: Path) -> Path:
    """Fifty reference-only short reads over chr1:41-60."""
    reads = [
        {"sequence": _ref_read_sequence(), "start": READ_START, "cigar": f"{READ_LENGTH}M"}
        for _ in range(50)
    ]
    return write_bam(tmp_path / "short_ref_only.bam", reads)


@pytest.fixture
def short_read_bam_support(tmp_path: Path) -> Path:
    """Forty reference and ten T short reads over chr1:41-60."""
    reads = [
        {
            "sequence": _alt_read_sequence() if i < 10 else _ref_read_sequence(),
            "start": READ_START,
            "cigar": f"{READ_LENGTH}M",
        }
        for i in range(50)
    ]
    return write_bam(tmp_path / "short_support.bam", reads)


@pytest.fixture
def short_read_bam_sparse(tmp_path: Path) -> Path:
    """Three reference-only short reads; too thin to judge any position."""
    reads = [
        {"sequence": _ref_read_sequence(), "start": READ_START, "cigar": f"{READ_LENGTH}M"}
        for _ in range(3)
    ]
    return write_bam(tmp_path / "short_sparse.bam", reads)


@pytest.fixture
def barcode_tsv(tmp_path: Path) -> Path:
    path = tmp_path / "barcodes.tsv"
    path.write_text("\n".join(BARCODES) + "\n")
    return path


@pytest.fixture
def run_dir(
    tmp_path: Path,
    synthetic_fasta: Path,
    synthetic_gff3: Path,
    long_read_bam: Path,
) -> Path:
    """Output directory of a prior pipeline run, with its metadata JSON."""
    out_dir = tmp_path / "run"
    out_dir.mkdir()
    metadata = {
        "genome_fa": str(synthetic_fasta),
        "annotation": str(synthetic_gff3),
        "outdir": str(out_dir),
        "bam": str(long_read_bam),
    }
    (out_dir / "config.json").write_text(json.dumps(metadata))
    return out_dir


# =============================================================================
# Candidate Fixtures
# =============================================================================


def make_candidate(
    position: int = 100,
    alt_count: int = 20,
    total_depth: int = 200,
    alt_allele: str = "T",
    chromosome: str = "chr1",
    **kwargs,
) -> CandidateVariant:
    """A CandidateVariant with consistent frequencies."""
    ref_count = kwargs.pop("ref_count", total_depth - alt_count)
    return CandidateVariant(
        chromosome=chromosome,
        position=position,
        ref_allele=kwargs.pop("ref_allele", "A"),
        alt_allele=alt_allele,
        alt_count=alt_count,
        total_depth=total_depth,
        alt_frequency=kwargs.pop("alt_frequency", alt_count / total_depth),
        ref_frequency=kwargs.pop("ref_frequency", ref_count / total_depth),
        gene_id=kwargs.pop("gene_id", "gene1"),
        ref_count=ref_count,
        **kwargs,
    )


@pytest.fixture
def candidate_factory() -> Callable[..., CandidateVariant]:
    return make_candidate
