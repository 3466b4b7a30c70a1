"""Gene region loading from GFF3/GTF annotation files.

Variant discovery works gene by gene, so only gene extents are needed.
Files that carry explicit ``gene`` features use them directly; files that
only list transcripts/exons (common for GTFs written by isoform callers)
get gene extents from the union of their child features.

Example:
    >>> from scmut.io.gff import read_gene_regions
    >>> regions = read_gene_regions("annotation.gff3")
    >>> regions[0].gene_id, regions[0].chromosome, regions[0].start
    ('gene1', 'chr1', 101)
"""

from __future__ import annotations

import gzip
import logging
import re
from pathlib import Path
from typing import Iterator, NamedTuple

from scmut.errors import InputUnavailableError
from scmut.utils.regions import GenomicRegion

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

# GFF3/GTF column indices
COL_SEQID = 0
COL_TYPE = 2
COL_START = 3
COL_END = 4
COL_STRAND = 6
COL_ATTRIBUTES = 8

FEATURE_TYPES_GENE = {"gene"}
FEATURE_TYPES_CHILD = {"mRNA", "transcript", "exon", "ncRNA", "lnc_RNA"}

_GTF_ATTRIBUTE = re.compile(r'\s*([^\s]+)\s+"?([^";]*)"?\s*')


# =============================================================================
# Data Models
# =============================================================================


class GeneRegion(NamedTuple):
    """A gene's genomic extent, the unit of parallel work.

    Attributes:
        gene_id: Gene identifier.
        gene_name: Display name (falls back to gene_id).
        chromosome: Chromosome name.
        start: Start position (1-based, inclusive).
        end: End position (1-based, inclusive).
        strand: Strand (+, - or .).
    """

    gene_id: str
    gene_name: str
    chromosome: str
    start: int
    end: int
    strand: str = "."

    @property
    def region(self) -> GenomicRegion:
        """The extent as a 0-based half-open GenomicRegion."""
        return GenomicRegion(self.chromosome, self.start - 1, self.end)

    def __str__(self) -> str:
        return f"{self.gene_name} ({self.chromosome}:{self.start}-{self.end})"


# =============================================================================
# Attribute Parsing
# =============================================================================


def parse_attributes(attr_string: str) -> dict[str, str]:
    """Parse a GFF3 (key=value) or GTF (key "value") attribute column.

    Args:
        attr_string: Attribute column text.

    Returns:
        Dictionary of attribute key-value pairs.
    """
    attributes: dict[str, str] = {}
    if not attr_string or attr_string == ".":
        return attributes

    for item in attr_string.split(";"):
        item = item.strip()
        if not item:
            continue

        if "=" in item:
            key, value = item.split("=", 1)
            value = value.replace("%3B", ";").replace("%3D", "=").replace("%26", "&")
            value = value.replace("%2C", ",")
            attributes[key.strip()] = value
        else:
            match = _GTF_ATTRIBUTE.fullmatch(item)
            if match:
                attributes.setdefault(match.group(1), match.group(2))

    return attributes


def _gene_key(attributes: dict[str, str]) -> str | None:
    """Identify the gene a child feature belongs to."""
    if "gene_id" in attributes:
        return attributes["gene_id"]
    parent = attributes.get("Parent")
    if parent:
        return parent.split(",")[0]
    return None


def _open_text(path: Path):
    if path.suffix == ".gz":
        return gzip.open(path, "rt")
    return open(path)


# =============================================================================
# Reader
# =============================================================================


def iter_features(path: Path) -> Iterator[tuple[list[str], dict[str, str]]]:
    """Yield (columns, attributes) for every feature line.

    Malformed lines are logged and skipped.
    """
    with _open_text(path) as f:
        for line in f:
            line = line.rstrip("\n")
            if not line or line.startswith("#"):
                continue

            parts = line.split("\t")
            if len(parts) < 9:
                logger.warning(f"Malformed annotation line (expected 9 columns): {line[:50]}...")
                continue

            yield parts, parse_attributes(parts[COL_ATTRIBUTES])


def read_gene_regions(annotation_path: Path | str) -> list[GeneRegion]:
    """Read gene extents from a GFF3 or GTF file.

    Args:
        annotation_path: Path to the annotation (optionally gzipped).

    Returns:
        Gene regions in file order.

    Raises:
        InputUnavailableError: If the file is missing or yields no genes.
    """
    path = Path(annotation_path)
    if not path.exists():
        raise InputUnavailableError("Gene annotation", path)

    genes: dict[str, GeneRegion] = {}
    # transcript/exon IDs -> gene ID, for GFF3 children that point at transcripts
    parents: dict[str, str] = {}
    extents: dict[str, list] = {}

    for parts, attributes in iter_features(path):
        ftype = parts[COL_TYPE]
        try:
            start = int(parts[COL_START])
            end = int(parts[COL_END])
        except ValueError:
            logger.warning(f"Non-integer coordinates in annotation line: {parts[:5]}")
            continue
        strand = parts[COL_STRAND] if parts[COL_STRAND] in ("+", "-") else "."

        if ftype in FEATURE_TYPES_GENE:
            gene_id = attributes.get("ID", attributes.get("gene_id", f"gene_{len(genes)}"))
            gene_name = attributes.get("Name", attributes.get("gene_name", gene_id))
            genes[gene_id] = GeneRegion(gene_id, gene_name, parts[COL_SEQID], start, end, strand)

        elif ftype in FEATURE_TYPES_CHILD:
            gene_id = _gene_key(attributes)
            if gene_id is None:
                continue
            gene_id = parents.get(gene_id, gene_id)
            if "ID" in attributes:
                parents[attributes["ID"]] = gene_id

            extent = extents.setdefault(
                gene_id,
                [parts[COL_SEQID], start, end, strand, attributes.get("gene_name", gene_id)],
            )
            extent[1] = min(extent[1], start)
            extent[2] = max(extent[2], end)

    for gene_id, (seqid, start, end, strand, name) in extents.items():
        if gene_id not in genes:
            genes[gene_id] = GeneRegion(gene_id, name, seqid, start, end, strand)

    if not genes:
        raise InputUnavailableError("Gene annotation", path, reason="contains no genes")

    logger.info(f"Loaded {len(genes)} gene regions from {path.name}")
    return list(genes.values())
