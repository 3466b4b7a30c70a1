"""Input handlers for scmut.

- FASTA: reference genome sequence
- GFF3/GTF: gene regions
- BAM: per-position allele counts

Example:
    >>> from scmut.io import GenomeAccessor, PileupProvider, read_gene_regions
    >>> genome = GenomeAccessor("genome.fa")
    >>> regions = read_gene_regions("genes.gtf")
"""

from scmut.io.bam import PileupProvider, PileupRecord
from scmut.io.fasta import GenomeAccessor
from scmut.io.gff import GeneRegion, read_gene_regions

__all__ = [
    "GeneRegion",
    "GenomeAccessor",
    "PileupProvider",
    "PileupRecord",
    "read_gene_regions",
]
