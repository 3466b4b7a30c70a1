"""scmut: single-cell long-read SNV discovery.

scmut counts alleles in long-read alignments over every annotated gene,
scores each candidate variant against a sequencing-error null, corrects
the p-values of all candidates together and writes per-position count
tables for downstream per-cell analysis.

Example:
    >>> import scmut
    >>> scmut.__version__
    '0.1.0'

Modules:
    io: Readers for FASTA, GFF3/GTF and BAM pileups
    core: Candidate extraction, filtering, scoring and reporting
    parallel: Per-region parallel execution
    utils: Logging and genomic region helpers
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
