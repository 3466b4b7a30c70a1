"""Variant discovery stages.

- candidates: pileup grouping and candidate extraction
- homopolymer: homopolymer context scoring
- crossval: short-read cross-validation
- filters: coverage and frequency filtering
- significance: hypergeometric test and Benjamini-Hochberg correction
- report: report assembly and writers
- pipeline: end-to-end run (import from scmut.core.pipeline)
"""

from scmut.core.candidates import CandidateVariant, extract_candidates
from scmut.core.crossval import ShortReadCrossValidator
from scmut.core.filters import CandidateFilter, FilterCriteria, FilterReason, FilterResult
from scmut.core.homopolymer import HomopolymerScorer, homopolymer_pct
from scmut.core.report import VariantReport, assemble, write_report
from scmut.core.significance import SignificanceScorer, benjamini_hochberg, hypergeom_p_value

__all__ = [
    "CandidateFilter",
    "CandidateVariant",
    "FilterCriteria",
    "FilterReason",
    "FilterResult",
    "HomopolymerScorer",
    "ShortReadCrossValidator",
    "SignificanceScorer",
    "VariantReport",
    "assemble",
    "benjamini_hochberg",
    "extract_candidates",
    "homopolymer_pct",
    "hypergeom_p_value",
    "write_report",
]
