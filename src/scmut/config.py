"""Configuration for scmut variant discovery runs.

A run needs a reference genome, a gene annotation, a long-read alignment
and an output directory. These usually come from an earlier single-cell
long-read pipeline run, so each of them is resolved in this order:

1. an explicit value given by the caller (CLI option or keyword argument)
2. the prior pipeline's metadata JSON (keys ``genome_fa``, ``annotation``,
   ``outdir``, ``bam``; an ``OutputFiles`` sub-object is also accepted)
3. defaults derived from the output directory:
   ``<out_dir>/align2genome.bam`` and, when ``use_isoform_annotation`` is
   set, ``<out_dir>/isoform_annotated.gff3``

Example:
    >>> from scmut.config import MutationConfig
    >>> config = MutationConfig.resolve(out_dir="run1", metadata="run1/config.json")
    >>> config.validate()
    >>> config.check_inputs()
    >>> config.min_cov
    100
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import attrs

from scmut.core.crossval import DEFAULT_SHORT_READ_MIN_COV
from scmut.core.filters import DEFAULT_MIN_COV, DEFAULT_REPORT_PCT, FilterCriteria
from scmut.core.homopolymer import DEFAULT_WINDOW
from scmut.core.significance import DEFAULT_ERROR_RATE
from scmut.errors import ConfigError, InputUnavailableError
from scmut.io.bam import DEFAULT_BARCODE_TAG, DEFAULT_MIN_NUCLEOTIDE_DEPTH, check_bam_index
from scmut.utils.regions import GenomicRegion, KnownPosition, parse_known_positions, parse_region

logger = logging.getLogger(__name__)

# =============================================================================
# Default Configuration Values
# =============================================================================

DEFAULT_BAM_NAME = "align2genome.bam"
DEFAULT_ISOFORM_ANNOTATION = "isoform_annotated.gff3"

RESOLVED_CONFIG_FILE = "resolved_config.json"

DEFAULT_THREADS = 1
DEFAULT_BACKEND = "threads"

# Minimum reads for an allele to count in the short-read pileup
DEFAULT_SHORT_READ_MIN_NUCLEOTIDE_DEPTH = 1

METADATA_KEYS = {
    "genome_fa": ("genome_fa", "genome"),
    "annotation": ("annotation", "AnnotationFile", "annot"),
    "out_dir": ("outdir", "out_dir"),
    "bam": ("bam", "genome_bam", "align2genome_bam"),
}


def _path_or_none(value: Any) -> Path | None:
    if value is None or value is False or value == "":
        return None
    return Path(value)


def load_metadata(path: Path | str) -> dict[str, Any]:
    """Read a prior pipeline's metadata JSON.

    Both a flat mapping and one nested under ``OutputFiles`` are accepted.

    Raises:
        InputUnavailableError: If the file is missing or not valid JSON.
    """
    path = Path(path)
    if not path.exists():
        raise InputUnavailableError("Pipeline metadata", path)
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise InputUnavailableError("Pipeline metadata", path, reason=f"unreadable ({e})") from e

    if not isinstance(data, dict):
        raise InputUnavailableError("Pipeline metadata", path, reason="is not a JSON object")
    return normalize_metadata(data)


def normalize_metadata(data: dict[str, Any]) -> dict[str, Any]:
    """Map metadata keys onto genome_fa, annotation, out_dir and bam."""
    merged = dict(data)
    if isinstance(data.get("OutputFiles"), dict):
        merged.update(data["OutputFiles"])

    resolved: dict[str, Any] = {}
    for field, keys in METADATA_KEYS.items():
        for key in keys:
            if merged.get(key):
                resolved[field] = merged[key]
                break
    return resolved


# =============================================================================
# Configuration Class
# =============================================================================


@attrs.define
class MutationConfig:
    """All options of a variant discovery run.

    Attributes:
        genome_fa: Reference genome FASTA.
        annotation: Gene annotation (GFF3/GTF) defining the gene regions.
        out_dir: Output directory; artifacts go to ``<out_dir>/mutation``.
        bam: Long-read alignment BAM.
        bam_short: Optional short-read alignment BAM for cross-validation.
        barcode_tsv: Optional cell barcode list; enables per-cell count tables.
        barcode_tag: Read tag holding the cell barcode.
        known_positions: Loci exempt from depth/frequency filtering.
        min_cov: Minimum total depth of a reported candidate.
        report_pct: Closed allele-frequency range of reported candidates.
        min_nucleotide_depth: Long-read alleles with fewer reads are ignored.
        short_read_min_cov: Short-read depth needed to judge a candidate.
        short_read_min_nucleotide_depth: Short-read alleles with fewer reads are ignored.
        error_rate: Background error rate of the significance test.
        homopolymer_window: Bases on each side used for homopolymer scoring.
        include_variant_position: Count the variant base in the homopolymer window.
        max_homopolymer_pct: Optional homopolymer cut-off (None = report only).
        threads: Worker count for per-region processing.
        backend: Worker backend (serial, threads, processes).
        region: Optional genomic region; only genes overlapping it are processed.
    """

    genome_fa: Path | None = None
    annotation: Path | None = None
    out_dir: Path | None = None
    bam: Path | None = None
    bam_short: Path | None = None
    barcode_tsv: Path | None = None
    barcode_tag: str = DEFAULT_BARCODE_TAG
    known_positions: list[KnownPosition] = attrs.Factory(list)
    min_cov: int = DEFAULT_MIN_COV
    report_pct: tuple[float, float] = DEFAULT_REPORT_PCT
    min_nucleotide_depth: int = DEFAULT_MIN_NUCLEOTIDE_DEPTH
    short_read_min_cov: int = DEFAULT_SHORT_READ_MIN_COV
    short_read_min_nucleotide_depth: int = DEFAULT_SHORT_READ_MIN_NUCLEOTIDE_DEPTH
    error_rate: float = DEFAULT_ERROR_RATE
    homopolymer_window: int = DEFAULT_WINDOW
    include_variant_position: bool = False
    max_homopolymer_pct: float | None = None
    threads: int = DEFAULT_THREADS
    backend: str = DEFAULT_BACKEND
    region: GenomicRegion | None = None

    @classmethod
    def resolve(
        cls,
        genome_fa: Path | str | None = None,
        annotation: Path | str | None = None,
        out_dir: Path | str | None = None,
        bam: Path | str | None = None,
        metadata: Path | str | dict[str, Any] | None = None,
        use_isoform_annotation: bool = False,
        known_positions: Any = None,
        report_pct: tuple[float, float] | list[float] | None = None,
        **options: Any,
    ) -> MutationConfig:
        """Build a config by layering explicit values over metadata and defaults.

        Args:
            genome_fa: Explicit reference genome.
            annotation: Explicit annotation.
            out_dir: Explicit output directory.
            bam: Explicit long-read BAM.
            metadata: Path to (or already-loaded dict of) prior pipeline metadata.
            use_isoform_annotation: Fall back to ``<out_dir>/isoform_annotated.gff3``
                instead of the metadata annotation.
            known_positions: Any form accepted by parse_known_positions.
            report_pct: (low, high) allele-frequency range.
            **options: Remaining MutationConfig fields.

        Returns:
            Resolved configuration (not yet validated).
        """
        if metadata is None:
            meta: dict[str, Any] = {}
        elif isinstance(metadata, dict):
            meta = normalize_metadata(metadata)
        else:
            meta = load_metadata(metadata)

        resolved_out = _path_or_none(out_dir) or _path_or_none(meta.get("out_dir"))

        resolved_annotation = _path_or_none(annotation)
        if resolved_annotation is None:
            if use_isoform_annotation and resolved_out is not None:
                resolved_annotation = resolved_out / DEFAULT_ISOFORM_ANNOTATION
            else:
                resolved_annotation = _path_or_none(meta.get("annotation"))

        resolved_bam = _path_or_none(bam) or _path_or_none(meta.get("bam"))
        if resolved_bam is None and resolved_out is not None:
            resolved_bam = resolved_out / DEFAULT_BAM_NAME

        for key in ("bam_short", "barcode_tsv"):
            if key in options:
                options[key] = _path_or_none(options[key])
        if isinstance(options.get("region"), str):
            options["region"] = parse_region(options["region"])

        config = cls(
            genome_fa=_path_or_none(genome_fa) or _path_or_none(meta.get("genome_fa")),
            annotation=resolved_annotation,
            out_dir=resolved_out,
            bam=resolved_bam,
            known_positions=parse_known_positions(known_positions),
            report_pct=tuple(report_pct) if report_pct is not None else DEFAULT_REPORT_PCT,
            **options,
        )
        logger.debug(f"Resolved configuration: {config.to_dict()}")
        return config

    def validate(self) -> None:
        """Check parameter values.

        Raises:
            ConfigError: On the first invalid value.
        """
        if self.min_cov < 0:
            raise ConfigError(f"min_cov must be >= 0, got {self.min_cov}")

        if len(self.report_pct) != 2:
            raise ConfigError(f"report_pct must be a (low, high) pair, got {self.report_pct}")
        low, high = self.report_pct
        if not (0.0 <= low <= 1.0 and 0.0 <= high <= 1.0):
            raise ConfigError(f"report_pct values must lie in [0, 1], got {self.report_pct}")
        if low > high:
            raise ConfigError(f"report_pct low must be <= high, got {self.report_pct}")

        if self.min_nucleotide_depth < 0 or self.short_read_min_nucleotide_depth < 0:
            raise ConfigError("Minimum nucleotide depths must be >= 0")
        if self.short_read_min_cov < 0:
            raise ConfigError(f"short_read_min_cov must be >= 0, got {self.short_read_min_cov}")
        if not 0.0 <= self.error_rate < 1.0:
            raise ConfigError(f"error_rate must be in [0, 1), got {self.error_rate}")
        if self.homopolymer_window < 1:
            raise ConfigError(f"homopolymer_window must be >= 1, got {self.homopolymer_window}")
        if self.max_homopolymer_pct is not None and not 0.0 <= self.max_homopolymer_pct <= 1.0:
            raise ConfigError(
                f"max_homopolymer_pct must be in [0, 1], got {self.max_homopolymer_pct}"
            )
        if self.threads < 1:
            raise ConfigError(f"threads must be >= 1, got {self.threads}")
        if self.backend not in ("serial", "threads", "processes"):
            raise ConfigError(f"Unknown backend: {self.backend}")

    def check_inputs(self) -> None:
        """Check that every required input exists, in pipeline order.

        Raises:
            InputUnavailableError: Naming the first unavailable input.
        """
        required = [
            ("Reference genome FASTA", self.genome_fa),
            ("Gene annotation", self.annotation),
            ("Output directory", self.out_dir),
            ("Alignment BAM", self.bam),
        ]
        for name, path in required:
            if path is None:
                raise InputUnavailableError(name, reason="not specified")
        for name, path in required:
            if name != "Output directory" and not path.exists():
                raise InputUnavailableError(name, path)

        check_bam_index(self.bam)

        if self.bam_short is not None:
            if not self.bam_short.exists():
                raise InputUnavailableError("Short-read BAM", self.bam_short)
            check_bam_index(self.bam_short)

        if self.barcode_tsv is not None and not self.barcode_tsv.exists():
            raise InputUnavailableError("Cell barcode list", self.barcode_tsv)

    @property
    def mutation_dir(self) -> Path:
        """Directory receiving the report artifacts."""
        if self.out_dir is None:
            raise ConfigError("out_dir is not set")
        return self.out_dir / "mutation"

    def filter_criteria(self) -> FilterCriteria:
        """Filtering thresholds of this run."""
        return FilterCriteria(
            min_cov=self.min_cov,
            report_pct=tuple(self.report_pct),
            known_positions=list(self.known_positions),
            max_homopolymer_pct=self.max_homopolymer_pct,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation."""
        data = attrs.asdict(self, recurse=False)
        for key, value in data.items():
            if isinstance(value, Path):
                data[key] = str(value)
        data["known_positions"] = [str(p) for p in self.known_positions]
        data["report_pct"] = list(self.report_pct)
        data["region"] = str(self.region) if self.region is not None else None
        return data

    def save(self, path: Path | str) -> None:
        """Save the resolved configuration as JSON."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)


def read_barcodes(path: Path | str) -> list[str]:
    """Read cell barcodes from the first column of a TSV, dropping duplicates.

    Raises:
        InputUnavailableError: If the file is missing or lists no barcodes.
    """
    path = Path(path)
    if not path.exists():
        raise InputUnavailableError("Cell barcode list", path)

    barcodes: list[str] = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            barcodes.append(line.split("\t")[0].split(",")[0])

    if not barcodes:
        raise InputUnavailableError("Cell barcode list", path, reason="is empty")
    return list(dict.fromkeys(barcodes))
