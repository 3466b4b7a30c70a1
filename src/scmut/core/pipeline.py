"""End-to-end variant discovery run.

Each gene region is an independent task: pileup, candidate extraction with
homopolymer scoring and (optionally) short-read cross-validation. Region
results are pooled in region order at a barrier; filtering, the global
Benjamini-Hochberg correction and report writing all happen after it, in
the calling process.

Example:
    >>> from scmut.config import MutationConfig
    >>> from scmut.core.pipeline import MutationPipeline
    >>> config = MutationConfig.resolve(out_dir="run1", metadata="run1/config.json")
    >>> report = MutationPipeline(config).run()
    >>> report.head(5)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import attrs

from scmut.config import RESOLVED_CONFIG_FILE, MutationConfig, read_barcodes
from scmut.core.candidates import CandidateVariant, extract_candidates
from scmut.core.crossval import ShortReadCrossValidator, annotate_without_short_reads
from scmut.core.filters import CandidateFilter, FilterResult
from scmut.core.homopolymer import HomopolymerScorer
from scmut.core.report import CellCounts, VariantReport, assemble, write_report
from scmut.core.significance import SignificanceScorer
from scmut.io.bam import PileupProvider
from scmut.io.fasta import GenomeAccessor
from scmut.io.gff import GeneRegion, read_gene_regions
from scmut.parallel.executor import ExecutionStats, ParallelExecutor
from scmut.utils.logging import Timer
from scmut.utils.regions import validate_region

logger = logging.getLogger(__name__)


# =============================================================================
# Region Tasks
# =============================================================================


@attrs.define(frozen=True)
class RegionTask:
    """Everything a worker needs to process one gene region.

    Holds paths and plain parameters only, so it pickles for the process
    backend; each worker opens its own file handles.
    """

    region: GeneRegion
    genome_fa: Path
    bam: Path
    bam_short: Path | None = None
    min_nucleotide_depth: int = 5
    short_read_min_cov: int = 10
    short_read_min_nucleotide_depth: int = 1
    homopolymer_window: int = 5
    include_variant_position: bool = False

    @property
    def task_id(self) -> str:
        return self.region.gene_id

    @classmethod
    def from_config(cls, region: GeneRegion, config: MutationConfig) -> RegionTask:
        return cls(
            region=region,
            genome_fa=config.genome_fa,
            bam=config.bam,
            bam_short=config.bam_short,
            min_nucleotide_depth=config.min_nucleotide_depth,
            short_read_min_cov=config.short_read_min_cov,
            short_read_min_nucleotide_depth=config.short_read_min_nucleotide_depth,
            homopolymer_window=config.homopolymer_window,
            include_variant_position=config.include_variant_position,
        )


@attrs.define
class RegionResult:
    """Candidates produced by one region task."""

    region: GeneRegion
    candidates: list[CandidateVariant]

    @property
    def is_empty(self) -> bool:
        return not self.candidates


def process_region(task: RegionTask) -> RegionResult:
    """Extract and cross-validate the candidates of one gene region.

    A region without mismatches yields an empty result. Missing inputs
    raise InputUnavailableError, which aborts the whole run.
    """
    region = task.region
    with GenomeAccessor(task.genome_fa) as genome:
        if region.chromosome not in genome:
            logger.debug(f"{region}: chromosome not in reference, skipped")
            return RegionResult(region, [])

        scorer = HomopolymerScorer(
            genome,
            window=task.homopolymer_window,
            include_variant_position=task.include_variant_position,
        )
        with PileupProvider(task.bam, genome, task.min_nucleotide_depth) as provider:
            records = provider.pileup(region.chromosome, region.start, region.end)
        candidates = extract_candidates(records, region, scorer)

        if task.bam_short is None:
            annotate_without_short_reads(candidates)
        elif candidates:
            with PileupProvider(
                task.bam_short, genome, task.short_read_min_nucleotide_depth
            ) as short_provider:
                validator = ShortReadCrossValidator(short_provider, task.short_read_min_cov)
                validator.annotate(candidates, region)

    return RegionResult(region, candidates)


def merge_region_results(results: list[RegionResult]) -> list[CandidateVariant]:
    """Pool region results in region order.

    Overlapping genes can report the same (chromosome, position, allele);
    the first region to report it keeps it.
    """
    merged: list[CandidateVariant] = []
    seen: set[tuple[str, int, str]] = set()
    n_duplicates = 0

    for result in results:
        for candidate in result.candidates:
            key = (candidate.chromosome, candidate.position, candidate.alt_allele)
            if key in seen:
                n_duplicates += 1
                continue
            seen.add(key)
            merged.append(candidate)

    if n_duplicates:
        logger.debug(f"Dropped {n_duplicates} candidates reported by overlapping regions")
    return merged


# =============================================================================
# Pipeline
# =============================================================================


class MutationPipeline:
    """Runs variant discovery for a resolved configuration.

    Attributes:
        config: Run configuration.
        regions: Gene regions, loaded from the annotation on first run.
        stats: Execution statistics of the last region pass.
    """

    def __init__(
        self,
        config: MutationConfig,
        regions: list[GeneRegion] | None = None,
        progress_callback: Callable[[int, int, str], None] | None = None,
    ) -> None:
        self.config = config
        self.regions = regions
        self.progress_callback = progress_callback
        self.stats: ExecutionStats | None = None

    def load_regions(self) -> list[GeneRegion]:
        """Gene regions to process, restricted to config.region when set."""
        if self.regions is None:
            regions = read_gene_regions(self.config.annotation)
            target = self.config.region
            if target is not None:
                with GenomeAccessor(self.config.genome_fa) as genome:
                    validate_region(target, genome)
                regions = [r for r in regions if r.region.overlaps(target)]
                logger.info(f"{len(regions)} gene regions overlap {target}")
            self.regions = regions
        return self.regions

    def collect_candidates(self) -> list[CandidateVariant]:
        """Process every region in parallel and pool the candidates (the barrier)."""
        tasks = [RegionTask.from_config(region, self.config) for region in self.load_regions()]
        executor = ParallelExecutor(
            n_workers=self.config.threads,
            backend=self.config.backend,
            progress_callback=self.progress_callback,
        )
        results, self.stats = executor.map_items(process_region, tasks)

        region_results = [r.result for r in results]
        n_empty = sum(1 for r in region_results if r.is_empty)
        candidates = merge_region_results(region_results)
        logger.debug(f"Region execution: {self.stats.to_dict()}")
        logger.info(
            f"Extracted {len(candidates)} candidates from {len(region_results)} regions "
            f"({n_empty} without mismatches)"
        )
        return candidates

    def count_cells(
        self,
        candidates: list[CandidateVariant],
        barcodes: list[str],
    ) -> CellCounts:
        """Per-cell reference and alternate read counts at reported positions."""
        cell_counts: CellCounts = {}
        barcode_set = set(barcodes)

        with GenomeAccessor(self.config.genome_fa) as genome:
            with PileupProvider(self.config.bam, genome, min_nucleotide_depth=1) as provider:
                by_position: dict[tuple[str, int], list[CandidateVariant]] = {}
                for candidate in candidates:
                    by_position.setdefault(candidate.key, []).append(candidate)

                for (chromosome, position), group in by_position.items():
                    by_allele = provider.allele_counts_by_barcode(
                        chromosome, position, self.config.barcode_tag, barcode_set
                    )
                    alleles = {group[0].ref_allele} | {c.alt_allele for c in group}
                    for allele in alleles:
                        cell_counts[(chromosome, position, allele)] = dict(
                            by_allele.get(allele, {})
                        )

        logger.info(f"Counted alleles in {len(barcodes)} cells at {len(by_position)} positions")
        return cell_counts

    def run(self, write: bool = True) -> VariantReport:
        """Run the pipeline.

        Args:
            write: Write the report artifacts and the resolved configuration
                under ``<out_dir>/mutation``.

        Returns:
            The assembled VariantReport.

        Raises:
            ConfigError: Invalid parameters.
            InputUnavailableError: First missing or unreadable input.
            RegionProcessingError: A region failed; no partial report is written.
        """
        self.config.validate()
        self.config.check_inputs()

        barcodes = None
        if self.config.barcode_tsv is not None:
            barcodes = read_barcodes(self.config.barcode_tsv)

        with Timer("Candidate extraction", logger):
            candidates = self.collect_candidates()

        filter_result: FilterResult = CandidateFilter(self.config.filter_criteria()).apply(
            candidates
        )
        logger.info(f"Filter statistics: {filter_result.statistics()}")

        with Timer("Significance scoring", logger):
            scored = SignificanceScorer(self.config.error_rate).score(filter_result.passed)

        cell_counts = None
        if barcodes is not None:
            cell_counts = self.count_cells(scored, barcodes)

        report = assemble(
            scored,
            all_candidates=candidates,
            filter_result=filter_result,
            barcodes=barcodes,
            cell_counts=cell_counts,
        )
        logger.info(f"Reporting {len(report)} variants")

        if write:
            write_report(report, self.config.out_dir)
            self.config.save(self.config.mutation_dir / RESOLVED_CONFIG_FILE)
        return report


def sc_mutations(
    genome_fa: Path | str | None = None,
    annotation: Path | str | None = None,
    out_dir: Path | str | None = None,
    bam: Path | str | None = None,
    metadata: Path | str | dict[str, Any] | None = None,
    **options: Any,
) -> VariantReport:
    """Resolve a configuration and run the pipeline in one call.

    Keyword options are MutationConfig fields, plus ``known_positions``,
    ``report_pct`` and ``use_isoform_annotation``.

    Example:
        >>> report = sc_mutations(out_dir="run1", metadata="run1/config.json",
        ...                       bam_short="illumina.bam", threads=8)
    """
    config = MutationConfig.resolve(
        genome_fa=genome_fa,
        annotation=annotation,
        out_dir=out_dir,
        bam=bam,
        metadata=metadata,
        **options,
    )
    return MutationPipeline(config).run()
