"""Command-line interface for scmut.

Commands:
    call: Discover SNVs from long-read single-cell alignments
    show: Print the top rows of a written allele statistics table

Example:
    $ scmut --help
    $ scmut call -o run1 --metadata run1/config.json --threads 8
    $ scmut call --genome genome.fa --annotation genes.gtf --bam align2genome.bam \\
        -o run1 --bam-short illumina.bam --known-position chr1:12345
    $ scmut show run1/mutation/allele_stat.csv.gz -n 10
"""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from scmut.core.filters import FilterReason
from scmut.core.report import ALLELE_STAT_FILE, VariantReport, read_csv_gz
from scmut.errors import ConfigError, InputUnavailableError, RegionProcessingError
from scmut.utils.logging import setup_logging

# Initialize rich console for pretty output
console = Console()

TABLE_COLUMNS = [
    "chr",
    "position",
    "REF",
    "ALT",
    "REF_frequency",
    "hypergeom_test_p_value",
    "adj_p",
]


@click.group()
@click.version_option(prog_name="scmut")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def main(ctx: click.Context, verbose: bool, quiet: bool) -> None:
    """scmut: single-cell long-read SNV discovery.

    Counts alleles over every annotated gene, scores candidate variants with
    a hypergeometric test against sequencing error, corrects for multiple
    testing and writes per-position count tables.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    setup_logging(verbosity=0 if quiet else (2 if verbose else 1))


# =============================================================================
# call command
# =============================================================================


@main.command()
@click.option(
    "--genome",
    "genome_fa",
    type=click.Path(path_type=Path),
    help="Reference genome FASTA (default: from --metadata).",
)
@click.option(
    "--annotation",
    type=click.Path(path_type=Path),
    help="Gene annotation GFF3/GTF (default: from --metadata).",
)
@click.option(
    "--bam",
    type=click.Path(path_type=Path),
    help="Long-read alignment BAM (default: from --metadata, then OUT_DIR/align2genome.bam).",
)
@click.option(
    "-o",
    "--out-dir",
    type=click.Path(path_type=Path),
    help="Output directory; results go to OUT_DIR/mutation (default: from --metadata).",
)
@click.option(
    "--metadata",
    type=click.Path(path_type=Path),
    help="Metadata JSON of a prior pipeline run.",
)
@click.option(
    "--use-isoform-annotation",
    is_flag=True,
    help="Use OUT_DIR/isoform_annotated.gff3 when --annotation is not given.",
)
@click.option(
    "--bam-short",
    type=click.Path(path_type=Path),
    help="Short-read alignment BAM for cross-validation.",
)
@click.option(
    "--barcodes",
    "barcode_tsv",
    type=click.Path(path_type=Path),
    help="Cell barcode list (TSV); enables per-cell count tables.",
)
@click.option(
    "--barcode-tag",
    default="CB",
    show_default=True,
    help="Read tag holding the cell barcode.",
)
@click.option(
    "--known-position",
    "known_positions",
    multiple=True,
    help="Known locus CHR:POS exempt from filtering. Repeatable.",
)
@click.option(
    "--region",
    help="Only process genes overlapping this region (chr:start-end, 1-based).",
)
@click.option("--min-cov", type=int, default=100, show_default=True, help="Minimum total depth.")
@click.option(
    "--report-pct",
    type=(float, float),
    default=(0.10, 0.90),
    show_default=True,
    help="Allele-frequency range LOW HIGH of reported candidates.",
)
@click.option(
    "--min-nucleotide-depth",
    type=int,
    default=5,
    show_default=True,
    help="Minimum long reads for an allele to be counted.",
)
@click.option(
    "--short-read-min-cov",
    type=int,
    default=10,
    show_default=True,
    help="Short-read depth needed to accept or reject a candidate.",
)
@click.option(
    "--short-read-min-nucleotide-depth",
    type=int,
    default=1,
    show_default=True,
    help="Minimum short reads for an allele to be counted.",
)
@click.option(
    "--error-rate",
    type=float,
    default=0.01,
    show_default=True,
    help="Background sequencing error rate of the significance test.",
)
@click.option(
    "--homopolymer-window",
    type=int,
    default=5,
    show_default=True,
    help="Bases on each side used for homopolymer scoring.",
)
@click.option(
    "--include-variant-position",
    is_flag=True,
    help="Count the variant base itself in the homopolymer window.",
)
@click.option(
    "--max-homopolymer-pct",
    type=float,
    default=None,
    help="Exclude candidates with a higher homopolymer score (default: report only).",
)
@click.option("-j", "--threads", type=int, default=1, show_default=True, help="Worker count.")
@click.option(
    "--backend",
    type=click.Choice(["serial", "threads", "processes"]),
    default="threads",
    show_default=True,
    help="Worker backend.",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Also write a debug log to this file.",
)
@click.option("--top", type=int, default=20, show_default=True, help="Rows to print.")
@click.pass_context
def call(
    ctx: click.Context,
    genome_fa: Optional[Path],
    annotation: Optional[Path],
    bam: Optional[Path],
    out_dir: Optional[Path],
    metadata: Optional[Path],
    use_isoform_annotation: bool,
    bam_short: Optional[Path],
    barcode_tsv: Optional[Path],
    barcode_tag: str,
    known_positions: tuple[str, ...],
    region: Optional[str],
    min_cov: int,
    report_pct: tuple[float, float],
    min_nucleotide_depth: int,
    short_read_min_cov: int,
    short_read_min_nucleotide_depth: int,
    error_rate: float,
    homopolymer_window: int,
    include_variant_position: bool,
    max_homopolymer_pct: Optional[float],
    threads: int,
    backend: str,
    log_file: Optional[Path],
    top: int,
) -> None:
    """Discover single-nucleotide variants across all annotated genes.

    Example:
        $ scmut call -o run1 --metadata run1/config.json -j 8
        $ scmut call -o run1 --metadata run1/config.json --bam-short illumina.bam
    """
    from scmut.config import MutationConfig
    from scmut.core.pipeline import MutationPipeline
    from scmut.parallel.executor import create_progress_bar

    verbose = ctx.obj.get("verbose", False)
    quiet = ctx.obj.get("quiet", False)
    if log_file is not None:
        setup_logging(verbosity=0 if quiet else (2 if verbose else 1), log_file=log_file)

    try:
        config = MutationConfig.resolve(
            genome_fa=genome_fa,
            annotation=annotation,
            out_dir=out_dir,
            bam=bam,
            metadata=metadata,
            use_isoform_annotation=use_isoform_annotation,
            known_positions=list(known_positions),
            report_pct=report_pct,
            bam_short=bam_short,
            barcode_tsv=barcode_tsv,
            barcode_tag=barcode_tag,
            min_cov=min_cov,
            min_nucleotide_depth=min_nucleotide_depth,
            short_read_min_cov=short_read_min_cov,
            short_read_min_nucleotide_depth=short_read_min_nucleotide_depth,
            error_rate=error_rate,
            homopolymer_window=homopolymer_window,
            include_variant_position=include_variant_position,
            max_homopolymer_pct=max_homopolymer_pct,
            threads=threads,
            backend=backend,
            region=region,
        )

        if not quiet:
            console.print(f"[blue]Genome:[/blue] {config.genome_fa}")
            console.print(f"[blue]Annotation:[/blue] {config.annotation}")
            console.print(f"[blue]Long-read BAM:[/blue] {config.bam}")
            if config.bam_short is not None:
                console.print(f"[blue]Short-read BAM:[/blue] {config.bam_short}")
            if config.known_positions:
                console.print(f"[blue]Known positions:[/blue] {len(config.known_positions)}")
            console.print(f"[blue]Output:[/blue] {config.out_dir}")

        progress = None if quiet else create_progress_bar()
        callback = None
        if progress is not None:
            task_id = progress.add_task("Processing regions...", total=None)

            def callback(completed: int, total: int, region_id: str) -> None:
                progress.update(
                    task_id,
                    completed=completed,
                    total=total,
                    description=f"Processing {region_id}...",
                )

            progress.start()

        try:
            report = MutationPipeline(config, progress_callback=callback).run()
        finally:
            if progress is not None:
                progress.stop()

    except (InputUnavailableError, ConfigError, RegionProcessingError) as e:
        console.print(f"[red]Error:[/red] {e}")
        if verbose:
            import traceback

            traceback.print_exc()
        raise SystemExit(1)

    if not quiet:
        _print_summary(report, top)
        console.print(f"[green]Wrote results to:[/green] {config.mutation_dir}")


def _print_summary(report: VariantReport, top: int) -> None:
    console.print("")
    console.print("[bold]Variant Summary:[/bold]")
    if report.filter_result is not None:
        console.print(f"  Candidates extracted:  {report.filter_result.total_count:,}")
        console.print(f"  Candidates retained:   {report.filter_result.pass_count:,}")
        statistics = report.filter_result.statistics()
        for reason in FilterReason:
            if reason.value in statistics:
                console.print(f"    {reason.value}: {statistics[reason.value]:,}")
    console.print(f"  Variants reported:     {len(report):,}")
    console.print("")

    if len(report) == 0 or top <= 0:
        return

    table = Table(title=f"Top {min(top, len(report))} variants by adjusted p-value")
    for column in TABLE_COLUMNS:
        table.add_column(column, justify="left" if column in ("chr", "REF", "ALT") else "right")

    for c in report.head(top):
        table.add_row(
            c.chromosome,
            str(c.position),
            c.ref_allele,
            c.alt_allele,
            f"{c.ref_frequency:.3f}",
            f"{c.hypergeom_p_value:.3g}",
            f"{c.adj_p_value:.3g}",
        )
    console.print(table)


# =============================================================================
# show command
# =============================================================================


@main.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option("-n", "--rows", type=int, default=20, show_default=True, help="Rows to print.")
def show(path: Path, rows: int) -> None:
    """Print the top rows of an allele statistics table.

    PATH is an allele_stat.csv.gz file or an output directory containing
    mutation/allele_stat.csv.gz.
    """
    if path.is_dir():
        candidate = path / "mutation" / ALLELE_STAT_FILE
        path = candidate if candidate.exists() else path / ALLELE_STAT_FILE

    if not path.exists():
        console.print(f"[red]Error:[/red] Allele statistics table not found: {path}")
        raise SystemExit(1)

    records = read_csv_gz(path)
    table = Table(title=f"{path.name}: {len(records)} variants")
    for column in TABLE_COLUMNS:
        table.add_column(column)
    for record in records[:rows]:
        table.add_row(*(record.get(column, "") for column in TABLE_COLUMNS))
    console.print(table)


if __name__ == "__main__":
    main()
