"""Variant report assembly and artifact writers.

The report is the scored candidate set sorted by adjusted p-value (most
surprising first, ties in input order). Alongside the merged allele
statistics table it carries per-position reference and alternate read count
tables and a frequency summary of every extracted candidate.

Files written to ``<out_dir>/mutation``:

    ref_cnt.csv.gz       reference allele read counts
    alt_cnt.csv.gz       alternate allele read counts
    allele_stat.csv.gz   merged per-candidate statistics
    freq_summary.csv.gz  every extracted candidate with its filter status

Example:
    >>> report = assemble(scored_candidates, all_candidates, filter_result)
    >>> paths = write_report(report, "out")
"""

from __future__ import annotations

import csv
import gzip
import io
import logging
import math
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Iterator

import attrs

from scmut.core.candidates import CandidateVariant

if TYPE_CHECKING:
    from scmut.core.filters import FilterResult

logger = logging.getLogger(__name__)

MUTATION_SUBDIR = "mutation"
REF_COUNT_FILE = "ref_cnt.csv.gz"
ALT_COUNT_FILE = "alt_cnt.csv.gz"
ALLELE_STAT_FILE = "allele_stat.csv.gz"
FREQ_SUMMARY_FILE = "freq_summary.csv.gz"

ALLELE_STAT_COLUMNS = [
    "chr",
    "position",
    "REF",
    "ALT",
    "REF_frequency",
    "REF_frequency_in_short_reads",
    "hypergeom_test_p_value",
    "homopolymer_pct",
    "INDEL_frequency",
    "adj_p",
]

FREQ_SUMMARY_COLUMNS = [
    "chr",
    "position",
    "REF",
    "ALT",
    "gene",
    "total_depth",
    "ALT_count",
    "ALT_frequency",
    "REF_frequency",
    "status",
]

# {(chromosome, position, allele): {barcode: reads}}
CellCounts = dict[tuple[str, int, str], dict[str, int]]


# =============================================================================
# Report
# =============================================================================


@attrs.define
class VariantReport:
    """Sorted report rows and the data behind the supporting tables.

    Attributes:
        rows: Reported candidates sorted by adj_p_value ascending.
        candidates: Every extracted candidate, reported or not, in region order.
        filter_result: Filter outcome used for the frequency summary.
        barcodes: Cell barcodes for per-cell count tables (None = per position).
        cell_counts: Per-cell allele counts at reported positions.
    """

    rows: list[CandidateVariant]
    candidates: list[CandidateVariant] = attrs.Factory(list)
    filter_result: FilterResult | None = None
    barcodes: list[str] | None = None
    cell_counts: CellCounts = attrs.Factory(dict)

    def __len__(self) -> int:
        return len(self.rows)

    def head(self, n: int = 20) -> list[CandidateVariant]:
        """First n rows."""
        return self.rows[:n]

    def allele_stat_rows(self) -> Iterator[list[Any]]:
        """Rows of the merged allele statistics table, in canonical column order."""
        for c in self.rows:
            yield [
                c.chromosome,
                c.position,
                c.ref_allele,
                c.alt_allele,
                _fmt(c.ref_frequency),
                _fmt(c.ref_frequency_in_short_reads),
                _fmt(c.hypergeom_p_value),
                _fmt(c.homopolymer_pct),
                _fmt(c.indel_frequency),
                _fmt(c.adj_p_value),
            ]

    def ref_count_table(self) -> tuple[list[str], list[list[Any]]]:
        """Header and rows of the reference allele count table (one row per position)."""
        seen: dict[tuple[str, int], CandidateVariant] = {}
        for c in self.rows:
            seen.setdefault(c.key, c)

        if self.barcodes is None:
            header = ["chr", "position", "REF", "count"]
            rows = [[c.chromosome, c.position, c.ref_allele, c.ref_count] for c in seen.values()]
        else:
            header = ["chr", "position", "REF"] + self.barcodes
            rows = [
                [c.chromosome, c.position, c.ref_allele]
                + self._cell_row(c.chromosome, c.position, c.ref_allele)
                for c in seen.values()
            ]
        return header, rows

    def alt_count_table(self) -> tuple[list[str], list[list[Any]]]:
        """Header and rows of the alternate allele count table (one row per candidate)."""
        if self.barcodes is None:
            header = ["chr", "position", "REF", "ALT", "count"]
            rows = [
                [c.chromosome, c.position, c.ref_allele, c.alt_allele, c.alt_count]
                for c in self.rows
            ]
        else:
            header = ["chr", "position", "REF", "ALT"] + self.barcodes
            rows = [
                [c.chromosome, c.position, c.ref_allele, c.alt_allele]
                + self._cell_row(c.chromosome, c.position, c.alt_allele)
                for c in self.rows
            ]
        return header, rows

    def freq_summary_rows(self) -> Iterator[list[Any]]:
        """Every extracted candidate with its filter status."""
        for c in self.candidates:
            if self.filter_result is not None and id(c) in self.filter_result.reasons:
                status = self.filter_result.reason(c).value
            else:
                status = "PASS"
            yield [
                c.chromosome,
                c.position,
                c.ref_allele,
                c.alt_allele,
                c.gene_id,
                c.total_depth,
                c.alt_count,
                _fmt(c.alt_frequency),
                _fmt(c.ref_frequency),
                status,
            ]

    def _cell_row(self, chromosome: str, position: int, allele: str) -> list[int]:
        counts = self.cell_counts.get((chromosome, position, allele), {})
        return [counts.get(barcode, 0) for barcode in self.barcodes or []]


def _fmt(value: float | None) -> str:
    """Stable text form of a float column (empty for missing values)."""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    return repr(float(value))


def _sort_key(candidate: CandidateVariant) -> float:
    if candidate.adj_p_value is None:
        return math.inf
    return candidate.adj_p_value


# =============================================================================
# Assembly
# =============================================================================


def assemble(
    scored_candidates: Iterable[CandidateVariant],
    all_candidates: Iterable[CandidateVariant] | None = None,
    filter_result: FilterResult | None = None,
    barcodes: list[str] | None = None,
    cell_counts: CellCounts | None = None,
) -> VariantReport:
    """Build the sorted VariantReport.

    The sort is stable, so candidates with equal adjusted p-values keep
    their input order and repeated assembly gives identical output.

    Args:
        scored_candidates: Candidates with adj_p_value set.
        all_candidates: Every extracted candidate, for the frequency summary.
        filter_result: Filter outcome, for the frequency summary status column.
        barcodes: Cell barcodes for per-cell count tables.
        cell_counts: Per-cell allele counts at reported positions.

    Returns:
        VariantReport sorted by adj_p_value ascending.
    """
    rows = sorted(scored_candidates, key=_sort_key)
    return VariantReport(
        rows=rows,
        candidates=list(all_candidates) if all_candidates is not None else list(rows),
        filter_result=filter_result,
        barcodes=list(barcodes) if barcodes is not None else None,
        cell_counts=dict(cell_counts or {}),
    )


# =============================================================================
# Writers
# =============================================================================


def write_csv_gz(
    header: list[str],
    rows: Iterable[list[Any]],
    output_path: Path | str,
) -> int:
    """Write a gzipped CSV with a fixed gzip timestamp so reruns are byte-identical.

    Returns:
        Number of data rows written.
    """
    output_path = Path(output_path)
    n_rows = 0
    with gzip.GzipFile(output_path, mode="wb", mtime=0) as raw:
        with io.TextIOWrapper(raw, encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(header)
            for row in rows:
                writer.writerow(row)
                n_rows += 1
    return n_rows


def write_report(report: VariantReport, out_dir: Path | str) -> dict[str, Path]:
    """Write all report artifacts under ``<out_dir>/mutation``.

    Args:
        report: Assembled report.
        out_dir: Output directory of the run.

    Returns:
        {file name: path} of the written files.
    """
    mutation_dir = Path(out_dir) / MUTATION_SUBDIR
    mutation_dir.mkdir(parents=True, exist_ok=True)

    paths = {
        REF_COUNT_FILE: mutation_dir / REF_COUNT_FILE,
        ALT_COUNT_FILE: mutation_dir / ALT_COUNT_FILE,
        ALLELE_STAT_FILE: mutation_dir / ALLELE_STAT_FILE,
        FREQ_SUMMARY_FILE: mutation_dir / FREQ_SUMMARY_FILE,
    }

    header, rows = report.ref_count_table()
    write_csv_gz(header, rows, paths[REF_COUNT_FILE])

    header, rows = report.alt_count_table()
    write_csv_gz(header, rows, paths[ALT_COUNT_FILE])

    n = write_csv_gz(ALLELE_STAT_COLUMNS, report.allele_stat_rows(), paths[ALLELE_STAT_FILE])
    logger.info(f"Wrote allele statistics for {n} candidates to {paths[ALLELE_STAT_FILE]}")

    n = write_csv_gz(FREQ_SUMMARY_COLUMNS, report.freq_summary_rows(), paths[FREQ_SUMMARY_FILE])
    logger.info(f"Wrote frequency summary for {n} candidates to {paths[FREQ_SUMMARY_FILE]}")

    return paths


def read_csv_gz(path: Path | str) -> list[dict[str, str]]:
    """Read a gzipped CSV artifact back as a list of row dictionaries."""
    with gzip.open(path, "rt", newline="") as f:
        return list(csv.DictReader(f))
