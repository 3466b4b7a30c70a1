"""Tests for scmut.core.report.

Tests cover:
- Sorting by adjusted p-value with stable ties
- Idempotent assembly and byte-identical artifacts
- Count tables with and without cell barcodes
- Frequency summary status column
"""

import pytest

from scmut.core.candidates import NOT_EVALUABLE
from scmut.core.filters import CandidateFilter, FilterCriteria
from scmut.core.report import (
    ALLELE_STAT_COLUMNS,
    ALLELE_STAT_FILE,
    ALT_COUNT_FILE,
    FREQ_SUMMARY_FILE,
    REF_COUNT_FILE,
    assemble,
    read_csv_gz,
    write_csv_gz,
    write_report,
)


@pytest.fixture
def scored(candidate_factory):
    """Candidates with p-values already set, in region order."""
    return [
        candidate_factory(position=10, alt_count=20, hypergeom_p_value=0.01, adj_p_value=0.03),
        candidate_factory(position=20, alt_count=30, hypergeom_p_value=0.001, adj_p_value=0.003),
        candidate_factory(position=30, alt_count=25, hypergeom_p_value=0.02, adj_p_value=0.03),
        candidate_factory(
            position=30, alt_count=5, alt_allele="G", hypergeom_p_value=0.5, adj_p_value=0.5
        ),
    ]


# =============================================================================
# Assembly
# =============================================================================


class TestAssemble:
    def test_sorted_by_adjusted_p(self, scored):
        report = assemble(scored)
        assert [c.adj_p_value for c in report.rows] == [0.003, 0.03, 0.03, 0.5]

    def test_ties_keep_input_order(self, scored):
        report = assemble(scored)
        assert [c.position for c in report.rows] == [20, 10, 30, 30]

    def test_idempotent(self, scored):
        first = assemble(scored)
        second = assemble(scored)
        assert list(first.allele_stat_rows()) == list(second.allele_stat_rows())
        assert first.ref_count_table() == second.ref_count_table()
        assert first.alt_count_table() == second.alt_count_table()

    def test_reassembling_sorted_rows_is_stable(self, scored):
        first = assemble(scored)
        second = assemble(first.rows)
        assert [id(c) for c in first.rows] == [id(c) for c in second.rows]

    def test_empty(self):
        report = assemble([])
        assert len(report) == 0
        assert list(report.allele_stat_rows()) == []

    def test_head(self, scored):
        assert [c.position for c in assemble(scored).head(2)] == [20, 10]


class TestTables:
    def test_allele_stat_columns(self, candidate_factory):
        candidate = candidate_factory(
            position=49,
            alt_count=2,
            total_depth=10,
            homopolymer_pct=0.4,
            hypergeom_p_value=0.25,
            adj_p_value=0.25,
        )
        (row,) = assemble([candidate]).allele_stat_rows()
        record = dict(zip(ALLELE_STAT_COLUMNS, row))

        assert record["chr"] == "chr1"
        assert record["position"] == 49
        assert record["REF"] == "A"
        assert record["ALT"] == "T"
        assert record["REF_frequency"] == "0.8"
        assert record["REF_frequency_in_short_reads"] == repr(NOT_EVALUABLE)
        assert record["hypergeom_test_p_value"] == "0.25"
        assert record["homopolymer_pct"] == "0.4"
        assert record["INDEL_frequency"] == "0.0"
        assert record["adj_p"] == "0.25"

    def test_missing_values_blank(self, candidate_factory):
        (row,) = assemble([candidate_factory()]).allele_stat_rows()
        record = dict(zip(ALLELE_STAT_COLUMNS, row))
        assert record["homopolymer_pct"] == ""
        assert record["adj_p"] == ""

    def test_ref_table_one_row_per_position(self, scored):
        header, rows = assemble(scored).ref_count_table()
        assert header == ["chr", "position", "REF", "count"]
        assert [row[1] for row in rows] == [20, 10, 30]

    def test_alt_table_one_row_per_candidate(self, scored):
        header, rows = assemble(scored).alt_count_table()
        assert header == ["chr", "position", "REF", "ALT", "count"]
        assert [(row[1], row[3], row[4]) for row in rows] == [
            (20, "T", 30),
            (10, "T", 20),
            (30, "T", 25),
            (30, "G", 5),
        ]

    def test_per_cell_tables(self, candidate_factory):
        candidate = candidate_factory(position=49, adj_p_value=0.1)
        cell_counts = {
            ("chr1", 49, "A"): {"CELL1": 4, "CELL2": 4},
            ("chr1", 49, "T"): {"CELL2": 1},
        }
        report = assemble([candidate], barcodes=["CELL1", "CELL2"], cell_counts=cell_counts)

        header, rows = report.ref_count_table()
        assert header == ["chr", "position", "REF", "CELL1", "CELL2"]
        assert rows == [["chr1", 49, "A", 4, 4]]

        header, rows = report.alt_count_table()
        assert header == ["chr", "position", "REF", "ALT", "CELL1", "CELL2"]
        assert rows == [["chr1", 49, "A", "T", 0, 1]]

    def test_freq_summary_status(self, candidate_factory):
        kept = candidate_factory(position=1, alt_count=40, total_depth=200)
        dropped = candidate_factory(position=2, alt_count=2, total_depth=20)
        filter_result = CandidateFilter(FilterCriteria(min_cov=100)).apply([kept, dropped])

        report = assemble(
            filter_result.passed, all_candidates=[kept, dropped], filter_result=filter_result
        )
        statuses = [(row[1], row[-1]) for row in report.freq_summary_rows()]
        assert statuses == [(1, "PASS"), (2, "LOW_COVERAGE")]


# =============================================================================
# Writers
# =============================================================================


class TestWriteReport:
    def test_writes_all_artifacts(self, scored, tmp_path):
        paths = write_report(assemble(scored), tmp_path)

        assert set(paths) == {REF_COUNT_FILE, ALT_COUNT_FILE, ALLELE_STAT_FILE, FREQ_SUMMARY_FILE}
        for path in paths.values():
            assert path.parent == tmp_path / "mutation"
            assert path.exists()

        records = read_csv_gz(paths[ALLELE_STAT_FILE])
        assert list(records[0]) == ALLELE_STAT_COLUMNS
        assert [r["position"] for r in records] == ["20", "10", "30", "30"]

    def test_byte_identical_reruns(self, scored, tmp_path):
        first = write_report(assemble(scored), tmp_path / "a")
        second = write_report(assemble(scored), tmp_path / "b")
        for name in first:
            assert first[name].read_bytes() == second[name].read_bytes()

    def test_empty_report_writes_headers(self, tmp_path):
        paths = write_report(assemble([]), tmp_path)
        assert read_csv_gz(paths[ALLELE_STAT_FILE]) == []

    def test_write_csv_gz_row_count(self, tmp_path):
        n = write_csv_gz(["a", "b"], [[1, 2], [3, 4]], tmp_path / "t.csv.gz")
        assert n == 2
        assert read_csv_gz(tmp_path / "t.csv.gz") == [{"a": "1", "b": "2"}, {"a": "3", "b": "4"}]
