"""Tests for scmut.core.significance.

Tests cover:
- Hypergeometric p-values against an error-only null
- Degenerate inputs
- Benjamini-Hochberg correction over the pooled set
"""

import numpy as np
import pytest

from scmut.core.significance import (
    NOT_SIGNIFICANT,
    SignificanceScorer,
    benjamini_hochberg,
    hypergeom_p_value,
)


# =============================================================================
# Hypergeometric Test
# =============================================================================


class TestHypergeomPValue:
    def test_known_value(self):
        # M=20, n=2, N=10: P(X >= 2) = C(18, 8) / C(20, 10)
        assert hypergeom_p_value(2, 10, 0.01) == pytest.approx(43758 / 184756)

    def test_strong_support_is_significant(self):
        assert hypergeom_p_value(100, 200, 0.01) < 1e-10

    def test_more_support_smaller_p(self):
        p_values = [hypergeom_p_value(alt, 200, 0.01) for alt in (5, 10, 20, 40)]
        assert p_values == sorted(p_values, reverse=True)

    def test_higher_error_rate_larger_p(self):
        assert hypergeom_p_value(10, 200, 0.05) > hypergeom_p_value(10, 200, 0.001)

    @pytest.mark.parametrize(
        "alt_count,total_depth",
        [(0, 100), (5, 0), (0, 0), (-1, 10)],
    )
    def test_degenerate_inputs(self, alt_count, total_depth):
        assert hypergeom_p_value(alt_count, total_depth) == NOT_SIGNIFICANT

    def test_alt_count_above_depth_is_clamped(self):
        p = hypergeom_p_value(15, 10, 0.01)
        assert 0.0 <= p <= 1.0
        assert p == pytest.approx(hypergeom_p_value(10, 10, 0.01))


# =============================================================================
# Benjamini-Hochberg
# =============================================================================


class TestBenjaminiHochberg:
    def test_known_values(self):
        adjusted = benjamini_hochberg([0.01, 0.04, 0.03, 0.5])
        np.testing.assert_allclose(adjusted, [0.04, 0.16 / 3, 0.16 / 3, 0.5])

    def test_monotone_in_raw_p_values(self):
        rng = np.random.default_rng(7)
        raw = rng.uniform(0, 1, 200) ** 3
        adjusted = benjamini_hochberg(raw)
        order = np.argsort(raw, kind="stable")
        assert np.all(np.diff(adjusted[order]) >= 0)
        assert np.all(adjusted >= raw)
        assert np.all(adjusted <= 1.0)

    def test_empty(self):
        assert benjamini_hochberg([]).size == 0

    def test_single_value_unchanged(self):
        np.testing.assert_allclose(benjamini_hochberg([0.2]), [0.2])


# =============================================================================
# SignificanceScorer
# =============================================================================


class TestSignificanceScorer:
    def test_score_sets_both_p_values(self, candidate_factory):
        candidates = [
            candidate_factory(position=1, alt_count=2, total_depth=10),
            candidate_factory(position=2, alt_count=100, total_depth=200),
        ]

        scored = SignificanceScorer(error_rate=0.01).score(candidates)

        assert scored is candidates
        assert scored[0].hypergeom_p_value == pytest.approx(43758 / 184756)
        for candidate in scored:
            assert candidate.adj_p_value is not None
            assert candidate.adj_p_value >= candidate.hypergeom_p_value

    def test_correction_is_global(self, candidate_factory):
        """Adding candidates from another region changes the adjusted values."""
        scorer = SignificanceScorer()
        alone = scorer.score([candidate_factory(position=1, alt_count=10, total_depth=100)])
        single_adj = alone[0].adj_p_value

        pooled = scorer.score(
            [candidate_factory(position=1, alt_count=10, total_depth=100)]
            + [candidate_factory(position=p, alt_count=1, total_depth=100) for p in range(2, 12)]
        )
        assert pooled[0].adj_p_value > single_adj

    def test_empty_set(self):
        assert SignificanceScorer().score([]) == []

    @pytest.mark.parametrize("error_rate", [-0.1, 1.0, 2.0])
    def test_invalid_error_rate(self, error_rate):
        with pytest.raises(ValueError, match="error_rate"):
            SignificanceScorer(error_rate=error_rate)
