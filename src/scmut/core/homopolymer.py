"""Homopolymer context scoring.

Long-read base callers make most of their substitution and indel errors in
and next to runs of a single base. The homopolymer percentage is the share
of the most frequent base in a small window around a position; values close
to 1 mark error hotspots.

Only the window itself is read from the reference, so scoring cost does not
depend on chromosome size.

Example:
    >>> homopolymer_pct("ACAAAAAGT", 5, include_variant_position=False, window=2)
    1.0
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scmut.io.fasta import GenomeAccessor

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 5

# Returned for the first/last base of a sequence, where no context exists.
# Lower than any real score, so it never trips a homopolymer threshold.
EDGE_SENTINEL = 0.0


def window_bounds(position: int, length: int, window: int) -> tuple[int, int]:
    """0-based half-open bounds of the scoring window, clipped to the sequence."""
    return max(0, position - 1 - window), min(length, position + window)


def homopolymer_pct(
    sequence: str,
    position: int,
    include_variant_position: bool,
    window: int = DEFAULT_WINDOW,
    offset: int = 0,
    length: int | None = None,
) -> float:
    """Fraction of the most common base around a 1-based position.

    ``sequence`` may be a whole chromosome or any slice of it that covers
    the window; ``offset`` is the 0-based chromosome coordinate of its first
    base and ``length`` the chromosome length.

    Args:
        sequence: Chromosome sequence or a slice of it.
        position: 1-based chromosome position of the variant.
        include_variant_position: Count the variant position itself.
        window: Bases taken on each side (>= 1), clipped to the chromosome.
        offset: Chromosome coordinate of ``sequence[0]``.
        length: Chromosome length (default: offset + len(sequence)).

    Returns:
        A value in [0, 1], or EDGE_SENTINEL at the chromosome ends.

    Raises:
        ValueError: If window < 1, position lies outside the chromosome or
            the slice does not cover the window.
    """
    if window < 1:
        raise ValueError(f"window must be >= 1, got {window}")
    if length is None:
        length = offset + len(sequence)
    if position < 1 or position > length:
        raise ValueError(f"Position {position} outside sequence of length {length}")

    if position == 1 or position == length:
        return EDGE_SENTINEL

    start, end = window_bounds(position, length, window)
    if start < offset or end > offset + len(sequence):
        raise ValueError(
            f"Sequence slice {offset}-{offset + len(sequence)} does not cover "
            f"window {start}-{end}"
        )

    variant = position - 1 - offset
    start -= offset
    end -= offset
    if include_variant_position:
        context = sequence[start:end]
    else:
        context = sequence[start:variant] + sequence[variant + 1 : end]

    counts = Counter(context.upper())
    return max(counts.values()) / len(context)


class HomopolymerScorer:
    """Scores positions against a reference genome.

    Each score fetches just its window from the indexed FASTA.

    Example:
        >>> scorer = HomopolymerScorer(genome, window=5)
        >>> scorer.score("chr1", 1234)
        0.4
    """

    def __init__(
        self,
        genome: GenomeAccessor,
        window: int = DEFAULT_WINDOW,
        include_variant_position: bool = False,
    ) -> None:
        if window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        self.genome = genome
        self.window = window
        self.include_variant_position = include_variant_position

    def score(
        self,
        chromosome: str,
        position: int,
        include_variant_position: bool | None = None,
    ) -> float:
        """Homopolymer percentage at a 1-based position."""
        if include_variant_position is None:
            include_variant_position = self.include_variant_position

        length = self.genome.get_length(chromosome)
        if position < 1 or position > length:
            raise ValueError(f"Position {position} outside sequence of length {length}")

        start, end = window_bounds(position, length, self.window)
        return homopolymer_pct(
            self.genome.get_sequence(chromosome, start, end),
            position,
            include_variant_position,
            self.window,
            offset=start,
            length=length,
        )
