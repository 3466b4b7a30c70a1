"""Genomic region and position parsing utilities.

Coordinate conventions:
    - CLI input: 1-based inclusive (standard genomic convention)
    - GenomicRegion: 0-based half-open (Python convention)
    - Pileup positions and known positions: 1-based
    - GFF3/GTF files: 1-based inclusive

Example:
    >>> from scmut.utils.regions import parse_region, parse_known_positions
    >>> region = parse_region("chr1:1000-2000")
    >>> region.start
    999
    >>> parse_known_positions(["chr1:123", "chrX:567"])
    [KnownPosition(chromosome='chr1', position=123), KnownPosition(chromosome='chrX', position=567)]
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterable, NamedTuple

from scmut.errors import ConfigError

if TYPE_CHECKING:
    from scmut.io.fasta import GenomeAccessor


class GenomicRegion(NamedTuple):
    """Parsed genomic region with 0-based half-open coordinates.

    Attributes:
        seqid: Scaffold/chromosome name.
        start: Start position (0-based, inclusive).
        end: End position (0-based, exclusive).
    """

    seqid: str
    start: int
    end: int

    def __str__(self) -> str:
        """Return string representation in 1-based inclusive format."""
        return f"{self.seqid}:{self.start + 1}-{self.end}"

    def overlaps(self, other: GenomicRegion) -> bool:
        """Check if this region overlaps another."""
        if self.seqid != other.seqid:
            return False
        return self.start < other.end and other.start < self.end


class KnownPosition(NamedTuple):
    """A caller-supplied locus that bypasses depth and frequency filters.

    Attributes:
        chromosome: Chromosome name.
        position: 1-based position.
    """

    chromosome: str
    position: int

    def __str__(self) -> str:
        return f"{self.chromosome}:{self.position}"


# Handles: chr1:1000-2000, chr1:1000..2000, scaffold_123:100-200
_REGION_PATTERN = re.compile(r"^(.+):(\d+)[-.]\.?(\d+)$")

# Handles: chr1:123, chrX:1,234
_POSITION_PATTERN = re.compile(r"^(.+):([\d,]+)$")


def parse_region(region_str: str) -> GenomicRegion:
    """Parse region string into GenomicRegion.

    Supported formats:
        chr1:1000-2000      (1-based, inclusive - standard)
        chr1:1000..2000     (1-based, inclusive - GFF style)

    Args:
        region_str: Region string in format seqid:start-end.

    Returns:
        GenomicRegion with 0-based, half-open coordinates.

    Raises:
        ConfigError: If format is invalid or coordinates are invalid.
    """
    match = _REGION_PATTERN.match(region_str.strip())

    if not match:
        raise ConfigError(
            f"Invalid region format: '{region_str}'. "
            "Expected format: seqid:start-end (e.g., chr1:1000-2000)"
        )

    seqid = match.group(1)
    start = int(match.group(2))
    end = int(match.group(3))

    if start < 1:
        raise ConfigError(f"Start position must be >= 1, got {start}")
    if end < start:
        raise ConfigError(f"End must be >= start: {start}-{end}")

    return GenomicRegion(seqid, start - 1, end)


def validate_region(region: GenomicRegion, genome: GenomeAccessor) -> None:
    """Validate region against genome.

    Raises:
        ConfigError: If the scaffold is unknown or the region runs past its end.
    """
    scaffold_lengths = genome.scaffold_lengths

    if region.seqid not in scaffold_lengths:
        available = list(scaffold_lengths.keys())[:5]
        suffix = "..." if len(scaffold_lengths) > 5 else ""
        raise ConfigError(
            f"Scaffold '{region.seqid}' not found in genome. "
            f"Available: {available}{suffix}"
        )

    scaffold_len = scaffold_lengths[region.seqid]
    if region.end > scaffold_len:
        raise ConfigError(
            f"Region end ({region.end}) exceeds scaffold length ({scaffold_len})"
        )


def parse_position(position_str: str) -> KnownPosition:
    """Parse a 'chrom:pos' string (1-based) into a KnownPosition.

    Raises:
        ConfigError: If the string is malformed or the position is < 1.
    """
    match = _POSITION_PATTERN.match(position_str.strip())
    if not match:
        raise ConfigError(
            f"Invalid position format: '{position_str}'. Expected chrom:pos (e.g., chr1:123)"
        )

    position = int(match.group(2).replace(",", ""))
    if position < 1:
        raise ConfigError(f"Position must be >= 1, got {position}")

    return KnownPosition(match.group(1), position)


def parse_known_positions(
    values: Iterable[str | int | KnownPosition | tuple[str, int]] | None,
) -> list[KnownPosition]:
    """Normalize the accepted known-position forms into KnownPosition objects.

    Accepted forms:
        - "chr1:123" strings
        - (chromosome, position) pairs or KnownPosition objects
        - a flat alternating list: ["chr1", 123, "chr1", 124, "chrX", 567]

    Duplicates are dropped, first occurrence order is kept.

    Raises:
        ConfigError: If the input cannot be interpreted.
    """
    if values is None:
        return []

    values = list(values)
    positions: list[KnownPosition] = []

    if values and all(isinstance(v, (str, int)) for v in values) and any(
        isinstance(v, int) or (isinstance(v, str) and ":" not in v) for v in values
    ):
        # Flat alternating chromosome/position list
        if len(values) % 2 != 0:
            raise ConfigError(
                "Known positions given as a flat list must alternate chromosome and position"
            )
        for chrom, pos in zip(values[0::2], values[1::2]):
            try:
                position = int(pos)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid known position {chrom!r}, {pos!r}") from e
            if position < 1:
                raise ConfigError(f"Position must be >= 1, got {position}")
            positions.append(KnownPosition(str(chrom), position))
    else:
        for value in values:
            if isinstance(value, str):
                positions.append(parse_position(value))
            elif isinstance(value, tuple) and len(value) == 2:
                chrom, pos = value
                if int(pos) < 1:
                    raise ConfigError(f"Position must be >= 1, got {pos}")
                positions.append(KnownPosition(str(chrom), int(pos)))
            else:
                raise ConfigError(f"Cannot interpret known position: {value!r}")

    return list(dict.fromkeys(positions))
