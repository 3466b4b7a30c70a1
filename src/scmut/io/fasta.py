"""FASTA file handling for the reference genome.

Indexed random access through pyfaidx. The pipeline addresses bases by
chromosome name and 1-based position; `get_sequence` keeps the 0-based
half-open convention used for slicing.

Example:
    >>> from scmut.io.fasta import GenomeAccessor
    >>> genome = GenomeAccessor("genome.fa")
    >>> genome.get_base("chr1", 1000)
    'A'
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pyfaidx

from scmut.errors import InputUnavailableError

logger = logging.getLogger(__name__)


class GenomeAccessor:
    """Indexed FASTA access using pyfaidx.

    Sequences are upper-cased on read so soft-masked bases compare equal to
    pileup alleles.

    Attributes:
        path: Path to the FASTA file.

    Example:
        >>> with GenomeAccessor("genome.fa") as genome:
        ...     seq = genome.get_sequence("chr1", 1000, 2000)
    """

    def __init__(self, fasta_path: Path | str) -> None:
        """Initialize the genome accessor.

        Args:
            fasta_path: Path to FASTA file. A .fai index is created if needed.

        Raises:
            InputUnavailableError: If the FASTA file is missing or unreadable.
        """
        self.path = Path(fasta_path)
        if not self.path.exists():
            raise InputUnavailableError("Reference genome FASTA", self.path)

        self._fasta: pyfaidx.Fasta | None = None
        self._scaffold_lengths: dict[str, int] | None = None

        self._open()

    def _open(self) -> None:
        """Open the FASTA file with pyfaidx."""
        try:
            self._fasta = pyfaidx.Fasta(
                str(self.path),
                sequence_always_upper=True,
                read_ahead=10000,
                rebuild=False,
            )
        except (pyfaidx.FastaIndexingError, OSError, ValueError) as e:
            raise InputUnavailableError(
                "Reference genome FASTA", self.path, reason=f"unreadable ({e})"
            ) from e

        self._scaffold_lengths = {seqid: len(self._fasta[seqid]) for seqid in self._fasta.keys()}

        logger.debug(
            f"Opened FASTA: {self.path.name}, "
            f"{len(self._scaffold_lengths)} scaffolds, "
            f"{sum(self._scaffold_lengths.values()):,} bp total"
        )

    @property
    def scaffold_lengths(self) -> dict[str, int]:
        """Return {seqid: length} mapping."""
        if self._scaffold_lengths is None:
            raise RuntimeError("FASTA file not opened")
        return self._scaffold_lengths.copy()

    def __enter__(self) -> GenomeAccessor:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the FASTA file."""
        if self._fasta is not None:
            self._fasta.close()
            self._fasta = None

    def get_length(self, seqid: str) -> int:
        """Get the length of a scaffold.

        Raises:
            KeyError: If seqid not in FASTA.
        """
        if self._scaffold_lengths is None:
            raise RuntimeError("FASTA file not opened")
        if seqid not in self._scaffold_lengths:
            raise KeyError(f"Unknown scaffold: {seqid}")
        return self._scaffold_lengths[seqid]

    def get_sequence(self, seqid: str, start: int, end: int) -> str:
        """Get sequence for region (0-based, half-open coordinates).

        Raises:
            KeyError: If seqid not in FASTA.
            ValueError: If coordinates are invalid.
        """
        if self._fasta is None:
            raise RuntimeError("FASTA file not opened")

        scaffold_length = self.get_length(seqid)
        if start < 0:
            raise ValueError(f"Start position cannot be negative: {start}")
        if end > scaffold_length:
            raise ValueError(
                f"End position {end} exceeds scaffold length {scaffold_length}"
            )
        if start >= end:
            raise ValueError(f"Start ({start}) must be less than end ({end})")

        return str(self._fasta[seqid][start:end])

    def get_base(self, seqid: str, position: int) -> str:
        """Get the reference base at a 1-based position."""
        return self.get_sequence(seqid, position - 1, position)

    def __contains__(self, seqid: str) -> bool:
        if self._scaffold_lengths is None:
            return False
        return seqid in self._scaffold_lengths
