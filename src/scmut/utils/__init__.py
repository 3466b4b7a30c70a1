"""General utilities for scmut."""

from scmut.utils.logging import Timer, setup_logging
from scmut.utils.regions import GenomicRegion, KnownPosition, parse_known_positions, parse_region

__all__ = [
    "GenomicRegion",
    "KnownPosition",
    "Timer",
    "parse_known_positions",
    "parse_region",
    "setup_logging",
]
