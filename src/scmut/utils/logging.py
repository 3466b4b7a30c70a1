"""Logging configuration for scmut.

Console output goes through rich; an optional file handler always records
debug-level messages.

Example:
    >>> import logging
    >>> from scmut.utils.logging import setup_logging
    >>> setup_logging(verbosity=2)
    >>> logger = logging.getLogger("scmut.core")
    >>> logger.info("Processing started")
"""

import logging
import time
from pathlib import Path
from typing import Any

from rich.logging import RichHandler

# =============================================================================
# Constants
# =============================================================================

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

RICH_FORMAT = "%(message)s"

VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}


# =============================================================================
# Setup Functions
# =============================================================================


def setup_logging(
    verbosity: int = 1,
    log_file: Path | str | None = None,
    use_rich: bool = True,
) -> None:
    """Configure logging for scmut.

    Args:
        verbosity: Verbosity level (0=warning, 1=info, 2=debug).
        log_file: Optional file to log to.
        use_rich: Use rich for console output.
    """
    level = VERBOSITY_LEVELS.get(verbosity, logging.DEBUG)

    logger = logging.getLogger("scmut")
    logger.setLevel(logging.DEBUG if log_file is not None else level)
    logger.handlers.clear()

    if use_rich:
        console_handler: logging.Handler = RichHandler(
            rich_tracebacks=True,
            show_time=False,
            show_path=False,
        )
        console_handler.setFormatter(logging.Formatter(RICH_FORMAT))
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))

    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)


# =============================================================================
# Timing Utilities
# =============================================================================


class Timer:
    """Context manager for timing pipeline stages.

    Example:
        >>> with Timer("Significance scoring", logger):
        ...     scorer.score(candidates)
        # Logs: "Significance scoring completed in 1.23s"
    """

    def __init__(self, description: str, logger: logging.Logger | None = None) -> None:
        self.description = description
        self.logger = logger or logging.getLogger("scmut")
        self.start_time: float = 0
        self.elapsed: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed = time.perf_counter() - self.start_time
        self.logger.info(f"{self.description} completed in {self.elapsed:.2f}s")
