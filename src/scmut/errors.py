"""Exception types raised by scmut.

Only conditions that make a run meaningless are raised. Empty regions,
missing short-read coverage and degenerate statistics are recorded as data
on the candidates instead.
"""


class InputUnavailableError(FileNotFoundError):
    """A required input (genome, alignment, annotation, ...) is missing or unreadable.

    Attributes:
        input_name: Human readable name of the input, e.g. "genome FASTA".
        path: Offending path, if any.
    """

    def __init__(self, input_name: str, path: object = None, reason: str = "not found") -> None:
        self.input_name = input_name
        self.path = path
        message = f"{input_name} {reason}"
        if path is not None:
            message = f"{message}: {path}"
        super().__init__(message)


class ConfigError(ValueError):
    """Invalid parameter values."""


class RegionProcessingError(RuntimeError):
    """A gene region could not be processed; the whole run is aborted.

    The false discovery rate correction needs every region's candidates, so
    a region is never dropped silently.
    """

    def __init__(self, region_id: str, message: str) -> None:
        self.region_id = region_id
        super().__init__(f"Region {region_id} failed: {message}")
