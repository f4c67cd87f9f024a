"""
Exception types raised by the TMED figure pipelines.
"""


class TmedfigError(Exception):
    """Base class for all pipeline errors."""


class DataFormatError(TmedfigError):
    """Input table or sequence file is malformed or missing required columns."""


# Name used in the manuscript methods notes
InputFormatError = DataFormatError


class NetworkError(TmedfigError):
    """Remote fetch failed. Fatal, never retried."""


class ConvergenceError(TmedfigError):
    """Imputation or tree optimization could not produce a result for a degenerate subset."""


class ConfigurationError(TmedfigError):
    """Configuration is inconsistent with itself or with the data shape."""
