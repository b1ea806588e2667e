"""Custom exception hierarchy for the land report."""


class LandReportError(Exception):
    """Base exception for all land-report errors."""


class ConfigurationError(LandReportError):
    """Raised when configuration is invalid or missing."""


class DataLoadError(LandReportError):
    """Raised when an input table cannot be read."""


class MissingColumnsError(LandReportError, ValueError):
    """Raised when a table lacks columns an operation requires."""

    def __init__(self, what: str, missing, found=None):
        self.missing = sorted(missing)
        self.found = list(found) if found is not None else []
        msg = f"{what} is missing required columns: {self.missing}"
        if found is not None:
            msg += f". Found: {self.found}"
        super().__init__(msg)


class EmptyResultError(LandReportError):
    """Raised when a step leaves nothing to aggregate or plot."""
