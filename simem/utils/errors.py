"""
Error Taxonomy

Only range validation and single-flight violations abort an extraction call.
Network failures travel as FetchResult values and storage failures degrade
to cache misses, so neither has an exception type here besides the store's
open failure.
"""


class ExtractionError(Exception):
    """Base class for extraction errors."""


class RangeValidationError(ExtractionError, ValueError):
    """Missing, unparseable or inverted dates, or a declined large range."""


class ExtractionInProgressError(ExtractionError, RuntimeError):
    """Another extraction is already running on this orchestrator."""


class CacheStoreError(ExtractionError):
    """The persistent cache could not be opened."""
