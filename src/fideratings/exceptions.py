"""Exception hierarchy for the rating import pipeline.

Exception tree:
    FideRatingsError
    +-- SourceUnavailable   (404, not published yet, timeout, refused)
    +-- ArchiveError        (downloaded archive is unusable)
    |   +-- ArchiveCorrupt  (bad zip, ambiguous contents)
    |   +-- NoDataFileFound (no .xml/.txt member)
    +-- RatingFileError     (data file missing or of unknown format)
    +-- ImportLockTimeout   (another import holds the same list)

Malformed lines and elements are not exceptions; the parsers count and
skip them.
"""

from typing import Optional


class FideRatingsError(Exception):
    """Base exception for all rating import errors."""

    def __init__(
        self,
        message: str,
        *,
        period: Optional[str] = None,
        category: Optional[str] = None,
    ):
        self.period = period
        self.category = category
        super().__init__(message)


class SourceUnavailable(FideRatingsError):
    """FIDE has not published this list, or the server could not be reached.

    Recoverable: the period is left pending and retried on a later run.
    """

    pass


class ArchiveError(FideRatingsError):
    """The downloaded archive cannot yield a data file."""

    pass


class ArchiveCorrupt(ArchiveError):
    """The archive is not a valid zip or holds more than one data file."""

    pass


class NoDataFileFound(ArchiveError):
    """The archive extracted cleanly but contains no .xml or .txt file."""

    pass


class RatingFileError(FideRatingsError):
    """A local rating file is missing or its format cannot be determined."""

    pass


class ImportLockTimeout(FideRatingsError):
    """Another process is importing the same (period, category)."""

    pass
