class MergerError(Exception):
    """Base class for every error raised by the merger."""


class ValidationError(MergerError):
    """The batch is empty once invalid entries are filtered out."""


class ConversionError(MergerError):
    """A single file could not be converted into pages."""


class FallbackableError(ConversionError):
    """Extraction failed, but a metadata info page is still a useful result."""


class FinalizationError(MergerError):
    """The output document could not be serialized."""


class SinkError(MergerError):
    """The finished PDF could not be handed to the download sink."""


class MergeInProgressError(MergerError):
    """A merge run is converting or finalizing and owns the output document."""


class OrderingDisabledError(MergerError):
    """Reordering was requested while ordering mode is switched off."""


class SessionNotFoundError(MergerError):
    """The merge session does not exist or has expired."""
