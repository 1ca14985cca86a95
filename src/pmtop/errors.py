"""Exceptions raised by pmtop."""


class PmtopError(Exception):
    """Base class for pmtop errors."""


class SamplerStartError(PmtopError):
    """The powermetrics process could not be started."""


class FirstSampleTimeout(PmtopError):
    """powermetrics did not produce a sample within the startup timeout."""


class ArtifactReadError(PmtopError):
    """The powermetrics output file exists but could not be read."""


class RecordDecodeError(PmtopError, ValueError):
    """A fragment of the output file is not a complete powermetrics record."""
