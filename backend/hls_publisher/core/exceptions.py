"""Error taxonomy for the transcoding and publishing pipeline.

Pre-flight problems (``ValidationError``) are raised to the caller. Everything
that goes wrong after the source has been resolved is reported back as an
``ErrorResult`` payload by the pipeline.
"""


class TranscodePipelineError(Exception):
    """Base exception for pipeline errors."""
    pass


class ValidationError(TranscodePipelineError):
    """Required input is missing or malformed."""
    pass


class ConfigurationError(TranscodePipelineError):
    """A storage location cannot be resolved from configuration."""
    pass


class NotFoundError(TranscodePipelineError):
    """A file the pipeline depends on does not exist."""
    pass


class ExternalToolError(TranscodePipelineError):
    """The encoder or prober failed or produced unusable output."""
    pass


class CommandTimeoutError(ExternalToolError):
    """An external command exceeded its configured timeout."""
    pass


class NetworkError(TranscodePipelineError):
    """Downloading the source from remote storage failed."""
    pass


class PersistenceError(TranscodePipelineError):
    """The asset store rejected a query, registration or upload."""
    pass


class NoRenditionsError(TranscodePipelineError):
    """No rendition produced a usable playlist."""
    pass
