"""Pipeline exception taxonomy."""


class PipelineError(Exception):
    """Base exception for pipeline errors."""

    pass


class FetchError(PipelineError):
    """Raised when a page or asset could not be retrieved.

    Covers non-2xx responses, network failures and timeouts.
    """

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class ConfigValidationError(PipelineError):
    """Raised when the pipeline configuration violates its schema."""

    pass


class ExtractionError(PipelineError):
    """Raised when a required field selector matches nothing on a page."""

    pass


class ModelUnavailableError(PipelineError):
    """Raised when an analysis model cannot be loaded."""

    pass


class StorageError(PipelineError):
    """Raised when object-storage credentials are missing or an upload fails."""

    pass
