class ResolutionError(Exception):
    """Base class for failures while resolving a single playlist entry."""


class NotFound(ResolutionError):
    """Search or lookup yielded no matching result."""


class TransportFailure(ResolutionError):
    """Network failure or non-success status from a collaborator."""


class RateLimited(TransportFailure):
    """Operation was rate limited by provider. Includes suggested wait time in milliseconds."""

    def __init__(self, retry_after_ms: int, message: str = "Rate limited") -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class MalformedResponse(ResolutionError):
    """Response failed structural validation for its expected shape."""

    def __init__(self, message: str, response=None) -> None:
        super().__init__(message)
        self.response = response
