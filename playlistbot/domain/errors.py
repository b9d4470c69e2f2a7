class InvalidReference(ValueError):
    """Captured track identifier does not match the catalog identifier grammar."""


class UpstreamError(Exception):
    """Catalog call failed. Never retried by the synchronization core."""


class RateLimited(UpstreamError):
    """Operation was rate limited by the catalog. Includes suggested wait time in milliseconds."""

    def __init__(self, retry_after_ms: int, message: str = "Rate limited") -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms


class ResolutionFailure(UpstreamError):
    """Listing or creating the owner's playlist failed."""


class SnapshotFailure(UpstreamError):
    """Playlist contents could not be fetched or contain unidentifiable entries."""


class ApplyFailure(UpstreamError):
    """The add-items call was rejected; nothing was appended."""


class GuardTimeout(Exception):
    """Exclusive access to the catalog session could not be obtained in time."""
