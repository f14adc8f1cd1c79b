class SegmentClaimError(Exception):
    """Base exception for segment coordination errors."""

    def __init__(self, message: str):
        super().__init__(message)


class PoolDisposedError(SegmentClaimError):
    """Raised when a subscriber is requested from a disposed pool."""

    def __init__(self, *, message: str | None = None):
        super().__init__(message or "Subscriber pool has been disposed")
