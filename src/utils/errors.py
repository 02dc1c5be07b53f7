"""
Error taxonomy for the EV range prediction engine

Every error carries a ``retryable`` flag so batch callers can decide between
"try again on the next cycle" and "reject this item".
"""


class EVRangeError(Exception):
    """Base class for all engine errors"""

    retryable = False


class InvalidInput(EVRangeError, ValueError):
    """Malformed coordinates, empty routes, out-of-range values. Rejected immediately."""


class InvalidRoute(InvalidInput):
    """Route with fewer than two points"""


class UnknownVariant(InvalidInput):
    """Vehicle variant id not present in the catalog"""

    def __init__(self, variant_id: str):
        super().__init__(f"Unknown vehicle variant: {variant_id!r}")
        self.variant_id = variant_id


class NotFound(EVRangeError):
    """Unknown user, trip or crowd segment"""

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class VersionConflict(EVRangeError):
    """Conditional write rejected because the stored version moved on"""

    retryable = True

    def __init__(self, key: str, expected, actual):
        super().__init__(f"Version conflict on {key}: expected {expected}, found {actual}")
        self.key = key
        self.expected = expected
        self.actual = actual


class ConcurrentUpdateConflict(EVRangeError):
    """Crowd cell update still conflicting after all retries"""

    retryable = True

    def __init__(self, cell: str, attempts: int):
        super().__init__(f"Crowd cell {cell} still conflicting after {attempts} attempts")
        self.cell = cell
        self.attempts = attempts


class UpstreamUnavailable(EVRangeError):
    """Store or network failure, including I/O timeouts"""

    retryable = True


def is_retryable(exc: BaseException) -> bool:
    """Whether a failure should leave work pending for the next cycle"""
    if isinstance(exc, EVRangeError):
        return exc.retryable
    return isinstance(exc, (TimeoutError, ConnectionError))
