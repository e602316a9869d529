class MatchError(Exception):
    """Base class for errors raised by the matching engine."""


class ValidationError(MatchError, ValueError):
    """Input violates a domain constraint; nothing was computed or written."""


class StoreFailure(MatchError):
    """The store was unreachable or a write conflicted. Safe to retry."""

    def __init__(self, operation: str, detail: str = "store unavailable"):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation}: {detail}")


def require_positive_id(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value
