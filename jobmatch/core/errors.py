# jobmatch/core/errors.py


class MatchingError(Exception):
    """Base class for errors raised by the matching pipeline."""


class ValidationError(MatchingError):
    """Malformed request parameters. Never retried."""


class NotFoundError(MatchingError):
    def __init__(self, kind: str, ref: str):
        super().__init__(f"{kind} {ref} not found")
        self.kind = kind
        self.ref = ref


class ExtractionError(MatchingError):
    """The embedding extractor returned unusable output or timed out. Retryable."""


class QueueExhaustedError(MatchingError):
    def __init__(self, task_id: str, attempts: int, last_error: str | None = None):
        super().__init__(f"task {task_id} failed after {attempts} attempts: {last_error}")
        self.task_id = task_id
        self.attempts = attempts
        self.last_error = last_error


class StoreError(MatchingError):
    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class AuthorizationError(MatchingError):
    """The acting user's role does not allow the operation."""
