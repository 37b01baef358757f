"""
Exception hierarchy for Frache.

Every error raised by the cache layer derives from FracheError so callers
can catch the whole family at once.
"""

from typing import Optional


class FracheError(Exception):
    """Base exception for cache operations."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ValidationError(FracheError):
    """Raised when a key or option is malformed."""
    pass


class SerializationError(FracheError):
    """Raised when a value cannot be encoded for storage."""
    pass


class CompressionError(FracheError):
    """Raised when a stored payload cannot be compressed or decompressed."""
    pass


class StoreError(FracheError):
    """Raised when a call to the backing store fails."""
    pass


class TaskNotFoundError(FracheError):
    """Raised when a warmup task id is not registered."""

    def __init__(self, task_id: str):
        super().__init__(f"Warmup task with id '{task_id}' not found")
        self.task_id = task_id


class TaskTimeoutError(FracheError):
    """Raised when a warmup task exceeds its declared timeout."""

    def __init__(self, task_id: str, timeout: float):
        super().__init__(f"Warmup task '{task_id}' timed out after {timeout:.3f}s")
        self.task_id = task_id
        self.timeout = timeout
