"""
Helpers shared by the cache modules.
"""

import asyncio
import math
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, Union

from ..exceptions import ValidationError
from ..logging_config import get_logger

logger = get_logger(__name__, 'cache_utils')

TTLValue = Union[int, float, str, timedelta, None]


def parse_ttl(ttl: TTLValue) -> Optional[int]:
    """
    Normalize a TTL to whole seconds.

    Accepts None, numbers, numeric strings and timedelta. Fractions round up
    to the next second. Returns None when no TTL was given.

    Raises:
        ValidationError: value is negative, not finite, not numeric, or of
            another type
    """
    if ttl is None:
        return None
    if isinstance(ttl, bool):
        raise ValidationError("TTL must be a number of seconds")
    if isinstance(ttl, timedelta):
        seconds = ttl.total_seconds()
    elif isinstance(ttl, (int, float)):
        seconds = ttl
    elif isinstance(ttl, str):
        try:
            seconds = float(ttl.strip())
        except ValueError:
            raise ValidationError(f"Invalid TTL: {ttl!r}")
    else:
        raise ValidationError(f"Invalid TTL type: {type(ttl).__name__}")

    if not math.isfinite(seconds):
        raise ValidationError(f"TTL must be finite, got {ttl!r}")
    if seconds < 0:
        raise ValidationError("TTL must not be negative")
    return math.ceil(seconds)


async def retry(
    fn: Callable[[], Awaitable[Any]],
    attempts: int = 3,
    base_delay: float = 1.0,
) -> Any:
    """
    Await fn() until it succeeds, up to `attempts` times.

    Waits base_delay * 2**i seconds after the i-th failure and re-raises the
    last error once attempts are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(attempts):
        try:
            return await fn()
        except Exception as e:
            if attempt == attempts - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{attempts} failed, retrying in {delay:.2f}s: {e}",
                operation="retry"
            )
            await asyncio.sleep(delay)
