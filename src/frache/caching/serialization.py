"""
Value encoding for Frache.

Values are stored as JSON text (strings as-is) and gzip-compressed above a
size threshold.
"""

import asyncio
import gzip
import json
import zlib
from typing import Any, Union

from ..exceptions import CompressionError, SerializationError

DEFAULT_COMPRESSION_THRESHOLD = 1024


def serialize(value: Any) -> str:
    """Encode a value for storage. Strings pass through unchanged."""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize value of type {type(value).__name__}: {e}", e)


def deserialize(text: str) -> Any:
    """Decode stored text, returning it unchanged when it is not JSON."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return text


def should_compress(text: str, threshold: int = DEFAULT_COMPRESSION_THRESHOLD) -> bool:
    return len(text.encode("utf-8")) > threshold


def compress(text: str) -> bytes:
    return gzip.compress(text.encode("utf-8"))


def decompress(data: bytes) -> str:
    try:
        return gzip.decompress(data).decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise CompressionError(f"Failed to decompress cached value: {e}", e)


async def compress_async(text: str) -> bytes:
    """Compress in a worker thread so large payloads do not block the loop."""
    return await asyncio.to_thread(compress, text)


async def decompress_async(data: bytes) -> str:
    return await asyncio.to_thread(decompress, data)


def ensure_str(value: Union[str, bytes, None]) -> Union[str, None]:
    """Decode bytes returned by the store; invalid UTF-8 becomes U+FFFD."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
