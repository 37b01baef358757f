"""
Tests for key formatting, value encoding and the shared helpers.
"""
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, call, patch

from frache.caching.keys import (
    MAX_KEY_LENGTH,
    build_key,
    build_scan_pattern,
    hash_key,
    is_meta_key,
    meta_key,
    primary_key,
    validate_key,
)
from frache.caching.serialization import (
    compress,
    decompress,
    deserialize,
    ensure_str,
    serialize,
    should_compress,
)
from frache.caching.utils import parse_ttl, retry
from frache.exceptions import CompressionError, SerializationError, ValidationError


class TestKeys:
    """Test key building and validation."""

    def test_build_key_joins_parts(self):
        assert build_key("user:1", "users", "frache") == "frache:users:user:1"

    def test_build_key_skips_missing_parts(self):
        assert build_key("k") == "k"
        assert build_key("k", namespace="ns") == "ns:k"
        assert build_key("k", prefix="p") == "p:k"
        assert build_key("k", namespace="", prefix="p") == "p:k"

    def test_build_scan_pattern(self):
        assert build_scan_pattern("*", "cache", "frache") == "frache:cache:*"
        assert build_scan_pattern("user:*", None, "frache") == "frache:user:*"

    def test_meta_key_helpers(self):
        record = meta_key("frache:cache:a")

        assert record == "frache:cache:a:meta"
        assert is_meta_key(record)
        assert not is_meta_key("frache:cache:a")
        assert primary_key(record) == "frache:cache:a"
        assert primary_key("frache:cache:a") == "frache:cache:a"

    def test_validate_key_accepts_max_length(self):
        validate_key("k" * MAX_KEY_LENGTH)

    @pytest.mark.parametrize("bad_key", [
        "",
        "k" * (MAX_KEY_LENGTH + 1),
        "line\nbreak",
        "carriage\rreturn",
        "tab\tkey",
        "nul\0key",
        "report:meta",
        123,
        None,
    ])
    def test_validate_key_rejects(self, bad_key):
        with pytest.raises(ValidationError):
            validate_key(bad_key)

    def test_hash_key(self):
        digest = hash_key("some long input")

        assert len(digest) == 64
        assert digest == hash_key("some long input")
        assert digest != hash_key("other input")


class TestSerialization:
    """Test the value codec."""

    def test_strings_pass_through(self):
        assert serialize("plain text") == "plain text"

    def test_structured_values_use_json(self):
        assert serialize({"a": [1, 2]}) == '{"a": [1, 2]}'
        assert serialize(42) == "42"
        assert serialize(None) == "null"

    def test_unserializable_value(self):
        with pytest.raises(SerializationError) as exc_info:
            serialize({"items": {1, 2}})

        assert isinstance(exc_info.value.cause, TypeError)
        assert exc_info.value.__cause__ is exc_info.value.cause

    def test_deserialize_json(self):
        assert deserialize('{"a": 1}') == {"a": 1}
        assert deserialize("3.5") == 3.5

    def test_deserialize_is_lenient(self):
        assert deserialize("not json at all") == "not json at all"

    def test_should_compress_threshold(self):
        assert not should_compress("a" * 1024)
        assert should_compress("a" * 1025)
        assert should_compress("a" * 11, threshold=10)

    def test_should_compress_counts_bytes(self):
        # two bytes per character in UTF-8
        assert should_compress("é" * 513)

    def test_compress_roundtrip(self):
        text = "payload " * 500
        packed = compress(text)

        assert packed[:2] == b"\x1f\x8b"
        assert len(packed) < len(text)
        assert decompress(packed) == text

    def test_decompress_garbage(self):
        with pytest.raises(CompressionError):
            decompress(b"definitely not gzip")

    def test_ensure_str(self):
        assert ensure_str(b"abc") == "abc"
        assert ensure_str("abc") == "abc"
        assert ensure_str(None) is None

    def test_ensure_str_replaces_invalid_utf8(self):
        assert ensure_str(b"\xff\xfeok") == "\ufffd\ufffdok"


class TestUtils:
    """Test TTL parsing and retry."""

    @pytest.mark.parametrize("value,expected", [
        (None, None),
        (0, 0),
        (10, 10),
        (2.9, 3),
        (0.5, 1),
        ("30", 30),
        (timedelta(minutes=1), 60),
    ])
    def test_parse_ttl(self, value, expected):
        assert parse_ttl(value) == expected

    @pytest.mark.parametrize("value", [
        -1, "soon", True, [10], "inf", "-inf", "nan", float("inf"), float("nan"),
    ])
    def test_parse_ttl_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_ttl(value)

    @pytest.mark.asyncio
    async def test_retry_succeeds_after_failures(self):
        fn = AsyncMock(side_effect=[RuntimeError("1"), RuntimeError("2"), "ok"])

        with patch("frache.caching.utils.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await retry(fn, attempts=3, base_delay=0.5)

        assert result == "ok"
        assert fn.await_count == 3
        assert sleep.await_args_list == [call(0.5), call(1.0)]

    @pytest.mark.asyncio
    async def test_retry_reraises_last_error(self):
        fn = AsyncMock(side_effect=[RuntimeError("first"), ValueError("last")])

        with patch("frache.caching.utils.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ValueError, match="last"):
                await retry(fn, attempts=2, base_delay=0)

        assert fn.await_count == 2
