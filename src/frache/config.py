"""
Configuration for Frache.

Settings are read once, at cache construction, from keyword arguments,
environment variables prefixed with FRACHE_ and an optional .env file.
"""
from functools import lru_cache
from typing import Any, Dict

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Cache configuration settings."""

    # Backing store
    redis_url: str = Field("redis://localhost:6379/0", description="Redis connection URL")
    redis_max_connections: int = Field(20, description="Connection pool size")

    # Key layout and expiry
    default_ttl: int = Field(3600, description="Default TTL in seconds")
    default_namespace: str = Field("cache", description="Namespace used when none is given")
    key_prefix: str = Field("frache", description="Prefix for every key written")

    # Compression
    enable_compression: bool = Field(True, description="Compress values above the threshold")
    compression_threshold: int = Field(1024, description="Compression threshold in bytes")

    # Warmup scheduler
    enable_warmup: bool = Field(True, description="Run the periodic warmup drain")
    warmup_interval: float = Field(60.0, description="Seconds between warmup drains")

    # Invalidation
    scan_count: int = Field(100, description="Keys requested per SCAN page")

    model_config = SettingsConfigDict(
        env_prefix="FRACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_ttl", "compression_threshold")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Value must not be negative")
        return v

    @field_validator("warmup_interval")
    @classmethod
    def validate_interval(cls, v):
        if v <= 0:
            raise ValueError("Warmup interval must be positive")
        return v

    @field_validator("scan_count", "redis_max_connections")
    @classmethod
    def validate_positive_int(cls, v):
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @field_validator("key_prefix", "default_namespace")
    @classmethod
    def validate_key_part(cls, v):
        if any(ch in v for ch in "\r\n\t\0"):
            raise ValueError("Key parts must not contain control characters")
        return v


@lru_cache()
def get_settings() -> CacheSettings:
    """Get the process-wide settings instance."""
    return CacheSettings()


def get_config_summary(settings: CacheSettings) -> Dict[str, Any]:
    """
    Get a summary of a configuration without connection credentials.

    Returns:
        Dictionary with configuration summary
    """
    redis_url = settings.redis_url
    if "@" in redis_url:
        scheme, _, rest = redis_url.partition("://")
        redis_url = f"{scheme}://***@{rest.split('@', 1)[1]}"

    return {
        "redis": {
            "url": redis_url,
            "max_connections": settings.redis_max_connections,
        },
        "keys": {
            "prefix": settings.key_prefix,
            "default_namespace": settings.default_namespace,
            "default_ttl": settings.default_ttl,
        },
        "compression": {
            "enabled": settings.enable_compression,
            "threshold": settings.compression_threshold,
        },
        "warmup": {
            "enabled": settings.enable_warmup,
            "interval": settings.warmup_interval,
        },
        "scan_count": settings.scan_count,
    }
