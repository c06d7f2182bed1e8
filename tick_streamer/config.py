"""
Tick Streamer Configuration

Centralized configuration. All environment variables MUST be read here.
No os.getenv() calls allowed elsewhere.
"""
from __future__ import annotations

import os
import socket
from dataclasses import dataclass


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _optional_env(name: str, default: str = "") -> str:
    """Get an optional environment variable with a default."""
    return os.environ.get(name, default)


def _optional_env_int(name: str, default: int) -> int:
    """Get an optional integer environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {name}: {value}")


def _optional_env_float(name: str, default: float) -> float:
    """Get an optional float environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Invalid number value for {name}: {value}")


def _optional_env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Get an optional comma-separated environment variable as a tuple."""
    value = os.environ.get(name)
    if not value:
        return default
    items = tuple(part.strip() for part in value.split(",") if part.strip())
    if not items:
        raise ConfigurationError(f"{name} must list at least one value")
    return items


@dataclass(frozen=True)
class BrokerConfig:
    """Redis Streams subscription for incoming ticks."""
    redis_url: str
    streams: tuple[str, ...]
    group: str
    consumer_name: str
    poll_timeout_seconds: float = 1.0


@dataclass(frozen=True)
class CacheConfig:
    """Recency cache configuration."""
    redis_url: str
    capacity: int
    ttl_seconds: int
    timeout_seconds: float

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ConfigurationError(f"Cache capacity must be positive, got {self.capacity}")
        if self.ttl_seconds < 1:
            raise ConfigurationError(f"Cache TTL must be positive, got {self.ttl_seconds}")
        if self.timeout_seconds <= 0:
            raise ConfigurationError(
                f"Cache timeout must be positive, got {self.timeout_seconds}"
            )


@dataclass(frozen=True)
class WebSocketServerConfig:
    """WebSocket server configuration for client connections."""
    host: str
    port: int
    send_timeout_seconds: float


@dataclass(frozen=True)
class Settings:
    """Root configuration container."""
    broker: BrokerConfig
    cache: CacheConfig
    websocket_server: WebSocketServerConfig


def _load_settings() -> Settings:
    """Load all settings from environment variables."""
    redis_url = _optional_env("REDIS_URL", "redis://localhost:6379/0")

    broker = BrokerConfig(
        redis_url=redis_url,
        streams=_optional_env_list("TICK_STREAMS", ("realtime-data",)),
        group=_optional_env("TICK_CONSUMER_GROUP", "stock-group"),
        consumer_name=_optional_env(
            "TICK_CONSUMER_NAME", f"tick-streamer-{socket.gethostname()}-{os.getpid()}"
        ),
        poll_timeout_seconds=_optional_env_float("TICK_POLL_TIMEOUT_SECONDS", 1.0),
    )

    cache = CacheConfig(
        redis_url=_optional_env("CACHE_REDIS_URL", redis_url),
        capacity=_optional_env_int("TICK_CACHE_CAPACITY", 5),
        ttl_seconds=_optional_env_int("TICK_CACHE_TTL_SECONDS", 3600),
        timeout_seconds=_optional_env_float("TICK_CACHE_TIMEOUT_SECONDS", 2.0),
    )

    websocket_server = WebSocketServerConfig(
        host=_optional_env("WS_HOST", "0.0.0.0"),
        port=_optional_env_int("WS_PORT", 8765),
        send_timeout_seconds=_optional_env_float("WS_SEND_TIMEOUT_SECONDS", 5.0),
    )

    return Settings(
        broker=broker,
        cache=cache,
        websocket_server=websocket_server,
    )


settings = _load_settings()
