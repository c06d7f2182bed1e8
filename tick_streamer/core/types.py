"""
Core Type Definitions and Exceptions

Service-specific types and exceptions. Every per-event failure in the
ingestion path maps onto one of these and is recovered locally.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Any, Optional


class TickStreamerError(Exception):
    """Base exception for all tick streamer errors."""

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class MalformedEventError(TickStreamerError):
    """Raised when a raw tick cannot be decoded or lacks its stockId."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        if field:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = repr(value)[:100]  # Truncate long values
        super().__init__(message, ctx)
        self.field = field
        self.value = value


class CacheUnavailableError(TickStreamerError):
    """Raised when the recency cache store is unreachable, errors, or times out."""

    def __init__(
        self,
        message: str,
        operation: str,
        key: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["operation"] = operation
        if key:
            ctx["key"] = key
        super().__init__(message, ctx)
        self.operation = operation
        self.key = key


@dataclass
class ReconnectionState:
    """Tracks broker read retries for exponential backoff."""

    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    multiplier: float = 2.0
    jitter_factor: float = 0.1
    current_delay: float = field(default=1.0, init=False)
    attempt_count: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self.current_delay = self.initial_delay_seconds

    def next_delay(self) -> float:
        """Calculate next delay with exponential backoff and jitter."""
        delay = self.current_delay

        # Apply jitter (+/- jitter_factor)
        jitter = delay * self.jitter_factor
        delay = delay + random.uniform(-jitter, jitter)

        self.current_delay = min(
            self.current_delay * self.multiplier,
            self.max_delay_seconds,
        )
        self.attempt_count += 1

        return max(0.1, delay)  # Minimum 100ms

    def reset(self) -> None:
        """Reset state after a successful read."""
        self.current_delay = self.initial_delay_seconds
        self.attempt_count = 0
