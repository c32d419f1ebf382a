# growatt_monitor/errors.py

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    FATAL = "fatal"


class GrowattMonitorError(Exception):
    """Base class for every error raised by the monitor."""


class ConfigError(GrowattMonitorError):
    """Missing or invalid configuration (e.g. no API token)."""


class UpstreamError(GrowattMonitorError):
    """A classified failure of a single Growatt API call."""

    def __init__(
        self,
        message: str,
        *,
        kind: FailureKind = FailureKind.TRANSIENT,
        code: int | None = None,
        status: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.code = code
        self.status = status
        # Filled in by RetryController once the call has been given up on.
        self.attempts = 1

    @property
    def retryable(self) -> bool:
        return self.kind is not FailureKind.FATAL

    def __str__(self) -> str:
        parts = [self.message]
        if self.code is not None:
            parts.append(f"error_code={self.code}")
        if self.status is not None:
            parts.append(f"http={self.status}")
        return " ".join(parts)


class DiscoveryError(GrowattMonitorError):
    """The remote inventory could not be fetched; nothing was reconciled."""

    def __init__(self, message: str, cause: UpstreamError | None = None):
        super().__init__(message)
        self.cause = cause

    @property
    def kind(self) -> FailureKind | None:
        return self.cause.kind if self.cause else None


class TelemetryFetchError(GrowattMonitorError):
    """Telemetry for one plant could not be fetched."""

    def __init__(self, key: str, cause: UpstreamError):
        super().__init__(f"telemetry fetch failed for {key}: {cause}")
        self.key = key
        self.cause = cause
