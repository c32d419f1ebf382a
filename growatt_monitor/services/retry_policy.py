from __future__ import annotations

import threading
from typing import Callable, Optional, TypeVar

import requests

from growatt_monitor.config import RetryConfig
from growatt_monitor.errors import FailureKind, UpstreamError

T = TypeVar("T")

# Returns True when a stop was requested while waiting.
Waiter = Callable[[float], bool]


class RetryController:
    """
    Runs one upstream call with bounded retries.

    Transient and rate-limited failures are retried after a cool-down that
    grows by `backoff_factor` per attempt (minutes, capped). Fatal failures
    are raised straight away. Once the attempts are used up the last
    UpstreamError is raised with `attempts` set; what happens to the device
    afterwards is the caller's business.
    """

    def __init__(
        self,
        cfg: RetryConfig,
        log,
        *,
        stop_event: Optional[threading.Event] = None,
        wait: Optional[Waiter] = None,
    ):
        self.cfg = cfg
        self.log = log
        self.stop_event = stop_event or threading.Event()
        self._wait = wait or self.stop_event.wait

    # ------------------------------------------------------------------
    @staticmethod
    def classify(exc: BaseException) -> FailureKind:
        if isinstance(exc, UpstreamError):
            return exc.kind
        if isinstance(exc, requests.RequestException):
            return FailureKind.TRANSIENT
        return FailureKind.FATAL

    def cooldown_seconds(self, attempt: int) -> float:
        minutes = self.cfg.cooldown_minutes * (self.cfg.backoff_factor ** max(0, attempt - 1))
        return max(0.0, min(minutes, self.cfg.max_cooldown_minutes) * 60.0)

    def _as_upstream_error(self, exc: Exception, label: str) -> UpstreamError:
        if isinstance(exc, UpstreamError):
            return exc
        err = UpstreamError(f"{label} failed: {exc!r}", kind=self.classify(exc))
        err.__cause__ = exc
        return err

    # ------------------------------------------------------------------
    def execute(self, operation: Callable[[], T], *, label: str = "upstream call") -> T:
        attempts = max(1, int(self.cfg.attempts))
        err: Optional[UpstreamError] = None

        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except Exception as exc:
                err = self._as_upstream_error(exc, label)
            err.attempts = attempt

            if err.kind is FailureKind.FATAL:
                self.log.error("%s failed with a fatal error (not retried): %s", label, err)
                raise err

            if attempt >= attempts:
                break

            delay = self.cooldown_seconds(attempt)
            if err.kind is FailureKind.RATE_LIMITED:
                self.log.warning(
                    "%s rate limited by Growatt (attempt %d/%d); cooling down %.0fs",
                    label,
                    attempt,
                    attempts,
                    delay,
                )
            else:
                self.log.warning(
                    "%s transient failure (attempt %d/%d): %s; retrying in %.0fs",
                    label,
                    attempt,
                    attempts,
                    err,
                    delay,
                )

            if self._wait(delay):
                self.log.info("Stop requested; abandoning %s after %d attempt(s)", label, attempt)
                break

        self.log.warning("%s giving up after %d attempt(s): %s", label, err.attempts, err)
        raise err
