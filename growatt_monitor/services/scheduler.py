from __future__ import annotations

import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from growatt_monitor.config import PollingConfig
from growatt_monitor.errors import DiscoveryError, FailureKind
from growatt_monitor.logging import RunLogEntry, StructuredLog
from growatt_monitor.services.device_registry import DeviceRegistry
from growatt_monitor.services.host_listener import HostListener
from growatt_monitor.services.reconciler import DiscoveryReconciler, ReconcileResult
from growatt_monitor.services.telemetry_poller import PollReport, TelemetryPoller


class Phase(str, Enum):
    DISCOVERING = "discovering"
    MONITORING = "monitoring"


class Scheduler:
    """
    Single worker: discover once, then poll on a fixed interval.

    Discovery failures keep the scheduler in DISCOVERING and retry after
    `discovery_retry_minutes`. Once MONITORING it never falls back; a
    periodic re-discovery only runs when `rediscovery_interval_minutes` > 0.
    """

    def __init__(
        self,
        reconciler: DiscoveryReconciler,
        poller: TelemetryPoller,
        registry: DeviceRegistry,
        cfg: PollingConfig,
        log,
        *,
        listener: Optional[HostListener] = None,
        structured_log: Optional[StructuredLog] = None,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.reconciler = reconciler
        self.poller = poller
        self.registry = registry
        self.cfg = cfg
        self.log = log
        self.listener = listener or HostListener()
        self.structured_log = structured_log
        self.stop_event = stop_event or threading.Event()
        self._clock = clock
        self._work_lock = threading.Lock()
        self._last_discovery: Optional[float] = None
        self.phase = Phase.DISCOVERING

    # ------------------------------------------------------------------
    def _record(self, event: str, *, devices=None, results=None, error: Optional[str] = None) -> None:
        if not self.structured_log or not self.structured_log.enabled:
            return
        self.structured_log.write(
            RunLogEntry(
                timestamp=datetime.now(timezone.utc).isoformat(),
                phase=self.phase.value,
                event=event,
                devices=devices,
                results=results,
                error=error,
            )
        )

    def _publish_discovery(self, result: ReconcileResult) -> None:
        self.listener.devices_added([replace(d) for d in result.added])
        self.listener.devices_updated([replace(d) for d in result.updated])
        self.listener.devices_removed([replace(d) for d in result.removed])

    def _log_discovery_failure(self, exc: DiscoveryError) -> None:
        retry_min = self.cfg.discovery_retry_minutes
        if exc.kind is FailureKind.RATE_LIMITED:
            self.log.warning("Discovery hit the Growatt rate limit (quota exhausted); retrying in %.0f min", retry_min)
        elif exc.kind is FailureKind.FATAL:
            self.log.error("Discovery failed with a fatal error: %s; retrying in %.0f min", exc, retry_min)
        else:
            self.log.warning("Discovery failed: %s; retrying in %.0f min", exc, retry_min)

    # ------------------------------------------------------------------
    def discover(self) -> ReconcileResult:
        with self._work_lock:
            try:
                result = self.reconciler.reconcile()
            except DiscoveryError as exc:
                self._record("discovery_failed", error=str(exc))
                raise
            self._last_discovery = self._clock()
        self._publish_discovery(result)
        self._record(
            "discovery",
            devices=[d.as_record() for d in self.registry.snapshot()],
            results=[
                {
                    "added": [d.key for d in result.added],
                    "updated": [d.key for d in result.updated],
                    "removed": [d.key for d in result.removed],
                }
            ],
        )
        return result

    def poll(self) -> PollReport:
        with self._work_lock:
            report = self.poller.poll_once()
        devices = self.registry.snapshot()
        self.listener.telemetry_updated(devices)
        self._record(
            "poll",
            devices=[d.as_record() for d in devices],
            results=[r.as_dict() for r in report.per_device],
        )
        return report

    def _rediscovery_due(self) -> bool:
        interval = self.cfg.rediscovery_interval_minutes
        if interval <= 0 or self._last_discovery is None:
            return False
        return self._clock() - self._last_discovery >= interval * 60.0

    # ------------------------------------------------------------------
    def step(self) -> float:
        """Run one unit of work; return seconds to wait before the next step."""
        if self.phase is Phase.DISCOVERING:
            try:
                self.discover()
            except DiscoveryError as exc:
                self._log_discovery_failure(exc)
                return self.cfg.discovery_retry_minutes * 60.0
            self.phase = Phase.MONITORING
            self.log.info("Monitoring %d plant(s) every %.0f min", len(self.registry), self.cfg.interval_minutes)
            return 0.0

        if self._rediscovery_due():
            try:
                self.discover()
            except DiscoveryError as exc:
                # Keep polling the plants we already know.
                self.log.warning("Periodic re-discovery failed: %s", exc)
                self._last_discovery = self._clock()

        if not self.stop_event.is_set():
            self.poll()
        return self.cfg.interval_minutes * 60.0

    def run(self) -> None:
        self.log.info("Scheduler starting (phase=%s)", self.phase.value)
        delay = self.cfg.startup_delay_seconds
        if delay > 0 and self.stop_event.wait(delay):
            return
        while not self.stop_event.is_set():
            delay = self.step()
            if delay > 0 and self.stop_event.wait(delay):
                break
        self.log.info("Scheduler stopped")

    def stop(self) -> None:
        self.stop_event.set()
