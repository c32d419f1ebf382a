from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from growatt_monitor.errors import TelemetryFetchError, UpstreamError
from growatt_monitor.models.device import Device, OnlineState, Telemetry
from growatt_monitor.models.plant import PlantData
from growatt_monitor.services.device_registry import DeviceRegistry
from growatt_monitor.services.retry_policy import RetryController, Waiter

DEFAULT_ONLINE_THRESHOLD_W = 0.1


@dataclass
class DevicePollResult:
    key: str
    telemetry: Optional[Telemetry] = None
    error: Optional[TelemetryFetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_dict(self) -> dict:
        return {
            "key": self.key,
            "ok": self.ok,
            "telemetry": self.telemetry,
            "error": str(self.error) if self.error else None,
            "kind": self.error.cause.kind.value if self.error else None,
        }


@dataclass
class PollReport:
    per_device: List[DevicePollResult] = field(default_factory=list)
    aborted: bool = False

    @property
    def failed(self) -> List[DevicePollResult]:
        return [r for r in self.per_device if not r.ok]


class TelemetryPoller:
    """
    Fetches /plant/data for every registered plant, one plant at a time.

    A plant whose fetch fails is marked offline with its period counters
    zeroed; year/total energy keep their last good values. Other plants in
    the same cycle are unaffected.
    """

    def __init__(
        self,
        client,
        registry: DeviceRegistry,
        retry: RetryController,
        log,
        *,
        online_threshold_w: float = DEFAULT_ONLINE_THRESHOLD_W,
        inter_device_delay_seconds: float = 2.0,
        wait: Optional[Waiter] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.registry = registry
        self.retry = retry
        self.log = log
        self.online_threshold_w = online_threshold_w
        self.inter_device_delay_seconds = inter_device_delay_seconds
        self.stop_event = retry.stop_event
        self._wait = wait or self.stop_event.wait
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    def state_for_power(self, current_power_w: float) -> OnlineState:
        if current_power_w > self.online_threshold_w:
            return OnlineState.ONLINE
        return OnlineState.OFFLINE

    def _apply(self, device: Device, data: PlantData) -> Telemetry:
        telemetry = Telemetry(
            current_power_w=data.current_power_w,
            today_energy_kwh=data.today_energy_kwh,
            month_energy_kwh=data.month_energy_kwh,
            year_energy_kwh=data.year_energy_kwh,
            total_energy_kwh=data.total_energy_kwh,
            last_successful_fetch=self._clock(),
        )
        state = self.state_for_power(telemetry.current_power_w)
        self.registry.upsert(
            device.key,
            {"telemetry": telemetry, "consecutive_failures": 0, "online_state": state},
        )
        self.log.info(
            "%s: %.1fW, today %.2fkWh, total %.1fkWh, %s",
            device.display_name,
            telemetry.current_power_w,
            telemetry.today_energy_kwh,
            telemetry.total_energy_kwh,
            state.value,
        )
        return telemetry

    def _degrade(self, device: Device, exc: UpstreamError) -> None:
        failures = device.consecutive_failures + max(1, exc.attempts)
        self.registry.upsert(
            device.key,
            {
                "telemetry": device.telemetry.degraded(),
                "consecutive_failures": failures,
                "online_state": OnlineState.OFFLINE,
            },
        )
        self.log.warning(
            "%s: telemetry unavailable (%s); marked offline, %d consecutive failure(s)",
            device.display_name,
            exc,
            failures,
        )

    # ------------------------------------------------------------------
    def poll_one(self, device: Device) -> DevicePollResult:
        try:
            data = self.retry.execute(
                lambda: self.client.get_plant_data(device.plant_id),
                label=f"telemetry for '{device.display_name}'",
            )
        except UpstreamError as exc:
            if self.stop_event.is_set():
                raise
            self._degrade(device, exc)
            return DevicePollResult(key=device.key, error=TelemetryFetchError(device.key, exc))
        return DevicePollResult(key=device.key, telemetry=self._apply(device, data))

    def poll_once(self) -> PollReport:
        report = PollReport()
        keys = self.registry.keys()
        for index, key in enumerate(keys):
            if index and self.inter_device_delay_seconds > 0:
                if self._wait(self.inter_device_delay_seconds):
                    report.aborted = True
                    break
            if self.stop_event.is_set():
                report.aborted = True
                break

            device = self.registry.get(key)
            if device is None:
                continue
            try:
                report.per_device.append(self.poll_one(device))
            except UpstreamError:
                # Interrupted by shutdown; leave this plant as it was.
                report.aborted = True
                break

        if report.aborted:
            self.log.info("Poll cycle stopped early after %d of %d plant(s)", len(report.per_device), len(keys))
        else:
            self.log.debug(
                "Poll cycle finished: %d ok, %d failed",
                len(report.per_device) - len(report.failed),
                len(report.failed),
            )
        return report
