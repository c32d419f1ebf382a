# growatt_monitor/services/host_listener.py

from __future__ import annotations

from typing import Iterable, List, Sequence

from growatt_monitor.models.device import Device
from growatt_monitor.services.output_formatter import emit_human, emit_json


class HostListener:
    """
    Receives registry changes for whatever renders the plants.

    Devices passed in are copies; Device.as_record() gives the flat view a
    host normally exposes. Override only the hooks you need.
    """

    def devices_added(self, devices: Sequence[Device]) -> None:
        pass

    def devices_updated(self, devices: Sequence[Device]) -> None:
        pass

    def devices_removed(self, devices: Sequence[Device]) -> None:
        pass

    def telemetry_updated(self, devices: Sequence[Device]) -> None:
        pass


class ListenerGroup(HostListener):
    """Fans events out; one listener raising does not starve the others."""

    def __init__(self, listeners: Iterable[HostListener], log):
        self.listeners: List[HostListener] = list(listeners)
        self.log = log

    def _dispatch(self, hook: str, devices: Sequence[Device]) -> None:
        if not devices:
            return
        for listener in self.listeners:
            try:
                getattr(listener, hook)(devices)
            except Exception:
                self.log.exception("Host listener %s failed in %s", type(listener).__name__, hook)

    def devices_added(self, devices: Sequence[Device]) -> None:
        self._dispatch("devices_added", devices)

    def devices_updated(self, devices: Sequence[Device]) -> None:
        self._dispatch("devices_updated", devices)

    def devices_removed(self, devices: Sequence[Device]) -> None:
        self._dispatch("devices_removed", devices)

    def telemetry_updated(self, devices: Sequence[Device]) -> None:
        self._dispatch("telemetry_updated", devices)


class ConsoleListener(HostListener):
    """Prints every event to stdout (human-readable or JSON)."""

    def __init__(self, as_json: bool = False):
        self.as_json = as_json

    def _emit(self, devices: Sequence[Device], event: str) -> None:
        if self.as_json:
            emit_json(devices, event=event)
        else:
            emit_human(devices, event=event)

    def devices_added(self, devices: Sequence[Device]) -> None:
        self._emit(devices, "added")

    def devices_removed(self, devices: Sequence[Device]) -> None:
        self._emit(devices, "removed")

    def telemetry_updated(self, devices: Sequence[Device]) -> None:
        self._emit(devices, "telemetry")
