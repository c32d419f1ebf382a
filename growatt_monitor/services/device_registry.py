from __future__ import annotations

import threading
from dataclasses import fields, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from growatt_monitor.models.device import Device, Telemetry

_DEVICE_FIELDS = frozenset(f.name for f in fields(Device))


class DeviceRegistry:
    """
    In-memory map of device key -> Device, kept in insertion order.

    Only the scheduler's worker writes; readers on other threads should use
    snapshot(), which hands out copies taken under the lock.
    """

    def __init__(self):
        self._devices: Dict[str, Device] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    def upsert(self, key: str, patch: Mapping[str, Any]) -> Device:
        unknown = set(patch) - _DEVICE_FIELDS
        if unknown:
            raise ValueError(f"Unknown device fields: {sorted(unknown)}")
        if "key" in patch and patch["key"] != key:
            raise ValueError(f"Patch key {patch['key']!r} does not match {key!r}")

        with self._lock:
            device = self._devices.get(key)
            if device is None:
                if "plant_id" not in patch or "display_name" not in patch:
                    raise ValueError(f"New device {key!r} needs plant_id and display_name")
                values = {k: v for k, v in patch.items() if k != "key"}
                device = Device(key=key, **values)
                self._devices[key] = device
                return device

            for name, value in patch.items():
                if name == "key":
                    continue
                if name == "telemetry" and not isinstance(value, Telemetry):
                    raise ValueError("telemetry must be a Telemetry instance")
                setattr(device, name, value)
            return device

    def get(self, key: str) -> Optional[Device]:
        with self._lock:
            return self._devices.get(key)

    def remove(self, key: str) -> Optional[Device]:
        with self._lock:
            return self._devices.pop(key, None)

    def list(self) -> List[Device]:
        with self._lock:
            return list(self._devices.values())

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._devices)

    def snapshot(self) -> List[Device]:
        """Copies of every device, safe to read while the worker keeps writing."""
        with self._lock:
            return [replace(device) for device in self._devices.values()]

    def restore(self, devices: Iterable[Device]) -> int:
        """Seed the registry from a cache; keys already present are left alone."""
        added = 0
        with self._lock:
            for device in devices:
                if device.key in self._devices:
                    continue
                self._devices[device.key] = device
                added += 1
        return added

    # ------------------------------------------------------------------
    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._devices

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def __iter__(self) -> Iterator[Device]:
        return iter(self.list())
