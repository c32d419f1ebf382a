from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List

from growatt_monitor.errors import DiscoveryError, UpstreamError
from growatt_monitor.models.device import Device, Telemetry
from growatt_monitor.models.plant import RemotePlant
from growatt_monitor.services.device_registry import DeviceRegistry
from growatt_monitor.services.retry_policy import RetryController

DEVICE_KEY_NAMESPACE = uuid.UUID("6f1c2b0e-6a43-5c8e-9d57-3e0b8f4a2d19")


def device_key(plant_id: int | str) -> str:
    """
    Stable registry key for a Growatt plant.

    uuid5 over "growatt-<plant_id>" in a fixed namespace. The plant id is
    the only input, so renames upstream never change the key.
    """
    pid = str(plant_id).strip()
    if not pid:
        raise ValueError("plant_id is required to derive a device key")
    return str(uuid.uuid5(DEVICE_KEY_NAMESPACE, f"growatt-{pid}"))


@dataclass
class ReconcileResult:
    added: List[Device] = field(default_factory=list)
    updated: List[Device] = field(default_factory=list)
    removed: List[Device] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)


def _mutable_fields(plant: RemotePlant) -> Dict[str, Any]:
    peak_w = plant.peak_power_kw * 1000.0 if plant.peak_power_kw is not None else None
    return {
        "display_name": plant.name,
        "peak_power_watts": peak_w,
        "city": plant.city,
        "inverters": tuple(plant.devices),
    }


class DiscoveryReconciler:
    """Aligns the registry with the plants (and their devices) listed by the Growatt account."""

    def __init__(self, client, registry: DeviceRegistry, retry: RetryController, log):
        self.client = client
        self.registry = registry
        self.retry = retry
        self.log = log

    # ------------------------------------------------------------------
    def _fetch_inventory(self) -> Dict[str, RemotePlant]:
        try:
            plants = self.retry.execute(self.client.list_plants, label="plant list")
        except UpstreamError as exc:
            raise DiscoveryError(f"Could not fetch plant list: {exc}", exc) from exc

        inventory: Dict[str, RemotePlant] = {}
        for plant in plants:
            key = device_key(plant.plant_id)
            if key in inventory:
                self.log.warning(
                    "Duplicate plant_id %s in plant list ('%s'); keeping first entry '%s'",
                    plant.plant_id,
                    plant.name,
                    inventory[key].name,
                )
                continue
            inventory[key] = plant

        for plant in inventory.values():
            try:
                plant.devices = self.retry.execute(
                    lambda pid=plant.plant_id: self.client.list_devices(pid),
                    label=f"device list for plant {plant.plant_id}",
                )
            except UpstreamError as exc:
                raise DiscoveryError(
                    f"Could not fetch devices for plant {plant.plant_id}: {exc}", exc
                ) from exc
        return inventory

    # ------------------------------------------------------------------
    def reconcile(self) -> ReconcileResult:
        # Inventory is complete before anything below touches the registry.
        inventory = self._fetch_inventory()
        result = ReconcileResult()

        known = self.registry.keys()
        if not inventory:
            if known:
                self.log.warning(
                    "Growatt returned an empty plant list; keeping %d known plant(s) until a non-empty inventory arrives",
                    len(known),
                )
            else:
                self.log.warning("No plants found on this Growatt account")
            return result
        for key, plant in inventory.items():
            patch = _mutable_fields(plant)
            existing = self.registry.get(key)
            if existing is None:
                patch["plant_id"] = plant.plant_id
                patch["telemetry"] = Telemetry(total_energy_kwh=plant.total_energy_kwh or 0.0)
                device = self.registry.upsert(key, patch)
                result.added.append(device)
                self.log.info("Discovered plant '%s' (plant_id=%s)", plant.name, plant.plant_id)
                continue

            changes = {k: v for k, v in patch.items() if getattr(existing, k) != v}
            if changes:
                if "display_name" in changes:
                    self.log.info(
                        "Plant %s renamed '%s' -> '%s'",
                        plant.plant_id,
                        existing.display_name,
                        plant.name,
                    )
                result.updated.append(self.registry.upsert(key, changes))

        for key in [k for k in known if k not in inventory]:
            device = self.registry.remove(key)
            if device is not None:
                self.log.info(
                    "Plant '%s' (plant_id=%s) no longer listed; retiring",
                    device.display_name,
                    device.plant_id,
                )
                result.removed.append(device)

        self.log.info(
            "Reconciliation complete: %d added, %d updated, %d removed, %d known",
            len(result.added),
            len(result.updated),
            len(result.removed),
            len(self.registry),
        )
        return result
