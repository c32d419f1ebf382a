# growatt_monitor/services/output_formatter.py

from __future__ import annotations

import json
from typing import Iterable, Optional

from growatt_monitor.models.device import Device, OnlineState


def emit_json(devices: Iterable[Device], *, event: Optional[str] = None) -> None:
    payload = []
    for device in devices:
        record = device.as_record()
        record["plant_id"] = device.plant_id
        record["consecutive_failures"] = device.consecutive_failures
        record["inverters"] = [inv.serial for inv in device.inverters]
        payload.append(record)
    result = {"plants": payload}
    if event:
        result["event"] = event
    print(json.dumps(result, indent=2))


def format_device(device: Device) -> str:
    t = device.telemetry
    if device.online_state is OnlineState.UNKNOWN and t.last_successful_fetch is None:
        return f"[{device.display_name}] plant_id={device.plant_id} no telemetry yet"

    failures_txt = (
        f" failures={device.consecutive_failures}" if device.consecutive_failures else ""
    )
    return (
        f"[{device.display_name}] PAC={t.current_power_w:.0f}W  "
        f"today={t.today_energy_kwh:.2f}kWh  month={t.month_energy_kwh:.1f}kWh  "
        f"year={t.year_energy_kwh:.1f}kWh  total={t.total_energy_kwh:.1f}kWh  "
        f"state={device.online_state.value}{failures_txt}"
    )


def emit_human(devices: Iterable[Device], *, event: Optional[str] = None) -> None:
    devices = list(devices)
    if event:
        print(f"=== {event} ({len(devices)} plant(s)) ===")
    if not devices:
        print("No plants registered")
        return
    for device in devices:
        print(format_device(device))
