# growatt_monitor/models/device.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from growatt_monitor.models.plant import RemoteDevice


class OnlineState(str, Enum):
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class Telemetry:
    current_power_w: float = 0.0
    today_energy_kwh: float = 0.0
    month_energy_kwh: float = 0.0
    year_energy_kwh: float = 0.0
    total_energy_kwh: float = 0.0
    last_successful_fetch: Optional[datetime] = None

    def degraded(self) -> "Telemetry":
        """Offline view: period counters drop to zero, lifetime totals stay."""
        return replace(
            self,
            current_power_w=0.0,
            today_energy_kwh=0.0,
            month_energy_kwh=0.0,
        )


@dataclass
class Device:
    key: str
    plant_id: int
    display_name: str
    peak_power_watts: Optional[float] = None
    city: Optional[str] = None
    inverters: Tuple[RemoteDevice, ...] = ()
    telemetry: Telemetry = field(default_factory=Telemetry)
    online_state: OnlineState = OnlineState.UNKNOWN
    consecutive_failures: int = 0

    def as_record(self) -> Dict[str, Any]:
        """Flat record handed to host listeners."""
        t = self.telemetry
        return {
            "key": self.key,
            "display_name": self.display_name,
            "current_power_w": t.current_power_w,
            "today_energy_kwh": t.today_energy_kwh,
            "month_energy_kwh": t.month_energy_kwh,
            "year_energy_kwh": t.year_energy_kwh,
            "total_energy_kwh": t.total_energy_kwh,
            "online_state": self.online_state.value,
        }

    def as_dict(self) -> Dict[str, Any]:
        t = self.telemetry
        return {
            "key": self.key,
            "plant_id": self.plant_id,
            "display_name": self.display_name,
            "peak_power_watts": self.peak_power_watts,
            "city": self.city,
            "inverters": [
                {
                    "serial": inv.serial,
                    "device_type": inv.device_type,
                    "manufacturer": inv.manufacturer,
                    "model": inv.model,
                    "lost": inv.lost,
                }
                for inv in self.inverters
            ],
            "telemetry": {
                "current_power_w": t.current_power_w,
                "today_energy_kwh": t.today_energy_kwh,
                "month_energy_kwh": t.month_energy_kwh,
                "year_energy_kwh": t.year_energy_kwh,
                "total_energy_kwh": t.total_energy_kwh,
                "last_successful_fetch": (
                    t.last_successful_fetch.isoformat() if t.last_successful_fetch else None
                ),
            },
            "online_state": self.online_state.value,
            "consecutive_failures": self.consecutive_failures,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Device":
        tel = dict(data.get("telemetry") or {})
        fetched = tel.get("last_successful_fetch")
        tel["last_successful_fetch"] = datetime.fromisoformat(fetched) if fetched else None
        try:
            state = OnlineState(data.get("online_state") or OnlineState.UNKNOWN.value)
        except ValueError:
            state = OnlineState.UNKNOWN
        return cls(
            key=data["key"],
            plant_id=int(data["plant_id"]),
            display_name=data.get("display_name") or f"Plant {data['plant_id']}",
            peak_power_watts=data.get("peak_power_watts"),
            city=data.get("city"),
            inverters=tuple(RemoteDevice(**inv) for inv in data.get("inverters") or []),
            telemetry=Telemetry(**tel),
            online_state=state,
            consecutive_failures=int(data.get("consecutive_failures") or 0),
        )
