# growatt_monitor/models/plant.py
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class RemoteDevice:
    serial: str
    device_type: Optional[int]
    manufacturer: Optional[str]
    model: Optional[str]
    lost: bool = False


@dataclass
class RemotePlant:
    plant_id: int
    name: str
    city: Optional[str]
    peak_power_kw: Optional[float]
    total_energy_kwh: Optional[float]
    devices: list[RemoteDevice] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PlantData:
    current_power_w: float
    today_energy_kwh: float
    month_energy_kwh: float
    year_energy_kwh: float
    total_energy_kwh: float
    last_update_time: Optional[str] = None
