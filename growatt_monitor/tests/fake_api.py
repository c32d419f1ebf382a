# growatt_monitor/tests/fake_api.py

from growatt_monitor.config import PollingConfig, RetryConfig
from growatt_monitor.errors import FailureKind, UpstreamError
from growatt_monitor.models.plant import PlantData, RemoteDevice, RemotePlant


def no_wait(_seconds):
    return False


def fast_retry_cfg(attempts=3):
    return RetryConfig(attempts=attempts, cooldown_minutes=0, backoff_factor=1, max_cooldown_minutes=0)


def fast_polling_cfg(**overrides):
    cfg = PollingConfig(
        interval_minutes=5,
        inter_device_delay_seconds=0,
        online_threshold_w=0.1,
        discovery_retry_minutes=5,
        rediscovery_interval_minutes=0,
        startup_delay_seconds=0,
    )
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


def api_error(code=-1, msg="system error", kind=FailureKind.TRANSIENT):
    return UpstreamError(f"Growatt API reported error: {msg}", kind=kind, code=code)


class FakeGrowattAPI:
    """
    Stand-in for GrowattAPIClient.

    `plants` is a list of dicts ({"id", "name", ...}); `data` maps plant id to
    a telemetry dict. Queue exceptions in `plant_list_errors`,
    `device_list_errors[plant_id]` or `data_errors[plant_id]` to make the
    next calls fail.
    """

    def __init__(self, plants=None, data=None):
        self.plants = list(plants or [])
        self.data = dict(data or {})
        self.devices = {}
        self.plant_list_errors = []
        self.device_list_errors = {}
        self.data_errors = {}
        self.calls = []

    def list_plants(self):
        self.calls.append(("list_plants", None))
        if self.plant_list_errors:
            raise self.plant_list_errors.pop(0)
        return [
            RemotePlant(
                plant_id=p["id"],
                name=p.get("name") or f"Plant {p['id']}",
                city=p.get("city"),
                peak_power_kw=p.get("peak_power"),
                total_energy_kwh=p.get("total_energy"),
            )
            for p in self.plants
        ]

    def list_devices(self, plant_id):
        self.calls.append(("list_devices", plant_id))
        errors = self.device_list_errors.get(plant_id)
        if errors:
            raise errors.pop(0)
        return [
            RemoteDevice(serial=sn, device_type=1, manufacturer="Growatt", model=None)
            for sn in self.devices.get(plant_id, [])
        ]

    def get_plant_data(self, plant_id):
        self.calls.append(("get_plant_data", plant_id))
        errors = self.data_errors.get(plant_id)
        if errors:
            raise errors.pop(0)
        values = self.data.get(plant_id, {})
        return PlantData(
            current_power_w=values.get("current_power", 0.0),
            today_energy_kwh=values.get("today_energy", 0.0),
            month_energy_kwh=values.get("monthly_energy", 0.0),
            year_energy_kwh=values.get("yearly_energy", 0.0),
            total_energy_kwh=values.get("total_energy", 0.0),
        )


class FakeResponse:
    def __init__(self, status_code=200, payload=None, bad_json=False):
        self.status_code = status_code
        self._payload = payload
        self._bad_json = bad_json

    def json(self):
        if self._bad_json:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    """Maps (url, page) to queued (status, payload) responses or exceptions."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        entry = self.responses.get(url, (404, {}))
        if isinstance(entry, list):
            entry = entry.pop(0)
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, FakeResponse):
            return entry
        status_code, payload = entry
        return FakeResponse(status_code=status_code, payload=payload)


