import sqlite3
from datetime import datetime, timezone

from growatt_monitor.models.device import Device, OnlineState, Telemetry
from growatt_monitor.models.plant import RemoteDevice
from growatt_monitor.services.device_cache import DeviceCache


def _device(key="k1", name="Roof"):
    return Device(
        key=key,
        plant_id=7,
        display_name=name,
        peak_power_watts=5000.0,
        city="Porto",
        inverters=(RemoteDevice(serial="SN1", device_type=1, manufacturer="Growatt", model="MIN"),),
        telemetry=Telemetry(
            current_power_w=12.0,
            year_energy_kwh=300.0,
            total_energy_kwh=4000.0,
            last_successful_fetch=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
        ),
        online_state=OnlineState.ONLINE,
        consecutive_failures=2,
    )


def test_cache_round_trips_devices(tmp_path):
    db_path = tmp_path / "cache.db"
    cache = DeviceCache(db_path)
    cache.save_device(_device())
    cache.close()

    loaded = DeviceCache(db_path).load_devices()

    assert loaded == [_device()]


def test_cache_tracks_listener_events(tmp_path):
    db_path = tmp_path / "cache.db"
    cache = DeviceCache(db_path)
    cache.devices_added([_device("k1"), _device("k2", "Barn")])
    cache.devices_updated([_device("k1", "Roof renamed")])
    cache.devices_removed([_device("k2")])

    conn = sqlite3.connect(db_path)
    rows = conn.execute("SELECT key, display_name FROM devices").fetchall()
    assert rows == [("k1", "Roof renamed")]


def test_unreadable_rows_are_skipped(tmp_path):
    db_path = tmp_path / "cache.db"
    cache = DeviceCache(db_path)
    cache.save_device(_device())
    cache._conn.execute(
        "INSERT INTO devices(key, plant_id, display_name, payload, updated_at) VALUES (?, ?, ?, ?, ?)",
        ("bad", 1, "bad", "{not json", "2024-01-01"),
    )
    cache._conn.commit()

    assert [d.key for d in cache.load_devices()] == ["k1"]


def test_memory_mode():
    cache = DeviceCache(persist=False)
    cache.telemetry_updated([_device()])
    assert cache.load_devices() == [_device()]
    cache.remove_device("k1")
    assert cache.load_devices() == []
