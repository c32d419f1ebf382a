import threading

import pytest

from growatt_monitor.models.device import Device, OnlineState, Telemetry
from growatt_monitor.services.device_registry import DeviceRegistry


def _new(registry, key, plant_id, name):
    return registry.upsert(key, {"plant_id": plant_id, "display_name": name})


def test_upsert_creates_then_merges_in_place():
    registry = DeviceRegistry()
    created = _new(registry, "k1", 1, "Roof")
    created_again = registry.upsert("k1", {"city": "Porto"})

    assert created_again is created
    assert created.display_name == "Roof"
    assert created.city == "Porto"
    assert len(registry) == 1


def test_telemetry_is_replaced_wholesale():
    registry = DeviceRegistry()
    _new(registry, "k1", 1, "Roof")
    registry.upsert("k1", {"telemetry": Telemetry(current_power_w=100.0, total_energy_kwh=50.0)})
    registry.upsert("k1", {"telemetry": Telemetry(current_power_w=5.0)})

    assert registry.get("k1").telemetry == Telemetry(current_power_w=5.0)


def test_upsert_rejects_unknown_fields_and_incomplete_new_devices():
    registry = DeviceRegistry()
    with pytest.raises(ValueError):
        registry.upsert("k1", {"display_name": "Roof"})
    _new(registry, "k1", 1, "Roof")
    with pytest.raises(ValueError):
        registry.upsert("k1", {"colour": "blue"})
    with pytest.raises(ValueError):
        registry.upsert("k1", {"key": "other"})
    with pytest.raises(ValueError):
        registry.upsert("k1", {"telemetry": {"current_power_w": 1}})


def test_list_keeps_insertion_order_and_remove():
    registry = DeviceRegistry()
    for i, key in enumerate(["c", "a", "b"]):
        _new(registry, key, i, key.upper())
    registry.upsert("a", {"display_name": "A2"})

    assert [d.key for d in registry.list()] == ["c", "a", "b"]
    removed = registry.remove("a")
    assert removed.display_name == "A2"
    assert registry.remove("a") is None
    assert registry.get("a") is None
    assert "a" not in registry
    assert registry.keys() == ["c", "b"]


def test_snapshot_returns_copies():
    registry = DeviceRegistry()
    _new(registry, "k1", 1, "Roof")
    snap = registry.snapshot()
    snap[0].display_name = "changed"
    snap[0].online_state = OnlineState.ONLINE

    assert registry.get("k1").display_name == "Roof"
    assert registry.get("k1").online_state is OnlineState.UNKNOWN


def test_restore_does_not_override_known_devices():
    registry = DeviceRegistry()
    _new(registry, "k1", 1, "Live")
    added = registry.restore([
        Device(key="k1", plant_id=1, display_name="Cached"),
        Device(key="k2", plant_id=2, display_name="Cached 2"),
    ])

    assert added == 1
    assert registry.get("k1").display_name == "Live"
    assert registry.get("k2").display_name == "Cached 2"


def test_concurrent_readers_see_consistent_snapshots():
    registry = DeviceRegistry()
    for i in range(20):
        _new(registry, f"k{i}", i, f"P{i}")
    errors = []

    def reader():
        for _ in range(200):
            snap = registry.snapshot()
            if len({d.key for d in snap}) != len(snap):
                errors.append("duplicate key in snapshot")

    def writer():
        for n in range(200):
            registry.upsert(f"k{n % 20}", {"telemetry": Telemetry(current_power_w=float(n))})

    threads = [threading.Thread(target=reader) for _ in range(3)] + [threading.Thread(target=writer)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(registry) == 20
