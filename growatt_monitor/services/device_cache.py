# growatt_monitor/services/device_cache.py

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from growatt_monitor.logging import get_logger
from growatt_monitor.models.device import Device
from growatt_monitor.services.host_listener import HostListener


class DeviceCache(HostListener):
    """
    SQLite-backed cache of known plants.

    The scheduler never reads it; main.py seeds the registry from it at
    start-up and it keeps itself current by listening to registry events.
    """

    def __init__(self, path: Optional[Union[Path, str]] = None, *, persist: bool = True):
        default_path = Path.home() / ".growatt_monitor_cache.db"
        self._persist = persist
        self._log = get_logger("cache")
        if self._persist:
            resolved = Path(path).expanduser() if path else default_path
            resolved.parent.mkdir(parents=True, exist_ok=True)
            self.path: Optional[Path] = resolved
            # The scheduler thread writes while main.py may close from the main thread.
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._init_schema()
        else:
            self.path = None
            self._conn = None
            self._memory: Dict[str, str] = {}

    # ------------------------------------------------------------------
    def _init_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS devices (
                key TEXT PRIMARY KEY,
                plant_id INTEGER NOT NULL,
                display_name TEXT NOT NULL,
                payload TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    def load_devices(self) -> List[Device]:
        if not self._persist:
            rows = list(self._memory.values())
        else:
            cur = self._conn.execute("SELECT payload FROM devices ORDER BY rowid")
            rows = [row["payload"] for row in cur.fetchall()]

        devices: List[Device] = []
        for payload in rows:
            try:
                devices.append(Device.from_dict(json.loads(payload)))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                self._log.warning("Ignoring unreadable cached device: %s", exc)
        return devices

    def save_devices(self, devices: Iterable[Device]) -> None:
        updated_at = datetime.now(timezone.utc).isoformat()
        rows = [
            (d.key, d.plant_id, d.display_name, json.dumps(d.as_dict()), updated_at)
            for d in devices
        ]
        if not self._persist:
            for key, _pid, _name, payload, _ts in rows:
                self._memory[key] = payload
            return
        with self._conn:
            self._conn.executemany(
                """
                INSERT INTO devices(key, plant_id, display_name, payload, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    plant_id=excluded.plant_id,
                    display_name=excluded.display_name,
                    payload=excluded.payload,
                    updated_at=excluded.updated_at
                """,
                rows,
            )

    def save_device(self, device: Device) -> None:
        self.save_devices([device])

    def remove_device(self, key: str) -> None:
        if not self._persist:
            self._memory.pop(key, None)
            return
        with self._conn:
            self._conn.execute("DELETE FROM devices WHERE key = ?", (key,))

    def flush(self) -> None:
        if self._persist and self._conn:
            self._conn.commit()

    def close(self) -> None:
        if self._persist and self._conn:
            self._conn.commit()
            self._conn.close()
            self._conn = None

    # HostListener ------------------------------------------------------
    def devices_added(self, devices: Sequence[Device]) -> None:
        self.save_devices(devices)

    def devices_updated(self, devices: Sequence[Device]) -> None:
        self.save_devices(devices)

    def telemetry_updated(self, devices: Sequence[Device]) -> None:
        self.save_devices(devices)

    def devices_removed(self, devices: Sequence[Device]) -> None:
        for device in devices:
            self.remove_device(device.key)
