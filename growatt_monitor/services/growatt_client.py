from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from growatt_monitor.config import GrowattAPIConfig
from growatt_monitor.errors import FailureKind, UpstreamError
from growatt_monitor.models.plant import PlantData, RemoteDevice, RemotePlant


def _to_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


class GrowattAPIClient:
    """Growatt OpenAPI (v1) wrapper that reports every failure as a classified UpstreamError."""

    API_BASE_DEFAULT = "https://openapi.growatt.com/v1"
    # error_frequently_access
    RATE_LIMIT_CODES = frozenset({10012})
    # error_permission_denied (bad or revoked token)
    AUTH_CODES = frozenset({10011})
    MAX_PAGES = 50

    def __init__(self, cfg: GrowattAPIConfig, log, session: Optional[requests.Session] = None):
        self.cfg = cfg
        self.log = log
        self.session = session or requests.Session()
        self.base_url = (cfg.base_url or self.API_BASE_DEFAULT).rstrip("/")

    # ------------------------------------------------------------------
    def _build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        return f"{self.base_url}{path}"

    def _classify_code(self, code: int, message: str) -> FailureKind:
        if code in self.RATE_LIMIT_CODES or "frequently" in message.lower():
            return FailureKind.RATE_LIMITED
        if code in self.AUTH_CODES:
            return FailureKind.FATAL
        return FailureKind.TRANSIENT

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self._build_url(path)
        headers = {"token": self.cfg.token}

        try:
            resp = self.session.get(url, params=params, headers=headers, timeout=self.cfg.timeout)
        except requests.Timeout as exc:
            raise UpstreamError(f"Growatt API {path} timed out: {exc}") from exc
        except requests.RequestException as exc:
            raise UpstreamError(f"Growatt API request failed for {path}: {exc}") from exc

        status = resp.status_code
        if status == 429:
            raise UpstreamError(f"Growatt API {path} throttled", kind=FailureKind.RATE_LIMITED, status=status)
        if status >= 500:
            raise UpstreamError(f"Growatt API {path} server error", status=status)
        if status != 200:
            raise UpstreamError(f"Growatt API {path} rejected request", kind=FailureKind.FATAL, status=status)

        try:
            payload = resp.json()
        except ValueError as exc:
            raise UpstreamError(f"Growatt API {path} returned non-JSON payload") from exc

        if not isinstance(payload, dict):
            raise UpstreamError(f"Growatt API {path} returned unexpected payload type {type(payload).__name__}")

        code = _to_int(payload.get("error_code"))
        if code is None:
            raise UpstreamError(f"Growatt API {path} response has no error_code")
        if code != 0:
            message = str(payload.get("error_msg") or "")
            raise UpstreamError(
                f"Growatt API {path} reported error: {message or 'unknown'}",
                kind=self._classify_code(code, message),
                code=code,
            )

        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    # ------------------------------------------------------------------
    def _parse_plant(self, entry: Dict[str, Any]) -> Optional[RemotePlant]:
        plant_id = _to_int(entry.get("plant_id"))
        if plant_id is None:
            self.log.debug("Skipping plant entry without usable plant_id: %s", entry)
            return None
        name = str(entry.get("name") or "").strip() or f"Plant {plant_id}"
        city = str(entry.get("city") or "").strip() or None
        return RemotePlant(
            plant_id=plant_id,
            name=name,
            city=city,
            peak_power_kw=_to_float(entry.get("peak_power"), None),
            total_energy_kwh=_to_float(entry.get("total_energy"), None),
            raw=entry,
        )

    def list_plants(self) -> List[RemotePlant]:
        """Return every plant on the account, following page links until `count` is reached.

        A listing that ends before `count` entries were seen raises a transient
        UpstreamError; a short inventory must never look like a complete one.
        """
        plants: List[RemotePlant] = []
        seen_entries = 0
        total: Optional[int] = None
        page = 1
        max_pages = self.MAX_PAGES
        while page <= max_pages:
            data = self._get("/plant/list", params={"page": page, "perpage": self.cfg.page_size})
            page_total = _to_int(data.get("count"))
            if page_total is not None:
                total = page_total
            entries = data.get("plants") or []
            if not isinstance(entries, list) or not entries:
                break

            seen_entries += len(entries)
            for entry in entries:
                if not isinstance(entry, dict):
                    continue
                plant = self._parse_plant(entry)
                if plant is not None:
                    plants.append(plant)

            if total is None or seen_entries >= total:
                return plants
            # Large accounts may need more pages than the default cap.
            max_pages = max(self.MAX_PAGES, -(-total // max(self.cfg.page_size, 1)))
            page += 1

        if total is not None and seen_entries < total:
            raise UpstreamError(
                f"Growatt API returned an incomplete plant list ({seen_entries} of {total} after page {page})"
            )
        return plants

    def list_devices(self, plant_id: int) -> List[RemoteDevice]:
        data = self._get("/device/list", params={"plant_id": plant_id})
        devices: List[RemoteDevice] = []
        for entry in data.get("devices") or []:
            if not isinstance(entry, dict):
                continue
            serial = str(entry.get("device_sn") or "").strip().upper()
            if not serial:
                continue
            devices.append(
                RemoteDevice(
                    serial=serial,
                    device_type=_to_int(entry.get("type")),
                    manufacturer=entry.get("manufacturer") or None,
                    model=entry.get("model") or None,
                    lost=_to_bool(entry.get("lost")),
                )
            )
        return devices

    def get_plant_data(self, plant_id: int) -> PlantData:
        data = self._get("/plant/data", params={"plant_id": plant_id})
        return PlantData(
            current_power_w=_to_float(data.get("current_power")),
            today_energy_kwh=_to_float(data.get("today_energy")),
            month_energy_kwh=_to_float(data.get("monthly_energy")),
            year_energy_kwh=_to_float(data.get("yearly_energy")),
            total_energy_kwh=_to_float(data.get("total_energy")),
            last_update_time=data.get("last_update_time") or None,
        )
