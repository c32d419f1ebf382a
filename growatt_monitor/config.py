# growatt_monitor/config.py
from dataclasses import dataclass, field
from pathlib import Path
import configparser

from growatt_monitor.errors import ConfigError


@dataclass
class GrowattAPIConfig:
    token: str
    base_url: str = "https://openapi.growatt.com/v1"
    timeout: float = 15.0
    page_size: int = 100


@dataclass
class PollingConfig:
    interval_minutes: float = 5.0
    inter_device_delay_seconds: float = 2.0
    online_threshold_w: float = 0.1
    discovery_retry_minutes: float = 5.0
    rediscovery_interval_minutes: float = 0.0
    startup_delay_seconds: float = 2.0


@dataclass
class RetryConfig:
    attempts: int = 3
    cooldown_minutes: float = 1.0
    backoff_factor: float = 2.0
    max_cooldown_minutes: float = 10.0


@dataclass
class CacheConfig:
    enabled: bool = False
    path: str | None = None


@dataclass
class LoggingConfig:
    console_level: str = "INFO"
    console_quiet: bool = False
    debug_modules: list[str] = field(default_factory=list)
    structured_enabled: bool = False
    structured_path: str | None = None


@dataclass
class AppConfig:
    growatt: GrowattAPIConfig
    polling: PollingConfig
    retry: RetryConfig
    cache: CacheConfig
    logging: LoggingConfig


class Config:
    def __init__(self, path: str):
        self.path = Path(path)
        self.parser = configparser.ConfigParser(inline_comment_prefixes=("#", ";"))
        read = self.parser.read(self.path)
        if not read:
            raise FileNotFoundError(f"Config file not found: {self.path}")

    @classmethod
    def load(cls, path: str) -> AppConfig:
        return cls(path).build()

    def build(self) -> AppConfig:
        p = self.parser

        def _as_bool(value: str) -> bool:
            return value.strip().lower() in {"true", "yes", "1", "on"}

        def _num(section, key: str, cast):
            raw = section[key].strip()
            try:
                return cast(raw)
            except ValueError as exc:
                raise ConfigError(f"[{section.name}] {key} must be a number, got '{raw}'") from exc

        # --- Growatt API ---
        if "growatt" not in p:
            raise ConfigError("[growatt] section missing from config")
        api_sec = p["growatt"]
        token = (api_sec.get("token") or "").strip()
        if not token:
            raise ConfigError("[growatt] token is required")

        api_kwargs = {"token": token}
        if "base_url" in api_sec:
            api_kwargs["base_url"] = api_sec["base_url"].strip()
        if "timeout" in api_sec:
            api_kwargs["timeout"] = _num(api_sec, "timeout", float)
        if "page_size" in api_sec:
            api_kwargs["page_size"] = _num(api_sec, "page_size", int)
        growatt_cfg = GrowattAPIConfig(**api_kwargs)
        if growatt_cfg.timeout <= 0:
            raise ConfigError("[growatt] timeout must be positive")

        # --- Polling ---
        polling_kwargs = {}
        if "polling" in p:
            polling_sec = p["polling"]
            for key in (
                "interval_minutes",
                "inter_device_delay_seconds",
                "online_threshold_w",
                "discovery_retry_minutes",
                "rediscovery_interval_minutes",
                "startup_delay_seconds",
            ):
                if key in polling_sec:
                    polling_kwargs[key] = _num(polling_sec, key, float)
        polling_cfg = PollingConfig(**polling_kwargs)
        if polling_cfg.interval_minutes <= 0:
            raise ConfigError("[polling] interval_minutes must be positive")

        # --- Retry ---
        retry_kwargs = {}
        if "retry" in p:
            retry_sec = p["retry"]
            if "attempts" in retry_sec:
                retry_kwargs["attempts"] = _num(retry_sec, "attempts", int)
            if "cooldown_minutes" in retry_sec:
                retry_kwargs["cooldown_minutes"] = _num(retry_sec, "cooldown_minutes", float)
            if "backoff_factor" in retry_sec:
                retry_kwargs["backoff_factor"] = _num(retry_sec, "backoff_factor", float)
            if "max_cooldown_minutes" in retry_sec:
                retry_kwargs["max_cooldown_minutes"] = _num(retry_sec, "max_cooldown_minutes", float)
        retry_cfg = RetryConfig(**retry_kwargs)
        if retry_cfg.attempts < 1:
            raise ConfigError("[retry] attempts must be at least 1")

        # --- Cache ---
        cache_kwargs = {}
        if "cache" in p:
            cache_sec = p["cache"]
            if "enabled" in cache_sec:
                cache_kwargs["enabled"] = _as_bool(cache_sec["enabled"])
            if "path" in cache_sec:
                cache_kwargs["path"] = cache_sec["path"].strip() or None
        cache_cfg = CacheConfig(**cache_kwargs)

        # --- Logging ---
        logging_kwargs = {}
        if "logging" in p:
            logging_sec = p["logging"]
            if "console_level" in logging_sec:
                logging_kwargs["console_level"] = logging_sec["console_level"]
            if "console_quiet" in logging_sec:
                logging_kwargs["console_quiet"] = _as_bool(logging_sec["console_quiet"])
            if "debug_modules" in logging_sec:
                raw = logging_sec["debug_modules"]
                logging_kwargs["debug_modules"] = [x.strip() for x in raw.split(",") if x.strip()]
            if "structured_enabled" in logging_sec:
                logging_kwargs["structured_enabled"] = _as_bool(logging_sec["structured_enabled"])
            if "structured_path" in logging_sec:
                logging_kwargs["structured_path"] = logging_sec["structured_path"]
        logging_cfg = LoggingConfig(**logging_kwargs)

        return AppConfig(
            growatt=growatt_cfg,
            polling=polling_cfg,
            retry=retry_cfg,
            cache=cache_cfg,
            logging=logging_cfg,
        )
