from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

from growatt_monitor.config import LoggingConfig


APP_LOGGER = "growatt"
# HTTP plumbing that floods the console at DEBUG unless asked for explicitly.
NOISY_MODULES = ("urllib3",)


class ConsoleLog:
    """Configure console logging for the monitor."""

    def __init__(self, level: str = "INFO", quiet: bool = False, debug_modules: Iterable[str] | None = None):
        self.level = level.upper()
        self.quiet = quiet
        self.debug_modules = list(debug_modules or [])

    @classmethod
    def from_config(cls, cfg: LoggingConfig, *, debug: bool = False, quiet: bool = False) -> "ConsoleLog":
        """CLI flags win over the [logging] section."""
        return cls(
            level="DEBUG" if debug else cfg.console_level,
            quiet=quiet or cfg.console_quiet,
            debug_modules=cfg.debug_modules,
        )

    def setup(self) -> logging.Logger:
        root = logging.getLogger()
        root.handlers.clear()
        root.setLevel(logging.DEBUG)

        if not self.quiet:
            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(getattr(logging, self.level, logging.INFO))
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
            )
            root.addHandler(handler)

        for name in NOISY_MODULES:
            if name not in self.debug_modules and self.level != "DEBUG":
                logging.getLogger(name).setLevel(logging.WARNING)
        for name in self.debug_modules:
            logging.getLogger(name).setLevel(logging.DEBUG)

        return logging.getLogger(APP_LOGGER)


@dataclass
class RunLogEntry:
    timestamp: str
    phase: str
    event: str
    devices: list[dict[str, Any]] | None = None
    results: list[dict[str, Any]] | None = None
    error: str | None = None


def _to_jsonable(obj: Any) -> Any:
    """Convert registry records and poll results into plain JSON values."""
    if isinstance(obj, Enum):
        return obj.value
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        return _to_jsonable(asdict(obj))
    if isinstance(obj, dict):
        return {str(k): _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_to_jsonable(x) for x in obj]
    return str(obj)


class StructuredLog:
    """Appends one JSON line per scheduler tick to `path` when enabled."""

    def __init__(self, path: str | None, enabled: bool = False):
        self.enabled = enabled and bool(path)
        self.path = Path(path).expanduser() if path else None
        if self.enabled:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_config(cls, cfg: LoggingConfig) -> "StructuredLog":
        return cls(cfg.structured_path, cfg.structured_enabled)

    def write(self, entry: RunLogEntry) -> None:
        if not self.enabled:
            return
        line = json.dumps(_to_jsonable(entry), default=str)
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError as exc:  # pragma: no cover - the run log never stops the monitor
            logging.getLogger(APP_LOGGER).debug("Structured log write skipped: %s", exc)


def get_logger(name: str) -> logging.Logger:
    """Child of the app logger, so test harnesses and services share one tree."""
    return logging.getLogger(f"{APP_LOGGER}.{name}")
