import json
import logging

import pytest

from growatt_monitor.config import LoggingConfig
from growatt_monitor.logging import ConsoleLog, RunLogEntry, StructuredLog, get_logger
from growatt_monitor.models.device import OnlineState


def test_structured_log_writes_json(tmp_path):
    log_path = tmp_path / "logs" / "structured.log"
    entry = RunLogEntry(
        timestamp="2024-01-01T00:00:00Z",
        phase="monitoring",
        event="poll",
        devices=[{"key": "k1", "current_power_w": 100.0, "online_state": OnlineState.ONLINE}],
        results=[{"key": "k1", "ok": True}],
    )
    StructuredLog(str(log_path), enabled=True).write(entry)

    payload = json.loads(log_path.read_text(encoding="utf-8").strip())
    assert payload["timestamp"] == entry.timestamp
    assert payload["event"] == "poll"
    assert payload["devices"][0]["online_state"] == "online"
    assert payload["error"] is None


def test_structured_log_disabled_writes_nothing(tmp_path):
    log_path = tmp_path / "structured.log"
    StructuredLog(str(log_path), enabled=False).write(
        RunLogEntry(timestamp="t", phase="discovering", event="discovery")
    )
    assert not log_path.exists()


def test_console_log_quiet_skips_handlers():
    root = logging.getLogger()
    orig_handlers = list(root.handlers)
    orig_level = root.level
    try:
        log = ConsoleLog(level="INFO", quiet=True).setup()
        assert log.name == "growatt"
        assert root.handlers == []
    finally:
        root.handlers.clear()
        root.handlers.extend(orig_handlers)
        root.setLevel(orig_level)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    orig_handlers = list(root.handlers)
    orig_level = root.level
    urllib3 = logging.getLogger("urllib3")
    orig_urllib3 = urllib3.level
    yield
    root.handlers.clear()
    root.handlers.extend(orig_handlers)
    root.setLevel(orig_level)
    urllib3.setLevel(orig_urllib3)


def test_console_log_quiets_urllib3_by_default(restore_logging):
    ConsoleLog(level="INFO", quiet=True).setup()

    assert logging.getLogger("urllib3").level == logging.WARNING


def test_debug_modules_setting_keeps_urllib3_verbose(restore_logging):
    cfg = LoggingConfig(console_quiet=True, debug_modules=["urllib3"])
    ConsoleLog.from_config(cfg).setup()

    assert logging.getLogger("urllib3").level == logging.DEBUG


def test_cli_flags_override_logging_section():
    cfg = LoggingConfig(console_level="WARNING", console_quiet=False)

    console = ConsoleLog.from_config(cfg, debug=True, quiet=True)

    assert console.level == "DEBUG"
    assert console.quiet is True


def test_get_logger_returns_app_child():
    assert get_logger("cache").name == "growatt.cache"


def test_structured_log_from_config(tmp_path):
    path = tmp_path / "runs.jsonl"
    log = StructuredLog.from_config(LoggingConfig(structured_enabled=True, structured_path=str(path)))

    log.write(RunLogEntry(timestamp="t", phase="monitoring", event="poll"))

    assert json.loads(path.read_text())["phase"] == "monitoring"
