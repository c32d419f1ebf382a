# growatt_monitor/main.py

import logging
import signal
import sys
import threading

from .cli import build_parser
from .config import AppConfig, Config
from .errors import ConfigError, DiscoveryError
from .logging import APP_LOGGER, ConsoleLog, StructuredLog

from .services.device_cache import DeviceCache
from .services.device_registry import DeviceRegistry
from .services.growatt_client import GrowattAPIClient
from .services.host_listener import ConsoleListener, HostListener, ListenerGroup
from .services.output_formatter import emit_human, emit_json
from .services.reconciler import DiscoveryReconciler
from .services.retry_policy import RetryController
from .services.scheduler import Scheduler
from .services.telemetry_poller import TelemetryPoller


def build_scheduler(
    app_cfg: AppConfig,
    log,
    *,
    client=None,
    registry: DeviceRegistry | None = None,
    listeners: list[HostListener] | None = None,
    stop_event: threading.Event | None = None,
) -> Scheduler:
    """Wire the services together; everything is passed in, nothing is global."""
    stop_event = stop_event or threading.Event()
    registry = registry or DeviceRegistry()
    client = client or GrowattAPIClient(app_cfg.growatt, log)
    retry = RetryController(app_cfg.retry, log, stop_event=stop_event)
    reconciler = DiscoveryReconciler(client, registry, retry, log)
    poller = TelemetryPoller(
        client,
        registry,
        retry,
        log,
        online_threshold_w=app_cfg.polling.online_threshold_w,
        inter_device_delay_seconds=app_cfg.polling.inter_device_delay_seconds,
    )
    structured_log = StructuredLog.from_config(app_cfg.logging)
    return Scheduler(
        reconciler,
        poller,
        registry,
        app_cfg.polling,
        log,
        listener=ListenerGroup(listeners or [], log),
        structured_log=structured_log,
        stop_event=stop_event,
    )


def _install_signal_handlers(scheduler: Scheduler, log) -> None:
    def _handle_signal(signum, _frame):
        log.info("Received %s, shutting down", signal.Signals(signum).name)
        scheduler.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _handle_signal)


def run_once(scheduler: Scheduler, command: str, as_json: bool, log) -> int:
    try:
        scheduler.discover()
    except DiscoveryError as exc:
        log.error("Discovery failed: %s", exc)
        return 1
    if command == "poll":
        scheduler.poll()

    devices = scheduler.registry.snapshot()
    if as_json:
        emit_json(devices, event=command)
    else:
        emit_human(devices, event=command)
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_cfg = Config.load(args.config)
    except (ConfigError, FileNotFoundError) as exc:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger(APP_LOGGER).error("Cannot start: %s", exc)
        return 2

    log = ConsoleLog.from_config(app_cfg.logging, debug=args.debug, quiet=args.quiet).setup()

    registry = DeviceRegistry()
    listeners: list[HostListener] = []
    cache = None
    if app_cfg.cache.enabled:
        cache = DeviceCache(app_cfg.cache.path)
        restored = registry.restore(cache.load_devices())
        if restored:
            log.info("Restored %d plant(s) from cache", restored)
        listeners.append(cache)

    if args.command == "run" and not args.quiet:
        listeners.append(ConsoleListener(as_json=args.json))

    scheduler = build_scheduler(app_cfg, log, registry=registry, listeners=listeners)

    try:
        if args.command == "run":
            _install_signal_handlers(scheduler, log)
            scheduler.run()
            status = 0
        elif args.command in {"discover", "poll"}:
            status = run_once(scheduler, args.command, args.json, log)
        else:
            raise ValueError(f"Unsupported command: {args.command}")
    finally:
        if cache is not None:
            cache.close()
    return status


if __name__ == "__main__":
    sys.exit(main())
