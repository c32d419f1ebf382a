# growatt_monitor/cli.py
import argparse

def build_parser():
    parser = argparse.ArgumentParser(
        prog="growatt-monitor",
        description="Growatt plant discovery and telemetry monitor"
    )

    parser.add_argument(
        "--config",
        default="growatt_monitor.conf",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress console logging"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of human-readable text"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    # Long-running service
    sub.add_parser("run", help="Discover plants, then poll telemetry until stopped")

    # One-shot helpers
    sub.add_parser("discover", help="Run one discovery pass and print the plants found")
    sub.add_parser("poll", help="Run one discovery pass plus one telemetry poll")

    return parser
