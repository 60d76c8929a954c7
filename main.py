"""
Weighbridge Terminal: Entry Point
==================================
Launch a weighbridge terminal with the operator console.

Usage:
  python main.py                           # Terminal + CLI (simulated indicator)
  python main.py --simulate --model sartorius-ql6201
  python main.py --port COM3               # Real indicator on a serial port
  python main.py --port socket://10.0.0.5:4001 --model mettler-toledo-ind780
  python main.py --headless --port /dev/ttyUSB0   # Link + polling, no console
"""

import argparse
import logging
import signal
import sys

from weighbridge.config.scale_models import get_model, load_models
from weighbridge.config.settings import TerminalSettings
from weighbridge.core.terminal import WeighbridgeTerminal
from weighbridge.drivers.simulator import ScaleSimulator


def parse_args():
    parser = argparse.ArgumentParser(
        description="Weighbridge terminal (truck scale indicator + weighing drafts)"
    )
    parser.add_argument(
        "--port",
        help="Indicator port (COM3, /dev/ttyUSB0, socket://host:port). "
             "Omit to use the built-in simulator."
    )
    parser.add_argument(
        "--simulate", action="store_true",
        help="Use the built-in indicator simulator"
    )
    parser.add_argument(
        "--model",
        help="Scale model id (e.g., cas-cs-200)"
    )
    parser.add_argument(
        "--models",
        help="Path to a JSON catalog of custom scale models"
    )
    parser.add_argument(
        "--settings",
        help="Path to terminal settings JSON file"
    )
    parser.add_argument(
        "--drafts-dir",
        help="Directory for weighing draft collections"
    )
    parser.add_argument(
        "--store",
        help="Draft collection name (e.g., driver_weighing_drafts)"
    )
    parser.add_argument(
        "--headless", action="store_true",
        help="Run the terminal without console (headless mode)"
    )
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    parser.add_argument(
        "--log-file",
        help="Log to file instead of stderr"
    )
    return parser.parse_args()


def build_terminal(args) -> WeighbridgeTerminal:
    """Create the terminal from settings plus command-line overrides."""
    settings = TerminalSettings.load(args.settings) if args.settings else TerminalSettings()
    if args.model:
        settings.model_id = args.model
    if args.models:
        settings.models_path = args.models
    if args.drafts_dir:
        settings.drafts_dir = args.drafts_dir
    if args.store:
        settings.store_name = args.store

    catalog = load_models(settings.models_path or None)
    model = get_model(settings.model_id, catalog)
    if model is None:
        print(f"Unknown scale model: {settings.model_id}")
        print(f"Available: {', '.join(sorted(catalog))}")
        sys.exit(1)

    # Default: simulated indicator
    if args.port and not args.simulate:
        settings.port = args.port
        return WeighbridgeTerminal(model, settings=settings)
    settings.port = args.port or "sim://indicator"
    return WeighbridgeTerminal(model, settings=settings, simulator=ScaleSimulator())


def main():
    args = parse_args()

    # Configure logging
    log_kwargs = {
        "level": getattr(logging, args.log_level),
        "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    }
    if args.log_file:
        log_kwargs["filename"] = args.log_file
    logging.basicConfig(**log_kwargs)

    terminal = build_terminal(args)

    # Handle SIGINT/SIGTERM gracefully
    def signal_handler(sig, frame):
        terminal.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    terminal.start()

    try:
        if args.headless:
            print("Weighbridge terminal running (headless mode). Press Ctrl+C to stop.")
            signal.pause()
        else:
            from console.cli import run_cli
            run_cli(terminal)
    finally:
        terminal.stop()


if __name__ == "__main__":
    main()
