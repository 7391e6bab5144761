"""
============================================================================
MODEL VITALS - MAIN APPLICATION
============================================================================
Process entry point.

    model-vitals [--once | --recurring] [--targets FILE]

Startup Order
-------------
1.  Parse arguments, load settings & configure logging
2.  Load and validate the targets file
3.  Build the Monitor (exporter client, probes, schedules)
4.  Install SIGTERM / SIGINT handlers
5.  Run once, or until a signal arrives

Exit Codes
----------
    0    every probe's latest outcome is Complete
    1    at least one probe failed
    2    configuration error (nothing was probed)
    124  every failure was a timeout

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import List, Optional

from config.constants import ExitCode, RunMode
from config.settings import LoggingSettings, Settings
from config.targets import load_targets
from exceptions import ConfigurationError
from monitoring.monitor import Monitor
from utils.logger import get_logger, setup_logging


logger = get_logger("Main")


# ============================================================================
# ARGUMENTS
# ============================================================================

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="model-vitals",
        description="Probe OpenAI-compatible model endpoints and report to an uptime exporter.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once", dest="run_mode", action="store_const", const=RunMode.ONCE,
        help="run every probe once and exit (default)",
    )
    mode.add_argument(
        "--recurring", dest="run_mode", action="store_const", const=RunMode.RECURRING,
        help="keep running probes on their schedules until SIGTERM/SIGINT",
    )
    parser.add_argument(
        "--targets", type=Path, default=None,
        help="targets YAML file (overrides PROBE_TARGETS_FILE)",
    )
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    """
    Resolve settings from the environment, then apply argument overrides.

    Raises:
        ConfigurationError: If the environment holds invalid settings
    """
    overrides = {}
    if args.run_mode is not None:
        overrides["run_mode"] = args.run_mode

    try:
        settings = Settings(**overrides)
    except ValueError as e:
        raise ConfigurationError(f"invalid settings: {e}", cause=e) from e

    if args.targets is not None:
        settings.probe.targets_file = args.targets
    return settings


# ============================================================================
# SIGNAL HANDLER SETUP
# ============================================================================

def _install_signal_handlers(loop: asyncio.AbstractEventLoop, monitor: Monitor) -> None:
    """
    Install SIGTERM / SIGINT handlers that let in-flight executions reach
    their terminal ping before the process exits.
    """
    def _handle_signal(sig: signal.Signals) -> None:
        logger.info(f"  ⚡ {sig.name} received — initiating graceful shutdown…")
        monitor.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, _handle_signal, sig)
        except (NotImplementedError, OSError):
            # Not supported on Windows; KeyboardInterrupt still ends the run
            pass


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

async def main(settings: Settings) -> int:
    """
    Async main: load targets, build the monitor and run it.

    Returns:
        Process exit code
    """
    try:
        targets = load_targets(settings.probe.targets_file)
        monitor = Monitor(settings, targets)
    except ConfigurationError as e:
        logger.error(f"✗ {e.log_format()}")
        return ExitCode.CONFIGURATION_ERROR

    logger.info(
        f"{settings.app_name} v{settings.app_version} — "
        f"{targets.probe_count} probes on {len(targets.endpoints)} endpoints, "
        f"mode={settings.run_mode.value}"
    )

    _install_signal_handlers(asyncio.get_running_loop(), monitor)
    return int(await monitor.run())


def cli(argv: Optional[List[str]] = None) -> int:
    """Console script entry point."""
    args = parse_args(argv)

    try:
        settings = load_settings(args)
    except ConfigurationError as e:
        setup_logging(LoggingSettings.model_construct())
        logger.error(f"✗ {e.log_format()}")
        return ExitCode.CONFIGURATION_ERROR

    setup_logging(settings.logging)

    try:
        return asyncio.run(main(settings))
    except KeyboardInterrupt:
        logger.info("  ⚡ KeyboardInterrupt received")
        return ExitCode.PROBE_FAILURE


# ============================================================================
# SCRIPT ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    sys.exit(cli())
