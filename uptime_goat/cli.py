"""
Command-line interface for the uptime goat reporter.
"""

import argparse
import asyncio
import inspect
import json
import logging
import sys
from typing import Optional

from uptime_goat import __version__

logger = logging.getLogger("uptime_goat.cli")


def _create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="uptime-goat",
        description="Uptime goat reporter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  uptime-goat run                          # Report every minute until interrupted
  uptime-goat run --max-cycles 5           # Stop after five report cycles
  uptime-goat init --force                 # Write a default configuration file
  uptime-goat validate                     # Check configuration and credentials
  uptime-goat status                       # Show the saved continuation target
  uptime-goat fetch-endpoints              # Print the current endpoint mapping
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"uptime-goat {__version__}"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log errors"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_run_command(subparsers)
    _add_validate_command(subparsers)
    _add_init_command(subparsers)
    _add_status_command(subparsers)
    _add_fetch_endpoints_command(subparsers)

    return parser


def _add_run_command(subparsers):
    """Add run command parser."""
    run_parser = subparsers.add_parser(
        "run",
        help="Run the reporter (default)",
        description="Fetch endpoints, then send a report to every endpoint once a minute"
    )
    run_parser.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Stop after this many report cycles"
    )


def _add_validate_command(subparsers):
    """Add validate command parser."""
    subparsers.add_parser(
        "validate",
        help="Validate configuration and credentials",
        description="Validate configuration file, environment overrides and credentials"
    )


def _add_init_command(subparsers):
    """Add init command parser."""
    init_parser = subparsers.add_parser(
        "init",
        help="Write a default configuration file",
        description="Write a default configuration file; credentials stay in the environment"
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing configuration"
    )


def _add_status_command(subparsers):
    """Add status command parser."""
    status_parser = subparsers.add_parser(
        "status",
        help="Show the saved continuation target",
        description="Show the saved target time and what a restart now would do"
    )
    status_parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)"
    )


def _add_fetch_endpoints_command(subparsers):
    """Add fetch-endpoints command parser."""
    subparsers.add_parser(
        "fetch-endpoints",
        help="Fetch and print the endpoint mapping",
        description="Fetch the endpoint mapping from the configured source and print it as JSON"
    )


def _load_config(args):
    """Load configuration, printing the error and returning None on failure."""
    from uptime_goat.config.manager import ConfigManager

    try:
        return ConfigManager(args.config).load_config()
    except ValueError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return None


def _setup_logging(config, args, default_level: Optional[str] = None) -> None:
    from uptime_goat.utils.structured_logging import logging_manager

    if args.verbose:
        level = "DEBUG"
    elif args.quiet:
        level = "ERROR"
    else:
        level = default_level or config.logging.level

    logging_manager.setup_logging(
        log_level=level,
        log_file=config.logging.file,
        max_file_size=config.logging.max_file_size,
        backup_count=config.logging.backup_count,
        structured_format=config.logging.structured,
        force=True
    )


def _build_scheduler(config, client, directory):
    """Wire the report scheduler and its collaborators."""
    from uptime_goat.analysis.deviation import DeviationHeuristic
    from uptime_goat.reporting.dispatcher import ReportDispatcher
    from uptime_goat.scheduling import (
        ContinuationStore,
        CycleCounter,
        ReportScheduler,
        SchedulerConfig,
    )

    return ReportScheduler(
        directory=directory,
        dispatcher=ReportDispatcher(client, request_timeout=config.reporting.request_timeout),
        heuristic=DeviationHeuristic(),
        store=ContinuationStore(config.scheduling.state_file),
        cycle_counter=CycleCounter(config.endpoints.refresh_every_cycles),
        scheduler_config=SchedulerConfig.from_scheduling_config(config.scheduling)
    )


async def run_command(args) -> int:
    """Run the reporter until interrupted or until --max-cycles is reached."""
    from uptime_goat.clients import create_report_client
    from uptime_goat.config.validation import validate_credential
    from uptime_goat.reporting.endpoints import EndpointDirectory
    from uptime_goat.utils.error_handling import CredentialValidationError, EndpointFetchError
    from uptime_goat.utils.resilience import GracefulShutdownHandler

    config = _load_config(args)
    if config is None:
        return 1
    _setup_logging(config, args)

    try:
        validate_credential(config.credentials.goat_id, "GOAT_ID")
        validate_credential(config.credentials.goat_key, "GOAT_KEY")
    except CredentialValidationError as e:
        logger.error(str(e))
        return 1

    logger.info("🐐 Starting uptime-goat service...")

    async with create_report_client(config) as client:
        directory = EndpointDirectory(client)
        try:
            await directory.initialize()
        except EndpointFetchError as e:
            logger.error(f"Failed to fetch endpoints: {e}")
            logger.error("Failed to fetch endpoints on startup. Exiting...")
            return 1

        scheduler = _build_scheduler(config, client, directory)

        shutdown_handler = GracefulShutdownHandler()
        shutdown_handler.register_shutdown_callback(scheduler.request_stop)
        shutdown_handler.install()
        try:
            await scheduler.run_forever(max_cycles=getattr(args, "max_cycles", None))
        finally:
            shutdown_handler.uninstall()

        _log_run_summary(scheduler.get_status())

    return 0


def _log_run_summary(status) -> None:
    """Log what the scheduler did before it stopped."""
    last_cycle = status["last_cycle"]
    if last_cycle is None:
        logger.info("Stopped before any report cycle ran")
    else:
        logger.info(
            f"Ran {status['cycle_count']} report cycles; last cycle reported to "
            f"{last_cycle['successful_reports']}/{last_cycle['targets']} targets"
        )
    if status["target_time"] is not None:
        logger.info(f"Saved next target: {status['target_time']}")
    logger.debug(f"Final scheduler status: {json.dumps(status, indent=2)}")


def validate_command(args) -> int:
    """Validate configuration and credentials."""
    from uptime_goat.config.manager import ConfigManager
    from uptime_goat.config.validation import validate_credential
    from uptime_goat.utils.error_handling import CredentialValidationError

    manager = ConfigManager(args.config)
    if manager.config_file_exists():
        print(f"Validating configuration: {manager.config_file_path}")
    else:
        print(f"No configuration file at {manager.config_file_path}, checking defaults and environment")

    is_valid, errors = manager.validate_config_file()
    if not is_valid:
        print("✗ Configuration validation failed:")
        for error in errors:
            print(f"  - {error}")
        return 1

    config = manager.load_config()

    credential_errors = []
    for name, value in (("GOAT_ID", config.credentials.goat_id), ("GOAT_KEY", config.credentials.goat_key)):
        try:
            validate_credential(value, name)
        except CredentialValidationError as e:
            credential_errors.append(str(e))

    if credential_errors:
        print("✗ Credential validation failed:")
        for error in credential_errors:
            print(f"  - {error}")
        return 1

    print("✓ Configuration is valid")
    print("\nConfiguration Summary:")
    print(f"  Endpoint source: {config.endpoints.source_url}")
    print(f"  Endpoint refresh: every {config.endpoints.refresh_every_cycles} cycles")
    print(f"  Request timeout: {config.reporting.request_timeout}s")
    print(f"  State file: {config.scheduling.state_file}")
    print(f"  Log level: {config.logging.level}")
    return 0


def init_command(args) -> int:
    """Write a default configuration file."""
    from uptime_goat.config.manager import ConfigManager

    manager = ConfigManager(args.config, load_env_file=False)
    try:
        written = manager.create_default_config(force=args.force)
    except OSError as e:
        print(f"Error writing configuration: {e}", file=sys.stderr)
        return 1

    if not written:
        print(f"Configuration file {manager.config_file_path} already exists. Use --force to overwrite.")
        return 1

    print(f"[OK] Configuration initialized at {manager.config_file_path}")
    print("  Set GOAT_ID and GOAT_KEY in the environment or a .env file")
    return 0


def status_command(args) -> int:
    """Show the saved continuation target and what a restart would do."""
    from uptime_goat.scheduling import ContinuationStore, StartupDecision, SystemClock, format_epoch_ms, plan_startup

    config = _load_config(args)
    if config is None:
        return 1

    store = ContinuationStore(config.scheduling.state_file)
    saved_ms = store.load()
    now_ms = SystemClock().now_ms()
    decision = plan_startup(saved_ms, now_ms, config.scheduling.min_resume_lead_ms)

    if args.format == "json":
        print(json.dumps({
            "state_file": str(store.path),
            "saved_target_ms": saved_ms,
            "saved_target": format_epoch_ms(saved_ms) if saved_ms is not None else None,
            "now_ms": now_ms,
            "on_restart": decision.value
        }, indent=2))
        return 0

    print(f"State file: {store.path}")
    if saved_ms is None:
        print("Saved target: none")
    else:
        offset_s = (saved_ms - now_ms) / 1000
        when = f"in {offset_s:.1f}s" if offset_s > 0 else f"{-offset_s:.1f}s ago"
        print(f"Saved target: {format_epoch_ms(saved_ms)} ({when})")

    descriptions = {
        StartupDecision.RESUME: "resume the streak at the saved target",
        StartupDecision.TOO_CLOSE: "start fresh, saved target is too close to hit reliably",
        StartupDecision.FRESH_START: "start fresh after a randomized delay",
    }
    print(f"On restart: {descriptions[decision]}")
    return 0


async def fetch_endpoints_command(args) -> int:
    """Fetch and print the endpoint mapping."""
    from uptime_goat.clients import create_report_client
    from uptime_goat.utils.error_handling import EndpointFetchError

    config = _load_config(args)
    if config is None:
        return 1
    _setup_logging(config, args, default_level="WARNING")

    async with create_report_client(config) as client:
        try:
            endpoints = await client.fetch_endpoints()
        except EndpointFetchError as e:
            logger.error(f"Failed to fetch endpoints: {e}")
            return 1

    print(json.dumps(endpoints, indent=2))
    return 0


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        args.command = "run"
        args.max_cycles = None

    command_handlers = {
        "run": run_command,
        "validate": validate_command,
        "init": init_command,
        "status": status_command,
        "fetch-endpoints": fetch_endpoints_command,
    }

    handler = command_handlers[args.command]
    try:
        if inspect.iscoroutinefunction(handler):
            return asyncio.run(handler(args))
        return handler(args)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting...")
        return 0
    except Exception as e:
        if args.verbose:
            import traceback
            traceback.print_exc()
        else:
            print(f"Fatal error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
