"""FreshWatch - content freshness detection for a watched site."""

import argparse
import json
import logging
import signal
import sys
from threading import Event
from typing import Optional

__version__ = "0.1.0"

# Global shutdown event for signal handlers
_shutdown_event: Optional[Event] = None

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def _handle_shutdown(signum: int, frame: object) -> None:
    """Signal handler for graceful shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating shutdown...", sig_name)
    if _shutdown_event is not None:
        _shutdown_event.set()


def _load_config_or_exit(config_path: str):
    from .config import ConfigError, load_config

    try:
        return load_config(config_path)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _open_store_or_exit(path: str):
    from .database import SqliteStore, StorageError, init_db

    try:
        return SqliteStore(init_db(path))
    except StorageError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _build_detector(config, store, ask_user=None):
    """Wire the detector and its collaborators from configuration."""
    from .audit_log import AuditLog
    from .cache import CacheStorage
    from .detector import UpdateDetector
    from .reloader import Reloader
    from .ui import ConsoleNotifier, ConsolePrompt
    from .version_store import VersionStore

    return UpdateDetector(
        config.detector,
        VersionStore(store),
        AuditLog(store, config.audit),
        ask_user=ask_user or ConsolePrompt(),
        notifier=ConsoleNotifier(),
        cache=CacheStorage(config.cache.directory),
        reloader=Reloader(config.refresh),
    )


def _build_viewer(config, store, args: argparse.Namespace):
    from .audit_log import AuditLog
    from .viewer import LogViewer

    return LogViewer(
        AuditLog(store, config.audit),
        show_updates=not getattr(args, "no_updates", False),
        show_errors=not getattr(args, "no_errors", False),
    )


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the run command - start the update detector loop."""
    global _shutdown_event

    _setup_logging(args.verbose)

    logger.info("FreshWatch %s starting...", __version__)

    # 1. Load configuration
    config = _load_config_or_exit(args.config)
    logger.info("Configuration loaded from %s", args.config)
    logger.info("Watching %s every %ds", config.detector.version_url, config.detector.interval)

    # 2. Open the persistent store
    store = _open_store_or_exit(config.storage.path)
    logger.info("State store opened at %s", config.storage.path)

    # 3. Setup shutdown handler
    _shutdown_event = Event()
    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    detector = _build_detector(config, store)

    try:
        detector.start()
        logger.info("Detector started, waiting for shutdown signal...")
        _shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        detector.stop()
        store.close()
        logger.info("Shutdown complete")


def _cmd_check(args: argparse.Namespace) -> None:
    """Execute the check command - run a single forced check."""
    _setup_logging(args.verbose)

    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config.storage.path)
    try:
        outcome = _build_detector(config, store).force_check()
    finally:
        store.close()

    print(f"Check result: {outcome.value}")

    from .models import CheckOutcome

    if outcome is CheckOutcome.FAILED:
        sys.exit(1)


def _cmd_status(args: argparse.Namespace) -> None:
    """Execute the status command - show stored version information."""
    from .database import StorageError
    from .version_store import VersionStore

    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config.storage.path)
    try:
        versions = VersionStore(store)
        print(f"Site:            {config.detector.site_url}")
        print(f"Stored version:  {versions.get_version() or '(none)'}")
        print(f"Last checked:    {versions.get_last_check() or 'never'}")
        print(f"Auto-refresh:    {versions.get_preference().value}")
    except StorageError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        store.close()


def _cmd_logs(args: argparse.Namespace) -> None:
    """Execute the logs command - show filtered audit entries or statistics."""
    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config.storage.path)
    try:
        viewer = _build_viewer(config, store, args)
        if args.json:
            payload = viewer.get_stats().to_dict() if args.stats else viewer.build_export()
            print(json.dumps(payload, indent=2, ensure_ascii=False))
        elif args.stats:
            print(viewer.render_stats())
        else:
            print(viewer.render())
    finally:
        store.close()


def _cmd_export(args: argparse.Namespace) -> None:
    """Execute the export command - write both logs to a JSON file."""
    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config.storage.path)
    try:
        path = _build_viewer(config, store, args).export(args.output)
    except OSError as e:
        print(f"Error: Failed to export logs - {e}")
        sys.exit(1)
    finally:
        store.close()

    print(f"Logs exported to {path}")


def _cmd_clear(args: argparse.Namespace) -> None:
    """Execute the clear command - delete all audit entries."""
    from .database import StorageError
    from .ui import confirm

    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config.storage.path)
    try:
        viewer = _build_viewer(config, store, args)
        cleared = viewer.clear(
            lambda: args.yes or confirm("Clear all logs? This cannot be undone.")
        )
        if not cleared:
            print("Cancelled.")
            return
        print("Logs cleared.")
        print(viewer.render())
    except StorageError as e:
        print(f"Error: Failed to clear logs - {e}")
        sys.exit(1)
    finally:
        store.close()


def _cmd_reset(args: argparse.Namespace) -> None:
    """Execute the reset command - forget the baseline, preference, logs and caches."""
    from .database import StorageError
    from .ui import confirm

    config = _load_config_or_exit(args.config)
    if not (args.yes or confirm("Reset stored version, preference, logs and caches?")):
        print("Cancelled.")
        return

    store = _open_store_or_exit(config.storage.path)
    try:
        _build_detector(config, store).reset()
    except StorageError as e:
        print(f"Error: Failed to reset - {e}")
        sys.exit(1)
    finally:
        store.close()

    print("Detector state reset.")


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )


def main() -> None:
    """Main entry point for the freshwatch package."""
    parser = argparse.ArgumentParser(
        description="FreshWatch - detect new site content and refresh stale caches"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"freshwatch {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Run subcommand (default behavior)
    run_parser = subparsers.add_parser("run", help="Start the update detector (default)")
    _add_config_argument(run_parser)
    run_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    run_parser.set_defaults(func=_cmd_run)

    # Check subcommand
    check_parser = subparsers.add_parser("check", help="Check for new content once, now")
    _add_config_argument(check_parser)
    check_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    check_parser.set_defaults(func=_cmd_check)

    # Status subcommand
    status_parser = subparsers.add_parser("status", help="Show stored version information")
    _add_config_argument(status_parser)
    status_parser.set_defaults(func=_cmd_status)

    # Logs subcommand
    logs_parser = subparsers.add_parser("logs", help="Show update and error logs")
    _add_config_argument(logs_parser)
    logs_parser.add_argument("--no-updates", action="store_true", help="Hide update records")
    logs_parser.add_argument("--no-errors", action="store_true", help="Hide error records")
    logs_parser.add_argument("--stats", action="store_true", help="Show statistics instead of entries")
    logs_parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    logs_parser.set_defaults(func=_cmd_logs)

    # Export subcommand
    export_parser = subparsers.add_parser("export", help="Export logs to a JSON file")
    _add_config_argument(export_parser)
    export_parser.add_argument(
        "-o", "--output",
        default=".",
        help="Directory to write the export file to (default: current directory)",
    )
    export_parser.set_defaults(func=_cmd_export)

    # Clear subcommand
    clear_parser = subparsers.add_parser("clear", help="Delete all update and error logs")
    _add_config_argument(clear_parser)
    clear_parser.add_argument("-y", "--yes", action="store_true", help="Don't ask for confirmation")
    clear_parser.set_defaults(func=_cmd_clear)

    # Reset subcommand
    reset_parser = subparsers.add_parser(
        "reset",
        help="Forget stored version, preference and logs, and clear caches",
    )
    _add_config_argument(reset_parser)
    reset_parser.add_argument("-y", "--yes", action="store_true", help="Don't ask for confirmation")
    reset_parser.set_defaults(func=_cmd_reset)

    args = parser.parse_args()

    # Default to 'run' if no command specified
    if args.command is None:
        args.config = "config.yaml"
        args.verbose = False
        args.func = _cmd_run

    args.func(args)
