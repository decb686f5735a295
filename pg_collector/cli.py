"""
CLI - Command-line interface for pg_collector.

Runs one collection cycle per configured server, or keeps collecting on an
interval until interrupted.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import Config, create_example_config
from .runner.cycle import Server
from .runner.pool import run_cycles, run_loop
from .snapshot.store import build_state_store
from .ui.display import ResultDisplay


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="pg-collector",
        description="Collects PostgreSQL statistics and turns them into per-interval deltas",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    pg-collector --config pg_collector.toml
    pg-collector --test                # dry run, nothing is persisted
    pg-collector --interval 60         # collect every minute until Ctrl+C
""",
    )
    parser.add_argument("-c", "--config", help="Path to config file")
    parser.add_argument("--init-config", metavar="PATH", help="Write an example config file and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    run_group = parser.add_argument_group("Collection")
    run_group.add_argument(
        "--test", action="store_true",
        help="Dry run: collect and diff but never read or write the state file",
    )
    run_group.add_argument(
        "--no-write-state", action="store_true",
        help="Read the previous state but do not store the new snapshot",
    )
    run_group.add_argument("--state-file", help="Override the state file location")
    run_group.add_argument("--statement-timeout-ms", type=int, help="Per-statement timeout")
    run_group.add_argument(
        "--interval", type=float, default=None,
        help="Seconds between cycles (default: run once)",
    )

    out_group = parser.add_argument_group("Output")
    out_group.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    out_group.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    out_group.add_argument("--json", action="store_true", help="Print results as JSON")

    return parser.parse_args(argv)


def setup_logging(verbose: bool = False, quiet: bool = False, console: Optional[Console] = None):
    """Route logging through rich."""
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    console = Console()

    if args.init_config:
        try:
            path = create_example_config(args.init_config)
        except FileExistsError as e:
            console.print(f"[red]{e}[/]")
            return 1
        console.print(f"Wrote example config to {path}")
        return 0

    try:
        config = Config.load(args.config).override_from_args(args)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Could not load config:[/] {e}")
        return 1

    setup_logging(config.output.verbose, config.output.quiet)
    logger = logging.getLogger("pg_collector")

    errors = config.validate()
    if errors:
        for error in errors:
            console.print(f"[red]Config error:[/] {error}")
        return 1

    logger.debug("Configuration:\n%s", config.summary())

    opts = config.collection
    store = build_state_store(opts)
    servers = [Server(config=server_config) for server_config in config.servers]
    display = ResultDisplay(console, json_output=config.output.json, verbose=config.output.verbose)

    stop_event = threading.Event()

    def request_stop(signum, frame):
        logger.info("Received signal %d, stopping after the current cycle", signum)
        stop_event.set()

    previous_handlers = {sig: signal.signal(sig, request_stop) for sig in (signal.SIGINT, signal.SIGTERM)}

    try:
        if args.interval:
            run_loop(servers, store, opts, args.interval, stop_event, on_results=display.show)
            return 0

        results = run_cycles(servers, store, opts, stop_event=stop_event)
        display.show(results)
        return 0 if all(r.success for r in results) else 2
    finally:
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)
        for server in servers:
            if server.connection is not None:
                server.connection.close()


if __name__ == "__main__":
    sys.exit(main())
