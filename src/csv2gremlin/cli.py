"""
csv2gremlin - Command Line Interface

Usage:
    csv2gremlin vertices gremlin.yaml people.csv
    csv2gremlin edges gremlin.yaml knows.csv --resolve-by property:name
    csv2gremlin vertices gremlin.yaml people.csv --headers label,name,age

Exit status:
    0  every record was imported
    1  the run completed but some records failed
    2  the run was aborted (no session, fail-fast) or input/config is unusable
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from ._version import __version__
from .config import load_descriptor
from .exceptions import ConfigError, InputError
from .orchestrator import ImportOrchestrator, ImportSettings
from .reader import parse_headers, read_edges, read_vertices
from .retry import RetryPolicy
from .session import EndpointResolution

logger = logging.getLogger("csv2gremlin")

EXIT_ABORTED = 2


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("config", metavar="CONFIG", help="Connection descriptor (YAML)")
    common.add_argument("csv", metavar="CSV", help="CSV file to import")
    common.add_argument(
        "--headers",
        help="Comma-separated column names; the file is then read without a header row",
    )
    common.add_argument("--delimiter", default=",", help="Field delimiter (default: ',')")
    common.add_argument(
        "--concurrency", type=int, default=8, help="Records in flight at once (default: 8)"
    )
    common.add_argument(
        "--max-attempts",
        type=int,
        default=3,
        help="Attempts per remote call on connection errors (default: 3)",
    )
    common.add_argument(
        "--timeout", type=float, default=30.0, help="Per-request timeout in seconds"
    )
    common.add_argument(
        "--fail-fast",
        type=float,
        metavar="RATIO",
        help="Abort once this ratio of records has failed (e.g. 0.5)",
    )
    common.add_argument(
        "--max-failures",
        type=int,
        default=50,
        help="Failures listed in the summary (default: 50, 0 = all)",
    )
    common.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    parser = argparse.ArgumentParser(
        prog="csv2gremlin", description="Import CSV data into a Gremlin graph database"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "vertices",
        aliases=["nodes"],
        parents=[common],
        help="Import CSV rows as vertices (label column + property columns)",
    )
    edges = subparsers.add_parser(
        "edges",
        parents=[common],
        help="Import CSV rows as edges (from, to, relationship columns)",
    )
    edges.add_argument(
        "--resolve-by",
        default="id",
        help="How from/to keys find vertices: 'id' or 'property:<key>' (default: id)",
    )
    edges.add_argument("--resolve-label", help="Only match vertices with this label")
    edges.add_argument(
        "--cache-lookups",
        action="store_true",
        help="Look each endpoint key up once per run",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> ImportSettings:
    resolution = EndpointResolution()
    if args.command == "edges":
        resolution = EndpointResolution.parse(args.resolve_by, args.resolve_label)
    return ImportSettings(
        concurrency=args.concurrency,
        retry=RetryPolicy(max_attempts=args.max_attempts),
        timeout=args.timeout,
        fail_fast_threshold=args.fail_fast,
        resolution=resolution,
        cache_lookups=getattr(args, "cache_lookups", False),
        progress=not args.no_progress and sys.stderr.isatty(),
    )


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings = settings_from_args(args)
        descriptor = load_descriptor(args.config)
        headers = parse_headers(args.headers)
        if args.command == "edges":
            records = read_edges(args.csv, headers, args.delimiter)
        else:
            records = read_vertices(args.csv, headers, args.delimiter)
    except (ConfigError, InputError, ValueError) as e:
        logger.error("%s", e)
        return EXIT_ABORTED

    orchestrator = ImportOrchestrator(descriptor, settings)

    # First Ctrl-C stops dispatching; in-flight records still finish
    previous_handler = None
    installed = False
    if threading.current_thread() is threading.main_thread():

        def _on_interrupt(signum, frame):
            logger.warning("Interrupted, waiting for in-flight records to finish")
            orchestrator.cancel()
            signal.signal(signal.SIGINT, previous_handler or signal.default_int_handler)

        previous_handler = signal.signal(signal.SIGINT, _on_interrupt)
        installed = True

    try:
        if args.command == "edges":
            report = orchestrator.import_edges(records)
        else:
            report = orchestrator.import_vertices(records)
    finally:
        if installed:
            signal.signal(signal.SIGINT, previous_handler or signal.default_int_handler)

    print(report.render(max_failures=args.max_failures or None))
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
