"""Command-line interface router for greenbay."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

import structlog

from greenbay.app import Application
from greenbay.check.catalog import load_builtin_checks
from greenbay.client import DEFAULT_CLIENT_HOST, DEFAULT_CLIENT_PORT, GreenbayClient
from greenbay.client import DEFAULT_WAIT_TIMEOUT_SECONDS as CLIENT_WAIT_TIMEOUT_SECONDS
from greenbay.config.loader import DEFAULT_CONFIG_FILE
from greenbay.observability.logging import (
    LOG_SINK_NAMES,
    LoggingConfig,
    setup_logging,
    shutdown_logging,
)
from greenbay.reporting.base import ReporterError
from greenbay.reporting.registry import DEFAULT_REPORTER_REGISTRY
from greenbay.service import (
    DEFAULT_CACHE_SIZE,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_SERVICE_JOBS,
    GreenbayService,
)

logger = structlog.get_logger(__name__)

DEFAULT_LOG_LEVEL: Final[str] = "info"
DEFAULT_LOG_OUTPUT: Final[str] = "stderr"
_LOG_LEVELS: Final[tuple[str, ...]] = (
    "debug",
    "info",
    "notice",
    "warning",
    "error",
    "alert",
    "critical",
)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for every greenbay command."""

    parser = argparse.ArgumentParser(
        prog="greenbay",
        description=(
            "greenbay - system integration and acceptance testing.\n\n"
            "Common workflows:\n"
            "  greenbay list                       Show registered check types\n"
            "  greenbay run --suite all            Run a suite on this host\n"
            "  greenbay service --port 3000        Serve checks over HTTP\n"
            "  greenbay client --host http://box   Run checks on a remote service\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--conf",
        default=str(Path.cwd() / DEFAULT_CONFIG_FILE),
        help=f"Path to the check-suite file (default: ./{DEFAULT_CONFIG_FILE}).",
    )
    common.add_argument(
        "--log-level",
        default=DEFAULT_LOG_LEVEL,
        choices=_LOG_LEVELS,
        help=f"Diagnostic logging threshold (default: {DEFAULT_LOG_LEVEL}).",
    )
    common.add_argument(
        "--log-output",
        default=DEFAULT_LOG_OUTPUT,
        help=f"Log sink, one of: {', '.join(LOG_SINK_NAMES)} (default: {DEFAULT_LOG_OUTPUT}).",
    )
    common.add_argument(
        "--log-file",
        default=None,
        help="Log file name for the 'file' and 'json-file' sinks.",
    )

    selection = argparse.ArgumentParser(add_help=False)
    selection.add_argument(
        "--test",
        dest="tests",
        action="append",
        default=[],
        help="Run the named test; may be repeated.",
    )
    selection.add_argument(
        "--suite",
        dest="suites",
        action="append",
        default=[],
        help="Run every test in the suite; may be repeated (default: all).",
    )
    selection.add_argument(
        "--output",
        default=None,
        help="Also write results to this file.",
    )
    selection.add_argument(
        "--quiet",
        action="store_true",
        default=False,
        help="Omit passing checks from the results.",
    )
    selection.add_argument(
        "--format",
        dest="report_format",
        default=None,
        choices=DEFAULT_REPORTER_REGISTRY.names(),
        help="Results format (default: from the config file, else gotest).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # list ----------------------------------------------------------------
    list_parser = subparsers.add_parser(
        "list",
        parents=[common],
        help="List every registered check type.",
    )
    list_parser.set_defaults(handler=_cmd_list)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common, selection],
        help="Run checks on this host and report the results.",
    )
    run_parser.add_argument(
        "--jobs",
        type=_positive_int,
        default=None,
        help="Worker count (default: from the config file, else CPU count).",
    )
    run_parser.set_defaults(handler=_cmd_run)

    # service -------------------------------------------------------------
    service_parser = subparsers.add_parser(
        "service",
        parents=[common],
        help="Serve checks, job submission and host stats over HTTP.",
    )
    service_parser.add_argument(
        "--host",
        default=DEFAULT_HOST,
        help="Interface to bind (default: all interfaces).",
    )
    service_parser.add_argument("--port", type=_positive_int, default=DEFAULT_PORT)
    service_parser.add_argument(
        "--cache",
        type=_positive_int,
        default=DEFAULT_CACHE_SIZE,
        help=f"Completed jobs to retain (default: {DEFAULT_CACHE_SIZE}).",
    )
    service_parser.add_argument(
        "--jobs",
        type=_positive_int,
        default=DEFAULT_SERVICE_JOBS,
        help=f"Workers for submitted jobs (default: {DEFAULT_SERVICE_JOBS}).",
    )
    service_parser.add_argument(
        "--disable-stats",
        action="store_true",
        default=False,
        help="Do not expose the /stats endpoints.",
    )
    service_parser.set_defaults(handler=_cmd_service)

    # client --------------------------------------------------------------
    client_parser = subparsers.add_parser(
        "client",
        parents=[common, selection],
        help="Run checks on a remote greenbay service and report the results.",
    )
    client_parser.add_argument("--host", default=DEFAULT_CLIENT_HOST)
    client_parser.add_argument("--port", type=_positive_int, default=DEFAULT_CLIENT_PORT)
    client_parser.add_argument(
        "--wait-timeout",
        type=_positive_float,
        default=CLIENT_WAIT_TIMEOUT_SECONDS,
        help=f"Seconds to wait for submitted checks (default: {CLIENT_WAIT_TIMEOUT_SECONDS:g}).",
    )
    client_parser.set_defaults(handler=_cmd_client)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        _configure_logging(namespace)
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    finally:
        shutdown_logging()
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_list(_args: argparse.Namespace) -> int:
    registry = load_builtin_checks()
    lines = ["Registered Greenbay Checks:"]
    lines.extend(f"\t{name}" for name in registry.registered_names())
    print("\n".join(lines))
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    try:
        app = Application.from_paths(
            args.conf,
            output_path=args.output,
            report_format=args.report_format,
            quiet=args.quiet,
            jobs=args.jobs,
            suites=args.suites,
            tests=args.tests,
        )
    except ReporterError as exc:
        raise CLIError(str(exc)) from exc
    app.run()
    return 0


def _cmd_service(args: argparse.Namespace) -> int:
    conf_path: Path | None = Path(args.conf)
    if not conf_path.is_file():
        logger.warning("service_config_missing", path=str(conf_path))
        conf_path = None

    service = GreenbayService(
        conf_path,
        host=args.host,
        port=args.port,
        cache_size=args.cache,
        jobs=args.jobs,
        disable_stats=args.disable_stats,
    )
    logger.info("service_starting", host=args.host or "0.0.0.0", port=args.port)
    service.run()
    return 0


def _cmd_client(args: argparse.Namespace) -> int:
    try:
        client = GreenbayClient.from_paths(
            args.conf,
            host=args.host,
            port=args.port,
            output_path=args.output,
            report_format=args.report_format,
            quiet=args.quiet,
            suites=args.suites,
            tests=args.tests,
            wait_timeout=args.wait_timeout,
        )
    except ReporterError as exc:
        raise CLIError(str(exc)) from exc
    with client:
        client.run()
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _configure_logging(args: argparse.Namespace) -> None:
    try:
        setup_logging(
            LoggingConfig(
                sink=args.log_output,
                level=args.log_level,
                log_file=args.log_file,
            )
        )
    except ValueError as exc:
        raise CLIError(f"invalid logging options: {exc}") from exc


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {raw!r}") from exc
    if value < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return value


def _positive_float(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a number, got {raw!r}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive number, got {value:g}")
    return value


__all__ = ["CLIError", "build_parser", "run_cli"]
