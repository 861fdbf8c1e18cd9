"""Command-line entry point.

Usage:
    python -m grouper_trace trace SUBJECT_ID GROUP_NAME [--source-id ID] [--max-depth N] [--json]
    python -m grouper_trace serve [--host 127.0.0.1] [--port 8080]

Connection settings come from GROUPER_* environment variables
(see ``GrouperSettings.from_env``).

Exit codes for ``trace``: 0 member, 1 not a member, 2 directory or
configuration failure.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Sequence

from .directory.client import GrouperClient
from .directory.errors import DirectoryError
from .observability.logging import configure_logging, get_logger
from .protocols import DirectoryClient
from .settings import GrouperSettings
from .tracing.render import render_text
from .tracing.resolver import TraceOptions, trace

logger = get_logger(__name__)

EXIT_MEMBER = 0
EXIT_NOT_MEMBER = 1
EXIT_FAILURE = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="grouper-trace",
        description="Explain how a subject is a member of a Grouper group.",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument(
        "--log-format",
        choices=("json", "console"),
        default=None,
        help="Log output format (default: LOG_FORMAT env var or json)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    trace_cmd = sub.add_parser("trace", help="Trace one subject/group membership")
    trace_cmd.add_argument("subject_id")
    trace_cmd.add_argument("group_name")
    trace_cmd.add_argument("--source-id", dest="subject_source_id", default=None)
    trace_cmd.add_argument("--max-depth", type=int, default=None)
    trace_cmd.add_argument("--json", action="store_true", help="Print the trace as JSON")

    serve_cmd = sub.add_parser("serve", help="Run the trace HTTP API")
    serve_cmd.add_argument("--host", default=os.environ.get("HOST", "127.0.0.1"))
    serve_cmd.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8080")))
    return parser


async def run_trace(
    args: argparse.Namespace,
    settings: GrouperSettings,
    directory: DirectoryClient | None = None,
) -> int:
    """Run a single trace and print it. Returns the process exit code."""
    if directory is None:
        directory = GrouperClient.from_settings(settings)

    options = TraceOptions(
        subject_source_id=args.subject_source_id,
        max_depth=args.max_depth if args.max_depth is not None else settings.default_max_depth,
    )
    try:
        result = await trace(directory, args.subject_id, args.group_name, options)
    except DirectoryError as exc:
        logger.error("trace_failed", group_name=args.group_name, error=str(exc))
        print(f"Error: could not query Grouper: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(render_text(result))
    return EXIT_MEMBER if result.is_member else EXIT_NOT_MEMBER


def _serve(args: argparse.Namespace, settings: GrouperSettings) -> int:
    import uvicorn

    from .api.app import create_app

    app = create_app(settings)
    print(f"grouper-trace API starting on http://{args.host}:{args.port}")
    print(f"Grouper WS: {settings.base_url}")
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(
        level=args.log_level,
        json_output=None if args.log_format is None else args.log_format == "json",
    )

    try:
        settings = GrouperSettings.from_env()
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    errors = settings.validate()
    if errors:
        for error in errors:
            print(f"Invalid configuration: {error}", file=sys.stderr)
        return EXIT_FAILURE

    if args.command == "serve":
        return _serve(args, settings)

    return asyncio.run(run_trace(args, settings))


if __name__ == "__main__":
    sys.exit(main())
