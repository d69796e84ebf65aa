"""Command-line entry point.

Usage:
    python -m mail_triage run      # one cycle now; installs the trigger chain
    python -m mail_triage serve    # HTTP API plus trigger dispatcher
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

import structlog

from mail_triage.config import get_config
from mail_triage.database import init_db
from mail_triage.logging_config import setup_logging
from mail_triage.schemas import ConfigurationError

logger = structlog.get_logger(__name__)


def _run(args: argparse.Namespace) -> int:
    from mail_triage.triage.service import run_configured_cycle

    config = get_config()
    setup_logging(
        level=args.log_level or config.log_level,
        log_file=config.log_file,
        json_console=config.log_json,
    )
    init_db(config)
    try:
        summary = run_configured_cycle(config)
    except ConfigurationError as exc:
        logger.error("cycle_aborted", problems=exc.problems)
        return 2
    print(summary.message)
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    config = get_config()
    uvicorn.run(
        "mail_triage.main:app",
        host=args.host or config.host,
        port=args.port or config.port,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mail_triage", description="Incremental LLM mail triage")
    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="Run one triage cycle and print its summary")
    run_p.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    run_p.set_defaults(func=_run)

    serve_p = sub.add_parser("serve", help="Start the HTTP API and trigger dispatcher")
    serve_p.add_argument("--host", default=None)
    serve_p.add_argument("--port", type=int, default=None)
    serve_p.set_defaults(func=_serve)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
