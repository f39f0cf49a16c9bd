"""Command line entry point.

    docshots list
    docshots run angular identityserver --var username=ashtyn1 --headed --slow-mo 1000
    docshots run my_flows.json --output-dir build/images --json
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from typing import TYPE_CHECKING

from .config.settings import settings as default_settings
from .core.errors import FlowDefinitionError
from .core.executor.result import RunStatus
from .core.executor.runner import run_flows
from .core.ir.loader import builtin_flow_names, load_builtin_flow, resolve_flow_refs
from .logging_setup import configure_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def _parse_var(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    return key.strip(), value


def _parse_viewport(text: str) -> tuple[int, int]:
    try:
        width, height = (int(p) for p in text.lower().split("x", 1))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {text!r}") from e
    return width, height


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docshots", description="Capture documentation screenshots from declarative flows."
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List built-in flows")

    run = sub.add_parser("run", help="Run flows")
    run.add_argument(
        "flows", nargs="*", help="Built-in flow names or JSON flow files (default: all built-ins)"
    )
    run.add_argument("--output-dir", help="Directory for screenshots")
    run.add_argument(
        "--var",
        dest="variables",
        action="append",
        type=_parse_var,
        default=[],
        metavar="NAME=VALUE",
        help="Template variable, e.g. base_url=http://localhost:4200 (repeatable)",
    )
    display = run.add_mutually_exclusive_group()
    display.add_argument("--headless", dest="headless", action="store_true", default=None)
    display.add_argument("--headed", dest="headless", action="store_false")
    run.add_argument("--slow-mo", type=int, dest="slow_mo_ms", help="Delay between browser operations (ms)")
    run.add_argument("--timeout", type=int, dest="timeout_ms", help="Default browser timeout (ms)")
    run.add_argument("--viewport", type=_parse_viewport, help="Viewport as WIDTHxHEIGHT")
    run.add_argument("--json", action="store_true", help="Print results as JSON")
    return parser


def _cmd_list() -> int:
    for name in builtin_flow_names():
        flow = load_builtin_flow(name)
        print(f"{name:<16} {flow.description}")
    return EXIT_OK


def _cmd_run(args: argparse.Namespace) -> int:
    refs = args.flows or builtin_flow_names()
    try:
        flows = resolve_flow_refs(refs)
    except FlowDefinitionError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE

    width, height = args.viewport or (None, None)
    run_settings = default_settings.with_overrides(
        output_dir=args.output_dir,
        headless=args.headless,
        slow_mo_ms=args.slow_mo_ms,
        default_timeout_ms=args.timeout_ms,
        viewport_width=width,
        viewport_height=height,
    )

    cancel_event = threading.Event()

    def _on_sigint(signum, frame):  # noqa: ARG001
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupt received, stopping after the current step (again to abort)")
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        results = run_flows(
            flows,
            settings=run_settings,
            variables=dict(args.variables),
            cancel_event=cancel_event,
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        for r in results:
            print(r.summary())
            print()

    if any(r.status is RunStatus.CANCELLED for r in results):
        return EXIT_CANCELLED
    return EXIT_OK if all(r.ok for r in results) else EXIT_FAILED


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or default_settings.log_level)
    if args.command == "list":
        return _cmd_list()
    return _cmd_run(args)


if __name__ == "__main__":
    sys.exit(main())
