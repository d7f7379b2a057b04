"""
Command-line entry point for the mode hooks.

Usage:
    omc-modes keyword-detect     UserPromptSubmit hook (JSON on stdin)
    omc-modes persistent-mode    Stop hook (JSON on stdin)
    omc-modes status [-d DIR] [-s SESSION]
    omc-modes cancel [-d DIR] [-s SESSION]
    omc-modes cleanup [-d DIR] [--max-age-hours H]

Hook commands always print exactly one JSON object and exit 0, whatever
goes wrong; maintenance commands may fail normally.
"""

import argparse
import json
import logging
import os
import sys
import time
from typing import Callable, Optional

from omc_modes import __version__
from omc_modes.compat import cancel_stdin_timeout, setup_stdin_timeout
from omc_modes.config import HOUR_MS, load_config
from omc_modes.continuation import decide
from omc_modes.detector import PASSTHROUGH, cancel_all, handle_prompt
from omc_modes.events import HookEvent
from omc_modes.logs import configure_logging
from omc_modes.registry import clear_stale_session_dirs, get_active_modes, list_session_ids
from omc_modes.tracer import ReplayTracer

logger = logging.getLogger("omc_modes.cli")

STDIN_TIMEOUT_SECONDS = 10
ALLOW_STOP = {"continue": True}


def _read_event() -> HookEvent:
    try:
        raw = sys.stdin.read()
    finally:
        cancel_stdin_timeout()
    return HookEvent.from_json(raw)


def _emit(payload: dict) -> None:
    print(json.dumps(payload))


def _run_hook(name: str, fallback: dict, handler: Callable[[HookEvent], dict]) -> int:
    """Run a hook handler with a stdin timeout and a fail-open fallback."""
    setup_stdin_timeout(STDIN_TIMEOUT_SECONDS, debug_label=f"omc-modes {name}",
                        fallback=json.dumps(fallback))
    try:
        event = _read_event()
        output = handler(event)
    except Exception:
        logger.exception("%s hook failed; answering with fallback", name)
        output = fallback
    _emit(output)
    return 0


def hook_keyword_detect(args: argparse.Namespace) -> int:
    tracer = ReplayTracer()

    def handler(event: HookEvent) -> dict:
        started = time.monotonic()
        output = handle_prompt(event, tracer=tracer)
        if not event.prompt:
            return output
        context = output.get("hookSpecificOutput", {}).get("additionalContext")
        tracer.hook_result(
            event.project_dir,
            event.session_id or None,
            "keyword-detector",
            "UserPromptSubmit",
            int((time.monotonic() - started) * 1000),
            context is not None,
            len(context) if context is not None else None,
        )
        return output

    return _run_hook("keyword-detect", PASSTHROUGH, handler)


def hook_persistent_mode(args: argparse.Namespace) -> int:
    return _run_hook(
        "persistent-mode",
        ALLOW_STOP,
        lambda event: decide(event).to_hook_output(),
    )


def cmd_status(args: argparse.Namespace) -> int:
    directory = args.directory or os.getcwd()
    config = load_config()
    report = {
        "directory": directory,
        "session_id": args.session,
        "active_modes": get_active_modes(directory, args.session, config),
        "sessions": {
            sid: get_active_modes(directory, sid, config)
            for sid in list_session_ids(directory)
        },
    }
    _emit(report)
    return 0


def cmd_cancel(args: argparse.Namespace) -> int:
    directory = args.directory or os.getcwd()
    cleared = cancel_all(directory, args.session)
    _emit({"cleared": cleared, "directory": directory, "session_id": args.session})
    return 0 if cleared else 1


def cmd_cleanup(args: argparse.Namespace) -> int:
    directory = args.directory or os.getcwd()
    max_age_ms: Optional[int] = None
    if args.max_age_hours is not None:
        max_age_ms = int(args.max_age_hours * HOUR_MS)
    removed = clear_stale_session_dirs(directory, max_age_ms)
    _emit({"removed_sessions": removed, "directory": directory})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="omc-modes",
        description="Execution-mode hooks: keyword activation and stop continuation",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser(
        "keyword-detect", help="UserPromptSubmit hook: detect mode keywords",
    ).set_defaults(func=hook_keyword_detect)
    sub.add_parser(
        "persistent-mode", help="Stop hook: decide whether the session may stop",
    ).set_defaults(func=hook_persistent_mode)

    for name, func, help_text in (
        ("status", cmd_status, "Print active modes as JSON"),
        ("cancel", cmd_cancel, "Clear all mode state for a directory/session"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("-d", "--directory", help="Project directory (default: cwd)")
        p.add_argument("-s", "--session", help="Session id")
        p.set_defaults(func=func)

    cleanup = sub.add_parser("cleanup", help="Remove stale session state directories")
    cleanup.add_argument("-d", "--directory", help="Project directory (default: cwd)")
    cleanup.add_argument(
        "--max-age-hours", type=float, default=None,
        help="Age after which a session directory is removed (default: 24)",
    )
    cleanup.set_defaults(func=cmd_cleanup)
    return parser


HOOK_COMMANDS = ("keyword-detect", "persistent-mode")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    argv = sys.argv[1:] if argv is None else argv
    configure_logging(load_config().log_level)
    args = build_parser().parse_args(argv)
    return args.func(args)


def run() -> None:
    """Console-script wrapper: hook commands never exit non-zero."""
    argv = sys.argv[1:]
    try:
        sys.exit(main(argv))
    except SystemExit:
        raise
    except Exception as e:
        command = argv[0] if argv else ""
        if command in HOOK_COMMANDS:
            print(json.dumps(PASSTHROUGH if command == "keyword-detect" else ALLOW_STOP))
            print(json.dumps({"error": str(e), "hook_safe_exit": True}), file=sys.stderr)
            sys.exit(0)
        raise
