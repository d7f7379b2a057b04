"""
Cross-platform helpers for the mode hooks.

Everything here differs between Windows and POSIX hosts:
- the hook stdin deadline (SIGALRM or a daemon Timer)
- where CLAUDE_HOME lives
- how two project paths compare

Exports:
    IS_WINDOWS, CASE_INSENSITIVE_FS - platform flags
    get_claude_home() - $CLAUDE_HOME or ~/.claude
    normalize_project_path(path) - canonical form used for project matching
    setup_stdin_timeout(...) / cancel_stdin_timeout() - hook stdin deadline
"""

import os
import sys
import threading
from datetime import datetime
from pathlib import Path

IS_WINDOWS = sys.platform == "win32"
# Default APFS/HFS+ and NTFS volumes are case-insensitive
CASE_INSENSITIVE_FS = IS_WINDOWS or sys.platform == "darwin"

# Pending Windows deadline; cancel_stdin_timeout() stops it
_stdin_timer: threading.Timer | None = None


def get_claude_home() -> Path:
    """Directory holding settings.json, tasks/, todos/ and debug/."""
    env = os.environ.get("CLAUDE_HOME")
    if env:
        return Path(env)
    return Path.home() / ".claude"


def normalize_project_path(path: str | os.PathLike | None) -> str:
    """Normalize a project directory for scope comparison.

    Absolute, no trailing separator, and case-folded only where the host
    filesystem is case-insensitive.

    Args:
        path: Directory path (relative paths resolve against the cwd)

    Returns:
        Normalized path string, or "" for an empty input
    """
    if not path:
        return ""
    normalized = os.path.normpath(os.path.abspath(os.fspath(path)))
    if len(normalized) > 1:
        normalized = normalized.rstrip("\\/") or normalized
    if CASE_INSENSITIVE_FS:
        normalized = normalized.lower()
    return normalized


def _write_timeout_log(seconds: int, debug_label: str) -> None:
    try:
        log_dir = get_claude_home() / "debug"
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().isoformat()
        with open(log_dir / "hook-timeout.log", "a", encoding="utf-8") as f:
            f.write(f"{timestamp} - Timeout ({seconds}s): {debug_label}\n")
    except OSError:
        pass


def _emit_fallback(fallback: str | None) -> None:
    if fallback is None:
        return
    try:
        sys.stdout.write(fallback + "\n")
        sys.stdout.flush()
    except OSError:
        pass


def setup_stdin_timeout(seconds: int, debug_label: str = "", fallback: str | None = None) -> None:
    """
    Give the host a deadline for closing stdin.

    When it expires the hook prints `fallback` and exits 0, so a stuck
    host still gets an answer. SIGALRM on POSIX, a daemon Timer on Windows.

    Args:
        seconds: Deadline in seconds
        debug_label: Written to debug/hook-timeout.log when the deadline fires
        fallback: Line printed to stdout before exiting on timeout
    """
    global _stdin_timer
    # A second call replaces the first deadline
    cancel_stdin_timeout()

    if IS_WINDOWS:
        def _timeout_handler():
            if debug_label:
                _write_timeout_log(seconds, debug_label)
            _emit_fallback(fallback)
            os._exit(0)

        _stdin_timer = threading.Timer(seconds, _timeout_handler)
        _stdin_timer.daemon = True
        _stdin_timer.start()
    else:
        import signal

        def _handler(signum, frame):
            if debug_label:
                _write_timeout_log(seconds, debug_label)
            _emit_fallback(fallback)
            sys.exit(0)

        signal.signal(signal.SIGALRM, _handler)
        signal.alarm(seconds)


def cancel_stdin_timeout() -> None:
    """Cancel a previously set stdin timeout."""
    global _stdin_timer
    if IS_WINDOWS:
        if _stdin_timer is not None:
            _stdin_timer.cancel()
            _stdin_timer = None
    else:
        import signal

        signal.alarm(0)
