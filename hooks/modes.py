#!/usr/bin/env python3
"""
Mode Hook Wrapper - Thin wrapper that delegates to the omc_modes package.

Reads the hook input JSON from stdin and forwards it to the matching
omc_modes command in-process.

Usage:
    python3 modes.py prompt    # UserPromptSubmit hook (keyword detection)
    python3 modes.py stop      # Stop hook (continuation decision)
"""

import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

HOOK_COMMANDS = {
    "prompt": "keyword-detect",
    "stop": "persistent-mode",
}
FALLBACKS = {
    "prompt": {"continue": True, "suppressOutput": True},
    "stop": {"continue": True},
}


def main() -> int:
    """Map the hook mode to an omc_modes command and run it."""
    if len(sys.argv) < 2 or sys.argv[1] not in HOOK_COMMANDS:
        print("Usage: modes.py [prompt|stop]", file=sys.stderr)
        return 1

    from omc_modes.cli import main as cli_main

    return cli_main([HOOK_COMMANDS[sys.argv[1]]])


if __name__ == "__main__":
    try:
        sys.exit(main())
    except SystemExit:
        raise
    except Exception as e:
        # Hooks must exit 0 with an answer, even if the package fails to import
        mode = sys.argv[1] if len(sys.argv) > 1 else "stop"
        print(json.dumps(FALLBACKS.get(mode, FALLBACKS["stop"])))
        print(json.dumps({"error": str(e), "hook_safe_exit": True}), file=sys.stderr)
        sys.exit(0)
