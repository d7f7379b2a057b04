r"""Atomic file primitives for mode state.

Every mode state file can be read and rewritten by several short-lived hook
processes at overlapping times (parallel sub-agents share one project
directory). This module gives the state store its all-or-nothing writes.

**Core primitives:**
- atomic_write_json: Atomic write-or-fail using temp file + rename
- read_json: Lock-free read (rename makes every observed file complete)
- locked_update_json: Read-modify-write under an exclusive sidecar lock
- remove_file: Idempotent delete under the same sidecar lock

**Guarantees:**
- Atomicity: Writes complete fully or not at all (no partial states)
- Isolation: portalocker sidecar locks serialize read-modify-write updates
- Bounded waits: every lock acquisition has a timeout

**Error handling:**
- TransactionError: write, rename or parse failure
- LockTimeoutError: sidecar lock not acquired within the timeout
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

import portalocker

DEFAULT_TIMEOUT = 2.0
LOCK_SUFFIX = ".lock"


class TransactionError(Exception):
    """Base exception for transaction failures."""
    pass


class LockTimeoutError(TransactionError):
    """Raised when lock acquisition times out."""
    pass


def lock_path_for(path: Path | str) -> Path:
    """Sidecar lock file used by locked_update_json."""
    path = Path(path)
    return path.with_name(path.name + LOCK_SUFFIX)


def atomic_write_json(path: Path | str, data: Any, fsync: bool = True) -> None:
    """Replace a state file in one rename.

    Readers see either the previous record or the new one, never a torn
    write. The temp file lives next to the target so os.replace stays on one
    filesystem.

    Args:
        path: State file to replace
        data: JSON-serializable record
        fsync: Flush the temp file to disk before the rename

    Raises:
        TransactionError: The record could not be serialized or renamed
    """
    path = Path(path)
    tmp_name: Optional[str] = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.stem}.", suffix=".tmp", dir=str(path.parent),
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(data, indent=2))
            if fsync:
                f.flush()
                os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except (OSError, TypeError, ValueError) as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
        raise TransactionError(f"Cannot write {path}: {e}") from e


def read_json(path: Path | str, default: Optional[Any] = None) -> Any:
    """Read a JSON file written by atomic_write_json.

    Args:
        path: File path to read
        default: Value returned when the file is missing or empty

    Returns:
        Parsed JSON data or default

    Raises:
        TransactionError: On unreadable file or invalid JSON
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return default
    except (OSError, UnicodeDecodeError) as e:
        raise TransactionError(f"Cannot read {path}: {e}") from e

    if not content.strip():
        return default

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise TransactionError(f"Invalid JSON in {path}: {e}") from e


def locked_update_json(
    path: Path | str,
    update_fn: Callable[[Any], Any],
    timeout: float = DEFAULT_TIMEOUT,
    default: Optional[Any] = None,
) -> Any:
    """Update a JSON file with read-modify-write under an exclusive lock.

    **Transaction semantics:**
    1. Acquire exclusive sidecar lock (`<file>.lock`)
    2. Read current state (or default if missing, empty or corrupt)
    3. Call update_fn(current_state) -> new_state
    4. Atomic write of new_state (skipped when update_fn returns None)
    5. Release lock

    Readers never take the lock; the rename in step 4 keeps them safe.
    remove_file() takes the same lock, so a file deleted first is seen here
    as missing and update_fn decides whether to recreate it.

    Args:
        path: File path to update
        update_fn: Transform function: old_state -> new_state
        timeout: Lock acquisition timeout in seconds
        default: Initial state if file doesn't exist

    Returns:
        New state returned by update_fn

    Raises:
        LockTimeoutError: If the lock is not acquired within timeout
        TransactionError: On read/write failure
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise TransactionError(f"Cannot create {path.parent}: {e}") from e

    try:
        with portalocker.Lock(
            str(lock_path_for(path)),
            mode='a',
            flags=portalocker.LOCK_EX | portalocker.LOCK_NB,
            timeout=timeout,
        ):
            try:
                current_state = read_json(path, default=default)
            except TransactionError:
                # Corrupted file - treat as default
                current_state = default

            new_state = update_fn(current_state)
            if new_state is not None:
                atomic_write_json(path, new_state)
            return new_state

    except portalocker.exceptions.LockException as e:
        raise LockTimeoutError(f"Lock timeout updating {path} after {timeout}s") from e


def remove_file(path: Path | str, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """Delete a file under its sidecar lock; a missing file counts as success.

    Taking the same lock as locked_update_json serializes a delete against
    an in-flight update: the update either finishes before the delete or
    reads the file as missing afterwards. The lock file itself stays in
    place, since unlinking it while held would hand the next locker a fresh
    inode.

    Returns:
        True if the file is gone afterwards, False on lock timeout or OS error
    """
    path = Path(path)
    if not path.exists():
        return True

    try:
        with portalocker.Lock(
            str(lock_path_for(path)),
            mode='a',
            flags=portalocker.LOCK_EX | portalocker.LOCK_NB,
            timeout=timeout,
        ):
            path.unlink(missing_ok=True)
    except portalocker.exceptions.LockException:
        return False
    except OSError:
        return False
    return True
