"""Per-scan concurrency locks.

Each expiry scan has its own non-blocking lock: a scheduled run and a
manual trigger of the same scan never overlap, while the expiring and
expired scans may run side by side.  If the lock is already held the
caller gets False and can skip or return 409.
"""

from __future__ import annotations

import threading
from uuid import UUID

_locks: dict[str, threading.Lock] = {}
_current_runs: dict[str, UUID] = {}
_registry_lock = threading.Lock()


def _lock_for(scan: str) -> threading.Lock:
    with _registry_lock:
        return _locks.setdefault(scan, threading.Lock())


def acquire_scan_lock(scan: str, run_id: UUID) -> bool:
    """Try to acquire the lock for *scan*; return False if already held."""
    if _lock_for(scan).acquire(blocking=False):
        _current_runs[scan] = run_id
        return True
    return False


def release_scan_lock(scan: str) -> None:
    """Release the lock for *scan*.

    Safe to call even if the lock is not held.
    """
    _current_runs.pop(scan, None)
    lock = _lock_for(scan)
    if lock.locked():
        lock.release()


def get_current_run_id(scan: str) -> UUID | None:
    return _current_runs.get(scan)


def is_scan_running(scan: str) -> bool:
    return scan in _current_runs
