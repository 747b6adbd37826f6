"""Foreground execution of the container with signal-driven cancellation."""

from __future__ import annotations

import signal
import subprocess
from contextlib import contextmanager
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import psutil

from .errors import LaunchInterrupted

TERMINATION_SIGNALS: Tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


def _raise_interrupt(signum, _frame) -> None:
    raise LaunchInterrupted(signum)


@contextmanager
def termination_signals(signals: Sequence[signal.Signals] = TERMINATION_SIGNALS) -> Iterator[None]:
    """Turn the given signals into :class:`LaunchInterrupted` while the block runs."""
    previous: Dict[signal.Signals, object] = {}
    for sig in signals:
        previous[sig] = signal.signal(sig, _raise_interrupt)
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@contextmanager
def deferred_signals(signals: Sequence[signal.Signals] = TERMINATION_SIGNALS) -> Iterator[List[int]]:
    """Record the given signals instead of acting on them while the block runs.

    Yields the list the received signal numbers are appended to; the caller
    decides whether to re-raise once its teardown is complete.
    """
    received: List[int] = []

    def _record(signum, _frame) -> None:
        received.append(signum)

    previous: Dict[signal.Signals, object] = {}
    for sig in signals:
        previous[sig] = signal.signal(sig, _record)
    try:
        yield received
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def terminate_process_tree(pid: int, *, grace_sec: float = 10.0) -> None:
    """SIGTERM ``pid`` and its descendants, then SIGKILL whatever is left."""
    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return

    for proc in procs:
        try:
            proc.terminate()
        except psutil.NoSuchProcess:
            continue
    _, alive = psutil.wait_procs(procs, timeout=grace_sec)
    for proc in alive:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
    if alive:
        psutil.wait_procs(alive, timeout=grace_sec)


def run_foreground(
    cmd: Sequence[str],
    *,
    env: Optional[Mapping[str, str]] = None,
    grace_sec: float = 10.0,
) -> int:
    """Run ``cmd`` with inherited stdio and return its exit code.

    If the wait is interrupted the child's process tree is terminated and
    reaped before the first interrupt propagates; further signals arriving
    during the teardown are ignored.
    """
    proc = subprocess.Popen(list(cmd), env=dict(env) if env is not None else None)
    try:
        return proc.wait()
    except BaseException:
        with deferred_signals():
            terminate_process_tree(proc.pid, grace_sec=grace_sec)
            proc.wait()
        raise


__all__ = [
    "TERMINATION_SIGNALS",
    "deferred_signals",
    "run_foreground",
    "terminate_process_tree",
    "termination_signals",
]
