"""Cooperative cancellation for long-running import phases.

Cancellation is only honoured at explicit checkpoints before the commit
transaction opens; once pages are being written the run finishes or rolls back.
"""

import threading

from errors import ImportCancelledError


class CancellationToken:
    """Thread-safe flag checked by the parser and the orchestrator."""

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()

    def raise_if_cancelled(self, phase: str = '') -> None:
        """Raise ImportCancelledError if cancellation was requested."""
        if self._is_cancelled.is_set():
            where = f" during {phase}" if phase else ""
            raise ImportCancelledError(f"Import cancelled{where}")


def check_cancelled(token, phase: str = '') -> None:
    """Checkpoint helper that tolerates a missing token."""
    if token is not None:
        token.raise_if_cancelled(phase)


__all__ = ['CancellationToken', 'check_cancelled']
