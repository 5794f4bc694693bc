"""Cooperative cancellation token threaded through every network-issuing call."""

import threading
from typing import Optional

from template_agent.exceptions import OperationCancelled


class CancellationToken:
    """Thread-safe cancellation signal owned by the caller.

    The pipeline only reads the token; creating and triggering it is the
    caller's job (e.g. a CLI Ctrl-C handler or a UI cancel button).

    Example:
        >>> token = CancellationToken()
        >>> token.raise_if_cancelled()  # no-op
        >>> token.cancel("user pressed cancel")
        >>> token.cancelled
        True
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._event.is_set():
            self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelled if the token has been triggered."""
        if self._event.is_set():
            raise OperationCancelled(self.reason or "Operation cancelled")

    def wait(self, timeout: float) -> None:
        """Sleep for up to ``timeout`` seconds, aborting early on cancellation.

        Raises:
            OperationCancelled: If the token is triggered before or during the wait
        """
        if self._event.wait(timeout):
            self.raise_if_cancelled()


def raise_if_cancelled(token: Optional[CancellationToken]) -> None:
    """Check an optional token; ``None`` means the call cannot be cancelled."""
    if token is not None:
        token.raise_if_cancelled()
