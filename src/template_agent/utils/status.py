"""Append-only status sink shared by concurrently running enrichment items."""

import logging
import threading
from typing import Callable, List, Optional

StatusSink = Callable[[str], None]

logger = logging.getLogger("template_agent.status")


class StatusLog:
    """Collects human-readable status lines.

    Calls from several worker threads may interleave, but each line is
    appended atomically and no line is lost. Every line is mirrored to the
    ``template_agent.status`` logger and, if given, forwarded to ``echo``
    (e.g. ``tqdm.write`` in the CLI).

    Args:
        echo: Optional callable receiving each line after it is recorded
    """

    def __init__(self, echo: Optional[StatusSink] = None):
        self._lines: List[str] = []
        self._lock = threading.Lock()
        self._echo = echo

    def __call__(self, message: str) -> None:
        with self._lock:
            self._lines.append(message)
        logger.info(message.strip())
        if self._echo is not None:
            try:
                self._echo(message)
            except Exception as e:
                # The sink must never raise into the pipeline
                logger.warning(f"Status echo failed: {e}")

    @property
    def lines(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()


def null_status(message: str) -> None:
    """Status sink that discards everything."""
