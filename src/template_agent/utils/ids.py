"""Identifier allocation for template elements that arrive without an id."""

import threading
from typing import Callable, Dict
from uuid import uuid4

# Receives a short prefix ("M", "T", "S", "ENV", "A", ...) and returns a new id
IdAllocator = Callable[[str], str]


def uuid_allocator(prefix: str) -> str:
    """Default allocator: prefix plus the first 12 hex digits of a UUID4."""
    return f"{prefix}{uuid4().hex[:12]}"


class SequentialIdAllocator:
    """Deterministic allocator producing ``M1, M2, T1, ...`` per prefix.

    Safe to share between the worker threads of flow generation.
    """

    def __init__(self):
        self._counters: Dict[str, int] = {}
        self._lock = threading.Lock()

    def __call__(self, prefix: str) -> str:
        with self._lock:
            self._counters[prefix] = self._counters.get(prefix, 0) + 1
            return f"{prefix}{self._counters[prefix]}"
