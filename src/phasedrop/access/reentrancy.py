"""Serialising, non-reentrant operation guard.

Two jobs in one object:
1. Serialisation — a single exclusive lock means no two state-mutating
   operations are ever in flight at once, from any thread.
2. Re-entry refusal — if the thread already inside a guarded operation
   tries to start another (for example from an asset transfer hook),
   ReentrantCall is raised instead of deadlocking.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from phasedrop.errors import ReentrantCall


class NonReentrant:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._holder: Optional[int] = None
        self._operation: Optional[str] = None

    @property
    def entered(self) -> bool:
        return self._holder is not None

    @contextmanager
    def guard(self, operation: str) -> Iterator[None]:
        me = threading.get_ident()
        if self._holder == me:
            raise ReentrantCall(
                f"{operation} called while {self._operation} is still running"
            )
        with self._lock:
            self._holder = me
            self._operation = operation
            try:
                yield
            finally:
                self._holder = None
                self._operation = None
