# File: crudforge/locking.py
"""
crudforge - Generation Locks
=============================
Two kinds of locks keep concurrent requests from corrupting each other:

    - one non-blocking lock per struct name, held for a whole generation or
      rollback; a second operation on the same struct while the first is
      running is rejected, not queued
    - one re-entrant lock around every edit of a shared file (route registry,
      menu module)
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from crudforge.errors import ConflictError

logger: logging.Logger = logging.getLogger("crudforge.locking")


class GenerationLocks:
    """Per-struct operation locks plus the shared-files lock."""

    def __init__(self) -> None:
        self._guard: threading.Lock = threading.Lock()
        self._in_flight: Dict[str, threading.Lock] = {}
        self._activity: Dict[str, str] = {}
        self.shared_files: threading.RLock = threading.RLock()

    def is_in_flight(self, struct_name: str) -> bool:
        with self._guard:
            lock = self._in_flight.get(struct_name)
            return lock is not None and lock.locked()

    @contextmanager
    def _hold(self, struct_name: str, activity: str) -> Iterator[None]:
        with self._guard:
            lock = self._in_flight.setdefault(struct_name, threading.Lock())
            acquired: bool = lock.acquire(blocking=False)
            if acquired:
                self._activity[struct_name] = activity
            else:
                current: str = self._activity.get(struct_name, "generation")
        if not acquired:
            logger.warning(
                "%s of '%s' rejected: a %s is in flight.",
                activity.capitalize(),
                struct_name,
                current,
            )
            raise ConflictError(
                f"A {current} of '{struct_name}' is already in progress.", owner=struct_name
            )
        try:
            yield
        finally:
            with self._guard:
                self._activity.pop(struct_name, None)
            lock.release()

    @contextmanager
    def generation(self, struct_name: str) -> Iterator[None]:
        """
        Hold the lock for *struct_name* while generating it.

        Raises:
            ConflictError: A generation or rollback of the same struct is running.
        """
        with self._hold(struct_name, "generation"):
            yield

    @contextmanager
    def rollback(self, struct_name: str) -> Iterator[None]:
        """
        Hold the lock for *struct_name* while rolling it back.

        Raises:
            ConflictError: A generation or rollback of the same struct is running.
        """
        with self._hold(struct_name, "rollback"):
            yield

    @contextmanager
    def shared(self) -> Iterator[None]:
        with self.shared_files:
            yield


__all__: List[str] = ["GenerationLocks"]
