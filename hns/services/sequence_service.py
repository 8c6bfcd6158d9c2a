"""
Sequence allocation service for hostname templates.

One allocator instance is created at startup and handed to every service that
needs sequence numbers. Each template id gets its own counter and its own
lock, so callers on unrelated templates never wait on each other.
"""
import threading
from typing import Callable, Dict, Mapping, Optional


class SequenceAllocator:
    """
    State:
        _counters: {template_id -> last issued value} (absent means 0)
        _locks: {template_id -> threading.Lock} guarding that template's counter
        _guard: lock held only while creating a missing per-template lock
        on_issue: called with (template_id, value) before a value is handed out;
            if it raises, the counter is left where it was
    """

    def __init__(
        self,
        counters: Optional[Mapping[int, int]] = None,
        on_issue: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        self.on_issue = on_issue
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}
        self._counters: Dict[int, int] = {}
        for template_id, last in (counters or {}).items():
            self.seed(int(template_id), int(last))

    def _lock_for(self, template_id: int) -> threading.Lock:
        lock = self._locks.get(template_id)
        if lock is None:
            with self._guard:
                lock = self._locks.setdefault(template_id, threading.Lock())
        return lock

    def next(self, template_id: int) -> int:
        """Issue the next value for a template: strictly increasing, starting at 1.

        An issued value is never handed out again, even if the caller never
        reserves it.
        """
        with self._lock_for(template_id):
            value = self._counters.get(template_id, 0) + 1
            if self.on_issue is not None:
                self.on_issue(template_id, value)
            self._counters[template_id] = value
            return value

    def peek(self, template_id: int) -> int:
        """Value the next call to ``next`` would issue. Consumes nothing."""
        with self._lock_for(template_id):
            return self._counters.get(template_id, 0) + 1

    def current(self, template_id: int) -> int:
        """Last issued value, 0 if none."""
        with self._lock_for(template_id):
            return self._counters.get(template_id, 0)

    def seed(self, template_id: int, last_issued: int) -> None:
        """Raise a counter to at least ``last_issued``. Never lowers it."""
        with self._lock_for(template_id):
            if last_issued > self._counters.get(template_id, 0):
                self._counters[template_id] = last_issued

    def snapshot(self) -> Dict[int, int]:
        """Copy of all counters, each read under its own lock."""
        with self._guard:
            keys = list(self._locks)
        result = {}
        for template_id in keys:
            with self._lock_for(template_id):
                if template_id in self._counters:
                    result[template_id] = self._counters[template_id]
        return result
