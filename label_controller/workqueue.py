"""Thread-safe work queue of pod keys."""

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Set

from .config import BACKOFF_BASE_SECONDS, BACKOFF_MAX_SECONDS

logger = logging.getLogger(__name__)


class WorkQueue:
    """
    Queue of keys with controller semantics.

    A key is queued at most once. A key handed out by ``get`` is not handed
    out again until ``done`` is called for it; if it was added in the
    meantime it goes back on the queue at that point. Keys can also be added
    after a delay, and ``add_rate_limited`` delays them with per-key bounded
    exponential backoff until ``forget`` resets the counter.
    """

    def __init__(
        self,
        base_delay: float = BACKOFF_BASE_SECONDS,
        max_delay: float = BACKOFF_MAX_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._clock = clock

        self._queue: Deque[str] = deque()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._waiting: Dict[str, float] = {}  # key -> due at
        self._failures: Dict[str, int] = {}
        self._shutting_down = False
        self._cond = threading.Condition(threading.Lock())

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def _add_locked(self, key: str) -> None:
        if key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def _promote_due_locked(self) -> Optional[float]:
        """Move due keys onto the queue; return the next due time, if any."""
        now = self._clock()
        next_due = None
        for key, due in list(self._waiting.items()):
            if due <= now:
                del self._waiting[key]
                self._add_locked(key)
            elif next_due is None or due < next_due:
                next_due = due
        return next_due

    def add(self, key: str) -> None:
        """Queue a key now."""
        with self._cond:
            if self._shutting_down:
                return
            self._add_locked(key)

    def add_after(self, key: str, delay: float) -> None:
        """Queue a key once delay seconds have passed."""
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            due = self._clock() + delay
            # Keep the earlier of two pending deadlines
            if key not in self._waiting or due < self._waiting[key]:
                self._waiting[key] = due
            self._cond.notify()

    def add_rate_limited(self, key: str) -> float:
        """
        Queue a key after its backoff delay.

        Returns:
            The delay applied, in seconds
        """
        with self._cond:
            failures = self._failures.get(key, 0) + 1
            self._failures[key] = failures
        delay = min(self.max_delay, self.base_delay * (2 ** (failures - 1)))
        self.add_after(key, delay)
        return delay

    def forget(self, key: str) -> None:
        """Reset the backoff counter for a key."""
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Take the next key, blocking until one is available.

        Args:
            timeout: Seconds to wait (None waits until shutdown)

        Returns:
            The key, or None on timeout or shutdown
        """
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                if self._shutting_down:
                    return None
                next_due = self._promote_due_locked()
                if self._queue:
                    key = self._queue.popleft()
                    self._processing.add(key)
                    self._dirty.discard(key)
                    return key

                now = self._clock()
                wait = None
                if next_due is not None:
                    wait = next_due - now
                if deadline is not None:
                    remaining = deadline - now
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: str) -> None:
        """Mark a key as processed."""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty and not self._shutting_down:
                self._queue.append(key)
                self._cond.notify()

    def shut_down(self) -> None:
        """Stop handing out keys and wake every waiting worker."""
        with self._cond:
            self._shutting_down = True
            self._waiting.clear()
            self._cond.notify_all()
        logger.debug("Work queue shut down")

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down
