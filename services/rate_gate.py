# services/rate_gate.py
"""
Per-account minimum-delay gate between consecutive sends
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Hashable

logger = logging.getLogger(__name__)


class RateGate:
    """
    Serializes sends per key and keeps at least min_delay seconds between them

    The finish time of every attempt (successful or not) is recorded, so the
    start of the next send for the same key is never closer than min_delay to
    the start of the previous one. Different keys never wait on each other.
    """

    def __init__(self,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self._clock = clock
        self._sleep = sleep
        self._last_sent: Dict[Hashable, float] = {}
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: Hashable) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def slot(self, key: Hashable, min_delay: float):
        """Hold the key's send slot, waiting out the remaining delay first"""
        with self._lock_for(key):
            last = self._last_sent.get(key)
            if last is not None:
                wait = min_delay - (self._clock() - last)
                if wait > 0:
                    logger.debug(f"Rate gate for {key}: sleeping {wait:.2f}s")
                    self._sleep(wait)
            try:
                yield
            finally:
                self._last_sent[key] = self._clock()
