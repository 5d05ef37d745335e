"""
In-process registry of running syncs, one slot per (store_id, provider_type).
Prevents two triggers (scheduler, admin, auto-sync) from racing on the same rows.
Process-local: a multi-process deployment needs a database advisory lock instead.
"""
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, Tuple

from app.services.exceptions import SyncAlreadyRunning

logger = logging.getLogger(__name__)


class RunRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._running: Dict[Tuple[str, str], datetime] = {}

    @contextmanager
    def acquire(self, store_id: str, provider_type: str) -> Iterator[None]:
        key = (store_id, provider_type)
        with self._lock:
            if key in self._running:
                raise SyncAlreadyRunning(store_id, provider_type)
            self._running[key] = datetime.now(timezone.utc)
        try:
            yield
        finally:
            with self._lock:
                self._running.pop(key, None)

    def is_running(self, store_id: str, provider_type: str) -> bool:
        with self._lock:
            return (store_id, provider_type) in self._running

    def running_since(self, store_id: str, provider_type: str):
        with self._lock:
            return self._running.get((store_id, provider_type))


# Global registry shared by HTTP triggers and the auto-sync worker
run_registry = RunRegistry()
