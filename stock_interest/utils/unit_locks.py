import logging
import threading
from contextlib import contextmanager

from stock_interest.core.errors import LockContentionError

logger = logging.getLogger(__name__)


class _ReadWriteLock:
    """Many readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self.users = 0  # holders plus waiters, guarded by the registry mutex
        self._readers = 0
        self._writer = False

    def acquire_read(self, timeout: float) -> bool:
        with self._cond:
            if not self._cond.wait_for(lambda: not self._writer, timeout):
                return False
            self._readers += 1
            return True

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self, timeout: float) -> bool:
        with self._cond:
            if not self._cond.wait_for(lambda: not self._writer and self._readers == 0, timeout):
                return False
            self._writer = True
            return True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()


class UnitLockRegistry:
    """One reader/writer lock per financed unit, created on first use.

    The registry mutex only guards the dict; operations on different
    units never wait on each other. A lock is evicted once no holder or
    waiter references it, so the dict only holds units in flight.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._locks = {}
        self._registry_mutex = threading.Lock()

    def _checkout(self, unit_id) -> _ReadWriteLock:
        with self._registry_mutex:
            lock = self._locks.get(unit_id)
            if lock is None:
                lock = self._locks[unit_id] = _ReadWriteLock()
            lock.users += 1
            return lock

    def _checkin(self, unit_id, lock: _ReadWriteLock) -> None:
        with self._registry_mutex:
            lock.users -= 1
            if lock.users == 0:
                del self._locks[unit_id]

    def tracked(self) -> int:
        with self._registry_mutex:
            return len(self._locks)

    @contextmanager
    def write(self, unit_id):
        lock = self._checkout(unit_id)
        try:
            if not lock.acquire_write(self.timeout):
                logger.warning("Write lock contention on unit %s after %ss", unit_id, self.timeout)
                raise LockContentionError(unit_id, self.timeout)
            try:
                yield
            finally:
                lock.release_write()
        finally:
            self._checkin(unit_id, lock)

    @contextmanager
    def read(self, unit_id):
        lock = self._checkout(unit_id)
        try:
            if not lock.acquire_read(self.timeout):
                logger.warning("Read lock contention on unit %s after %ss", unit_id, self.timeout)
                raise LockContentionError(unit_id, self.timeout)
            try:
                yield
            finally:
                lock.release_read()
        finally:
            self._checkin(unit_id, lock)
