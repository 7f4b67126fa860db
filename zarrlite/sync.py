import atexit
import logging
import os
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from contextlib import contextmanager
from threading import Lock
from typing import Callable, Iterable, Optional

from zarrlite.config import config

logger = logging.getLogger(__name__)

_executor: Optional[ThreadPoolExecutor] = None  # global executor placeholder
_executor_lock = Lock()


class _KeyLock:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = Lock()
        self.holders = 0


class ThreadSynchronizer:
    """Provides synchronization using thread locks, one per key.

    Locks are created the first time a key is requested and dropped again as
    soon as no thread holds or waits for them, so the table only ever contains
    the keys currently in use.

    Examples
    --------
    >>> sync = ThreadSynchronizer()
    >>> with sync["0.0"]:
    ...     pass  # read-modify-write chunk 0.0
    >>> len(sync)
    0

    """

    def __init__(self):
        self.mutex = Lock()
        self.locks = dict()

    def __getitem__(self, item):
        return self._locked(item)

    @contextmanager
    def _locked(self, item):
        with self.mutex:
            entry = self.locks.get(item)
            if entry is None:
                entry = self.locks[item] = _KeyLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self.mutex:
                entry.holders -= 1
                if entry.holders == 0:
                    del self.locks[item]

    def __len__(self):
        with self.mutex:
            return len(self.locks)

    def __getstate__(self):
        return True

    def __setstate__(self, *args):
        # reinitialize from scratch
        self.__init__()


def _get_executor() -> ThreadPoolExecutor:
    """Return the shared thread pool executor.

    The executor is allocated on first use.
    """
    global _executor
    with _executor_lock:
        if not _executor:
            max_workers = config.get("threading.max_workers", None)
            logger.debug("Creating zarrlite ThreadPoolExecutor with max_workers=%s", max_workers)
            _executor = ThreadPoolExecutor(max_workers=max_workers,
                                           thread_name_prefix="zarrlite_pool")
    return _executor


def cleanup_resources() -> None:
    global _executor
    if _executor:
        _executor.shutdown(wait=True, cancel_futures=True)
    _executor = None


atexit.register(cleanup_resources)


def reset_resources_after_fork() -> None:
    """
    Ensure that the executor is reset after a fork, forked processes would otherwise
    retain a reference to the parent process's pool.
    """
    global _executor, _executor_lock
    _executor = None  # pragma: no cover
    _executor_lock = Lock()  # pragma: no cover


# this is only available on certain operating systems
if hasattr(os, "register_at_fork"):
    os.register_at_fork(after_in_child=reset_resources_after_fork)


def run_all(func: Callable, items: Iterable, parallel: bool) -> None:
    """Call `func` on every item, either in order in the calling thread or
    concurrently on the shared executor.

    The first exception raised by any call is re-raised once all started calls
    have finished; calls that have not started yet are cancelled.
    """
    if not parallel:
        for item in items:
            func(item)
        return

    executor = _get_executor()
    futures = [executor.submit(func, item) for item in items]
    done, not_done = wait(futures, return_when=FIRST_EXCEPTION)
    for f in not_done:
        f.cancel()
    # wait for calls that were already running
    wait(not_done)
    for f in futures:
        if f in done and f.exception() is not None:
            raise f.exception()
