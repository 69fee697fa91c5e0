"""Process-wide bounded worker pool for non-blocking execution.

The pool is created lazily on first use; its size comes from the settings
of that first caller. Submission is thread-safe: the executor's own queue is
the only shared structure.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_pool: ThreadPoolExecutor | None = None


def get_worker_pool(max_workers: int = 4) -> ThreadPoolExecutor:
    global _pool
    with _lock:
        if _pool is None:
            logger.debug("Starting worker pool with %d workers", max_workers)
            _pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="graph-batch")
        return _pool


def shutdown_worker_pool(*, wait: bool = True) -> None:
    """Stop the shared pool; the next `get_worker_pool` starts a fresh one."""

    global _pool
    with _lock:
        pool, _pool = _pool, None
    if pool is not None:
        pool.shutdown(wait=wait)
