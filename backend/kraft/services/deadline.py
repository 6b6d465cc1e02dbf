# backend/kraft/services/deadline.py
"""Bounded driver calls on a shared worker pool."""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Callable, Optional, TypeVar

from kraft.config import get_settings
from kraft.exceptions import OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=get_settings().driver_pool_size,
                thread_name_prefix="kraft-driver",
            )
    return _executor


def run_bounded(
    fn: Callable[[], T],
    timeout: float,
    operation: str,
    on_timeout: Optional[Callable[[], None]] = None,
    on_late_result: Optional[Callable[[T], None]] = None,
) -> T:
    """
    Run ``fn`` on the driver pool and wait at most ``timeout`` seconds.

    On expiry ``on_timeout`` is invoked (best effort) and
    OperationTimeoutError is raised. The worker thread is not interrupted;
    if ``fn`` still completes, its result is handed to ``on_late_result``
    on the worker thread. ``fn`` must not touch the caller's database session.
    """
    future = get_executor().submit(fn)
    try:
        return future.result(timeout=timeout)
    except (FuturesTimeoutError, TimeoutError) as e:
        if future.done():
            # fn itself gave up waiting on something
            logger.warning(f"{operation} raised a timeout: {e}")
            raise OperationTimeoutError(operation, timeout) from e
        future.cancel()
        logger.warning(f"{operation} exceeded {timeout:g}s deadline")
        if on_timeout is not None:
            try:
                on_timeout()
            except Exception as cleanup_error:
                logger.warning(f"Cleanup after {operation} timeout failed: {cleanup_error}")
        if on_late_result is not None:
            future.add_done_callback(lambda f: _deliver_late(f, operation, on_late_result))
        raise OperationTimeoutError(operation, timeout)


def _deliver_late(future: Future, operation: str, callback: Callable[[T], None]) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    logger.warning(f"{operation} finished after its deadline, handing off late result")
    try:
        callback(future.result())
    except Exception as e:
        logger.error(f"Handling late result of {operation} failed: {e}")
