# backend/tests/unit/test_locks_deadline.py
import threading
import time

import pytest

from kraft.exceptions import ConflictError, OperationTimeoutError
from kraft.services.deadline import run_bounded
from kraft.services.locks import KeyedLock


def test_lock_is_released_and_dropped():
    locks = KeyedLock()
    with locks.hold(("instance", 1), timeout=1):
        assert len(locks) == 1
    assert len(locks) == 0


def test_same_key_waits_then_conflicts():
    locks = KeyedLock()
    entered = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold("a", timeout=1):
            entered.set()
            release.wait(2)

    thread = threading.Thread(target=holder)
    thread.start()
    entered.wait(1)
    try:
        with pytest.raises(ConflictError):
            with locks.hold("a", timeout=0.1):
                pass
        # Different keys never block
        with locks.hold("b", timeout=0.1):
            pass
    finally:
        release.set()
        thread.join()
    assert len(locks) == 0


def test_run_bounded_returns_result():
    assert run_bounded(lambda: 42, 1, "answer") == 42


def test_run_bounded_propagates_errors():
    def boom():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        run_bounded(boom, 1, "boom")


def test_run_bounded_times_out_and_cleans_up():
    cleaned = []

    with pytest.raises(OperationTimeoutError) as exc_info:
        run_bounded(lambda: time.sleep(0.5), 0.05, "sleep", on_timeout=lambda: cleaned.append(True))

    assert exc_info.value.kind == "timeout"
    assert cleaned == [True]


def test_run_bounded_cleanup_failure_still_raises_timeout():
    def broken_cleanup():
        raise RuntimeError("cleanup failed")

    with pytest.raises(OperationTimeoutError):
        run_bounded(lambda: time.sleep(0.5), 0.05, "sleep", on_timeout=broken_cleanup)


def test_run_bounded_maps_inner_timeout():
    def gives_up():
        raise TimeoutError("socket read timed out")

    with pytest.raises(OperationTimeoutError) as exc_info:
        run_bounded(gives_up, 1, "read")

    assert exc_info.value.kind == "timeout"


def test_run_bounded_hands_off_late_result():
    late = []
    done = threading.Event()

    def collect(value):
        late.append(value)
        done.set()

    def slow():
        time.sleep(0.2)
        return "backend-1"

    with pytest.raises(OperationTimeoutError):
        run_bounded(slow, 0.05, "create", on_late_result=collect)

    assert done.wait(2)
    assert late == ["backend-1"]


def test_run_bounded_late_failure_is_not_handed_off():
    late = []

    def slow_failure():
        time.sleep(0.2)
        raise RuntimeError("boot failed")

    with pytest.raises(OperationTimeoutError):
        run_bounded(slow_failure, 0.05, "create", on_late_result=late.append)

    time.sleep(0.4)
    assert late == []
