import asyncio
import threading

import pytest

from bac_dispatch.app.future import FutureState, ServiceFuture
from bac_dispatch.services.errors import (
    BACnetCallerTimeoutError,
    BACnetCancelledError,
    BACnetTimeoutError,
    FutureAlreadyResolvedError,
)


class TestResolution:
    def test_starts_pending(self):
        future = ServiceFuture("read")
        assert future.poll() is FutureState.PENDING
        assert not future.done()
        assert "read" in repr(future)

    def test_first_result_wins(self):
        future = ServiceFuture()
        assert future.try_set_result(1) is True
        assert future.try_set_result(2) is False
        assert future.try_set_exception(ValueError("late")) is False
        assert future.result(0) == 1
        assert future.succeeded()

    def test_first_failure_wins(self):
        future = ServiceFuture()
        error = BACnetTimeoutError(attempts=3)
        assert future.try_set_exception(error) is True
        assert future.try_set_result(5) is False
        assert future.failed()
        assert future.exception(0) is error
        with pytest.raises(BACnetTimeoutError):
            future.result(0)

    def test_set_result_twice_raises(self):
        future = ServiceFuture()
        future.set_result("a")
        with pytest.raises(FutureAlreadyResolvedError):
            future.set_result("b")
        assert future.result(0) == "a"

    def test_set_exception_after_result_raises(self):
        future = ServiceFuture()
        future.set_result(None)
        with pytest.raises(FutureAlreadyResolvedError):
            future.set_exception(ValueError("x"))

    def test_exception_is_none_on_success(self):
        future = ServiceFuture()
        future.set_result(3)
        assert future.exception(0) is None


class TestCallbacks:
    def test_callback_runs_once_on_resolution(self):
        future = ServiceFuture()
        seen = []
        future.add_done_callback(lambda f: seen.append(f.result(0)))
        future.set_result(7)
        future.try_set_result(8)
        assert seen == [7]

    def test_callback_added_after_resolution_runs_immediately(self):
        future = ServiceFuture()
        future.set_result(1)
        seen = []
        future.add_done_callback(seen.append)
        assert seen == [future]

    def test_raising_callback_is_logged_and_others_still_run(self, caplog):
        future = ServiceFuture()
        seen = []

        def bad(_):
            raise RuntimeError("boom")

        future.add_done_callback(bad)
        future.add_done_callback(lambda f: seen.append("ok"))
        with caplog.at_level("ERROR", logger="bac_dispatch.app.future"):
            future.set_result(None)
        assert seen == ["ok"]
        assert "raised" in caplog.text

    def test_remove_done_callback(self):
        future = ServiceFuture()
        seen = []
        future.add_done_callback(seen.append)
        assert future.remove_done_callback(seen.append) == 1
        future.set_result(1)
        assert seen == []


class TestThen:
    def test_maps_value(self):
        source = ServiceFuture()
        derived = source.then(lambda v: v * 2)
        source.set_result(21)
        assert derived.result(0) == 42

    def test_propagates_failure_unchanged(self):
        source = ServiceFuture()
        derived = source.then(lambda v: v)
        error = BACnetTimeoutError(attempts=1)
        source.set_exception(error)
        assert derived.exception(0) is error

    def test_mapping_error_fails_derived(self):
        source = ServiceFuture()
        derived = source.then(lambda v: int(v))
        source.set_result("not a number")
        assert isinstance(derived.exception(0), ValueError)

    def test_cancelling_derived_cancels_source(self):
        source = ServiceFuture()
        derived = source.then(lambda v: v)
        assert derived.cancel() is True
        assert source.cancelled()
        assert derived.cancelled()


class TestCancellation:
    def test_cancel_without_canceller(self):
        future = ServiceFuture()
        assert future.cancel() is True
        assert future.cancelled()
        assert isinstance(future.exception(0), BACnetCancelledError)

    def test_cancel_after_resolution_is_noop(self):
        future = ServiceFuture()
        future.set_result(1)
        assert future.cancel() is False
        assert future.result(0) == 1

    def test_cancel_delegates_to_bound_canceller(self):
        future = ServiceFuture()
        calls = []

        def canceller(f):
            calls.append(f)
            return f.try_set_exception(BACnetCancelledError("stopped"))

        future.bind_canceller(canceller)
        assert future.cancel() is True
        assert calls == [future]
        assert future.cancelled()


class TestBlockingWait:
    def test_result_times_out(self):
        future = ServiceFuture()
        with pytest.raises(BACnetCallerTimeoutError):
            future.result(timeout=0.01)
        assert future.poll() is FutureState.PENDING

    def test_caller_timeout_is_a_timeout_error(self):
        future = ServiceFuture()
        with pytest.raises(TimeoutError):
            future.exception(timeout=0.01)

    def test_result_from_other_thread(self):
        future = ServiceFuture()
        worker = threading.Timer(0.01, future.set_result, args=("done",))
        worker.start()
        try:
            assert future.result(timeout=5) == "done"
        finally:
            worker.join()


class TestAsyncWait:
    async def test_await_resolved_future(self):
        future = ServiceFuture()
        future.set_result(4)
        assert await future == 4

    async def test_await_resolution_from_loop(self):
        future = ServiceFuture()
        asyncio.get_running_loop().call_later(0.01, future.set_result, "later")
        assert await future.wait(5) == "later"

    async def test_await_resolution_from_thread(self):
        future = ServiceFuture()
        worker = threading.Timer(0.01, future.set_result, args=(9,))
        worker.start()
        try:
            assert await future.wait(5) == 9
        finally:
            worker.join()

    async def test_await_failure_raises(self):
        future = ServiceFuture()
        asyncio.get_running_loop().call_soon(future.set_exception, BACnetTimeoutError(attempts=2))
        with pytest.raises(BACnetTimeoutError):
            await future

    async def test_caller_timeout_leaves_exchange_running(self):
        future = ServiceFuture()
        with pytest.raises(BACnetCallerTimeoutError):
            await future.wait(0.01)
        assert future.poll() is FutureState.PENDING
        future.set_result(1)
        assert await future == 1
