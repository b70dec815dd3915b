import asyncio
import threading

import pytest

from bac_dispatch.app.timers import LoopScheduler, Scheduler
from tests.helpers import ManualScheduler


class TestLoopScheduler:
    async def test_satisfies_protocol(self):
        assert isinstance(LoopScheduler(), Scheduler)
        assert isinstance(ManualScheduler(), Scheduler)

    async def test_time_follows_loop_clock(self):
        loop = asyncio.get_running_loop()
        scheduler = LoopScheduler()
        assert scheduler.loop is loop
        assert abs(scheduler.time() - loop.time()) < 1.0

    async def test_call_later_on_loop(self):
        fired = asyncio.Event()
        LoopScheduler().call_later(0.01, fired.set)
        await asyncio.wait_for(fired.wait(), 5)

    async def test_cancel_on_loop(self):
        calls = []
        handle = LoopScheduler().call_later(0.01, calls.append, 1)
        handle.cancel()
        await asyncio.sleep(0.05)
        assert calls == []

    async def test_call_later_from_other_thread(self):
        loop = asyncio.get_running_loop()
        scheduler = LoopScheduler()
        fired = asyncio.Event()
        thread_ids = []

        def on_fire(tag):
            thread_ids.append((tag, threading.get_ident()))
            fired.set()

        worker = threading.Thread(target=scheduler.call_later, args=(0.01, on_fire, "x"))
        worker.start()
        worker.join()
        await asyncio.wait_for(fired.wait(), 5)
        assert thread_ids == [("x", threading.get_ident())]
        assert asyncio.get_running_loop() is loop

    async def test_cancel_from_other_thread(self):
        scheduler = LoopScheduler()
        calls = []
        handles = []
        worker = threading.Thread(target=lambda: handles.append(scheduler.call_later(0.05, calls.append, 1)))
        worker.start()
        worker.join()
        handles[0].cancel()
        await asyncio.sleep(0.1)
        assert calls == []

    def test_requires_running_loop(self):
        with pytest.raises(RuntimeError):
            LoopScheduler()


class TestManualScheduler:
    def test_runs_due_timers_in_order(self):
        scheduler = ManualScheduler()
        order = []
        scheduler.call_later(2.0, order.append, "b")
        scheduler.call_later(1.0, order.append, "a")
        scheduler.call_later(5.0, order.append, "c")
        scheduler.advance(2.0)
        assert order == ["a", "b"]
        assert scheduler.time() == 2.0
        assert scheduler.pending == 1
