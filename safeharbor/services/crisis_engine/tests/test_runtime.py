"""Tests for the long-lived engine event loop."""
import asyncio
import threading

import pytest

from safeharbor.services.crisis_engine.runtime import EngineRuntime


class BackgroundWork:
    """Starts a task that outlives the call, and drains it later."""

    def __init__(self):
        self.pending = set()
        self.finished = []

    async def start(self, delay):
        async def slow():
            await asyncio.sleep(delay)
            self.finished.append(delay)

        self.pending.add(asyncio.ensure_future(slow()))
        return "started"

    async def drain(self):
        pending = list(self.pending)
        await asyncio.gather(*pending)
        return {"drained": len(pending)}


@pytest.fixture
def runtime():
    runtime = EngineRuntime(name="test-engine-loop")
    yield runtime
    runtime.shutdown()


class TestEngineRuntime:
    def test_runs_on_loop_thread(self, runtime):
        async def which_thread():
            return threading.current_thread().name

        assert runtime.run(which_thread()) == "test-engine-loop"

    def test_errors_propagate_to_caller(self, runtime):
        async def boom():
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            runtime.run(boom())

    def test_tasks_survive_the_call(self, runtime):
        work = BackgroundWork()

        assert runtime.run(work.start(0.05)) == "started"
        # A per-call loop would have cancelled the task by now
        assert runtime.run(work.drain()) == {"drained": 1}
        assert work.finished == [0.05]

    def test_shutdown_drains_engine(self):
        runtime = EngineRuntime()
        work = BackgroundWork()
        runtime.run(work.start(0.05))

        runtime.shutdown(work)

        assert work.finished == [0.05]
        assert runtime.running is False
        assert runtime.loop.is_closed()

    def test_run_after_shutdown_raises(self):
        runtime = EngineRuntime()
        runtime.shutdown()

        coro = asyncio.sleep(0)
        with pytest.raises(RuntimeError, match="shut down"):
            runtime.run(coro)
        coro.close()

    def test_shutdown_is_idempotent(self, runtime):
        runtime.shutdown()
        runtime.shutdown()

        assert runtime.running is False
