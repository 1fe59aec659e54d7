"""Long-lived event loop for the synchronous HTTP surface.

Flask runs each request on a worker thread. Escalations leave channel
attempts running past their confirmation window, so coroutines are
submitted to one loop that outlives the request instead of a per-request
loop that would cancel them on return.
"""
import asyncio
import logging
import threading
from typing import Any, Awaitable, Optional

logger = logging.getLogger(__name__)


class EngineRuntime:
    """A daemon thread running one event loop forever."""

    def __init__(self, name: str = "crisis-engine-loop"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._serve, name=name, daemon=True)
        self._thread.start()

        logger.info("ENGINE_LOOP_STARTED", extra={"thread": name})

    def _serve(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self.loop.is_closed()

    def run(self, coro: Awaitable[Any], timeout: Optional[float] = None) -> Any:
        """Run a coroutine on the engine loop and wait for its result.

        Raises:
            RuntimeError: If the runtime has been shut down
        """
        if not self.running:
            raise RuntimeError("engine runtime is shut down")
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def shutdown(self, engine=None, timeout: Optional[float] = 60.0) -> None:
        """Drain late channel attempts, then stop and close the loop."""
        if not self.running:
            return

        if engine is not None:
            try:
                drained = self.run(engine.drain(), timeout)
                logger.info("ENGINE_LOOP_DRAINED", extra=drained)
            except Exception as e:
                logger.error(
                    "ENGINE_LOOP_DRAIN_FAILED",
                    extra={"error": str(e), "error_type": type(e).__name__}
                )

        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout)
        if not self._thread.is_alive():
            self.loop.close()
        logger.info("ENGINE_LOOP_STOPPED")
