"""Ordered, best-effort writer of call records."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]


class CallRecorder:
    """
    Runs record writes for one call in the background, in submission order.

    ``submit`` never waits, so the audio path is not held up by the
    database. A failing write is logged and the next one still runs.
    """

    def __init__(self, label: str):
        self.label = label
        self._queue: "asyncio.Queue[Optional[Tuple[str, Operation]]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._closing = False
        self.failures = 0

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._drain())

    def submit(self, description: str, operation: Operation) -> bool:
        """Queue a write. Returns False once the recorder is closing."""
        if self._closing:
            logger.debug(f"[RECORDER] Dropping '{description}' after close - Call: {self.label}")
            return False
        self.start()
        self._queue.put_nowait((description, operation))
        return True

    async def _drain(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                description, operation = item
                try:
                    await operation()
                except Exception as e:
                    self.failures += 1
                    logger.error(
                        f"[RECORDER] Record write '{description}' failed - Call: {self.label}, "
                        f"Error: {type(e).__name__}: {e}",
                        exc_info=True,
                    )
            finally:
                self._queue.task_done()

    async def flush(self) -> None:
        """Wait until every write submitted so far has run."""
        await self._queue.join()

    async def close(self, timeout: float = 5.0) -> None:
        """Flush pending writes, then stop the worker."""
        if self._closing:
            return
        self._closing = True
        if self._worker is None:
            return
        self._queue.put_nowait(None)
        try:
            await asyncio.wait_for(asyncio.shield(self._worker), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"[RECORDER] Flush timed out after {timeout}s, abandoning "
                f"{self._queue.qsize()} pending writes - Call: {self.label}"
            )
            self._worker.cancel()
