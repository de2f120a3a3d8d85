import asyncio
import logging
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


class RequestPacer:
    """Delays every outgoing request by a fixed amount.

    One pacer is shared by all clients of a run. Combined with the one-at-a-time
    dispatching of entries this bounds the request rate towards the remote services.
    The sleep function is injectable so tests can run without waiting.
    """

    def __init__(self,
                 delay_ms: int = 100,
                 sleep: Optional[Callable[[float], Awaitable[None]]] = None):
        """Initialize pacer.

        Args:
            delay_ms: Delay before each request in milliseconds
            sleep: Coroutine function used to wait (defaults to asyncio.sleep)
        """
        if delay_ms < 0:
            raise ValueError("delay_ms must not be negative")
        self.delay_ms = delay_ms
        self._sleep = sleep or asyncio.sleep
        self.request_count = 0

    async def wait(self) -> None:
        """Wait the configured delay before a request is issued."""
        if self.delay_ms > 0:
            await self._sleep(self.delay_ms / 1000.0)
        self.request_count += 1
        logger.debug(f"Request #{self.request_count} released after {self.delay_ms}ms")
