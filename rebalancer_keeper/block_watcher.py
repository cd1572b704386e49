# block_watcher.py
"""
Rebalancer Keeper – BlockWatcher
================================
Polls the node for its block height and yields every new height it observes.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

import async_timeout
from web3 import AsyncWeb3

from rebalancer_keeper.loggingconfig import setup_logging

logger = setup_logging("BlockWatcher", level="DEBUG")


class BlockWatcher:
    """
    Strictly increasing stream of observed block heights.

    Heights in between two polls are not replayed; callers act on current
    chain state, not on individual blocks.
    """

    def __init__(
        self,
        web3: AsyncWeb3,
        poll_interval: float = 1.0,
        provider_timeout: float = 10.0,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.web3 = web3
        self.poll_interval = poll_interval
        self.provider_timeout = provider_timeout
        self.stop_event = stop_event or asyncio.Event()
        self.last_seen: Optional[int] = None

    async def watch(self) -> AsyncIterator[int]:
        """Yield each new height until the stop event is set.

        The height at start-up only seeds the high-water mark; it is not
        yielded.
        """
        self.last_seen = None
        while not self.stop_event.is_set():
            height = await self._poll()
            if height is not None:
                if self.last_seen is None:
                    self.last_seen = height
                    logger.info("Watching blocks from height %d", height)
                elif height > self.last_seen:
                    self.last_seen = height
                    yield height
                    continue
            await self._sleep()

    async def _poll(self) -> Optional[int]:
        try:
            async with async_timeout.timeout(self.provider_timeout):
                return int(await self.web3.eth.block_number)
        except asyncio.TimeoutError:
            logger.warning("Block height poll timed out after %.1fs", self.provider_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Block height poll failed: %s", exc)
        return None

    async def _sleep(self) -> None:
        """Wait one poll interval, returning early once stop is requested."""
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass

    def stop(self) -> None:
        self.stop_event.set()
