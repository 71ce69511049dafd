"""Per-channel outbound spacing."""

import asyncio
import logging
import time
from typing import Awaitable, Callable

from wagerbot.exceptions import ChatTransportError

from .models import ChatTransport

logger = logging.getLogger(__name__)


class ChannelOutbox:
    """Spaces sends on each channel by at least ``gap_ms``.

    The lock is time based: each send reserves the next free slot on its
    channel and sleeps until that slot arrives, so concurrent callers are
    serialized in reservation order without holding a mutex.
    """

    def __init__(
        self,
        transport: ChatTransport,
        gap_ms: int = 2_500,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.transport = transport
        self.gap_seconds = gap_ms / 1000
        self._clock = clock
        self._sleep = sleep
        self._next_slot: dict[str, float] = {}

    def reserve(self, channel_id: str) -> float:
        """Reserve the next send slot on ``channel_id``; returns seconds to wait."""
        now = self._clock()
        slot = max(now, self._next_slot.get(channel_id, now))
        self._next_slot[channel_id] = slot + self.gap_seconds
        return slot - now

    async def send(self, channel_id: str, content: str, reply_to: str | None = None) -> bool:
        wait = self.reserve(channel_id)
        if wait > 0:
            await self._sleep(wait)
        try:
            await self.transport.send_message(channel_id, content, reply_to=reply_to)
            return True
        except ChatTransportError as e:
            logger.error(f"Failed to send to channel {channel_id}: {e}")
            return False

    def prune(self) -> int:
        """Forget channels whose last reserved slot has passed."""
        now = self._clock()
        stale = [cid for cid, slot in self._next_slot.items() if slot < now]
        for channel_id in stale:
            del self._next_slot[channel_id]
        return len(stale)
