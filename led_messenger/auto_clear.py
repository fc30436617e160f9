"""
Auto-Clear Timers

One timer per content slot. When a timer expires the wall is blanked and
the message that was shown on that slot is removed from the queue.

Arming a slot replaces its previous timer; timers on other slots are
independent. A cancelled timer has no side effects.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from .model import Message
from .store import MessageStore

logger = logging.getLogger(__name__)


class AutoClearManager:
    """Per-slot expiry timers."""

    def __init__(self, transport, store: MessageStore):
        """
        Args:
            transport: OscSender used to blank the wall on expiry
            store: Queue the expired message is removed from
        """
        self._transport = transport
        self._store = store
        self._timers: Dict[int, asyncio.Task] = {}
        self._armed: Dict[int, str] = {}
        self._expiring: Set[asyncio.Task] = set()

    @property
    def active_slots(self) -> List[int]:
        return sorted(slot for slot, task in self._timers.items() if not task.done())

    def is_armed(self, slot: int) -> bool:
        task = self._timers.get(slot)
        return task is not None and not task.done()

    def armed_message_id(self, slot: int) -> Optional[str]:
        """Id of the message the slot's live timer will retire."""
        return self._armed.get(slot) if self.is_armed(slot) else None

    def arm(self, slot: int, message: Message, duration: float) -> bool:
        """
        Start (or restart) the timer for a slot.

        Args:
            slot: Content slot the message was sent to
            message: Message currently on the wall
            duration: Seconds until expiry; <= 0 means auto-clear is off

        Returns:
            True if a timer was started
        """
        if duration <= 0:
            logger.debug(f"Auto-clear disabled (duration={duration})")
            return False
        if not message.is_on_wall:
            logger.info(
                f"Auto-clear not armed for {message}: not on the wall"
            )
            return False

        self.cancel(slot)
        task = asyncio.get_running_loop().create_task(
            self._expire(slot, message, duration), name=f"auto-clear-{slot}"
        )
        self._timers[slot] = task
        self._armed[slot] = message.id
        logger.debug(f"Auto-clear armed for clip {slot} in {duration:.1f}s: {message}")
        return True

    def cancel(self, slot: int) -> bool:
        """Cancel the slot's timer. Returns True if one was live."""
        task = self._timers.pop(slot, None)
        self._armed.pop(slot, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug(f"Auto-clear cancelled for clip {slot}")
        return True

    def cancel_all(self) -> int:
        """Cancel every timer. Returns how many were live."""
        return sum(1 for slot in list(self._timers) if self.cancel(slot))

    async def wait_expiring(self) -> None:
        """Wait for expiries that are already clearing the wall."""
        if self._expiring:
            await asyncio.gather(*list(self._expiring), return_exceptions=True)

    async def _expire(self, slot: int, message: Message, duration: float) -> None:
        await asyncio.sleep(duration)

        # Past this point the expiry runs to completion: drop the handle
        # first so a re-arm or cancel_all() cannot interrupt it halfway.
        task = asyncio.current_task()
        if self._timers.get(slot) is task:
            del self._timers[slot]
            self._armed.pop(slot, None)
        self._expiring.add(task)

        try:
            logger.info(f"Auto-clear expired for clip {slot}: {message}")
            await self._transport.clear_slot(slot)
            self._store.remove_by_id(message.id)
        finally:
            self._expiring.discard(task)
