"""
Slot Scheduler

Cyclic assignment of content clips for outgoing messages.

Each send takes the current slot and advances, wrapping from the last
content slot back to start_slot. The clear slot is never handed out.
"""

import logging
import threading

from .model import SlotRange

logger = logging.getLogger(__name__)


class SlotScheduler:
    """
    Rotation state for content slots.

    Before the first send, a new slot range re-bases the rotation to its
    start_slot. Once sending has started, range edits keep the rotation
    where it is; only an out-of-range position is pulled back to start_slot.
    """

    def __init__(self, slot_range: SlotRange):
        self._lock = threading.Lock()
        self._range = slot_range
        self._current = slot_range.start_slot
        self._has_started = False

    @property
    def slot_range(self) -> SlotRange:
        return self._range

    @property
    def current(self) -> int:
        """Slot the next send will use (before range correction)."""
        return self._current

    @property
    def has_started(self) -> bool:
        """True once next() has been called at least once."""
        return self._has_started

    def next(self) -> int:
        """
        Claim the slot for a send and advance the rotation.

        Returns:
            Content slot index within [start_slot, start_slot + clip_count - 1]
        """
        with self._lock:
            self._heal()
            slot = self._current
            self._current = slot + 1
            if self._current > self._range.end_slot:
                logger.debug(f"Wrapping from slot {slot} to {self._range.start_slot}")
                self._current = self._range.start_slot
            self._has_started = True
            return slot

    def peek(self) -> int:
        """Validated slot the next send will use, without advancing."""
        with self._lock:
            self._heal()
            return self._current

    def update_range(self, slot_range: SlotRange) -> None:
        """
        Apply a new slot range atomically.

        Args:
            slot_range: New layer/start/count/clear configuration
        """
        with self._lock:
            self._range = slot_range
            if not self._has_started:
                self._current = slot_range.start_slot
            else:
                self._heal()
            logger.debug(
                f"Slot range {slot_range.start_slot}-{slot_range.end_slot} "
                f"(clear {slot_range.clear_slot}), next slot {self._current}"
            )

    def reset(self) -> None:
        """Forget rotation state, next send starts at start_slot."""
        with self._lock:
            self._current = self._range.start_slot
            self._has_started = False

    def _heal(self) -> None:
        if not self._range.contains(self._current):
            logger.warning(
                f"Slot {self._current} out of range "
                f"[{self._range.start_slot}...{self._range.end_slot}], "
                f"resetting to {self._range.start_slot}"
            )
            self._current = self._range.start_slot
