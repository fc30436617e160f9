"""
Queue Controller

High-level orchestration consumed by the UI layer:
- Queue management (enqueue, edit, reorder, remove, clear)
- Sending: demote current wall message, pick slot, mark sent, transmit
- Auto-clear timers per slot
- Connection helpers and the start-up test pattern

Ordering: the previous wall message is always demoted before the new
one is marked sent, and marked sent before any packet leaves.

Usage:
    transport = Transport(OscConfig(host="192.168.1.20"))
    controller = QueueController(transport)
    message = controller.enqueue(Message("TABLE 12 - HAPPY BIRTHDAY"))
    await controller.send(message)
"""

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from .auto_clear import AutoClearManager
from .config import OscConfig
from .model import ConnectionState, Message, MessageStatus
from .scheduler import SlotScheduler
from .store import MessageStore, Snapshot, SnapshotListener
from .transport import ErrorListener, OscSender, StateListener

logger = logging.getLogger(__name__)

Formatter = Callable[[str], str]

TEST_PATTERN = ("LED MESSENGER", "CLUBKIT.IO", "LET'S PARTY")


class QueueController:
    """
    Orchestrates MessageStore, SlotScheduler, Transport and AutoClearManager.

    Network failures never raise out of this class; they show up as the
    transport's connection state and last_error.
    """

    def __init__(
        self,
        transport: OscSender,
        store: Optional[MessageStore] = None,
        scheduler: Optional[SlotScheduler] = None,
        formatter: Optional[Formatter] = None,
    ):
        """
        Initialize controller.

        Args:
            transport: OSC sender (normally a Transport)
            store: Message queue; a new empty store if None
            scheduler: Slot rotation; the transport's scheduler if None
            formatter: Applied to message content right before sending
        """
        self._transport = transport
        self._store = store or MessageStore()
        self._scheduler = scheduler or transport.scheduler
        self._formatter: Formatter = formatter or (lambda text: text)
        self._auto_clear = AutoClearManager(transport, self._store)

        self._sending_id: Optional[str] = None
        self._slots: Dict[str, int] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._test_pattern_shown = False
        self._store.subscribe(self._on_queue_changed)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def transport(self) -> OscSender:
        return self._transport

    @property
    def scheduler(self) -> SlotScheduler:
        return self._scheduler

    @property
    def auto_clear(self) -> AutoClearManager:
        return self._auto_clear

    @property
    def config(self) -> OscConfig:
        return self._transport.config

    @property
    def messages(self):
        return self._store.messages

    @property
    def current_slot(self) -> int:
        """Slot the next send will use."""
        return self._scheduler.current

    @property
    def is_sending(self) -> bool:
        return self._sending_id is not None

    @property
    def sending_id(self) -> Optional[str]:
        return self._sending_id

    @property
    def is_connected(self) -> bool:
        return self._transport.state == ConnectionState.CONNECTED

    def slot_of(self, message_id: str) -> Optional[int]:
        """Slot a message was last sent to."""
        return self._slots.get(message_id)

    # -------------------------------------------------------------------------
    # Boundary events
    # -------------------------------------------------------------------------

    def add_queue_listener(self, callback: SnapshotListener) -> None:
        self._store.subscribe(callback)

    def add_connection_listener(self, callback: StateListener) -> None:
        self._transport.add_state_listener(callback)

    def add_error_listener(self, callback: ErrorListener) -> None:
        self._transport.add_error_listener(callback)

    def _on_queue_changed(self, snapshot: Snapshot) -> None:
        # Forget slots of messages that left the queue (removed, cleared or expired)
        if not self._slots:
            return
        live = {m.id for m in snapshot}
        for message_id in [i for i in self._slots if i not in live]:
            del self._slots[message_id]

    # -------------------------------------------------------------------------
    # Queue operations
    # -------------------------------------------------------------------------

    def enqueue(self, message: Message) -> Message:
        self._store.append(message)
        return message

    def update_message(self, message: Message) -> bool:
        return self._store.update_message(message)

    def reorder(self, from_indices: Iterable[int], to_index: int) -> bool:
        return self._store.move(from_indices, to_index)

    def remove(self, message_id: str) -> bool:
        return self._store.remove_by_id(message_id)

    def remove_at(self, index: int) -> bool:
        return self._store.remove_at(index)

    async def clear(self) -> int:
        """
        Blank the wall, cancel all timers and empty the queue.

        Returns:
            Number of messages removed
        """
        logger.info("Clearing wall and queue")
        self._auto_clear.cancel_all()
        await self._transport.clear()
        return self._store.clear()

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def send(self, message: Message) -> bool:
        """
        Put a queued message on the wall.

        Status flips to sent before any network I/O so the UI reacts at
        once; the transmission itself is best effort.

        Returns:
            True if both text and activate packets were sent
        """
        task = self.send_nowait(message)
        if task is None:
            return False
        return await task

    def send_nowait(self, message: Message) -> Optional["asyncio.Task[bool]"]:
        """
        Same as send() but returns the transmission task right after the
        status change, without waiting for the network.

        Returns:
            The task, or None if the message is not in the queue
        """
        current = self._store.get(message.id)
        if current is None:
            logger.warning(f"Cannot send {message}: not in queue")
            return None

        self._store.demote_on_wall()
        self._sending_id = message.id
        slot = self._scheduler.next()
        self._slots[message.id] = slot
        self._store.update_status(message.id, MessageStatus.SENT)

        text = self._formatter(current.content)
        logger.info(f"Sending {current} to clip {slot}, next clip {self._scheduler.current}")

        task = asyncio.get_running_loop().create_task(
            self._transmit(message.id, text, slot), name=f"send-{message.id[:8]}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _transmit(self, message_id: str, text: str, slot: int) -> bool:
        try:
            sent = await self._transport.send_text(text, slot=slot)
        finally:
            if self._sending_id == message_id:
                self._sending_id = None

        if not sent:
            logger.warning(f"Clip {slot} send incomplete (connection: {self._transport.state.value})")

        duration = self.config.auto_clear_after
        if duration > 0:
            current = self._store.get(message_id)
            if current is not None:
                self._auto_clear.arm(slot, current, duration)
            else:
                logger.debug(f"Message {message_id} gone before auto-clear could be armed")
        return sent

    async def cancel_sent(self, message: Message, slot: Optional[int] = None) -> bool:
        """
        Take a message off the wall now and return it to pending.

        Args:
            message: Message currently shown
            slot: Slot it was sent to; looked up if None

        Returns:
            False if the message is no longer in the queue
        """
        slot = slot if slot is not None else self._slots.get(message.id)
        if slot is not None and slot >= 0:
            if self._auto_clear.armed_message_id(slot) == message.id:
                self._auto_clear.cancel(slot)
            await self._transport.clear_slot(slot)
        return self._store.update_status(message.id, MessageStatus.PENDING)

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def refresh_from_config(self, config: Optional[OscConfig] = None) -> None:
        """
        Re-read the slot range.

        Before the first send the rotation is re-based to the new
        start_slot; afterwards it is kept (out-of-range positions are
        still pulled back into range).
        """
        config = config or self.config
        self._scheduler.update_range(config.slot_range)
        logger.debug(
            f"Refreshed slots: layer {config.layer}, start {config.start_slot}, "
            f"count {config.clip_count}, next clip {self._scheduler.current}"
        )

    async def apply_config(self, config: OscConfig) -> None:
        """Push new settings to the transport and the slot rotation."""
        await self._transport.configure(config)
        self.refresh_from_config(config)

    # -------------------------------------------------------------------------
    # Connection helpers
    # -------------------------------------------------------------------------

    async def ensure_connection(self, timeout: float = 5.0, poll_interval: float = 0.1) -> bool:
        """
        Force a fresh connection attempt if needed and wait until connected.

        Returns:
            True if connected within timeout
        """
        if self.is_connected:
            return True

        logger.info("Ensuring OSC connection...")
        await self._transport.force_connect()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if self.is_connected:
                return True
            await asyncio.sleep(poll_interval)
        if self.is_connected:
            return True

        logger.warning(f"No OSC connection after {timeout:.1f}s")
        return False

    async def send_test_pattern(
        self,
        messages: Sequence[str] = TEST_PATTERN,
        interval: float = 2.5,
        attempts: int = 3,
        connect_timeout: float = 5.0,
        retry_pause: float = 2.0,
    ) -> bool:
        """
        Show a short test sequence on consecutive clips, then blank the wall.

        Uses clips start_slot, start_slot + 1, ... (at most clip_count of
        them) without touching the rotation. Runs once per controller;
        a run that could not connect may be retried.

        Returns:
            True if the pattern was sent
        """
        if self._test_pattern_shown:
            logger.info("Test pattern already shown, skipping")
            return False

        connected = False
        for attempt in range(1, attempts + 1):
            logger.info(f"Test pattern connection attempt {attempt}/{attempts}")
            connected = await self.ensure_connection(timeout=connect_timeout)
            if connected:
                break
            if attempt < attempts:
                await asyncio.sleep(retry_pause)
        if not connected:
            logger.error(f"Test pattern aborted: no connection after {attempts} attempts")
            return False

        self._test_pattern_shown = True
        slots = self.config.slot_range
        shown: List[int] = []
        for index, content in enumerate(messages[:slots.clip_count]):
            if not self.is_connected and not await self.ensure_connection(timeout=connect_timeout):
                logger.error("Connection lost during test pattern, stopping")
                break
            slot = slots.start_slot + index
            await self._transport.send_text(self._formatter(content), slot=slot)
            shown.append(slot)
            await asyncio.sleep(interval)

        await self._transport.clear()
        logger.info(f"Test pattern shown on clips {shown}")
        return True

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    async def wait_idle(self) -> None:
        """Wait for in-flight transmissions."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel timers and transmissions, then close the transport."""
        self._auto_clear.cancel_all()
        await self._auto_clear.wait_expiring()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._transport.close()
