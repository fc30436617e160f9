"""
Tests for AutoClearManager.

Tests per-slot replacement, slot independence and side-effect-free cancellation.
"""

import asyncio

import pytest

from led_messenger.auto_clear import AutoClearManager
from led_messenger.model import Message, MessageStatus
from led_messenger.store import MessageStore


class RecordingSender:
    """Records clear_slot() calls instead of sending packets."""

    def __init__(self):
        self.cleared = []

    async def clear_slot(self, index: int) -> bool:
        self.cleared.append(index)
        return True


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def store():
    return MessageStore()


@pytest.fixture
def manager(sender, store):
    return AutoClearManager(sender, store)


def put_on_wall(store, content):
    """Enqueue a message and mark it sent; returns the stored version."""
    message = Message(content)
    store.append(message)
    store.update_status(message.id, MessageStatus.SENT)
    return store.get(message.id)


class TestArm:
    """Test arming rules."""

    @pytest.mark.asyncio
    async def test_pending_message_not_armed(self, manager):
        """Arming for a pending message is a no-op."""
        assert not manager.arm(1, Message("A"), 0.05)
        assert not manager.is_armed(1)

    @pytest.mark.asyncio
    async def test_disabled_duration(self, manager, store):
        """duration <= 0 disables auto-clear."""
        message = put_on_wall(store, "A")

        assert not manager.arm(1, message, 0)
        assert not manager.arm(1, message, -5)
        assert manager.active_slots == []

    @pytest.mark.asyncio
    async def test_expiry_clears_and_removes(self, manager, store, sender):
        """On expiry the slot is cleared and the message removed."""
        message = put_on_wall(store, "A")

        assert manager.arm(1, message, 0.05)
        assert manager.armed_message_id(1) == message.id
        await asyncio.sleep(0.15)

        assert sender.cleared == [1]
        assert store.get(message.id) is None
        assert not manager.is_armed(1)
        assert manager.armed_message_id(1) is None


class TestSlots:
    """Test per-slot timer ownership."""

    @pytest.mark.asyncio
    async def test_rearm_replaces_timer(self, manager, store, sender):
        """A new timer on the same slot cancels the old one."""
        first = put_on_wall(store, "A")
        manager.arm(1, first, 0.05)
        second = put_on_wall(store, "B")
        manager.arm(1, second, 0.2)

        await asyncio.sleep(0.1)
        assert sender.cleared == []
        assert store.get(first.id) is not None
        assert manager.armed_message_id(1) == second.id

        await asyncio.sleep(0.2)
        assert sender.cleared == [1]
        assert store.get(second.id) is None
        assert store.get(first.id) is not None

    @pytest.mark.asyncio
    async def test_slots_are_independent(self, manager, store, sender):
        """Arm slot 1, arm slot 2, expire slot 1: slot 2's message stays."""
        first = put_on_wall(store, "A")
        manager.arm(1, first, 0.05)
        second = put_on_wall(store, "B")
        manager.arm(2, second, 0.5)

        await asyncio.sleep(0.15)

        assert sender.cleared == [1]
        assert store.get(first.id) is None
        assert store.get(second.id) is not None
        assert manager.is_armed(2)
        manager.cancel_all()


class TestCancel:
    """Test cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_has_no_side_effects(self, manager, store, sender):
        """A cancelled timer neither clears nor removes."""
        message = put_on_wall(store, "A")
        manager.arm(1, message, 0.05)

        assert manager.cancel(1)
        await asyncio.sleep(0.1)

        assert sender.cleared == []
        assert store.get(message.id) is not None
        assert not manager.cancel(1)

    @pytest.mark.asyncio
    async def test_cancel_all(self, manager, store, sender):
        """cancel_all() stops every live timer."""
        manager.arm(1, put_on_wall(store, "A"), 0.05)
        manager.arm(2, put_on_wall(store, "B"), 0.05)

        assert manager.cancel_all() == 2
        await asyncio.sleep(0.1)

        assert sender.cleared == []
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_wait_expiring_covers_clear_in_flight(self, store):
        """An expiry already clearing the wall finishes before wait_expiring() returns."""
        class SlowSender(RecordingSender):
            async def clear_slot(self, index: int) -> bool:
                await asyncio.sleep(0.1)
                return await super().clear_slot(index)

        sender = SlowSender()
        manager = AutoClearManager(sender, store)
        message = put_on_wall(store, "A")
        manager.arm(2, message, 0.01)
        await asyncio.sleep(0.05)

        assert manager.cancel_all() == 0
        await manager.wait_expiring()

        assert sender.cleared == [2]
        assert store.get(message.id) is None

    @pytest.mark.asyncio
    async def test_wait_expiring_without_timers(self, manager):
        """Nothing expiring returns at once."""
        await asyncio.wait_for(manager.wait_expiring(), timeout=0.1)
