"""
Domain Models for the LED Wall Messenger

Immutable message entities, connection states and the slot range that
describes where on the remote display engine messages are placed.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional


# =============================================================================
# MESSAGE STATUS, PRIORITY AND LABELS
# =============================================================================

class MessageStatus(str, Enum):
    """
    Lifecycle status of a queued message.

    PENDING: Waiting in the queue
    SENT: Pushed to the wall (set immediately, before the network round-trip)
    DELIVERED: Confirmed on the wall
    """
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"

    @property
    def on_wall(self) -> bool:
        """True for the statuses that mean 'currently shown on the wall'."""
        return self in (MessageStatus.SENT, MessageStatus.DELIVERED)


_PRIORITY_ORDER = ("low", "normal", "high", "critical")


class MessagePriority(str, Enum):
    """Message priority, ordered low < normal < high < critical."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    def __lt__(self, other):
        if not isinstance(other, MessagePriority):
            return NotImplemented
        return _PRIORITY_ORDER.index(self.value) < _PRIORITY_ORDER.index(other.value)

    def __le__(self, other):
        if not isinstance(other, MessagePriority):
            return NotImplemented
        return self == other or self < other

    def __gt__(self, other):
        if not isinstance(other, MessagePriority):
            return NotImplemented
        return not self <= other

    def __ge__(self, other):
        if not isinstance(other, MessagePriority):
            return NotImplemented
        return not self < other


class LabelKind(str, Enum):
    """Kind of tag attached to a message."""
    TABLE_NUMBER = "table_number"
    CUSTOM = "custom"
    NONE = "none"


@dataclass(frozen=True)
class Label:
    """Optional tag shown alongside a message (e.g. a table number)."""
    kind: LabelKind = LabelKind.NONE
    text: str = ""


# =============================================================================
# MESSAGE
# =============================================================================

@dataclass(frozen=True)
class Message:
    """
    A unit of content to display on the wall.

    Messages are immutable; status and content changes produce a new
    instance with the same id, which MessageStore swaps in place.

    Attributes:
        content: Raw text (formatting is applied right before sending)
        id: Unique identity, never changes
        label: Optional tag
        status: Current lifecycle status
        priority: Display priority
        created_at: Unix timestamp of creation, never changes
    """
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    label: Optional[Label] = None
    status: MessageStatus = MessageStatus.PENDING
    priority: MessagePriority = MessagePriority.NORMAL
    created_at: float = field(default_factory=time.time)

    def with_status(self, status: MessageStatus) -> "Message":
        return replace(self, status=status)

    def with_content(self, content: str) -> "Message":
        return replace(self, content=content)

    def with_label(self, label: Optional[Label]) -> "Message":
        return replace(self, label=label)

    @property
    def is_on_wall(self) -> bool:
        return self.status.on_wall

    def __str__(self) -> str:
        return f"Message({self.id[:8]}, {self.status.value}, {self.content!r})"


# =============================================================================
# CONNECTION STATE
# =============================================================================

class ConnectionState(str, Enum):
    """UDP association state owned by Transport."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# =============================================================================
# SLOT RANGE
# =============================================================================

@dataclass(frozen=True)
class SlotRange:
    """
    Where content goes on the display engine.

    Content clips are start_slot .. start_slot + clip_count - 1 on `layer`.
    The clear slot holds a blank clip and is never used for content; it
    defaults to the first clip after the content range.
    """
    layer: int = 3
    start_slot: int = 1
    clip_count: int = 3
    clear_slot: Optional[int] = None

    def __post_init__(self):
        if self.clear_slot is None:
            object.__setattr__(self, "clear_slot", self.start_slot + self.clip_count)

    @property
    def end_slot(self) -> int:
        """Last content slot (inclusive)."""
        return self.start_slot + self.clip_count - 1

    def contains(self, slot: int) -> bool:
        return self.start_slot <= slot <= self.end_slot

    def slots(self) -> range:
        return range(self.start_slot, self.end_slot + 1)
