"""
Message Store

Single owner of the message queue. Every mutation goes through this class;
each successful mutation publishes an immutable snapshot to subscribers.

Missing ids and indexes are not errors: the operation returns False (or 0)
and nothing is published.
"""

import logging
import threading
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from .model import Message, MessageStatus

logger = logging.getLogger(__name__)

Snapshot = Tuple[Message, ...]
SnapshotListener = Callable[[Snapshot], None]


class MessageStore:
    """
    Thread-safe ordered message collection.

    Insertion order is queue order and is only changed by move().
    """

    def __init__(self, messages: Optional[Iterable[Message]] = None):
        self._lock = threading.RLock()
        self._messages: List[Message] = list(messages or [])
        self._listeners: List[SnapshotListener] = []
        if self._keep_first_on_wall():
            logger.warning("More than one message on the wall, demoted extras")

    # -------------------------------------------------------------------------
    # Subscription
    # -------------------------------------------------------------------------

    def subscribe(self, listener: SnapshotListener) -> None:
        """Register a callback receiving the queue snapshot after each change."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, snapshot: Snapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Error in queue listener: {e}")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def messages(self) -> Snapshot:
        with self._lock:
            return tuple(self._messages)

    def get(self, message_id: str) -> Optional[Message]:
        with self._lock:
            index = self._index_of(message_id)
            return self._messages[index] if index is not None else None

    def on_wall(self) -> List[Message]:
        """Messages currently marked sent or delivered."""
        with self._lock:
            return [m for m in self._messages if m.is_on_wall]

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        with self._lock:
            return any(m.id == message_id for m in self._messages)

    def _index_of(self, message_id: str) -> Optional[int]:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return index
        return None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def append(self, message: Message) -> None:
        """Add a message at the end; an on-wall message demotes the current one."""
        with self._lock:
            self._messages.append(message)
            if message.is_on_wall:
                self._demote_others(len(self._messages) - 1)
            snapshot = tuple(self._messages)
        logger.debug(f"Enqueued {message}")
        self._publish(snapshot)

    def remove_at(self, index: int) -> bool:
        with self._lock:
            if not 0 <= index < len(self._messages):
                logger.debug(f"remove_at: no message at index {index}")
                return False
            removed = self._messages.pop(index)
            snapshot = tuple(self._messages)
        logger.debug(f"Removed {removed}")
        self._publish(snapshot)
        return True

    def remove_by_id(self, message_id: str) -> bool:
        with self._lock:
            count = len(self._messages)
            self._messages = [m for m in self._messages if m.id != message_id]
            if len(self._messages) == count:
                logger.debug(f"remove_by_id: no message {message_id}")
                return False
            snapshot = tuple(self._messages)
        self._publish(snapshot)
        return True

    def clear(self) -> int:
        """
        Remove every message.

        Returns:
            Number of messages removed; an empty store returns 0 and publishes nothing
        """
        with self._lock:
            count = len(self._messages)
            if not count:
                return 0
            self._messages = []
            snapshot: Snapshot = ()
        logger.info(f"Cleared {count} messages")
        self._publish(snapshot)
        return count

    def move(self, from_indices: Iterable[int], to_index: int) -> bool:
        """
        Move the messages at from_indices so they land before to_index.

        to_index refers to positions in the list before the move, so
        moving item 0 to the end uses to_index == len(store). Moved items
        keep their relative order, as do the untouched ones.

        Returns:
            False when no valid index was given
        """
        with self._lock:
            size = len(self._messages)
            picked = sorted({i for i in from_indices if 0 <= i < size})
            if not picked:
                logger.debug("move: no valid source indexes")
                return False
            to_index = max(0, min(to_index, size))

            moving = [self._messages[i] for i in picked]
            picked_set = set(picked)
            kept = [m for i, m in enumerate(self._messages) if i not in picked_set]
            insert_at = to_index - sum(1 for i in picked if i < to_index)
            self._messages = kept[:insert_at] + moving + kept[insert_at:]
            snapshot = tuple(self._messages)
        self._publish(snapshot)
        return True

    def update_status(self, message_id: str, status: MessageStatus) -> bool:
        """
        Set a message's status.

        Putting a message on the wall (sent/delivered) demotes any other
        on-wall message to pending in the same step.
        """
        with self._lock:
            index = self._index_of(message_id)
            if index is None:
                logger.debug(f"update_status: no message {message_id}")
                return False
            if status.on_wall:
                self._demote_others(index)
            self._messages[index] = self._messages[index].with_status(status)
            snapshot = tuple(self._messages)
        logger.debug(f"Status {message_id[:8]} -> {status.value}")
        self._publish(snapshot)
        return True

    def update_message(self, replacement: Message) -> bool:
        """Swap in a new version of a message, matched by id."""
        with self._lock:
            index = self._index_of(replacement.id)
            if index is None:
                logger.debug(f"update_message: no message {replacement.id}")
                return False
            if replacement.is_on_wall:
                self._demote_others(index)
            self._messages[index] = replacement
            snapshot = tuple(self._messages)
        self._publish(snapshot)
        return True

    def replace_all(self, messages: Sequence[Message]) -> None:
        """Replace the whole queue; only the first on-wall message keeps its status."""
        with self._lock:
            self._messages = list(messages)
            if self._keep_first_on_wall():
                logger.warning("replace_all: more than one message on the wall, demoted extras")
            snapshot = tuple(self._messages)
        logger.info(f"Replaced queue with {len(snapshot)} messages")
        self._publish(snapshot)

    def demote_on_wall(self) -> List[str]:
        """
        Return every sent/delivered message to pending.

        Returns:
            Ids that were demoted; nothing is published when empty
        """
        with self._lock:
            demoted = self._demote_others(None)
            if not demoted:
                return []
            snapshot = tuple(self._messages)
        logger.debug(f"Demoted {len(demoted)} message(s) to pending")
        self._publish(snapshot)
        return demoted

    def _keep_first_on_wall(self) -> List[str]:
        first = next((i for i, m in enumerate(self._messages) if m.is_on_wall), None)
        return self._demote_others(first) if first is not None else []

    def _demote_others(self, keep_index: Optional[int]) -> List[str]:
        demoted = []
        for index, message in enumerate(self._messages):
            if index != keep_index and message.is_on_wall:
                self._messages[index] = message.with_status(MessageStatus.PENDING)
                demoted.append(message.id)
        return demoted
