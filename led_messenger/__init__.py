"""
LED Messenger

Messaging core for an LED wall driven over OSC/UDP.

Features:
- Resilient UDP transport with a connection-storm guard and reconnect backoff
- Single-writer message queue with the "one message on the wall" rule
- Cyclic clip rotation with a reserved clear clip
- Per-clip auto-clear timers

Usage:
    from led_messenger import Message, OscConfig, QueueController, Transport

    transport = Transport(OscConfig(host="192.168.1.20"))
    controller = QueueController(transport)
    await controller.send(controller.enqueue(Message("HAPPY BIRTHDAY")))
"""

from .auto_clear import AutoClearManager
from .codec import (
    OscArgument,
    connect_address,
    decode_packet,
    encode_packet,
    text_address,
)
from .config import OscConfig, RetryPolicy, apply_overrides, config_from_dict, load_config
from .controller import QueueController
from .errors import (
    ConfigurationError,
    EncodingError,
    ErrorKind,
    LedMessengerError,
    TransportError,
    classify_error,
)
from .model import (
    ConnectionState,
    Label,
    LabelKind,
    Message,
    MessagePriority,
    MessageStatus,
    SlotRange,
)
from .scheduler import SlotScheduler
from .store import MessageStore
from .transport import OscSender, Transport, open_udp_endpoint

__version__ = "0.1.0"

__all__ = [
    # Model
    "ConnectionState",
    "Label",
    "LabelKind",
    "Message",
    "MessagePriority",
    "MessageStatus",
    "SlotRange",
    # Errors
    "ConfigurationError",
    "EncodingError",
    "ErrorKind",
    "LedMessengerError",
    "TransportError",
    "classify_error",
    # Codec
    "OscArgument",
    "connect_address",
    "decode_packet",
    "encode_packet",
    "text_address",
    # Config
    "OscConfig",
    "RetryPolicy",
    "apply_overrides",
    "config_from_dict",
    "load_config",
    # Core
    "AutoClearManager",
    "MessageStore",
    "OscSender",
    "QueueController",
    "SlotScheduler",
    "Transport",
    "open_udp_endpoint",
]
