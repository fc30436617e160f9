"""
OSC Transport

Owns the single UDP association to the display engine.

Features:
- Connection state machine: disconnected -> connecting -> connected
- Connection-storm guard (one attempt per min_attempt_interval)
- Reconnect with backoff: fast delay until the first successful
  connection, steady delay afterwards; one reconnect timer at a time
- Best-effort send: waits a bounded time for the connection, then drops
- Only reset/refused/unreachable/not-connected errors tear the socket down

Usage:
    transport = Transport(OscConfig(host="192.168.1.20"))
    await transport.send_text("HAPPY BIRTHDAY")
    await transport.clear()
    await transport.close()
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from .codec import OscArgument, PING_ADDRESS, connect_address, encode_packet, text_address
from .config import OscConfig, RetryPolicy
from .errors import ConfigurationError, EncodingError, ErrorKind, TransportError, classify_error
from .model import ConnectionState
from .scheduler import SlotScheduler

logger = logging.getLogger(__name__)

ProtocolFactory = Callable[[], asyncio.DatagramProtocol]
EndpointOpener = Callable[[str, int, ProtocolFactory], Awaitable[asyncio.DatagramTransport]]
StateListener = Callable[[ConnectionState], None]
ErrorListener = Callable[[Optional[str]], None]


async def open_udp_endpoint(host: str, port: int,
                            protocol_factory: ProtocolFactory) -> asyncio.DatagramTransport:
    """Open a connected UDP socket to host:port on the running loop."""
    loop = asyncio.get_running_loop()
    transport, _protocol = await loop.create_datagram_endpoint(
        protocol_factory, remote_addr=(host, port)
    )
    return transport


# =============================================================================
# SENDER CAPABILITY
# =============================================================================

class OscSender(Protocol):
    """Everything QueueController needs from a transport."""

    @property
    def config(self) -> OscConfig: ...

    @property
    def scheduler(self) -> SlotScheduler: ...

    @property
    def state(self) -> ConnectionState: ...

    @property
    def last_error(self) -> Optional[str]: ...

    async def send(self, address: str, value: OscArgument) -> bool: ...

    async def send_text(self, text: str, slot: Optional[int] = None) -> bool: ...

    async def clear(self) -> bool: ...

    async def clear_slot(self, index: int) -> bool: ...

    async def ping(self) -> bool: ...

    async def reconnect(self) -> None: ...

    async def force_connect(self) -> None: ...

    async def configure(self, config: OscConfig) -> None: ...

    async def close(self) -> None: ...

    def add_state_listener(self, callback: StateListener) -> None: ...

    def add_error_listener(self, callback: ErrorListener) -> None: ...


# =============================================================================
# DATAGRAM PROTOCOL
# =============================================================================

class _OscDatagramProtocol(asyncio.DatagramProtocol):
    """Routes socket events back to the Transport that opened the socket."""

    def __init__(self, owner: "Transport", generation: int):
        self._owner = owner
        self._generation = generation

    def datagram_received(self, data: bytes, addr: Any) -> None:
        # The display engine does not answer; replies are ignored
        logger.debug(f"Ignoring {len(data)} bytes from {addr}")

    def error_received(self, exc: Exception) -> None:
        self._owner._on_socket_error(exc, self._generation)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._owner._on_connection_lost(exc, self._generation)


# =============================================================================
# TRANSPORT
# =============================================================================

class Transport:
    """
    Resilient OSC-over-UDP sender.

    Network errors never propagate to callers: send() returns False and the
    classified error is exposed as last_error.
    """

    def __init__(
        self,
        config: Optional[OscConfig] = None,
        retry: Optional[RetryPolicy] = None,
        scheduler: Optional[SlotScheduler] = None,
        opener: Optional[EndpointOpener] = None,
    ):
        """
        Initialize Transport.

        Args:
            config: Endpoint and slot layout (host may be empty until configured)
            retry: Timing constants for reconnects and send waits
            scheduler: Slot rotation used by send_text() when no slot is given
            opener: Coroutine opening the datagram endpoint (injected by tests)
        """
        self._config = config or OscConfig()
        self._retry = retry or RetryPolicy()
        self._scheduler = scheduler or SlotScheduler(self._config.slot_range)
        self._opener = opener or open_udp_endpoint

        self._state = ConnectionState.DISCONNECTED
        self._last_error: Optional[str] = None
        self._endpoint: Optional[asyncio.DatagramTransport] = None
        self._generation = 0

        self._connection_attempts = 0
        self._last_attempt: Optional[float] = None
        self._has_connected = False

        self._connect_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._sequence_lock = asyncio.Lock()

        self._state_listeners: List[StateListener] = []
        self._error_listeners: List[ErrorListener] = []

        self._stats: Dict[str, int] = {
            "sent": 0,
            "dropped": 0,
            "transient_errors": 0,
            "connection_failures": 0,
        }

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> OscConfig:
        return self._config

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def scheduler(self) -> SlotScheduler:
        return self._scheduler

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def connection_attempts(self) -> int:
        """Attempts since the last successful connection."""
        return self._connection_attempts

    @property
    def has_connected(self) -> bool:
        """True once any connection succeeded in this process."""
        return self._has_connected

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = dict(self._stats)
        stats.update(
            state=self._state.value,
            endpoint=f"{self._config.host}:{self._config.port}",
            connection_attempts=self._connection_attempts,
            last_error=self._last_error,
        )
        return stats

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_state_listener(self, callback: StateListener) -> None:
        if callback not in self._state_listeners:
            self._state_listeners.append(callback)

    def remove_state_listener(self, callback: StateListener) -> None:
        if callback in self._state_listeners:
            self._state_listeners.remove(callback)

    def add_error_listener(self, callback: ErrorListener) -> None:
        if callback not in self._error_listeners:
            self._error_listeners.append(callback)

    def remove_error_listener(self, callback: ErrorListener) -> None:
        if callback in self._error_listeners:
            self._error_listeners.remove(callback)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.info(f"OSC {self._state.value} -> {state.value}")
        self._state = state
        for callback in list(self._state_listeners):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error in connection state listener: {e}")

    def _set_error(self, message: Optional[str]) -> None:
        if message == self._last_error:
            return
        self._last_error = message
        for callback in list(self._error_listeners):
            try:
                callback(message)
            except Exception as e:
                logger.error(f"Error in last-error listener: {e}")

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Start a connection attempt.

        No-op while connecting or connected, and when the previous attempt
        began less than min_attempt_interval ago.

        Returns:
            True if an attempt was started
        """
        if self._state != ConnectionState.DISCONNECTED:
            return False

        # Invalid settings never count as an attempt and never leave disconnected
        if not self._report_invalid_endpoint():
            return False

        now = time.monotonic()
        if self._last_attempt is not None:
            since = now - self._last_attempt
            if since < self._retry.min_attempt_interval:
                logger.debug(f"Connect suppressed, last attempt {since:.2f}s ago")
                return False

        self._last_attempt = now
        self._connection_attempts += 1
        self._set_state(ConnectionState.CONNECTING)

        self._generation += 1
        host, port = self._config.endpoint
        logger.info(f"Connecting to {host}:{port} (attempt {self._connection_attempts})")
        self._connect_task = asyncio.get_running_loop().create_task(
            self._open(self._generation, host, port), name="osc-connect"
        )
        # Let the attempt start before returning to the caller
        await asyncio.sleep(0)
        return True

    def _report_invalid_endpoint(self) -> bool:
        """
        Surface an invalid host/port as last_error.

        Returns:
            True if the endpoint is usable
        """
        try:
            self._config.validate_endpoint()
        except ConfigurationError as e:
            self._set_error(f"Configuration error: {e}")
            logger.error(f"Not connecting: {e}")
            return False
        return True

    async def _open(self, generation: int, host: str, port: int) -> None:
        try:
            endpoint = await asyncio.wait_for(
                self._opener(host, port, lambda: _OscDatagramProtocol(self, generation)),
                timeout=self._retry.connect_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation == self._generation:
                self._fail(e)
            return

        if generation != self._generation:
            # Superseded by configure()/reconnect() while opening
            endpoint.close()
            return

        self._endpoint = endpoint
        self._connection_attempts = 0
        self._has_connected = True
        self._set_error(None)
        self._set_state(ConnectionState.CONNECTED)

    def _fail(self, exc: BaseException) -> None:
        error = TransportError.from_exception(exc)
        self._stats["connection_failures"] += 1
        logger.error(f"OSC connection failed ({error.kind.value}): {error}")
        self._set_error(str(error))
        self._close_endpoint()
        self._set_state(ConnectionState.DISCONNECTED)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()

        delay = self._retry.retry_delay if self._has_connected else self._retry.quick_start_delay
        if self._last_attempt is not None:
            # Never fire inside the connection-storm guard window
            guard = self._retry.min_attempt_interval - (time.monotonic() - self._last_attempt)
            delay = max(delay, guard)

        logger.info(f"Reconnecting in {delay:.1f}s")
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect_after(delay), name="osc-reconnect"
        )

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        await self.connect()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _cancel_connect(self) -> None:
        task, self._connect_task = self._connect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _close_endpoint(self) -> None:
        # Bumping the generation silences callbacks from the old socket
        self._generation += 1
        endpoint, self._endpoint = self._endpoint, None
        if endpoint is not None:
            endpoint.close()

    def _teardown(self) -> None:
        self._cancel_reconnect()
        self._cancel_connect()
        self._close_endpoint()
        self._set_state(ConnectionState.DISCONNECTED)

    async def reconnect(self) -> None:
        """Drop the current socket and start a new attempt (storm guard applies)."""
        logger.info("Reconnecting OSC")
        self._teardown()
        await self.connect()

    async def force_connect(self) -> None:
        """Reconnect immediately, resetting the attempt counter and storm guard."""
        logger.info("Forcing OSC connection")
        self._teardown()
        self._connection_attempts = 0
        self._last_attempt = None
        await self.connect()

    async def ensure_connected(self) -> None:
        """Start a connection if there is none, without disturbing a live one."""
        if self._state != ConnectionState.CONNECTED:
            await self.connect()

    def maintain_connection(self) -> None:
        """Cancel a pending reconnect timer while settings are being edited."""
        self._cancel_reconnect()

    async def handle_app_foreground(self) -> None:
        await self.ensure_connected()

    async def handle_app_background(self) -> None:
        # Local control connections persist across app lifecycle changes
        logger.debug("App backgrounded, keeping OSC connection")

    async def force_disconnect(self) -> None:
        self._teardown()

    async def close(self) -> None:
        """Cancel timers and close the socket."""
        reconnect, connect = self._reconnect_task, self._connect_task
        self._teardown()
        pending = [t for t in (reconnect, connect)
                   if t is not None and t is not asyncio.current_task()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("OSC transport closed")

    async def configure(self, config: OscConfig) -> None:
        """
        Apply new configuration.

        Changing only layer/slot/timing keeps a live socket untouched.
        Changing host or port drops the socket and connects to the new
        endpoint right away.
        """
        old, self._config = self._config, config
        self._scheduler.update_range(config.slot_range)

        if old.same_endpoint(config):
            logger.debug("Endpoint unchanged, keeping OSC connection")
            return

        logger.info(f"OSC endpoint {old.host}:{old.port} -> {config.host}:{config.port}")
        self._teardown()
        self._connection_attempts = 0
        self._last_attempt = None
        if self._report_invalid_endpoint():
            self._set_error(None)
            await self.connect()

    # -------------------------------------------------------------------------
    # Socket events
    # -------------------------------------------------------------------------

    def _on_socket_error(self, exc: Exception, generation: int) -> None:
        if generation != self._generation:
            return
        kind = classify_error(exc)
        if kind == ErrorKind.FATAL:
            self._fail(exc)
        else:
            self._stats["transient_errors"] += 1
            logger.warning(f"Transient OSC send error: {exc}")

    def _on_connection_lost(self, exc: Optional[Exception], generation: int) -> None:
        if generation != self._generation or self._endpoint is None:
            return
        if exc is not None:
            self._fail(exc)
            return
        self._endpoint = None
        self._set_state(ConnectionState.DISCONNECTED)

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def _wait_connected(self) -> bool:
        timeout = self._retry.steady_wait if self._has_connected else self._retry.startup_wait
        deadline = time.monotonic() + timeout
        while self._state != ConnectionState.CONNECTED:
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self._retry.poll_interval)
        return True

    async def send(self, address: str, value: OscArgument) -> bool:
        """
        Send one OSC message (best effort).

        Connects first if needed and waits a bounded time for the socket;
        if it does not come up the packet is dropped.

        Returns:
            True if the packet was handed to the socket
        """
        try:
            packet = encode_packet(address, value)
        except EncodingError as e:
            logger.error(f"Cannot encode {address}: {e}")
            return False

        if self._state != ConnectionState.CONNECTED:
            if not self._report_invalid_endpoint():
                self._stats["dropped"] += 1
                return False
            await self.connect()
            if not await self._wait_connected():
                self._stats["dropped"] += 1
                logger.debug(f"OSC not connected, dropped: {address}")
                return False

        endpoint = self._endpoint
        if self._state != ConnectionState.CONNECTED or endpoint is None:
            self._stats["dropped"] += 1
            logger.debug(f"OSC not connected, dropped: {address}")
            return False

        try:
            endpoint.sendto(packet)
        except OSError as e:
            self._on_socket_error(e, self._generation)
            return False

        self._stats["sent"] += 1
        logger.debug(f"OSC sent: {address} {value!r}")
        return True

    async def send_text(self, text: str, slot: Optional[int] = None) -> bool:
        """
        Put text on a clip and activate it.

        The activate packet always follows the text packet after text_delay,
        so the engine has ingested the text before the clip is shown.

        Args:
            text: Pre-formatted text
            slot: Target clip; the next slot from the scheduler if None

        Returns:
            True if both packets were sent
        """
        async with self._sequence_lock:
            if slot is None:
                slot = self._scheduler.next()
            layer = self._config.layer
            logger.info(f"Sending to layer {layer}, clip {slot}: {text!r}")

            text_sent = await self.send(text_address(layer, slot), text)
            if self._config.text_delay > 0:
                await asyncio.sleep(self._config.text_delay)
            activated = await self.send(connect_address(layer, slot), 1)
            return text_sent and activated

    async def clear(self) -> bool:
        """Activate the blank clear clip."""
        slots = self._config.slot_range
        return await self.send(connect_address(slots.layer, slots.clear_slot), 1)

    async def clear_slot(self, index: int) -> bool:
        """
        Blank the wall after content on clip `index`.

        Clearing always activates the clear clip; index is for logging.
        """
        logger.info(f"Clearing clip {index} via clear clip {self._config.slot_range.clear_slot}")
        return await self.clear()

    async def ping(self) -> bool:
        """
        Send a lightweight ping.

        Raises:
            TransportError: if not connected
        """
        if self._state != ConnectionState.CONNECTED:
            raise TransportError("Not connected", ErrorKind.FATAL)
        return await self.send(PING_ADDRESS, "ping")
