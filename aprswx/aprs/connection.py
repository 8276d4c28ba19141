"""APRS-IS client connection.

Owns one TCP session to an APRS-IS server and walks it through the session
states:

    DISCONNECTED --connect()--> CONNECTING --socket up--> CONNECTED
    CONNECTED --user_login()--> LOGGED_IN
    CONNECTING/CONNECTED/LOGGED_IN --error/end/close--> DISCONNECTED
    CONNECTED/LOGGED_IN --reconnect()--> CLOSING --backoff--> CONNECTING
    any --disconnect()--> DISCONNECTED

The connection never retries on its own. Whether and when to reconnect is
decided by the ReconnectPolicy handed in by the caller.
"""

import asyncio
import dataclasses
import inspect
from typing import Callable, Dict, List, Optional, Tuple

from aprswx.constants import CONNECT_TIMEOUT, READ_SIZE
from aprswx.scheduler import ScheduledTask
from aprswx.utils import print_aprs, print_debug, print_error

from .codec import (
    LineBuffer,
    encode_filter,
    encode_login,
    encode_message_line,
    encode_position_report,
    encode_weather_report,
    parse_chunk,
)
from .errors import APRSConnectionError, APRSError, StateError
from .models import ConnectionConfig, ConnectionState, PositionReport, WeatherReport

EVENTS = ("connect", "error", "end", "close", "reconnect", "data")

TRANSITIONS = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {ConnectionState.CONNECTED, ConnectionState.DISCONNECTED},
    ConnectionState.CONNECTED: {
        ConnectionState.LOGGED_IN,
        ConnectionState.CLOSING,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.LOGGED_IN: {ConnectionState.CLOSING, ConnectionState.DISCONNECTED},
    ConnectionState.CLOSING: {ConnectionState.CONNECTING, ConnectionState.DISCONNECTED},
}

OPEN_STATES = (ConnectionState.CONNECTED, ConnectionState.LOGGED_IN)


class APRSConnection:
    """Client side of one APRS-IS session.

    Listeners are registered per event with register_callback(); callbacks
    may be plain functions or coroutines and run in registration order.

    Example:
        conn = APRSConnection(ConnectionConfig("rotate.aprs2.net", "N0CALL-13", "12345"))
        conn.register_callback("data", lambda packet: print(packet.source))
        await conn.connect()
        await conn.user_login()
    """

    def __init__(self, config: ConnectionConfig, policy=None, open_connection=None):
        """Initialize the connection.

        Args:
            config: Server and login settings
            policy: Optional ReconnectPolicy driving login/reconnect/burst
            open_connection: Stream factory, defaults to asyncio.open_connection
        """
        self.config = config
        self.policy = policy
        self._open_connection = open_connection or asyncio.open_connection
        self._state = ConnectionState.DISCONNECTED
        self.state_history: List[Tuple[ConnectionState, ConnectionState]] = []
        self._callbacks: Dict[str, List[Callable]] = {event: [] for event in EVENTS}

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._buffer = LineBuffer()
        self._read_task: Optional[ScheduledTask] = None
        self._backoff_task: Optional[ScheduledTask] = None
        self._policy_task: Optional[ScheduledTask] = None

    # --- State ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state in OPEN_STATES

    @property
    def reconnect_pending(self) -> bool:
        return self._backoff_task is not None and not self._backoff_task.done

    def _set_state(self, new_state: ConnectionState):
        if new_state == self._state:
            return
        if new_state not in TRANSITIONS[self._state]:
            raise StateError(f"Invalid transition {self._state.value} -> {new_state.value}")
        print_debug(f"APRS-IS {self._state.value} -> {new_state.value}", level=3)
        self.state_history.append((self._state, new_state))
        self._state = new_state

    def _require_open(self, action: str):
        if self._state not in OPEN_STATES:
            raise StateError(f"Cannot {action}: not connected to APRS server ({self._state.value})")

    def update_config(self, **changes) -> ConnectionConfig:
        """Replace config fields; takes effect on the next (re)connect."""
        self.config = dataclasses.replace(self.config, **changes)
        return self.config

    # --- Listeners ---

    def register_callback(self, event: str, callback: Callable):
        """Register a listener for one of EVENTS."""
        if event not in self._callbacks:
            raise ValueError(f"Unknown event '{event}'. Valid: {', '.join(EVENTS)}")
        self._callbacks[event].append(callback)

    def remove_callbacks(self, event: Optional[str] = None):
        """Remove listeners for one event, or for all events."""
        events = [event] if event else list(self._callbacks)
        for name in events:
            self._callbacks[name] = []

    async def _emit(self, event: str, *args):
        for callback in list(self._callbacks[event]):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                print_error(f"APRS-IS '{event}' listener failed: {e}")

    # --- Session lifecycle ---

    async def connect(self):
        """Open the TCP session.

        Raises:
            StateError: If a session is already open or being opened
            APRSConnectionError: If the server cannot be reached
        """
        if self._state != ConnectionState.DISCONNECTED:
            raise StateError(f"Already connected ({self._state.value})")
        await self._open()

    async def _open(self):
        host, port = self.config.host, self.config.port
        self._set_state(ConnectionState.CONNECTING)
        print_debug(f"Connecting to {host}:{port}", level=3)

        try:
            reader, writer = await asyncio.wait_for(
                self._open_connection(host, port), timeout=CONNECT_TIMEOUT
            )
        except (OSError, asyncio.TimeoutError) as e:
            reason = str(e) or type(e).__name__
            self._set_state(ConnectionState.DISCONNECTED)
            await self._emit("error", f"Error from {host}: {reason}")
            self._run_policy("on_connection_lost", "error")
            raise APRSConnectionError(f"Unable to connect to {host}:{port}: {reason}") from e

        if self._state != ConnectionState.CONNECTING:
            # disconnect() ran while the socket was opening
            writer.close()
            return

        self._reader, self._writer = reader, writer
        self._buffer = LineBuffer()
        self._set_state(ConnectionState.CONNECTED)
        self._read_task = ScheduledTask(self._read_loop(reader), name="APRS-IS reader")
        await self._emit("connect", host)
        self._run_policy("on_connected")

    async def _read_loop(self, reader: asyncio.StreamReader):
        host = self.config.host
        try:
            while True:
                data = await reader.read(READ_SIZE)
                if not data:
                    break
                for packet in parse_chunk(self._buffer.feed(data)):
                    print_aprs(f"{packet.source}>{packet.path}:{packet.payload}")
                    await self._emit("data", packet)
                if reader is not self._reader:
                    return
        except asyncio.CancelledError:
            raise
        except OSError as e:
            if reader is self._reader:
                await self._connection_lost("error", f"Error from {host}: {e}")
            return

        # Session already torn down by disconnect()/reconnect()
        if reader is not self._reader:
            return
        if self._writer is not None and self._writer.is_closing():
            await self._connection_lost("close", f"Disconnected from {host}")
        else:
            await self._connection_lost("end", f"Disconnected from {host}: connection closed by server")

    async def _connection_lost(self, event: str, message: str):
        """Unexpected loss of the session: tear down, emit, consult policy."""
        if self._read_task is not None:
            await self._read_task.cancel()
            self._read_task = None
        self._close_socket()
        self._set_state(ConnectionState.DISCONNECTED)
        await self._emit(event, message)
        self._run_policy("on_connection_lost", event)

    def _close_socket(self):
        if self._writer is not None:
            self._writer.close()
        self._reader = None
        self._writer = None
        self._buffer = LineBuffer()

    def _run_policy(self, hook: str, *args):
        if self.policy is None:
            return
        if self._policy_task is not None and not self._policy_task.done and not self._policy_task.is_current():
            self._policy_task.task.cancel()
        coro = getattr(self.policy, hook)(self, *args)
        self._policy_task = ScheduledTask(self._guard_policy(coro, hook), name=f"policy {hook}")

    async def _guard_policy(self, coro, hook: str):
        try:
            await coro
        except APRSError as e:
            print_error(f"Reconnect policy {hook} failed: {e}")

    def schedule_connect(self, delay: float) -> ScheduledTask:
        """Open a new session after delay seconds.

        The pending attempt is cancelled by disconnect(). Failures are
        reported through the 'error' event only.
        """
        if self._backoff_task is not None and not self._backoff_task.done and not self._backoff_task.is_current():
            self._backoff_task.task.cancel()
        print_debug(f"Connecting to {self.config.host} in {delay}s", level=3)
        self._backoff_task = ScheduledTask(self._delayed_open(delay), name="APRS-IS backoff")
        return self._backoff_task

    async def _delayed_open(self, delay: float) -> bool:
        await asyncio.sleep(delay)
        if self._state not in (ConnectionState.DISCONNECTED, ConnectionState.CLOSING):
            return self.connected
        try:
            await self._open()
        except APRSConnectionError as e:
            print_debug(str(e), level=2)
            return False
        return True

    async def reconnect(self) -> bool:
        """Close the current session and open a new one after the backoff.

        Returns:
            True once connected again, False if the attempt failed or was
            cancelled by disconnect()

        Raises:
            StateError: If no session is open
        """
        self._require_open("reconnect")
        host = self.config.host
        await self._emit("reconnect", host)

        if self._read_task is not None:
            await self._read_task.cancel()
            self._read_task = None
        self._close_socket()
        self._set_state(ConnectionState.CLOSING)
        await self._emit("close", f"Disconnected from {host}")

        task = self.schedule_connect(self.config.reconnect_backoff)
        await asyncio.wait({task.task})
        if task.task.cancelled():
            return False
        return task.task.result()

    async def disconnect(self):
        """Close the session for good: no events, no reconnect."""
        for name in ("_backoff_task", "_policy_task", "_read_task"):
            handle = getattr(self, name)
            if handle is not None:
                await handle.cancel()
                setattr(self, name, None)

        if self._writer is not None:
            print_debug(f"Disconnecting from {self.config.host}", level=3)
        self._close_socket()
        if self._state != ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)

    # --- Commands ---

    async def _write_line(self, line: str):
        writer = self._writer
        try:
            writer.write(f"{line}\r\n".encode("utf-8"))
            await writer.drain()
        except OSError as e:
            await self._connection_lost("error", f"Error from {self.config.host}: {e}")
            raise APRSConnectionError(f"Write to {self.config.host} failed: {e}") from e
        print_aprs(line, direction="TX")

    async def user_login(self):
        """Send the login line followed by the filter."""
        self._require_open("log in")
        cfg = self.config
        await self._write_line(encode_login(cfg.callsign, cfg.passcode, cfg.app_version))
        await self._write_line(encode_filter(cfg.filter))
        self._set_state(ConnectionState.LOGGED_IN)

    async def user_filter(self):
        """Send (or re-send) the server-side filter."""
        self._require_open("set filter")
        await self._write_line(encode_filter(self.config.filter))

    async def send_message(self, payload: str) -> str:
        """Send an information field as CALLSIGN>APHMEY,TCPIP*:payload.

        Returns:
            The line that was written, without CRLF
        """
        self._require_open("send")
        line = encode_message_line(self.config.callsign, payload)
        await self._write_line(line)
        return line

    async def send_position_report(self, report: PositionReport) -> str:
        """Encode and send a position report."""
        return await self.send_message(encode_position_report(report))

    async def send_aprs_weather_report(self, report: WeatherReport) -> str:
        """Encode and send a weather report."""
        return await self.send_message(encode_weather_report(report))
