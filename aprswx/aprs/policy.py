"""Reconnect policies for APRSConnection.

The connection only exposes primitives and lifecycle hooks. A policy turns
those into a deployment style:

- PersistentPolicy: stay logged in, come back after the backoff when the
  server drops us.
- BurstPolicy: connect, log in, send one report, linger for the drain
  period, then hang up. Nothing is rescheduled.
"""

import asyncio
import inspect
from abc import ABC
from typing import Awaitable, Callable, Optional

from aprswx.constants import BURST_DRAIN
from aprswx.utils import print_debug, print_info, print_warning

from .errors import APRSConnectionError, StateError

ReportCallback = Callable[[object], Optional[Awaitable[object]]]


class ReconnectPolicy(ABC):
    """Base policy: does nothing on either hook."""

    name = "manual"

    async def on_connected(self, connection):
        """Called once the TCP session is up (state CONNECTED)."""

    async def on_connection_lost(self, connection, event: str):
        """Called after an unexpected 'error', 'end' or 'close'.

        Not called after disconnect() or reconnect(), which are deliberate.
        """


class PersistentPolicy(ReconnectPolicy):
    """Stay connected; reconnect after the configured backoff."""

    name = "persistent"

    def __init__(self, login: bool = True):
        self.login = login
        self.reconnects = 0

    async def on_connected(self, connection):
        if self.login:
            await connection.user_login()
            print_info(f"Logged in to {connection.config.host} as {connection.config.callsign}")

    async def on_connection_lost(self, connection, event: str):
        backoff = connection.config.reconnect_backoff
        print_warning(f"APRS-IS connection lost ({event}), reconnecting in {backoff}s")
        self.reconnects += 1
        connection.schedule_connect(backoff)


class BurstPolicy(ReconnectPolicy):
    """Connect, log in, transmit one report, drain, disconnect."""

    name = "burst"

    def __init__(self, report_callback: ReportCallback, drain_seconds: float = BURST_DRAIN):
        """Initialize burst policy.

        Args:
            report_callback: Called with the connection once logged in;
                sends the report (may be a coroutine function)
            drain_seconds: How long to keep the session open after sending
        """
        self.report_callback = report_callback
        self.drain_seconds = drain_seconds
        self.bursts = 0

    async def on_connected(self, connection):
        try:
            await connection.user_login()
            result = self.report_callback(connection)
            if inspect.isawaitable(result):
                await result
            self.bursts += 1
            await asyncio.sleep(self.drain_seconds)
        except (StateError, APRSConnectionError) as e:
            print_warning(f"Burst transmission failed: {e}")

        print_debug(f"Burst done, disconnecting from {connection.config.host}", level=3)
        await connection.disconnect()

    async def on_connection_lost(self, connection, event: str):
        print_debug(f"Burst connection ended ({event}); next burst on schedule", level=3)
