"""Weather station runtime.

Ties the pieces together the way the hub's station device did: sensor
updates go into the live values and the rain windows, a minute ticker
purges the windows and sends a report every INTERVAL minutes, and the
APRS-IS connection runs under the configured policy (persistent or burst).

Example:
    station = WeatherStation(StationConfig())
    await station.start()
    station.update_temperature(20.5)
    await station.update_rain(0.3)
    ...
    await station.stop()
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from aprswx.aprs import (
    APRSConnection,
    APRSConnectionError,
    BurstPolicy,
    ConnectionState,
    Packet,
    PersistentPolicy,
    StateError,
)
from aprswx.config import StationConfig
from aprswx.constants import RAIN_UPDATE_DELAY
from aprswx.scheduler import MinuteTicker
from aprswx.store import JsonFileStore, KeyValueStore
from aprswx.utils import print_debug, print_error, print_info, print_status, print_warning
from aprswx.weather import LiveValueStore, RainAggregator, WeatherReportBuilder, rain_to_mm

# Settings that require a new APRS-IS session when changed
RECONNECT_SETTINGS = {
    "SERVER": "host",
    "PORT": "port",
    "MYCALL": "callsign",
    "PASSCODE": "passcode",
    "FILTER": "filter",
    "BACKOFF": "reconnect_backoff",
}


class WeatherStation:
    """One weather station relaying to APRS-IS."""

    def __init__(
        self,
        config: StationConfig,
        store: Optional[KeyValueStore] = None,
        open_connection=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the station.

        Args:
            config: Station settings
            store: Rain window store (default: JSON file at STATE_FILE)
            open_connection: Stream factory passed to APRSConnection
            clock: Returns the current UTC time (tests inject a fake)
        """
        self.config = config
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.store = store if store is not None else JsonFileStore(config.get("STATE_FILE"))

        self.rain = RainAggregator(self.store, timezone_name=config.get("TIMEZONE") or "UTC")
        self.live_values = LiveValueStore()
        self.builder = WeatherReportBuilder(
            self.rain,
            self.live_values,
            config.location(),
            comment=config.get("COMMENT") or None,
        )

        if config.mode == "persistent":
            policy = PersistentPolicy()
        else:
            policy = BurstPolicy(self._send_report)
        self.connection = APRSConnection(
            config.to_connection_config(), policy=policy, open_connection=open_connection
        )
        self._register_callbacks()

        self.ticker = MinuteTicker(self.on_tick, clock=self.clock)
        self.available = False
        self.unavailable_reason: Optional[str] = "Initializing"
        self.packets_received = 0
        self.last_packet: Optional[Packet] = None
        self.reports_sent = 0

    # --- Connection events ---

    def _register_callbacks(self):
        conn = self.connection
        conn.register_callback("connect", self._on_connect)
        conn.register_callback("error", lambda message: self._set_unavailable(f"error: {message}"))
        conn.register_callback("end", lambda message: self._set_unavailable(f"end: {message}"))
        conn.register_callback("close", lambda message: self._set_unavailable(f"close: {message}"))
        conn.register_callback("reconnect", lambda host: self._set_unavailable(f"reconnect: {host}"))
        conn.register_callback("data", self._on_packet)

    def _on_connect(self, host):
        print_status(f"APRS-IS connected: {host}")
        self.available = True
        self.unavailable_reason = None

    def _set_unavailable(self, reason: str):
        print_warning(f"APRS-IS {reason}")
        self.available = False
        self.unavailable_reason = reason

    def _on_packet(self, packet: Packet):
        self.packets_received += 1
        self.last_packet = packet
        print_debug(f"Packet from {packet.source} via {packet.path}: {packet.payload}", level=2)

    # --- Lifecycle ---

    async def start(self):
        """Load the rain windows, start the ticker and (persistent) connect."""
        self.rain.load()
        self.ticker.start()

        if self.config.mode == "persistent":
            try:
                await self.connection.connect()
            except APRSConnectionError as e:
                # The persistent policy has already scheduled the retry
                print_error(f"Initial connect failed: {e}")
        else:
            self.available = True
            self.unavailable_reason = None

        print_info(
            f"Station {self.config.get('MYCALL')} started "
            f"({self.config.mode}, every {self.config.interval} min)"
        )

    async def stop(self):
        """Stop the ticker and close the connection for good."""
        await self.ticker.stop()
        self.connection.remove_callbacks()
        await self.connection.disconnect()
        self.available = False
        self.unavailable_reason = "Stopped"
        print_info("Station stopped")

    async def apply_settings(self, changes: Dict[str, str]) -> bool:
        """Store new settings; reconnect when a session setting changed.

        Returns:
            True if every value was accepted
        """
        ok = True
        conn_changes = {}
        for key, value in changes.items():
            key = key.upper()
            if not self.config.set(key, value):
                ok = False
                continue
            if key in RECONNECT_SETTINGS:
                conn_changes[RECONNECT_SETTINGS[key]] = value

        if conn_changes:
            fresh = self.config.to_connection_config()
            self.connection.update_config(**{
                name: getattr(fresh, name) for name in conn_changes
            })
            if self.connection.connected:
                print_info("Session settings changed, reconnecting")
                await self.connection.reconnect()
        return ok

    # --- Timer ---

    async def on_tick(self, now: Optional[datetime] = None):
        """Minute tick: purge rain windows, send a report when due."""
        now = now or self.clock()
        self.rain.purge(now)

        if now.minute % self.config.interval == 0:
            print_debug(f"Report due ({self.config.interval} min interval)", level=3)
            await self.transmit(now)

    async def transmit(self, now: Optional[datetime] = None):
        """Send the weather report according to the connection mode."""
        if self.config.mode == "persistent":
            if not self.connection.connected:
                print_warning("Not connected to APRS-IS, report skipped")
                return
            await self._send_report(self.connection, now)
            return

        if self.connection.state != ConnectionState.DISCONNECTED:
            print_warning(f"Previous burst still running ({self.connection.state.value}), report skipped")
            return
        try:
            await self.connection.connect()
        except APRSConnectionError as e:
            print_error(f"Burst connect failed: {e}")

    async def _send_report(self, connection, now: Optional[datetime] = None):
        try:
            payload = await self.builder.transmit(connection, now=now or self.clock())
        except (StateError, APRSConnectionError) as e:
            print_error(f"Weather report not sent: {e}")
            return
        if payload is not None:
            self.reports_sent += 1

    # --- Sensor updates ---

    def update_temperature(self, celsius):
        self.live_values.update_temperature(celsius)

    def update_humidity(self, percent):
        self.live_values.update_humidity(percent)

    def update_pressure(self, hpa):
        self.live_values.update_pressure(hpa)

    def update_wind(self, angle, speed, gust=None, units="m/s"):
        self.live_values.update_wind(angle, speed, gust, units)

    async def update_rain(self, amount, units="mm"):
        """Record a rain delta.

        Updates landing in second 0 wait for the minute tick's purge so a
        fresh hour bucket is not cleared right after it was written.
        """
        mm = rain_to_mm(amount, units)
        if self.clock().second == 0:
            await asyncio.sleep(RAIN_UPDATE_DELAY)
        return self.rain.record_rain(mm, self.clock())

    def status(self) -> dict:
        return {
            "callsign": self.config.get("MYCALL"),
            "mode": self.config.mode,
            "available": self.available,
            "unavailable_reason": self.unavailable_reason,
            "connection": self.connection.state.value,
            "readings": self.live_values.snapshot().as_dict(),
            "rain": self.rain.totals(),
            "packets_received": self.packets_received,
            "reports_sent": self.reports_sent,
            "last_report": self.builder.last_report,
        }
