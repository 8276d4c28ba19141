"""APRS-IS data models.

Defines the structures shared by the codec, the connection and the weather
station:
- ConnectionConfig: APRS-IS server and login settings
- ConnectionState: Session state machine states
- Packet: A decoded inbound station packet
- PositionReport: Outbound position report
- WeatherReport: Outbound complete weather report
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from aprswx.constants import APP_ID, APRS_IS_PORT, RECONNECT_BACKOFF


@dataclass(frozen=True)
class ConnectionConfig:
    """APRS-IS connection settings.

    Frozen: use APRSConnection.update_config() to change values. Changes
    take effect on the next (re)connect.
    """

    host: str
    callsign: str
    passcode: str = "-1"
    port: int = APRS_IS_PORT
    filter: str = ""
    app_version: str = APP_ID
    reconnect_backoff: float = RECONNECT_BACKOFF  # seconds
    debug: bool = False


class ConnectionState(Enum):
    """APRS-IS session states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    LOGGED_IN = "logged_in"
    CLOSING = "closing"


@dataclass(frozen=True)
class Packet:
    """Inbound station packet: SOURCE>PATH:PAYLOAD."""

    source: str  # Callsign with optional -SSID
    path: str  # Comma-separated route, kept opaque
    payload: str  # Raw APRS information field


@dataclass
class PositionReport:
    """Outbound position report."""

    latitude: float  # Decimal degrees
    longitude: float  # Decimal degrees
    symbol_table: str = "/"
    symbol_code: str = "-"  # House
    speed: Optional[float] = None  # Knots
    heading: Optional[float] = None  # Degrees
    comment: Optional[str] = None


@dataclass
class WeatherReport:
    """Outbound complete weather report.

    Values are in the hub's native units; the codec converts them to the
    APRS units on encode. None means "no reading" and is sent as a
    placeholder, never as zero.
    """

    latitude: float
    longitude: float
    symbol_table: str = "/"
    symbol_code: str = "_"
    temperature: Optional[float] = None  # °C
    wind_direction: Optional[float] = None  # Degrees
    wind_speed: Optional[float] = None  # km/h
    wind_gust: Optional[float] = None  # km/h
    humidity: Optional[float] = None  # %
    pressure: Optional[float] = None  # hPa / mbar
    rain_1h: Optional[float] = None  # mm
    rain_24h: Optional[float] = None  # mm
    rain_since_midnight: Optional[float] = None  # mm
    comment: Optional[str] = None
    timestamp: Optional[datetime] = None  # UTC, defaults to now on encode
