"""APRS-IS protocol package.

- models.py: Connection settings, states, packets and outbound reports
- errors.py: Exception types
- codec.py: Line parsing and report encoding (no I/O)
- connection.py: APRS-IS session state machine
- policy.py: Persistent and burst reconnect policies
"""

from .codec import (
    LineBuffer,
    encode_filter,
    encode_login,
    encode_message_line,
    encode_position_report,
    encode_weather_report,
    format_latitude,
    format_longitude,
    parse_chunk,
    parse_line,
)
from .connection import APRSConnection
from .errors import APRSConnectionError, APRSError, ProtocolParseError, StateError
from .models import ConnectionConfig, ConnectionState, Packet, PositionReport, WeatherReport
from .policy import BurstPolicy, PersistentPolicy, ReconnectPolicy

__all__ = [
    # Data models
    'ConnectionConfig', 'ConnectionState', 'Packet', 'PositionReport', 'WeatherReport',

    # Errors
    'APRSError', 'APRSConnectionError', 'ProtocolParseError', 'StateError',

    # Codec
    'LineBuffer', 'parse_chunk', 'parse_line', 'encode_login', 'encode_filter',
    'encode_message_line', 'encode_position_report', 'encode_weather_report',
    'format_latitude', 'format_longitude',

    # Session
    'APRSConnection', 'ReconnectPolicy', 'PersistentPolicy', 'BurstPolicy',
]
