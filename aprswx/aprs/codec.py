"""APRS-IS line codec.

Pure functions for decoding inbound APRS-IS lines into Packets and for
encoding the outbound login, filter, position and weather lines. Nothing in
this module touches a socket.

Weather report layout (APRS Complete Weather Report with timestamp):

    @DDHHMMzDDMM.mmN/DDDMM.mmE_CCC/SSSgGGGtTTTrRRRpPPPPLLLbBBBBBhHH comment

Unknown readings are sent as dots of the field's width so a receiver can
tell "no sensor" apart from a zero reading.
"""

import re
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from aprswx.constants import Q_PATH, TOCALL
from aprswx.utils import print_debug

from .errors import ProtocolParseError
from .models import Packet, PositionReport, WeatherReport

# CALLSIGN[-SSID]>PATH:PAYLOAD, path is the shortest run up to the first colon
PACKET_RE = re.compile(r"^([A-Za-z0-9]{3,6}(?:-[A-Za-z0-9]{1,2})?)>(.*?):(.*)$")

KMH_PER_MPH = 1.609
MM_PER_INCH = 25.4

# Field widths for the weather block
WIDTH_WIND = 3
WIDTH_TEMP = 3
WIDTH_RAIN = 3
WIDTH_HUMIDITY = 2
WIDTH_PRESSURE = 5


def parse_line(line: str) -> Packet:
    """Decode a single APRS-IS data line.

    Args:
        line: One line without its terminator

    Returns:
        Packet with source, path and payload

    Raises:
        ProtocolParseError: If the line is a server comment or does not
            match the station packet grammar
    """
    if line.startswith("#"):
        raise ProtocolParseError(f"Server comment: {line}")

    match = PACKET_RE.match(line)
    if not match:
        raise ProtocolParseError(f"Not a station packet: {line}")

    source, path, payload = match.groups()
    return Packet(source=source, path=path, payload=payload)


def parse_chunk(raw: bytes) -> List[Packet]:
    """Decode every complete line in a chunk of APRS-IS bytes.

    The caller buffers partial lines (see LineBuffer); each line in the
    chunk is handled on its own. Server comments and lines that do not
    match the packet grammar are dropped.

    Args:
        raw: Bytes read from the socket

    Returns:
        Packets in the order their lines appear in the chunk
    """
    text = raw.decode("utf-8", errors="replace")
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    packets = []
    for line in text.split("\n"):
        line = line.strip()
        if not line:
            continue
        try:
            packets.append(parse_line(line))
        except ProtocolParseError as e:
            print_debug(f"Dropped line: {e}", level=5)
    return packets


class LineBuffer:
    """Reassembles lines that a TCP read split in two.

    Example:
        buf = LineBuffer()
        packets = parse_chunk(buf.feed(data))
    """

    def __init__(self):
        self._pending = b""

    def feed(self, data: bytes) -> bytes:
        """Add bytes and return everything up to the last line terminator."""
        self._pending += data
        cut = max(self._pending.rfind(b"\n"), self._pending.rfind(b"\r"))
        if cut < 0:
            return b""
        complete = self._pending[:cut + 1]
        self._pending = self._pending[cut + 1:]
        return complete

    def flush(self) -> bytes:
        """Return and clear whatever partial line is still held."""
        rest, self._pending = self._pending, b""
        return rest

    @property
    def pending(self) -> bytes:
        return self._pending


def encode_login(callsign: str, passcode: str, app_version: str) -> str:
    """Build the APRS-IS login line."""
    return f"user {callsign} pass {passcode} vers {app_version}"


def encode_filter(filter_expr: str) -> str:
    """Build the APRS-IS server-side filter command."""
    return f"#filter {filter_expr}"


def encode_message_line(callsign: str, payload: str) -> str:
    """Wrap an information field in the TNC2 header used for uploads."""
    return f"{callsign}>{TOCALL},{Q_PATH}:{payload}"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _degrees_minutes(value: float):
    """Split an absolute coordinate into whole degrees and minutes.

    Minutes are rounded to hundredths; 60.00 carries into the degrees.
    """
    value = abs(value)
    degrees = int(value)
    minutes = float(
        Decimal(str((value - degrees) * 60)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    )
    if minutes >= 60:
        degrees += 1
        minutes = 0.0
    return degrees, minutes


def format_latitude(latitude: float) -> str:
    """Format latitude as DDMM.mmN / DDMM.mmS."""
    degrees, minutes = _degrees_minutes(latitude)
    hemisphere = "N" if latitude >= 0 else "S"
    return f"{degrees:02d}{minutes:05.2f}{hemisphere}"


def format_longitude(longitude: float) -> str:
    """Format longitude as DDDMM.mmE / DDDMM.mmW."""
    degrees, minutes = _degrees_minutes(longitude)
    hemisphere = "E" if longitude >= 0 else "W"
    return f"{degrees:03d}{minutes:05.2f}{hemisphere}"


def _position_block(latitude, longitude, symbol_table, symbol_code) -> str:
    return f"{format_latitude(latitude)}{symbol_table}{format_longitude(longitude)}{symbol_code}"


def _comment_suffix(comment: Optional[str]) -> str:
    return f" {comment}" if comment else ""


def encode_position_report(report: PositionReport) -> str:
    """Build a position report without timestamp (`!` data type).

    Course/speed (#SSSHHH) is only added when both speed and heading are
    known.
    """
    message = "!" + _position_block(
        report.latitude, report.longitude, report.symbol_table, report.symbol_code
    )

    if report.speed is not None and report.heading is not None:
        speed = round_half_up(report.speed)
        heading = round_half_up(report.heading)
        message += f"#{speed:03d}{heading:03d}"

    return message + _comment_suffix(report.comment)


def _field(value: Optional[float], width: int, convert=None, upper: Optional[int] = None) -> str:
    """Format one numeric weather field, or its placeholder when unknown."""
    if value is None:
        return "." * width
    if convert is not None:
        value = convert(value)
    number = round_half_up(value)
    if upper is not None:
        number = min(number, upper)
    return f"{number:0{width}d}"


def _celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 1.8 + 32


def _kmh_to_mph(kmh: float) -> float:
    return kmh / KMH_PER_MPH


def _mm_to_hundredths_inch(mm: float) -> float:
    return mm / MM_PER_INCH * 100


def _hpa_to_tenths(hpa: float) -> float:
    return hpa * 10


def _humidity(value: Optional[float]) -> str:
    if value is None:
        return "." * WIDTH_HUMIDITY
    humidity = max(0, min(100, round_half_up(value)))
    # Two digits cannot hold 100, the format reserves 00 for it
    if humidity == 100:
        humidity = 0
    return f"{humidity:02d}"


def _temperature(value: Optional[float]) -> str:
    if value is None:
        return "." * WIDTH_TEMP
    fahrenheit = round_half_up(_celsius_to_fahrenheit(value))
    fahrenheit = max(-99, min(999, fahrenheit))
    return f"{fahrenheit:03d}"


def encode_weather_report(report: WeatherReport) -> str:
    """Build a complete weather report with DHM zulu timestamp.

    Args:
        report: Readings in native units (°C, km/h, %, hPa, mm)

    Returns:
        Information field ready for encode_message_line()
    """
    when = report.timestamp or datetime.now(timezone.utc)
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    stamp = f"@{when.day:02d}{when.hour:02d}{when.minute:02d}z"

    position = _position_block(
        report.latitude, report.longitude, report.symbol_table, report.symbol_code
    )

    wind_direction = _field(report.wind_direction, WIDTH_WIND, upper=360)
    wind_speed = _field(report.wind_speed, WIDTH_WIND, _kmh_to_mph, upper=999)
    wind_gust = _field(report.wind_gust, WIDTH_WIND, _kmh_to_mph, upper=999)
    temperature = _temperature(report.temperature)
    rain_1h = _field(report.rain_1h, WIDTH_RAIN, _mm_to_hundredths_inch, upper=999)
    rain_24h = _field(report.rain_24h, WIDTH_RAIN, _mm_to_hundredths_inch, upper=999)
    rain_today = _field(report.rain_since_midnight, WIDTH_RAIN, _mm_to_hundredths_inch, upper=999)
    pressure = _field(report.pressure, WIDTH_PRESSURE, _hpa_to_tenths, upper=99999)
    humidity = _humidity(report.humidity)

    message = (
        f"{stamp}{position}"
        f"{wind_direction}/{wind_speed}g{wind_gust}t{temperature}"
        f"r{rain_1h}p{rain_24h}P{rain_today}b{pressure}h{humidity}"
    )
    return message + _comment_suffix(report.comment)
