"""Tests for the APRS-IS line codec."""

from datetime import datetime, timezone

import pytest

from aprswx.aprs import (
    LineBuffer,
    PositionReport,
    ProtocolParseError,
    WeatherReport,
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
from aprswx.aprs.codec import round_half_up

WHEN = datetime(2024, 1, 25, 19, 20, tzinfo=timezone.utc)


def weather(**kwargs):
    values = dict(latitude=60.1970, longitude=24.5900, timestamp=WHEN)
    values.update(kwargs)
    return WeatherReport(**values)


class TestParse:
    def test_parse_station_packet(self):
        packet = parse_line("OH2XX-9>APRS,TCPIP*,qAC,T2FINLAND:=6011.82N/02435.40E>hello:world")
        assert packet.source == "OH2XX-9"
        assert packet.path == "APRS,TCPIP*,qAC,T2FINLAND"
        assert packet.payload == "=6011.82N/02435.40E>hello:world"

    def test_server_comment_is_rejected(self):
        with pytest.raises(ProtocolParseError):
            parse_line("# aprsc 2.1.14-g5e22b37 25 Jan 2024 19:20:00 GMT T2FINLAND")

    @pytest.mark.parametrize("line", [
        "garbage without separators",
        "AB>APRS:too short callsign",
        "OH2XX-123>APRS:ssid too long",
        "OH2XX>APRS no colon",
        "garbage;no-colon",
    ])
    def test_malformed_lines_are_rejected(self, line):
        with pytest.raises(ProtocolParseError):
            parse_line(line)

    def test_chunk_drops_comments_and_blank_lines(self):
        raw = (
            b"# logresp N0CALL-13 verified, server T2FINLAND\r\n"
            b"\r\n"
            b"OH2XX>APRS,qAR,OH2RDP:!6011.82N/02435.40E-\r\n"
            b"not a packet\r\n"
            b"OH7YY-5>APX,WIDE1-1:>status text\r\n"
        )
        packets = parse_chunk(raw)
        assert [p.source for p in packets] == ["OH2XX", "OH7YY-5"]
        assert packets[1].path == "APX,WIDE1-1"
        assert packets[1].payload == ">status text"

    def test_invalid_utf8_is_replaced(self):
        packets = parse_chunk(b"OH2XX>APRS:>caf\xe9\r\n")
        assert len(packets) == 1
        assert packets[0].payload.startswith(">caf")


class TestLineBuffer:
    DATA = (
        b"# server banner\r\n"
        b"OH2XX>APRS,qAR,OH2RDP:!6011.82N/02435.40E-\r\n"
        b"OH7YY-5>APX,WIDE1-1:>status text\r\n"
        b"OH1ZZ>APRS::N0CALL-13:hello{01\r\n"
    )

    def test_any_split_gives_the_same_packets(self):
        expected = parse_chunk(self.DATA)
        assert len(expected) == 3
        for cut in range(1, len(self.DATA)):
            buf = LineBuffer()
            packets = parse_chunk(buf.feed(self.DATA[:cut]))
            packets += parse_chunk(buf.feed(self.DATA[cut:]))
            assert packets == expected, f"split at {cut}"
            assert buf.pending == b""

    def test_partial_line_is_held(self):
        buf = LineBuffer()
        assert buf.feed(b"OH2XX>APRS:!6011.8") == b""
        assert buf.pending == b"OH2XX>APRS:!6011.8"
        assert buf.flush() == b"OH2XX>APRS:!6011.8"
        assert buf.pending == b""


class TestSessionLines:
    def test_login(self):
        assert encode_login("N0CALL-13", "12345", "aprswx 0.3.0") == \
            "user N0CALL-13 pass 12345 vers aprswx 0.3.0"

    def test_filter(self):
        assert encode_filter("r/60.2/24.6/50") == "#filter r/60.2/24.6/50"

    def test_message_line(self):
        assert encode_message_line("N0CALL-13", "!x") == "N0CALL-13>APHMEY,TCPIP*:!x"


class TestCoordinates:
    def test_north_east(self):
        assert format_latitude(60.1970) == "6011.82N"
        assert format_longitude(24.5900) == "02435.40E"

    def test_south_west(self):
        assert format_latitude(-33.8688) == "3352.13S"
        assert format_longitude(-151.2093) == "15112.56W"

    def test_minutes_carry_into_degrees(self):
        assert format_latitude(60.99999) == "6100.00N"

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(-2.5) == -3
        assert round_half_up(7.874) == 8


class TestPositionReport:
    def test_with_course_and_speed(self):
        report = PositionReport(60.1970, 24.5900, speed=12.4, heading=90, comment="mobile")
        assert encode_position_report(report) == "!6011.82N/02435.40E-#012090 mobile"

    def test_course_needs_both_values(self):
        report = PositionReport(60.1970, 24.5900, speed=12.4)
        assert encode_position_report(report) == "!6011.82N/02435.40E-"


class TestWeatherReport:
    def test_temperature_and_rain_only(self):
        report = weather(temperature=20, rain_1h=2.0, comment="Homey WX-Station")
        assert encode_weather_report(report) == (
            "@251920z6011.82N/02435.40E_.../...g...t068r008p...P...b.....h.. Homey WX-Station"
        )

    def test_zero_readings_are_not_placeholders(self):
        report = weather(
            temperature=0, wind_direction=0, wind_speed=0, wind_gust=0,
            humidity=45, pressure=1013.2, rain_1h=0, rain_24h=0, rain_since_midnight=0,
        )
        assert encode_weather_report(report) == (
            "@251920z6011.82N/02435.40E_000/000g000t032r000p000P000b10132h45"
        )

    def test_wind_is_sent_in_mph(self):
        report = weather(wind_direction=270, wind_speed=36.0, wind_gust=54.0)
        assert "_270/022g034t..." in encode_weather_report(report)

    def test_full_humidity_is_sent_as_00(self):
        assert encode_weather_report(weather(humidity=100)).endswith("h00")

    def test_negative_fahrenheit(self):
        assert "t-22r" in encode_weather_report(weather(temperature=-30))

    def test_rain_is_sent_in_hundredths_of_an_inch(self):
        report = weather(rain_1h=25.4, rain_24h=300.0, rain_since_midnight=0.3)
        assert "r100p999P001" in encode_weather_report(report)

    def test_timestamp_is_converted_to_utc(self):
        local = datetime.fromisoformat("2024-01-25T21:20:00+02:00")
        assert encode_weather_report(weather(timestamp=local)).startswith("@251920z")

    def test_unknown_readings_are_placeholders(self):
        message = encode_weather_report(weather())
        assert message == "@251920z6011.82N/02435.40E_.../...g...t...r...p...P...b.....h.."
        assert "0" not in message.split("_", 1)[1]
