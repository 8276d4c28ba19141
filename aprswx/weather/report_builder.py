"""Weather report assembly.

Combines the live sensor snapshot with the rain windows and the station
position into one WeatherReport and hands it to the APRS-IS connection.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from aprswx.aprs.models import WeatherReport
from aprswx.utils import print_debug, print_info

from .live_values import LiveValueStore, SensorReadings, ms_to_kmh
from .rain import RainAggregator

DEFAULT_COMMENT = "Homey WX-Station"


@dataclass(frozen=True)
class GeoLocation:
    """Station position in decimal degrees."""

    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90 <= self.latitude <= 90:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180 <= self.longitude <= 180:
            raise ValueError(f"Longitude out of range: {self.longitude}")


class WeatherReportBuilder:
    """Builds and sends the periodic weather report."""

    def __init__(
        self,
        rain: RainAggregator,
        live_values: LiveValueStore,
        location: GeoLocation,
        comment: Optional[str] = DEFAULT_COMMENT,
    ):
        self.rain = rain
        self.live_values = live_values
        self.location = location
        self.comment = comment
        self.last_report: Optional[str] = None

    def build(
        self,
        readings: Optional[SensorReadings] = None,
        now: Optional[datetime] = None,
    ) -> Optional[WeatherReport]:
        """Assemble a report, or None when there is nothing to send.

        Zero is a real reading; only values that are None count as missing.
        """
        readings = readings or self.live_values.snapshot()
        report = WeatherReport(
            latitude=self.location.latitude,
            longitude=self.location.longitude,
            temperature=readings.temperature,
            wind_direction=readings.wind_angle,
            wind_speed=ms_to_kmh(readings.wind_speed),
            wind_gust=ms_to_kmh(readings.wind_gust),
            humidity=readings.humidity,
            pressure=readings.pressure,
            rain_1h=self.rain.rain_1h,
            rain_24h=self.rain.rain_24h,
            rain_since_midnight=self.rain.rain_today,
            comment=self.comment,
            timestamp=now or datetime.now(timezone.utc),
        )

        values = (
            report.temperature, report.wind_direction, report.wind_speed,
            report.wind_gust, report.humidity, report.pressure,
            report.rain_1h, report.rain_24h, report.rain_since_midnight,
        )
        if all(v is None for v in values):
            print_debug("Weather report skipped: nothing to send", level=2)
            return None
        return report

    async def transmit(self, connection, now: Optional[datetime] = None) -> Optional[str]:
        """Build the report and send it over an open connection.

        Returns:
            The encoded information field, or None if nothing was sent

        Raises:
            StateError: If the connection is not open
        """
        report = self.build(now=now)
        if report is None:
            return None
        line = await connection.send_aprs_weather_report(report)
        self.last_report = line.split(":", 1)[1]
        print_info(f"Weather report sent: {self.last_report}")
        return self.last_report
