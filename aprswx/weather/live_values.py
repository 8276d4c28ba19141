"""Live sensor readings and unit normalisation.

Sensor updates arrive in whatever units the sending automation uses. They
are normalised here and kept as the station's current values:

- Temperature: °C
- Humidity: %
- Pressure: hPa (mbar)
- Wind angle: degrees
- Wind speed / gust: m/s
- Rain: mm
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Optional

from aprswx.utils import print_debug

# Divisors converting each wind unit to m/s
WIND_UNITS = {
    "m/s": 1.0,
    "km/h": 3.6,
    "mph": 2.236936,
    "knots": 1.943844,
}

# Multipliers converting each rain unit to mm
RAIN_UNITS = {
    "mm": 1.0,
    "in": 25.4,
}


def wind_to_ms(value: Optional[float], units: str = "m/s") -> Optional[float]:
    """Convert a wind speed to m/s, rounded to 0.1."""
    if value is None:
        return None
    try:
        divisor = WIND_UNITS[units]
    except KeyError:
        raise ValueError(f"Unknown wind unit '{units}'. Valid: {', '.join(WIND_UNITS)}") from None
    return round(value / divisor, 1)


def rain_to_mm(value: float, units: str = "mm") -> float:
    """Convert a rain amount to mm (not rounded; the aggregator rounds)."""
    try:
        return value * RAIN_UNITS[units]
    except KeyError:
        raise ValueError(f"Unknown rain unit '{units}'. Valid: {', '.join(RAIN_UNITS)}") from None


def ms_to_kmh(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return value * 3.6


@dataclass(frozen=True)
class SensorReadings:
    """Snapshot of the current non-rain readings."""

    temperature: Optional[float] = None  # °C
    humidity: Optional[float] = None  # %
    pressure: Optional[float] = None  # hPa
    wind_angle: Optional[float] = None  # degrees
    wind_speed: Optional[float] = None  # m/s
    wind_gust: Optional[float] = None  # m/s

    def as_dict(self) -> Dict[str, Optional[float]]:
        return {
            "temperature": self.temperature,
            "humidity": self.humidity,
            "pressure": self.pressure,
            "wind_angle": self.wind_angle,
            "wind_speed": self.wind_speed,
            "wind_gust": self.wind_gust,
        }


class LiveValueStore:
    """Current sensor values, keyed by measurement name."""

    def __init__(self):
        self._readings = SensorReadings()
        self.last_update: Optional[datetime] = None

    def _update(self, **changes):
        for name, value in changes.items():
            if value is not None and not math.isfinite(value):
                raise ValueError(f"{name} must be a finite number, got {value}")
        self._readings = replace(self._readings, **changes)
        self.last_update = datetime.now(timezone.utc)
        print_debug(f"Live values: {changes}", level=4)

    def update_temperature(self, celsius: Optional[float]):
        self._update(temperature=celsius)

    def update_humidity(self, percent: Optional[float]):
        if percent is not None and not 0 <= percent <= 100:
            raise ValueError(f"Humidity must be 0-100%, got {percent}")
        self._update(humidity=percent)

    def update_pressure(self, hpa: Optional[float]):
        self._update(pressure=hpa)

    def update_wind(
        self,
        angle: Optional[float],
        speed: Optional[float],
        gust: Optional[float] = None,
        units: str = "m/s",
    ):
        """Store wind direction, speed and gust.

        A missing gust clears the previous gust value.
        """
        if angle is not None and math.isfinite(angle):
            angle = round(angle) % 360
        self._update(
            wind_angle=angle,
            wind_speed=wind_to_ms(speed, units),
            wind_gust=wind_to_ms(gust, units),
        )

    def snapshot(self) -> SensorReadings:
        return self._readings

    def get(self, name: str) -> Optional[float]:
        """Look up a single measurement by name."""
        values = self._readings.as_dict()
        if name not in values:
            raise KeyError(name)
        return values[name]
