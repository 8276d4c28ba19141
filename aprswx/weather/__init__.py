"""Weather side of the relay.

- live_values.py: Current sensor readings and unit conversion
- rain.py: Rolling 1h / 24h / since-midnight rain windows
- report_builder.py: Assembles and sends the weather report
"""

from .live_values import LiveValueStore, SensorReadings, rain_to_mm, wind_to_ms
from .rain import AggregationError, RainAggregator, RainEvent, RainState
from .report_builder import GeoLocation, WeatherReportBuilder

__all__ = [
    'LiveValueStore', 'SensorReadings', 'rain_to_mm', 'wind_to_ms',
    'AggregationError', 'RainAggregator', 'RainEvent', 'RainState',
    'GeoLocation', 'WeatherReportBuilder',
]
