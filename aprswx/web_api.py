"""Station Web API - aiohttp REST handlers and server.

Sensor updates arrive as JSON POSTs (one endpoint per measurement) and are
fed into the running WeatherStation. GET /api/status reports connection
state, current readings and rain totals.

POST endpoints require "Authorization: Bearer <WEBUI_PASSWORD>" when
WEBUI_PASSWORD is set.
"""

import hmac
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from aiohttp import web

from .utils import print_debug, print_info
from .weather.live_values import RAIN_UNITS, WIND_UNITS


def serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Convert datetime to ISO 8601 string (None stays None)."""
    if dt is None:
        return None
    return dt.isoformat()


def _error(message: str, status: int = 400) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _number(data: Dict[str, Any], key: str, required: bool = True) -> Optional[float]:
    """Pull a numeric field out of a request body.

    Raises:
        ValueError: If the field is missing (when required) or not a finite number
    """
    value = data.get(key)
    if value is None:
        if required:
            raise ValueError(f"Missing '{key}'")
        return None
    if isinstance(value, bool):
        raise ValueError(f"'{key}' must be a number")
    try:
        value = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"'{key}' must be a number") from None
    if not math.isfinite(value):
        raise ValueError(f"'{key}' must be a finite number")
    return value


class APIHandlers:
    """HTTP request handlers for the station API."""

    def __init__(self, station, start_time: datetime):
        """Initialize API handlers.

        Args:
            station: WeatherStation instance
            start_time: Server start datetime
        """
        self.station = station
        self.start_time = start_time

    async def _read_body(self, request: web.Request) -> Dict[str, Any]:
        try:
            data = await request.json()
        except ValueError:
            raise ValueError("Body must be JSON") from None
        if not isinstance(data, dict):
            raise ValueError("Body must be a JSON object")
        return data

    async def handle_update_temperature(self, request: web.Request) -> web.Response:
        """POST /api/wx/temperature - {"temperature": °C}"""
        try:
            data = await self._read_body(request)
            self.station.update_temperature(_number(data, "temperature"))
        except ValueError as e:
            return _error(str(e))
        return web.json_response({"success": True, "readings": self._readings()})

    async def handle_update_humidity(self, request: web.Request) -> web.Response:
        """POST /api/wx/humidity - {"humidity": %}"""
        try:
            data = await self._read_body(request)
            self.station.update_humidity(_number(data, "humidity"))
        except ValueError as e:
            return _error(str(e))
        return web.json_response({"success": True, "readings": self._readings()})

    async def handle_update_pressure(self, request: web.Request) -> web.Response:
        """POST /api/wx/pressure - {"pressure": hPa}"""
        try:
            data = await self._read_body(request)
            self.station.update_pressure(_number(data, "pressure"))
        except ValueError as e:
            return _error(str(e))
        return web.json_response({"success": True, "readings": self._readings()})

    async def handle_update_wind(self, request: web.Request) -> web.Response:
        """POST /api/wx/wind - {"wind_angle", "wind_speed", "wind_gust"?, "units"}

        Units: m/s (default), km/h, mph, knots.
        """
        try:
            data = await self._read_body(request)
            units = data.get("units") or "m/s"
            if units not in WIND_UNITS:
                return _error(f"Unknown wind unit '{units}'. Valid: {', '.join(WIND_UNITS)}")
            self.station.update_wind(
                _number(data, "wind_angle"),
                _number(data, "wind_speed"),
                _number(data, "wind_gust", required=False),
                units,
            )
        except ValueError as e:
            return _error(str(e))
        return web.json_response({"success": True, "readings": self._readings()})

    async def handle_update_rain(self, request: web.Request) -> web.Response:
        """POST /api/wx/rain - {"rain": amount since last update, "units": mm|in}"""
        try:
            data = await self._read_body(request)
            units = data.get("units") or "mm"
            if units not in RAIN_UNITS:
                return _error(f"Unknown rain unit '{units}'. Valid: {', '.join(RAIN_UNITS)}")
            await self.station.update_rain(_number(data, "rain"), units)
        except ValueError as e:
            return _error(str(e))
        return web.json_response({"success": True, "rain": self.station.rain.totals()})

    async def handle_get_status(self, request: web.Request) -> web.Response:
        """GET /api/status - Get station status."""
        uptime = datetime.now(timezone.utc) - self.start_time
        status = self.station.status()
        status.update({
            "uptime_seconds": int(uptime.total_seconds()),
            "start_time": serialize_datetime(self.start_time),
        })
        return web.json_response(status)

    def _readings(self) -> Dict[str, Optional[float]]:
        return self.station.live_values.snapshot().as_dict()


class WebServer:
    """Async web server for the station API."""

    def __init__(self, station, get_password: Optional[Callable[[], str]] = None):
        """Initialize web server.

        Args:
            station: WeatherStation instance
            get_password: Callable that returns current WEBUI_PASSWORD (optional)
        """
        self.station = station
        self.get_password = get_password or (lambda: "")
        self.app = None
        self.runner = None
        self.site = None
        self.start_time = datetime.now(timezone.utc)

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes."""
        app = web.Application(middlewares=[
            self._auth_middleware,
            web.normalize_path_middleware(append_slash=False),
        ])
        api_handlers = APIHandlers(self.station, self.start_time)

        app.router.add_get('/api/status', api_handlers.handle_get_status)

        # POST routes (require authentication via WEBUI_PASSWORD)
        app.router.add_post('/api/wx/temperature', api_handlers.handle_update_temperature)
        app.router.add_post('/api/wx/humidity', api_handlers.handle_update_humidity)
        app.router.add_post('/api/wx/pressure', api_handlers.handle_update_pressure)
        app.router.add_post('/api/wx/wind', api_handlers.handle_update_wind)
        app.router.add_post('/api/wx/rain', api_handlers.handle_update_rain)
        return app

    async def start(self, host: str = '127.0.0.1', port: int = 8002) -> bool:
        """Start the web server.

        Args:
            host: Bind address (0.0.0.0 for LAN access)
            port: HTTP port

        Returns:
            True once listening

        Raises:
            OSError: If the address cannot be bound
        """
        self.app = self.build_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, host, port)
        await self.site.start()
        print_info(f"Station API listening on http://{host}:{port}")
        return True

    async def stop(self):
        """Stop the web server gracefully."""
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        self.site = None
        self.runner = None

    @web.middleware
    async def _auth_middleware(self, request: web.Request, handler):
        password = self.get_password()
        if request.method == "POST" and password:
            header = request.headers.get("Authorization", "")
            token = header[7:] if header.startswith("Bearer ") else ""
            if not hmac.compare_digest(token.encode(), password.encode()):
                print_debug(f"Rejected unauthenticated POST {request.path}", level=2)
                return _error("Unauthorized", status=401)
        return await handler(request)
