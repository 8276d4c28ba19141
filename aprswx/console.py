"""Console runner: loads config, starts the station and the web API."""

import asyncio
import signal

from prompt_toolkit import HTML

from . import constants
from .config import ConfigError, StationConfig
from .station import WeatherStation
from .utils import print_error, print_header, print_info, print_pt, set_debug_level
from .web_api import WebServer


async def main(config_file=None, auto_debug=0, burst=False, show_config=False):
    if auto_debug:
        set_debug_level(auto_debug)
        print_info(f"Debug level {constants.DEBUG_LEVEL} enabled at startup")

    print_header(f"APRS Weather Relay v{constants.VERSION}")

    config = StationConfig(config_file)
    if burst:
        config.set("MODE", "burst", save=False)
    if show_config:
        config.display()

    try:
        config.validate()
    except ConfigError as e:
        print_error(str(e))
        print_error(f"Edit {config.config_file} and restart")
        return

    station = WeatherStation(config)
    await station.start()

    web_server = WebServer(station, get_password=lambda: config.get("WEBUI_PASSWORD"))
    webui_host = config.get("WEBUI_HOST") or "127.0.0.1"
    webui_port = int(config.get("WEBUI_PORT") or "8002")
    try:
        await web_server.start(host=webui_host, port=webui_port)
    except OSError as e:
        print_error(f"Station API failed to bind to {webui_host}:{webui_port} - {e}")
        print_error("  Port may be in use or address unavailable. Fix with: WEBUI_HOST/WEBUI_PORT")
        web_server = None

    try:
        # Runs until cancelled by Ctrl-C / SIGTERM
        await asyncio.Event().wait()
    finally:
        if web_server:
            print_info("Shutting down station API...")
            await web_server.stop()
        await station.stop()


def run(config_file=None, auto_debug=0, burst=False, show_config=False):
    """Entry point for the relay."""
    def sigterm_handler(signum, frame):
        """Handle SIGTERM like Ctrl-C."""
        signal.raise_signal(signal.SIGINT)

    signal.signal(signal.SIGTERM, sigterm_handler)

    try:
        asyncio.run(
            main(
                config_file=config_file,
                auto_debug=auto_debug,
                burst=burst,
                show_config=show_config,
            )
        )
    except KeyboardInterrupt:
        print_pt(HTML("\n<yellow>Interrupted by user</yellow>"))

    print_pt(HTML("<gray>Goodbye!</gray>"))
