"""Station configuration management."""

import html
import json
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from prompt_toolkit import HTML

from aprswx.aprs.models import ConnectionConfig
from aprswx.constants import APP_ID, APRS_IS_PORT, DEFAULT_TX_INTERVAL, RECONNECT_BACKOFF
from aprswx.utils import print_debug, print_error, print_header, print_info, print_pt
from aprswx.weather.report_builder import GeoLocation

MODES = ("persistent", "burst")


class ConfigError(ValueError):
    """Configuration is missing a required value or holds an invalid one."""


def aprs_passcode(callsign: str) -> str:
    """Compute the APRS-IS passcode for a callsign (SSID ignored)."""
    call = callsign.upper().split("-")[0]
    code = 0x73E2
    for i in range(0, len(call), 2):
        code ^= ord(call[i]) << 8
        if i + 1 < len(call):
            code ^= ord(call[i + 1])
    return str(code & 0x7FFF)


class StationConfig:
    """JSON-file backed station settings."""

    def __init__(self, config_file=None):
        if config_file is None:
            config_file = os.path.expanduser("~/.aprswx_config.json")

        self.config_file = config_file

        self.settings = {
            "MYCALL": "NOCALL",
            "PASSCODE": "-1",  # "auto" computes it from MYCALL
            "SERVER": "rotate.aprs2.net",
            "PORT": str(APRS_IS_PORT),
            "FILTER": "",
            "INTERVAL": str(DEFAULT_TX_INTERVAL),  # Minutes between weather reports
            "MODE": "burst",  # persistent | burst
            "BACKOFF": str(RECONNECT_BACKOFF),  # Seconds before reconnecting
            "LATITUDE": "",
            "LONGITUDE": "",
            "TIMEZONE": "UTC",  # IANA zone for rain-since-midnight
            "COMMENT": "Homey WX-Station",
            "STATE_FILE": "~/.aprswx_state.json",
            "WEBUI_HOST": "127.0.0.1",
            "WEBUI_PORT": "8002",
            "WEBUI_PASSWORD": "",  # Bearer token for POST endpoints (empty = disabled)
        }
        self.load()

    def load(self):
        """Load configuration from file."""
        if not os.path.exists(self.config_file):
            return
        try:
            with open(self.config_file, "r") as f:
                saved = json.load(f)
            self.settings.update({k.upper(): str(v) for k, v in saved.items()})
            print_debug(f"Loaded config from {self.config_file}", level=6)
        except (OSError, ValueError, AttributeError) as e:
            print_error(f"Could not load config {self.config_file}: {e}")

    def save(self):
        """Save configuration to file."""
        try:
            with open(self.config_file, "w") as f:
                json.dump(self.settings, f, indent=2)
            print_debug(f"Saved config to {self.config_file}", level=6)
        except OSError as e:
            print_error(f"Could not save config: {e}")

    def set(self, key, value, save=True):
        """Set a configuration value after validating it.

        Returns:
            True if stored, False if the key is unknown or the value invalid
        """
        key = key.upper()
        if key not in self.settings:
            print_error(f"Unknown setting '{key}'")
            return False
        value = str(value).strip()

        if key == "MYCALL":
            value = value.upper()

        if key in ("PORT", "WEBUI_PORT"):
            if not value.isdigit() or not 1 <= int(value) <= 65535:
                print_error(f"Invalid port '{value}': must be between 1 and 65535")
                return False

        if key == "INTERVAL":
            if not value.isdigit() or not 1 <= int(value) <= 60:
                print_error(f"Invalid interval '{value}': must be 1-60 minutes")
                return False

        if key == "BACKOFF":
            try:
                if float(value) < 0:
                    raise ValueError(value)
            except ValueError:
                print_error(f"Invalid backoff '{value}': must be a positive number of seconds")
                return False

        if key == "MODE" and value.lower() not in MODES:
            print_error(f"Invalid mode '{value}'. Valid: {', '.join(MODES)}")
            return False

        if key in ("LATITUDE", "LONGITUDE") and value:
            limit = 90 if key == "LATITUDE" else 180
            try:
                if not -limit <= float(value) <= limit:
                    raise ValueError(value)
            except ValueError:
                print_error(f"Invalid {key.lower()} '{value}': must be -{limit}..{limit}")
                return False

        if key == "TIMEZONE":
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError):
                print_error(f"Unknown timezone '{value}'")
                return False

        if key == "MODE":
            value = value.lower()

        self.settings[key] = value
        if save:
            self.save()
        return True

    def get(self, key):
        """Get a configuration value."""
        return self.settings.get(key.upper(), "")

    # --- Derived settings ---

    @property
    def passcode(self) -> str:
        passcode = self.get("PASSCODE")
        if passcode.lower() == "auto":
            return aprs_passcode(self.get("MYCALL"))
        return passcode

    @property
    def interval(self) -> int:
        return int(self.get("INTERVAL") or DEFAULT_TX_INTERVAL)

    @property
    def mode(self) -> str:
        return self.get("MODE").lower()

    def location(self) -> GeoLocation:
        """Station position.

        Raises:
            ConfigError: If LATITUDE/LONGITUDE are not set or invalid
        """
        try:
            return GeoLocation(float(self.get("LATITUDE")), float(self.get("LONGITUDE")))
        except ValueError as e:
            raise ConfigError(f"Station position not configured (set LATITUDE and LONGITUDE): {e}") from e

    def to_connection_config(self) -> ConnectionConfig:
        """Build the APRS-IS connection settings."""
        return ConnectionConfig(
            host=self.get("SERVER"),
            port=int(self.get("PORT") or APRS_IS_PORT),
            callsign=self.get("MYCALL"),
            passcode=self.passcode,
            filter=self.get("FILTER"),
            app_version=APP_ID,
            reconnect_backoff=float(self.get("BACKOFF") or RECONNECT_BACKOFF),
        )

    def validate(self):
        """Check everything the station needs before it starts.

        Raises:
            ConfigError: On the first problem found
        """
        if self.get("MYCALL") in ("", "NOCALL"):
            raise ConfigError("MYCALL is not set")
        if not self.get("SERVER"):
            raise ConfigError("SERVER is not set")
        if self.mode not in MODES:
            raise ConfigError(f"Invalid MODE '{self.mode}'")
        self.location()
        print_info(f"Config OK: {self.get('MYCALL')} via {self.get('SERVER')} ({self.mode})")

    def display(self):
        """Display all settings."""
        print_header("Station Configuration")
        for key in sorted(self.settings.keys()):
            value = self.settings[key]
            if key in ("PASSCODE", "WEBUI_PASSWORD") and value:
                value = "*" * len(value)
            if value:
                print_pt(HTML(f"<b>{key:14s}</b> {html.escape(value)}"))
            else:
                print_pt(HTML(f"<gray>{key:14s} (not set)</gray>"))
        print_pt("")
