"""Constants and defaults for the APRS weather relay."""

# --- Version ---
VERSION = "0.3.0"
APP_ID = f"aprswx {VERSION}"

# --- APRS-IS ---
APRS_IS_PORT = 14580
TOCALL = "APHMEY"  # Destination/software identifier used on every outbound line
Q_PATH = "TCPIP*"
RECONNECT_BACKOFF = 10  # seconds
CONNECT_TIMEOUT = 30  # seconds
READ_SIZE = 4096

# --- Station timing ---
TICK_INTERVAL = 60  # seconds, aligned to the top of the minute
TICK_MAX_DRIFT = 5  # seconds past the minute before the ticker re-syncs
BURST_DRAIN = 15  # seconds to keep a burst connection open after sending
RAIN_UPDATE_DELAY = 10  # seconds to hold rain updates arriving at second 0
DEFAULT_TX_INTERVAL = 10  # minutes between reports

# --- Rain windows ---
RAIN_WINDOW = 3600  # seconds
HOURS_PER_DAY = 24
RAIN_STATE_VERSION = 1

# Debug level system (0-6)
# 0 = No debugging
# 1 = Raw inbound lines
# 2 = Critical errors and important events
# 3 = Connection state changes, major operations
# 4 = Line transmission/reception details
# 5 = Detailed protocol information, dropped lines
# 6 = Everything including config and store access
DEBUG_LEVEL = 0
