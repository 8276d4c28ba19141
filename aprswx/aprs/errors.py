"""Exception types raised by the APRS-IS client."""


class APRSError(Exception):
    """Base class for APRS-IS client errors."""


class APRSConnectionError(APRSError, ConnectionError):
    """Socket could not be opened or was refused, reset or timed out."""


class ProtocolParseError(APRSError, ValueError):
    """Inbound line does not follow the station packet grammar.

    The codec drops such lines; this is only raised by parse_line() for
    callers that want to inspect a single line.
    """


class StateError(APRSError, RuntimeError):
    """Operation is not valid in the connection's current state."""
