"""
Custom exceptions for the UR arm driver.
"""


class DriverError(Exception):
    """Base exception for all driver errors."""
    pass


class ConfigurationError(DriverError):
    """Raised when configuration is invalid or incomplete."""
    pass


class SocketError(DriverError):
    """Raised when a socket operation fails."""
    pass


class ProtocolError(DriverError):
    """Raised when a protocol message is invalid or malformed."""
    pass


class UnsupportedVersionError(ProtocolError):
    """Raised when the controller reports a firmware version we cannot talk to."""
    pass


class ReverseConnectionError(DriverError):
    """Raised when the controller does not connect back to the reverse port."""
    pass
