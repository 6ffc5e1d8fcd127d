"""Exceptions raised by the eISCP client."""


class ISCPError(Exception):
    """Base class for all eISCP client errors."""


class ISCPConnectionError(ISCPError):
    """The TCP connection to the receiver could not be established."""


class NotConnectedError(ISCPError):
    """A command was issued while no connection to the receiver is open."""
