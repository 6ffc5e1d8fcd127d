"""Pioneer/Onkyo receiver Interface Module.

This module provides an asyncio network client for the eISCP protocol spoken
by home A/V receivers made by Pioneer and Onkyo.
"""
from pyiscp.connection import DEFAULT_PORT, Connection  # noqa: F401
from pyiscp.device import Receiver  # noqa: F401
from pyiscp.exceptions import (  # noqa: F401
    ISCPConnectionError,
    ISCPError,
    NotConnectedError,
)
from pyiscp.protocol import ISCP, Message  # noqa: F401
