"""Module to maintain receiver state information on top of a Connection."""
import asyncio
import logging

from pyiscp.connection import DEFAULT_PORT, Connection
from pyiscp.exceptions import ISCPConnectionError, NotConnectedError
from pyiscp.utils import format_level, format_switch

__all__ = ("Receiver", "RECONNECT_INTERVAL")

RECONNECT_INTERVAL = 10

SWITCH_ON = "01"


def _switch(value):
    return value == SWITCH_ON


def _level(value):
    return int(value, 10)


# command code -> (state name, value parser)
STATE_COMMANDS = {
    "PWR": ("power", _switch),
    "MVL": ("volume", _level),
    "AMT": ("mute", _switch),
    "SLT": ("input", str),
}


class Receiver:
    """A network receiver with power, volume, mute and input state.

    The receiver keeps its connection alive: whenever connecting fails or
    the connection drops, a new attempt is scheduled after
    ``reconnect_interval`` seconds, until :meth:`close` is called.
    """

    def __init__(
        self,
        host,
        port=DEFAULT_PORT,
        loop=None,
        update_callback=None,
        reconnect_interval=RECONNECT_INTERVAL,
        connection_class=Connection,
    ):
        """Instantiate the Receiver object.

        :param host:
            Hostname or IP address of the device
        :param port:
            TCP port number of the device
        :param loop:
            asyncio.loop for async operation, the running loop if omitted
        :param update_callback:
            Called with ``(name, value)`` whenever a state value changes
        :param reconnect_interval:
            Seconds between reconnect attempts
        :param connection_class:
            Factory for the underlying connection

        :type host:
            str
        :type port:
            int
        :type loop:
            asyncio.loop
        :type update_callback:
            callable
        :type reconnect_interval:
            float
        """
        self.log = logging.getLogger(__name__)
        self.host = host
        self.port = port
        self.state = {}
        self.available = False
        self.unavailable_reason = None
        self._loop = loop
        self._update_callback = update_callback
        self._reconnect_interval = reconnect_interval
        self._connection_class = connection_class
        self._reconnect_handle = None
        self._reconnect_task = None
        self._closing = False
        self.connection = self._make_connection()

    def _make_connection(self):
        def _dispatch(handler):
            def callback(*args):
                """Drop events from a connection that has been replaced."""
                if connection is self.connection:
                    handler(*args)

            return callback

        connection = self._connection_class(
            host=self.host,
            port=self.port,
            loop=self._loop,
            update_callback=_dispatch(self._on_message),
            disconnect_callback=_dispatch(self._on_disconnect),
            error_callback=_dispatch(self._on_error),
        )
        return connection

    @property
    def connected(self):
        return self.connection.connected

    async def start(self):
        """Connect to the receiver, retrying in the background on failure."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._closing = False
        await self._connect()

    async def _connect(self):
        self._cancel_reconnect()
        if self._closing:
            return
        if not self.host:
            self._set_unavailable("no_host")
            return

        try:
            await self.connection.connect()
        except ISCPConnectionError as exc:
            self._set_unavailable(str(exc))
            self.log.info("Connection failed for %s: %s", self.host, exc)
            self._schedule_reconnect()
            return

        self.available = True
        self.unavailable_reason = None
        self.log.info("Connected to receiver at %s", self.host)

    def _schedule_reconnect(self):
        if self._closing or self._reconnect_handle is not None:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self.log.debug("Reconnecting in %s seconds", self._reconnect_interval)
        self._reconnect_handle = self._loop.call_later(
            self._reconnect_interval, self._reconnect
        )

    def _reconnect(self):
        self._reconnect_handle = None
        self._reconnect_task = asyncio.ensure_future(self._connect())
        self._reconnect_task.add_done_callback(self._reconnect_done)

    def _reconnect_done(self, task):
        if task is self._reconnect_task:
            self._reconnect_task = None
        if not task.cancelled() and task.exception() is not None:
            self.log.error("Reconnect to %s failed: %r", self.host, task.exception())

    def _set_unavailable(self, reason):
        self.available = False
        self.unavailable_reason = reason

    def _on_message(self, message, host):
        """Function callback for the Connection when the receiver sends updates."""
        command, value = message
        if command not in STATE_COMMANDS:
            self.log.debug("Unhandled message: %s %s", command, value)
            return

        name, parse = STATE_COMMANDS[command]
        try:
            value = parse(value.rstrip("\r\n"))
        except ValueError:
            self.log.warning("Unable to parse %s value from %s: %r", command, host, value)
            return

        self.state[name] = value
        if self._update_callback:
            self._update_callback(name, value)

    def _on_disconnect(self, host):
        """Function callback for the Connection when the connection is lost."""
        self._set_unavailable("connection_closed")
        self.log.info("Disconnected from receiver at %s", host)
        self._schedule_reconnect()

    def _on_error(self, exc, host):
        self._set_unavailable(str(exc) or "iscp_error")
        self.log.warning("Connection error for receiver at %s: %s", host, exc)

    async def _ensure_connected(self):
        if not self.connection.connected:
            await self._connect()
            if not self.connection.connected:
                raise NotConnectedError("Not connected to receiver at {}".format(self.host))

    async def send(self, command):
        """Send a raw command, connecting first if needed."""
        await self._ensure_connected()
        self.connection.send_command(command)

    async def set_power(self, on):
        await self.send("PWR" + format_switch(on))

    async def set_volume(self, volume):
        """Set the master volume, clamped to 0..100."""
        await self.send("MVL" + format_level(volume))

    async def set_mute(self, mute):
        await self.send("AMT" + format_switch(mute))

    async def set_input(self, input_code):
        await self.send("SLT{}".format(input_code))

    async def set_host(self, host):
        """Point the receiver at a new host and connect to it."""
        if host == self.host:
            return
        self.log.info("Receiver host changed from %s to %s", self.host, host)
        self._cancel_reconnect()
        old, self.host = self.connection, host
        self.connection = self._make_connection()
        old.close()
        await self._connect()

    def _cancel_reconnect(self):
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def close(self):
        """Close the connection and don't try to reconnect."""
        self._closing = True
        self._cancel_reconnect()
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
        self.connection.close()
