"""Module containing the connection handler for the eISCP interface."""
import asyncio
import logging

from pyiscp.exceptions import ISCPConnectionError, NotConnectedError
from pyiscp.protocol import ISCP, command_to_packet

__all__ = ("Connection", "DEFAULT_PORT")

DEFAULT_PORT = 60128


class Connection:
    """Connection handler owning one TCP session to one receiver."""

    def __init__(
        self,
        host="localhost",
        port=DEFAULT_PORT,
        loop=None,
        update_callback=None,
        connect_callback=None,
        disconnect_callback=None,
        error_callback=None,
        timeout=None,
    ):
        """Instantiate an unconnected Connection object.

        :param host:
            Hostname or IP address of the device
        :param port:
            TCP port number of the device
        :param loop:
            asyncio.loop for async operation, the running loop if omitted
        :param update_callback
            Called with ``(message, host)`` for every message from the receiver
        :param connect_callback
            Called with ``(host)`` when the connection is established
        :param disconnect_callback
            Called with ``(host)`` when the connection has ended
        :param error_callback
            Called with ``(exc, host)`` when the connection failed, always
            followed by the disconnect callback
        :param timeout
            Seconds to wait for the TCP handshake, no limit if omitted

        :type host:
            str
        :type port:
            int
        :type loop:
            asyncio.loop
        :type update_callback:
            callable
        :type connect_callback:
            callable
        :type disconnect_callback:
            callable
        :type error_callback:
            callable
        :type timeout:
            float
        """
        if port < 0:
            raise ValueError("Invalid port value: %r" % (port))

        self.log = logging.getLogger(__name__)
        self.host = host
        self.port = port
        self.protocol = None
        self._loop = loop
        self._timeout = timeout
        self._connected = False
        self._pending = None
        self._attempt = 0
        self._closing = set()
        self._update_callback = update_callback
        self._connect_callback = connect_callback
        self._disconnect_callback = disconnect_callback
        self._error_callback = error_callback

    @classmethod
    async def create(cls, host="localhost", port=DEFAULT_PORT, auto_connect=True, **kwargs):
        """Create a Connection and, unless ``auto_connect`` is false, connect it.

        Keyword arguments are passed on to the constructor.
        """
        conn = cls(host=host, port=port, **kwargs)
        if auto_connect:
            await conn.connect()
        return conn

    @property
    def connected(self):
        return self._connected

    @property
    def transport(self):
        if self.protocol is None:
            return None
        return self.protocol.transport

    async def connect(self):
        """Establish the connection to the receiver.

        Returns straight away when already connected, and joins the
        attempt in progress when another caller is already connecting.
        """
        if self._connected:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        if self._pending is None or self._pending.done():
            self._attempt += 1
            self._pending = asyncio.ensure_future(self._open(self._attempt))
        await asyncio.shield(self._pending)

    def _superseded(self):
        return ISCPConnectionError(
            "Connection to {}:{} was closed while connecting".format(self.host, self.port)
        )

    async def _open(self, attempt):
        if attempt != self._attempt:
            raise self._superseded()
        self._discard_transport()

        def _message_callback(message):
            """Function callback for Protocol class when the receiver sends updates."""
            if protocol is self.protocol and self._update_callback:
                self._loop.call_soon(self._update_callback, message, self.host)

        def _connection_lost_callback(lost, exc):
            """Function callback for Protocol class when connection is lost."""
            self._connection_lost(lost, exc)

        protocol = ISCP(
            message_callback=_message_callback,
            connection_lost_callback=_connection_lost_callback,
        )
        self.protocol = protocol

        self.log.debug("Connecting to receiver at %s:%d", self.host, self.port)
        try:
            await asyncio.wait_for(
                self._loop.create_connection(lambda: protocol, self.host, self.port),
                self._timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            if self.protocol is protocol:
                self.protocol = None
            raise ISCPConnectionError(
                "Unable to connect to {}:{}: {}".format(self.host, self.port, exc)
            ) from exc

        if attempt != self._attempt or self.protocol is not protocol:
            # close() was called while connecting
            if protocol.transport is not None:
                protocol.transport.close()
            raise self._superseded()

        self._connected = True
        self.log.info("Connection established to receiver at %s:%d", self.host, self.port)
        if self._connect_callback:
            self._loop.call_soon(self._connect_callback, self.host)

    def _discard_transport(self):
        protocol, self.protocol = self.protocol, None
        if protocol is None or protocol.transport is None:
            return
        if protocol.transport.is_closing():
            # let it finish flushing, its close is still reported
            self._closing.add(protocol)
        else:
            self.log.debug("Discarding previous transport")
            protocol.transport.abort()

    def _connection_lost(self, protocol, exc):
        if protocol in self._closing:
            self._closing.discard(protocol)
        elif protocol is self.protocol:
            self.protocol = None
            self._connected = False
        else:
            return

        if exc is not None:
            self.log.warning("Lost connection to receiver: %s", exc)
            if self._error_callback:
                self._loop.call_soon(self._error_callback, exc, self.host)
        else:
            self.log.info("Connection to receiver at %s:%d closed", self.host, self.port)

        if self._disconnect_callback:
            self._loop.call_soon(self._disconnect_callback, self.host)

    def send_command(self, command):
        """Fire and forget a raw command such as ``PWR01`` to the receiver.

        Replies, if any, arrive later through the update callback.

        :raises NotConnectedError: if the connection is not established
        :raises ValueError: if ``command`` is empty or not ASCII
        """
        transport = self.transport
        if not self._connected or transport is None:
            raise NotConnectedError(
                "Not connected to receiver at {}:{}".format(self.host, self.port)
            )

        packet = command_to_packet(command)
        self.log.debug("> %s", command)
        transport.write(packet)

    def query(self, command):
        """Ask the receiver to report the state of ``command``, e.g. ``PWR``."""
        self.send_command("{}QSTN".format(command))

    def close(self):
        """Close the connection to the receiver.

        Pending writes are flushed before the socket is closed. Closing a
        connection that is not open does nothing.
        """
        connected, self._connected = self._connected, False
        self._attempt += 1
        self._pending = None

        protocol, self.protocol = self.protocol, None
        if protocol is not None and protocol.transport is not None:
            self.log.info("Closing connection to receiver at %s:%d", self.host, self.port)
            if connected:
                self._closing.add(protocol)
            protocol.transport.close()
        # a connect still pending closes its transport on arrival
