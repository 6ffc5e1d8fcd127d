"""Module with the eISCP wire codec and the network protocol handler."""
import asyncio
import logging
import struct
from collections import namedtuple

__all__ = ("ISCP", "Message", "command_to_packet", "parse_segment")

START = "!1"
EOF = "\x1a"
TERMINATORS = ["\n", "\r"]

HEADER_FORMAT = "! 4s I I 4s"
HEADER_SIZE = 16

Message = namedtuple("Message", ("command", "value"))


class ISCPMessage(object):
    """Deals with formatting and parsing data wrapped in an ISCP
    containers. The docs say:
        ISCP (Integra Serial Control Protocol) consists of three
        command characters and parameter character(s) of variable
        length.
    It seems this was the original protocol used for communicating
    via a serial cable.
    """

    def __init__(self, data):
        self.data = data

    def __str__(self):
        # ! = start character
        # 1 = destination unit type, 1 means receiver
        return "{}{}\r".format(START, self.data)

    @classmethod
    def parse(cls, data):
        """Strip the start characters and any trailing EOF/CR/LF."""
        if data[:2] != START:
            raise ValueError("Not an ISCP message: {!r}".format(data))
        data = data[2:]
        while data and (data[-1] in TERMINATORS or data[-1] == EOF):
            data = data[:-1]
        return data


class eISCPPacket(object):
    """For communicating over Ethernet, traditional ISCP messages are
    wrapped inside an eISCP package.
    """

    header = namedtuple("header", ("magic, header_size, data_size, reserved"))

    def __init__(self, iscp_message):
        iscp_message = str(iscp_message)
        # We attach data separately, because Python's struct module does
        # not support variable length strings,
        header = struct.pack(
            HEADER_FORMAT,
            b"ISCP",  # magic
            HEADER_SIZE,  # header size (16 bytes)
            len(iscp_message),  # data size
            b"\x00\x00\x00\x00",  # reserved
        )

        self._bytes = header + iscp_message.encode("ascii")

    def get_raw(self):
        return self._bytes

    @classmethod
    def parse(cls, bytes):
        """Parse the eISCP package given by ``bytes``."""
        h = cls.parse_header(bytes[:HEADER_SIZE])
        data = bytes[h.header_size : h.header_size + h.data_size]
        if len(data) != h.data_size:
            raise ValueError(
                "Truncated packet, expected {} bytes of data, got {}".format(
                    h.data_size, len(data)
                )
            )
        return data.decode("utf-8", "backslashreplace")

    @classmethod
    def parse_header(cls, bytes):
        """Parse the header of an eISCP package."""
        if len(bytes) != HEADER_SIZE:
            raise ValueError("Header must be {} bytes".format(HEADER_SIZE))

        magic, header_size, data_size, reserved = struct.unpack(HEADER_FORMAT, bytes)

        if magic != b"ISCP":
            raise ValueError("Bad magic: {!r}".format(magic))
        if header_size != HEADER_SIZE:
            raise ValueError("Unexpected header size: {}".format(header_size))

        return eISCPPacket.header(magic.decode(), header_size, data_size, reserved)


def command_to_packet(command):
    """Convert an ascii command like (PWR01) to the binary data we
    need to send to the receiver.
    """
    if not command or not command.isascii():
        raise ValueError("Command must be a non-empty ASCII string: {!r}".format(command))
    return eISCPPacket(ISCPMessage(command)).get_raw()


def packet_to_message(raw):
    """Decode a complete eISCP packet into a :class:`Message`."""
    data = ISCPMessage.parse(eISCPPacket.parse(raw))
    return Message(data[:3], data[3:])


def _is_code(text):
    return len(text) == 3 and text.isascii() and text.isalpha() and text.isupper()


def parse_segment(segment):
    """Find the message in one terminator-delimited stream segment.

    Anything in front of the ``!1`` start characters (header bytes, line
    endings of the previous message) is skipped. Returns ``None`` when the
    segment holds no message.
    """
    start = segment.find(START)
    while start != -1:
        code = segment[start + 2 : start + 5]
        if _is_code(code):
            return Message(code, segment[start + 5 :])
        start = segment.find(START, start + 1)
    return None


class ISCP(asyncio.Protocol):
    """The eISCP network protocol handler for a single connection."""

    def __init__(
        self,
        message_callback=None,
        connection_lost_callback=None,
    ):
        """Protocol handler that splits the inbound stream into messages.

        A new instance is created for every connection attempt, it is
        owned by a :class:`pyiscp.Connection`.

            :param message_callback:
                called with every decoded :class:`Message` (optional)
            :param connection_lost_callback:
                called with this protocol and the exception, if any, when
                the transport is closed (optional)

            :type message_callback:
                callable
            :type connection_lost_callback:
                callable
        """
        self.log = logging.getLogger(__name__)
        self._message_callback = message_callback
        self._connection_lost_callback = connection_lost_callback
        self.buffer = b""
        self.transport = None

    #
    # asyncio network functions
    #

    def connection_made(self, transport):
        """Called when asyncio.Protocol establishes the network connection."""
        self.log.debug("Transport established")
        self.transport = transport

    def data_received(self, data):
        """Called when asyncio.Protocol detects received data from network."""
        self.buffer += data
        self.log.debug("Received %d bytes from receiver: %s", len(data), data)
        self._assemble_buffer()

    def connection_lost(self, exc):
        """Called when asyncio.Protocol loses the network connection."""
        self.transport = None

        if self._connection_lost_callback:
            self._connection_lost_callback(self, exc)

    def _assemble_buffer(self):
        """Data for a message may not arrive all in one go, and one read
        may hold several messages. Every complete segment is dispatched,
        the unterminated remainder stays in the buffer.
        """
        *segments, self.buffer = self.buffer.split(EOF.encode())

        for segment in segments:
            message = parse_segment(segment.decode("utf-8", "backslashreplace"))
            if message is None:
                self.log.debug("Discarding unrecognised data: %r", segment)
                continue
            if self._message_callback:
                self._message_callback(message)
