"""Provides a raw console to test module and demonstrate usage."""
import argparse
import asyncio
import logging

import pyiscp

__all__ = ("console", "monitor")

QUERY_COMMANDS = ("PWR", "MVL", "AMT", "SLT")


async def console(log, argv=None):
    """Connect to receiver and show messages as they arrive.

    Pulls the following arguments from the command line (not method arguments):

    :param host:
        Hostname or IP Address of the device.
    :param port:
        TCP port number of the device.
    :param verbose:
        Show debug logging.
    :param query:
        Ask for the power, volume, mute and input state once connected.
    :param messages:
        A sequence of one or more raw commands (e.g. PWR01) to send to the device.
    """
    parser = argparse.ArgumentParser(description=console.__doc__)
    parser.add_argument("--host", default="127.0.0.1", help="IP of receiver")
    parser.add_argument("--port", default=str(pyiscp.DEFAULT_PORT), help="Port of receiver")
    parser.add_argument("--verbose", "-v", action="count")
    parser.add_argument("--query", "-q", action="store_true", help="Query current state")
    parser.add_argument("messages", nargs="*")

    args = parser.parse_args(argv)

    if args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(level=level)

    closed = asyncio.get_running_loop().create_future()

    def log_callback(message, host):
        """Receives message callback from the Connection class."""
        log.info("%s | %s: %r", host, message.command, message.value)

    def error_callback(exc, host):
        log.error("%s | connection error: %s", host, exc)

    def disconnect_callback(host):
        if not closed.done():
            closed.set_result(None)

    try:
        conn = await pyiscp.Connection.create(
            host=args.host,
            port=int(args.port),
            update_callback=log_callback,
            error_callback=error_callback,
            disconnect_callback=disconnect_callback,
        )
    except pyiscp.ISCPConnectionError as exc:
        log.error("%s", exc)
        return 1

    for message in args.messages:
        conn.send_command(message)

    if args.query:
        for command in QUERY_COMMANDS:
            conn.query(command)

    try:
        await closed
    finally:
        conn.close()
    return 0


def monitor():
    """Wrapper to run console on an event loop."""
    log = logging.getLogger(__name__)
    try:
        return asyncio.run(console(log))
    except KeyboardInterrupt:
        return 0
