"""Asynchronous TCP client for the length-framed packet protocol."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import threading
from collections import deque
from collections.abc import Callable, Sequence
from contextlib import suppress

from .bytebuffer import ByteBuffer, ByteBufferError
from .packet import HEADER_SIZE, Opcode, Packet, parse_header

__all__ = [
    "Client",
    "main",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    "RECONNECT_DELAY",
    "HEARTBEAT_INTERVAL",
]

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 12345
RECONNECT_DELAY = 3.0
HEARTBEAT_INTERVAL = 5.0

logger = logging.getLogger(__name__)


class Client:
    """A client that keeps one connection alive and sends framed packets.

    Packets sent while disconnected are queued and written once a connection
    is made. A failed connection or read is retried after ``reconnect_delay``
    seconds, and a ping is sent every ``heartbeat_interval`` seconds while
    connected. ``on_packet``, if set, is called with every received packet.
    """

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        self.host = host
        self.port = port
        self.reconnect_delay: float = RECONNECT_DELAY
        self.heartbeat_interval: float = HEARTBEAT_INTERVAL
        self.on_packet: Callable[[Packet], object] | None = None

        self._connected = False
        self._closing = False
        self._writer: asyncio.StreamWriter | None = None
        self._outgoing: deque[bytes] = deque()
        self._wake = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()
        self._reconnect_task: asyncio.Task | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def pending(self) -> int:
        """Number of frames waiting to be written."""
        return len(self._outgoing)

    @property
    def outgoing(self) -> tuple[bytes, ...]:
        """The frames waiting to be written, oldest first."""
        return tuple(self._outgoing)

    # -- connection ------------------------------------------------------

    async def connect(self) -> bool:
        """Try to connect once; on failure a reconnect is scheduled."""
        self._closing = False
        try:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        except OSError as exc:
            logger.error("Connection failed: %s", exc)
            self._schedule_reconnect()
            return False

        self._writer = writer
        self._connected = True
        logger.info("Connected to server")
        self._spawn(self._receive_loop(reader))
        self._spawn(self._write_loop(writer))
        self._spawn(self._heartbeat_loop())
        return True

    async def disconnect(self) -> None:
        """Stop timers, close the connection and do not reconnect."""
        self._closing = True
        tasks = list(self._tasks)
        if self._reconnect_task is not None:
            tasks.append(self._reconnect_task)
            self._reconnect_task = None
        writer = self._writer
        self._teardown()

        current = asyncio.current_task()
        tasks = [task for task in tasks if task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if writer is not None:
            with suppress(OSError):
                await writer.wait_closed()
        self._connected = False
        logger.info("Disconnected from server")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _teardown(self) -> None:
        self._connected = False
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        writer, self._writer = self._writer, None
        if writer is not None:
            with suppress(OSError, RuntimeError):
                writer.close()

    def _schedule_reconnect(self) -> None:
        if self._closing:
            self._teardown()
            return
        self._teardown()
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_later())

    async def _reconnect_later(self) -> None:
        await asyncio.sleep(self.reconnect_delay)
        self._reconnect_task = None
        if self._closing:
            return
        logger.info("Attempting reconnect...")
        await self.connect()

    # -- background loops ------------------------------------------------

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if not self._connected:
                return
            self._send_ping()

    async def _write_loop(self, writer: asyncio.StreamWriter) -> None:
        while True:
            while not self._outgoing:
                self._wake.clear()
                await self._wake.wait()
            frame = self._outgoing[0]
            try:
                if writer.is_closing():
                    raise ConnectionResetError("connection is closing")
                writer.write(frame)
                await writer.drain()
            except OSError as exc:
                logger.error("Write failed: %s", exc)
                self._schedule_reconnect()
                return
            self._outgoing.popleft()

    async def _receive_loop(self, reader: asyncio.StreamReader) -> None:
        try:
            while True:
                size = parse_header(await reader.readexactly(HEADER_SIZE))
                if size == 0:
                    logger.error("Invalid body size (0), closing.")
                    break
                body = await reader.readexactly(size)
                try:
                    self.handle_packet(Packet.deserialize(body))
                except ByteBufferError as exc:
                    logger.error("Failed to parse packet: %s", exc)
        except (asyncio.IncompleteReadError, OSError) as exc:
            logger.error("Read failed: %s", exc)
        self._schedule_reconnect()

    # -- sending ---------------------------------------------------------

    def _send_packet(self, packet: Packet) -> None:
        frame = packet.frame()
        if not self._connected:
            logger.info("Not connected. Queuing packet.")
        self._outgoing.append(frame)
        self._wake.set()

    def _send_ping(self) -> None:
        self._send_packet(Packet(Opcode.CMSG_PING))

    def send_message(self, msg: str) -> None:
        """Send a MESSAGE packet carrying ``msg``."""
        payload = ByteBuffer()
        payload.write_string(msg)
        self._send_packet(Packet(Opcode.MESSAGE, payload))

    def send_hello(self, msg: str, number: int, value: float) -> None:
        """Send a CMSG_HELLO packet: a string, a uint8 and a float."""
        payload = ByteBuffer()
        payload.write_string(msg)
        payload.write_uint8(number)
        payload.write_float(value)
        self._send_packet(Packet(Opcode.CMSG_HELLO, payload))

    # -- receiving -------------------------------------------------------

    def handle_packet(self, packet: Packet) -> Opcode | None:
        """Act on a received packet; return its opcode if it is understood."""
        if self.on_packet is not None:
            self.on_packet(packet)
        opcode = packet.opcode
        if opcode == Opcode.SMSG_PONG:
            logger.info("Received SMSG_PONG")
            return Opcode.SMSG_PONG
        if opcode == Opcode.SMSG_HELLO_RES:
            logger.info("Received SMSG_HELLO_RES")
            return Opcode.SMSG_HELLO_RES
        logger.info("Unknown opcode: %d", int(opcode))
        return None


def _pump_stdin(loop: asyncio.AbstractEventLoop, client: Client) -> None:
    for line in sys.stdin:
        try:
            loop.call_soon_threadsafe(client.send_message, line.rstrip("\r\n"))
        except RuntimeError:
            return


async def _run(host: str, port: int) -> None:
    loop = asyncio.get_running_loop()
    client = Client(host, port)
    await client.connect()

    threading.Thread(target=_pump_stdin, args=(loop, client), daemon=True).start()

    def first() -> None:
        logger.info("Sending first manual packet...")
        client.send_message("First manual message")

    def second() -> None:
        logger.info("Sending second manual packet...")
        client.send_hello("hello", 254, 10.5)

    loop.call_later(1.0, first)
    loop.call_later(2.0, second)

    stop_requested = asyncio.Event()

    def on_signal() -> None:
        logger.info("Caught signal. Disconnecting client...")
        stop_requested.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, on_signal)

    try:
        await stop_requested.wait()
    finally:
        await client.disconnect()


def main(argv: Sequence[str] | None = None) -> int:
    """Connect to the server and send lines typed on standard input."""
    parser = argparse.ArgumentParser(prog="purity-client", description=__doc__)
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="[Client] %(message)s")
    with suppress(KeyboardInterrupt):
        asyncio.run(_run(args.host, args.port))
    logger.info("Exiting.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())