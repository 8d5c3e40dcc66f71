"""Asynchronous TCP server for the length-framed packet protocol."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from collections.abc import Sequence

from .bytebuffer import ByteBufferError
from .packet import HEADER_SIZE, Opcode, Packet, parse_header

__all__ = ["ClientSession", "Server", "main", "DEFAULT_HOST", "DEFAULT_PORT"]

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 12345

logger = logging.getLogger(__name__)


class ClientSession:
    """One connected client: reads framed packets and answers them."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        server: Server | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._server = server
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def _read_exactly(self, size: int, what: str) -> bytes | None:
        try:
            return await self._reader.readexactly(size)
        except asyncio.IncompleteReadError:
            logger.info("Client closed the connection")
        except OSError as exc:
            logger.error("%s read failed: %s", what, exc)
        return None

    async def run(self) -> None:
        """Serve the connection until the peer leaves or an error occurs."""
        try:
            while not self._closed:
                header = await self._read_exactly(HEADER_SIZE, "Header")
                if header is None:
                    break
                body = await self._read_exactly(parse_header(header), "Body")
                if body is None:
                    break

                try:
                    self.handle_packet(Packet.deserialize(body))
                except ByteBufferError as exc:
                    logger.error("Failed to deserialize packet: %s", exc)

                if self._closed:
                    break
                try:
                    await self._writer.drain()
                except OSError as exc:
                    logger.error("Write failed: %s", exc)
                    break
        finally:
            self.close()

    def handle_packet(self, packet: Packet) -> Packet | None:
        """Act on one packet and return the reply sent, if any."""
        opcode = packet.opcode
        if opcode == Opcode.MESSAGE:
            msg = packet.buffer.read_string()
            logger.info("Message: %s", msg)
            return None
        if opcode == Opcode.CMSG_PING:
            logger.info("Received CMSG_PING")
            reply = Packet(Opcode.SMSG_PONG)
            self.send_packet(reply)
            return reply
        if opcode == Opcode.CMSG_HELLO:
            msg = packet.buffer.read_string()
            number = packet.buffer.read_uint8()
            value = packet.buffer.read_float()
            logger.info(
                "opcode[%d] SMSG_HELLO_RES : msg[%s] uint8_t[%d] float[%s]",
                int(opcode), msg, number, format(value, "g"),
            )
            reply = Packet(Opcode.SMSG_HELLO_RES)
            self.send_packet(reply)
            return reply
        logger.info("Unknown opcode: %d", int(opcode))
        return None

    def send_packet(self, packet: Packet) -> None:
        """Queue a framed packet for writing; writes keep their order."""
        if self._closed:
            return
        try:
            self._writer.write(packet.frame())
        except OSError as exc:
            logger.error("Write failed: %s", exc)
            self.close()

    def close(self) -> None:
        """Close the connection and leave the server's session set."""
        if self._closed:
            return
        self._closed = True
        try:
            self._writer.close()
        except OSError:
            pass
        if self._server is not None:
            self._server.remove_session(self)


class Server:
    """Accepts connections and runs a :class:`ClientSession` for each."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        self.host = host
        self._port = port
        self._server: asyncio.base_events.Server | None = None
        self._sessions: set[ClientSession] = set()

    @property
    def port(self) -> int:
        """The bound port once started, otherwise the configured one."""
        if self._server is not None and self._server.sockets:
            return self._server.sockets[0].getsockname()[1]
        return self._port

    async def start(self) -> Server:
        """Bind the listening socket and begin accepting clients."""
        self._server = await asyncio.start_server(self._accept, self.host, self._port)
        return self

    async def _accept(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        session = ClientSession(reader, writer, self)
        self._sessions.add(session)
        logger.info("New client connected.")
        self.log_session_count()
        await session.run()

    async def stop(self) -> None:
        """Stop accepting clients and close every open session."""
        listener = self._server
        if listener is not None:
            listener.close()
            logger.info("Acceptor closed.")

        sessions = list(self._sessions)
        self._sessions.clear()
        for session in sessions:
            session.close()
        self.log_session_count()

        if listener is not None:
            await listener.wait_closed()
            self._server = None

    def remove_session(self, session: ClientSession) -> None:
        self._sessions.discard(session)
        self.log_session_count()

    def session_count(self) -> int:
        return len(self._sessions)

    def log_session_count(self) -> None:
        logger.info("Active sessions: %d", len(self._sessions))


async def _serve(host: str, port: int) -> None:
    server = Server(host, port)
    await server.start()
    logger.info("Running on port %d", server.port)

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()

    def on_signal(signum: int) -> None:
        logger.info("Signal %d received, shutting down...", signum)
        stop_requested.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_signal, int(sig))
        except (NotImplementedError, RuntimeError):
            pass

    try:
        await stop_requested.wait()
    finally:
        await server.stop()


def main(argv: Sequence[str] | None = None) -> int:
    """Run the server until SIGINT or SIGTERM."""
    parser = argparse.ArgumentParser(prog="purity-server", description=__doc__)
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="[Server] %(message)s")
    try:
        asyncio.run(_serve(args.host, args.port))
    except KeyboardInterrupt:
        pass
    except Exception as exc:  # noqa: BLE001 - report and exit like the CLI should
        logger.error("Exception: %s", exc)
        return 0
    logger.info("Shutting down gracefully.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())