import asyncio
import contextlib
import logging
import socket

import pytest

from purity.bytebuffer import ByteBuffer
from purity.client import Client
from purity.packet import HEADER_SIZE, Opcode, Packet, parse_header
from purity.server import Server


class Recorder:
    def __init__(self, greeting: bytes = b"") -> None:
        self.greeting = greeting
        self.data = bytearray()
        self.connections = 0

    async def handle(self, reader, writer):
        self.connections += 1
        try:
            if self.greeting:
                writer.write(self.greeting)
                await writer.drain()
            while True:
                chunk = await reader.read(4096)
                if not chunk:
                    break
                self.data += chunk
        except ConnectionError:
            pass
        finally:
            writer.close()


@contextlib.asynccontextmanager
async def recording_server(greeting: bytes = b"", port: int = 0):
    rec = Recorder(greeting)
    srv = await asyncio.start_server(rec.handle, "127.0.0.1", port)
    try:
        yield rec, srv.sockets[0].getsockname()[1]
    finally:
        srv.close()


async def wait_until(predicate, timeout=3.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(poll(), timeout)


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def make_client(port, reconnect_delay=3.0, heartbeat_interval=60.0, on_packet=None):
    client = Client("127.0.0.1", port)
    client.reconnect_delay = reconnect_delay
    client.heartbeat_interval = heartbeat_interval
    client.on_packet = on_packet
    return client


def test_send_while_disconnected_queues_frame():
    client = Client("127.0.0.1", 1)
    client.send_message("hi")
    assert not client.connected
    assert client.outgoing == (b"\x00\x06\x00\x01\x00\x02hi",)


def test_send_hello_frame_round_trip():
    client = Client()
    client.send_hello("hello", 254, 10.5)
    (frame,) = client.outgoing
    size = parse_header(frame[:HEADER_SIZE])
    assert size == len(frame) - HEADER_SIZE
    packet = Packet.deserialize(frame[HEADER_SIZE:])
    assert packet.opcode == Opcode.CMSG_HELLO
    assert packet.buffer.read_string() == "hello"
    assert packet.buffer.read_uint8() == 254
    assert packet.buffer.read_float() == 10.5
    assert packet.buffer.remaining == 0


def test_send_hello_rejects_out_of_range_number():
    client = Client()
    with pytest.raises(OverflowError):
        client.send_hello("hello", 256, 1.0)
    assert client.pending == 0


def test_handle_packet_known_and_unknown():
    seen = []
    client = Client()
    client.on_packet = seen.append
    pong = Packet(Opcode.SMSG_PONG)
    hello = Packet(Opcode.SMSG_HELLO_RES)
    odd = Packet(99, ByteBuffer())
    assert client.handle_packet(pong) == Opcode.SMSG_PONG
    assert client.handle_packet(hello) == Opcode.SMSG_HELLO_RES
    assert client.handle_packet(odd) is None
    assert seen == [pong, hello, odd]


@pytest.mark.asyncio
async def test_queued_packets_flush_on_connect():
    async with recording_server() as (rec, port):
        client = make_client(port)
        client.send_message("first")
        client.send_message("second")
        expected = client.outgoing[0] + client.outgoing[1]
        try:
            assert await client.connect() is True
            await wait_until(lambda: len(rec.data) >= len(expected))
            assert bytes(rec.data) == expected
            assert client.pending == 0
        finally:
            await client.disconnect()


@pytest.mark.asyncio
async def test_heartbeat_sends_ping():
    async with recording_server() as (rec, port):
        client = make_client(port, heartbeat_interval=0.05)
        try:
            await client.connect()
            await wait_until(lambda: len(rec.data) >= 4)
            assert bytes(rec.data[:4]) == Packet(Opcode.CMSG_PING).frame()
        finally:
            await client.disconnect()


@pytest.mark.asyncio
async def test_hello_gets_reply_from_server():
    server = Server("127.0.0.1", 0)
    await server.start()
    received = []
    client = make_client(server.port, on_packet=received.append)
    try:
        await client.connect()
        client.send_hello("hello", 254, 10.5)
        await wait_until(lambda: received)
        assert [p.opcode for p in received] == [Opcode.SMSG_HELLO_RES]
        assert server.session_count() == 1
    finally:
        await client.disconnect()
        await server.stop()


@pytest.mark.asyncio
async def test_reconnects_when_server_appears():
    port = free_port()
    client = make_client(port, reconnect_delay=0.05)
    try:
        assert await client.connect() is False
        assert not client.connected
        async with recording_server(port=port) as (rec, _):
            await wait_until(lambda: client.connected)
            assert client.connected
            assert rec.connections == 1
            await client.disconnect()
    finally:
        await client.disconnect()


@pytest.mark.asyncio
async def test_zero_body_size_triggers_reconnect(caplog):
    async with recording_server(greeting=b"\x00\x00") as (rec, port):
        client = make_client(port, reconnect_delay=0.05)
        try:
            with caplog.at_level(logging.INFO, logger="purity.client"):
                await client.connect()
                await wait_until(lambda: rec.connections >= 2)
            assert "Invalid body size (0), closing." in caplog.text
            assert "Attempting reconnect..." in caplog.text
            assert rec.connections >= 2
        finally:
            await client.disconnect()


@pytest.mark.asyncio
async def test_disconnect_stops_and_queues_later_sends():
    async with recording_server() as (rec, port):
        client = make_client(port, reconnect_delay=0.05)
        await client.connect()
        assert client.connected
        await client.disconnect()
        assert not client.connected
        client.send_message("later")
        await asyncio.sleep(0.2)
        assert client.pending == 1
        assert rec.connections == 1
        assert bytes(rec.data) == b""