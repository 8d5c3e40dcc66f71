# purity

A small TCP messaging system built on asyncio. It has three parts:

- `purity.bytebuffer` and `purity.packet` define a binary packet format.
- `purity.server` is a server that answers pings and greetings.
- `purity.client` is a client that reconnects by itself.

It has no dependencies outside the standard library.

## Wire format

All integers are big-endian. Each frame on the wire has this layout:

```
+----------------+----------------+---------------------+
| body size (u16)| opcode (u16)   | payload ...         |
+----------------+----------------+---------------------+
                 |<------------- body ----------------->|
```

A string is a `u16` byte length followed by that many UTF-8 bytes, so it can hold at most 65535 bytes. Floats are 32-bit IEEE 754 values and doubles are 64-bit IEEE 754 values.

| Opcode           | Value | Direction       | Payload           |
|------------------|-------|-----------------|-------------------|
| `MESSAGE`        | 1     | client → server | string            |
| `CMSG_PING`      | 2     | client → server | none              |
| `SMSG_PONG`      | 3     | server → client | none              |
| `CMSG_HELLO`     | 4     | client → server | string, u8, float |
| `SMSG_HELLO_RES` | 5     | server → client | none              |

## Installation

```
pip install .
```

## Commands

### Server

```
purity-server [--host HOST] [--port PORT]
```

By default the server listens on `0.0.0.0:12345`. It handles each packet it receives as follows:

- `MESSAGE`: it logs the text.
- `CMSG_PING`: it replies with `SMSG_PONG`.
- `CMSG_HELLO`: it logs the string, number and float, then replies with `SMSG_HELLO_RES`.
- Any other opcode: it logs the opcode as unknown.

A body that cannot be decoded is logged, and the server keeps reading from that connection. The server stops on SIGINT or SIGTERM, and it closes every open session when it does.

### Client

```
purity-client [--host HOST] [--port PORT]
```

By default the client connects to `127.0.0.1:12345`. Once started, it behaves as follows:

- It sends each line read from standard input as a `MESSAGE`.
- After one second it sends `MESSAGE` "First manual message".
- After two seconds it sends `CMSG_HELLO` with `"hello"`, `254` and `10.5`.
- It sends a `CMSG_PING` every five seconds while it is connected.
- It logs each `SMSG_PONG` and `SMSG_HELLO_RES` it receives.
- If connecting fails, or if a read or write fails, it retries after three seconds.
- A frame that announces a body of size 0 counts as a failed read.
- Packets sent while it is disconnected are queued and written in order once the connection is back.

The client disconnects on SIGINT or SIGTERM.

Both commands log to standard error through the `logging` module. They use the loggers `purity.server` and `purity.client`.

## Using the packet format in code

```python
from purity.bytebuffer import ByteBuffer
from purity.packet import Opcode, Packet, parse_header

buf = ByteBuffer()
buf.write_string("hello")
buf.write_uint8(254)
buf.write_float(10.5)

packet = Packet(Opcode.CMSG_HELLO, buf)
wire = packet.frame()              # size header + body

size = parse_header(wire[:2])
decoded = Packet.deserialize(wire[2:2 + size])
assert decoded.opcode is Opcode.CMSG_HELLO
assert decoded.buffer.read_string() == "hello"
assert decoded.buffer.read_uint8() == 254
assert decoded.buffer.read_float() == 10.5
```

`ByteBuffer` has `write_*` and `read_*` methods for these types:

- `uint8`, `uint16`, `uint32`, `uint64`
- `int8`, `int16`, `int32`, `int64`
- `float`, `double`, `bool`, `string`

Writes append to the end of the buffer. Reads consume from a cursor, and `position` and `remaining` report where that cursor is. Three kinds of error can be raised:

- Reading past the end raises `ByteBufferError`.
- Writing a string longer than 65535 bytes raises `ByteBufferError`.
- An integer outside its type's range raises `OverflowError`.

`Packet.deserialize` raises `PacketError` for a body shorter than two bytes. `PacketError` is a subclass of `ByteBufferError`. `parse_header` raises `PacketError` unless it is given exactly two bytes. An opcode that is not in `Opcode` is kept as a plain integer.

## Using the server and client in code

```python
import asyncio

from purity.client import Client
from purity.server import Server


async def demo():
    server = await Server("127.0.0.1", 0).start()   # port 0: any free port
    client = Client("127.0.0.1", server.port)
    replies = []
    client.on_packet = replies.append

    await client.connect()
    client.send_hello("hello", 254, 10.5)
    await asyncio.sleep(0.1)

    await client.disconnect()
    await server.stop()
    return [p.opcode for p in replies]

asyncio.run(demo())
```

Other members of `Server` and `Client`:

- `Server.session_count()` returns the number of connected clients.
- `Client` has the properties `connected`, `pending` and `outgoing`.
- `Client.reconnect_delay` and `Client.heartbeat_interval` can be changed before `connect()`.

## What it does not do

- The server does not forward messages between clients. It only logs them.
- There is no authentication and no encryption.