"""Length-prefixed binary packet protocol with an asyncio TCP server and reconnecting client."""

__version__ = "0.1.0"
__all__ = ["bytebuffer", "packet", "server", "client"]