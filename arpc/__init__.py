"""Message framing, routing, coders, topics and a splitting listener for a small RPC protocol."""

__version__ = "0.1.0"