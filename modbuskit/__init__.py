"""Modbus messages, request validation, swap rules and Modbus TCP servers."""

__version__ = "0.1.0"

__all__ = [
    "types",
    "errors",
    "swapping",
    "checks",
    "message",
    "server",
    "async_server",
    "tcp_server",
]