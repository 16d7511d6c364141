"""Modbus TCP server on asyncio, framing requests from the byte stream."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from .message import ModbusMessage
from .server import ModbusServer
from .types import Error

log = logging.getLogger(__name__)

_MBAP_SIZE = 6
_MIN_FRAME = 8  # MBAP header plus server ID and function code
_MAX_FRAME = 256 + _MBAP_SIZE
_READ_SIZE = 4096


def _reply(head: bytes, payload: ModbusMessage) -> bytes:
    """Transaction and protocol ID from the request, new length, then the payload."""
    return bytes(head[:4]) + len(payload).to_bytes(2, "big") + bytes(payload)


class RequestFramer:
    """Splits a TCP byte stream into Modbus requests and produces reply frames."""

    def __init__(self, server: ModbusServer) -> None:
        self._server = server
        self._buffer = bytearray()

    def feed(self, data: bytes | bytearray | memoryview) -> list[bytes]:
        """Consume received bytes and return the reply frames to send, in order.

        Incomplete requests are kept for the next call. A frame with a bad
        protocol ID or length is answered with an error and the rest of the
        data is dropped. Requests answered with NIL produce no frame.
        """
        chunk = bytes(data)
        replies: list[bytes] = []
        pos = 0
        while pos < len(chunk):
            missing = _MIN_FRAME - len(self._buffer)
            if missing > 0:
                taken = chunk[pos : pos + missing]
                self._buffer += taken
                pos += len(taken)
                if len(self._buffer) < _MIN_FRAME:
                    break

            buf = self._buffer
            length = int.from_bytes(buf[4:6], "big") + _MBAP_SIZE
            error = Error.SUCCESS
            if buf[2] or buf[3]:
                error = Error.TCP_HEAD_MISMATCH
            if length > _MAX_FRAME or length < _MIN_FRAME:
                error = Error.PACKET_LENGTH_ERROR
            if error != Error.SUCCESS:
                log.debug("invalid frame header: %s", error.name)
                response = ModbusMessage.error_response(buf[6], buf[7], error)
                replies.append(_reply(bytes(buf[:4]), response))
                self._buffer = bytearray()
                break

            taken = chunk[pos : pos + length - len(buf)]
            self._buffer += taken
            pos += len(taken)
            if len(self._buffer) < length:
                break

            frame, self._buffer = bytes(self._buffer), bytearray()
            response = self._server.serve_request(ModbusMessage(frame[_MBAP_SIZE:]))
            if len(response):
                replies.append(_reply(frame, response))
        return replies


class AsyncModbusServer(ModbusServer):
    """A Modbus TCP server running on the asyncio event loop."""

    def __init__(self) -> None:
        super().__init__()
        self._server: asyncio.AbstractServer | None = None
        self._clients: dict[asyncio.StreamWriter, asyncio.Task] = {}
        self._max_clients = 5
        self._idle_timeout = 60.0

    async def start(
        self,
        port: int = 502,
        max_clients: int = 5,
        timeout: float = 60.0,
        host: str | None = None,
    ) -> bool:
        """Start listening; ``timeout`` is the idle time in seconds, 0 for none.

        Returns False if the server is already running.
        """
        if self._server is not None:
            log.warning("Server already running.")
            return False
        self._max_clients = max_clients
        self._idle_timeout = timeout
        self._server = await asyncio.start_server(self._on_client, host, port)
        log.debug("Modbus server started")
        return True

    async def stop(self) -> bool:
        """Stop listening and drop all connections; False if not running."""
        if self._server is None:
            log.warning("Server not running.")
            return False
        server, self._server = self._server, None
        server.close()
        current = asyncio.current_task()
        tasks = [task for task in self._clients.values() if task is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._clients.clear()
        await server.wait_closed()
        log.debug("Modbus server stopped")
        return True

    def active_clients(self) -> int:
        """Number of connections currently served."""
        return len(self._clients)

    def is_running(self) -> bool:
        """True while the server is listening."""
        return self._server is not None

    @property
    def port(self) -> int | None:
        """The port actually listened on, or None when stopped."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def _read(self, reader: asyncio.StreamReader) -> bytes | None:
        if self._idle_timeout > 0:
            try:
                return await asyncio.wait_for(reader.read(_READ_SIZE), self._idle_timeout)
            except asyncio.TimeoutError:
                log.debug("client idle, closing")
                return None
        return await reader.read(_READ_SIZE)

    async def _on_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        if len(self._clients) >= self._max_clients:
            log.debug("max number of clients reached, closing new")
            writer.close()
            with suppress(Exception):
                await writer.wait_closed()
            return
        task = asyncio.current_task()
        if task is not None:
            self._clients[writer] = task
        framer = RequestFramer(self)
        try:
            while True:
                data = await self._read(reader)
                if not data:
                    break
                for reply in framer.feed(data):
                    writer.write(reply)
                await writer.drain()
        except ConnectionError:
            log.debug("client connection lost")
        finally:
            self._clients.pop(writer, None)
            writer.close()
            with suppress(Exception):
                await writer.wait_closed()