"""Threaded Modbus TCP server: one listener thread and one thread per client."""

from __future__ import annotations

import logging
import select
import socket
import threading
import time

from .message import ModbusMessage
from .server import ModbusServer
from .types import Error

log = logging.getLogger(__name__)

_MBAP_SIZE = 6
_MIN_FRAME = 8  # MBAP header plus server ID and function code
_MIN_RESPONSE = 3
_BUFFER_SIZE = 300
_BYTE_WAIT = 0.1  # seconds to wait for the next byte of a frame
_POLL = 0.05


def process_frame(server: ModbusServer, frame: bytes | bytearray | memoryview) -> bytes | None:
    """Answer one received MBAP frame and return the reply frame, or None.

    Frames shorter than header, server ID and function code are ignored.
    A protocol ID other than 0 is answered with TCP_HEAD_MISMATCH. Responses
    shorter than three bytes (for example NIL) produce no reply.
    """
    data = bytes(frame)
    if len(data) < _MIN_FRAME:
        return None
    request = ModbusMessage(data[_MBAP_SIZE:])
    if data[2] or data[3]:
        server._count_message()
        response = ModbusMessage.error_response(
            request.server_id, request.function_code, Error.TCP_HEAD_MISMATCH
        )
        server._count_error()
    else:
        response = server.serve_request(request)
    if len(response) < _MIN_RESPONSE:
        return None
    return data[:4] + len(response).to_bytes(2, "big") + bytes(response)


def _receive(conn: socket.socket) -> tuple[bytes, bool]:
    """Read one frame; return the bytes read and whether the peer closed."""
    buffer = bytearray()
    length = 0
    closed = False
    conn.settimeout(_BYTE_WAIT)
    while (len(buffer) < _MBAP_SIZE or len(buffer) < length) and len(buffer) < _BUFFER_SIZE:
        needed = max(_MBAP_SIZE, length) - len(buffer)
        needed = min(needed, _BUFFER_SIZE - len(buffer))
        try:
            chunk = conn.recv(needed)
        except socket.timeout:
            break
        except OSError:
            closed = True
            break
        if not chunk:
            closed = True
            break
        buffer += chunk
        if len(buffer) >= _MBAP_SIZE and not length:
            length = int.from_bytes(buffer[4:6], "big") + _MBAP_SIZE
    if len(buffer) >= _BUFFER_SIZE:
        log.error("Potential buffer overrun (>%d)!", len(buffer))
        buffer[4:6] = (len(buffer) & 0xFFFF).to_bytes(2, "big")
    return bytes(buffer), closed


class _Client:
    def __init__(self, conn: socket.socket) -> None:
        self.conn = conn
        self.thread: threading.Thread | None = None


class ModbusServerTCP(ModbusServer):
    """A Modbus TCP server serving a limited number of clients on threads."""

    def __init__(self) -> None:
        super().__init__()
        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._clients: dict[int, _Client] = {}
        self._client_lock = threading.Lock()
        self._max_clients = 0
        self._timeout = 20.0

    def __enter__(self) -> "ModbusServerTCP":
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    def start(
        self,
        port: int = 502,
        max_clients: int = 1,
        timeout: float = 20.0,
        host: str = "",
    ) -> bool:
        """Start listening; a running server is stopped first.

        ``timeout`` is the idle time in seconds after which a client is
        dropped, 0 for none.
        """
        if self._listener is not None:
            self.stop()
        self._max_clients = max_clients
        self._timeout = timeout
        self._stop_event.clear()
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            listener.bind((host, port))
            listener.listen()
        except OSError:
            listener.close()
            raise
        listener.settimeout(_POLL)
        self._listener = listener
        self._accept_thread = threading.Thread(
            target=self._serve, name=f"MBserve{port:04X}", daemon=True
        )
        self._accept_thread.start()
        log.debug("Server started on port %d", self.port)
        return True

    def stop(self) -> bool:
        """Drop all connections and stop listening."""
        self._stop_event.set()
        with self._client_lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            try:
                client.conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            client.conn.close()
        for client in clients:
            if client.thread is not None and client.thread is not threading.current_thread():
                client.thread.join()
        if self._accept_thread is not None:
            if self._accept_thread is not threading.current_thread():
                self._accept_thread.join()
            self._accept_thread = None
        if self._listener is not None:
            self._listener.close()
            self._listener = None
            log.debug("Server stopped")
        return True

    def active_clients(self) -> int:
        """Number of clients currently served; finished slots are released."""
        with self._client_lock:
            finished = [
                slot
                for slot, client in self._clients.items()
                if client.thread is not None and not client.thread.is_alive()
            ]
            for slot in finished:
                del self._clients[slot]
            return len(self._clients)

    @property
    def port(self) -> int | None:
        """The port actually listened on, or None when stopped."""
        if self._listener is None:
            return None
        return self._listener.getsockname()[1]

    def _client_available(self) -> bool:
        return self._max_clients - self.active_clients() > 0

    def _serve(self) -> None:
        listener = self._listener
        while not self._stop_event.is_set() and listener is not None:
            if self._client_available():
                try:
                    conn, _ = listener.accept()
                except socket.timeout:
                    continue
                except OSError:
                    break
                if not self._accept(conn):
                    conn.close()
                else:
                    log.debug("Accepted connection - %d clients running", self.active_clients())
            else:
                time.sleep(0.01)
        log.debug("Server going down")

    def _accept(self, conn: socket.socket) -> bool:
        with self._client_lock:
            slot = next(
                (i for i in range(self._max_clients) if i not in self._clients), None
            )
            if slot is None:
                log.debug("No client slot available.")
                return False
            client = _Client(conn)
            client.thread = threading.Thread(
                target=self._work, args=(client,), name=f"MBsrv{slot:02X}clnt", daemon=True
            )
            self._clients[slot] = client
        client.thread.start()
        return True

    def _work(self, client: _Client) -> None:
        conn = client.conn
        timeout = self._timeout
        last = time.monotonic()
        try:
            while not self._stop_event.is_set() and (
                timeout <= 0 or time.monotonic() - last < timeout
            ):
                try:
                    ready, _, _ = select.select([conn], [], [], _POLL)
                except (OSError, ValueError):
                    break
                if not ready:
                    continue
                frame, closed = _receive(conn)
                if frame:
                    reply = process_frame(self, frame)
                    if reply is not None:
                        try:
                            conn.sendall(reply)
                        except OSError:
                            break
                    last = time.monotonic()
                if closed:
                    log.debug("Worker stopping due to client disconnect.")
                    break
            else:
                log.debug("Worker stopping due to timeout.")
        finally:
            try:
                conn.close()
            except OSError:
                pass