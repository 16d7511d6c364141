"""Worker registry and request dispatch shared by all Modbus servers."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum

from .message import ModbusMessage
from .types import ANY_SERVER, Error, FunctionCode

log = logging.getLogger(__name__)

Worker = Callable[[ModbusMessage], ModbusMessage]

NIL_RESPONSE = ModbusMessage(b"\xFF\xF0")
"""Return this from a worker to send no response at all."""

ECHO_RESPONSE = ModbusMessage(b"\xFF\xF1")
"""Return this from a worker to answer with the request itself."""

_ECHO_TRUNCATED = (FunctionCode.WRITE_MULT_COILS, FunctionCode.WRITE_MULT_REGISTERS)
_ECHO_LENGTH = 6


class _Predefined(Enum):
    NIL = 0xF0
    ECHO = 0xF1


def _predefined(response: ModbusMessage) -> _Predefined | None:
    if response[0] == 0xFF and response[1] in (0xF0, 0xF1):
        return _Predefined(response[1])
    return None


class ModbusServer:
    """Maps server ID and function code to worker functions and answers requests."""

    def __init__(self) -> None:
        self._workers: dict[int, dict[int, Worker]] = {}
        self._lock = threading.RLock()
        self._message_count = 0
        self._error_count = 0

    # -- worker registry ----------------------------------------------------

    def register_worker(self, server_id: int, function_code: int, worker: Worker) -> None:
        """Register a worker for a server ID and function code, replacing any earlier one."""
        with self._lock:
            self._workers.setdefault(int(server_id), {})[int(function_code)] = worker
        log.debug("Registered worker for %02X/%02X", server_id, function_code)

    def get_worker(self, server_id: int, function_code: int) -> Worker | None:
        """Find the worker for a request, falling back to ANY_SERVER and ANY_FUNCTION_CODE."""
        with self._lock:
            codes = self._workers.get(int(server_id))
            if codes is None:
                codes = self._workers.get(ANY_SERVER)
            if codes is None:
                return None
            worker = codes.get(int(function_code))
            if worker is None:
                worker = codes.get(FunctionCode.ANY_FUNCTION_CODE)
            return worker

    def unregister_worker(self, server_id: int, function_code: int = 0) -> bool:
        """Remove one worker, or with function code 0 the whole server ID.

        Returns True if anything was removed.
        """
        with self._lock:
            codes = self._workers.get(int(server_id))
            if codes is None:
                return False
            if function_code:
                return codes.pop(int(function_code), None) is not None
            del self._workers[int(server_id)]
            return True

    def is_server_for(self, server_id: int, function_code: int | None = None) -> bool:
        """Tell whether a worker serves the combination.

        Without a function code, only an explicit registration of the server ID counts.
        """
        if function_code is None:
            with self._lock:
                return int(server_id) in self._workers
        return self.get_worker(server_id, function_code) is not None

    # -- counters -----------------------------------------------------------

    @property
    def message_count(self) -> int:
        """Number of requests processed."""
        return self._message_count

    @property
    def error_count(self) -> int:
        """Number of error responses given."""
        return self._error_count

    def reset_counts(self) -> None:
        """Set message and error counts to zero."""
        with self._lock:
            self._message_count = 0
            self._error_count = 0

    def _count_message(self) -> None:
        with self._lock:
            self._message_count += 1

    def _count_error(self) -> None:
        with self._lock:
            self._error_count += 1

    # -- dispatch -----------------------------------------------------------

    @staticmethod
    def _call(worker: Worker, request: ModbusMessage) -> ModbusMessage:
        result = worker(ModbusMessage(request))
        return result if isinstance(result, ModbusMessage) else ModbusMessage(result)

    def local_request(self, msg: ModbusMessage) -> ModbusMessage:
        """Answer a request directly, without any transport.

        A NIL response becomes an empty message, an ECHO response a copy of the request.
        """
        request = msg if isinstance(msg, ModbusMessage) else ModbusMessage(msg)
        server_id, function_code = request.server_id, request.function_code
        self._count_message()
        worker = self.get_worker(server_id, function_code)
        if worker is None:
            code = Error.ILLEGAL_FUNCTION if self.is_server_for(server_id) else Error.INVALID_SERVER
            self._count_error()
            return ModbusMessage.error_response(server_id, function_code, code)
        response = self._call(worker, request)
        kind = _predefined(response)
        if kind is _Predefined.NIL:
            response = ModbusMessage()
        elif kind is _Predefined.ECHO:
            response = ModbusMessage(request)
        if response.error != Error.SUCCESS:
            self._count_error()
        return response

    def serve_request(self, request: ModbusMessage) -> ModbusMessage:
        """Answer a request received over the network.

        The server ID must be registered explicitly. A NIL response becomes an
        empty message; an ECHO response repeats the request, cut to its first
        six bytes for FC 0x0F and 0x10.
        """
        request = request if isinstance(request, ModbusMessage) else ModbusMessage(request)
        server_id, function_code = request.server_id, request.function_code
        self._count_message()
        if not self.is_server_for(server_id):
            response = ModbusMessage.error_response(server_id, function_code, Error.INVALID_SERVER)
        else:
            worker = self.get_worker(server_id, function_code)
            if worker is None:
                response = ModbusMessage.error_response(
                    server_id, function_code, Error.ILLEGAL_FUNCTION
                )
            else:
                response = self._call(worker, request)
                kind = _predefined(response)
                if kind is _Predefined.NIL:
                    response = ModbusMessage()
                elif kind is _Predefined.ECHO:
                    response = ModbusMessage(request)
                    if function_code in _ECHO_TRUNCATED:
                        response.resize(_ECHO_LENGTH)
        if response.error != Error.SUCCESS:
            self._count_error()
        return response

    def list_servers(self) -> dict[int, list[int]]:
        """Return every served server ID with its sorted function codes, and log them."""
        with self._lock:
            listing = {sid: sorted(codes) for sid, codes in sorted(self._workers.items())}
        for sid, codes in listing.items():
            log.info("Server %3d: %s", sid, " ".join(f"{fc:02X}" for fc in codes))
        return listing