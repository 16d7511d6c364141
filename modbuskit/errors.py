"""Modbus error codes as an exception with readable text."""

from __future__ import annotations

from .types import Error

_TEXTS = {
    Error.SUCCESS: "Success",
    Error.ILLEGAL_FUNCTION: "Illegal function code",
    Error.ILLEGAL_DATA_ADDRESS: "Illegal data address",
    Error.ILLEGAL_DATA_VALUE: "Illegal data value",
    Error.SERVER_DEVICE_FAILURE: "Server device failure",
    Error.ACKNOWLEDGE: "Acknowledge",
    Error.SERVER_DEVICE_BUSY: "Server device busy",
    Error.NEGATIVE_ACKNOWLEDGE: "Negative acknowledge",
    Error.MEMORY_PARITY_ERROR: "Memory parity error",
    Error.GATEWAY_PATH_UNAVAIL: "Gateway path unavailable",
    Error.GATEWAY_TARGET_NO_RESP: "Gateway target not responding",
    Error.TIMEOUT: "Timeout",
    Error.INVALID_SERVER: "Invalid server",
    Error.CRC_ERROR: "CRC check error",
    Error.FC_MISMATCH: "Function code mismatch",
    Error.SERVER_ID_MISMATCH: "Server ID mismatch",
    Error.PACKET_LENGTH_ERROR: "Packet length error",
    Error.PARAMETER_COUNT_ERROR: "Wrong # of parameters",
    Error.PARAMETER_LIMIT_ERROR: "Parameter out of bounds",
    Error.REQUEST_QUEUE_FULL: "Request queue full",
    Error.ILLEGAL_IP_OR_PORT: "Illegal IP or port",
    Error.IP_CONNECTION_FAILED: "IP connection failed",
    Error.TCP_HEAD_MISMATCH: "TCP header mismatch",
    Error.EMPTY_MESSAGE: "Incomplete request",
    Error.ASCII_FRAME_ERR: "Invalid ASCII frame",
    Error.ASCII_CRC_ERR: "Invalid ASCII CRC",
    Error.ASCII_INVALID_CHAR: "Invalid ASCII character",
    Error.BROADCAST_ERROR: "Broadcast data invalid",
    Error.UNDEFINED_ERROR: "Unspecified error",
}

_UNSPECIFIED = "Unspecified error"


def _as_error(value: int) -> Error | int:
    number = int(value)
    try:
        return Error(number)
    except ValueError:
        return number


def error_text(code: int) -> str:
    """Return the readable text for an error code; unknown codes are unspecified."""
    return _TEXTS.get(_as_error(code), _UNSPECIFIED)


class ModbusError(Exception):
    """A Modbus error code, usable as an exception and compared by code."""

    def __init__(self, code: int = Error.SUCCESS) -> None:
        # int() also accepts another ModbusError through __int__.
        self.code: Error | int = _as_error(int(code))
        super().__init__(self.text)

    @property
    def text(self) -> str:
        return error_text(self.code)

    def __int__(self) -> int:
        return int(self.code)

    def __index__(self) -> int:
        return int(self.code)

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        name = self.code.name if isinstance(self.code, Error) else f"0x{self.code:02X}"
        return f"ModbusError({name})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ModbusError):
            return int(self.code) == int(other.code)
        if isinstance(other, int):
            return int(self.code) == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(int(self.code))