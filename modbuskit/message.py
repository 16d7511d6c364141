"""The Modbus message: server ID, function code and payload bytes."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import Union

from .checks import check_request
from .errors import ModbusError
from .swapping import pack_double, pack_float, unpack_double, unpack_float
from .types import Error

BytesLike = Union[bytes, bytearray, memoryview]

_FLOAT_SIZE = 4
_DOUBLE_SIZE = 8


def _is_byte_data(value: object) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview))


def _is_sequence(value: object) -> bool:
    return (
        isinstance(value, (Sequence, memoryview))
        and not isinstance(value, str)
    )


def _word(value: int) -> bytes:
    return (int(value) & 0xFFFF).to_bytes(2, "big")


class ModbusMessage:
    """A mutable Modbus PDU prefixed by the server ID (the RTU/TCP unit)."""

    __hash__ = None  # type: ignore[assignment]

    def __init__(self, data: BytesLike | Iterable[int] | "ModbusMessage" = b"") -> None:
        if isinstance(data, ModbusMessage):
            self._data = bytearray(data._data)
        else:
            self._data = bytearray(data)

    # -- construction -------------------------------------------------------

    @classmethod
    def request(cls, server_id: int, function_code: int, *args: object) -> "ModbusMessage":
        """Build a validated request; raises ModbusError if the parameters are invalid.

        The shape of ``args`` selects the layout, as described for
        :func:`modbuskit.checks.check_request`.
        """
        check_request(server_id, function_code, *args)
        msg = cls(bytes((server_id & 0xFF, function_code & 0xFF)))
        msg._data += cls._payload(args)
        return msg

    @staticmethod
    def _payload(args: tuple[object, ...]) -> bytes:
        n = len(args)
        if n == 0:
            return b""
        if n == 1 and _is_byte_data(args[0]):
            return bytes(args[0])  # type: ignore[arg-type]
        if n == 1:
            return _word(args[0])  # type: ignore[arg-type]
        if n == 2 and _is_sequence(args[1]):
            count = int(args[0])  # type: ignore[arg-type]
            return bytes(args[1][:count])  # type: ignore[index]
        if n in (2, 3):
            return b"".join(_word(a) for a in args)  # type: ignore[arg-type]
        address, quantity, count, values = args
        count = int(count)  # type: ignore[arg-type]
        head = _word(address) + _word(quantity) + bytes((count & 0xFF,))  # type: ignore[arg-type]
        if _is_byte_data(values):
            return head + bytes(values)[:count]  # type: ignore[arg-type]
        words = values[: count >> 1]  # type: ignore[index]
        return head + b"".join(_word(w) for w in words)

    @classmethod
    def error_response(cls, server_id: int, function_code: int, error: int) -> "ModbusMessage":
        """Build an error response: server ID, function code with bit 0x80 set, error code."""
        return cls(bytes((server_id & 0xFF, (function_code | 0x80) & 0xFF, int(error) & 0xFF)))

    # -- container protocol -------------------------------------------------

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        """A message is usable once it holds at least server ID and function code."""
        return len(self._data) >= 2

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ModbusMessage):
            return self._data == other._data
        if _is_byte_data(other):
            return self._data == bytes(other)  # type: ignore[arg-type]
        return NotImplemented

    def __getitem__(self, index: int | slice) -> int | bytes:
        """Return a byte; indices outside the message read as 0. Slices give bytes."""
        if isinstance(index, slice):
            return bytes(self._data[index])
        if -len(self._data) <= index < len(self._data):
            return self._data[index]
        return 0

    def __iter__(self) -> Iterator[int]:
        return iter(self._data)

    def __repr__(self) -> str:
        return f"ModbusMessage({bytes(self._data).hex(' ').upper()!r})"

    # -- modification -------------------------------------------------------

    def append(self, other: "ModbusMessage | BytesLike | Iterable[int]") -> None:
        """Append the bytes of another message or byte sequence."""
        if isinstance(other, ModbusMessage):
            self._data += other._data
        else:
            self._data += bytes(other)

    def clear(self) -> None:
        """Remove all content."""
        self._data.clear()

    def resize(self, size: int) -> int:
        """Truncate or zero-pad to ``size`` bytes and return the new length."""
        if size < 0:
            raise ValueError("size must not be negative")
        if size < len(self._data):
            del self._data[size:]
        else:
            self._data.extend(bytes(size - len(self._data)))
        return len(self._data)

    def add(self, value: int, width: int = 2) -> int:
        """Append an integer MSB first in ``width`` bytes; return the new length."""
        if width < 1:
            raise ValueError("width must be at least 1")
        mask = (1 << (8 * width)) - 1
        self._data += (int(value) & mask).to_bytes(width, "big")
        return len(self._data)

    def add_bytes(self, data: BytesLike | Iterable[int]) -> int:
        """Append raw bytes; return the new length."""
        self._data += bytes(data)
        return len(self._data)

    def add_float(self, value: float, swap_rule: int = 0) -> int:
        """Append a float as IEEE 754 bytes (MSB first, then swapped); return the new length."""
        self._data += pack_float(value, swap_rule)
        return len(self._data)

    def add_double(self, value: float, swap_rule: int = 0) -> int:
        """Append a double as IEEE 754 bytes (MSB first, then swapped); return the new length."""
        self._data += pack_double(value, swap_rule)
        return len(self._data)

    # -- extraction ---------------------------------------------------------

    def get(self, index: int, width: int = 2) -> tuple[int, int]:
        """Read an MSB-first integer of ``width`` bytes.

        Returns the value and the index after it; if it does not fit, ``(0, index)``.
        """
        if width < 1:
            raise ValueError("width must be at least 1")
        if 0 <= index and index + width <= len(self._data):
            value = int.from_bytes(self._data[index : index + width], "big")
            return value, index + width
        return 0, index

    def get_bytes(self, index: int, count: int) -> tuple[bytes, int]:
        """Read up to ``count`` bytes, fewer if the message ends; return them and the new index."""
        if index < 0 or count <= 0:
            return b"", index
        chunk = bytes(self._data[index : index + count])
        return chunk, index + len(chunk)

    def get_float(self, index: int, swap_rule: int = 0) -> tuple[float, int]:
        """Read a float; returns ``(0.0, index)`` if it does not fit."""
        if 0 <= index and index + _FLOAT_SIZE <= len(self._data):
            raw = self._data[index : index + _FLOAT_SIZE]
            return unpack_float(raw, swap_rule), index + _FLOAT_SIZE
        return 0.0, index

    def get_double(self, index: int, swap_rule: int = 0) -> tuple[float, int]:
        """Read a double; returns ``(0.0, index)`` if it does not fit."""
        if 0 <= index and index + _DOUBLE_SIZE <= len(self._data):
            raw = self._data[index : index + _DOUBLE_SIZE]
            return unpack_double(raw, swap_rule), index + _DOUBLE_SIZE
        return 0.0, index

    # -- Modbus fields ------------------------------------------------------

    @property
    def server_id(self) -> int:
        """The server ID, or 0 if the message is shorter than two bytes."""
        return self._data[0] if len(self._data) >= 2 else 0

    @property
    def function_code(self) -> int:
        """The function code, or 0 if the message is shorter than two bytes."""
        return self._data[1] if len(self._data) >= 2 else 0

    @property
    def error(self) -> Error | int:
        """The error code of an error response, SUCCESS for any other message."""
        if len(self._data) > 2 and self._data[1] & 0x80:
            code = self._data[2]
            try:
                return Error(code)
            except ValueError:
                return code
        return Error.SUCCESS

    def raise_for_error(self) -> None:
        """Raise ModbusError if this is an error response."""
        if self.error != Error.SUCCESS:
            raise ModbusError(self.error)