"""Validation of the parameters used to build Modbus requests.

Each check returns nothing when the parameters are acceptable and raises
ModbusError carrying the matching error code otherwise.
"""

from __future__ import annotations

from collections.abc import Sequence

from .errors import ModbusError
from .types import Error, FCType, get_fc_type

_MAX_SERVER_ID = 247
_FREE_TYPES = (FCType.FCUSER, FCType.FCGENERIC)


def check_server_fc(server_id: int, function_code: int) -> None:
    """Reject broadcast or reserved server IDs and illegal function codes."""
    if server_id == 0 or server_id > _MAX_SERVER_ID:
        raise ModbusError(Error.INVALID_SERVER)
    if get_fc_type(function_code) is FCType.FCILLEGAL:
        raise ModbusError(Error.ILLEGAL_FUNCTION)


def _require_type(function_code: int, expected: FCType | None) -> None:
    fc_type = get_fc_type(function_code)
    if fc_type is not expected and fc_type not in _FREE_TYPES:
        raise ModbusError(Error.PARAMETER_COUNT_ERROR)


def _is_byte_data(value: object) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview))


def _check_two_words(function_code: int, count: int) -> None:
    _require_type(function_code, FCType.FC01_TYPE)
    if function_code in (0x01, 0x02):
        if count == 0 or count > 0x7D0:
            raise ModbusError(Error.PARAMETER_LIMIT_ERROR)
    elif function_code in (0x03, 0x04):
        if count == 0 or count > 0x7D:
            raise ModbusError(Error.PARAMETER_LIMIT_ERROR)
    elif function_code == 0x05:
        if count not in (0x0000, 0xFF00):
            raise ModbusError(Error.PARAMETER_LIMIT_ERROR)


def _check_register_block(function_code: int, quantity: int, count: int) -> None:
    _require_type(function_code, FCType.FC10_TYPE)
    if quantity == 0 or quantity > 0x7B:
        raise ModbusError(Error.PARAMETER_LIMIT_ERROR)
    if count != quantity * 2:
        raise ModbusError(Error.ILLEGAL_DATA_VALUE)


def _check_coil_block(function_code: int, quantity: int, count: int) -> None:
    _require_type(function_code, FCType.FC0F_TYPE)
    if quantity == 0 or quantity > 0x7B0:
        raise ModbusError(Error.PARAMETER_LIMIT_ERROR)
    if count != (quantity + 7) // 8:
        raise ModbusError(Error.ILLEGAL_DATA_VALUE)


def check_request(server_id: int, function_code: int, *args: object) -> None:
    """Validate request parameters; the shape of ``args`` selects the layout.

    Accepted shapes:

    * ``()`` - no parameters (FC 0x07, 0x0B, 0x0C, 0x11)
    * ``(p1,)`` - one word (FC 0x18)
    * ``(address, value)`` - two words (FC 0x01 to 0x06)
    * ``(p1, p2, p3)`` - three words (FC 0x16)
    * ``(address, quantity, count, words)`` - register block (FC 0x10)
    * ``(address, quantity, count, data_bytes)`` - coil block (FC 0x0F)
    * ``(count, data_bytes)`` or ``(data_bytes,)`` - preformatted data,
      for user-defined or generic function codes only

    Raises TypeError for any other shape.
    """
    check_server_fc(server_id, function_code)
    n = len(args)
    if n == 0:
        _require_type(function_code, FCType.FC07_TYPE)
    elif n == 1 and _is_byte_data(args[0]):
        _require_type(function_code, None)
    elif n == 1:
        _require_type(function_code, FCType.FC18_TYPE)
    elif n == 2 and isinstance(args[1], (Sequence, memoryview)) and not isinstance(args[1], str):
        _require_type(function_code, None)
    elif n == 2:
        _check_two_words(function_code, int(args[1]))
    elif n == 3:
        _require_type(function_code, FCType.FC16_TYPE)
    elif n == 4:
        quantity, count, values = int(args[1]), int(args[2]), args[3]
        if _is_byte_data(values):
            _check_coil_block(function_code, quantity, count)
        elif isinstance(values, Sequence) and not isinstance(values, str):
            _check_register_block(function_code, quantity, count)
        else:
            raise TypeError("fourth parameter must be bytes or a sequence of words")
    else:
        raise TypeError(f"no request layout takes {n} parameters")