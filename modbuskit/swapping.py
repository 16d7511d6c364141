"""Byte and nibble re-ordering of IEEE 754 float and double values.

Values travel MSB first (big-endian IEEE 754). A swap rule, built from the
SWAP_* flags, describes how a device orders the bytes of such a value.
Every rule is its own inverse, so the same rule both encodes and decodes.
"""

from __future__ import annotations

import struct

SWAP_BYTES = 0x01
SWAP_REGISTERS = 0x02
SWAP_WORDS = 0x04
SWAP_NIBBLES = 0x08

SWAP_TABLES: tuple[tuple[int, ...], ...] = (
    (0, 1, 2, 3, 4, 5, 6, 7),  # no swap
    (1, 0, 3, 2, 5, 4, 7, 6),  # bytes only
    (2, 3, 0, 1, 6, 7, 4, 5),  # registers only
    (3, 2, 1, 0, 7, 6, 5, 4),  # registers and bytes
    (4, 5, 6, 7, 0, 1, 2, 3),  # words only (double)
    (5, 4, 7, 6, 1, 0, 3, 2),  # words and bytes (double)
    (6, 7, 4, 5, 2, 3, 0, 1),  # words and registers (double)
    (7, 6, 5, 4, 3, 2, 1, 0),  # words, registers and bytes (double)
)

_FLOAT_SIZE = 4
_DOUBLE_SIZE = 8
_FLOAT_RULE_MASK = SWAP_BYTES | SWAP_REGISTERS | SWAP_NIBBLES
_DOUBLE_RULE_MASK = SWAP_BYTES | SWAP_REGISTERS | SWAP_WORDS | SWAP_NIBBLES


def _nibble_swap(byte: int) -> int:
    return ((byte & 0x0F) << 4) | ((byte >> 4) & 0x0F)


def _reorder(data: bytes, table: tuple[int, ...], nibbles: bool) -> bytes:
    picked = (data[src] for src in table[: len(data)])
    if nibbles:
        picked = (_nibble_swap(b) for b in picked)
    return bytes(picked)


def _checked(data: bytes | bytearray | memoryview, size: int, kind: str) -> bytes:
    raw = bytes(data)
    if len(raw) != size:
        raise ValueError(f"a {kind} needs {size} bytes, got {len(raw)}")
    return raw


def swap_float_bytes(data: bytes | bytearray | memoryview, swap_rule: int) -> bytes:
    """Re-order the 4 bytes of a float; only byte, register and nibble swaps apply."""
    raw = _checked(data, _FLOAT_SIZE, "float")
    return _reorder(raw, SWAP_TABLES[swap_rule & 0x03], bool(swap_rule & SWAP_NIBBLES))


def swap_double_bytes(data: bytes | bytearray | memoryview, swap_rule: int) -> bytes:
    """Re-order the 8 bytes of a double according to the swap rule."""
    raw = _checked(data, _DOUBLE_SIZE, "double")
    return _reorder(raw, SWAP_TABLES[swap_rule & 0x07], bool(swap_rule & SWAP_NIBBLES))


def pack_float(value: float, swap_rule: int = 0) -> bytes:
    """Encode a float as 4 IEEE 754 bytes, MSB first, then apply the swap rule."""
    raw = struct.pack(">f", value)
    rule = swap_rule & _FLOAT_RULE_MASK
    return swap_float_bytes(raw, rule) if rule else raw


def unpack_float(data: bytes | bytearray | memoryview, swap_rule: int = 0) -> float:
    """Decode 4 bytes written with the given swap rule into a float."""
    raw = _checked(data, _FLOAT_SIZE, "float")
    rule = swap_rule & _FLOAT_RULE_MASK
    if rule:
        raw = swap_float_bytes(raw, rule)
    return struct.unpack(">f", raw)[0]


def pack_double(value: float, swap_rule: int = 0) -> bytes:
    """Encode a double as 8 IEEE 754 bytes, MSB first, then apply the swap rule."""
    raw = struct.pack(">d", value)
    rule = swap_rule & _DOUBLE_RULE_MASK
    return swap_double_bytes(raw, rule) if rule else raw


def unpack_double(data: bytes | bytearray | memoryview, swap_rule: int = 0) -> float:
    """Decode 8 bytes written with the given swap rule into a double."""
    raw = _checked(data, _DOUBLE_SIZE, "double")
    rule = swap_rule & _DOUBLE_RULE_MASK
    if rule:
        raw = swap_double_bytes(raw, rule)
    return struct.unpack(">d", raw)[0]