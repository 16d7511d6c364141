import pytest

from modbuskit.errors import ModbusError
from modbuskit.message import ModbusMessage
from modbuskit.swapping import SWAP_BYTES, SWAP_NIBBLES, SWAP_REGISTERS, SWAP_WORDS
from modbuskit.types import Error


def test_two_word_request_wire_bytes():
    msg = ModbusMessage.request(1, 0x03, 0x0010, 2)
    assert bytes(msg) == b"\x01\x03\x00\x10\x00\x02"
    assert msg.server_id == 1
    assert msg.function_code == 0x03
    assert msg.error == Error.SUCCESS


def test_no_parameter_request():
    msg = ModbusMessage.request(5, 0x07)
    assert bytes(msg) == b"\x05\x07"


def test_one_parameter_request():
    msg = ModbusMessage.request(2, 0x18, 0x1234)
    assert bytes(msg) == b"\x02\x18\x12\x34"


def test_three_parameter_request():
    msg = ModbusMessage.request(2, 0x16, 0x0001, 0x00F2, 0x0025)
    assert bytes(msg) == b"\x02\x16\x00\x01\x00\xf2\x00\x25"


def test_register_block_request():
    msg = ModbusMessage.request(1, 0x10, 0x0100, 2, 4, [0x1234, 0x5678])
    assert bytes(msg) == b"\x01\x10\x01\x00\x00\x02\x04\x12\x34\x56\x78"


def test_coil_block_request():
    msg = ModbusMessage.request(1, 0x0F, 0x0000, 10, 2, b"\x01\x02")
    assert bytes(msg) == b"\x01\x0f\x00\x00\x00\x0a\x02\x01\x02"


def test_preformatted_request():
    msg = ModbusMessage.request(3, 0x41, 3, b"\xaa\xbb\xcc\xdd")
    assert bytes(msg) == b"\x03\x41\xaa\xbb\xcc"
    plain = ModbusMessage.request(3, 0x41, b"\xaa\xbb")
    assert bytes(plain) == b"\x03\x41\xaa\xbb"


@pytest.mark.parametrize(
    "args, code",
    [
        ((0, 0x03, 0, 1), Error.INVALID_SERVER),
        ((248, 0x03, 0, 1), Error.INVALID_SERVER),
        ((1, 0x00, 0, 1), Error.ILLEGAL_FUNCTION),
        ((1, 0x03, 0, 0), Error.PARAMETER_LIMIT_ERROR),
        ((1, 0x07, 0, 1), Error.PARAMETER_COUNT_ERROR),
        ((1, 0x10, 0, 2, 3, [1, 2]), Error.ILLEGAL_DATA_VALUE),
    ],
)
def test_invalid_request_raises(args, code):
    with pytest.raises(ModbusError) as info:
        ModbusMessage.request(*args)
    assert info.value.code == code


def test_error_response():
    msg = ModbusMessage.error_response(1, 0x03, Error.ILLEGAL_DATA_ADDRESS)
    assert bytes(msg) == b"\x01\x83\x02"
    assert msg.error == Error.ILLEGAL_DATA_ADDRESS
    assert msg.function_code == 0x83
    with pytest.raises(ModbusError) as info:
        msg.raise_for_error()
    assert info.value.code == Error.ILLEGAL_DATA_ADDRESS


def test_short_message_fields_are_zero():
    msg = ModbusMessage(b"\x07")
    assert not msg
    assert msg.server_id == 0
    assert msg.function_code == 0
    assert bool(ModbusMessage(b"\x07\x03")) is True


def test_two_byte_error_flag_is_success():
    assert ModbusMessage(b"\x01\x83").error == Error.SUCCESS


def test_getitem_out_of_range_reads_zero():
    msg = ModbusMessage(b"\x01\x02\x03")
    assert msg[1] == 2
    assert msg[10] == 0
    assert ModbusMessage()[0] == 0
    assert msg[0:2] == b"\x01\x02"


def test_equality_and_iteration():
    a = ModbusMessage(b"\x01\x02")
    b = ModbusMessage([1, 2])
    assert a == b
    assert a == b"\x01\x02"
    assert not (a == ModbusMessage(b"\x01\x03"))
    assert list(a) == [1, 2]


def test_append_and_clear():
    msg = ModbusMessage(b"\x01")
    msg.append(ModbusMessage(b"\x02\x03"))
    msg.append(b"\x04")
    assert bytes(msg) == b"\x01\x02\x03\x04"
    msg.clear()
    assert len(msg) == 0


def test_resize_truncates_and_pads():
    msg = ModbusMessage(b"\x01\x02\x03\x04")
    assert msg.resize(2) == 2
    assert bytes(msg) == b"\x01\x02"
    assert msg.resize(4) == 4
    assert bytes(msg) == b"\x01\x02\x00\x00"


def test_add_and_get_round_trip():
    msg = ModbusMessage()
    assert msg.add(0x12, 1) == 1
    assert msg.add(0xABCD) == 3
    assert msg.add(0x01020304, 4) == 7
    assert msg.get(0, 1) == (0x12, 1)
    assert msg.get(1) == (0xABCD, 3)
    assert msg.get(3, 4) == (0x01020304, 7)


def test_get_beyond_end_keeps_index():
    msg = ModbusMessage(b"\x01\x02\x03")
    assert msg.get(2, 2) == (0, 2)


def test_get_bytes_truncates_at_end():
    msg = ModbusMessage(b"\x01\x02\x03\x04")
    assert msg.get_bytes(1, 2) == (b"\x02\x03", 3)
    assert msg.get_bytes(2, 10) == (b"\x03\x04", 4)


def test_add_float_wire_bytes():
    msg = ModbusMessage()
    assert msg.add_float(77230.0) == 4
    assert bytes(msg) == b"\x47\x96\xd7\x00"


def test_add_double_wire_bytes():
    msg = ModbusMessage()
    assert msg.add_double(5791007487489389.0) == 8
    assert bytes(msg) == b"\x43\x34\x92\xe4\x00\x2e\xf5\x6d"


@pytest.mark.parametrize(
    "rule", [0, SWAP_BYTES, SWAP_REGISTERS, SWAP_BYTES | SWAP_REGISTERS, SWAP_NIBBLES]
)
def test_float_round_trip(rule):
    msg = ModbusMessage(b"\x01\x03")
    msg.add_float(77230.0, rule)
    assert msg.get_float(2, rule) == (77230.0, 6)


@pytest.mark.parametrize(
    "rule", [0, SWAP_BYTES, SWAP_WORDS, SWAP_WORDS | SWAP_REGISTERS | SWAP_BYTES, SWAP_NIBBLES]
)
def test_double_round_trip(rule):
    msg = ModbusMessage()
    msg.add_double(-1234.5625, rule)
    assert msg.get_double(0, rule) == (-1234.5625, 8)


def test_swapped_float_differs_from_plain():
    plain = ModbusMessage()
    plain.add_float(77230.0)
    swapped = ModbusMessage()
    swapped.add_float(77230.0, SWAP_REGISTERS)
    assert sorted(bytes(plain)) == sorted(bytes(swapped))
    assert bytes(swapped) == bytes(plain)[2:] + bytes(plain)[:2]


def test_get_float_and_double_not_fitting():
    msg = ModbusMessage(b"\x00\x00\x00")
    assert msg.get_float(0) == (0.0, 0)
    assert msg.get_double(0) == (0.0, 0)