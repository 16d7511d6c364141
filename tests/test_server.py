import pytest

from modbuskit.message import ModbusMessage
from modbuskit.server import ECHO_RESPONSE, NIL_RESPONSE, ModbusServer
from modbuskit.types import ANY_SERVER, Error, FunctionCode

DATA_RESPONSE = ModbusMessage(b"\x01\x03\x02\x00\x2A")


def data_worker(msg):
    return ModbusMessage(DATA_RESPONSE)


def other_worker(msg):
    return ModbusMessage(b"\x01\x04\x02\x00\x01")


@pytest.fixture
def server():
    return ModbusServer()


def test_registered_worker_is_found(server):
    server.register_worker(1, 3, data_worker)
    assert server.get_worker(1, 3) is data_worker
    assert server.get_worker(1, 4) is None
    assert server.get_worker(2, 3) is None


def test_register_overwrites(server):
    server.register_worker(1, 3, data_worker)
    server.register_worker(1, 3, other_worker)
    assert server.get_worker(1, 3) is other_worker


def test_any_server_fallback(server):
    server.register_worker(ANY_SERVER, 3, data_worker)
    assert server.get_worker(17, 3) is data_worker


def test_any_function_code_fallback(server):
    server.register_worker(1, FunctionCode.ANY_FUNCTION_CODE, data_worker)
    assert server.get_worker(1, 6) is data_worker


def test_explicit_server_does_not_fall_back_to_any_server(server):
    server.register_worker(ANY_SERVER, 4, other_worker)
    server.register_worker(1, 3, data_worker)
    assert server.get_worker(1, 4) is None


def test_unregister_single_function_code(server):
    server.register_worker(1, 3, data_worker)
    server.register_worker(1, 4, other_worker)
    assert server.unregister_worker(1, 3) is True
    assert server.get_worker(1, 3) is None
    assert server.get_worker(1, 4) is other_worker
    assert server.unregister_worker(1, 3) is False


def test_unregister_whole_server(server):
    server.register_worker(1, 3, data_worker)
    server.register_worker(1, 4, other_worker)
    assert server.unregister_worker(1) is True
    assert server.is_server_for(1) is False
    assert server.unregister_worker(1) is False


def test_is_server_for(server):
    server.register_worker(1, 3, data_worker)
    assert server.is_server_for(1) is True
    assert server.is_server_for(1, 3) is True
    assert server.is_server_for(1, 5) is False
    assert server.is_server_for(2) is False


def test_local_request_returns_worker_response(server):
    server.register_worker(1, 3, data_worker)
    response = server.local_request(ModbusMessage.request(1, 3, 0, 1))
    assert response == DATA_RESPONSE
    assert server.message_count == 1
    assert server.error_count == 0


def test_local_request_nil_gives_empty(server):
    server.register_worker(1, 6, lambda msg: NIL_RESPONSE)
    response = server.local_request(ModbusMessage.request(1, 6, 0, 1))
    assert len(response) == 0


def test_local_request_echo_is_full_request(server):
    server.register_worker(1, 0x10, lambda msg: ECHO_RESPONSE)
    request = ModbusMessage.request(1, 0x10, 0, 2, 4, [1, 2])
    response = server.local_request(request)
    assert response == request


def test_local_request_illegal_function(server):
    server.register_worker(1, 3, data_worker)
    response = server.local_request(ModbusMessage.request(1, 4, 0, 1))
    assert response == ModbusMessage.error_response(1, 4, Error.ILLEGAL_FUNCTION)
    assert server.error_count == 1


def test_local_request_invalid_server(server):
    response = server.local_request(ModbusMessage.request(9, 3, 0, 1))
    assert response.error == Error.INVALID_SERVER
    assert response.server_id == 9
    assert server.error_count == 1
    assert server.message_count == 1


def test_worker_error_response_is_counted(server):
    server.register_worker(
        1, 3, lambda msg: ModbusMessage.error_response(1, 3, Error.ILLEGAL_DATA_ADDRESS)
    )
    response = server.local_request(ModbusMessage.request(1, 3, 0, 1))
    assert response.error == Error.ILLEGAL_DATA_ADDRESS
    assert server.error_count == 1


def test_reset_counts(server):
    server.local_request(ModbusMessage.request(9, 3, 0, 1))
    server.reset_counts()
    assert (server.message_count, server.error_count) == (0, 0)


def test_worker_gets_copy_of_request(server):
    seen = []

    def worker(msg):
        seen.append(bytes(msg))
        msg.clear()
        return ModbusMessage(DATA_RESPONSE)

    server.register_worker(1, 3, worker)
    request = ModbusMessage.request(1, 3, 0, 1)
    server.local_request(request)
    assert seen == [bytes(request)]
    assert len(request) == 6


def test_serve_request_echo_truncated_for_write_multiple(server):
    server.register_worker(1, 0x10, lambda msg: ECHO_RESPONSE)
    request = ModbusMessage.request(1, 0x10, 0, 2, 4, [1, 2])
    response = server.serve_request(request)
    assert bytes(response) == bytes(request)[:6]


def test_serve_request_echo_full_for_other_codes(server):
    server.register_worker(1, 6, lambda msg: ECHO_RESPONSE)
    request = ModbusMessage.request(1, 6, 5, 7)
    assert server.serve_request(request) == request


def test_serve_request_nil(server):
    server.register_worker(1, 6, lambda msg: NIL_RESPONSE)
    assert len(server.serve_request(ModbusMessage.request(1, 6, 5, 7))) == 0
    assert server.error_count == 0


def test_serve_request_requires_explicit_server(server):
    server.register_worker(ANY_SERVER, 3, data_worker)
    response = server.serve_request(ModbusMessage.request(1, 3, 0, 1))
    assert response.error == Error.INVALID_SERVER


def test_serve_request_illegal_function(server):
    server.register_worker(1, 3, data_worker)
    response = server.serve_request(ModbusMessage.request(1, 4, 0, 1))
    assert response == ModbusMessage.error_response(1, 4, Error.ILLEGAL_FUNCTION)
    assert server.error_count == 1


def test_list_servers(server):
    server.register_worker(1, 4, data_worker)
    server.register_worker(1, 3, data_worker)
    server.register_worker(2, 6, other_worker)
    assert server.list_servers() == {1: [3, 4], 2: [6]}