# modbuskit

Modbus messages, request validation and Modbus TCP servers. It is written in
pure Python and needs nothing beyond the standard library.

## Modules

- `modbuskit.types` holds the `FunctionCode`, `Error` and `FCType`
  enumerations and the `ANY_SERVER` constant. It also holds the function code
  type table: `get_fc_type`, `redefine_fc_type` and `reset_fc_types`.
- `modbuskit.errors` holds the `ModbusError` exception and `error_text`.
- `modbuskit.swapping` packs and unpacks IEEE 754 floats and doubles with
  byte, register, word and nibble swap rules.
- `modbuskit.checks` validates request parameters with `check_server_fc` and
  `check_request`.
- `modbuskit.message` holds `ModbusMessage`, a mutable byte container for a
  Modbus message: server ID, function code and payload.
- `modbuskit.server` holds `ModbusServer`, which sends requests to worker
  callables registered per server ID and function code. It also holds the
  `NIL_RESPONSE` and `ECHO_RESPONSE` markers.
- `modbuskit.async_server` holds `AsyncModbusServer`, an asyncio Modbus TCP
  server, and `RequestFramer`, which splits a TCP byte stream into requests.
- `modbuskit.tcp_server` holds `ModbusServerTCP`, a Modbus TCP server that
  runs one thread per client, and `process_frame`.

## Installing

```
pip install .
```

## Error codes

`Error` lists the Modbus exception codes and the communication errors, such
as `TIMEOUT` and `TCP_HEAD_MISMATCH`. `error_text(code)` gives a readable
description. Unknown codes read as `"Unspecified error"`.

`ModbusError(code)` is an exception that carries the code in its `code`
attribute. Its string form is the readable text, and it compares equal to
other `ModbusError`s and to plain integers with the same code.

## Building messages

`ModbusMessage.request` validates its parameters and builds a request:

```python
from modbuskit.message import ModbusMessage
from modbuskit.types import FunctionCode

req = ModbusMessage.request(1, FunctionCode.READ_HOLD_REGISTER, 0x0010, 2)
print(bytes(req).hex())   # 010300100002
```

The number and kind of the extra arguments choose the layout:

| Arguments | Layout |
| --- | --- |
| none | FC 0x07, 0x0B, 0x0C, 0x11 |
| one word | FC 0x18 |
| address and value | FC 0x01 to 0x06 |
| three words | FC 0x16 |
| address, quantity, byte count, sequence of words | FC 0x10 |
| address, quantity, byte count, bytes | FC 0x0F |
| bytes, or a count and a sequence | user-defined and generic function codes only |

When a check fails, `request` raises `ModbusError`. The `code` attribute then
holds the reason, for example:

- `INVALID_SERVER` for a server ID of 0 or above 247;
- `ILLEGAL_FUNCTION` for an illegal function code;
- `PARAMETER_COUNT_ERROR` for a layout the function code does not take;
- `PARAMETER_LIMIT_ERROR` for a quantity out of range;
- `ILLEGAL_DATA_VALUE` for a byte count that does not match the quantity.

`request` raises `TypeError` for argument shapes it does not know.

`ModbusMessage.error_response(server_id, function_code, error)` builds a
three-byte error response with bit 0x80 set in the function code.

### Reading and writing values

The following methods append data and return the new length:

- `add(value, width=2)` adds an integer MSB first.
- `add_bytes(data)` adds raw bytes.
- `add_float(value, swap_rule=0)` and `add_double(value, swap_rule=0)` add
  IEEE 754 values.

The matching readers return a pair of the value and the index after it. When
the value does not fit, they return `0` (or `0.0`) and leave the index as it
was. The readers are `get(index, width=2)`, `get_float`, `get_double` and
`get_bytes(index, count)`; `get_bytes` returns fewer bytes when the message
ends early.

```python
msg = ModbusMessage(bytes([1, 3, 4]))
msg.add(0x1234)
msg.add_float(1.5)
value, pos = msg.get(3)         # (0x1234, 5)
number, pos = msg.get_float(pos)  # (1.5, 9)
```

The message has these properties:

- `server_id` and `function_code` are both 0 for a message shorter than two
  bytes.
- `error` is `Error.SUCCESS` unless the message is an error response.

`raise_for_error()` raises `ModbusError` for an error response.

A message is true once it holds at least two bytes. Indexing past the end
reads 0, and slicing gives `bytes`. `append`, `clear` and `resize` change the
content in place, and `resize` zero-pads when it grows the message.

### Swap rules

`modbuskit.swapping` defines the flags `SWAP_BYTES`, `SWAP_REGISTERS`,
`SWAP_WORDS` and `SWAP_NIBBLES`. It also defines `pack_float`,
`unpack_float`, `pack_double`, `unpack_double`, `swap_float_bytes` and
`swap_double_bytes`. Floats ignore `SWAP_WORDS`. Each rule undoes itself when
applied twice.

```python
from modbuskit.swapping import SWAP_BYTES, pack_float

pack_float(1.0)              # b'\x3f\x80\x00\x00'
pack_float(1.0, SWAP_BYTES)  # b'\x80\x3f\x00\x00'
```

### Function code types

`get_fc_type(fc)` returns the `FCType` of a function code and ignores bit
0x80. `redefine_fc_type(fc, fc_type=FCType.FCUSER)` assigns a type only to a
code that is still `FCILLEGAL`, and returns the type in effect.
`reset_fc_types()` restores the built-in table.

## Serving requests

```python
from modbuskit.message import ModbusMessage
from modbuskit.server import ModbusServer

def read_registers(msg):
    reply = ModbusMessage(bytes([msg.server_id, msg.function_code, 4]))
    reply.add(0x1234)
    reply.add(0x5678)
    return reply

server = ModbusServer()
server.register_worker(1, 0x03, read_registers)
response = server.local_request(ModbusMessage(bytes([1, 3, 0, 0, 0, 2])))
```

### Registering workers

If no worker is registered for a server ID, `get_worker` falls back to
workers registered under `ANY_SERVER` (0). If none matches the function code,
it falls back to `FunctionCode.ANY_FUNCTION_CODE`.

`unregister_worker(server_id, function_code=0)` removes one worker. With
function code 0 it removes the whole server ID.

`is_server_for(server_id)` checks whether the server ID is registered. With a
function code, `is_server_for` checks whether a worker would be found.

### Answering requests

A worker may return one of two markers:

- `NIL_RESPONSE` means no answer is sent.
- `ECHO_RESPONSE` means the request is sent back as the answer.

There are two ways to answer a request:

- `local_request(msg)` answers without any transport. If no worker is found,
  it answers `ILLEGAL_FUNCTION` when the server ID is known and
  `INVALID_SERVER` otherwise.
- `serve_request(request)` is used by the TCP servers. It requires the server
  ID to be registered explicitly. It cuts an echo of FC 0x0F and 0x10 to six
  bytes.

Both methods update `message_count` and `error_count`, and `reset_counts()`
sets both to zero. `list_servers()` returns each served server ID with its
sorted function codes and also logs them.

## Modbus TCP servers

### AsyncModbusServer

`AsyncModbusServer` runs on asyncio. `start` and `stop` are coroutines, and
each returns `False` when the server is already in the requested state. The
`timeout` argument is the idle time in seconds before a client is dropped; 0
means no timeout. Connections beyond `max_clients` are closed.

```python
import asyncio
from modbuskit.async_server import AsyncModbusServer

async def main():
    srv = AsyncModbusServer()
    srv.register_worker(1, 0x03, read_registers)
    await srv.start(5020, 4, 60.0, "127.0.0.1")
    print(srv.port, srv.is_running(), srv.active_clients())
    await asyncio.sleep(3600)
    await srv.stop()

asyncio.run(main())
```

`RequestFramer(server).feed(data)` can also be used on its own. It keeps
incomplete frames for the next call and returns the reply frames to send.

- A bad protocol ID is answered with `TCP_HEAD_MISMATCH`.
- A bad length is answered with `PACKET_LENGTH_ERROR`.

In both cases the rest of that data is dropped.

### ModbusServerTCP

`ModbusServerTCP` has the same `start(port, max_clients, timeout, host)` and
`stop()` methods, but uses a listener thread and one thread per client. It
also works as a context manager that stops the server on exit.

`process_frame(server, frame)` answers a single MBAP frame. It returns the
reply bytes, or `None` when there is nothing to send.

## What it does not do

The package only answers requests. It has:

- no Modbus client for sending requests to a device;
- no serial transport, neither RTU nor ASCII, so no CRC handling either;
- no bridge between transports;
- no command-line program.

## Running the tests

```
pip install .[test]
pytest
```