# dconbridge

`dconbridge` is a TCP server that passes client requests to a device on a
serial line. Each accepted client runs in its own thread and opens its own
handle on the device. For every chunk read from the socket, the server takes
an exclusive `flock` on the device, writes the chunk, and waits for a reply
for a set number of milliseconds. It then releases the lock and sends the
reply back to the client. If no reply comes in time, the client gets nothing
for that request.

It runs on POSIX systems and needs only the standard library (`termios`,
`fcntl`, `select`, `socket`).

## Installation

```
pip install .
```

## Usage

```
dconbridge -f /etc/dconbridge.conf
```

- If the arguments are not `-f <file>`, the command prints a short help text
  and exits with status 0.
- If the file does not exist, the command creates it with an empty entry for
  every setting. It prints `Create configuration file success!` and exits.
  Fill in the values and run the command again.
- If the file exists, the command reads the settings and opens the serial
  device once to check that it can be configured. It then listens on
  `Ip:Port` and serves until interrupted. Ctrl-C exits with status 0.
- If a setting is missing or invalid, or the device or socket cannot be set up,
  the command prints a message to stderr and exits with status 1.

When `Debug` is non-zero, diagnostics are logged at INFO level to stderr. They
cover the bytes received, written and read, and any errors.

## Configuration file

The file holds one `Key=Value` entry per line. A key matches only a line whose
text before the first `=` is exactly that key. The value is the rest of the
line.

```
Ip=0.0.0.0
Device=/dev/ttyUSB0
Port=5000
StopBit=1
DataBit=8
Baud=9600
MaxUsers=4
Debug=1
Parity=N
TimeMsWaitResponse=500
MaxSizeResponse=256
MaxSizeRequest=256
```

| Key                  | Meaning                                                        |
|----------------------|----------------------------------------------------------------|
| `Ip`                 | Address the server binds to                                    |
| `Device`             | Serial device path                                             |
| `Port`               | TCP port                                                       |
| `StopBit`            | `1` or `2`                                                     |
| `DataBit`            | `7` or `8`                                                     |
| `Baud`               | One of 0, 50, 75, 110, 134, 150, 200, 300, 600, 1200, 1800, 2400, 4800, 9600, 19200, 38400, 57600, 115200, 230400 |
| `MaxUsers`           | Clients served at once; more are disconnected at once; also the listen backlog |
| `Debug`              | Non-zero turns on diagnostic logging                           |
| `Parity`             | `N` (none), `O` (odd) or `E` (even); the first character is used |
| `TimeMsWaitResponse` | How long to wait for the device's reply, in milliseconds       |
| `MaxSizeResponse`    | Largest reply read from the device in one read, in bytes (at least 1) |
| `MaxSizeRequest`     | Largest chunk read from a client at a time, in bytes (at least 1) |

Integer values must be plain digits, with no sign or spaces.

The device is put into raw mode with the settings above. This means no input
or output processing, `VMIN=1` and `VTIME=0`. Its previous settings are
restored when each handle is closed.

## Library use

```python
from dconbridge.cli import load_settings
from dconbridge.config import Config
from dconbridge.server import BridgeServer

settings = load_settings(Config("/etc/dconbridge.conf"))

with BridgeServer(settings) as server:   # entering calls setup()
    server.serve_forever()               # server.shutdown() from another thread stops it
```

### `dconbridge.config`

`Config` reads and writes `key=value` files. It provides these methods:

- `create`, `exists`, `open(mode)` and `close`
- `rename`
- `add_value(key, value)`, which appends to the open file
- `read_all`
- `get_str`, `get_int` and `get_char`

The `get_*` methods raise `KeyNotFoundError` if the key is missing. Other
failures raise `ConfigError`. Both errors live in this module.

### `dconbridge.serialport`

- `SerialSettings(device, baud=9600, data_bits=8, stop_bits=1, parity=Parity.NONE)`
  checks its values and raises `SerialSettingsError` for values it does not
  support.
- `baud_constant(baud)` returns the `termios` speed constant for a rate.
- `apply_settings(attrs, settings)` returns a raw-mode copy of a
  `termios.tcgetattr` list.
- `SerialPort(settings)` provides these members:
  - `open`, `close` and the context-manager protocol
  - `locked()`, a context manager that holds the exclusive lock
  - `write(data)`
  - `read(size, timeout_ms)`, which returns `b""` on timeout

### `dconbridge.server`

- `ServerSettings(host, port, serial, max_users, timeout_ms, max_response_size, max_request_size, debug=False)`.
- `BridgeServer(settings, port_factory=SerialPort)` provides these members:
  - `setup`, `serve_forever`, `handle_client(conn)`, `shutdown` and `close`
  - the properties `address` and `active_connections`

  `port_factory` can be replaced with any object that has the same `open`,
  `close`, `locked`, `write` and `read` methods.

## What it does not do

- It does not detach into the background or write a PID file. Run it under a
  service manager if you need that.
- It does not frame messages. Each chunk that one socket read returns is
  forwarded as it is, and one device read makes up the reply.