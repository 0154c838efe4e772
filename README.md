# arpc

Building blocks for a small binary RPC protocol: message framing, method
routing with middleware, message coders, publish/subscribe topic encoding,
and a listener that splits accepted connections between two queues.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Messages (`arpc.proto`)

Every message has a 16-byte little-endian header, followed by the method name
and then the payload. The header holds the body length (4 bytes), a reserved
flag byte, the command, the flags byte (error and async bits), the method
length and a 64-bit sequence number. Commands are the constants
`CMD_REQUEST`, `CMD_RESPONSE`, `CMD_NOTIFY`, `CMD_PING` and `CMD_PONG`.

```python
from arpc.handler import default_handler
from arpc.proto import CMD_REQUEST, header_body_len, new_message

msg = new_message(CMD_REQUEST, "hello", "hello", False, False, 0,
                  default_handler(), None, None)

header_body_len(msg.buffer[:4])   # 10: method plus payload
msg.method                        # "hello"
msg.data                          # b"hello"
msg.set_flag_bit(3, True)         # reserved bits 0..7 only
msg.is_flag_bit_set(3)            # True
msg.set("trace", "abc")
msg.get("trace")                  # "abc"
```

`Message` exposes `cmd`, `is_error`, `is_async`, `method_len`, `body_len` and
`seq` as properties backed by the buffer, and `error()` returns the error
carried in the body when the error flag is set, else `None`.
`set_flag_bit` raises `InvalidFlagBitIndexError` for indexes outside 0..7.
`message_from_header` allocates a message for the body length a header
announces and raises `ValueError` if it exceeds the handler's `max_body_len`.
`check_method` raises `ValueError` unless a method name is 1 to 127 bytes.
`retain` and `release` keep a reference count; the release that takes it to
-1 hands the buffer back through the handler's `free`.

Values other than bytes, text and exceptions are turned into payload bytes
with a codec; `arpc.util.JSONCodec` is the default.

## Routing (`arpc.routing`, `arpc.handler`)

`Handler` holds connection settings (buffer sizes, timeouts, queue size,
maximum body length), lifecycle callbacks, middleware, coders and routes.

```python
from arpc.handler import Handler

handler = Handler()
handler.use(lambda ctx: None)
handler.handle("/echo", lambda ctx: None, False)
route = handler.route("/echo")    # RouterHandler(is_async=False, handlers=(...))
```

- `handle(method, callback, is_async)` registers a method once; a second
  registration or the empty name raises `ValueError`. When `is_async` is
  `None`, the handler's `async_response` setting decides.
- `use(middleware)` puts middleware in front of routes registered later and
  at the end of routes that already exist.
- `handle_not_found(callback)` sets the route used for unknown methods; until
  then that route reports `MethodNotFoundError`.
- `use_coder(coder)` adds a `MessageCoder`; the list is in `handler.coders`.

Each registered function is called with a context object supplied by the
caller, and is expected to call `ctx.next()` to continue the chain (the
built-in wrappers do this after the function returns).

`handle_connected` and `handle_disconnected` chain callbacks; the other
`handle_*` methods replace one. `enable_pool(True)` switches buffers to a
shared pool and makes finished contexts and messages release themselves.
`Handler.clone` returns an independent copy, and `default_handler` /
`set_handler` read and replace the process-wide default.

## Coders (`arpc.coder`)

- `arpc.coder.appender.Appender` carries one named message value in a
  trailer at the end of the message, marked by a reserved flag bit.
- `arpc.coder.gzip_coder.GzipCoder(threshold)` compresses messages longer
  than the threshold when the result is smaller, marked by flag bit 7.
- `arpc.coder.msgpack_coder.MsgPackCoder` packs the payload together with the
  message's values, and restores both on decoding.

## Router middleware (`arpc.middleware`)

- `Graceful().handler()` refuses requests with `ShutdownError` once
  `shutdown()` has been called; `shutdown()` waits for requests in flight.
- `logger()` logs each request's method, peer address and duration.
- `recover()` logs and swallows exceptions raised further down the chain.

## Publish/subscribe topics (`arpc.pubsub.topic`)

`Topic.to_bytes` encodes a topic as its data, then its name, a 2-byte name
length and an 8-byte nanosecond timestamp. `new_topic` validates the name (1
to 1024 bytes) and stamps the current time; `Topic.from_bytes` raises
`PubSubError` on malformed input. The route names are the `ROUTE_*`
constants.

## Split listener (`arpc.listener`)

`listen(network, addr, max_online_a, logtag)` binds a `tcp`, `tcp4`, `tcp6`
or `unix` socket. `Listener.run()` accepts connections until closed, putting
each on queue A while no more than `max_online_a` are online there, and on
queue B otherwise. `Listener.listeners()` returns two `ChanListener` objects
whose `accept()` takes from those queues and raises `ListenerClosedError`
once the listener is closed. Call `offline_a()` when a connection from queue
A goes away.

## Logging (`arpc.log`)

`Logger` writes timestamped, tagged lines to a stream (standard output by
default). The module-level `debug`, `info`, `warn` and `error` go to the
default logger; change its threshold with `set_level`, or install another
with `set_logger` (`None` turns logging off).

## What this package does not do

There is no client, server or connection loop here: nothing dials, reads
frames off a socket, writes them out, dispatches received messages to routes,
or tracks request sessions. There is likewise no publish/subscribe server or
client, only the topic encoding. The pieces above are meant to be used by
code that supplies those parts, including the context objects passed to
routes.