# workbench

A collection of small, self-contained building blocks.

## Modules

- `workbench.context`: cancellable, deadline-bound and value-carrying
  contexts. `background()` and `todo()` give root contexts. `with_cancel`,
  `with_deadline`, `with_timeout` (seconds or a `timedelta`) and `with_value`
  derive new ones. Cancelling a parent cancels every context derived from it.
  `done()` returns a `threading.Event`, or `None` for a context that can never
  end. `err()` returns a `Canceled` or `DeadlineExceeded` error, both subclasses
  of `ContextError`.
- `workbench.service`: the `State` enum (`NEW`, `STARTING`, `RUNNING`,
  `STOPPING`, `TERMINATED`, `FAILED`), a no-op `Listener` base class and
  `InvalidServiceStateError`.
- `workbench.basic_service`: `BasicService` runs optional start, run and stop
  functions through the lifecycle. Its methods are `start_async`,
  `stop_async`, `await_running`, `await_terminated`, `add_listener` and
  `with_name`. Its properties are `state`, `failure_case`, `service_name` and
  `service_context`. Each listener is notified on its own thread, in order.
- `workbench.lifecycle`: `new_idle_service`, `new_timer_service`,
  `FunctionListener`, `FailureWatcher` (failures arrive in its `failures`
  queue), `start_and_await_running`, `stop_and_await_terminated` and
  `describe_service`.
- `workbench.logbase`: `LogLevel`, `parse_log_level` (accepts `"debug"`,
  `"info"`, `"error"`, `"warn"`, `"fatal"` in any case, or a `LogLevel`),
  `format_record` and `ConsoleLogger`. Levels are ordered
  `INFO < DEBUG < ERROR < WARNING < FATAL`, and a logger writes the records at
  or above its own level. Records at `ERROR` and above also name the source
  file.
- `workbench.filelog` has two file loggers:
  - `FileLogger` writes records below `ERROR` to `<directory>/<filename>` and
    records from `ERROR` up to `<filename>.err`.
  - `AsyncFileLogger` writes every record to the log file from a background
    thread, and also copies records from `ERROR` up to the `.err` file. Use
    `flush()` to wait for queued records. When the queue is full, records are
    dropped.

  Once a file reaches `max_size` bytes it is renamed to `<path>.bak<timestamp>`
  and a new file is started. Both loggers work as context managers.
- `workbench.framing`: `encode(msg)` produces a 4-byte little-endian length
  followed by the UTF-8 payload. `decode(stream)` reads one such frame from a
  binary stream. It raises `EOFError` if the stream is short and `ValueError`
  if the length is negative.
- `workbench.textutil`: `split(s, sep)` splits on every occurrence of `sep` and
  drops an empty trailing piece. `fib(n)` returns the n-th Fibonacci number.
- `workbench.upload`: `ChunkStore` handles resumable chunked uploads with
  `check`, `save_chunk` and `merge`. A merge checks the MD5 of the joined file
  against the given hash. Failures raise `UploadError`, which carries an HTTP
  `status`.
- `workbench.webapp`: `create_app(store, static_folder)` builds a Flask
  application with these routes:
  - `GET /upload/check` takes `hash`, `filename` and `totalChunks`.
  - `POST /upload/chunk` takes the form fields `chunk`, `hash` and `index`.
  - `POST /upload/merge` takes a JSON or form body with `hash` and `filename`.

  Static files are served at `/`. Errors come back as `{"error": ...}`, and
  request bodies are limited to 4 MiB.
- `workbench.tunnel`: `HeartbeatConnection` is a link socket that sends
  `b"pi"` to its peer while idle and drops incoming chunks that start with it.
  `pipe(first, second)` copies data both ways until one side ends.
- `workbench.relay_server`: `TunnelServer` accepts a tunnel client and then a
  user, and relays between the two. It serves one user per client link.
- `workbench.relay_client`: `TunnelClient` connects to the server. When the
  first data arrives it dials the local service, relays the session, and then
  reconnects.
- `workbench.version`: `VersionInfo` and `get_version()`. The module constants
  `GIT_COMMIT`, `BUILD_DATE` and `RUNTIME_VERSION` are empty unless a build
  fills them in.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Quick look

```python
from workbench.context import background, with_cancel, with_value
from workbench.textutil import split
from workbench.framing import encode

ctx, cancel = with_cancel(background())
scoped = with_value(ctx, "name", "one")
scoped.value("name")   # "one"
cancel()
scoped.err()           # a Canceled error

split("a:b:c", ":")    # ["a", "b", "c"]
encode("hi")           # b"\x02\x00\x00\x00hi"
```

Running a service until it is told to stop:

```python
from workbench.context import background
from workbench.lifecycle import (
    new_idle_service,
    start_and_await_running,
    stop_and_await_terminated,
)

service = new_idle_service(None, None)
start_and_await_running(background(), service)
stop_and_await_terminated(background(), service)
```

## Commands

- `workbench-upload [--host HOST] [--port 3080] [--data-dir data] [--static public]`
  runs the upload web application.
- `workbench-version` prints the build version information.
- `workbench-relay-server [-l 5200] [-r 3333]` listens for users on `-l` and
  for the tunnel client on `-r`.
- `workbench-relay-client [-h 127.0.0.1] [-l 8080] [-r 3333]` connects to the
  relay server at `-h`:`-r` and forwards traffic to local port `-l`.

## What it does not do

- There is no manager for running several services together. Each
  `BasicService` is started and stopped on its own.
- The tunnel serves one user at a time per client link. It has no
  authentication and no encryption.
- The upload application has no authentication and does no clean-up of
  abandoned chunks.