"""Relay plumbing: a link connection that keeps itself alive, and a two-way pipe.

The tunnel server and the tunnel client talk over one TCP link.  When the
link is idle either end sends the two heartbeat bytes, and both ends drop
any chunk that starts with them.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Union

log = logging.getLogger(__name__)

BUFFER_SIZE = 10240
HEARTBEAT = b"pi"
IDLE_TIMEOUT = 10.0
HEARTBEAT_INTERVAL = 3.0


def _shutdown_close(sock: socket.socket) -> None:
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass
    sock.close()


class HeartbeatConnection:
    """A link socket that pings its peer while idle and discards the peer's pings.

    If nothing arrives for ``idle_timeout`` seconds a heartbeat is sent, and
    from then on after every ``heartbeat_interval`` seconds of silence.
    A chunk read that starts with the heartbeat bytes is discarded whole.
    """

    def __init__(
        self,
        sock: socket.socket,
        idle_timeout: float = IDLE_TIMEOUT,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        buffer_size: int = BUFFER_SIZE,
    ) -> None:
        self.sock = sock
        self._heartbeat_interval = heartbeat_interval
        self._buffer_size = buffer_size
        self._send_lock = threading.Lock()
        self._closed = False
        sock.settimeout(idle_timeout)

    def recv(self) -> bytes:
        """Return the next chunk of data, or ``b""`` once the peer has closed."""
        while True:
            try:
                data = self.sock.recv(self._buffer_size)
            except socket.timeout:
                self.sock.settimeout(self._heartbeat_interval)
                self.send(HEARTBEAT)
                continue
            if data.startswith(HEARTBEAT):
                log.debug("received heartbeat")
                continue
            return data

    def send(self, data: bytes) -> None:
        """Send all of ``data``; safe to call from several threads."""
        if self._closed:
            raise OSError("connection is closed")
        with self._send_lock:
            self.sock.sendall(data)

    def close(self) -> None:
        """Shut the link down, waking any thread blocked reading it."""
        if self._closed:
            return
        self._closed = True
        _shutdown_close(self.sock)


Connection = Union[HeartbeatConnection, socket.socket]


def _recv(conn: Connection) -> bytes:
    if isinstance(conn, HeartbeatConnection):
        return conn.recv()
    return conn.recv(BUFFER_SIZE)


def _send(conn: Connection, data: bytes) -> None:
    if isinstance(conn, HeartbeatConnection):
        conn.send(data)
    else:
        conn.sendall(data)


def _close(conn: Connection) -> None:
    if isinstance(conn, HeartbeatConnection):
        conn.close()
    else:
        _shutdown_close(conn)


def pipe(first: Connection, second: Connection) -> tuple[int, int]:
    """Copy data both ways until either side ends or fails, then close both.

    Returns the byte counts copied from ``first`` to ``second`` and from
    ``second`` to ``first``.
    """
    counts = [0, 0]
    finished = threading.Event()

    def copy(src: Connection, dst: Connection, slot: int) -> None:
        try:
            while True:
                data = _recv(src)
                if not data:
                    break
                _send(dst, data)
                counts[slot] += len(data)
        except OSError as exc:
            log.info("relay ended: %s", exc)
        finally:
            finished.set()

    threads = [
        threading.Thread(target=copy, args=(first, second, 0), daemon=True),
        threading.Thread(target=copy, args=(second, first, 1), daemon=True),
    ]
    for thread in threads:
        thread.start()
    finished.wait()
    _close(first)
    _close(second)
    for thread in threads:
        thread.join()
    return counts[0], counts[1]