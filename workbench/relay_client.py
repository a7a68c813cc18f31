"""Private end of the tunnel: connects out to the server and feeds a local service."""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import threading
from typing import Optional, Sequence

from workbench.tunnel import HeartbeatConnection, pipe

log = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_LOCAL_PORT = 8080
DEFAULT_REMOTE_PORT = 3333


class TunnelClient:
    """Keeps a link to the tunnel server and relays each session to a local port.

    A session starts when the server sends its first data; only then is the
    local service dialled.  When a session ends the link is reopened.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        remote_port: int = DEFAULT_REMOTE_PORT,
        local_port: int = DEFAULT_LOCAL_PORT,
        local_host: str = DEFAULT_HOST,
    ) -> None:
        self.host = host
        self.remote_port = remote_port
        self.local_port = local_port
        self.local_host = local_host
        self._lock = threading.Lock()
        self._closed = False
        self._link: Optional[HeartbeatConnection] = None

    def _set_link(self, link: Optional[HeartbeatConnection]) -> bool:
        with self._lock:
            if self._closed and link is not None:
                return False
            self._link = link
            return True

    def run(self) -> None:
        """Serve sessions until ``close`` is called.

        Raises OSError when the server or the local service cannot be reached.
        """
        while not self._closed:
            try:
                server_sock = socket.create_connection((self.host, self.remote_port))
            except OSError:
                if self._closed:
                    return
                raise
            log.info("connected to server: %s", server_sock.getpeername())
            link = HeartbeatConnection(server_sock)
            if not self._set_link(link):
                link.close()
                return
            try:
                self._serve(link)
            finally:
                link.close()
                self._set_link(None)

    def _serve(self, link: HeartbeatConnection) -> None:
        try:
            first = link.recv()
        except OSError as exc:
            log.info("server link failed: %s", exc)
            return
        if not first:
            return
        local = socket.create_connection((self.local_host, self.local_port))
        try:
            local.sendall(first)
        except OSError:
            local.close()
            raise
        pipe(link, local)

    def close(self) -> None:
        """Stop running and close the active link."""
        with self._lock:
            self._closed = True
            link = self._link
        if link is not None:
            link.close()

    def __enter__(self) -> "TunnelClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the tunnel client."""
    parser = argparse.ArgumentParser(
        description="Relay a local service through a tunnel server.", add_help=False
    )
    parser.add_argument("--help", action="help", help="show this help message and exit")
    parser.add_argument("-h", dest="host", default=DEFAULT_HOST, help="remote server ip")
    parser.add_argument("-l", dest="local_port", type=int, default=DEFAULT_LOCAL_PORT,
                        help="the local port")
    parser.add_argument("-r", dest="remote_port", type=int, default=DEFAULT_REMOTE_PORT,
                        help="remote server port")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    client = TunnelClient(host=args.host, remote_port=args.remote_port, local_port=args.local_port)
    with client:
        try:
            client.run()
        except KeyboardInterrupt:
            pass
        except OSError as exc:
            print(exc, file=sys.stderr)
            return 1
    return 0