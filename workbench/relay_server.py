"""Public end of the tunnel: joins users to the connected tunnel client."""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import threading
from typing import Optional, Sequence

from workbench.tunnel import HeartbeatConnection, pipe

log = logging.getLogger(__name__)

DEFAULT_CLIENT_PORT = 3333
DEFAULT_USER_PORT = 5200
USER_IDLE_TIMEOUT = 200.0
_ACCEPT_POLL = 0.2


def _listen(host: str, port: int) -> socket.socket:
    listener = socket.create_server((host, port))
    listener.settimeout(_ACCEPT_POLL)
    return listener


class TunnelServer:
    """Accepts a tunnel client, then a user, and relays between the two.

    One user is served per client link; when the session ends the server
    waits for the client to connect again.
    """

    def __init__(
        self,
        client_port: int = DEFAULT_CLIENT_PORT,
        user_port: int = DEFAULT_USER_PORT,
        host: str = "",
    ) -> None:
        self._client_listener = _listen(host, client_port)
        try:
            self._user_listener = _listen(host, user_port)
        except OSError:
            self._client_listener.close()
            raise
        self._lock = threading.Lock()
        self._closed = False
        self._link: Optional[HeartbeatConnection] = None

    @property
    def client_address(self) -> tuple:
        return self._client_listener.getsockname()

    @property
    def user_address(self) -> tuple:
        return self._user_listener.getsockname()

    def _accept(self, listener: socket.socket) -> Optional[socket.socket]:
        while not self._closed:
            try:
                sock, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._closed:
                    return None
                raise
            return sock
        return None

    def _set_link(self, link: Optional[HeartbeatConnection]) -> bool:
        with self._lock:
            if self._closed and link is not None:
                return False
            self._link = link
            return True

    def serve_forever(self) -> None:
        """Serve sessions until ``close`` is called."""
        log.info("listening on %s, waiting for a client", self.client_address)
        log.info("listening on %s, waiting for users", self.user_address)
        while True:
            client_sock = self._accept(self._client_listener)
            if client_sock is None:
                return
            log.info("client connected: %s", client_sock.getpeername())
            link = HeartbeatConnection(client_sock)
            if not self._set_link(link):
                link.close()
                return
            try:
                user_sock = self._accept(self._user_listener)
                if user_sock is None:
                    link.close()
                    return
                log.info("user connected: %s", user_sock.getpeername())
                user_sock.settimeout(USER_IDLE_TIMEOUT)
                pipe(link, user_sock)
            finally:
                self._set_link(None)
            log.info("waiting for a new client connection")

    def close(self) -> None:
        """Stop serving and close the listeners and any active link."""
        with self._lock:
            self._closed = True
            link = self._link
        self._client_listener.close()
        self._user_listener.close()
        if link is not None:
            link.close()

    def __enter__(self) -> "TunnelServer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the tunnel server."""
    parser = argparse.ArgumentParser(description="Expose a tunnelled service to users.")
    parser.add_argument("-l", dest="user_port", type=int, default=DEFAULT_USER_PORT,
                        help="the port users connect to")
    parser.add_argument("-r", dest="client_port", type=int, default=DEFAULT_CLIENT_PORT,
                        help="the port the tunnel client connects to")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    try:
        server = TunnelServer(client_port=args.client_port, user_port=args.user_port)
    except OSError as exc:
        print(exc, file=sys.stderr)
        return 1
    with server:
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
        except OSError as exc:
            print(exc, file=sys.stderr)
            return 1
    return 0