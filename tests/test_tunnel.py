import socket
import threading

import pytest

from workbench.tunnel import HEARTBEAT, HeartbeatConnection, pipe


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


def test_recv_returns_data(pair):
    a, b = pair
    conn = HeartbeatConnection(a, idle_timeout=5)
    b.sendall(b"hello")
    assert conn.recv() == b"hello"


def test_heartbeat_is_discarded(pair):
    a, b = pair
    conn = HeartbeatConnection(a, idle_timeout=5)
    b.sendall(b"pi")
    b.shutdown(socket.SHUT_WR)
    assert conn.recv() == b""


def test_idle_link_sends_heartbeat(pair):
    a, b = pair
    conn = HeartbeatConnection(a, idle_timeout=0.05, heartbeat_interval=0.05)
    heard = []

    def peer():
        b.settimeout(5)
        heard.append(b.recv(2))
        b.sendall(b"done")

    worker = threading.Thread(target=peer)
    worker.start()
    data = conn.recv()
    worker.join(5)
    assert data == b"done"
    assert heard == [HEARTBEAT]


def test_send_after_close_raises(pair):
    a, _ = pair
    conn = HeartbeatConnection(a, idle_timeout=5)
    conn.close()
    conn.close()
    with pytest.raises(OSError):
        conn.send(b"data")


def test_pipe_copies_both_ways_and_counts():
    a1, a2 = socket.socketpair()
    b1, b2 = socket.socketpair()
    a1.settimeout(5)
    b2.settimeout(5)
    received = []

    def peers():
        a1.sendall(b"abc")
        received.append(b2.recv(100))
        b2.sendall(b"xy")
        received.append(a1.recv(100))
        a1.close()

    worker = threading.Thread(target=peers)
    worker.start()
    counts = pipe(a2, b1)
    worker.join(5)
    b2.close()
    assert counts == (3, 2)
    assert received == [b"abc", b"xy"]


def test_pipe_closes_other_side_when_one_ends():
    a1, a2 = socket.socketpair()
    b1, b2 = socket.socketpair()
    a1.settimeout(5)
    b2.close()
    counts = pipe(a2, b1)
    assert counts == (0, 0)
    assert a1.recv(10) == b""
    a1.close()


def test_pipe_with_heartbeat_link_relays_data():
    a1, a2 = socket.socketpair()
    b1, b2 = socket.socketpair()
    a1.settimeout(5)
    b2.settimeout(5)
    link = HeartbeatConnection(a2, idle_timeout=5)
    received = []

    def peers():
        a1.sendall(b"hello")
        received.append(b2.recv(100))
        b2.close()

    worker = threading.Thread(target=peers)
    worker.start()
    counts = pipe(link, b1)
    worker.join(5)
    assert counts == (5, 0)
    assert received == [b"hello"]
    assert a1.recv(10) == b""
    a1.close()