import socket
import time

import pytest


class FakeServer:
    """
    The far end of a socket pair, standing in for an IRC server.

    Pass :meth:`factory` as the ``connect_factory`` of a connection;
    each connect gets a fresh pair, and the server side of the most
    recent one is driven with :meth:`send`, :meth:`readline` and
    :meth:`hangup`.
    """

    timeout = 5

    def __init__(self):
        self.sockets = []
        self.readers = []
        self.addresses = []
        self.refuse = 0

    def factory(self, server_address):
        self.addresses.append(server_address)
        if self.refuse:
            self.refuse -= 1
            raise ConnectionRefusedError(111, "Connection refused")
        ours, theirs = socket.socketpair()
        ours.settimeout(self.timeout)
        self.sockets.append(ours)
        self.readers.append(ours.makefile('rb'))
        return theirs

    @property
    def connects(self):
        return len(self.addresses)

    def send(self, line):
        self.sockets[-1].sendall(line.encode('utf-8') + b'\r\n')

    def readline(self):
        return self.readers[-1].readline().decode('utf-8').rstrip('\r\n')

    def hangup(self):
        sock = self.sockets[-1]
        sock.shutdown(socket.SHUT_RDWR)
        sock.close()

    def close(self):
        for reader in self.readers:
            reader.close()
        for sock in self.sockets:
            sock.close()


def wait_for(predicate, timeout=5):
    """
    Poll predicate until it returns true or timeout elapses; return its
    final value.
    """
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def irc_server():
    server = FakeServer()
    try:
        yield server
    finally:
        server.close()
