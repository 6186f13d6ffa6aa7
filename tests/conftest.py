"""
Pytest fixtures for mailcraft tests.

This module provides a scripted fake SMTP socket and keeps the
environment from leaking configuration into tests.
"""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from mailcraft.common.config import get_settings  # noqa: E402


class ScriptedReader:
    """Binary reader handing out scripted server replies line by line."""

    def __init__(self, replies, fail=None):
        self.replies = list(replies)
        self.fail = fail
        self.closed = False

    def readline(self, *args):
        if self.replies:
            return (self.replies.pop(0) + "\r\n").encode("utf-8")
        if self.fail is not None:
            raise self.fail
        return b""

    def close(self):
        self.closed = True


class FakeSocket:
    """Stands in for a connected socket; records everything sent."""

    def __init__(self, replies=(), fail=None):
        self.reader = ScriptedReader(replies, fail)
        self.sent = []
        self.timeouts = []
        self.address = None
        self.closed = False

    def makefile(self, mode="rb"):
        return self.reader

    def sendall(self, data):
        if self.closed:
            raise OSError("socket is closed")
        self.sent.append(data.decode("utf-8"))

    def settimeout(self, timeout):
        self.timeouts.append(timeout)

    def close(self):
        self.closed = True

    @property
    def lines(self):
        """Lines written to the socket, without CRLF."""
        return "".join(self.sent).split("\r\n")[:-1]


class FakeSSLContext:
    """Records TLS wrapping and returns a scripted socket."""

    def __init__(self, wrapped):
        self.wrapped = wrapped
        self.calls = []

    def wrap_socket(self, sock, server_hostname=None):
        self.calls.append((sock, server_hostname))
        return self.wrapped


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Remove mailcraft configuration from the environment."""
    for key in list(os.environ):
        if key.startswith(("SMTP_", "LOG_", "MAILCRAFT_")):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_server(monkeypatch):
    """
    Patch socket.create_connection to return a scripted FakeSocket.

    Usage:
        sock = fake_server("220 ready", "250 ok")
    """
    created = []

    def factory(*replies, fail=None):
        sock = FakeSocket(replies, fail)

        def create_connection(address, timeout=None, *args, **kwargs):
            sock.address = address
            sock.timeouts.append(timeout)
            created.append(sock)
            return sock

        monkeypatch.setattr("socket.create_connection", create_connection)
        return sock

    factory.created = created
    return factory
