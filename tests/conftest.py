import threading

import pytest

from ssh_executor.config import ServerConfig
from ssh_executor.ssh import ExecResult, RemoteTransport, RunError, SessionManager


class FakeTransport(RemoteTransport):
    """In-memory stand-in for an SSH connection.

    ``echo X`` prints ``X``; commands listed in ``results`` return the given
    ExecResult; ``hang`` makes every command block until its timeout.
    """

    def __init__(self, connect_error=None, exec_error=None, results=None, hang=False):
        self.connect_error = connect_error
        self.exec_error = exec_error
        self.results = dict(results or {})
        self.hang = hang
        self.settings = None
        self.connected = False
        self.close_calls = 0
        self.commands = []
        self.timeouts = []

    def connect(self, settings):
        self.settings = settings
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def execute(self, command, timeout=None):
        self.commands.append(command)
        self.timeouts.append(timeout)
        if self.exec_error is not None:
            raise self.exec_error
        if self.hang:
            threading.Event().wait(timeout)
            raise RunError(f"command timed out after {timeout:g}s")
        if command in self.results:
            return self.results[command]
        if command.startswith("echo "):
            return ExecResult(output=command[len("echo "):] + "\n", exit_status=0)
        return ExecResult(output="", exit_status=0)

    def close(self):
        self.close_calls += 1
        self.connected = False


class TransportFactory:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.created = []

    def __call__(self):
        transport = FakeTransport(**self.kwargs)
        self.created.append(transport)
        return transport

    def live(self):
        return [t for t in self.created if t.connected]


@pytest.fixture
def factory():
    return TransportFactory()


@pytest.fixture
def manager(factory):
    return SessionManager(transport_factory=factory)


@pytest.fixture
def cfg():
    cfg = ServerConfig()
    cfg.SSH_HOST = "test.example"
    cfg.SSH_USER = "deploy"
    cfg.SSH_PASSWORD = "secret"
    return cfg
