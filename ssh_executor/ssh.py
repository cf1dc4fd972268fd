import socket
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import paramiko
from paramiko.pkey import UnknownKeyType

from ssh_executor.config import CONNECT_TIMEOUT, DEFAULT_PORT, ServerConfig
from ssh_executor.utils import log_error, truncate


class SSHExecutorError(Exception):
    pass

class ConnectError(SSHExecutorError):
    pass

class MissingConfig(ConnectError):
    pass

class AuthFailure(ConnectError):
    pass

class NetworkFailure(ConnectError):
    pass

class NotConnected(SSHExecutorError):
    pass

class RunError(SSHExecutorError):
    """Remote command failed, or the transport broke while it ran.

    ``stdout``/``stderr`` hold whatever the command produced; both are empty
    when the failure happened at the transport level.
    """

    def __init__(self, detail: str, stdout: str = "", stderr: str = ""):
        super().__init__(detail)
        self.detail = detail
        self.stdout = stdout
        self.stderr = stderr


@dataclass
class ConnectSettings:
    host: str
    username: str
    port: int = DEFAULT_PORT
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    key_passphrase: Optional[str] = None
    verify_host_key: bool = False

    @classmethod
    def from_config(cls, cfg: ServerConfig) -> "ConnectSettings":
        return cls(
            host=cfg.SSH_HOST or "",
            username=cfg.SSH_USER or "",
            port=cfg.SSH_PORT,
            password=cfg.SSH_PASSWORD,
            private_key_path=cfg.SSH_PRIVATE_KEY_PATH,
            key_passphrase=cfg.SSH_KEY_PASSPHRASE,
            verify_host_key=cfg.SSH_VERIFY_HOST_KEY,
        )

    @property
    def target(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


@dataclass
class ExecResult:
    output: str
    exit_status: int


class RemoteTransport:
    """One SSH connection: connect once, execute many times, close."""

    def connect(self, settings: ConnectSettings) -> None:
        raise NotImplementedError

    def execute(self, command: str, timeout: Optional[float] = None) -> ExecResult:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError


class ParamikoTransport(RemoteTransport):
    def __init__(self):
        self.client: Optional[paramiko.SSHClient] = None

    def _load_key(self, settings: ConnectSettings) -> Optional[paramiko.PKey]:
        if not settings.private_key_path:
            return None
        passphrase = settings.key_passphrase.encode("utf-8") if settings.key_passphrase else None
        try:
            # passphrase is positional: the keyword name differs across paramiko releases
            return paramiko.PKey.from_path(settings.private_key_path, passphrase)
        except (OSError, ValueError, TypeError, paramiko.SSHException, UnknownKeyType) as exc:
            raise AuthFailure(f"cannot load private key {settings.private_key_path}: {exc}") from exc

    def connect(self, settings: ConnectSettings) -> None:
        pkey = self._load_key(settings)
        if not settings.password and pkey is None:
            raise AuthFailure("no password or private key configured")

        client = paramiko.SSHClient()
        if settings.verify_host_key:
            client.load_system_host_keys()
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs = {
            "hostname": settings.host,
            "port": settings.port,
            "username": settings.username,
            "timeout": CONNECT_TIMEOUT,
            "allow_agent": False,
            "look_for_keys": False,
        }
        if settings.password:
            connect_kwargs["password"] = settings.password
        if pkey is not None:
            connect_kwargs["pkey"] = pkey

        try:
            client.connect(**connect_kwargs)
        except paramiko.AuthenticationException as exc:
            client.close()
            raise AuthFailure(str(exc) or "authentication failed") from exc
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise NetworkFailure(str(exc) or exc.__class__.__name__) from exc
        self.client = client

    def execute(self, command: str, timeout: Optional[float] = None) -> ExecResult:
        transport = self.client.get_transport() if self.client else None
        if transport is None or not transport.is_active():
            raise RunError("connection is closed")
        try:
            channel = transport.open_session()
        except (paramiko.SSHException, OSError) as exc:
            raise RunError(f"failed to open channel: {exc}") from exc

        try:
            channel.set_combine_stderr(True)
            if timeout:
                channel.settimeout(timeout)
            channel.exec_command(command)
            with channel.makefile("rb") as stream:
                raw = stream.read()
            exit_status = channel.recv_exit_status()
        except socket.timeout as exc:
            raise RunError(f"command timed out after {timeout:g}s") from exc
        except (paramiko.SSHException, OSError) as exc:
            raise RunError(str(exc) or exc.__class__.__name__) from exc
        finally:
            channel.close()
        return ExecResult(output=raw.decode("utf-8", errors="replace"), exit_status=exit_status)

    def close(self) -> None:
        client, self.client = self.client, None
        if client is None:
            return
        try:
            client.close()
        except Exception as exc:
            log_error(f"close error: {exc}")


def _exit_detail(exit_status: int) -> str:
    if exit_status < 0:
        return "remote command exited without exit status"
    return f"Process exited with status {exit_status}"


class SessionManager:
    """Holds at most one live remote session.

    Every operation takes ``lock`` so that ``close`` never overlaps a running
    command, even when commands are bounded by a timeout.
    """

    def __init__(
        self,
        transport_factory: Callable[[], RemoteTransport] = ParamikoTransport,
        command_timeout: float = 0.0,
    ):
        self.transport_factory = transport_factory
        self.command_timeout = command_timeout
        self.transport: Optional[RemoteTransport] = None
        self.target = ""
        self.lock = threading.Lock()

    def is_connected(self) -> bool:
        with self.lock:
            return self.transport is not None

    def connect(self, settings: ConnectSettings) -> None:
        if not settings.host or not settings.username:
            raise MissingConfig("SSH_HOST and SSH_USER required")

        with self.lock:
            self._release()
            transport = self.transport_factory()
            try:
                transport.connect(settings)
            except Exception:
                transport.close()
                raise
            self.transport = transport
            self.target = settings.target
        log_error(f"connected to {settings.target}")

    def run(self, command: str) -> Tuple[str, str]:
        with self.lock:
            if self.transport is None:
                raise NotConnected("not connected")
            log_error(f"exec on {self.target}: {truncate(command)}")
            result = self.transport.execute(command, timeout=self.command_timeout or None)

        if result.exit_status != 0:
            log_error(f"exit status {result.exit_status}: {truncate(command)}")
            raise RunError(_exit_detail(result.exit_status), stdout="", stderr=result.output)
        return result.output, ""

    def close(self) -> None:
        with self.lock:
            self._release()

    def _release(self) -> None:
        transport, self.transport = self.transport, None
        if transport is None:
            return
        try:
            transport.close()
        except Exception as exc:
            log_error(f"close error ({self.target}): {exc}")
        log_error(f"disconnected from {self.target}")
        self.target = ""
