"""
SSH sessions over paramiko.

Connection settings come from the connector namespace:

    host                    required
    port                    default 22
    user
    password                password authentication
    privateKey.path         key authentication (takes precedence)
    privateKey.passphrase
    command.timeoutMs       per-command timeout, default 300000
    lock.timeout            seconds to wait for the connection guard, default 30
    hostKey.strict          reject unknown host keys, default false

One connection is shared per (name, configuration); every operation runs
under the connection's own guard so concurrent callers serialize.
"""

import logging
import socket
from pathlib import Path
from typing import Callable, Optional

import paramiko
from pydantic import BaseModel

from ..cache import CachedObjectFactory
from ..concurrent import LockTemplate
from ..config import Configuration
from ..errors import ExecutionError, MisconfigurationError
from .base import LineCollector, TerminalSession, read_both_streams

logger = logging.getLogger(__name__)


class SshSettings(BaseModel):
    host: str
    port: int = 22
    user: Optional[str] = None
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_passphrase: Optional[str] = None
    command_timeout_ms: int = 300000
    lock_timeout_seconds: int = 30
    strict_host_key: bool = False

    @classmethod
    def from_configuration(cls, configuration: Configuration) -> "SshSettings":
        host = configuration.get_string("host")
        if not host:
            raise MisconfigurationError("Missing configuration key: host")

        values = {
            "host": host,
            "port": configuration.get_int("port"),
            "user": configuration.get_string("user"),
            "password": configuration.get_string("password"),
            "private_key_path": configuration.get_string("privateKey", "path"),
            "private_key_passphrase": configuration.get_string("privateKey", "passphrase"),
            "command_timeout_ms": configuration.get_int("command", "timeoutMs"),
            "lock_timeout_seconds": configuration.get_int("lock", "timeout"),
            "strict_host_key": configuration.get_bool("hostKey", "strict"),
        }
        return cls(**{key: value for key, value in values.items() if value is not None})


class SshConnection(TerminalSession[str]):
    """A lazily connected SSH session executing one remote command at a time."""

    def __init__(
        self,
        name: str,
        settings: SshSettings,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ):
        self.name = name
        self.settings = settings
        self._client_factory = client_factory
        self._client: Optional[paramiko.SSHClient] = None
        self._lock_template = LockTemplate(settings.lock_timeout_seconds)

    # ==================== Operations ====================

    def execute(self, command: str) -> None:
        with self._lock_template.hold():
            self._execute_remote(command)

    def upload_file(self, local_file: Path, remote_path: str) -> None:
        with self._lock_template.hold():
            client = self._ensure_connected()
            logger.info(f"[{self.name}] uploading {Path(local_file).name} to {remote_path}")
            try:
                with client.open_sftp() as sftp:
                    sftp.put(str(local_file), remote_path)
            except (OSError, paramiko.SSHException) as e:
                raise ExecutionError(f"Upload failed for {local_file} to {remote_path}: {e}") from e

    def close(self) -> None:
        with self._lock_template.hold():
            if self._client is not None:
                logger.info(f"[{self.name}] closing SSH connection to {self.settings.host}")
                try:
                    self._client.close()
                finally:
                    self._client = None

    # ==================== Internals ====================

    def _execute_remote(self, command: str) -> None:
        client = self._ensure_connected()
        logger.info(f"[{self.name}] executing remote command: {command}")

        timeout = self.settings.command_timeout_ms / 1000
        stdout_lines = LineCollector(logger, logging.INFO, "SSH:O")
        stderr_lines = LineCollector(logger, logging.WARNING, "SSH:E")

        try:
            _, stdout, stderr = client.exec_command(command, timeout=timeout)
        except (paramiko.SSHException, socket.error) as e:
            raise ExecutionError(f"SSH execution failed for command: {command}") from e

        out_reader, err_reader, pool = read_both_streams(
            stdout, stderr, stdout_lines, stderr_lines, f"ssh-{self.name}"
        )
        try:
            out_reader.result()
            err_reader.result()
            exit_status = stdout.channel.recv_exit_status()
        except socket.timeout as e:
            stdout.channel.close()
            raise ExecutionError(f"Timed out after {timeout}s running: {command}") from e
        except BaseException:
            stdout.channel.close()
            raise
        finally:
            pool.shutdown(wait=True)

        if exit_status != 0:
            message = f"Exit code {exit_status} received for command: {command}"
            if stderr_lines.tail:
                message += f"\n{stderr_lines.tail_text()}"
            raise ExecutionError(message)

    def _ensure_connected(self) -> paramiko.SSHClient:
        transport = self._client.get_transport() if self._client is not None else None
        if transport is None or not transport.is_active():
            self._client = self._connect()
        return self._client

    def _connect(self) -> paramiko.SSHClient:
        settings = self.settings
        logger.info(f"[{self.name}] connecting to SSH server {settings.user}@{settings.host}:{settings.port}")

        connect_kwargs = {
            "hostname": settings.host,
            "port": settings.port,
            "username": settings.user,
            "timeout": settings.lock_timeout_seconds,
            "allow_agent": False,
            "look_for_keys": False,
        }
        if settings.private_key_path is not None:
            key_path = Path(settings.private_key_path)
            if not key_path.exists():
                raise MisconfigurationError(f"Private key file not found: {key_path}")
            connect_kwargs["key_filename"] = str(key_path)
            connect_kwargs["passphrase"] = settings.private_key_passphrase
        elif settings.password is not None:
            connect_kwargs["password"] = settings.password
        else:
            raise MisconfigurationError(
                "No authentication method configured. Provide either password or privateKey.path"
            )

        client = self._client_factory()
        client.load_system_host_keys()
        if settings.strict_host_key:
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        try:
            client.connect(**connect_kwargs)
        except (paramiko.SSHException, socket.error) as e:
            client.close()
            raise ExecutionError(
                f"Failed to connect to {settings.user}@{settings.host}:{settings.port}: {e}"
            ) from e

        logger.info(f"[{self.name}] connected to {settings.host}:{settings.port}")
        return client

    def __repr__(self) -> str:
        connected = self._client is not None
        return (
            f"SshConnection(name={self.name!r}, host={self.settings.host!r}, port={self.settings.port}, "
            f"user={self.settings.user!r}, connected={connected})"
        )


class SshConnectionFactory(CachedObjectFactory[SshConnection]):

    def __init__(self, client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient):
        super().__init__()
        self._client_factory = client_factory

    def get_connection(self, name: str, configuration: Configuration, context=None) -> SshConnection:
        return self.get_object(name, configuration, context)

    def create_new_object(self, name: str, configuration: Configuration, context) -> SshConnection:
        return SshConnection(name, SshSettings.from_configuration(configuration), self._client_factory)
