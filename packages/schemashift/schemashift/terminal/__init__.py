from .base import TerminalSession
from .shell import LocalShellSession, LocalShellSessionFactory
from .ssh import SshConnection, SshConnectionFactory, SshSettings

__all__ = [
    "TerminalSession",
    "LocalShellSession",
    "LocalShellSessionFactory",
    "SshConnection",
    "SshConnectionFactory",
    "SshSettings",
]
