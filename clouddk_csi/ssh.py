"""AsyncSSH-based remote shell access to cloud servers.

Two ways in: the single-use root password while a new server is being
bootstrapped, and the deployment's key pair for everything afterwards.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Any, Protocol

import asyncssh
from loguru import logger

from clouddk_csi.core.exceptions import AuthenticationFailureError, DialFailureError

SSH_PORT = 22
SSH_USER = "root"

_log = logger.bind(component="ssh")


@dataclass(frozen=True, slots=True)
class ShellResult:
    exit_status: int | None
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class Shell(Protocol):
    """An open, authenticated remote shell."""

    async def run(self, command: str) -> ShellResult: ...

    async def close(self) -> None: ...


class ShellConnection:
    """Open SSH connection. Each run() uses (and releases) its own session channel."""

    __slots__ = ("_conn", "host")

    def __init__(self, conn: asyncssh.SSHClientConnection, host: str) -> None:
        self._conn = conn
        self.host = host

    async def run(self, command: str, *, timeout: float | None = None) -> ShellResult:
        result = await self._conn.run(command, check=False, timeout=timeout)
        return ShellResult(
            exit_status=result.exit_status,
            stdout=str(result.stdout or ""),
            stderr=str(result.stderr or ""),
        )

    async def close(self) -> None:
        self._conn.close()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._conn.wait_closed(), timeout=5.0)

    async def __aenter__(self) -> ShellConnection:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()


@dataclass(frozen=True, slots=True)
class SSHConnector:
    """Opens ShellConnections to cloud servers.

    ``known_hosts=None`` skips host-key verification: a freshly created
    server has no key we could know in advance. Pass a known_hosts path to
    enforce verification for key-based connections.
    """

    user: str = SSH_USER
    port: int = SSH_PORT
    connect_timeout: float = 10.0
    known_hosts: str | None = None

    async def connect_password(self, host: str, password: str) -> ShellConnection:
        """Connect with password authentication only."""
        return await self._connect(
            host,
            password=password,
            client_keys=None,
            agent_path=None,
            known_hosts=None,
            preferred_auth="password,keyboard-interactive",
        )

    async def connect_key(self, host: str, private_key: str) -> ShellConnection:
        """Connect with public-key authentication using an in-memory private key."""
        try:
            key = asyncssh.import_private_key(private_key)
        except (asyncssh.KeyImportError, asyncssh.KeyEncryptionError) as e:
            raise AuthenticationFailureError(f"Cannot parse private key: {e}") from e

        return await self._connect(
            host,
            client_keys=[key],
            agent_path=None,
            known_hosts=self.known_hosts,
            preferred_auth="publickey",
        )

    async def _connect(self, host: str, **options: Any) -> ShellConnection:
        _log.debug("Connecting to {user}@{host}:{port}", user=self.user, host=host, port=self.port)
        try:
            conn = await asyncssh.connect(
                host,
                port=self.port,
                username=self.user,
                connect_timeout=self.connect_timeout,
                **options,
            )
        except asyncssh.PermissionDenied as e:
            raise AuthenticationFailureError(
                f"SSH authentication to {host} failed: {e.reason}"
            ) from e
        except (asyncssh.Error, OSError, TimeoutError) as e:
            raise DialFailureError(f"SSH connection to {host}:{self.port} failed: {e}") from e
        return ShellConnection(conn, host)
