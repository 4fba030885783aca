"""Cloud server lifecycle: create, look up, connect to and destroy servers.

A CloudServer is a handle that is either Unbound or Bound to exactly one
remote server. Creation is a multi-step workflow (create, wait for SSH,
bootstrap); if any step after the remote server exists fails, the server is
destroyed again before the error reaches the caller.

Example:
    async with Driver(load_settings()) as driver:
        server = driver.server()
        await server.create("dk1", "89833c1dfa7b", "node-1")
        async with await server.ssh() as shell:
            await shell.run("uptime")
        await server.destroy()
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from loguru import logger

from clouddk_csi.bootstrap import bootstrap
from clouddk_csi.core.exceptions import (
    AlreadyInitializedError,
    InvalidArgumentError,
    NotFoundError,
    NotInitializedError,
    ProvisioningDefectError,
)
from clouddk_csi.secrets import initial_root_password
from clouddk_csi.ssh import ShellConnection
from clouddk_csi.types import (
    Bound,
    NetworkInterface,
    ServerCreateBody,
    ServerInfo,
    ServerState,
    Unbound,
)
from clouddk_csi.wait import wait_for_ready

if TYPE_CHECKING:
    from clouddk_csi.driver import Driver


class CloudServer:
    """Handle on a single Cloud.dk server.

    One caller owns a handle at a time; operations are not meant to run
    concurrently against the same handle.
    """

    def __init__(self, driver: Driver, *, rng: random.Random | None = None) -> None:
        self._driver = driver
        self._rng = rng
        self._state: ServerState = Unbound()
        self._log = logger.bind(component="servers")

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def is_bound(self) -> bool:
        return isinstance(self._state, Bound)

    @property
    def info(self) -> ServerInfo:
        return self._require_bound().info

    @property
    def identifier(self) -> str | None:
        match self._state:
            case Bound(info=info):
                return info.identifier
            case _:
                return None

    @property
    def hostname(self) -> str | None:
        match self._state:
            case Bound(info=info):
                return info.hostname
            case _:
                return None

    @property
    def label(self) -> str | None:
        match self._state:
            case Bound(info=info):
                return info.label
            case _:
                return None

    @property
    def network_interfaces(self) -> tuple[NetworkInterface, ...]:
        match self._state:
            case Bound(info=info):
                return info.network_interfaces
            case _:
                return ()

    @property
    def booted(self) -> bool:
        match self._state:
            case Bound(booted=booted):
                return booted
            case _:
                return False

    def _require_bound(self) -> Bound:
        match self._state:
            case Bound() as bound:
                return bound
            case _:
                raise NotInitializedError()

    def _require_unbound(self) -> None:
        match self._state:
            case Bound(info=info):
                raise AlreadyInitializedError(info.identifier)
            case _:
                return

    def __repr__(self) -> str:
        match self._state:
            case Bound(info=info, booted=booted):
                return (
                    f"CloudServer(identifier={info.identifier!r}, "
                    f"hostname={info.hostname!r}, booted={booted})"
                )
            case _:
                return "CloudServer(unbound)"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def create(self, location: str, package: str, hostname: str) -> None:
        """Create, wait for and bootstrap a new server.

        On success the handle is bound and booted. On failure after the
        remote server was created, it is destroyed again and the handle is
        left unbound.

        Raises:
            AlreadyInitializedError: If the handle is already bound.
            TransportError: If the create request fails.
            ProvisioningDefectError: If the server came up without an address.
            ReadinessTimeoutError: If SSH never became reachable.
            BootstrapFailureError: If first-boot configuration failed.
        """
        self._require_unbound()
        settings = self._driver.settings

        self._log.info("Creating cloud server (hostname: {hostname})", hostname=hostname)

        password = initial_root_password(rng=self._rng)
        body = ServerCreateBody(
            hostname=hostname,
            label=hostname,
            initial_root_password=password,
            package=package,
            template=settings.template,
            location=location,
        )

        try:
            info = await self._driver.api.create(body)
        except Exception:
            self._log.warning("Failed to create cloud server (hostname: {hostname})", hostname=hostname)
            raise

        self._state = Bound(info=info)

        async with self._rollback_on_error():
            address = info.primary_address
            if address is None:
                raise ProvisioningDefectError(info.identifier)

            self._log.info(
                "Waiting for cloud server to accept SSH connections (hostname: {hostname})",
                hostname=hostname,
            )
            connector = self._driver.connector
            shell = await wait_for_ready(
                lambda: connector.connect_password(address, password),
                address=address,
                clock=self._driver.clock,
                timeout=settings.ready_timeout,
                interval=settings.ready_interval,
            )

            self._log.info("Bootstrapping cloud server (hostname: {hostname})", hostname=hostname)
            await bootstrap(shell, settings.public_key, mirror=settings.mirror)

        self._state = Bound(info=info, booted=True)
        self._log.info(
            "Cloud server ready (hostname: {hostname}, id: {id})",
            hostname=hostname, id=info.identifier,
        )

    @asynccontextmanager
    async def _rollback_on_error(self) -> AsyncIterator[None]:
        """Destroy the just-created server if the enclosed steps fail.

        The original error always propagates. A destroy that fails or is
        itself cancelled is logged and attached to it as a note; the handle is
        reset to Unbound either way.
        """
        try:
            yield
        except (Exception, asyncio.CancelledError) as error:
            bound = self._require_bound()
            identifier = bound.info.identifier
            self._log.warning(
                "Rolling back cloud server {id} after {error}",
                id=identifier, error=type(error).__name__,
            )
            try:
                await self.destroy()
            except (Exception, asyncio.CancelledError) as rollback_error:
                reason = str(rollback_error) or type(rollback_error).__name__
                self._log.error(
                    "Rollback of cloud server {id} failed, it may have leaked: {error}",
                    id=identifier, error=reason,
                )
                error.add_note(
                    f"Rollback failed, cloud server '{identifier}' may have leaked: {reason}"
                )
                self._state = Unbound()
            raise

    async def destroy(self) -> None:
        """Delete the bound server and unbind the handle.

        Raises:
            NotInitializedError: If the handle is unbound.
            TransportError: If deletion kept failing; the handle stays bound.
        """
        info = self._require_bound().info
        self._log.info("Destroying cloud server (hostname: {hostname})", hostname=info.hostname)

        try:
            await self._driver.api.delete(info.identifier)
        except Exception:
            self._log.warning(
                "Failed to destroy cloud server (hostname: {hostname})", hostname=info.hostname
            )
            raise

        self._state = Unbound()

    async def initialize_by_hostname(self, hostname: str) -> None:
        """Bind to the existing server with this exact hostname.

        Raises:
            AlreadyInitializedError: If the handle is already bound.
            InvalidArgumentError: If hostname is empty.
            NotFoundError: If no server has this hostname.
            TransportError: If the lookup failed.
        """
        self._require_unbound()
        if not hostname:
            raise InvalidArgumentError("Cannot retrieve a server without a hostname")

        info = await self._driver.api.find_by_hostname(hostname)
        if info is None:
            raise NotFoundError(f"Failed to retrieve the server object for hostname '{hostname}'")

        self._state = Bound(info=info, booted=info.booted)
        self._log.debug("Bound to cloud server {id} ({hostname})", id=info.identifier, hostname=hostname)

    async def initialize_by_id(self, identifier: str) -> None:
        """Bind to the existing server with this identifier.

        Raises:
            AlreadyInitializedError: If the handle is already bound.
            InvalidArgumentError: If identifier is empty.
            NotFoundError: If the server does not exist.
            TransportError: If the lookup failed.
        """
        self._require_unbound()
        if not identifier:
            raise InvalidArgumentError("Cannot retrieve a server without an identifier")

        info = await self._driver.api.get(identifier)

        self._state = Bound(info=info, booted=info.booted)
        self._log.debug("Bound to cloud server {id} ({hostname})", id=identifier, hostname=info.hostname)

    # -------------------------------------------------------------------------
    # Remote shell
    # -------------------------------------------------------------------------

    async def ssh(self) -> ShellConnection:
        """Open a key-authenticated root shell on the bound server.

        The caller owns the returned connection and must close it.

        Raises:
            NotInitializedError: If the handle is unbound.
            ProvisioningDefectError: If the server has no address.
            AuthenticationFailureError: If the key is rejected or unparsable.
            DialFailureError: If the server is unreachable.
        """
        info = self._require_bound().info
        address = info.primary_address
        if address is None:
            raise ProvisioningDefectError(info.identifier)
        return await self._driver.connector.connect_key(address, self._driver.settings.private_key)
