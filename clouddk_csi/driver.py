"""Driver: shared configuration and clients for every cloud server handle."""

from __future__ import annotations

import random
from typing import Any

from loguru import logger

from clouddk_csi.api import CloudServersAPI, ControlPlane
from clouddk_csi.config import Settings
from clouddk_csi.identity import IdentityService
from clouddk_csi.infra.clock import Clock, SystemClock
from clouddk_csi.infra.http import ApiKeyAuth, HttpClient
from clouddk_csi.logging import LogConfig, resolve_log_config, setup_logging, teardown_logging
from clouddk_csi.server import CloudServer
from clouddk_csi.ssh import SSHConnector

DRIVER_NAME = "clouddk-csi-driver"
DRIVER_VERSION = "0.1.0"


class Driver:
    """Owns the control-plane session, the SSH connector and the clock.

    Collaborators can be injected (tests pass fakes); otherwise they are
    built from ``settings``. Use as an async context manager so the HTTP
    session is closed and logging, if requested, is set up and torn down.

    Args:
        settings: Driver settings.
        api: Control-plane client. Defaults to CloudServersAPI over HTTP.
        connector: SSH connector. Defaults to one honoring ``settings.known_hosts``.
        clock: Time source for readiness polling.
        logging: ``True`` for INFO to stderr, a LogConfig for custom
            handlers, ``False`` to leave logging to the application.

    Example:
        async with Driver(load_settings(), logging=True) as driver:
            server = driver.server()
            await server.initialize_by_hostname("node-1")
    """

    def __init__(
        self,
        settings: Settings,
        *,
        api: ControlPlane | None = None,
        connector: SSHConnector | None = None,
        clock: Clock | None = None,
        logging: LogConfig | bool = False,
    ) -> None:
        self.settings = settings
        self.name = DRIVER_NAME
        self.version = DRIVER_VERSION
        self._http: HttpClient | None = None
        if api is None:
            self._http = HttpClient(
                settings.api_endpoint,
                ApiKeyAuth(settings.api_key),
                timeout=settings.request_timeout,
            )
            api = CloudServersAPI(self._http)
        self.api: ControlPlane = api
        self.connector = connector or SSHConnector(known_hosts=settings.known_hosts)
        self.clock: Clock = clock or SystemClock()
        self.identity = IdentityService(self)
        self.log_config = resolve_log_config(logging)
        self._log_handler_ids: list[int] = []
        self._log = logger.bind(component="driver")

    def server(self, *, rng: random.Random | None = None) -> CloudServer:
        """New unbound handle."""
        return CloudServer(self, rng=rng)

    async def close(self) -> None:
        if self._http is not None:
            await self._http.close()

    async def __aenter__(self) -> Driver:
        if self.log_config is not None and not self._log_handler_ids:
            self._log_handler_ids = setup_logging(self.log_config)
        self._log.debug("Driver {name} {version} starting", name=self.name, version=self.version)
        if self._http is not None:
            await self._http.__aenter__()
        return self

    async def __aexit__(self, *_: Any) -> None:
        try:
            await self.close()
        finally:
            if self._log_handler_ids:
                self._log.debug("Driver {name} stopped", name=self.name)
                teardown_logging(self._log_handler_ids)
                self._log_handler_ids = []
