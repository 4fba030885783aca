"""Cloud.dk control-plane endpoints for cloud servers.

Each call carries its own retry policy. Lookups and creation fail fast;
deletion keeps trying for up to ten minutes.
"""

from __future__ import annotations

from typing import Any, Protocol
from urllib.parse import quote

from loguru import logger

from clouddk_csi.core.exceptions import NotFoundError, TransportError
from clouddk_csi.infra.http import HttpClient, HttpError, Response
from clouddk_csi.types import ServerCreateBody, ServerInfo

SERVERS_PATH = "cloudservers"

DELETE_ATTEMPTS = 60
DELETE_DELAY = 10.0


def _decode(data: Any) -> ServerInfo:
    try:
        return ServerInfo.from_api(data)
    except (TypeError, ValueError) as e:
        raise TransportError(f"Malformed server description: {e}") from e


class ControlPlane(Protocol):
    """What a CloudServer needs from the control plane."""

    async def create(self, body: ServerCreateBody) -> ServerInfo: ...

    async def find_by_hostname(self, hostname: str) -> ServerInfo | None: ...

    async def get(self, identifier: str) -> ServerInfo: ...

    async def delete(self, identifier: str) -> None: ...


class CloudServersAPI:
    """Typed access to the /cloudservers endpoints."""

    def __init__(self, http: HttpClient) -> None:
        self._http = http
        self._log = logger.bind(component="api")

    async def _call(self, method: str, path: str, **kwargs: Any) -> Response:
        try:
            return await self._http.request(method, path, **kwargs)
        except HttpError as e:
            raise TransportError(f"{method} {path} failed: {e}", status=e.status) from e

    async def create(self, body: ServerCreateBody) -> ServerInfo:
        resp = await self._call(
            "POST", SERVERS_PATH, json=body.to_api(), ok=(200,), attempts=1, delay=1.0
        )
        return _decode(resp.data)

    async def find_by_hostname(self, hostname: str) -> ServerInfo | None:
        """Return the first server whose hostname matches exactly."""
        resp = await self._call(
            "GET", SERVERS_PATH, params={"hostname": hostname}, ok=(200,), attempts=1, delay=1.0
        )
        if not isinstance(resp.data, list):
            raise TransportError(
                f"Malformed server list: expected a list, got {type(resp.data).__name__}"
            )
        for entry in resp.data:
            if isinstance(entry, dict) and entry.get("hostname") == hostname:
                return _decode(entry)
        return None

    async def get(self, identifier: str) -> ServerInfo:
        """Fetch one server.

        Raises:
            NotFoundError: If the control plane answers 404.
            TransportError: For any other failure.
        """
        path = f"{SERVERS_PATH}/{quote(identifier, safe='')}"
        try:
            resp = await self._call("GET", path, ok=(200,), attempts=1, delay=1.0)
        except TransportError as e:
            if e.status == 404:
                raise NotFoundError(f"Cloud server '{identifier}' does not exist") from e
            raise
        return _decode(resp.data)

    async def delete(
        self,
        identifier: str,
        *,
        attempts: int = DELETE_ATTEMPTS,
        delay: float = DELETE_DELAY,
    ) -> None:
        """Delete a server. A server that is already gone counts as deleted.

        Only the status code matters; the response body is not decoded.
        """
        path = f"{SERVERS_PATH}/{quote(identifier, safe='')}"
        resp = await self._call(
            "DELETE", path, ok=(200, 404), attempts=attempts, delay=delay, format="text"
        )
        if resp.status == 404:
            self._log.debug("Cloud server {id} was already gone", id=identifier)
