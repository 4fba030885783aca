from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass
from typing import Any, Literal, Protocol, runtime_checkable

import aiohttp
from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

# ─── Errors ──────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class HttpError(Exception):
    status: int
    body: str

    def __str__(self) -> str:
        if self.status == 0:
            return f"Request failed: {self.body}"
        return f"HTTP {self.status}: {self.body}"


# ─── Response ────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Response:
    status: int
    data: Any


# ─── Auth ────────────────────────────────────────────────────────────


@runtime_checkable
class Auth(Protocol):
    def headers(self) -> dict[str, str]: ...


class ApiKeyAuth:
    """Cloud.dk authenticates every request with a static API key header."""

    def __init__(self, key: str) -> None:
        self._key = key

    def headers(self) -> dict[str, str]:
        return {
            "X-Api-Key": self._key,
            "Accept": "application/json",
        }


# ─── Client ──────────────────────────────────────────────────────────


class HttpClient:
    def __init__(
        self,
        base_url: str,
        auth: Auth | None = None,
        *,
        timeout: float = 30,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None
        self._log = logger.bind(component="http")

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None,
        params: dict[str, str] | None,
        ok: Collection[int],
        format: Literal["json", "text"],
    ) -> Response:
        session = self._ensure_session()
        headers = self._auth.headers() if self._auth else {}
        self._log.debug("{method} {path}", method=method, path=path)

        try:
            async with session.request(
                method, self._url(path), headers=headers, json=json, params=params
            ) as resp:
                if resp.status not in ok:
                    body = await resp.text(errors="replace")
                    self._log.warning(
                        "HTTP {status} from {method} {path}: {body}",
                        status=resp.status, method=method, path=path, body=body[:500],
                    )
                    raise HttpError(status=resp.status, body=body)
                match format:
                    case "json":
                        raw = await resp.read()
                        data = await resp.json(content_type=None) if raw.strip() else None
                    case "text":
                        data = await resp.text(errors="replace")
                return Response(status=resp.status, data=data)
        except ValueError as e:
            raise HttpError(status=0, body=f"Invalid JSON: {e}") from e
        except (aiohttp.ClientError, TimeoutError) as e:
            raise HttpError(status=0, body=str(e) or type(e).__name__) from e

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        ok: Collection[int] = (200,),
        attempts: int = 1,
        delay: float = 1.0,
        format: Literal["json", "text"] = "json",
    ) -> Response:
        """Send a request, retrying failed attempts.

        Args:
            method: HTTP method.
            path: Path relative to the base URL.
            json: JSON request body.
            params: Query string parameters (escaped by aiohttp).
            ok: Status codes that count as success.
            attempts: Total number of attempts, including the first one.
            delay: Seconds to wait between attempts.
            format: Decode the body as JSON, or return it as text undecoded.

        Raises:
            HttpError: The last failure once attempts are exhausted.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(attempts, 1)),
            wait=wait_fixed(delay),
            retry=retry_if_exception_type(HttpError),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                return await self._send(
                    method, path, json=json, params=params, ok=ok, format=format
                )
        raise AssertionError("unreachable")

    def _log_retry(self, state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        self._log.warning(
            "Attempt {n} failed: {error}. Retrying...", n=state.attempt_number, error=error
        )

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def close(self) -> None:
        if self._session and not self._session.closed:
            self._log.debug("Closing HTTP session")
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> HttpClient:
        self._ensure_session()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
