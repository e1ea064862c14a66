"""Shared JSON client for adapters talking to CI servers over HTTP."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional, Sequence

import httpx

from ci_board import __version__
from ci_board.errors import AdapterError
from ci_board.models import Server, ServerArgument

logger = logging.getLogger(__name__)

USER_AGENT = f"ci-board/{__version__}"


class ServerClient:
    """Lazily opened httpx client with throttling and AdapterError mapping."""

    def __init__(
        self,
        base_url: str,
        headers: Optional[Mapping[str, str]] = None,
        auth: Optional[httpx.Auth] = None,
        rate_limit_ms: int = 0,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url
        self._headers = {"User-Agent": USER_AGENT, **(headers or {})}
        self._auth = auth
        self._rate_limit = rate_limit_ms / 1000.0
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def for_server(
        cls,
        server: Server,
        arguments: Sequence[ServerArgument] = (),
        **kwargs: Any,
    ) -> "ServerClient":
        """Build a client from a server and its access arguments.

        A ``token`` argument becomes a bearer token, unless a ``user``
        argument is also present, in which case both are sent as basic auth.
        """
        args: Dict[str, str] = {a.key: a.value for a in arguments}
        headers: Dict[str, str] = {}
        auth = None
        token = args.get("token")
        if token and args.get("user"):
            auth = httpx.BasicAuth(args["user"], token)
        elif token:
            headers["Authorization"] = f"Bearer {token}"
        return cls(server.url, headers=headers, auth=auth, **kwargs)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._headers,
                auth=self._auth,
                follow_redirects=True,
            )
        return self._client

    async def _throttle(self) -> None:
        if self._rate_limit > 0:
            await asyncio.sleep(self._rate_limit)

    async def get_json(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        client = self._get_client()
        await self._throttle()
        try:
            resp = await client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            raise AdapterError(
                f"{exc.request.url} answered {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AdapterError(f"Request to {self._base_url}{path} failed: {exc}") from exc
        except ValueError as exc:
            raise AdapterError(f"{self._base_url}{path} did not return JSON: {exc}") from exc

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "ServerClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
