"""httpx helper used by endpoints to talk to their external system."""

from __future__ import annotations

from typing import Any, Mapping

import httpx

from ..errors import UpstreamFailure


class UpstreamClient:
    """Thin request wrapper that turns every failure into UpstreamFailure."""

    def __init__(
        self,
        name: str,
        base_url: str,
        *,
        peer: str,
        headers: Mapping[str, str] | None = None,
        auth: tuple[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.peer = peer
        self.headers = dict(headers or {})
        self.auth = auth
        self.timeout = timeout
        self.transport = transport

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        data: Mapping[str, Any] | None = None,
    ) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=self.headers,
                    params=clean_params or None,
                    json=json,
                    data=data,
                    auth=self.auth,
                )
        except httpx.HTTPError as exc:
            raise UpstreamFailure(
                f"{self.name} request failed: {exc}",
                peer=self.peer,
                details={"url": url},
            ) from exc
        if response.status_code >= 400:
            raise UpstreamFailure(
                f"{self.name} API error status={response.status_code}",
                peer=self.peer,
                details={"status": response.status_code, "body": response.text[:200]},
            )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamFailure(
                f"{self.name} returned a non-JSON body",
                peer=self.peer,
                details={"status": response.status_code},
            ) from exc

    async def get(self, path: str, **params: Any) -> Any:
        return await self.request("GET", path, params=params)


def require(value: str | None, message: str, *, peer: str) -> str:
    """Return a configured credential or raise UpstreamFailure."""
    if not value:
        raise UpstreamFailure(message, peer=peer)
    return value
