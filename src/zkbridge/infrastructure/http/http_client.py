"""Shared httpx plumbing for the artifact service and prover adapters."""

from __future__ import annotations

from typing import Any, Dict, Optional, Type
from types import TracebackType

import httpx


class AsyncHttpClient:
    """Async httpx wrapper shared by ``ArtifactStoreClient`` and ``HttpProofEngineClient``.

    Paths are joined onto the service base URL, and every non-2xx answer raises
    ``httpx.HTTPStatusError`` so each adapter can map it to its own domain
    error (with ``error_detail`` for the message). ``timeout=None`` disables the
    httpx timeout, which long proof generations need. ``transport`` is handed
    to httpx so tests can serve responses from ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        resp = await self._client.get(self._url(path), **kwargs)
        resp.raise_for_status()
        return resp

    async def post(
        self,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        resp = await self._client.post(self._url(path), json=json, **kwargs)
        resp.raise_for_status()
        return resp

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "AsyncHttpClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()


def error_detail(response: httpx.Response) -> str:
    """Best-effort human-readable reason from an error response.

    Prefers the JSON ``error`` or ``details`` field, then the reason phrase,
    then ``HTTP <status>``.
    """
    fallback = f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or fallback
    if isinstance(body, dict):
        detail = body.get("error") or body.get("details")
        if detail:
            return str(detail)
    return response.reason_phrase or fallback
