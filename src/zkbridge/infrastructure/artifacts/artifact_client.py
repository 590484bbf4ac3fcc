from __future__ import annotations

import logging
from typing import Any, List, Optional, Type
from types import TracebackType
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ...domain.entities import StateSnapshot, VerifiedProofRef
from ...domain.errors import ArtifactFetchFailedError, NoProofsFoundError
from ...middleware.timing import log_timing
from ..http.http_client import AsyncHttpClient, error_detail
from .archive import extract_state_snapshot

logger = logging.getLogger(__name__)


def parse_verified_proofs(body: Any) -> List[VerifiedProofRef]:
    """Turn a proofs listing body into references sorted by ascending sequence.

    The service answers ``{"success": bool, "data": ...}`` where ``data`` is
    either a list of proof objects or an object keyed by proof id.
    """
    if not isinstance(body, dict) or not body.get("success") or not body.get("data"):
        return []

    data = body["data"]
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = [
            {"key": key, **value} if isinstance(value, dict) else {"key": key}
            for key, value in data.items()
        ]
    else:
        return []

    try:
        proofs = [VerifiedProofRef.model_validate(item) for item in items]
    except ValidationError as e:
        raise ArtifactFetchFailedError(f"Invalid verified proofs listing: {e}") from e

    proofs.sort(key=lambda p: p.sequence_number)
    return proofs


class ArtifactStoreClient:
    """Asynchronous client for the verified-proof artifact service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = AsyncHttpClient(base_url, timeout=timeout, transport=transport)

    async def list_verified_proofs(self, channel_id: str) -> List[VerifiedProofRef]:
        encoded = quote(channel_id.lower(), safe="")
        try:
            resp = await self._http.get(
                f"/channels/{encoded}/proofs", params={"type": "verified"}
            )
        except httpx.HTTPStatusError as e:
            raise ArtifactFetchFailedError(
                f"Failed to fetch verified proofs: HTTP {e.response.status_code}",
                status_code=e.response.status_code,
                detail=error_detail(e.response),
            ) from e
        except httpx.RequestError as e:
            raise ArtifactFetchFailedError(
                f"Could not connect to artifact service: {e}"
            ) from e

        try:
            body = resp.json()
        except ValueError as e:
            raise ArtifactFetchFailedError(
                f"Verified proofs listing is not JSON: {e}"
            ) from e
        return parse_verified_proofs(body)

    async def fetch_proof_archive(self, channel_id: str, proof_id: str) -> bytes:
        params = {
            "channelId": channel_id.lower(),
            "proofId": proof_id,
            "status": "verifiedProofs",
            "format": "binary",
        }
        try:
            resp = await self._http.get("/get-proof-zip", params=params)
        except httpx.HTTPStatusError as e:
            detail = error_detail(e.response)
            raise ArtifactFetchFailedError(
                f"Failed to load proof file: {proof_id} ({detail})",
                status_code=e.response.status_code,
                detail=detail,
            ) from e
        except httpx.RequestError as e:
            raise ArtifactFetchFailedError(
                f"Could not connect to artifact service: {e}"
            ) from e
        return resp.content

    @log_timing("fetch_latest_verified_snapshot")
    async def fetch_latest_verified_snapshot(self, channel_id: str) -> StateSnapshot:
        proofs = await self.list_verified_proofs(channel_id)
        if not proofs:
            raise NoProofsFoundError(f"No verified proofs found for channel {channel_id}")

        latest = proofs[-1]
        logger.info(
            "Latest verified proof for channel %s: %s (sequence %d)",
            channel_id,
            latest.key,
            latest.sequence_number,
        )
        archive_bytes = await self.fetch_proof_archive(channel_id, latest.key)
        return extract_state_snapshot(archive_bytes)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ArtifactStoreClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()
