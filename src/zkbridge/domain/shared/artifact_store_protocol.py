"""Protocol interface for the verified-proof artifact service."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from ..entities import StateSnapshot


class ArtifactStoreProtocol(Protocol):
    async def fetch_latest_verified_snapshot(self, channel_id: str) -> "StateSnapshot":
        """Return the state snapshot sealed in the channel's latest verified proof.

        Args:
            channel_id: Channel identifier as a 0x-prefixed hex string

        Returns:
            The parsed and validated snapshot

        Raises:
            NoProofsFoundError: If the channel has no verified proofs
            ArtifactFetchFailedError: If the service answers with an error
            SnapshotMissingError: If the archive holds no state_snapshot.json
            SnapshotCorruptError: If the snapshot cannot be parsed
        """
        ...
