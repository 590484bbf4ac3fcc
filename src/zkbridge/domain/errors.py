"""Domain-specific exceptions."""

from __future__ import annotations

from typing import Optional


class BridgeClientError(Exception):
    """Base class for all close-channel client failures."""


# Configuration / precondition errors


class MissingChannelDataError(BridgeClientError):
    """Raised when on-chain channel data required for closing is absent."""


class UnsupportedTreeSizeError(BridgeClientError):
    """Raised when the channel tree size is not one the circuits support."""

    def __init__(self, tree_size: int) -> None:
        super().__init__(f"Unsupported tree size: {tree_size}")
        self.tree_size = tree_size


class NotLeaderError(BridgeClientError):
    """Raised when someone other than the channel leader tries to close it."""


# Remote-fetch errors


class ArtifactError(BridgeClientError):
    """Base class for artifact service failures."""


class NoProofsFoundError(ArtifactError):
    """Raised when a channel has no verified proofs."""


class ArtifactFetchFailedError(ArtifactError):
    """Raised when the artifact service answers with a non-success response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class SnapshotMissingError(ArtifactError):
    """Raised when the proof archive holds no state_snapshot.json."""


class SnapshotCorruptError(ArtifactError):
    """Raised when the archive or the snapshot document cannot be parsed."""


# Data-consistency errors


class DataConsistencyError(BridgeClientError):
    """Base class for inputs known to be inconsistent before submission."""


class PermutationLengthMismatchError(DataConsistencyError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Permutation length mismatch: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class PublicSignalCountMismatchError(DataConsistencyError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"PublicSignals length mismatch: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class UnresolvedKeyError(DataConsistencyError):
    """Raised in strict mode when a key could not be found in registeredKeys."""


# Transaction errors


class TransactionRevertedError(BridgeClientError):
    """Raised when the close transaction is mined with a failed status."""


class ProofGenerationError(BridgeClientError):
    """Raised when the proof engine fails or returns an unusable proof."""


class WalletNotConnectedError(BridgeClientError):
    """Raised when a close attempt starts without a connected account."""
