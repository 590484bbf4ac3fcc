"""Test fixtures for in-memory implementations."""

from .fake_proof_engine import FakeProofEngine
from .in_memory_artifacts import InMemoryArtifactStore
from .in_memory_chain import (
    CHANNEL_ID,
    FINAL_STATE_ROOT,
    LEADER,
    TARGET_CONTRACT,
    USER1,
    USER2,
    InMemoryChainClient,
)

__all__ = [
    "CHANNEL_ID",
    "FINAL_STATE_ROOT",
    "FakeProofEngine",
    "InMemoryArtifactStore",
    "InMemoryChainClient",
    "LEADER",
    "TARGET_CONTRACT",
    "USER1",
    "USER2",
]
