"""Shared pytest fixtures for close-channel tests."""

from __future__ import annotations

import pytest

from zkbridge.application.close_channel.use_cases import CloseChannelService
from zkbridge.domain.entities import ChannelOnChainView, StateSnapshot
from tests.fixtures import (
    CHANNEL_ID,
    FINAL_STATE_ROOT,
    LEADER,
    TARGET_CONTRACT,
    USER1,
    FakeProofEngine,
    InMemoryArtifactStore,
    InMemoryChainClient,
)


@pytest.fixture
def scenario_snapshot() -> StateSnapshot:
    """Three registered keys: one pre-allocated leaf and one user balance of 1 ether."""
    return StateSnapshot.model_validate(
        {
            "registeredKeys": ["0xAA", "0xBB", "0xCC"],
            "storageEntries": [{"key": "0xBB", "value": "0x0de0b6b3a7640000"}],
            "preAllocatedLeaves": [{"key": "0xAA", "value": "0x1"}],
        }
    )


@pytest.fixture
def scenario_view() -> ChannelOnChainView:
    return ChannelOnChainView(
        channel_id=CHANNEL_ID,
        participants=[USER1],
        pre_allocated_keys=["0x" + "aa".rjust(64, "0")],
        tree_size=16,
        final_state_root=FINAL_STATE_ROOT,
        target_contract=TARGET_CONTRACT,
        leader=LEADER,
    )


@pytest.fixture
def chain() -> InMemoryChainClient:
    return InMemoryChainClient(
        participants=[USER1],
        pre_allocated_keys=["0x" + "aa".rjust(64, "0")],
        l2_keys={USER1: 0xBB},
    )


@pytest.fixture
def artifact_store(scenario_snapshot: StateSnapshot) -> InMemoryArtifactStore:
    return InMemoryArtifactStore(scenario_snapshot)


@pytest.fixture
def proof_engine() -> FakeProofEngine:
    return FakeProofEngine()


@pytest.fixture
def close_service(
    chain: InMemoryChainClient,
    artifact_store: InMemoryArtifactStore,
    proof_engine: FakeProofEngine,
) -> CloseChannelService:
    return CloseChannelService(chain, artifact_store, proof_engine)
