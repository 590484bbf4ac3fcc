"""Use case tests for CloseChannelService against in-memory collaborators."""

from __future__ import annotations

import asyncio

import pytest

from zkbridge.application.close_channel.dtos import CloseChannelRequestDTO
from zkbridge.application.close_channel.use_cases import (
    CloseChannelService,
    extract_revert_reason,
)
from zkbridge.domain.entities import ClosePhase, CloseChannelState
from zkbridge.domain.keys import mpt_key_to_hex
from tests.fixtures import (
    CHANNEL_ID,
    LEADER,
    USER1,
    FakeProofEngine,
    InMemoryArtifactStore,
    InMemoryChainClient,
)


def leader_request(**overrides) -> CloseChannelRequestDTO:
    data = {"channel_id": CHANNEL_ID, "caller_address": LEADER.lower()}
    data.update(overrides)
    return CloseChannelRequestDTO(**data)


class TestCloseChannelSucceeds:
    """The leader closes a channel whose snapshot resolves every key."""

    @pytest.mark.asyncio
    async def test_submits_final_balances(
        self,
        close_service: CloseChannelService,
        chain: InMemoryChainClient,
        proof_engine: FakeProofEngine,
    ) -> None:
        state = await close_service.close_channel(leader_request())

        assert state.phase is ClosePhase.SUCCEEDED
        assert state.error is None
        assert state.tx_hash == chain.tx_hash
        assert state.permutation == [0, 1]
        assert state.final_balances == [10**18]

        function_name, args = chain.writes[0]
        assert function_name == "verifyFinalBalancesGroth16"
        assert args[0] == CHANNEL_ID
        assert args[1] == [10**18]
        assert args[2] == [0, 1]
        assert args[3]["pB"] == [5, 6, 7, 8, 9, 10, 11, 12]
        assert proof_engine.inputs[0].tree_size == 16

    @pytest.mark.asyncio
    async def test_reports_every_phase_in_order(
        self, close_service: CloseChannelService
    ) -> None:
        states: list[CloseChannelState] = []
        await close_service.close_channel(leader_request(), on_state=states.append)

        phases = []
        for s in states:
            if not phases or phases[-1] is not s.phase:
                phases.append(s.phase)
        assert phases == [
            ClosePhase.PREPARING,
            ClosePhase.PROVING,
            ClosePhase.SUBMITTING,
            ClosePhase.SUCCEEDED,
        ]
        statuses = [s.status for s in states]
        assert "Loading latest verified proof from DB..." in statuses
        assert "Calculating permutation..." in statuses
        assert "Generating Groth16 proof... This may take a few minutes..." in statuses
        assert "Generating proof..." in statuses

    @pytest.mark.asyncio
    async def test_listener_receives_copies(
        self, close_service: CloseChannelService
    ) -> None:
        states: list[CloseChannelState] = []
        final = await close_service.close_channel(
            leader_request(), on_state=states.append
        )
        assert states[0].phase is ClosePhase.PREPARING
        assert all(s is not final for s in states)

    @pytest.mark.asyncio
    async def test_snapshot_fetched_once(
        self,
        close_service: CloseChannelService,
        artifact_store: InMemoryArtifactStore,
    ) -> None:
        await close_service.close_channel(leader_request())
        assert artifact_store.fetches == [CHANNEL_ID]

    @pytest.mark.asyncio
    async def test_each_attempt_refetches(
        self,
        close_service: CloseChannelService,
        artifact_store: InMemoryArtifactStore,
    ) -> None:
        await close_service.close_channel(leader_request())
        await close_service.close_channel(leader_request())
        assert len(artifact_store.fetches) == 2


class TestCloseChannelPreconditions:
    """Attempts rejected before any snapshot work happens."""

    @pytest.mark.asyncio
    async def test_non_leader_rejected_before_fetch(
        self,
        close_service: CloseChannelService,
        artifact_store: InMemoryArtifactStore,
        chain: InMemoryChainClient,
    ) -> None:
        state = await close_service.close_channel(
            leader_request(caller_address=USER1)
        )
        assert state.phase is ClosePhase.FAILED
        assert state.failed_phase is ClosePhase.IDLE
        assert "Only the channel leader" in state.error
        assert artifact_store.fetches == []
        assert chain.writes == []

    @pytest.mark.asyncio
    async def test_missing_channel_id(
        self, close_service: CloseChannelService, chain: InMemoryChainClient
    ) -> None:
        state = await close_service.close_channel(leader_request(channel_id=None))
        assert state.phase is ClosePhase.FAILED
        assert state.error == "Channel ID is required"
        assert chain.calls == []

    @pytest.mark.asyncio
    async def test_wallet_not_connected(
        self, close_service: CloseChannelService, chain: InMemoryChainClient
    ) -> None:
        state = await close_service.close_channel(leader_request(caller_address=None))
        assert state.phase is ClosePhase.FAILED
        assert state.error == "Wallet is not connected"
        assert chain.calls == []

    @pytest.mark.asyncio
    async def test_unsupported_tree_size(
        self,
        close_service: CloseChannelService,
        chain: InMemoryChainClient,
        artifact_store: InMemoryArtifactStore,
    ) -> None:
        chain.tree_size = 99
        state = await close_service.close_channel(leader_request())
        assert state.error == "Unsupported tree size: 99"
        assert artifact_store.fetches == []

    @pytest.mark.asyncio
    async def test_pre_allocated_keys_read_from_target_contract(
        self, close_service: CloseChannelService, chain: InMemoryChainClient
    ) -> None:
        view = await close_service.load_channel_view(CHANNEL_ID)
        assert chain.calls_to("getPreAllocatedKeys") == [[chain.target_contract]]
        assert view.tree_size == 16
        assert view.participants == [USER1]

    @pytest.mark.asyncio
    async def test_failed_view_read_waits_for_other_reads(
        self, close_service: CloseChannelService, chain: InMemoryChainClient
    ) -> None:
        chain.read_errors["getChannelTreeSize"] = ConnectionError("rpc timeout")
        chain.read_delays["getChannelLeader"] = 0.01
        with pytest.raises(ConnectionError, match="rpc timeout"):
            await close_service.load_channel_view(CHANNEL_ID)
        assert "getChannelLeader" in chain.completed_reads

    @pytest.mark.asyncio
    async def test_first_failed_view_read_is_reported(
        self, close_service: CloseChannelService, chain: InMemoryChainClient
    ) -> None:
        chain.read_errors["getChannelParticipants"] = ConnectionError("first")
        chain.read_errors["getChannelLeader"] = ConnectionError("last")
        state = await close_service.close_channel(leader_request())
        assert state.failed_phase is ClosePhase.IDLE
        assert state.error == "first"

    @pytest.mark.asyncio
    async def test_missing_target_contract_rejected_before_fetch(
        self,
        close_service: CloseChannelService,
        chain: InMemoryChainClient,
        artifact_store: InMemoryArtifactStore,
    ) -> None:
        chain.target_contract = None
        state = await close_service.close_channel(leader_request())
        assert state.failed_phase is ClosePhase.IDLE
        assert "'channelTargetContract': 'MISSING'" in state.error
        assert chain.calls_to("getPreAllocatedKeys") == []
        assert artifact_store.fetches == []

    @pytest.mark.asyncio
    async def test_missing_data_reported_even_without_proofs(
        self, chain: InMemoryChainClient
    ) -> None:
        chain.target_contract = None
        artifacts = InMemoryArtifactStore()
        service = CloseChannelService(chain, artifacts, FakeProofEngine())
        state = await service.close_channel(leader_request())
        assert state.error.startswith("Missing channel data")
        assert artifacts.fetches == []

    @pytest.mark.asyncio
    async def test_missing_participants_rejected_before_fetch(
        self,
        close_service: CloseChannelService,
        chain: InMemoryChainClient,
        artifact_store: InMemoryArtifactStore,
    ) -> None:
        chain.participants = None
        state = await close_service.close_channel(leader_request())
        assert "'channelParticipants': 'MISSING'" in state.error
        assert artifact_store.fetches == []


class TestCloseChannelFailures:
    """Failures after preparation has started."""

    @pytest.mark.asyncio
    async def test_no_verified_proofs(self, chain: InMemoryChainClient) -> None:
        service = CloseChannelService(chain, InMemoryArtifactStore(), FakeProofEngine())
        state = await service.close_channel(leader_request())
        assert state.phase is ClosePhase.FAILED
        assert state.failed_phase is ClosePhase.PREPARING
        assert "No verified proofs found" in state.error

    @pytest.mark.asyncio
    async def test_unresolved_key_warns_but_submits(
        self, close_service: CloseChannelService, chain: InMemoryChainClient
    ) -> None:
        chain.l2_keys[USER1.lower()] = 0xDD
        state = await close_service.close_channel(leader_request())
        assert state.phase is ClosePhase.SUCCEEDED
        assert state.final_balances == [0]
        assert state.warnings[0].key == mpt_key_to_hex(0xDD)

    @pytest.mark.asyncio
    async def test_strict_mode_blocks_submission(
        self,
        chain: InMemoryChainClient,
        artifact_store: InMemoryArtifactStore,
        proof_engine: FakeProofEngine,
    ) -> None:
        chain.l2_keys[USER1.lower()] = 0xDD
        service = CloseChannelService(
            chain, artifact_store, proof_engine, strict_key_resolution=True
        )
        state = await service.close_channel(leader_request())
        assert state.phase is ClosePhase.FAILED
        assert state.failed_phase is ClosePhase.PREPARING
        assert "Cannot reconstruct exact ordering" in state.error
        assert proof_engine.inputs == []
        assert chain.writes == []

    @pytest.mark.asyncio
    async def test_signal_mismatch_fails_before_submission(
        self,
        chain: InMemoryChainClient,
        artifact_store: InMemoryArtifactStore,
    ) -> None:
        service = CloseChannelService(
            chain, artifact_store, FakeProofEngine(signal_count=65)
        )
        state = await service.close_channel(leader_request())
        assert state.failed_phase is ClosePhase.PROVING
        assert state.error == "PublicSignals length mismatch: expected 33, got 65"
        assert chain.writes == []

    @pytest.mark.asyncio
    async def test_proof_engine_error_kept_verbatim(
        self,
        close_service: CloseChannelService,
        proof_engine: FakeProofEngine,
    ) -> None:
        proof_engine.error = RuntimeError("prover crashed: out of memory")
        state = await close_service.close_channel(leader_request())
        assert state.failed_phase is ClosePhase.PROVING
        assert state.error == "prover crashed: out of memory"

    @pytest.mark.asyncio
    async def test_reverted_receipt_fails(
        self, close_service: CloseChannelService, chain: InMemoryChainClient
    ) -> None:
        chain.receipt_status = 0
        state = await close_service.close_channel(leader_request())
        assert state.phase is ClosePhase.FAILED
        assert state.failed_phase is ClosePhase.SUBMITTING
        assert state.tx_hash == chain.tx_hash
        assert chain.tx_hash in state.error

    @pytest.mark.asyncio
    async def test_revert_reason_extracted(
        self, close_service: CloseChannelService, chain: InMemoryChainClient
    ) -> None:
        chain.write_error = ValueError("execution reverted: Invalid permutation")
        state = await close_service.close_channel(leader_request())
        assert state.error == "execution reverted: Invalid permutation"
        assert state.revert_reason == "Invalid permutation"
        assert state.failed_phase is ClosePhase.SUBMITTING

    @pytest.mark.asyncio
    async def test_cancellation_propagates(
        self, close_service: CloseChannelService, proof_engine: FakeProofEngine
    ) -> None:
        proof_engine.error = asyncio.CancelledError()
        with pytest.raises(asyncio.CancelledError):
            await close_service.close_channel(leader_request())


class TestExtractRevertReason:
    """Test extract_revert_reason function."""

    def test_plain_error_has_no_reason(self) -> None:
        assert extract_revert_reason("nonce too low") is None

    def test_reason_after_prefix(self) -> None:
        assert (
            extract_revert_reason("('execution reverted: Not leader', '0x08c379a0')")
            == "Not leader"
        )


class TestGetSnapshotBalance:
    """Test get_snapshot_balance."""

    @pytest.mark.asyncio
    async def test_known_participant(self, close_service: CloseChannelService) -> None:
        result = await close_service.get_snapshot_balance(CHANNEL_ID, USER1)
        assert result.balance == 10**18
        assert result.l2_key == mpt_key_to_hex(0xBB)

    @pytest.mark.asyncio
    async def test_unknown_participant_has_zero_balance(
        self, close_service: CloseChannelService
    ) -> None:
        result = await close_service.get_snapshot_balance(CHANNEL_ID, LEADER)
        assert result.balance == 0
