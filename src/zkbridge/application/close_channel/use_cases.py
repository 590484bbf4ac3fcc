"""Use cases for closing a channel with a final-balances Groth16 proof."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Callable, Optional

from ...domain.entities import (
    ChannelOnChainView,
    ClosePhase,
    CloseChannelState,
    StateSnapshot,
)
from ...domain.errors import (
    MissingChannelDataError,
    NotLeaderError,
    TransactionRevertedError,
    UnresolvedKeyError,
    UnsupportedTreeSizeError,
    WalletNotConnectedError,
)
from ...domain.keys import is_supported_tree_size, mpt_key_to_hex, parse_amount, same_address
from ...domain.shared import (
    ArtifactStoreProtocol,
    ChainClientProtocol,
    ProofEngineProtocol,
)
from ...middleware.timing import log_timing
from .dtos import CloseChannelRequestDTO, SnapshotBalanceDTO
from .permutation import build_permutation, build_value_map, ensure_channel_data
from .proof_inputs import generate_close_proof

logger = logging.getLogger(__name__)

StateListener = Callable[[CloseChannelState], None]

_REVERT_PATTERN = re.compile(r"execution reverted: ([^'\"\n]+)")


def extract_revert_reason(message: str) -> Optional[str]:
    """Pull the reason string out of an ``execution reverted: ...`` message."""
    match = _REVERT_PATTERN.search(message)
    return match.group(1).strip() if match else None


class CloseChannelService:
    """Runs one close attempt: snapshot -> permutation -> proof -> submission.

    Each call to ``close_channel`` is a fresh attempt. Nothing is cached
    between attempts, since participants and deposits can change before the
    channel closes.
    """

    def __init__(
        self,
        chain: ChainClientProtocol,
        artifact_store: ArtifactStoreProtocol,
        proof_engine: ProofEngineProtocol,
        *,
        strict_key_resolution: bool = False,
    ) -> None:
        self.chain = chain
        self.artifact_store = artifact_store
        self.proof_engine = proof_engine
        self.strict_key_resolution = strict_key_resolution

    async def load_channel_view(self, channel_id: str) -> ChannelOnChainView:
        """Read the channel's current contract state.

        All reads are awaited to completion; the first failure is re-raised.
        """
        results = await asyncio.gather(
            self.chain.read("getChannelParticipants", [channel_id]),
            self.chain.read("getChannelTreeSize", [channel_id]),
            self.chain.read("getChannelFinalStateRoot", [channel_id]),
            self.chain.read("getChannelTargetContract", [channel_id]),
            self.chain.read("getChannelLeader", [channel_id]),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        participants, tree_size, final_state_root, target_contract, leader = results
        pre_allocated_keys = []
        if target_contract:
            pre_allocated_keys = await self.chain.read(
                "getPreAllocatedKeys", [target_contract]
            )

        return ChannelOnChainView(
            channel_id=channel_id,
            participants=list(participants) if participants is not None else None,
            pre_allocated_keys=list(pre_allocated_keys or []),
            tree_size=parse_amount(tree_size),
            final_state_root=final_state_root or None,
            target_contract=target_contract or None,
            leader=leader or None,
        )

    async def close_channel(
        self,
        dto: CloseChannelRequestDTO,
        on_state: Optional[StateListener] = None,
    ) -> CloseChannelState:
        """Close a channel and return the terminal state of the attempt.

        Errors never escape: any failure ends the attempt in ``failed`` with
        the raw error message and the phase that was running.
        """
        state = CloseChannelState(channel_id=dto.channel_id)

        def transition(phase: ClosePhase, status: str) -> None:
            state.phase = phase
            state.status = status
            logger.info("Close channel %s: %s (%s)", dto.channel_id, phase.value, status)
            self._emit(on_state, state)

        def update_status(status: str) -> None:
            state.status = status
            self._emit(on_state, state)

        try:
            # Preconditions: nothing is fetched or computed until they hold
            if not dto.channel_id:
                raise MissingChannelDataError("Channel ID is required")
            if not dto.caller_address:
                raise WalletNotConnectedError("Wallet is not connected")

            view = await self.load_channel_view(dto.channel_id)
            if not same_address(dto.caller_address, view.leader):
                raise NotLeaderError(
                    f"Only the channel leader can close channel {dto.channel_id}"
                )
            if not is_supported_tree_size(view.tree_size):
                raise UnsupportedTreeSizeError(view.tree_size)
            ensure_channel_data(view)

            transition(ClosePhase.PREPARING, "Loading latest verified proof from DB...")
            snapshot = await self.artifact_store.fetch_latest_verified_snapshot(
                dto.channel_id
            )

            update_status("Calculating permutation...")
            perm_result = await build_permutation(snapshot, view, self.chain)
            state.permutation = perm_result.permutation
            state.final_balances = perm_result.final_balances
            state.warnings = perm_result.warnings

            if perm_result.warnings and self.strict_key_resolution:
                details = "; ".join(w.describe() for w in perm_result.warnings)
                raise UnresolvedKeyError(
                    f"Cannot reconstruct exact ordering: {details}"
                )

            transition(
                ClosePhase.PROVING,
                "Generating Groth16 proof... This may take a few minutes...",
            )
            proof_result = await generate_close_proof(
                snapshot, view.tree_size, self.proof_engine, update_status
            )

            transition(ClosePhase.SUBMITTING, "Submitting to blockchain...")
            await self._submit(state, view, proof_result.proof.as_contract_struct())

            transition(ClosePhase.SUCCEEDED, "Channel closed")
        except Exception as e:
            logger.exception(
                "Close channel %s failed during %s", dto.channel_id, state.phase.value
            )
            message = str(e) or e.__class__.__name__
            state.failed_phase = state.phase
            state.error = message
            state.revert_reason = extract_revert_reason(message)
            state.phase = ClosePhase.FAILED
            state.status = f"Failed while {state.failed_phase.value}"
            self._emit(on_state, state)

        return state

    @log_timing("submit_final_balances")
    async def _submit(
        self,
        state: CloseChannelState,
        view: ChannelOnChainView,
        proof: dict[str, list[int]],
    ) -> None:
        tx_hash = await self.chain.write(
            "verifyFinalBalancesGroth16",
            [view.channel_id, state.final_balances, state.permutation, proof],
        )
        state.tx_hash = tx_hash

        receipt = await self.chain.wait_for_receipt(tx_hash)
        if receipt.get("status") != 1:
            raise TransactionRevertedError(f"Close channel transaction {tx_hash} failed")

    async def get_snapshot_balance(
        self, channel_id: str, address: str
    ) -> SnapshotBalanceDTO:
        """Balance of ``address`` as sealed in the latest verified snapshot."""
        snapshot: StateSnapshot = await self.artifact_store.fetch_latest_verified_snapshot(
            channel_id
        )
        l2_key = mpt_key_to_hex(await self.chain.read("getL2MptKey", [channel_id, address]))
        balance = parse_amount(build_value_map(snapshot).get(l2_key, "0"))
        return SnapshotBalanceDTO(
            channel_id=channel_id, address=address, l2_key=l2_key, balance=balance
        )

    @staticmethod
    def _emit(listener: Optional[StateListener], state: CloseChannelState) -> None:
        if listener is not None:
            listener(state.model_copy(deep=True))
