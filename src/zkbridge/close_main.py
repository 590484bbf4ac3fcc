from __future__ import annotations

import asyncio
import logging
import os
import sys

from .application.close_channel.dtos import CloseChannelRequestDTO
from .application.close_channel.use_cases import CloseChannelService
from .domain.entities import ClosePhase, CloseChannelState
from .envs.client_env import Settings, get_settings
from .infrastructure.artifacts.artifact_client import ArtifactStoreClient
from .infrastructure.chain.web3_chain_client import Web3ChainClient
from .infrastructure.prover.prover_client import HttpProofEngineClient


def _print_state(state: CloseChannelState) -> None:
    print(f"[{state.phase.value}] {state.status}")


async def close_channel(settings: Settings, channel_id: str) -> CloseChannelState:
    """Run a single close attempt for ``channel_id`` against live services."""
    async with Web3ChainClient(
        settings.rpc_url,
        settings.bridge_core_address,
        settings.bridge_proof_manager_address,
        private_key=settings.private_key,
        from_address=settings.from_address,
        receipt_timeout=settings.receipt_timeout_seconds,
    ) as chain, ArtifactStoreClient(
        settings.artifact_base_url, timeout=settings.artifact_timeout_seconds
    ) as artifacts, HttpProofEngineClient(
        settings.prover_base_url, timeout=settings.proof_timeout_seconds
    ) as prover:
        service = CloseChannelService(
            chain,
            artifacts,
            prover,
            strict_key_resolution=settings.strict_key_resolution,
        )
        request = CloseChannelRequestDTO(
            channel_id=channel_id, caller_address=chain.address
        )
        return await service.close_channel(request, on_state=_print_state)


def main() -> None:
    """Entry point: close the channel named by ``CHANNEL_ID``."""

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    channel_id = os.environ.get("CHANNEL_ID")
    if not channel_id:
        raise ValueError("CHANNEL_ID is required")

    print(f"Closing channel {channel_id}")
    print(f"Artifact service: {settings.artifact_base_url}")
    print(f"Proof engine: {settings.prover_base_url}")

    state = asyncio.run(close_channel(settings, channel_id))

    if state.warnings:
        for warning in state.warnings:
            print(f"WARNING: {warning.describe()}")
    if state.phase is ClosePhase.SUCCEEDED:
        print(f"Channel closed, transaction {state.tx_hash}")
        return

    print(f"Close failed during {state.failed_phase.value}: {state.error}")
    if state.revert_reason:
        print(f"Revert reason: {state.revert_reason}")
    sys.exit(1)


if __name__ == "__main__":
    main()
