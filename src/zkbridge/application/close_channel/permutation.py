"""Permutation and final-balance reconstruction for channel closing.

The verifying contract walks its own storage in a fixed order: every
pre-allocated key (in ``getPreAllocatedKeys`` order) and then every participant
(in ``getChannelParticipants`` order). The circuit instead orders leaves by
``registeredKeys`` from the sealed snapshot. The permutation maps each
contract position to the proof index of the same key.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Sequence

from ...domain.entities import (
    ChannelOnChainView,
    KeyResolutionWarning,
    PermutationResult,
    StateSnapshot,
)
from ...domain.errors import MissingChannelDataError, PermutationLengthMismatchError
from ...domain.keys import mpt_key_to_hex, normalize_key, parse_amount
from ...domain.shared import ChainClientProtocol

logger = logging.getLogger(__name__)


def build_index_map(registered_keys: Sequence[str]) -> Dict[str, int]:
    """Map normalized key -> position in ``registered_keys``; the last occurrence wins."""
    return {normalize_key(key): index for index, key in enumerate(registered_keys)}


def build_value_map(snapshot: StateSnapshot) -> Dict[str, str]:
    """Map normalized key -> raw value string.

    Storage entries take precedence; pre-allocated leaves only fill keys the
    storage entries do not define.
    """
    values: Dict[str, str] = {}
    for entry in snapshot.storage_entries:
        values[normalize_key(entry.key)] = entry.value
    for entry in snapshot.pre_allocated_leaves:
        values.setdefault(normalize_key(entry.key), entry.value)
    return values


def ensure_channel_data(view: ChannelOnChainView) -> List[str]:
    """Return the participant list, or raise if closing data is missing."""
    missing = {
        "channelParticipants": "MISSING" if view.participants is None else "OK",
        "finalStateRoot": "MISSING" if not view.final_state_root else "OK",
        "channelTargetContract": "MISSING" if not view.target_contract else "OK",
    }
    if "MISSING" in missing.values():
        logger.error("Cannot build permutation, missing channel data: %s", missing)
        raise MissingChannelDataError(f"Missing channel data: {missing}")
    return list(view.participants or [])


def assemble_permutation(
    snapshot: StateSnapshot,
    view: ChannelOnChainView,
    participant_l2_keys: Sequence[str],
) -> PermutationResult:
    """Build the permutation and final balances from already-resolved L2 keys.

    ``participant_l2_keys`` must be parallel to ``view.participants``. Keys
    missing from ``registered_keys`` fall back to index 0 (and balance 0 for
    participants); each fallback is logged and recorded as a warning.

    Raises:
        MissingChannelDataError: If participants, final state root or target
            contract is absent from the view.
        PermutationLengthMismatchError: If the result does not have one entry
            per pre-allocated key and participant.
    """
    participants = ensure_channel_data(view)
    if len(participant_l2_keys) != len(participants):
        raise ValueError(
            f"Expected {len(participants)} participant L2 keys, "
            f"got {len(participant_l2_keys)}"
        )

    index_map = build_index_map(snapshot.registered_keys)
    value_map = build_value_map(snapshot)

    permutation: List[int] = []
    final_balances: List[int] = []
    warnings: List[KeyResolutionWarning] = []

    for position, raw_key in enumerate(view.pre_allocated_keys):
        key = normalize_key(raw_key)
        proof_index = index_map.get(key)
        if proof_index is None:
            warning = KeyResolutionWarning(
                role="pre_allocated", position=position, key=key
            )
            logger.warning(warning.describe())
            warnings.append(warning)
            proof_index = 0
        permutation.append(proof_index)

    for position, (participant, raw_l2_key) in enumerate(
        zip(participants, participant_l2_keys)
    ):
        key = normalize_key(raw_l2_key)
        proof_index = index_map.get(key)
        if proof_index is None:
            warning = KeyResolutionWarning(
                role="participant",
                position=position,
                key=key,
                participant=participant,
            )
            logger.warning(warning.describe())
            warnings.append(warning)
            permutation.append(0)
            final_balances.append(0)
            continue

        balance = parse_amount(value_map.get(key, "0"))
        permutation.append(proof_index)
        final_balances.append(balance)
        logger.debug(
            "Participant %d (%s): MPT key %s -> proof index %d, balance = %d",
            position,
            participant,
            key,
            proof_index,
            balance,
        )

    expected = len(view.pre_allocated_keys) + len(participants)
    if len(permutation) != expected:
        logger.error(
            "Permutation length mismatch! Expected %d, got %d",
            expected,
            len(permutation),
        )
        raise PermutationLengthMismatchError(expected, len(permutation))

    return PermutationResult(
        permutation=permutation,
        final_balances=final_balances,
        warnings=warnings,
    )


async def fetch_participant_l2_keys(
    chain: ChainClientProtocol,
    channel_id: str,
    participants: Sequence[str],
) -> List[str]:
    """Read every participant's L2 MPT key concurrently, as 32-byte hex strings."""
    results = await asyncio.gather(
        *(chain.read("getL2MptKey", [channel_id, p]) for p in participants)
    )
    return [mpt_key_to_hex(result) for result in results]


async def build_permutation(
    snapshot: StateSnapshot,
    view: ChannelOnChainView,
    chain: ChainClientProtocol,
) -> PermutationResult:
    participants = ensure_channel_data(view)
    l2_keys = await fetch_participant_l2_keys(chain, view.channel_id, participants)
    return assemble_permutation(snapshot, view, l2_keys)
