"""Circuit input assembly and final-state proof generation."""

from __future__ import annotations

import logging
from typing import List, Optional

from ...domain.entities import ProofInput, ProofResult, StateSnapshot
from ...domain.errors import PublicSignalCountMismatchError, UnsupportedTreeSizeError
from ...domain.keys import (
    ZERO_KEY,
    amount_to_decimal_str,
    expected_public_signal_count,
    is_supported_tree_size,
    normalize_key,
)
from ...domain.shared import ProgressCallback, ProofEngineProtocol
from .permutation import build_value_map

logger = logging.getLogger(__name__)


def build_proof_inputs(snapshot: StateSnapshot, tree_size: int) -> ProofInput:
    """Lay out storage keys/values in circuit order, padded to ``tree_size``.

    Raises:
        UnsupportedTreeSizeError: If ``tree_size`` is not 16, 32, 64 or 128.
    """
    if not is_supported_tree_size(tree_size):
        raise UnsupportedTreeSizeError(tree_size)

    value_map = build_value_map(snapshot)
    storage_keys: List[str] = []
    storage_values: List[str] = []

    for raw_key in snapshot.registered_keys[:tree_size]:
        key = normalize_key(raw_key)
        raw_value = value_map.get(key)
        if raw_value is None:
            logger.debug("Circuit input %s not found in storage entries, using 0", key)
            storage_values.append("0")
        else:
            storage_values.append(amount_to_decimal_str(raw_value))
        storage_keys.append(key)

    real_entries = len(storage_keys)
    while len(storage_keys) < tree_size:
        storage_keys.append(ZERO_KEY)
        storage_values.append("0")

    logger.info(
        "Circuit input: tree size %d, %d entries, %d padded",
        tree_size,
        real_entries,
        tree_size - real_entries,
    )
    return ProofInput(
        storage_keys=storage_keys,
        storage_values=storage_values,
        tree_size=tree_size,
    )


def check_public_signals(result: ProofResult, tree_size: int) -> None:
    expected = expected_public_signal_count(tree_size)
    actual = len(result.public_signals)
    if actual != expected:
        logger.error(
            "PublicSignals length mismatch! Expected %d, got %d", expected, actual
        )
        raise PublicSignalCountMismatchError(expected, actual)


async def generate_close_proof(
    snapshot: StateSnapshot,
    tree_size: int,
    engine: ProofEngineProtocol,
    on_progress: Optional[ProgressCallback] = None,
) -> ProofResult:
    """Build the circuit inputs, run the proof engine and validate its output.

    Raises:
        UnsupportedTreeSizeError: Before the engine is called.
        PublicSignalCountMismatchError: If the engine returned a proof whose
            public signals cannot match the tree, so it would never verify.
    """
    proof_input = build_proof_inputs(snapshot, tree_size)
    result = await engine.generate_proof(proof_input, on_progress)
    check_public_signals(result, tree_size)
    logger.info("Groth16 proof generated, root signal %s", result.public_signals[0])
    return result
